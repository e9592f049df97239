# mpgfit/config.py

from pathlib import Path
from typing import Optional
import os

# Root of the project; overridable via env for containers
PROJECT_ROOT = Path(
    os.getenv("MPGFIT_ROOT", Path(__file__).resolve().parents[1])
)

# Base artifacts directory (saved models, rendered figures)
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"

# Where saved manifest+weights pairs land ("downloads")
DOWNLOADS_DIR = ARTIFACTS_DIR / "downloads"

# Rendered charts, one PNG per drawing target
FIGURES_DIR = ARTIFACTS_DIR / "figures"

# Remote Auto MPG dataset (JSON array of car records)
DATASET_URL = os.getenv(
    "MPGFIT_DATASET_URL",
    "https://storage.googleapis.com/tfjs-tutorials/carsData.json",
)

HTTP_TIMEOUT = float(os.getenv("MPGFIT_HTTP_TIMEOUT", "30"))


def parse_seed(raw: str) -> Optional[int]:
    # "none" or an empty value turns seeding off (non-deterministic shuffles)
    if raw.strip().lower() in ("", "none"):
        return None
    return int(raw)


# Global random seed (overridable via env)
RANDOM_SEED = parse_seed(os.getenv("MPGFIT_RANDOM_SEED", "42"))

# Fixed base name of the saved manifest+weights pair
SAVE_MODEL_NAME = os.getenv("MPGFIT_SAVE_MODEL_NAME", "my-model-1")

LOG_LEVEL = os.getenv("MPGFIT_LOG_LEVEL", "INFO")

# Port of the UI shell
DEFAULT_PORT = int(os.getenv("PORT", "9000"))
