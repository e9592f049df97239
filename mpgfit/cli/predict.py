# mpgfit/cli/predict.py

import argparse
import json
from pathlib import Path

from mpgfit.config import LOG_LEVEL
from mpgfit.logging_config import setup_logging
from mpgfit.model_io import SMOKE_TEST_POINTS, load_model_files, smoke_predict


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Load a saved manifest+weights pair and predict on [0, 1]."
    )
    parser.add_argument("--manifest", type=Path, required=True, help="Path to <name>.json")
    parser.add_argument("--weights", type=Path, required=True, help="Path to <name>.weights.bin")
    parser.add_argument(
        "--num-points",
        type=int,
        default=SMOKE_TEST_POINTS,
        help="How many evenly spaced normalized inputs to predict on.",
    )
    parser.add_argument("--log-level", default=LOG_LEVEL)
    return parser.parse_args()


def main():
    args = parse_args()
    setup_logging(args.log_level)

    loaded = load_model_files(args.manifest, args.weights)
    preds = smoke_predict(loaded, n_points=args.num_points)

    output = {
        "manifest": str(args.manifest),
        "n_points": len(preds),
        "predictions": preds,
    }

    # Saved models carry their normalization bounds; show mpg too when present
    bounds = loaded.bounds
    if bounds is not None:
        output["mpg"] = bounds.denormalize_labels(preds).tolist()

    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
