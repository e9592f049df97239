# mpgfit/data.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import httpx
import pandas as pd

from .config import DATASET_URL, HTTP_TIMEOUT
from .errors import FormatError, NetworkError

logger = logging.getLogger(__name__)


# ---------- Source columns of the cars dataset ----------

HORSEPOWER_COLUMN = "Horsepower"
MPG_COLUMN = "Miles_per_Gallon"


# ---------- Simple containers ----------

@dataclass(frozen=True)
class Sample:
    horsepower: float
    mpg: float


# ---------- Loaders ----------

def fetch_cars_data(
    url: str = DATASET_URL,
    client: Optional[httpx.Client] = None,
    timeout: float = HTTP_TIMEOUT,
) -> List[Dict[str, Any]]:
    """
    Download the raw cars table as a list of JSON objects.

    Raises NetworkError when the request does not complete with a 2xx
    response, and FormatError when the body is not a JSON array.
    """
    logger.info("Fetching dataset from %s", url)
    own_client = client is None
    if own_client:
        client = httpx.Client(timeout=timeout, follow_redirects=True)

    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise NetworkError(f"Could not fetch dataset from {url}: {e}") from e
    finally:
        if own_client:
            client.close()

    try:
        payload = response.json()
    except ValueError as e:
        raise FormatError(f"Dataset at {url} is not valid JSON: {e}") from e

    if not isinstance(payload, list):
        raise FormatError(
            f"Expected a JSON array of car records, got {type(payload).__name__}"
        )

    logger.info("Fetched %d raw records", len(payload))
    return payload


# ---------- Basic preprocessing ----------

def clean_cars_data(records: Iterable[Dict[str, Any]]) -> List[Sample]:
    """
    Reduce the car records to (horsepower, mpg) and drop any record
    where either value is missing.

    - Extra fields are ignored.
    - Record order is kept.
    - Values are not range-checked (zero or negative values pass through).
    """
    records = list(records)
    for i, rec in enumerate(records):
        if not isinstance(rec, dict):
            raise FormatError(f"Record {i} is not an object: {rec!r}")

    # reindex so a column missing from every record still exists (all NaN)
    df = pd.DataFrame(records).reindex(columns=[HORSEPOWER_COLUMN, MPG_COLUMN])
    df = df.rename(columns={HORSEPOWER_COLUMN: "horsepower", MPG_COLUMN: "mpg"})
    df = df.dropna(subset=["horsepower", "mpg"])

    try:
        df = df.astype({"horsepower": float, "mpg": float})
    except (TypeError, ValueError) as e:
        raise FormatError(f"Non-numeric horsepower/mpg value: {e}") from e

    samples = [
        Sample(horsepower=hp, mpg=mpg)
        for hp, mpg in zip(df["horsepower"].tolist(), df["mpg"].tolist())
    ]
    logger.info(
        "Kept %d of %d records with both horsepower and mpg",
        len(samples),
        len(records),
    )
    return samples


def load_samples(
    url: str = DATASET_URL,
    client: Optional[httpx.Client] = None,
) -> List[Sample]:
    """Fetch the cars dataset and return the cleaned samples."""
    return clean_cars_data(fetch_cars_data(url, client=client))
