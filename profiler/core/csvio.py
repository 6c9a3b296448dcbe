from __future__ import annotations

from pathlib import Path

import pandas as pd


def read_records_from_csv(path: Path) -> list[dict[str, str]]:
    """Load a worker's structured output with every cell kept as text."""

    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=True)
    except pd.errors.EmptyDataError:
        return []
    df.columns = [str(column).strip() for column in df.columns]
    return df.to_dict(orient="records")
