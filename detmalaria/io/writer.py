"""Output helper utilities.

Thin wrappers around :mod:`pandas` and :mod:`pyarrow` to serialise run
results.  Parquet (with column units in the schema metadata) or CSV is used
for the time series and JSON for the run summary.  Destination directories
are created when necessary.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

COLUMN_UNITS: Mapping[str, str] = {
    "t": "day",
    "EIR_out": "infectious bites person^-1 year^-1",
    "prev": "dimensionless",
    "prev_rdt": "dimensionless",
    "inc": "cases person^-1 day^-1",
    "inc05": "cases person^-1 day^-1",
    "mv": "mosquitoes person^-1",
    "Sv": "mosquitoes person^-1",
    "Ev": "mosquitoes person^-1",
    "Iv": "mosquitoes person^-1",
    "EL": "larvae person^-1",
    "LL": "larvae person^-1",
    "PL": "pupae person^-1",
    "S": "proportion",
    "T": "proportion",
    "D": "proportion",
    "A": "proportion",
    "U": "proportion",
    "P": "proportion",
    "H": "proportion",
    "theta2": "dimensionless",
}


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_parquet(df: pd.DataFrame, path: Path, *, compression: str = "snappy") -> None:
    """Write a DataFrame to a Parquet file using ``pyarrow``.

    Units of known columns are stored under the ``units`` key of the schema
    metadata.
    """
    _ensure_parent(path)
    table = pa.Table.from_pandas(df, preserve_index=False)
    units = {name: COLUMN_UNITS[name] for name in df.columns if name in COLUMN_UNITS}
    metadata = dict(table.schema.metadata or {})
    metadata[b"units"] = json.dumps(units, sort_keys=True).encode("utf-8")
    table = table.replace_schema_metadata(metadata)
    pq.write_table(table, path, compression=compression)


def read_units(path: Path) -> dict:
    """Return the unit mapping stored by :func:`write_parquet`."""

    metadata = pq.read_schema(path).metadata or {}
    raw = metadata.get(b"units")
    return json.loads(raw.decode("utf-8")) if raw else {}


def write_csv(df: pd.DataFrame, path: Path) -> None:
    """Write a DataFrame to CSV without the index."""

    _ensure_parent(path)
    df.to_csv(path, index=False)


def write_summary(summary: Mapping[str, Any], path: Path) -> None:
    """Write a summary dictionary to ``summary.json``."""

    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(summary, fh, indent=2, sort_keys=True, default=str)


__all__ = ["COLUMN_UNITS", "read_units", "write_csv", "write_parquet", "write_summary"]
