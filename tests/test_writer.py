import json
from pathlib import Path

import pandas as pd
import pyarrow.parquet as pq

from detmalaria import run
from detmalaria.config_utils import build_config
from detmalaria.io import writer


def _frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "t": [0.0, 1.0, 2.0],
            "EIR_out": [10.0, 10.1, 10.2],
            "prev": [0.3, 0.31, float("nan")],
            "custom": [1, 2, 3],
        }
    )


def test_write_parquet_records_units(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "series.parquet"
    writer.write_parquet(_frame(), path)

    units = writer.read_units(path)
    assert units == {"EIR_out": "infectious bites person^-1 year^-1", "prev": "dimensionless", "t": "day"}
    assert pq.read_table(path).num_rows == 3


def test_write_csv_without_index(tmp_path: Path) -> None:
    path = tmp_path / "series.csv"
    writer.write_csv(_frame(), path)

    back = pd.read_csv(path)
    assert list(back.columns) == ["t", "EIR_out", "prev", "custom"]


def test_summary_replaces_non_finite_values(tmp_path: Path) -> None:
    cfg = build_config({"io": {"outdir": str(tmp_path)}})
    summary = run.summarise(_frame(), cfg)

    assert summary["rows"] == 3
    assert summary["EIR_final"] == 10.2
    assert summary["prev_final"] is None
    assert summary["inc_final"] is None

    writer.write_summary(summary, tmp_path / "summary.json")
    data = json.loads((tmp_path / "summary.json").read_text())
    assert data["t_final"] == 2.0
    assert data["prev_final"] is None
