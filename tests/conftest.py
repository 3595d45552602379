from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from detmalaria.equilibrium import equilibrium_init_create  # noqa: E402
from detmalaria.parameters import build_parameters  # noqa: E402

# Five age groups spanning the maternal reference age keep the systems small.
SMALL_AGES = [0.0, 1.0, 5.0, 20.0, 60.0]

SEASONALITY_CSV = """country,admin1,a0,a1,a2,a3,b1,b2,b3
Kenya,Kisumu,0.28,-0.32,-0.02,0.06,0.11,0.13,-0.03
Kenya,Nairobi,0.3,0.1,0.0,0.0,0.0,0.0,0.0
Mali,Sikasso,0.28,-0.31,0.08,-0.01,-0.34,0.13,0.01
"""


@pytest.fixture
def small_ages() -> list[float]:
    return list(SMALL_AGES)


@pytest.fixture
def small_state():
    """Equilibrium state for EIR 10 with two heterogeneity groups."""

    mpl = build_parameters()
    return equilibrium_init_create(
        age_vector=SMALL_AGES,
        EIR=10.0,
        ft=0.4,
        model_param_list=mpl,
        het_brackets=2,
    )


@pytest.fixture
def seasonality_csv(tmp_path: Path) -> Path:
    path = tmp_path / "seasonality.csv"
    path.write_text(SEASONALITY_CSV, encoding="utf-8")
    return path
