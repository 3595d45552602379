"""Time units and default run settings for the malaria models.

All model rates are per day.  Ages are supplied in years and converted with
:data:`DAYS_PER_YEAR`.
"""
from __future__ import annotations

from typing import Tuple

# Days per year used for age and EIR conversions
DAYS_PER_YEAR: float = 365.0

# Default age group boundaries (years)
DEFAULT_AGE_VECTOR: Tuple[float, ...] = (
    0.0, 0.25, 0.5, 0.75, 1.0, 1.25, 1.5, 1.75, 2.0, 3.5, 5.0,
    7.5, 10.0, 15.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0,
)

DEFAULT_HET_BRACKETS: int = 5
DEFAULT_INIT_EIR: float = 10.0
DEFAULT_INIT_FT: float = 0.4
DEFAULT_MODEL: str = "malaria_model"
DEFAULT_TIME_DAYS: int = 100

# Stabilisation loop
DEFAULT_WINDOW_DAYS: int = 365
DEFAULT_TOLERANCE: float = 1e-4
DEFAULT_MAX_T_DAYS: float = 365.0 * 100
DEFAULT_OBSERVABLE: str = "EIR_out"
# Largest solver step allowed while stabilising (days)
STABLE_MAX_STEP_DAYS: float = 9.0

# Prevalence reporting age band (years)
PREV_AGE_RANGE: Tuple[float, float] = (2.0, 10.0)
# Incidence reporting upper age (years)
INC_UNDER5_AGE: float = 5.0
