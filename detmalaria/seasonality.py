"""Seasonal mosquito carrying capacity.

Seasonality enters the model as a three-harmonic Fourier profile of rainfall

.. math::

    \\theta(t) = a_0 + \\sum_{k=1}^{3} a_k \\cos(2\\pi k t / 365)
                     + b_k \\sin(2\\pi k t / 365)

normalised by its annual mean :math:`\\theta_c` so that the larval carrying
capacity averages to the equilibrium value over a year.  Coefficients for
administrative units are read from a CSV table with columns ``country``,
``admin1`` and ``a0, a1, a2, a3, b1, b2, b3``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import numpy as np
import pandas as pd

from .constants import DAYS_PER_YEAR
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

COEFFICIENT_COLUMNS = ("a0", "a1", "a2", "a3", "b1", "b2", "b3")
THETA_FLOOR = 0.001


@dataclass(frozen=True)
class SeasonalProfile:
    """Fourier coefficients of one seasonal profile."""

    ssa0: float = 1.0
    ssa1: float = 0.0
    ssa2: float = 0.0
    ssa3: float = 0.0
    ssb1: float = 0.0
    ssb2: float = 0.0
    ssb3: float = 0.0

    @classmethod
    def from_parameters(cls, params: Mapping[str, float]) -> "SeasonalProfile":
        return cls(**{name: float(params[name]) for name in cls.__dataclass_fields__})

    @property
    def is_flat(self) -> bool:
        return not any((self.ssa1, self.ssa2, self.ssa3, self.ssb1, self.ssb2, self.ssb3))

    def raw(self, t: np.ndarray | float) -> np.ndarray | float:
        """Return the unnormalised profile, floored at :data:`THETA_FLOOR`."""

        w = 2.0 * np.pi * np.asarray(t, dtype=float) / DAYS_PER_YEAR
        value = (
            self.ssa0
            + self.ssa1 * np.cos(w)
            + self.ssa2 * np.cos(2.0 * w)
            + self.ssa3 * np.cos(3.0 * w)
            + self.ssb1 * np.sin(w)
            + self.ssb2 * np.sin(2.0 * w)
            + self.ssb3 * np.sin(3.0 * w)
        )
        return np.maximum(value, THETA_FLOOR)

    def theta_c(self) -> float:
        """Annual mean of the profile on a daily grid."""

        days = np.arange(int(DAYS_PER_YEAR), dtype=float)
        return float(np.mean(self.raw(days)))

    def as_parameters(self) -> Dict[str, float]:
        return {name: float(getattr(self, name)) for name in self.__dataclass_fields__}


class SeasonalityTable:
    """Seasonal coefficients indexed by country and first-level admin unit."""

    def __init__(self, frame: pd.DataFrame) -> None:
        missing = [col for col in ("country", "admin1", *COEFFICIENT_COLUMNS) if col not in frame.columns]
        if missing:
            raise ConfigurationError(f"Seasonality table is missing columns: {', '.join(missing)}")
        self._frame = frame.reset_index(drop=True)

    @classmethod
    def from_csv(cls, path: Path | str) -> "SeasonalityTable":
        source = Path(path)
        if not source.exists():
            raise ConfigurationError(f"Seasonality table not found: {source}")
        frame = pd.read_csv(source)
        logger.info("Loaded seasonality table %s (%d admin units)", source, len(frame))
        return cls(frame)

    def __len__(self) -> int:
        return len(self._frame)

    def lookup(self, country: Optional[str], admin_unit: Optional[str]) -> SeasonalProfile:
        """Return the profile for an admin unit.

        If ``admin_unit`` is ``None`` the first unit of ``country`` is used,
        mirroring how a country-level run picks a representative unit.
        """

        if country is None and admin_unit is None:
            raise ConfigurationError("Seasonality lookup requires a country or admin unit")
        rows = self._frame
        if country is not None:
            rows = rows[rows["country"].str.lower() == country.lower()]
            if rows.empty:
                raise ConfigurationError(f"Country '{country}' not found in seasonality table")
        if admin_unit is not None:
            rows = rows[rows["admin1"].str.lower() == admin_unit.lower()]
            if rows.empty:
                raise ConfigurationError(
                    f"Admin unit '{admin_unit}' not found in seasonality table"
                    + (f" for country '{country}'" if country else "")
                )
        if len(rows) > 1 and admin_unit is not None:
            logger.warning(
                "Admin unit '%s' matches %d rows; using the first", admin_unit, len(rows)
            )
        row = rows.iloc[0]
        return SeasonalProfile(
            ssa0=float(row["a0"]),
            ssa1=float(row["a1"]),
            ssa2=float(row["a2"]),
            ssa3=float(row["a3"]),
            ssb1=float(row["b1"]),
            ssb2=float(row["b2"]),
            ssb3=float(row["b3"]),
        )


__all__ = ["COEFFICIENT_COLUMNS", "SeasonalProfile", "SeasonalityTable", "THETA_FLOOR"]
