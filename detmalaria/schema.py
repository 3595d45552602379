"""Configuration schema for model runs.

Pydantic models mirroring the YAML configuration accepted by
:mod:`detmalaria.run`::

    model: malaria_model
    population:
      het_brackets: 5
    transmission:
      init_EIR: 10
      init_ft: 0.4
    run:
      mode: stable
      tolerance: 1.0e-4
    params:
      rho: 0.8
    io:
      outdir: out/stable

Every section is optional; omitted values fall back to the library defaults.
"""
from __future__ import annotations

import math
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import (
    DEFAULT_AGE_VECTOR,
    DEFAULT_HET_BRACKETS,
    DEFAULT_INIT_EIR,
    DEFAULT_INIT_FT,
    DEFAULT_MAX_T_DAYS,
    DEFAULT_MODEL,
    DEFAULT_OBSERVABLE,
    DEFAULT_TIME_DAYS,
    DEFAULT_TOLERANCE,
    DEFAULT_WINDOW_DAYS,
)
from .model import ModelVariant, SOLVER_METHODS


class Population(BaseModel):
    """Human age structure and biting heterogeneity."""

    age: List[float] = Field(
        default_factory=lambda: list(DEFAULT_AGE_VECTOR),
        description="Lower bounds of the age groups [years]",
    )
    het_brackets: int = Field(DEFAULT_HET_BRACKETS, ge=1, description="Number of biting heterogeneity groups")

    @field_validator("age")
    @classmethod
    def _check_age(cls, value: List[float]) -> List[float]:
        if len(value) < 2:
            raise ValueError("population.age needs at least two age groups")
        if any(not math.isfinite(a) for a in value) or value[0] < 0.0:
            raise ValueError("population.age must contain finite, non-negative ages")
        if any(b <= a for a, b in zip(value, value[1:])):
            raise ValueError("population.age must be strictly increasing")
        return value


class Transmission(BaseModel):
    """Transmission intensity and location used for the equilibrium."""

    init_EIR: float = Field(DEFAULT_INIT_EIR, gt=0, description="Annual entomological inoculation rate")
    init_ft: float = Field(DEFAULT_INIT_FT, ge=0, le=1, description="Proportion of clinical cases treated")
    country: Optional[str] = Field(None, description="Country for seasonal coefficients")
    admin2: Optional[str] = Field(None, description="Admin unit for seasonal coefficients")
    seasonality_table: Optional[Path] = Field(None, description="CSV table of seasonal coefficients")

    @model_validator(mode="after")
    def _location_needs_table(self) -> "Transmission":
        if (self.country or self.admin2) and self.seasonality_table is None:
            raise ValueError("transmission.country/admin2 require transmission.seasonality_table")
        return self


class SolverSettings(BaseModel):
    """ODE solver options."""

    method: str = Field("RK45", description="scipy.integrate solver class name")
    rtol: float = Field(1e-6, gt=0)
    atol: float = Field(1e-8, gt=0)
    max_step: Optional[float] = Field(None, gt=0, description="Largest solver step [days]")

    @field_validator("method")
    @classmethod
    def _check_method(cls, value: str) -> str:
        if value not in SOLVER_METHODS:
            raise ValueError(f"solver.method must be one of {', '.join(SOLVER_METHODS)}")
        return value

    def options(self) -> Dict[str, Any]:
        """Keyword arguments for the model constructor."""

        opts: Dict[str, Any] = {"method": self.method, "rtol": self.rtol, "atol": self.atol}
        if self.max_step is not None:
            opts["max_step"] = self.max_step
        return opts


class RunSettings(BaseModel):
    """Single-run horizon and stabilisation settings."""

    mode: Literal["single", "stable"] = "single"
    time: int = Field(DEFAULT_TIME_DAYS, ge=0, description="Single-run horizon [days]")
    tolerance: float = Field(DEFAULT_TOLERANCE, gt=0)
    max_t: float = Field(DEFAULT_MAX_T_DAYS, gt=0, description="Hard cap on the stabilisation horizon [days]")
    window: int = Field(DEFAULT_WINDOW_DAYS, ge=1, description="Stabilisation window length [days]")
    observable: str = Field(DEFAULT_OBSERVABLE, description="Output series tested for convergence")
    solver: SolverSettings = Field(default_factory=SolverSettings)

    @model_validator(mode="after")
    def _check_horizon(self) -> "RunSettings":
        if self.mode == "stable" and self.max_t < self.window:
            raise ValueError(f"run.max_t ({self.max_t}) must be at least run.window ({self.window})")
        return self


class IOSettings(BaseModel):
    """Output location and format."""

    outdir: Path = Field(Path("out"), description="Directory for series and summary files")
    format: Literal["parquet", "csv"] = "parquet"
    quiet: bool = False


class Config(BaseModel):
    """Top-level run configuration."""

    model: str = Field(DEFAULT_MODEL, description="Model variant name")
    population: Population = Field(default_factory=Population)
    transmission: Transmission = Field(default_factory=Transmission)
    run: RunSettings = Field(default_factory=RunSettings)
    params: Dict[str, Any] = Field(default_factory=dict, description="Parameter overrides and extras")
    io: IOSettings = Field(default_factory=IOSettings)

    @field_validator("model")
    @classmethod
    def _check_model(cls, value: str) -> str:
        valid = [variant.value for variant in ModelVariant]
        if value not in valid:
            raise ValueError(f"Unknown model '{value}'. Valid: {', '.join(valid)}")
        return value


__all__ = [
    "Config",
    "IOSettings",
    "Population",
    "RunSettings",
    "SolverSettings",
    "Transmission",
]
