"""Model parameter list construction.

The default values follow the fitted transmission model of Griffin et al.
(2014, 2016).  Rates are per day, durations in days.  Callers override
standard values by keyword and may append any number of extra parameters,
either individually by keyword or as a single pre-built mapping::

    build_parameters(rho=0.8, extra1=1.0)
    build_parameters({"extra1": 1.0, "extra2": 2.0})

Keys of the pre-built mapping must not reuse a standard name; such a call
fails with :class:`~detmalaria.errors.NameCollisionError`.
"""
from __future__ import annotations

import logging
import math
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

import numpy as np

from .constants import DAYS_PER_YEAR
from .errors import ConfigurationError, NameCollisionError

logger = logging.getLogger(__name__)

DEFAULT_PARAMETERS: Mapping[str, float] = MappingProxyType(
    {
        # demography, age-dependent biting, heterogeneity
        "eta": 1.0 / (21.0 * 365.0),
        "rho": 0.85,
        "a0": 2920.0,
        "sigma2": 1.67,
        # rates of leaving infection states
        "rA": 1.0 / 195.0,
        "rT": 0.2,
        "rD": 0.2,
        "rU": 1.0 / 110.299,
        "rP": 1.0 / 15.0,
        # human infectiousness to mosquitoes
        "cD": 0.0676909,
        "cT": 0.322 * 0.0676909,
        "cU": 0.006203,
        "gamma1": 1.82425,
        # immunity reducing probability of detection
        "d1": 0.160527,
        "dID": 3650.0,
        "ID0": 1.577533,
        "kD": 0.476614,
        "uD": 9.44512,
        "aD": 8001.99,
        "fD0": 0.007055,
        "gammaD": 4.8183,
        "alphaA": 0.75735,
        "alphaU": 0.185624,
        # immunity reducing probability of infection
        "b0": 0.590076,
        "b1": 0.5,
        "dB": 3650.0,
        "IB0": 43.8787,
        "kB": 2.15506,
        "uB": 7.19919,
        # immunity reducing probability of clinical disease
        "phi0": 0.791666,
        "phi1": 0.000737,
        "dCA": 10950.0,
        "IC0": 18.02366,
        "kC": 2.36949,
        "uCA": 6.06349,
        "PM": 0.774368,
        "dCM": 67.6952,
        # entomology
        "delayMos": 10.0,
        "tau1": 0.69,
        "tau2": 2.31,
        "mu0": 0.132,
        "Q0": 0.92,
        # larval stages
        "muEL": 0.0338,
        "muLL": 0.0348,
        "muPL": 0.249,
        "dEL": 6.64,
        "dLL": 3.72,
        "dPL": 0.643,
        "gammaL": 13.25,
        "betaL": 21.2,
        # seasonality (flat profile unless overridden or looked up)
        "ssa0": 1.0,
        "ssa1": 0.0,
        "ssa2": 0.0,
        "ssa3": 0.0,
        "ssb1": 0.0,
        "ssb2": 0.0,
        "ssb3": 0.0,
        # interventions used by the model variants
        "emanator_cov": 0.0,
        "emanator_repel": 0.5,
        "hrp2_prop": 0.0,
        "ivm_cov": 0.0,
        "ivm_mort": 0.5,
        "smc_cov": 0.0,
        "smc_eff": 0.9,
        "smc_max_age": 5.0 * 365.0,
        "tbv_cov": 0.0,
        "tbv_eff": 0.9,
        "DY": DAYS_PER_YEAR,
    }
)


def _blood_meal_rate(p: Mapping[str, Any]) -> float:
    return 1.0 / (p["tau1"] + p["tau2"])


def egg_laying_rate(betaL: float, mu: float, fv: float) -> float:
    """Eggs laid per mosquito per day, averaged over the gonotrophic cycle."""

    eov = betaL / mu * (math.exp(mu / fv) - 1.0)
    return eov * mu * math.exp(-mu / fv) / (1.0 - math.exp(-mu / fv))


DERIVED_PARAMETERS: Mapping[str, Callable[[Mapping[str, Any]], float]] = MappingProxyType(
    {
        "fv0": _blood_meal_rate,
        "av0": lambda p: p["Q0"] * p["fv0"],
        "Surv0": lambda p: math.exp(-p["mu0"] * p["delayMos"]),
        "beta_larval0": lambda p: egg_laying_rate(p["betaL"], p["mu0"], p["fv0"]),
    }
)

RESERVED_PARAMETERS = frozenset(DEFAULT_PARAMETERS) | frozenset(DERIVED_PARAMETERS)


class ParameterSet(Mapping[str, Any]):
    """Read-only mapping of parameter name to value.

    ``extras`` lists the names that are not standard parameters, in the order
    in which they were supplied.
    """

    __slots__ = ("_values", "_extras")

    def __init__(self, values: Mapping[str, Any], extras: Tuple[str, ...] = ()) -> None:
        frozen: Dict[str, Any] = {}
        for key, value in values.items():
            if isinstance(value, np.ndarray):
                value = value.copy()
                value.setflags(write=False)
            frozen[key] = value
        self._values = MappingProxyType(frozen)
        self._extras = tuple(extras)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParameterSet({len(self)} parameters, extras={list(self._extras)})"

    @property
    def extras(self) -> Tuple[str, ...]:
        return self._extras

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)


def _coerce(name: str, value: Any) -> Any:
    if isinstance(value, bool):
        raise ConfigurationError(f"Parameter '{name}' must be numeric, got bool")
    if isinstance(value, (int, float, np.integer, np.floating)):
        return float(value)
    if isinstance(value, (list, tuple, np.ndarray)):
        arr = np.asarray(value, dtype=float)
        return arr
    raise ConfigurationError(
        f"Parameter '{name}' must be numeric or a numeric vector, got {type(value).__name__}"
    )


def build_parameters(overrides: Optional[Mapping[str, Any]] = None, **named: Any) -> ParameterSet:
    """Return the model parameter set.

    An extra given both in ``overrides`` and in ``named`` takes the value
    from ``overrides``.

    Parameters
    ----------
    overrides:
        Pre-built mapping of extra parameters.  None of its keys may be a
        standard parameter name.
    **named:
        Standard parameters to override, or extra parameters to append.

    Raises
    ------
    NameCollisionError
        If a key of ``overrides`` is a standard parameter name.
    """

    aggregate = dict(overrides or {})
    collisions = {key for key in aggregate if key in RESERVED_PARAMETERS}
    if collisions:
        raise NameCollisionError(collisions)

    values: Dict[str, Any] = dict(DEFAULT_PARAMETERS)
    extras = []
    for key, value in list(named.items()) + list(aggregate.items()):
        values[key] = _coerce(key, value)
        if key not in RESERVED_PARAMETERS and key not in extras:
            extras.append(key)

    for key, derive in DERIVED_PARAMETERS.items():
        if key not in named:
            values[key] = derive(values)

    if extras:
        logger.debug("build_parameters: appended extra parameters %s", extras)
    return ParameterSet(values, tuple(extras))


__all__ = [
    "DEFAULT_PARAMETERS",
    "DERIVED_PARAMETERS",
    "RESERVED_PARAMETERS",
    "ParameterSet",
    "build_parameters",
    "egg_laying_rate",
]
