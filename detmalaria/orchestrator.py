"""Orchestration of model runs.

Two entry points compose the same collaborators:

1. :func:`run_model` builds the parameter list, the equilibrium initial
   state and the requested model variant, integrates once over
   ``0..time`` and returns the transformed output.
2. :func:`run_model_until_stable` integrates a first window in restartable
   mode and then continues window by window (:func:`stabilise`) until the
   convergence observable repeats itself within ``tolerance`` or ``max_t``
   is exceeded.

No step is retried: every error raised by a collaborator reaches the caller
with its original type.
"""
from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence, Tuple

import numpy as np
import pandas as pd

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
    STABLE_MAX_STEP_DAYS,
)
from .equilibrium import equilibrium_init_create
from .errors import ConfigurationError, HorizonExceededError
from .model import ContinuationToken, IntegrationResult, ModelVariant, filter_state, select_variant
from .parameters import build_parameters
from .runtime import log_stage
from .seasonality import SeasonalityTable
from .warnings import ConfigurationWarning

logger = logging.getLogger(__name__)


class ModelInstance(Protocol):
    """Operations the stabilisation loop needs from a model instance."""

    def integrate(
        self, times: Sequence[float], *, restartable: bool = False
    ) -> Tuple[IntegrationResult, Optional[ContinuationToken]]:
        ...

    def continue_integration(
        self,
        prior: IntegrationResult,
        times: Sequence[float],
        token: ContinuationToken,
        *,
        restartable: bool = True,
    ) -> Tuple[IntegrationResult, Optional[ContinuationToken]]:
        ...

    def transform_variables(self, result: IntegrationResult) -> pd.DataFrame:
        ...


def _resolve_seasonality(seasonality: SeasonalityTable | str | Path | None) -> Optional[SeasonalityTable]:
    if seasonality is None or isinstance(seasonality, SeasonalityTable):
        return seasonality
    return SeasonalityTable.from_csv(seasonality)


def _prepare_state(
    model: ModelVariant | str,
    age: Optional[Sequence[float]],
    init_EIR: float,
    init_ft: float,
    het_brackets: int,
    country: Optional[str],
    admin2: Optional[str],
    seasonality: SeasonalityTable | str | Path | None,
    extra_params: Optional[Mapping[str, Any]],
    named: Mapping[str, Any],
):
    mpl = build_parameters(extra_params, **named)
    state = equilibrium_init_create(
        age_vector=DEFAULT_AGE_VECTOR if age is None else age,
        EIR=init_EIR,
        ft=init_ft,
        model_param_list=mpl,
        het_brackets=het_brackets,
        country=country,
        admin_unit=admin2,
        seasonality=_resolve_seasonality(seasonality),
    )
    generator = select_variant(model)
    state_use = filter_state(state, generator)
    unused = [name for name in mpl.extras if name not in state_use]
    if unused:
        warnings.warn(
            f"Extra parameters not used by {generator.variant}: {', '.join(unused)}",
            ConfigurationWarning,
            stacklevel=3,
        )
    log_stage(
        logger,
        "initialised",
        extra={"model": str(generator.variant), "inputs": len(state_use), "dropped": len(state) - len(state_use)},
    )
    return generator, state_use


def run_model(
    model: ModelVariant | str = DEFAULT_MODEL,
    het_brackets: int = DEFAULT_HET_BRACKETS,
    age: Optional[Sequence[float]] = None,
    init_EIR: float = DEFAULT_INIT_EIR,
    init_ft: float = DEFAULT_INIT_FT,
    country: Optional[str] = None,
    admin2: Optional[str] = None,
    time: int = DEFAULT_TIME_DAYS,
    *,
    extra_params: Optional[Mapping[str, Any]] = None,
    seasonality: SeasonalityTable | str | Path | None = None,
    solver: Optional[Mapping[str, Any]] = None,
    **named: Any,
) -> pd.DataFrame:
    """Run a model variant once from equilibrium.

    Parameters
    ----------
    model:
        Name of the model variant, see :class:`~detmalaria.model.ModelVariant`.
    het_brackets:
        Number of biting heterogeneity groups.
    age:
        Age group lower bounds in years; defaults to
        :data:`~detmalaria.constants.DEFAULT_AGE_VECTOR`.
    init_EIR, init_ft:
        Annual EIR and treated fraction for the equilibrium solution.
    country, admin2:
        Optional location for seasonal coefficients (requires
        ``seasonality``).
    time:
        Length of the simulation in days; ``0`` returns the initial state
        only.
    extra_params:
        Pre-built mapping of extra parameters; keys may not reuse standard
        parameter names.
    seasonality:
        Seasonality table or path to its CSV file.
    solver:
        Options for the ODE solver (``method``, ``rtol``, ``atol``,
        ``max_step``).
    **named:
        Standard parameters to override or extra parameters to append.

    Returns
    -------
    pandas.DataFrame
        ``time + 1`` rows for ``t = 0, 1, ..., time``.
    """

    if int(time) != time or time < 0:
        raise ConfigurationError(f"time must be a non-negative whole number of days, got {time!r}")
    generator, state_use = _prepare_state(
        model, age, init_EIR, init_ft, het_brackets, country, admin2, seasonality, extra_params, named
    )
    tt = np.arange(0, int(time) + 1, dtype=float)
    with generator.instantiate(state_use, **dict(solver or {})) as mod:
        mod_run, _ = mod.integrate(tt)
        out = mod.transform_variables(mod_run)
    log_stage(logger, "run_complete", extra={"rows": len(out), "nfev": mod_run.nfev})
    return out


def _convergence_diffs(out: pd.DataFrame, new_out: pd.DataFrame, observable: str) -> np.ndarray:
    """Absolute differences between the new window and the accumulated tail.

    The tail has the length of the new window, or all accumulated rows when
    fewer are available; it is aligned with the end of the new window.
    """

    current = new_out[observable].to_numpy(dtype=float)
    reference = out[observable].to_numpy(dtype=float)[-current.size:]
    if reference.size < current.size:
        current = current[-reference.size:]
    return np.abs(current - reference)


def stabilise(
    mod: ModelInstance,
    *,
    window: int = DEFAULT_WINDOW_DAYS,
    tolerance: float = DEFAULT_TOLERANCE,
    max_t: float = DEFAULT_MAX_T_DAYS,
    observable: str = DEFAULT_OBSERVABLE,
) -> pd.DataFrame:
    """Extend an integration window by window until it stops changing.

    The first window covers ``t = 1..window``.  Each extension continues the
    retained solver state over the next ``window`` days, requesting one
    extra leading point at the previous end time.  The loop returns the
    accumulated output as soon as every point of ``observable`` in the new
    window is within ``tolerance`` of the same phase in the accumulated
    output; the window that showed convergence is not appended.

    Raises
    ------
    HorizonExceededError
        If the next window would end after ``max_t``.
    """

    if int(window) != window or window < 1:
        raise ConfigurationError(f"window must be a positive whole number of days, got {window!r}")
    if not tolerance > 0.0:
        raise ConfigurationError(f"tolerance must be positive, got {tolerance!r}")

    tt = np.arange(1, int(window) + 1, dtype=float)
    log_stage(logger, "first_window", extra={"t_end": float(tt[-1])})
    mod_run, token = mod.integrate(tt, restartable=True)
    out = mod.transform_variables(mod_run)
    if observable not in out.columns:
        raise ConfigurationError(f"Observable '{observable}' is not an output of the model")

    iterations = 0
    while True:
        tt = tt + window
        t_end = float(tt[-1])
        if max_t < t_end:
            logger.warning("stabilise: no convergence before max_t=%g (next window ends at t=%g)", max_t, t_end)
            raise HorizonExceededError(t_end, max_t)
        mod_run, token = mod.continue_integration(
            mod_run,
            np.concatenate(([tt[0] - 1.0], tt)),
            token,
            restartable=True,
        )
        iterations += 1

        new_out = mod.transform_variables(mod_run)
        new_out = new_out[new_out["t"].isin(tt)].reset_index(drop=True)
        diffs = _convergence_diffs(out, new_out, observable)
        max_diff = float(np.max(diffs)) if diffs.size else float("nan")
        logger.info(
            "stabilise: iteration=%d t_end=%g max|d %s|=%.3e tolerance=%.1e",
            iterations, t_end, observable, max_diff, tolerance,
        )
        if diffs.size and np.all(diffs < tolerance):
            out.attrs["stabilisation"] = {
                "converged": True,
                "iterations": iterations,
                "t_converged": t_end,
                "max_diff": max_diff,
                "tolerance": float(tolerance),
                "window": int(window),
                "observable": observable,
            }
            log_stage(logger, "converged", extra={"iterations": iterations, "rows": len(out)})
            return out
        out = pd.concat([out, new_out], ignore_index=True)


def run_model_until_stable(
    het_brackets: int = DEFAULT_HET_BRACKETS,
    age: Optional[Sequence[float]] = None,
    init_EIR: float = DEFAULT_INIT_EIR,
    init_ft: float = DEFAULT_INIT_FT,
    tolerance: float = DEFAULT_TOLERANCE,
    max_t: float = DEFAULT_MAX_T_DAYS,
    *,
    window: int = DEFAULT_WINDOW_DAYS,
    observable: str = DEFAULT_OBSERVABLE,
    model: ModelVariant | str = DEFAULT_MODEL,
    country: Optional[str] = None,
    admin2: Optional[str] = None,
    seasonality: SeasonalityTable | str | Path | None = None,
    extra_params: Optional[Mapping[str, Any]] = None,
    solver: Optional[Mapping[str, Any]] = None,
    **named: Any,
) -> pd.DataFrame:
    """Run from equilibrium until the output is periodic with period ``window``.

    Parameters are those of :func:`run_model` plus the stabilisation
    settings of :func:`stabilise`.  The solver step is capped at
    :data:`~detmalaria.constants.STABLE_MAX_STEP_DAYS` unless ``solver``
    overrides ``max_step``.
    """

    generator, state_use = _prepare_state(
        model, age, init_EIR, init_ft, het_brackets, country, admin2, seasonality, extra_params, named
    )
    options: Dict[str, Any] = {"max_step": STABLE_MAX_STEP_DAYS, "t_limit": max(float(max_t), float(window))}
    options.update(solver or {})
    with generator.instantiate(state_use, **options) as mod:
        return stabilise(mod, window=window, tolerance=tolerance, max_t=max_t, observable=observable)


__all__ = [
    "ModelInstance",
    "run_model",
    "run_model_until_stable",
    "stabilise",
]
