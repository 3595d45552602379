"""Equilibrium initial conditions for the transmission model.

Given the age structure, the annual entomological inoculation rate (EIR) and
the proportion of clinical cases that seek treatment, this module returns a
self-consistent starting point for every compartment of the model, i.e. the
fixed point of the model without interventions or seasonality.

The calculation proceeds in the usual order:

1. equilibrium age distribution under constant mortality,
2. biting heterogeneity brackets from Gauss-Hermite quadrature,
3. immunity functions as recursions along the age groups,
4. human infection states by the same recursion,
5. mosquito infection states and the mosquito density that reproduces the
   requested EIR,
6. larval stages and the carrying capacity that sustains that density.

The returned :data:`InitialState` also contains every parameter and every
structural quantity (ageing rates, quadrature weights, ...) so that model
variants can select the inputs they need by name.
"""
from __future__ import annotations

import logging
import math
import warnings
from typing import Any, Dict, Mapping, Optional, Sequence

import numpy as np
from numpy.polynomial.hermite_e import hermegauss

from .constants import INC_UNDER5_AGE, PREV_AGE_RANGE
from .errors import ConfigurationError, EquilibriumSolveError
from .seasonality import SeasonalityTable, SeasonalProfile
from .warnings import NumericalWarning

logger = logging.getLogger(__name__)

InitialState = Dict[str, Any]

MATERNAL_REFERENCE_AGE_YEARS = 20.0

_POSITIVE_RATES = (
    "eta", "a0", "rA", "rT", "rD", "rU", "rP", "dID", "dB", "dCA", "dCM",
    "IB0", "ID0", "IC0", "mu0", "tau1", "tau2", "Q0",
    "muEL", "muLL", "muPL", "dEL", "dLL", "dPL", "betaL",
)


def _check_inputs(
    age_vector: Sequence[float],
    EIR: float,
    ft: float,
    het_brackets: int,
    params: Mapping[str, Any],
) -> np.ndarray:
    try:
        ages = np.asarray(age_vector, dtype=float)
    except (TypeError, ValueError) as exc:
        raise EquilibriumSolveError(f"age_vector provided is not numeric: {exc}") from exc
    if ages.ndim != 1 or ages.size < 2:
        raise EquilibriumSolveError("age_vector must be one dimensional with at least two ages")
    if not np.all(np.isfinite(ages)) or ages[0] < 0.0:
        raise EquilibriumSolveError("age_vector must contain finite, non-negative ages")
    if np.any(np.diff(ages) <= 0.0):
        raise EquilibriumSolveError("age_vector must be strictly increasing")
    if not isinstance(EIR, (int, float, np.integer, np.floating)) or not math.isfinite(EIR) or EIR <= 0.0:
        raise EquilibriumSolveError(f"EIR must be a finite positive number, got {EIR!r}")
    if not isinstance(ft, (int, float, np.integer, np.floating)) or not 0.0 <= ft <= 1.0:
        raise EquilibriumSolveError(f"ft must lie in [0, 1], got {ft!r}")
    if int(het_brackets) != het_brackets or het_brackets < 1:
        raise EquilibriumSolveError(f"het_brackets must be a positive integer, got {het_brackets!r}")
    for name in _POSITIVE_RATES:
        value = float(params[name])
        if not math.isfinite(value) or value <= 0.0:
            raise EquilibriumSolveError(f"Parameter '{name}' must be finite and positive, got {value}")
    return ages


def heterogeneity_brackets(het_brackets: int, sigma2: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return (nodes, weights, relative biting) for log-normal biting heterogeneity."""

    nodes, weights = hermegauss(int(het_brackets))
    weights = weights / weights.sum()
    rel = np.exp(-sigma2 / 2.0 + math.sqrt(sigma2) * nodes)
    rel_foi = rel / np.sum(weights * rel)
    return nodes, weights, rel_foi


def _maternal_reference(age: np.ndarray, age_width: np.ndarray, DY: float) -> tuple[int, int, float]:
    """Return (lower index, upper index, interpolation factor) around age 20.

    Interpolation runs between the mid points of the two groups that bracket
    :data:`MATERNAL_REFERENCE_AGE_YEARS`.
    """

    target = MATERNAL_REFERENCE_AGE_YEARS * DY
    above = np.nonzero(age >= target)[0]
    if above.size == 0:
        warnings.warn(
            "age_vector does not reach 20 years; maternal immunity uses the oldest age group",
            NumericalWarning,
            stacklevel=3,
        )
        last = age.size - 1
        return last, last, 0.0
    upper = int(above[0])
    if upper == 0:
        return 0, 0, 0.0
    lower = upper - 1
    factor = (target - age[lower] - 0.5 * age_width[lower]) * 2.0 / (age_width[lower] + age_width[upper])
    return lower, upper, float(factor)


def _larval_equilibrium(mv0: float, p: Mapping[str, Any]) -> tuple[float, float, float, float]:
    """Return (E, L, P, K0) for a mosquito density ``mv0``."""

    pupae = 2.0 * p["dPL"] * p["mu0"] * mv0
    larvae = p["dLL"] * (p["muPL"] + 1.0 / p["dPL"]) * pupae
    c1 = p["muLL"] + 1.0 / p["dLL"]
    c2 = p["muLL"] * p["gammaL"]
    c3 = p["muEL"] + 1.0 / p["dEL"]
    c4 = p["muEL"]
    ratio = p["beta_larval0"] * mv0 / (p["dEL"] * larvae)
    qa = c2 * c4
    qb = c1 * c4 + c2 * c3
    qc = c1 * c3 - ratio
    if qc >= 0.0:
        raise EquilibriumSolveError(
            "Larval parameters admit no positive carrying capacity "
            f"(egg production ratio {ratio:.4g} <= {c1 * c3:.4g})"
        )
    crowding = (-qb + math.sqrt(qb * qb - 4.0 * qa * qc)) / (2.0 * qa)
    eggs = p["dEL"] * larvae * (c1 + c2 * crowding)
    K0 = (eggs + larvae) / crowding
    return eggs, larvae, pupae, K0


def equilibrium_init_create(
    age_vector: Sequence[float],
    EIR: float,
    ft: float,
    model_param_list: Mapping[str, Any],
    het_brackets: int,
    country: Optional[str] = None,
    admin_unit: Optional[str] = None,
    seasonality: Optional[SeasonalityTable] = None,
) -> InitialState:
    """Return the equilibrium initial state.

    Parameters
    ----------
    age_vector:
        Lower bounds of the age groups in years.
    EIR:
        Annual entomological inoculation rate.
    ft:
        Proportion of clinical cases that receive treatment.
    model_param_list:
        Parameter set from :func:`detmalaria.parameters.build_parameters`.
    het_brackets:
        Number of biting heterogeneity groups.
    country, admin_unit:
        Optional location used to look up seasonal coefficients in
        ``seasonality``.

    Raises
    ------
    EquilibriumSolveError
        If the inputs are inconsistent.
    ConfigurationError
        If a location is given without a table, or is not in the table.
    """

    p = model_param_list
    ages = _check_inputs(age_vector, EIR, ft, het_brackets, p)
    DY = float(p["DY"])

    # demography
    age = ages * DY
    na = age.size
    nh = int(het_brackets)
    age_width = np.diff(age)
    age_rate = np.append(1.0 / age_width, 0.0)
    eta = p["eta"]
    den = np.empty(na)
    den[0] = 1.0 / (1.0 + age_rate[0] / eta)
    for i in range(na - 1):
        den[i + 1] = age_rate[i] * den[i] / (age_rate[i + 1] + eta)

    foi_age = 1.0 - p["rho"] * np.exp(-age / p["a0"])
    omega = float(np.sum(foi_age * den))

    het_x, het_wt, rel_foi = heterogeneity_brackets(nh, p["sigma2"])
    den_het = np.outer(den, het_wt)

    EIR_eq = np.outer(foi_age, rel_foi) * EIR / omega / DY

    x_I = np.empty(na)
    x_I[0] = den[0] / eta
    x_I[1:] = den[1:] / (den[:-1] * age_rate[:-1])
    fd = 1.0 - (1.0 - p["fD0"]) / (1.0 + (age / p["aD"]) ** p["gammaD"])

    # immunity
    IB_eq = np.zeros((na, nh))
    ID_eq = np.zeros((na, nh))
    ICA_eq = np.zeros((na, nh))
    FOI_eq = np.zeros((na, nh))
    p_det_eq = np.zeros((na, nh))
    for i in range(na):
        IB_prev = IB_eq[i - 1] if i else 0.0
        ID_prev = ID_eq[i - 1] if i else 0.0
        ICA_prev = ICA_eq[i - 1] if i else 0.0
        IB_eq[i] = (IB_prev + EIR_eq[i] / (EIR_eq[i] * p["uB"] + 1.0) * x_I[i]) / (1.0 + x_I[i] / p["dB"])
        b = p["b0"] * ((1.0 - p["b1"]) / (1.0 + (IB_eq[i] / p["IB0"]) ** p["kB"]) + p["b1"])
        FOI_eq[i] = EIR_eq[i] * b
        ID_eq[i] = (ID_prev + FOI_eq[i] / (FOI_eq[i] * p["uD"] + 1.0) * x_I[i]) / (1.0 + x_I[i] / p["dID"])
        ICA_eq[i] = (ICA_prev + FOI_eq[i] / (FOI_eq[i] * p["uCA"] + 1.0) * x_I[i]) / (1.0 + x_I[i] / p["dCA"])
        p_det_eq[i] = p["d1"] + (1.0 - p["d1"]) / (1.0 + fd[i] * (ID_eq[i] / p["ID0"]) ** p["kD"])
    cA_eq = p["cU"] + (p["cD"] - p["cU"]) * p_det_eq ** p["gamma1"]

    widths = np.append(age_width, age_width[-1])
    age20l, age20u, age_20_factor = _maternal_reference(age, widths, DY)
    ICM_init_eq = p["PM"] * (ICA_eq[age20l] + age_20_factor * (ICA_eq[age20u] - ICA_eq[age20l]))
    ICM_eq = np.zeros((na, nh))
    for i in range(na):
        ICM_prev = ICM_eq[i - 1] if i else ICM_init_eq
        ICM_eq[i] = ICM_prev / (1.0 + x_I[i] / p["dCM"])

    IC_eq = ICM_eq + ICA_eq
    phi_eq = p["phi0"] * ((1.0 - p["phi1"]) / (1.0 + (IC_eq / p["IC0"]) ** p["kC"]) + p["phi1"])

    # human infection states
    gamma = eta + age_rate
    S_eq = np.zeros((na, nh))
    T_eq = np.zeros((na, nh))
    D_eq = np.zeros((na, nh))
    A_eq = np.zeros((na, nh))
    U_eq = np.zeros((na, nh))
    P_eq = np.zeros((na, nh))
    for i in range(na):
        inflow = age_rate[i - 1] if i else 0.0
        T_in = inflow * T_eq[i - 1] if i else 0.0
        D_in = inflow * D_eq[i - 1] if i else 0.0
        P_in = inflow * P_eq[i - 1] if i else 0.0
        A_in = inflow * A_eq[i - 1] if i else 0.0
        U_in = inflow * U_eq[i - 1] if i else 0.0
        betaT = p["rT"] + gamma[i]
        betaD = p["rD"] + gamma[i]
        betaP = p["rP"] + gamma[i]
        clinical = FOI_eq[i] * phi_eq[i]
        aT = ft * clinical / betaT
        aD = (1.0 - ft) * clinical / betaD
        aP = p["rT"] * aT / betaP
        P_const = (p["rT"] * T_in / betaT + P_in) / betaP
        Y = (den_het[i] - T_in / betaT - D_in / betaD - P_const) / (1.0 + aT + aD + aP)
        T_eq[i] = aT * Y + T_in / betaT
        D_eq[i] = aD * Y + D_in / betaD
        P_eq[i] = aP * Y + P_const
        A_eq[i] = ((1.0 - phi_eq[i]) * FOI_eq[i] * Y + p["rD"] * D_eq[i] + A_in) / (FOI_eq[i] + p["rA"] + gamma[i])
        U_eq[i] = (p["rA"] * A_eq[i] + U_in) / (FOI_eq[i] + p["rU"] + gamma[i])
        S_eq[i] = Y - A_eq[i] - U_eq[i]
    if np.any(S_eq < -1e-12):
        raise EquilibriumSolveError("Equilibrium produced a negative susceptible population")
    S_eq = np.maximum(S_eq, 0.0)

    # mosquito states
    biting_share = np.outer(foi_age, rel_foi) / omega
    infectious = p["cT"] * T_eq + p["cD"] * D_eq + cA_eq * A_eq + p["cU"] * U_eq
    FOIv_eq = p["av0"] * float(np.sum(biting_share * infectious))
    mu0 = p["mu0"]
    Iv_eq = FOIv_eq * p["Surv0"] / (FOIv_eq + mu0)
    Sv_eq = mu0 / (FOIv_eq + mu0)
    Ev_eq = 1.0 - Sv_eq - Iv_eq
    if Iv_eq <= 0.0:
        raise EquilibriumSolveError("No infectious mosquitoes at equilibrium; cannot match the EIR")
    mv0 = EIR / DY / (p["av0"] * Iv_eq)
    E_larv, L_larv, P_larv, K0 = _larval_equilibrium(mv0, p)

    # seasonality
    if country is not None or admin_unit is not None:
        if seasonality is None:
            raise ConfigurationError("country/admin_unit given but no seasonality table was supplied")
        profile = seasonality.lookup(country, admin_unit)
        logger.info("Seasonality for %s/%s: %s", country, admin_unit, profile)
    else:
        profile = SeasonalProfile.from_parameters(p)
    theta_c = profile.theta_c()

    # equilibrium diagnostics
    lo, hi = (band * DY for band in PREV_AGE_RANGE)
    band = (age >= lo) & (age < hi)
    detectable = T_eq + D_eq + A_eq * p_det_eq
    prev = float(np.sum(detectable[band]) / np.sum(den_het[band])) if band.any() else float("nan")
    inc_by_age = np.sum(FOI_eq * phi_eq * (S_eq + A_eq + U_eq), axis=1)
    under5 = age < INC_UNDER5_AGE * DY
    inc05 = float(np.sum(inc_by_age[under5]) / np.sum(den[under5])) if under5.any() else float("nan")

    logger.debug(
        "equilibrium: EIR=%.4g ft=%.3g na=%d nh=%d mv0=%.4g prev2-10=%.4g",
        EIR, ft, na, nh, mv0, prev,
    )

    state: InitialState = dict(p)
    state.update(profile.as_parameters())
    state.update(
        {
            "init_S": S_eq,
            "init_T": T_eq,
            "init_D": D_eq,
            "init_A": A_eq,
            "init_U": U_eq,
            "init_P": P_eq,
            "init_IB": IB_eq,
            "init_ID": ID_eq,
            "init_ICA": ICA_eq,
            "init_ICM": ICM_eq,
            "init_Sv": Sv_eq * mv0,
            "init_Ev": Ev_eq * mv0,
            "init_Iv": Iv_eq * mv0,
            "init_EL": E_larv,
            "init_LL": L_larv,
            "init_PL": P_larv,
            "na": na,
            "nh": nh,
            "age": age,
            "age_rate": age_rate,
            "den": den,
            "het_x": het_x,
            "het_wt": het_wt,
            "rel_foi": rel_foi,
            "foi_age": foi_age,
            "omega": omega,
            "x_I": x_I,
            "fd": fd,
            "age20l": age20l,
            "age20u": age20u,
            "age_20_factor": age_20_factor,
            "ft": float(ft),
            "EIR_eq": EIR_eq,
            "FOI_eq": FOI_eq,
            "cA_eq": cA_eq,
            "p_det_eq": p_det_eq,
            "FOIv_eq": FOIv_eq,
            "mv0": mv0,
            "K0": K0,
            "theta_c": theta_c,
            "prev_eq": prev,
            "inc_eq": float(np.sum(inc_by_age)),
            "inc05_eq": inc05,
            "country": country,
            "admin_unit": admin_unit,
        }
    )
    return state


__all__ = ["InitialState", "equilibrium_init_create", "heterogeneity_brackets"]
