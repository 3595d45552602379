"""Compartmental malaria transmission model and its variants.

The human population is split into ``na`` age groups and ``nh`` biting
heterogeneity groups.  Each (age, heterogeneity) cell carries six infection
states and four immunity functions:

* ``S`` susceptible, ``T`` treated clinical, ``D`` untreated clinical,
  ``A`` asymptomatic patent, ``U`` subpatent, ``P`` prophylaxis;
* ``IB`` pre-erythrocytic immunity, ``ID`` detection immunity, ``ICA``
  acquired and ``ICM`` maternal clinical immunity.

Adult mosquitoes are susceptible (``Sv``), infected (``Ev``) or infectious
(``Iv``); aquatic stages are early larvae (``EL``), late larvae (``LL``) and
pupae (``PL``) with density-dependent mortality against a seasonal carrying
capacity.

Every variant is a subclass of :class:`MalariaModel` registered under a
:class:`ModelVariant`.  A model instance is constructed from a mapping of
named inputs, restricted to :meth:`MalariaModel.accepted_inputs`, and exposes

* :meth:`MalariaModel.integrate` over a time grid, optionally retaining a
  :class:`ContinuationToken`,
* :meth:`MalariaModel.continue_integration`, which resumes from a token,
* :meth:`MalariaModel.transform_variables`, which maps raw solver output to
  a :class:`pandas.DataFrame` of named series.
"""
from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, FrozenSet, Mapping, Optional, Sequence, Tuple, Type

import numpy as np
import pandas as pd
from scipy.integrate import BDF, DOP853, LSODA, RK23, RK45, DenseOutput, OdeSolver, Radau

from .constants import INC_UNDER5_AGE, PREV_AGE_RANGE
from .errors import ConfigurationError, ContinuationError, IntegrationError, UnknownModelError
from .parameters import egg_laying_rate
from .seasonality import SeasonalProfile

logger = logging.getLogger(__name__)

SOLVER_METHODS: Dict[str, Type[OdeSolver]] = {
    "RK45": RK45,
    "RK23": RK23,
    "DOP853": DOP853,
    "Radau": Radau,
    "BDF": BDF,
    "LSODA": LSODA,
}

# Upper time bound handed to restartable solvers (days)
DEFAULT_T_LIMIT = 1.0e7
_TIME_ATOL = 1e-9

HUMAN_STATES: Tuple[str, ...] = ("S", "T", "D", "A", "U", "P", "ICM", "ICA", "IB", "ID")
VECTOR_STATES: Tuple[str, ...] = ("Sv", "Ev", "Iv", "EL", "LL", "PL")

_STRUCTURE_INPUTS = frozenset(
    {
        "na", "nh", "age", "age_rate", "het_wt", "rel_foi", "foi_age", "omega", "x_I", "fd",
        "age20l", "age20u", "age_20_factor", "ft", "K0", "theta_c", "DY",
    }
)
_PARAMETER_INPUTS = frozenset(
    {
        "eta", "rA", "rT", "rD", "rU", "rP", "cD", "cT", "cU", "gamma1",
        "d1", "dID", "ID0", "kD", "uD", "b0", "b1", "dB", "IB0", "kB", "uB",
        "phi0", "phi1", "dCA", "IC0", "kC", "uCA", "PM", "dCM",
        "delayMos", "mu0", "fv0", "av0", "betaL",
        "muEL", "muLL", "muPL", "dEL", "dLL", "dPL", "gammaL",
        "ssa0", "ssa1", "ssa2", "ssa3", "ssb1", "ssb2", "ssb3",
    }
)
BASE_INPUTS: FrozenSet[str] = (
    frozenset(f"init_{name}" for name in HUMAN_STATES + VECTOR_STATES)
    | _STRUCTURE_INPUTS
    | _PARAMETER_INPUTS
)


class ModelVariant(str, enum.Enum):
    """Closed set of available model variants."""

    BASE = "malaria_model"
    EMANATORS = "malaria_model_emanators"
    HRP2 = "malaria_model_hrp2"
    IVM_SMC_HET = "malaria_model_ivm_smchet"
    TBV = "malaria_model_tbv"

    def __str__(self) -> str:
        return self.value


@dataclass
class IntegrationResult:
    """Raw trajectory returned by the integrator.

    ``y`` has one row per entry of ``t`` and one column per state variable.
    """

    t: np.ndarray
    y: np.ndarray
    method: str
    nfev: int = 0
    n_steps: int = 0

    def __len__(self) -> int:
        return int(self.t.size)


class ContinuationToken:
    """Move-only handle on live solver state.

    The token owns the :class:`scipy.integrate.OdeSolver` of a restartable
    integration together with the interpolant of its last step.  It can be
    consumed exactly once by :meth:`MalariaModel.continue_integration`.
    """

    __slots__ = ("_solver", "_dense", "t_last", "owner_id")

    def __init__(
        self,
        solver: OdeSolver,
        dense: Optional[DenseOutput],
        t_last: float,
        owner_id: int = 0,
    ) -> None:
        self._solver: Optional[OdeSolver] = solver
        self._dense = dense
        self.t_last = float(t_last)
        self.owner_id = owner_id

    def __repr__(self) -> str:
        state = "consumed" if self.consumed else "live"
        return f"ContinuationToken(t_last={self.t_last:g}, {state})"

    @property
    def consumed(self) -> bool:
        return self._solver is None

    def take(self) -> Tuple[OdeSolver, Optional[DenseOutput], float]:
        """Return the solver state and invalidate the token."""

        if self._solver is None:
            raise ContinuationError("Continuation token has already been consumed")
        solver, dense = self._solver, self._dense
        self._solver = None
        self._dense = None
        return solver, dense, self.t_last

    def release(self) -> None:
        self._solver = None
        self._dense = None

    def __copy__(self) -> "ContinuationToken":
        raise TypeError("ContinuationToken cannot be copied")

    def __deepcopy__(self, memo: Any) -> "ContinuationToken":
        raise TypeError("ContinuationToken cannot be copied")


def _check_times(times: Sequence[float], min_points: int = 2) -> np.ndarray:
    grid = np.asarray(times, dtype=float)
    if grid.ndim != 1 or grid.size < min_points:
        raise IntegrationError(f"Time grid must be one dimensional with at least {min_points} point(s)")
    if not np.all(np.isfinite(grid)):
        raise IntegrationError("Time grid contains non-finite values")
    if np.any(np.diff(grid) <= 0.0):
        raise IntegrationError("Time grid must be strictly increasing")
    return grid


class MalariaModel:
    """Base transmission model without interventions."""

    variant: ClassVar[ModelVariant] = ModelVariant.BASE
    extra_inputs: ClassVar[FrozenSet[str]] = frozenset()

    def __init__(
        self,
        user: Mapping[str, Any],
        *,
        method: str = "RK45",
        rtol: float = 1e-6,
        atol: float = 1e-8,
        max_step: float = np.inf,
        t_limit: float = DEFAULT_T_LIMIT,
    ) -> None:
        accepted = self.accepted_inputs()
        unknown = sorted(set(user) - accepted)
        if unknown:
            raise ConfigurationError(f"Unknown user parameters for {self.variant}: {', '.join(unknown)}")
        missing = sorted(accepted - set(user))
        if missing:
            raise ConfigurationError(f"Missing user parameters for {self.variant}: {', '.join(missing)}")
        if method not in SOLVER_METHODS:
            raise ConfigurationError(
                f"Unknown solver method '{method}'; expected one of {', '.join(SOLVER_METHODS)}"
            )
        self.method = method
        self.rtol = float(rtol)
        self.atol = float(atol)
        self.max_step = float(max_step)
        self.t_limit = float(t_limit)
        self._closed = False
        self._live_token: Optional[ContinuationToken] = None

        p = dict(user)
        self.p = p
        self.na = int(p["na"])
        self.nh = int(p["nh"])
        shape = (self.na, self.nh)
        self._cell = self.na * self.nh
        self._n_human = len(HUMAN_STATES) * self._cell
        self.n_state = self._n_human + len(VECTOR_STATES)

        self.age = np.asarray(p["age"], dtype=float)
        self.age_rate = np.asarray(p["age_rate"], dtype=float)
        self.het_wt = np.asarray(p["het_wt"], dtype=float)
        self.x_I = np.asarray(p["x_I"], dtype=float)[:, None]
        self.fd = np.asarray(p["fd"], dtype=float)[:, None]
        self.gamma = (p["eta"] + self.age_rate)[:, None]
        self.biting_share = np.outer(np.asarray(p["foi_age"], dtype=float), np.asarray(p["rel_foi"], dtype=float)) / p["omega"]
        self.age20l = int(p["age20l"])
        self.age20u = int(p["age20u"])
        self.age_20_factor = float(p["age_20_factor"])
        self.profile = SeasonalProfile.from_parameters(p)
        self.theta_c = float(p["theta_c"])

        self.av = p["av0"] * self._biting_factor()
        self.mu = self._mosquito_mortality()
        self.surv = math.exp(-self.mu * p["delayMos"])
        self.beta_larval = egg_laying_rate(p["betaL"], self.mu, p["fv0"])
        self.foi_protection = self._foi_protection()
        self.infectiousness = self._infectiousness_factor()

        self._y0 = np.concatenate(
            [np.broadcast_to(np.asarray(p[f"init_{name}"], dtype=float), shape).ravel() for name in HUMAN_STATES]
            + [np.array([float(p[f"init_{name}"]) for name in VECTOR_STATES])]
        )
        logger.debug(
            "%s: na=%d nh=%d n_state=%d method=%s", self.variant, self.na, self.nh, self.n_state, method
        )

    # ------------------------------------------------------------------
    # construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def accepted_inputs(cls) -> FrozenSet[str]:
        """Names this variant accepts as user inputs."""

        return BASE_INPUTS | cls.extra_inputs

    @classmethod
    def instantiate(cls, user: Mapping[str, Any], **solver_options: Any) -> "MalariaModel":
        return cls(user, **solver_options)

    def _biting_factor(self) -> float:
        return 1.0

    def _mosquito_mortality(self) -> float:
        return float(self.p["mu0"])

    def _foi_protection(self) -> np.ndarray:
        return np.ones((self.na, 1))

    def _infectiousness_factor(self) -> float:
        return 1.0

    def _extra_outputs(self, frame: pd.DataFrame, parts: Mapping[str, np.ndarray]) -> None:
        """Add variant-specific columns to the output frame."""

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def __enter__(self) -> "MalariaModel":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release solver state held by this instance and its live token."""

        if self._live_token is not None:
            self._live_token.release()
            self._live_token = None
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def initial_state(self) -> np.ndarray:
        return self._y0.copy()

    # ------------------------------------------------------------------
    # dynamics
    # ------------------------------------------------------------------
    def _unpack(self, y: np.ndarray) -> Dict[str, np.ndarray]:
        lead = y.shape[:-1]
        parts: Dict[str, np.ndarray] = {}
        for k, name in enumerate(HUMAN_STATES):
            block = y[..., k * self._cell:(k + 1) * self._cell]
            parts[name] = block.reshape(lead + (self.na, self.nh))
        for k, name in enumerate(VECTOR_STATES):
            parts[name] = y[..., self._n_human + k]
        return parts

    def theta2(self, t: np.ndarray | float) -> np.ndarray | float:
        """Seasonal multiplier of the larval carrying capacity."""

        return self.profile.raw(t) / self.theta_c

    def _immunity_rates(self, parts: Mapping[str, np.ndarray], Iv: np.ndarray | float) -> Dict[str, np.ndarray]:
        p = self.p
        Iv = np.asarray(Iv, dtype=float)[..., None, None]
        EIR = self.av * Iv * self.biting_share
        IB = parts["IB"]
        b = p["b0"] * ((1.0 - p["b1"]) / (1.0 + (IB / p["IB0"]) ** p["kB"]) + p["b1"])
        FOI = b * EIR * self.foi_protection
        IC = parts["ICM"] + parts["ICA"]
        phi = p["phi0"] * ((1.0 - p["phi1"]) / (1.0 + (IC / p["IC0"]) ** p["kC"]) + p["phi1"])
        p_det = p["d1"] + (1.0 - p["d1"]) / (1.0 + self.fd * (parts["ID"] / p["ID0"]) ** p["kD"])
        cA = p["cU"] + (p["cD"] - p["cU"]) * p_det ** p["gamma1"]
        return {"EIR": EIR, "FOI": FOI, "phi": phi, "p_det": p_det, "cA": cA}

    def _ageing(self, X: np.ndarray) -> np.ndarray:
        """Net flow of compartment counts between neighbouring age groups."""

        inflow = np.zeros_like(X)
        inflow[1:] = self.age_rate[:-1, None] * X[:-1]
        return inflow - self.gamma * X

    def _immunity_ageing(self, X: np.ndarray, newborn: np.ndarray | float = 0.0) -> np.ndarray:
        previous = np.empty_like(X)
        previous[0] = newborn
        previous[1:] = X[:-1]
        return (X - previous) / self.x_I

    def rhs(self, t: float, y: np.ndarray) -> np.ndarray:
        """Right-hand side of the ODE system."""

        p = self.p
        parts = self._unpack(y)
        S, T, D, A, U, P = (parts[name] for name in ("S", "T", "D", "A", "U", "P"))
        Sv, Ev, Iv, EL, LL, PL = (float(parts[name]) for name in VECTOR_STATES)
        rates = self._immunity_rates(parts, Iv)
        EIR, FOI, phi, cA = rates["EIR"], rates["FOI"], rates["phi"], rates["cA"]

        ICA = parts["ICA"]
        ICM_newborn = p["PM"] * (ICA[self.age20l] + self.age_20_factor * (ICA[self.age20u] - ICA[self.age20l]))
        dIB = EIR / (EIR * p["uB"] + 1.0) - parts["IB"] / p["dB"] - self._immunity_ageing(parts["IB"])
        dID = FOI / (FOI * p["uD"] + 1.0) - parts["ID"] / p["dID"] - self._immunity_ageing(parts["ID"])
        dICA = FOI / (FOI * p["uCA"] + 1.0) - ICA / p["dCA"] - self._immunity_ageing(ICA)
        dICM = -parts["ICM"] / p["dCM"] - self._immunity_ageing(parts["ICM"], ICM_newborn)

        Y = S + A + U
        clinical = FOI * phi * Y
        ft = p["ft"]
        H = S.sum() + T.sum() + D.sum() + A.sum() + U.sum() + P.sum()
        dS = -FOI * S + p["rP"] * P + p["rU"] * U + self._ageing(S)
        dS[0] += p["eta"] * H * self.het_wt
        dT = ft * clinical - p["rT"] * T + self._ageing(T)
        dD = (1.0 - ft) * clinical - p["rD"] * D + self._ageing(D)
        dA = (1.0 - phi) * FOI * Y - FOI * A + p["rD"] * D - p["rA"] * A + self._ageing(A)
        dU = p["rA"] * A - FOI * U - p["rU"] * U + self._ageing(U)
        dP = p["rT"] * T - p["rP"] * P + self._ageing(P)

        infectious = p["cT"] * T + p["cD"] * D + cA * A + p["cU"] * U
        FOIv = self.av * self.infectiousness * float(np.sum(self.biting_share * infectious))
        mu = self.mu
        ince = FOIv * Sv
        incv = ince * self.surv
        mv = Sv + Ev + Iv
        emergence = 0.5 * PL / p["dPL"]
        K = p["K0"] * float(self.theta2(t))
        crowding = (EL + LL) / K
        vector = np.array(
            [
                emergence - ince - mu * Sv,
                ince - incv - mu * Ev,
                incv - mu * Iv,
                self.beta_larval * mv - p["muEL"] * (1.0 + crowding) * EL - EL / p["dEL"],
                EL / p["dEL"] - p["muLL"] * (1.0 + p["gammaL"] * crowding) * LL - LL / p["dLL"],
                LL / p["dLL"] - p["muPL"] * PL - PL / p["dPL"],
            ]
        )
        human = [dS, dT, dD, dA, dU, dP, dICM, dICA, dIB, dID]
        return np.concatenate([block.ravel() for block in human] + [vector])

    # ------------------------------------------------------------------
    # integration
    # ------------------------------------------------------------------
    def _ensure_open(self) -> None:
        if self._closed:
            raise IntegrationError(f"{self.variant} instance has been closed")

    def _make_solver(self, t0: float, y0: np.ndarray, t_bound: float) -> OdeSolver:
        solver_cls = SOLVER_METHODS[self.method]
        return solver_cls(
            self.rhs,
            t0,
            y0,
            t_bound,
            rtol=self.rtol,
            atol=self.atol,
            max_step=self.max_step,
        )

    def _collect(
        self,
        solver: OdeSolver,
        dense: Optional[DenseOutput],
        grid: np.ndarray,
        out: np.ndarray,
        start: int,
    ) -> Tuple[Optional[DenseOutput], int]:
        """Fill ``out[start:]`` at ``grid[start:]``; return the last interpolant and step count."""

        k = start
        n_steps = 0
        while k < grid.size:
            if dense is not None:
                while k < grid.size and grid[k] <= solver.t + _TIME_ATOL:
                    if grid[k] < dense.t_min - _TIME_ATOL:
                        raise ContinuationError(
                            f"t={grid[k]:g} precedes the retained solver state (t_min={dense.t_min:g})"
                        )
                    out[k] = dense(min(grid[k], solver.t))
                    k += 1
                if k >= grid.size:
                    break
            if solver.status != "running":
                raise IntegrationError(
                    f"Solver stopped at t={solver.t:g} before reaching t={grid[-1]:g} (status={solver.status})"
                )
            message = solver.step()
            n_steps += 1
            if solver.status == "failed":
                raise IntegrationError(f"{self.method} failed at t={solver.t:g}: {message}")
            dense = solver.dense_output()
        return dense, n_steps

    def integrate(
        self, times: Sequence[float], *, restartable: bool = False
    ) -> Tuple[IntegrationResult, Optional[ContinuationToken]]:
        """Integrate from the initial state over ``times``.

        The initial state is placed at ``times[0]``.  With ``restartable`` the
        solver is kept alive and returned as a :class:`ContinuationToken`.  A
        single time point returns the initial state without starting a solver.
        """

        self._ensure_open()
        grid = _check_times(times, min_points=2 if restartable else 1)
        y0 = self.initial_state()
        if grid.size == 1:
            return IntegrationResult(t=grid, y=y0[None, :], method=self.method), None
        t_bound = self.t_limit if restartable else float(grid[-1])
        if t_bound < grid[-1]:
            raise IntegrationError(f"t_limit={t_bound:g} is before the end of the time grid {grid[-1]:g}")
        solver = self._make_solver(float(grid[0]), y0, t_bound)
        out = np.empty((grid.size, self.n_state))
        out[0] = y0
        dense, n_steps = self._collect(solver, None, grid, out, 1)
        result = IntegrationResult(t=grid, y=out, method=self.method, nfev=solver.nfev, n_steps=n_steps)
        token = None
        if restartable:
            if self._live_token is not None:
                self._live_token.release()
            token = ContinuationToken(solver, dense, float(grid[-1]), owner_id=id(self))
            self._live_token = token
        return result, token

    def continue_integration(
        self,
        prior: IntegrationResult,
        times: Sequence[float],
        token: ContinuationToken,
        *,
        restartable: bool = True,
    ) -> Tuple[IntegrationResult, Optional[ContinuationToken]]:
        """Resume a restartable integration.

        ``times[0]`` must equal the last time of ``prior``; that seam point is
        reported again as the first row of the result.  ``token`` is consumed
        and a fresh token is returned when ``restartable`` is true.
        """

        self._ensure_open()
        if token.owner_id and token.owner_id != id(self):
            raise ContinuationError("Continuation token belongs to a different model instance")
        grid = _check_times(times)
        if prior.t.size == 0 or abs(grid[0] - prior.t[-1]) > _TIME_ATOL:
            raise ContinuationError(
                f"Continuation must start at the end of the prior run (t={prior.t[-1]:g}), got t={grid[0]:g}"
            )
        solver, dense, t_last = token.take()
        if self._live_token is token:
            self._live_token = None
        if abs(t_last - grid[0]) > _TIME_ATOL:
            raise ContinuationError(f"Token was retained at t={t_last:g}, not at t={grid[0]:g}")
        if grid[-1] > solver.t_bound:
            raise ContinuationError(f"Continuation to t={grid[-1]:g} exceeds t_limit={solver.t_bound:g}")
        nfev0 = solver.nfev
        out = np.empty((grid.size, self.n_state))
        dense, n_steps = self._collect(solver, dense, grid, out, 0)
        result = IntegrationResult(
            t=grid, y=out, method=self.method, nfev=solver.nfev - nfev0, n_steps=n_steps
        )
        new_token = None
        if restartable:
            new_token = ContinuationToken(solver, dense, float(grid[-1]), owner_id=id(self))
            self._live_token = new_token
        return result, new_token

    # ------------------------------------------------------------------
    # output
    # ------------------------------------------------------------------
    def transform_variables(self, result: IntegrationResult) -> pd.DataFrame:
        """Return named output series, one row per time point."""

        p = self.p
        parts = self._unpack(np.asarray(result.y, dtype=float))
        rates = self._immunity_rates(parts, parts["Iv"])
        DY = float(p["DY"])

        totals = {name: parts[name].sum(axis=(-2, -1)) for name in ("S", "T", "D", "A", "U", "P")}
        H = sum(totals.values())

        lo, hi = (band * DY for band in PREV_AGE_RANGE)
        in_band = (self.age >= lo) & (self.age < hi)
        detectable = parts["T"] + parts["D"] + parts["A"] * rates["p_det"]
        band_pop = sum(parts[name][:, in_band].sum(axis=(-2, -1)) for name in ("S", "T", "D", "A", "U", "P"))
        with np.errstate(invalid="ignore", divide="ignore"):
            prev = detectable[:, in_band].sum(axis=(-2, -1)) / band_pop

        clinical = rates["FOI"] * rates["phi"] * (parts["S"] + parts["A"] + parts["U"])
        under5 = self.age < INC_UNDER5_AGE * DY
        under5_pop = sum(parts[name][:, under5].sum(axis=(-2, -1)) for name in ("S", "T", "D", "A", "U", "P"))
        with np.errstate(invalid="ignore", divide="ignore"):
            inc05 = clinical[:, under5].sum(axis=(-2, -1)) / under5_pop

        mv = parts["Sv"] + parts["Ev"] + parts["Iv"]
        frame = pd.DataFrame(
            {
                "t": result.t,
                "EIR_out": self.av * parts["Iv"] * DY,
                "prev": prev,
                "inc": clinical.sum(axis=(-2, -1)) / H,
                "inc05": inc05,
                "mv": mv,
                "Sv": parts["Sv"],
                "Ev": parts["Ev"],
                "Iv": parts["Iv"],
                "EL": parts["EL"],
                "LL": parts["LL"],
                "PL": parts["PL"],
                **totals,
                "H": H,
                "theta2": self.theta2(result.t),
            }
        )
        self._extra_outputs(frame, {**parts, **rates, "detectable": detectable, "in_band": in_band, "band_pop": band_pop})
        return frame

    transform = transform_variables


class EmanatorModel(MalariaModel):
    """Spatial repellents reduce the rate at which mosquitoes bite humans."""

    variant = ModelVariant.EMANATORS
    extra_inputs = frozenset({"emanator_cov", "emanator_repel"})

    def _biting_factor(self) -> float:
        return 1.0 - self.p["emanator_cov"] * self.p["emanator_repel"]


class Hrp2Model(MalariaModel):
    """Parasites lacking hrp2 are missed by HRP2-based rapid diagnostic tests."""

    variant = ModelVariant.HRP2
    extra_inputs = frozenset({"hrp2_prop"})

    def _extra_outputs(self, frame: pd.DataFrame, parts: Mapping[str, np.ndarray]) -> None:
        in_band = parts["in_band"]
        detectable = parts["detectable"][:, in_band].sum(axis=(-2, -1))
        with np.errstate(invalid="ignore", divide="ignore"):
            frame["prev_rdt"] = (1.0 - self.p["hrp2_prop"]) * detectable / parts["band_pop"]


class IvermectinSmcModel(MalariaModel):
    """Ivermectin raises mosquito mortality; SMC protects young children."""

    variant = ModelVariant.IVM_SMC_HET
    extra_inputs = frozenset({"ivm_cov", "ivm_mort", "smc_cov", "smc_eff", "smc_max_age"})

    def _mosquito_mortality(self) -> float:
        return float(self.p["mu0"] * (1.0 + self.p["ivm_cov"] * self.p["ivm_mort"]))

    def _foi_protection(self) -> np.ndarray:
        protection = np.ones((self.na, 1))
        protection[self.age < self.p["smc_max_age"]] = 1.0 - self.p["smc_cov"] * self.p["smc_eff"]
        return protection


class TransmissionBlockingModel(MalariaModel):
    """A transmission-blocking vaccine lowers human infectiousness."""

    variant = ModelVariant.TBV
    extra_inputs = frozenset({"tbv_cov", "tbv_eff"})

    def _infectiousness_factor(self) -> float:
        return 1.0 - self.p["tbv_cov"] * self.p["tbv_eff"]


MODEL_VARIANTS: Mapping[ModelVariant, Type[MalariaModel]] = {
    ModelVariant.BASE: MalariaModel,
    ModelVariant.EMANATORS: EmanatorModel,
    ModelVariant.HRP2: Hrp2Model,
    ModelVariant.IVM_SMC_HET: IvermectinSmcModel,
    ModelVariant.TBV: TransmissionBlockingModel,
}


def select_variant(name: ModelVariant | str) -> Type[MalariaModel]:
    """Return the model class for ``name``.

    Raises
    ------
    UnknownModelError
        If ``name`` is not a :class:`ModelVariant` value.
    """

    try:
        variant = ModelVariant(name)
    except (ValueError, TypeError):
        raise UnknownModelError(name) from None
    return MODEL_VARIANTS[variant]


def filter_state(state: Mapping[str, Any], factory: Type[MalariaModel]) -> Dict[str, Any]:
    """Restrict ``state`` to the inputs accepted by ``factory``."""

    accepted = factory.accepted_inputs()
    return {key: value for key, value in state.items() if key in accepted}


__all__ = [
    "BASE_INPUTS",
    "ContinuationToken",
    "EmanatorModel",
    "Hrp2Model",
    "IntegrationResult",
    "IvermectinSmcModel",
    "MODEL_VARIANTS",
    "MalariaModel",
    "ModelVariant",
    "SOLVER_METHODS",
    "TransmissionBlockingModel",
    "filter_state",
    "select_variant",
]
