"""Stabilisation loop driven by synthetic model instances."""
from typing import Callable, List, Optional, Sequence

import numpy as np
import pandas as pd
import pytest

from detmalaria.errors import ConfigurationError, HorizonExceededError, IntegrationError
from detmalaria.model import IntegrationResult
from detmalaria.orchestrator import stabilise


class _Token:
    def __init__(self, t_last: float) -> None:
        self.t_last = t_last


class SyntheticModel:
    """Model instance whose ``EIR_out`` is a closed-form function of time."""

    def __init__(self, series: Callable[[np.ndarray], np.ndarray], fail_at: Optional[int] = None) -> None:
        self.series = series
        self.fail_at = fail_at
        self.calls: List[np.ndarray] = []

    def _result(self, times: Sequence[float]) -> IntegrationResult:
        grid = np.asarray(times, dtype=float)
        self.calls.append(grid)
        return IntegrationResult(t=grid, y=np.zeros((grid.size, 1)), method="synthetic")

    def integrate(self, times, *, restartable=False):
        return self._result(times), (_Token(float(times[-1])) if restartable else None)

    def continue_integration(self, prior, times, token, *, restartable=True):
        assert times[0] == prior.t[-1] == token.t_last
        if self.fail_at is not None and len(self.calls) >= self.fail_at:
            raise IntegrationError("synthetic failure")
        return self._result(times), _Token(float(times[-1]))

    def transform_variables(self, result: IntegrationResult) -> pd.DataFrame:
        return pd.DataFrame({"t": result.t, "EIR_out": self.series(result.t), "prev": np.zeros(result.t.size)})


def _settles_after_first_year(t: np.ndarray) -> np.ndarray:
    seasonal = np.sin(2.0 * np.pi * t / 365.0)
    return seasonal + np.where(t <= 365.0, 0.5, 0.0)


def test_converges_at_third_window() -> None:
    mod = SyntheticModel(_settles_after_first_year)

    out = stabilise(mod, tolerance=1e-4, max_t=36500)

    assert len(out) == 730
    assert out["t"].iloc[0] == 1.0
    assert out["t"].iloc[-1] == 730.0
    assert out.attrs["stabilisation"]["iterations"] == 2
    assert out.attrs["stabilisation"]["t_converged"] == 1095.0
    assert out.attrs["stabilisation"]["converged"] is True


def test_continuations_request_the_seam_point() -> None:
    mod = SyntheticModel(_settles_after_first_year)

    stabilise(mod, tolerance=1e-4, max_t=36500)

    np.testing.assert_array_equal(mod.calls[0], np.arange(1.0, 366.0))
    np.testing.assert_array_equal(mod.calls[1], np.arange(365.0, 731.0))
    np.testing.assert_array_equal(mod.calls[2], np.arange(730.0, 1096.0))


def test_horizon_exceeded_reports_attempted_end() -> None:
    mod = SyntheticModel(_settles_after_first_year)

    with pytest.raises(HorizonExceededError) as excinfo:
        stabilise(mod, tolerance=1e-4, max_t=730)

    assert excinfo.value.t_end == 1095.0
    assert excinfo.value.max_t == 730
    assert str(excinfo.value) == "exiting at t == 1095 (max_t = 730)"
    # the horizon is checked before integrating past max_t
    assert mod.calls[-1][-1] == 730.0


def test_accumulated_output_is_whole_windows() -> None:
    mod = SyntheticModel(lambda t: np.where(t > 40.0, 0.0, t))

    out = stabilise(mod, window=10, tolerance=1e-4, max_t=1000)

    assert len(out) == 50
    assert len(out) % 10 == 0
    np.testing.assert_array_equal(out["t"], np.arange(1.0, 51.0))
    assert out["t"].is_unique


def test_constant_output_returns_first_window() -> None:
    mod = SyntheticModel(lambda t: np.full(t.size, 3.0))

    out = stabilise(mod, window=30, tolerance=1e-6, max_t=60)

    assert len(out) == 30
    assert out.attrs["stabilisation"]["iterations"] == 1


def test_other_observable() -> None:
    mod = SyntheticModel(lambda t: t)

    out = stabilise(mod, window=5, max_t=10, observable="prev")

    assert len(out) == 5
    assert out.attrs["stabilisation"]["observable"] == "prev"


def test_unknown_observable_rejected() -> None:
    with pytest.raises(ConfigurationError, match="inc99"):
        stabilise(SyntheticModel(lambda t: t), observable="inc99")


@pytest.mark.parametrize("kwargs", [{"window": 0}, {"window": 1.5}, {"tolerance": 0.0}])
def test_invalid_settings_rejected(kwargs) -> None:
    with pytest.raises(ConfigurationError):
        stabilise(SyntheticModel(lambda t: t), **kwargs)


def test_integration_errors_propagate_unchanged() -> None:
    mod = SyntheticModel(lambda t: t, fail_at=2)

    with pytest.raises(IntegrationError, match="synthetic failure"):
        stabilise(mod, window=5, max_t=100)
