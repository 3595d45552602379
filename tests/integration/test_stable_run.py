from typing import List

import numpy as np
import pytest

from detmalaria import orchestrator
from detmalaria.errors import HorizonExceededError, IntegrationError
from detmalaria.model import ContinuationToken, MalariaModel
from detmalaria.orchestrator import run_model_until_stable

SMALL = {"age": [0.0, 1.0, 5.0, 20.0, 60.0], "het_brackets": 1}


def test_equilibrium_start_is_already_stable() -> None:
    out = run_model_until_stable(tolerance=1e-3, max_t=365.0 * 5, **SMALL)

    info = out.attrs["stabilisation"]
    assert info["converged"] is True
    assert len(out) % 365 == 0
    assert out["t"].iloc[0] == 1.0
    np.testing.assert_allclose(out["EIR_out"], 10.0, rtol=1e-3)


def test_seasonal_run_settles_to_an_annual_cycle(seasonality_csv) -> None:
    out = run_model_until_stable(
        tolerance=0.5,
        max_t=365.0 * 40,
        country="Kenya",
        admin2="Nairobi",
        seasonality=seasonality_csv,
        **SMALL,
    )

    info = out.attrs["stabilisation"]
    assert info["iterations"] >= 1
    assert len(out) == 365 * info["iterations"]
    assert out["EIR_out"].max() > out["EIR_out"].min()


def test_horizon_too_short_for_seasonal_transient(seasonality_csv) -> None:
    with pytest.raises(HorizonExceededError) as excinfo:
        run_model_until_stable(
            tolerance=1e-12,
            max_t=730.0,
            country="Kenya",
            admin2="Nairobi",
            seasonality=seasonality_csv,
            **SMALL,
        )

    assert excinfo.value.t_end == 1095.0


class _RecordingModel(MalariaModel):
    """Base model that remembers its instances and the tokens it hands out."""

    instances: List["_RecordingModel"] = []
    fail_continuation = False

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.tokens: List[ContinuationToken] = []
        _RecordingModel.instances.append(self)

    def integrate(self, times, *, restartable=False):
        result, token = super().integrate(times, restartable=restartable)
        if token is not None:
            self.tokens.append(token)
        return result, token

    def continue_integration(self, prior, times, token, *, restartable=True):
        if self.fail_continuation:
            raise IntegrationError("solver failed mid-window")
        result, new_token = super().continue_integration(prior, times, token, restartable=restartable)
        if new_token is not None:
            self.tokens.append(new_token)
        return result, new_token


@pytest.fixture
def recording_model(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(_RecordingModel, "instances", [])
    monkeypatch.setattr(orchestrator, "select_variant", lambda name: _RecordingModel)
    return _RecordingModel


def test_model_released_after_horizon_exceeded(recording_model) -> None:
    with pytest.raises(HorizonExceededError):
        run_model_until_stable(tolerance=1e-12, max_t=400.0, **SMALL)

    (mod,) = recording_model.instances
    assert mod.closed
    assert mod.tokens
    assert all(token.consumed for token in mod.tokens)


def test_model_released_after_integration_error(recording_model, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(recording_model, "fail_continuation", True)

    with pytest.raises(IntegrationError, match="mid-window"):
        run_model_until_stable(tolerance=1e-12, max_t=365.0 * 5, **SMALL)

    (mod,) = recording_model.instances
    assert mod.closed
    assert len(mod.tokens) == 1
    assert mod.tokens[0].consumed
