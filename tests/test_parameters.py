import math

import numpy as np
import pytest

from detmalaria.errors import ConfigurationError, NameCollisionError
from detmalaria.parameters import (
    DEFAULT_PARAMETERS,
    RESERVED_PARAMETERS,
    ParameterSet,
    build_parameters,
    egg_laying_rate,
)


def test_defaults_without_arguments() -> None:
    mpl = build_parameters()

    assert isinstance(mpl, ParameterSet)
    assert mpl["rho"] == pytest.approx(0.85)
    assert mpl["eta"] == pytest.approx(1.0 / (21.0 * 365.0))
    assert mpl.extras == ()
    assert set(DEFAULT_PARAMETERS) <= set(mpl)


def test_named_override_replaces_default() -> None:
    mpl = build_parameters(rho=0.8)

    assert mpl["rho"] == pytest.approx(0.8)
    assert mpl.extras == ()


def test_named_extras_are_appended() -> None:
    mpl = build_parameters(rho=0.8, extra1=1.0, extra2=2)

    assert mpl["extra1"] == 1.0
    assert mpl["extra2"] == 2.0
    assert isinstance(mpl["extra2"], float)
    assert mpl.extras == ("extra1", "extra2")


def test_aggregate_extras_are_appended() -> None:
    mpl = build_parameters({"extra1": 1.0, "extra2": 2.0})

    assert mpl["extra1"] == 1.0
    assert mpl["extra2"] == 2.0
    assert set(mpl.extras) == {"extra1", "extra2"}


def test_aggregate_with_standard_name_collides() -> None:
    with pytest.raises(NameCollisionError) as excinfo:
        build_parameters({"rho": 0.8, "extra1": 1.0})

    assert excinfo.value.names == ("rho",)
    assert "rho" in str(excinfo.value)
    assert isinstance(excinfo.value, ConfigurationError)


def test_extra_in_both_sources_takes_aggregate_value() -> None:
    assert "extra1" not in RESERVED_PARAMETERS
    mpl = build_parameters({"extra1": 1.0}, extra1=2.0, extra2=3.0)

    assert mpl["extra1"] == 1.0
    assert mpl.extras == ("extra1", "extra2")


def test_disjoint_extras_never_collide() -> None:
    mpl = build_parameters({"extra1": 1.0}, rho=0.8, extra2=2.0)

    assert mpl["rho"] == pytest.approx(0.8)
    assert set(mpl.extras) == {"extra1", "extra2"}


def test_derived_parameters_follow_overrides() -> None:
    mpl = build_parameters()
    assert mpl["beta_larval0"] == pytest.approx(egg_laying_rate(21.2, 0.132, 1.0 / 3.0))
    assert mpl["fv0"] == pytest.approx(1.0 / 3.0)
    assert mpl["av0"] == pytest.approx(0.92 / 3.0)
    assert mpl["Surv0"] == pytest.approx(math.exp(-0.132 * 10.0))

    slower = build_parameters(tau1=1.0, tau2=3.0)
    assert slower["fv0"] == pytest.approx(0.25)
    assert slower["av0"] == pytest.approx(0.92 * 0.25)


def test_explicit_derived_value_is_kept() -> None:
    mpl = build_parameters(av0=0.5)

    assert mpl["av0"] == 0.5
    assert "av0" in RESERVED_PARAMETERS
    assert mpl.extras == ()


def test_parameter_set_is_read_only() -> None:
    mpl = build_parameters(vec=[1.0, 2.0, 3.0])

    with pytest.raises(TypeError):
        mpl["rho"] = 0.1  # type: ignore[index]
    assert isinstance(mpl["vec"], np.ndarray)
    with pytest.raises(ValueError):
        mpl["vec"][0] = 5.0


def test_to_dict_returns_mutable_copy() -> None:
    mpl = build_parameters()
    values = mpl.to_dict()
    values["rho"] = 0.1

    assert mpl["rho"] == pytest.approx(0.85)


@pytest.mark.parametrize("bad", [True, "high", None])
def test_non_numeric_values_rejected(bad) -> None:
    with pytest.raises(ConfigurationError):
        build_parameters(extra1=bad)
