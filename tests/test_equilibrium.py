from pathlib import Path

import numpy as np
import pytest

from detmalaria.equilibrium import equilibrium_init_create, heterogeneity_brackets
from detmalaria.errors import ConfigurationError, EquilibriumSolveError
from detmalaria.model import MalariaModel, filter_state
from detmalaria.parameters import build_parameters
from detmalaria.seasonality import SeasonalityTable
from detmalaria.warnings import NumericalWarning

HUMAN = ("init_S", "init_T", "init_D", "init_A", "init_U", "init_P")


def test_state_shapes(small_state) -> None:
    for name in HUMAN + ("init_IB", "init_ID", "init_ICA", "init_ICM"):
        assert small_state[name].shape == (5, 2), name
    assert small_state["na"] == 5
    assert small_state["nh"] == 2
    assert small_state["age"][-1] == pytest.approx(60.0 * 365.0)


def test_age_distribution_sums_to_one(small_state) -> None:
    assert small_state["den"].sum() == pytest.approx(1.0, rel=1e-12)
    assert small_state["het_wt"].sum() == pytest.approx(1.0, rel=1e-12)
    assert np.sum(small_state["het_wt"] * small_state["rel_foi"]) == pytest.approx(1.0)


def test_human_states_partition_each_cell(small_state) -> None:
    total = sum(small_state[name] for name in HUMAN)
    expected = np.outer(small_state["den"], small_state["het_wt"])

    np.testing.assert_allclose(total, expected, rtol=1e-10)
    for name in HUMAN:
        assert np.all(small_state[name] >= 0.0), name


def test_mosquito_density_reproduces_eir(small_state) -> None:
    eir = small_state["av0"] * small_state["init_Iv"] * small_state["DY"]
    mv = small_state["init_Sv"] + small_state["init_Ev"] + small_state["init_Iv"]

    assert eir == pytest.approx(10.0, rel=1e-12)
    assert mv == pytest.approx(small_state["mv0"], rel=1e-12)
    assert small_state["K0"] > 0.0


def test_prevalence_increases_with_eir(small_ages) -> None:
    mpl = build_parameters()
    low = equilibrium_init_create(small_ages, 1.0, 0.4, mpl, 1)
    high = equilibrium_init_create(small_ages, 100.0, 0.4, mpl, 1)

    assert 0.0 < low["prev_eq"] < high["prev_eq"] <= 1.0


def test_equilibrium_is_deterministic(small_ages) -> None:
    mpl = build_parameters()
    a = equilibrium_init_create(small_ages, 10.0, 0.4, mpl, 2)
    b = equilibrium_init_create(small_ages, 10.0, 0.4, mpl, 2)

    assert a.keys() == b.keys()
    for name in HUMAN + ("init_ICM", "init_Iv", "K0"):
        np.testing.assert_array_equal(a[name], b[name])


def test_state_carries_parameters_and_extras(small_ages) -> None:
    mpl = build_parameters(rho=0.8, extra1=3.0)
    state = equilibrium_init_create(small_ages, 10.0, 0.4, mpl, 1)

    assert state["rho"] == pytest.approx(0.8)
    assert state["extra1"] == 3.0


def test_equilibrium_is_a_fixed_point(small_state) -> None:
    with MalariaModel(filter_state(small_state, MalariaModel)) as mod:
        y0 = mod.initial_state()
        dy = mod.rhs(0.0, y0)

    scale = np.maximum(np.abs(y0), 1.0)
    assert np.max(np.abs(dy) / scale) < 1e-8


def test_heterogeneity_brackets_single_group() -> None:
    nodes, weights, rel = heterogeneity_brackets(1, 1.67)

    np.testing.assert_allclose(nodes, [0.0])
    np.testing.assert_allclose(weights, [1.0])
    np.testing.assert_allclose(rel, [1.0])


@pytest.mark.parametrize(
    "kwargs",
    [
        {"EIR": 0.0},
        {"EIR": float("nan")},
        {"ft": 1.5},
        {"ft": -0.1},
        {"het_brackets": 0},
        {"age_vector": [0.0, 5.0, 1.0]},
        {"age_vector": [0.0]},
        {"age_vector": [-1.0, 5.0]},
    ],
)
def test_invalid_inputs_rejected(small_ages, kwargs) -> None:
    args = {
        "age_vector": small_ages,
        "EIR": 10.0,
        "ft": 0.4,
        "model_param_list": build_parameters(),
        "het_brackets": 1,
    }
    args.update(kwargs)
    with pytest.raises(EquilibriumSolveError):
        equilibrium_init_create(**args)


def test_non_positive_rate_rejected(small_ages) -> None:
    mpl = build_parameters(muEL=0.0)
    with pytest.raises(EquilibriumSolveError, match="muEL"):
        equilibrium_init_create(small_ages, 10.0, 0.4, mpl, 1)


def test_young_age_vector_warns() -> None:
    with pytest.warns(NumericalWarning, match="20 years"):
        state = equilibrium_init_create([0.0, 1.0, 5.0, 10.0], 10.0, 0.4, build_parameters(), 1)
    assert state["age20l"] == state["age20u"] == 3


def test_seasonality_lookup(small_ages, seasonality_csv: Path) -> None:
    table = SeasonalityTable.from_csv(seasonality_csv)
    state = equilibrium_init_create(
        small_ages,
        10.0,
        0.4,
        build_parameters(),
        1,
        country="kenya",
        admin_unit="Kisumu",
        seasonality=table,
    )

    assert state["ssa0"] == pytest.approx(0.28)
    assert state["ssb2"] == pytest.approx(0.13)
    assert state["theta_c"] != pytest.approx(1.0)
    assert state["country"] == "kenya"


def test_location_without_table_rejected(small_ages) -> None:
    with pytest.raises(ConfigurationError):
        equilibrium_init_create(small_ages, 10.0, 0.4, build_parameters(), 1, country="Kenya")


def test_unknown_location_rejected(small_ages, seasonality_csv: Path) -> None:
    table = SeasonalityTable.from_csv(seasonality_csv)
    with pytest.raises(ConfigurationError, match="Atlantis"):
        equilibrium_init_create(
            small_ages, 10.0, 0.4, build_parameters(), 1, country="Kenya", admin_unit="Atlantis", seasonality=table
        )
