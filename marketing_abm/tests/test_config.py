"""Configuration overrides, validation, profiles and JSON loading."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
PARENT = ROOT.parent
if str(PARENT) not in sys.path:
    sys.path.insert(0, str(PARENT))

from marketing_abm.config import (
    CalibrationConfig,
    SimulationConfig,
    apply_scenario_profile,
    broadcast_array,
    get_scenario_profile,
    list_scenario_profiles,
    load_calibration_config,
    load_scenario_profile,
    load_simulation_config,
)
from marketing_abm.errors import ConfigurationError


def test_defaults_validate() -> None:
    cfg = SimulationConfig().validate()
    assert cfg.ratio == pytest.approx(100.0)
    assert cfg.seasonality_array().shape == (cfg.N_STEPS,)
    assert cfg.availability_matrix().shape == (cfg.N_BRANDS, cfg.N_STEPS)


def test_overrides_keep_tuple_semantics_and_do_not_mutate_base() -> None:
    base = SimulationConfig()
    updated = base.copy_with_overrides({"AWARENESS_DECAY": [0.1, 0.2, 0.3], "N_AGENTS": 10})
    assert updated.AWARENESS_DECAY == (0.1, 0.2, 0.3)
    assert updated.N_AGENTS == 10
    assert base.N_AGENTS == 1000


def test_unknown_override_raises_key_error() -> None:
    with pytest.raises(KeyError):
        SimulationConfig().copy_with_overrides({"NOT_A_FIELD": 1})


@pytest.mark.parametrize(
    "overrides",
    [
        {"DRIVERS": [[0.5, 0.5, 0.5], [0.2, 0.5, 0.3], [0.3, 0.3, 0.4]]},
        {"DECISION_CYCLE": 0},
        {"AVAILABILITY": 1.5},
        {"N_AGENTS": 10, "POPULATION_SIZE": 5},
        {"NETWORK_TYPE": "lattice"},
        {"SEASONALITY": [1.0, 2.0]},
    ],
)
def test_invalid_configs_raise(overrides) -> None:
    with pytest.raises(ConfigurationError):
        SimulationConfig().copy_with_overrides(overrides).validate()


def test_broadcast_per_brand_row_to_matrix() -> None:
    full = broadcast_array([0.1, 0.2], (2, 3), "AVAILABILITY")
    np.testing.assert_allclose(full, [[0.1, 0.1, 0.1], [0.2, 0.2, 0.2]])
    with pytest.raises(ValueError):
        broadcast_array([0.1, 0.2, 0.3, 0.4], (2, 3), "AVAILABILITY")


def test_expected_shape_rejects_non_numeric() -> None:
    cfg = SimulationConfig()
    assert cfg.expected_shape("DRIVERS") == (3, 3)
    assert cfg.expected_shape("AWARENESS_IMPACT") == ()
    with pytest.raises(KeyError):
        cfg.expected_shape("NETWORK_TYPE")


def test_profiles_apply_and_list() -> None:
    names = {p.name for p in list_scenario_profiles()}
    assert {"baseline", "small_market", "word_of_mouth_off"} <= names
    cfg = apply_scenario_profile(SimulationConfig(), get_scenario_profile("WORD_OF_MOUTH_OFF"))
    assert cfg.USE_NETWORK_EFFECTS is False
    assert cfg.active_profile == "word_of_mouth_off"
    with pytest.raises(KeyError):
        get_scenario_profile("does-not-exist")


def test_load_profile_and_simulation_config(tmp_path: Path) -> None:
    profile_path = tmp_path / "fast.json"
    profile_path.write_text(json.dumps({"name": "fast", "overrides": {"N_STEPS": 8}}))
    profile = load_scenario_profile(profile_path)
    assert profile.name == "fast"
    assert apply_scenario_profile(SimulationConfig(), profile).N_STEPS == 8
    assert set(profile.to_metadata()) == {"name", "description", "source", "overrides"}

    config_path = tmp_path / "sim.json"
    config_path.write_text(json.dumps({"n_agents": 50, "population_size": 500}))
    cfg = load_simulation_config(config_path)
    assert cfg.N_AGENTS == 50
    assert cfg.ratio == pytest.approx(10.0)


def test_load_calibration_config_with_simulation_block(tmp_path: Path) -> None:
    path = tmp_path / "calibration.json"
    path.write_text(
        json.dumps(
            {
                "algorithm": "LSHADE",
                "population_size": 8,
                "max_evaluations": 40,
                "parameters": [{"name": "AWARENESS_DECAY_0", "min": 0.0, "max": 0.1}],
                "target_sales": [[1.0, 2.0]],
                "simulation": {"n_steps": 2, "n_brands": 1},
            }
        )
    )
    calibration = load_calibration_config(path).validate()
    assert calibration.ALGORITHM == "lshade"
    assert calibration.SIMULATION_OVERRIDES == {"N_STEPS": 2, "N_BRANDS": 1}


def test_calibration_config_validation() -> None:
    with pytest.raises(ConfigurationError):
        CalibrationConfig(ALGORITHM="pso", PARAMETERS=[{"name": "N", "min": 0, "max": 1}], TARGET_SALES=[[1]]).validate()
    with pytest.raises(ConfigurationError):
        CalibrationConfig(TARGET_SALES=[[1.0]]).validate()
    with pytest.raises(ConfigurationError):
        CalibrationConfig(
            PARAMETERS=[{"name": "AWARENESS_IMPACT", "min": 1.0, "max": 0.0}], TARGET_SALES=[[1.0]]
        ).validate()
