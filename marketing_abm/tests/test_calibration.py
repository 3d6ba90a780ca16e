"""Calibration parameters, sales scoring and end-to-end calibration runs."""

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

from marketing_abm.calibration import (
    FAILED_SCORE,
    CalibrationController,
    ModelEvaluator,
    ParameterSpace,
    SalesFitnessFunction,
    TargetKind,
    compute_interval,
    parse_parameter,
    point_error,
)
from marketing_abm.calibration.individual import FloatVectorSpecies, Individual
from marketing_abm.calibration.shade import SHADEEvolutionState
from marketing_abm.cli import run_cli
from marketing_abm.config import CalibrationConfig, SimulationConfig
from marketing_abm.errors import ConfigurationError
from marketing_abm.model import run_simulation
from marketing_abm.randomizer import PRIME_SEEDS, Randomizer

SMALL_MARKET = {
    "N_AGENTS": 60,
    "POPULATION_SIZE": 600,
    "N_STEPS": 6,
    "SEASONALITY": 40.0,
    "DECISION_CYCLE": 2,
}


def _target_sales() -> list:
    cfg = SimulationConfig().copy_with_overrides(SMALL_MARKET)
    return run_simulation(cfg, seed=PRIME_SEEDS[0]).sales_by_brand_by_step().tolist()


def _calibration(**overrides) -> CalibrationConfig:
    fields = {
        "ALGORITHM": "shade",
        "POPULATION_SIZE": 4,
        "MAX_EVALUATIONS": 8,
        "PARAMETERS": [
            {"name": "AWARENESS_DECAY_0", "min": 0.0, "max": 0.05},
            {"name": "TALKING_PROBABILITY_1", "min": 0.0, "max": 0.2},
        ],
        "TARGET_SALES": _target_sales(),
        "SIMULATION_OVERRIDES": dict(SMALL_MARKET),
        "VERBOSE": False,
    }
    fields.update(overrides)
    return CalibrationConfig(**fields)


def test_parse_parameter_signatures() -> None:
    cfg = SimulationConfig()
    scalar = parse_parameter("awareness_impact", 0.0, 1.0, cfg)
    assert scalar.target.kind is TargetKind.SCALAR
    vector = parse_parameter("AWARENESS_DECAY_2", 0.0, 0.1, cfg)
    assert vector.target.kind is TargetKind.VECTOR and vector.target.indices == (2,)
    matrix = parse_parameter("BRAND_PERCEPTIONS_1_2", 0.0, 10.0, cfg)
    assert matrix.target.kind is TargetKind.MATRIX and matrix.signature == "BRAND_PERCEPTIONS_1_2"
    for bad in ("NOT_A_PARAMETER", "AWARENESS_DECAY_7", "DRIVERS_1", "NETWORK_TYPE"):
        with pytest.raises(ConfigurationError):
            parse_parameter(bad, 0.0, 1.0, cfg)


def test_parameter_space_writes_genome_into_config() -> None:
    base = SimulationConfig()
    space = ParameterSpace.from_entries(
        [
            {"name": "AWARENESS_DECAY_1", "min": 0.0, "max": 0.1},
            {"name": "AVAILABILITY_0_3", "min": 0.0, "max": 1.0},
            {"name": "N_AGENTS", "min": 100, "max": 200},
        ],
        base,
    )
    cfg = space.to_config([0.05, 0.25, 150.4])
    assert cfg.AWARENESS_DECAY == (0.01, 0.05, 0.01)
    assert cfg.availability_matrix()[0, 3] == pytest.approx(0.25)
    assert cfg.availability_matrix()[1, 3] == pytest.approx(1.0)
    assert cfg.N_AGENTS == 150
    # Base config untouched
    assert base.AWARENESS_DECAY == (0.01, 0.01, 0.01)
    assert space.describe([0.05, 0.25, 150.4])["N_AGENTS"] == pytest.approx(150.4)
    with pytest.raises(ConfigurationError):
        ParameterSpace.from_entries([{"name": "N_AGENTS", "min": 1, "max": 2}] * 2, base)


def test_point_error_and_intervals() -> None:
    np.testing.assert_allclose(point_error([100.0, 0.0], [90.0, 0.5]), [10.0, 50.0])
    assert compute_interval(10) == (0, 10)
    assert compute_interval(10, training=True, hold_out=0.25) == (0, 7)
    assert compute_interval(10, training=False, hold_out=0.25) == (7, 10)


def test_fitness_function_scores_brands_and_repetitions() -> None:
    target = [[100.0, 100.0], [50.0, 50.0]]
    fitness = SalesFitnessFunction(target)
    bean = fitness.score_details([[90.0, 110.0], [50.0, 50.0]])
    np.testing.assert_allclose(bean.score_by_brand, [10.0, 0.0])
    assert bean.score == pytest.approx(5.0)
    assert fitness.score([target, [[90.0, 110.0], [50.0, 50.0]]]) == pytest.approx(2.5)
    with pytest.raises(ValueError):
        fitness.score_details([[1.0, 2.0, 3.0]])

    held = SalesFitnessFunction(target, hold_out=0.5)
    simulated = [[100.0, 0.0], [50.0, 50.0]]
    assert held.score([simulated], training=True) == pytest.approx(0.0)
    assert held.score([simulated], training=False) == pytest.approx(50.0)


def test_model_evaluator_uses_common_seeds_and_penalizes_failures() -> None:
    base = SimulationConfig().copy_with_overrides(dict(SMALL_MARKET, CHECKPOINT_STEPS=1))
    space = ParameterSpace.from_entries([{"name": "SEASONALITY_1", "min": 0.0, "max": 1.0e6}], base)
    evaluator = ModelEvaluator(space, SalesFitnessFunction(_target_sales()), monte_carlo_runs=2)
    assert evaluator.seeds == PRIME_SEEDS[:2]

    state = SHADEEvolutionState(FloatVectorSpecies(space.min_genes, space.max_genes), evaluator, 4, 8, Randomizer(1), verbose=False)
    impossible = Individual([1.0e6])
    evaluator.evaluate(state, impossible)
    assert impossible.fitness.fitness() == -FAILED_SCORE
    assert evaluator.failures == 1

    feasible = Individual([40.0])
    evaluator.evaluate(state, feasible)
    assert -FAILED_SCORE < feasible.fitness.fitness() <= 0.0
    assert evaluator.evaluations == 2


def test_driver_parameters_are_renormalized_per_segment() -> None:
    base = SimulationConfig().copy_with_overrides(SMALL_MARKET)
    space = ParameterSpace.from_entries([{"name": "DRIVERS_1_2", "min": 0.0, "max": 1.0}], base)
    cfg = space.to_config([0.8])
    drivers = np.asarray(cfg.DRIVERS)
    np.testing.assert_allclose(drivers.sum(axis=1), 1.0)
    np.testing.assert_allclose(drivers[1], np.array([0.2, 0.5, 0.8]) / 1.5)
    np.testing.assert_allclose(drivers[0], base.DRIVERS[0])
    cfg.validate()

    zero = ParameterSpace.from_entries(
        [{"name": f"DRIVERS_0_{i}", "min": 0.0, "max": 1.0} for i in range(3)], base
    ).to_config([0.0, 0.0, 0.0])
    np.testing.assert_allclose(zero.DRIVERS[0], [1.0 / 3] * 3)

    evaluator = ModelEvaluator(space, SalesFitnessFunction(_target_sales()))
    for value in (0.1, 0.5, 0.9):
        assert 0.0 <= evaluator.score_genome(np.array([value])) < FAILED_SCORE


def test_model_evaluator_rejects_mismatched_history() -> None:
    space = ParameterSpace.from_entries([{"name": "AWARENESS_IMPACT", "min": 0.0, "max": 1.0}], SimulationConfig())
    with pytest.raises(ConfigurationError):
        ModelEvaluator(space, SalesFitnessFunction([[1.0, 2.0]]))


@pytest.mark.parametrize("algorithm,population", [("shade", 4), ("lshade", 4), ("jfde", 6)])
def test_calibration_end_to_end(algorithm, population, tmp_path: Path) -> None:
    calibration = _calibration(ALGORITHM=algorithm, POPULATION_SIZE=population, MAX_EVALUATIONS=2 * population)
    result = CalibrationController(calibration).run()
    assert result.algorithm == algorithm
    assert result.evaluations >= 2 * population
    assert result.model_evaluations + result.cache_hits == result.evaluations
    assert set(result.best_parameters) == {"AWARENESS_DECAY_0", "TALKING_PROBABILITY_1"}
    assert 0.0 <= result.best_parameters["AWARENESS_DECAY_0"] <= 0.05
    assert result.training_score >= 0.0
    assert result.hold_out_score is None

    path = result.save(str(tmp_path))
    payload = json.loads(path.read_text())
    assert payload["best_genome"] == result.best_genome
    assert (tmp_path / "calibration_history.csv").exists()


def test_calibration_reports_hold_out_score() -> None:
    result = CalibrationController(_calibration(HOLD_OUT=0.34)).run()
    assert result.hold_out_score is not None
    assert result.hold_out_score >= 0.0


def test_cli_calibrate(tmp_path: Path) -> None:
    definition = tmp_path / "calibration.json"
    calibration = _calibration()
    definition.write_text(
        json.dumps(
            {
                "algorithm": "shade",
                "population_size": 4,
                "max_evaluations": 8,
                "parameters": calibration.PARAMETERS,
                "target_sales": calibration.TARGET_SALES,
                "simulation": SMALL_MARKET,
            }
        )
    )
    out_dir = tmp_path / "out"
    result = run_cli(["--task", "calibrate", "--calibration", str(definition), "--results-dir", str(out_dir), "--quiet"])
    assert result is not None
    assert result["evaluations"] >= 8
    assert (out_dir / "calibration_result.json").exists()
