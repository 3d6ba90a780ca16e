"""Wires a :class:`CalibrationConfig` into an optimizer run."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..config import CalibrationConfig, SimulationConfig
from ..errors import SalesScheduleError
from ..randomizer import Randomizer
from .de import CustomSteadyEvolutionState, JFDEBreeder
from .evaluation import FAILED_SCORE, ModelEvaluator
from .individual import FloatVectorSpecies
from .parameters import ParameterSpace
from .scoring import NO_HOLD_OUT, SalesFitnessFunction
from .selection import TournamentDeselector
from .shade import SHADEEvolutionState
from .state import RESULT_NAMES, EvolutionState


@dataclass
class CalibrationResult:
    algorithm: str
    status: str
    best_genome: List[float]
    best_parameters: Dict[str, float]
    training_score: float
    hold_out_score: Optional[float]
    evaluations: int
    model_evaluations: int
    cache_hits: int
    failures: int
    generations: int
    history: pd.DataFrame = field(repr=False, default_factory=pd.DataFrame)
    config: Dict[str, Any] = field(repr=False, default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "status": self.status,
            "best_genome": self.best_genome,
            "best_parameters": self.best_parameters,
            "training_score": self.training_score,
            "hold_out_score": self.hold_out_score,
            "evaluations": self.evaluations,
            "model_evaluations": self.model_evaluations,
            "cache_hits": self.cache_hits,
            "failures": self.failures,
            "generations": self.generations,
            "config": self.config,
        }

    def save(self, results_dir: str) -> Path:
        """Write ``calibration_result.json`` and ``calibration_history.csv``."""
        output = Path(results_dir).expanduser()
        output.mkdir(parents=True, exist_ok=True)
        payload = dict(self.to_dict(), generated_at=datetime.utcnow().isoformat())
        path = output / "calibration_result.json"
        with path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=True, default=float)
        self.history.to_csv(output / "calibration_history.csv", index=False)
        return path


class CalibrationController:
    """Builds the parameter space, fitness function, evaluator and optimizer."""

    def __init__(self, config: CalibrationConfig, base_config: Optional[SimulationConfig] = None):
        self.config = config.validate()
        base = base_config if base_config is not None else SimulationConfig()
        self.base_config = base.copy_with_overrides(config.SIMULATION_OVERRIDES or None).validate()
        self.space = ParameterSpace.from_entries(config.PARAMETERS, self.base_config)
        self.fitness_function = SalesFitnessFunction(config.TARGET_SALES, config.HOLD_OUT)
        self.evaluator = ModelEvaluator(self.space, self.fitness_function, monte_carlo_runs=config.MONTE_CARLO_RUNS)
        self.species = FloatVectorSpecies(self.space.min_genes, self.space.max_genes, maximize=True)
        self.state: Optional[EvolutionState] = None

    def build_state(self) -> EvolutionState:
        cfg = self.config
        random = Randomizer(cfg.RANDOM_SEED)
        if cfg.ALGORITHM == "jfde":
            breeder = JFDEBreeder(
                f=cfg.F,
                retries=cfg.OUT_OF_BOUNDS_RETRIES,
                deselector=TournamentDeselector(cfg.DESELECTOR_TOURNAMENT_SIZE),
            )
            return CustomSteadyEvolutionState(
                self.species,
                self.evaluator,
                cfg.POPULATION_SIZE,
                cfg.MAX_EVALUATIONS,
                random,
                breeder=breeder,
                replacement_probability=cfg.REPLACEMENT_PROBABILITY,
                duplicate_retries=cfg.DUPLICATE_RETRIES,
                verbose=cfg.VERBOSE,
            )
        return SHADEEvolutionState(
            self.species,
            self.evaluator,
            cfg.POPULATION_SIZE,
            cfg.MAX_EVALUATIONS,
            random,
            variant="LSHADE" if cfg.ALGORITHM == "lshade" else "SHADE",
            pbest_rate=cfg.PBEST_RATE,
            arc_rate=cfg.ARC_RATE,
            retries=cfg.OUT_OF_BOUNDS_RETRIES,
            verbose=cfg.VERBOSE,
        )

    def run(self) -> CalibrationResult:
        self.state = self.build_state()
        result = self.state.run()
        best = self.state.best_individual
        genome = best.genome.tolist()
        training_score = -best.fitness.fitness()
        hold_out_score = None
        if self.config.HOLD_OUT != NO_HOLD_OUT:
            try:
                hold_out_score = float(self.evaluator.score_genome(np.asarray(genome), training=False))
            except SalesScheduleError as exc:
                self.state.message(f"Hold-out run of the best genome failed: {exc}")
                hold_out_score = FAILED_SCORE
        return CalibrationResult(
            algorithm=self.config.ALGORITHM,
            status=RESULT_NAMES.get(result, str(result)),
            best_genome=genome,
            best_parameters=self.space.describe(genome),
            training_score=float(training_score),
            hold_out_score=hold_out_score,
            evaluations=self.evaluator.evaluations,
            model_evaluations=self.evaluator.computed,
            cache_hits=self.evaluator.cache_hits,
            failures=self.evaluator.failures,
            generations=self.state.generation,
            history=self.state.history_frame(),
            config=self.config.snapshot(),
        )


def run_calibration(config: CalibrationConfig, base_config: Optional[SimulationConfig] = None) -> CalibrationResult:
    return CalibrationController(config, base_config).run()
