"""Base evolution state: the run context shared by breeders and evaluators.

Everything that changes during one optimization run (population, counters,
best-so-far, history) lives on the state object or on the evaluator it owns.
Nothing is process-global, so independent calibrations can run side by side.
"""

from __future__ import annotations

import warnings
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..randomizer import Randomizer
from .individual import FloatVectorSpecies, Individual, Population

R_SUCCESS = 0
R_FAILURE = 1
R_NOTDONE = 2

RESULT_NAMES = {R_SUCCESS: "success", R_FAILURE: "budget_exhausted", R_NOTDONE: "not_done"}


class EvolutionState:
    label = "EA"

    def __init__(
        self,
        species: FloatVectorSpecies,
        evaluator,
        population_size: int,
        max_evaluations: int,
        random: Randomizer,
        quit_on_run_complete: bool = True,
        verbose: bool = True,
    ):
        self.species = species
        self.evaluator = evaluator
        self.population_size = int(population_size)
        self.max_evaluations = int(max_evaluations)
        self.random = random
        self.quit_on_run_complete = quit_on_run_complete
        self.verbose = verbose
        self.population: Optional[Population] = None
        self.generation = 0
        self.num_generations: Optional[int] = None
        self.best_individual: Optional[Individual] = None
        self.history: List[Dict[str, Any]] = []
        self.result: Optional[int] = None

    @property
    def evaluations(self) -> int:
        return self.evaluator.evaluations

    def message(self, text: str) -> None:
        if self.verbose:
            print(f"[{self.label}] {text}")

    def warning(self, text: str) -> None:
        warnings.warn(f"[{self.label}] {text}", RuntimeWarning, stacklevel=2)

    def run(self) -> int:
        self.start_fresh()
        result = R_NOTDONE
        while result == R_NOTDONE:
            result = self.evolve()
        self.finish(result)
        return result

    def start_fresh(self) -> None:
        raise NotImplementedError

    def evolve(self) -> int:
        raise NotImplementedError

    def finish(self, result: int) -> None:
        self.result = result
        self.record_generation()
        best = self.best_individual.fitness.fitness() if self.best_individual is not None else float("nan")
        self.message(
            f"Finished ({RESULT_NAMES.get(result, result)}) after {self.evaluations} evaluations. "
            f"Best fitness {best:.6g}"
        )

    def track_best(self, individuals) -> None:
        for ind in individuals:
            if not ind.evaluated:
                continue
            if self.best_individual is None or ind.fitness.better_than(self.best_individual.fitness):
                self.best_individual = ind.clone()

    def record_generation(self) -> None:
        if self.population is None:
            return
        values = np.array(
            [ind.fitness.fitness() for sp in self.population.subpops for ind in sp.individuals if ind.evaluated],
            dtype=float,
        )
        finite = values[np.isfinite(values)]
        self.history.append(
            {
                "generation": self.generation,
                "evaluations": self.evaluations,
                "population_size": int(sum(len(sp) for sp in self.population.subpops)),
                "best_fitness": self.best_individual.fitness.fitness() if self.best_individual else np.nan,
                "mean_fitness": float(finite.mean()) if finite.size else np.nan,
            }
        )

    def history_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.history, columns=[
            "generation", "evaluations", "population_size", "best_fitness", "mean_fitness"
        ])
