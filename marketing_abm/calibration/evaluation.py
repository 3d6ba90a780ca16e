"""Evaluators turn genomes into fitness.

The evaluator owns the evaluation counter of a calibration run. Each fitness
assignment counts toward the budget, including cache hits, so a run that keeps
proposing known genomes still terminates.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigurationError, SalesScheduleError
from ..model import run_simulation
from ..randomizer import PRIME_SEEDS
from .individual import Individual
from .parameters import ParameterSpace
from .scoring import SalesFitnessFunction

# Score of a genome whose simulation cannot complete.
FAILED_SCORE = 1.0e6
PROGRESS_EVERY = 100


class Evaluator:
    """Caching evaluator; subclasses implement :meth:`score_genome` (lower is better)."""

    def __init__(self, ideal_score: float = 0.0):
        self.ideal_score = float(ideal_score)
        self.evaluations = 0
        self.computed = 0
        self.cache_hits = 0
        self.failures = 0
        self.cache: Dict[Tuple[float, ...], float] = {}

    def score_genome(self, genome: np.ndarray) -> float:
        raise NotImplementedError

    def evaluate(self, state, individual: Individual, subpop: int = 0, thread: int = 0) -> None:
        if individual.evaluated:
            return
        key = individual.genome_key()
        score = self.cache.get(key)
        if score is None:
            try:
                score = float(self.score_genome(individual.genome))
            except (SalesScheduleError, ConfigurationError) as exc:
                self.failures += 1
                score = FAILED_SCORE
                state.message(f"Genome {list(key)} failed: {exc}")
            self.computed += 1
            self.cache[key] = score
        else:
            self.cache_hits += 1
        self.evaluations += 1
        individual.fitness.set_fitness(-score, ideal=score <= self.ideal_score)
        individual.evaluated = True
        if self.evaluations % PROGRESS_EVERY == 0:
            state.message(f"Number of regular evaluations: {self.evaluations}")

    def evaluate_population(self, state) -> None:
        for index, subpop in enumerate(state.population.subpops):
            for ind in subpop.individuals:
                self.evaluate(state, ind, index, 0)

    def run_complete(self, state) -> bool:
        return any(
            ind.evaluated and ind.fitness.ideal
            for subpop in state.population.subpops
            for ind in subpop.individuals
        )


class FunctionEvaluator(Evaluator):
    """Scores genomes with a plain objective function."""

    def __init__(self, objective: Callable[[np.ndarray], float], ideal_score: float = 0.0):
        super().__init__(ideal_score)
        self.objective = objective

    def score_genome(self, genome: np.ndarray) -> float:
        return self.objective(genome)


class ModelEvaluator(Evaluator):
    """Runs the market model for each genome and scores it against history.

    Every genome is simulated with the same Monte Carlo seeds, so differences
    between candidates come from their parameters and not from the draws.
    """

    def __init__(
        self,
        space: ParameterSpace,
        fitness_function: SalesFitnessFunction,
        seeds: Optional[Sequence[int]] = None,
        monte_carlo_runs: int = 1,
    ):
        super().__init__(ideal_score=0.0)
        if seeds is None:
            if not 1 <= monte_carlo_runs <= len(PRIME_SEEDS):
                raise ConfigurationError(f"Monte Carlo runs must lie in [1, {len(PRIME_SEEDS)}].")
            seeds = PRIME_SEEDS[:monte_carlo_runs]
        self.space = space
        self.fitness_function = fitness_function
        self.seeds: List[int] = [int(s) for s in seeds]
        base = space.base_config
        if base.N_STEPS != fitness_function.n_steps or base.N_BRANDS != fitness_function.n_brands:
            raise ConfigurationError(
                f"Target sales have shape {fitness_function.target.shape}; "
                f"the model simulates {base.N_BRANDS} brands over {base.N_STEPS} steps."
            )

    def simulate(self, genome: Sequence[float]) -> List[np.ndarray]:
        """Scaled ``[brand][step]`` sales of every Monte Carlo repetition."""
        config = self.space.to_config(genome)
        results = []
        for index, seed in enumerate(self.seeds):
            result = run_simulation(config, run_id=f"mc_{index}", seed=seed)
            if not result.ok:
                raise SalesScheduleError(result.error or f"Run {index} did not complete.")
            results.append(result.sales_by_brand_by_step())
        return results

    def score_genome(self, genome: np.ndarray, training: bool = True) -> float:
        return self.fitness_function.score(self.simulate(genome), training=training)
