"""
Tournament-driven differential evolution (JFDE) and its steady-state loop.

The breeder runs a six-way tournament over the population to pick distinct
parents ``r0..r5`` and produces two children per call::

    child_a = r0 + F * (r1 - r2)
    child_b = r3 + F * (r4 - r5)

Children are clamped to the gene bounds. The steady-state evolution state
first fills the population with random individuals, then replaces
deselector-chosen individuals with the new children when they are better
(or with a configurable probability).
"""

from __future__ import annotations

from typing import List, Optional, Set, Tuple

from ..errors import ConfigurationError
from ..randomizer import Randomizer
from .individual import FloatVectorSpecies, Individual, Population, Subpopulation
from .selection import TournamentDeselector
from .state import R_FAILURE, R_NOTDONE, R_SUCCESS, EvolutionState

TOURNAMENT_SIZE = 6


class JFDEBreeder:
    """Differential evolution with tournament-chosen parents."""

    def __init__(self, f: float = 0.5, retries: int = 0, deselector=None):
        self.f = float(f)
        self.retries = int(retries)
        self.deselector = deselector if deselector is not None else TournamentDeselector(2)

    def setup(self, state: EvolutionState) -> None:
        if not 0.0 <= self.f <= 1.0:
            raise ConfigurationError(f"F must lie in [0, 1], got {self.f}.")
        if self.retries < 0:
            raise ConfigurationError("Out-of-bounds retries must be >= 0.")
        if state.population_size < TOURNAMENT_SIZE:
            raise ConfigurationError(
                f"JFDE needs a population of at least {TOURNAMENT_SIZE} individuals, got {state.population_size}."
            )

    @staticmethod
    def run_tournament(individuals: List[Individual], random: Randomizer, size: int = TOURNAMENT_SIZE) -> List[int]:
        """Return ``size`` distinct indices chosen by pairwise tournaments."""
        if len(individuals) < size:
            raise ConfigurationError(f"Tournament of {size} needs at least {size} individuals, got {len(individuals)}.")
        chosen: List[int] = []
        taken: Set[int] = set()
        while len(chosen) < size:
            a = random.next_int(len(individuals))
            b = random.next_int(len(individuals))
            fa = individuals[a].fitness
            fb = individuals[b].fitness
            if fa.better_than(fb):
                winner, loser = a, b
            elif fb.better_than(fa):
                winner, loser = b, a
            else:
                winner, loser = (a, b) if random.next_boolean() else (b, a)
            if winner not in taken:
                pick = winner
            elif loser not in taken:
                pick = loser
            else:
                continue
            taken.add(pick)
            chosen.append(pick)
        return chosen

    def create_custom_individual(self, state: EvolutionState, subpop_index: int = 0) -> Tuple[Individual, Individual]:
        subpop = state.population.subpops[subpop_index]
        species = subpop.species
        inds = subpop.individuals
        for _ in range(self.retries + 1):
            r = self.run_tournament(inds, state.random)
            first = inds[r[0]].genome + self.f * (inds[r[1]].genome - inds[r[2]].genome)
            second = inds[r[3]].genome + self.f * (inds[r[4]].genome - inds[r[5]].genome)
            child_a = Individual(first, species.new_fitness())
            child_b = Individual(second, species.new_fitness())
            if species.in_range(child_a) and species.in_range(child_b):
                break
        return species.clamp(child_a), species.clamp(child_b)


class CustomSteadyEvolutionState(EvolutionState):
    """Steady-state loop: two new individuals per :meth:`evolve`."""

    label = "JFDE"

    def __init__(
        self,
        species: FloatVectorSpecies,
        evaluator,
        population_size: int,
        max_evaluations: int,
        random: Randomizer,
        breeder: Optional[JFDEBreeder] = None,
        replacement_probability: Optional[float] = None,
        duplicate_retries: int = 0,
        quit_on_run_complete: bool = True,
        verbose: bool = True,
    ):
        super().__init__(species, evaluator, population_size, max_evaluations, random, quit_on_run_complete, verbose)
        self.breeder = breeder if breeder is not None else JFDEBreeder()
        self.replacement_probability = replacement_probability
        self.duplicate_retries = int(duplicate_retries)
        self.generation_size = self.population_size
        self.live_genomes: Set[Tuple[float, ...]] = set()
        self.duplicates = 0

    def start_fresh(self) -> None:
        self.message("Setting up")
        self.breeder.setup(self)
        if self.duplicate_retries < 0:
            raise ConfigurationError("Duplicate retries must be >= 0.")
        if self.replacement_probability is None:
            self.replacement_probability = 1.0
            self.message("Replacement probability not given; using 1.0")
        elif not 0.0 <= self.replacement_probability <= 1.0:
            raise ConfigurationError(
                f"Replacement probability must lie in [0, 1], got {self.replacement_probability}."
            )
        if self.max_evaluations < self.generation_size:
            raise ConfigurationError(
                f"Evaluation budget ({self.max_evaluations}) is smaller than the population size "
                f"({self.generation_size})."
            )
        self.population = Population([Subpopulation(self.species, self.population_size)])
        self.live_genomes.clear()
        self.generation = 0
        self.num_generations = self.max_evaluations // self.generation_size

    def _breed(self, subpop: Subpopulation) -> List[Individual]:
        if len(subpop) < subpop.size:
            return [self.species.new_individual(self.random) for _ in range(2)]
        children = list(self.breeder.create_custom_individual(self, 0))
        for _ in range(self.duplicate_retries):
            if not any(child.genome_key() in self.live_genomes for child in children):
                break
            self.duplicates += 1
            children = list(self.breeder.create_custom_individual(self, 0))
        return children

    def evolve(self) -> int:
        subpop = self.population.subpops[0]
        generation_boundary = False
        for ind in self._breed(subpop):
            self.evaluator.evaluate(self, ind, 0, 0)
            self.track_best([ind])
            if len(subpop) < subpop.size:
                subpop.individuals.append(ind)
                self.live_genomes.add(ind.genome_key())
            else:
                dead = self.breeder.deselector.produce(subpop, self)
                old = subpop.individuals[dead]
                if ind.fitness.better_than(old.fitness) or self.random.next_double() < self.replacement_probability:
                    self.live_genomes.discard(old.genome_key())
                    subpop.individuals[dead] = ind
                    self.live_genomes.add(ind.genome_key())
                if ind.fitness.ideal and self.quit_on_run_complete:
                    self.message("Found Ideal Individual")
                    return R_SUCCESS
            if self.evaluations >= self.generation_size * (self.generation + 1):
                generation_boundary = True

        if self.evaluations >= self.max_evaluations:
            if generation_boundary:
                self.generation += 1
            return R_FAILURE

        if generation_boundary:
            self.record_generation()
            self.generation += 1
            self.message(f"Generation {self.generation}\tEvaluations {self.evaluations}")
        return R_NOTDONE
