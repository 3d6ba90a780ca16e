"""
Success-history adaptive differential evolution (SHADE) and L-SHADE.

Each generation every target individual ``x_i`` gets a child built with
current-to-pbest/1/bin::

    v = x_i + F * (x_pbest - x_i) + F * (x_r1 - x_r2)

where ``x_pbest`` is drawn from the best ``p`` individuals and ``x_r2`` may
come from the archive of replaced parents. ``F`` and ``Cr`` are sampled
around per-slot historical memories (Cauchy and Gaussian respectively), and
successful values update one memory slot per generation with a weighted
Lehmer mean. L-SHADE additionally shrinks the population linearly with the
evaluations spent, down to four individuals.

Genes that leave their bounds are repaired to the midpoint between the bound
and the target's gene.
"""

from __future__ import annotations

import functools
import math
from typing import List, Optional

import numpy as np

from ..errors import ConfigurationError
from ..randomizer import Randomizer
from .individual import FloatVectorSpecies, Individual, Population, Subpopulation
from .state import R_FAILURE, R_NOTDONE, R_SUCCESS, EvolutionState

MIN_POPULATION = 4
MAX_ARC_RATE = 5.0
CR_TERMINAL = -1.0
MEMORY_INIT = 0.5
SCALE_SPREAD = 0.1
VARIANTS = ("SHADE", "LSHADE")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SHADESubpopulation(Subpopulation):
    """Subpopulation carrying the SHADE memories and the parent archive."""

    def __init__(self, species: FloatVectorSpecies, size: int, arc_rate: float = 1.4,
                 individuals: Optional[List[Individual]] = None):
        super().__init__(species, size, individuals)
        if not 0.0 <= arc_rate <= MAX_ARC_RATE:
            raise ConfigurationError(f"Archive rate must lie in [0, {MAX_ARC_RATE}], got {arc_rate}.")
        self.arc_rate = float(arc_rate)
        self.initial_size = self.size
        self.min_size = MIN_POPULATION
        self.arc_size = round_half_up(self.arc_rate * self.size)
        self.archive: List[Individual] = []
        memory_size = species.genome_size
        self.memory_sf = np.full(memory_size, MEMORY_INIT)
        self.memory_cr = np.full(memory_size, MEMORY_INIT)
        self.memory_pos = 0
        self.pop_sf = np.zeros(self.size)
        self.pop_cr = np.zeros(self.size)

    @property
    def num_arc_inds(self) -> int:
        return len(self.archive)

    def add_to_archive(self, individual: Individual, random: Randomizer) -> None:
        if self.arc_size <= 1:
            return
        if len(self.archive) < self.arc_size:
            self.archive.append(individual.clone())
        else:
            self.archive[random.next_int(self.arc_size)] = individual.clone()

    def resize(self, del_index: int) -> None:
        del self.individuals[del_index]

    def reduce_population_with_sort(self, reduction: int) -> None:
        """Drop the ``reduction`` worst individuals and shrink the archive accordingly."""
        for _ in range(reduction):
            worst = 0
            for j in range(1, len(self.individuals)):
                if self.individuals[worst].fitness.better_than(self.individuals[j].fitness):
                    worst = j
            self.resize(worst)
        self.arc_size = round_half_up(len(self.individuals) * self.arc_rate)
        del self.archive[self.arc_size:]


class SHADEBreeder:
    def __init__(self, pbest_rate: float = 0.11, retries: int = 0):
        self.pbest_rate = float(pbest_rate)
        self.retries = int(retries)

    def setup(self, state: EvolutionState) -> None:
        if not 0.0 <= self.pbest_rate <= 1.0:
            raise ConfigurationError(f"p-best rate must lie in [0, 1], got {self.pbest_rate}.")
        if self.retries < 0:
            raise ConfigurationError("Out-of-bounds retries must be >= 0.")
        if state.population_size < MIN_POPULATION:
            raise ConfigurationError(
                f"SHADE needs a population of at least {MIN_POPULATION} individuals, got {state.population_size}."
            )

    def p_num(self, pop_size: int) -> int:
        return max(2, round_half_up(pop_size * self.pbest_rate))

    @staticmethod
    def sorted_indices(individuals: List[Individual]) -> List[int]:
        """Indices ordered best first."""

        def compare(i: int, j: int) -> int:
            fi, fj = individuals[i].fitness, individuals[j].fitness
            if fi.better_than(fj):
                return -1
            if fj.better_than(fi):
                return 1
            return 0

        return sorted(range(len(individuals)), key=functools.cmp_to_key(compare))

    def breed_population(self, state: EvolutionState) -> Population:
        subpop: SHADESubpopulation = state.population.subpops[0]
        inds = subpop.individuals
        if len(inds) < MIN_POPULATION:
            raise ConfigurationError(f"SHADE population shrank below {MIN_POPULATION} individuals.")
        random = state.random
        memory_size = subpop.memory_sf.shape[0]
        order = self.sorted_indices(inds)
        p_num = self.p_num(len(inds))

        children = []
        for target in range(len(inds)):
            slot = random.next_int(memory_size)
            mu_sf = subpop.memory_sf[slot]
            mu_cr = subpop.memory_cr[slot]
            if mu_cr == CR_TERMINAL:
                cr = 0.0
            else:
                cr = min(1.0, max(0.0, random.gauss(mu_cr, SCALE_SPREAD)))
            sf = random.cauchy(mu_sf, SCALE_SPREAD)
            while sf <= 0.0:
                sf = random.cauchy(mu_sf, SCALE_SPREAD)
            sf = min(sf, 1.0)
            subpop.pop_sf[target] = sf
            subpop.pop_cr[target] = cr
            pbest = order[random.next_int(p_num)]
            children.append(self.current_to_pbest(state, subpop, target, pbest, sf, cr))
        return Population([Subpopulation(subpop.species, len(children), children)])

    def current_to_pbest(self, state: EvolutionState, subpop: SHADESubpopulation, target: int,
                         pbest: int, sf: float, cr: float) -> Individual:
        random = state.random
        inds = subpop.individuals
        species = subpop.species
        n = len(inds)

        r1 = random.next_int(n)
        while r1 == target:
            r1 = random.next_int(n)
        r2 = random.next_int(n + subpop.num_arc_inds)
        while r2 == target or r2 == r1:
            r2 = random.next_int(n + subpop.num_arc_inds)
        donor = subpop.archive[r2 - n] if r2 >= n else inds[r2]

        parent = inds[target].genome
        best = inds[pbest].genome
        other = inds[r1].genome
        genome = parent.copy()
        forced = random.next_int(species.genome_size)
        for i in range(species.genome_size):
            if random.next_double_open() < cr or i == forced:
                genome[i] = parent[i] + sf * (best[i] - parent[i]) + sf * (other[i] - donor.genome[i])

        for i in range(species.genome_size):
            if genome[i] < species.min_gene(i):
                genome[i] = (species.min_gene(i) + parent[i]) / 2.0
            elif genome[i] > species.max_gene(i):
                genome[i] = (species.max_gene(i) + parent[i]) / 2.0
        return Individual(genome, species.new_fitness(), evaluated=False)


class SHADEExchanger:
    """Generation alternation, memory update and L-SHADE population reduction."""

    def __init__(self, variant: str = "SHADE"):
        variant = str(variant).upper()
        if variant not in VARIANTS:
            raise ConfigurationError(f"Unknown SHADE variant '{variant}'. Expected one of {VARIANTS}.")
        self.variant = variant

    def post_breeding_exchange_population(self, state: EvolutionState, children: Population) -> Population:
        subpop: SHADESubpopulation = state.population.subpops[0]
        parents = subpop.individuals
        kids = children.subpops[0].individuals

        success_sf: List[float] = []
        success_cr: List[float] = []
        dif: List[float] = []
        for i, child in enumerate(kids):
            if child.fitness.equivalent_to(parents[i].fitness):
                parents[i] = child.clone()
            elif child.fitness.better_than(parents[i].fitness):
                subpop.add_to_archive(parents[i], state.random)
                dif.append(abs(parents[i].fitness.fitness() - child.fitness.fitness()))
                parents[i] = child.clone()
                success_sf.append(float(subpop.pop_sf[i]))
                success_cr.append(float(subpop.pop_cr[i]))

        if success_sf:
            self.update_memory(subpop, success_sf, success_cr, dif)

        if self.variant == "LSHADE":
            self.reduce(state, subpop)
        return state.population

    @staticmethod
    def update_memory(subpop: SHADESubpopulation, success_sf: List[float], success_cr: List[float],
                      dif: List[float]) -> None:
        sf = np.asarray(success_sf, dtype=float)
        cr = np.asarray(success_cr, dtype=float)
        dif_arr = np.asarray(dif, dtype=float)
        total = dif_arr.sum()
        weights = dif_arr / total if total > 0 and np.isfinite(total) else np.full(sf.shape, 1.0 / sf.size)

        pos = subpop.memory_pos
        subpop.memory_sf[pos] = np.sum(weights * sf * sf) / np.sum(weights * sf)
        cr_weight = np.sum(weights * cr)
        if cr_weight == 0.0 or subpop.memory_cr[pos] == CR_TERMINAL:
            subpop.memory_cr[pos] = CR_TERMINAL
        else:
            subpop.memory_cr[pos] = np.sum(weights * cr * cr) / cr_weight
        subpop.memory_pos = (pos + 1) % subpop.memory_sf.shape[0]

    @staticmethod
    def next_population_size(subpop: SHADESubpopulation, evaluations: int, max_evaluations: int) -> int:
        slope = (subpop.min_size - subpop.initial_size) / float(max_evaluations)
        return round_half_up(slope * evaluations + subpop.initial_size)

    def reduce(self, state: EvolutionState, subpop: SHADESubpopulation) -> None:
        target = self.next_population_size(subpop, state.evaluations, state.max_evaluations)
        size = len(subpop.individuals)
        if size <= target:
            return
        reduction = size - target
        if size - reduction < subpop.min_size:
            reduction = size - subpop.min_size
        if reduction > 0:
            subpop.reduce_population_with_sort(reduction)


class SHADEEvolutionState(EvolutionState):
    """Generational loop: breed, evaluate children, exchange."""

    def __init__(
        self,
        species: FloatVectorSpecies,
        evaluator,
        population_size: int,
        max_evaluations: int,
        random: Randomizer,
        variant: str = "SHADE",
        pbest_rate: float = 0.11,
        arc_rate: float = 1.4,
        retries: int = 0,
        quit_on_run_complete: bool = True,
        verbose: bool = True,
    ):
        super().__init__(species, evaluator, population_size, max_evaluations, random, quit_on_run_complete, verbose)
        self.breeder = SHADEBreeder(pbest_rate, retries)
        self.exchanger = SHADEExchanger(variant)
        self.arc_rate = float(arc_rate)
        self.label = self.exchanger.variant
        self.missing_individuals = 0

    def start_fresh(self) -> None:
        self.message("Setting up")
        self.breeder.setup(self)
        generation_size = self.population_size
        if self.max_evaluations < generation_size:
            self.warning(
                f"Evaluation budget ({self.max_evaluations}) is smaller than the population size "
                f"({generation_size}); raising it to {generation_size}."
            )
            self.max_evaluations = generation_size
        elif self.max_evaluations % generation_size != 0:
            rounded = (self.max_evaluations // generation_size) * generation_size
            self.warning(
                f"Evaluation budget ({self.max_evaluations}) is not a multiple of the population size "
                f"({generation_size}); rounding down to {rounded}."
            )
            self.max_evaluations = rounded
        self.num_generations = self.max_evaluations // generation_size
        self.message(f"Generations will be {self.num_generations}")
        subpop = SHADESubpopulation(self.species, self.population_size, self.arc_rate)
        subpop.populate(self.random)
        self.population = Population([subpop])
        self.generation = 0
        self.missing_individuals = 0

    def evolve(self) -> int:
        if self.generation > 0:
            self.message(f"Generation {self.generation}")

        if self.generation == 0:
            self.evaluator.evaluate_population(self)
            self.track_best(self.population.subpops[0].individuals)

        if self.quit_on_run_complete and self.evaluator.run_complete(self):
            self.message("Found Ideal Individual")
            return R_SUCCESS

        if self.evaluations >= self.max_evaluations:
            return R_FAILURE

        children = self.breeder.breed_population(self)
        kids = children.subpops[0].individuals
        # Never breed past the evaluation budget; unevaluated trailing targets keep their parents
        remaining = self.max_evaluations - self.evaluations
        if len(kids) > remaining:
            del kids[remaining:]
        for child in kids:
            self.evaluator.evaluate(self, child, 0, 0)
        self.track_best(kids)
        self.population = self.exchanger.post_breeding_exchange_population(self, children)

        # L-SHADE spends fewer evaluations per generation; add generations as they accumulate
        size = len(self.population.subpops[0].individuals)
        if size < self.population_size:
            self.missing_individuals += self.population_size - size
            if self.missing_individuals >= self.population_size:
                self.num_generations += 1
                self.missing_individuals -= self.population_size

        self.record_generation()
        self.generation += 1
        return R_NOTDONE
