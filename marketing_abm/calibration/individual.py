"""Fitness, individuals, species and populations for the optimizers.

Individuals hold a fixed-length ``float`` genome plus a :class:`Fitness`.
Fitness never refers back to its individual: any rank or proximity query goes
through explicit population indices.
"""

from __future__ import annotations

import math
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigurationError
from ..randomizer import Randomizer


class Fitness:
    """Scalar fitness with a configurable direction.

    With ``maximize=True`` (the default used by the model evaluator, which
    stores ``-score``) larger values are better.
    """

    def __init__(self, value: Optional[float] = None, maximize: bool = True, ideal: bool = False):
        self.maximize = maximize
        self.value = self.worst_value(maximize) if value is None else float(value)
        self.ideal = ideal

    @staticmethod
    def worst_value(maximize: bool = True) -> float:
        return -math.inf if maximize else math.inf

    def fitness(self) -> float:
        return self.value

    def set_fitness(self, value: float, ideal: bool = False) -> None:
        self.value = float(value)
        self.ideal = ideal

    def better_than(self, other: "Fitness") -> bool:
        if self.maximize:
            return self.value > other.value
        return self.value < other.value

    def equivalent_to(self, other: "Fitness") -> bool:
        return self.value == other.value

    def clone(self) -> "Fitness":
        return Fitness(self.value, self.maximize, self.ideal)

    def __repr__(self) -> str:
        return f"Fitness({self.value:.6g})"


class Individual:
    """Vector-of-doubles individual."""

    def __init__(self, genome: Sequence[float], fitness: Optional[Fitness] = None, evaluated: bool = False):
        self.genome = np.array(genome, dtype=float)
        self.fitness = fitness if fitness is not None else Fitness()
        self.evaluated = evaluated

    def __len__(self) -> int:
        return int(self.genome.shape[0])

    def clone(self) -> "Individual":
        return Individual(self.genome.copy(), self.fitness.clone(), self.evaluated)

    def genome_key(self) -> Tuple[float, ...]:
        return tuple(float(g) for g in self.genome)

    def __repr__(self) -> str:
        genes = ", ".join(f"{g:.4g}" for g in self.genome)
        return f"Individual([{genes}], {self.fitness!r}, evaluated={self.evaluated})"


class FloatVectorSpecies:
    """Genome bounds and the factory for new random individuals."""

    def __init__(self, min_genes: Sequence[float], max_genes: Sequence[float], maximize: bool = True):
        self.min_genes = np.asarray(min_genes, dtype=float)
        self.max_genes = np.asarray(max_genes, dtype=float)
        if self.min_genes.shape != self.max_genes.shape or self.min_genes.ndim != 1:
            raise ConfigurationError("Gene bounds must be two vectors of equal length.")
        if self.min_genes.size == 0:
            raise ConfigurationError("Genome must have at least one gene.")
        if np.any(self.min_genes > self.max_genes):
            raise ConfigurationError("Every min gene must be <= its max gene.")
        self.maximize = maximize

    @property
    def genome_size(self) -> int:
        return int(self.min_genes.shape[0])

    def min_gene(self, i: int) -> float:
        return float(self.min_genes[i])

    def max_gene(self, i: int) -> float:
        return float(self.max_genes[i])

    def new_fitness(self) -> Fitness:
        return Fitness(maximize=self.maximize)

    def new_individual(self, random: Randomizer) -> Individual:
        genome = np.array(
            [lo + random.next_double() * (hi - lo) for lo, hi in zip(self.min_genes, self.max_genes)]
        )
        return Individual(genome, self.new_fitness())

    def clamp(self, individual: Individual) -> Individual:
        np.clip(individual.genome, self.min_genes, self.max_genes, out=individual.genome)
        return individual

    def in_range(self, individual: Individual) -> bool:
        genome = individual.genome
        return bool(np.all(genome >= self.min_genes) and np.all(genome <= self.max_genes))


class Subpopulation:
    """A list of individuals sharing one species."""

    def __init__(self, species: FloatVectorSpecies, size: int, individuals: Optional[List[Individual]] = None):
        self.species = species
        self.size = int(size)
        self.individuals: List[Individual] = list(individuals) if individuals is not None else []

    def __len__(self) -> int:
        return len(self.individuals)

    def __iter__(self) -> Iterator[Individual]:
        return iter(self.individuals)

    def populate(self, random: Randomizer) -> None:
        self.individuals = [self.species.new_individual(random) for _ in range(self.size)]


class Population:
    def __init__(self, subpops: List[Subpopulation]):
        self.subpops = subpops
