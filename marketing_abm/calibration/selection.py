"""Deselectors: pick the individual a steady-state step may replace."""

from __future__ import annotations

from ..errors import ConfigurationError
from .individual import Subpopulation


class TournamentDeselector:
    """Worst of ``size`` uniformly drawn individuals."""

    def __init__(self, size: int = 2):
        if size < 1:
            raise ConfigurationError("Deselector tournament size must be at least 1.")
        self.size = int(size)

    def produce(self, subpop: Subpopulation, state) -> int:
        inds = subpop.individuals
        worst = state.random.next_int(len(inds))
        for _ in range(1, self.size):
            candidate = state.random.next_int(len(inds))
            if inds[worst].fitness.better_than(inds[candidate].fitness):
                worst = candidate
        return worst


class RandomDeselector:
    def produce(self, subpop: Subpopulation, state) -> int:
        return state.random.next_int(len(subpop.individuals))
