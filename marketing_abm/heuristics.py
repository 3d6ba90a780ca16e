"""
Brand-choice heuristics used by consumers when buying or talking.

Each heuristic is a stateless strategy object exposing ``select_brand``. The
caller passes everything the heuristic needs (awareness, perceptions, the
segment's driver weights and the run's randomizer), so one instance can be
shared by every agent of a run.

Notes
-----
In talk mode perceptions are reflected around the midpoint before choosing:
consumers preferentially discuss brands with extreme attribute values, both
very good and very bad. Values below 5 map to ``2 * (10 - v - 5)`` and values
above map to ``2 * (v - 5)``, so the transformed scale is again [0, 10].

When exactly one brand is known every heuristic returns it immediately without
drawing any random number.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from .config import PERCEPTION_MAX, PERCEPTION_MIN
from .errors import NoAwarenessError
from .randomizer import Randomizer
from .utils import normalize_min_max, select_random_true, weighted_random_order, weighted_selection

PERCEPTION_MIDDLE = 5.0
CUTOFF_DECREASE = 1.0


class HeuristicKind(Enum):
    UTILITY_MAXIMIZATION = 0
    MAJORITY_RULE = 1
    ELIMINATION_BY_ASPECTS = 2
    SATISFICING = 3

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    HeuristicKind.UTILITY_MAXIMIZATION: "UMAX",
    HeuristicKind.MAJORITY_RULE: "MRULE",
    HeuristicKind.ELIMINATION_BY_ASPECTS: "EBA",
    HeuristicKind.SATISFICING: "SAT",
}


def absolute_value_perceptions(perceptions: np.ndarray) -> np.ndarray:
    """Reflect perceptions below the midpoint for talk and post decisions."""
    perc = np.asarray(perceptions, dtype=float)
    return np.where(
        perc < PERCEPTION_MIDDLE,
        2.0 * (PERCEPTION_MAX - perc - PERCEPTION_MIDDLE),
        2.0 * (perc - PERCEPTION_MIDDLE),
    )


def _single_known_brand(awareness: np.ndarray) -> Optional[int]:
    known = np.flatnonzero(awareness)
    if known.size == 1:
        return int(known[0])
    if known.size == 0:
        raise NoAwarenessError()
    return None


def _draw_cutoffs(n_attributes: int, random: Randomizer, talk: bool) -> np.ndarray:
    cutoffs = np.empty(n_attributes, dtype=float)
    for i in range(n_attributes):
        if talk:
            # Cutoffs on the reflected [5, 10] scale, mapped back to [0, 10]
            value = PERCEPTION_MIDDLE + random.next_double() * (PERCEPTION_MAX - PERCEPTION_MIDDLE)
            cutoffs[i] = normalize_min_max(
                value, PERCEPTION_MIDDLE, PERCEPTION_MAX, PERCEPTION_MIN, PERCEPTION_MAX
            )
        else:
            cutoffs[i] = random.next_double() * PERCEPTION_MAX
    return cutoffs


class UtilityMaximization:
    """Softmax over the driver-weighted utility of the known brands."""

    kind = HeuristicKind.UTILITY_MAXIMIZATION

    def select_brand(self, awareness, perceptions, drivers, random: Randomizer, talk: bool = False) -> int:
        awareness = np.asarray(awareness, dtype=bool)
        single = _single_known_brand(awareness)
        if single is not None:
            return single
        perc = absolute_value_perceptions(perceptions) if talk else np.asarray(perceptions, dtype=float)
        utilities = perc @ np.asarray(drivers, dtype=float)
        # Shift by the max known utility before exponentiating
        shifted = utilities - utilities[awareness].max()
        prob = np.where(awareness, np.exp(shifted), 0.0)
        prob /= prob.sum()
        return weighted_selection(prob, random.next_double(), restricted=~awareness)


class MajorityRule:
    """Sequential pairwise duels, attribute by attribute."""

    kind = HeuristicKind.MAJORITY_RULE

    def select_brand(self, awareness, perceptions, drivers, random: Randomizer, talk: bool = False) -> int:
        awareness = np.asarray(awareness, dtype=bool)
        single = _single_known_brand(awareness)
        if single is not None:
            return single
        perc = absolute_value_perceptions(perceptions) if talk else np.asarray(perceptions, dtype=float)
        drivers = np.asarray(drivers, dtype=float)
        order = [int(b) for b in random.shuffle_indices(len(awareness)) if awareness[b]]
        champion = order[0]
        for challenger in order[1:]:
            champion = self._compare(champion, challenger, perc, drivers, random)
        return champion

    @staticmethod
    def _compare(first: int, second: int, perc: np.ndarray, drivers: np.ndarray, random: Randomizer) -> int:
        scores = np.zeros(2, dtype=float)
        a, b = perc[first], perc[second]
        scores[0] = drivers[a > b].sum() + drivers[a == b].sum() / 2.0
        scores[1] = drivers[a < b].sum() + drivers[a == b].sum() / 2.0
        winner = weighted_selection(scores, random.next_double())
        return first if winner == 0 else second


class EliminationByAspects:
    """Drop brands below per-attribute cutoffs, most important attribute first."""

    kind = HeuristicKind.ELIMINATION_BY_ASPECTS

    def select_brand(self, awareness, perceptions, drivers, random: Randomizer, talk: bool = False) -> int:
        awareness = np.asarray(awareness, dtype=bool)
        single = _single_known_brand(awareness)
        if single is not None:
            return single
        perc = absolute_value_perceptions(perceptions) if talk else np.asarray(perceptions, dtype=float)
        n_brands, n_attributes = perc.shape
        cutoffs = _draw_cutoffs(n_attributes, random, talk)
        attribute_order = weighted_random_order(list(np.asarray(drivers, dtype=float)), random)

        rejected = ~awareness
        finished = False
        while not finished:
            finished = True
            for attribute in attribute_order:
                rejected = rejected | (perc[:, attribute] < cutoffs[attribute])
                remaining = n_brands - int(rejected.sum())
                if remaining == 0:
                    cutoffs -= CUTOFF_DECREASE
                    rejected = ~awareness
                    finished = False
                    break
                if remaining == 1:
                    break
        return select_random_true(~rejected, random)


class Satisficing:
    """First brand, in random order, meeting every cutoff."""

    kind = HeuristicKind.SATISFICING

    def select_brand(self, awareness, perceptions, drivers, random: Randomizer, talk: bool = False) -> int:
        awareness = np.asarray(awareness, dtype=bool)
        single = _single_known_brand(awareness)
        if single is not None:
            return single
        perc = absolute_value_perceptions(perceptions) if talk else np.asarray(perceptions, dtype=float)
        cutoffs = _draw_cutoffs(perc.shape[1], random, talk)
        order = [int(b) for b in random.shuffle_indices(len(awareness)) if awareness[b]]
        while True:
            for brand in order:
                if np.all(perc[brand] >= cutoffs):
                    return brand
            cutoffs -= CUTOFF_DECREASE


HEURISTICS: Dict[HeuristicKind, object] = {
    HeuristicKind.UTILITY_MAXIMIZATION: UtilityMaximization(),
    HeuristicKind.MAJORITY_RULE: MajorityRule(),
    HeuristicKind.ELIMINATION_BY_ASPECTS: EliminationByAspects(),
    HeuristicKind.SATISFICING: Satisficing(),
}


def heuristic_labels() -> List[str]:
    return [kind.label for kind in HeuristicKind]
