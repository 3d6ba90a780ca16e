"""Per-run brand decision making: picks a heuristic and delegates to it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .config import PERCEPTION_MAX, PERCEPTION_MIN
from .errors import ConfigurationError, NoAwarenessError
from .heuristics import HEURISTICS, HeuristicKind
from .randomizer import Randomizer
from .utils import check_matrix_bounds, check_row_sums, select_random_true, weighted_selection

DRIVER_MIN = 0.0
DRIVER_MAX = 1.0
DRIVERS_SUM = 1.0
DEFAULT_EMOTIONAL = 0.5
DEFAULT_INVOLVED = 0.5

NO_AWARENESS = "no_awareness"


@dataclass(frozen=True)
class BrandDecision:
    """Outcome of one brand choice; ``brand`` is ``None`` when nothing is known."""

    brand: Optional[int]
    heuristic: Optional[HeuristicKind] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.brand is not None


class DecisionMaking:
    """Chooses brands for one simulation run.

    Heuristic probabilities are derived per segment from involvement and
    emotional response: utility maximization for involved rational buyers,
    majority rule for involved emotional ones, elimination by aspects for
    uninvolved rational ones and satisficing for uninvolved emotional ones.
    """

    def __init__(
        self,
        random: Randomizer,
        drivers: Sequence[Sequence[float]],
        involved: Sequence[float] = (DEFAULT_INVOLVED,),
        emotional: Sequence[float] = (DEFAULT_EMOTIONAL,),
    ):
        self.random = random
        self.drivers = np.asarray(drivers, dtype=float)
        try:
            check_matrix_bounds(self.drivers, DRIVER_MIN, DRIVER_MAX, name="drivers")
            check_row_sums(self.drivers, DRIVERS_SUM, name="drivers")
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        n_segments = self.drivers.shape[0]
        involved = np.broadcast_to(np.asarray(involved, dtype=float), (n_segments,))
        emotional = np.broadcast_to(np.asarray(emotional, dtype=float), (n_segments,))
        self.heuristic_probabilities = np.column_stack(
            [
                involved * (1.0 - emotional),
                involved * emotional,
                (1.0 - involved) * (1.0 - emotional),
                (1.0 - involved) * emotional,
            ]
        )
        self.last_heuristic: Optional[HeuristicKind] = None

    def select_heuristic(self, segment: int) -> HeuristicKind:
        index = weighted_selection(self.heuristic_probabilities[segment], self.random.next_double())
        return HeuristicKind(index)

    def buy_one_brand(self, awareness, perceptions, segment: int) -> BrandDecision:
        return self._select(awareness, perceptions, segment, talk=False)

    def talk_about_brand(self, awareness, perceptions, segment: int) -> BrandDecision:
        return self._select(awareness, perceptions, segment, talk=True)

    def select_brand_strict(self, awareness, perceptions, segment: int, talk: bool = False) -> int:
        """Like :meth:`buy_one_brand` but raises when no brand is known."""
        decision = self._select(awareness, perceptions, segment, talk=talk)
        if not decision.ok:
            raise NoAwarenessError()
        return int(decision.brand)

    def buy_random(self, awareness) -> int:
        """Uniform pick among the known brands; -1 when none is known."""
        return select_random_true(awareness, self.random)

    def _select(self, awareness, perceptions, segment: int, talk: bool) -> BrandDecision:
        awareness = np.asarray(awareness, dtype=bool)
        known = np.flatnonzero(awareness)
        if known.size == 0:
            return BrandDecision(None, reason=NO_AWARENESS)
        check_matrix_bounds(perceptions, PERCEPTION_MIN, PERCEPTION_MAX, name="perceptions")
        if known.size == 1:
            self.last_heuristic = None
            return BrandDecision(int(known[0]))
        kind = self.select_heuristic(segment)
        self.last_heuristic = kind
        brand = HEURISTICS[kind].select_brand(
            awareness, perceptions, self.drivers[segment], self.random, talk=talk
        )
        return BrandDecision(int(brand), heuristic=kind)
