"""Consumer agents and population construction."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

import numpy as np

from .config import PERCEPTION_MAX, PERCEPTION_MIN, SimulationConfig
from .errors import SalesScheduleError
from .randomizer import Randomizer

if TYPE_CHECKING:
    from .decision_making import DecisionMaking
    from .sales import SalesScheduler


class ConsumerAgent:
    """A simulated consumer.

    Awareness and perceptions are mutated by marketing and word of mouth.
    The decision-cycle state is owned by :class:`~marketing_abm.sales.SalesScheduler`;
    agents only flip it when the scheduler tells them to.
    """

    def __init__(self, client_id: int, segment_id: int, awareness, perceptions):
        self._client_id = int(client_id)
        self._segment_id = int(segment_id)
        self.awareness = np.array(awareness, dtype=bool)
        self.perceptions = np.array(perceptions, dtype=float)
        n_brands = self.awareness.shape[0]
        self.in_decision_cycle = False
        self.brand_purchased = np.zeros(n_brands, dtype=bool)
        self.has_brand = np.zeros(n_brands, dtype=bool)
        self.neighbors: List[int] = []

    @property
    def client_id(self) -> int:
        return self._client_id

    @property
    def segment_id(self) -> int:
        return self._segment_id

    @property
    def awareness_count(self) -> int:
        return int(self.awareness.sum())

    def is_aware_of(self, brand: int) -> bool:
        return bool(self.awareness[brand])

    def gain_awareness(self, brand: int, scheduler: Optional["SalesScheduler"] = None) -> bool:
        """Become aware of ``brand``; re-enters the buying pool if it was empty-handed."""
        if self.awareness[brand]:
            return False
        if self.awareness_count == 0 and not self.in_decision_cycle and scheduler is not None:
            scheduler.add_candidate(self)
        self.awareness[brand] = True
        return True

    def decay_awareness(self, random: Randomizer, decay: float, scheduler: Optional["SalesScheduler"] = None) -> int:
        """Forget each known brand with probability ``decay``; returns brands lost."""
        lost = 0
        if self.awareness_count == 0:
            return lost
        for brand in np.flatnonzero(self.awareness):
            if random.next_double() <= decay:
                self.awareness[brand] = False
                lost += 1
                if self.awareness_count == 0 and not self.in_decision_cycle and scheduler is not None:
                    scheduler.remove_candidate(self)
        return lost

    def change_perception(self, brand: int, attribute: int, delta: float) -> None:
        value = self.perceptions[brand, attribute] + delta
        self.perceptions[brand, attribute] = min(max(value, PERCEPTION_MIN), PERCEPTION_MAX)

    def begin_decision_cycle(self) -> None:
        # Purchases become the inventory used until the next cycle
        self.in_decision_cycle = True
        self.has_brand = self.brand_purchased
        self.brand_purchased = np.zeros_like(self.has_brand)

    def end_decision_cycle(self) -> None:
        self.in_decision_cycle = False

    def buy_one_brand(self, decision_making: "DecisionMaking", step: int, filtered_awareness) -> int:
        decision = decision_making.buy_one_brand(filtered_awareness, self.perceptions, self._segment_id)
        if not decision.ok:
            raise SalesScheduleError(
                f"Error at sales scheduling: agent {self._client_id} has no eligible brand at step {step}."
            )
        self.brand_purchased[decision.brand] = True
        return int(decision.brand)

    def __repr__(self) -> str:
        return (
            f"ConsumerAgent(id={self._client_id}, segment={self._segment_id}, "
            f"aware={self.awareness.astype(int).tolist()})"
        )


def segment_counts(sizes, n_agents: int) -> np.ndarray:
    """Split ``n_agents`` by segment share using largest remainders."""
    shares = np.asarray(sizes, dtype=float)
    shares = shares / shares.sum()
    raw = shares * n_agents
    counts = np.floor(raw).astype(int)
    remainder = n_agents - int(counts.sum())
    if remainder > 0:
        order = np.argsort(-(raw - counts), kind="stable")
        counts[order[:remainder]] += 1
    return counts


def build_agents(config: SimulationConfig, random: Randomizer) -> List[ConsumerAgent]:
    """Create the agent population for one run."""
    rng = random.generator
    counts = segment_counts(config.SEGMENT_SIZES, config.N_AGENTS)
    initial_awareness = np.asarray(config.INITIAL_AWARENESS, dtype=float).reshape(
        config.n_segments, config.N_BRANDS
    )
    base_perceptions = np.asarray(config.BRAND_PERCEPTIONS, dtype=float).reshape(
        config.N_BRANDS, config.N_ATTRIBUTES
    )
    agents: List[ConsumerAgent] = []
    client_id = 0
    for segment, count in enumerate(counts):
        for _ in range(int(count)):
            awareness = rng.random(config.N_BRANDS) < initial_awareness[segment]
            noise = rng.normal(0.0, config.PERCEPTION_NOISE, size=base_perceptions.shape)
            perceptions = np.clip(base_perceptions + noise, PERCEPTION_MIN, PERCEPTION_MAX)
            agents.append(ConsumerAgent(client_id, segment, awareness, perceptions))
            client_id += 1
    return agents
