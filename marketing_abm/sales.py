"""
Sales scheduling: turns aggregate seasonality into individual purchases.

Every step the scheduler accrues the expected real sales for the step into a
carry-over balance and then draws buyers until the balance drops below half a
purchase unit (``ratio`` real sales per simulated purchase):

1. A segment is chosen by roulette over the market-share caps of the segments
   that still have candidates (shares are renormalized when some pools are
   empty).
2. A candidate is drawn uniformly from that segment's pool.
3. Brand availability is drawn independently per brand and intersected with
   the candidate's awareness. If nothing survives, the attempt fails and the
   attempt counter (initialized to the total pool size) decreases.
4. Otherwise the decision-making module picks the brand, the sale is recorded
   and the buyer leaves the pool for ``decision_cycle`` steps.

Every ``checkpoint`` steps the residual balance is audited. A balance above
half a purchase unit means the configured demand could not be met and the run
fails with a diagnosis of the live candidate pools.

Invariants
----------
- An agent id sits in at most one pool, the pool of its own segment.
- An agent in its decision cycle is never in a pool.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

import numpy as np

from .agents import ConsumerAgent
from .errors import NoCandidatesError, SalesScheduleError, ScheduleDiagnosis
from .randomizer import Randomizer
from .utils import roulette_selection

INVALID_CLIENT = -1
SLACK = 0.5


class CandidatePool:
    """Ordered set of agent ids with O(1) membership, insertion and removal."""

    def __init__(self) -> None:
        self._items: List[int] = []
        self._positions: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, client_id: int) -> bool:
        return client_id in self._positions

    def __iter__(self):
        return iter(list(self._items))

    def add(self, client_id: int) -> bool:
        if client_id in self._positions:
            return False
        self._positions[client_id] = len(self._items)
        self._items.append(client_id)
        return True

    def remove(self, client_id: int) -> bool:
        position = self._positions.pop(client_id, None)
        if position is None:
            return False
        last = self._items.pop()
        if last != client_id:
            self._items[position] = last
            self._positions[last] = position
        return True

    def get(self, index: int) -> int:
        return self._items[index]


@dataclass
class StepReport:
    """Outcome of :meth:`SalesScheduler.assign_sales` for one step."""

    step: int
    sales: int
    failed_attempts: int
    carry_over_sales: float
    skipped: bool
    stopped: bool = False


class SalesScheduler:
    """Assigns purchases to agents step by step."""

    def __init__(
        self,
        seasonality: Sequence[float],
        availability,
        checkpoint: int,
        market_share_by_segment: Sequence[float],
        decision_cycle: int,
        number_of_steps: int,
        ratio: float,
        agents: Sequence[ConsumerAgent],
    ):
        self.seasonality = np.asarray(seasonality, dtype=float)
        self.availability = np.atleast_2d(np.asarray(availability, dtype=float))
        self.checkpoint = int(checkpoint)
        self.market_share = np.asarray(market_share_by_segment, dtype=float)
        self.decision_cycle = int(decision_cycle)
        self.number_of_steps = int(number_of_steps)
        self.ratio = float(ratio)
        self.agents = list(agents)
        self.carry_over_sales = 0.0
        self.enabled: List[CandidatePool] = [CandidatePool() for _ in range(len(self.market_share))]
        self.disabled_until: Dict[int, List[int]] = {}
        self.sales_history_record: Optional[List[Set[int]]] = None
        self._test = False
        self._stop_requested = False
        self.stop_event: Optional[threading.Event] = None
        self._prepare_agents()

    def _prepare_agents(self) -> None:
        for agent in self.agents:
            if agent.awareness_count > 0 and not agent.in_decision_cycle:
                self.enabled[agent.segment_id].add(agent.client_id)

    # ------------------------------------------------------------------
    # Pool maintenance used by agents
    # ------------------------------------------------------------------
    def add_candidate(self, agent: ConsumerAgent) -> None:
        self.enabled[agent.segment_id].add(agent.client_id)

    def remove_candidate(self, agent: ConsumerAgent) -> None:
        self.enabled[agent.segment_id].remove(agent.client_id)

    def candidate_count(self) -> int:
        return sum(len(pool) for pool in self.enabled)

    # ------------------------------------------------------------------
    # Test support and cancellation
    # ------------------------------------------------------------------
    def enable_test(self) -> None:
        """Record the ids of every buyer per step."""
        self._test = True
        self.sales_history_record = [set() for _ in range(self.number_of_steps)]

    def request_stop(self) -> None:
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested or (self.stop_event is not None and self.stop_event.is_set())

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def assign_sales(self, step: int, random: Randomizer, statistics, decision_making) -> StepReport:
        """Place this step's purchases and update the statistics tensor in place."""
        self.carry_over_sales += float(self.seasonality[step])
        skip = False
        stopped = False
        sales = 0
        failed = 0
        disabled: List[int] = []
        attempts = self.candidate_count()

        while not skip and self.carry_over_sales >= self.ratio * SLACK:
            if self.stop_requested:
                stopped = True
                break
            buyer = self._assign_sale(random)
            if buyer == INVALID_CLIENT:
                skip = True
                continue
            agent = self.agents[buyer]
            available = random.bernoulli(self.availability[:, step])
            filtered = available & agent.awareness
            if not filtered.any():
                failed += 1
                attempts -= 1
                if attempts <= 0:
                    skip = True
                continue
            brand = agent.buy_one_brand(decision_making, step, filtered)
            if self._test and not filtered[brand]:
                raise SalesScheduleError(
                    f"Availability failed for brand {brand} at step {step}. "
                    f"Availability: {available.tolist()}. Awareness: {agent.awareness.tolist()}."
                )
            statistics.record_sale(brand, agent.segment_id, step)
            self.enabled[agent.segment_id].remove(buyer)
            disabled.append(buyer)
            self.carry_over_sales -= self.ratio
            sales += 1
            if self._test:
                self.sales_history_record[step].add(agent.client_id)

        diagnosis = None
        if (
            not stopped
            and step > 0
            and step % self.checkpoint == 0
            and self.carry_over_sales > self.ratio * SLACK
        ):
            diagnosis = self.diagnose(step)
        self._end_step(step, disabled)
        if diagnosis is not None:
            base = (
                f"Sales scheduled for checkpoint at step {step} failed to be accurate "
                f"(carry over {self.carry_over_sales:.2f} > {self.ratio * SLACK:.2f}). "
            )
            if diagnosis.no_candidates:
                raise NoCandidatesError(base + diagnosis.describe(), diagnosis)
            raise SalesScheduleError(base + diagnosis.describe(), diagnosis)
        return StepReport(
            step=step,
            sales=sales,
            failed_attempts=failed,
            carry_over_sales=self.carry_over_sales,
            skipped=skip,
            stopped=stopped,
        )

    def _assign_sale(self, random: Randomizer) -> int:
        roll = random.next_double()
        with_candidates = [s for s, pool in enumerate(self.enabled) if len(pool) > 0]
        if not with_candidates:
            return INVALID_CLIENT
        if len(with_candidates) < len(self.enabled):
            shares = self.market_share[with_candidates]
            total = shares.sum()
            if total <= 0:
                return INVALID_CLIENT
            index = roulette_selection(shares / total, roll)
            segment = with_candidates[index] if index >= 0 else INVALID_CLIENT
        else:
            segment = roulette_selection(self.market_share / self.market_share.sum(), roll)
        if segment == INVALID_CLIENT:
            return INVALID_CLIENT
        pool = self.enabled[segment]
        return pool.get(random.next_int(len(pool)))

    def _end_step(self, step: int, disabled: List[int]) -> None:
        comeback = step + self.decision_cycle
        if comeback < self.number_of_steps and disabled:
            self.disabled_until.setdefault(comeback, []).extend(disabled)
        for client_id in disabled:
            self.agents[client_id].begin_decision_cycle()
        for client_id in self.disabled_until.pop(step, []):
            agent = self.agents[client_id]
            agent.end_decision_cycle()
            if agent.awareness_count > 0:
                self.enabled[agent.segment_id].add(client_id)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def diagnose(self, step: int) -> ScheduleDiagnosis:
        """Summarize the live pools to explain unplaced sales."""
        n_brands = self.availability.shape[0]
        awareness = np.zeros(n_brands, dtype=float)
        total = 0
        for pool in self.enabled:
            for client_id in pool:
                awareness += self.agents[client_id].awareness
                total += 1
        if total > 0:
            awareness /= total
        return ScheduleDiagnosis(
            step=step,
            carry_over_sales=self.carry_over_sales,
            ratio=self.ratio,
            decision_cycle=self.decision_cycle,
            total_candidates=total,
            total_agents=len(self.agents),
            empty_segments=[s for s, pool in enumerate(self.enabled) if len(pool) == 0],
            average_awareness=awareness.tolist(),
            availability=self.availability[:, step].tolist(),
        )

    def check_invariants(self) -> List[str]:
        """Return a description of every pool invariant violation (empty when sound)."""
        problems: List[str] = []
        seen: Dict[int, int] = {}
        for segment, pool in enumerate(self.enabled):
            for client_id in pool:
                if client_id in seen:
                    problems.append(f"agent {client_id} in pools {seen[client_id]} and {segment}")
                seen[client_id] = segment
                agent = self.agents[client_id]
                if agent.segment_id != segment:
                    problems.append(f"agent {client_id} of segment {agent.segment_id} in pool {segment}")
                if agent.in_decision_cycle:
                    problems.append(f"agent {client_id} in pool {segment} during its decision cycle")
        for comeback, client_ids in self.disabled_until.items():
            for client_id in client_ids:
                if client_id in seen:
                    problems.append(f"agent {client_id} pooled while scheduled to return at step {comeback}")
        return problems
