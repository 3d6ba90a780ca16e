"""
Market model: agents, social network, marketing plan and sales scheduling.

One :class:`MarketModel` is one simulation run. It owns its randomizer, its
agents and its scheduler, so runs never share mutable state. Each step:

1. Part of the agent order is reshuffled.
2. Every agent forgets brands (awareness decay), is exposed to the marketing
   plan and may talk about a brand to its network neighbours.
3. The sales scheduler converts the step's seasonality into purchases.
4. Awareness and carry-over are recorded.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import networkx as nx
import numpy as np
import pandas as pd

from .agents import ConsumerAgent, build_agents
from .config import SimulationConfig
from .decision_making import DecisionMaking
from .errors import SalesScheduleError
from .randomizer import Randomizer, derive_seed
from .sales import SalesScheduler, StepReport
from .sales_statistics import SalesStatistics
from .utils import weighted_selection

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_STOPPED = "stopped"


class MarketingPlan:
    """Per-brand, per-step probability of reaching a consumer."""

    def __init__(self, reach: np.ndarray, awareness_impact: float):
        self.reach = np.asarray(reach, dtype=float)
        self.awareness_impact = float(awareness_impact)

    def expose(self, agent: ConsumerAgent, step: int, random: Randomizer, scheduler: SalesScheduler) -> int:
        """Expose ``agent`` to every brand's campaign; returns brands newly learned."""
        gained = 0
        for brand in range(self.reach.shape[0]):
            if self.reach[brand, step] <= 0:
                continue
            if random.next_double() < self.reach[brand, step] and not agent.is_aware_of(brand):
                if random.next_double() <= self.awareness_impact:
                    gained += int(agent.gain_awareness(brand, scheduler))
        return gained


def build_social_network(config: SimulationConfig, seed: Optional[int] = None) -> Optional[nx.Graph]:
    """Create the consumer social network if enabled in the config."""
    if not config.USE_NETWORK_EFFECTS or config.N_AGENTS < 2:
        return None
    n = config.N_AGENTS
    degree = min(config.NETWORK_DEGREE, n - 1)
    if config.NETWORK_TYPE == "scale_free":
        return nx.barabasi_albert_graph(n=n, m=max(1, min(degree // 2 or 1, n - 1)), seed=seed)
    if config.NETWORK_TYPE == "random":
        return nx.gnp_random_graph(n=n, p=degree / float(n - 1), seed=seed)
    return nx.watts_strogatz_graph(n=n, k=max(2, degree), p=config.NETWORK_REWIRING_PROB, seed=seed)


@dataclass
class SimulationResult:
    """Outcome of one run; ``sales`` is ``[brand][segment][step]``."""

    run_id: Union[int, str]
    seed: int
    status: str
    ratio: float
    sales: np.ndarray
    awareness: np.ndarray
    carry_over: np.ndarray
    steps_completed: int
    error: Optional[str] = None
    diagnosis: Optional[Dict[str, Any]] = None
    reports: List[StepReport] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_COMPLETED

    def sales_by_brand_by_step(self, scaled: bool = True) -> np.ndarray:
        totals = self.sales.sum(axis=1).astype(float)
        return totals * self.ratio if scaled else totals

    def to_frame(self) -> pd.DataFrame:
        totals = self.sales_by_brand_by_step()
        n_brands, n_steps = totals.shape
        return pd.DataFrame(
            {
                "step": np.tile(np.arange(n_steps), n_brands),
                "brand": np.repeat(np.arange(n_brands), n_steps),
                "sales": totals.ravel(),
            }
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "seed": self.seed,
            "status": self.status,
            "ratio": self.ratio,
            "steps_completed": self.steps_completed,
            "sales_by_brand_by_step": self.sales_by_brand_by_step().tolist(),
            "error": self.error,
            "diagnosis": self.diagnosis,
        }


class MarketModel:
    """One shared-nothing simulation run."""

    def __init__(
        self,
        config: SimulationConfig,
        run_id: Union[int, str] = 0,
        seed: Optional[int] = None,
        verbose: Optional[bool] = None,
    ):
        self.config = config.validate()
        self.run_id = run_id
        self.verbose = config.VERBOSE if verbose is None else bool(verbose)
        self.seed = int(seed) if seed is not None else derive_seed(config.RANDOM_SEED, run_id)
        self.random = Randomizer(self.seed)

        self.agents: List[ConsumerAgent] = build_agents(config, self.random)
        self.network = build_social_network(config, seed=self.seed)
        if self.network is not None:
            for agent in self.agents:
                agent.neighbors = sorted(self.network.neighbors(agent.client_id))

        self.decision_making = DecisionMaking(
            self.random,
            config.DRIVERS,
            involved=config.segment_vector("INVOLVED"),
            emotional=config.segment_vector("EMOTIONAL"),
        )
        self.scheduler = SalesScheduler(
            seasonality=config.seasonality_array(),
            availability=config.availability_matrix(),
            checkpoint=config.CHECKPOINT_STEPS,
            market_share_by_segment=config.MARKET_SHARE_BY_SEGMENT,
            decision_cycle=config.DECISION_CYCLE,
            number_of_steps=config.N_STEPS,
            ratio=config.ratio,
            agents=self.agents,
        )
        self.statistics = SalesStatistics(config.N_BRANDS, config.n_segments, config.N_STEPS)
        self.marketing_plan = MarketingPlan(config.marketing_reach_matrix(), config.MARKETING_AWARENESS_IMPACT)

        self._awareness_decay = config.segment_vector("AWARENESS_DECAY")
        self._talking = config.segment_vector("TALKING_PROBABILITY")
        self._drivers = np.asarray(config.DRIVERS, dtype=float)
        self._order = list(range(len(self.agents)))
        self.reports: List[StepReport] = []
        self.current_step = 0

    def run(self, stop_event: Optional[threading.Event] = None) -> SimulationResult:
        """Run every step; scheduling failures end the run as ``failed``."""
        if self.verbose:
            print(f"[{self.run_id}] Starting simulation...")
        status = STATUS_COMPLETED
        error = None
        diagnosis = None
        self.scheduler.stop_event = stop_event
        try:
            for step in range(self.config.N_STEPS):
                if stop_event is not None and stop_event.is_set():
                    self.scheduler.request_stop()
                    status = STATUS_STOPPED
                    break
                report = self.step(step)
                if report.stopped:
                    status = STATUS_STOPPED
                    break
        except SalesScheduleError as exc:
            status = STATUS_FAILED
            error = str(exc)
            diagnosis = exc.diagnosis.to_dict() if exc.diagnosis is not None else None
            if self.verbose:
                print(f"[{self.run_id}] Sales scheduling failed at step {self.current_step}: {exc}")
        if self.verbose:
            print(f"[{self.run_id}] Simulation finished ({status}).")
        return SimulationResult(
            run_id=self.run_id,
            seed=self.seed,
            status=status,
            ratio=self.config.ratio,
            sales=self.statistics.sales.copy(),
            awareness=self.statistics.awareness.copy(),
            carry_over=self.statistics.carry_over.copy(),
            steps_completed=len(self.reports),
            error=error,
            diagnosis=diagnosis,
            reports=list(self.reports),
        )

    def step(self, step: int) -> StepReport:
        self.current_step = step
        self.random.partial_shuffle(self._order, self.config.AGENT_ORDER_SHUFFLE)
        for index in self._order:
            self._agent_step(self.agents[index], step)
        report = self.scheduler.assign_sales(step, self.random, self.statistics, self.decision_making)
        self.statistics.record_step(step, self.agents, self.scheduler.carry_over_sales)
        self.reports.append(report)
        return report

    def _agent_step(self, agent: ConsumerAgent, step: int) -> None:
        agent.decay_awareness(self.random, self._awareness_decay[agent.segment_id], self.scheduler)
        self.marketing_plan.expose(agent, step, self.random, self.scheduler)
        self._word_of_mouth(agent)

    def _word_of_mouth(self, agent: ConsumerAgent) -> None:
        talking = self._talking[agent.segment_id]
        if not agent.neighbors or talking <= 0 or agent.awareness_count == 0:
            return
        if self.random.next_double() >= talking:
            return
        decision = self.decision_making.talk_about_brand(agent.awareness, agent.perceptions, agent.segment_id)
        if not decision.ok:
            return
        brand = decision.brand
        drivers = self._drivers[agent.segment_id]
        for neighbor_id in agent.neighbors:
            neighbor = self.agents[neighbor_id]
            if not neighbor.is_aware_of(brand) and self.random.next_double() <= self.config.AWARENESS_IMPACT:
                neighbor.gain_awareness(brand, self.scheduler)
            attribute = weighted_selection(drivers, self.random.next_double())
            delta = agent.perceptions[brand, attribute] - neighbor.perceptions[brand, attribute]
            if delta != 0.0:
                neighbor.change_perception(brand, attribute, delta * self.config.WOM_PERCEPTION_SPEED)


def run_simulation(
    config: SimulationConfig,
    run_id: Union[int, str] = 0,
    seed: Optional[int] = None,
    stop_event: Optional[threading.Event] = None,
) -> SimulationResult:
    """Build and run one model."""
    return MarketModel(config, run_id=run_id, seed=seed).run(stop_event=stop_event)
