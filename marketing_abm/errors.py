"""Exception hierarchy for the marketing ABM and its calibration framework."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class MarketingABMError(Exception):
    """Root of every error raised by the package."""


class ConfigurationError(MarketingABMError, ValueError):
    """Invalid simulation or optimizer configuration (fatal at setup time)."""


class SimulationError(MarketingABMError):
    """A single simulation run could not complete."""


@dataclass
class ScheduleDiagnosis:
    """Live-state snapshot captured when a checkpoint audit fails."""

    step: int
    carry_over_sales: float
    ratio: float
    decision_cycle: int
    total_candidates: int
    total_agents: int
    empty_segments: List[int] = field(default_factory=list)
    average_awareness: List[float] = field(default_factory=list)
    availability: List[float] = field(default_factory=list)

    @property
    def no_candidates(self) -> bool:
        return self.total_candidates == 0

    def describe(self) -> str:
        if self.no_candidates:
            return (
                f"Empty candidate list at step {self.step}. Buying decision cycle value: "
                f"{self.decision_cycle}. Also, awareness decay could be too high."
            )
        awareness = ", ".join(f"{value:.4f}" for value in self.average_awareness)
        availability = ", ".join(f"{value:.4f}" for value in self.availability)
        return (
            f"Unable to assign {self.carry_over_sales:.2f} pending sales at step {self.step} "
            f"(ratio {self.ratio:.2f}). Average awareness by brand: [{awareness}]. "
            f"Availability by brand: [{availability}]. Decision cycle: {self.decision_cycle}. "
            f"Candidates: {self.total_candidates}/{self.total_agents}. "
            f"Empty segments: {self.empty_segments}."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "carry_over_sales": self.carry_over_sales,
            "ratio": self.ratio,
            "decision_cycle": self.decision_cycle,
            "total_candidates": self.total_candidates,
            "total_agents": self.total_agents,
            "empty_segments": list(self.empty_segments),
            "average_awareness": list(self.average_awareness),
            "availability": list(self.availability),
        }


class SalesScheduleError(SimulationError):
    """Seasonality could not be converted into agent purchases."""

    def __init__(self, message: str, diagnosis: Optional[ScheduleDiagnosis] = None):
        super().__init__(message)
        self.diagnosis = diagnosis


class NoCandidatesError(SalesScheduleError):
    """Every segment pool was empty when pending sales had to be placed."""


class NoAwarenessError(SimulationError):
    """A brand was requested from an agent that knows no brand."""

    def __init__(self, client_id: Optional[int] = None):
        message = "Agent is not aware of any brand."
        if client_id is not None:
            message = f"Agent {client_id} is not aware of any brand."
        super().__init__(message)
        self.client_id = client_id


class RemoteWorkerError(MarketingABMError):
    """No remote calibration worker could be reached."""

    def __init__(self, message: str, failed_hosts: Optional[List[str]] = None):
        super().__init__(message)
        self.failed_hosts = list(failed_hosts or [])
