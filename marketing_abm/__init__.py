"""Public API for the marketing_abm package.

Agent-based model of brand awareness, word of mouth and purchase decisions,
with a sales scheduler that reproduces seasonal sales and evolutionary
calibration of the model against historical sales.
"""

__version__ = "1.0.0"

from .agents import ConsumerAgent, build_agents
from .calibration import CalibrationController, CalibrationResult, run_calibration
from .cli import run_cli
from .config import (
    CalibrationConfig,
    ScenarioProfile,
    SimulationConfig,
    apply_scenario_profile,
    get_scenario_profile,
    list_scenario_profiles,
    load_calibration_config,
    load_scenario_profile,
    load_simulation_config,
)
from .decision_making import BrandDecision, DecisionMaking
from .errors import (
    ConfigurationError,
    MarketingABMError,
    NoAwarenessError,
    NoCandidatesError,
    RemoteWorkerError,
    SalesScheduleError,
    ScheduleDiagnosis,
    SimulationError,
)
from .heuristics import HeuristicKind
from .model import MarketModel, MarketingPlan, SimulationResult, run_simulation
from .montecarlo import MonteCarloSummary, run_monte_carlo
from .randomizer import Randomizer
from .remote import RemoteWorkerPool
from .sales import SalesScheduler
from .sales_statistics import SalesStatistics

__all__ = [
    "__version__",
    "ConsumerAgent",
    "build_agents",
    "CalibrationController",
    "CalibrationResult",
    "run_calibration",
    "run_cli",
    "CalibrationConfig",
    "ScenarioProfile",
    "SimulationConfig",
    "apply_scenario_profile",
    "get_scenario_profile",
    "list_scenario_profiles",
    "load_calibration_config",
    "load_scenario_profile",
    "load_simulation_config",
    "BrandDecision",
    "DecisionMaking",
    "ConfigurationError",
    "MarketingABMError",
    "NoAwarenessError",
    "NoCandidatesError",
    "RemoteWorkerError",
    "SalesScheduleError",
    "ScheduleDiagnosis",
    "SimulationError",
    "HeuristicKind",
    "MarketModel",
    "MarketingPlan",
    "SimulationResult",
    "run_simulation",
    "MonteCarloSummary",
    "run_monte_carlo",
    "Randomizer",
    "RemoteWorkerPool",
    "SalesScheduler",
    "SalesStatistics",
]
