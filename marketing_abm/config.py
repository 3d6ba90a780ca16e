"""
Simulation and calibration configuration for the marketing ABM.

This module provides the configuration system for the agent-based marketing
diffusion model and for the evolutionary calibration framework built on top of
it. The configuration structure is designed to support:

1. **Reproducibility**: Every simulation run captures a complete configuration
   snapshot, enabling exact replication of results.

2. **Calibration**: Any scalar, per-segment, per-brand or per-step entry can be
   exposed to the optimizers through signature-style parameter names such as
   ``AWARENESS_DECAY_0`` or ``DRIVERS_1_2``.

3. **Scenario analysis**: Scenario profiles bundle named overrides that can be
   applied on top of the defaults from the CLI or from code.

Key design decisions:

- **Scaled population**: ``N_AGENTS`` simulated consumers stand for
  ``POPULATION_SIZE`` real consumers. One simulated purchase represents
  ``ratio = POPULATION_SIZE / N_AGENTS`` real purchases.

- **Broadcastable inputs**: Time series and matrices accept scalars or
  partially specified lists. They are expanded to full ``[brand][step]`` or
  ``[segment][brand]`` arrays on demand, so overrides stay short.

- **Fail fast**: ``validate()`` raises :class:`ConfigurationError` before any
  agent is created.

Usage
-----
Basic configuration:

    >>> config = SimulationConfig()
    >>> config = config.copy_with_overrides({"N_AGENTS": 500})

With a scenario profile:

    >>> from marketing_abm.config import get_scenario_profile, apply_scenario_profile
    >>> profile = get_scenario_profile("fast_forgetting")
    >>> config = apply_scenario_profile(SimulationConfig(), profile)
"""

from __future__ import annotations

import copy
import json
import os
from dataclasses import asdict, dataclass, field
from numbers import Number
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .errors import ConfigurationError

PERCEPTION_MIN = 0.0
PERCEPTION_MAX = 10.0
NETWORK_TYPES = ("scale_free", "random", "small_world")
ALGORITHMS = ("jfde", "shade", "lshade")


@dataclass
class SimulationConfig:
    """All tunable parameters of one marketing simulation."""

    # Population and horizon
    N_AGENTS: int = 1000
    POPULATION_SIZE: int = 100_000
    N_STEPS: int = 52
    N_BRANDS: int = 3
    N_ATTRIBUTES: int = 3
    SEGMENT_SIZES: Tuple[float, ...] = (0.5, 0.3, 0.2)
    RANDOM_SEED: Optional[int] = 42

    # Sales scheduling
    # Expected real sales per step; scalar or per-step list
    SEASONALITY: Any = 2000.0
    # Availability probability; scalar, per-brand list or [brand][step]
    AVAILABILITY: Any = 1.0
    MARKET_SHARE_BY_SEGMENT: Tuple[float, ...] = (0.5, 0.3, 0.2)
    DECISION_CYCLE: int = 4
    CHECKPOINT_STEPS: int = 4

    # Awareness [segment][brand]
    INITIAL_AWARENESS: List[List[float]] = field(
        default_factory=lambda: [
            [0.6, 0.4, 0.3],
            [0.5, 0.5, 0.2],
            [0.4, 0.3, 0.5],
        ]
    )
    AWARENESS_DECAY: Tuple[float, ...] = (0.01, 0.01, 0.01)

    # Perceptions [brand][attribute] on a [0, 10] scale
    BRAND_PERCEPTIONS: List[List[float]] = field(
        default_factory=lambda: [
            [7.0, 5.0, 6.0],
            [5.5, 7.5, 5.0],
            [6.0, 6.0, 6.5],
        ]
    )
    PERCEPTION_NOISE: float = 1.0

    # Decision making; drivers are [segment][attribute] and sum to 1 per segment
    DRIVERS: List[List[float]] = field(
        default_factory=lambda: [
            [0.5, 0.3, 0.2],
            [0.2, 0.5, 0.3],
            [0.3, 0.3, 0.4],
        ]
    )
    INVOLVED: Tuple[float, ...] = (0.5, 0.5, 0.5)
    EMOTIONAL: Tuple[float, ...] = (0.5, 0.5, 0.5)

    # Word of mouth
    USE_NETWORK_EFFECTS: bool = True
    NETWORK_TYPE: str = "scale_free"
    NETWORK_DEGREE: int = 4
    NETWORK_REWIRING_PROB: float = 0.1
    TALKING_PROBABILITY: Tuple[float, ...] = (0.05, 0.05, 0.05)
    AWARENESS_IMPACT: float = 0.3
    WOM_PERCEPTION_SPEED: float = 0.1

    # Marketing plan; reach probability scalar, per-brand list or [brand][step]
    MARKETING_REACH: Any = 0.02
    MARKETING_AWARENESS_IMPACT: float = 0.5

    # Fraction of the agent order shuffled every step
    AGENT_ORDER_SHUFFLE: float = 0.5
    VERBOSE: bool = False

    active_profile: Optional[str] = None

    def __post_init__(self) -> None:
        self.SEGMENT_SIZES = _coerce_tuple(self.SEGMENT_SIZES, self.SEGMENT_SIZES)
        self.MARKET_SHARE_BY_SEGMENT = _coerce_tuple(
            self.MARKET_SHARE_BY_SEGMENT, self.MARKET_SHARE_BY_SEGMENT
        )

    @property
    def n_segments(self) -> int:
        return len(self.SEGMENT_SIZES)

    @property
    def ratio(self) -> float:
        """Real consumers represented by each simulated agent."""
        return float(self.POPULATION_SIZE) / float(self.N_AGENTS)

    def seasonality_array(self) -> np.ndarray:
        return broadcast_array(self.SEASONALITY, (self.N_STEPS,), "SEASONALITY")

    def availability_matrix(self) -> np.ndarray:
        return broadcast_array(self.AVAILABILITY, (self.N_BRANDS, self.N_STEPS), "AVAILABILITY")

    def marketing_reach_matrix(self) -> np.ndarray:
        return broadcast_array(self.MARKETING_REACH, (self.N_BRANDS, self.N_STEPS), "MARKETING_REACH")

    def segment_vector(self, name: str) -> np.ndarray:
        return broadcast_array(getattr(self, name), (self.n_segments,), name)

    def normalize_drivers(self) -> None:
        """Rescale every segment's drivers to sum to one; an all-zero row becomes uniform."""
        drivers = broadcast_array(self.DRIVERS, (self.n_segments, self.N_ATTRIBUTES), "DRIVERS")
        totals = drivers.sum(axis=1, keepdims=True)
        uniform = np.full_like(drivers, 1.0 / self.N_ATTRIBUTES)
        with np.errstate(invalid="ignore", divide="ignore"):
            normalized = np.where(totals > 0, drivers / totals, uniform)
        self.DRIVERS = normalized.tolist()

    def expected_shape(self, name: str) -> Tuple[int, ...]:
        """Full array shape of a calibratable attribute (``()`` for scalars)."""
        shapes = {
            "SEASONALITY": (self.N_STEPS,),
            "AVAILABILITY": (self.N_BRANDS, self.N_STEPS),
            "MARKETING_REACH": (self.N_BRANDS, self.N_STEPS),
            "MARKET_SHARE_BY_SEGMENT": (self.n_segments,),
            "SEGMENT_SIZES": (self.n_segments,),
            "AWARENESS_DECAY": (self.n_segments,),
            "INVOLVED": (self.n_segments,),
            "EMOTIONAL": (self.n_segments,),
            "TALKING_PROBABILITY": (self.n_segments,),
            "INITIAL_AWARENESS": (self.n_segments, self.N_BRANDS),
            "DRIVERS": (self.n_segments, self.N_ATTRIBUTES),
            "BRAND_PERCEPTIONS": (self.N_BRANDS, self.N_ATTRIBUTES),
        }
        if name in shapes:
            return shapes[name]
        if not hasattr(self, name):
            raise KeyError(f"Unknown configuration attribute '{name}'.")
        if not isinstance(getattr(self, name), Number) or isinstance(getattr(self, name), bool):
            raise KeyError(f"Attribute '{name}' is not numeric and cannot be calibrated.")
        return ()

    def validate(self) -> "SimulationConfig":
        """Raise :class:`ConfigurationError` on inconsistent settings."""
        if self.N_AGENTS <= 0:
            raise ConfigurationError("N_AGENTS must be positive.")
        if self.POPULATION_SIZE < self.N_AGENTS:
            raise ConfigurationError("POPULATION_SIZE must be at least N_AGENTS.")
        if self.N_STEPS <= 0 or self.N_BRANDS <= 0 or self.N_ATTRIBUTES <= 0:
            raise ConfigurationError("N_STEPS, N_BRANDS and N_ATTRIBUTES must be positive.")
        if self.DECISION_CYCLE < 1:
            raise ConfigurationError("DECISION_CYCLE must be at least one step.")
        if self.CHECKPOINT_STEPS < 1:
            raise ConfigurationError("CHECKPOINT_STEPS must be at least one step.")
        if self.NETWORK_TYPE not in NETWORK_TYPES:
            raise ConfigurationError(
                f"Unknown NETWORK_TYPE '{self.NETWORK_TYPE}'. Expected one of {NETWORK_TYPES}."
            )

        sizes = np.asarray(self.SEGMENT_SIZES, dtype=float)
        if sizes.size == 0 or np.any(sizes < 0) or sizes.sum() <= 0:
            raise ConfigurationError("SEGMENT_SIZES must be non-negative with a positive sum.")
        shares = np.asarray(self.MARKET_SHARE_BY_SEGMENT, dtype=float)
        if shares.shape != sizes.shape:
            raise ConfigurationError("MARKET_SHARE_BY_SEGMENT needs one entry per segment.")
        if np.any(shares < 0) or shares.sum() <= 0:
            raise ConfigurationError("MARKET_SHARE_BY_SEGMENT must be non-negative with a positive sum.")

        try:
            seasonality = self.seasonality_array()
            availability = self.availability_matrix()
            reach = self.marketing_reach_matrix()
            segment_arrays = {
                name: self.segment_vector(name)
                for name in ("AWARENESS_DECAY", "INVOLVED", "EMOTIONAL", "TALKING_PROBABILITY")
            }
            awareness = broadcast_array(self.INITIAL_AWARENESS, (self.n_segments, self.N_BRANDS), "INITIAL_AWARENESS")
            drivers = broadcast_array(self.DRIVERS, (self.n_segments, self.N_ATTRIBUTES), "DRIVERS")
            perceptions = broadcast_array(
                self.BRAND_PERCEPTIONS, (self.N_BRANDS, self.N_ATTRIBUTES), "BRAND_PERCEPTIONS"
            )
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        if np.any(seasonality < 0):
            raise ConfigurationError("SEASONALITY must be non-negative.")
        _check_probability(availability, "AVAILABILITY")
        _check_probability(reach, "MARKETING_REACH")
        _check_probability(awareness, "INITIAL_AWARENESS")
        for name, values in segment_arrays.items():
            _check_probability(values, name)
        for name in ("AWARENESS_IMPACT", "MARKETING_AWARENESS_IMPACT", "AGENT_ORDER_SHUFFLE",
                     "NETWORK_REWIRING_PROB", "WOM_PERCEPTION_SPEED"):
            _check_probability(np.asarray(getattr(self, name), dtype=float), name)
        if np.any(drivers < 0) or np.any(drivers > 1):
            raise ConfigurationError("DRIVERS must lie in [0, 1].")
        if np.any(np.abs(drivers.sum(axis=1) - 1.0) > 1e-6):
            raise ConfigurationError("DRIVERS must sum to 1 for every segment.")
        if np.any(perceptions < PERCEPTION_MIN) or np.any(perceptions > PERCEPTION_MAX):
            raise ConfigurationError(
                f"BRAND_PERCEPTIONS must lie in [{PERCEPTION_MIN}, {PERCEPTION_MAX}]."
            )
        if self.PERCEPTION_NOISE < 0:
            raise ConfigurationError("PERCEPTION_NOISE must be non-negative.")
        if self.NETWORK_DEGREE < 1:
            raise ConfigurationError("NETWORK_DEGREE must be at least 1.")
        return self

    def snapshot(self) -> Dict[str, Any]:
        """Return a deep-copied, JSON-safe representation of the configuration."""
        return _json_safe(asdict(self))

    def copy_with_overrides(self, overrides: Optional[Dict[str, Any]] = None) -> "SimulationConfig":
        """Return a new config with the provided overrides merged in."""
        new_cfg = copy.deepcopy(self)
        if overrides:
            _apply_overrides(new_cfg, overrides)
        return new_cfg


@dataclass
class CalibrationConfig:
    """Settings of one calibration run of the simulator."""

    ALGORITHM: str = "shade"
    POPULATION_SIZE: int = 20
    MAX_EVALUATIONS: int = 400
    RANDOM_SEED: Optional[int] = 7

    # Differential evolution (JFDE)
    F: float = 0.5
    OUT_OF_BOUNDS_RETRIES: int = 0
    REPLACEMENT_PROBABILITY: Optional[float] = None
    DESELECTOR_TOURNAMENT_SIZE: int = 2
    DUPLICATE_RETRIES: int = 0

    # SHADE / L-SHADE
    PBEST_RATE: float = 0.11
    ARC_RATE: float = 1.4

    # Fitness
    MONTE_CARLO_RUNS: int = 1
    HOLD_OUT: float = 0.0
    TARGET_SALES: List[List[float]] = field(default_factory=list)

    # [{"name": "AWARENESS_DECAY_0", "min": 0.0, "max": 0.1}, ...]
    PARAMETERS: List[Dict[str, Any]] = field(default_factory=list)
    SIMULATION_OVERRIDES: Dict[str, Any] = field(default_factory=dict)
    VERBOSE: bool = True

    def validate(self) -> "CalibrationConfig":
        algorithm = str(self.ALGORITHM).strip().lower()
        if algorithm not in ALGORITHMS:
            raise ConfigurationError(f"Unknown calibration algorithm '{self.ALGORITHM}'. Expected one of {ALGORITHMS}.")
        self.ALGORITHM = algorithm
        if self.POPULATION_SIZE < 1:
            raise ConfigurationError("POPULATION_SIZE must be positive.")
        if self.MAX_EVALUATIONS < 1:
            raise ConfigurationError("MAX_EVALUATIONS must be positive.")
        if not self.PARAMETERS:
            raise ConfigurationError("At least one calibration parameter is required.")
        for entry in self.PARAMETERS:
            missing = {"name", "min", "max"} - set(entry)
            if missing:
                raise ConfigurationError(f"Calibration parameter {entry} is missing {sorted(missing)}.")
            if float(entry["min"]) > float(entry["max"]):
                raise ConfigurationError(f"Calibration parameter '{entry['name']}' has min > max.")
        if not self.TARGET_SALES:
            raise ConfigurationError("TARGET_SALES history is required for calibration.")
        if not 0.0 <= self.HOLD_OUT < 1.0:
            raise ConfigurationError("HOLD_OUT must lie in [0, 1).")
        if self.MONTE_CARLO_RUNS < 1:
            raise ConfigurationError("MONTE_CARLO_RUNS must be positive.")
        return self

    def snapshot(self) -> Dict[str, Any]:
        return _json_safe(asdict(self))

    def copy_with_overrides(self, overrides: Optional[Dict[str, Any]] = None) -> "CalibrationConfig":
        new_cfg = copy.deepcopy(self)
        if overrides:
            _apply_overrides(new_cfg, overrides)
        return new_cfg


def load_simulation_config(path: str | os.PathLike[str], base: Optional[SimulationConfig] = None) -> SimulationConfig:
    """Load a JSON file of overrides on top of ``base`` (or the defaults)."""
    payload = _read_json(path)
    overrides = payload.get("overrides", payload)
    if not isinstance(overrides, dict):
        raise ValueError(f"Simulation config {path} must hold a dictionary of overrides.")
    return (base or SimulationConfig()).copy_with_overrides(_upper_keys(overrides))


def load_calibration_config(path: str | os.PathLike[str]) -> CalibrationConfig:
    """Load a calibration definition; a ``simulation`` block holds model overrides."""
    payload = _upper_keys(_read_json(path))
    simulation = payload.pop("SIMULATION", None)
    if simulation is not None:
        if not isinstance(simulation, dict):
            raise ValueError(f"'simulation' must be a dictionary in {path}.")
        payload["SIMULATION_OVERRIDES"] = _upper_keys(simulation)
    return CalibrationConfig().copy_with_overrides(payload)


def _read_json(path: str | os.PathLike[str]) -> Dict[str, Any]:
    file_path = Path(path).expanduser().resolve()
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")
    with file_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"Configuration file {file_path} must contain a JSON object.")
    return payload


def _upper_keys(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {str(key).upper(): value for key, value in payload.items()}


def _apply_overrides(config: Any, overrides: Dict[str, Any]) -> None:
    """Recursively merge ``overrides`` into ``config``.

    Matrices and time series are replaced as a whole; dictionaries are deep
    merged and tuples keep tuple semantics.
    """
    for key, value in overrides.items():
        # Dotted notation updates nested dictionaries, e.g. "SIMULATION_OVERRIDES.N_AGENTS"
        if "." in key:
            top, *rest = key.split(".")
            if not hasattr(config, top):
                raise KeyError(f"Unknown configuration attribute '{top}' in override.")
            current = getattr(config, top)
            if not isinstance(current, dict):
                raise KeyError(f"Attribute '{top}' is not a dictionary; cannot set '{key}'.")
            ref = current
            for part in rest[:-1]:
                if part not in ref or not isinstance(ref[part], dict):
                    ref[part] = {}
                ref = ref[part]
            ref[rest[-1]] = copy.deepcopy(value)
            setattr(config, top, current)
            continue
        if not hasattr(config, key):
            raise KeyError(f"Unknown configuration attribute '{key}' in override.")
        current = getattr(config, key)
        if isinstance(current, dict) and isinstance(value, dict):
            setattr(config, key, _deep_merge_dict(current, value))
        elif isinstance(current, tuple):
            setattr(config, key, _coerce_tuple(value, current))
        else:
            setattr(config, key, copy.deepcopy(value))


def _deep_merge_dict(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries without mutating the originals."""
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge_dict(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _coerce_tuple(value: Any, template: Tuple[Any, ...]) -> Tuple[Any, ...]:
    """Ensure overrides targeting tuple parameters maintain tuple semantics."""
    if isinstance(value, tuple):
        return value
    if isinstance(value, (list, np.ndarray)):
        return tuple(np.asarray(value).tolist())
    length = len(template) or 1
    if isinstance(value, Number):
        return tuple(value for _ in range(length))
    return tuple(copy.deepcopy(value) for _ in range(length))


def broadcast_array(value: Any, shape: Tuple[int, ...], name: str) -> np.ndarray:
    """Expand a scalar, row or full array to ``shape``.

    A 1-D list whose length matches the first axis of a 2-D target is
    repeated along the second axis (``[brand]`` becomes ``[brand][step]``).
    """
    arr = np.asarray(value, dtype=float)
    if arr.shape == shape:
        return arr.copy()
    if arr.ndim == 0:
        return np.full(shape, float(arr))
    if len(shape) == 2 and arr.ndim == 1 and arr.shape[0] == shape[0]:
        return np.repeat(arr[:, None], shape[1], axis=1)
    raise ValueError(f"{name} has shape {arr.shape}; expected a scalar or shape {shape}.")


def _check_probability(values: np.ndarray, name: str) -> None:
    arr = np.asarray(values, dtype=float)
    if arr.size and (arr.min() < 0.0 or arr.max() > 1.0):
        raise ConfigurationError(f"{name} values must lie in [0, 1].")


def _json_safe(payload: Any) -> Any:
    if isinstance(payload, dict):
        return {key: _json_safe(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_json_safe(value) for value in payload]
    if isinstance(payload, np.ndarray):
        return payload.tolist()
    if isinstance(payload, np.generic):
        return payload.item()
    return payload


@dataclass(frozen=True)
class ScenarioProfile:
    """Reusable parameter bundle for scenario comparisons."""

    name: str
    description: str
    overrides: Dict[str, Any] = field(default_factory=dict)
    source: str = "built-in"

    def to_metadata(self) -> Dict[str, Any]:
        """Return a serializable summary for run artefacts."""
        return {
            "name": self.name,
            "description": self.description,
            "source": self.source,
            "overrides": copy.deepcopy(self.overrides),
        }


def apply_scenario_profile(config: SimulationConfig, profile: Optional[ScenarioProfile]) -> SimulationConfig:
    """Return a config with the profile overrides applied."""
    if profile is None:
        return config
    updated = config.copy_with_overrides(profile.overrides)
    updated.active_profile = profile.name
    return updated


def list_scenario_profiles() -> List[ScenarioProfile]:
    """Return the available built-in scenario profiles."""
    return list(SCENARIO_LIBRARY.values())


def get_scenario_profile(name: str) -> ScenarioProfile:
    """Fetch a built-in scenario profile by name (case-insensitive)."""
    normalized = name.strip().lower()
    for profile in SCENARIO_LIBRARY.values():
        if profile.name.lower() == normalized:
            return profile
    raise KeyError(f"Unknown scenario profile '{name}'. Available: {', '.join(SCENARIO_LIBRARY.keys())}")


def load_scenario_profile(path: str | os.PathLike[str]) -> ScenarioProfile:
    """Load a scenario profile definition from disk."""
    file_path = Path(path).expanduser().resolve()
    payload = _read_json(file_path)
    overrides = payload.get("overrides") or payload.get("parameters") or {}
    if not isinstance(overrides, dict):
        raise ValueError(f"Scenario file {file_path} must define an 'overrides' dictionary.")
    return ScenarioProfile(
        name=payload.get("name") or file_path.stem,
        description=payload.get("description", f"Custom scenario loaded from {file_path.name}"),
        overrides=overrides,
        source=payload.get("source", str(file_path)),
    )


SCENARIO_LIBRARY: Dict[str, ScenarioProfile] = {
    "baseline": ScenarioProfile(
        name="baseline",
        description="Default three-brand, three-segment market with light word of mouth.",
        overrides={},
    ),
    "fast_forgetting": ScenarioProfile(
        name="fast_forgetting",
        description=(
            "Consumers forget brands quickly. Useful to stress the checkpoint audit, "
            "since candidate pools shrink as awareness decays."
        ),
        overrides={
            "AWARENESS_DECAY": (0.08, 0.08, 0.08),
            "MARKETING_REACH": 0.05,
        },
    ),
    "word_of_mouth_off": ScenarioProfile(
        name="word_of_mouth_off",
        description="Disables the social network so awareness only comes from marketing.",
        overrides={"USE_NETWORK_EFFECTS": False},
    ),
    "constrained_distribution": ScenarioProfile(
        name="constrained_distribution",
        description="Brands are found on the shelf only 60% of the time.",
        overrides={"AVAILABILITY": 0.6},
    ),
    "small_market": ScenarioProfile(
        name="small_market",
        description="Small population for quick checks and calibration smoke runs.",
        overrides={
            "N_AGENTS": 200,
            "POPULATION_SIZE": 2000,
            "N_STEPS": 12,
            "SEASONALITY": 100.0,
            "DECISION_CYCLE": 2,
            "CHECKPOINT_STEPS": 4,
        },
    ),
}
