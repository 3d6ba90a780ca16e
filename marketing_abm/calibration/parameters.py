"""Calibration parameters resolved once, when the calibration is set up.

A parameter name is a config attribute followed by its indices, e.g.
``AWARENESS_DECAY_0`` (segment 0) or ``DRIVERS_1_2`` (segment 1, attribute 2).
Parsing turns it into a :class:`ParameterTarget` so applying a genome never
has to inspect names again.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from ..config import SimulationConfig, broadcast_array
from ..errors import ConfigurationError


class TargetKind(Enum):
    SCALAR = 0
    VECTOR = 1
    MATRIX = 2


@dataclass(frozen=True)
class ParameterTarget:
    """Where a calibrated value lands in a :class:`SimulationConfig`."""

    kind: TargetKind
    attribute: str
    indices: Tuple[int, ...] = ()

    def apply(self, config: SimulationConfig, value: float) -> None:
        """Write ``value`` into ``config`` in place."""
        current = getattr(config, self.attribute)
        if self.kind is TargetKind.SCALAR:
            setattr(config, self.attribute, int(round(value)) if isinstance(current, int) else float(value))
            return
        full = broadcast_array(current, config.expected_shape(self.attribute), self.attribute)
        full[self.indices] = float(value)
        if isinstance(current, tuple):
            setattr(config, self.attribute, tuple(full.tolist()))
        else:
            setattr(config, self.attribute, full.tolist())


@dataclass(frozen=True)
class CalibrationParameter:
    name: str
    min_value: float
    max_value: float
    target: ParameterTarget

    @property
    def signature(self) -> str:
        return "_".join([self.target.attribute] + [str(i) for i in self.target.indices])


def parse_parameter(name: str, min_value: float, max_value: float, config: SimulationConfig) -> CalibrationParameter:
    """Resolve a signature-style name against ``config``."""
    tokens = name.strip().upper().split("_")
    # Longest attribute prefix whose remaining tokens are all integers
    for split in range(len(tokens), 0, -1):
        attribute = "_".join(tokens[:split])
        rest = tokens[split:]
        if not hasattr(config, attribute) or not all(t.isdigit() for t in rest):
            continue
        try:
            shape = config.expected_shape(attribute)
        except KeyError as exc:
            raise ConfigurationError(str(exc)) from exc
        indices = tuple(int(t) for t in rest)
        if len(indices) != len(shape):
            raise ConfigurationError(
                f"Parameter '{name}' needs {len(shape)} indices for {attribute} (shape {shape})."
            )
        for index, size in zip(indices, shape):
            if index >= size:
                raise ConfigurationError(f"Parameter '{name}' index {index} out of range (size {size}).")
        kind = (TargetKind.SCALAR, TargetKind.VECTOR, TargetKind.MATRIX)[len(shape)]
        if float(min_value) > float(max_value):
            raise ConfigurationError(f"Parameter '{name}' has min > max.")
        return CalibrationParameter(name, float(min_value), float(max_value), ParameterTarget(kind, attribute, indices))
    raise ConfigurationError(f"Unknown calibration parameter '{name}'.")


class ParameterSpace:
    """Maps genomes onto simulation configs."""

    def __init__(self, parameters: Sequence[CalibrationParameter], base_config: SimulationConfig):
        if not parameters:
            raise ConfigurationError("At least one calibration parameter is required.")
        self.parameters = list(parameters)
        self.base_config = base_config
        signatures = [p.signature for p in self.parameters]
        if len(set(signatures)) != len(signatures):
            raise ConfigurationError(f"Duplicated calibration parameters: {signatures}.")

    @classmethod
    def from_entries(cls, entries: Iterable[Dict[str, Any]], base_config: SimulationConfig) -> "ParameterSpace":
        parsed = [parse_parameter(e["name"], e["min"], e["max"], base_config) for e in entries]
        return cls(parsed, base_config)

    def __len__(self) -> int:
        return len(self.parameters)

    @property
    def min_genes(self) -> List[float]:
        return [p.min_value for p in self.parameters]

    @property
    def max_genes(self) -> List[float]:
        return [p.max_value for p in self.parameters]

    def names(self) -> List[str]:
        return [p.name for p in self.parameters]

    def to_config(self, genome: Sequence[float]) -> SimulationConfig:
        if len(genome) != len(self.parameters):
            raise ValueError(f"Genome has {len(genome)} genes; expected {len(self.parameters)}.")
        config = self.base_config.copy_with_overrides()
        for parameter, value in zip(self.parameters, genome):
            parameter.target.apply(config, float(value))
        # Driver rows must keep summing to one
        if any(p.target.attribute == "DRIVERS" for p in self.parameters):
            config.normalize_drivers()
        return config

    def describe(self, genome: Sequence[float]) -> Dict[str, float]:
        return {p.name: float(v) for p, v in zip(self.parameters, genome)}
