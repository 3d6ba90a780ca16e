"""Sales error scores between simulated and historical sales."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np

NO_HOLD_OUT = 0.0


@dataclass
class ScoreBean:
    """Per-brand error (percent) and its mean."""

    score_by_brand: np.ndarray
    score: float = field(init=False)

    def __post_init__(self) -> None:
        self.score_by_brand = np.asarray(self.score_by_brand, dtype=float)
        self.score = float(np.mean(self.score_by_brand)) if self.score_by_brand.size else math.nan

    @classmethod
    def average(cls, beans: Sequence["ScoreBean"]) -> "ScoreBean":
        """Average Monte Carlo repetitions brand by brand."""
        return cls(np.mean([b.score_by_brand for b in beans], axis=0))


def compute_interval(steps: int, training: bool = True, hold_out: float = NO_HOLD_OUT) -> Tuple[int, int]:
    """Return ``(begin, end)`` of the scored steps.

    The last ``ceil(steps * hold_out)`` steps form the hold-out interval and are
    excluded from training.
    """
    if hold_out == NO_HOLD_OUT:
        return 0, steps
    hold_out_steps = int(math.ceil(steps * hold_out))
    if training:
        return 0, steps - hold_out_steps
    return steps - hold_out_steps, steps


def point_error(observed, simulated) -> np.ndarray:
    """Absolute error as a percentage of the observed value."""
    observed = np.asarray(observed, dtype=float)
    simulated = np.asarray(simulated, dtype=float)
    return np.abs(observed - simulated) / np.maximum(np.abs(observed), 1.0) * 100.0


class SalesFitnessFunction:
    """Scores ``[brand][step]`` simulated sales against a history."""

    def __init__(self, target_sales: Sequence[Sequence[float]], hold_out: float = NO_HOLD_OUT):
        self.target = np.atleast_2d(np.asarray(target_sales, dtype=float))
        if not 0.0 <= hold_out < 1.0:
            raise ValueError("hold_out must lie in [0, 1).")
        self.hold_out = float(hold_out)

    @property
    def n_brands(self) -> int:
        return int(self.target.shape[0])

    @property
    def n_steps(self) -> int:
        return int(self.target.shape[1])

    def score_details(self, simulated, training: bool = True) -> ScoreBean:
        simulated = np.asarray(simulated, dtype=float)
        if simulated.shape != self.target.shape:
            raise ValueError(f"Simulated sales have shape {simulated.shape}; expected {self.target.shape}.")
        begin, end = compute_interval(self.n_steps, training, self.hold_out)
        errors = point_error(self.target[:, begin:end], simulated[:, begin:end])
        return ScoreBean(errors.mean(axis=1))

    def score(self, simulations: Sequence, training: bool = True) -> float:
        """Mean score over Monte Carlo repetitions."""
        beans: List[ScoreBean] = [self.score_details(sim, training) for sim in simulations]
        return ScoreBean.average(beans).score
