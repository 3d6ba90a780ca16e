"""Weighted-selection and numeric helpers for the marketing ABM."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

import numpy as np


def normalize_min_max(value: float, old_min: float, old_max: float, new_min: float, new_max: float) -> float:
    """Linearly map ``value`` from ``[old_min, old_max]`` onto ``[new_min, new_max]``."""
    span = old_max - old_min
    if span == 0:
        return new_min
    return (value - old_min) / span * (new_max - new_min) + new_min


def roulette_selection(weights: Sequence[float], roll: float) -> int:
    """Return the slot of a cumulative wheel hit by ``roll`` in [0, 1).

    Weights are expected to sum to one. Rounding residue is absorbed by the
    last positive slot.
    """
    cumulative = 0.0
    last_positive = -1
    for index, weight in enumerate(weights):
        if weight <= 0:
            continue
        last_positive = index
        cumulative += weight
        if roll < cumulative:
            return index
    return last_positive


def weighted_selection(
    weights: Sequence[float],
    roll: float,
    restricted: Optional[Sequence[bool]] = None,
) -> int:
    """Pick an index with probability proportional to its weight.

    ``restricted`` marks indices that may never be picked. When all eligible
    weights are zero the first eligible index wins.
    """
    values = np.asarray(weights, dtype=float)
    eligible = np.ones(values.shape[0], dtype=bool)
    if restricted is not None:
        eligible &= ~np.asarray(restricted, dtype=bool)
    if not eligible.any():
        raise ValueError("No eligible index for weighted selection.")
    masked = np.where(eligible, np.clip(values, 0.0, None), 0.0)
    total = float(masked.sum())
    if total <= 0:
        return int(np.flatnonzero(eligible)[0])
    return roulette_selection(masked / total, roll)


def weighted_random_order(weights: Sequence[float], random) -> List[int]:
    """Indices ordered by successive weighted draws without replacement."""
    remaining = list(range(len(weights)))
    order: List[int] = []
    while remaining:
        choice = weighted_selection([weights[i] for i in remaining], random.next_double())
        order.append(remaining.pop(choice))
    return order


def select_random_true(flags: Sequence[bool], random) -> int:
    """Uniformly pick one index whose flag is set; -1 when none is."""
    candidates = np.flatnonzero(np.asarray(flags, dtype=bool))
    if candidates.size == 0:
        return -1
    if candidates.size == 1:
        return int(candidates[0])
    return int(candidates[random.next_int(candidates.size)])


def check_matrix_bounds(matrix: Any, low: float, high: float, name: str = "matrix") -> None:
    """Raise ``ValueError`` when any entry of ``matrix`` falls outside ``[low, high]``."""
    arr = np.asarray(matrix, dtype=float)
    if arr.size and (arr.min() < low or arr.max() > high):
        raise ValueError(f"{name} values must lie in [{low}, {high}].")


def check_row_sums(matrix: Any, expected: float, name: str = "matrix", tol: float = 1e-6) -> None:
    """Raise ``ValueError`` when a row of ``matrix`` does not add up to ``expected``."""
    arr = np.atleast_2d(np.asarray(matrix, dtype=float))
    sums = arr.sum(axis=1)
    bad = np.flatnonzero(np.abs(sums - expected) > tol)
    if bad.size:
        raise ValueError(f"{name} rows {bad.tolist()} do not sum to {expected}.")
