"""Per-run sales and awareness statistics."""

from __future__ import annotations

from typing import Iterable

import numpy as np
import pandas as pd


class SalesStatistics:
    """Owns the ``[brand][segment][step]`` sales tensor written by the scheduler."""

    def __init__(self, n_brands: int, n_segments: int, n_steps: int):
        self.n_brands = n_brands
        self.n_segments = n_segments
        self.n_steps = n_steps
        self.sales = np.zeros((n_brands, n_segments, n_steps), dtype=np.int64)
        self.awareness = np.zeros((n_brands, n_segments, n_steps), dtype=float)
        self.carry_over = np.zeros(n_steps, dtype=float)

    def record_sale(self, brand: int, segment: int, step: int) -> None:
        self.sales[brand, segment, step] += 1

    def record_step(self, step: int, agents: Iterable, carry_over: float) -> None:
        """Snapshot the share of each segment aware of each brand."""
        aware = np.zeros((self.n_brands, self.n_segments), dtype=float)
        members = np.zeros(self.n_segments, dtype=float)
        for agent in agents:
            aware[:, agent.segment_id] += agent.awareness
            members[agent.segment_id] += 1
        with np.errstate(invalid="ignore", divide="ignore"):
            self.awareness[:, :, step] = np.where(members > 0, aware / members, 0.0)
        self.carry_over[step] = carry_over

    def sales_by_brand_by_step(self) -> np.ndarray:
        return self.sales.sum(axis=1)

    def to_frame(self, ratio: float = 1.0) -> pd.DataFrame:
        """Long-format table with one row per brand, segment and step."""
        brands, segments, steps = np.meshgrid(
            np.arange(self.n_brands), np.arange(self.n_segments), np.arange(self.n_steps), indexing="ij"
        )
        return pd.DataFrame(
            {
                "step": steps.ravel(),
                "brand": brands.ravel(),
                "segment": segments.ravel(),
                "sales": self.sales.ravel(),
                "scaled_sales": self.sales.ravel() * float(ratio),
                "awareness": self.awareness.ravel(),
            }
        ).sort_values(["step", "brand", "segment"], ignore_index=True)
