"""Monte Carlo repetitions of the market model.

Repetitions are shared-nothing: each builds its own model from a pickled
config and its own seed, so they can run in worker processes. A failing
repetition is recorded as a failed outcome and never affects its siblings.
"""

from __future__ import annotations

import concurrent.futures
import multiprocessing as mp
import threading
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from .config import SimulationConfig
from .model import STATUS_COMPLETED, STATUS_FAILED, STATUS_STOPPED, SimulationResult, run_simulation
from .randomizer import derive_seed


@dataclass
class RunOutcome:
    run_index: int
    seed: int
    status: str
    error: Optional[str] = None
    result: Optional[SimulationResult] = None


@dataclass
class MonteCarloSummary:
    """Aggregated sales of the completed repetitions (real-population units)."""

    outcomes: List[RunOutcome]
    mean: np.ndarray
    ci_low: np.ndarray
    ci_high: np.ndarray
    confidence: float = 0.95
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def completed(self) -> List[RunOutcome]:
        return [o for o in self.outcomes if o.status == STATUS_COMPLETED]

    @property
    def failed(self) -> List[RunOutcome]:
        return [o for o in self.outcomes if o.status == STATUS_FAILED]

    def to_frame(self) -> pd.DataFrame:
        n_brands, n_steps = self.mean.shape
        return pd.DataFrame(
            {
                "brand": np.repeat(np.arange(n_brands), n_steps),
                "step": np.tile(np.arange(n_steps), n_brands),
                "mean_sales": self.mean.ravel(),
                "ci_low": self.ci_low.ravel(),
                "ci_high": self.ci_high.ravel(),
            }
        )

    def failure_report(self) -> List[Dict[str, Any]]:
        return [
            {"run_index": o.run_index, "seed": o.seed, "status": o.status, "error": o.error}
            for o in self.outcomes
            if o.status != STATUS_COMPLETED
        ]


def _run_monte_carlo_task(task) -> Dict[str, Any]:
    index, config, seed = task
    result = run_simulation(config, run_id=f"mc_{index}", seed=seed)
    return {"status": result.status, "error": result.error, "result": result}


def _execute_parallel_tasks(
    tasks: Iterable[Any],
    worker: Callable[[Any], Any],
    n_jobs: int,
    desc: str = "tasks",
) -> List[Any]:
    """Execute ``worker`` across ``tasks`` in a spawn-context process pool.

    Worker exceptions are recorded as failed results. The pool falls back to
    sequential execution when processes cannot be started.
    """
    tasks = list(tasks)
    if not tasks:
        return []
    n_jobs = max(1, int(n_jobs))
    if n_jobs == 1 or len(tasks) == 1:
        return [_guarded(worker, task) for task in tasks]
    print(f"[Parallel] Executing {desc} across {n_jobs} processes...")
    try:
        with ProcessPoolExecutor(max_workers=n_jobs, mp_context=mp.get_context("spawn")) as executor:
            futures = {executor.submit(worker, task): idx for idx, task in enumerate(tasks)}
            results: List[Any] = [None] * len(tasks)
            for fut in concurrent.futures.as_completed(futures):
                idx = futures[fut]
                try:
                    results[idx] = fut.result()
                except Exception as exc:
                    results[idx] = {"status": STATUS_FAILED, "error": f"{type(exc).__name__}: {exc}"}
            return results
    except (PermissionError, OSError) as exc:
        print(f"[Parallel] Falling back to sequential execution ({exc}).")
        return [_guarded(worker, task) for task in tasks]


def _guarded(worker: Callable[[Any], Any], task: Any) -> Any:
    try:
        return worker(task)
    except Exception as exc:
        return {"status": STATUS_FAILED, "error": f"{type(exc).__name__}: {exc}"}


def monte_carlo_seeds(config: SimulationConfig, n_runs: int) -> List[int]:
    return [derive_seed(config.RANDOM_SEED, f"mc_{i}") for i in range(n_runs)]


def run_monte_carlo(
    config: SimulationConfig,
    n_runs: int,
    n_jobs: int = 1,
    seeds: Optional[Sequence[int]] = None,
    stop_event: Optional[threading.Event] = None,
    confidence: float = 0.95,
    verbose: bool = True,
) -> MonteCarloSummary:
    """Run ``n_runs`` independent repetitions and summarize their sales."""
    config.validate()
    if n_runs < 1:
        raise ValueError("n_runs must be positive.")
    seeds = list(seeds) if seeds is not None else monte_carlo_seeds(config, n_runs)
    if len(seeds) < n_runs:
        raise ValueError(f"Expected {n_runs} seeds, got {len(seeds)}.")
    tasks = [(i, config, seeds[i]) for i in range(n_runs)]

    if verbose:
        print(f"[MonteCarlo] Running {n_runs} repetitions...")
    raw: List[Any] = []
    if n_jobs > 1 and stop_event is None:
        raw = _execute_parallel_tasks(tasks, _run_monte_carlo_task, n_jobs, desc="monte carlo runs")
    else:
        for task in tasks:
            if stop_event is not None and stop_event.is_set():
                raw.append({"status": STATUS_STOPPED, "error": "cancelled before start"})
                continue
            raw.append(_guarded(_run_monte_carlo_task, task))

    outcomes = [
        RunOutcome(
            run_index=i,
            seed=seeds[i],
            status=item.get("status", STATUS_FAILED),
            error=item.get("error"),
            result=item.get("result"),
        )
        for i, item in enumerate(raw)
    ]
    summary = summarize_outcomes(outcomes, config, confidence)
    if verbose:
        print(
            f"[MonteCarlo] {len(summary.completed)}/{n_runs} repetitions completed, "
            f"{len(summary.failed)} failed."
        )
    return summary


def summarize_outcomes(
    outcomes: List[RunOutcome], config: SimulationConfig, confidence: float = 0.95
) -> MonteCarloSummary:
    shape = (config.N_BRANDS, config.N_STEPS)
    completed = [o.result.sales_by_brand_by_step() for o in outcomes if o.status == STATUS_COMPLETED and o.result]
    if not completed:
        empty = np.full(shape, np.nan)
        return MonteCarloSummary(outcomes, empty, empty.copy(), empty.copy(), confidence)
    samples = np.stack(completed)
    mean = samples.mean(axis=0)
    if samples.shape[0] > 1:
        sem = stats.sem(samples, axis=0)
        half = sem * stats.t.ppf((1.0 + confidence) / 2.0, samples.shape[0] - 1)
        half = np.nan_to_num(half)
    else:
        half = np.zeros(shape)
    return MonteCarloSummary(
        outcomes=outcomes,
        mean=mean,
        ci_low=mean - half,
        ci_high=mean + half,
        confidence=confidence,
        metadata={"runs": len(outcomes), "completed": int(samples.shape[0])},
    )
