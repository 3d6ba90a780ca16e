"""Command-line entry points for the marketing diffusion model."""

from __future__ import annotations

import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .calibration import CalibrationController
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
from .errors import ConfigurationError, RemoteWorkerError
from .model import run_simulation
from .montecarlo import run_monte_carlo
from .remote import RemoteWorkerPool

TASKS = ("simulate", "montecarlo", "calibrate")
DEFAULT_RESULTS_DIR = "marketing_abm_results"


def _print_profile_catalog() -> None:
    catalog: List[ScenarioProfile] = sorted(list_scenario_profiles(), key=lambda p: p.name.lower())
    if not catalog:
        print("No built-in scenario profiles are registered.")
        return
    print("Available scenario profiles:")
    for profile in catalog:
        print(f"  - {profile.name}: {profile.description}")


def _write_config_dump(config: SimulationConfig, destination: str) -> Path:
    """Persist the resolved configuration to ``destination``."""
    target = Path(destination).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        json.dump(config.snapshot(), handle, indent=2, sort_keys=True)
    print(f"[CLI] Wrote configuration snapshot to {target}")
    return target


def _persist_config_snapshot(
    results_directory: Path,
    config: SimulationConfig,
    cli_args: Dict[str, Any],
    profiles: List[Dict[str, Any]],
) -> Path:
    """Store the configuration and profile metadata alongside the results."""
    payload = {
        "timestamp_utc": datetime.utcnow().isoformat(),
        "cli_args": cli_args,
        "scenario_profiles": profiles,
        "config": config.snapshot(),
    }
    path = results_directory / "config_snapshot.json"
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, sort_keys=True)
    return path


def _parse_cli_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Marketing diffusion ABM: simulation, Monte Carlo and calibration")
    parser.add_argument("--task", choices=TASKS, help="Select which workflow to run.")
    parser.add_argument("--config", help="JSON file of simulation config overrides.")
    parser.add_argument("--calibration", help="JSON calibration definition (required for --task calibrate).")
    parser.add_argument("--profile", help="Apply a named (or JSON file) scenario profile.")
    parser.add_argument(
        "--list-profiles",
        action="store_true",
        help="List available scenario profiles and exit (unless a task is also requested).",
    )
    parser.add_argument("--runs", type=int, help="Number of Monte Carlo repetitions.")
    parser.add_argument("--jobs", type=int, default=1, help="Worker processes for Monte Carlo repetitions.")
    parser.add_argument("--random-seed", type=int, help="Override the random seed.")
    parser.add_argument("--results-dir", help="Output directory for generated artefacts.")
    parser.add_argument("--dump-config", help="Write the resolved simulation config to this path.")
    parser.add_argument(
        "--workers",
        nargs="+",
        help="Remote worker hosts; with --task calibrate the job is dispatched to them instead of run locally.",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress progress messages.")
    return parser.parse_args(list(argv) if argv is not None else None)


def _resolve_profile(name: str) -> ScenarioProfile:
    if Path(name).expanduser().suffix == ".json":
        return load_scenario_profile(name)
    return get_scenario_profile(name)


def _run_simulate(config: SimulationConfig, results_dir: Path) -> Dict[str, Any]:
    result = run_simulation(config, run_id="cli")
    result.to_frame().to_csv(results_dir / "sales.csv", index=False)
    with (results_dir / "simulation_result.json").open("w", encoding="utf-8") as handle:
        json.dump(result.to_dict(), handle, indent=2, sort_keys=True, default=float)
    if not result.ok:
        print(f"[CLI] Simulation {result.status}: {result.error}")
    return result.to_dict()


def _run_montecarlo(config: SimulationConfig, runs: int, jobs: int, results_dir: Path, verbose: bool) -> Dict[str, Any]:
    summary = run_monte_carlo(config, runs, n_jobs=jobs, verbose=verbose)
    summary.to_frame().to_csv(results_dir / "montecarlo_sales.csv", index=False)
    payload = {
        "runs": runs,
        "completed": len(summary.completed),
        "failed": summary.failure_report(),
        "metadata": summary.metadata,
    }
    with (results_dir / "montecarlo_summary.json").open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, sort_keys=True, default=float)
    return payload


def _run_calibrate(
    calibration: CalibrationConfig,
    base_config: SimulationConfig,
    results_dir: Path,
    workers: Optional[List[str]],
) -> Dict[str, Any]:
    if workers:
        pool = RemoteWorkerPool(workers, verbose=calibration.VERBOSE)
        started = pool.start(calibration)
        return {"dispatched": [w.host for w in started], "failed_hosts": pool.failed_hosts}
    result = CalibrationController(calibration, base_config).run()
    path = result.save(str(results_dir))
    print(f"[CLI] Best score {result.training_score:.4f} after {result.evaluations} evaluations")
    print(f"[CLI] Wrote calibration result to {path}")
    return result.to_dict()


def run_cli(argv: Optional[Iterable[str]] = None, base_config: Optional[SimulationConfig] = None) -> Optional[Dict[str, Any]]:
    """
    Parse CLI arguments and dispatch the requested workflow.
    Returns the workflow result dictionary (if any), allowing programmatic reuse.
    """
    args = _parse_cli_args(argv)
    if args.list_profiles:
        _print_profile_catalog()
        if not args.task:
            return None
    if not args.task:
        print(f"No task selected. Use --task with one of {', '.join(TASKS)}.")
        print("Run with --help for details.")
        return None

    verbose = not args.quiet
    profiles: List[Dict[str, Any]] = []
    calibration: Optional[CalibrationConfig] = None
    try:
        config = base_config or SimulationConfig()
        if args.profile:
            profile = _resolve_profile(args.profile)
            config = apply_scenario_profile(config, profile)
            profiles.append(profile.to_metadata())
        if args.config:
            config = load_simulation_config(args.config, base=config)
        if args.random_seed is not None:
            config = config.copy_with_overrides({"RANDOM_SEED": args.random_seed})
        if args.task == "calibrate":
            if not args.calibration:
                print("[CLI] --task calibrate needs --calibration <file>.")
                return None
            calibration = load_calibration_config(args.calibration)
            if args.quiet:
                calibration.VERBOSE = False
            calibration.validate()
        config.validate()
    except (FileNotFoundError, ValueError, KeyError) as exc:
        print(f"[CLI] Configuration error: {exc}")
        return None

    if args.dump_config:
        _write_config_dump(config, args.dump_config)

    results_dir = Path(args.results_dir or DEFAULT_RESULTS_DIR).expanduser()
    results_dir.mkdir(parents=True, exist_ok=True)
    _persist_config_snapshot(results_dir, config, vars(args), profiles)

    if verbose:
        print("[CLI] Marketing ABM launcher starting")
        print(f"[CLI] Task: {args.task}")
    try:
        if args.task == "simulate":
            result = _run_simulate(config, results_dir)
        elif args.task == "montecarlo":
            result = _run_montecarlo(config, args.runs or 10, max(1, args.jobs), results_dir, verbose)
        else:
            result = _run_calibrate(calibration, config, results_dir, args.workers)
    except ConfigurationError as exc:
        print(f"[CLI] Configuration error: {exc}")
        return None
    except RemoteWorkerError as exc:
        print(f"[CLI] Remote dispatch failed: {exc} (hosts: {', '.join(exc.failed_hosts)})")
        return None

    if verbose:
        print(f"[CLI] Task completed. Results in {results_dir}")
    return result


def main(argv: Optional[Iterable[str]] = None) -> None:  # pragma: no cover - thin wrapper
    run_cli(argv=argv)


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = ["run_cli", "main"]
