"""Minimal smoke test to keep the ABM regression-safe."""

from __future__ import annotations

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
PARENT = ROOT.parent
if str(PARENT) not in sys.path:
    sys.path.insert(0, str(PARENT))

from marketing_abm.cli import run_cli
from marketing_abm.config import SimulationConfig, apply_scenario_profile, get_scenario_profile
from marketing_abm.model import STATUS_COMPLETED, run_simulation


def _small_config() -> SimulationConfig:
    return apply_scenario_profile(SimulationConfig(), get_scenario_profile("small_market"))


def test_smoke_simulation() -> None:
    cfg = _small_config()
    result = run_simulation(cfg, run_id="smoke")
    assert result.status == STATUS_COMPLETED, result.error
    assert result.sales.shape == (cfg.N_BRANDS, cfg.n_segments, cfg.N_STEPS)
    assert result.steps_completed == cfg.N_STEPS
    # 100 real sales per step at ratio 10 means 10 simulated purchases
    assert result.sales[:, :, 0].sum() == 10


def test_smoke_cli(tmp_path: Path) -> None:
    out_dir = tmp_path / "cli_run"
    result = run_cli(["--task", "simulate", "--profile", "small_market", "--results-dir", str(out_dir), "--quiet"])
    assert result is not None
    assert result["status"] == STATUS_COMPLETED
    assert (out_dir / "sales.csv").exists(), "Sales table missing"
    snapshot = json.loads((out_dir / "config_snapshot.json").read_text())
    assert snapshot["config"]["N_AGENTS"] == 200
    assert snapshot["scenario_profiles"][0]["name"] == "small_market"


def test_cli_without_task_returns_none(capsys) -> None:
    assert run_cli([]) is None
    assert "No task selected" in capsys.readouterr().out
