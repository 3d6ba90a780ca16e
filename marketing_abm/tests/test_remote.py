"""Remote dispatch of calibration jobs (HTTP calls replaced by fakes)."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
PARENT = ROOT.parent
if str(PARENT) not in sys.path:
    sys.path.insert(0, str(PARENT))

from marketing_abm import remote
from marketing_abm.cli import run_cli
from marketing_abm.config import CalibrationConfig
from marketing_abm.errors import RemoteWorkerError
from marketing_abm.remote import RemoteWorker, RemoteWorkerPool


class FakeResponse:
    def __init__(self, status: int = 200, payload=None):
        self.status_code = status
        self._payload = payload or {}
        self.content = json.dumps(self._payload).encode()

    def json(self):
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeServer:
    """Records calls; hosts listed in ``down`` refuse every request."""

    def __init__(self, down=()):
        self.down = set(down)
        self.posts = []
        self.deletes = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        if any(host in url for host in self.down):
            raise requests.exceptions.ConnectionError(f"cannot reach {url}")
        return FakeResponse(payload={"id": f"job-{len(self.posts)}"})

    def delete(self, url, timeout=None):
        self.deletes.append(url)
        if any(host in url for host in self.down):
            raise requests.exceptions.ConnectionError(f"cannot reach {url}")
        return FakeResponse()


@pytest.fixture
def server(monkeypatch):
    fake = FakeServer()
    monkeypatch.setattr(remote.requests, "post", fake.post)
    monkeypatch.setattr(remote.requests, "delete", fake.delete)
    monkeypatch.setattr(remote.time, "sleep", lambda _: None)
    return fake


def _calibration() -> CalibrationConfig:
    return CalibrationConfig(
        PARAMETERS=[{"name": "AWARENESS_IMPACT", "min": 0.0, "max": 1.0}],
        TARGET_SALES=[[1.0, 2.0]],
        VERBOSE=False,
    )


def test_worker_url_adds_scheme() -> None:
    assert RemoteWorker("node-1:8080").url == "http://node-1:8080/calibration"
    assert RemoteWorker("https://node-2/").url == "https://node-2/calibration"


def test_pool_requires_hosts() -> None:
    with pytest.raises(ValueError):
        RemoteWorkerPool([])


def test_start_posts_job_to_every_host(server) -> None:
    pool = RemoteWorkerPool(["a:1", "b:2"], delay=0, verbose=False)
    started = pool.start(_calibration(), master="master:9")
    assert [w.host for w in started] == ["a:1", "b:2"]
    assert [w.job_id for w in started] == ["job-1", "job-2"]
    url, payload = server.posts[0]
    assert url == "http://a:1/calibration"
    assert payload["master"] == "master:9"
    assert payload["workers"] == 2
    assert payload["config"]["TARGET_SALES"] == [[1.0, 2.0]]


def test_unreachable_host_is_dropped_after_retries(server) -> None:
    server.down.add("b:2")
    pool = RemoteWorkerPool(["a:1", "b:2"], attempts=3, delay=0, verbose=False)
    started = pool.start(_calibration())
    assert [w.host for w in started] == ["a:1"]
    assert pool.failed_hosts == ["b:2"]
    assert sum("b:2" in url for url, _ in server.posts) == 3


def test_no_host_available_raises(server) -> None:
    server.down.update({"a:1", "b:2"})
    pool = RemoteWorkerPool(["a:1", "b:2"], attempts=2, delay=0, verbose=False)
    with pytest.raises(RemoteWorkerError) as excinfo:
        pool.start(_calibration())
    assert excinfo.value.failed_hosts == ["a:1", "b:2"]
    assert pool.started == []


def test_stop_all_cancels_started_jobs(server) -> None:
    pool = RemoteWorkerPool(["a:1", "b:2"], delay=0, verbose=False)
    pool.start(_calibration())
    server.down.add("b:2")
    unreachable = pool.stop_all()
    assert server.deletes == ["http://a:1/calibration/job-1", "http://b:2/calibration/job-2"]
    assert unreachable == ["b:2"]
    assert pool.started == []


def test_cli_dispatches_to_workers(server, tmp_path: Path) -> None:
    definition = tmp_path / "calibration.json"
    definition.write_text(
        json.dumps(
            {
                "parameters": [{"name": "AWARENESS_IMPACT", "min": 0.0, "max": 1.0}],
                "target_sales": [[1.0] * 52] * 3,
            }
        )
    )
    args = ["--task", "calibrate", "--calibration", str(definition), "--results-dir", str(tmp_path / "out"), "--quiet"]
    result = run_cli(args + ["--workers", "a:1", "b:2"])
    assert result == {"dispatched": ["a:1", "b:2"], "failed_hosts": []}

    server.down.update({"a:1", "b:2"})
    assert run_cli(args + ["--workers", "a:1", "b:2"]) is None
