"""Dispatch of calibration jobs to remote worker hosts over HTTP."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests

from .config import CalibrationConfig
from .errors import RemoteWorkerError

DEFAULT_ATTEMPTS = 5
DEFAULT_DELAY = 3.0
DEFAULT_TIMEOUT = 30.0
JOB_ENDPOINT = "calibration"


@dataclass
class RemoteWorker:
    host: str
    job_id: Optional[str] = None
    response: Dict[str, Any] = field(default_factory=dict)

    @property
    def url(self) -> str:
        base = self.host if "://" in self.host else f"http://{self.host}"
        return f"{base.rstrip('/')}/{JOB_ENDPOINT}"


class RemoteWorkerPool:
    """Starts one calibration job per worker host.

    A host that cannot be reached after ``attempts`` tries is reported and
    dropped. If no host accepts the job, the peers already started are told to
    stop and :class:`RemoteWorkerError` is raised.
    """

    def __init__(
        self,
        hosts: Sequence[str],
        attempts: int = DEFAULT_ATTEMPTS,
        delay: float = DEFAULT_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        verbose: bool = True,
    ):
        if not hosts:
            raise ValueError("At least one worker host is required.")
        if attempts < 1:
            raise ValueError("attempts must be positive.")
        self.hosts = list(hosts)
        self.attempts = int(attempts)
        self.delay = float(delay)
        self.timeout = float(timeout)
        self.verbose = verbose
        self.started: List[RemoteWorker] = []
        self.failed_hosts: List[str] = []

    def _log(self, message: str) -> None:
        if self.verbose:
            print(f"[Remote] {message}")

    def _post_job(self, worker: RemoteWorker, payload: Dict[str, Any]) -> bool:
        for attempt in range(1, self.attempts + 1):
            try:
                response = requests.post(worker.url, json=payload, timeout=self.timeout)
                response.raise_for_status()
                worker.response = response.json() if response.content else {}
                worker.job_id = worker.response.get("id")
                return True
            except requests.exceptions.RequestException as exc:
                self._log(f"{worker.host}: attempt {attempt}/{self.attempts} failed ({exc})")
                if attempt < self.attempts and self.delay > 0:
                    time.sleep(self.delay)
        return False

    def start(self, config: CalibrationConfig, master: Optional[str] = None) -> List[RemoteWorker]:
        """POST the calibration job to every host; returns the workers that accepted it."""
        payload = {"config": config.snapshot(), "master": master, "workers": len(self.hosts)}
        for host in self.hosts:
            worker = RemoteWorker(host)
            if self._post_job(worker, payload):
                self.started.append(worker)
                self._log(f"{host}: job started")
            else:
                self.failed_hosts.append(host)
                self._log(f"{host}: dropped after {self.attempts} attempts")
        if not self.started:
            self.stop_all()
            raise RemoteWorkerError("No worker host accepted the calibration job.", self.failed_hosts)
        return list(self.started)

    def stop_all(self) -> List[str]:
        """Ask every started worker to cancel its job; returns the hosts that could not be reached."""
        unreachable = []
        for worker in self.started:
            url = worker.url if worker.job_id is None else f"{worker.url}/{worker.job_id}"
            try:
                requests.delete(url, timeout=self.timeout).raise_for_status()
            except requests.exceptions.RequestException as exc:
                self._log(f"{worker.host}: stop request failed ({exc})")
                unreachable.append(worker.host)
        self.started = []
        return unreachable
