from __future__ import annotations

import threading
import time

import allure
import pytest
from fastapi.testclient import TestClient

from deploy_worker.api import create_app
from deploy_worker.config import Settings, WorkerSettings
from deploy_worker.models import DeploymentJobCreate, DeploymentStatus
from deploy_worker.service import DeploymentWorker, build_worker
from deploy_worker.storage import DeploymentRepository, JobStoreError
from deploy_worker.worker import PollScheduler

pytestmark = [
    allure.epic("Deployment Worker"),
    allure.feature("Control Surface"),
]


@pytest.fixture()
def worker(repository: DeploymentRepository, runner) -> DeploymentWorker:
    settings = Settings(worker=WorkerSettings(poll_interval_ms=60_000, graceful_shutdown_seconds=5))
    built = build_worker(settings, repository)
    built.executor.runner = runner
    return built


def test_health_reports_polling_while_app_is_running(worker: DeploymentWorker) -> None:
    with TestClient(create_app(worker)) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "polling": True}
    assert not worker.scheduler.is_running


def test_health_reports_not_polling_when_scheduler_is_off(worker: DeploymentWorker) -> None:
    with TestClient(create_app(worker, start_polling=False)) as client:
        response = client.get("/health")

    assert response.json() == {"status": "healthy", "polling": False}


def test_trigger_with_no_jobs(worker: DeploymentWorker) -> None:
    with TestClient(create_app(worker, start_polling=False)) as client:
        response = client.post("/trigger")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "No pending jobs or removals found"}


def test_trigger_runs_one_job(
    worker: DeploymentWorker,
    repository: DeploymentRepository,
    runner,
) -> None:
    repository.create_job(
        DeploymentJobCreate(
            job_id="J1",
            repository_url="https://example.com/r.git",
            branch="feature-x",
            stage="staging",
        ),
    )

    with TestClient(create_app(worker, start_polling=False)) as client:
        response = client.post("/trigger")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Job J1 deploy completed"
    assert runner.commands[-1] == "npx sst deploy --stage staging"
    stored = repository.get_job(job_id="J1")
    assert stored is not None
    assert stored.status == DeploymentStatus.COMPLETED


def test_trigger_surfaces_store_error_as_500(
    worker: DeploymentWorker,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _unreachable() -> None:
        raise JobStoreError("Failed to fetch eligible jobs: connection refused")

    monkeypatch.setattr(worker.repository, "fetch_next_eligible", _unreachable)

    with TestClient(create_app(worker, start_polling=False)) as client:
        response = client.post("/trigger")

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch eligible jobs: connection refused"}


def test_shutdown_drains_and_stops_scheduler(worker: DeploymentWorker) -> None:
    worker.scheduler.start()

    assert worker.shutdown() is True
    assert not worker.scheduler.is_running


def test_shutdown_drain_is_bounded_by_one_grace_period(
    worker: DeploymentWorker,
    repository: DeploymentRepository,
) -> None:
    release = threading.Event()
    started = threading.Event()

    class _BlockingExecutor:
        def execute(self, job):
            started.set()
            release.wait(timeout=10)
            raise RuntimeError("interrupted")

    repository.create_job(DeploymentJobCreate(job_id="J1", repository_url="https://x/r.git"))
    worker.settings.worker.graceful_shutdown_seconds = 1
    worker.poller.executor = _BlockingExecutor()
    cycling = threading.Event()

    def _slow_cycle() -> None:
        cycling.set()
        time.sleep(0.9)

    worker.scheduler = PollScheduler(_slow_cycle, interval_seconds=3600)
    manual = threading.Thread(target=worker.poller.poll_once)
    manual.start()
    assert started.wait(timeout=5)
    worker.scheduler.start()
    assert cycling.wait(timeout=5)

    try:
        began = time.monotonic()
        drained = worker.shutdown()
        elapsed = time.monotonic() - began
    finally:
        release.set()
        manual.join(timeout=5)

    assert drained is False
    assert elapsed < 1.6
