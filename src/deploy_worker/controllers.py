"""Controllers for deploy-worker CLI commands."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import uvicorn

from deploy_worker.api import create_app
from deploy_worker.config import Settings
from deploy_worker.models import DeploymentJobCreate, DeploymentJobView, DeploymentStatus
from deploy_worker.service import build_worker, open_repository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServeCommand:
    """CLI input for the HTTP control surface plus scheduler."""

    database_url: str | None
    host: str | None
    port: int | None


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for running poll cycles without HTTP."""

    database_url: str | None
    once: bool


@dataclass(slots=True)
class EnqueueCommand:
    """CLI input for inserting a deployment request."""

    database_url: str | None
    repository_url: str
    branch: str | None
    stage: str | None
    project_id: str | None = None
    user_id: str | None = None


@dataclass(slots=True)
class RemovalCommand:
    """CLI input for requesting removal of a previously deployed job."""

    database_url: str | None
    job_id: str


@dataclass(slots=True)
class ListJobsCommand:
    """CLI input for job listing."""

    database_url: str | None
    status: str | None
    limit: int


@dataclass(slots=True)
class InspectJobCommand:
    """CLI input for job inspection."""

    database_url: str | None
    job_id: str


class DeployWorkerCliController:
    """Coordinates worker, server and job store CLI operations."""

    def serve(self, command: ServeCommand) -> None:
        settings = _settings(command.database_url)
        if command.host is not None:
            settings.server.host = command.host
        if command.port is not None:
            settings.server.port = command.port
        settings.validate()
        with open_repository(settings) as repository:
            worker = build_worker(settings, repository)
            app = create_app(worker)
            logger.info("Deployment worker running on port %d", settings.server.port)
            uvicorn.run(app, host=settings.server.host, port=settings.server.port, log_config=None)

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = _settings(command.database_url)
        with open_repository(settings) as repository:
            worker = build_worker(settings, repository)
            if command.once:
                result = worker.poller.poll_once()
                return [f"Poll cycle: outcome={result.outcome.value} {result.message}"]

            stop = threading.Event()
            with _signal_handlers(stop):
                worker.scheduler.start()
                while not stop.wait(timeout=1.0):
                    pass
                drained = worker.shutdown()
        return [f"Worker stopped: drained={str(drained).lower()}"]

    def enqueue(self, command: EnqueueCommand) -> list[str]:
        settings = _settings(command.database_url)
        with open_repository(settings) as repository:
            job = repository.create_job(
                DeploymentJobCreate(
                    repository_url=command.repository_url,
                    branch=command.branch,
                    stage=command.stage,
                    project_id=command.project_id,
                    user_id=command.user_id,
                ),
            )
        return [f"Job enqueued: job_id={job.job_id} status={job.status.value}"]

    def request_removal(self, command: RemovalCommand) -> list[str]:
        settings = _settings(command.database_url)
        with open_repository(settings) as repository:
            source = repository.get_job(job_id=command.job_id)
            if source is None:
                raise ValueError(f"Job not found: {command.job_id}")
            job = repository.create_job(
                DeploymentJobCreate(
                    repository_url=source.repository_url,
                    branch=source.branch,
                    stage=source.stage,
                    status=DeploymentStatus.TO_BE_REMOVED,
                    project_id=source.project_id,
                    user_id=source.user_id,
                ),
            )
        return [
            f"Removal requested: job_id={job.job_id} status={job.status.value} "
            f"source_job_id={source.job_id}",
        ]

    def list_jobs(self, command: ListJobsCommand) -> list[str]:
        settings = _settings(command.database_url)
        status = DeploymentStatus(command.status) if command.status is not None else None
        with open_repository(settings) as repository:
            jobs = repository.list_jobs(status=status, limit=command.limit)
        if not jobs:
            return ["No jobs found."]
        return [_job_line(job) for job in jobs]

    def inspect(self, command: InspectJobCommand) -> list[str]:
        settings = _settings(command.database_url)
        with open_repository(settings) as repository:
            job = repository.get_job(job_id=command.job_id)
        if job is None:
            raise ValueError(f"Job not found: {command.job_id}")
        return [
            f"job_id={job.job_id}",
            f"status={job.status.value}",
            f"repository_url={job.repository_url}",
            f"branch={job.effective_branch(settings.toolchain.default_branch)}",
            f"stage={job.effective_stage(settings.toolchain.default_stage)}",
            f"error_message={job.error_message or '-'}",
            f"created_at={job.created_at.isoformat()}",
            f"updated_at={job.updated_at.isoformat()}",
        ]


def _settings(database_url: str | None) -> Settings:
    settings = Settings.from_env(database_url=database_url)
    settings.validate()
    return settings


def _job_line(job: DeploymentJobView) -> str:
    return (
        f"{job.job_id} status={job.status.value} branch={job.branch or '-'} "
        f"stage={job.stage or '-'} created_at={job.created_at.isoformat()} "
        f"repo={job.repository_url}"
    )


@contextmanager
def _signal_handlers(stop: threading.Event) -> Iterator[None]:
    if not hasattr(signal, "SIGINT"):
        yield
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.info("%s received, shutting down gracefully...", name)
        stop.set()

    installed = True
    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        installed = False
    try:
        yield
    finally:
        if installed:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
