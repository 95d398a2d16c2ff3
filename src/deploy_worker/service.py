"""Wiring of store, pipeline, poller and scheduler from settings."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from deploy_worker.config import Settings
from deploy_worker.pipeline import DeploymentExecutor, SubprocessRunner, WorkspaceManager
from deploy_worker.storage import DeploymentRepository
from deploy_worker.worker import DeploymentPoller, PollScheduler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeploymentWorker:
    """Assembled worker components sharing one repository."""

    settings: Settings
    repository: DeploymentRepository
    executor: DeploymentExecutor
    poller: DeploymentPoller
    scheduler: PollScheduler

    def shutdown(self) -> bool:
        """Stop the timer and drain the in-flight cycle within the grace period.

        Returns ``True`` when no cycle was left running.
        """

        grace = float(self.settings.worker.graceful_shutdown_seconds)
        deadline = time.monotonic() + grace
        stopped = self.scheduler.stop(timeout=grace)
        idle = self.poller.wait_idle(timeout=max(0.0, deadline - time.monotonic()))
        if not (stopped and idle):
            logger.warning(
                "Shutdown grace period of %ss elapsed with job %s still processing",
                grace,
                self.poller.current_job_id or "<unknown>",
            )
            return False
        return True


def build_worker(settings: Settings, repository: DeploymentRepository) -> DeploymentWorker:
    runner = SubprocessRunner(
        env=settings.cloud.subprocess_env(),
        timeout_seconds=settings.worker.command_timeout,
    )
    executor = DeploymentExecutor(
        repository=repository,
        runner=runner,
        workspaces=WorkspaceManager(
            settings.worker.workspace_root,
            prefix=settings.worker.workspace_prefix,
        ),
        toolchain=settings.toolchain,
    )
    poller = DeploymentPoller(repository=repository, executor=executor)
    scheduler = PollScheduler(
        poller.poll_once,
        interval_seconds=settings.worker.poll_interval_seconds,
    )
    return DeploymentWorker(
        settings=settings,
        repository=repository,
        executor=executor,
        poller=poller,
        scheduler=scheduler,
    )


@contextmanager
def open_repository(settings: Settings) -> Iterator[DeploymentRepository]:
    repository = DeploymentRepository(
        settings.store.database_url,
        service_key=settings.store.service_key,
    )
    if settings.store.migrate_on_start:
        repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
