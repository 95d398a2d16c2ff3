"""Single-flight job poller: select, claim and execute one job per cycle."""

from __future__ import annotations

import logging
import threading

from deploy_worker.models import PollCycleResult, PollOutcome
from deploy_worker.pipeline.executor import DeploymentExecutor
from deploy_worker.storage.repository import DeploymentRepository

logger = logging.getLogger(__name__)


class DeploymentPoller:
    """Consumes the oldest eligible job and hands it to the executor.

    Cycles never overlap within one process: a cycle started while another
    is running returns ``busy`` immediately. Across processes the
    conditional claim decides who owns a job.
    """

    def __init__(
        self,
        *,
        repository: DeploymentRepository,
        executor: DeploymentExecutor,
    ) -> None:
        self.repository = repository
        self.executor = executor
        self._lock = threading.Lock()
        self._current_job_id: str | None = None

    @property
    def current_job_id(self) -> str | None:
        return self._current_job_id

    def poll_once(self) -> PollCycleResult:
        """Run one cycle.

        Raises ``JobStoreError`` when the store cannot be read or the claim
        cannot be written; in that case no job state was changed.
        """

        if not self._lock.acquire(blocking=False):
            logger.debug("Poll cycle skipped, another cycle is in flight")
            return PollCycleResult(outcome=PollOutcome.BUSY)
        try:
            return self._poll_locked()
        finally:
            self._current_job_id = None
            self._lock.release()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no cycle is in flight. Returns ``False`` on timeout."""

        acquired = self._lock.acquire(timeout=-1 if timeout is None else max(0.0, timeout))
        if acquired:
            self._lock.release()
        return acquired

    def _poll_locked(self) -> PollCycleResult:
        logger.debug("Polling for pending jobs and removals...")
        job = self.repository.fetch_next_eligible()
        if job is None:
            logger.debug("No pending jobs or removals found")
            return PollCycleResult(outcome=PollOutcome.IDLE)

        logger.info("Found job: %s with status: %s", job.job_id, job.status.value)
        if not self.repository.claim(job):
            logger.info("Job %s was claimed elsewhere, skipping", job.job_id)
            return PollCycleResult(outcome=PollOutcome.LOST_RACE, job_id=job.job_id)

        self._current_job_id = job.job_id
        try:
            result = self.executor.execute(job)
        except Exception as error:
            logger.exception("Error in polling cycle for job %s", job.job_id)
            return PollCycleResult(
                outcome=PollOutcome.ERROR,
                job_id=job.job_id,
                mode=job.mode,
                error_message=str(error) or type(error).__name__,
            )

        if result.ok:
            return PollCycleResult(
                outcome=PollOutcome.COMPLETED,
                job_id=job.job_id,
                mode=result.mode,
            )
        return PollCycleResult(
            outcome=PollOutcome.FAILED,
            job_id=job.job_id,
            mode=result.mode,
            error_message=result.error_message,
        )
