"""Domain models for deployment jobs and pipeline outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

DEFAULT_BRANCH = "main"
DEFAULT_STAGE = "production"


class DeploymentStatus(str, Enum):
    """Durable job lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TO_BE_REMOVED = "to_be_removed"


ELIGIBLE_STATUSES: tuple[DeploymentStatus, ...] = (
    DeploymentStatus.PENDING,
    DeploymentStatus.TO_BE_REMOVED,
)


class DeploymentMode(str, Enum):
    """Which SST action a pipeline run performs."""

    DEPLOY = "deploy"
    REMOVE = "remove"

    @classmethod
    def for_status(cls, status: DeploymentStatus) -> DeploymentMode:
        if status == DeploymentStatus.TO_BE_REMOVED:
            return cls.REMOVE
        return cls.DEPLOY


class PipelineStep(str, Enum):
    """Ordered pipeline steps, used to report where a run stopped."""

    CHECKOUT = "checkout"
    INSTALL = "install"
    BOOTSTRAP = "bootstrap"
    DEPLOY = "deploy"
    REMOVE = "remove"


@dataclass(slots=True)
class DeploymentJobCreate:
    """Input payload for inserting a deployment job."""

    repository_url: str
    branch: str | None = None
    stage: str | None = None
    status: DeploymentStatus = DeploymentStatus.PENDING
    job_id: str | None = None
    user_id: str | None = None
    project_id: str | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class DeploymentJobView:
    """Snapshot of one job record as read from the store."""

    job_id: str
    repository_url: str
    branch: str | None
    stage: str | None
    status: DeploymentStatus
    error_message: str | None
    user_id: str | None
    project_id: str | None
    deployed_url: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def mode(self) -> DeploymentMode:
        return DeploymentMode.for_status(self.status)

    def effective_branch(self, default: str = DEFAULT_BRANCH) -> str:
        return self.branch or default

    def effective_stage(self, default: str = DEFAULT_STAGE) -> str:
        return self.stage or default


@dataclass(slots=True)
class DeploymentResult:
    """Outcome of one pipeline run."""

    job_id: str
    mode: DeploymentMode
    ok: bool
    output: str = ""
    error_message: str | None = None
    failed_step: PipelineStep | None = None

    @classmethod
    def success(cls, *, job_id: str, mode: DeploymentMode, output: str) -> DeploymentResult:
        return cls(job_id=job_id, mode=mode, ok=True, output=output)

    @classmethod
    def failure(
        cls,
        *,
        job_id: str,
        mode: DeploymentMode,
        error_message: str,
        failed_step: PipelineStep,
    ) -> DeploymentResult:
        return cls(
            job_id=job_id,
            mode=mode,
            ok=False,
            error_message=error_message,
            failed_step=failed_step,
        )


class PollOutcome(str, Enum):
    """What a single poll cycle ended up doing."""

    IDLE = "idle"
    BUSY = "busy"
    LOST_RACE = "lost_race"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"


@dataclass(slots=True)
class PollCycleResult:
    """Summary of one poll cycle for logging and the trigger endpoint."""

    outcome: PollOutcome
    job_id: str | None = None
    mode: DeploymentMode | None = None
    error_message: str | None = None

    @property
    def message(self) -> str:
        if self.outcome == PollOutcome.IDLE:
            return "No pending jobs or removals found"
        if self.outcome == PollOutcome.BUSY:
            return "Poll cycle already in progress"
        if self.outcome == PollOutcome.LOST_RACE:
            return f"Job {self.job_id} was claimed by another poll cycle"
        action = self.mode.value if self.mode is not None else "job"
        if self.outcome == PollOutcome.COMPLETED:
            return f"Job {self.job_id} {action} completed"
        if self.outcome == PollOutcome.FAILED:
            return f"Job {self.job_id} {action} failed: {self.error_message}"
        return f"Job {self.job_id} {action} errored: {self.error_message}"
