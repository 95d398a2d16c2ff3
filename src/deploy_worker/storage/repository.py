"""Persistent job store facade for deployment jobs."""

from __future__ import annotations

import logging
from uuid import uuid4

from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from deploy_worker.models import (
    ELIGIBLE_STATUSES,
    DeploymentJobCreate,
    DeploymentJobView,
    DeploymentStatus,
)
from deploy_worker.storage.alembic_runner import upgrade_head
from deploy_worker.storage.common import (
    build_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from deploy_worker.storage.sqlmodel_models import Deployment

logger = logging.getLogger(__name__)


class JobStoreError(RuntimeError):
    """Job store could not be read or updated."""


class DeploymentRepository:
    """Queue persistence facade backed by SQLModel.

    The worker only ever writes ``status``, ``error_message`` and
    ``updated_at``; the create helpers exist for operator tooling and tests
    standing in for the dashboard.
    """

    def __init__(self, database_url: str, *, service_key: str | None = None) -> None:
        self.database_url = database_url
        self.engine = build_engine(database_url, service_key=service_key)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.engine)

    def create_job(self, payload: DeploymentJobCreate) -> DeploymentJobView:
        """Insert a new job record."""

        now = to_db_datetime(utc_now())
        created_at = to_db_datetime(payload.created_at) if payload.created_at is not None else now
        row = Deployment(
            id=payload.job_id or str(uuid4()),
            user_id=payload.user_id,
            project_id=payload.project_id,
            repository_url=payload.repository_url,
            branch=payload.branch,
            stage=payload.stage,
            status=payload.status.value,
            error_message=None,
            created_at=created_at,
            updated_at=now,
        )
        try:
            with Session(self.engine) as session:
                session.add(row)
                session.commit()
                session.refresh(row)
                return _to_job_view(row)
        except SQLAlchemyError as error:
            raise JobStoreError(f"Failed to create job: {error}") from error

    def get_job(self, *, job_id: str) -> DeploymentJobView | None:
        try:
            with Session(self.engine) as session:
                row = session.exec(
                    select(Deployment).where(Deployment.id == job_id),
                ).one_or_none()
        except SQLAlchemyError as error:
            raise JobStoreError(f"Failed to read job {job_id}: {error}") from error
        return _to_job_view(row) if row is not None else None

    def list_jobs(
        self,
        *,
        status: DeploymentStatus | None = None,
        limit: int = 50,
    ) -> list[DeploymentJobView]:
        """List recent jobs, newest first, optionally filtered by status."""

        statement = select(Deployment).order_by(col(Deployment.created_at).desc()).limit(limit)
        if status is not None:
            statement = statement.where(Deployment.status == status.value)
        try:
            with Session(self.engine) as session:
                rows = session.exec(statement).all()
        except SQLAlchemyError as error:
            raise JobStoreError(f"Failed to list jobs: {error}") from error
        return [_to_job_view(row) for row in rows]

    def fetch_next_eligible(self) -> DeploymentJobView | None:
        """Return the oldest job waiting for deploy or removal, without claiming it."""

        try:
            with Session(self.engine) as session:
                row = session.exec(
                    select(Deployment)
                    .where(col(Deployment.status).in_([s.value for s in ELIGIBLE_STATUSES]))
                    .order_by(col(Deployment.created_at).asc(), col(Deployment.id).asc())
                    .limit(1),
                ).one_or_none()
        except SQLAlchemyError as error:
            raise JobStoreError(f"Failed to fetch eligible jobs: {error}") from error
        return _to_job_view(row) if row is not None else None

    def claim(self, job: DeploymentJobView) -> bool:
        """Move the job to processing only if it is still eligible.

        Returns ``False`` when another cycle or process changed the status
        first.
        """

        now = to_db_datetime(utc_now())
        try:
            with Session(self.engine) as session:
                result = session.execute(
                    sa_update(Deployment)
                    .where(
                        col(Deployment.id) == job.job_id,
                        col(Deployment.status).in_([s.value for s in ELIGIBLE_STATUSES]),
                    )
                    .values(
                        status=DeploymentStatus.PROCESSING.value,
                        error_message=None,
                        updated_at=now,
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    return False
                session.commit()
        except SQLAlchemyError as error:
            raise JobStoreError(f"Failed to claim job {job.job_id}: {error}") from error
        return True

    def mark_completed(self, *, job_id: str) -> bool:
        return self._finish(job_id=job_id, status=DeploymentStatus.COMPLETED, error_message=None)

    def mark_failed(self, *, job_id: str, error_message: str) -> bool:
        return self._finish(
            job_id=job_id,
            status=DeploymentStatus.FAILED,
            error_message=error_message,
        )

    def _finish(
        self,
        *,
        job_id: str,
        status: DeploymentStatus,
        error_message: str | None,
    ) -> bool:
        now = to_db_datetime(utc_now())
        try:
            with Session(self.engine) as session:
                result = session.execute(
                    sa_update(Deployment)
                    .where(
                        col(Deployment.id) == job_id,
                        col(Deployment.status) == DeploymentStatus.PROCESSING.value,
                    )
                    .values(status=status.value, error_message=error_message, updated_at=now),
                )
                if result.rowcount != 1:
                    session.rollback()
                    logger.warning(
                        "Job %s is no longer processing; %s status not recorded",
                        job_id,
                        status.value,
                    )
                    return False
                session.commit()
        except SQLAlchemyError as error:
            raise JobStoreError(f"Failed to update job {job_id}: {error}") from error
        return True


def _to_job_view(row: Deployment) -> DeploymentJobView:
    return DeploymentJobView(
        job_id=row.id,
        repository_url=row.repository_url,
        branch=row.branch,
        stage=row.stage,
        status=DeploymentStatus(row.status),
        error_message=row.error_message,
        user_id=row.user_id,
        project_id=row.project_id,
        deployed_url=row.deployed_url,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
