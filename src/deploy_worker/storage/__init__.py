"""Job store persistence: SQLModel tables, repository facade and migrations."""

from deploy_worker.storage.repository import DeploymentRepository, JobStoreError

__all__ = ["DeploymentRepository", "JobStoreError"]
