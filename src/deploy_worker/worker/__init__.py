"""Job polling and scheduling."""

from deploy_worker.worker.poller import DeploymentPoller
from deploy_worker.worker.scheduler import PollScheduler

__all__ = ["DeploymentPoller", "PollScheduler"]
