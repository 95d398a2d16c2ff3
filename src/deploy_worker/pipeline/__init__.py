"""Deployment pipeline: command runner, workspaces and the executor."""

from deploy_worker.pipeline.executor import DeploymentExecutor, render_command
from deploy_worker.pipeline.runner import (
    CommandError,
    CommandFailed,
    CommandRunner,
    CommandTimedOut,
    SubprocessRunner,
)
from deploy_worker.pipeline.workspace import WorkspaceManager

__all__ = [
    "CommandError",
    "CommandFailed",
    "CommandRunner",
    "CommandTimedOut",
    "DeploymentExecutor",
    "SubprocessRunner",
    "WorkspaceManager",
    "render_command",
]
