"""Deployment pipeline: checkout, install, bootstrap SST, deploy or remove."""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from deploy_worker.config import ToolchainSettings
from deploy_worker.models import (
    DeploymentJobView,
    DeploymentMode,
    DeploymentResult,
    PipelineStep,
)
from deploy_worker.pipeline.runner import CommandError, CommandRunner
from deploy_worker.pipeline.workspace import WorkspaceManager
from deploy_worker.storage.repository import DeploymentRepository

logger = logging.getLogger(__name__)


class _StepFailed(Exception):
    def __init__(self, step: PipelineStep, error: CommandError) -> None:
        super().__init__(str(error))
        self.step = step
        self.error = error


class DeploymentExecutor:
    """Runs one job's pipeline and reports the terminal status to the store.

    Steps run strictly in order and the first failing step aborts the rest.
    Nothing is retried in place: a failed job needs a new job record.
    """

    def __init__(
        self,
        *,
        repository: DeploymentRepository,
        runner: CommandRunner,
        workspaces: WorkspaceManager,
        toolchain: ToolchainSettings | None = None,
    ) -> None:
        self.repository = repository
        self.runner = runner
        self.workspaces = workspaces
        self.toolchain = toolchain or ToolchainSettings()

    def execute(self, job: DeploymentJobView) -> DeploymentResult:
        """Run the pipeline for a claimed job snapshot.

        The mode is taken from the snapshot status (the status before the
        claim), so a ``to_be_removed`` job runs ``sst remove``.
        """

        mode = job.mode
        label = "removal" if mode == DeploymentMode.REMOVE else "deployment"
        logger.info("Starting %s for job %s: %s", label, job.job_id, job.repository_url)

        try:
            with self.workspaces.workspace() as workdir:
                output = self._run_steps(job=job, mode=mode, workdir=workdir)
        except _StepFailed as failure:
            message = str(failure) or f"{failure.step.value} step failed"
            logger.error(
                "%s failed for job %s at %s: %s",
                label.capitalize(),
                job.job_id,
                failure.step.value,
                message,
            )
            self.repository.mark_failed(job_id=job.job_id, error_message=message)
            return DeploymentResult.failure(
                job_id=job.job_id,
                mode=mode,
                error_message=message,
                failed_step=failure.step,
            )
        except Exception as error:
            logger.exception("%s crashed for job %s", label.capitalize(), job.job_id)
            self.repository.mark_failed(
                job_id=job.job_id,
                error_message=str(error) or type(error).__name__,
            )
            raise

        self.repository.mark_completed(job_id=job.job_id)
        logger.info("Successfully finished %s for job %s", label, job.job_id)
        return DeploymentResult.success(job_id=job.job_id, mode=mode, output=output)

    def _run_steps(self, *, job: DeploymentJobView, mode: DeploymentMode, workdir: Path) -> str:
        branch = job.effective_branch(self.toolchain.default_branch)
        stage = job.effective_stage(self.toolchain.default_stage)
        values = {
            "repository_url": job.repository_url,
            "branch": branch,
            "workdir": str(workdir),
            "stage": stage,
        }

        self._step(PipelineStep.CHECKOUT, self.toolchain.clone_command, values, cwd=None)

        logger.info("Installing dependencies...")
        self._step(PipelineStep.INSTALL, self.toolchain.install_command, values, cwd=workdir)

        self._ensure_tool(values=values, workdir=workdir)

        if mode == DeploymentMode.REMOVE:
            step, template = PipelineStep.REMOVE, self.toolchain.remove_command
        else:
            step, template = PipelineStep.DEPLOY, self.toolchain.deploy_command
        logger.info("Running sst %s for stage: %s", mode.value, stage)
        return self._step(step, template, values, cwd=workdir)

    def _ensure_tool(self, *, values: dict[str, str], workdir: Path) -> None:
        try:
            self.runner.run(render_command(self.toolchain.probe_command, values), cwd=workdir)
        except CommandError as error:
            logger.info("SST not found (%s), installing...", error)
        else:
            return
        self._step(PipelineStep.BOOTSTRAP, self.toolchain.tool_install_command, values, cwd=workdir)

    def _step(
        self,
        step: PipelineStep,
        template: str,
        values: dict[str, str],
        *,
        cwd: Path | None,
    ) -> str:
        command = render_command(template, values)
        try:
            return self.runner.run(command, cwd=cwd)
        except CommandError as error:
            raise _StepFailed(step, error) from error


def render_command(template: str, values: dict[str, str]) -> str:
    """Fill a command template with shell-quoted values."""

    return template.strip().format(
        **{name: shlex.quote(value) for name, value in values.items()},
    )
