"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from deploy_worker.config import ToolchainSettings
from deploy_worker.pipeline import CommandFailed, DeploymentExecutor, WorkspaceManager
from deploy_worker.storage import DeploymentRepository


@dataclass
class RecordingRunner:
    """Command runner double: records calls and fails commands by substring."""

    calls: list[tuple[str, Path | None]] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    outputs: dict[str, str] = field(default_factory=dict)

    def fail_on(self, fragment: str, stderr: str) -> None:
        self.failures[fragment] = stderr

    def respond(self, fragment: str, stdout: str) -> None:
        self.outputs[fragment] = stdout

    @property
    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]

    def run(self, command: str, cwd: Path | None = None) -> str:
        self.calls.append((command, cwd))
        for fragment, stderr in self.failures.items():
            if fragment in command:
                raise CommandFailed(command=command, exit_code=1, stdout="", stderr=stderr)
        for fragment, stdout in self.outputs.items():
            if fragment in command:
                return stdout
        return ""


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[DeploymentRepository]:
    repo = DeploymentRepository(f"sqlite:///{tmp_path / 'jobs.db'}")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture()
def workspaces(tmp_path: Path) -> WorkspaceManager:
    return WorkspaceManager(tmp_path / "workspaces")


@pytest.fixture()
def executor(
    repository: DeploymentRepository,
    runner: RecordingRunner,
    workspaces: WorkspaceManager,
) -> DeploymentExecutor:
    return DeploymentExecutor(
        repository=repository,
        runner=runner,
        workspaces=workspaces,
        toolchain=ToolchainSettings(),
    )
