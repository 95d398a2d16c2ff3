"""Synchronous shell command runner used by the deployment pipeline."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS = 2


class CommandError(RuntimeError):
    """External command could not be run to a successful exit."""

    def __init__(self, message: str, *, command: str) -> None:
        super().__init__(message)
        self.command = command


class CommandFailed(CommandError):
    """Command exited non-zero; message is its captured stderr."""

    def __init__(self, *, command: str, exit_code: int, stdout: str, stderr: str) -> None:
        message = stderr.strip() or f"Command failed with exit code {exit_code}: {command}"
        super().__init__(message, command=command)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class CommandTimedOut(CommandError):
    """Command did not finish within its timeout and was killed."""

    def __init__(self, *, command: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Command timed out after {timeout_seconds:g} seconds: {command}",
            command=command,
        )
        self.timeout_seconds = timeout_seconds


class CommandRunner(Protocol):
    """Protocol implemented by command runners."""

    def run(self, command: str, cwd: Path | None = None) -> str:
        """Run one command to completion and return its stdout."""


class SubprocessRunner:
    """Run shell command lines with a fixed environment and timeout."""

    def __init__(
        self,
        *,
        env: Mapping[str, str] | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.env = dict(env) if env is not None else None
        self.timeout_seconds = timeout_seconds

    def run(self, command: str, cwd: Path | None = None) -> str:
        logger.info("Executing: %s", command)
        try:
            # Own session so a timeout can stop the whole process tree, not just the shell.
            process = subprocess.Popen(  # noqa: S602
                command,
                shell=True,
                cwd=cwd,
                env=self.env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
        except OSError as error:
            raise CommandError(f"Failed to start command: {error}", command=command) from error

        try:
            stdout, stderr = process.communicate(timeout=self.timeout_seconds)
        except subprocess.TimeoutExpired as error:
            logger.error("Command timed out after %ss: %s", self.timeout_seconds, command)
            _terminate_process_group(process)
            process.communicate()
            raise CommandTimedOut(
                command=command,
                timeout_seconds=self.timeout_seconds or 0,
            ) from error

        stdout = stdout or ""
        stderr = stderr or ""
        if stdout:
            logger.debug("%s", stdout.rstrip())
        if process.returncode != 0:
            logger.error("Command failed (exit %d): %s", process.returncode, command)
            if stdout:
                logger.error("%s", stdout.rstrip())
            if stderr:
                logger.error("%s", stderr.rstrip())
            raise CommandFailed(
                command=command,
                exit_code=process.returncode,
                stdout=stdout,
                stderr=stderr,
            )
        if stderr:
            logger.debug("%s", stderr.rstrip())
        return stdout


def _terminate_process_group(process: subprocess.Popen[str]) -> None:
    """SIGTERM the command's process group, then SIGKILL whatever is left."""

    _signal_group(process, signal.SIGTERM)
    try:
        process.wait(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        logger.warning("Command did not exit after SIGTERM, killing process group")
    # Children may outlive the shell that led the group.
    _signal_group(process, signal.SIGKILL)
    process.wait()


def _signal_group(process: subprocess.Popen[str], signum: int) -> None:
    try:
        os.killpg(process.pid, signum)
    except ProcessLookupError:
        return
    except OSError:
        logger.warning("Failed to signal process group %d", process.pid, exc_info=True)
