from __future__ import annotations

import shlex
import sys
import time
from pathlib import Path

import allure
import pytest

from deploy_worker.config import CloudSettings
from deploy_worker.pipeline import CommandFailed, CommandTimedOut, SubprocessRunner

pytestmark = [
    allure.epic("Deployment Worker"),
    allure.feature("Command Runner"),
]

PYTHON = shlex.quote(sys.executable)


def _py(code: str) -> str:
    return f"{PYTHON} -c {shlex.quote(code)}"


def test_run_returns_stdout() -> None:
    runner = SubprocessRunner()

    assert runner.run(_py("print('hello')")) == "hello\n"


def test_run_uses_working_directory(tmp_path: Path) -> None:
    runner = SubprocessRunner()

    output = runner.run(_py("import os; print(os.getcwd())"), cwd=tmp_path)

    assert Path(output.strip()).resolve() == tmp_path.resolve()


def test_non_zero_exit_raises_with_stderr_message() -> None:
    runner = SubprocessRunner()

    with pytest.raises(CommandFailed) as raised:
        runner.run(_py("import sys; sys.stderr.write('branch not found\\n'); sys.exit(128)"))

    assert str(raised.value) == "branch not found"
    assert raised.value.exit_code == 128
    assert raised.value.stderr == "branch not found\n"


def test_non_zero_exit_without_stderr_uses_generic_message() -> None:
    runner = SubprocessRunner()
    command = _py("raise SystemExit(3)")

    with pytest.raises(CommandFailed, match="Command failed with exit code 3"):
        runner.run(command)


def test_timeout_is_distinct_from_failure() -> None:
    runner = SubprocessRunner(timeout_seconds=0.5)

    with pytest.raises(CommandTimedOut) as raised:
        runner.run(_py("import time; time.sleep(10)"))

    assert not isinstance(raised.value, CommandFailed)
    assert "timed out after 0.5 seconds" in str(raised.value)


def test_timeout_stops_grandchild_processes(tmp_path: Path) -> None:
    marker = tmp_path / "still_running"
    runner = SubprocessRunner(timeout_seconds=0.3)
    # Trailing ``true`` keeps the shell alive as parent instead of exec-ing python.
    command = (
        _py("import pathlib, sys, time; time.sleep(1.5); pathlib.Path(sys.argv[1]).touch()")
        + f" {shlex.quote(str(marker))}; true"
    )

    with pytest.raises(CommandTimedOut):
        runner.run(command)
    time.sleep(2.5)

    assert not marker.exists()


def test_cloud_credentials_are_forwarded() -> None:
    cloud = CloudSettings(access_key_id="AKIATEST", secret_access_key="secret", region="")
    runner = SubprocessRunner(env=cloud.subprocess_env(base={"PATH": "/usr/bin:/bin"}))

    output = runner.run(
        _py(
            "import os; print(os.environ['AWS_ACCESS_KEY_ID'], "
            "os.environ['AWS_SECRET_ACCESS_KEY'], os.environ['AWS_REGION'])",
        ),
    )

    assert output.split() == ["AKIATEST", "secret", "us-east-1"]


def test_subprocess_env_does_not_inject_missing_credentials() -> None:
    env = CloudSettings().subprocess_env(base={"HOME": "/root"})

    assert env == {"HOME": "/root", "AWS_REGION": "us-east-1"}
