from __future__ import annotations

from pathlib import Path

import allure
import pytest

from deploy_worker.config import (
    CloudSettings,
    Settings,
    ToolchainSettings,
    WorkerSettings,
)

pytestmark = [
    allure.epic("Deployment Worker"),
    allure.feature("Configuration"),
]

_ENV_NAMES = (
    "DEPLOY_WORKER_DATABASE_URL",
    "DATABASE_URL",
    "DEPLOY_WORKER_DATABASE_SERVICE_KEY",
    "SUPABASE_SERVICE_KEY",
    "DEPLOY_WORKER_MIGRATE_ON_START",
    "DEPLOY_WORKER_POLL_INTERVAL_MS",
    "POLL_INTERVAL",
    "DEPLOY_WORKER_COMMAND_TIMEOUT_SECONDS",
    "DEPLOY_WORKER_GRACEFUL_SHUTDOWN_SECONDS",
    "DEPLOY_WORKER_WORKSPACE_ROOT",
    "DEPLOY_WORKER_PORT",
    "PORT",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_REGION",
    "DEPLOY_WORKER_DEPLOY_COMMAND",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_match_documented_values() -> None:
    settings = Settings.from_env()

    assert settings.store.database_url == "sqlite:///.deploy_worker.db"
    assert settings.store.migrate_on_start is True
    assert settings.worker.poll_interval_seconds == 30.0
    assert settings.worker.command_timeout == 1800.0
    assert settings.server.port == 8080
    assert settings.cloud.region == "us-east-1"
    assert settings.toolchain.default_branch == "main"
    assert settings.toolchain.default_stage == "production"
    settings.validate()


def test_short_aliases_are_honoured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://postgres@db:5432/postgres")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-key")
    monkeypatch.setenv("POLL_INTERVAL", "5000")
    monkeypatch.setenv("PORT", "9090")

    settings = Settings.from_env()

    assert settings.store.database_url == "postgresql+psycopg://postgres@db:5432/postgres"
    assert settings.store.service_key == "service-key"
    assert settings.worker.poll_interval_ms == 5000
    assert settings.server.port == 9090


def test_prefixed_names_win_over_aliases(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POLL_INTERVAL", "5000")
    monkeypatch.setenv("DEPLOY_WORKER_POLL_INTERVAL_MS", "750")
    monkeypatch.setenv("PORT", "9090")
    monkeypatch.setenv("DEPLOY_WORKER_PORT", "8181")

    settings = Settings.from_env(database_url="sqlite:///explicit.db")

    assert settings.store.database_url == "sqlite:///explicit.db"
    assert settings.worker.poll_interval_ms == 750
    assert settings.server.port == 8181


def test_malformed_alias_is_ignored_when_prefixed_name_is_set(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("POLL_INTERVAL", "fast")
    monkeypatch.setenv("DEPLOY_WORKER_POLL_INTERVAL_MS", "1000")
    monkeypatch.setenv("PORT", "http")
    monkeypatch.setenv("DEPLOY_WORKER_PORT", "8181")

    settings = Settings.from_env()

    assert settings.worker.poll_interval_ms == 1000
    assert settings.server.port == 8181


def test_malformed_alias_is_rejected_when_used(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "http")

    with pytest.raises(ValueError, match="Invalid integer value for PORT"):
        Settings.from_env()


def test_workspace_root_and_command_overrides(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setenv("DEPLOY_WORKER_WORKSPACE_ROOT", str(tmp_path))
    monkeypatch.setenv("DEPLOY_WORKER_DEPLOY_COMMAND", "sst deploy --stage {stage} --verbose")
    monkeypatch.setenv("DEPLOY_WORKER_MIGRATE_ON_START", "no")

    settings = Settings.from_env()

    assert settings.worker.workspace_root == tmp_path
    assert settings.toolchain.deploy_command == "sst deploy --stage {stage} --verbose"
    assert settings.store.migrate_on_start is False


def test_zero_timeout_disables_command_timeout() -> None:
    assert WorkerSettings(command_timeout_seconds=0).command_timeout is None


def test_invalid_integer_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEPLOY_WORKER_POLL_INTERVAL_MS", "30s")

    with pytest.raises(ValueError, match="Invalid integer value for DEPLOY_WORKER_POLL_INTERVAL_MS"):
        Settings.from_env()


def test_invalid_boolean_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEPLOY_WORKER_MIGRATE_ON_START", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(worker=WorkerSettings(poll_interval_ms=0)), "POLL_INTERVAL_MS must be > 0"),
        (
            Settings(worker=WorkerSettings(command_timeout_seconds=-1)),
            "COMMAND_TIMEOUT_SECONDS must be >= 0",
        ),
        (
            Settings(worker=WorkerSettings(graceful_shutdown_seconds=-5)),
            "GRACEFUL_SHUTDOWN_SECONDS must be >= 0",
        ),
        (Settings(toolchain=ToolchainSettings(default_stage=" ")), "DEFAULT_STAGE"),
        (Settings(toolchain=ToolchainSettings(install_command="")), "install_command is empty"),
    ],
)
def test_validate_rejects_unusable_settings(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_validate_rejects_unknown_placeholder() -> None:
    settings = Settings(toolchain=ToolchainSettings(deploy_command="sst deploy --profile {profile}"))

    with pytest.raises(ValueError, match="Unsupported placeholder in toolchain command"):
        settings.validate()


def test_validate_rejects_malformed_template() -> None:
    settings = Settings(toolchain=ToolchainSettings(clone_command="git clone {repository_url"))

    with pytest.raises(ValueError, match="malformed"):
        settings.validate()


def test_subprocess_env_adds_credentials_and_region() -> None:
    cloud = CloudSettings(access_key_id="AKIA", secret_access_key="secret", region="")

    env = cloud.subprocess_env(base={"PATH": "/usr/bin"})

    assert env == {
        "PATH": "/usr/bin",
        "AWS_ACCESS_KEY_ID": "AKIA",
        "AWS_SECRET_ACCESS_KEY": "secret",
        "AWS_REGION": "us-east-1",
    }
