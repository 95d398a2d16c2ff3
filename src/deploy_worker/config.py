"""Runtime configuration for the deployment worker."""

from __future__ import annotations

import os
import string
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DATABASE_URL = "sqlite:///.deploy_worker.db"
DEFAULT_AWS_REGION = "us-east-1"

_TEMPLATE_PLACEHOLDERS = frozenset({"repository_url", "branch", "workdir", "stage"})


@dataclass(slots=True)
class StoreSettings:
    """Job store connection settings."""

    database_url: str = DEFAULT_DATABASE_URL
    service_key: str | None = None
    migrate_on_start: bool = True


@dataclass(slots=True)
class WorkerSettings:
    """Poll loop and pipeline execution settings."""

    poll_interval_ms: int = 30_000
    command_timeout_seconds: int = 1_800
    graceful_shutdown_seconds: int = 30
    workspace_root: Path | None = None
    workspace_prefix: str = "repo-"

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def command_timeout(self) -> float | None:
        """Per-command timeout in seconds, ``None`` when disabled."""

        if self.command_timeout_seconds <= 0:
            return None
        return float(self.command_timeout_seconds)


@dataclass(slots=True)
class ServerSettings:
    """HTTP control surface settings."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8080


@dataclass(slots=True)
class CloudSettings:
    """Cloud credentials forwarded into every spawned process."""

    access_key_id: str | None = None
    secret_access_key: str | None = None
    region: str = DEFAULT_AWS_REGION

    def subprocess_env(self, base: dict[str, str] | None = None) -> dict[str, str]:
        """Build child environment: inherited variables plus explicit AWS values."""

        env = dict(os.environ if base is None else base)
        if self.access_key_id:
            env["AWS_ACCESS_KEY_ID"] = self.access_key_id
        if self.secret_access_key:
            env["AWS_SECRET_ACCESS_KEY"] = self.secret_access_key
        env["AWS_REGION"] = self.region or DEFAULT_AWS_REGION
        return env


@dataclass(slots=True)
class ToolchainSettings:
    """Shell command templates for checkout, install and SST actions.

    Placeholders ``{repository_url}``, ``{branch}``, ``{workdir}`` and
    ``{stage}`` are shell-quoted when rendered.
    """

    clone_command: str = "git clone --depth 1 --branch {branch} {repository_url} {workdir}"
    install_command: str = "npm install"
    probe_command: str = "npx sst version"
    tool_install_command: str = "npm install -g sst"
    deploy_command: str = "npx sst deploy --stage {stage}"
    remove_command: str = "npx sst remove --stage {stage}"
    default_branch: str = "main"
    default_stage: str = "production"

    def templates(self) -> dict[str, str]:
        return {
            "clone_command": self.clone_command,
            "install_command": self.install_command,
            "probe_command": self.probe_command,
            "tool_install_command": self.tool_install_command,
            "deploy_command": self.deploy_command,
            "remove_command": self.remove_command,
        }


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    store: StoreSettings = field(default_factory=StoreSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    server: ServerSettings = field(default_factory=ServerSettings)
    cloud: CloudSettings = field(default_factory=CloudSettings)
    toolchain: ToolchainSettings = field(default_factory=ToolchainSettings)

    @classmethod
    def from_env(cls, database_url: str | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        workspace_root = os.getenv("DEPLOY_WORKER_WORKSPACE_ROOT", "").strip()
        defaults = ToolchainSettings()
        return cls(
            store=StoreSettings(
                database_url=database_url
                or os.getenv(
                    "DEPLOY_WORKER_DATABASE_URL",
                    os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
                ),
                service_key=_env_optional(
                    "DEPLOY_WORKER_DATABASE_SERVICE_KEY",
                    os.getenv("SUPABASE_SERVICE_KEY"),
                ),
                migrate_on_start=_env_bool("DEPLOY_WORKER_MIGRATE_ON_START", default=True),
            ),
            worker=WorkerSettings(
                poll_interval_ms=_env_int_with_alias(
                    "DEPLOY_WORKER_POLL_INTERVAL_MS",
                    "POLL_INTERVAL",
                    30_000,
                ),
                command_timeout_seconds=_env_int("DEPLOY_WORKER_COMMAND_TIMEOUT_SECONDS", 1_800),
                graceful_shutdown_seconds=_env_int(
                    "DEPLOY_WORKER_GRACEFUL_SHUTDOWN_SECONDS",
                    30,
                ),
                workspace_root=Path(workspace_root) if workspace_root else None,
                workspace_prefix=os.getenv("DEPLOY_WORKER_WORKSPACE_PREFIX", "repo-"),
            ),
            server=ServerSettings(
                host=os.getenv("DEPLOY_WORKER_HOST", "0.0.0.0"),  # noqa: S104
                port=_env_int_with_alias("DEPLOY_WORKER_PORT", "PORT", 8080),
            ),
            cloud=CloudSettings(
                access_key_id=_env_optional("AWS_ACCESS_KEY_ID"),
                secret_access_key=_env_optional("AWS_SECRET_ACCESS_KEY"),
                region=os.getenv("AWS_REGION", "").strip() or DEFAULT_AWS_REGION,
            ),
            toolchain=ToolchainSettings(
                clone_command=os.getenv("DEPLOY_WORKER_CLONE_COMMAND", defaults.clone_command),
                install_command=os.getenv(
                    "DEPLOY_WORKER_INSTALL_COMMAND",
                    defaults.install_command,
                ),
                probe_command=os.getenv("DEPLOY_WORKER_PROBE_COMMAND", defaults.probe_command),
                tool_install_command=os.getenv(
                    "DEPLOY_WORKER_TOOL_INSTALL_COMMAND",
                    defaults.tool_install_command,
                ),
                deploy_command=os.getenv("DEPLOY_WORKER_DEPLOY_COMMAND", defaults.deploy_command),
                remove_command=os.getenv("DEPLOY_WORKER_REMOVE_COMMAND", defaults.remove_command),
                default_branch=os.getenv("DEPLOY_WORKER_DEFAULT_BRANCH", defaults.default_branch),
                default_stage=os.getenv("DEPLOY_WORKER_DEFAULT_STAGE", defaults.default_stage),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any setting is unusable."""

        if not self.store.database_url.strip():
            raise ValueError("DEPLOY_WORKER_DATABASE_URL must not be empty.")
        if self.worker.poll_interval_ms <= 0:
            raise ValueError("DEPLOY_WORKER_POLL_INTERVAL_MS must be > 0.")
        if self.worker.command_timeout_seconds < 0:
            raise ValueError("DEPLOY_WORKER_COMMAND_TIMEOUT_SECONDS must be >= 0.")
        if self.worker.graceful_shutdown_seconds < 0:
            raise ValueError("DEPLOY_WORKER_GRACEFUL_SHUTDOWN_SECONDS must be >= 0.")
        if not 0 < self.server.port < 65_536:
            raise ValueError(f"DEPLOY_WORKER_PORT is out of range: {self.server.port!r}")
        if not self.toolchain.default_branch.strip():
            raise ValueError("DEPLOY_WORKER_DEFAULT_BRANCH must not be empty.")
        if not self.toolchain.default_stage.strip():
            raise ValueError("DEPLOY_WORKER_DEFAULT_STAGE must not be empty.")
        for name, template in self.toolchain.templates().items():
            _validate_template(name, template)


def _validate_template(name: str, template: str) -> None:
    if not template.strip():
        raise ValueError(f"Toolchain command {name} is empty.")
    try:
        fields = {
            field_name
            for _, field_name, _, _ in string.Formatter().parse(template)
            if field_name is not None
        }
    except ValueError as error:
        raise ValueError(f"Toolchain command {name} is malformed: {error}") from error
    unknown = fields - _TEMPLATE_PLACEHOLDERS
    if unknown:
        raise ValueError(
            f"Unsupported placeholder in toolchain command {name}: {sorted(unknown)!r}",
        )


def _env_optional(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_int_with_alias(name: str, alias: str, default: int) -> int:
    if _env_optional(name) is not None:
        return _env_int(name, default)
    return _env_int(alias, default)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
