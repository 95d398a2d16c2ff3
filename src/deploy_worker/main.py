"""CLI entrypoint for deploy-worker."""

import logging
import os

import rich_click as click

from deploy_worker import __version__
from deploy_worker.controllers import (
    DeployWorkerCliController,
    EnqueueCommand,
    InspectJobCommand,
    ListJobsCommand,
    RemovalCommand,
    ServeCommand,
    WorkerCommand,
)
from deploy_worker.models import DeploymentStatus
from deploy_worker.storage import JobStoreError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = DeployWorkerCliController()

_DATABASE_URL_OPTION = click.option(
    "--database-url",
    default=None,
    help="Job store SQLAlchemy URL (defaults to DEPLOY_WORKER_DATABASE_URL).",
)


@click.group()
@click.version_option(version=__version__, prog_name="deploy-worker")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=lambda: os.getenv("DEPLOY_WORKER_LOG_LEVEL", "INFO").upper(),
    show_default="INFO",
    help="Root logging level.",
)
def deploy_worker(log_level: str) -> None:
    """Deployment worker CLI."""

    _configure_logging(log_level)


@deploy_worker.command("serve")
@_DATABASE_URL_OPTION
@click.option("--host", default=None, help="Bind address (defaults to DEPLOY_WORKER_HOST).")
@click.option(
    "--port",
    type=click.IntRange(min=1, max=65_535),
    default=None,
    help="Listen port (defaults to DEPLOY_WORKER_PORT / PORT, then 8080).",
)
def serve(database_url: str | None, host: str | None, port: int | None) -> None:
    """Run the HTTP control surface and the polling scheduler."""

    _run(lambda: CONTROLLER.serve(ServeCommand(database_url=database_url, host=host, port=port)))


@deploy_worker.command("worker")
@_DATABASE_URL_OPTION
@click.option(
    "--once/--loop",
    default=True,
    show_default=True,
    help="Run one poll cycle or poll on the configured interval until signalled.",
)
def worker(database_url: str | None, once: bool) -> None:
    """Run poll cycles without the HTTP surface."""

    _emit_lines(
        _run(lambda: CONTROLLER.run_worker(WorkerCommand(database_url=database_url, once=once))),
    )


@deploy_worker.group()
def jobs() -> None:
    """Job store commands standing in for the dashboard."""


@jobs.command("enqueue")
@_DATABASE_URL_OPTION
@click.option("--repo-url", "repository_url", required=True, help="Git repository to deploy.")
@click.option("--branch", default=None, help="Branch to check out (worker default: main).")
@click.option("--stage", default=None, help="SST stage (worker default: production).")
@click.option("--project-id", default=None, help="Dashboard project id.")
@click.option("--user-id", default=None, help="Dashboard user id.")
def jobs_enqueue(  # noqa: PLR0913
    database_url: str | None,
    repository_url: str,
    branch: str | None,
    stage: str | None,
    project_id: str | None,
    user_id: str | None,
) -> None:
    """Insert a pending deployment job."""

    _emit_lines(
        _run(
            lambda: CONTROLLER.enqueue(
                EnqueueCommand(
                    database_url=database_url,
                    repository_url=repository_url,
                    branch=branch,
                    stage=stage,
                    project_id=project_id,
                    user_id=user_id,
                ),
            ),
        ),
    )


@jobs.command("remove")
@_DATABASE_URL_OPTION
@click.argument("job_id")
def jobs_remove(database_url: str | None, job_id: str) -> None:
    """Request removal of the stack deployed by JOB_ID."""

    _emit_lines(
        _run(lambda: CONTROLLER.request_removal(RemovalCommand(database_url, job_id=job_id))),
    )


@jobs.command("list")
@_DATABASE_URL_OPTION
@click.option(
    "--status",
    type=click.Choice([status.value for status in DeploymentStatus], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=20,
    show_default=True,
    help="How many newest jobs to show.",
)
def jobs_list(database_url: str | None, status: str | None, limit: int) -> None:
    """List jobs, newest first."""

    _emit_lines(
        _run(
            lambda: CONTROLLER.list_jobs(
                ListJobsCommand(
                    database_url=database_url,
                    status=status.lower() if status is not None else None,
                    limit=limit,
                ),
            ),
        ),
    )


@jobs.command("inspect")
@_DATABASE_URL_OPTION
@click.argument("job_id")
def jobs_inspect(database_url: str | None, job_id: str) -> None:
    """Show one job record."""

    _emit_lines(_run(lambda: CONTROLLER.inspect(InspectJobCommand(database_url, job_id=job_id))))


def _run(action):
    try:
        return action()
    except (ValueError, JobStoreError) as error:
        raise click.ClickException(str(error)) from error


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    deploy_worker()
