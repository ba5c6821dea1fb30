"""Command line entry point for the package automation tasks."""

from __future__ import annotations

import logging
from typing import NoReturn
from uuid import UUID

import typer

from metaverse_sdk_automation import __version__
from metaverse_sdk_automation.api.client import ApiClient
from metaverse_sdk_automation.config.config import ConfigManager
from metaverse_sdk_automation.config.helpers import parse_bytes
from metaverse_sdk_automation.const import (
    SUPPORTED_TASKS,
    TASK_UNZIP_PACKAGE_SOURCE,
    TASK_UPDATE_SDK,
    TASK_UPLOAD_PACKAGE_SOURCE,
    USAGE_EXIT_CODE,
)
from metaverse_sdk_automation.exceptions import AutomationError
from metaverse_sdk_automation.log_setup import configure_logging
from metaverse_sdk_automation.tasks import (
    check_sdk_update,
    unzip_package_source,
    upload_package_source,
)
from metaverse_sdk_automation.upload.progress import ProgressReporter
from metaverse_sdk_automation.upload.uploader import ProducerErrorPolicy, Uploader

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="Upload and unpack Unreal plugin packages through the Metaverse API.",
)


def _usage_error(ctx: typer.Context, message: str) -> NoReturn:
    typer.echo(f"Error: {message}", err=True)
    typer.echo(ctx.get_help(), err=True)
    raise typer.Exit(code=USAGE_EXIT_CODE)


def _parse_uuid(value: str) -> UUID | None:
    try:
        parsed = UUID(value)
    except ValueError:
        return None
    return None if parsed.int == 0 else parsed


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.command()
def run(
    ctx: typer.Context,
    api: str = typer.Option("", "--api", help="API base url."),
    token: str = typer.Option("", "--token", help="Authentication token."),
    task: str = typer.Option(
        "", "--task", help=f"Supported tasks: {', '.join(SUPPORTED_TASKS)}."
    ),
    plugin: str = typer.Option("", "--plugin", help="Plugin name."),
    project: str = typer.Option("", "--project", help="Project name."),
    entity_id: str = typer.Option("", "--entity-id", help="Entity id."),
    app_id: str = typer.Option("", "--app-id", help="App id."),
    chunk_size: str = typer.Option(
        "", "--chunk-size", help="Chunk size in bytes, e.g. 8388608 or 8mb."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output."),
    log: bool = typer.Option(False, "--log", help="Create a debug log file."),
    show_progress: bool = typer.Option(
        False, "--show-progress", help="Draw a progress bar while uploading."
    ),
    tolerate_producer_errors: bool = typer.Option(
        False,
        "--tolerate-producer-errors",
        help="Log file read failures during an upload instead of failing.",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Run one automation task."""
    configure_logging(verbose=verbose, log_to_file=log)

    parsed_chunk_size = None
    if chunk_size:
        try:
            parsed_chunk_size = parse_bytes(chunk_size)
        except ValueError as e:
            _usage_error(ctx, str(e))

    try:
        config = ConfigManager().resolve_effective_config({
            "api_url": api or None,
            "token": token or None,
            "chunk_size": parsed_chunk_size,
            "verbose": verbose,
            "log_to_file": log,
        })
    except AutomationError as e:
        _usage_error(ctx, str(e))

    if not config.api_url:
        _usage_error(ctx, "missing --api")
    if not config.token:
        _usage_error(ctx, "missing --token")

    parsed_entity_id = _parse_uuid(entity_id)
    if parsed_entity_id is None:
        _usage_error(ctx, "missing or invalid --entity-id")

    parsed_app_id = _parse_uuid(app_id)
    if parsed_app_id is None:
        logger.warning("no app id")

    if task not in SUPPORTED_TASKS:
        _usage_error(ctx, f"unsupported --task {task!r}")

    client = ApiClient(config)
    uploader = Uploader(
        config,
        progress_reporter=ProgressReporter(show_bar=show_progress),
        producer_error_policy=(
            ProducerErrorPolicy.TOLERATE
            if tolerate_producer_errors
            else ProducerErrorPolicy.FAIL
        ),
    )

    try:
        if task == TASK_UPLOAD_PACKAGE_SOURCE:
            upload_package_source(
                client, uploader, config, parsed_entity_id, project, plugin
            )
        elif task == TASK_UNZIP_PACKAGE_SOURCE:
            unzip_package_source(project, plugin)
        elif task == TASK_UPDATE_SDK:
            if parsed_app_id is None:
                _usage_error(ctx, f"--app-id is required for {TASK_UPDATE_SDK}")
            update_available = check_sdk_update(client, project, parsed_app_id)
            typer.echo("update available" if update_available else "up to date")
    except AutomationError as e:
        logger.error("%s failed: %s", task, e)
        raise typer.Exit(code=1) from e


def main() -> None:
    """CLI entrypoint for the metaverse-sdk-automation command."""
    app()


if __name__ == "__main__":
    main()
