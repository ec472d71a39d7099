"""Backup command for the mediabackup CLI.

Commands:
- backup: Upload every media file of a folder
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
import httpx

from mediabackup.client.api import StorageClient
from mediabackup.client.cli.config import get_storage_config
from mediabackup.client.credentials import StaticCredentials
from mediabackup.client.source import LocalFolderSource
from mediabackup.client.upload import (
    BackupRun,
    DirectTransport,
    ItemCompleteEvent,
    PipelineEvent,
    ResumableTransport,
    RunSummary,
    StagingArea,
    UploadScheduler,
)
from mediabackup.core.config import PipelineConfig, StorageConfig


def _echo_event(event: PipelineEvent) -> None:
    if not isinstance(event, ItemCompleteEvent):
        return
    if event.success:
        click.echo(f"  uploaded {event.filename}")
    else:
        click.echo(f"  failed   {event.filename}: {event.error}", err=True)


async def run_backup(
    folder: Path,
    storage_config: StorageConfig,
    token: str,
    delete_after_upload: bool = True,
    pipeline_config: PipelineConfig | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> RunSummary:
    """Wire the pipeline together and back up one folder.

    Args:
        folder: Folder whose files are uploaded.
        storage_config: Storage target.
        token: Bearer token.
        delete_after_upload: Delete uploaded files from the folder afterwards.
        pipeline_config: Pipeline tuning; reference defaults if omitted.
        http_client: Optional preconfigured httpx client.

    Returns:
        Totals of the run.
    """
    pipeline = pipeline_config or PipelineConfig()
    credentials = StaticCredentials(token)
    staging = StagingArea(pipeline.staging_dir)

    async with StorageClient(storage_config, http_client=http_client) as client:
        direct = DirectTransport(client, credentials, staging, pipeline)
        resumable = ResumableTransport(client, credentials, staging, pipeline)
        scheduler = UploadScheduler(direct, resumable, pipeline, credentials=credentials)
        scheduler.events.subscribe(_echo_event)

        run = BackupRun(
            LocalFolderSource(folder),
            scheduler,
            credentials,
            storage_path=lambda name: f"{storage_config.bucket}/{storage_config.object_path(name)}",
            delete_after_upload=delete_after_upload,
        )
        try:
            return await run.run()
        except asyncio.CancelledError:
            await run.cancel()
            raise


@click.command()
@click.argument(
    "folder", type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path)
)
@click.option(
    "--delete/--no-delete",
    default=True,
    show_default=True,
    help="Delete uploaded files from FOLDER once the run is complete.",
)
@click.option("--token", envvar="MEDIABACKUP_TOKEN", help="Bearer token (or MEDIABACKUP_TOKEN).")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def backup(folder: Path, delete: bool, token: str | None, verbose: bool) -> None:
    """Upload every media file in FOLDER.

    Photos are sent in one request; videos and large files use resumable
    uploads. Exits with status 1 if any item failed.
    """
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    if verbose:
        logging.getLogger("mediabackup").setLevel(logging.DEBUG)

    storage_config = get_storage_config()
    if storage_config is None:
        click.echo("Error: No storage target. Run 'mediabackup config set' first.", err=True)
        sys.exit(1)
    if not token:
        click.echo("Error: Not authenticated. Pass --token or set MEDIABACKUP_TOKEN.", err=True)
        sys.exit(1)

    click.echo(f"Backing up {folder} to {storage_config.bucket}/{storage_config.user_folder}")
    try:
        summary = asyncio.run(run_backup(folder, storage_config, token, delete))
    except KeyboardInterrupt:
        click.echo("\nCancelled.", err=True)
        sys.exit(130)

    click.echo("")
    click.echo(f"Uploaded: {summary.uploaded}")
    click.echo(f"Failed:   {summary.failed}")
    if delete:
        click.echo(f"Deleted:  {summary.deleted}")
    if summary.deletion_error:
        click.echo(f"Warning: could not delete uploaded files: {summary.deletion_error}", err=True)
    if summary.last_error:
        click.echo(f"Last error: {summary.last_error}", err=True)

    if not summary.ok:
        sys.exit(1)
