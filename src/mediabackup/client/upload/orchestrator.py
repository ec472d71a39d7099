"""Backup run orchestration.

This module provides:
- RunSummary: Totals of one backup run
- BackupRun: Feeds a source into the scheduler, records metadata for every
  stored item and deletes uploaded originals once the run is complete
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from mediabackup.client.credentials import CredentialProvider
from mediabackup.client.source import ItemSource, MetadataRecorder, SourceItem
from mediabackup.client.upload.scheduler import UploadScheduler
from mediabackup.client.upload.types import ItemCompleteEvent, PipelineEvent

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Totals of one backup run.

    Attributes:
        uploaded: Items stored remotely.
        deleted: Originals removed from the source afterwards.
        failed: Items that could not be read or uploaded.
        failures: Failure reason by filename.
        last_error: Most recent failure reason.
        deletion_error: Why removing the originals failed, if it did.
        cancelled: True if the run was abandoned.
    """

    uploaded: int = 0
    deleted: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    last_error: str | None = None
    deletion_error: str | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.cancelled and self.failed == 0

    def record_failure(self, filename: str, reason: str) -> None:
        self.failed += 1
        self.failures[filename] = reason
        self.last_error = reason


class BackupRun:
    """One pass over a source.

    Images are read into memory and sent directly; videos are handed to the
    resumable transport as export handles so they are only materialized
    when their turn comes.

    Usage:
        run = BackupRun(LocalFolderSource(folder), scheduler, credentials)
        summary = await run.run()
    """

    def __init__(
        self,
        source: ItemSource,
        scheduler: UploadScheduler,
        credentials: CredentialProvider | None = None,
        metadata: MetadataRecorder | None = None,
        storage_path: Callable[[str], str] | None = None,
        delete_after_upload: bool = True,
    ) -> None:
        """Initialize the run.

        Args:
            source: Where the items come from.
            scheduler: Scheduler the items are enqueued on.
            credentials: Refreshed once before the run starts.
            metadata: Optional recorder called for every stored item.
            storage_path: Maps a filename to its storage path for the metadata record.
            delete_after_upload: Remove uploaded originals from the source at the end.
        """
        self._source = source
        self._scheduler = scheduler
        self._credentials = credentials
        self._metadata = metadata
        self._storage_path = storage_path or (lambda filename: filename)
        self._delete_after_upload = delete_after_upload

        self._pending: dict[str, SourceItem] = {}
        self._uploaded: list[SourceItem] = []
        self._metadata_tasks: set[asyncio.Task[None]] = set()
        self._cancelled = False
        self._summary = RunSummary()

    @property
    def summary(self) -> RunSummary:
        return self._summary

    async def run(self, items: list[SourceItem] | None = None) -> RunSummary:
        """Upload every item of the source.

        Args:
            items: Items to upload. Defaults to everything the source lists.

        Returns:
            Totals of the run.
        """
        self._scheduler.reset_state()
        self._pending.clear()
        self._uploaded.clear()
        self._cancelled = False
        self._summary = RunSummary()

        if items is None:
            items = self._source.list_items()
        if not items:
            logger.info("Nothing to back up")
            return self._summary

        await self._refresh_credentials()

        unsubscribe = self._scheduler.events.subscribe(self._on_event)
        try:
            with self._scheduler.batch():
                for item in items:
                    if self._cancelled:
                        break
                    await self._enqueue(item)

            if self._pending and not self._cancelled:
                await self._scheduler.wait_complete()
        finally:
            unsubscribe()

        if self._metadata_tasks:
            await asyncio.gather(*self._metadata_tasks)

        if self._cancelled:
            self._summary.cancelled = True
            return self._summary

        if self._delete_after_upload and self._uploaded:
            await self._delete_uploaded()

        logger.info(
            f"Backup finished: {self._summary.uploaded} uploaded, "
            f"{self._summary.failed} failed, {self._summary.deleted} deleted"
        )
        return self._summary

    async def cancel(self) -> None:
        """Abandon the run and every transfer in progress."""
        self._cancelled = True
        await self._scheduler.cancel_all()
        self._summary.cancelled = True

    async def _refresh_credentials(self) -> None:
        if self._credentials is None:
            return
        try:
            await self._credentials.refresh()
        except Exception as e:
            logger.warning(f"Credential refresh before backup failed: {e}")

    async def _enqueue(self, item: SourceItem) -> None:
        if item.is_video:
            handle = self._source.export_handle(item)
            self._scheduler.enqueue_resumable(
                handle, item.filename, item.content_type, media_kind=item.media_kind
            )
        else:
            try:
                data = await self._source.read_bytes(item)
            except Exception as e:
                logger.error(f"Could not read {item.filename}: {e}")
                self._summary.record_failure(item.filename, str(e))
                return
            if self._cancelled:
                return
            self._scheduler.enqueue_direct(data, item.filename, item.content_type)
        self._pending[item.filename] = item

    def _on_event(self, event: PipelineEvent) -> None:
        if not isinstance(event, ItemCompleteEvent):
            return
        item = self._pending.pop(event.filename, None)
        if item is None:
            return
        if event.success:
            self._summary.uploaded += 1
            self._uploaded.append(item)
            if self._metadata is not None:
                task = asyncio.get_running_loop().create_task(self._record_metadata(item))
                self._metadata_tasks.add(task)
                task.add_done_callback(self._metadata_tasks.discard)
        else:
            self._summary.record_failure(event.filename, event.error or "Upload failed")

    async def _record_metadata(self, item: SourceItem) -> None:
        """Record metadata for a stored item. Failures never fail the upload."""
        try:
            await self._metadata.record(item, self._storage_path(item.filename))
        except Exception as e:
            logger.warning(f"Failed to record metadata for {item.filename}: {e}")

    async def _delete_uploaded(self) -> None:
        try:
            await self._source.delete_items(list(self._uploaded))
        except Exception as e:
            logger.error(f"Failed to delete uploaded originals: {e}")
            self._summary.deletion_error = str(e)
            return
        self._summary.deleted = len(self._uploaded)
