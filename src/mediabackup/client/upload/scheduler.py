"""Upload scheduler.

This module provides:
- UploadScheduler: Queues items, dispatches them to a transport under a
  shared concurrency limit, requeues retryable failures and announces the
  end of the run exactly once.

Items wait in a primary queue; retryable failures go to a retry queue that
is only served after a short delay, and only when the primary queue is
empty. All bookkeeping runs on the event loop thread, so no lock is needed.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from mediabackup.client.upload.base import BaseTransport, TransferContext
from mediabackup.client.upload.events import EventChannel
from mediabackup.client.upload.retry import RetryRecord
from mediabackup.client.upload.types import (
    AllCompleteEvent,
    BytesPayload,
    ExportPayload,
    FilePayload,
    ItemCompleteEvent,
    Outcome,
    OutcomeKind,
    ProgressEvent,
    TransportKind,
    UploadItem,
    UploadState,
    UploadStatus,
)
from mediabackup.core.config import PipelineConfig
from mediabackup.core.types import MediaKind

if TYPE_CHECKING:
    from mediabackup.client.credentials import CredentialProvider
    from mediabackup.client.source import ExportHandle

logger = logging.getLogger(__name__)


class UploadScheduler:
    """Schedules uploads across the direct and resumable transports.

    Usage:
        scheduler = UploadScheduler(direct, resumable, credentials=creds)
        scheduler.events.subscribe(print)
        scheduler.enqueue_direct(data, "IMG_0001.jpg", "image/jpeg")
        scheduler.enqueue_resumable(handle, "VID_0002.mov", "video/quicktime")
        summary = await scheduler.wait_complete()
    """

    def __init__(
        self,
        direct: BaseTransport,
        resumable: BaseTransport,
        config: PipelineConfig | None = None,
        events: EventChannel | None = None,
        credentials: CredentialProvider | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            direct: Transport for small items.
            resumable: Transport for videos, exports and large items.
            config: Pipeline configuration (concurrency, retry limits, delays).
            events: Channel events are published to. A new one is created if omitted.
            credentials: Provider refreshed after an authentication failure.
        """
        self._direct = direct
        self._resumable = resumable
        self._config = config or PipelineConfig()
        self._events = events or EventChannel()
        self._credentials = credentials

        self._primary: deque[RetryRecord] = deque()
        self._retry: deque[RetryRecord] = deque()
        self._in_flight: dict[str, asyncio.Task[None]] = {}
        self._states: dict[str, UploadState] = {}
        self._failures: dict[str, str] = {}
        self._succeeded = 0
        self._failed = 0

        self._dispatcher: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()
        self._refresh_task: asyncio.Task[None] | None = None
        self._open_batches = 0
        self._completion_fired = False
        self._abandoned = False
        self._completed: asyncio.Event | None = None

    # === Diagnostics ===

    @property
    def events(self) -> EventChannel:
        """Get the event channel."""
        return self._events

    @property
    def active_count(self) -> int:
        """Get number of items in flight."""
        return len(self._in_flight)

    @property
    def queued_count(self) -> int:
        """Get number of items waiting in either queue."""
        return len(self._primary) + len(self._retry)

    @property
    def active_exports(self) -> int:
        """Get number of deferred exports in progress."""
        return self._direct.active_exports + self._resumable.active_exports

    @property
    def states(self) -> dict[str, UploadState]:
        """Get the per-item states of the current run."""
        return dict(self._states)

    @property
    def succeeded_count(self) -> int:
        return self._succeeded

    @property
    def failed_count(self) -> int:
        return self._failed

    @property
    def is_complete(self) -> bool:
        """Check if the all-done signal fired for this run."""
        return self._completion_fired

    @property
    def is_cancelled(self) -> bool:
        """Check if the run was abandoned by cancel_all()."""
        return self._abandoned

    # === Enqueue ===

    def enqueue(self, item: UploadItem) -> None:
        """Add an item to the primary queue and wake the dispatcher.

        Must be called from the event loop. Never blocks on I/O.

        Raises:
            RuntimeError: If the run was cancelled and not reset.
        """
        if self._abandoned:
            raise RuntimeError("Upload run was cancelled; call reset_state() first")

        if item.key not in self._states:
            self._states[item.key] = UploadState(item.key)
        self._primary.append(RetryRecord(item, max_retries=self._config.max_retries))
        logger.debug(f"Queued {item!r}")
        self._wake()

    def enqueue_direct(self, content: bytes | Path, filename: str, content_type: str) -> UploadItem:
        """Queue in-memory bytes or a local file for the direct transport."""
        payload = BytesPayload(content) if isinstance(content, bytes) else FilePayload(Path(content))
        item = UploadItem(filename, payload, content_type, transport=TransportKind.DIRECT)
        self.enqueue(item)
        return item

    def enqueue_resumable(
        self,
        source: ExportHandle | Path,
        filename: str,
        content_type: str,
        media_kind: MediaKind = MediaKind.VIDEO,
    ) -> UploadItem:
        """Queue an export handle or a local file for the resumable transport."""
        payload = FilePayload(source) if isinstance(source, Path) else ExportPayload(source)
        item = UploadItem(
            filename, payload, content_type, media_kind=media_kind, transport=TransportKind.RESUMABLE
        )
        self.enqueue(item)
        return item

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Hold back the all-done signal while a batch of items is being enqueued.

        Usage:
            with scheduler.batch():
                for item in items:
                    scheduler.enqueue(await prepare(item))
        """
        self._open_batches += 1
        try:
            yield
        finally:
            self._open_batches -= 1
            self._check_completion()

    def transport_for(self, item: UploadItem) -> BaseTransport:
        """Pick the transport for an item."""
        if item.transport == TransportKind.DIRECT:
            return self._direct
        if item.transport == TransportKind.RESUMABLE:
            return self._resumable
        if item.is_deferred or item.media_kind == MediaKind.VIDEO:
            return self._resumable
        size = item.size
        if size is not None and size >= self._config.resumable_threshold:
            return self._resumable
        return self._direct

    # === Dispatch ===

    def _wake(self) -> None:
        self._wakeup.set()
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.get_running_loop().create_task(
                self._dispatch(), name="upload-dispatcher"
            )

    async def _dispatch(self) -> None:
        """Start queued items while the concurrency limit allows.

        The primary queue always goes first. The head of the retry queue is
        only taken once its delay has passed; every wake-up during that wait
        looks at the primary queue again.
        """
        loop = asyncio.get_running_loop()
        while not self._abandoned and len(self._in_flight) < self._config.max_concurrent:
            if self._primary:
                self._start(self._primary.popleft())
                continue
            if not self._retry:
                break
            remaining = self._retry[0].not_before - loop.time()
            if remaining > 0:
                self._wakeup.clear()
                with suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._wakeup.wait(), remaining)
                continue
            self._start(self._retry.popleft())
        self._check_completion()

    def _start(self, record: RetryRecord) -> None:
        key = record.key
        state = self._states[key]
        if key in self._in_flight or state.is_terminal:
            logger.warning(f"Skipping duplicate upload of {key}: already {state.status.name.lower()}")
            return

        item = record.item
        transport = self.transport_for(item)
        if item.is_deferred:
            state.transition_to(UploadStatus.EXPORTING)
        else:
            state.transition_to(UploadStatus.IN_FLIGHT)
            state.total_bytes = item.size

        ctx = TransferContext(
            on_progress=partial(self._on_progress, key),
            on_export_started=partial(self._on_export_started, key),
            on_export_finished=partial(self._on_export_finished, key),
        )
        self._in_flight[key] = asyncio.get_running_loop().create_task(
            self._run(record, transport, ctx), name=f"upload:{key}"
        )

    async def _run(self, record: RetryRecord, transport: BaseTransport, ctx: TransferContext) -> None:
        await self._wait_for_refresh()
        logger.info(
            f"Starting {transport.transport_type} upload of {record.key} "
            f"(attempt {record.attempt}/{record.max_retries})"
        )
        try:
            outcome = await transport.send(record.item, ctx)
            self._finish(record, outcome)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error while finishing {record.key}")
            self._in_flight.pop(record.key, None)
            self._mark_failed(record.key, f"Unexpected error: {e}")
            self._check_completion()

    # === Outcomes ===

    def _finish(self, record: RetryRecord, outcome: Outcome) -> None:
        key = record.key
        self._in_flight.pop(key, None)
        if self._abandoned:
            return

        state = self._states[key]
        if outcome.succeeded:
            state.transition_to(UploadStatus.SUCCEEDED)
            self._succeeded += 1
            logger.info(f"Uploaded {key}")
            self._events.publish(ItemCompleteEvent(key, True))
        elif outcome.kind == OutcomeKind.RETRYABLE and record.can_retry:
            state.transition_to(UploadStatus.QUEUED)
            record.bump()
            record.not_before = asyncio.get_running_loop().time() + self._config.retry_queue_delay
            self._retry.append(record)
            logger.warning(
                f"Retrying {key} (attempt {record.attempt}/{record.max_retries}) after: {outcome.reason}"
            )
            if outcome.needs_refresh:
                self._request_refresh()
        else:
            self._mark_failed(key, outcome.reason or "Upload failed")

        self._wake()
        self._check_completion()

    def _mark_failed(self, key: str, reason: str) -> None:
        state = self._states[key]
        state.reason = reason
        state.transition_to(UploadStatus.FAILED)
        self._failed += 1
        self._failures[key] = reason
        logger.error(f"Upload of {key} failed: {reason}")
        self._events.publish(ItemCompleteEvent(key, False, reason))

    def _check_completion(self) -> None:
        if self._completion_fired or self._abandoned or self._open_batches:
            return
        if self._primary or self._retry or self._in_flight or self.active_exports:
            return
        if not self._states:
            return
        self._completion_fired = True
        logger.info(f"Upload run complete: {self._succeeded} succeeded, {self._failed} failed")
        if self._completed is not None:
            self._completed.set()
        self._events.publish(AllCompleteEvent(self._succeeded, self._failed, dict(self._failures)))

    # === Progress ===

    def _on_progress(self, key: str, bytes_sent: int, total_bytes: int | None) -> None:
        if self._abandoned:
            return
        state = self._states.get(key)
        if state is None or not state.record_progress(bytes_sent, total_bytes):
            return
        fraction = state.advance_reported()
        if fraction is not None:
            self._events.publish(ProgressEvent(key, fraction))

    def _on_export_started(self, key: str) -> None:
        logger.info(f"Exporting {key}")

    def _on_export_finished(self, key: str, size: int) -> None:
        if self._abandoned:
            return
        state = self._states[key]
        state.transition_to(UploadStatus.IN_FLIGHT)
        state.total_bytes = size

    # === Credential refresh ===

    def _request_refresh(self) -> None:
        if self._credentials is None:
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.get_running_loop().create_task(
            self._refresh(), name="credential-refresh"
        )

    async def _refresh(self) -> None:
        try:
            refreshed = await self._credentials.refresh()
        except Exception as e:
            logger.warning(f"Credential refresh failed: {e}")
            return
        logger.info("Credential refreshed" if refreshed else "Credential refresh produced no new token")

    async def _wait_for_refresh(self) -> None:
        """Hold a new attempt until a pending credential refresh finished."""
        if self._refresh_task is not None and not self._refresh_task.done():
            await asyncio.wait({self._refresh_task})

    # === Run control ===

    async def wait_complete(self) -> AllCompleteEvent:
        """Wait until the all-done signal fired for the current run, or it was cancelled.

        Returns:
            Totals of the run.
        """
        if not self._completion_fired and not self._abandoned:
            if self._completed is None:
                self._completed = asyncio.Event()
            await self._completed.wait()
        return AllCompleteEvent(self._succeeded, self._failed, dict(self._failures))

    async def cancel_all(self) -> None:
        """Abandon the run.

        Clears both queues, cancels every in-flight transfer and removes all
        staging artifacts. No completion signal is published for an abandoned
        run; call reset_state() before starting the next one.
        """
        self._abandoned = True
        dropped = len(self._primary) + len(self._retry)
        self._primary.clear()
        self._retry.clear()

        tasks = list(self._in_flight.values())
        self._in_flight.clear()
        if self._dispatcher is not None and not self._dispatcher.done():
            tasks.append(self._dispatcher)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._completed is not None:
            self._completed.set()

        for key in [k for k, s in self._states.items() if not s.is_terminal]:
            del self._states[key]

        released = self._direct.release_all() + self._resumable.release_all()
        logger.info(
            f"Cancelled upload run: {len(tasks)} tasks stopped, {dropped} queued items dropped, "
            f"{released} staging files removed"
        )

    def reset_state(self) -> None:
        """Clear queues, states, counters and the completion latch for a new run.

        Raises:
            RuntimeError: If transfers are still in flight.
        """
        if self._in_flight:
            raise RuntimeError("Transfers still in flight; call cancel_all() first")
        self._primary.clear()
        self._retry.clear()
        self._states.clear()
        self._failures.clear()
        self._succeeded = 0
        self._failed = 0
        self._open_batches = 0
        self._completion_fired = False
        self._abandoned = False
        self._completed = None
