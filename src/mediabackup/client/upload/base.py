"""Base transport class.

This module provides:
- TransferContext: Callbacks a transport reports progress and export phases through
- BaseTransport: Abstract base class for the direct and resumable transports
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from mediabackup.client.api import NotAuthenticatedError
from mediabackup.client.source import SourceError
from mediabackup.client.upload.retry import outcome_for_error
from mediabackup.client.upload.types import (
    BytesPayload,
    ExportPayload,
    FilePayload,
    Outcome,
    ProgressCallback,
    UploadItem,
)

if TYPE_CHECKING:
    from mediabackup.client.api import StorageClient
    from mediabackup.client.credentials import CredentialProvider
    from mediabackup.client.upload.staging import StagingArea
    from mediabackup.core.config import PipelineConfig

logger = logging.getLogger(__name__)


@dataclass
class TransferContext:
    """Context passed to one transfer attempt.

    Attributes:
        on_progress: Called with (bytes_sent, total_bytes) as bytes are confirmed.
        on_export_started: Called when a deferred export begins.
        on_export_finished: Called with the artifact size once the export is done.
    """

    on_progress: ProgressCallback | None = None
    on_export_started: Callable[[], None] | None = None
    on_export_finished: Callable[[int], None] | None = None

    def report(self, bytes_sent: int, total_bytes: int | None) -> None:
        if self.on_progress:
            self.on_progress(bytes_sent, total_bytes)

    def export_started(self) -> None:
        if self.on_export_started:
            self.on_export_started()

    def export_finished(self, size: int) -> None:
        if self.on_export_finished:
            self.on_export_finished(size)


class BaseTransport(ABC):
    """Abstract base class for upload transports.

    A transport performs one attempt for one item and always answers with an
    Outcome; only cancellation propagates as an exception. Staging artifacts
    are released before send() returns, whatever the result.

    Subclasses must implement:
    - _do_send(): The protocol logic, raising on failure
    - transport_type: Property returning the transport name
    """

    def __init__(
        self,
        client: StorageClient,
        credentials: CredentialProvider,
        staging: StagingArea,
        config: PipelineConfig,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Storage client performing the HTTP requests.
            credentials: Provider of the bearer token.
            staging: Staging area for transfer-local artifacts.
            config: Pipeline configuration.
        """
        self._client = client
        self._credentials = credentials
        self._staging = staging
        self._config = config
        self._active_exports = 0

    @property
    @abstractmethod
    def transport_type(self) -> str:
        """Return the transport name (e.g., 'direct', 'resumable')."""
        ...

    @property
    def active_exports(self) -> int:
        """Get number of deferred exports in progress."""
        return self._active_exports

    @property
    def staging(self) -> StagingArea:
        return self._staging

    async def send(self, item: UploadItem, ctx: TransferContext | None = None) -> Outcome:
        """Perform one upload attempt.

        Args:
            item: The item to upload.
            ctx: Optional progress and export callbacks.

        Returns:
            Outcome of the attempt.

        Raises:
            asyncio.CancelledError: If the attempt was cancelled.
        """
        ctx = ctx or TransferContext()
        start_time = time.monotonic()
        try:
            outcome = await self._do_send(item, ctx)
        except asyncio.CancelledError:
            logger.info(f"{self.transport_type} upload cancelled: {item.filename}")
            raise
        except Exception as e:
            outcome = outcome_for_error(e)

        elapsed = time.monotonic() - start_time
        if outcome.succeeded:
            logger.info(f"{self.transport_type} upload completed: {item.filename} ({elapsed:.2f}s)")
        else:
            logger.warning(
                f"{self.transport_type} upload failed: {item.filename} "
                f"({outcome.kind.name.lower()}): {outcome.reason}"
            )
        return outcome

    @abstractmethod
    async def _do_send(self, item: UploadItem, ctx: TransferContext) -> Outcome:
        """Perform the transfer.

        Raises:
            APIError, StagingError, SourceError: Classified by send().
        """
        ...

    def _require_token(self) -> str:
        token = self._credentials.current_token()
        if not token:
            raise NotAuthenticatedError("Not authenticated")
        return token

    async def _refresh_credentials(self) -> None:
        try:
            refreshed = await self._credentials.refresh()
        except Exception as e:
            logger.warning(f"Credential refresh failed: {e}")
            return
        if not refreshed:
            logger.warning("Credential refresh did not produce a new token")

    async def _stage(self, item: UploadItem, ctx: TransferContext) -> Path:
        """Materialize the item's payload into a staging artifact."""
        payload = item.payload
        if isinstance(payload, BytesPayload):
            return await self._staging.write_bytes(payload.data)
        if isinstance(payload, FilePayload):
            return await self._staging.copy_file(payload.path)
        if isinstance(payload, ExportPayload):
            return await self._export(item, payload, ctx)
        raise TypeError(f"Unsupported payload: {type(payload).__name__}")

    async def _export(self, item: UploadItem, payload: ExportPayload, ctx: TransferContext) -> Path:
        """Resolve a deferred export just before the transfer starts."""
        self._active_exports += 1
        ctx.export_started()
        logger.debug(f"Exporting {item.filename}")
        try:
            path = await payload.handle.export(self._staging.directory)
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(str(e) or type(e).__name__) from e
        finally:
            self._active_exports -= 1

        self._staging.adopt(path)
        try:
            size = path.stat().st_size
        except OSError as e:
            self._staging.release(path)
            raise SourceError(f"Exported file is unreadable: {e}") from e
        logger.info(f"Export completed for {item.filename} ({size / 1_000_000:.1f} MB)")
        ctx.export_finished(size)
        return path

    def release_all(self) -> int:
        """Delete every staging artifact, including stray export output."""
        return self._staging.purge()
