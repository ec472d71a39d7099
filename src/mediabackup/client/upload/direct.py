"""Direct transport: one request per object.

Used for photos and other items below the resumable threshold. The staged
artifact is streamed as the request body so progress follows the bytes
actually handed to the connection.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from pathlib import Path

from mediabackup.client.upload.base import BaseTransport, TransferContext
from mediabackup.client.upload.staging import iter_file
from mediabackup.client.upload.types import Outcome, UploadItem

logger = logging.getLogger(__name__)


class DirectTransport(BaseTransport):
    """Uploads a whole object with a single POST.

    Progress is reported as 0 before the request, then as bytes stream out,
    then as complete right before the success outcome.
    """

    @property
    def transport_type(self) -> str:
        return "direct"

    async def _do_send(self, item: UploadItem, ctx: TransferContext) -> Outcome:
        token = self._require_token()
        object_path = self._client.config.object_path(item.filename)

        artifact = await self._stage(item, ctx)
        try:
            size = artifact.stat().st_size
            ctx.report(0, size)
            logger.debug(f"Uploading {item.filename} to {object_path} ({size} bytes)")
            await self._client.upload_object(
                object_path,
                token,
                self._stream(artifact, size, ctx),
                item.content_type,
                size,
            )
        finally:
            self._staging.release(artifact)

        ctx.report(size, size)
        return Outcome.success()

    @staticmethod
    async def _stream(path: Path, size: int, ctx: TransferContext) -> AsyncIterator[bytes]:
        sent = 0
        async for block in iter_file(path):
            sent += len(block)
            ctx.report(min(sent, size), size)
            yield block
