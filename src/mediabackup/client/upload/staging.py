"""Transfer-local staging artifacts.

Every transfer works from its own copy of the payload so that the source can be
mutated or cleaned up while the upload runs. Artifacts get globally unique
names, so concurrent transfers never contend over a single file.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from collections.abc import AsyncIterator
from pathlib import Path

logger = logging.getLogger(__name__)

READ_BLOCK_SIZE = 256 * 1024


class StagingError(Exception):
    """Failed to create a staging artifact."""


class StagingArea:
    """Directory holding the staging artifacts of in-flight transfers.

    Usage:
        staging = StagingArea(Path("/tmp/mediabackup-staging"))
        artifact = await staging.write_bytes(data)
        try:
            ...  # upload from artifact
        finally:
            staging.release(artifact)
    """

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._artifacts: set[Path] = set()

    @property
    def directory(self) -> Path:
        """Get the staging directory, creating it if needed."""
        self._directory.mkdir(parents=True, exist_ok=True)
        return self._directory

    @property
    def artifacts(self) -> frozenset[Path]:
        """Get the artifacts currently held."""
        return frozenset(self._artifacts)

    def _new_path(self, suffix: str = "") -> Path:
        return self.directory / f"{uuid.uuid4().hex}{suffix}"

    async def write_bytes(self, data: bytes) -> Path:
        """Write an in-memory payload to a new artifact."""
        path = self._new_path()
        self._artifacts.add(path)
        try:
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as e:
            self.release(path)
            raise StagingError(f"Failed to write temp file: {e}") from e
        return path

    async def copy_file(self, source: Path) -> Path:
        """Copy a file-backed payload to a new artifact."""
        path = self._new_path(source.suffix)
        self._artifacts.add(path)
        try:
            await asyncio.to_thread(shutil.copyfile, source, path)
        except OSError as e:
            self.release(path)
            raise StagingError(f"Failed to copy file: {e}") from e
        return path

    def adopt(self, path: Path) -> Path:
        """Take ownership of an artifact produced elsewhere (e.g. an export)."""
        self._artifacts.add(path)
        return path

    def release(self, path: Path) -> None:
        """Delete an artifact. Safe to call more than once."""
        self._artifacts.discard(path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to remove staging artifact {path.name}: {e}")

    def release_all(self) -> int:
        """Delete every artifact still held.

        Returns:
            Number of artifacts released.
        """
        paths = list(self._artifacts)
        for path in paths:
            self.release(path)
        if paths:
            logger.info(f"Released {len(paths)} staging artifacts")
        return len(paths)

    def purge(self) -> int:
        """Release every held artifact and delete any other file left in the directory.

        Exports interrupted by cancellation can leave output that was never
        adopted; this removes it as well.

        Returns:
            Number of files removed.
        """
        removed = self.release_all()
        if not self._directory.is_dir():
            return removed
        for path in self._directory.iterdir():
            if not path.is_file():
                continue
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Failed to remove stray staging file {path.name}: {e}")
        return removed


async def iter_file(path: Path, block_size: int = READ_BLOCK_SIZE) -> AsyncIterator[bytes]:
    """Yield a file in blocks without holding it in memory."""
    with path.open("rb") as f:
        while True:
            block = await asyncio.to_thread(f.read, block_size)
            if not block:
                break
            yield block


async def read_range(path: Path, offset: int, length: int) -> bytes:
    """Read up to length bytes starting at offset."""

    def _read() -> bytes:
        with path.open("rb") as f:
            f.seek(offset)
            return f.read(length)

    return await asyncio.to_thread(_read)
