"""Item sources feeding the backup pipeline.

This module provides:
- SourceItem: A media item as described by its source
- ExportHandle, ItemSource, MetadataRecorder: Collaborator protocols
- LocalFolderSource: ItemSource over a local directory
- FileExport: ExportHandle that copies a local file into staging
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from mediabackup.core.types import MediaKind

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class SourceError(Exception):
    """Reading, exporting or deleting a source item failed."""


@dataclass(frozen=True)
class SourceItem:
    """A media item as enumerated by an ItemSource.

    Attributes:
        filename: Original filename; the item's key within a run.
        content_type: MIME type.
        media_kind: Image or video.
        location: Source-specific reference (a Path for local folders).
    """

    filename: str
    content_type: str
    media_kind: MediaKind
    location: Any = None

    @property
    def is_video(self) -> bool:
        return self.media_kind == MediaKind.VIDEO


@runtime_checkable
class ExportHandle(Protocol):
    """A payload that has to be materialized before it can be sent."""

    async def export(self, destination_dir: Path) -> Path:
        """Write the exported artifact inside destination_dir and return its path.

        Raises:
            SourceError: If the export failed or was cancelled.
        """
        ...


@runtime_checkable
class ItemSource(Protocol):
    """Enumerates items and gives access to their content."""

    def list_items(self) -> list[SourceItem]: ...

    async def read_bytes(self, item: SourceItem) -> bytes: ...

    def export_handle(self, item: SourceItem) -> ExportHandle: ...

    async def delete_items(self, items: list[SourceItem]) -> None: ...


@runtime_checkable
class MetadataRecorder(Protocol):
    """Writes descriptive metadata after a successful upload."""

    async def record(self, item: SourceItem, storage_path: str) -> None: ...


def guess_content_type(path: Path) -> str:
    """Guess a MIME type from a file name."""
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or DEFAULT_CONTENT_TYPE


class FileExport:
    """Export handle that copies a local file into the staging directory."""

    def __init__(self, path: Path) -> None:
        self.path = path

    async def export(self, destination_dir: Path) -> Path:
        destination = destination_dir / f"{uuid.uuid4().hex}{self.path.suffix}"
        try:
            await asyncio.to_thread(shutil.copyfile, self.path, destination)
        except OSError as e:
            destination.unlink(missing_ok=True)
            raise SourceError(f"Failed to export {self.path.name}: {e}") from e
        return destination

    def __repr__(self) -> str:
        return f"FileExport({self.path})"


class LocalFolderSource:
    """ItemSource over the regular files of one directory.

    Hidden files are skipped. Files whose guessed type starts with "video/"
    are treated as videos, everything else as images.
    """

    def __init__(self, folder: Path) -> None:
        self._folder = folder

    @property
    def folder(self) -> Path:
        return self._folder

    def list_items(self) -> list[SourceItem]:
        if not self._folder.is_dir():
            raise SourceError(f"Not a directory: {self._folder}")
        items: list[SourceItem] = []
        for path in sorted(self._folder.iterdir()):
            if path.name.startswith(".") or not path.is_file():
                continue
            content_type = guess_content_type(path)
            kind = MediaKind.VIDEO if content_type.startswith("video/") else MediaKind.IMAGE
            items.append(SourceItem(path.name, content_type, kind, location=path))
        logger.debug(f"Found {len(items)} items in {self._folder}")
        return items

    async def read_bytes(self, item: SourceItem) -> bytes:
        try:
            return await asyncio.to_thread(Path(item.location).read_bytes)
        except OSError as e:
            raise SourceError(f"Failed to read {item.filename}: {e}") from e

    def export_handle(self, item: SourceItem) -> ExportHandle:
        return FileExport(Path(item.location))

    async def delete_items(self, items: list[SourceItem]) -> None:
        errors: list[str] = []
        for item in items:
            try:
                Path(item.location).unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                errors.append(f"{item.filename}: {e}")
        if errors:
            raise SourceError("Failed to delete " + "; ".join(errors))
        logger.info(f"Deleted {len(items)} items from {self._folder}")
