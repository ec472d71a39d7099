"""Shared configuration classes for mediabackup.

This module defines the configuration used by the HTTP layer and the upload
pipeline. Defaults reproduce the reference pipeline behaviour.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from mediabackup.core.sanitize import sanitize_filename

MIB = 1024 * 1024


@dataclass
class StorageConfig:
    """Configuration for connecting to the remote object store.

    Attributes:
        storage_url: Base URL of the storage API (e.g., "https://x.supabase.co/storage/v1").
        bucket: Destination bucket name.
        user_folder: User-scoped folder prefix prepended to every object path.
        timeout: Timeout in seconds for ordinary requests.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    storage_url: str
    bucket: str
    user_folder: str = ""
    timeout: float = 60.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize URL and folder prefix."""
        self.storage_url = self.storage_url.rstrip("/")
        folder = self.user_folder.strip("/")
        self.user_folder = f"{folder}/" if folder else ""

    @property
    def resumable_url(self) -> str:
        """Get the endpoint that creates resumable upload sessions."""
        return f"{self.storage_url}/upload/resumable"

    def object_path(self, filename: str) -> str:
        """Get the object path (inside the bucket) for a filename.

        Args:
            filename: Original item filename.

        Returns:
            User folder prefix followed by the sanitized filename.
        """
        return self.user_folder + sanitize_filename(filename)

    def object_url(self, object_path: str) -> str:
        """Get the direct upload URL for an object path."""
        return f"{self.storage_url}/object/{self.bucket}/{quote(object_path)}"


@dataclass
class PipelineConfig:
    """Tuning knobs for the upload pipeline.

    Attributes:
        max_concurrent: Maximum number of items in flight across both transports.
        max_retries: Attempts per item granted by the scheduler's retry queue.
        max_create_retries: Attempts for the resumable create step.
        max_chunk_retries: Attempts per chunk of a resumable transfer.
        retry_queue_delay: Seconds to wait before serving the retry queue.
        create_retry_delay: Seconds between resumable create attempts.
        chunk_backoff_step: Chunk retry delay is retry_count * chunk_backoff_step.
        chunk_size: Bytes sent per resumable chunk request.
        chunk_timeout: Per-request timeout in seconds for chunk requests.
        resumable_threshold: Items at least this large use the resumable transport.
        cache_control: Cache directive sent with resumable uploads.
        tus_version: Resumable protocol version header value.
        staging_dir: Directory for transfer-local staging artifacts. Defaults to a
            fresh private directory under the system temp dir, so cancelling one
            run never removes another run's artifacts.
    """

    max_concurrent: int = 2
    max_retries: int = 3
    max_create_retries: int = 3
    max_chunk_retries: int = 5
    retry_queue_delay: float = 2.0
    create_retry_delay: float = 2.0
    chunk_backoff_step: float = 2.0
    chunk_size: int = 5 * MIB
    chunk_timeout: float = 300.0
    resumable_threshold: int = 5 * MIB
    cache_control: str = "3600"
    tus_version: str = "1.0.0"
    staging_dir: Path | None = None

    def __post_init__(self) -> None:
        """Validate limits and resolve the staging directory."""
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        for name in ("max_retries", "max_create_retries", "max_chunk_retries"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        for name in ("retry_queue_delay", "create_retry_delay", "chunk_backoff_step"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.staging_dir is None:
            self.staging_dir = Path(tempfile.mkdtemp(prefix="mediabackup-staging-"))
