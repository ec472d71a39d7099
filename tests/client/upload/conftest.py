"""Fixtures for upload pipeline tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from mediabackup.client.api import StorageClient
from mediabackup.client.credentials import StaticCredentials
from mediabackup.client.upload import (
    DirectTransport,
    ResumableTransport,
    StagingArea,
    UploadScheduler,
)
from mediabackup.core.config import PipelineConfig, StorageConfig
from tests.client.upload.fakes import BASE_URL, FakeStorageServer, Pipeline


@pytest.fixture
def server() -> FakeStorageServer:
    """Create a fresh fake storage server."""
    return FakeStorageServer()


@pytest.fixture
def storage_config() -> StorageConfig:
    return StorageConfig(storage_url=BASE_URL, bucket="media", user_folder="user-1")


@pytest.fixture
def pipeline_config(tmp_path: Path) -> PipelineConfig:
    """Reference limits with every delay set to zero and small chunks."""
    return PipelineConfig(
        retry_queue_delay=0,
        create_retry_delay=0,
        chunk_backoff_step=0,
        chunk_size=1024,
        resumable_threshold=4096,
        staging_dir=tmp_path / "staging",
    )


@pytest.fixture
def credentials() -> StaticCredentials:
    return StaticCredentials("token-1")


@pytest.fixture
def pipeline(
    server: FakeStorageServer,
    storage_config: StorageConfig,
    pipeline_config: PipelineConfig,
    credentials: StaticCredentials,
) -> Pipeline:
    """Wire transports and scheduler against the fake server."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    client = StorageClient(storage_config, http_client=http_client)
    staging = StagingArea(pipeline_config.staging_dir)
    direct = DirectTransport(client, credentials, staging, pipeline_config)
    resumable = ResumableTransport(client, credentials, staging, pipeline_config)
    scheduler = UploadScheduler(direct, resumable, pipeline_config, credentials=credentials)
    return Pipeline(
        server, pipeline_config, credentials, staging, client, direct, resumable, scheduler
    )


@pytest.fixture
def staged_files(pipeline_config: PipelineConfig) -> Callable[[], list[Path]]:
    """Return a function listing files left in the staging directory."""

    def _list() -> list[Path]:
        directory = pipeline_config.staging_dir
        if directory is None or not directory.exists():
            return []
        return [p for p in directory.iterdir() if p.is_file()]

    return _list
