"""Upload pipeline.

This package moves media items to the object store:
- UploadScheduler: Queues, concurrency limit, retries and completion signal
- DirectTransport: One request per object for small items
- ResumableTransport: Chunked sessions for videos and large items
- BackupRun: Runs a source through the scheduler, then records and deletes
- EventChannel: Progress, per-item and all-done events

Usage:
    from mediabackup.client.upload import DirectTransport, ResumableTransport, UploadScheduler

    direct = DirectTransport(client, credentials, staging, config)
    resumable = ResumableTransport(client, credentials, staging, config)
    scheduler = UploadScheduler(direct, resumable, config, credentials=credentials)
    scheduler.enqueue_direct(data, "IMG_0001.jpg", "image/jpeg")
    await scheduler.wait_complete()
"""

from mediabackup.client.upload.base import BaseTransport, TransferContext
from mediabackup.client.upload.direct import DirectTransport
from mediabackup.client.upload.events import EventChannel
from mediabackup.client.upload.orchestrator import BackupRun, RunSummary
from mediabackup.client.upload.resumable import (
    ResumableSession,
    ResumableTransport,
    SessionState,
)
from mediabackup.client.upload.retry import RetryRecord, chunk_retry_delay, outcome_for_error
from mediabackup.client.upload.scheduler import UploadScheduler
from mediabackup.client.upload.staging import StagingArea, StagingError
from mediabackup.client.upload.types import (
    AllCompleteEvent,
    BytesPayload,
    ExportPayload,
    FailureKind,
    FilePayload,
    InvalidTransitionError,
    ItemCompleteEvent,
    Outcome,
    OutcomeKind,
    PipelineEvent,
    ProgressEvent,
    TransportKind,
    UploadItem,
    UploadState,
    UploadStatus,
)

__all__ = [
    # Types
    "AllCompleteEvent",
    "BytesPayload",
    "ExportPayload",
    "FailureKind",
    "FilePayload",
    "InvalidTransitionError",
    "ItemCompleteEvent",
    "Outcome",
    "OutcomeKind",
    "PipelineEvent",
    "ProgressEvent",
    "TransportKind",
    "UploadItem",
    "UploadState",
    "UploadStatus",
    # Staging and retry
    "RetryRecord",
    "StagingArea",
    "StagingError",
    "chunk_retry_delay",
    "outcome_for_error",
    # Transports
    "BaseTransport",
    "DirectTransport",
    "ResumableSession",
    "ResumableTransport",
    "SessionState",
    "TransferContext",
    # Scheduling
    "BackupRun",
    "EventChannel",
    "RunSummary",
    "UploadScheduler",
]
