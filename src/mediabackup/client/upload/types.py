"""Shared types and dataclasses for the upload pipeline.

This module provides:
- TransportKind: Transport routing (MediaKind is re-exported from core)
- BytesPayload, FilePayload, ExportPayload: The three payload variants
- UploadItem: One media object to be transferred
- UploadStatus, UploadState: Per-item state machine owned by the scheduler
- FailureKind, OutcomeKind, Outcome: Terminal result of one transfer attempt
- ProgressEvent, ItemCompleteEvent, AllCompleteEvent: Pipeline events
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto
from pathlib import Path
from typing import TYPE_CHECKING, Union

from mediabackup.core.types import MediaKind

if TYPE_CHECKING:
    from mediabackup.client.source import ExportHandle


class TransportKind(IntEnum):
    """Which transport an item is dispatched to."""

    AUTO = auto()  # Decided by the scheduler from payload, kind and size
    DIRECT = auto()
    RESUMABLE = auto()


# =============================================================================
# Payload variants
# =============================================================================


@dataclass(frozen=True)
class BytesPayload:
    """Item content already held in memory."""

    data: bytes


@dataclass(frozen=True)
class FilePayload:
    """Item content stored in a local file."""

    path: Path


@dataclass(frozen=True)
class ExportPayload:
    """Item content that must be exported (e.g. transcoded) before transfer."""

    handle: ExportHandle


Payload = Union[BytesPayload, FilePayload, ExportPayload]


@dataclass(frozen=True)
class UploadItem:
    """One media object to be transferred.

    Attributes:
        filename: Stable key of the item; unique within one pipeline run.
        payload: Where the item's bytes come from.
        content_type: MIME type sent with the upload.
        media_kind: Image or video.
        transport: Forced transport, or AUTO to let the scheduler decide.
    """

    filename: str
    payload: Payload
    content_type: str
    media_kind: MediaKind = MediaKind.IMAGE
    transport: TransportKind = TransportKind.AUTO

    @property
    def key(self) -> str:
        """Identity of the item inside one run."""
        return self.filename

    @property
    def is_deferred(self) -> bool:
        """Check if the payload needs an export before transfer."""
        return isinstance(self.payload, ExportPayload)

    @property
    def size(self) -> int | None:
        """Size in bytes, or None while unknown (deferred exports, missing files)."""
        if isinstance(self.payload, BytesPayload):
            return len(self.payload.data)
        if isinstance(self.payload, FilePayload):
            try:
                return self.payload.path.stat().st_size
            except OSError:
                return None
        return None

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"UploadItem({self.filename!r}, "
            f"payload={type(self.payload).__name__}, "
            f"kind={self.media_kind.value})"
        )


# =============================================================================
# Per-item state
# =============================================================================


class UploadStatus(IntEnum):
    """Status of an item inside the pipeline."""

    QUEUED = auto()
    EXPORTING = auto()
    IN_FLIGHT = auto()
    SUCCEEDED = auto()
    FAILED = auto()


# Valid state transitions
VALID_TRANSITIONS: dict[UploadStatus, set[UploadStatus]] = {
    UploadStatus.QUEUED: {UploadStatus.EXPORTING, UploadStatus.IN_FLIGHT},
    UploadStatus.EXPORTING: {UploadStatus.IN_FLIGHT, UploadStatus.FAILED},
    UploadStatus.IN_FLIGHT: {
        UploadStatus.QUEUED,  # Retryable failure
        UploadStatus.SUCCEEDED,
        UploadStatus.FAILED,
    },
    UploadStatus.SUCCEEDED: set(),  # Terminal
    UploadStatus.FAILED: set(),  # Terminal
}


class InvalidTransitionError(Exception):
    """Raised when attempting invalid state transition."""


@dataclass
class UploadState:
    """Mutable state of one item, owned by the scheduler.

    Attributes:
        filename: Item key.
        status: Current status.
        bytes_sent: Bytes confirmed sent by the current attempt.
        total_bytes: Total bytes of the transfer, if known.
        reason: Failure reason once FAILED.
        reported_fraction: Highest fraction published so far. Survives
            requeues, so a retried item never reports going backwards.
    """

    filename: str
    status: UploadStatus = UploadStatus.QUEUED
    bytes_sent: int = 0
    total_bytes: int | None = None
    reason: str | None = None
    reported_fraction: float = 0.0

    def transition_to(self, new_status: UploadStatus) -> None:
        """Transition to a new status with validation."""
        if new_status not in VALID_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"{self.filename}: cannot transition from "
                f"{self.status.name} to {new_status.name}"
            )
        self.status = new_status
        if new_status in (UploadStatus.QUEUED, UploadStatus.EXPORTING):
            self.bytes_sent = 0

    def record_progress(self, bytes_sent: int, total_bytes: int | None) -> bool:
        """Record transferred bytes, ignoring any step backwards.

        Returns:
            True if the recorded progress advanced.
        """
        if self.status != UploadStatus.IN_FLIGHT:
            return False
        if total_bytes is not None:
            self.total_bytes = total_bytes
        if bytes_sent < self.bytes_sent:
            return False
        self.bytes_sent = bytes_sent
        return True

    @property
    def fraction(self) -> float:
        """Fraction of bytes sent, in [0, 1]."""
        if self.status == UploadStatus.SUCCEEDED:
            return 1.0
        if self.total_bytes is None:
            return 0.0
        if self.total_bytes == 0:
            return 1.0 if self.status == UploadStatus.IN_FLIGHT else 0.0
        return min(self.bytes_sent / self.total_bytes, 1.0)

    def advance_reported(self) -> float | None:
        """Raise the published high-water mark to the current fraction.

        Returns:
            The fraction to publish, or None if it would go backwards.
        """
        fraction = self.fraction
        if fraction < self.reported_fraction:
            return None
        self.reported_fraction = fraction
        return fraction

    @property
    def is_terminal(self) -> bool:
        """Check if the item reached a terminal state."""
        return self.status in (UploadStatus.SUCCEEDED, UploadStatus.FAILED)


# =============================================================================
# Transfer outcomes
# =============================================================================


class FailureKind(Enum):
    """Why a transfer attempt failed."""

    NOT_AUTHENTICATED = auto()  # No credential available
    AUTH_EXPIRED = auto()  # 401/403 or auth-flavoured 400
    PAYLOAD_TOO_LARGE = auto()  # 413
    REQUEST_REJECTED = auto()  # Other 4xx, unparseable request
    SERVER_TRANSIENT = auto()  # 5xx
    NETWORK_FAILURE = auto()  # Transport-level error
    EXPORT_FAILURE = auto()  # Deferred export failed or was cancelled
    PROTOCOL_VIOLATION = auto()  # Malformed resumable response
    STAGING_FAILURE = auto()  # Could not materialize the staging artifact


class OutcomeKind(Enum):
    """Result of one transfer attempt as seen by the scheduler."""

    SUCCESS = auto()
    RETRYABLE = auto()
    TERMINAL = auto()


@dataclass(frozen=True)
class Outcome:
    """Value returned by a transport for one attempt.

    Transports never raise across the scheduler boundary; every result
    is one of these values.
    """

    kind: OutcomeKind
    reason: str | None = None
    failure: FailureKind | None = None

    @classmethod
    def success(cls) -> Outcome:
        return cls(OutcomeKind.SUCCESS)

    @classmethod
    def retryable(cls, failure: FailureKind, reason: str) -> Outcome:
        return cls(OutcomeKind.RETRYABLE, reason, failure)

    @classmethod
    def terminal(cls, failure: FailureKind, reason: str) -> Outcome:
        return cls(OutcomeKind.TERMINAL, reason, failure)

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @property
    def needs_refresh(self) -> bool:
        """Check if the credential should be refreshed before the next attempt."""
        return self.failure == FailureKind.AUTH_EXPIRED


# =============================================================================
# Pipeline events
# =============================================================================


@dataclass(frozen=True)
class ProgressEvent:
    """Progress of one item, fraction in [0, 1]."""

    filename: str
    fraction: float


@dataclass(frozen=True)
class ItemCompleteEvent:
    """An item reached a terminal state."""

    filename: str
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class AllCompleteEvent:
    """Every item of the run reached a terminal state."""

    succeeded: int
    failed: int
    failures: dict[str, str] = field(default_factory=dict)


PipelineEvent = Union[ProgressEvent, ItemCompleteEvent, AllCompleteEvent]

# Type aliases for callbacks
EventListener = Callable[[PipelineEvent], None]
ProgressCallback = Callable[[int, int | None], None]
