"""Retry bookkeeping and failure classification.

This module provides:
- RetryRecord: An item plus the number of attempts already spent on it
- chunk_retry_delay: Linear backoff used between resumable chunk attempts
- outcome_for_error: Maps an exception to the Outcome a transport reports
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mediabackup.client.api import (
    APIError,
    AuthenticationError,
    NetworkError,
    NotAuthenticatedError,
    PayloadTooLargeError,
    ProtocolError,
    ServerError,
)
from mediabackup.client.source import SourceError
from mediabackup.client.upload.staging import StagingError
from mediabackup.client.upload.types import FailureKind, Outcome, UploadItem

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_RETRIES = 3  # Scheduler attempts per item


@dataclass
class RetryRecord:
    """An item waiting in one of the scheduler queues.

    Attributes:
        item: The item to upload.
        max_retries: Total attempts allowed for this item.
        retry_count: Attempts already spent and failed retryably.
        not_before: Event loop time before which a requeued record is not taken.
    """

    item: UploadItem
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_count: int = 0
    not_before: float = 0.0

    @property
    def key(self) -> str:
        return self.item.key

    @property
    def attempt(self) -> int:
        """1-based number of the attempt this record represents."""
        return self.retry_count + 1

    @property
    def can_retry(self) -> bool:
        """Check if another attempt is allowed after the current one fails."""
        return self.retry_count + 1 < self.max_retries

    def bump(self) -> RetryRecord:
        """Count one more retry."""
        self.retry_count += 1
        return self


def chunk_retry_delay(retry_count: int, step: float) -> float:
    """Delay before the next chunk attempt; grows linearly with retry_count."""
    return retry_count * step


def outcome_for_error(error: Exception) -> Outcome:
    """Classify an error raised during a transfer attempt.

    Auth, server and network failures are retryable; everything else is
    terminal.
    """
    message = str(error) or type(error).__name__

    if isinstance(error, NotAuthenticatedError):
        return Outcome.terminal(FailureKind.NOT_AUTHENTICATED, message)
    if isinstance(error, AuthenticationError):
        return Outcome.retryable(FailureKind.AUTH_EXPIRED, message)
    if isinstance(error, ServerError):
        return Outcome.retryable(FailureKind.SERVER_TRANSIENT, message)
    if isinstance(error, NetworkError):
        return Outcome.retryable(FailureKind.NETWORK_FAILURE, message)
    if isinstance(error, PayloadTooLargeError):
        return Outcome.terminal(FailureKind.PAYLOAD_TOO_LARGE, message)
    if isinstance(error, ProtocolError):
        return Outcome.terminal(FailureKind.PROTOCOL_VIOLATION, message)
    if isinstance(error, APIError):
        return Outcome.terminal(FailureKind.REQUEST_REJECTED, message)
    if isinstance(error, StagingError):
        return Outcome.terminal(FailureKind.STAGING_FAILURE, message)
    if isinstance(error, SourceError):
        return Outcome.terminal(FailureKind.EXPORT_FAILURE, f"Export failed: {message}")

    logger.error(f"Unexpected upload error: {error!r}")
    return Outcome.terminal(FailureKind.REQUEST_REJECTED, f"Unexpected error: {message}")
