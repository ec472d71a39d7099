"""Tests for upload pipeline types."""

from __future__ import annotations

from pathlib import Path

import pytest

from mediabackup.client.source import FileExport
from mediabackup.client.upload.types import (
    VALID_TRANSITIONS,
    BytesPayload,
    ExportPayload,
    FailureKind,
    FilePayload,
    InvalidTransitionError,
    Outcome,
    OutcomeKind,
    UploadItem,
    UploadState,
    UploadStatus,
)
from mediabackup.core.types import MediaKind


class TestUploadItem:
    """Tests for UploadItem."""

    def test_key_is_filename(self) -> None:
        """Should use the filename as identity."""
        item = UploadItem("IMG_1.jpg", BytesPayload(b"abc"), "image/jpeg")
        assert item.key == "IMG_1.jpg"

    def test_size_of_bytes(self) -> None:
        """Should know the size of in-memory payloads."""
        assert UploadItem("a", BytesPayload(b"abcd"), "image/jpeg").size == 4

    def test_size_of_file(self, tmp_path: Path) -> None:
        """Should stat file payloads."""
        path = tmp_path / "a.jpg"
        path.write_bytes(b"x" * 10)
        assert UploadItem("a.jpg", FilePayload(path), "image/jpeg").size == 10

    def test_size_of_missing_file(self, tmp_path: Path) -> None:
        """Should report an unknown size for a missing file."""
        assert UploadItem("a", FilePayload(tmp_path / "gone"), "image/jpeg").size is None

    def test_deferred_export(self, tmp_path: Path) -> None:
        """Should report export payloads as deferred with unknown size."""
        item = UploadItem(
            "v.mov", ExportPayload(FileExport(tmp_path / "v.mov")), "video/quicktime",
            media_kind=MediaKind.VIDEO,
        )
        assert item.is_deferred is True
        assert item.size is None

    def test_repr(self) -> None:
        """Should name the payload variant instead of dumping bytes."""
        item = UploadItem("a.jpg", BytesPayload(b"x" * 1000), "image/jpeg")
        assert repr(item) == "UploadItem('a.jpg', payload=BytesPayload, kind=image)"


class TestUploadState:
    """Tests for UploadState transitions and progress."""

    def test_initial_state(self) -> None:
        """Should start queued with no progress."""
        state = UploadState("a.jpg")
        assert state.status == UploadStatus.QUEUED
        assert state.bytes_sent == 0
        assert state.fraction == 0.0

    def test_valid_lifecycle(self) -> None:
        """Should allow queued -> in flight -> succeeded."""
        state = UploadState("a.jpg")
        state.transition_to(UploadStatus.IN_FLIGHT)
        state.transition_to(UploadStatus.SUCCEEDED)
        assert state.is_terminal
        assert state.fraction == 1.0

    def test_export_lifecycle(self) -> None:
        """Should allow queued -> exporting -> in flight."""
        state = UploadState("v.mov")
        state.transition_to(UploadStatus.EXPORTING)
        state.transition_to(UploadStatus.IN_FLIGHT)
        assert state.status == UploadStatus.IN_FLIGHT

    def test_terminal_states_are_final(self) -> None:
        """Should reject any transition out of a terminal state."""
        for terminal in (UploadStatus.SUCCEEDED, UploadStatus.FAILED):
            assert VALID_TRANSITIONS[terminal] == set()
        state = UploadState("a.jpg")
        state.transition_to(UploadStatus.IN_FLIGHT)
        state.transition_to(UploadStatus.FAILED)
        with pytest.raises(InvalidTransitionError):
            state.transition_to(UploadStatus.QUEUED)

    def test_cannot_skip_in_flight(self) -> None:
        """Should reject queued -> succeeded."""
        with pytest.raises(InvalidTransitionError):
            UploadState("a.jpg").transition_to(UploadStatus.SUCCEEDED)

    def test_progress_is_monotonic(self) -> None:
        """Should ignore progress that goes backwards."""
        state = UploadState("a.jpg")
        state.transition_to(UploadStatus.IN_FLIGHT)

        assert state.record_progress(50, 100) is True
        assert state.record_progress(20, 100) is False
        assert state.bytes_sent == 50
        assert state.fraction == 0.5

    def test_progress_ignored_when_not_in_flight(self) -> None:
        """Should only record progress while in flight."""
        state = UploadState("a.jpg")
        assert state.record_progress(10, 100) is False
        assert state.bytes_sent == 0

    def test_requeue_keeps_reported_fraction(self) -> None:
        """Should restart the attempt but never report less than before."""
        state = UploadState("a.jpg")
        state.transition_to(UploadStatus.IN_FLIGHT)
        state.record_progress(80, 100)
        assert state.advance_reported() == 0.8

        state.transition_to(UploadStatus.QUEUED)
        state.transition_to(UploadStatus.IN_FLIGHT)
        state.record_progress(10, 100)

        assert state.bytes_sent == 10
        assert state.advance_reported() is None
        assert state.reported_fraction == 0.8
        state.record_progress(90, 100)
        assert state.advance_reported() == 0.9

    def test_empty_transfer_is_complete_in_flight(self) -> None:
        """Should report a 0-byte transfer as done once it is in flight."""
        state = UploadState("empty.jpg", total_bytes=0)
        assert state.fraction == 0.0
        state.transition_to(UploadStatus.IN_FLIGHT)
        assert state.record_progress(0, 0) is True
        assert state.fraction == 1.0

    def test_fraction_clamped(self) -> None:
        """Should never report more than 1.0."""
        state = UploadState("a.jpg")
        state.transition_to(UploadStatus.IN_FLIGHT)
        state.record_progress(150, 100)
        assert state.fraction == 1.0


class TestOutcome:
    """Tests for Outcome values."""

    def test_success(self) -> None:
        outcome = Outcome.success()
        assert outcome.succeeded
        assert outcome.failure is None

    def test_retryable_auth_needs_refresh(self) -> None:
        """Should ask for a credential refresh after an expired token."""
        outcome = Outcome.retryable(FailureKind.AUTH_EXPIRED, "Authentication expired")
        assert outcome.kind == OutcomeKind.RETRYABLE
        assert outcome.needs_refresh is True

    def test_terminal(self) -> None:
        outcome = Outcome.terminal(FailureKind.PAYLOAD_TOO_LARGE, "too large")
        assert outcome.kind == OutcomeKind.TERMINAL
        assert outcome.needs_refresh is False
        assert not outcome.succeeded
