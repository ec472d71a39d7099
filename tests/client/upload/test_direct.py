"""Tests for the direct transport."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from mediabackup.client.credentials import StaticCredentials
from mediabackup.client.source import FileExport
from mediabackup.client.upload import (
    BytesPayload,
    DirectTransport,
    ExportPayload,
    FailureKind,
    FilePayload,
    OutcomeKind,
    TransferContext,
    UploadItem,
)
from tests.client.upload.fakes import Pipeline


def image(filename: str = "IMG_0001.jpg", data: bytes = b"jpeg-bytes") -> UploadItem:
    return UploadItem(filename, BytesPayload(data), "image/jpeg")


class TestDirectTransport:
    """Tests for DirectTransport."""

    @pytest.mark.asyncio
    async def test_upload_bytes(self, pipeline: Pipeline) -> None:
        """Should POST the staged bytes to the sanitized object path."""
        outcome = await pipeline.direct.send(image("Zdjęcie 1.jpg", b"abc"))

        assert outcome.succeeded
        assert pipeline.server.objects == {"user-1/Zdjecie1.jpg": b"abc"}
        request = pipeline.server.requests[0]
        assert request.headers["Authorization"] == "Bearer token-1"
        assert request.headers["Content-Type"] == "image/jpeg"
        assert request.headers["Content-Length"] == "3"
        assert request.headers["x-upsert"] == "true"

    @pytest.mark.asyncio
    async def test_upload_file(self, pipeline: Pipeline, tmp_path: Path) -> None:
        """Should upload a file-backed payload."""
        source = tmp_path / "IMG_2.png"
        source.write_bytes(b"png" * 100)
        item = UploadItem("IMG_2.png", FilePayload(source), "image/png")

        outcome = await pipeline.direct.send(item)

        assert outcome.succeeded
        assert pipeline.server.objects["user-1/IMG_2.png"] == b"png" * 100
        assert source.exists()

    @pytest.mark.asyncio
    async def test_progress_reports(self, pipeline: Pipeline) -> None:
        """Should report 0 first, complete last, and never go backwards."""
        reports: list[tuple[int, int | None]] = []
        ctx = TransferContext(on_progress=lambda sent, total: reports.append((sent, total)))

        await pipeline.direct.send(image(data=b"x" * 600_000), ctx)

        assert reports[0] == (0, 600_000)
        assert reports[-1] == (600_000, 600_000)
        sent = [s for s, _ in reports]
        assert sent == sorted(sent)

    @pytest.mark.asyncio
    async def test_staging_released_on_success(
        self, pipeline: Pipeline, staged_files: Callable[[], list[Path]]
    ) -> None:
        """Should leave no staging artifact behind."""
        await pipeline.direct.send(image())
        assert staged_files() == []

    @pytest.mark.asyncio
    async def test_staging_released_on_failure(
        self, pipeline: Pipeline, staged_files: Callable[[], list[Path]]
    ) -> None:
        """Should release the artifact when the request fails."""
        pipeline.server.fail("POST", 500)

        outcome = await pipeline.direct.send(image())

        assert outcome.kind == OutcomeKind.RETRYABLE
        assert staged_files() == []

    @pytest.mark.asyncio
    async def test_not_authenticated(self, pipeline: Pipeline) -> None:
        """Should fail terminally without a token and send nothing."""
        transport = DirectTransport(
            pipeline.client, StaticCredentials(None), pipeline.staging, pipeline.config
        )

        outcome = await transport.send(image())

        assert outcome.kind == OutcomeKind.TERMINAL
        assert outcome.failure == FailureKind.NOT_AUTHENTICATED
        assert outcome.reason == "Not authenticated"
        assert pipeline.server.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "kind", "failure"),
        [
            (401, OutcomeKind.RETRYABLE, FailureKind.AUTH_EXPIRED),
            (403, OutcomeKind.RETRYABLE, FailureKind.AUTH_EXPIRED),
            (503, OutcomeKind.RETRYABLE, FailureKind.SERVER_TRANSIENT),
            (413, OutcomeKind.TERMINAL, FailureKind.PAYLOAD_TOO_LARGE),
            (400, OutcomeKind.TERMINAL, FailureKind.REQUEST_REJECTED),
        ],
    )
    async def test_status_classification(
        self, pipeline: Pipeline, status: int, kind: OutcomeKind, failure: FailureKind
    ) -> None:
        """Should map response statuses onto outcomes."""
        pipeline.server.fail("POST", status)

        outcome = await pipeline.direct.send(image())

        assert outcome.kind == kind
        assert outcome.failure == failure

    @pytest.mark.asyncio
    async def test_auth_flavoured_400(self, pipeline: Pipeline) -> None:
        """Should treat an expired-JWT 400 as an auth failure."""
        pipeline.server.fail("POST", 400, json={"message": "JWT expired"})

        outcome = await pipeline.direct.send(image())

        assert outcome.failure == FailureKind.AUTH_EXPIRED
        assert outcome.needs_refresh

    @pytest.mark.asyncio
    async def test_network_failure(self, pipeline: Pipeline) -> None:
        """Should classify connection errors as retryable."""
        pipeline.server.fail("POST", None)

        outcome = await pipeline.direct.send(image())

        assert outcome.kind == OutcomeKind.RETRYABLE
        assert outcome.failure == FailureKind.NETWORK_FAILURE

    @pytest.mark.asyncio
    async def test_missing_file(self, pipeline: Pipeline, tmp_path: Path) -> None:
        """Should fail terminally when the payload cannot be staged."""
        item = UploadItem("gone.jpg", FilePayload(tmp_path / "gone.jpg"), "image/jpeg")

        outcome = await pipeline.direct.send(item)

        assert outcome.failure == FailureKind.STAGING_FAILURE
        assert outcome.reason.startswith("Failed to copy file")

    @pytest.mark.asyncio
    async def test_export_payload(self, pipeline: Pipeline, tmp_path: Path) -> None:
        """Should resolve an export payload when forced onto the direct transport."""
        source = tmp_path / "clip.mov"
        source.write_bytes(b"mov")
        item = UploadItem("clip.mov", ExportPayload(FileExport(source)), "video/quicktime")
        finished: list[int] = []

        outcome = await pipeline.direct.send(item, TransferContext(on_export_finished=finished.append))

        assert outcome.succeeded
        assert finished == [3]
        assert pipeline.direct.active_exports == 0
