"""Tests for staging artifacts."""

from __future__ import annotations

from pathlib import Path

import pytest

from mediabackup.client.upload.staging import (
    StagingArea,
    StagingError,
    iter_file,
    read_range,
)


@pytest.fixture
def staging(tmp_path: Path) -> StagingArea:
    return StagingArea(tmp_path / "staging")


class TestStagingArea:
    """Tests for StagingArea."""

    def test_directory_created_on_demand(self, staging: StagingArea) -> None:
        """Should create the staging directory when first used."""
        assert staging.directory.is_dir()

    @pytest.mark.asyncio
    async def test_write_bytes(self, staging: StagingArea) -> None:
        """Should write the payload to a held artifact."""
        path = await staging.write_bytes(b"hello")

        assert path.read_bytes() == b"hello"
        assert path in staging.artifacts

    @pytest.mark.asyncio
    async def test_artifact_names_are_unique(self, staging: StagingArea) -> None:
        """Should never reuse a name for concurrent transfers of the same content."""
        first = await staging.write_bytes(b"same")
        second = await staging.write_bytes(b"same")
        assert first != second

    @pytest.mark.asyncio
    async def test_copy_file(self, staging: StagingArea, tmp_path: Path) -> None:
        """Should copy the source and keep its extension."""
        source = tmp_path / "IMG_1.heic"
        source.write_bytes(b"heic")

        path = await staging.copy_file(source)

        assert path.suffix == ".heic"
        assert path.read_bytes() == b"heic"
        source.unlink()
        assert path.exists()

    @pytest.mark.asyncio
    async def test_copy_missing_file(self, staging: StagingArea, tmp_path: Path) -> None:
        """Should raise StagingError and hold nothing."""
        with pytest.raises(StagingError, match="Failed to copy file"):
            await staging.copy_file(tmp_path / "missing.jpg")
        assert staging.artifacts == frozenset()

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, staging: StagingArea) -> None:
        """Should delete the artifact and tolerate a second release."""
        path = await staging.write_bytes(b"x")
        staging.release(path)
        staging.release(path)
        assert not path.exists()
        assert staging.artifacts == frozenset()

    @pytest.mark.asyncio
    async def test_release_all(self, staging: StagingArea) -> None:
        """Should delete every held artifact."""
        paths = [await staging.write_bytes(b"x") for _ in range(3)]

        assert staging.release_all() == 3
        assert not any(p.exists() for p in paths)

    @pytest.mark.asyncio
    async def test_purge_removes_strays(self, staging: StagingArea) -> None:
        """Should also delete files that were never adopted."""
        await staging.write_bytes(b"x")
        (staging.directory / "half-exported.mov").write_bytes(b"partial")

        assert staging.purge() == 2
        assert list(staging.directory.iterdir()) == []

    def test_adopt(self, staging: StagingArea) -> None:
        """Should take ownership of an externally produced file."""
        path = staging.directory / "export.mov"
        path.write_bytes(b"x")
        staging.adopt(path)
        assert path in staging.artifacts


class TestReading:
    """Tests for iter_file() and read_range()."""

    @pytest.mark.asyncio
    async def test_iter_file_blocks(self, tmp_path: Path) -> None:
        """Should yield the file in blocks of the requested size."""
        path = tmp_path / "data"
        path.write_bytes(b"abcdefghij")

        blocks = [block async for block in iter_file(path, block_size=4)]

        assert blocks == [b"abcd", b"efgh", b"ij"]

    @pytest.mark.asyncio
    async def test_read_range(self, tmp_path: Path) -> None:
        """Should read from an offset, stopping at the end of the file."""
        path = tmp_path / "data"
        path.write_bytes(b"abcdefghij")

        assert await read_range(path, 3, 4) == b"defg"
        assert await read_range(path, 8, 4) == b"ij"
        assert await read_range(path, 10, 4) == b""
