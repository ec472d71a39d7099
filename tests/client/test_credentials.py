"""Tests for credential providers."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from mediabackup.client.credentials import CredentialProvider, StaticCredentials


class TestStaticCredentials:
    """Tests for StaticCredentials."""

    def test_is_provider(self) -> None:
        """Should satisfy the CredentialProvider protocol."""
        assert isinstance(StaticCredentials("tok"), CredentialProvider)

    def test_current_token(self) -> None:
        """Should return the configured token."""
        assert StaticCredentials("tok").current_token() == "tok"
        assert StaticCredentials(None).current_token() is None

    @pytest.mark.asyncio
    async def test_refresh_without_refresher(self) -> None:
        """Should keep the token and report no refresh."""
        creds = StaticCredentials("tok")
        assert await creds.refresh() is False
        assert creds.current_token() == "tok"
        assert creds.refresh_count == 1

    @pytest.mark.asyncio
    async def test_refresh_replaces_token(self) -> None:
        """Should adopt the token returned by the refresher."""
        refresher = AsyncMock(return_value="new-tok")
        creds = StaticCredentials("old-tok", refresher=refresher)

        assert await creds.refresh() is True
        assert creds.current_token() == "new-tok"
        refresher.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_token(self) -> None:
        """Should keep the old token when the refresher raises."""
        refresher = AsyncMock(side_effect=RuntimeError("offline"))
        creds = StaticCredentials("old-tok", refresher=refresher)

        assert await creds.refresh() is False
        assert creds.current_token() == "old-tok"

    @pytest.mark.asyncio
    async def test_refresh_empty_token(self) -> None:
        """Should ignore an empty token from the refresher."""
        creds = StaticCredentials("old-tok", refresher=AsyncMock(return_value=None))
        assert await creds.refresh() is False
        assert creds.current_token() == "old-tok"
