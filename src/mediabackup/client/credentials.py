"""Bearer credential providers.

Credential storage and sign-in flows live outside this package. The pipeline
only needs the current token and a way to ask for a fresh one.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialProvider(Protocol):
    """Supplies the current bearer token."""

    def current_token(self) -> str | None:
        """Return the current token, or None when signed out."""
        ...

    async def refresh(self) -> bool:
        """Refresh the token. Returns True on success."""
        ...


class StaticCredentials:
    """Credential provider backed by a fixed token.

    An optional async refresher can supply a new token when the current one
    is rejected.
    """

    def __init__(
        self,
        token: str | None,
        refresher: Callable[[], Awaitable[str | None]] | None = None,
    ) -> None:
        self._token = token
        self._refresher = refresher
        self.refresh_count = 0

    def current_token(self) -> str | None:
        return self._token

    async def refresh(self) -> bool:
        self.refresh_count += 1
        if self._refresher is None:
            logger.debug("No refresher configured, keeping current token")
            return False
        try:
            token = await self._refresher()
        except Exception as e:
            logger.warning(f"Token refresh failed: {e}")
            return False
        if not token:
            return False
        self._token = token
        logger.info("Access token refreshed")
        return True
