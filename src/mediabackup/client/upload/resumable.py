"""Resumable transport: chunked uploads over an upload session.

This module provides:
- SessionState: State machine of one resumable session
- ResumableSession: Server session URL plus the last confirmed offset
- ResumableTransport: Create step followed by sequential chunk requests

Protocol:
    POST   {storage}/upload/resumable   create, 201 + Location (409: already stored)
    PATCH  {session}                    one chunk at Upload-Offset, returns new offset
    HEAD   {session}                    current server offset, used after a failed chunk

The server's returned offset is authoritative. The client never advances
the offset on its own.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import IntEnum, auto
from pathlib import Path

from mediabackup.client.api import APIError, ConflictError, ProtocolError
from mediabackup.client.upload.base import BaseTransport, TransferContext
from mediabackup.client.upload.retry import chunk_retry_delay, outcome_for_error
from mediabackup.client.upload.staging import read_range
from mediabackup.client.upload.types import (
    FailureKind,
    InvalidTransitionError,
    Outcome,
    OutcomeKind,
    UploadItem,
)

logger = logging.getLogger(__name__)


class SessionState(IntEnum):
    """State of a resumable session."""

    NEW = auto()
    CREATING = auto()
    SESSION_OPEN = auto()
    TRANSFERRING_CHUNK = auto()
    COMPLETED = auto()
    FAILED = auto()


SESSION_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.NEW: {SessionState.CREATING, SessionState.FAILED},
    SessionState.CREATING: {
        SessionState.SESSION_OPEN,
        SessionState.COMPLETED,  # 409: object already stored
        SessionState.FAILED,
    },
    SessionState.SESSION_OPEN: {
        SessionState.TRANSFERRING_CHUNK,
        SessionState.COMPLETED,
        SessionState.FAILED,
    },
    SessionState.TRANSFERRING_CHUNK: {
        SessionState.SESSION_OPEN,
        SessionState.COMPLETED,
        SessionState.FAILED,
    },
    SessionState.COMPLETED: set(),
    SessionState.FAILED: set(),
}


@dataclass
class ResumableSession:
    """One resumable transfer.

    Attributes:
        key: Item key.
        object_path: Object path inside the bucket.
        artifact: Staging artifact the chunks are read from.
        content_type: MIME type of the object.
        total_bytes: Declared upload length.
        session_url: Absolute session URL once created.
        offset: Last offset confirmed by the server.
        state: Current session state.
    """

    key: str
    object_path: str
    artifact: Path
    content_type: str
    total_bytes: int
    session_url: str | None = None
    offset: int = 0
    state: SessionState = SessionState.NEW

    def transition_to(self, new_state: SessionState) -> None:
        """Transition to a new state with validation."""
        if new_state not in SESSION_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"{self.key}: cannot transition session from "
                f"{self.state.name} to {new_state.name}"
            )
        self.state = new_state

    @property
    def is_complete(self) -> bool:
        return self.offset >= self.total_bytes


class ResumableTransport(BaseTransport):
    """Uploads large items and videos in chunks.

    Deferred exports are resolved here, just before the session is created.
    The create step gets max_create_retries attempts with a fixed delay;
    every chunk gets max_chunk_retries attempts with linear backoff. After a
    failed chunk the server offset is re-read, so bytes the server already
    holds are not sent twice.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._sessions: dict[str, ResumableSession] = {}

    @property
    def transport_type(self) -> str:
        return "resumable"

    @property
    def sessions(self) -> dict[str, ResumableSession]:
        """Get the sessions in progress, by item key."""
        return dict(self._sessions)

    async def _do_send(self, item: UploadItem, ctx: TransferContext) -> Outcome:
        self._require_token()
        object_path = self._client.config.object_path(item.filename)

        artifact = await self._stage(item, ctx)
        try:
            session = ResumableSession(
                key=item.key,
                object_path=object_path,
                artifact=artifact,
                content_type=item.content_type,
                total_bytes=artifact.stat().st_size,
            )
            self._sessions[item.key] = session
            return await self._run_session(session, ctx)
        finally:
            self._sessions.pop(item.key, None)
            self._staging.release(artifact)

    async def _run_session(self, session: ResumableSession, ctx: TransferContext) -> Outcome:
        ctx.report(0, session.total_bytes)

        outcome = await self._create(session)
        if outcome is None:
            while not session.is_complete:
                outcome = await self._transfer_chunk(session, ctx)
                if outcome is not None:
                    break
            else:
                session.transition_to(SessionState.COMPLETED)
                outcome = Outcome.success()

        if outcome.succeeded:
            ctx.report(session.total_bytes, session.total_bytes)
        return outcome

    # === Create ===

    async def _create(self, session: ResumableSession) -> Outcome | None:
        """Open the upload session.

        Returns:
            None once the session is open, otherwise the final outcome.
        """
        session.transition_to(SessionState.CREATING)
        max_attempts = self._config.max_create_retries
        attempt = 0
        while True:
            attempt += 1
            try:
                token = self._require_token()
                session.session_url = await self._client.create_session(
                    session.object_path,
                    token,
                    session.total_bytes,
                    session.content_type,
                    cache_control=self._config.cache_control,
                    tus_version=self._config.tus_version,
                )
            except ConflictError:
                logger.info(f"{session.key} already exists on the server")
                session.transition_to(SessionState.COMPLETED)
                return Outcome.success()
            except APIError as e:
                outcome = outcome_for_error(e)
                if outcome.kind == OutcomeKind.TERMINAL or attempt >= max_attempts:
                    session.transition_to(SessionState.FAILED)
                    return Outcome.terminal(outcome.failure, outcome.reason)
                logger.warning(
                    f"Create upload for {session.key} failed "
                    f"(attempt {attempt}/{max_attempts}): {outcome.reason}"
                )
                if outcome.needs_refresh:
                    await self._refresh_credentials()
                await asyncio.sleep(self._config.create_retry_delay)
                continue

            session.transition_to(SessionState.SESSION_OPEN)
            logger.debug(f"Session for {session.key}: {session.session_url}")
            return None

    # === Chunks ===

    async def _transfer_chunk(self, session: ResumableSession, ctx: TransferContext) -> Outcome | None:
        """Send the chunk starting at the confirmed offset, retrying as allowed.

        Returns:
            None once the server confirmed a new offset, otherwise the final outcome.
        """
        max_attempts = self._config.max_chunk_retries
        retry_count = 0
        while True:
            data = await read_range(
                session.artifact, session.offset, self._config.chunk_size
            )
            if not data:
                session.transition_to(SessionState.FAILED)
                return Outcome.terminal(
                    FailureKind.STAGING_FAILURE,
                    f"Staged file ended at {session.offset} of {session.total_bytes} bytes",
                )

            session.transition_to(SessionState.TRANSFERRING_CHUNK)
            try:
                token = self._require_token()
                new_offset = await self._client.upload_chunk(
                    session.session_url,
                    token,
                    session.offset,
                    data,
                    tus_version=self._config.tus_version,
                    timeout=self._config.chunk_timeout,
                )
                if new_offset <= session.offset or new_offset > session.total_bytes:
                    raise ProtocolError(
                        f"Server confirmed offset {new_offset} after chunk at "
                        f"{session.offset} of {session.total_bytes}"
                    )
            except ConflictError:
                logger.info(f"{session.key} already exists on the server")
                session.transition_to(SessionState.COMPLETED)
                return Outcome.success()
            except APIError as e:
                outcome = outcome_for_error(e)
                retry_count += 1
                if outcome.kind == OutcomeKind.TERMINAL or retry_count >= max_attempts:
                    session.transition_to(SessionState.FAILED)
                    return Outcome.terminal(outcome.failure, outcome.reason)

                session.transition_to(SessionState.SESSION_OPEN)
                delay = chunk_retry_delay(retry_count, self._config.chunk_backoff_step)
                logger.warning(
                    f"Chunk at {session.offset} for {session.key} failed "
                    f"(attempt {retry_count}/{max_attempts}), retrying in {delay:.0f}s: "
                    f"{outcome.reason}"
                )
                if outcome.needs_refresh:
                    await self._refresh_credentials()
                await asyncio.sleep(delay)
                await self._resync_offset(session)
                if session.is_complete:
                    return None
                continue

            session.offset = new_offset
            session.transition_to(SessionState.SESSION_OPEN)
            ctx.report(new_offset, session.total_bytes)
            logger.debug(f"{session.key}: {new_offset}/{session.total_bytes} bytes confirmed")
            return None

    async def _resync_offset(self, session: ResumableSession) -> None:
        """Adopt the server's offset if it moved past the last confirmed one."""
        token = self._credentials.current_token()
        if not token or not session.session_url:
            return
        try:
            server_offset = await self._client.get_offset(
                session.session_url, token, tus_version=self._config.tus_version
            )
        except APIError as e:
            logger.debug(f"Offset check for {session.key} failed: {e}")
            return
        if server_offset is None:
            return
        if session.offset < server_offset <= session.total_bytes:
            logger.info(
                f"{session.key}: server holds {server_offset} bytes, "
                f"resuming from there instead of {session.offset}"
            )
            session.offset = server_offset
