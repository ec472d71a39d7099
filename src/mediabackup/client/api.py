"""HTTP client for the remote object store.

This module provides:
- StorageClient: Async HTTP client for direct and resumable uploads
- APIError and subclasses: Errors raised for non-success responses
"""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncIterable

import httpx

from mediabackup.core.config import StorageConfig

logger = logging.getLogger(__name__)

OFFSET_CONTENT_TYPE = "application/offset+octet-stream"

# Words in a 400 body that mean the token was rejected
AUTH_ERROR_HINTS = ("jwt", "expired", "unauthorized")


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotAuthenticatedError(APIError):
    """No credential is available."""


class AuthenticationError(APIError):
    """Credential rejected or expired."""


class ConflictError(APIError):
    """Object already exists."""


class PayloadTooLargeError(APIError):
    """Server refused the payload size."""


class RequestRejectedError(APIError):
    """Server rejected the request (4xx other than the ones above)."""


class ServerError(APIError):
    """Server-side failure (5xx)."""


class NetworkError(APIError):
    """Request never produced a response."""


class ProtocolError(APIError):
    """Response is missing fields required by the resumable protocol."""


def _body_text(response: httpx.Response) -> str:
    try:
        return response.text.strip()
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return ""


def _is_auth_message(response: httpx.Response) -> bool:
    """Check if a 400 body is really an expired/invalid token error."""
    try:
        data = response.json()
    except ValueError:
        return False
    if not isinstance(data, dict):
        return False
    message = data.get("message") or data.get("error") or ""
    if not isinstance(message, str):
        return False
    lowered = message.lower()
    return any(hint in lowered for hint in AUTH_ERROR_HINTS)


def encode_upload_metadata(metadata: dict[str, str]) -> str:
    """Encode resumable upload metadata as "key base64(value)" pairs."""
    return ",".join(
        f"{key} {base64.b64encode(value.encode()).decode('ascii')}"
        for key, value in metadata.items()
    )


class StorageClient:
    """Async HTTP client for the object store upload endpoints.

    Usage:
        async with StorageClient(config) as client:
            await client.upload_object(path, token, content, "image/jpeg", size)
    """

    def __init__(
        self,
        config: StorageConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the storage client.

        Args:
            config: Storage configuration with URL, bucket and settings.
            http_client: Optional preconfigured httpx client (tests, proxies).
        """
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout,
            verify=config.verify_ssl,
        )

    @property
    def config(self) -> StorageConfig:
        """Get the storage configuration."""
        return self._config

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> StorageClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.aclose()

    @staticmethod
    def _auth_headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def _handle_response(self, response: httpx.Response, what: str) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        status = response.status_code
        if status < 400:
            return response

        body = _body_text(response)
        if status in (401, 403):
            raise AuthenticationError("Authentication expired", status)
        if status == 400 and _is_auth_message(response):
            raise AuthenticationError("Authentication expired", status)
        if status == 409:
            raise ConflictError("Object already exists", status)
        if status == 413:
            raise PayloadTooLargeError("File too large (413). Server limit exceeded.", status)
        if status >= 500:
            raise ServerError(f"Server error ({status})", status)
        if status == 400:
            message = f"Server rejected file (400): {body}" if body else "File rejected by server (400)"
            raise RequestRejectedError(message, status)
        message = f"{what} failed ({status})"
        if body:
            message += f": {body}"
        raise RequestRejectedError(message, status)

    async def _send(self, request: httpx.Request, what: str) -> httpx.Response:
        try:
            response = await self._client.send(request)
        except httpx.RequestError as e:
            raise NetworkError(f"{what} failed: {e}") from e
        return self._handle_response(response, what)

    # === Direct upload ===

    async def upload_object(
        self,
        object_path: str,
        token: str,
        content: bytes | AsyncIterable[bytes],
        content_type: str,
        content_length: int,
    ) -> httpx.Response:
        """Upload a whole object in one request.

        Args:
            object_path: Object path inside the bucket.
            token: Bearer token.
            content: Body bytes or an async byte stream.
            content_type: MIME type of the object.
            content_length: Exact body length in bytes.

        Returns:
            The success response.
        """
        headers = {
            **self._auth_headers(token),
            "Content-Type": content_type,
            "Content-Length": str(content_length),
            "x-upsert": "true",
        }
        request = self._client.build_request(
            "POST",
            self._config.object_url(object_path),
            headers=headers,
            content=content,
        )
        logger.debug(f"POST object {object_path} ({content_length} bytes)")
        return await self._send(request, "Upload")

    # === Resumable protocol ===

    async def create_session(
        self,
        object_path: str,
        token: str,
        length: int,
        content_type: str,
        *,
        cache_control: str,
        tus_version: str,
    ) -> str:
        """Create a resumable upload session.

        Args:
            object_path: Object path inside the bucket.
            token: Bearer token.
            length: Total length of the object in bytes.
            content_type: MIME type of the object.
            cache_control: Cache directive stored with the object.
            tus_version: Protocol version header value.

        Returns:
            Absolute session URL.

        Raises:
            ConflictError: If the object already exists.
            ProtocolError: If the response carries no session URL.
        """
        metadata = {
            "bucketName": self._config.bucket,
            "objectName": object_path,
            "contentType": content_type,
            "cacheControl": cache_control,
        }
        headers = {
            **self._auth_headers(token),
            "Tus-Resumable": tus_version,
            "Upload-Length": str(length),
            "Upload-Metadata": encode_upload_metadata(metadata),
            "x-upsert": "true",
        }
        request = self._client.build_request(
            "POST", self._config.resumable_url, headers=headers
        )
        response = await self._send(request, "Create upload")

        location = response.headers.get("Location")
        if response.status_code != 201 or not location:
            raise ProtocolError(
                f"Create upload returned {response.status_code} without a session URL",
                response.status_code,
            )
        return str(response.url.join(location))

    async def upload_chunk(
        self,
        session_url: str,
        token: str,
        offset: int,
        data: bytes,
        *,
        tus_version: str,
        timeout: float,
    ) -> int:
        """Send one chunk at the given offset.

        Args:
            session_url: Session URL returned by create_session().
            token: Bearer token.
            offset: Server-confirmed offset the chunk starts at.
            data: Chunk bytes.
            tus_version: Protocol version header value.
            timeout: Per-request timeout in seconds.

        Returns:
            New offset confirmed by the server.

        Raises:
            ConflictError: If the object already exists.
            ProtocolError: If the response carries no valid Upload-Offset.
        """
        headers = {
            **self._auth_headers(token),
            "Tus-Resumable": tus_version,
            "Upload-Offset": str(offset),
            "Content-Type": OFFSET_CONTENT_TYPE,
        }
        request = self._client.build_request(
            "PATCH", session_url, headers=headers, content=data, timeout=timeout
        )
        response = await self._send(request, "Chunk upload")
        new_offset = self._parse_offset(response)
        if new_offset is None:
            raise ProtocolError(
                f"Chunk upload returned {response.status_code} without Upload-Offset",
                response.status_code,
            )
        return new_offset

    async def get_offset(self, session_url: str, token: str, *, tus_version: str) -> int | None:
        """Ask the server how many bytes of a session it holds.

        Returns:
            Server offset, or None if the server did not report one.
        """
        headers = {**self._auth_headers(token), "Tus-Resumable": tus_version}
        request = self._client.build_request("HEAD", session_url, headers=headers)
        response = await self._send(request, "Offset check")
        return self._parse_offset(response)

    @staticmethod
    def _parse_offset(response: httpx.Response) -> int | None:
        value = response.headers.get("Upload-Offset")
        if value is None:
            return None
        try:
            offset = int(value)
        except ValueError:
            return None
        return offset if offset >= 0 else None
