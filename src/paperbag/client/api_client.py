"""Async HTTP client for the Paperbag API.

Typical flow for one photo:

    async with PaperbagClient(base_url, token) as client:
        storage_id, image_id = await client.upload_image(user_id, "me.png", data, "image/png")
        await client.request_transformation(storage_id, "anime")
        image = await client.wait_for_completion(image_id)
"""

import asyncio
import time
from typing import Any
from uuid import UUID

import httpx
import structlog

from paperbag.client.errors import ApiError, ProcessingTimeout
from paperbag.core.config import Settings
from paperbag.services.exceptions import InvalidFileType
from paperbag.services.upload_validation import is_valid_image_content, validate_file_security

logger = structlog.get_logger(__name__)

DEFAULT_PROCESSING_TIMEOUT = 120.0
DEFAULT_POLL_INTERVAL = 2.0


class PaperbagClient:
    """Thin wrapper around httpx.AsyncClient for the Paperbag endpoints."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
        processing_timeout: float = DEFAULT_PROCESSING_TIMEOUT,
    ):
        """Initialize the client.

        Args:
            base_url: API root, e.g. "http://localhost:8000"
            token: Session token sent as a bearer token to API endpoints
            transport: Custom httpx transport (tests use httpx.MockTransport or ASGITransport)
            timeout: Per-request timeout in seconds
            processing_timeout: Default wait budget of `wait_for_completion`, in seconds
        """
        self.token = token
        self.processing_timeout = processing_timeout
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), transport=transport, timeout=timeout
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        base_url: str,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "PaperbagClient":
        """Client whose processing wait follows PROCESSING_TIMEOUT_SECONDS."""
        return cls(
            base_url,
            token,
            transport=transport,
            processing_timeout=float(settings.processing_timeout_seconds),
        )

    async def __aenter__(self) -> "PaperbagClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._http.request(
            method, path, headers=self._auth_headers(), **kwargs
        )
        if response.is_success:
            return response.json()
        raise _api_error(response)

    async def generate_upload_url(self) -> str:
        data = await self._request("POST", "/api/images/upload-url")
        return data["upload_url"]

    async def upload_file(self, upload_url: str, content: bytes, content_type: str) -> str:
        """Upload raw bytes to a signed upload URL and return the new storage id.

        The upload goes to blob storage directly, so no session token is sent.
        """
        response = await self._http.post(
            upload_url, content=content, headers={"Content-Type": content_type}
        )
        if not response.is_success:
            raise _api_error(response)
        return response.json()["storage_id"]

    async def upload_image(
        self, user_id: str, file_name: str, content: bytes, content_type: str
    ) -> tuple[str, UUID]:
        """Validate a local photo, upload it and register it as a pending image.

        Returns:
            (storage_id, image_id)

        Raises:
            FileTooLarge: File exceeds the upload limit
            InvalidFileType: Disallowed type, suspicious name, or not actually an image
            ApiError: The API or blob storage rejected a request
        """
        metadata = validate_file_security(file_name, content_type, len(content))
        if not is_valid_image_content(content[:12]):
            raise InvalidFileType("File content is not a valid image")

        upload_url = await self.generate_upload_url()
        storage_id = await self.upload_file(upload_url, content, metadata.content_type)
        image_id = await self.save_uploaded_image(
            storage_id,
            user_id,
            file_name=metadata.name,
            file_size=metadata.size,
            file_type=metadata.content_type,
        )
        return storage_id, image_id

    async def save_uploaded_image(
        self,
        storage_id: str,
        user_id: str,
        file_name: str | None = None,
        file_size: int | None = None,
        file_type: str | None = None,
    ) -> UUID:
        data = await self._request(
            "POST",
            "/api/images",
            json={
                "storage_id": storage_id,
                "user_id": user_id,
                "file_name": file_name,
                "file_size": file_size,
                "file_type": file_type,
            },
        )
        return UUID(data["image_id"])

    async def request_transformation(self, storage_id: str, style: str) -> dict[str, Any]:
        """Ask for a cartoon of an uploaded photo; returns {"success", "status"}."""
        return await self._request(
            "POST", "/api/images/transform", json={"storage_id": storage_id, "style": style}
        )

    async def list_images(
        self, user_id: str, limit: int | None = None, cursor: str | None = None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"user_id": user_id}
        if limit is not None:
            params["limit"] = limit
        if cursor is not None:
            params["cursor"] = cursor
        return await self._request("GET", "/api/images", params=params)

    async def get_image(self, image_id: UUID | str) -> dict[str, Any]:
        return await self._request("GET", f"/api/images/{image_id}")

    async def get_rate_limit_status(self) -> dict[str, Any]:
        return await self._request("GET", "/api/security/rate-limits")

    async def wait_for_completion(
        self,
        image_id: UUID | str,
        timeout: float | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> dict[str, Any]:
        """Poll an image until it leaves 'processing'.

        `timeout` defaults to the client's `processing_timeout`. It only bounds
        how long this client waits; the job keeps running on the server.

        Raises:
            ProcessingTimeout: Still processing after `timeout` seconds
        """
        if timeout is None:
            timeout = self.processing_timeout
        deadline = time.monotonic() + timeout
        while True:
            image = await self.get_image(image_id)
            if image["status"] != "processing":
                return image
            if time.monotonic() >= deadline:
                logger.warning("client.processing_timeout", image_id=str(image_id))
                raise ProcessingTimeout(str(image_id), timeout)
            await asyncio.sleep(poll_interval)


def _api_error(response: httpx.Response) -> ApiError:
    try:
        body = response.json()
    except ValueError:
        body = None
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        error = {}

    details = {
        key: value
        for key, value in error.items()
        if key not in ("code", "message", "retryable")
    }
    return ApiError(
        status_code=response.status_code,
        code=error.get("code", "unknown"),
        message=error.get("message") or response.text,
        retryable=bool(error.get("retryable", response.status_code >= 500)),
        details=details,
    )
