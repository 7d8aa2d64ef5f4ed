"""Blob storage collaborator.

Uploads go straight from the browser to the blob store using short-lived
upload URLs signed with HMAC-SHA256; the store answers the upload with the
new blob's storage id. Paperbag only signs URLs and resolves public URLs.
"""

import hashlib
import hmac
import time
import uuid
from typing import Callable, Protocol
from urllib.parse import quote, urlencode


class BlobStorage(Protocol):
    """Interface Paperbag needs from blob storage."""

    async def generate_upload_url(self) -> str: ...

    async def get_url(self, storage_id: str) -> str | None: ...


def sign_upload(upload_token: str, expires: int, signing_key: str) -> str:
    """HMAC-SHA256 signature over an upload token and its expiry."""
    message = f"{upload_token}:{expires}".encode("utf-8")
    return hmac.new(signing_key.encode("utf-8"), message, hashlib.sha256).hexdigest()


class SignedUrlStorage:
    """Blob storage addressed through signed upload URLs and a public base URL."""

    def __init__(
        self,
        upload_base_url: str,
        public_base_url: str,
        signing_key: str,
        ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.upload_base_url = upload_base_url.rstrip("/")
        self.public_base_url = public_base_url.rstrip("/")
        self.signing_key = signing_key
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    async def generate_upload_url(self) -> str:
        """Create a single-use upload URL valid for `ttl_seconds`."""
        upload_token = uuid.uuid4().hex
        expires = int(self._clock()) + self.ttl_seconds
        signature = sign_upload(upload_token, expires, self.signing_key)
        query = urlencode({"token": upload_token, "expires": expires, "signature": signature})
        return f"{self.upload_base_url}?{query}"

    def verify_upload(self, upload_token: str, expires: int, signature: str) -> bool:
        """Check an upload URL's signature and expiry (constant-time comparison)."""
        if expires < int(self._clock()):
            return False
        expected = sign_upload(upload_token, expires, self.signing_key)
        return hmac.compare_digest(expected, signature.lower())

    async def get_url(self, storage_id: str) -> str | None:
        """Public URL of a stored blob, or None for an empty reference."""
        if not storage_id:
            return None
        return f"{self.public_base_url}/{quote(storage_id, safe='')}"
