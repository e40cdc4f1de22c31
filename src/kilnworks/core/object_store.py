"""Binary image storage on top of a blob client.

Objects are namespaced as ``images/{folder}/{timestamp}-{sanitized-name}``
where ``folder`` is ``references`` or ``generated``.

Retrieval URL Shape
-------------------
Every upload returns a public download URL of the form::

    https://{host}/v0/b/{bucket}/o/{url-encoded-object-path}?alt=media&token={token}

``host`` defaults to ``firebasestorage.googleapis.com``. The token is stored
in the object's ``firebaseStorageDownloadTokens`` metadata, which is how
Firebase Storage authorises anonymous downloads. :meth:`ObjectStore.is_managed_url`
and :meth:`ObjectStore.object_path` both depend on this shape.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
import uuid
from urllib.parse import quote, unquote, urlsplit

import httpx

from .backends import BlobClient
from .encoding import extract_base64, is_data_url
from .errors import StoreUnavailable

logger = logging.getLogger(__name__)

FOLDERS = ("references", "generated")

_UNSAFE_FILENAME = re.compile(r"[^a-zA-Z0-9.-]")
_UNSAFE_PROMPT = re.compile(r"[^a-zA-Z0-9]")
_OBJECT_PATH = re.compile(r"/o/(.+)$")

# Rough per-object size used for the storage dashboard estimate.
_ESTIMATED_MB_PER_OBJECT = 0.5


def sanitize_filename(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9.-]`` with ``_``."""
    return _UNSAFE_FILENAME.sub("_", name)


class ObjectStore:
    """Upload, delete and recognise images held in the cloud object store.

    Args:
        client: Blob client doing the actual I/O
        bucket: Bucket name embedded in retrieval URLs
        host: Host serving retrieval URLs
        http: Async HTTP client used to fetch remote images before upload
    """

    def __init__(
        self,
        client: BlobClient,
        *,
        bucket: str,
        host: str = "firebasestorage.googleapis.com",
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.host = host
        self.http = http

    def build_url(self, path: str, token: str) -> str:
        """Build the retrieval URL for an object path."""
        return (
            f"https://{self.host}/v0/b/{self.bucket}/o/{quote(path, safe='')}"
            f"?alt=media&token={token}"
        )

    def object_path(self, url: str) -> str | None:
        """Extract the object path from a retrieval URL, or None if it has another shape."""
        try:
            parts = urlsplit(url)
        except ValueError:
            return None
        if parts.scheme not in ("http", "https"):
            return None
        match = _OBJECT_PATH.search(parts.path)
        if not match:
            return None
        return unquote(match.group(1))

    def is_managed_url(self, url: str) -> bool:
        """Return True when *url* points into this object store."""
        return self.host in url

    async def upload(
        self,
        data: bytes,
        filename: str,
        folder: str = "references",
        content_type: str = "application/octet-stream",
    ) -> str:
        """Store *data* and return its retrieval URL.

        Args:
            data: Binary image content
            filename: Original file name (sanitized before use)
            folder: ``"references"`` or ``"generated"``
            content_type: MIME type recorded on the object

        Returns:
            Durable, publicly fetchable retrieval URL

        Raises:
            ValueError: If *folder* is not a known logical folder
            StoreUnavailable: If the blob client fails
        """
        if folder not in FOLDERS:
            raise ValueError(f"folder must be one of {FOLDERS}, got {folder!r}")

        timestamp = int(time.time() * 1000)
        path = f"images/{folder}/{timestamp}-{sanitize_filename(filename)}"
        token = str(uuid.uuid4())

        logger.info(f"Uploading {filename} to {path}")
        try:
            await self.client.put(
                path, data, content_type, {"firebaseStorageDownloadTokens": token}
            )
        except Exception as e:
            logger.error(f"Error uploading image {path}: {e}")
            raise StoreUnavailable(f"Failed to upload image: {e}") from e

        url = self.build_url(path, token)
        logger.info(f"Upload successful: {path}")
        return url

    async def upload_from_remote_url(self, remote_url: str, prompt: str) -> str:
        """Persist a generated image held at *remote_url* and return its retrieval URL.

        Inline data URLs are decoded locally; any other URL is fetched.

        Raises:
            StoreUnavailable: If the content cannot be obtained or stored
        """
        try:
            if is_data_url(remote_url):
                data = base64.b64decode(extract_base64(remote_url), validate=True)
            else:
                if self.http is None:
                    raise StoreUnavailable("No HTTP client available to fetch remote image")
                response = await self.http.get(remote_url)
                response.raise_for_status()
                data = response.content
        except (httpx.HTTPError, binascii.Error, ValueError) as e:
            logger.error(f"Error fetching generated image for upload: {e}")
            raise StoreUnavailable(f"Failed to upload generated image: {e}") from e

        timestamp = int(time.time() * 1000)
        prefix = _UNSAFE_PROMPT.sub("_", prompt[:30])
        filename = f"generated-{timestamp}-{prefix}.jpg"
        return await self.upload(data, filename, folder="generated", content_type="image/jpeg")

    async def delete(self, url: str) -> None:
        """Delete the object behind *url*.

        URLs of any other shape are ignored. Failures are logged and
        swallowed so that record removal is never blocked by blob cleanup.
        """
        path = self.object_path(url)
        if path is None:
            logger.debug(f"Not a managed retrieval URL, nothing to delete: {url[:80]}")
            return

        try:
            await self.client.delete(path)
        except Exception as e:
            logger.warning(f"Error deleting image {path}: {e}")
            return
        logger.info(f"Image deleted from storage: {path}")

    async def list_paths(self) -> list[str]:
        """Return the object paths of every stored image.

        Raises:
            StoreUnavailable: If the blob client fails
        """
        try:
            return await self.client.list("images/")
        except Exception as e:
            raise StoreUnavailable(f"Failed to list images: {e}") from e

    async def stats(self) -> dict:
        """Return the object count and a rough size estimate."""
        try:
            paths = await self.list_paths()
        except StoreUnavailable as e:
            logger.warning(f"Error getting storage stats: {e}")
            return {"count": 0, "estimated_size": "0 MB"}
        estimate = len(paths) * _ESTIMATED_MB_PER_OBJECT
        return {"count": len(paths), "estimated_size": f"~{estimate:.1f} MB"}
