"""Blob and document store clients.

The object store and metadata store adapters only talk to the narrow
``BlobClient`` and ``DocumentClient`` interfaces defined here. Two pairs of
implementations are provided:

- **Memory** clients keep everything in process. They back local
  development and the test suite.
- **Firebase** clients wrap ``google-cloud-storage`` and
  ``google-cloud-firestore``. Both SDKs are blocking, so every call is moved
  to a worker thread with ``asyncio.to_thread``.

Use :func:`build_clients` to construct the pair selected by configuration.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Protocol

from .config import KilnworksConfig

logger = logging.getLogger(__name__)


class BlobClient(Protocol):
    """Minimal async key/value blob interface."""

    async def put(
        self, path: str, data: bytes, content_type: str, metadata: dict[str, str]
    ) -> None: ...

    async def get(self, path: str) -> bytes: ...

    async def delete(self, path: str) -> None: ...

    async def list(self, prefix: str) -> list[str]: ...


class DocumentClient(Protocol):
    """Minimal async document collection interface."""

    async def add(self, collection: str, data: dict) -> str: ...

    async def query(
        self,
        collection: str,
        order_by: str,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[tuple[str, dict]]: ...

    async def update(self, collection: str, doc_id: str, data: dict) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...


# ---------------------------------------------------------------------------
# In-process implementations.
# ---------------------------------------------------------------------------


class MemoryBlobClient:
    """Blob client that keeps objects in a dictionary."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str, dict[str, str]]] = {}

    async def put(
        self, path: str, data: bytes, content_type: str, metadata: dict[str, str]
    ) -> None:
        self.objects[path] = (bytes(data), content_type, dict(metadata))

    async def get(self, path: str) -> bytes:
        try:
            return self.objects[path][0]
        except KeyError:
            raise FileNotFoundError(path) from None

    async def delete(self, path: str) -> None:
        if path not in self.objects:
            raise FileNotFoundError(path)
        del self.objects[path]

    async def list(self, prefix: str) -> list[str]:
        return sorted(path for path in self.objects if path.startswith(prefix))


class MemoryDocumentClient:
    """Document client that keeps collections in dictionaries."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict]] = {}

    async def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self.collections.setdefault(collection, {})[doc_id] = dict(data)
        return doc_id

    async def query(
        self,
        collection: str,
        order_by: str,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[tuple[str, dict]]:
        docs = list(self.collections.get(collection, {}).items())
        docs.sort(key=lambda item: str(item[1].get(order_by, "")), reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return [(doc_id, dict(data)) for doc_id, data in docs]

    async def update(self, collection: str, doc_id: str, data: dict) -> None:
        docs = self.collections.get(collection, {})
        if doc_id not in docs:
            raise KeyError(f"{collection}/{doc_id} does not exist")
        docs[doc_id].update(data)

    async def delete(self, collection: str, doc_id: str) -> None:
        self.collections.get(collection, {}).pop(doc_id, None)


# ---------------------------------------------------------------------------
# Firebase implementations.
# ---------------------------------------------------------------------------


class FirebaseBlobClient:
    """Blob client backed by a Cloud Storage bucket.

    Args:
        bucket: A ``google.cloud.storage.Bucket`` instance
    """

    def __init__(self, bucket: Any) -> None:
        self.bucket = bucket

    async def put(
        self, path: str, data: bytes, content_type: str, metadata: dict[str, str]
    ) -> None:
        blob = self.bucket.blob(path)
        blob.metadata = metadata
        await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)

    async def get(self, path: str) -> bytes:
        blob = self.bucket.blob(path)
        return await asyncio.to_thread(blob.download_as_bytes)

    async def delete(self, path: str) -> None:
        blob = self.bucket.blob(path)
        await asyncio.to_thread(blob.delete)

    async def list(self, prefix: str) -> list[str]:
        def _names() -> list[str]:
            return [blob.name for blob in self.bucket.list_blobs(prefix=prefix)]

        return await asyncio.to_thread(_names)


class FirestoreDocumentClient:
    """Document client backed by Firestore.

    Args:
        db: A ``google.cloud.firestore.Client`` instance
    """

    def __init__(self, db: Any) -> None:
        self.db = db

    async def add(self, collection: str, data: dict) -> str:
        _, doc_ref = await asyncio.to_thread(self.db.collection(collection).add, data)
        return doc_ref.id

    async def query(
        self,
        collection: str,
        order_by: str,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[tuple[str, dict]]:
        from google.cloud import firestore

        direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
        query = self.db.collection(collection).order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)

        def _fetch() -> list[tuple[str, dict]]:
            return [(snap.id, snap.to_dict() or {}) for snap in query.stream()]

        return await asyncio.to_thread(_fetch)

    async def update(self, collection: str, doc_id: str, data: dict) -> None:
        doc_ref = self.db.collection(collection).document(doc_id)
        await asyncio.to_thread(doc_ref.update, data)

    async def delete(self, collection: str, doc_id: str) -> None:
        doc_ref = self.db.collection(collection).document(doc_id)
        await asyncio.to_thread(doc_ref.delete)


def build_clients(cfg: KilnworksConfig) -> tuple[BlobClient, DocumentClient]:
    """Construct the blob/document client pair selected by *cfg*.

    Call once at application start and inject the result; nothing in the
    package keeps a module-level client.
    """
    if cfg.storage_backend == "memory":
        logger.info("Using in-memory blob and document stores")
        return MemoryBlobClient(), MemoryDocumentClient()

    from google.cloud import firestore, storage

    logger.info(f"Using Firebase stores (bucket={cfg.storage_bucket})")
    bucket = storage.Client(project=cfg.firebase_project).bucket(cfg.storage_bucket)
    db = firestore.Client(project=cfg.firebase_project)
    return FirebaseBlobClient(bucket), FirestoreDocumentClient(db)
