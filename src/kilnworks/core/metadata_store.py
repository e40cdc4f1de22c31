"""Structured image metadata in a cloud document store.

Two independent collections are kept:

- ``referenceImages`` - uploaded references and mirrors of generated images
- ``generatedImages`` - images returned by the generation gateway

Timestamps are written as ISO-8601 strings and parsed back to ``datetime``
on read. Listing is always ordered by ``createdAt`` descending. Any client
failure surfaces as :class:`~kilnworks.core.errors.StoreUnavailable`; callers
decide how to fall back.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .backends import DocumentClient
from .errors import StoreUnavailable
from .models import GeneratedImage, ReferenceImage, format_timestamp, utcnow

if TYPE_CHECKING:
    from .local_store import LocalStore

logger = logging.getLogger(__name__)

REFERENCE_COLLECTION = "referenceImages"
GENERATED_COLLECTION = "generatedImages"

_FIELD_NAMES = {
    "is_active": "isActive",
    "uploaded_at": "uploadedAt",
    "created_at": "createdAt",
}


def _serialize_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Map attribute names to stored field names and stringify datetimes."""
    data: dict[str, Any] = {}
    for key, value in changes.items():
        if isinstance(value, datetime):
            value = format_timestamp(value)
        elif hasattr(value, "to_record"):
            value = value.to_record()
        data[_FIELD_NAMES.get(key, key)] = value
    return data


class MetadataStore:
    """Insert, list, update and delete image records.

    Args:
        client: Document client doing the actual I/O
        generated_limit: Default cap for :meth:`list_generated`
    """

    def __init__(self, client: DocumentClient, *, generated_limit: int = 50) -> None:
        self.client = client
        self.generated_limit = generated_limit

    # -- reference images ---------------------------------------------------

    async def add_reference(self, image: ReferenceImage) -> str:
        now = format_timestamp(utcnow())
        data = {**image.to_record(), "createdAt": now, "updatedAt": now}
        try:
            doc_id = await self.client.add(REFERENCE_COLLECTION, data)
        except Exception as e:
            logger.error(f"Error adding reference image: {e}")
            raise StoreUnavailable(f"Failed to save reference image: {e}") from e
        logger.info(f"Reference image added with ID: {doc_id}")
        return doc_id

    async def list_references(self) -> list[ReferenceImage]:
        try:
            docs = await self.client.query(REFERENCE_COLLECTION, "createdAt", descending=True)
        except Exception as e:
            logger.error(f"Error loading reference images: {e}")
            raise StoreUnavailable(f"Failed to load reference images: {e}") from e
        images = [ReferenceImage.from_record(doc_id, data) for doc_id, data in docs]
        logger.info(f"Loaded {len(images)} reference images")
        return images

    async def update_reference(self, image_id: str, **changes: Any) -> None:
        data = _serialize_changes(changes)
        data["updatedAt"] = format_timestamp(utcnow())
        try:
            await self.client.update(REFERENCE_COLLECTION, image_id, data)
        except Exception as e:
            logger.error(f"Error updating reference image {image_id}: {e}")
            raise StoreUnavailable(f"Failed to update reference image: {e}") from e
        logger.info(f"Reference image updated: {image_id}")

    async def delete_reference(self, image_id: str) -> None:
        try:
            await self.client.delete(REFERENCE_COLLECTION, image_id)
        except Exception as e:
            logger.error(f"Error deleting reference image {image_id}: {e}")
            raise StoreUnavailable(f"Failed to delete reference image: {e}") from e
        logger.info(f"Reference image deleted: {image_id}")

    # -- generated images ---------------------------------------------------

    async def add_generated(self, image: GeneratedImage) -> str:
        try:
            doc_id = await self.client.add(GENERATED_COLLECTION, image.to_record())
        except Exception as e:
            logger.error(f"Error adding generated image: {e}")
            raise StoreUnavailable(f"Failed to save generated image: {e}") from e
        logger.info(f"Generated image added with ID: {doc_id}")
        return doc_id

    async def list_generated(self, limit: int | None = None) -> list[GeneratedImage]:
        """List generated images, newest first, capped at *limit* (default 50)."""
        limit = limit or self.generated_limit
        try:
            docs = await self.client.query(
                GENERATED_COLLECTION, "createdAt", descending=True, limit=limit
            )
        except Exception as e:
            logger.error(f"Error loading generated images: {e}")
            raise StoreUnavailable(f"Failed to load generated images: {e}") from e
        images = [GeneratedImage.from_record(doc_id, data) for doc_id, data in docs]
        logger.info(f"Loaded {len(images)} generated images")
        return images

    async def update_generated(self, image_id: str, **changes: Any) -> None:
        try:
            await self.client.update(GENERATED_COLLECTION, image_id, _serialize_changes(changes))
        except Exception as e:
            logger.error(f"Error updating generated image {image_id}: {e}")
            raise StoreUnavailable(f"Failed to update generated image: {e}") from e

    async def delete_generated(self, image_id: str) -> None:
        try:
            await self.client.delete(GENERATED_COLLECTION, image_id)
        except Exception as e:
            logger.error(f"Error deleting generated image {image_id}: {e}")
            raise StoreUnavailable(f"Failed to delete generated image: {e}") from e
        logger.info(f"Generated image deleted: {image_id}")

    # -- migration ----------------------------------------------------------

    async def migrate_from_local(self, local_store: LocalStore) -> int:
        """Copy locally persisted references that the store does not know yet.

        Records are matched by URL, so running the migration twice is harmless.

        Returns:
            Number of records written
        """
        local_refs = local_store.load_references()
        if not local_refs:
            return 0

        logger.info(f"Migrating {len(local_refs)} reference images from local store")
        known_urls = {image.url for image in await self.list_references()}
        migrated = 0
        for image in local_refs:
            if image.url in known_urls:
                continue
            await self.add_reference(image)
            known_urls.add(image.url)
            migrated += 1

        logger.info(f"Migration completed: {migrated} reference images copied")
        return migrated
