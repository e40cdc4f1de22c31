"""Unit tests for the metadata store adapter."""

from datetime import datetime, timezone

import pytest

from kilnworks.core.errors import StoreUnavailable
from kilnworks.core.metadata_store import (
    GENERATED_COLLECTION,
    REFERENCE_COLLECTION,
    MetadataStore,
)
from kilnworks.core.models import GeneratedImage, ImageParameters, ReferenceImage


def _reference(name: str = "bowl.png", url: str = "https://cdn.example.com/bowl.png"):
    return ReferenceImage(id="local", url=url, name=name)


def _generated(prompt: str = "vase", created_at: datetime | None = None) -> GeneratedImage:
    return GeneratedImage(
        id="local",
        url="https://cdn.example.com/vase.png",
        prompt=prompt,
        parameters=ImageParameters(description=prompt),
        created_at=created_at or datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


class TestReferences:
    """Tests for reference image records."""

    @pytest.mark.asyncio
    async def test_add_assigns_id_and_timestamps(self, metadata_store, document_client):
        doc_id = await metadata_store.add_reference(_reference())

        stored = document_client.collections[REFERENCE_COLLECTION][doc_id]
        assert doc_id != "local"
        assert stored["name"] == "bowl.png"
        assert stored["isActive"] is False
        assert stored["createdAt"] == stored["updatedAt"]
        assert "id" not in stored

    @pytest.mark.asyncio
    async def test_list_newest_first(self, metadata_store, document_client):
        """Listing is ordered by createdAt descending."""
        document_client.collections[REFERENCE_COLLECTION] = {
            "old": {"name": "old", "url": "u1", "createdAt": "2025-01-01T00:00:00+00:00"},
            "new": {"name": "new", "url": "u2", "createdAt": "2025-06-01T00:00:00+00:00"},
        }

        images = await metadata_store.list_references()

        assert [image.id for image in images] == ["new", "old"]
        assert images[0].uploaded_at == datetime(2025, 6, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_update_maps_field_names(self, metadata_store, document_client):
        doc_id = await metadata_store.add_reference(_reference())

        await metadata_store.update_reference(doc_id, is_active=True)

        stored = document_client.collections[REFERENCE_COLLECTION][doc_id]
        assert stored["isActive"] is True

    @pytest.mark.asyncio
    async def test_update_missing_record_is_store_unavailable(self, metadata_store):
        with pytest.raises(StoreUnavailable):
            await metadata_store.update_reference("nope", is_active=True)

    @pytest.mark.asyncio
    async def test_delete(self, metadata_store, document_client):
        doc_id = await metadata_store.add_reference(_reference())

        await metadata_store.delete_reference(doc_id)

        assert document_client.collections[REFERENCE_COLLECTION] == {}


class TestGenerated:
    """Tests for generated image records."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, metadata_store):
        doc_id = await metadata_store.add_generated(_generated("celadon vase"))

        [image] = await metadata_store.list_generated()

        assert image.id == doc_id
        assert image.prompt == "celadon vase"
        assert image.parameters.description == "celadon vase"

    @pytest.mark.asyncio
    async def test_list_is_capped(self, document_client):
        store = MetadataStore(document_client, generated_limit=3)
        for day in range(1, 6):
            await store.add_generated(
                _generated(f"p{day}", datetime(2025, 1, day, tzinfo=timezone.utc))
            )

        images = await store.list_generated()

        assert [image.prompt for image in images] == ["p5", "p4", "p3"]
        assert len(await store.list_generated(limit=5)) == 5

    @pytest.mark.asyncio
    async def test_update_and_delete(self, metadata_store, document_client):
        doc_id = await metadata_store.add_generated(_generated())

        await metadata_store.update_generated(doc_id, is_active=True)
        assert document_client.collections[GENERATED_COLLECTION][doc_id]["isActive"] is True

        await metadata_store.delete_generated(doc_id)
        assert doc_id not in document_client.collections[GENERATED_COLLECTION]


class TestFailures:
    """Every client failure surfaces as StoreUnavailable."""

    @pytest.mark.asyncio
    async def test_all_operations(self, failing_document_client):
        store = MetadataStore(failing_document_client)

        with pytest.raises(StoreUnavailable):
            await store.add_reference(_reference())
        with pytest.raises(StoreUnavailable):
            await store.list_references()
        with pytest.raises(StoreUnavailable):
            await store.delete_reference("x")
        with pytest.raises(StoreUnavailable):
            await store.add_generated(_generated())
        with pytest.raises(StoreUnavailable):
            await store.list_generated()
        with pytest.raises(StoreUnavailable):
            await store.delete_generated("x")


class TestMigration:
    """Tests for migrating locally saved references."""

    @pytest.mark.asyncio
    async def test_migrates_unknown_urls_once(self, metadata_store, local_store):
        await metadata_store.add_reference(_reference("known", "https://cdn.example.com/a.png"))
        local_store.save_references(
            [
                ReferenceImage(id="l1", url="https://cdn.example.com/a.png", name="known"),
                ReferenceImage(id="l2", url="https://cdn.example.com/b.png", name="new"),
            ]
        )

        assert await metadata_store.migrate_from_local(local_store) == 1
        assert await metadata_store.migrate_from_local(local_store) == 0

        urls = sorted(image.url for image in await metadata_store.list_references())
        assert urls == ["https://cdn.example.com/a.png", "https://cdn.example.com/b.png"]

    @pytest.mark.asyncio
    async def test_nothing_local(self, metadata_store, local_store):
        assert await metadata_store.migrate_from_local(local_store) == 0
