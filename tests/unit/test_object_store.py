"""Unit tests for the object store adapter."""

import re
from urllib.parse import quote

import pytest

from kilnworks.core.errors import StoreUnavailable
from kilnworks.core.object_store import ObjectStore, sanitize_filename


class TestUrls:
    """Tests for retrieval URL building and parsing."""

    def test_build_url_shape(self, object_store):
        url = object_store.build_url("images/references/1-pot.png", "tok")

        assert url == (
            "https://firebasestorage.googleapis.com/v0/b/test-bucket/o/"
            f"{quote('images/references/1-pot.png', safe='')}?alt=media&token=tok"
        )

    def test_object_path_round_trips(self, object_store):
        url = object_store.build_url("images/generated/1-a b.jpg", "tok")

        assert object_store.object_path(url) == "images/generated/1-a b.jpg"

    def test_object_path_of_foreign_urls(self, object_store):
        """URLs of another shape yield None."""
        assert object_store.object_path("https://cdn.example.com/pot.png") is None
        assert object_store.object_path("data:image/png;base64,AAAA") is None

    def test_is_managed_url(self, object_store):
        managed = object_store.build_url("images/references/1-x.png", "tok")

        assert object_store.is_managed_url(managed)
        assert not object_store.is_managed_url("https://cdn.example.com/pot.png")
        assert not object_store.is_managed_url("data:image/png;base64,AAAA")

    def test_sanitize_filename(self):
        assert sanitize_filename("my pot (v2)!.png") == "my_pot__v2__.png"


class TestUpload:
    """Tests for ObjectStore.upload."""

    @pytest.mark.asyncio
    async def test_upload_stores_under_folder(self, object_store, blob_client, png_bytes):
        url = await object_store.upload(png_bytes, "bowl glaze.png", content_type="image/png")

        [(path, (data, content_type, metadata))] = blob_client.objects.items()
        assert re.fullmatch(r"images/references/\d+-bowl_glaze\.png", path)
        assert data == png_bytes
        assert content_type == "image/png"
        assert metadata["firebaseStorageDownloadTokens"] in url
        assert object_store.object_path(url) == path

    @pytest.mark.asyncio
    async def test_unknown_folder_rejected(self, object_store, png_bytes):
        with pytest.raises(ValueError):
            await object_store.upload(png_bytes, "x.png", folder="elsewhere")

    @pytest.mark.asyncio
    async def test_client_failure_is_store_unavailable(self, failing_blob_client, png_bytes):
        store = ObjectStore(failing_blob_client, bucket="test-bucket")

        with pytest.raises(StoreUnavailable):
            await store.upload(png_bytes, "x.png")

    @pytest.mark.asyncio
    async def test_upload_from_data_url(self, object_store, blob_client, png_bytes, png_base64):
        """Inline payloads are decoded and stored under the generated folder."""
        url = await object_store.upload_from_remote_url(
            f"data:image/png;base64,{png_base64}", "tall celadon vase, fluted"
        )

        path = object_store.object_path(url)
        assert re.fullmatch(r"images/generated/\d+-generated-\d+-tall_celadon_vase__fluted\.jpg", path)
        assert blob_client.objects[path][0] == png_bytes

    @pytest.mark.asyncio
    async def test_upload_from_remote_http_url(self, object_store, blob_client, png_bytes):
        url = await object_store.upload_from_remote_url("https://cdn.example.com/a.png", "x")

        assert blob_client.objects[object_store.object_path(url)][0] == png_bytes

    @pytest.mark.asyncio
    async def test_upload_from_unreachable_url(self, object_store):
        with pytest.raises(StoreUnavailable):
            await object_store.upload_from_remote_url("https://cdn.example.com/missing.png", "x")


class TestDeleteAndStats:
    """Tests for deletion, listing and statistics."""

    @pytest.mark.asyncio
    async def test_delete_removes_object(self, object_store, blob_client, png_bytes):
        url = await object_store.upload(png_bytes, "x.png")

        await object_store.delete(url)

        assert blob_client.objects == {}

    @pytest.mark.asyncio
    async def test_delete_ignores_foreign_url(self, object_store, blob_client, png_bytes):
        await object_store.upload(png_bytes, "x.png")

        await object_store.delete("https://cdn.example.com/pot.png")

        assert len(blob_client.objects) == 1

    @pytest.mark.asyncio
    async def test_delete_missing_object_is_swallowed(self, object_store):
        """Deleting an already-removed object does not raise."""
        url = object_store.build_url("images/references/404.png", "tok")

        await object_store.delete(url)

    @pytest.mark.asyncio
    async def test_stats(self, object_store, png_bytes):
        await object_store.upload(png_bytes, "a.png")
        await object_store.upload(png_bytes, "b.png", folder="generated")

        assert len(await object_store.list_paths()) == 2
        assert await object_store.stats() == {"count": 2, "estimated_size": "~1.0 MB"}
