"""Shared pytest fixtures for Kilnworks tests."""

import base64
import io
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import httpx
import pytest
from PIL import Image

from kilnworks.core.backends import MemoryBlobClient, MemoryDocumentClient
from kilnworks.core.config import KilnworksConfig
from kilnworks.core.encoding import ImageEncoder
from kilnworks.core.local_store import LocalStore
from kilnworks.core.metadata_store import MetadataStore
from kilnworks.core.object_store import ObjectStore
from kilnworks.core.pipeline import ImagePipeline
from kilnworks.core.state import ImageState

TEST_BUCKET = "test-bucket"


def make_png(color: tuple[int, int, int] = (180, 110, 70), size: int = 8) -> bytes:
    """Render a small solid-colour PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (size, size), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeGateway:
    """Stand-in for the generation gateway that records every call.

    Attributes:
        calls: ``(prompt, reference_images, edit_mode)`` per call
        payload: Base64 returned on success
        error: Exception raised instead of returning, when set
    """

    def __init__(self, payload: str) -> None:
        self.calls: list[tuple[str, list[str], bool]] = []
        self.payload = payload
        self.error: Exception | None = None

    async def generate(
        self, prompt: str, reference_images: list[str], edit_mode: bool = False
    ) -> str:
        self.calls.append((prompt, list(reference_images), edit_mode))
        if self.error is not None:
            raise self.error
        return self.payload


class FailingBlobClient(MemoryBlobClient):
    """Blob client whose writes always fail."""

    async def put(self, path, data, content_type, metadata):
        raise ConnectionError("object store offline")


class FailingDocumentClient(MemoryDocumentClient):
    """Document client where every operation fails."""

    async def add(self, collection, data):
        raise ConnectionError("metadata store offline")

    async def query(self, collection, order_by, descending=True, limit=None):
        raise ConnectionError("metadata store offline")

    async def update(self, collection, doc_id, data):
        raise ConnectionError("metadata store offline")

    async def delete(self, collection, doc_id):
        raise ConnectionError("metadata store offline")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> KilnworksConfig:
    """Create a test configuration with a temporary data directory.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        KilnworksConfig instance for testing
    """
    return KilnworksConfig(
        gemini_api_key="test-key",
        gateway_url="http://gateway.test/generate-image",
        convert_proxy_url=None,
        storage_backend="memory",
        storage_bucket=TEST_BUCKET,
        data_dir=temp_dir / "data",
        local_store_max_bytes=64 * 1024,
        local_store_cap=10,
    )


@pytest.fixture
def png_bytes() -> bytes:
    """Bytes of a small valid PNG image."""
    return make_png()


@pytest.fixture
def png_base64(png_bytes: bytes) -> str:
    """Base64 payload of :func:`png_bytes`."""
    return base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def image_transport(png_bytes: bytes) -> httpx.MockTransport:
    """Transport where every GET returns the test PNG.

    URLs containing ``missing`` answer 404.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if "missing" in str(request.url):
            return httpx.Response(404, text="not found")
        return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})

    return httpx.MockTransport(handler)


@pytest.fixture
def image_http(image_transport: httpx.MockTransport) -> httpx.AsyncClient:
    """HTTP client backed by :func:`image_transport`."""
    return httpx.AsyncClient(transport=image_transport)


@pytest.fixture
def blob_client() -> MemoryBlobClient:
    return MemoryBlobClient()


@pytest.fixture
def document_client() -> MemoryDocumentClient:
    return MemoryDocumentClient()


@pytest.fixture
def object_store(blob_client: MemoryBlobClient, image_http: httpx.AsyncClient) -> ObjectStore:
    return ObjectStore(blob_client, bucket=TEST_BUCKET, http=image_http)


@pytest.fixture
def metadata_store(document_client: MemoryDocumentClient) -> MetadataStore:
    return MetadataStore(document_client)


@pytest.fixture
def local_store(test_config: KilnworksConfig) -> LocalStore:
    return LocalStore(
        test_config.local_store_path,
        max_bytes=test_config.local_store_max_bytes,
        cap=test_config.local_store_cap,
    )


@pytest.fixture
def image_state() -> ImageState:
    return ImageState()


@pytest.fixture
def fake_gateway(png_base64: str) -> FakeGateway:
    return FakeGateway(png_base64)


@pytest.fixture
def encoder(image_http: httpx.AsyncClient, image_transport: httpx.MockTransport) -> ImageEncoder:
    return ImageEncoder(image_http, transport=image_transport)


@pytest.fixture
def pipeline(
    image_state: ImageState,
    fake_gateway: FakeGateway,
    encoder: ImageEncoder,
    object_store: ObjectStore,
    metadata_store: MetadataStore,
    local_store: LocalStore,
) -> ImagePipeline:
    """Pipeline wired to in-memory stores and a fake gateway."""
    return ImagePipeline(
        state=image_state,
        gateway=fake_gateway,
        encoder=encoder,
        object_store=object_store,
        metadata_store=metadata_store,
        local_store=local_store,
    )


@pytest.fixture
def offline_pipeline(
    image_state: ImageState,
    fake_gateway: FakeGateway,
    encoder: ImageEncoder,
    image_http: httpx.AsyncClient,
    local_store: LocalStore,
) -> ImagePipeline:
    """Pipeline whose object and metadata stores always fail."""
    return ImagePipeline(
        state=image_state,
        gateway=fake_gateway,
        encoder=encoder,
        object_store=ObjectStore(FailingBlobClient(), bucket=TEST_BUCKET, http=image_http),
        metadata_store=MetadataStore(FailingDocumentClient()),
        local_store=local_store,
    )


@pytest.fixture
def failing_blob_client() -> FailingBlobClient:
    return FailingBlobClient()


@pytest.fixture
def failing_document_client() -> FailingDocumentClient:
    return FailingDocumentClient()
