"""Client-side orchestration of image generation and image management.

:class:`ImagePipeline` coordinates the encoding utility, the generation
gateway, the object store and the metadata store for one generation
request, and keeps :class:`~kilnworks.core.state.ImageState` in step with the
stores.

Generation Steps
----------------
1. Validate the prompt and take the in-flight guard.
2. Collect active references; ``edit`` and ``shot`` need at least one.
3. Encode every active reference as ``data:image/jpeg;base64,...``. One
   failure aborts the whole run; partial reference sets are never sent.
4. Call the gateway once.
5. Decode the returned payload with Pillow before accepting it.
6. Persist: upload to the object store unless already managed, then write
   the generated record and its ``"Generated: "`` reference mirror.
7. Update state. If persistence failed, the image is kept in memory with its
   inline URL and a warning is emitted.
8. Emit a success or error notification.

Steps run strictly in order. Runs are serialized by an in-flight guard, and
a run can be abandoned through a cancel event or ``Task.cancel()``.

Store failures never fail a user action: they are downgraded to warnings
and the reference metadata is written to the local fallback store instead.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
import uuid
from typing import Literal, Protocol

import httpx
from PIL import Image, UnidentifiedImageError

from kilnworks.api.prompt_builder import build_shot_prompt

from .backends import build_clients
from .config import KilnworksConfig
from .encoding import ImageEncoder, to_data_url
from .errors import (
    EncodingError,
    GenerationCancelled,
    GenerationInProgress,
    InvalidImageData,
    InvalidRequest,
    KilnworksError,
    MalformedDataUrl,
    PreconditionFailed,
    ReferenceEncodingFailed,
    StoreUnavailable,
)
from .gateway_client import GatewayClient
from .local_store import LocalStore
from .metadata_store import MetadataStore
from .models import GENERATED_PREFIX, GeneratedImage, ImageParameters, ReferenceImage, utcnow
from .object_store import ObjectStore
from .state import ImageState

logger = logging.getLogger(__name__)

Mode = Literal["generate", "edit", "shot"]

MODES: tuple[str, ...] = ("generate", "edit", "shot")
MODES_REQUIRING_REFERENCES = ("edit", "shot")


class Gateway(Protocol):
    """Anything that turns a prompt plus inline references into a base64 image."""

    async def generate(
        self, prompt: str, reference_images: list[str], edit_mode: bool = False
    ) -> str: ...


def decode_image(payload: str) -> tuple[int, int]:
    """Check that *payload* decodes to a displayable image.

    Returns:
        The image ``(width, height)``

    Raises:
        InvalidImageData: If the payload is empty, not base64, or not an image
    """
    if not payload:
        raise InvalidImageData("The generated image data is empty")
    try:
        raw = base64.b64decode(payload, validate=True)
        with Image.open(io.BytesIO(raw)) as img:
            img.verify()
            return img.size
    except (binascii.Error, ValueError, UnidentifiedImageError, OSError) as e:
        raise InvalidImageData(f"The generated image could not be decoded: {e}") from e


def mirror_name(prompt: str) -> str:
    """Display name of the reference record mirroring a generated image."""
    return f"{GENERATED_PREFIX}{prompt.strip()[:50]}"


class ImagePipeline:
    """Generate, persist and manage ceramic reference images.

    All collaborators are created once at application start and injected.

    Args:
        state: Observable state shared with the UI
        gateway: Generation gateway (or a client for it)
        encoder: Reference image encoder
        object_store: Binary image store
        metadata_store: Image record store
        local_store: Local fallback for reference metadata
    """

    def __init__(
        self,
        state: ImageState,
        gateway: Gateway,
        encoder: ImageEncoder,
        object_store: ObjectStore,
        metadata_store: MetadataStore,
        local_store: LocalStore,
    ) -> None:
        self.state = state
        self.gateway = gateway
        self.encoder = encoder
        self.object_store = object_store
        self.metadata_store = metadata_store
        self.local_store = local_store
        self._in_flight = False

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        mode: Mode = "generate",
        *,
        activate: bool = True,
        cancel: asyncio.Event | None = None,
    ) -> GeneratedImage:
        """Run one generation request end to end.

        The stored ``prompt`` is the text sent to the gateway, so in ``shot``
        mode it carries the product-shot direction. The user text is kept in
        ``parameters.description`` and names the mirrored reference.

        Args:
            prompt: User prompt
            mode: ``"generate"``, ``"edit"`` or ``"shot"``
            activate: Activation of the mirrored reference record
            cancel: Optional event; when set, the run stops at the next step

        Returns:
            The generated image as stored in state

        Raises:
            InvalidRequest: Empty prompt or unknown mode
            GenerationInProgress: Another run is in flight
            PreconditionFailed: ``edit``/``shot`` without active references
            ReferenceEncodingFailed: A reference could not be encoded
            UpstreamError: The gateway reported a failure
            NoImageReturned: The gateway produced no image
            InvalidImageData: The returned image could not be decoded
            GenerationCancelled: *cancel* was set during the run
        """
        if not prompt or not prompt.strip():
            raise InvalidRequest("Please enter a prompt")
        if mode not in MODES:
            raise InvalidRequest(f"Mode must be one of {', '.join(MODES)}, got {mode!r}")
        if self._in_flight:
            raise GenerationInProgress("A generation is already in progress")

        self._in_flight = True
        self.state.set_generating(True)
        try:
            image = await self._run(prompt.strip(), mode, activate, cancel)
        except asyncio.CancelledError:
            logger.info("Generation task cancelled")
            raise
        except (KilnworksError, httpx.HTTPError) as e:
            self.state.notify("error", str(e))
            raise
        else:
            self.state.notify("success", "Image generated successfully")
            return image
        finally:
            self._in_flight = False
            self.state.set_generating(False)

    async def _run(
        self, prompt: str, mode: Mode, activate: bool, cancel: asyncio.Event | None
    ) -> GeneratedImage:
        active = self.state.active_references()
        if mode in MODES_REQUIRING_REFERENCES and not active:
            raise PreconditionFailed(
                f"{mode.capitalize()} mode needs at least one active reference image"
            )

        encoded = await self._encode_references(active)
        _check_cancelled(cancel)

        combined = build_shot_prompt(prompt) if mode == "shot" else prompt
        payload = await self.gateway.generate(combined, encoded, mode in MODES_REQUIRING_REFERENCES)
        _check_cancelled(cancel)

        width, height = decode_image(payload)
        logger.info(f"Received {width}x{height} image")

        candidate = GeneratedImage(
            id=uuid.uuid4().hex,
            url=to_data_url(payload, "image/png"),
            prompt=combined,
            parameters=ImageParameters(description=prompt),
            created_at=utcnow(),
            is_active=activate,
        )
        _check_cancelled(cancel)

        return await self._persist(candidate, activate)

    async def _encode_references(self, references: list[ReferenceImage]) -> list[str]:
        """Encode every reference in list order; any failure aborts the run."""
        encoded: list[str] = []
        failures: list[str] = []
        for reference in references:
            try:
                payload = await self.encoder.to_base64(reference.url)
            except (EncodingError, MalformedDataUrl) as e:
                logger.error(f"Failed to encode reference {reference.id}: {e}")
                failures.append(reference.name or reference.id)
                continue
            # Normalized to JPEG regardless of the source subtype.
            encoded.append(to_data_url(payload, "image/jpeg"))

        if failures:
            raise ReferenceEncodingFailed(
                f"Failed to process reference images: {', '.join(failures)}"
            )
        return encoded

    async def _persist(self, candidate: GeneratedImage, activate: bool) -> GeneratedImage:
        """Store *candidate* and its reference mirror, falling back to memory.

        The save is all or nothing: when any step fails, objects and records
        already written for this image are removed again and both entries are
        kept in memory with the inline URL.
        """
        image = candidate
        mirror = ReferenceImage(
            id=uuid.uuid4().hex,
            url=candidate.url,
            name=mirror_name(candidate.parameters.description or candidate.prompt),
            is_active=activate,
            uploaded_at=candidate.created_at,
        )
        uploaded_url: str | None = None
        generated_id: str | None = None
        try:
            url = candidate.url
            if not self.object_store.is_managed_url(url):
                url = await self.object_store.upload_from_remote_url(url, candidate.prompt)
                uploaded_url = url
            generated_id = await self.metadata_store.add_generated(candidate.with_changes(url=url))
            image = candidate.with_changes(url=url, id=generated_id)
            mirror = mirror.with_changes(url=url)
            mirror = mirror.with_changes(id=await self.metadata_store.add_reference(mirror))
        except StoreUnavailable as e:
            await self._discard_partial(uploaded_url, generated_id)
            image = candidate
            mirror = mirror.with_changes(url=candidate.url)
            self.state.add_generated(image)
            self.state.add_reference(mirror)
            self._fall_back(f"Image kept locally, cloud save failed: {e}")
            return image

        self.state.add_generated(image)
        self.state.add_reference(mirror)
        return image

    async def _discard_partial(self, uploaded_url: str | None, generated_id: str | None) -> None:
        if generated_id is not None:
            try:
                await self.metadata_store.delete_generated(generated_id)
            except StoreUnavailable as e:
                logger.warning(f"Could not remove orphaned generated record {generated_id}: {e}")
        if uploaded_url is not None:
            await self.object_store.delete(uploaded_url)

    # ------------------------------------------------------------------
    # Loading and migration
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Populate state from the metadata store, or from the local store."""
        try:
            references = await self.metadata_store.list_references()
            generated = await self.metadata_store.list_generated()
        except StoreUnavailable as e:
            self.state.set_references(self.local_store.load_references())
            self.state.set_generated(self.local_store.load_generated())
            self.state.set_warning(f"Using locally saved images: {e}")
            self.state.notify("warning", f"Using locally saved images: {e}")
            return
        self.state.set_references(references)
        self.state.set_generated(generated)
        self.state.set_warning(None)

    async def migrate_local(self) -> int:
        """Copy locally saved references to the metadata store."""
        migrated = await self.metadata_store.migrate_from_local(self.local_store)
        if migrated:
            await self.load()
        return migrated

    # ------------------------------------------------------------------
    # Reference management
    # ------------------------------------------------------------------

    async def upload_reference(
        self, data: bytes, filename: str, content_type: str = "image/jpeg"
    ) -> ReferenceImage:
        """Store an uploaded reference file (inactive until toggled)."""
        if not content_type.startswith("image/"):
            raise InvalidRequest(f"{filename} is not an image")

        image = ReferenceImage(
            id=uuid.uuid4().hex,
            url=to_data_url(base64.b64encode(data).decode("ascii"), content_type),
            name=filename,
            is_active=False,
            uploaded_at=utcnow(),
        )
        try:
            url = await self.object_store.upload(data, filename, "references", content_type)
            image = image.with_changes(url=url)
            image = image.with_changes(id=await self.metadata_store.add_reference(image))
        except StoreUnavailable as e:
            self.state.add_reference(image)
            self._fall_back(f"Reference kept locally, cloud save failed: {e}")
            return image

        self.state.add_reference(image)
        return image

    async def toggle_reference(self, image_id: str) -> ReferenceImage | None:
        """Flip ``is_active`` on a reference, store first, then state."""
        current = self.state.get_reference(image_id)
        if current is None:
            return None

        is_active = not current.is_active
        try:
            await self.metadata_store.update_reference(image_id, is_active=is_active)
        except StoreUnavailable as e:
            updated = self.state.replace_reference(image_id, is_active=is_active)
            self._fall_back(f"Selection saved locally only: {e}")
            return updated
        return self.state.replace_reference(image_id, is_active=is_active)

    async def delete_reference(self, image_id: str) -> None:
        """Delete a reference; blob cleanup failures never block removal."""
        image = self.state.get_reference(image_id)
        if image is None:
            return

        if self.object_store.is_managed_url(image.url) and not self._url_shared(image):
            await self.object_store.delete(image.url)

        try:
            await self.metadata_store.delete_reference(image_id)
        except StoreUnavailable as e:
            self.state.remove_reference(image_id)
            self._fall_back(f"Reference removed locally only: {e}")
            return
        self.state.remove_reference(image_id)

    async def delete_generated(self, image_id: str) -> None:
        """Delete a generated image; blob cleanup failures never block removal."""
        image = self.state.get_generated(image_id)
        if image is None:
            return

        if self.object_store.is_managed_url(image.url) and not self._url_shared(image):
            await self.object_store.delete(image.url)

        try:
            await self.metadata_store.delete_generated(image_id)
        except StoreUnavailable as e:
            self.state.remove_generated(image_id)
            self._fall_back(f"Image removed locally only: {e}")
            return
        self.state.remove_generated(image_id)

    async def aclose(self) -> None:
        """Release resources owned by the pipeline (not the shared HTTP client)."""
        await self.encoder.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _url_shared(self, image: GeneratedImage | ReferenceImage) -> bool:
        """True when another record still points at the same blob."""
        others = [r for r in self.state.references if r.id != image.id] + [
            g for g in self.state.generated if g.id != image.id
        ]
        return any(other.url == image.url for other in others)

    def _fall_back(self, message: str) -> None:
        """Save reference metadata locally and surface *message* as a warning."""
        saves = (
            ("references", self.local_store.save_references, self.state.references),
            ("generated images", self.local_store.save_generated, self.state.generated),
        )
        for label, save, images in saves:
            try:
                save(list(images))
            except (KilnworksError, OSError) as e:
                logger.error(f"Local fallback save of {label} failed: {e}", exc_info=True)
        self.state.set_warning(message)
        self.state.notify("warning", message)


def _check_cancelled(cancel: asyncio.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise GenerationCancelled("Generation was cancelled")


def build_pipeline(
    cfg: KilnworksConfig,
    http: httpx.AsyncClient,
    *,
    state: ImageState | None = None,
) -> ImagePipeline:
    """Wire an :class:`ImagePipeline` from configuration.

    Args:
        cfg: Configuration instance
        http: Shared async HTTP client (owned by the caller)
        state: Existing state holder, or None to create one

    Returns:
        A ready pipeline; call :meth:`ImagePipeline.load` to populate state
        and :meth:`ImagePipeline.aclose` when done
    """
    blob_client, document_client = build_clients(cfg)
    return ImagePipeline(
        state=state or ImageState(),
        gateway=GatewayClient(http, cfg.gateway_url),
        encoder=ImageEncoder(
            http, proxy_url=cfg.convert_proxy_url, timeout=cfg.request_timeout
        ),
        object_store=ObjectStore(
            blob_client, bucket=cfg.storage_bucket, host=cfg.storage_host, http=http
        ),
        metadata_store=MetadataStore(document_client, generated_limit=cfg.generated_list_limit),
        local_store=LocalStore(
            cfg.local_store_path, max_bytes=cfg.local_store_max_bytes, cap=cfg.local_store_cap
        ),
    )
