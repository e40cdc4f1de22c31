"""Observable in-memory state for reference and generated images.

The pipeline and the upload/delete/toggle actions all write here; any UI
layer subscribes and re-renders on change. Collections are immutable tuples
and every mutation swaps in a whole new tuple, so concurrent actions never
observe a half-applied update.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from .models import GeneratedImage, ReferenceImage

logger = logging.getLogger(__name__)

NotificationKind = Literal["success", "error", "warning"]


@dataclass(frozen=True)
class Notification:
    """A user-facing message emitted by the pipeline."""

    kind: NotificationKind
    message: str


class ImageState:
    """Holds the image collections and notifies subscribers on change."""

    def __init__(self) -> None:
        self.references: tuple[ReferenceImage, ...] = ()
        self.generated: tuple[GeneratedImage, ...] = ()
        self.is_generating: bool = False
        self.warning: str | None = None
        self._subscribers: list[Callable[[ImageState], Any]] = []
        self._listeners: list[Callable[[Notification], Any]] = []

    def __repr__(self) -> str:
        return (
            f"ImageState(references={len(self.references)}, "
            f"generated={len(self.generated)}, is_generating={self.is_generating})"
        )

    # -- subscriptions ----------------------------------------------------

    def subscribe(self, callback: Callable[[ImageState], Any]) -> Callable[[], None]:
        """Register *callback* for state changes; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def on_notification(self, callback: Callable[[Notification], Any]) -> Callable[[], None]:
        """Register *callback* for notifications; returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _changed(self) -> None:
        for callback in list(self._subscribers):
            callback(self)

    def notify(self, kind: NotificationKind, message: str) -> Notification:
        notification = Notification(kind=kind, message=message)
        log = logger.warning if kind != "success" else logger.info
        log(f"[{kind}] {message}")
        for callback in list(self._listeners):
            callback(notification)
        return notification

    # -- reference images -------------------------------------------------

    def set_references(self, images: list[ReferenceImage]) -> None:
        self.references = tuple(images)
        self._changed()

    def add_reference(self, image: ReferenceImage) -> None:
        """Prepend *image*, replacing any record with the same id."""
        self.references = (image,) + tuple(r for r in self.references if r.id != image.id)
        self._changed()

    def replace_reference(self, image_id: str, **changes: Any) -> ReferenceImage | None:
        """Apply *changes* to one reference; returns the updated record."""
        updated = None
        images = []
        for image in self.references:
            if image.id == image_id:
                updated = image.with_changes(**changes)
                image = updated
            images.append(image)
        if updated is not None:
            self.references = tuple(images)
            self._changed()
        return updated

    def remove_reference(self, image_id: str) -> None:
        self.references = tuple(r for r in self.references if r.id != image_id)
        self._changed()

    def get_reference(self, image_id: str) -> ReferenceImage | None:
        return next((r for r in self.references if r.id == image_id), None)

    def active_references(self) -> list[ReferenceImage]:
        """Active references in current list order."""
        return [r for r in self.references if r.is_active]

    # -- generated images -------------------------------------------------

    def set_generated(self, images: list[GeneratedImage]) -> None:
        self.generated = tuple(images)
        self._changed()

    def add_generated(self, image: GeneratedImage) -> None:
        self.generated = (image,) + tuple(g for g in self.generated if g.id != image.id)
        self._changed()

    def remove_generated(self, image_id: str) -> None:
        self.generated = tuple(g for g in self.generated if g.id != image_id)
        self._changed()

    def get_generated(self, image_id: str) -> GeneratedImage | None:
        return next((g for g in self.generated if g.id == image_id), None)

    # -- flags ------------------------------------------------------------

    def set_generating(self, value: bool) -> None:
        self.is_generating = value
        self._changed()

    def set_warning(self, message: str | None) -> None:
        self.warning = message
        self._changed()
