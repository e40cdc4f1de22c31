"""Data models for reference and generated images."""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

GENERATED_PREFIX = "Generated: "

SORT_KEYS = ("newest", "oldest", "prompt")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime to its canonical ISO-8601 text form."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_timestamp(value: Any, default: datetime | None = None) -> datetime:
    """Parse a stored timestamp back to a datetime.

    Accepts ISO-8601 strings (including a trailing ``Z``) and datetimes.
    Anything else yields *default*, or the current time when no default is
    given.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable timestamp: {value!r}")
        else:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return default if default is not None else utcnow()


@dataclass
class ImageParameters:
    """Descriptive generation parameters stored alongside a generated image.

    These are metadata only; the pipeline never interprets them.
    """

    type: str = "ceramic-model"
    style: str = "realistic"
    description: str = ""
    quality: str = "high"
    aspect_ratio: str = "1:1"

    def to_record(self) -> dict:
        return {
            "type": self.type,
            "style": self.style,
            "description": self.description,
            "quality": self.quality,
            "aspectRatio": self.aspect_ratio,
        }

    @classmethod
    def from_record(cls, data: dict | None) -> "ImageParameters":
        data = data or {}
        return cls(
            type=data.get("type", "ceramic-model"),
            style=data.get("style", "realistic"),
            description=data.get("description", ""),
            quality=data.get("quality", "high"),
            aspect_ratio=data.get("aspectRatio", "1:1"),
        )


@dataclass(frozen=True)
class ReferenceImage:
    """An image that can condition the next generation call.

    Records whose name starts with ``"Generated: "`` mirror a generated
    image so that uploads and generated output share one activation
    mechanism.
    """

    id: str
    url: str
    name: str
    is_active: bool = False
    uploaded_at: datetime = field(default_factory=utcnow)

    @property
    def is_generated_mirror(self) -> bool:
        return self.name.startswith(GENERATED_PREFIX)

    def with_changes(self, **changes: Any) -> "ReferenceImage":
        return replace(self, **changes)

    def to_record(self) -> dict:
        return {
            "name": self.name,
            "url": self.url,
            "isActive": self.is_active,
            "uploadedAt": format_timestamp(self.uploaded_at),
        }

    @classmethod
    def from_record(cls, image_id: str, data: dict) -> "ReferenceImage":
        created = parse_timestamp(data.get("createdAt"))
        return cls(
            id=image_id,
            url=data.get("url", ""),
            name=data.get("name", ""),
            is_active=bool(data.get("isActive", False)),
            uploaded_at=parse_timestamp(data.get("uploadedAt"), default=created),
        )


@dataclass(frozen=True)
class GeneratedImage:
    """An image produced by the generation gateway.

    ``url`` starts out as an inline data URL and is replaced by a durable
    object store URL once the image has been persisted. ``views`` optionally
    maps view names (front, back, left, right, top, angled) to URLs.
    """

    id: str
    url: str
    prompt: str
    parameters: ImageParameters = field(default_factory=ImageParameters)
    created_at: datetime = field(default_factory=utcnow)
    is_active: bool = False
    views: dict[str, str] | None = None

    def with_changes(self, **changes: Any) -> "GeneratedImage":
        return replace(self, **changes)

    def to_record(self) -> dict:
        record = {
            "prompt": self.prompt,
            "url": self.url,
            "parameters": self.parameters.to_record(),
            "createdAt": format_timestamp(self.created_at),
            "isActive": self.is_active,
        }
        if self.views:
            record["views"] = dict(self.views)
        return record

    @classmethod
    def from_record(cls, image_id: str, data: dict) -> "GeneratedImage":
        return cls(
            id=image_id,
            url=data.get("url", ""),
            prompt=data.get("prompt", ""),
            parameters=ImageParameters.from_record(data.get("parameters")),
            created_at=parse_timestamp(data.get("createdAt")),
            is_active=bool(data.get("isActive", False)),
            views=data.get("views") or None,
        )


def sort_generated(images: list[GeneratedImage], key: str = "newest") -> list[GeneratedImage]:
    """Order generated images for display.

    Args:
        images: Images to sort
        key: ``"newest"`` (default), ``"oldest"`` or ``"prompt"``

    Returns:
        A new sorted list

    Raises:
        ValueError: If *key* is not a known sort key
    """
    if key == "newest":
        return sorted(images, key=lambda img: img.created_at, reverse=True)
    if key == "oldest":
        return sorted(images, key=lambda img: img.created_at)
    if key == "prompt":
        return sorted(images, key=lambda img: img.prompt.casefold())
    raise ValueError(f"Sort key must be one of {', '.join(SORT_KEYS)}, got {key!r}")


def sort_references(images: list[ReferenceImage]) -> list[ReferenceImage]:
    """Order reference images newest first."""
    return sorted(images, key=lambda img: img.uploaded_at, reverse=True)
