"""Exceptions raised by the Kilnworks image pipeline and its collaborators.

Every exception carries a message intended to be displayed directly to the
user. The pipeline re-raises caller and upstream errors unchanged; store
errors are downgraded to warnings where they are caught.
"""

from __future__ import annotations


class KilnworksError(Exception):
    """Base class for all Kilnworks errors."""

    pass


class InvalidRequest(KilnworksError):
    """The caller supplied an unusable request (e.g. an empty prompt)."""

    pass


class PreconditionFailed(KilnworksError):
    """The requested mode needs active reference images and none are selected."""

    pass


class MalformedDataUrl(KilnworksError):
    """An inline data URL has no comma separating header and payload."""

    pass


class EncodingError(KilnworksError):
    """Every strategy for converting an image URL to base64 failed."""

    pass


class ReferenceEncodingFailed(KilnworksError):
    """At least one active reference image could not be converted to inline form."""

    pass


class UpstreamError(KilnworksError):
    """The generation service answered with a non-success status.

    Attributes:
        status_code: HTTP status returned by the service.
        body: Raw response body text.
    """

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Generation service error: {status_code} - {body}")


class NoImageReturned(KilnworksError):
    """The generation service succeeded but returned no inline image."""

    pass


class InvalidImageData(KilnworksError):
    """Returned image data could not be decoded as a displayable image."""

    pass


class StoreUnavailable(KilnworksError):
    """An object store or metadata store operation failed."""

    pass


class QuotaExceeded(KilnworksError):
    """The local fallback store is over its size ceiling."""

    pass


class GenerationInProgress(KilnworksError):
    """A generation run is already in flight."""

    pass


class GenerationCancelled(KilnworksError):
    """The generation run was cancelled before it finished."""

    pass
