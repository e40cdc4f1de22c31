"""Pydantic request and response models for the gateway API.

These models define the JSON schema for every API endpoint. FastAPI uses
them for automatic request validation, serialisation, and OpenAPI
documentation generation. Field aliases keep the camelCase wire names the
browser client sends.

Models
------
GenerateImageRequest
    Payload for ``POST /generate-image``.
ConvertImageRequest
    Payload for ``POST /convert-image``.
ConvertImageResponse
    Response of ``POST /convert-image``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GenerateImageRequest(BaseModel):
    """Request body for the ``POST /generate-image`` endpoint.

    Attributes:
        prompt: Text describing the sculpture or the requested edit.  An
            empty prompt is rejected by the gateway with a 400 response.
        reference_images: Inline ``data:image/<subtype>;base64,`` URLs.
            Non-matching entries are skipped.
        edit_mode: When ``True``, the first reference is the image to edit.
    """

    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(
        default="",
        description="Text prompt (required, validated by the gateway).",
    )
    reference_images: list[str] = Field(
        default_factory=list,
        alias="referenceImages",
        description="Inline data URLs of reference images.",
    )
    edit_mode: bool = Field(
        default=False,
        alias="editMode",
        description="Treat the first reference image as the edit target.",
    )


class ConvertImageRequest(BaseModel):
    """Request body for the ``POST /convert-image`` endpoint.

    Attributes:
        image_url: Remote image URL to fetch and encode server-side.
    """

    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(
        ...,
        alias="imageUrl",
        description="Remote image URL to convert to base64.",
    )


class ConvertImageResponse(BaseModel):
    """Response body for the ``POST /convert-image`` endpoint."""

    base64: str = Field(..., description="Base64 payload of the fetched image.")
    content_type: str | None = Field(
        default=None,
        alias="contentType",
        description="Content type reported by the remote host.",
    )

    model_config = ConfigDict(populate_by_name=True)
