"""HTTP client for the ``POST /generate-image`` gateway route."""

from __future__ import annotations

import logging

import httpx

from .errors import InvalidImageData, NoImageReturned, UpstreamError

logger = logging.getLogger(__name__)


class GatewayClient:
    """Call the generation gateway and unwrap the returned image payload.

    Args:
        client: Shared async HTTP client
        url: Full URL of the gateway's generate-image route
    """

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self.client = client
        self.url = url

    async def generate(
        self, prompt: str, reference_images: list[str], edit_mode: bool = False
    ) -> str:
        """Request one image and return its base64 payload.

        Args:
            prompt: Text sent to the gateway
            reference_images: Inline ``data:image/...;base64,`` URLs
            edit_mode: Treat the first reference as the image to edit

        Returns:
            Base64 image payload

        Raises:
            UpstreamError: If the gateway answers with a non-success status
            NoImageReturned: If the response carries no image part
            InvalidImageData: If the image part is empty
        """
        body = {"prompt": prompt, "referenceImages": reference_images, "editMode": edit_mode}
        logger.info(
            f"Calling gateway (edit_mode={edit_mode}, references={len(reference_images)})"
        )
        response = await self.client.post(self.url, json=body)

        if not response.is_success:
            # Terminal for this call; the caller does not retry.
            raise UpstreamError(response.status_code, response.text)

        try:
            data = response.json()
            part = data["candidates"][0]["content"]["parts"][0]
            inline = part["inlineData"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise NoImageReturned("No image data received from the generation service") from e

        payload = inline.get("data") if isinstance(inline, dict) else None
        if not isinstance(payload, str) or not payload:
            raise InvalidImageData("The generation service returned empty image data")
        return payload
