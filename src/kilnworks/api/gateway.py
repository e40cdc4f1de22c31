"""Request shaping and forwarding for the upstream image generation service.

The gateway is stateless. Each call:

1. validates the prompt,
2. builds an ordered list of content parts (inline images, then text),
3. posts them to the upstream ``generateContent`` endpoint with fixed
   generation parameters and safety settings,
4. returns the first inline image found in the response.

Part Layout
-----------
Edit mode (``edit_mode=True`` with at least one reference)::

    [inlineData(first reference), text(edit template)]

Generation mode::

    [inlineData(ref 1), inlineData(ref 2), inlineData(ref 3), text(generation template)]

At most :data:`MAX_STYLE_REFERENCES` references are used in generation mode;
extras are dropped. References that are not ``data:image/<subtype>;base64,``
URLs are skipped rather than failing the request.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

import httpx

from kilnworks.api.prompt_builder import build_edit_prompt, build_generation_prompt
from kilnworks.core.encoding import split_data_url
from kilnworks.core.errors import InvalidRequest, NoImageReturned, UpstreamError

logger = logging.getLogger(__name__)

MAX_STYLE_REFERENCES = 3

GENERATION_CONFIG = {
    "temperature": 0.8,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 8192,
    "responseModalities": ["Text", "Image"],
}

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


def _inline_part(data_url: str) -> dict | None:
    split = split_data_url(data_url)
    if split is None:
        logger.debug("Skipping reference image without a data:image/...;base64 prefix")
        return None
    mime_type, payload = split
    return {"inlineData": {"mimeType": mime_type, "data": payload}}


def build_parts(prompt: str, reference_images: list[str], edit_mode: bool) -> list[dict]:
    """Build the ordered content parts for one upstream request.

    Args:
        prompt: User prompt (already validated as non-empty)
        reference_images: Inline data URLs, in priority order
        edit_mode: Treat the first reference as the image to edit

    Returns:
        List of part dictionaries ready for the request body
    """
    parts: list[dict] = []

    if edit_mode and reference_images:
        target = _inline_part(reference_images[0])
        if target is not None:
            parts.append(target)
        parts.append({"text": build_edit_prompt(prompt)})
        return parts

    for data_url in reference_images[:MAX_STYLE_REFERENCES]:
        part = _inline_part(data_url)
        if part is not None:
            parts.append(part)
    parts.append({"text": build_generation_prompt(prompt)})
    return parts


def build_request_body(parts: list[dict]) -> dict:
    """Wrap *parts* with the fixed generation config and safety settings."""
    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": copy.deepcopy(GENERATION_CONFIG),
        "safetySettings": copy.deepcopy(SAFETY_SETTINGS),
    }


def redact_body(body: dict) -> dict:
    """Copy of *body* with inline image data replaced, for logging."""
    redacted = copy.deepcopy(body)
    for content in redacted.get("contents", []):
        for part in content.get("parts", []):
            if "inlineData" in part:
                part["inlineData"]["data"] = "[BASE64_DATA]"
    return redacted


def extract_inline_image(data: Any) -> str:
    """Return the first non-empty inline image payload of the first candidate.

    Entries of an unexpected shape are skipped.

    Raises:
        NoImageReturned: If there are no candidates or no part carries image data
    """
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not isinstance(candidates, list):
        candidates = []
    first = candidates[0] if candidates and isinstance(candidates[0], dict) else {}
    content = first.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    for part in parts if isinstance(parts, list) else []:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if isinstance(inline, dict) and inline.get("data"):
            return inline["data"]

    logger.error(
        f"No image data in response (candidates={len(candidates)}, "
        f"finishReason={first.get('finishReason')})"
    )
    raise NoImageReturned("No image data returned from the generation service")


def wrap_response(image_data: str) -> dict:
    """Re-wrap a single image payload in the gateway response shape."""
    return {"candidates": [{"content": {"parts": [{"inlineData": {"data": image_data}}]}}]}


class GenerationGateway:
    """Forward generation requests to the upstream multimodal model.

    Args:
        client: Async HTTP client for upstream calls
        api_key: Upstream API key
        model: Upstream model name
        base_url: Upstream API base URL
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        model: str = "gemini-2.5-flash-image",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(
        self, prompt: str, reference_images: list[str] | None = None, edit_mode: bool = False
    ) -> str:
        """Generate one image and return its base64 payload.

        Raises:
            InvalidRequest: If *prompt* is empty
            UpstreamError: If the upstream service answers with a non-success status
            NoImageReturned: If the upstream response carries no inline image
        """
        if not prompt or not prompt.strip():
            raise InvalidRequest("Prompt is required")

        parts = build_parts(prompt, reference_images or [], edit_mode)
        body = build_request_body(parts)
        logger.debug(f"Upstream request body: {json.dumps(redact_body(body))}")
        logger.info(
            f"Requesting image (edit_mode={edit_mode}, "
            f"image_parts={sum(1 for p in parts if 'inlineData' in p)})"
        )

        response = await self.client.post(
            self.endpoint,
            params={"key": self.api_key},
            json=body,
        )
        if not response.is_success:
            logger.error(f"Upstream error {response.status_code}: {response.text[:500]}")
            raise UpstreamError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise NoImageReturned("Generation service returned a non-JSON response") from e
        return extract_inline_image(data if isinstance(data, dict) else {})
