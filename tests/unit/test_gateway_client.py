"""Unit tests for the pipeline's HTTP client to the gateway."""

import json

import httpx
import pytest

from kilnworks.core.errors import InvalidImageData, NoImageReturned, UpstreamError
from kilnworks.core.gateway_client import GatewayClient

URL = "http://gateway.test/generate-image"


def _client(status: int = 200, body=None, seen: list | None = None) -> GatewayClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    return GatewayClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)), URL)


class TestGatewayClient:
    """Tests for GatewayClient.generate."""

    @pytest.mark.asyncio
    async def test_sends_camel_case_body(self):
        seen = []
        client = _client(
            body={"candidates": [{"content": {"parts": [{"inlineData": {"data": "T0s="}}]}}]},
            seen=seen,
        )

        result = await client.generate("vase", ["data:image/jpeg;base64,AA"], edit_mode=True)

        assert result == "T0s="
        assert json.loads(seen[0].content) == {
            "prompt": "vase",
            "referenceImages": ["data:image/jpeg;base64,AA"],
            "editMode": True,
        }

    @pytest.mark.asyncio
    async def test_error_status(self):
        client = _client(status=502, body={"error": "Generation service error: 500 - boom"})

        with pytest.raises(UpstreamError) as exc_info:
            await client.generate("vase", [])

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_missing_image_part(self):
        client = _client(body={"candidates": []})

        with pytest.raises(NoImageReturned):
            await client.generate("vase", [])

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = _client(body="<html>oops</html>")

        with pytest.raises(NoImageReturned):
            await client.generate("vase", [])

    @pytest.mark.asyncio
    async def test_empty_image_data(self):
        client = _client(body={"candidates": [{"content": {"parts": [{"inlineData": {"data": ""}}]}}]})

        with pytest.raises(InvalidImageData):
            await client.generate("vase", [])
