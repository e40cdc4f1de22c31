"""Kilnworks gateway service: FastAPI application.

This module is the single entry point for the gateway service. It defines
the FastAPI ``app`` instance, the REST routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
The service is stateless:

- **Image generation** is delegated to
  :class:`~kilnworks.api.gateway.GenerationGateway`, which shapes the
  upstream request and extracts the first returned image.
- **Image conversion** fetches a remote image server-side and returns it as
  base64, sidestepping browser cross-origin restrictions for clients.
- One shared ``httpx.AsyncClient`` is created at startup and closed at
  shutdown; both routes use it.

Errors are returned as ``{"error": "<message>"}`` with a non-2xx status.

Endpoints
---------
========  ======================  ====================================
Method    Path                    Purpose
========  ======================  ====================================
GET       ``/health``             Liveness and version
POST      ``/generate-image``     Generate or edit one image
POST      ``/convert-image``      Fetch a remote image as base64
========  ======================  ====================================

Usage
-----
CLI (installed entry point)::

    kilnworks

Direct invocation::

    python -m kilnworks.api.main
"""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kilnworks import __version__
from kilnworks.api.gateway import GenerationGateway, wrap_response
from kilnworks.api.models import (
    ConvertImageRequest,
    ConvertImageResponse,
    GenerateImageRequest,
)
from kilnworks.core.config import config
from kilnworks.core.errors import InvalidRequest, NoImageReturned, UpstreamError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Application lifecycle: shared HTTP client setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Creates the shared ``httpx.AsyncClient`` and the
        :class:`GenerationGateway` and stores both on ``app.state``.

    On shutdown:
        Closes the HTTP client.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    # --- Startup -----------------------------------------------------------
    app.state.http = httpx.AsyncClient(timeout=config.request_timeout, follow_redirects=True)
    app.state.gateway = GenerationGateway(
        app.state.http,
        api_key=config.gemini_api_key,
        model=config.gemini_model,
        base_url=config.gemini_base_url,
    )
    if not config.gemini_api_key:
        logger.warning("KILNWORKS_GEMINI_API_KEY is not set; upstream calls will be rejected.")
    logger.info(f"Gateway initialised (model={config.gemini_model}).")

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    await app.state.http.aclose()
    logger.info("HTTP client closed on shutdown.")


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Kilnworks Gateway",
    description="Ceramic sculpture image generation gateway.",
    version=__version__,
    lifespan=lifespan,
)

# The browser client is served from a different origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error handlers: every failure is reported as ``{"error": message}``.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest) -> JSONResponse:
    return _error(400, str(exc))


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    return _error(502, str(exc))


@app.exception_handler(NoImageReturned)
async def no_image_handler(request: Request, exc: NoImageReturned) -> JSONResponse:
    return _error(502, str(exc))


@app.exception_handler(httpx.HTTPError)
async def http_error_handler(request: Request, exc: httpx.HTTPError) -> JSONResponse:
    logger.error(f"Outbound request failed: {exc}")
    return _error(502, f"Outbound request failed: {exc}")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    return _error(422, f"Invalid request: {fields}")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return _error(500, "Internal server error")


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/health")
async def health() -> dict:
    """Return service liveness and version."""
    return {"status": "ok", "version": __version__}


@app.post("/generate-image")
async def generate_image(req: GenerateImageRequest) -> dict:
    """Generate (or edit) a single ceramic sculpture image.

    This endpoint:

    1. Rejects an empty prompt with 400.
    2. Builds the upstream request from the prompt and inline references.
    3. Returns the first image found in the upstream response.

    Args:
        req: Validated :class:`GenerateImageRequest` payload.

    Returns:
        ``{"candidates": [{"content": {"parts": [{"inlineData": {"data": ...}}]}}]}``
        with exactly one candidate and one part.

    Raises:
        InvalidRequest: Empty prompt (400).
        UpstreamError: Upstream non-success status (502).
        NoImageReturned: Upstream returned no image (502).
    """
    gateway: GenerationGateway = app.state.gateway
    image_data = await gateway.generate(req.prompt, req.reference_images, req.edit_mode)
    return wrap_response(image_data)


@app.post("/convert-image", response_model=ConvertImageResponse)
async def convert_image(req: ConvertImageRequest) -> ConvertImageResponse | JSONResponse:
    """Fetch a remote image server-side and return it as base64.

    Args:
        req: Validated :class:`ConvertImageRequest` payload.

    Returns:
        :class:`ConvertImageResponse` with the base64 payload, or a 400/502
        error body when the URL is unusable or the fetch fails.
    """
    if not req.image_url.startswith(("http://", "https://")):
        return _error(400, "imageUrl must be an http(s) URL")

    http: httpx.AsyncClient = app.state.http
    response = await http.get(req.image_url)
    if not response.is_success:
        return _error(502, f"Failed to fetch image: {response.status_code}")
    if not response.content:
        return _error(502, "Fetched image is empty")

    logger.info(f"Converted {req.image_url} ({len(response.content)} bytes)")
    return ConvertImageResponse(
        base64=base64.b64encode(response.content).decode("ascii"),
        content_type=response.headers.get("content-type"),
    )


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~kilnworks.core.config.config` (which
    loads from ``KILNWORKS_SERVER_HOST`` and ``KILNWORKS_SERVER_PORT``
    environment variables).  Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``kilnworks`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "kilnworks.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
