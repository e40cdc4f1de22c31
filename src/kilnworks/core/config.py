"""Configuration management for Kilnworks.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the KILNWORKS_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (KILNWORKS_* prefix)
2. .env file in the project root
3. Default values defined in KilnworksConfig

Example .env file:
    KILNWORKS_GEMINI_API_KEY=...
    KILNWORKS_STORAGE_BACKEND=firebase
    KILNWORKS_STORAGE_BUCKET=ceramic-model-generator.firebasestorage.app
    KILNWORKS_GATEWAY_URL=http://localhost:7860/generate-image

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
Services are still constructed explicitly from it (see
``kilnworks.core.backends.build_clients``) and injected where they are used.

Usage Example
-------------
    from kilnworks.core.config import config

    print(config.gemini_model)
    print(config.local_store_path)

Directory Management
--------------------
The configuration creates ``data_dir`` on initialization. It holds the
local fallback store used when the cloud stores are unreachable.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class KilnworksConfig(BaseSettings):
    """Main configuration for Kilnworks.

    Values are loaded from environment variables with the KILNWORKS_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Generation Service:
        gemini_api_key : str
            API key for the upstream multimodal generation endpoint
        gemini_model : str
            Model name used in the generateContent URL
        gemini_base_url : str
            Base URL of the upstream API
        request_timeout : float
            Timeout in seconds for every outbound HTTP call

    Client Endpoints:
        gateway_url : str
            Full URL of the ``POST /generate-image`` gateway route
        convert_proxy_url : str | None
            Full URL of the ``POST /convert-image`` route, or None to skip
            the proxy encoding strategy

    Cloud Stores:
        storage_backend : Literal["memory", "firebase"]
            Which blob/document client pair to construct
        storage_bucket : str
            Object store bucket name
        storage_host : str
            Host that managed retrieval URLs are served from
        firebase_project : str | None
            Project id for the document store client

    Local Fallback:
        data_dir : Path
            Directory holding the local fallback store
        local_store_max_bytes : int
            Size ceiling for the local store file
        local_store_cap : int
            Records retained when the ceiling is hit
        generated_list_limit : int
            Default result cap when listing generated images

    Server:
        server_host : str
            Bind address for the gateway service
        server_port : int
            Port for the gateway service (1024-65535)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="KILNWORKS_",
        case_sensitive=False,
    )

    # Upstream generation service
    gemini_api_key: str = Field(
        default="",
        description="API key for the upstream generation endpoint",
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash-image",
        description="Model used for image generation and editing",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the upstream generation API",
    )
    request_timeout: float = Field(
        default=120.0,
        description="Timeout in seconds for outbound HTTP calls",
        gt=0,
    )

    # Endpoints used by the client-side pipeline
    gateway_url: str = Field(
        default="http://127.0.0.1:7860/generate-image",
        description="Gateway generate-image route",
    )
    convert_proxy_url: str | None = Field(
        default="http://127.0.0.1:7860/convert-image",
        description="Server-side image conversion route (None disables the proxy strategy)",
    )

    # Cloud stores
    storage_backend: Literal["memory", "firebase"] = Field(
        default="memory",
        description="Blob/document backend (memory for local development)",
    )
    storage_bucket: str = Field(
        default="kilnworks.firebasestorage.app",
        description="Object store bucket",
    )
    storage_host: str = Field(
        default="firebasestorage.googleapis.com",
        description="Host serving managed retrieval URLs",
    )
    firebase_project: str | None = Field(
        default=None,
        description="Project id for the document store",
    )

    # Local fallback store
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for the local fallback store",
    )
    local_store_max_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Size ceiling of the local store file",
        ge=1024,
    )
    local_store_cap: int = Field(
        default=10,
        description="Records retained when the local store is full",
        ge=1,
    )
    generated_list_limit: int = Field(
        default=50,
        description="Default cap when listing generated images",
        ge=1,
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the data directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def local_store_path(self) -> Path:
        """Path of the JSON file backing the local fallback store."""
        return self.data_dir / "local_store.json"


# Global configuration instance
# Loads values from environment variables (KILNWORKS_* prefix) and .env file.
config = KilnworksConfig()
