"""Client-side components for ceramic image generation.

- **ImagePipeline**: Orchestrates one generation request end to end
- **ImageEncoder**: Converts reference image URLs to inline base64
- **ObjectStore**: Binary image storage with durable retrieval URLs
- **MetadataStore**: Reference and generated image records
- **LocalStore**: JSON file fallback used when the cloud stores fail
- **ImageState**: Observable state shared with the UI layer
- **KilnworksConfig**: Configuration management using Pydantic Settings

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with KILNWORKS_
   - Automatic data directory creation

2. **Storage Layer** (backends.py, object_store.py, metadata_store.py,
   local_store.py):
   - Narrow blob/document client protocols with in-memory and Firebase
     implementations
   - Store failures surface as ``StoreUnavailable``

3. **Orchestration Layer** (pipeline.py, state.py, gateway_client.py):
   - Encode references, call the gateway, persist, update state

Usage Example
-------------
::

    from kilnworks.core import build_pipeline, config

    pipeline = build_pipeline(config, http_client)
    await pipeline.load()
    image = await pipeline.generate("tall celadon vase with fluted neck")
    await pipeline.aclose()
"""

from .config import KilnworksConfig, config
from .encoding import ImageEncoder
from .local_store import LocalStore
from .metadata_store import MetadataStore
from .object_store import ObjectStore
from .pipeline import ImagePipeline, build_pipeline
from .state import ImageState, Notification

__all__ = [
    "ImageEncoder",
    "ImagePipeline",
    "ImageState",
    "KilnworksConfig",
    "LocalStore",
    "MetadataStore",
    "Notification",
    "ObjectStore",
    "build_pipeline",
    "config",
]
