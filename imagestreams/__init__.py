"""
Simplestreams image server for Incus/LXD virtual machine images.

Publishes OS disk images under the simplestreams protocol without hosting
them: the catalog is synthesized from a key-value registry written by the
release pipeline, and artifact downloads are proxied from their origins
(GitHub releases for metadata tarballs, the Talos image factory or an
explicit source URL for disk images) with the integrity headers Incus
requires.

Features:
    - Simplestreams index.json and images.json generated from the registry
    - Streaming download proxy, no artifact storage
    - Incus-Image-Hash / Incus-Image-URL header injection
    - Memory, JSON file and Cloudflare KV registry backends
    - Malformed registry entries skipped and counted, never fatal
    - Configurable via environment variables

Registry Format:
    products:list                             JSON array of registry keys
    product:<os>:<version>:<arch>:<variant>   JSON metadata record

See README.md for full documentation.
"""

__version__ = "0.1.0"

# Import key components for convenience
from .config import Config
from .codec import (
    normalize_arch,
    version_key,
    download_path,
    parse_download_path,
    registry_key_to_wire_key,
)
from .catalog import CatalogBuilder
from .proxy import DownloadProxy
from .routes import create_app
from .store import MemoryStore, FileStore, CloudflareKVStore

__all__ = [
    "Config",
    "normalize_arch",
    "version_key",
    "download_path",
    "parse_download_path",
    "registry_key_to_wire_key",
    "CatalogBuilder",
    "DownloadProxy",
    "create_app",
    "MemoryStore",
    "FileStore",
    "CloudflareKVStore",
]
