"""
Configuration module for the simplestreams image server.

Loads all configuration from environment variables with sensible defaults.
"""

import os

# Vanilla Talos image factory schematic (no extensions, no extra kernel args)
DEFAULT_SCHEMATIC_ID = "376567988ad370138ad8b2698212367b8edcb69b5fd68c80be1f2ec7d603b4ba"


class Config:
    """
    Image server configuration from environment variables.

    Loads all configuration values from environment variables with sensible defaults.
    All settings can be overridden by setting the corresponding environment variable,
    or by passing keyword overrides (used by tests and embedding callers).

    Example:
        >>> config = Config(GITHUB_ORG="example", REGISTRY_BACKEND="memory")
        >>> config.GITHUB_ORG
        'example'
    """

    def __init__(self, **overrides):
        """
        Initialize configuration from environment variables.

        Environment Variables:
            LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
            FLASK_HOST: Server bind address. Default: 0.0.0.0
            FLASK_PORT: Server bind port. Default: 8080
            GITHUB_ORG: Organization hosting the metadata release assets. Default: windsorcli
            DEFAULT_SCHEMATIC_ID: Image factory schematic used when a record has none
            FACTORY_URL: Image factory base URL. Default: https://factory.talos.dev
            UPSTREAM_CONNECT_TIMEOUT: Upstream connect timeout in seconds. Default: 30
            STREAM_CHUNK_SIZE: Bytes per proxied chunk. Default: 65536
            REGISTRY_BACKEND: One of memory, file, cloudflare. Default: file
            REGISTRY_FILE: JSON registry path for the file backend. Default: registry.json
            CF_ACCOUNT_ID, CF_NAMESPACE_ID, CF_API_TOKEN: Cloudflare KV backend credentials

        Args:
            **overrides: Attribute values that take precedence over the environment
        """
        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # Server
        self.FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
        self.FLASK_PORT = int(os.getenv("FLASK_PORT", "8080"))

        # Upstream origins
        self.GITHUB_ORG = os.getenv("GITHUB_ORG", "windsorcli")
        self.DEFAULT_SCHEMATIC_ID = os.getenv("DEFAULT_SCHEMATIC_ID", DEFAULT_SCHEMATIC_ID)
        self.FACTORY_URL = os.getenv("FACTORY_URL", "https://factory.talos.dev")
        self.UPSTREAM_CONNECT_TIMEOUT = float(os.getenv("UPSTREAM_CONNECT_TIMEOUT", "30"))  # seconds
        self.STREAM_CHUNK_SIZE = int(os.getenv("STREAM_CHUNK_SIZE", "65536"))

        # Registry store
        self.REGISTRY_BACKEND = os.getenv("REGISTRY_BACKEND", "file")
        self.REGISTRY_FILE = os.getenv("REGISTRY_FILE", "registry.json")
        self.CF_ACCOUNT_ID = os.getenv("CF_ACCOUNT_ID", "")
        self.CF_NAMESPACE_ID = os.getenv("CF_NAMESPACE_ID", "")
        self.CF_API_TOKEN = os.getenv("CF_API_TOKEN", "")

        for name, value in overrides.items():
            if not hasattr(self, name):
                raise TypeError(f"Unknown configuration option: {name}")
            setattr(self, name, value)

        # URL templates append "/image/..." themselves
        self.FACTORY_URL = self.FACTORY_URL.rstrip("/")

    def __repr__(self):
        """String representation for logging (credentials omitted)."""
        return (
            f"Config(LOG_LEVEL={self.LOG_LEVEL}, "
            f"FLASK_HOST={self.FLASK_HOST}, "
            f"FLASK_PORT={self.FLASK_PORT}, "
            f"GITHUB_ORG={self.GITHUB_ORG}, "
            f"FACTORY_URL={self.FACTORY_URL}, "
            f"REGISTRY_BACKEND={self.REGISTRY_BACKEND})"
        )
