"""
Registry store backends.

The registry is a key-value mapping written by the release pipeline: one JSON
record per registry key plus the ``products:list`` key holding a JSON array
of every published registry key. The image server only reads from it.

Backends:
    memory      dict-backed; tests and embedding callers
    file        JSON document on disk, re-read on every lookup
    cloudflare  Cloudflare Workers KV through the REST API
"""

import json
import logging
import os

import httpx

from .codec import PRODUCTS_LIST_KEY
from .errors import RegistryError

logger = logging.getLogger(__name__)

CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"


def _lookup(data, key):
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


class RegistryStore:
    """Read-only key-value interface consumed by the catalog and the proxy."""

    def get(self, key: str) -> str | None:
        """Return the raw value stored at ``key``, or None if absent."""
        raise NotImplementedError


class MemoryStore(RegistryStore):
    """
    Registry held in a dict.

    Values that are not strings are serialized to JSON on lookup, so tests
    can seed records as plain dicts and lists.
    """

    def __init__(self, data=None):
        self.data = dict(data or {})

    def get(self, key):
        return _lookup(self.data, key)


class FileStore(RegistryStore):
    """
    Registry read from a JSON document mapping keys to values.

    The file is re-read on every lookup so a publisher can replace it while
    the server runs.
    """

    def __init__(self, path):
        self.path = path

    def get(self, key):
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.warning(f"Registry file not found: {self.path}")
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read registry file {self.path}: {e}")
            raise RegistryError("Registry unavailable") from e

        if not isinstance(data, dict):
            logger.error(f"Registry file {self.path} is not a JSON object")
            raise RegistryError("Registry unavailable")
        return _lookup(data, key)


class CloudflareKVStore(RegistryStore):
    """
    Registry stored in a Cloudflare Workers KV namespace.

    Reads values with ``GET /accounts/{account}/storage/kv/namespaces/{ns}/values/{key}``,
    which returns the raw stored value (404 when the key does not exist).
    """

    def __init__(self, account_id, namespace_id, api_token, client=None, api_url=CLOUDFLARE_API_URL):
        self.base_url = f"{api_url}/accounts/{account_id}/storage/kv/namespaces/{namespace_id}/values"
        self.headers = {"Authorization": f"Bearer {api_token}"}
        self.client = client or httpx.Client(timeout=30.0)

    def get(self, key):
        url = f"{self.base_url}/{key}"
        logger.debug(f"KV lookup: {key}")
        try:
            response = self.client.get(url, headers=self.headers)
        except httpx.HTTPError as e:
            logger.error(f"KV request failed for {key}: {e}")
            raise RegistryError("Registry unavailable") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.error(f"KV lookup for {key} returned HTTP {response.status_code}")
            raise RegistryError("Registry unavailable")
        return response.text


def create_store(config) -> RegistryStore:
    """
    Build the registry backend selected by ``config.REGISTRY_BACKEND``.

    Raises:
        ValueError: Unknown backend name or missing Cloudflare credentials
    """
    backend = config.REGISTRY_BACKEND
    if backend == "memory":
        return MemoryStore()
    if backend == "file":
        return FileStore(os.path.abspath(config.REGISTRY_FILE))
    if backend == "cloudflare":
        if not (config.CF_ACCOUNT_ID and config.CF_NAMESPACE_ID and config.CF_API_TOKEN):
            raise ValueError("cloudflare backend requires CF_ACCOUNT_ID, CF_NAMESPACE_ID and CF_API_TOKEN")
        return CloudflareKVStore(config.CF_ACCOUNT_ID, config.CF_NAMESPACE_ID, config.CF_API_TOKEN)
    raise ValueError(f"Unknown registry backend: {backend}")


def read_product_keys(store: RegistryStore) -> list:
    """
    Read the list of published registry keys.

    Returns:
        Entries in stored order, unvalidated; the catalog skips and counts
        members that are not valid registry keys. An absent or unparsable
        list yields an empty list.
    """
    raw = store.get(PRODUCTS_LIST_KEY)
    if raw is None:
        return []

    try:
        keys = json.loads(raw)
    except ValueError as e:
        logger.error(f"Failed to parse {PRODUCTS_LIST_KEY}: {e}")
        return []

    if not isinstance(keys, list):
        logger.error(f"{PRODUCTS_LIST_KEY} is not a JSON array")
        return []

    return keys
