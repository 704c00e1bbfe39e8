"""
Path and key codec for the image server.

Pure functions mapping between the registry's product-key encoding, the
simplestreams product-key encoding ("wire key"), the download path served by
the proxy, and canonical architecture names.

Key formats:
    Registry key:  product:<os>:<version>:<arch>:<variant>
    Wire key:      <os>:<version>:<arch>:<variant>
    Download path: images/<os>/<version>/<arch>/<variant>/<YYYYMMDD_HH:MM>/<filename>
"""

import logging
import re
from collections import namedtuple
from datetime import datetime, timezone
from enum import Enum

from .errors import ClientError

logger = logging.getLogger(__name__)

NAMESPACE = "product"
PRODUCTS_LIST_KEY = "products:list"
DOWNLOAD_ROOT = "images"

VERSION_KEY_FORMAT = "%Y%m%d_%H:%M"

_DOWNLOAD_PATH_RE = re.compile(
    r"^/?" + DOWNLOAD_ROOT + r"/([^/]+)/([^/]+)/([^/]+)/([^/]+)/(\d{8}_\d{2}:\d{2})/([^/]+)$"
)


class Architecture(str, Enum):
    """Canonical (Incus) architecture identifiers."""

    AMD64 = "amd64"
    ARM64 = "arm64"


# Every accepted spelling, lowercased, including the canonical names themselves
ARCH_ALIASES = {
    "amd64": Architecture.AMD64,
    "x86_64": Architecture.AMD64,
    "x64": Architecture.AMD64,
    "arm64": Architecture.ARM64,
    "aarch64": Architecture.ARM64,
}


class ArtifactKind(Enum):
    """The two artifacts that make up one published image."""

    METADATA = "metadata"
    DISK = "disk"


class ArtifactFile(Enum):
    """
    Filenames the download proxy accepts, each bound to the artifact it serves.

    The first member of each kind is the canonical name used in the catalog.
    """

    INCUS = ("incus.tar.xz", ArtifactKind.METADATA)
    LXD = ("lxd.tar.xz", ArtifactKind.METADATA)
    DISK_QCOW2 = ("disk.qcow2", ArtifactKind.DISK)
    DISK_KVM = ("disk-kvm.img", ArtifactKind.DISK)

    def __init__(self, filename, kind):
        self.filename = filename
        self.kind = kind

    @classmethod
    def from_filename(cls, filename):
        """Return the member for ``filename`` or None if it is not recognized."""
        for member in cls:
            if member.filename == filename:
                return member
        return None


class ProductKey(namedtuple("ProductKey", ["os", "version", "arch", "variant"])):
    """Coordinates of one publishable image variant."""

    __slots__ = ()

    @property
    def registry_key(self):
        return ":".join((NAMESPACE,) + tuple(self))

    @property
    def wire_key(self):
        return ":".join(self)


DownloadRequest = namedtuple(
    "DownloadRequest", ["os", "version", "arch", "variant", "version_key", "filename"]
)


def parse_registry_key(key: str) -> ProductKey | None:
    """
    Split a registry key into its product coordinates.

    Args:
        key: Registry key, e.g. "product:talos:v1.12.0:amd64:default"

    Returns:
        ProductKey, or None if the key does not have exactly five segments
        or does not start with the "product" namespace.
    """
    if not isinstance(key, str):
        return None
    parts = key.split(":")
    if len(parts) != 5 or parts[0] != NAMESPACE:
        return None
    return ProductKey(*parts[1:])


def registry_key_to_wire_key(key: str) -> str | None:
    """
    Strip the namespace segment from a registry key.

    Examples:
        >>> registry_key_to_wire_key("product:talos:v1.12.0:amd64:default")
        'talos:v1.12.0:amd64:default'
        >>> registry_key_to_wire_key("products:list") is None
        True
    """
    product = parse_registry_key(key)
    if product is None:
        return None
    return product.wire_key


def normalize_arch(name: str) -> str:
    """
    Map an architecture alias to its canonical name.

    Unknown names pass through unchanged so new architectures are served
    without a code change.

    Examples:
        >>> normalize_arch("aarch64")
        'arm64'
        >>> normalize_arch("riscv64")
        'riscv64'
    """
    arch = ARCH_ALIASES.get(name.lower())
    if arch is None:
        return name
    return arch.value


def arch_spellings(name: str) -> list[str]:
    """
    List the registry spellings that may hold a product for ``name``.

    The canonical name comes first, followed by its aliases and then the
    requested spelling itself.

    Example:
        >>> arch_spellings("aarch64")
        ['arm64', 'aarch64']
    """
    canonical = normalize_arch(name)
    spellings = [canonical]
    for alias, arch in ARCH_ALIASES.items():
        if arch.value == canonical and alias not in spellings:
            spellings.append(alias)
    if name not in spellings:
        spellings.append(name)
    return spellings


def version_key(creation_date: int | None = None) -> str:
    """
    Format a creation timestamp as a simplestreams version key (UTC).

    Args:
        creation_date: Seconds since the epoch; the current time when None

    Returns:
        String in format "YYYYMMDD_HH:MM", e.g. "20251226_00:00"
    """
    if creation_date is None:
        moment = datetime.now(timezone.utc)
    else:
        moment = datetime.fromtimestamp(int(creation_date), tz=timezone.utc)
    return moment.strftime(VERSION_KEY_FORMAT)


def download_path(os_name, version, arch, variant, version_key, filename) -> str:
    """
    Build the download path for one artifact, relative to the server root.

    The same shape is embedded as ``path`` in images.json and parsed back by
    :func:`parse_download_path` when the client fetches it.
    """
    return "/".join((DOWNLOAD_ROOT, os_name, version, arch, variant, version_key, filename))


def parse_download_path(path: str) -> DownloadRequest:
    """
    Parse a download request path into its coordinates.

    Args:
        path: Request path, with or without the leading slash

    Returns:
        DownloadRequest(os, version, arch, variant, version_key, filename)

    Raises:
        ClientError: 400 if the path does not follow the download grammar

    Example:
        >>> parse_download_path("/images/talos/v1.12.0/amd64/default/20251226_00:00/disk.qcow2")
        DownloadRequest(os='talos', version='v1.12.0', arch='amd64', variant='default', version_key='20251226_00:00', filename='disk.qcow2')
    """
    match = _DOWNLOAD_PATH_RE.match(path)
    if match is None:
        logger.warning(f"Invalid download path: {path}")
        raise ClientError(
            "Invalid download path. Expected: "
            f"/{DOWNLOAD_ROOT}/<os>/<version>/<arch>/<variant>/<YYYYMMDD_HH:MM>/<filename>"
        )
    return DownloadRequest(*match.groups())
