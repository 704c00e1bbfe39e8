"""
Download proxy for image artifacts.

Image bytes are never stored here. A download request is resolved against
the registry to find which origin holds the artifact and which hash the
catalog promised, then the origin response is streamed through with the
headers Incus requires to accept it:

    Incus-Image-Hash   SHA256 from the registry record (not recomputed)
    Incus-Image-URL    this server's own URL for the artifact

Origins:
    metadata tarball  GitHub release of the publishing organization
    disk image        explicit ``source_url`` from the record, otherwise the
                      Talos image factory for the record's schematic
"""

import logging
from collections import namedtuple

import httpx
from flask import Response

from .codec import (
    ArtifactFile,
    ArtifactKind,
    ProductKey,
    arch_spellings,
    normalize_arch,
    parse_download_path,
)
from .errors import ClientError, NotFoundError, UpstreamError
from .records import decode_record

logger = logging.getLogger(__name__)

HASH_HEADER = "Incus-Image-Hash"
URL_HEADER = "Incus-Image-URL"
CORS_HEADER = "Access-Control-Allow-Origin"

RELEASE_URL_TEMPLATE = "https://github.com/{org}/{repo}/releases/download/{version}/{prefix}-{arch}-incus.tar.xz"
FACTORY_URL_TEMPLATE = "{factory}/image/{schematic}/{version}/metal-{arch}.qcow2"

# Connection-scoped headers that must not be forwarded (RFC 9110 section 7.6.1)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

Resolution = namedtuple("Resolution", ["product", "artifact", "url", "sha256"])


def create_http_client(config) -> httpx.Client:
    """
    Create the HTTP client used for origin fetches.

    Only connecting is bounded; reading a multi-hundred-megabyte disk image
    takes as long as the origin needs.
    """
    return httpx.Client(
        timeout=httpx.Timeout(None, connect=config.UPSTREAM_CONNECT_TIMEOUT),
        follow_redirects=True,
    )


def ensure_version_prefix(version: str) -> str:
    """
    Return ``version`` with a leading "v", as the image factory expects.

    Examples:
        >>> ensure_version_prefix("1.12.0")
        'v1.12.0'
        >>> ensure_version_prefix("v1.12.0")
        'v1.12.0'
    """
    if version.startswith("v"):
        return version
    return f"v{version}"


class DownloadProxy:
    """
    Resolves download paths to origin URLs and streams the artifacts.

    Args:
        config: Config providing GITHUB_ORG, DEFAULT_SCHEMATIC_ID, FACTORY_URL
            and STREAM_CHUNK_SIZE
        store: RegistryStore holding the metadata records
        client: httpx.Client for origin fetches (created from config if omitted)
    """

    def __init__(self, config, store, client=None):
        self.config = config
        self.store = store
        self.client = client or create_http_client(config)

    def release_url(self, product, record) -> str:
        """URL of the metadata tarball in the organization's GitHub release."""
        return RELEASE_URL_TEMPLATE.format(
            org=self.config.GITHUB_ORG,
            repo=record.github_repo or product.os,
            version=product.version,
            prefix=record.file_prefix or product.os,
            arch=product.arch,
        )

    def disk_url(self, product, record) -> str:
        """URL of the disk image: the record's own source, else the image factory."""
        if record.source_url:
            return record.source_url
        return FACTORY_URL_TEMPLATE.format(
            factory=self.config.FACTORY_URL,
            schematic=record.schematic_id or self.config.DEFAULT_SCHEMATIC_ID,
            version=ensure_version_prefix(product.version),
            arch=product.arch,
        )

    def resolve(self, path: str) -> Resolution:
        """
        Resolve a download path to the origin URL and expected hash.

        Args:
            path: Request path, e.g. "/images/talos/v1.12.0/amd64/default/20251226_00:00/disk.qcow2"

        Returns:
            Resolution(product, artifact, url, sha256)

        Raises:
            ClientError: 400 if the path is malformed or the filename unknown
            NotFoundError: 404 if the registry has no record for the product
            DataCorruptionError: 500 if the record cannot be decoded
        """
        request = parse_download_path(path)
        product = ProductKey(request.os, request.version, normalize_arch(request.arch), request.variant)

        # The registry may hold the product under an alias such as x86_64
        raw = None
        for arch in arch_spellings(request.arch):
            key = product._replace(arch=arch).registry_key
            raw = self.store.get(key)
            if raw is not None:
                break
        if raw is None:
            coordinates = "/".join(product)
            logger.warning(f"Product not found: {coordinates}")
            raise NotFoundError(f"Product not found for {coordinates}. Image may not be available yet.")

        # Corruption is logged once, by the application error handler
        record = decode_record(raw, key)

        artifact = ArtifactFile.from_filename(request.filename)
        if artifact is None:
            expected = ", ".join(member.filename for member in ArtifactFile)
            logger.warning(f"Unrecognized filename: {request.filename}")
            raise ClientError(f"Invalid filename '{request.filename}'. Expected one of: {expected}")

        if artifact.kind is ArtifactKind.METADATA:
            url, sha256 = self.release_url(product, record), record.meta_hash
        else:
            url, sha256 = self.disk_url(product, record), record.disk_hash

        logger.debug(f"Resolved {path} -> {url}")
        return Resolution(product, artifact, url, sha256)

    def fetch(self, url: str, method: str = "GET") -> httpx.Response:
        """
        Open a streaming request to the origin.

        Returns:
            Open httpx.Response with a 2xx status; the caller must close it.

        Raises:
            UpstreamError: origin unreachable (502) or non-success status (mirrored)
        """
        request = self.client.build_request(method, url)
        try:
            upstream = self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Upstream request failed: {url}: {e}")
            raise UpstreamError(f"Upstream unreachable: {e.__class__.__name__}", url=url) from e

        if not upstream.is_success:
            status = upstream.status_code
            upstream.close()
            logger.warning(f"Upstream returned HTTP {status}: {url}")
            raise UpstreamError(f"Upstream error: {status}", status=status, url=url)

        return upstream

    def handle_download(self, path: str, proxy_url: str, method: str = "GET") -> Response:
        """
        Serve one artifact by streaming it from its origin.

        Args:
            path: Request path to resolve
            proxy_url: This server's URL for the artifact (sent as Incus-Image-URL)
            method: "GET" streams the body; "HEAD" forwards headers only

        Returns:
            Streaming Flask Response mirroring the origin status and headers

        Raises:
            ClientError, NotFoundError, DataCorruptionError, UpstreamError
        """
        resolution = self.resolve(path)
        upstream = self.fetch(resolution.url, method=method)

        headers = [
            (name, value)
            for name, value in upstream.headers.multi_items()
            if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() != "content-type"
        ]
        content_type = upstream.headers.get("content-type", "application/octet-stream")

        if method == "HEAD":
            upstream.close()
            body = []
        else:
            # Raw bytes keep Content-Encoding and Content-Length valid
            body = upstream.iter_raw(self.config.STREAM_CHUNK_SIZE)

        response = Response(body, status=upstream.status_code, headers=headers, content_type=content_type)
        response.headers[HASH_HEADER] = resolution.sha256
        response.headers[URL_HEADER] = proxy_url
        response.headers[CORS_HEADER] = "*"
        # Runs when the WSGI server closes the body, including on client disconnect
        response.call_on_close(upstream.close)

        logger.info(
            f"Proxying {resolution.artifact.filename} for {resolution.product.wire_key} "
            f"from {resolution.url} (HTTP {upstream.status_code})"
        )
        return response
