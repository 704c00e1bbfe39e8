import httpx
import pytest

from imagestreams.config import DEFAULT_SCHEMATIC_ID, Config
from imagestreams.errors import ClientError, DataCorruptionError, NotFoundError, UpstreamError
from imagestreams.proxy import DownloadProxy, ensure_version_prefix
from imagestreams.store import MemoryStore

from conftest import DISK_HASH, META_HASH, make_record

BUILD = "20251226_02:40"


def make_proxy(config, upstream, records):
    data = {"products:list": list(records)}
    data.update(records)
    return DownloadProxy(config, MemoryStore(data), client=upstream.client())


def test_metadata_url_defaults_to_product_name(config, upstream):
    proxy = make_proxy(config, upstream, {"product:talos:v1.12.0:amd64:default": make_record()})
    resolution = proxy.resolve(f"/images/talos/v1.12.0/amd64/default/{BUILD}/incus.tar.xz")
    assert resolution.url == (
        "https://github.com/windsorcli/talos/releases/download/v1.12.0/talos-amd64-incus.tar.xz"
    )
    assert resolution.sha256 == META_HASH


def test_metadata_url_uses_record_repository(config, upstream):
    record = make_record(github_repo="talos-incus", file_prefix="talos")
    proxy = make_proxy(config, upstream, {"product:talos:v1.12.0:arm64:default": record})
    resolution = proxy.resolve(f"/images/talos/v1.12.0/arm64/default/{BUILD}/lxd.tar.xz")
    assert resolution.url == (
        "https://github.com/windsorcli/talos-incus/releases/download/v1.12.0/talos-arm64-incus.tar.xz"
    )


def test_disk_url_defaults_to_factory(config, upstream):
    # Stored version lacks the leading "v"
    proxy = make_proxy(config, upstream, {"product:talos:1.12.0:amd64:default": make_record()})
    resolution = proxy.resolve(f"/images/talos/1.12.0/amd64/default/{BUILD}/disk.qcow2")
    assert resolution.url == (
        f"https://factory.talos.dev/image/{DEFAULT_SCHEMATIC_ID}/v1.12.0/metal-amd64.qcow2"
    )
    assert resolution.sha256 == DISK_HASH


def test_disk_url_uses_record_schematic(config, upstream):
    record = make_record(schematic_id="deadbeef")
    proxy = make_proxy(config, upstream, {"product:talos:v1.12.0:arm64:default": record})
    resolution = proxy.resolve(f"/images/talos/v1.12.0/arm64/default/{BUILD}/disk-kvm.img")
    assert resolution.url == "https://factory.talos.dev/image/deadbeef/v1.12.0/metal-arm64.qcow2"


def test_disk_url_prefers_explicit_source(config, upstream):
    record = make_record(source_url="https://mirror.example.com/talos-amd64.qcow2", schematic_id="deadbeef")
    proxy = make_proxy(config, upstream, {"product:talos:v1.12.0:amd64:default": record})
    resolution = proxy.resolve(f"/images/talos/v1.12.0/amd64/default/{BUILD}/disk.qcow2")
    assert resolution.url == "https://mirror.example.com/talos-amd64.qcow2"


def test_resolve_normalizes_architecture(config, upstream):
    proxy = make_proxy(config, upstream, {"product:talos:v1.12.0:arm64:default": make_record()})
    resolution = proxy.resolve(f"/images/talos/v1.12.0/aarch64/default/{BUILD}/incus.tar.xz")
    assert resolution.product.arch == "arm64"
    assert resolution.url.endswith("/talos-arm64-incus.tar.xz")


def test_resolve_missing_record(config, upstream):
    proxy = make_proxy(config, upstream, {})
    with pytest.raises(NotFoundError) as excinfo:
        proxy.resolve(f"/images/talos/v1.13.0/amd64/default/{BUILD}/incus.tar.xz")
    assert excinfo.value.code == 404
    assert "talos/v1.13.0/amd64/default" in excinfo.value.description
    assert "product:" not in excinfo.value.description
    assert upstream.requests == []


def test_resolve_corrupt_record(config, upstream):
    proxy = make_proxy(config, upstream, {"product:talos:v1.12.0:amd64:default": "{not json"})
    with pytest.raises(DataCorruptionError) as excinfo:
        proxy.resolve(f"/images/talos/v1.12.0/amd64/default/{BUILD}/disk.qcow2")
    assert excinfo.value.key == "product:talos:v1.12.0:amd64:default"


def test_resolve_unknown_filename(config, upstream):
    proxy = make_proxy(config, upstream, {"product:talos:v1.12.0:amd64:default": make_record()})
    with pytest.raises(ClientError) as excinfo:
        proxy.resolve(f"/images/talos/v1.12.0/amd64/default/{BUILD}/rootfs.squashfs")
    assert "incus.tar.xz" in excinfo.value.description


def test_fetch_mirrors_upstream_status(config, upstream):
    upstream.respond = lambda request: httpx.Response(503, text="maintenance")
    proxy = make_proxy(config, upstream, {})
    with pytest.raises(UpstreamError) as excinfo:
        proxy.fetch("https://factory.talos.dev/image/x/v1.12.0/metal-amd64.qcow2")
    assert excinfo.value.code == 503
    assert len(upstream.requests) == 1


def test_fetch_transport_failure(config, upstream):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    upstream.respond = refuse
    proxy = make_proxy(config, upstream, {})
    with pytest.raises(UpstreamError) as excinfo:
        proxy.fetch("https://github.com/windsorcli/talos/releases/download/v1.12.0/talos-amd64-incus.tar.xz")
    assert excinfo.value.code == 502


def test_fetch_follows_redirects(config, upstream):
    def respond(request):
        if request.url.host == "github.com":
            return httpx.Response(302, headers={"Location": "https://objects.example.com/asset"})
        return httpx.Response(200, content=b"tarball")

    upstream.respond = respond
    proxy = make_proxy(config, upstream, {})
    response = proxy.fetch("https://github.com/windsorcli/talos/releases/download/v1.12.0/talos-amd64-incus.tar.xz")
    assert response.status_code == 200
    assert response.read() == b"tarball"
    response.close()


def test_ensure_version_prefix():
    assert ensure_version_prefix("1.12.0") == "v1.12.0"
    assert ensure_version_prefix("v1.12.0") == "v1.12.0"


def test_resolve_finds_record_under_alias(config, upstream):
    proxy = make_proxy(config, upstream, {"product:talos:v1.12.0:x86_64:default": make_record()})
    resolution = proxy.resolve(f"/images/talos/v1.12.0/amd64/default/{BUILD}/disk.qcow2")
    assert resolution.product.arch == "amd64"
    assert resolution.sha256 == DISK_HASH
    assert resolution.url.endswith("/metal-amd64.qcow2")


def test_disk_url_with_trailing_slash_factory(upstream):
    config = Config(REGISTRY_BACKEND="memory", FACTORY_URL="https://factory.example.com/")
    proxy = make_proxy(config, upstream, {"product:talos:v1.12.0:amd64:default": make_record()})
    resolution = proxy.resolve(f"/images/talos/v1.12.0/amd64/default/{BUILD}/disk.qcow2")
    assert resolution.url == (
        f"https://factory.example.com/image/{DEFAULT_SCHEMATIC_ID}/v1.12.0/metal-amd64.qcow2"
    )
