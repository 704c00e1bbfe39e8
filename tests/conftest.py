import httpx
import pytest

from imagestreams.config import Config
from imagestreams.routes import create_app
from imagestreams.store import MemoryStore

# 2025-12-26 02:40 UTC
CREATION_DATE = 1766716800

META_HASH = "a" * 64
DISK_HASH = "b" * 64
COMBINED_HASH = "c" * 64


def make_record(**fields):
    record = {
        "creation_date": CREATION_DATE,
        "meta_hash": META_HASH,
        "meta_size": 1024,
        "disk_hash": DISK_HASH,
        "disk_size": 207000000,
        "combined_hash": COMBINED_HASH,
    }
    record.update(fields)
    return record


class Upstream:
    """Fake origin server: records requests and answers with a configurable handler."""

    def __init__(self):
        self.requests = []
        self.respond = lambda request: httpx.Response(
            200, stream=httpx.ByteStream(b"image-bytes"), headers={"Content-Type": "application/x-xz", "ETag": '"v1"'}
        )

    def __call__(self, request):
        self.requests.append(request)
        return self.respond(request)

    def client(self):
        return httpx.Client(transport=httpx.MockTransport(self), follow_redirects=True)


@pytest.fixture
def config():
    return Config(REGISTRY_BACKEND="memory", GITHUB_ORG="windsorcli")


@pytest.fixture
def store():
    return MemoryStore(
        {
            "products:list": ["product:talos:v1.12.0:amd64:default"],
            "product:talos:v1.12.0:amd64:default": make_record(),
        }
    )


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def app(config, store, upstream):
    return create_app(config, store=store, http_client=upstream.client())


@pytest.fixture
def client(app):
    return app.test_client()
