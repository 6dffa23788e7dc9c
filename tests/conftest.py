"""
Pytest configuration and shared fakes for the gateway tests.

The object store and metadata store are replaced by in-memory fakes, and the stream
token worker is served by an ``httpx.MockTransport``, so no test touches the network.
"""

import json
from typing import Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from streamgate.catalog import ContentRecord, InMemoryContentCatalog
from streamgate.schemas import AccessMode, ContentKind
from streamgate.services import GatewayServices, get_services
from streamgate.storage.base import ObjectNotFound, ObjectStoreClient, StorageError, StorageObject
from streamgate.storage.registry import ObjectStoreRegistry
from streamgate.token_client import StreamTokenClient

TOKEN_WORKER_URL = "https://worker.example"
FIXED_NOW = 1_700_000_000


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.addinivalue_line("markers", "asyncio: mark test as async")


class FakeObjectStore(ObjectStoreClient):
    def __init__(
        self,
        objects: Optional[Dict[str, bytes]] = None,
        name: str = "wasabi",
        bucket: str = "media",
        public_base_url: Optional[str] = None,
        edge_proxy_base_url: Optional[str] = None,
        sizes: Optional[Dict[str, int]] = None,
    ):
        super().__init__(name, bucket, public_base_url, edge_proxy_base_url)
        self.objects = dict(objects or {})
        self.sizes = dict(sizes or {})
        self.presigned: List[str] = []
        self.unreachable = False

    async def list(self, prefix: str) -> List[StorageObject]:
        if self.unreachable:
            raise StorageError("Storage unavailable during list")
        return [
            StorageObject(key, self.sizes.get(key, len(body)))
            for key, body in self.objects.items()
            if key.startswith(prefix)
        ]

    async def get(self, key: str) -> bytes:
        if self.unreachable:
            raise StorageError("Storage unavailable during get")
        if key not in self.objects:
            raise ObjectNotFound(key)
        return self.objects[key]

    async def presign(self, key: str, ttl: int) -> str:
        if self.unreachable:
            raise StorageError("Storage unavailable during presign")
        self.presigned.append(key)
        return f"https://signed.example/{key}?X-Amz-Expires={ttl}"

    async def probe(self) -> int:
        if self.unreachable:
            try:
                raise TimeoutError("probe timed out")
            except TimeoutError as e:
                raise StorageError("Timeout during probe") from e
        return min(len(self.objects), 1)


def token_worker_handler(request: httpx.Request) -> httpx.Response:
    """A worker that mints a relative stream URL for whatever path it is asked about."""
    if request.headers.get("Authorization") != "Bearer worker-secret":
        return httpx.Response(401, json={"error": "unauthorized"})
    body = json.loads(request.content)
    return httpx.Response(
        200,
        json={
            "token": "tok",
            "streamUrl": f"/stream/{body['contentId']}?token=tok",
            "expiresAt": FIXED_NOW + 600,
        },
    )


def failing_worker_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, json={"error": "unavailable"})


def make_token_client(handler=token_worker_handler, base_url: Optional[str] = TOKEN_WORKER_URL) -> StreamTokenClient:
    return StreamTokenClient(base_url, "worker-secret", transport=httpx.MockTransport(handler))


MASTER_MANIFEST = (
    "#EXTM3U\n"
    "#EXT-X-VERSION:3\n"
    "\n"
    "#EXT-X-STREAM-INF:BANDWIDTH=2800000,RESOLUTION=1280x720\n"
    "720p.m3u8\n"
    "#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360\n"
    "https://other.example/360p.m3u8\n"
)

MEDIA_MANIFEST = (
    "#EXTM3U\n"
    "#EXT-X-TARGETDURATION:6\n"
    "#EXTINF:6.0,\n"
    "seg-000.ts\n"
    "#EXTINF:6.0,\n"
    "seg-001.ts\n"
    "#EXT-X-ENDLIST\n"
)


@pytest.fixture
def episode_store() -> FakeObjectStore:
    return FakeObjectStore(
        {
            "episodes/abc/master.m3u8": MASTER_MANIFEST.encode(),
            "episodes/abc/720p.m3u8": MEDIA_MANIFEST.encode(),
            "episodes/abc/seg-000.ts": b"\x47" * 188,
            "episodes/abc/seg-001.ts": b"\x47" * 188,
            "episodes/abc/subs.pt-br.vtt": b"WEBVTT\n",
            "movies/xyz/movie.mp4": b"\x00" * 64,
        },
        public_base_url="https://cdn.example",
        edge_proxy_base_url="https://edge.example/",
    )


@pytest.fixture
def catalog() -> InMemoryContentCatalog:
    return InMemoryContentCatalog(
        titles=[
            ContentRecord(id="show-1", name="The Show", poster_url="https://img.example/poster.jpg", type="SERIES"),
            ContentRecord(id="xyz", name="A Movie", storage_prefix="/movies/xyz"),
            ContentRecord(id="nowhere", name="Unassigned"),
        ],
        episodes=[
            ContentRecord(
                id="abc",
                kind=ContentKind.EPISODE,
                name="Pilot",
                title_id="show-1",
                storage_prefix="episodes/abc",
                season_number=1,
                episode_number=1,
            ),
        ],
    )


@pytest.fixture
def make_services(catalog, episode_store):
    def _make(token_client: Optional[StreamTokenClient] = None, default_mode=AccessMode.PROTECTED_TOKEN):
        return GatewayServices(
            catalog=catalog,
            stores=ObjectStoreRegistry({episode_store.name: episode_store}, episode_store.name),
            token_client=token_client or make_token_client(),
            default_access_mode=default_mode,
        )

    return _make


@pytest.fixture
def make_client(make_services):
    """Factory for a TestClient whose gateway services are built by `make_services`."""
    from streamgate.main import app

    clients = []

    def _make(**services_kwargs) -> TestClient:
        services = make_services(**services_kwargs)
        app.dependency_overrides[get_services] = lambda: services
        test_client = TestClient(app).__enter__()
        test_client.services = services
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        test_client.__exit__(None, None, None)
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
