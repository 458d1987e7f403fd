import io
import json
import struct
import zlib

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from PIL import Image
from sqlalchemy import text

from lovablee.config import Settings
from lovablee.services.doodle_service import DoodleFetcher
from lovablee.widget.store import SharedStore

BACKEND_URL = "https://backend.test"


@pytest.fixture(scope="session")
def ec_key_pair():
    key = ec.generate_private_key(ec.SECP256R1())
    private_pem = key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode()
    return private_pem, public_pem


@pytest.fixture
def settings(tmp_path, ec_key_pair):
    return Settings(
        supabase_url=BACKEND_URL,
        service_role_key="service-key",
        anon_key="anon-key",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'backend.db'}",
        apns_key_id="KEY123",
        apns_team_id="TEAM456",
        apns_private_key=ec_key_pair[0],
        apns_bundle_id="com.anthony.lovablee",
        widget_store_path=str(tmp_path / "group.db"),
        widget_output_dir=str(tmp_path / "out"),
    )


@pytest.fixture
def make_png():
    def _make(width: int, height: int, color=(200, 40, 90)) -> bytes:
        buf = io.BytesIO()
        Image.new("RGB", (width, height), color).save(buf, format="PNG")
        return buf.getvalue()

    return _make


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))


@pytest.fixture
def oversized_png():
    """Header-only PNG declaring 20000x20000 pixels, past Pillow's decompression bomb limit."""
    header = struct.pack(">IIBBBBB", 20000, 20000, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", b"")
        + _png_chunk(b"IEND", b"")
    )


@pytest.fixture
async def store(settings):
    shared = SharedStore.open(settings.store_path(), "group.test")
    yield shared
    await shared.close()


@pytest.fixture
def corrupt_entry(store):
    async def _corrupt(key: str, raw: str = "{not json"):
        async with store.engine.begin() as conn:
            await conn.execute(
                text("UPDATE shared_entries SET value = :raw WHERE key = :key"),
                {"raw": raw, "key": f"{store.namespace}.{key}"},
            )

    return _corrupt


class FakeBackend:
    """Records requests and answers them from a route table."""

    def __init__(self):
        self.requests = []
        self.routes = {}

    def on(self, method: str, path: str, response):
        self.routes[(method, path)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"message": "no route"})
        if callable(response):
            return response(request)
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def json_body(self, index: int = 0):
        return json.loads(self.requests[index].content)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def http_client(backend):
    async with backend.client() as client:
        yield client


@pytest.fixture
def fetcher(http_client, settings):
    return DoodleFetcher(http_client, settings)
