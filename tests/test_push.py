import dataclasses
import time

import httpx
import pytest
from jose import jwt
from sqlalchemy.ext.asyncio import create_async_engine

from lovablee.auth import create_provider_token
from lovablee.config import get_settings
from lovablee.database import create_db_and_tables, get_session, session_factory
from lovablee.errors import ConfigurationError
from lovablee.main import app, get_http_client
from lovablee.models import User
from lovablee.services.push_service import build_notification, dispatch_push, unique_tokens


def _apns_ok(request):
    return httpx.Response(200, headers={"apns-id": "abc"})


def _route_devices(backend, handler=_apns_ok, tokens=("A", "B")):
    for token in tokens:
        backend.on("POST", f"/3/device/{token}", handler)


# --- provider token ---
def test_provider_token_is_es256_signed(settings, ec_key_pair):
    token = create_provider_token(settings)
    header = jwt.get_unverified_header(token)
    assert header == {"alg": "ES256", "kid": "KEY123", "typ": "JWT"}
    claims = jwt.decode(token, ec_key_pair[1], algorithms=["ES256"])
    assert claims["iss"] == "TEAM456"
    assert abs(claims["iat"] - int(time.time())) <= 5


def test_provider_token_is_fresh_per_call(settings):
    assert create_provider_token(settings, issued_at=1) != create_provider_token(settings, issued_at=2)


def test_provider_token_requires_configuration(settings):
    with pytest.raises(ConfigurationError):
        create_provider_token(dataclasses.replace(settings, apns_key_id=""))


def test_provider_token_rejects_bad_key(settings):
    with pytest.raises(ConfigurationError):
        create_provider_token(dataclasses.replace(settings, apns_private_key="not a key"))


# --- payload ---
def test_notification_payload():
    assert build_notification("Hi", "there") == {
        "aps": {"alert": {"title": "Hi", "body": "there"}, "sound": "default", "content-available": 1}
    }


def test_extra_payload_is_merged_at_top_level():
    notification = build_notification("Hi", "there", {"doodleId": "d1", "type": "doodle"})
    assert notification["doodleId"] == "d1"
    assert notification["type"] == "doodle"
    assert notification["aps"]["alert"]["title"] == "Hi"


def test_unique_tokens_keeps_first_seen_order():
    assert unique_tokens(["A", "A", "B", "", "A"]) == ["A", "B"]


# --- dispatch ---
async def test_duplicate_tokens_are_sent_once(backend, http_client, settings):
    settings = dataclasses.replace(settings, apns_host="https://apns.test")
    _route_devices(backend)
    results = await dispatch_push(http_client, settings, ["A", "A", "B"], "Hi", "there")
    assert results == {"A": 200, "B": 200}
    assert len(backend.requests) == 2


async def test_gateway_request_shape(backend, http_client, settings):
    settings = dataclasses.replace(settings, apns_host="https://apns.test")
    _route_devices(backend, tokens=("A",))
    await dispatch_push(http_client, settings, ["A"], "Hi", "there", {"kind": "doodle"})
    request = backend.requests[0]
    assert str(request.url) == "https://apns.test/3/device/A"
    assert request.headers["apns-topic"] == "com.anthony.lovablee"
    assert request.headers["authorization"].startswith("bearer ")
    body = backend.json_body()
    assert body["kind"] == "doodle"
    assert body["aps"]["sound"] == "default"


async def test_one_token_failure_does_not_stop_others(backend, http_client, settings):
    def refuse(request):
        raise httpx.ConnectError("reset", request=request)

    backend.on("POST", "/3/device/A", refuse)
    backend.on("POST", "/3/device/B", httpx.Response(400, json={"reason": "BadDeviceToken"}))
    backend.on("POST", "/3/device/C", _apns_ok)
    results = await dispatch_push(http_client, settings, ["A", "B", "C"], "Hi", "there")
    assert results == {"A": 0, "B": 400, "C": 200}


# --- endpoint ---
@pytest.fixture
async def backend_engine(settings):
    engine = create_async_engine(settings.database_url)
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def api(settings, backend_engine, http_client):
    async def override_session():
        async with session_factory(backend_engine)() as session:
            yield session

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_session] = override_session
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://functions.test") as client:
        yield client
    app.dependency_overrides.clear()


async def _add_users(engine, *users):
    async with session_factory(engine)() as session:
        session.add_all(users)
        await session.commit()


async def test_non_post_is_rejected(api):
    response = await api.get("/send-push")
    assert response.status_code == 405


async def test_invalid_json_is_rejected(api):
    response = await api.post("/send-push", content=b"{not json", headers={"content-type": "application/json"})
    assert response.status_code == 400


async def test_non_object_json_is_rejected(api):
    response = await api.post("/send-push", json=["u1"])
    assert response.status_code == 400


async def test_missing_fields_are_rejected(api):
    response = await api.post("/send-push", json={"targetUserId": "u1", "title": "Hi"})
    assert response.status_code == 400
    assert response.text == "Missing targetUserId/title/body"


async def test_missing_apns_configuration(api, settings):
    app.dependency_overrides[get_settings] = lambda: dataclasses.replace(settings, apns_private_key="")
    response = await api.post("/send-push", json={"targetUserId": "u1", "title": "Hi", "body": "there"})
    assert response.status_code == 500


async def test_user_without_tokens_is_not_found(api, backend_engine):
    await _add_users(backend_engine, User(id="u1", apns_token=None))
    response = await api.post("/send-push", json={"targetUserId": "u1", "title": "Hi", "body": "there"})
    assert response.status_code == 404


async def test_unknown_user_is_not_found(api):
    response = await api.post("/send-push", json={"targetUserId": "ghost", "title": "Hi", "body": "there"})
    assert response.status_code == 404


async def test_push_is_delivered(api, backend, backend_engine):
    await _add_users(backend_engine, User(id="u1", apns_token="A"), User(id="u2", apns_token="B"))
    backend.on("POST", "/3/device/A", _apns_ok)
    response = await api.post(
        "/send-push", json={"targetUserId": "u1", "title": "Hi", "body": "there", "payload": {"kind": "doodle"}}
    )
    assert response.status_code == 200
    assert response.json() == {"tokens": {"A": 200}}
    assert [r.url.path for r in backend.requests] == ["/3/device/A"]
