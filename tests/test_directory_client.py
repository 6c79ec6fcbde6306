import httpx
import pytest

from wellness_messaging.clients.directory_client import DirectoryClient
from wellness_messaging.exceptions import NotFoundError, UpstreamUnavailableError
from wellness_messaging.utils.request_context import bearer_token_var

BASE_URL = "http://directory.test/usuarios"


def _client(handler) -> DirectoryClient:
    transport = httpx.MockTransport(handler)
    return DirectoryClient(base_url=BASE_URL, client=httpx.AsyncClient(transport=transport))


@pytest.mark.asyncio
async def test_resolve_profile_reads_display_name_and_keeps_extra_fields():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        return httpx.Response(200, json={"id": 100, "displayName": "Ana", "avatarUrl": "https://img/ana.png"})

    profile = await _client(handler).resolve_profile(100)

    assert seen["path"] == "/usuarios/perfil-publico/100"
    assert profile.id == 100
    assert profile.display_name == "Ana"
    assert profile.model_extra["avatarUrl"] == "https://img/ana.png"


@pytest.mark.asyncio
async def test_caller_token_is_forwarded():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"id": 100, "displayName": "Ana"})

    reset = bearer_token_var.set("caller-token")
    try:
        await _client(handler).resolve_profile(100)
    finally:
        bearer_token_var.reset(reset)

    assert seen["auth"] == "Bearer caller-token"


@pytest.mark.asyncio
async def test_list_contacts():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/usuarios/100/contacts"
        return httpx.Response(200, json=[{"id": 200, "displayName": "Bruno"}, {"id": 300, "displayName": "Carla"}])

    contacts = await _client(handler).list_contacts(100)

    assert [(c.id, c.display_name) for c in contacts] == [(200, "Bruno"), (300, "Carla")]


@pytest.mark.asyncio
async def test_missing_profile_is_not_found():
    client = _client(lambda request: httpx.Response(404, json={"error": "no such user"}))

    with pytest.raises(NotFoundError):
        await client.resolve_profile(999)


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [500, 502, 401])
async def test_error_status_is_upstream_unavailable(status_code):
    client = _client(lambda request: httpx.Response(status_code))

    with pytest.raises(UpstreamUnavailableError):
        await client.resolve_profile(100)


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [httpx.ConnectError("refused"), httpx.ReadTimeout("slow")])
async def test_transport_errors_are_upstream_unavailable(error):
    def handler(request: httpx.Request) -> httpx.Response:
        raise error

    with pytest.raises(UpstreamUnavailableError):
        await _client(handler).list_contacts(100)


@pytest.mark.asyncio
async def test_invalid_json_is_upstream_unavailable():
    client = _client(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

    with pytest.raises(UpstreamUnavailableError):
        await client.resolve_profile(100)
