import httpx
import pytest

from core.request_context import bind_request_id
from infrastructure.external.api_clients import APIError, UploadsAPIClient
from infrastructure.external.api_clients.base import APINetworkError, ServerError, extract_request_id, extract_server_message


def make_client(handler, **kwargs) -> UploadsAPIClient:
    return UploadsAPIClient(
        base_url="http://backend.test/",
        retry_delay=0.001,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_get_retries_transient_status():
    statuses = [503, 502, 200]
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(statuses.pop(0), json={"ok": True})

    async with make_client(handler, max_retries=2) as client:
        body = await client.health()

    assert body == {"ok": True}
    assert seen == ["/health"] * 3


@pytest.mark.asyncio
async def test_get_gives_up_after_max_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(503, json={"error": "maintenance"})

    async with make_client(handler, max_retries=1) as client:
        with pytest.raises(ServerError) as info:
            await client.health()

    assert len(calls) == 2
    assert info.value.status_code == 503
    assert info.value.server_message == "maintenance"


@pytest.mark.asyncio
async def test_post_is_sent_once_even_on_transient_status():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(503, json={"message": "try later"})

    async with make_client(handler, max_retries=3) as client:
        with pytest.raises(APIError) as info:
            await client.sign("tok", bucket="avatars", content_type="image/png", byte_size=10)

    assert len(calls) == 1
    assert info.value.server_message == "try later"


@pytest.mark.asyncio
async def test_network_error_has_no_status():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with make_client(handler) as client:
        with pytest.raises(APINetworkError) as info:
            await client.verify("tok", kind="avatar", object_key="k", expected_bytes=1)

    assert info.value.status_code is None


@pytest.mark.asyncio
async def test_bound_request_id_is_forwarded():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        return httpx.Response(200, json={"upload_url": "u", "object_key": "k"})

    async with make_client(handler) as client:
        with bind_request_id("rid-123"):
            body, response = await client.sign("tok", bucket="avatars", content_type="image/png", byte_size=10)

    assert seen["x-request-id"] == "rid-123"
    assert seen["authorization"] == "Bearer tok"
    assert set(client.default_headers) == {"Accept", "User-Agent"}
    assert body.object_key == "k"
    assert response.is_success


@pytest.mark.asyncio
async def test_sign_response_is_lenient_about_types():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"upload_url": " ", "object_key": 12, "expires_in": "soon"})

    async with make_client(handler) as client:
        body, _ = await client.sign("tok", bucket="avatars", content_type="image/png", byte_size=10)

    assert body.upload_url is None
    assert body.object_key == "12"
    assert body.expires_in is None


def test_extract_request_id_prefers_body():
    assert extract_request_id({"X-Request-ID": "h"}, {"requestId": "b"}) == "b"
    assert extract_request_id({"x-request-id": "h"}, None) == "h"
    assert extract_request_id({}, {"other": 1}) is None


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"error": "Nope"}, "Nope"),
        ({"message": "Bad"}, "Bad"),
        ({"detail": "Missing"}, "Missing"),
        ({"error": "  "}, None),
        ({"error": {"code": 1}}, None),
        ("plain", None),
    ],
)
def test_extract_server_message(data, expected):
    assert extract_server_message(data) == expected


@pytest.mark.asyncio
async def test_upload_client_health(platform, client_factory):
    async with client_factory() as client:
        assert await client.health() == {"ok": True}
    assert platform.call_names() == ["health"]
