"""Tests for the REST backend client."""
import json

import httpx
import pytest

from sveord.services.backend_client import AuthenticationError, BackendClient, BackendError

WORDS = [{"id": i, "headword": f"ord{i}"} for i in range(1, 6)]


def make_client(handler, access_token="token", page_size=2) -> BackendClient:
    return BackendClient(
        url="https://example.supabase.co/",
        anon_key="anon",
        access_token=access_token,
        page_size=page_size,
        transport=httpx.MockTransport(handler),
    )


def paged_handler(rows, fail_at_offset=None, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        offset = int(request.url.params["offset"])
        limit = int(request.url.params["limit"])
        if offset == fail_at_offset:
            return httpx.Response(500, json={"message": "boom"})
        return httpx.Response(200, json=rows[offset:offset + limit])
    return handler


def test_client_requires_url_and_key():
    with pytest.raises(ValueError, match="SUPABASE_URL"):
        BackendClient(url="https://example.supabase.co", anon_key="")


def test_headers_prefer_access_token():
    client = make_client(paged_handler([]))
    assert client.headers == {"apikey": "anon", "Authorization": "Bearer token"}
    assert make_client(paged_handler([]), access_token="").headers["Authorization"] == "Bearer anon"


@pytest.mark.asyncio
async def test_client_outside_context_manager_fails():
    client = make_client(paged_handler(WORDS))
    with pytest.raises(RuntimeError):
        await client.fetch_words()


@pytest.mark.asyncio
async def test_fetch_all_pages_in_order():
    """Pages are requested one after another until an empty page."""
    seen = []
    async with make_client(paged_handler(WORDS, seen=seen)) as client:
        rows = await client.fetch_words()

    assert rows == WORDS
    assert [r.url.params["offset"] for r in seen] == ["0", "2", "4", "6"]
    assert all(r.url.path == "/rest/v1/words" for r in seen)
    assert seen[0].headers["apikey"] == "anon"
    assert seen[0].url.params["select"] == "*"


@pytest.mark.asyncio
async def test_fetch_user_progress_filters_by_user():
    seen = []
    async with make_client(paged_handler([], seen=seen)) as client:
        rows = await client.fetch_user_progress("abc-123")

    assert rows == []
    assert seen[0].url.path == "/rest/v1/user_progress"
    assert seen[0].url.params["user_id"] == "eq.abc-123"


@pytest.mark.asyncio
async def test_failed_page_keeps_partial_rows(mocker):
    errors = mocker.patch("sveord.monitoring.backend_errors")

    async with make_client(paged_handler(WORDS, fail_at_offset=4)) as client:
        with pytest.raises(BackendError) as exc:
            await client.fetch_words()

    assert exc.value.table == "words"
    assert exc.value.partial == WORDS[:4]
    errors.labels.assert_called_once_with(table="words")


@pytest.mark.asyncio
async def test_connection_error_becomes_backend_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    async with make_client(handler) as client:
        with pytest.raises(BackendError) as exc:
            await client.fetch_words()
    assert exc.value.partial == []


@pytest.mark.asyncio
async def test_get_current_user():
    def handler(request):
        assert request.url.path == "/auth/v1/user"
        assert request.headers["Authorization"] == "Bearer token"
        return httpx.Response(200, json={"id": "user-1", "email": "a@example.com"})

    async with make_client(handler) as client:
        user = await client.get_current_user()

    assert user["id"] == "user-1"


@pytest.mark.asyncio
async def test_get_current_user_without_token():
    async with make_client(paged_handler([]), access_token="") as client:
        with pytest.raises(AuthenticationError, match="SUPABASE_ACCESS_TOKEN"):
            await client.get_current_user()


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_rejected_token_is_authentication_error(status):
    async with make_client(lambda request: httpx.Response(status, json={})) as client:
        with pytest.raises(AuthenticationError, match="rejected"):
            await client.get_current_user()


@pytest.mark.asyncio
async def test_server_error_on_auth_stays_backend_error():
    async with make_client(lambda request: httpx.Response(503)) as client:
        with pytest.raises(BackendError):
            await client.get_current_user()


@pytest.mark.asyncio
async def test_update_word_enrichment_patches_word():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(204)

    async with make_client(handler) as client:
        await client.update_word_enrichment(7, {"meanings": [{"english": "dog"}]})

    request = seen[0]
    assert request.method == "PATCH"
    assert request.url.params["id"] == "eq.7"
    assert json.loads(request.content) == {"word_data": {"meanings": [{"english": "dog"}]}}
