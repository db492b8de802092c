"""
Tests del cliente HTTP del CRM sobre httpx.MockTransport.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List

import httpx
import pytest

from crm_sync.infrastructure.external.crm.crm_client import (
    CrmApiError,
    CrmClient,
    CrmCredentials,
    build_modified_since_criteria,
)

TOKEN_RESPONSE = {"access_token": "tok-1", "expires_in": 3600}


def make_client(handler, page_size: int = 2) -> CrmClient:
    return CrmClient(
        CrmCredentials(client_id="id", client_secret="secret", refresh_token="refresh"),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        api_url="https://crm.test/crm/v7",
        accounts_url="https://accounts.test",
        timeout_s=5,
        page_size=page_size,
    )


def test_build_modified_since_criteria_uses_utc_offset() -> None:
    since = datetime(2025, 12, 16, 10, 15, 0, 123456, tzinfo=timezone.utc)

    assert build_modified_since_criteria(since) == "(Modified_Time:greater_than:2025-12-16T10:15:00+00:00)"


@pytest.mark.asyncio
async def test_paginates_until_more_records_is_false() -> None:
    pages: List[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v2/token":
            return httpx.Response(200, json=TOKEN_RESPONSE)
        page = int(request.url.params["page"])
        pages.append(page)
        assert request.url.params["per_page"] == "2"
        assert request.headers["Authorization"] == "Zoho-oauthtoken tok-1"
        data = [{"id": f"P{page}a"}, {"id": f"P{page}b"}] if page < 3 else [{"id": "P3a"}]
        return httpx.Response(200, json={"data": data, "info": {"more_records": page < 3}})

    client = make_client(handler)
    listings = await client.fetch_all_listings()
    await client.aclose()

    assert pages == [1, 2, 3]
    assert [listing.external_id for listing in listings] == ["P1a", "P1b", "P2a", "P2b", "P3a"]


@pytest.mark.asyncio
async def test_no_content_is_an_empty_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v2/token":
            return httpx.Response(200, json=TOKEN_RESPONSE)
        return httpx.Response(204)

    client = make_client(handler)

    assert await client.fetch_listings_modified_since(datetime.now(timezone.utc)) == []
    assert await client.fetch_listing("P404") is None
    assert await client.fetch_work_item("T404") is None
    await client.aclose()


@pytest.mark.asyncio
async def test_records_without_id_are_dropped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v2/token":
            return httpx.Response(200, json=TOKEN_RESPONSE)
        return httpx.Response(200, json={"data": [{"id": "C1", "User_UID": "u1"}, {"First_Name": "sin id"}]})

    client = make_client(handler)
    actors = await client.fetch_marketplace_actors()
    await client.aclose()

    assert [actor.external_id for actor in actors] == ["C1"]
    assert actors[0].auth_uid == "u1"


@pytest.mark.asyncio
async def test_access_token_is_cached_between_calls() -> None:
    token_calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal token_calls
        if request.url.path == "/oauth/v2/token":
            token_calls += 1
            return httpx.Response(200, json=TOKEN_RESPONSE)
        return httpx.Response(200, json={"data": [{"id": "P1"}]})

    client = make_client(handler)
    await client.fetch_listing("P1")
    await client.fetch_listing("P1")
    await client.aclose()

    assert token_calls == 1


@pytest.mark.asyncio
async def test_http_error_raises_crm_api_error_with_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v2/token":
            return httpx.Response(200, json=TOKEN_RESPONSE)
        return httpx.Response(500, json={"code": "INTERNAL_ERROR"})

    client = make_client(handler)
    with pytest.raises(CrmApiError) as exc_info:
        await client.fetch_listing("P1")
    await client.aclose()

    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_timeout_is_an_ordinary_remote_failure() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        if request.url.path == "/oauth/v2/token":
            return httpx.Response(200, json=TOKEN_RESPONSE)
        calls += 1
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler)
    with pytest.raises(CrmApiError):
        await client.fetch_actor("C1")
    await client.aclose()

    assert calls == 1


@pytest.mark.asyncio
async def test_create_record_returns_details_id_and_sends_envelope() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v2/token":
            return httpx.Response(200, json=TOKEN_RESPONSE)
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(201, json={"data": [{"code": "SUCCESS", "details": {"id": "T-77"}}]})

    client = make_client(handler)
    created = await client.create_record("Tasks", {"Subject": "New Bid"})
    await client.aclose()

    assert created == "T-77"
    assert seen["method"] == "POST"
    assert seen["path"] == "/crm/v7/Tasks"
    assert b'"trigger":[]' in seen["body"].replace(b" ", b"")


@pytest.mark.asyncio
async def test_deleted_ids_use_if_modified_since_header() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v2/token":
            return httpx.Response(200, json=TOKEN_RESPONSE)
        seen["header"] = request.headers.get("If-Modified-Since")
        seen["type"] = request.url.params.get("type")
        return httpx.Response(200, json={"data": [{"id": "P1"}, {"id": "P2"}], "info": {"more_records": False}})

    client = make_client(handler)
    since = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    deleted = await client.fetch_deleted_listing_ids(since)
    await client.aclose()

    assert deleted == ["P1", "P2"]
    assert seen["header"] == "2026-01-02T03:04:05+00:00"
    assert seen["type"] == "all"
