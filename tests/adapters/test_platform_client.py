from __future__ import annotations

import asyncio

import httpx
import pytest

from rollcall.adapters.http_resilience import ResilienceConfig, RetryPolicy
from rollcall.adapters.supabase import PlatformClient, classify_status, parse_content_range
from rollcall.domain.ports import PageRequest
from rollcall.domain.result import Err, ErrorKind, Ok, Result
from tests.helpers.platform import SERVICE_KEY, make_platform_client, request_json


async def _call[T](client: PlatformClient, call: str, *args: object, **kwargs: object) -> T:
    async with client:
        return await getattr(client, call)(*args, **kwargs)


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (200, None),
        (204, None),
        (400, ErrorKind.REJECTED),
        (401, ErrorKind.REJECTED),
        (404, ErrorKind.NOT_FOUND),
        (409, ErrorKind.REJECTED),
        (408, ErrorKind.TRANSIENT),
        (429, ErrorKind.TRANSIENT),
        (500, ErrorKind.TRANSIENT),
        (503, ErrorKind.TRANSIENT),
        (599, ErrorKind.TRANSIENT),
    ],
)
def test_classify_status(status: int, expected: ErrorKind | None) -> None:
    assert classify_status(status) is expected


@pytest.mark.parametrize(
    ("header", "expected"),
    [("0-24/312", 312), ("*/0", 0), ("0-9/*", None), (None, None), ("", None)],
)
def test_parse_content_range(header: str | None, expected: int | None) -> None:
    assert parse_content_range(header) == expected


def test_select_sends_service_headers_and_reads_total() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "p1"}], headers={"Content-Range": "25-25/26"})

    result: Result[object] = asyncio.run(
        _call(
            make_platform_client(handler),
            "select",
            "profiles",
            [("email", "eq.a@x.com")],
            page=PageRequest(number=2, size=25),
        )
    )

    assert isinstance(result, Ok)
    assert result.value.rows == [{"id": "p1"}]  # type: ignore[attr-defined]
    assert result.value.total == 26  # type: ignore[attr-defined]
    (request,) = seen
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/profiles"
    params = request.url.params
    assert params["select"] == "*"
    assert params["email"] == "eq.a@x.com"
    assert params["order"] == "id.asc"
    assert (params["limit"], params["offset"]) == ("25", "25")
    assert request.headers["apikey"] == SERVICE_KEY
    assert request.headers["Authorization"] == f"Bearer {SERVICE_KEY}"
    assert request.headers["Prefer"] == "count=exact"


def test_upsert_with_id_merges_on_conflict() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json=[{"id": "m1", "phone": "555"}])

    result: Result[object] = asyncio.run(
        _call(make_platform_client(handler), "upsert", "members", {"id": "m1", "phone": "555"})
    )

    assert result == Ok({"id": "m1", "phone": "555"})
    (request,) = seen
    assert request.method == "POST"
    assert request.url.params["on_conflict"] == "id"
    assert request.headers["Prefer"] == "resolution=merge-duplicates,return=representation"
    assert request_json(request) == {"id": "m1", "phone": "555"}


def test_insert_without_id_is_a_plain_post() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json=[{"id": "generated"}])

    asyncio.run(_call(make_platform_client(handler), "upsert", "members", {"email": "a@x.com"}))

    (request,) = seen
    assert "on_conflict" not in request.url.params
    assert request.headers["Prefer"] == "return=representation"


def test_empty_write_response_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json=[])

    result: Result[object] = asyncio.run(
        _call(make_platform_client(handler), "upsert", "members", {"id": "m1"})
    )

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.REJECTED


def test_delete_counts_returned_rows() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "p1"}, {"id": "p2"}])

    result: Result[object] = asyncio.run(
        _call(make_platform_client(handler), "delete", "profiles", [("id", "in.(\"p1\",\"p2\")")])
    )

    assert result == Ok(2)
    assert seen[0].method == "DELETE"
    assert seen[0].headers["Prefer"] == "return=representation"


def test_unfiltered_delete_never_reaches_the_server() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    result: Result[object] = asyncio.run(
        _call(make_platform_client(handler), "delete", "profiles", [])
    )

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.REJECTED


def test_error_bodies_are_classified() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"message": "duplicate key value", "code": "23505"})

    result: Result[object] = asyncio.run(
        _call(make_platform_client(handler), "upsert", "members", {"id": "m1"})
    )

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.REJECTED
    assert "duplicate key value" in result.detail


def test_network_failure_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result: Result[object] = asyncio.run(
        _call(make_platform_client(handler), "get_user", "u1")
    )

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.TRANSIENT


def test_list_users_reads_total_count() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"users": []}, headers={"X-Total-Count": "42"})

    result: Result[object] = asyncio.run(
        _call(make_platform_client(handler), "list_users", page=PageRequest(number=3, size=10))
    )

    assert result == Ok(({"users": []}, 42))
    (request,) = seen
    assert request.url.path == "/auth/v1/admin/users"
    assert (request.url.params["page"], request.url.params["per_page"]) == ("3", "10")


def test_reads_are_retried_but_writes_are_not() -> None:
    calls: dict[str, int] = {"GET": 0, "POST": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls[request.method] += 1
        if calls[request.method] == 1:
            return httpx.Response(503, json={"message": "busy"})
        return httpx.Response(200, json=[{"id": "m1"}])

    resilience = ResilienceConfig(
        name="platform-test",
        retry=RetryPolicy(total=2, backoff_factor=0.0, backoff_jitter=0.0),
    )

    async def run() -> tuple[Result[object], Result[object]]:
        async with make_platform_client(handler, resilience=resilience, keep_retry=True) as client:
            read = await client.select("members", page=PageRequest(size=1))
            write = await client.upsert("members", {"id": "m1"})
            return read, write

    read, write = asyncio.run(run())

    assert isinstance(read, Ok)
    assert isinstance(write, Err)
    assert write.kind is ErrorKind.TRANSIENT
    assert calls == {"GET": 2, "POST": 1}
