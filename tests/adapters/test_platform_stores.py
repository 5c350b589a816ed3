from __future__ import annotations

import asyncio
from datetime import date

import httpx

from rollcall.adapters.supabase import (
    MEMBER_COLUMNS,
    PlatformIdentityStore,
    build_platform_stores,
    member_from_row,
    predicate_params,
)
from rollcall.adapters.supabase.schema import MemberRow
from rollcall.domain.model import MemberCategory
from rollcall.domain.ports import PageRequest, eq, escape_like, ilike, in_, is_null, neq
from rollcall.domain.result import Err, ErrorKind, Ok
from tests.helpers.platform import make_platform_client, request_json
from tests.helpers.records import T0


def _member_row(
    member_id: str,
    email: str,
    created_at: str,
    **columns: object,
) -> dict[str, object]:
    return {"id": member_id, "email": email, "created_at": created_at, **columns}


def test_member_row_translation() -> None:
    row = MemberRow.model_validate(
        {
            "id": "m1",
            "user_id": "u1",
            "email": " ",
            "fullname": None,
            "category": "",
            "isactive": None,
            "churchunits": ["choir", "ushers"],
            "joindate": "2021-05-02T00:00:00+00:00",
            "unexpected": "ignored",
        }
    )

    member = member_from_row(row)

    assert member.linked_identity_id == "u1"
    assert member.email is None
    assert member.full_name == ""
    assert member.category == MemberCategory.MEMBERS
    assert member.is_active
    assert member.church_units == ("choir", "ushers")
    assert member.join_date == date(2021, 5, 2)


def test_predicates_render_as_rest_filters() -> None:
    predicate = (
        eq("linked_identity_id", "u1")
        & neq("is_active", value=False)
        & is_null("assigned_to_member_id")
        & in_("id", ["m1", 'say "hi"'])
        & ilike("email", escape_like("a_b%") + "%")
    )

    assert predicate_params(predicate, MEMBER_COLUMNS) == [
        ("user_id", "eq.u1"),
        ("isactive", "neq.false"),
        ("assignedto", "is.null"),
        ("id", 'in.("m1","say \\"hi\\"")'),
        ("email", "ilike.a\\_b\\%*"),
    ]


def test_list_all_maps_filter_columns_and_pages() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[_member_row("m1", "a@x.com", "2024-01-01T09:00:00+00:00", user_id="u1")],
            headers={"Content-Range": "0-0/3"},
        )

    async def run() -> object:
        async with make_platform_client(handler) as client:
            stores = build_platform_stores(client)
            return await stores.members.list_all(
                eq("linked_identity_id", "u1"), page=PageRequest(size=1)
            )

    result = asyncio.run(run())

    assert isinstance(result, Ok)
    page = result.value
    assert [member.id for member in page.items] == ["m1"]
    assert page.has_more
    assert page.total == 3
    assert seen[0].url.path == "/rest/v1/members"
    assert seen[0].url.params["user_id"] == "eq.u1"


def test_unknown_filter_field_is_rejected_locally() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async def run() -> object:
        async with make_platform_client(handler) as client:
            stores = build_platform_stores(client)
            return await stores.profiles.list_all(eq("nickname", "x"), page=PageRequest())

    result = asyncio.run(run())

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.REJECTED


def test_get_by_email_picks_oldest_exact_match() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                _member_row("m1", "a_b@x.com", "2024-01-03T00:00:00+00:00"),
                _member_row("m2", "axb@x.com", "2024-01-01T00:00:00+00:00"),
                _member_row("m3", "A_B@X.com", "2024-01-02T00:00:00+00:00"),
            ],
        )

    async def run() -> object:
        async with make_platform_client(handler) as client:
            return await build_platform_stores(client).members.get_by_email(" A_B@x.com")

    result = asyncio.run(run())

    assert isinstance(result, Ok)
    assert result.value.id == "m3"
    params = seen[0].url.params
    assert params["email"] == "ilike.a\\_b@x.com"
    assert params["order"] == "created_at.asc.nullsfirst,id.asc"


def test_get_by_id_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    async def run() -> object:
        async with make_platform_client(handler) as client:
            return await build_platform_stores(client).profiles.get_by_id("missing")

    result = asyncio.run(run())

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.NOT_FOUND


def test_upsert_renames_columns_and_stamps_updated_at() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = request_json(request)
        assert isinstance(body, dict)
        return httpx.Response(201, json=[{**body, "email": "a@x.com"}])

    async def run() -> object:
        async with make_platform_client(handler) as client:
            stores = build_platform_stores(client, clock=lambda: T0)
            return await stores.members.upsert({"id": "m1", "assigned_to_member_id": None})

    result = asyncio.run(run())

    assert isinstance(result, Ok)
    assert result.value.assigned_to_member_id is None
    assert request_json(seen[0]) == {
        "id": "m1",
        "assignedto": None,
        "updated_at": T0.isoformat(),
    }


def test_malformed_row_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"email": "no-id@x.com"}])

    async def run() -> object:
        async with make_platform_client(handler) as client:
            return await build_platform_stores(client).members.list_all(page=PageRequest())

    result = asyncio.run(run())

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.REJECTED


def test_identity_listing_filters_each_page() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "users": [
                    {
                        "id": "u1",
                        "email": "a@x.com",
                        "email_confirmed_at": "2024-01-01T00:00:00Z",
                        "user_metadata": {"full_name": "Ada", "age": 30, "avatar": None},
                    },
                    {"id": "u2", "email": "b@x.com", "user_metadata": None},
                ]
            },
            headers={"X-Total-Count": "5"},
        )

    async def run() -> object:
        async with make_platform_client(handler) as client:
            return await PlatformIdentityStore(client).list_all(
                eq("email", "a@x.com"), page=PageRequest(size=2)
            )

    result = asyncio.run(run())

    assert isinstance(result, Ok)
    (identity,) = result.value.items
    assert identity.email_confirmed
    assert identity.metadata == {"full_name": "Ada", "age": "30"}
    assert identity.full_name == "Ada"
    assert result.value.has_more


def test_identity_upsert_creates_when_update_finds_nothing() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "PUT":
            return httpx.Response(404, json={"msg": "User not found"})
        body = request_json(request)
        assert isinstance(body, dict)
        return httpx.Response(200, json={**body, "created_at": "2024-01-01T00:00:00Z"})

    async def run() -> object:
        async with make_platform_client(handler) as client:
            return await PlatformIdentityStore(client).upsert(
                {"id": "u9", "email": "n@x.com", "email_confirmed": True}
            )

    result = asyncio.run(run())

    assert isinstance(result, Ok)
    assert result.value.id == "u9"
    assert [request.method for request in seen] == ["PUT", "POST"]
    assert request_json(seen[1]) == {"email": "n@x.com", "email_confirm": True, "id": "u9"}


def test_identity_delete_by_id() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    async def run() -> object:
        async with make_platform_client(handler) as client:
            return await PlatformIdentityStore(client).delete_where(eq("id", "u1"))

    result = asyncio.run(run())

    assert result == Ok(1)
    assert (seen[0].method, seen[0].url.path) == ("DELETE", "/auth/v1/admin/users/u1")
