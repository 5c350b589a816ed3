from __future__ import annotations

import asyncio
from pathlib import Path  # noqa: TC003

import httpx
import pytest

from rollcall.app import Backend, StoreSource, audit_stores, open_stores, reconcile_stores
from rollcall.config import PlatformConfig, ReconcileConfig, ResilienceConfig
from rollcall.domain.reconciliation import FindingCategory, ReconciliationPolicy
from tests.helpers.platform import PLATFORM_URL, SERVICE_KEY, make_client_factory
from tests.helpers.snapshots import read_document, sample_document, write_document


def _platform_handler(request: httpx.Request) -> httpx.Response:
    match request.url.path:
        case "/auth/v1/admin/users":
            users = [{"id": "u1", "email": "a@x.com"}]
            return httpx.Response(200, json={"users": users}, headers={"X-Total-Count": "1"})
        case "/rest/v1/profiles":
            return httpx.Response(200, json=[], headers={"Content-Range": "*/0"})
        case "/rest/v1/members":
            rows = [{"id": "m1", "email": "other@x.com", "user_id": "ghost"}]
            return httpx.Response(200, json=rows, headers={"Content-Range": "0-0/1"})
        case _:
            return httpx.Response(404, json={"message": f"no route {request.url.path}"})


def test_audit_over_the_platform_backend() -> None:
    config = PlatformConfig(
        url=PLATFORM_URL,
        service_role_key=SERVICE_KEY,
        resilience=ResilienceConfig(name="platform-test", retry=None),
    )

    async def run() -> object:
        async with open_stores(
            StoreSource(backend=Backend.PLATFORM),
            platform_config=config,
            client_factory=make_client_factory(_platform_handler),
        ) as stores:
            return await audit_stores(stores, config=ReconcileConfig())

    snapshot, report = asyncio.run(run())  # type: ignore[misc]

    assert [identity.id for identity in snapshot.identities] == ["u1"]
    counts = report.counts()
    assert counts[FindingCategory.IDENTITIES_WITHOUT_PROFILE] == 1
    assert counts[FindingCategory.IDENTITIES_WITHOUT_MEMBER] == 1
    assert counts[FindingCategory.MEMBERS_ORPHANED] == 1


def test_database_backend_on_sqlite() -> None:
    async def run() -> object:
        async with open_stores(
            StoreSource(backend=Backend.DATABASE, database_uri="sqlite://")
        ) as stores:
            return await audit_stores(stores, config=ReconcileConfig())

    _, report = asyncio.run(run())  # type: ignore[misc]

    assert report.total_findings == 0


def test_snapshot_backend_saves_only_when_asked(tmp_path: Path) -> None:
    path = write_document(tmp_path / "snap.json", sample_document())
    policy = ReconciliationPolicy(delete_orphaned_profiles=True)

    async def run(source: StoreSource) -> None:
        async with open_stores(source) as stores:
            await reconcile_stores(stores, policy, config=ReconcileConfig())

    asyncio.run(run(StoreSource(backend=Backend.SNAPSHOT, snapshot_path=path)))
    assert "orphan1" in {row["id"] for row in read_document(path)["profiles"]}

    asyncio.run(
        run(StoreSource(backend=Backend.SNAPSHOT, snapshot_path=path, save_snapshot=True))
    )
    assert "orphan1" not in {row["id"] for row in read_document(path)["profiles"]}


def test_snapshot_backend_needs_a_path() -> None:
    async def run() -> None:
        async with open_stores(StoreSource(backend=Backend.SNAPSHOT)):
            pass

    with pytest.raises(ValueError, match="snapshot file"):
        asyncio.run(run())
