"""Application orchestration entry points."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import StrEnum
from functools import partial
from logging import getLogger
from typing import TYPE_CHECKING

from rollcall.adapters.snapshot_file import load_snapshot_file, save_stores, write_snapshot_file
from rollcall.adapters.sqlalchemy import build_sql_stores, open_database
from rollcall.adapters.supabase import PlatformClient, build_platform_stores
from rollcall.config import (
    ReconcileConfig,
    get_database_config,
    get_platform_config,
    get_reconcile_config,
)
from rollcall.domain.reconciliation import (
    ReconciliationEngine,
    ReconciliationPolicy,
    VerificationHarness,
    audit,
    load_identity_snapshot,
    load_snapshot,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from datetime import timedelta
    from pathlib import Path

    from rollcall.adapters.http_resilience import ResilientClient
    from rollcall.config import PlatformConfig, ResilienceConfig
    from rollcall.domain.ports import RecordStores
    from rollcall.domain.reconciliation import (
        CancellationToken,
        Report,
        StoreSnapshot,
        VerificationResult,
    )

log = getLogger(__name__)


class Backend(StrEnum):
    PLATFORM = "platform"
    DATABASE = "database"
    SNAPSHOT = "snapshot"


@dataclass(frozen=True, slots=True)
class StoreSource:
    """Where the three stores live for one command."""

    backend: Backend = Backend.PLATFORM
    snapshot_path: Path | None = None
    database_uri: str | None = None
    # snapshot backend only: write the reconciled state back to the file
    save_snapshot: bool = False


@asynccontextmanager
async def open_stores(
    source: StoreSource,
    *,
    platform_config: PlatformConfig | None = None,
    client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
) -> AsyncIterator[RecordStores]:
    """Build the store adapters for ``source`` and release them afterwards."""

    if source.backend is Backend.SNAPSHOT:
        if source.snapshot_path is None:
            raise ValueError("The snapshot backend needs a snapshot file path")
        memory = load_snapshot_file(source.snapshot_path)
        yield memory.as_ports()
        if source.save_snapshot:
            save_stores(memory, source.snapshot_path)
            log.info("Saved %s write(s) back to %s", memory.writes, source.snapshot_path)
        return

    if source.backend is Backend.DATABASE:
        engine, tables = open_database(get_database_config(uri=source.database_uri))
        try:
            yield build_sql_stores(engine, tables)
        finally:
            engine.dispose()
        return

    config = platform_config or get_platform_config()
    async with PlatformClient(config, client_factory=client_factory) as client:
        yield build_platform_stores(client)


async def audit_stores(
    stores: RecordStores,
    *,
    config: ReconcileConfig | None = None,
    cancellation: CancellationToken | None = None,
    export_path: Path | None = None,
) -> tuple[StoreSnapshot, Report]:
    """Snapshot and audit the stores without writing anything."""

    effective = config or get_reconcile_config()
    snapshot = await load_snapshot(
        stores,
        page_size=effective.page_size,
        max_pages=effective.max_pages,
        cancellation=cancellation,
    )
    if export_path is not None:
        write_snapshot_file(snapshot, export_path)
    return snapshot, audit(snapshot)


def build_engine(
    stores: RecordStores,
    config: ReconcileConfig,
    *,
    max_report_age: timedelta | None = None,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        stores=stores,
        default_category=config.default_category,
        retry=config.write_retry,
        max_report_age=max_report_age,
    )


async def reconcile_stores(
    stores: RecordStores,
    policy: ReconciliationPolicy,
    *,
    config: ReconcileConfig | None = None,
    cancellation: CancellationToken | None = None,
    max_report_age: timedelta | None = None,
) -> VerificationResult:
    """Audit, reconcile under ``policy`` and audit again."""

    effective = config or get_reconcile_config()
    log.info("Starting reconciliation: policy=%s", ", ".join(policy.enabled_flags()) or "none")
    harness = VerificationHarness(
        engine=build_engine(stores, effective, max_report_age=max_report_age),
        load_snapshot=partial(
            load_snapshot,
            stores,
            page_size=effective.page_size,
            max_pages=effective.max_pages,
            cancellation=cancellation,
        ),
    )
    return await harness.run(policy, cancellation=cancellation)


async def sync_identity(
    stores: RecordStores,
    identity_id: str,
    *,
    config: ReconcileConfig | None = None,
    cancellation: CancellationToken | None = None,
) -> VerificationResult:
    """Bring one identity's profile and member in line, using targeted reads only."""

    effective = config or get_reconcile_config()
    log.info("Syncing identity %s", identity_id)
    harness = VerificationHarness(
        engine=build_engine(stores, effective),
        load_snapshot=partial(load_identity_snapshot, stores, identity_id),
    )
    return await harness.run(ReconciliationPolicy.non_destructive(), cancellation=cancellation)
