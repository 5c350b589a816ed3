"""JSON snapshot files: an offline copy of the three stores.

The file uses the platform's own row shapes, so an export can be inspected
or edited with the same column names as the hosted tables.
"""

from __future__ import annotations

from logging import getLogger
from pathlib import Path

from rollcall.adapters.memory import InMemoryStores
from rollcall.adapters.supabase.schema import SnapshotFile
from rollcall.adapters.supabase.translator import (
    identity_from_payload,
    identity_payload,
    member_from_row,
    member_row,
    profile_from_row,
    profile_row,
)
from rollcall.domain.reconciliation import StoreSnapshot

log = getLogger(__name__)


def load_snapshot_file(path: Path | str) -> InMemoryStores:
    """Read ``path`` into in-memory stores; raises ``pydantic.ValidationError`` on bad rows."""

    document = SnapshotFile.model_validate_json(Path(path).read_text(encoding="utf-8"))
    stores = InMemoryStores.seeded(
        identities=[identity_from_payload(user) for user in document.identities],
        profiles=[profile_from_row(row) for row in document.profiles],
        members=[member_from_row(row) for row in document.members],
    )
    log.info(
        "Loaded %s identities, %s profiles, %s members from %s",
        len(document.identities),
        len(document.profiles),
        len(document.members),
        path,
    )
    return stores


def snapshot_document(snapshot: StoreSnapshot) -> dict[str, object]:
    return {
        "identities": [identity_payload(identity) for identity in snapshot.identities],
        "profiles": [profile_row(profile) for profile in snapshot.profiles],
        "members": [member_row(member) for member in snapshot.members],
    }


def write_snapshot_file(snapshot: StoreSnapshot, path: Path | str) -> None:
    document = SnapshotFile.model_validate(snapshot_document(snapshot))
    Path(path).write_text(document.model_dump_json(indent=2), encoding="utf-8")
    log.info("Wrote snapshot %s to %s", snapshot.token, path)


def save_stores(stores: InMemoryStores, path: Path | str) -> None:
    """Write the current contents of ``stores`` back to ``path``."""

    snapshot = StoreSnapshot(
        identities=tuple(stores.identities.records.values()),
        profiles=tuple(stores.profiles.records.values()),
        members=tuple(stores.members.records.values()),
    )
    write_snapshot_file(snapshot, path)
