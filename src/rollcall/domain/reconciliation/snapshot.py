"""Snapshot loading: walks store listings page by page.

The three listings are independent reads, so they run concurrently. Pages are
requested explicitly; stopping at ``max_pages`` while a store still reports
more rows marks the snapshot as partial.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from rollcall.domain.ports import DEFAULT_PAGE_SIZE, PageRequest, eq
from rollcall.domain.result import Err, ErrorKind

from .cancellation import is_cancelled
from .contracts import StoreSnapshot
from .errors import OperationCancelledError, SnapshotLoadError

if TYPE_CHECKING:
    from rollcall.domain.model import Identity, Member, Profile
    from rollcall.domain.ports import RecordStore, RecordStores

    from .cancellation import CancellationToken

log = getLogger(__name__)


async def collect_all[TRecord](
    store: RecordStore[TRecord],
    *,
    name: str,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int | None = None,
    cancellation: CancellationToken | None = None,
) -> tuple[tuple[TRecord, ...], bool]:
    """Read every page of ``store``; returns the records and whether the read was cut short."""

    records: list[TRecord] = []
    request = PageRequest(number=1, size=page_size)
    while True:
        if is_cancelled(cancellation):
            raise OperationCancelledError(f"Listing {name} cancelled at page {request.number}")
        result = await store.list_all(page=request)
        if isinstance(result, Err):
            raise SnapshotLoadError(name, result)
        page = result.value
        records.extend(page.items)
        if not page.has_more:
            return tuple(records), False
        if max_pages is not None and request.number >= max_pages:
            log.warning(
                "Stopped reading %s after %s page(s); snapshot is partial", name, request.number
            )
            return tuple(records), True
        request = request.next()


async def load_snapshot(
    stores: RecordStores,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int | None = None,
    cancellation: CancellationToken | None = None,
) -> StoreSnapshot:
    """Read all three stores into one snapshot.

    Over the platform the listings overlap. Database stores run each statement
    synchronously, so there the listings run one after another and
    cancellation is noticed between pages.
    """

    identities, profiles, members = await asyncio.gather(
        collect_all(
            stores.identities,
            name="identities",
            page_size=page_size,
            max_pages=max_pages,
            cancellation=cancellation,
        ),
        collect_all(
            stores.profiles,
            name="profiles",
            page_size=page_size,
            max_pages=max_pages,
            cancellation=cancellation,
        ),
        collect_all(
            stores.members,
            name="members",
            page_size=page_size,
            max_pages=max_pages,
            cancellation=cancellation,
        ),
    )
    identity_records: tuple[Identity, ...] = identities[0]
    profile_records: tuple[Profile, ...] = profiles[0]
    member_records: tuple[Member, ...] = members[0]
    return StoreSnapshot(
        identities=identity_records,
        profiles=profile_records,
        members=member_records,
        partial=identities[1] or profiles[1] or members[1],
    )


async def load_identity_snapshot(stores: RecordStores, identity_id: str) -> StoreSnapshot:
    """Targeted snapshot around one identity, always flagged partial."""

    identity_result = await stores.identities.get_by_id(identity_id)
    if isinstance(identity_result, Err):
        raise SnapshotLoadError("identities", identity_result)
    identity = identity_result.value

    profiles: list[Profile] = []
    profile_result = await stores.profiles.get_by_id(identity.id)
    if isinstance(profile_result, Err):
        if profile_result.kind is not ErrorKind.NOT_FOUND:
            raise SnapshotLoadError("profiles", profile_result)
    else:
        profiles.append(profile_result.value)

    members_by_id: dict[str, Member] = {}
    linked_result = await stores.members.list_all(
        eq("linked_identity_id", identity.id),
        page=PageRequest(number=1, size=DEFAULT_PAGE_SIZE),
    )
    if isinstance(linked_result, Err):
        raise SnapshotLoadError("members", linked_result)
    for member in linked_result.value.items:
        members_by_id[member.id] = member

    if identity.email_key:
        email_result = await stores.members.get_by_email(identity.email)
        if isinstance(email_result, Err):
            if email_result.kind is not ErrorKind.NOT_FOUND:
                raise SnapshotLoadError("members", email_result)
        else:
            members_by_id.setdefault(email_result.value.id, email_result.value)

    return StoreSnapshot(
        identities=(identity,),
        profiles=tuple(profiles),
        members=tuple(members_by_id.values()),
        partial=True,
    )
