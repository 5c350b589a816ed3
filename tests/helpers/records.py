"""Shared timestamps and a scripted store wrapper for reconciliation tests."""

from __future__ import annotations

from collections.abc import Mapping  # noqa: TC003
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from rollcall.domain.result import Err  # noqa: TC001

if TYPE_CHECKING:
    from rollcall.domain.ports import Page, PageRequest, Predicate
    from rollcall.domain.result import Result

T0 = datetime(2024, 1, 1, 9, tzinfo=UTC)


def at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


@dataclass
class FlakyStore[TRecord]:
    """Wraps a store and fails chosen upserts/deletes with scripted errors.

    ``upsert_errors`` is keyed by the ``id`` (or, for inserts, the
    ``linked_identity_id``) of the change; each call pops one error.
    """

    inner: object
    upsert_errors: dict[str, list[Err]] = field(default_factory=dict[str, list[Err]])
    delete_errors: list[Err] = field(default_factory=list[Err])
    upsert_calls: list[Mapping[str, object]] = field(default_factory=list[Mapping[str, object]])

    async def get_by_id(self, record_id: str) -> Result[TRecord]:
        return await self.inner.get_by_id(record_id)  # type: ignore[attr-defined]

    async def get_by_email(self, email: str) -> Result[TRecord]:
        return await self.inner.get_by_email(email)  # type: ignore[attr-defined]

    async def list_all(
        self,
        where: Predicate | None = None,
        *,
        page: PageRequest,
    ) -> Result[Page[TRecord]]:
        return await self.inner.list_all(where, page=page)  # type: ignore[attr-defined]

    async def upsert(self, changes: Mapping[str, object]) -> Result[TRecord]:
        self.upsert_calls.append(dict(changes))
        key = str(changes.get("id") or changes.get("linked_identity_id") or "")
        scripted = self.upsert_errors.get(key)
        if scripted:
            return scripted.pop(0)
        return await self.inner.upsert(changes)  # type: ignore[attr-defined]

    async def delete_where(self, predicate: Predicate) -> Result[int]:
        if self.delete_errors:
            return self.delete_errors.pop(0)
        return await self.inner.delete_where(predicate)  # type: ignore[attr-defined]
