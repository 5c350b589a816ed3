"""Ports for the three record stores the core reads and writes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from rollcall.domain.model import Identity, Member, Profile

if TYPE_CHECKING:
    from collections.abc import Mapping

    from rollcall.domain.result import Result

    from .predicates import Predicate

DEFAULT_PAGE_SIZE = 500


@dataclass(frozen=True, slots=True)
class PageRequest:
    """One explicit page of a listing; numbers start at 1."""

    number: int = 1
    size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.number < 1:
            raise ValueError(f"Page numbers start at 1, got {self.number}")
        if self.size < 1:
            raise ValueError(f"Page size must be positive, got {self.size}")

    @property
    def offset(self) -> int:
        return (self.number - 1) * self.size

    def next(self) -> PageRequest:
        return PageRequest(number=self.number + 1, size=self.size)


@dataclass(frozen=True, slots=True)
class Page[TRecord]:
    items: tuple[TRecord, ...]
    request: PageRequest
    has_more: bool
    total: int | None = None


@runtime_checkable
class RecordStore[TRecord](Protocol):
    """Minimal store contract shared by identities, profiles and members.

    ``upsert`` is a merge upsert: keys present in ``changes`` are written, all
    other fields keep their stored values. A mapping without a known ``id``
    inserts a new record. Adapters never retry; transient failures come back as
    ``Err(TRANSIENT, ...)`` for the caller to decide.
    """

    async def get_by_id(self, record_id: str) -> Result[TRecord]: ...

    async def list_all(
        self,
        where: Predicate | None = None,
        *,
        page: PageRequest,
    ) -> Result[Page[TRecord]]: ...

    async def upsert(self, changes: Mapping[str, object]) -> Result[TRecord]: ...

    async def delete_where(self, predicate: Predicate) -> Result[int]: ...


@runtime_checkable
class IdentityStore(RecordStore[Identity], Protocol):
    """Identities are owned by the identity provider; the core only reads them."""


@runtime_checkable
class EmailKeyedStore[TRecord](RecordStore[TRecord], Protocol):
    async def get_by_email(self, email: str) -> Result[TRecord]: ...


@runtime_checkable
class ProfileStore(EmailKeyedStore[Profile], Protocol):
    """Store contract for profiles."""


@runtime_checkable
class MemberStore(EmailKeyedStore[Member], Protocol):
    """Store contract for members."""


@dataclass(frozen=True, slots=True)
class RecordStores:
    """The adapter set handed to the auditor, engine and harness."""

    identities: IdentityStore
    profiles: ProfileStore
    members: MemberStore
