"""In-process record stores.

Used by tests and by the offline ``--snapshot`` backend. They honour the same
contracts as the remote adapters: merge upserts, explicit pages, refusal of
unfiltered deletes.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, cast
from uuid import uuid4

from rollcall.domain.model import (
    IDENTITY_FIELDS,
    MEMBER_FIELDS,
    PROFILE_FIELDS,
    Identity,
    Member,
    Profile,
    normalize_email,
    utcnow,
)
from rollcall.domain.model.primitives import sort_timestamp
from rollcall.domain.ports import Page, RecordStores
from rollcall.domain.result import Ok, not_found, rejected

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from datetime import datetime

    from rollcall.domain.ports import PageRequest, Predicate
    from rollcall.domain.result import Result

log = getLogger(__name__)


def _new_id() -> str:
    return str(uuid4())


class InMemoryStore[TRecord]:
    """Dictionary-backed store keyed by record id."""

    def __init__(  # noqa: PLR0913
        self,
        name: str,
        record_type: type[TRecord],
        *,
        allowed_fields: frozenset[str],
        records: Iterable[TRecord] = (),
        required_on_insert: tuple[str, ...] = (),
        generate_ids: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.name = name
        self._record_type = record_type
        self._allowed_fields = allowed_fields
        self._required_on_insert = required_on_insert
        self._generate_ids = generate_ids
        self._clock = clock
        self.records: dict[str, TRecord] = {}
        for record in records:
            self.records[_record_id(record)] = record
        self.writes = 0

    async def get_by_id(self, record_id: str) -> Result[TRecord]:
        record = self.records.get(record_id)
        if record is None:
            return not_found(f"{self.name} {record_id} not found")
        return Ok(record)

    async def get_by_email(self, email: str) -> Result[TRecord]:
        key = normalize_email(email)
        matches = [
            record
            for record in self.records.values()
            if key is not None and normalize_email(getattr(record, "email", None)) == key
        ]
        if not matches:
            return not_found(f"{self.name} with email {email} not found")
        matches.sort(key=_age_order)
        return Ok(matches[0])

    async def list_all(
        self,
        where: Predicate | None = None,
        *,
        page: PageRequest,
    ) -> Result[Page[TRecord]]:
        unknown = (where.fields - self._allowed_fields) if where else frozenset()
        if unknown:
            return rejected(f"Unknown {self.name} filter field(s): {', '.join(sorted(unknown))}")
        selected = sorted(
            (record for record in self.records.values() if where is None or where.matches(record)),
            key=_record_id,
        )
        window = selected[page.offset : page.offset + page.size]
        return Ok(
            Page(
                items=tuple(window),
                request=page,
                has_more=page.offset + page.size < len(selected),
                total=len(selected),
            )
        )

    async def upsert(self, changes: Mapping[str, object]) -> Result[TRecord]:
        unknown = set(changes) - self._allowed_fields
        if unknown:
            return rejected(f"Unknown {self.name} field(s): {', '.join(sorted(unknown))}")

        record_id = cast("str | None", changes.get("id"))
        existing = self.records.get(record_id) if record_id is not None else None
        now = self._clock()
        if existing is not None:
            values = {key: value for key, value in changes.items() if key != "id"}
            if "updated_at" in self._allowed_fields:
                values.setdefault("updated_at", now)
            record = dataclasses.replace(existing, **values)  # type: ignore[type-var]
        else:
            missing = [name for name in self._required_on_insert if changes.get(name) is None]
            if missing:
                return rejected(f"Cannot insert {self.name} without {', '.join(missing)}")
            if record_id is None:
                if not self._generate_ids:
                    return rejected(f"Cannot insert {self.name} without id")
                record_id = _new_id()
            values = {**changes, "id": record_id}
            for stamp in ("created_at", "updated_at"):
                if stamp in self._allowed_fields:
                    values.setdefault(stamp, now)
            try:
                record = self._record_type(**values)
            except TypeError as exc:
                return rejected(f"Malformed {self.name} record: {exc}")

        self.records[record_id] = record
        self.writes += 1
        return Ok(record)

    async def delete_where(self, predicate: Predicate) -> Result[int]:
        if not predicate.filters:
            return rejected(f"Refusing to delete every {self.name} record")
        doomed = [key for key, record in self.records.items() if predicate.matches(record)]
        for key in doomed:
            del self.records[key]
        self.writes += 1
        log.debug("Deleted %s %s record(s)", len(doomed), self.name)
        return Ok(len(doomed))


def _record_id(record: object) -> str:
    return cast("str", getattr(record, "id"))  # noqa: B009


def _age_order(record: object) -> tuple[object, ...]:
    return (sort_timestamp(getattr(record, "created_at", None)), _record_id(record))


@dataclass(slots=True)
class InMemoryStores:
    identities: InMemoryStore[Identity]
    profiles: InMemoryStore[Profile]
    members: InMemoryStore[Member]

    @classmethod
    def seeded(
        cls,
        *,
        identities: Iterable[Identity] = (),
        profiles: Iterable[Profile] = (),
        members: Iterable[Member] = (),
        clock: Callable[[], datetime] = utcnow,
    ) -> InMemoryStores:
        return cls(
            identities=InMemoryStore(
                "identities",
                Identity,
                allowed_fields=IDENTITY_FIELDS,
                records=identities,
                required_on_insert=("email",),
                generate_ids=True,
                clock=clock,
            ),
            profiles=InMemoryStore(
                "profiles",
                Profile,
                allowed_fields=PROFILE_FIELDS,
                records=profiles,
                clock=clock,
            ),
            members=InMemoryStore(
                "members",
                Member,
                allowed_fields=MEMBER_FIELDS,
                records=members,
                generate_ids=True,
                clock=clock,
            ),
        )

    def as_ports(self) -> RecordStores:
        return RecordStores(
            identities=self.identities,
            profiles=self.profiles,
            members=self.members,
        )

    @property
    def writes(self) -> int:
        return self.identities.writes + self.profiles.writes + self.members.writes
