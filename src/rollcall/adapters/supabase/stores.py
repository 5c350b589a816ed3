"""Record stores backed by the hosted platform."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, cast

from pydantic import BaseModel, ValidationError

from rollcall.domain.model import normalize_email, utcnow
from rollcall.domain.model.primitives import sort_timestamp
from rollcall.domain.ports import FilterOp, Page, PageRequest, RecordStores, escape_like, ilike
from rollcall.domain.result import Err, ErrorKind, Ok, not_found, rejected

from .schema import AuthUserList, AuthUserPayload, MemberRow, ProfileRow
from .translator import (
    MEMBER_COLUMNS,
    PROFILE_COLUMNS,
    UnknownFieldError,
    identity_from_payload,
    json_value,
    member_from_row,
    predicate_params,
    profile_from_row,
    to_columns,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from datetime import datetime

    from rollcall.domain.model import Identity, Member, Profile
    from rollcall.domain.ports import Predicate
    from rollcall.domain.result import Result

    from .client import PlatformClient

log = getLogger(__name__)

# rows fetched per email lookup before the exact, case-insensitive comparison
_EMAIL_LOOKUP_LIMIT = 50


class PlatformTableStore[TRecord, TRow: BaseModel]:
    """One REST table exposed through the record store contract."""

    def __init__(  # noqa: PLR0913
        self,
        client: PlatformClient,
        *,
        table: str,
        columns: Mapping[str, str],
        row_model: type[TRow],
        to_record: Callable[[TRow], TRecord],
        email_order: str = "id.asc",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._client = client
        self.table = table
        self._columns = columns
        self._row_model = row_model
        self._to_record = to_record
        self._email_order = email_order
        self._clock = clock

    async def get_by_id(self, record_id: str) -> Result[TRecord]:
        result = await self._client.select(
            self.table,
            [("id", f"eq.{record_id}")],
            page=PageRequest(number=1, size=1),
        )
        if isinstance(result, Err):
            return result
        if not result.value.rows:
            return not_found(f"{self.table} {record_id} not found")
        return self._parse(result.value.rows[0])

    async def get_by_email(self, email: str) -> Result[TRecord]:
        key = normalize_email(email)
        if key is None:
            return not_found(f"{self.table}: blank email")
        filters = predicate_params(ilike("email", escape_like(key)), self._columns)
        result = await self._client.select(
            self.table,
            filters,
            page=PageRequest(number=1, size=_EMAIL_LOOKUP_LIMIT),
            order=self._email_order,
        )
        if isinstance(result, Err):
            return result
        records: list[TRecord] = []
        for row in result.value.rows:
            parsed = self._parse(row)
            if isinstance(parsed, Err):
                return parsed
            if normalize_email(cast("str | None", getattr(parsed.value, "email", None))) == key:
                records.append(parsed.value)
        if not records:
            return not_found(f"{self.table} with email {email} not found")
        records.sort(key=_age_order)
        return Ok(records[0])

    async def list_all(
        self,
        where: Predicate | None = None,
        *,
        page: PageRequest,
    ) -> Result[Page[TRecord]]:
        try:
            filters = predicate_params(where, self._columns)
        except UnknownFieldError as exc:
            return rejected(f"{self.table}: {exc}")
        result = await self._client.select(self.table, filters, page=page)
        if isinstance(result, Err):
            return result
        items: list[TRecord] = []
        for row in result.value.rows:
            parsed = self._parse(row)
            if isinstance(parsed, Err):
                return parsed
            items.append(parsed.value)
        total = result.value.total
        if total is not None:
            has_more = page.offset + len(items) < total
        else:
            has_more = len(items) == page.size
        return Ok(Page(items=tuple(items), request=page, has_more=has_more, total=total))

    async def upsert(self, changes: Mapping[str, object]) -> Result[TRecord]:
        values = dict(changes)
        if "updated_at" in self._columns:
            values.setdefault("updated_at", self._clock())
        try:
            row = to_columns(values, self._columns)
        except UnknownFieldError as exc:
            return rejected(f"{self.table}: {exc}")
        result = await self._client.upsert(self.table, row)
        if isinstance(result, Err):
            return result
        return self._parse(result.value)

    async def delete_where(self, predicate: Predicate) -> Result[int]:
        try:
            filters = predicate_params(predicate, self._columns)
        except UnknownFieldError as exc:
            return rejected(f"{self.table}: {exc}")
        return await self._client.delete(self.table, filters)

    def _parse(self, row: object) -> Result[TRecord]:
        try:
            model = self._row_model.model_validate(row)
        except ValidationError as exc:
            return rejected(f"Malformed {self.table} row: {exc.error_count()} error(s): {exc}")
        return Ok(self._to_record(model))


class PlatformIdentityStore:
    """Identities through the auth admin API.

    The admin listing has no server-side filters, so ``where`` is applied to
    each fetched page; a filtered page may hold fewer rows than requested.
    """

    _WRITABLE = frozenset({"id", "email", "email_confirmed", "metadata"})

    def __init__(self, client: PlatformClient) -> None:
        self._client = client

    async def get_by_id(self, record_id: str) -> Result[Identity]:
        result = await self._client.get_user(record_id)
        if isinstance(result, Err):
            return result
        return _parse_user(result.value)

    async def list_all(
        self,
        where: Predicate | None = None,
        *,
        page: PageRequest,
    ) -> Result[Page[Identity]]:
        result = await self._client.list_users(page=page)
        if isinstance(result, Err):
            return result
        payload, total = result.value
        try:
            users = AuthUserList.model_validate(payload).users
        except ValidationError as exc:
            return rejected(f"Malformed user listing: {exc}")
        identities = [identity_from_payload(user) for user in users]
        if total is not None:
            has_more = page.offset + len(identities) < total
        else:
            has_more = len(identities) == page.size
        if where is not None:
            identities = [identity for identity in identities if where.matches(identity)]
        return Ok(Page(items=tuple(identities), request=page, has_more=has_more, total=total))

    async def upsert(self, changes: Mapping[str, object]) -> Result[Identity]:
        unknown = set(changes) - self._WRITABLE
        if unknown:
            return rejected(f"Identity field(s) not writable: {', '.join(sorted(unknown))}")
        attributes: dict[str, object] = {}
        if "email" in changes:
            attributes["email"] = changes["email"]
        if "email_confirmed" in changes:
            attributes["email_confirm"] = bool(changes["email_confirmed"])
        if "metadata" in changes:
            metadata = cast("Mapping[str, str]", changes["metadata"])
            attributes["user_metadata"] = json_value(dict(metadata))

        record_id = cast("str | None", changes.get("id"))
        if record_id is not None:
            updated = await self._client.update_user(record_id, attributes)
            if isinstance(updated, Ok):
                return _parse_user(updated.value)
            if updated.kind is not ErrorKind.NOT_FOUND:
                return updated
            attributes["id"] = record_id

        if not attributes.get("email"):
            return rejected("Cannot create an identity without email")
        created = await self._client.create_user(attributes)
        if isinstance(created, Err):
            return created
        return _parse_user(created.value)

    async def delete_where(self, predicate: Predicate) -> Result[int]:
        if not predicate.filters:
            return rejected("Refusing to delete every identity")
        only = predicate.filters[0]
        if len(predicate.filters) == 1 and only.field == "id" and only.op is FilterOp.EQ:
            doomed = [str(only.value)]
        else:
            doomed = []
            request = PageRequest()
            while True:
                listed = await self.list_all(predicate, page=request)
                if isinstance(listed, Err):
                    return listed
                doomed.extend(identity.id for identity in listed.value.items)
                if not listed.value.has_more:
                    break
                request = request.next()

        deleted = 0
        for user_id in doomed:
            result = await self._client.delete_user(user_id)
            if isinstance(result, Err):
                if result.kind is ErrorKind.NOT_FOUND:
                    continue
                return result
            deleted += 1
        return Ok(deleted)


def _parse_user(payload: object) -> Result[Identity]:
    try:
        user = AuthUserPayload.model_validate(payload)
    except ValidationError as exc:
        return rejected(f"Malformed user payload: {exc}")
    return Ok(identity_from_payload(user))


def _age_order(record: object) -> tuple[object, ...]:
    return (
        sort_timestamp(cast("datetime | None", getattr(record, "created_at", None))),
        cast("str", getattr(record, "id", "")),
    )


def build_platform_stores(
    client: PlatformClient,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> RecordStores:
    profiles: PlatformTableStore[Profile, ProfileRow] = PlatformTableStore(
        client,
        table=client.config.profiles_table,
        columns=PROFILE_COLUMNS,
        row_model=ProfileRow,
        to_record=profile_from_row,
        clock=clock,
    )
    members: PlatformTableStore[Member, MemberRow] = PlatformTableStore(
        client,
        table=client.config.members_table,
        columns=MEMBER_COLUMNS,
        row_model=MemberRow,
        to_record=member_from_row,
        email_order="created_at.asc.nullsfirst,id.asc",
        clock=clock,
    )
    return RecordStores(
        identities=PlatformIdentityStore(client),
        profiles=profiles,
        members=members,
    )
