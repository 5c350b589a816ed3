"""Record stores over a direct database connection.

The engine is synchronous: each store method runs one short statement or
transaction inside the coroutine and blocks the event loop while it does.
Statements stay on the loop thread because an in-memory SQLite database is
bound to the connection of the thread that created it. Passes write one record
at a time, so there is no concurrent use of a connection to guard.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, cast
from uuid import uuid4

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from rollcall.adapters.supabase.schema import AuthUserPayload, MemberRow, ProfileRow
from rollcall.adapters.supabase.translator import (
    MEMBER_COLUMNS,
    PROFILE_COLUMNS,
    UnknownFieldError,
    identity_from_payload,
    member_from_row,
    profile_from_row,
)
from rollcall.domain.model import normalize_email, utcnow
from rollcall.domain.ports import FilterOp, Page, RecordStores
from rollcall.domain.result import Err, Ok, not_found, rejected, transient

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from datetime import datetime

    from sqlalchemy import ColumnElement, Row, Table
    from sqlalchemy.engine import Engine

    from rollcall.domain.model import Identity, Member, Profile
    from rollcall.domain.ports import Filter, PageRequest, Predicate
    from rollcall.domain.result import Result

    from .tables import PlatformTables

log = getLogger(__name__)


def classify_error(exc: SQLAlchemyError, *, action: str) -> Err:
    if isinstance(exc, (OperationalError, DisconnectionError, PoolTimeoutError)):
        return transient(f"{action} failed: {exc}")
    return rejected(f"{action} rejected: {exc}")


def where_clause(
    table: Table,
    predicate: Predicate | None,
    columns: Mapping[str, str],
) -> list[ColumnElement[bool]]:
    if predicate is None:
        return []
    return [_condition(table, item, columns) for item in predicate.filters]


def _condition(table: Table, item: Filter, columns: Mapping[str, str]) -> ColumnElement[bool]:
    name = columns.get(item.field)
    if name is None:
        raise UnknownFieldError(f"Unknown filter field: {item.field}")
    column = table.c[name]
    match item.op:
        case FilterOp.EQ:
            return column == item.value
        case FilterOp.NEQ:
            return column != item.value
        case FilterOp.IS_NULL:
            return column.is_(None)
        case FilterOp.IN:
            values = item.value if isinstance(item.value, tuple) else (item.value,)
            return column.in_(values)
        case FilterOp.ILIKE:
            return column.ilike(str(item.value), escape="\\")


class SqlTableStore[TRecord, TRow: BaseModel]:
    """A public table exposed through the record store contract."""

    def __init__(  # noqa: PLR0913
        self,
        engine: Engine,
        table: Table,
        *,
        columns: Mapping[str, str],
        row_model: type[TRow],
        to_record: Callable[[TRow], TRecord],
        oldest_first: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self.table = table
        self._columns = columns
        self._row_model = row_model
        self._to_record = to_record
        self._oldest_first = oldest_first
        self._clock = clock

    @property
    def name(self) -> str:
        return self.table.name

    async def get_by_id(self, record_id: str) -> Result[TRecord]:
        statement = select(self.table).where(self.table.c.id == record_id)
        try:
            with self._engine.connect() as connection:
                row = connection.execute(statement).first()
        except SQLAlchemyError as exc:
            return classify_error(exc, action=f"reading {self.name} {record_id}")
        if row is None:
            return not_found(f"{self.name} {record_id} not found")
        return self._parse(row)

    async def get_by_email(self, email: str) -> Result[TRecord]:
        key = normalize_email(email)
        if key is None:
            return not_found(f"{self.name}: blank email")
        order = (
            [self.table.c.created_at.asc().nulls_first(), self.table.c.id.asc()]
            if self._oldest_first
            else [self.table.c.id.asc()]
        )
        statement = (
            select(self.table)
            .where(func.lower(func.trim(self.table.c.email)) == key)
            .order_by(*order)
            .limit(1)
        )
        try:
            with self._engine.connect() as connection:
                row = connection.execute(statement).first()
        except SQLAlchemyError as exc:
            return classify_error(exc, action=f"looking up {self.name} by email")
        if row is None:
            return not_found(f"{self.name} with email {email} not found")
        return self._parse(row)

    async def list_all(
        self,
        where: Predicate | None = None,
        *,
        page: PageRequest,
    ) -> Result[Page[TRecord]]:
        try:
            conditions = where_clause(self.table, where, self._columns)
        except UnknownFieldError as exc:
            return rejected(f"{self.name}: {exc}")
        statement = (
            select(self.table)
            .where(*conditions)
            .order_by(self.table.c.id)
            .offset(page.offset)
            .limit(page.size + 1)
        )
        try:
            with self._engine.connect() as connection:
                rows = connection.execute(statement).all()
        except SQLAlchemyError as exc:
            return classify_error(exc, action=f"listing {self.name}")
        items: list[TRecord] = []
        for row in rows[: page.size]:
            parsed = self._parse(row)
            if isinstance(parsed, Err):
                return parsed
            items.append(parsed.value)
        return Ok(Page(items=tuple(items), request=page, has_more=len(rows) > page.size))

    async def upsert(self, changes: Mapping[str, object]) -> Result[TRecord]:
        unknown = sorted(set(changes) - set(self._columns))
        if unknown:
            return rejected(f"{self.name}: unknown field(s): {', '.join(unknown)}")
        values = {self._columns[key]: _column_value(value) for key, value in changes.items()}
        now = self._clock()
        if "updated_at" in self.table.c:
            values.setdefault("updated_at", now)
        record_id = cast("str | None", values.pop("id", None))

        try:
            with self._engine.begin() as connection:
                exists = record_id is not None and (
                    connection.execute(
                        select(self.table.c.id).where(self.table.c.id == record_id)
                    ).first()
                    is not None
                )
                if exists:
                    connection.execute(
                        update(self.table).where(self.table.c.id == record_id).values(**values)
                    )
                else:
                    record_id = record_id or str(uuid4())
                    if "created_at" in self.table.c:
                        values.setdefault("created_at", now)
                    connection.execute(insert(self.table).values(id=record_id, **values))
                row = connection.execute(
                    select(self.table).where(self.table.c.id == record_id)
                ).one()
        except SQLAlchemyError as exc:
            return classify_error(exc, action=f"writing {self.name} {record_id or '<new>'}")
        return self._parse(row)

    async def delete_where(self, predicate: Predicate) -> Result[int]:
        if not predicate.filters:
            return rejected(f"Refusing to delete every {self.name} row")
        try:
            conditions = where_clause(self.table, predicate, self._columns)
        except UnknownFieldError as exc:
            return rejected(f"{self.name}: {exc}")
        try:
            with self._engine.begin() as connection:
                result = connection.execute(delete(self.table).where(*conditions))
        except SQLAlchemyError as exc:
            return classify_error(exc, action=f"deleting {self.name}")
        return Ok(result.rowcount)

    def _parse(self, row: Row[object]) -> Result[TRecord]:
        try:
            model = self._row_model.model_validate(dict(row._mapping))  # noqa: SLF001
        except ValidationError as exc:
            return rejected(f"Malformed {self.name} row: {exc}")
        return Ok(self._to_record(model))


def _column_value(value: object) -> object:
    if isinstance(value, tuple):
        return list(cast("tuple[object, ...]", value))
    return value


_IDENTITY_COLUMNS: Mapping[str, str] = {
    "id": "id",
    "email": "email",
    "created_at": "created_at",
}


class SqlIdentityStore:
    """Read-only view of ``auth.users``; identity writes belong to the auth service."""

    def __init__(self, engine: Engine, table: Table) -> None:
        self._engine = engine
        self.table = table

    async def get_by_id(self, record_id: str) -> Result[Identity]:
        statement = select(self.table).where(self.table.c.id == record_id)
        try:
            with self._engine.connect() as connection:
                row = connection.execute(statement).first()
        except SQLAlchemyError as exc:
            return classify_error(exc, action=f"reading identity {record_id}")
        if row is None:
            return not_found(f"identity {record_id} not found")
        return _parse_user(row)

    async def list_all(
        self,
        where: Predicate | None = None,
        *,
        page: PageRequest,
    ) -> Result[Page[Identity]]:
        try:
            conditions = where_clause(self.table, where, _IDENTITY_COLUMNS)
        except UnknownFieldError as exc:
            return rejected(f"identities: {exc}")
        statement = (
            select(self.table)
            .where(*conditions)
            .order_by(self.table.c.id)
            .offset(page.offset)
            .limit(page.size + 1)
        )
        try:
            with self._engine.connect() as connection:
                rows = connection.execute(statement).all()
        except SQLAlchemyError as exc:
            return classify_error(exc, action="listing identities")
        items: list[Identity] = []
        for row in rows[: page.size]:
            parsed = _parse_user(row)
            if isinstance(parsed, Err):
                return parsed
            items.append(parsed.value)
        return Ok(Page(items=tuple(items), request=page, has_more=len(rows) > page.size))

    async def upsert(self, changes: Mapping[str, object]) -> Result[Identity]:  # noqa: ARG002
        return rejected("Identities are managed by the auth service; use the platform backend")

    async def delete_where(self, predicate: Predicate) -> Result[int]:  # noqa: ARG002
        return rejected("Identities are managed by the auth service; use the platform backend")


def _parse_user(row: Row[object]) -> Result[Identity]:
    mapping = row._mapping  # noqa: SLF001
    try:
        payload = AuthUserPayload.model_validate(
            {
                "id": mapping["id"],
                "email": mapping["email"],
                "email_confirmed_at": mapping["email_confirmed_at"],
                "created_at": mapping["created_at"],
                "user_metadata": mapping["raw_user_meta_data"],
            }
        )
    except ValidationError as exc:
        return rejected(f"Malformed auth user row: {exc}")
    return Ok(identity_from_payload(payload))


def build_sql_stores(
    engine: Engine,
    tables: PlatformTables,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> RecordStores:
    profiles: SqlTableStore[Profile, ProfileRow] = SqlTableStore(
        engine,
        tables.profiles,
        columns=PROFILE_COLUMNS,
        row_model=ProfileRow,
        to_record=profile_from_row,
        clock=clock,
    )
    members: SqlTableStore[Member, MemberRow] = SqlTableStore(
        engine,
        tables.members,
        columns=MEMBER_COLUMNS,
        row_model=MemberRow,
        to_record=member_from_row,
        oldest_first=True,
        clock=clock,
    )
    return RecordStores(
        identities=SqlIdentityStore(engine, tables.users),
        profiles=profiles,
        members=members,
    )
