"""Translate platform rows to domain records, and domain changes back to rows."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from logging import getLogger
from typing import TYPE_CHECKING, Final

from rollcall.domain.model import Identity, Member, MemberCategory, Profile, Role
from rollcall.domain.model.primitives import EPOCH
from rollcall.domain.ports import FilterOp

from .schema import AuthUserPayload, MemberRow, ProfileRow

if TYPE_CHECKING:
    from collections.abc import Mapping

    from rollcall.domain.ports import Filter, Predicate

log = getLogger(__name__)

PROFILE_COLUMNS: Final[Mapping[str, str]] = {
    "id": "id",
    "email": "email",
    "full_name": "full_name",
    "role": "role",
    "updated_at": "updated_at",
}

MEMBER_COLUMNS: Final[Mapping[str, str]] = {
    "id": "id",
    "linked_identity_id": "user_id",
    "email": "email",
    "full_name": "fullname",
    "category": "category",
    "is_active": "isactive",
    "assigned_to_member_id": "assignedto",
    "created_at": "created_at",
    "updated_at": "updated_at",
    "phone": "phone",
    "address": "address",
    "genotype": "genotype",
    "title": "title",
    "church_unit": "churchunit",
    "church_units": "churchunits",
    "auxano_group": "auxanogroup",
    "join_date": "joindate",
    "notes": "notes",
}


class UnknownFieldError(ValueError):
    """A change or filter names a field the target table does not have."""


def identity_from_payload(payload: AuthUserPayload) -> Identity:
    return Identity(
        id=payload.id,
        email=payload.email or "",
        email_confirmed=payload.email_confirmed_at is not None,
        created_at=payload.created_at,
        metadata=dict(payload.user_metadata),
    )


def profile_from_row(row: ProfileRow) -> Profile:
    return Profile(
        id=row.id,
        email=row.email,
        full_name=row.full_name,
        role=_role(row.role, profile_id=row.id),
        updated_at=row.updated_at,
    )


def _role(value: str | None, *, profile_id: str) -> Role | None:
    if value is None:
        return None
    try:
        return Role(value.lower())
    except ValueError:
        log.warning("Profile %s has unknown role %r; treating it as absent", profile_id, value)
        return None


def member_from_row(row: MemberRow) -> Member:
    return Member(
        id=row.id,
        email=row.email,
        full_name=row.fullname or "",
        linked_identity_id=row.user_id,
        category=row.category or MemberCategory.MEMBERS,
        is_active=True if row.isactive is None else row.isactive,
        assigned_to_member_id=row.assignedto,
        created_at=row.created_at,
        updated_at=row.updated_at,
        phone=row.phone,
        address=row.address,
        genotype=row.genotype,
        title=row.title,
        church_unit=row.churchunit,
        church_units=tuple(row.churchunits or ()),
        auxano_group=row.auxanogroup,
        join_date=row.joindate,
        notes=row.notes,
    )


def to_columns(changes: Mapping[str, object], columns: Mapping[str, str]) -> dict[str, object]:
    """Rename domain fields to table columns and make values JSON-safe."""

    unknown = sorted(set(changes) - set(columns))
    if unknown:
        raise UnknownFieldError(f"Unknown field(s): {', '.join(unknown)}")
    return {columns[name]: json_value(value) for name, value in changes.items()}


def json_value(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (tuple, list, frozenset, set)):
        return [json_value(item) for item in value]
    return value


def profile_row(profile: Profile) -> dict[str, object]:
    return to_columns(
        {
            "id": profile.id,
            "email": profile.email,
            "full_name": profile.full_name,
            "role": profile.role,
            "updated_at": profile.updated_at,
        },
        PROFILE_COLUMNS,
    )


def member_row(member: Member) -> dict[str, object]:
    return to_columns(
        {name: getattr(member, name) for name in MEMBER_COLUMNS},
        MEMBER_COLUMNS,
    )


def identity_payload(identity: Identity) -> dict[str, object]:
    # the domain keeps only the flag; any timestamp marks the address confirmed
    confirmed_at = (identity.created_at or EPOCH) if identity.email_confirmed else None
    return {
        "id": identity.id,
        "email": identity.email,
        "email_confirmed_at": json_value(confirmed_at),
        "created_at": json_value(identity.created_at),
        "user_metadata": dict(identity.metadata),
    }


# ---- predicates -> PostgREST query parameters ------------------------------------


def predicate_params(
    predicate: Predicate | None,
    columns: Mapping[str, str],
) -> list[tuple[str, str]]:
    """Render ``predicate`` as PostgREST horizontal filters (``column=op.value``)."""

    if predicate is None:
        return []
    params: list[tuple[str, str]] = []
    for item in predicate.filters:
        column = columns.get(item.field)
        if column is None:
            raise UnknownFieldError(f"Unknown filter field: {item.field}")
        params.append((column, _filter_value(item)))
    return params


def _filter_value(item: Filter) -> str:
    match item.op:
        case FilterOp.IS_NULL:
            return "is.null"
        case FilterOp.IN:
            values = item.value if isinstance(item.value, tuple) else (item.value,)
            return f"in.({','.join(_quoted(value) for value in values)})"
        case FilterOp.ILIKE:
            return f"ilike.{_like_pattern(str(item.value))}"
        case FilterOp.EQ | FilterOp.NEQ:
            return f"{item.op.value}.{_scalar(item.value)}"


def _scalar(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    rendered = json_value(value)
    return str(rendered)


def _quoted(value: object) -> str:
    text = _scalar(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def _like_pattern(pattern: str) -> str:
    # PostgREST spells the multi-character wildcard ``*``; escaped ``\%`` stays literal
    parts: list[str] = []
    escaped = False
    for char in pattern:
        if escaped:
            parts.append("\\" + char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "%":
            parts.append("*")
        else:
            parts.append(char)
    return "".join(parts)
