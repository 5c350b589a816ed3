"""The three record types the reconciliation core joins.

Records are immutable snapshots of remote rows. Stores return fresh instances
on every read; changes travel as plain field mappings (see ``ports.stores``).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Final

from .enums import MemberCategory, Role
from .primitives import normalize_email, normalize_name

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import date, datetime

FULL_NAME_METADATA_KEYS: Final = ("full_name", "fullName", "fullname", "name")


@dataclass(frozen=True, slots=True, kw_only=True)
class Identity:
    """Authenticated principal owned by the external identity provider."""

    id: str
    email: str
    email_confirmed: bool = False
    created_at: datetime | None = None
    metadata: Mapping[str, str] = field(default_factory=dict["str", "str"])

    @property
    def email_key(self) -> str | None:
        return normalize_email(self.email)

    @property
    def full_name(self) -> str | None:
        for key in FULL_NAME_METADATA_KEYS:
            name = normalize_name(self.metadata.get(key))
            if name:
                return name
        return None


@dataclass(frozen=True, slots=True, kw_only=True)
class Profile:
    """Per-identity authorisation/display record; ``id`` is the identity id."""

    id: str
    email: str | None = None
    full_name: str | None = None
    role: Role | None = None
    updated_at: datetime | None = None

    @property
    def email_key(self) -> str | None:
        return normalize_email(self.email)

    @property
    def effective_role(self) -> Role:
        return self.role or Role.USER


@dataclass(frozen=True, slots=True, kw_only=True)
class Member:
    id: str
    email: str | None = None
    full_name: str = ""
    linked_identity_id: str | None = None
    category: str = MemberCategory.MEMBERS
    is_active: bool = True
    assigned_to_member_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    phone: str | None = None
    address: str | None = None
    genotype: str | None = None
    title: str | None = None
    church_unit: str | None = None
    church_units: tuple[str, ...] = ()
    auxano_group: str | None = None
    join_date: date | None = None
    notes: str | None = None

    @property
    def email_key(self) -> str | None:
        return normalize_email(self.email)


# Fields a duplicate may contribute to its keeper during deduplication.
MEMBER_MERGEABLE_FIELDS: Final = (
    "email",
    "full_name",
    "linked_identity_id",
    "assigned_to_member_id",
    "phone",
    "address",
    "genotype",
    "title",
    "church_unit",
    "church_units",
    "auxano_group",
    "join_date",
    "notes",
)

IDENTITY_FIELDS: Final = frozenset(f.name for f in fields(Identity))
PROFILE_FIELDS: Final = frozenset(f.name for f in fields(Profile))
MEMBER_FIELDS: Final = frozenset(f.name for f in fields(Member))
