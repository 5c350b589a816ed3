"""SQLAlchemy Core tables mirroring the hosted database.

``auth.users`` belongs to the identity provider and is only read here. The
public tables keep the platform's column names so rows validate through the
same payload schemas as the REST adapter.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.dialects import postgresql

# Identifiers are UUIDs on the platform; strings keep the adapter usable on
# SQLite and with non-UUID fixture ids.
_ID = String(36)
_CHURCH_UNITS = JSON().with_variant(postgresql.ARRAY(Text()), "postgresql")


@dataclass(frozen=True, slots=True)
class PlatformTables:
    metadata: MetaData
    users: Table
    profiles: Table
    members: Table


def build_tables(
    metadata: MetaData | None = None,
    *,
    auth_schema: str | None = "auth",
    public_schema: str | None = "public",
) -> PlatformTables:
    metadata = metadata or MetaData()
    users = Table(
        "users",
        metadata,
        Column("id", _ID, primary_key=True),
        Column("email", String(255)),
        Column("email_confirmed_at", DateTime(timezone=True)),
        Column("created_at", DateTime(timezone=True)),
        Column("raw_user_meta_data", JSON),
        schema=auth_schema,
    )
    profiles = Table(
        "profiles",
        metadata,
        Column("id", _ID, primary_key=True),
        Column("email", String(255)),
        Column("full_name", Text),
        Column("role", String(32)),
        Column("updated_at", DateTime(timezone=True)),
        schema=public_schema,
    )
    members = Table(
        "members",
        metadata,
        Column("id", _ID, primary_key=True),
        Column("user_id", _ID, index=True),
        Column("email", String(255), index=True),
        Column("fullname", Text),
        Column("category", String(32)),
        Column("isactive", Boolean),
        Column("assignedto", _ID),
        Column("created_at", DateTime(timezone=True)),
        Column("updated_at", DateTime(timezone=True)),
        Column("phone", String(64)),
        Column("address", Text),
        Column("genotype", String(8)),
        Column("title", String(64)),
        Column("churchunit", String(128)),
        Column("churchunits", _CHURCH_UNITS),
        Column("auxanogroup", String(128)),
        Column("joindate", Date),
        Column("notes", Text),
        schema=public_schema,
    )
    return PlatformTables(metadata=metadata, users=users, profiles=profiles, members=members)
