"""Direct database adapter for the identity, profile and member tables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import create_engine

from .stores import SqlIdentityStore, SqlTableStore, build_sql_stores, classify_error
from .tables import PlatformTables, build_tables

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from rollcall.config import DatabaseConfig


def open_database(config: DatabaseConfig, *, echo: bool = False) -> tuple[Engine, PlatformTables]:
    """Create an engine and table set for ``config``.

    The hosted schema is never created or migrated from here; SQLite
    databases (tests, local copies) get their tables created on first use.
    """

    engine = create_engine(config.uri, echo=echo, future=True)
    tables = build_tables(auth_schema=config.auth_schema, public_schema=config.public_schema)
    if engine.dialect.name == "sqlite":
        tables.metadata.create_all(engine)
    return engine, tables


__all__ = [
    "PlatformTables",
    "SqlIdentityStore",
    "SqlTableStore",
    "build_sql_stores",
    "build_tables",
    "classify_error",
    "open_database",
]
