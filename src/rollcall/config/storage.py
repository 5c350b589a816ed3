"""Direct database configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import MissingConfigurationError


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str
    auth_schema: str | None = "auth"
    public_schema: str | None = "public"


def get_database_config(*, uri: str | None = None) -> DatabaseConfig:
    effective_uri = uri or os.getenv("DATABASE_URI")
    if not effective_uri:
        raise MissingConfigurationError(["DATABASE_URI"])
    if effective_uri.startswith("sqlite"):
        # SQLite has no schemas; tables live side by side
        return DatabaseConfig(uri=effective_uri, auth_schema=None, public_schema=None)
    return DatabaseConfig(uri=effective_uri)
