"""Pydantic models describing the platform payloads.

Auth users come from the admin API; profile and member rows from the REST
tables. The member table keeps the column names the application was built on
(``user_id``, ``fullname``, ``isactive``, ``assignedto``...).
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime
from typing import cast
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _uuid_to_str(value: object) -> object:
    # database drivers hand back UUID objects, the REST API hands back strings
    if isinstance(value, UUID):
        return str(value)
    return _blank_to_none(value)


class PlatformBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class AuthUserPayload(PlatformBaseModel):
    id: str
    email: str | None = None
    email_confirmed_at: datetime | None = None
    created_at: datetime | None = None
    user_metadata: dict[str, str] = Field(default_factory=dict)

    _normalize_id = field_validator("id", mode="before")(_uuid_to_str)

    @field_validator("user_metadata", mode="before")
    @classmethod
    def _stringify_metadata(cls, value: object) -> object:
        # metadata is free-form JSON; the domain only needs display strings
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            return value
        mapping = cast("Mapping[str, object]", value)
        result: dict[str, str] = {}
        for key, item in mapping.items():
            if item is None:
                continue
            if isinstance(item, str):
                result[key] = item
            elif isinstance(item, (bool, int, float)):
                result[key] = json.dumps(item)
            else:
                result[key] = json.dumps(item, sort_keys=True, default=str)
        return result

    _normalize_email = field_validator("email", mode="before")(_blank_to_none)


class AuthUserList(PlatformBaseModel):
    users: list[AuthUserPayload] = Field(default_factory=list)


class ProfileRow(PlatformBaseModel):
    id: str
    email: str | None = None
    full_name: str | None = None
    role: str | None = None
    updated_at: datetime | None = None

    _normalize_id = field_validator("id", mode="before")(_uuid_to_str)
    _normalize_blanks = field_validator("full_name", "role", mode="before")(_blank_to_none)


class MemberRow(PlatformBaseModel):
    id: str
    user_id: str | None = None
    email: str | None = None
    fullname: str | None = None
    category: str | None = None
    isactive: bool | None = None
    assignedto: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    phone: str | None = None
    address: str | None = None
    genotype: str | None = None
    title: str | None = None
    churchunit: str | None = None
    churchunits: list[str] | None = None
    auxanogroup: str | None = None
    joindate: date | None = None
    notes: str | None = None

    _normalize_ids = field_validator("id", "user_id", "assignedto", mode="before")(_uuid_to_str)
    _normalize_blanks = field_validator(
        "email",
        "category",
        "churchunit",
        "auxanogroup",
        mode="before",
    )(_blank_to_none)

    @field_validator("joindate", mode="before")
    @classmethod
    def _date_part(cls, value: object) -> object:
        # some rows carry full timestamps in the date column
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return _blank_to_none(value)


class SnapshotFile(PlatformBaseModel):
    """Offline export of the three stores, as written by ``rollcall audit --export``."""

    identities: list[AuthUserPayload] = Field(default_factory=list)
    profiles: list[ProfileRow] = Field(default_factory=list)
    members: list[MemberRow] = Field(default_factory=list)
