"""Public interface for the hosted platform adapter."""

from __future__ import annotations

from .client import PlatformClient, classify_status, parse_content_range
from .schema import AuthUserPayload, MemberRow, ProfileRow, SnapshotFile
from .stores import PlatformIdentityStore, PlatformTableStore, build_platform_stores
from .translator import (
    MEMBER_COLUMNS,
    PROFILE_COLUMNS,
    identity_from_payload,
    member_from_row,
    predicate_params,
    profile_from_row,
)

__all__ = [
    "MEMBER_COLUMNS",
    "PROFILE_COLUMNS",
    "AuthUserPayload",
    "MemberRow",
    "PlatformClient",
    "PlatformIdentityStore",
    "PlatformTableStore",
    "ProfileRow",
    "SnapshotFile",
    "build_platform_stores",
    "classify_status",
    "identity_from_payload",
    "member_from_row",
    "parse_content_range",
    "predicate_params",
    "profile_from_row",
]
