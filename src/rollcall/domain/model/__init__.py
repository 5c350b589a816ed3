"""Domain records and enums."""

from __future__ import annotations

from .enums import MemberCategory, Role
from .primitives import is_blank, normalize_email, normalize_name, utcnow
from .records import (
    IDENTITY_FIELDS,
    MEMBER_FIELDS,
    MEMBER_MERGEABLE_FIELDS,
    PROFILE_FIELDS,
    Identity,
    Member,
    Profile,
)

__all__ = [
    "IDENTITY_FIELDS",
    "MEMBER_FIELDS",
    "MEMBER_MERGEABLE_FIELDS",
    "PROFILE_FIELDS",
    "Identity",
    "Member",
    "MemberCategory",
    "Profile",
    "Role",
    "is_blank",
    "normalize_email",
    "normalize_name",
    "utcnow",
]
