"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    USER = "user"
    ADMIN = "admin"
    SUPERUSER = "superuser"


class MemberCategory(StrEnum):
    MEMBERS = "Members"
    PASTORS = "Pastors"
    WORKERS = "Workers"
    VISITORS = "Visitors"
    PARTNERS = "Partners"
    SONS = "Sons"
    MINT = "MINT"
    OTHERS = "Others"
