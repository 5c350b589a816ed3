"""Small value helpers used across records and joins."""

from __future__ import annotations

from datetime import UTC, datetime


def normalize_email(value: str | None) -> str | None:
    """Return the case-insensitive join key for an email, or ``None`` if blank."""

    if value is None:
        return None
    stripped = value.strip().lower()
    return stripped or None


def normalize_name(value: str | None) -> str | None:
    if value is None:
        return None
    collapsed = " ".join(value.split())
    return collapsed or None


def email_local_part(email: str) -> str:
    return email.split("@", 1)[0]


def is_blank(value: object) -> bool:
    """True for ``None``, empty/whitespace strings and empty collections."""

    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (tuple, list, set, frozenset, dict)):
        return len(value) == 0
    return False


def utcnow() -> datetime:
    return datetime.now(UTC)


EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def sort_timestamp(value: datetime | None) -> datetime:
    """Timestamps for ordering; missing values sort first, naive ones are taken as UTC."""

    if value is None:
        return EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
