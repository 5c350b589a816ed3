"""Defaults for audit and reconciliation passes."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from rollcall.domain.model import MemberCategory
from rollcall.domain.reconciliation.retry import WriteRetryPolicy

from .env import optional_float_env, optional_int_env
from .errors import InvalidConfigurationError

DEFAULT_PAGE_SIZE = 500
DEFAULT_WRITE_TIMEOUT_SECONDS = 10.0
DEFAULT_FAILURE_SAMPLES = 5


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    default_category: str = MemberCategory.MEMBERS
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int | None = None
    failure_samples: int = DEFAULT_FAILURE_SAMPLES
    write_retry: WriteRetryPolicy = field(default_factory=WriteRetryPolicy)


def get_reconcile_config() -> ReconcileConfig:
    raw_category = os.getenv("ROLLCALL_DEFAULT_CATEGORY", "").strip()
    try:
        category = MemberCategory(raw_category) if raw_category else MemberCategory.MEMBERS
    except ValueError as exc:
        allowed = ", ".join(item.value for item in MemberCategory)
        raise InvalidConfigurationError(
            "ROLLCALL_DEFAULT_CATEGORY", raw_category, f"one of {allowed}"
        ) from exc
    return ReconcileConfig(
        default_category=category,
        page_size=optional_int_env("ROLLCALL_PAGE_SIZE", DEFAULT_PAGE_SIZE) or DEFAULT_PAGE_SIZE,
        max_pages=optional_int_env("ROLLCALL_MAX_PAGES", None),
        failure_samples=optional_int_env("ROLLCALL_FAILURE_SAMPLES", DEFAULT_FAILURE_SAMPLES)
        or DEFAULT_FAILURE_SAMPLES,
        write_retry=WriteRetryPolicy(
            timeout_seconds=optional_float_env(
                "ROLLCALL_WRITE_TIMEOUT", DEFAULT_WRITE_TIMEOUT_SECONDS
            ),
        ),
    )
