"""Domain port definitions for adapters."""

from __future__ import annotations

from .predicates import Filter, FilterOp, Predicate, eq, escape_like, ilike, in_, is_null, neq
from .stores import (
    DEFAULT_PAGE_SIZE,
    EmailKeyedStore,
    IdentityStore,
    MemberStore,
    Page,
    PageRequest,
    ProfileStore,
    RecordStore,
    RecordStores,
)

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "EmailKeyedStore",
    "Filter",
    "FilterOp",
    "IdentityStore",
    "MemberStore",
    "Page",
    "PageRequest",
    "Predicate",
    "ProfileStore",
    "RecordStore",
    "RecordStores",
    "eq",
    "escape_like",
    "ilike",
    "in_",
    "is_null",
    "neq",
]
