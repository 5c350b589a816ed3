"""Record predicates understood by every store adapter.

The operator set mirrors the platform REST filters the original tooling relied
on: equality, ``is null``, ``in``, ``not equal`` and case-insensitive ``like``.
A predicate is a conjunction of filters. Adapters translate it to their query
language; ``matches`` evaluates it in memory.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from functools import cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


class FilterOp(StrEnum):
    EQ = "eq"
    NEQ = "neq"
    IS_NULL = "is"
    IN = "in"
    ILIKE = "ilike"


@dataclass(frozen=True, slots=True)
class Filter:
    field: str
    op: FilterOp
    value: object = None

    def matches(self, record: object) -> bool:
        actual = getattr(record, self.field, None)
        match self.op:
            case FilterOp.EQ:
                return actual is not None and actual == self.value
            case FilterOp.NEQ:
                # SQL semantics: NULL is neither equal nor unequal
                return actual is not None and actual != self.value
            case FilterOp.IS_NULL:
                return actual is None
            case FilterOp.IN:
                return actual is not None and actual in _as_tuple(self.value)
            case FilterOp.ILIKE:
                if not isinstance(actual, str) or not isinstance(self.value, str):
                    return False
                return _like_regex(self.value).fullmatch(actual) is not None


@dataclass(frozen=True, slots=True)
class Predicate:
    filters: tuple[Filter, ...] = ()

    def matches(self, record: object) -> bool:
        return all(item.matches(record) for item in self.filters)

    def __and__(self, other: Predicate) -> Predicate:
        return Predicate(self.filters + other.filters)

    @property
    def fields(self) -> frozenset[str]:
        return frozenset(item.field for item in self.filters)


def eq(field: str, value: object) -> Predicate:
    return Predicate((Filter(field, FilterOp.EQ, value),))


def neq(field: str, value: object) -> Predicate:
    return Predicate((Filter(field, FilterOp.NEQ, value),))


def is_null(field: str) -> Predicate:
    return Predicate((Filter(field, FilterOp.IS_NULL),))


def in_(field: str, values: Iterable[object]) -> Predicate:
    return Predicate((Filter(field, FilterOp.IN, tuple(values)),))


def ilike(field: str, pattern: str) -> Predicate:
    return Predicate((Filter(field, FilterOp.ILIKE, pattern),))


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ``value`` matches literally."""

    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _as_tuple(value: object) -> tuple[object, ...]:
    if isinstance(value, tuple):
        return value
    if isinstance(value, (list, set, frozenset)):
        return tuple(value)
    return (value,)


@cache
def _like_regex(pattern: str) -> re.Pattern[str]:
    parts: list[str] = []
    escaped = False
    for char in pattern:
        if escaped:
            parts.append(re.escape(char))
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)
