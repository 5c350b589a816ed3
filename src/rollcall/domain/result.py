"""Tagged result type shared by store adapters, the auditor and the engine.

Every store operation returns ``Ok(value)`` or ``Err(kind, detail)`` instead of
raising, so a batch can record one failure per record and keep going.
Exceptions are reserved for conditions that must stop a whole pass
(inconsistent input, failed snapshot reads).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal


class ErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    REJECTED = "rejected"
    INCONSISTENT_INPUT = "inconsistent_input"
    CANCELLED = "cancelled"


class ResultError(RuntimeError):
    """Raised when unwrapping an ``Err``."""

    def __init__(self, error: Err) -> None:
        super().__init__(f"{error.kind}: {error.detail}")
        self.error = error


@dataclass(slots=True, frozen=True)
class Ok[T]:
    value: T

    @property
    def ok(self) -> Literal[True]:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(slots=True, frozen=True)
class Err:
    kind: ErrorKind
    detail: str

    @property
    def ok(self) -> Literal[False]:
        return False

    def unwrap(self) -> object:
        raise ResultError(self)


type Result[T] = Ok[T] | Err


def is_transient(result: Result[object]) -> bool:
    return isinstance(result, Err) and result.kind is ErrorKind.TRANSIENT


def not_found(detail: str) -> Err:
    return Err(ErrorKind.NOT_FOUND, detail)


def rejected(detail: str) -> Err:
    return Err(ErrorKind.REJECTED, detail)


def transient(detail: str) -> Err:
    return Err(ErrorKind.TRANSIENT, detail)
