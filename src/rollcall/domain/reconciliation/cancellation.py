"""Cooperative cancellation checked between per-record operations."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class CancellationToken:
    """Flag set from outside a pass (signal handler, caller) and polled inside it.

    A pass never stops mid-write: the token is only consulted before the next
    record or page, so every write either completes or never starts.
    """

    _cancelled: bool = field(default=False, init=False)
    reason: str | None = field(default=None, init=False)

    def cancel(self, reason: str = "cancelled") -> None:
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def is_cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.cancelled
