"""Exceptions that stop a whole audit or reconciliation pass."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rollcall.domain.result import Err


class ReconciliationError(RuntimeError):
    """Base class for pass-level failures."""


class InconsistentInputError(ReconciliationError):
    """Raised when a report cannot be trusted to describe the current store state."""


class SnapshotLoadError(ReconciliationError):
    """Raised when a store listing fails, leaving no consistent snapshot to audit."""

    def __init__(self, store: str, error: Err) -> None:
        super().__init__(f"Could not read {store}: {error.kind}: {error.detail}")
        self.store = store
        self.error = error


class OperationCancelledError(ReconciliationError):
    """Raised when an audit is cancelled between page reads."""
