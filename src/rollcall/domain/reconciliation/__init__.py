"""Reconciliation core for the identity, profile and member stores.

Layered flow:
1) load a snapshot of the three stores (``snapshot``)
2) audit it into a report of findings (``audit``)
3) apply the findings a policy selects (``engine``)
4) audit again and grade each category (``verify``)
"""

from __future__ import annotations

from .audit import audit, find_assignment_cycles
from .cancellation import CancellationToken
from .contracts import (
    AssignmentDefect,
    DuplicateEmailGroup,
    FieldMismatch,
    FindingCategory,
    InvalidAssignment,
    LinkCandidate,
    MismatchField,
    Report,
    StoreSnapshot,
)
from .engine import (
    CategorySummary,
    ReconciliationEngine,
    ReconciliationSummary,
    RecordOutcome,
    WriteAction,
)
from .errors import (
    InconsistentInputError,
    OperationCancelledError,
    ReconciliationError,
    SnapshotLoadError,
)
from .policy import DESTRUCTIVE_CATEGORIES, ReconciliationPolicy
from .retry import WriteRetryPolicy
from .snapshot import collect_all, load_identity_snapshot, load_snapshot
from .verify import CategoryVerdict, VerificationHarness, VerificationResult, verify

__all__ = [
    "DESTRUCTIVE_CATEGORIES",
    "AssignmentDefect",
    "CancellationToken",
    "CategorySummary",
    "CategoryVerdict",
    "DuplicateEmailGroup",
    "FieldMismatch",
    "FindingCategory",
    "InconsistentInputError",
    "InvalidAssignment",
    "LinkCandidate",
    "MismatchField",
    "OperationCancelledError",
    "ReconciliationEngine",
    "ReconciliationError",
    "ReconciliationPolicy",
    "ReconciliationSummary",
    "RecordOutcome",
    "Report",
    "SnapshotLoadError",
    "StoreSnapshot",
    "VerificationHarness",
    "VerificationResult",
    "WriteAction",
    "WriteRetryPolicy",
    "audit",
    "collect_all",
    "find_assignment_cycles",
    "load_identity_snapshot",
    "load_snapshot",
    "verify",
]
