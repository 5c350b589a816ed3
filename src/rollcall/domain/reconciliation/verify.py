"""Verification harness: audit, reconcile, audit again and compare.

A category the policy acted on passes only when it is empty afterwards. A
category left alone passes as long as it did not grow; that is how side
effects of other categories (an orphan created by a stray upsert, say) show up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from rollcall.domain.model import utcnow

from .audit import audit
from .contracts import FindingCategory

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from .cancellation import CancellationToken
    from .contracts import Report, StoreSnapshot
    from .engine import ReconciliationEngine, ReconciliationSummary
    from .policy import ReconciliationPolicy

    type SnapshotLoader = Callable[[], Awaitable[StoreSnapshot]]

log = getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class CategoryVerdict:
    category: FindingCategory
    before: int
    after: int
    acted_on: bool
    failed_writes: int = 0

    @property
    def passed(self) -> bool:
        if self.acted_on:
            return self.after == 0
        return self.after <= self.before


@dataclass(slots=True, kw_only=True)
class VerificationResult:
    before: Report
    after: Report
    summary: ReconciliationSummary
    verdicts: dict[FindingCategory, CategoryVerdict] = field(
        default_factory=dict["FindingCategory", "CategoryVerdict"]
    )
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def total_findings_before(self) -> int:
        return self.before.total_findings

    @property
    def total_findings_after(self) -> int:
        return self.after.total_findings

    @property
    def fully_reconciled(self) -> bool:
        if self.summary.cancelled:
            return False
        return all(verdict.passed for verdict in self.verdicts.values())

    def failed_categories(self) -> list[FindingCategory]:
        return [category for category, verdict in self.verdicts.items() if not verdict.passed]


@dataclass(slots=True)
class VerificationHarness:
    """Runs one reconciliation pass between two audits of the same scope."""

    engine: ReconciliationEngine
    load_snapshot: SnapshotLoader

    async def run(
        self,
        policy: ReconciliationPolicy,
        *,
        cancellation: CancellationToken | None = None,
    ) -> VerificationResult:
        before = audit(await self.load_snapshot())
        summary = await self.engine.reconcile(
            before,
            policy,
            expected_token=before.token,
            cancellation=cancellation,
        )
        after = audit(await self.load_snapshot())
        return verify(before, after, summary, policy)


def verify(
    before: Report,
    after: Report,
    summary: ReconciliationSummary,
    policy: ReconciliationPolicy,
) -> VerificationResult:
    """Compare two reports around ``summary`` and grade each category."""

    acted = policy.acted_categories
    before_counts = before.counts()
    after_counts = after.counts()
    per_category = summary.by_category()
    verdicts = {
        category: CategoryVerdict(
            category=category,
            before=before_counts[category],
            after=after_counts[category],
            acted_on=category in acted,
            failed_writes=per_category[category].failed if category in per_category else 0,
        )
        for category in FindingCategory
    }
    result = VerificationResult(before=before, after=after, summary=summary, verdicts=verdicts)
    for verdict in verdicts.values():
        if not verdict.passed:
            log.warning(
                "%s not reconciled: before=%s after=%s failed_writes=%s",
                verdict.category,
                verdict.before,
                verdict.after,
                verdict.failed_writes,
            )
    log.info(
        "Verification finished: findings %s -> %s, writes=%s, fully_reconciled=%s",
        result.total_findings_before,
        result.total_findings_after,
        summary.writes,
        result.fully_reconciled,
    )
    return result
