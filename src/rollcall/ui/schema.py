"""JSON documents printed by the CLI."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rollcall.domain.reconciliation import (
    FindingCategory,
    Report,
    VerificationResult,
)


class OutputModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class CategoryDocument(OutputModel):
    before: int
    after: int
    acted_on: bool
    passed: bool
    failed_writes: int = 0


class FailureSample(OutputModel):
    category: str
    action: str
    store: str
    record_id: str | None
    kind: str
    detail: str
    attempts: int


class VerificationDocument(OutputModel):
    timestamp: datetime
    snapshot_token: str
    partial: bool
    total_findings_before: int
    total_findings_after: int
    categories: dict[str, CategoryDocument]
    writes: int
    cancelled: bool
    fully_reconciled: bool
    failures: list[FailureSample] = Field(default_factory=list)


class ReportDocument(OutputModel):
    timestamp: datetime
    snapshot_token: str
    partial: bool
    total_findings: int
    counts: dict[str, int]
    findings: dict[str, list[str]]


def verification_document(
    result: VerificationResult,
    *,
    failure_samples: int = 5,
) -> VerificationDocument:
    """Render ``result``; ``failure_samples`` caps the failures listed per category."""

    failures: list[FailureSample] = []
    for category in FindingCategory:
        for outcome in result.summary.failures(category, limit=failure_samples):
            error = outcome.result
            failures.append(
                FailureSample(
                    category=category.value,
                    action=outcome.action.value,
                    store=outcome.store,
                    record_id=outcome.record_id,
                    kind=str(getattr(error, "kind", "unknown")),
                    detail=outcome.reason or "",
                    attempts=outcome.attempts,
                )
            )
    return VerificationDocument(
        timestamp=result.timestamp,
        snapshot_token=result.before.token,
        partial=result.before.partial,
        total_findings_before=result.total_findings_before,
        total_findings_after=result.total_findings_after,
        categories={
            category.value: CategoryDocument(
                before=verdict.before,
                after=verdict.after,
                acted_on=verdict.acted_on,
                passed=verdict.passed,
                failed_writes=verdict.failed_writes,
            )
            for category, verdict in result.verdicts.items()
        },
        writes=result.summary.writes,
        cancelled=result.summary.cancelled,
        fully_reconciled=result.fully_reconciled,
        failures=failures,
    )


def report_document(report: Report) -> ReportDocument:
    return ReportDocument(
        timestamp=report.taken_at,
        snapshot_token=report.token,
        partial=report.partial,
        total_findings=report.total_findings,
        counts={category.value: count for category, count in report.counts().items()},
        findings={
            category.value: [_finding_key(item) for item in report.findings(category)]
            for category in FindingCategory
        },
    )


def _finding_key(finding: object) -> str:
    """Short, stable identifier for one finding."""

    for attribute in ("identity_id", "member_id"):
        value = getattr(finding, attribute, None)
        if isinstance(value, str):
            field = getattr(finding, "field", None) or getattr(finding, "defect", None)
            return f"{value}:{field}" if field is not None else value
    keeper = getattr(finding, "keeper", None)
    if keeper is not None:
        duplicates = ",".join(getattr(finding, "duplicate_ids", ()))
        return f"{getattr(keeper, 'id', '')}<-{duplicates}"
    member = getattr(finding, "member", None)
    identity = getattr(finding, "identity", None)
    if member is not None and identity is not None:
        return f"{getattr(member, 'id', '')}->{getattr(identity, 'id', '')}"
    return str(getattr(finding, "id", finding))
