"""Reconciliation engine: applies a report's findings through the store ports.

Categories run in a fixed order so every write has its target: records are
created before mismatches are corrected, and duplicate groups are merged
before anything is deleted. Each record is written independently; a failure
is recorded in the summary and the batch moves on.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from rollcall.domain.model import MemberCategory, utcnow
from rollcall.domain.model.primitives import email_local_part, normalize_email
from rollcall.domain.ports import PageRequest, eq
from rollcall.domain.result import Err, ErrorKind, Ok

from .cancellation import is_cancelled
from .contracts import AssignmentDefect, FindingCategory, MismatchField
from .errors import InconsistentInputError
from .merge import merged_keeper_changes
from .retry import WriteRetryPolicy, run_write

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime, timedelta

    from rollcall.domain.model import Identity
    from rollcall.domain.ports import RecordStores
    from rollcall.domain.result import Result

    from .cancellation import CancellationToken
    from .contracts import DuplicateEmailGroup, Report
    from .policy import ReconciliationPolicy

log = getLogger(__name__)


class WriteAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    LINK = "link"
    MERGE = "merge"
    REPOINT = "repoint"
    DELETE = "delete"
    CLEAR = "clear"
    SKIP = "skip"


@dataclass(frozen=True, slots=True, kw_only=True)
class RecordOutcome:
    category: FindingCategory
    action: WriteAction
    store: str
    record_id: str | None
    result: Result[object]
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return isinstance(self.result, Ok)

    @property
    def is_write(self) -> bool:
        return self.action is not WriteAction.SKIP

    @property
    def reason(self) -> str | None:
        return self.result.detail if isinstance(self.result, Err) else None


@dataclass(slots=True)
class CategorySummary:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failures: list[RecordOutcome] = field(default_factory=list["RecordOutcome"])


@dataclass(slots=True, kw_only=True)
class ReconciliationSummary:
    """Per-record outcomes of one reconciliation pass."""

    token: str
    policy: ReconciliationPolicy
    outcomes: list[RecordOutcome] = field(default_factory=list["RecordOutcome"])
    cancelled: bool = False

    def record(self, outcome: RecordOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def writes(self) -> int:
        """Writes that reached the store successfully."""

        return sum(1 for outcome in self.outcomes if outcome.is_write and outcome.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.succeeded)

    def by_category(self) -> dict[FindingCategory, CategorySummary]:
        summaries: dict[FindingCategory, CategorySummary] = {}
        for outcome in self.outcomes:
            summary = summaries.setdefault(outcome.category, CategorySummary())
            if not outcome.is_write:
                summary.skipped += 1
                continue
            summary.attempted += 1
            if outcome.succeeded:
                summary.succeeded += 1
            else:
                summary.failed += 1
                summary.failures.append(outcome)
        return summaries

    def failures(
        self,
        category: FindingCategory | None = None,
        *,
        limit: int | None = None,
    ) -> list[RecordOutcome]:
        selected = [
            outcome
            for outcome in self.outcomes
            if not outcome.succeeded and (category is None or outcome.category is category)
        ]
        return selected if limit is None else selected[:limit]


class _Cancelled(Exception):  # noqa: N818
    """Internal signal to unwind the category loop."""


@dataclass(slots=True)
class ReconciliationEngine:
    """Apply a ``Report`` under a ``ReconciliationPolicy``."""

    stores: RecordStores
    default_category: str = MemberCategory.MEMBERS
    retry: WriteRetryPolicy = field(default_factory=WriteRetryPolicy)
    max_report_age: timedelta | None = None
    clock: Callable[[], datetime] = utcnow
    _applied_tokens: set[str] = field(default_factory=set[str], init=False)

    async def reconcile(
        self,
        report: Report,
        policy: ReconciliationPolicy,
        *,
        expected_token: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ReconciliationSummary:
        """Run every category ``policy`` enables against ``report``.

        Raises ``InconsistentInputError`` before any write when the report
        cannot be trusted: a token mismatch, an expired or already applied
        report, or a partial report combined with destructive categories.
        """

        self._check_report(report, policy, expected_token=expected_token)
        summary = ReconciliationSummary(token=report.token, policy=policy)
        if policy.is_noop:
            log.info("No-op policy; nothing to reconcile")
            return summary

        self._applied_tokens.add(report.token)
        log.info(
            "Reconciling report %s with %s findings (policy: %s)",
            report.token,
            report.total_findings,
            ", ".join(policy.enabled_flags()),
        )

        steps: list[Callable[[Report, ReconciliationSummary, _PassState], Awaitable[None]]] = []
        if policy.create_missing_profile:
            steps.append(self._create_missing_profiles)
        if policy.create_missing_member:
            steps.append(self._create_missing_members)
        if policy.link_members_by_email:
            steps.append(self._link_members)
        if policy.update_mismatched_fields:
            steps.append(self._update_mismatches)
        if policy.deduplicate_members:
            steps.append(self._deduplicate_members)
        if policy.clear_invalid_assignments:
            steps.append(self._clear_invalid_assignments)
        if policy.delete_orphaned_profiles:
            steps.append(self._delete_orphaned_profiles)

        state = _PassState(cancellation=cancellation)
        try:
            for step in steps:
                await step(report, summary, state)
        except _Cancelled:
            summary.cancelled = True
            log.warning(
                "Reconciliation cancelled after %s write(s); applied writes are kept",
                summary.writes,
            )

        counts = Counter(
            (outcome.category, outcome.succeeded) for outcome in summary.outcomes
        )
        for (category, succeeded), count in sorted(counts.items()):
            log.info("%s: %s %s", category, count, "succeeded" if succeeded else "failed")
        return summary

    def _check_report(
        self,
        report: Report,
        policy: ReconciliationPolicy,
        *,
        expected_token: str | None,
    ) -> None:
        if expected_token is not None and expected_token != report.token:
            raise InconsistentInputError(
                f"Report token {report.token} does not match expected snapshot {expected_token}"
            )
        if report.token in self._applied_tokens:
            raise InconsistentInputError(
                f"Report {report.token} was already applied; audit again before reconciling"
            )
        if self.max_report_age is not None:
            age = self.clock() - report.taken_at
            if age > self.max_report_age:
                raise InconsistentInputError(
                    f"Report {report.token} is {age} old (limit {self.max_report_age})"
                )
        destructive = policy.destructive_categories
        if report.partial and destructive:
            names = ", ".join(sorted(destructive))
            raise InconsistentInputError(
                f"Refusing destructive categories ({names}) against a partial audit"
            )

    async def _write(
        self,
        summary: ReconciliationSummary,
        state: _PassState,
        *,
        category: FindingCategory,
        action: WriteAction,
        store: str,
        record_id: str | None,
        operation: Callable[[], Awaitable[Result[object]]],
    ) -> Result[object]:
        if is_cancelled(state.cancellation):
            raise _Cancelled
        label = f"{action} {store} {record_id or '<new>'}"
        outcome = await run_write(operation, policy=self.retry, label=label)
        summary.record(
            RecordOutcome(
                category=category,
                action=action,
                store=store,
                record_id=record_id,
                result=outcome.result,
                attempts=outcome.attempts,
            )
        )
        if isinstance(outcome.result, Err):
            log.warning("%s failed: %s", label, outcome.result.detail)
        else:
            log.debug("%s done", label)
        return outcome.result

    def _skip(
        self,
        summary: ReconciliationSummary,
        *,
        category: FindingCategory,
        store: str,
        record_id: str | None,
        reason: str,
    ) -> None:
        summary.record(
            RecordOutcome(
                category=category,
                action=WriteAction.SKIP,
                store=store,
                record_id=record_id,
                result=Ok(reason),
            )
        )

    async def _create_missing_profiles(
        self, report: Report, summary: ReconciliationSummary, state: _PassState
    ) -> None:
        profiles = self.stores.profiles
        for identity in report.identities_without_profile:
            changes: dict[str, object] = {"id": identity.id, "email": identity.email}
            if identity.full_name:
                changes["full_name"] = identity.full_name
            await self._write(
                summary,
                state,
                category=FindingCategory.IDENTITIES_WITHOUT_PROFILE,
                action=WriteAction.CREATE,
                store="profiles",
                record_id=identity.id,
                operation=_bind(profiles.upsert, changes),
            )

    async def _create_missing_members(
        self, report: Report, summary: ReconciliationSummary, state: _PassState
    ) -> None:
        members = self.stores.members
        for identity in report.identities_without_member:
            if report.partial:
                reason = await self._member_presence(identity)
                if reason is not None:
                    self._skip(
                        summary,
                        category=FindingCategory.IDENTITIES_WITHOUT_MEMBER,
                        store="members",
                        record_id=identity.id,
                        reason=reason,
                    )
                    continue
            await self._write(
                summary,
                state,
                category=FindingCategory.IDENTITIES_WITHOUT_MEMBER,
                action=WriteAction.CREATE,
                store="members",
                record_id=None,
                operation=_bind(members.upsert, self._new_member(identity)),
            )

    def _new_member(self, identity: Identity) -> dict[str, object]:
        email = normalize_email(identity.email) or identity.email
        return {
            "linked_identity_id": identity.id,
            "email": email,
            "full_name": identity.full_name or email_local_part(email),
            "category": self.default_category,
            "is_active": True,
        }

    async def _member_presence(self, identity: Identity) -> str | None:
        """Re-check absence before inserting on the strength of a partial report.

        Returns why the insert should be skipped, or ``None`` when the identity
        provably has no member.
        """

        linked = await self.stores.members.list_all(
            eq("linked_identity_id", identity.id),
            page=PageRequest(number=1, size=1),
        )
        if isinstance(linked, Err):
            return f"could not verify linked member: {linked.detail}"
        if linked.value.items:
            return f"member {linked.value.items[0].id} is already linked"
        if identity.email_key:
            by_email = await self.stores.members.get_by_email(identity.email)
            if isinstance(by_email, Ok):
                return f"member {by_email.value.id} already uses {identity.email}"
            if by_email.kind is not ErrorKind.NOT_FOUND:
                return f"could not verify member email: {by_email.detail}"
        return None

    async def _link_members(
        self, report: Report, summary: ReconciliationSummary, state: _PassState
    ) -> None:
        for candidate in report.members_linkable_by_email:
            await self._write(
                summary,
                state,
                category=FindingCategory.MEMBERS_LINKABLE_BY_EMAIL,
                action=WriteAction.LINK,
                store="members",
                record_id=candidate.member.id,
                operation=_bind(
                    self.stores.members.upsert,
                    {"id": candidate.member.id, "linked_identity_id": candidate.identity.id},
                ),
            )

    async def _update_mismatches(
        self, report: Report, summary: ReconciliationSummary, state: _PassState
    ) -> None:
        for mismatch in report.field_mismatches:
            field_name = mismatch.field.value
            if mismatch.profile_differs and mismatch.profile_id is not None:
                await self._write(
                    summary,
                    state,
                    category=FindingCategory.FIELD_MISMATCHES,
                    action=WriteAction.UPDATE,
                    store="profiles",
                    record_id=mismatch.profile_id,
                    operation=_bind(
                        self.stores.profiles.upsert,
                        {"id": mismatch.profile_id, field_name: mismatch.expected},
                    ),
                )
            if mismatch.member_differs and mismatch.member_id is not None:
                value = mismatch.expected
                if mismatch.field is MismatchField.EMAIL:
                    value = normalize_email(value) or value
                result = await self._write(
                    summary,
                    state,
                    category=FindingCategory.FIELD_MISMATCHES,
                    action=WriteAction.UPDATE,
                    store="members",
                    record_id=mismatch.member_id,
                    operation=_bind(
                        self.stores.members.upsert,
                        {"id": mismatch.member_id, field_name: value},
                    ),
                )
                if isinstance(result, Ok):
                    state.updated_member_fields.setdefault(mismatch.member_id, set()).add(
                        field_name
                    )

    async def _deduplicate_members(
        self, report: Report, summary: ReconciliationSummary, state: _PassState
    ) -> None:
        for group in report.members_duplicate_email:
            if await self._merge_group(group, summary, state):
                for duplicate_id in group.duplicate_ids:
                    result = await self._write(
                        summary,
                        state,
                        category=FindingCategory.MEMBERS_DUPLICATE_EMAIL,
                        action=WriteAction.DELETE,
                        store="members",
                        record_id=duplicate_id,
                        operation=_bind(
                            self.stores.members.delete_where, eq("id", duplicate_id)
                        ),
                    )
                    if isinstance(result, Ok):
                        state.deleted_member_ids.add(duplicate_id)
            else:
                log.warning(
                    "Keeping duplicates of %s: merge into %s did not complete",
                    group.email,
                    group.keeper.id,
                )

    async def _merge_group(
        self,
        group: DuplicateEmailGroup,
        summary: ReconciliationSummary,
        state: _PassState,
    ) -> bool:
        """Merge and repoint; True only when the duplicates are safe to delete."""

        if group.keeper.id in state.deleted_member_ids:
            return False
        changes = merged_keeper_changes(
            group, keep=state.updated_member_fields.get(group.keeper.id, set())
        )
        if changes:
            result = await self._write(
                summary,
                state,
                category=FindingCategory.MEMBERS_DUPLICATE_EMAIL,
                action=WriteAction.MERGE,
                store="members",
                record_id=group.keeper.id,
                operation=_bind(self.stores.members.upsert, {"id": group.keeper.id, **changes}),
            )
            if isinstance(result, Err):
                return False

        for member_id, target in group.repoints:
            if member_id in state.deleted_member_ids:
                continue
            result = await self._write(
                summary,
                state,
                category=FindingCategory.MEMBERS_DUPLICATE_EMAIL,
                action=WriteAction.REPOINT,
                store="members",
                record_id=member_id,
                operation=_bind(
                    self.stores.members.upsert,
                    {"id": member_id, "assigned_to_member_id": target},
                ),
            )
            if isinstance(result, Err):
                return False
        return True

    async def _clear_invalid_assignments(
        self, report: Report, summary: ReconciliationSummary, state: _PassState
    ) -> None:
        cleared: set[str] = set()
        for invalid in report.invalid_assignments:
            if invalid.defect is AssignmentDefect.CYCLE:
                # break each cycle once, at its lowest id
                member_id = invalid.cycle[0]
            else:
                member_id = invalid.member_id
            if member_id in cleared or member_id in state.deleted_member_ids:
                continue
            cleared.add(member_id)
            await self._write(
                summary,
                state,
                category=FindingCategory.INVALID_ASSIGNMENTS,
                action=WriteAction.CLEAR,
                store="members",
                record_id=member_id,
                operation=_bind(
                    self.stores.members.upsert,
                    {"id": member_id, "assigned_to_member_id": None},
                ),
            )

    async def _delete_orphaned_profiles(
        self, report: Report, summary: ReconciliationSummary, state: _PassState
    ) -> None:
        for profile in report.profiles_orphaned:
            await self._write(
                summary,
                state,
                category=FindingCategory.PROFILES_ORPHANED,
                action=WriteAction.DELETE,
                store="profiles",
                record_id=profile.id,
                operation=_bind(self.stores.profiles.delete_where, eq("id", profile.id)),
            )


@dataclass(slots=True)
class _PassState:
    cancellation: CancellationToken | None = None
    deleted_member_ids: set[str] = field(default_factory=set[str])
    # member id -> fields the mismatch step wrote this pass
    updated_member_fields: dict[str, set[str]] = field(default_factory=dict[str, set[str]])


def _bind[TArg, TValue](
    func: Callable[[TArg], Awaitable[Result[TValue]]],
    argument: TArg,
) -> Callable[[], Awaitable[Result[object]]]:
    async def call() -> Result[object]:
        return await func(argument)

    return call
