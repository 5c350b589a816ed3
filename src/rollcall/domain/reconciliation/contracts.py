"""Snapshot and report types shared by the auditor, engine and harness.

A ``StoreSnapshot`` is one consistent read of the three stores. The auditor
turns it into a ``Report``; the report carries the snapshot token so the
engine can tell which state it describes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING
from uuid import uuid4

from rollcall.domain.model import utcnow

if TYPE_CHECKING:
    from datetime import datetime

    from rollcall.domain.model import Identity, Member, Profile


class FindingCategory(StrEnum):
    IDENTITIES_WITHOUT_PROFILE = "identitiesWithoutProfile"
    IDENTITIES_WITHOUT_MEMBER = "identitiesWithoutMember"
    PROFILES_ORPHANED = "profilesOrphaned"
    MEMBERS_UNLINKED = "membersUnlinked"
    MEMBERS_LINKABLE_BY_EMAIL = "membersLinkableByEmail"
    MEMBERS_ORPHANED = "membersOrphaned"
    MEMBERS_DUPLICATE_EMAIL = "membersDuplicateEmail"
    FIELD_MISMATCHES = "fieldMismatches"
    INVALID_ASSIGNMENTS = "invalidAssignments"


def _new_token() -> str:
    return uuid4().hex


@dataclass(frozen=True, slots=True, kw_only=True)
class StoreSnapshot:
    identities: tuple[Identity, ...] = ()
    profiles: tuple[Profile, ...] = ()
    members: tuple[Member, ...] = ()
    partial: bool = False
    token: str = field(default_factory=_new_token)
    taken_at: datetime = field(default_factory=utcnow)


class MismatchField(StrEnum):
    EMAIL = "email"
    FULL_NAME = "full_name"


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldMismatch:
    """Profile and/or member disagreeing with their identity on one field."""

    identity_id: str
    field: MismatchField
    expected: str
    profile_id: str | None = None
    profile_value: str | None = None
    profile_differs: bool = False
    member_id: str | None = None
    member_value: str | None = None
    member_differs: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class DuplicateEmailGroup:
    """Members that will share ``email`` once the pass has run.

    Assignment targets are already resolved across every group of the report:
    a reference to any duplicate is rewritten to that duplicate's keeper.
    """

    email: str
    keeper: Member
    duplicates: tuple[Member, ...]
    # (member id, new target) for surviving members assigned to one of the duplicates
    repoints: tuple[tuple[str, str | None], ...] = ()
    # the keeper's assignment after the merge, when it has none of its own
    inherited_assignment: str | None = None

    @property
    def duplicate_ids(self) -> tuple[str, ...]:
        return tuple(member.id for member in self.duplicates)

    @property
    def dependent_member_ids(self) -> tuple[str, ...]:
        return tuple(member_id for member_id, _ in self.repoints)


@dataclass(frozen=True, slots=True, kw_only=True)
class LinkCandidate:
    member: Member
    identity: Identity


class AssignmentDefect(StrEnum):
    DANGLING = "dangling"
    SELF = "self"
    CYCLE = "cycle"


@dataclass(frozen=True, slots=True, kw_only=True)
class InvalidAssignment:
    member_id: str
    assigned_to_member_id: str
    defect: AssignmentDefect
    cycle: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class Report:
    """Structural diff of one snapshot. Every sequence is sorted by id."""

    token: str
    taken_at: datetime
    partial: bool = False
    identities_without_profile: tuple[Identity, ...] = ()
    identities_without_member: tuple[Identity, ...] = ()
    profiles_orphaned: tuple[Profile, ...] = ()
    members_unlinked: tuple[Member, ...] = ()
    members_linkable_by_email: tuple[LinkCandidate, ...] = ()
    members_orphaned: tuple[Member, ...] = ()
    members_duplicate_email: tuple[DuplicateEmailGroup, ...] = ()
    field_mismatches: tuple[FieldMismatch, ...] = ()
    invalid_assignments: tuple[InvalidAssignment, ...] = ()

    def findings(self, category: FindingCategory) -> tuple[object, ...]:
        return _FINDINGS_BY_CATEGORY[category](self)

    def counts(self) -> dict[FindingCategory, int]:
        return {category: len(self.findings(category)) for category in FindingCategory}

    @property
    def total_findings(self) -> int:
        return sum(self.counts().values())

    def is_clean(self, categories: frozenset[FindingCategory] | None = None) -> bool:
        selected = categories if categories is not None else frozenset(FindingCategory)
        return all(not self.findings(category) for category in selected)


_FINDINGS_BY_CATEGORY = {
    FindingCategory.IDENTITIES_WITHOUT_PROFILE: lambda r: r.identities_without_profile,
    FindingCategory.IDENTITIES_WITHOUT_MEMBER: lambda r: r.identities_without_member,
    FindingCategory.PROFILES_ORPHANED: lambda r: r.profiles_orphaned,
    FindingCategory.MEMBERS_UNLINKED: lambda r: r.members_unlinked,
    FindingCategory.MEMBERS_LINKABLE_BY_EMAIL: lambda r: r.members_linkable_by_email,
    FindingCategory.MEMBERS_ORPHANED: lambda r: r.members_orphaned,
    FindingCategory.MEMBERS_DUPLICATE_EMAIL: lambda r: r.members_duplicate_email,
    FindingCategory.FIELD_MISMATCHES: lambda r: r.field_mismatches,
    FindingCategory.INVALID_ASSIGNMENTS: lambda r: r.invalid_assignments,
}
