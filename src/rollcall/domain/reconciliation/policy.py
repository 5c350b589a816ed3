"""Reconciliation policy: which finding categories the engine may act on."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Final

from .contracts import FindingCategory

CATEGORY_BY_FLAG: Final = {
    "create_missing_profile": FindingCategory.IDENTITIES_WITHOUT_PROFILE,
    "create_missing_member": FindingCategory.IDENTITIES_WITHOUT_MEMBER,
    "link_members_by_email": FindingCategory.MEMBERS_LINKABLE_BY_EMAIL,
    "update_mismatched_fields": FindingCategory.FIELD_MISMATCHES,
    "deduplicate_members": FindingCategory.MEMBERS_DUPLICATE_EMAIL,
    "clear_invalid_assignments": FindingCategory.INVALID_ASSIGNMENTS,
    "delete_orphaned_profiles": FindingCategory.PROFILES_ORPHANED,
}

# Categories whose writes lose information; refused against partial reports.
DESTRUCTIVE_CATEGORIES: Final = frozenset(
    {
        FindingCategory.PROFILES_ORPHANED,
        FindingCategory.MEMBERS_DUPLICATE_EMAIL,
        FindingCategory.INVALID_ASSIGNMENTS,
    }
)


@dataclass(frozen=True, slots=True, kw_only=True)
class ReconciliationPolicy:
    """Every flag defaults to off; orphan deletion must always be enabled explicitly."""

    create_missing_profile: bool = False
    create_missing_member: bool = False
    link_members_by_email: bool = False
    update_mismatched_fields: bool = False
    deduplicate_members: bool = False
    clear_invalid_assignments: bool = False
    delete_orphaned_profiles: bool = False

    @classmethod
    def noop(cls) -> ReconciliationPolicy:
        return cls()

    @classmethod
    def non_destructive(cls) -> ReconciliationPolicy:
        return cls(
            create_missing_profile=True,
            create_missing_member=True,
            link_members_by_email=True,
            update_mismatched_fields=True,
        )

    @property
    def acted_categories(self) -> frozenset[FindingCategory]:
        return frozenset(
            category for flag, category in CATEGORY_BY_FLAG.items() if getattr(self, flag)
        )

    @property
    def destructive_categories(self) -> frozenset[FindingCategory]:
        return self.acted_categories & DESTRUCTIVE_CATEGORIES

    @property
    def is_noop(self) -> bool:
        return not self.acted_categories

    def enabled_flags(self) -> tuple[str, ...]:
        return tuple(item.name for item in fields(self) if getattr(self, item.name))
