"""Field merging for duplicate member groups."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rollcall.domain.model import MEMBER_MERGEABLE_FIELDS, is_blank

if TYPE_CHECKING:
    from collections.abc import Collection

    from .contracts import DuplicateEmailGroup


def merged_keeper_changes(
    group: DuplicateEmailGroup,
    *,
    keep: Collection[str] = (),
) -> dict[str, object]:
    """Return the fields the keeper lacks that a duplicate can supply.

    Duplicates are consulted oldest first, so the earliest populated value wins.
    A populated keeper field is never replaced, nothing is ever cleared, and the
    fields named in ``keep`` are left alone. The assignment is taken from
    ``group.inherited_assignment``, which already points at surviving members.
    """

    changes: dict[str, object] = {}
    for field_name in MEMBER_MERGEABLE_FIELDS:
        if field_name in keep or not is_blank(getattr(group.keeper, field_name)):
            continue
        if field_name == "assigned_to_member_id":
            if group.inherited_assignment is not None:
                changes[field_name] = group.inherited_assignment
            continue
        for duplicate in group.duplicates:
            value = getattr(duplicate, field_name)
            if not is_blank(value):
                changes[field_name] = value
                break
    return changes
