"""Consistency auditor: structural diff across identities, profiles and members.

The auditor is a pure function of a snapshot. It builds id-indexed maps in a
single pass, derives every finding by set difference and sorts each output by
id, so the same snapshot always yields the same report regardless of the order
the stores returned their rows in.
"""

from __future__ import annotations

from collections import defaultdict
from logging import getLogger
from typing import TYPE_CHECKING

from rollcall.domain.model import is_blank, normalize_name
from rollcall.domain.model.primitives import sort_timestamp

from .contracts import (
    AssignmentDefect,
    DuplicateEmailGroup,
    FieldMismatch,
    InvalidAssignment,
    LinkCandidate,
    MismatchField,
    Report,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from rollcall.domain.model import Identity, Member, Profile

    from .contracts import StoreSnapshot

log = getLogger(__name__)

# identities linked to a group outrank those matching it by email; then earliest link, lowest id
type _Rank = tuple[int, tuple[object, ...], str]


def keeper_order(member: Member) -> tuple[object, ...]:
    """Sort key: earliest ``created_at`` first, ties broken by lowest id."""

    return (sort_timestamp(member.created_at), member.id)


class _Indexes:
    """Join indexes over one snapshot, plus the member groups a pass leaves behind.

    Members sharing an email form a group. Each group has at most one owning
    identity: the identity linked to its earliest linked member, or failing
    that the first identity with the group's email. The mismatch step moves a
    group to its owner's email, so groups are merged by that planned email and
    the earliest member of the merged group is its keeper.
    """

    def __init__(self, snapshot: StoreSnapshot) -> None:
        self.identities_by_id: dict[str, Identity] = {}
        self.identities_by_email: dict[str, list[Identity]] = defaultdict(list)
        for identity in sorted(snapshot.identities, key=lambda item: item.id):
            self.identities_by_id[identity.id] = identity
            if identity.email_key:
                self.identities_by_email[identity.email_key].append(identity)

        self.profiles_by_id: dict[str, Profile] = {
            profile.id: profile for profile in snapshot.profiles
        }

        self.members_by_id: dict[str, Member] = {}
        self.members_by_link: dict[str, Member] = {}
        self.members_by_email: dict[str, list[Member]] = defaultdict(list)
        # current group keeper id -> members of that group
        self.groups: dict[str, list[Member]] = {}
        for member in sorted(snapshot.members, key=keeper_order):
            self.members_by_id[member.id] = member
            if member.linked_identity_id is not None:
                self.members_by_link.setdefault(member.linked_identity_id, member)
            if member.email_key:
                self.members_by_email[member.email_key].append(member)
            else:
                self.groups[member.id] = [member]
        for members in self.members_by_email.values():
            self.groups[members[0].id] = members
        self.group_of: dict[str, str] = {
            member.id: keeper_id
            for keeper_id, members in self.groups.items()
            for member in members
        }

        self.owners = self._group_owners()
        self.planned: dict[str, list[Member]] = defaultdict(list)
        planned_owners: dict[str, list[tuple[_Rank, Identity]]] = defaultdict(list)
        for keeper_id, members in self.groups.items():
            owner = self.owners.get(keeper_id)
            key = (
                (owner[1].email_key if owner else None)
                or members[0].email_key
                or f"\0{keeper_id}"
            )
            self.planned[key].extend(members)
            if owner is not None:
                planned_owners[key].append(owner)
        self.planned_key_of: dict[str, str] = {}
        for key, members in self.planned.items():
            members.sort(key=keeper_order)
            for member in members:
                self.planned_key_of[member.id] = key
        self.planned_owner: dict[str, Identity] = {
            key: min(candidates, key=lambda item: item[0])[1]
            for key, candidates in planned_owners.items()
        }

    def anchor_group(self, identity: Identity) -> str | None:
        """Keeper id of the current group an identity resolves to, by link then by email."""

        linked = self.members_by_link.get(identity.id)
        if linked is not None:
            return self.group_of[linked.id]
        if identity.email_key:
            by_email = self.members_by_email.get(identity.email_key)
            if by_email:
                return by_email[0].id
        return None

    def _group_owners(self) -> dict[str, tuple[_Rank, Identity]]:
        owners: dict[str, tuple[_Rank, Identity]] = {}
        for identity in self.identities_by_id.values():
            keeper_id = self.anchor_group(identity)
            if keeper_id is None:
                continue
            linked = self.members_by_link.get(identity.id)
            rank: _Rank = (
                (0, keeper_order(linked), identity.id)
                if linked is not None
                else (1, (), identity.id)
            )
            current = owners.get(keeper_id)
            if current is None or rank < current[0]:
                owners[keeper_id] = (rank, identity)
        return owners

    def member_for(self, identity: Identity) -> Member | None:
        """The member that represents ``identity`` once the pass has run."""

        keeper_id = self.anchor_group(identity)
        if keeper_id is not None:
            owner = self.owners.get(keeper_id)
            if owner is not None and owner[1].id == identity.id:
                return self.planned[self.planned_key_of[keeper_id]][0]
        if identity.email_key and identity.email_key in self.planned:
            return self.planned[identity.email_key][0]
        return None

    def owns(self, identity: Identity, member: Member) -> bool:
        owner = self.planned_owner.get(self.planned_key_of[member.id])
        return owner is not None and owner.id == identity.id


def audit(snapshot: StoreSnapshot) -> Report:
    """Compute every finding category for ``snapshot``."""

    indexes = _Indexes(snapshot)
    identities = sorted(indexes.identities_by_id.values(), key=lambda item: item.id)

    identities_without_profile = tuple(
        identity for identity in identities if identity.id not in indexes.profiles_by_id
    )
    identities_without_member = tuple(
        identity for identity in identities if indexes.member_for(identity) is None
    )
    profiles_orphaned = tuple(
        sorted(
            (
                profile
                for profile in indexes.profiles_by_id.values()
                if profile.id not in indexes.identities_by_id
            ),
            key=lambda item: item.id,
        )
    )
    unlinked, linkable, orphaned_members = _classify_member_links(indexes)
    duplicates = _duplicate_email_groups(indexes)
    mismatches = _field_mismatches(identities, indexes)
    invalid = _invalid_assignments(indexes.members_by_id)

    report = Report(
        token=snapshot.token,
        taken_at=snapshot.taken_at,
        partial=snapshot.partial,
        identities_without_profile=identities_without_profile,
        identities_without_member=identities_without_member,
        profiles_orphaned=profiles_orphaned,
        members_unlinked=unlinked,
        members_linkable_by_email=linkable,
        members_orphaned=orphaned_members,
        members_duplicate_email=duplicates,
        field_mismatches=mismatches,
        invalid_assignments=invalid,
    )
    log.info(
        "Audited %s identities, %s profiles, %s members (partial=%s): %s findings",
        len(snapshot.identities),
        len(snapshot.profiles),
        len(snapshot.members),
        snapshot.partial,
        report.total_findings,
    )
    return report


def _classify_member_links(
    indexes: _Indexes,
) -> tuple[tuple[Member, ...], tuple[LinkCandidate, ...], tuple[Member, ...]]:
    unlinked: list[Member] = []
    linkable: list[LinkCandidate] = []
    orphaned: list[Member] = []

    for member in sorted(indexes.members_by_id.values(), key=lambda item: item.id):
        if member.linked_identity_id is not None:
            if member.linked_identity_id not in indexes.identities_by_id:
                orphaned.append(member)
            continue

        matches = indexes.identities_by_email.get(member.email_key or "", [])
        if not matches:
            unlinked.append(member)
            continue
        if len(matches) != 1:
            # several identities share the address; linking would be a guess
            continue
        identity = matches[0]
        if identity.id in indexes.members_by_link:
            continue
        # only the keeper of an email group is linked; the rest are duplicates
        group = indexes.groups[indexes.group_of[member.id]]
        if group[0].id != member.id:
            continue
        # a linked duplicate already decides who the group belongs to
        if any(other.linked_identity_id is not None for other in group):
            continue
        linkable.append(LinkCandidate(member=member, identity=identity))

    return tuple(unlinked), tuple(linkable), tuple(orphaned)


def _duplicate_email_groups(indexes: _Indexes) -> tuple[DuplicateEmailGroup, ...]:
    # every duplicate of every group -> the keeper it is merged into
    redirects = {
        duplicate.id: members[0].id
        for members in indexes.planned.values()
        for duplicate in members[1:]
    }
    repoints: dict[str, list[tuple[str, str | None]]] = defaultdict(list)
    for member in indexes.members_by_id.values():
        target = member.assigned_to_member_id
        if member.id in redirects or target is None or target not in redirects:
            continue
        new_target = redirects[target]
        repoints[new_target].append((member.id, None if new_target == member.id else new_target))

    groups: list[DuplicateEmailGroup] = []
    for email, members in indexes.planned.items():
        if len(members) < 2:
            continue
        keeper, *duplicates = members
        groups.append(
            DuplicateEmailGroup(
                email=email,
                keeper=keeper,
                duplicates=tuple(duplicates),
                repoints=tuple(sorted(repoints[keeper.id])),
                inherited_assignment=_inherited_assignment(
                    keeper, duplicates, redirects, indexes.members_by_id
                ),
            )
        )
    return tuple(sorted(groups, key=lambda group: group.keeper.id))


def _inherited_assignment(
    keeper: Member,
    duplicates: Iterable[Member],
    redirects: Mapping[str, str],
    members_by_id: Mapping[str, Member],
) -> str | None:
    """Assignment the keeper takes over from its oldest assigned duplicate, if it has none."""

    if not is_blank(keeper.assigned_to_member_id):
        return None
    for duplicate in duplicates:
        target = duplicate.assigned_to_member_id
        if target is None or is_blank(target):
            continue
        resolved = redirects.get(target, target)
        if resolved != keeper.id and resolved in members_by_id:
            return resolved
    return None


def _field_mismatches(
    identities: Iterable[Identity],
    indexes: _Indexes,
) -> tuple[FieldMismatch, ...]:
    mismatches: list[FieldMismatch] = []
    for identity in identities:
        profile = indexes.profiles_by_id.get(identity.id)
        member = indexes.member_for(identity)
        if member is not None and not indexes.owns(identity, member):
            # the group follows another identity sharing this address
            member = None
        if profile is None and member is None:
            continue

        if identity.email_key:
            mismatch = _compare(
                identity,
                MismatchField.EMAIL,
                expected=identity.email,
                profile=profile,
                profile_value=profile.email if profile else None,
                member=member,
                member_value=member.email if member else None,
                same=_same_email,
            )
            if mismatch is not None:
                mismatches.append(mismatch)

        expected_name = identity.full_name
        if expected_name:
            mismatch = _compare(
                identity,
                MismatchField.FULL_NAME,
                expected=expected_name,
                profile=profile,
                profile_value=profile.full_name if profile else None,
                member=member,
                member_value=member.full_name if member else None,
                same=_same_name,
            )
            if mismatch is not None:
                mismatches.append(mismatch)

    return tuple(sorted(mismatches, key=lambda item: (item.identity_id, item.field)))


def _compare(  # noqa: PLR0913
    identity: Identity,
    field: MismatchField,
    *,
    expected: str,
    profile: Profile | None,
    profile_value: str | None,
    member: Member | None,
    member_value: str | None,
    same: Callable[[str, str | None], bool],
) -> FieldMismatch | None:
    profile_differs = profile is not None and not same(expected, profile_value)
    member_differs = member is not None and not same(expected, member_value)
    if not (profile_differs or member_differs):
        return None
    return FieldMismatch(
        identity_id=identity.id,
        field=field,
        expected=expected,
        profile_id=profile.id if profile else None,
        profile_value=profile_value,
        profile_differs=profile_differs,
        member_id=member.id if member else None,
        member_value=member_value,
        member_differs=member_differs,
    )


def _same_email(expected: str, actual: str | None) -> bool:
    return actual is not None and expected.strip().lower() == actual.strip().lower()


def _same_name(expected: str, actual: str | None) -> bool:
    return normalize_name(expected) == normalize_name(actual)


def _invalid_assignments(members_by_id: Mapping[str, Member]) -> tuple[InvalidAssignment, ...]:
    invalid: list[InvalidAssignment] = []
    for member in members_by_id.values():
        target = member.assigned_to_member_id
        if target is None:
            continue
        if target == member.id:
            invalid.append(
                InvalidAssignment(
                    member_id=member.id,
                    assigned_to_member_id=target,
                    defect=AssignmentDefect.SELF,
                )
            )
        elif target not in members_by_id:
            invalid.append(
                InvalidAssignment(
                    member_id=member.id,
                    assigned_to_member_id=target,
                    defect=AssignmentDefect.DANGLING,
                )
            )

    for cycle in find_assignment_cycles(members_by_id):
        for member_id in cycle:
            invalid.append(
                InvalidAssignment(
                    member_id=member_id,
                    assigned_to_member_id=members_by_id[member_id].assigned_to_member_id or "",
                    defect=AssignmentDefect.CYCLE,
                    cycle=cycle,
                )
            )

    return tuple(sorted(invalid, key=lambda item: (item.member_id, item.defect)))


def find_assignment_cycles(members_by_id: Mapping[str, Member]) -> list[tuple[str, ...]]:
    """Return assignment cycles of two or more members.

    Each cycle is rotated to start at its lowest id. Assignments form a
    functional graph (one outgoing edge per member), so a visited-set walk
    from every unvisited member finds each cycle exactly once.
    """

    done: set[str] = set()
    cycles: list[tuple[str, ...]] = []
    for start in sorted(members_by_id):
        path: list[str] = []
        position: dict[str, int] = {}
        node: str | None = start
        while node is not None and node in members_by_id and node not in done:
            if node in position:
                cycle = path[position[node] :]
                if len(cycle) > 1:
                    pivot = cycle.index(min(cycle))
                    cycles.append(tuple(cycle[pivot:] + cycle[:pivot]))
                break
            position[node] = len(path)
            path.append(node)
            node = members_by_id[node].assigned_to_member_id
        done.update(path)
    return sorted(cycles)
