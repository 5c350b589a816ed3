from __future__ import annotations

import random
from collections.abc import Callable  # noqa: TC003

from rollcall.domain.model import Identity, Member, Profile
from rollcall.domain.reconciliation import (
    AssignmentDefect,
    FindingCategory,
    MismatchField,
    StoreSnapshot,
    audit,
    find_assignment_cycles,
)

from tests.helpers.records import T0


def _snapshot(
    identities: list[Identity] | None = None,
    profiles: list[Profile] | None = None,
    members: list[Member] | None = None,
) -> StoreSnapshot:
    return StoreSnapshot(
        identities=tuple(identities or ()),
        profiles=tuple(profiles or ()),
        members=tuple(members or ()),
        token="snap",
        taken_at=T0,
    )


def test_identity_without_profile_or_member(identity: Callable[..., Identity]) -> None:
    report = audit(_snapshot([identity("u1", "a@x.com")]))

    assert [item.id for item in report.identities_without_profile] == ["u1"]
    assert [item.id for item in report.identities_without_member] == ["u1"]
    assert report.token == "snap"


def test_member_found_by_email_counts_as_present(
    identity: Callable[..., Identity],
    member: Callable[..., Member],
) -> None:
    report = audit(_snapshot([identity("u1", "A@X.com")], members=[member("m1", "a@x.com ")]))

    assert report.identities_without_member == ()
    assert report.members_unlinked == ()
    linkable = [(c.member.id, c.identity.id) for c in report.members_linkable_by_email]
    assert linkable == [("m1", "u1")]


def test_duplicate_email_group_keeps_oldest(
    identity: Callable[..., Identity],
    member: Callable[..., Member],
) -> None:
    m1 = member("m1", "b@x.com", minutes=0, phone="555", linked_identity_id="u1")
    m2 = member("m2", "B@x.com", minutes=5, linked_identity_id="u1")
    dependent = member("m3", "c@x.com", minutes=9, assigned_to_member_id="m2")

    report = audit(_snapshot([identity("u1", "b@x.com")], members=[m2, dependent, m1]))

    (group,) = report.members_duplicate_email
    assert group.keeper.id == "m1"
    assert group.duplicate_ids == ("m2",)
    assert group.dependent_member_ids == ("m3",)


def test_duplicate_keeper_ties_break_on_lowest_id(member: Callable[..., Member]) -> None:
    report = audit(_snapshot(members=[member("m9", "d@x.com"), member("m2", "d@x.com")]))

    (group,) = report.members_duplicate_email
    assert group.keeper.id == "m2"


def test_member_whose_email_will_be_corrected_joins_that_group(
    identity: Callable[..., Identity],
    member: Callable[..., Member],
) -> None:
    report = audit(
        _snapshot(
            [identity("u1", "a@x.com")],
            members=[
                member("m1", "old@x.com", minutes=0, linked_identity_id="u1"),
                member("m2", "a@x.com", minutes=5),
            ],
        )
    )

    (group,) = report.members_duplicate_email
    assert group.email == "a@x.com"
    assert group.keeper.id == "m1"
    assert group.duplicate_ids == ("m2",)
    (mismatch,) = report.field_mismatches
    assert mismatch.member_id == "m1"
    assert mismatch.member_differs
    assert report.identities_without_member == ()
    assert report.members_linkable_by_email == ()


def test_assignments_into_duplicates_resolve_to_final_keepers(
    member: Callable[..., Member],
) -> None:
    report = audit(
        _snapshot(
            members=[
                member("k1", "a@x.com", minutes=0),
                member("d1", "a@x.com", minutes=5, assigned_to_member_id="d2"),
                member("k2", "b@x.com", minutes=0),
                member("d2", "b@x.com", minutes=5, assigned_to_member_id="k2"),
                member("m5", "c@x.com", minutes=0, assigned_to_member_id="d1"),
            ]
        )
    )

    first, second = report.members_duplicate_email
    assert first.keeper.id == "k1"
    assert first.inherited_assignment == "k2"
    assert first.repoints == (("m5", "k1"),)
    assert second.keeper.id == "k2"
    # k2 would point at itself
    assert second.inherited_assignment is None
    assert second.repoints == ()


def test_orphaned_profiles_and_members(
    identity: Callable[..., Identity],
    profile: Callable[..., Profile],
    member: Callable[..., Member],
) -> None:
    report = audit(
        _snapshot(
            [identity("u1", "a@x.com")],
            profiles=[profile("u1", "a@x.com"), profile("orphan1")],
            members=[
                member("m1", "a@x.com", linked_identity_id="u1"),
                member("m2", "gone@x.com", linked_identity_id="deleted"),
                member("m3", "nobody@x.com"),
            ],
        )
    )

    assert [item.id for item in report.profiles_orphaned] == ["orphan1"]
    assert [item.id for item in report.members_orphaned] == ["m2"]
    assert [item.id for item in report.members_unlinked] == ["m3"]


def test_field_mismatches_take_identity_as_truth(
    identity: Callable[..., Identity],
    profile: Callable[..., Profile],
    member: Callable[..., Member],
) -> None:
    report = audit(
        _snapshot(
            [identity("u1", "ada@x.com", full_name="Ada  Lovelace")],
            profiles=[profile("u1", "ADA@x.com", full_name="Ada Lovelace")],
            members=[member("m1", "old@x.com", linked_identity_id="u1", full_name="Ada L.")],
        )
    )

    by_field = {mismatch.field: mismatch for mismatch in report.field_mismatches}
    email = by_field[MismatchField.EMAIL]
    assert not email.profile_differs  # case only
    assert email.member_differs
    assert email.member_value == "old@x.com"
    name = by_field[MismatchField.FULL_NAME]
    assert not name.profile_differs  # whitespace only
    assert name.member_differs
    assert name.expected == "Ada Lovelace"


def test_names_are_not_compared_without_identity_metadata(
    identity: Callable[..., Identity],
    profile: Callable[..., Profile],
) -> None:
    report = audit(
        _snapshot([identity("u1", "a@x.com")], profiles=[profile("u1", "a@x.com", full_name="X")])
    )

    assert report.field_mismatches == ()


def test_invalid_assignments(member: Callable[..., Member]) -> None:
    members = [
        member("a", "a@x.com", assigned_to_member_id="b"),
        member("b", "b@x.com", assigned_to_member_id="c"),
        member("c", "c@x.com", assigned_to_member_id="a"),
        member("d", "d@x.com", assigned_to_member_id="d"),
        member("e", "e@x.com", assigned_to_member_id="missing"),
        member("f", "f@x.com", assigned_to_member_id="a"),
    ]

    report = audit(_snapshot(members=members))

    defects = {(item.member_id, item.defect) for item in report.invalid_assignments}
    assert defects == {
        ("a", AssignmentDefect.CYCLE),
        ("b", AssignmentDefect.CYCLE),
        ("c", AssignmentDefect.CYCLE),
        ("d", AssignmentDefect.SELF),
        ("e", AssignmentDefect.DANGLING),
    }
    cycles = {item.cycle for item in report.invalid_assignments if item.cycle}
    assert cycles == {("a", "b", "c")}


def test_cycles_are_rotated_to_lowest_id(member: Callable[..., Member]) -> None:
    members = {
        "z": member("z", None, assigned_to_member_id="y"),
        "y": member("y", None, assigned_to_member_id="z"),
        "x": member("x", None, assigned_to_member_id="x"),
    }

    assert find_assignment_cycles(members) == [("y", "z")]


def test_report_is_independent_of_store_order(
    identity: Callable[..., Identity],
    profile: Callable[..., Profile],
    member: Callable[..., Member],
) -> None:
    identities = [identity(f"u{i}", f"user{i}@x.com", full_name=f"User {i}") for i in range(6)]
    profiles = [profile(f"u{i}", f"user{i}@x.com") for i in range(0, 6, 2)] + [profile("p-orphan")]
    members = [
        member(f"m{i}", f"user{i % 4}@x.com", minutes=i, assigned_to_member_id=f"m{(i + 1) % 7}")
        for i in range(7)
    ]
    rng = random.Random(7)
    shuffled = [list(items) for items in (identities, profiles, members)]
    for items in shuffled:
        rng.shuffle(items)

    first = audit(_snapshot(identities, profiles, members))
    second = audit(_snapshot(*shuffled))

    assert first == second


def test_counts_cover_every_category(identity: Callable[..., Identity]) -> None:
    report = audit(_snapshot([identity("u1", "a@x.com")]))

    counts = report.counts()
    assert set(counts) == set(FindingCategory)
    assert counts[FindingCategory.IDENTITIES_WITHOUT_PROFILE] == 1
    assert report.total_findings == 2
    assert not report.is_clean()
    assert report.is_clean(frozenset({FindingCategory.PROFILES_ORPHANED}))
