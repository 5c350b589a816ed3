from __future__ import annotations

import pytest

from rollcall.domain.model import Member
from rollcall.domain.ports import PageRequest, eq, escape_like, ilike, in_, is_null, neq


@pytest.fixture
def sample() -> Member:
    return Member(id="m1", email="Ada_L@Example.com", linked_identity_id=None, category="Workers")


def test_eq_and_neq_follow_sql_null_semantics(sample: Member) -> None:
    assert eq("category", "Workers").matches(sample)
    assert not eq("linked_identity_id", None).matches(sample)
    assert neq("category", "Members").matches(sample)
    # NULL is neither equal nor unequal
    assert not neq("linked_identity_id", "u1").matches(sample)


def test_is_null_and_in(sample: Member) -> None:
    assert is_null("linked_identity_id").matches(sample)
    assert not is_null("email").matches(sample)
    assert in_("id", ["m0", "m1"]).matches(sample)
    assert not in_("id", []).matches(sample)


def test_ilike_is_case_insensitive_and_escapes_wildcards(sample: Member) -> None:
    assert ilike("email", "ada%").matches(sample)
    assert ilike("email", escape_like("ada_l@example.com")).matches(sample)
    assert not ilike("email", escape_like("adaXl@example.com")).matches(sample)
    assert ilike("email", "ada_l@example.com").matches(
        Member(id="m2", email="adaXl@example.com")
    )


def test_predicates_combine_as_conjunction(sample: Member) -> None:
    predicate = eq("category", "Workers") & is_null("linked_identity_id")

    assert predicate.matches(sample)
    assert predicate.fields == frozenset({"category", "linked_identity_id"})
    assert not (predicate & eq("id", "other")).matches(sample)


def test_page_request_offsets_and_validation() -> None:
    page = PageRequest(number=3, size=20)

    assert page.offset == 40
    assert page.next() == PageRequest(number=4, size=20)
    with pytest.raises(ValueError, match="start at 1"):
        PageRequest(number=0)
    with pytest.raises(ValueError, match="positive"):
        PageRequest(size=0)
