from __future__ import annotations

from collections.abc import Callable  # noqa: TC003

import pytest

from rollcall.adapters.memory import InMemoryStores
from rollcall.domain.model import Identity, Member, Profile
from rollcall.domain.reconciliation import ReconciliationEngine, WriteRetryPolicy
from rollcall.domain.result import Err, transient
from tests.helpers.records import T0, FlakyStore, at


@pytest.fixture
def fast_retry() -> WriteRetryPolicy:
    return WriteRetryPolicy(
        attempts=3,
        initial_backoff_seconds=0.0,
        max_backoff_seconds=0.0,
        jitter_seconds=0.0,
        timeout_seconds=1.0,
    )


@pytest.fixture
def identity() -> Callable[..., Identity]:
    def build(identity_id: str, email: str, **metadata: str) -> Identity:
        return Identity(
            id=identity_id,
            email=email,
            email_confirmed=True,
            created_at=T0,
            metadata=metadata,
        )

    return build


@pytest.fixture
def member() -> Callable[..., Member]:
    def build(member_id: str, email: str | None, *, minutes: int = 0, **fields: object) -> Member:
        values: dict[str, object] = {
            "id": member_id,
            "email": email,
            "full_name": fields.pop("full_name", ""),
            "created_at": at(minutes),
            "updated_at": at(minutes),
        }
        values.update(fields)
        return Member(**values)  # type: ignore[arg-type]

    return build


@pytest.fixture
def profile() -> Callable[..., Profile]:
    def build(profile_id: str, email: str | None = None, **fields: object) -> Profile:
        return Profile(id=profile_id, email=email, updated_at=T0, **fields)  # type: ignore[arg-type]

    return build


@pytest.fixture
def engine_for(fast_retry: WriteRetryPolicy) -> Callable[[InMemoryStores], ReconciliationEngine]:
    def build(stores: InMemoryStores) -> ReconciliationEngine:
        return ReconciliationEngine(stores=stores.as_ports(), retry=fast_retry)

    return build


@pytest.fixture
def flaky() -> type[FlakyStore[object]]:
    return FlakyStore


@pytest.fixture
def transient_error() -> Err:
    return transient("503 from upstream")
