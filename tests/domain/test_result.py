from __future__ import annotations

import pytest

from rollcall.domain.result import (
    Err,
    ErrorKind,
    Ok,
    ResultError,
    is_transient,
    not_found,
    rejected,
    transient,
)


def test_ok_unwraps_to_value() -> None:
    result = Ok(42)

    assert result.ok is True
    assert result.unwrap() == 42


def test_err_unwrap_raises_with_kind_and_detail() -> None:
    error = not_found("member m1 not found")

    assert error.ok is False
    with pytest.raises(ResultError) as excinfo:
        error.unwrap()
    assert excinfo.value.error is error
    assert "not_found" in str(excinfo.value)


def test_only_transient_errors_are_transient() -> None:
    assert is_transient(transient("timeout"))
    assert not is_transient(rejected("bad column"))
    assert not is_transient(Err(ErrorKind.NOT_FOUND, "gone"))
    assert not is_transient(Ok(None))
