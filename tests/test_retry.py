import sqlite3

import pytest

from identity_resolution.errors import TransientStoreError
from identity_resolution.stores.retry import run_with_retries
from identity_resolution.stores.sqlite import is_transient


def test_retries_transient_errors_with_exponential_backoff() -> None:
    calls = []
    sleeps = []

    def flaky() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise sqlite3.OperationalError("database is locked")
        return "ok"

    result = run_with_retries(
        flaky, label="write", is_transient=is_transient, retries=3, backoff_seconds=0.5, sleep=sleeps.append
    )

    assert result == "ok"
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_exhausted_retries_raise_transient_store_error() -> None:
    sleeps = []

    def always_busy() -> None:
        raise sqlite3.OperationalError("database is busy")

    with pytest.raises(TransientStoreError) as excinfo:
        run_with_retries(always_busy, label="swap", is_transient=is_transient, retries=2, sleep=sleeps.append)

    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
    assert "3 attempts" in str(excinfo.value)
    assert len(sleeps) == 2


def test_non_transient_errors_propagate_immediately() -> None:
    calls = []

    def broken() -> None:
        calls.append(1)
        raise sqlite3.OperationalError("no such table: person")

    with pytest.raises(sqlite3.OperationalError):
        run_with_retries(broken, label="read", is_transient=is_transient, sleep=lambda _: None)

    assert len(calls) == 1
