"""
Unit tests for the atomic unit-of-work runner (fake session, no database).
"""

import pytest
from sqlalchemy.exc import DataError, IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from pos.exceptions import (
    InsufficientStockError, PartialWriteFailureError, StockConflictError, StoreUnavailableError, ValidationError,
)
from pos.services.transaction_service import run_atomic


class FakeSession:
    def __init__(self, commit_error=None):
        self.commit_error = commit_error
        self.flushes = 0
        self.commits = 0
        self.rollbacks = 0

    def flush(self):
        self.flushes += 1

    def commit(self):
        if self.commit_error is not None:
            raise self.commit_error
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def _failing(times, error_factory, result='ok'):
    calls = {'n': 0}

    def work():
        calls['n'] += 1
        if calls['n'] <= times:
            raise error_factory()
        return result
    return work, calls


def test_commits_once_on_success():
    session = FakeSession()
    assert run_atomic(session, lambda: 42, 'test', backoff=0) == 42
    assert session.commits == 1
    assert session.rollbacks == 0


def test_retries_on_stale_data_then_succeeds():
    session = FakeSession()
    work, calls = _failing(2, lambda: StaleDataError('version mismatch'))
    assert run_atomic(session, work, 'test', max_attempts=3, backoff=0) == 'ok'
    assert calls['n'] == 3
    assert session.rollbacks == 2
    assert session.commits == 1


def test_gives_up_after_max_attempts():
    session = FakeSession()
    work, calls = _failing(10, lambda: StockConflictError())
    with pytest.raises(StockConflictError):
        run_atomic(session, work, 'test', max_attempts=3, backoff=0)
    assert calls['n'] == 3
    assert session.commits == 0


def test_validation_error_is_not_retried():
    session = FakeSession()
    work, calls = _failing(1, lambda: InsufficientStockError(1, 0, 1))
    with pytest.raises(InsufficientStockError):
        run_atomic(session, work, 'test', backoff=0)
    assert calls['n'] == 1
    assert session.rollbacks == 1
    assert session.commits == 0


def test_operational_error_maps_to_store_unavailable():
    session = FakeSession()
    work, _ = _failing(1, lambda: OperationalError('SELECT 1', {}, Exception('timeout')))
    with pytest.raises(StoreUnavailableError) as exc:
        run_atomic(session, work, 'test', backoff=0)
    assert exc.value.retryable


def test_connection_lost_during_commit_is_partial_write():
    error = OperationalError('COMMIT', {}, Exception('server closed the connection'), connection_invalidated=True)
    session = FakeSession(commit_error=error)
    with pytest.raises(PartialWriteFailureError):
        run_atomic(session, lambda: 'ok', 'test', backoff=0)


def test_commit_failure_without_connection_loss_is_unavailable():
    session = FakeSession(commit_error=OperationalError('COMMIT', {}, Exception('lock timeout')))
    with pytest.raises(StoreUnavailableError):
        run_atomic(session, lambda: 'ok', 'test', backoff=0)


def test_after_commit_failures_are_swallowed():
    seen = []

    def broken(result):
        raise RuntimeError('redis down')

    result = run_atomic(FakeSession(), lambda: 'sale', 'test', backoff=0,
                        after_commit=[broken, seen.append])
    assert result == 'sale'
    assert seen == ['sale']


def test_constraint_violation_on_flush_is_a_validation_error():
    session = FakeSession()
    work, calls = _failing(1, lambda: IntegrityError('INSERT', {}, Exception('CHECK constraint failed')))
    with pytest.raises(ValidationError) as exc:
        run_atomic(session, work, 'test', backoff=0)
    assert not isinstance(exc.value, StoreUnavailableError)
    assert not exc.value.retryable
    assert exc.value.status_code == 400
    assert calls['n'] == 1
    assert session.rollbacks == 1
    assert session.commits == 0


def test_value_too_long_on_commit_is_a_validation_error():
    session = FakeSession(commit_error=DataError('UPDATE', {}, Exception('value too long for type character varying(100)')))
    with pytest.raises(ValidationError) as exc:
        run_atomic(session, lambda: 'ok', 'test', backoff=0)
    assert not exc.value.retryable
    assert session.rollbacks == 1
