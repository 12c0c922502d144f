"""
Atomic unit-of-work runner for stock-affecting operations.

Runs a unit of work inside one database transaction, retries it when a
concurrent stock modification is detected, and maps store failures onto the
application error taxonomy.
"""
import logging
import time
from typing import Any, Callable, Iterable, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pos.utils.metrics import record_operation, record_retry
from pos.exceptions import (
    PosError, StockConflictError, StoreUnavailableError, PartialWriteFailureError, ValidationError,
)

logger = logging.getLogger(__name__)


def config_value(key: str, default: Any) -> Any:
    """Read a config value, falling back to ``default`` outside an app context."""
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _invalid_data(operation: str, error: DBAPIError) -> ValidationError:
    """Map a constraint violation or out-of-range value to a non-retryable ValidationError."""
    logger.warning(f"[{operation}] Rejected by the store: {error.orig}")
    record_operation(operation, 'invalid')
    return ValidationError('Los datos no cumplen las restricciones del almacenamiento')


def run_atomic(
    session: Session,
    work: Callable[[], Any],
    operation: str,
    max_attempts: Optional[int] = None,
    backoff: Optional[float] = None,
    after_commit: Iterable[Callable[[Any], None]] = (),
) -> Any:
    """
    Run ``work`` and commit it as a single transaction.

    Args:
        session: SQLAlchemy session; must not hold unrelated pending changes
        work: callable doing every read-validate-write step; its return value is returned
        operation: name used in logs and metrics (e.g. 'process_sale')
        max_attempts: attempts on StockConflictError (default PIPELINE_MAX_ATTEMPTS)
        backoff: base seconds between attempts, doubled each retry
        after_commit: best-effort callbacks receiving the result; failures are logged only

    Raises:
        PosError subclasses raised by ``work`` (after rollback)
        StockConflictError: when every attempt hit a concurrent modification
        ValidationError: when the store rejects the data (constraint or column limits)
        StoreUnavailableError: on connectivity errors before commit
        PartialWriteFailureError: when the connection dropped during commit
    """
    if max_attempts is None:
        max_attempts = config_value('PIPELINE_MAX_ATTEMPTS', 3)
    if backoff is None:
        backoff = config_value('PIPELINE_RETRY_BACKOFF', 0.05)
    max_attempts = max(1, int(max_attempts))

    attempt = 0
    while True:
        attempt += 1
        try:
            result = work()
            session.flush()
        except (StaleDataError, StockConflictError) as e:
            session.rollback()
            if attempt >= max_attempts:
                logger.warning(f"[{operation}] Stock conflict, giving up after {attempt} attempts: {e}")
                record_operation(operation, 'conflict')
                raise StockConflictError() from e
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(f"[{operation}] Stock conflict on attempt {attempt}/{max_attempts}, retrying in {delay:.3f}s")
            record_retry(operation)
            if delay:
                time.sleep(delay)
            continue
        except PosError:
            session.rollback()
            record_operation(operation, 'rejected')
            raise
        except (IntegrityError, DataError) as e:
            session.rollback()
            raise _invalid_data(operation, e) from e
        except (OperationalError, DBAPIError) as e:
            session.rollback()
            logger.error(f"[{operation}] Store error before commit: {e}")
            record_operation(operation, 'unavailable')
            raise StoreUnavailableError() from e
        except Exception:
            session.rollback()
            raise

        try:
            session.commit()
        except (IntegrityError, DataError) as e:
            session.rollback()
            raise _invalid_data(operation, e) from e
        except (OperationalError, DBAPIError) as e:
            session.rollback()
            if getattr(e, 'connection_invalidated', False):
                logger.error(f"[{operation}] Connection lost during commit, outcome unknown: {e}")
                record_operation(operation, 'partial')
                raise PartialWriteFailureError(payload={'operation': operation}) from e
            logger.error(f"[{operation}] Commit failed: {e}")
            record_operation(operation, 'unavailable')
            raise StoreUnavailableError() from e

        record_operation(operation, 'committed')
        for callback in after_commit:
            try:
                callback(result)
            except Exception as e:
                logger.warning(f"[{operation}] Post-commit side effect failed: {e}")
        return result
