# Overview: Batch helpers around the database session; the unit of atomicity for every write.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..errors import TransportError
from ..validation import ConflictError


def run_batch(func, *, description: str = "batch"):
    """
    Execute func() and commit everything it staged as one all-or-nothing batch.

    Any exception rolls the whole batch back. Database failures (connection
    loss, lock timeouts, rejected commits) surface as TransportError so
    callers can tell them apart from business rule failures; constraint
    violations surface as ConflictError.

    NOTE: reads done inside func() are not locked. A check made on a read
    value can be stale by the time the batch commits.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"Conflicting data in {description}") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise TransportError(
            f"Failed to commit {description}",
            details={"reason": exc.__class__.__name__},
        ) from exc
    except Exception:
        db.session.rollback()
        raise


def increment(column, delta: int):
    """
    Server-side counter update expression (column = column + delta).

    Safe under concurrent writers because the addition happens inside the
    UPDATE statement, not in Python.
    """
    return column + delta
