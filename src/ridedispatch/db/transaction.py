"""Transaction utilities for explicit transaction boundaries.

This module provides a context manager for managing database transactions
with automatic commit/rollback semantics to prevent partial state updates.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Context manager for explicit transaction boundaries.

    Commits on successful completion, rolls back on any exception.

    Example:
        with transaction(session):
            claimed = request_repo.claim(request_id, driver_id, now)
            if claimed:
                ride_repo.create(ride)
        # Automatic commit if no exception, rollback otherwise

    Args:
        session: SQLAlchemy session to manage

    Yields:
        The same session for use within the context

    Raises:
        Any exception raised within the context (after rollback)
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
