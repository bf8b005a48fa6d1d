from contextlib import contextmanager
import logging

from sqlalchemy.exc import SQLAlchemyError

from .errors import StorageError

logger = logging.getLogger(__name__)

@contextmanager
def unit_of_work(session):
    """
    Runs a block of writes and commits it.

    Any SQLAlchemy failure rolls the session back and is re-raised as a
    StorageError so callers see one error type for the store.
    """
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Storage write failed: %s", e)
        raise StorageError(f"Storage write failed: {e}") from e

@contextmanager
def reading(session):
    """Wraps reads so store failures surface as StorageError."""
    try:
        yield session
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Storage read failed: %s", e)
        raise StorageError(f"Storage read failed: {e}") from e
