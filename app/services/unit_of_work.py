"""
Transaction boundary for service-layer writes.

Every mutating service function wraps its reads-for-update and writes
in ``unit_of_work()`` so the device row, the request row and the audit
entry are committed together or not at all::

    with unit_of_work("approve request 12"):
        ...  # flushes, locks, updates
    # committed here

Domain errors raised inside the block roll the session back and
propagate unchanged.  Database errors roll back and surface as
``StorageError`` so callers can tell "retry may help" apart from
business-rule failures.  Nothing here retries.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from app.exceptions import StorageError
from app.extensions import db

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(operation: str):
    """
    Run the enclosed block as one database transaction.

    Args:
        operation: Short description used in log messages and in the
                   ``StorageError`` detail.

    Raises:
        StorageError: If SQLAlchemy raises while the block runs or
                      while committing.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Storage failure during %s; transaction rolled back", operation)
        raise StorageError(
            f"Storage failure during {operation}. No changes were saved."
        ) from exc
    except Exception:
        db.session.rollback()
        raise
