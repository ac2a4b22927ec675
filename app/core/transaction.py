"""All-or-nothing unit of work over a SQLAlchemy session."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import HintcoreException, TransactionException
from app.core.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def transaction(db: Session, operation: str = "operation") -> Iterator[Session]:
    """
    Commit every write made inside the block, or none of them.

    Repositories only flush; this is the single place that commits. Domain
    exceptions propagate unchanged after rollback. Database errors are
    wrapped in TransactionException so the client is told to retry.

    Usage:
        with transaction(self.db, "create group"):
            self.user_repo.create(user)
            self.group_repo.create(group)
    """
    try:
        yield db
        db.commit()
    except HintcoreException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Transaction for %s rolled back", operation)
        raise TransactionException(
            f"Could not complete {operation}; no changes were saved. Please retry."
        ) from e
    except Exception:
        db.rollback()
        logger.exception("Transaction for %s rolled back", operation)
        raise
