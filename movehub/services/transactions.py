"""
Transaction helpers shared by the workflow services.
"""
from contextlib import contextmanager
from typing import Optional, Type, TypeVar

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ConflictError, NotFoundError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def is_unique_violation(exc: IntegrityError) -> bool:
    # 23505 is unique_violation on PostgreSQL; SQLite only reports it in the message
    if getattr(exc.orig, "pgcode", None) == "23505":
        return True
    return "unique constraint" in str(exc.orig).lower()


@contextmanager
def atomic(db: Session, conflict_message: str = "Concurrent update conflict"):
    """
    Run one workflow operation as a single transaction.
    Commits on success, rolls back on any error; unique-index violations
    surface as ConflictError, other integrity errors propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not is_unique_violation(exc):
            logger.error("transaction_integrity_error", error=str(exc.orig))
            raise
        logger.warning("transaction_conflict", reason=conflict_message, error=str(exc.orig))
        raise ConflictError(conflict_message) from exc
    except Exception:
        db.rollback()
        raise


def get_or_404(db: Session, model: Type[T], entity_id: int, label: Optional[str] = None) -> T:
    obj = db.get(model, entity_id)
    if obj is None:
        name = label or model.__name__
        raise NotFoundError(f"{name} not found", {"id": entity_id})
    return obj


def lock_row(db: Session, model: Type[T], entity_id: int, label: Optional[str] = None) -> T:
    """
    Load a row with SELECT ... FOR UPDATE so concurrent writers on the same
    entity serialize (no-op on SQLite, which serializes writers itself).
    """
    obj = (
        db.query(model)
        .filter(model.id == entity_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if obj is None:
        name = label or model.__name__
        raise NotFoundError(f"{name} not found", {"id": entity_id})
    return obj
