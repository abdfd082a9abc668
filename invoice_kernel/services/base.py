"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  All concrete services inherit
    from BaseService, receiving a SQLAlchemy ``Session`` that they use
    via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back themselves.  The caller
      (LedgerStore.session_scope(), the Ledger facade, or a test harness)
      owns commit/rollback, which is what makes a payment and all of its
      applications land atomically.
    - Reference resolution: a missing foreign-key target is reported as
      UnknownReferenceError before anything is inserted.
    - Uniqueness: a unique column is checked before insert, and an
      IntegrityError from a concurrent double submit is translated into the
      same DuplicateDescriptionError on flush.
"""

from abc import ABC
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from invoice_kernel.db.base import Base
from invoice_kernel.domain.references import ref_id
from invoice_kernel.exceptions import DuplicateDescriptionError, UnknownReferenceError

ModelType = TypeVar("ModelType", bound=Base)


def _is_unique_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "unique" in message or "uq_" in message or "duplicate" in message


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        self.session = session

    def _load(self, model: type[Base], reference: Any) -> Any:
        """Row by primary key, or UnknownReferenceError."""
        row_id = ref_id(reference)
        row = self.session.get(model, row_id)
        if row is None:
            raise UnknownReferenceError(model.__name__, str(row_id))
        return row

    def _require_unique(self, model: type[Base], field: str, value: str) -> None:
        column = getattr(model, field)
        existing = self.session.execute(
            select(model.id).where(column == value)
        ).first()
        if existing is not None:
            raise DuplicateDescriptionError(model.__name__, field, value)

    def _flush_unique(self, entity_type: str, field: str, value: str) -> None:
        """Flush, translating a unique-constraint race into DuplicateDescriptionError."""
        try:
            self.session.flush()
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise DuplicateDescriptionError(entity_type, field, value) from exc
            raise
