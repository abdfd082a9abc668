"""
Service layer for the Denomination registry.

Denominations are created once and referenced indefinitely.  ``code`` is the
natural key; once a Charge or Account uses a denomination it is frozen by the
immutability listeners.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select

from invoice_kernel.domain.dtos import DenominationInfo
from invoice_kernel.exceptions import UnknownReferenceError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.denomination import Denomination
from invoice_kernel.services.base import BaseService

logger = get_logger("services.denomination")


class DenominationService(BaseService[Denomination]):
    """Create and look up units of account."""

    def resolve(self, reference: Any) -> Denomination:
        """ORM row for an id, DTO or code string."""
        if isinstance(reference, str):
            row = self.session.execute(
                select(Denomination).where(Denomination.code == reference)
            ).scalar_one_or_none()
            if row is None:
                raise UnknownReferenceError("Denomination", reference)
            return row
        return self._load(Denomination, reference)

    def create(self, description: str, code: str, symbol: str) -> DenominationInfo:
        """
        Register a denomination.

        Raises:
            DuplicateDescriptionError: code already registered.
            ValueError: empty code.
        """
        if not code:
            raise ValueError("Denomination code is required")
        self._require_unique(Denomination, "code", code)

        denomination = Denomination(description=description, code=code, symbol=symbol)
        self.session.add(denomination)
        self._flush_unique("Denomination", "code", code)

        logger.info(
            "denomination_created",
            extra={"denomination_id": denomination.id, "code": code},
        )
        return DenominationInfo.from_model(denomination)

    def get(self, reference: Any) -> DenominationInfo:
        return DenominationInfo.from_model(self.resolve(reference))

    def find_by_code(self, code: str) -> DenominationInfo | None:
        row = self.session.execute(
            select(Denomination).where(Denomination.code == code)
        ).scalar_one_or_none()
        return DenominationInfo.from_model(row) if row is not None else None

    def list(self) -> list[DenominationInfo]:
        rows = self.session.execute(select(Denomination).order_by(Denomination.id)).scalars()
        return [DenominationInfo.from_model(row) for row in rows]
