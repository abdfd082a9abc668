"""
Module: invoice_kernel.selectors.payment_selector
Responsibility: Read access to payments and their application trail.
Architecture position: Kernel > Selectors.  Read-only.

An entity's payments are the payments drawn from any of its accounts,
write-offs included.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from invoice_kernel.domain.dtos import PaymentApplicationInfo, PaymentInfo
from invoice_kernel.domain.references import ref_id
from invoice_kernel.exceptions import UnknownReferenceError
from invoice_kernel.models.entity import Account
from invoice_kernel.models.payment import Payment, PaymentApplication
from invoice_kernel.selectors.base import BaseSelector


class PaymentSelector(BaseSelector[Payment]):

    def get(self, payment: Any) -> PaymentInfo:
        payment_id = ref_id(payment)
        row = self.session.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .options(selectinload(Payment.applications))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise UnknownReferenceError("Payment", str(payment_id))
        return PaymentInfo.from_model(row)

    def payments(self, entity: Any = None, active_only: bool = False) -> list[PaymentInfo]:
        """Payments ordered by id, optionally those made from an entity's accounts."""
        stmt = (
            select(Payment)
            .options(selectinload(Payment.applications))
            .execution_options(populate_existing=True)
            .order_by(Payment.id)
        )
        if entity is not None:
            stmt = stmt.where(
                Payment.from_account_id.in_(
                    select(Account.id).where(Account.entity_id == ref_id(entity))
                )
            )
        if active_only:
            stmt = stmt.where(Payment.active.is_(True))
        return [PaymentInfo.from_model(row) for row in self.session.execute(stmt).scalars()]

    def applications(
        self,
        payment: Any = None,
        charge: Any = None,
        active_only: bool = False,
    ) -> list[PaymentApplicationInfo]:
        """The application trail, by payment, by charge, or both."""
        stmt = select(PaymentApplication).order_by(PaymentApplication.id)
        if payment is not None:
            stmt = stmt.where(PaymentApplication.payment_id == ref_id(payment))
        if charge is not None:
            stmt = stmt.where(PaymentApplication.charge_id == ref_id(charge))
        if active_only:
            stmt = stmt.where(PaymentApplication.active.is_(True))
        return [
            PaymentApplicationInfo.from_model(row)
            for row in self.session.execute(stmt).scalars()
        ]
