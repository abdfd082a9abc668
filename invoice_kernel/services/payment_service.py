"""
Service layer for payments and the payment application trail.

Responsibility:
    Record payments between accounts (or write-offs, when source and
    destination coincide) and persist the application lines computed by
    the payment application engine.

Invariants enforced:
    - Payment.description is unique (double-submit guard).
    - The total drawn by a payment's applications never exceeds its amount;
      a payment can be applied in several calls until nothing is left.
    - Rows are append-only; only ``active`` changes after insert.
    - A deactivated payment cannot be applied further.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol

from sqlalchemy import func, select

from invoice_kernel.domain.dtos import PaymentApplicationInfo, PaymentInfo
from invoice_kernel.domain.references import ref_id
from invoice_kernel.exceptions import (
    PaymentInactiveError,
    UnderfundedApplicationError,
    UnknownReferenceError,
)
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.entity import Account
from invoice_kernel.models.payment import Payment, PaymentApplication
from invoice_kernel.services.base import BaseService

logger = get_logger("services.payment")


class ApplicationLineLike(Protocol):
    charge_id: int
    amount: int
    source_amount: int


class PaymentService(BaseService[Payment]):

    def check_new_payment(self, description: str, amount: int) -> None:
        """
        Refuse a payment that record_payment would refuse, without writing.

        Raises:
            DuplicateDescriptionError: description already used.
            ValueError: description empty or amount not a positive integer.
        """
        if not description:
            raise ValueError("Payment description is required")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"Payment amount must be a positive integer of minor units: {amount!r}")
        self._require_unique(Payment, "description", description)

    def record_payment(
        self,
        description: str,
        amount: int,
        from_account: Any,
        to_account: Any,
        date: int,
    ) -> PaymentInfo:
        """
        Insert a Payment row.  Application is a separate step.

        Raises:
            DuplicateDescriptionError: description already used.
            UnknownReferenceError: either account is missing.
            ValueError: amount is not a positive integer.
        """
        self.check_new_payment(description, amount)
        source = self._load(Account, from_account)
        destination = self._load(Account, to_account)

        payment = Payment(
            from_account_id=source.id,
            to_account_id=destination.id,
            description=description,
            date=int(date),
            amount=amount,
            active=True,
        )
        self.session.add(payment)
        self._flush_unique("Payment", "description", description)

        logger.info(
            "payment_recorded",
            extra={
                "payment_id": payment.id,
                "amount": amount,
                "from_account_id": source.id,
                "to_account_id": destination.id,
                "is_writeoff": payment.is_writeoff,
            },
        )
        return self._info(payment)

    def _info(self, row: Payment) -> PaymentInfo:
        return PaymentInfo(
            id=row.id,
            from_account_id=row.from_account_id,
            to_account_id=row.to_account_id,
            description=row.description,
            date=row.date,
            amount=row.amount,
            active=row.active,
            applied=self.applied_total(row.id),
        )

    def lock(self, payment: Any) -> Payment:
        """Lock the payment row for update."""
        payment_id = ref_id(payment)
        row = self.session.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise UnknownReferenceError("Payment", str(payment_id))
        return row

    def applied_total(self, payment: Any) -> int:
        """What the payment's applications have drawn, in its own denomination."""
        return self.session.execute(
            select(func.coalesce(func.sum(PaymentApplication.source_amount), 0))
            .where(PaymentApplication.payment_id == ref_id(payment))
        ).scalar_one()

    def unapplied(self, payment: Any) -> int:
        row = self._load(Payment, payment)
        return row.amount - self.applied_total(row.id)

    def record_applications(
        self,
        payment: Any,
        lines: Iterable[ApplicationLineLike],
        date: int,
    ) -> list[PaymentApplicationInfo]:
        """
        Insert one PaymentApplication per line.

        Raises:
            PaymentInactiveError: the payment is deactivated.
            UnderfundedApplicationError: lines draw more than is unapplied.
        """
        row = self.lock(payment)
        if not row.active:
            raise PaymentInactiveError(row.id)

        lines = list(lines)
        available = row.amount - self.applied_total(row.id)
        drawn = sum(line.source_amount for line in lines)
        if drawn > available:
            raise UnderfundedApplicationError(row.id, drawn, available)

        applications = [
            PaymentApplication(
                charge_id=line.charge_id,
                payment_id=row.id,
                amount=line.amount,
                source_amount=line.source_amount,
                date=int(date),
                active=True,
            )
            for line in lines
        ]
        self.session.add_all(applications)
        self.session.flush()

        logger.info(
            "payment_applied",
            extra={
                "payment_id": row.id,
                "charge_ids": [a.charge_id for a in applications],
                "applied": sum(a.amount for a in applications),
                "drawn": drawn,
                "unapplied": available - drawn,
            },
        )
        return [PaymentApplicationInfo.from_model(a) for a in applications]

    def set_active(self, payment: Any, active: bool) -> PaymentInfo:
        """
        Activate or deactivate a payment.  Idempotent.

        Applications stay as history either way; while the payment is
        inactive they no longer count against their charges.
        """
        row = self.lock(payment)
        if row.active != active:
            row.active = active
            self.session.flush()
            logger.info(
                "payment_activated" if active else "payment_deactivated",
                extra={"payment_id": row.id},
            )
        return self._info(row)
