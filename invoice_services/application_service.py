"""
invoice_services.application_service -- Payment application orchestration.

Responsibility:
    Apply a payment's unapplied remainder to a set of charges: lock the
    rows, compute each charge's accrued outstanding balance, convert
    between denominations, plan the walk with PaymentApplicationEngine and
    persist the result.

Architecture position:
    Services -- orchestration over engines + kernel.  Flushes within the
    caller's transaction; the caller commits.

Invariants enforced:
    - No charge is ever applied past its accrued outstanding balance.  The
      excess stays unapplied on the payment for a later call.
    - Inactive charges are treated as having nothing outstanding.
    - Lost updates are impossible: charges are locked (FOR UPDATE where
      supported) and each touched charge's version is compared-and-swapped.
    - Write-offs (from account == to account) use the identity conversion.
    - Strict mode refuses before anything is written.

Failure modes:
    - PaymentInactiveError, NoOutstandingChargesError,
      UnderfundedApplicationError, OptimisticLockError,
      ConversionRateNotFoundError.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy.orm import Session

from invoice_engines.application import ApplicationTarget, PaymentApplicationEngine
from invoice_kernel.domain.dtos import ChargeInfo, PaymentApplicationInfo
from invoice_kernel.domain.values import ApplicationOrder
from invoice_kernel.exceptions import PaymentInactiveError
from invoice_kernel.logging_config import LogContext, get_logger
from invoice_kernel.models.entity import Account
from invoice_kernel.services.charge_service import ChargeService
from invoice_kernel.services.payment_service import PaymentService
from invoice_services.outstanding_service import OutstandingService

logger = get_logger("services.application")


class PaymentApplicationService:
    """Persisted payment application."""

    def __init__(
        self,
        session: Session,
        outstanding: OutstandingService,
        engine: PaymentApplicationEngine | None = None,
    ):
        self.session = session
        self.outstanding = outstanding
        self.engine = engine or PaymentApplicationEngine()
        self._charges = ChargeService(session)
        self._payments = PaymentService(session)

    def apply(
        self,
        payment: Any,
        charges: Iterable[Any],
        order: ApplicationOrder | str,
        as_of: int,
        require_full: bool = False,
    ) -> list[PaymentApplicationInfo]:
        """
        Apply what is left of ``payment`` to ``charges``.

        Args:
            payment: Payment reference.
            charges: Candidate charges; order is decided by ``order``.
            order: FIFO or LIFO by due date.
            as_of: Application date; balances are evaluated at this instant.
            require_full: Refuse unless every charge can be satisfied.
        """
        order = ApplicationOrder.parse(order)
        payment_row = self._payments.lock(payment)
        if not payment_row.active:
            raise PaymentInactiveError(payment_row.id)

        with LogContext.bind(payment_id=payment_row.id):
            charge_rows = self._charges.lock(charges)
            versions = {row.id: row.version for row in charge_rows}
            infos = [ChargeInfo.from_model(row) for row in charge_rows]
            balances = self.outstanding.accrued_many(infos, as_of, include_later_applications=True)

            source_denomination = self.session.get(Account, payment_row.from_account_id).denomination_id
            targets = []
            for info in infos:
                owed = balances[info.id] if info.active else 0
                if payment_row.is_writeoff or owed == 0:
                    numerator, denominator = 1, 1
                else:
                    numerator, denominator = self.outstanding.conversion.factor(
                        source_denomination,
                        info.denomination_id,
                        self.outstanding.unit_of_account,
                        as_of,
                    )
                targets.append(
                    ApplicationTarget(
                        charge_id=info.id,
                        due_date=info.due_date,
                        outstanding=owed,
                        numerator=numerator,
                        denominator=denominator,
                    )
                )

            available = payment_row.amount - self._payments.applied_total(payment_row.id)
            plan = self.engine.plan(
                amount=available,
                targets=targets,
                order=order,
                require_full=require_full,
                payment_id=payment_row.id,
            )

            applications = self._payments.record_applications(payment_row.id, plan.lines, as_of)
            for line in plan.lines:
                self._charges.bump_version(line.charge_id, versions[line.charge_id])

            logger.info(
                "payment_application_completed",
                extra={
                    "order": order.value,
                    "charges_touched": len(plan.lines),
                    "consumed": plan.consumed,
                    "unapplied": plan.unapplied,
                    "is_writeoff": payment_row.is_writeoff,
                },
            )
        return applications
