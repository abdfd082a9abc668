"""
Module: invoice_engines.application
Responsibility:
    Plan how a payment's remaining amount is applied across a set of
    charges, in FIFO or LIFO due-date order, converting between the
    payment's and each charge's denomination.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  PaymentService turns a
    plan into PaymentApplication rows; the engine never sees the session.

Conversion:
    Each target carries an integer factor numerator/denominator such that
    ``charge_units = payment_units * numerator / denominator`` (the ratio
    of the two conversion bases).  What the remaining payment can buy is
    floored in the charge's denomination; what an application draws from
    the payment is ceiled in the payment's denomination and capped at what
    remains.  A write-off uses the identity factor.

Invariants enforced:
    - Order is deterministic: FIFO by ascending due date, LIFO by
      descending due date, ties by ascending charge id either way.
    - No target receives more than its outstanding balance.
    - consumed + unapplied == source amount.
    - Targets with nothing outstanding receive no line.

Failure modes:
    - NoOutstandingChargesError when no target has anything outstanding.
    - UnderfundedApplicationError when ``require_full`` and the payment
      cannot satisfy every target.  Raised before anything is written.
    - ValueError for a negative amount or a non-positive factor.

Usage:
    engine = PaymentApplicationEngine()
    plan = engine.plan(
        amount=9000,
        targets=[
            ApplicationTarget(charge_id=1, due_date=t1, outstanding=5000),
            ApplicationTarget(charge_id=2, due_date=t2, outstanding=7000),
        ],
        order=ApplicationOrder.FIFO,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from invoice_engines.tracer import traced_engine
from invoice_kernel.db.types import ceil_div, floor_div
from invoice_kernel.domain.values import ApplicationOrder
from invoice_kernel.exceptions import NoOutstandingChargesError, UnderfundedApplicationError
from invoice_kernel.logging_config import get_logger

logger = get_logger("engines.application")


@dataclass(frozen=True)
class ApplicationTarget:
    """
    One charge a payment may be applied to.

    ``outstanding`` is the accrued outstanding balance in the charge's
    denomination at the time of application.
    """

    charge_id: int
    due_date: int
    outstanding: int
    numerator: int = 1
    denominator: int = 1

    def __post_init__(self) -> None:
        if self.numerator <= 0 or self.denominator <= 0:
            raise ValueError(
                f"Conversion factor for charge {self.charge_id} must be positive"
            )

    def purchasable(self, payment_units: int) -> int:
        """Charge units that ``payment_units`` can satisfy, floored."""
        return floor_div(payment_units * self.numerator, self.denominator)

    def cost(self, charge_units: int) -> int:
        """Payment units needed to satisfy ``charge_units``, ceiled."""
        return ceil_div(charge_units * self.denominator, self.numerator)


@dataclass(frozen=True)
class ApplicationLine:
    """Planned application to a single charge."""

    charge_id: int
    amount: int  # charge denomination
    source_amount: int  # payment denomination
    remaining: int  # charge outstanding after this line

    @property
    def is_satisfied(self) -> bool:
        return self.remaining == 0


@dataclass(frozen=True)
class ApplicationPlan:
    """
    Complete application plan.

    Guarantees:
        - ``consumed + unapplied == source_amount``.
    """

    source_amount: int
    order: ApplicationOrder
    lines: tuple[ApplicationLine, ...]
    consumed: int
    unapplied: int

    @property
    def is_exhausted(self) -> bool:
        return self.unapplied == 0

    @property
    def charge_ids(self) -> tuple[int, ...]:
        return tuple(line.charge_id for line in self.lines)


class PaymentApplicationEngine:
    """
    Apply a payment amount sequentially across ordered charges.

    Contract:
        Pure functions, integer arithmetic only.  No I/O.
    """

    @traced_engine("payment_application", "1.0", fingerprint_fields=("amount", "targets", "order"))
    def plan(
        self,
        *,
        amount: int,
        targets: Sequence[ApplicationTarget],
        order: ApplicationOrder | str,
        require_full: bool = False,
        payment_id: int | None = None,
    ) -> ApplicationPlan:
        """
        Plan the application of ``amount`` (payment denomination) to targets.

        Args:
            amount: Unapplied payment amount available.
            targets: Charges with their current outstanding balances.
            order: FIFO or LIFO.
            require_full: Refuse unless every target can be fully satisfied.
            payment_id: Only used to label errors and log records.
        """
        if amount < 0:
            raise ValueError(f"Payment amount cannot be negative: {amount}")
        order = ApplicationOrder.parse(order)

        outstanding = [t for t in targets if t.outstanding > 0]
        if not outstanding:
            raise NoOutstandingChargesError([t.charge_id for t in targets])

        if require_full:
            required = sum(t.cost(t.outstanding) for t in outstanding)
            if required > amount:
                logger.warning(
                    "application_underfunded",
                    extra={"payment_id": payment_id, "required": required, "available": amount},
                )
                raise UnderfundedApplicationError(payment_id, required, amount)

        match order:
            case ApplicationOrder.FIFO:
                ordered = sorted(outstanding, key=lambda t: (t.due_date, t.charge_id))
            case ApplicationOrder.LIFO:
                ordered = sorted(outstanding, key=lambda t: (-t.due_date, t.charge_id))
            case _:
                raise ValueError(f"Unknown application order: {order}")

        return self._apply_sequential(amount, ordered, order, payment_id)

    def _apply_sequential(
        self,
        amount: int,
        ordered: Sequence[ApplicationTarget],
        order: ApplicationOrder,
        payment_id: int | None,
    ) -> ApplicationPlan:
        """Each target receives up to its outstanding balance until the amount runs out."""
        remaining = amount
        lines: list[ApplicationLine] = []

        for target in ordered:
            if remaining <= 0:
                break

            to_apply = min(target.outstanding, target.purchasable(remaining))
            if to_apply <= 0:
                # Too little left to buy one minor unit of this denomination
                continue

            consumed = min(remaining, target.cost(to_apply))
            remaining -= consumed
            lines.append(
                ApplicationLine(
                    charge_id=target.charge_id,
                    amount=to_apply,
                    source_amount=consumed,
                    remaining=target.outstanding - to_apply,
                )
            )

        logger.info(
            "application_planned",
            extra={
                "payment_id": payment_id,
                "order": order.value,
                "source_amount": amount,
                "consumed": amount - remaining,
                "unapplied": remaining,
                "charges_touched": len(lines),
            },
        )

        return ApplicationPlan(
            source_amount=amount,
            order=order,
            lines=tuple(lines),
            consumed=amount - remaining,
            unapplied=remaining,
        )
