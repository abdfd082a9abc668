"""
Module: invoice_engines.accrual
Responsibility:
    Compute the interest-adjusted outstanding balance of a charge from its
    principal, due date, optional fee terms and the applications made
    against it.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Callers pass an explicit
    ``as_of``; the engine never reads a clock.

Accrual model:
    n(t) = max(0, (t - due_date) // compounding_period) whole periods,
    partial periods never accrue.  Interest compounds only on unpaid
    principal.  An application of amount ``a`` dated ``t`` retires
    ``a / (1 + r)^n(t)`` of principal, so paying the full accrued amount
    zeroes the charge and a partial payment never forgives interest:

        unpaid    = principal - sum(a_i / (1 + r)^n(t_i))
        outstanding(as_of) = unpaid * (1 + r)^n(as_of)

    With no fee terms (or a zero rate) this is ``principal - sum(a_i)``.

Invariants enforced:
    - Integer in, integer out.  Working precision is ACCRUAL_PRECISION
      digits; the result is rounded once, ROUND_HALF_UP, never per period.
    - Applications dated after ``as_of`` are ignored, so historical
      balances can be recomputed.
    - An application that brings the balance to zero at its own date
      retires the charge completely; later periods cannot resurrect a
      rounding residue.
    - The result is never negative.

Failure modes:
    - InvalidScheduleError for a non-positive period or a negative rate.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal, localcontext

from invoice_engines.tracer import traced_engine
from invoice_kernel.db.types import ACCRUAL_PRECISION, RATE_SCALE, round_minor
from invoice_kernel.exceptions import InvalidScheduleError
from invoice_kernel.logging_config import get_logger

logger = get_logger("engines.accrual")


def compounding_periods(due_date: int, compounding_period: int, as_of: int) -> int:
    """Whole periods elapsed past ``due_date`` at ``as_of``; zero before it."""
    if compounding_period <= 0:
        raise InvalidScheduleError(
            "compounding_period", str(compounding_period), "must be a positive number of seconds"
        )
    elapsed = as_of - due_date
    if elapsed <= 0:
        return 0
    return elapsed // compounding_period


@dataclass(frozen=True)
class FeeTerms:
    """
    Compounding interest parameters.

    ``interest_rate`` is fixed-point over RATE_SCALE (10000 == 1% per period).
    """

    compounding_period: int
    interest_rate: int

    def __post_init__(self) -> None:
        if self.compounding_period <= 0:
            raise InvalidScheduleError(
                "compounding_period",
                str(self.compounding_period),
                "must be a positive number of seconds",
            )
        if self.interest_rate < 0:
            raise InvalidScheduleError(
                "interest_rate", str(self.interest_rate), "cannot be negative"
            )

    def growth(self, periods: int) -> Decimal:
        """(1 + r)^periods, exact to the working precision of the caller."""
        return (1 + Decimal(self.interest_rate) / RATE_SCALE) ** periods


@dataclass(frozen=True)
class AppliedAmount:
    """One active application against the charge, in the charge's denomination."""

    amount: int
    date: int


class FeeAccrualEngine:
    """
    Accrued outstanding balances for charges.

    Contract:
        Pure and deterministic; no I/O, no clock access.
    """

    @traced_engine(
        "fee_accrual",
        "1.0",
        fingerprint_fields=("principal", "due_date", "terms", "applications", "as_of"),
    )
    def accrued_outstanding(
        self,
        *,
        principal: int,
        due_date: int,
        terms: FeeTerms | None,
        applications: Sequence[AppliedAmount],
        as_of: int,
    ) -> int:
        """
        Outstanding balance at ``as_of`` in minor units of the charge.

        Args:
            principal: Charge amount.
            due_date: Epoch seconds; accrual starts after it.
            terms: Fee terms, or None for a plain charge.
            applications: Active applications, any order.
            as_of: Epoch seconds to evaluate at.
        """
        effective = sorted(
            (a for a in applications if a.date <= as_of),
            key=lambda a: a.date,
        )

        if terms is None or terms.interest_rate == 0:
            paid = sum(a.amount for a in effective)
            return max(0, principal - paid)

        with localcontext() as ctx:
            ctx.prec = ACCRUAL_PRECISION
            unpaid = Decimal(principal)
            for application in effective:
                if unpaid <= 0:
                    break
                growth = terms.growth(
                    compounding_periods(due_date, terms.compounding_period, application.date)
                )
                unpaid -= Decimal(application.amount) / growth
                if round_minor(unpaid * growth) <= 0:
                    unpaid = Decimal(0)

            if unpaid <= 0:
                return 0

            periods = compounding_periods(due_date, terms.compounding_period, as_of)
            outstanding = round_minor(unpaid * terms.growth(periods))

        logger.debug(
            "accrual_computed",
            extra={
                "principal": principal,
                "periods": periods,
                "application_count": len(effective),
                "outstanding": outstanding,
            },
        )
        return max(0, outstanding)
