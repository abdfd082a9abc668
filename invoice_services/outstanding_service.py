"""
invoice_services.outstanding_service -- Accrued balances and reporting totals.

Responsibility:
    Compose the charge selector, the fee accrual engine and the conversion
    table into the Outstanding/Reporting answers: a charge's accrued
    outstanding balance, the converted total over a set of charges, and
    the statement handed to invoice generation.

Architecture position:
    Services -- orchestration over engines + kernel.  Read-only: nothing
    here writes, except that a configured quoter may record a missing rate.

Invariants enforced:
    - Only applications of active payments count (ChargeSelector).
    - Inactive charges contribute nothing to totals or statements; their
      own balance can still be asked for directly.
    - Each charge is converted to the reporting denomination separately
      and rounded once, then summed.

Failure modes:
    - ReportingDenominationError when charges span denominations and no
      reporting denomination or unit of account is available.
    - ConversionRateNotFoundError when a needed rate is missing.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy.orm import Session

from invoice_engines.accrual import AppliedAmount, FeeAccrualEngine, FeeTerms
from invoice_kernel.domain.dtos import ChargeInfo, Statement, StatementLine
from invoice_kernel.exceptions import ReportingDenominationError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.selectors.charge_selector import ChargeSelector
from invoice_kernel.services.conversion_service import ConversionService
from invoice_kernel.services.denomination_service import DenominationService

logger = get_logger("services.outstanding")


class OutstandingService:
    """
    Accrued outstanding balances.

    Contract:
        Every method takes an explicit ``as_of``; there is no hidden clock.
    """

    def __init__(
        self,
        session: Session,
        conversion: ConversionService,
        unit_of_account: str | None = None,
        accrual_engine: FeeAccrualEngine | None = None,
    ):
        self.session = session
        self.conversion = conversion
        self.unit_of_account = unit_of_account
        self.accrual_engine = accrual_engine or FeeAccrualEngine()
        self._charges = ChargeSelector(session)

    def accrued_many(
        self,
        charges: Sequence[ChargeInfo],
        as_of: int,
        *,
        include_later_applications: bool = False,
    ) -> dict[int, int]:
        """
        Accrued outstanding balance per charge id, in each charge's denomination.

        With ``include_later_applications`` each charge is evaluated no earlier
        than its latest counted application, so an application dated after
        ``as_of`` still reduces the balance.  Payment application plans with
        this; historical reads do not.
        """
        applications = self._charges.counted_applications(charges)
        schedules = self._charges.fee_schedules(charges)
        balances: dict[int, int] = {}
        for charge in charges:
            schedule = schedules.get(charge.fee_schedule_id) if charge.fee_schedule_id else None
            terms = (
                FeeTerms(
                    compounding_period=schedule.compounding_period,
                    interest_rate=schedule.interest_rate,
                )
                if schedule is not None
                else None
            )
            applied = [
                AppliedAmount(amount=a.amount, date=a.date)
                for a in applications.get(charge.id, ())
            ]
            evaluate_at = as_of
            if include_later_applications and applied:
                evaluate_at = max(as_of, max(a.date for a in applied))
            balances[charge.id] = self.accrual_engine.accrued_outstanding(
                principal=charge.amount,
                due_date=charge.due_date,
                terms=terms,
                applications=applied,
                as_of=evaluate_at,
            )
        return balances

    def accrued_outstanding(self, charge: Any, as_of: int) -> int:
        info = charge if isinstance(charge, ChargeInfo) else self._charges.get(charge)
        return self.accrued_many([info], as_of)[info.id]

    def reporting_denomination(
        self, charges: Iterable[ChargeInfo], reporting: Any = None
    ) -> int | None:
        """
        Denomination id totals are reported in.

        An explicit ``reporting`` wins, then the configured unit of account,
        then the single denomination all charges share.  None for no charges.
        """
        denominations = DenominationService(self.session)
        if reporting is not None:
            return denominations.resolve(reporting).id
        if self.unit_of_account is not None:
            return denominations.resolve(self.unit_of_account).id
        used = {c.denomination_id for c in charges}
        if not used:
            return None
        if len(used) > 1:
            raise ReportingDenominationError(list(used))
        return used.pop()

    def outstanding(self, charges: Iterable[Any], as_of: int, reporting: Any = None) -> int:
        """Sum of accrued outstanding over the active charges, in one denomination."""
        return self.statement(charges, as_of, reporting).total or 0

    def statement(self, charges: Iterable[Any], as_of: int, reporting: Any = None) -> Statement:
        """Active charges with their accrued balances and the converted total."""
        infos = [
            c for c in self._charges.get_many(charges) if c.active
        ]
        if not infos:
            return Statement(as_of=as_of, lines=(), total=0, reporting_denomination_id=None)

        target = self.reporting_denomination(infos, reporting)
        balances = self.accrued_many(infos, as_of)
        unit = self.unit_of_account
        total = sum(
            self.conversion.convert(balances[c.id], c.denomination_id, target, unit, as_of)
            for c in infos
        )

        logger.debug(
            "outstanding_computed",
            extra={"charge_count": len(infos), "as_of": as_of, "total": total},
        )
        return Statement(
            as_of=as_of,
            lines=tuple(StatementLine(charge=c, outstanding=balances[c.id]) for c in infos),
            total=total,
            reporting_denomination_id=target,
        )
