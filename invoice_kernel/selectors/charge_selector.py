"""
Module: invoice_kernel.selectors.charge_selector
Responsibility: Read access to charges and to the applications that count
    against them.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Counting applications: an application counts against a charge's
      balance only while both the application and its payment are active.
      Deactivating a payment takes its applications out of outstanding math
      without touching the rows; reactivating restores them.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select

from invoice_kernel.domain.dtos import ChargeInfo, FeeScheduleInfo, PaymentApplicationInfo
from invoice_kernel.domain.references import compile_pattern, ref_id, ref_ids
from invoice_kernel.exceptions import UnknownReferenceError
from invoice_kernel.models.charge import Charge
from invoice_kernel.models.fee_schedule import FeeSchedule
from invoice_kernel.models.payment import Payment, PaymentApplication
from invoice_kernel.selectors.base import BaseSelector


class ChargeSelector(BaseSelector[Charge]):

    def get(self, charge: Any) -> ChargeInfo:
        return self.get_many([charge])[0]

    def get_many(self, charges: Iterable[Any]) -> list[ChargeInfo]:
        """ChargeInfo for each reference, in the order given; duplicates collapse."""
        ids = list(dict.fromkeys(ref_ids(charges)))
        if not ids:
            return []
        rows = {
            row.id: row
            for row in self.session.execute(select(Charge).where(Charge.id.in_(ids))).scalars()
        }
        missing = [charge_id for charge_id in ids if charge_id not in rows]
        if missing:
            raise UnknownReferenceError("Charge", ",".join(str(m) for m in missing))
        return [ChargeInfo.from_model(rows[charge_id]) for charge_id in ids]

    def charges(
        self,
        relation: Any = None,
        pattern: Any = None,
        active_only: bool = False,
    ) -> list[ChargeInfo]:
        """Charges ordered by id, optionally scoped to a relationship and a description regex."""
        stmt = select(Charge).order_by(Charge.id)
        if relation is not None:
            stmt = stmt.where(Charge.relation_id == ref_id(relation))
        if active_only:
            stmt = stmt.where(Charge.active.is_(True))
        regex = compile_pattern(pattern)
        return [
            ChargeInfo.from_model(row)
            for row in self.session.execute(stmt).scalars()
            if regex is None or regex.search(row.description)
        ]

    def counted_applications(
        self, charges: Iterable[Any]
    ) -> dict[int, list[PaymentApplicationInfo]]:
        """Applications that count against each charge's balance, by charge id."""
        ids = ref_ids(charges)
        by_charge: dict[int, list[PaymentApplicationInfo]] = defaultdict(list)
        if not ids:
            return by_charge
        stmt = (
            select(PaymentApplication)
            .join(Payment, PaymentApplication.payment_id == Payment.id)
            .where(
                PaymentApplication.charge_id.in_(ids),
                PaymentApplication.active.is_(True),
                Payment.active.is_(True),
            )
            .order_by(PaymentApplication.id)
        )
        for row in self.session.execute(stmt).scalars():
            by_charge[row.charge_id].append(PaymentApplicationInfo.from_model(row))
        return by_charge

    def fee_schedules(self, charges: Iterable[ChargeInfo]) -> dict[int, FeeScheduleInfo]:
        """Fee schedules used by the given charges, by schedule id."""
        ids = {c.fee_schedule_id for c in charges if c.fee_schedule_id is not None}
        if not ids:
            return {}
        rows = self.session.execute(select(FeeSchedule).where(FeeSchedule.id.in_(ids))).scalars()
        return {row.id: FeeScheduleInfo.from_model(row) for row in rows}
