"""
Service layer for charges.

Responsibility:
    Create charges under a relationship and move them between the Active
    and Inactive lifecycle states.  Everything except ``active`` and the
    concurrency ``version`` is fixed at creation.

Concurrency:
    Every state change that affects what a charge can absorb goes through a
    compare-and-swap on ``charge.version``.  Payment application and
    archive/activate both lock the rows (``SELECT ... FOR UPDATE`` where the
    backend supports it) and then swap the version; a swap that matches no
    row means another transaction got there first and raises
    OptimisticLockError instead of losing its update.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import select, update

from invoice_kernel.domain.dtos import ChargeInfo
from invoice_kernel.domain.references import ref_ids
from invoice_kernel.domain.values import Payload
from invoice_kernel.exceptions import OptimisticLockError, UnknownReferenceError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.charge import Charge
from invoice_kernel.models.fee_schedule import FeeSchedule
from invoice_kernel.models.relation import Relation
from invoice_kernel.services.base import BaseService
from invoice_kernel.services.denomination_service import DenominationService

logger = get_logger("services.charge")


class ChargeService(BaseService[Charge]):

    def add_charge(
        self,
        relation: Any,
        description: str,
        payload: Any,
        amount: int,
        denomination: Any,
        due_date: int,
        fee_schedule: Any = None,
    ) -> ChargeInfo:
        """
        Create a charge.

        Raises:
            DuplicateDescriptionError: description already used.
            UnknownReferenceError: relationship, denomination or fee schedule missing.
            ValueError: amount or due date is not a non-negative integer.
        """
        if not description:
            raise ValueError("Charge description is required")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError(f"Charge amount must be a non-negative integer of minor units: {amount!r}")
        if isinstance(due_date, bool) or not isinstance(due_date, int):
            raise ValueError(f"Charge due_date must be integer epoch seconds: {due_date!r}")

        relation_row = self._load(Relation, relation)
        denom = DenominationService(self.session).resolve(denomination)
        schedule = self._load(FeeSchedule, fee_schedule) if fee_schedule is not None else None
        self._require_unique(Charge, "description", description)

        charge = Charge(
            relation_id=relation_row.id,
            denomination_id=denom.id,
            description=description,
            payload=Payload.of(payload).to_dict(),
            amount=amount,
            due_date=due_date,
            fee_schedule_id=schedule.id if schedule is not None else None,
            active=True,
            version=0,
        )
        self.session.add(charge)
        self._flush_unique("Charge", "description", description)

        logger.info(
            "charge_added",
            extra={
                "charge_id": charge.id,
                "relationship_id": relation_row.id,
                "amount": amount,
                "denomination": denom.code,
                "due_date": due_date,
                "fee_schedule_id": charge.fee_schedule_id,
            },
        )
        return ChargeInfo.from_model(charge)

    def lock(self, charges: Iterable[Any]) -> list[Charge]:
        """
        Lock charge rows for update, in id order.

        Raises:
            UnknownReferenceError: any charge is missing.
        """
        ids = sorted(set(ref_ids(charges)))
        if not ids:
            return []
        rows = list(
            self.session.execute(
                select(Charge)
                .where(Charge.id.in_(ids))
                .order_by(Charge.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )
        found = {row.id for row in rows}
        missing = [charge_id for charge_id in ids if charge_id not in found]
        if missing:
            raise UnknownReferenceError("Charge", ",".join(str(m) for m in missing))
        return rows

    def bump_version(self, charge_id: int, expected_version: int, **values: Any) -> int:
        """
        Compare-and-swap the version, optionally setting ``active`` with it.

        Returns the new version.
        """
        result = self.session.execute(
            update(Charge)
            .where(Charge.id == charge_id, Charge.version == expected_version)
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "charge_version_conflict",
                extra={"charge_id": charge_id, "expected_version": expected_version},
            )
            raise OptimisticLockError("Charge", str(charge_id))
        return expected_version + 1

    def set_active(self, charges: Iterable[Any], active: bool) -> list[ChargeInfo]:
        """
        Archive or re-activate charges.  Idempotent: charges already in the
        target state are left alone.
        """
        rows = self.lock(charges)
        changed = []
        for row in rows:
            if row.active == active:
                continue
            self.bump_version(row.id, row.version, active=active)
            changed.append(row.id)

        if changed:
            self.session.expire_all()
            logger.info(
                "charge_activated" if active else "charge_archived",
                extra={"charge_ids": changed},
            )
        return [ChargeInfo.from_model(row) for row in rows]
