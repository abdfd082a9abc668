"""
Module: invoice_kernel.models.charge
Responsibility: ORM persistence for charges -- obligations for an amount in a
    denomination, due on a date, optionally accruing interest.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - description is unique (double-charge guard).
    - relation_id, denomination_id, fee_schedule_id, amount, due_date,
      description and payload are fixed at creation (db/immutability.py).
      Reinterpretation means a new Charge.
    - active is a soft lifecycle flag.  Charges are never physically removed
      while a PaymentApplication references them (FK RESTRICT).
    - version is bumped by every application batch and every archive or
      activate; ChargeService compares-and-swaps it to detect lost updates.

Audit relevance:
    payload is opaque structured data (SKU, booking id, ...).  The ledger
    stores and returns it but never reads it.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, BigInteger, Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from invoice_kernel.models.denomination import Denomination
    from invoice_kernel.models.fee_schedule import FeeSchedule
    from invoice_kernel.models.relation import Relation


# Fields that may change after creation
CHARGE_MUTABLE_FIELDS = frozenset({"active", "version"})


class Charge(TrackedBase):
    """An amount owed under a Relation."""

    __tablename__ = "charge"

    __table_args__ = (
        Index("idx_charge_relation", "relation_id"),
        Index("idx_charge_due_date", "due_date"),
    )

    relation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("relation.id", ondelete="CASCADE"),
        nullable=False,
    )

    denomination_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("denomination.id", ondelete="RESTRICT"),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(4000),
        nullable=False,
        unique=True,
    )

    # Tagged Payload as {"kind": ..., "data": ...}
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    # Principal, minor units
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # Epoch seconds
    due_date: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    fee_schedule_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("fee_schedule.id", ondelete="RESTRICT"),
        nullable=True,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    relation: Mapped["Relation"] = relationship(back_populates="charges")

    denomination: Mapped["Denomination"] = relationship()

    fee_schedule: Mapped["FeeSchedule | None"] = relationship()

    def __repr__(self) -> str:
        state = "active" if self.active else "inactive"
        return f"<Charge {self.id}: {self.description} {self.amount} ({state})>"
