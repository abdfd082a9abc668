"""
Module: invoice_kernel.models.relation
Responsibility: ORM persistence for relationships -- uniquely described
    groupings of Charges between a payor and a payee.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - description is unique.  It is the double-submit guard for the
      grouping (e.g. "Payments from Not My LLC to My LLC since 9/9/99").
    - Deleting either Entity cascades to the Relation, which in turn is
      RESTRICTed by any PaymentApplication on its Charges.
"""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from invoice_kernel.models.charge import Charge
    from invoice_kernel.models.entity import Entity


class Relation(TrackedBase):
    """A named set of charges owed by payor to payee."""

    __tablename__ = "relation"

    description: Mapped[str] = mapped_column(
        String(4000),
        nullable=False,
        unique=True,
    )

    payee: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("entity.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    payor: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("entity.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    payee_entity: Mapped["Entity"] = relationship(foreign_keys=[payee])

    payor_entity: Mapped["Entity"] = relationship(foreign_keys=[payor])

    charges: Mapped[list["Charge"]] = relationship(
        back_populates="relation",
        passive_deletes=True,
        order_by="Charge.id",
    )

    def __repr__(self) -> str:
        return f"<Relation {self.id}: {self.description} ({self.payor}->{self.payee})>"
