"""
Module: invoice_kernel.models.payment
Responsibility: ORM persistence for payments (value moved between Accounts, or
    extinguished when source and destination coincide) and payment
    applications (the portion of a payment that satisfied a portion of a
    charge).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Payment.description is unique (double-submit guard).
    - from_account_id == to_account_id marks a write-off.
    - Both tables are append-only apart from the active flag
      (db/immutability.py).  Account and Charge deletion is RESTRICTed by
      these rows so history cannot disappear.
    - PaymentApplication.amount is in the Charge's denomination;
      source_amount is what the application drew from the Payment, in the
      Payment's denomination.  sum(source_amount) <= Payment.amount.

Audit relevance:
    PaymentApplication is the whole audit trail of who paid what against
    which charge and when.  Deactivating a Charge or Payment never rewrites
    these rows.
"""

from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from invoice_kernel.models.charge import Charge
    from invoice_kernel.models.entity import Account


class Payment(TrackedBase):
    """A transfer between accounts, or a write-off when both sides match."""

    __tablename__ = "payment"

    __table_args__ = (
        Index("idx_payment_from_account", "from_account_id"),
        Index("idx_payment_to_account", "to_account_id"),
    )

    from_account_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("account.id", ondelete="RESTRICT"),
        nullable=False,
    )

    to_account_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("account.id", ondelete="RESTRICT"),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(4000),
        nullable=False,
        unique=True,
    )

    # Epoch seconds
    date: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # Minor units of the from-account's denomination
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    from_account: Mapped["Account"] = relationship(foreign_keys=[from_account_id])

    to_account: Mapped["Account"] = relationship(foreign_keys=[to_account_id])

    applications: Mapped[list["PaymentApplication"]] = relationship(
        back_populates="payment",
        order_by="PaymentApplication.id",
    )

    @property
    def is_writeoff(self) -> bool:
        """Source and destination are the same account."""
        return self.from_account_id == self.to_account_id

    def __repr__(self) -> str:
        kind = "writeoff" if self.is_writeoff else "payment"
        return f"<Payment {self.id} {kind} {self.amount}: {self.description}>"


class PaymentApplication(TrackedBase):
    """One portion of one payment applied to one charge."""

    __tablename__ = "payment_application"

    __table_args__ = (
        Index("idx_application_charge", "charge_id"),
        Index("idx_application_payment", "payment_id"),
    )

    charge_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("charge.id", ondelete="RESTRICT"),
        nullable=False,
    )

    payment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payment.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Minor units of the Charge's denomination
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # Minor units of the Payment's denomination
    source_amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # Epoch seconds
    date: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    payment: Mapped["Payment"] = relationship(back_populates="applications")

    charge: Mapped["Charge"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<PaymentApplication {self.id} payment={self.payment_id} "
            f"charge={self.charge_id} amount={self.amount}>"
        )
