"""
Module: invoice_kernel.models.fee_schedule
Responsibility: ORM persistence for late-fee / interest schedules.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - compounding_period > 0 and interest_rate >= 0, validated at creation
      by FeeScheduleService and backed by CHECK constraints.
    - Frozen once any Charge references it (db/immutability.py).  A rate
      change is a new schedule.
"""

from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from invoice_kernel.db.base import TrackedBase
from invoice_kernel.db.types import RATE_SCALE, unscale_rate


class FeeSchedule(TrackedBase):
    """Compounding interest parameters attachable to any number of Charges."""

    __tablename__ = "fee_schedule"

    __table_args__ = (
        CheckConstraint("compounding_period > 0", name="positive_period"),
        CheckConstraint("interest_rate >= 0", name="non_negative_rate"),
    )

    # Seconds per compounding period
    compounding_period: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # Fixed-point, over RATE_SCALE
    interest_rate: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    @property
    def rate(self) -> Decimal:
        """Interest rate per period as a Decimal fraction."""
        return unscale_rate(self.interest_rate)

    def __repr__(self) -> str:
        return (
            f"<FeeSchedule {self.id} rate={self.interest_rate}/{RATE_SCALE} "
            f"period={self.compounding_period}s>"
        )
