"""
Module: invoice_kernel.models.denomination
Responsibility: ORM persistence for units of account (Denomination) and their
    relative values (ConversionRate).
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Denomination description/code/symbol are frozen once a Charge or
      Account references the row (db/immutability.py).
    - Deleting a Denomination is RESTRICTed while Accounts, Charges or
      ConversionRates reference it.
    - ConversionRate rows are append-only.  A new rate is a new row; the
      applicable one is the latest by effective_at, ties by id.

Failure modes:
    - IntegrityError on duplicate code (uq_denomination_code).
    - IntegrityError on deleting a referenced Denomination.
    - ImmutabilityViolationError on editing a referenced Denomination or any
      ConversionRate.
"""

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from invoice_kernel.db.base import TrackedBase
from invoice_kernel.db.types import BASIS_SCALE


class Denomination(TrackedBase):
    """
    A unit of account (currency, commodity, points, ...).

    Contract:
        Identified by a unique code.  Description and symbol are display
        metadata.  Immutable once referenced.
    """

    __tablename__ = "denomination"

    description: Mapped[str] = mapped_column(
        String(4000),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    symbol: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Denomination {self.code} ({self.symbol})>"


class ConversionRate(TrackedBase):
    """
    Value of a denomination relative to a unit of account.

    Contract:
        value_in_unit = amount * basis / BASIS_SCALE.  Multiple rows per pair
        are expected over time.

    Non-goals:
        - Does NOT fetch live quotes; rows come from callers or an injected
          quoter via ConversionService.refresh().
    """

    __tablename__ = "conversion_rate"

    __table_args__ = (
        Index(
            "idx_conversion_rate_lookup",
            "unit_of_account",
            "denomination_id",
            "effective_at",
        ),
    )

    unit_of_account: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("denomination.id", ondelete="RESTRICT"),
        nullable=False,
    )

    denomination_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("denomination.id", ondelete="RESTRICT"),
        nullable=False,
    )

    basis: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=BASIS_SCALE,
    )

    # Epoch seconds from which the rate applies
    effective_at: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ConversionRate {self.denomination_id}->{self.unit_of_account} "
            f"basis={self.basis} @ {self.effective_at}>"
        )
