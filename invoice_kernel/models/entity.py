"""
Module: invoice_kernel.models.entity
Responsibility: ORM persistence for parties (Entity) and their settlement
    channels (Account).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Entity.name is unique.
    - address, identification and counterparty_info hold ciphertext only.
      Encryption happens in the service layer before the ORM sees a value.
    - Deleting an Entity cascades to its Accounts (and Relationships); the
      cascade is RESTRICTed by Payment rows, which are history.
    - Deleting a Denomination is RESTRICTed while Accounts use it.
"""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from invoice_kernel.models.denomination import Denomination


class Entity(TrackedBase):
    """A party that can send or receive charges and payments."""

    __tablename__ = "entity"

    name: Mapped[str] = mapped_column(
        String(4000),
        nullable=False,
        unique=True,
    )

    # Encrypted Payload blob
    address: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    # Encrypted Payload blob
    identification: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        default=None,
    )

    accounts: Mapped[list["Account"]] = relationship(
        back_populates="entity",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Account.id",
    )

    def __repr__(self) -> str:
        return f"<Entity {self.id}: {self.name}>"


class Account(TrackedBase):
    """
    An Entity's settlement channel, bound to one denomination.

    counterparty_info carries card numbers, routing numbers, processor names
    and the like -- always encrypted.
    """

    __tablename__ = "account"

    entity_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("entity.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    denomination_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("denomination.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Encrypted Payload blob
    counterparty_info: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    entity: Mapped["Entity"] = relationship(back_populates="accounts")

    denomination: Mapped["Denomination"] = relationship()

    def __repr__(self) -> str:
        return f"<Account {self.id} entity={self.entity_id} denom={self.denomination_id}>"
