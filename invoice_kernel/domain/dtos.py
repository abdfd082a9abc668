"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable read results handed out by services, selectors and the
    Ledger facade.  Callers never receive ORM instances, so nothing they
    hold can be flushed back into the ledger by accident.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters, invoked only from
    the service and selector layers.

Invariants enforced:
    - Amounts are integer minor units.
    - PII never appears here in plaintext except in the *Details types,
      which are built only by an explicit decrypt call with a passphrase.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from invoice_kernel.db.types import BASIS_SCALE, unscale_rate
from invoice_kernel.domain.values import LifecycleState, Payload

if TYPE_CHECKING:
    from invoice_kernel.models import (
        Account,
        Charge,
        ConversionRate,
        Denomination,
        Entity,
        FeeSchedule,
        Payment,
        PaymentApplication,
        Relation,
    )


@dataclass(frozen=True)
class DenominationInfo:
    id: int
    description: str
    code: str
    symbol: str

    @classmethod
    def from_model(cls, model: Denomination) -> DenominationInfo:
        return cls(
            id=model.id,
            description=model.description,
            code=model.code,
            symbol=model.symbol,
        )


@dataclass(frozen=True)
class ConversionRateInfo:
    """value_in_unit = amount * basis / BASIS_SCALE."""

    id: int
    unit_of_account: int
    denomination_id: int
    basis: int
    effective_at: int

    @property
    def ratio(self) -> Decimal:
        return Decimal(self.basis) / Decimal(BASIS_SCALE)

    @classmethod
    def from_model(cls, model: ConversionRate) -> ConversionRateInfo:
        return cls(
            id=model.id,
            unit_of_account=model.unit_of_account,
            denomination_id=model.denomination_id,
            basis=model.basis,
            effective_at=model.effective_at,
        )


@dataclass(frozen=True)
class EntityInfo:
    """A party, without its encrypted fields."""

    id: int
    name: str
    account_ids: tuple[int, ...] = ()

    @classmethod
    def from_model(cls, model: Entity) -> EntityInfo:
        return cls(
            id=model.id,
            name=model.name,
            account_ids=tuple(account.id for account in model.accounts),
        )


@dataclass(frozen=True)
class EntityDetails:
    """Decrypted view of an Entity.  Only built from an explicit decrypt call."""

    id: int
    name: str
    address: Payload
    identification: Payload | None


@dataclass(frozen=True)
class AccountInfo:
    id: int
    entity_id: int
    denomination_id: int

    @classmethod
    def from_model(cls, model: Account) -> AccountInfo:
        return cls(
            id=model.id,
            entity_id=model.entity_id,
            denomination_id=model.denomination_id,
        )


@dataclass(frozen=True)
class AccountDetails:
    """Decrypted view of an Account."""

    id: int
    entity_id: int
    denomination_id: int
    counterparty_info: Payload


@dataclass(frozen=True)
class RelationshipInfo:
    id: int
    description: str
    payee: int
    payor: int

    @classmethod
    def from_model(cls, model: Relation) -> RelationshipInfo:
        return cls(
            id=model.id,
            description=model.description,
            payee=model.payee,
            payor=model.payor,
        )


@dataclass(frozen=True)
class FeeScheduleInfo:
    id: int
    compounding_period: int
    interest_rate: int  # over RATE_SCALE

    @property
    def rate(self) -> Decimal:
        return unscale_rate(self.interest_rate)

    @classmethod
    def from_model(cls, model: FeeSchedule) -> FeeScheduleInfo:
        return cls(
            id=model.id,
            compounding_period=model.compounding_period,
            interest_rate=model.interest_rate,
        )


@dataclass(frozen=True)
class ChargeInfo:
    """
    Immutable view of a Charge.

    ``amount`` is the principal; the accrued outstanding balance is a
    function of time and lives on the Ledger, not here.
    """

    id: int
    relation_id: int
    denomination_id: int
    description: str
    payload: Payload
    amount: int
    due_date: int
    fee_schedule_id: int | None
    active: bool
    version: int = 0

    @property
    def state(self) -> LifecycleState:
        return LifecycleState.of(self.active)

    @classmethod
    def from_model(cls, model: Charge) -> ChargeInfo:
        return cls(
            id=model.id,
            relation_id=model.relation_id,
            denomination_id=model.denomination_id,
            description=model.description,
            payload=Payload.from_dict(model.payload),
            amount=model.amount,
            due_date=model.due_date,
            fee_schedule_id=model.fee_schedule_id,
            active=model.active,
            version=model.version,
        )


@dataclass(frozen=True)
class PaymentApplicationInfo:
    id: int
    charge_id: int
    payment_id: int
    amount: int  # charge denomination
    source_amount: int  # payment denomination
    date: int
    active: bool

    @classmethod
    def from_model(cls, model: PaymentApplication) -> PaymentApplicationInfo:
        return cls(
            id=model.id,
            charge_id=model.charge_id,
            payment_id=model.payment_id,
            amount=model.amount,
            source_amount=model.source_amount,
            date=model.date,
            active=model.active,
        )


@dataclass(frozen=True)
class PaymentInfo:
    """
    Immutable view of a Payment.

    ``applied`` totals what the payment's applications drew from it, in the
    payment's own denomination, so ``unapplied`` is what a later
    apply_payment() may still use.
    """

    id: int
    from_account_id: int
    to_account_id: int
    description: str
    date: int
    amount: int
    active: bool
    applied: int = 0

    @property
    def unapplied(self) -> int:
        return self.amount - self.applied

    @property
    def is_writeoff(self) -> bool:
        return self.from_account_id == self.to_account_id

    @property
    def state(self) -> LifecycleState:
        return LifecycleState.of(self.active)

    @classmethod
    def from_model(cls, model: Payment) -> PaymentInfo:
        return cls(
            id=model.id,
            from_account_id=model.from_account_id,
            to_account_id=model.to_account_id,
            description=model.description,
            date=model.date,
            amount=model.amount,
            active=model.active,
            applied=sum(a.source_amount for a in model.applications),
        )


@dataclass(frozen=True)
class StatementLine:
    charge: ChargeInfo
    outstanding: int  # charge denomination


@dataclass(frozen=True)
class Statement:
    """
    Active charges and their accrued balances, as handed to a template.

    ``total`` is the sum of each line converted to ``reporting_denomination_id``;
    an empty statement totals 0 and has no reporting denomination.
    """

    as_of: int
    lines: tuple[StatementLine, ...] = field(default_factory=tuple)
    total: int | None = None
    reporting_denomination_id: int | None = None

    @property
    def charge_ids(self) -> tuple[int, ...]:
        return tuple(line.charge.id for line in self.lines)
