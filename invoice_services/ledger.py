"""
invoice_services.ledger -- The Ledger facade.

Responsibility:
    The one object callers construct.  Owns the storage session object,
    the encryption boundary and the clock, and exposes every ledger
    operation: registering denominations, entities, relationships, fee
    schedules and charges; recording and applying payments; outstanding
    balances, statements, archive and write-off.

Architecture position:
    Services -- outermost layer.  Each public operation runs in exactly one
    ``LedgerStore.session_scope()``, so a multi-row operation (a payment
    and all of its applications, a write-off across several groups, an
    archive of many charges) either lands completely or not at all.

Handles:
    ``EntityHandle`` and ``RelationshipHandle`` carry an id and a
    reference back to the ledger, so the entity- and relationship-scoped
    operations read naturally::

        shop = ledger.add_entity("My LLC", address={...})
        client = ledger.add_entity("Not My LLC", address={...})
        usd = ledger.denomination("US Dollar", "USD", "$")
        rel = ledger.add_relationship("Hugs for Not My LLC", payee=shop, payor=client)
        charge = rel.add_charge("Hug #1", {"sku": "big-hug"}, 10000, usd, due_date=t)
        account = client.add_account(usd, {"type": "cc"})
        client.pay("Payment 1", 4000, account, shop_account, to_charges=[charge])

Passphrase:
    PII fields need a passphrase.  It can be given per call, or once as the
    ``passphrase`` option, either as a string or as a zero-argument
    callable that prompts for it; a callable is invoked per operation and
    its result is not kept.  The encryption boundary never stores it.

Failure modes:
    Everything in invoice_kernel.exceptions, unchanged.  Nothing retries.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from contextlib import contextmanager
from dataclasses import dataclass
from itertools import groupby
from typing import Any

from invoice_config.schema import LedgerConfig
from invoice_kernel.db.engine import LedgerStore
from invoice_kernel.domain.clock import Clock, SystemClock
from invoice_kernel.domain.dtos import (
    AccountDetails,
    AccountInfo,
    ChargeInfo,
    ConversionRateInfo,
    DenominationInfo,
    EntityDetails,
    EntityInfo,
    FeeScheduleInfo,
    PaymentApplicationInfo,
    PaymentInfo,
    RelationshipInfo,
    Statement,
)
from invoice_kernel.domain.references import ref_id
from invoice_kernel.domain.values import ApplicationOrder
from invoice_kernel.exceptions import (
    DecryptionError,
    EncryptionError,
    NoOutstandingChargesError,
    UnknownReferenceError,
)
from invoice_kernel.logging_config import LogContext, configure_logging, get_logger
from invoice_kernel.selectors.charge_selector import ChargeSelector
from invoice_kernel.selectors.payment_selector import PaymentSelector
from invoice_kernel.services.charge_service import ChargeService
from invoice_kernel.services.conversion_service import ConversionService
from invoice_kernel.services.denomination_service import DenominationService
from invoice_kernel.services.entity_service import EntityService
from invoice_kernel.services.fee_schedule_service import FeeScheduleService
from invoice_kernel.services.payment_service import PaymentService
from invoice_kernel.services.relationship_service import RelationshipService
from invoice_kernel.utils.encryption import DEFAULT_KEY_PATH, Encryptor
from invoice_services.application_service import PaymentApplicationService
from invoice_services.outstanding_service import OutstandingService

logger = get_logger("services.ledger")


def _flatten(items: Iterable[Any]) -> list[Any]:
    """outstanding(rel.charges(), other.charges()) and outstanding(c1, c2) both work."""
    flat: list[Any] = []
    for item in items:
        if isinstance(item, (list, tuple, set, frozenset)):
            flat.extend(item)
        else:
            flat.append(item)
    return flat


def _default_encryptor(key_path: str | None) -> Encryptor | None:
    if key_path is not None:
        return Encryptor(key_path)
    if DEFAULT_KEY_PATH.is_file():
        return Encryptor(DEFAULT_KEY_PATH)
    return None


@dataclass(frozen=True)
class PaymentRequest:
    """What ``hook_before`` is shown before a payment is written."""

    payor_entity_id: int
    description: str
    amount: int
    from_account_id: int
    to_account_id: int
    charge_ids: tuple[int, ...]
    apply_order: ApplicationOrder
    date: int


class _Unit:
    """Services bound to one session."""

    def __init__(self, session, ledger: Ledger):
        self.session = session
        self.denominations = DenominationService(session)
        self.conversion = ConversionService(session, quoter=ledger.quoter)
        self.entities = EntityService(session, encryptor=ledger.encryptor)
        self.relationships = RelationshipService(session)
        self.fee_schedules = FeeScheduleService(session)
        self.charges = ChargeService(session)
        self.payments = PaymentService(session)
        self.charge_reads = ChargeSelector(session)
        self.payment_reads = PaymentSelector(session)
        self.outstanding = OutstandingService(
            session, self.conversion, unit_of_account=ledger.config.unit_of_account
        )
        self.application = PaymentApplicationService(session, self.outstanding)


class EntityHandle:
    """An entity plus the ledger it lives in."""

    def __init__(self, ledger: Ledger, info: EntityInfo):
        self._ledger = ledger
        self.info = info

    @property
    def id(self) -> int:
        return self.info.id

    @property
    def name(self) -> str:
        return self.info.name

    def add_account(self, denomination: Any, counterparty_info: Any, *, passphrase: Any = None) -> AccountInfo:
        return self._ledger.add_account(self, denomination, counterparty_info, passphrase=passphrase)

    def accounts(self) -> list[AccountInfo]:
        return self._ledger.accounts(self)

    def pay(self, description: str, amount: int, from_account: Any, to_account: Any, **options: Any) -> PaymentInfo:
        return self._ledger.pay(self, description, amount, from_account, to_account, **options)

    def payments(self) -> list[PaymentInfo]:
        return self._ledger.payments(self)

    def details(self, *, passphrase: Any = None) -> EntityDetails:
        return self._ledger.entity_details(self, passphrase=passphrase)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, EntityHandle) and other.info == self.info

    def __hash__(self) -> int:
        return hash(("entity", self.id))

    def __repr__(self) -> str:
        return f"<EntityHandle {self.id}: {self.name}>"


class RelationshipHandle:
    """A relationship plus the ledger it lives in."""

    def __init__(self, ledger: Ledger, info: RelationshipInfo):
        self._ledger = ledger
        self.info = info

    @property
    def id(self) -> int:
        return self.info.id

    @property
    def description(self) -> str:
        return self.info.description

    @property
    def payee(self) -> int:
        return self.info.payee

    @property
    def payor(self) -> int:
        return self.info.payor

    def add_charge(
        self,
        description: str,
        payload: Any,
        amount: int,
        denomination: Any,
        due_date: int | None = None,
        fee_schedule: Any = None,
    ) -> ChargeInfo:
        return self._ledger.add_charge(
            self, description, payload, amount, denomination, due_date, fee_schedule
        )

    def charges(self, pattern: Any = None, active_only: bool = False) -> list[ChargeInfo]:
        return self._ledger.charges(self, pattern=pattern, active_only=active_only)

    def outstanding(self, *, as_of: int | None = None, reporting: Any = None) -> int:
        return self._ledger.outstanding(self.charges(), as_of=as_of, reporting=reporting)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, RelationshipHandle) and other.info == self.info

    def __hash__(self) -> int:
        return hash(("relationship", self.id))

    def __repr__(self) -> str:
        return f"<RelationshipHandle {self.id}: {self.description}>"


class Ledger:
    """
    Secure, persistent invoicing ledger.

    Args:
        config: A LedgerConfig; options given as keywords override it.
        store: An existing LedgerStore.  The caller then owns its lifecycle.
        encryptor: An existing Encryptor; otherwise built from ``key_path``.
        clock: Time source for defaults; every time-dependent operation also
            takes an explicit ``as_of``/``date``.
        **options: template, quoter, passphrase, storage_location,
            key_path, unit_of_account, require_full_satisfaction, log_level,
            echo_sql.
    """

    def __init__(
        self,
        config: LedgerConfig | None = None,
        *,
        store: LedgerStore | None = None,
        encryptor: Encryptor | None = None,
        clock: Clock | None = None,
        **options: Any,
    ):
        config = config or LedgerConfig()
        if options:
            config = config.with_overrides(**options)
        self.config = config

        if config.log_level is not None:
            configure_logging(level=config.log_level)

        self._owns_store = store is None
        self.store = store or LedgerStore(config.storage_location, echo=config.echo_sql)
        self.store.open()
        self.store.create_tables()

        self.encryptor = encryptor if encryptor is not None else _default_encryptor(config.key_path)
        self.clock = clock or SystemClock()
        self.template = config.template
        self.quoter = config.quoter

        logger.info(
            "ledger_opened",
            extra={
                "unit_of_account": config.unit_of_account,
                "pii_enabled": self.encryptor is not None,
                "require_full_satisfaction": config.require_full_satisfaction,
            },
        )

    # ------------------------------------------------------------------
    # Lifecycle and plumbing
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._owns_store:
            self.store.close()

    def __enter__(self) -> Ledger:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    @contextmanager
    def _unit(self, operation: str):
        with self.store.session_scope(operation) as session:
            yield _Unit(session, self)

    def _now(self, value: int | None) -> int:
        return self.clock.now() if value is None else int(value)

    def _secret(self, passphrase: Any, error: type) -> str:
        secret = passphrase if passphrase is not None else self.config.passphrase
        if callable(secret):
            secret = secret()
        if not secret:
            raise error("a passphrase is required for PII fields")
        return secret

    def _require_full(self, value: bool | None) -> bool:
        return self.config.require_full_satisfaction if value is None else value

    # ------------------------------------------------------------------
    # Denominations and the conversion table
    # ------------------------------------------------------------------

    def denomination(self, description: str, code: str, symbol: str) -> DenominationInfo:
        with self._unit("denomination") as unit:
            return unit.denominations.create(description, code, symbol)

    def denominations(self) -> list[DenominationInfo]:
        with self._unit("denominations") as unit:
            return unit.denominations.list()

    def record_rate(
        self,
        denomination: Any,
        basis: int,
        *,
        unit_of_account: Any = None,
        effective_at: int | None = None,
    ) -> ConversionRateInfo:
        """value_in_unit = amount * basis / 1000, from ``effective_at`` on."""
        unit_ref = unit_of_account if unit_of_account is not None else self.config.unit_of_account
        if unit_ref is None:
            raise ValueError("record_rate needs a unit_of_account (argument or configuration)")
        with self._unit("record_rate") as unit:
            return unit.conversion.record_rate(unit_ref, denomination, basis, self._now(effective_at))

    def refresh_rates(self, as_of: int | None = None) -> list[ConversionRateInfo]:
        """Pull fresh quotes for every denomination from the configured quoter."""
        if self.config.unit_of_account is None:
            raise ValueError("refresh_rates needs a configured unit_of_account")
        with self._unit("refresh_rates") as unit:
            return unit.conversion.refresh(self.config.unit_of_account, self._now(as_of))

    # ------------------------------------------------------------------
    # Entities and accounts
    # ------------------------------------------------------------------

    def add_entity(
        self,
        name: str,
        address: Any,
        identification: Any = None,
        *,
        passphrase: Any = None,
    ) -> EntityHandle:
        secret = self._secret(passphrase, EncryptionError)
        with self._unit("add_entity") as unit:
            info = unit.entities.add_entity(name, address, identification, passphrase=secret)
        return EntityHandle(self, info)

    def entities(self, pattern: Any = None) -> list[EntityHandle]:
        with self._unit("entities") as unit:
            infos = unit.entities.entities(pattern)
        return [EntityHandle(self, info) for info in infos]

    def entity(self, reference: Any) -> EntityHandle:
        """Handle for an id, a handle/DTO, or an exact name."""
        with self._unit("entity") as unit:
            if isinstance(reference, str):
                info = unit.entities.find_by_name(reference)
                if info is None:
                    raise UnknownReferenceError("Entity", reference)
            else:
                info = unit.entities.get(reference)
        return EntityHandle(self, info)

    def entity_details(self, entity: Any, *, passphrase: Any = None) -> EntityDetails:
        secret = self._secret(passphrase, DecryptionError)
        with self._unit("entity_details") as unit:
            return unit.entities.decrypt_entity(entity, passphrase=secret)

    def delete_entity(self, entity: Any) -> None:
        with self._unit("delete_entity") as unit:
            unit.entities.delete_entity(entity)

    def add_account(
        self,
        entity: Any,
        denomination: Any,
        counterparty_info: Any,
        *,
        passphrase: Any = None,
    ) -> AccountInfo:
        secret = self._secret(passphrase, EncryptionError)
        with self._unit("add_account") as unit:
            return unit.entities.add_account(entity, denomination, counterparty_info, passphrase=secret)

    def accounts(self, entity: Any) -> list[AccountInfo]:
        with self._unit("accounts") as unit:
            return unit.entities.accounts(entity)

    def account_details(self, account: Any, *, passphrase: Any = None) -> AccountDetails:
        secret = self._secret(passphrase, DecryptionError)
        with self._unit("account_details") as unit:
            return unit.entities.decrypt_account(account, passphrase=secret)

    # ------------------------------------------------------------------
    # Relationships, fee schedules and charges
    # ------------------------------------------------------------------

    def add_relationship(self, description: str, payee: Any, payor: Any) -> RelationshipHandle:
        with self._unit("add_relationship") as unit:
            info = unit.relationships.add_relationship(description, payee, payor)
        return RelationshipHandle(self, info)

    def relationships(self, pattern: Any = None) -> list[RelationshipHandle]:
        with self._unit("relationships") as unit:
            infos = unit.relationships.relationships(pattern)
        return [RelationshipHandle(self, info) for info in infos]

    def fee_schedule(self, interest_rate: Any, compounding_period: int) -> FeeScheduleInfo:
        with self._unit("fee_schedule") as unit:
            return unit.fee_schedules.create(interest_rate, compounding_period)

    def add_charge(
        self,
        relationship: Any,
        description: str,
        payload: Any,
        amount: int,
        denomination: Any,
        due_date: int | None = None,
        fee_schedule: Any = None,
    ) -> ChargeInfo:
        """A charge due at ``due_date`` (default: now)."""
        with self._unit("add_charge") as unit:
            return unit.charges.add_charge(
                relationship,
                description,
                payload,
                amount,
                denomination,
                self._now(due_date),
                fee_schedule,
            )

    def charges(
        self,
        relationship: Any = None,
        *,
        pattern: Any = None,
        active_only: bool = False,
    ) -> list[ChargeInfo]:
        with self._unit("charges") as unit:
            return unit.charge_reads.charges(relationship, pattern, active_only)

    def charge(self, reference: Any) -> ChargeInfo:
        with self._unit("charge") as unit:
            return unit.charge_reads.get(reference)

    def archive(self, *charges: Any) -> list[ChargeInfo]:
        """Deactivate charges.  Already-inactive charges are left as they are."""
        with self._unit("archive") as unit:
            return unit.charges.set_active(_flatten(charges), False)

    def activate(self, *charges: Any) -> list[ChargeInfo]:
        with self._unit("activate") as unit:
            return unit.charges.set_active(_flatten(charges), True)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def pay(
        self,
        entity: Any,
        description: str,
        amount: int,
        from_account: Any,
        to_account: Any,
        to_charges: Iterable[Any] = (),
        apply_order: ApplicationOrder | str = ApplicationOrder.FIFO,
        hook_before: Callable[[PaymentRequest], Any] | None = None,
        hook_after: Callable[[PaymentInfo, list[PaymentApplicationInfo]], Any] | None = None,
        date: int | None = None,
        require_full: bool | None = None,
    ) -> PaymentInfo:
        """
        Record a payment from one of ``entity``'s accounts and apply it.

        ``hook_before`` sees the request before anything is written; an
        exception from it aborts the payment.  A reused description or a bad
        amount is refused before ``hook_before`` runs.  ``hook_after`` runs
        once the payment and all of its applications are committed.

        Raises:
            DuplicateDescriptionError: ``description`` was already paid.
            ValueError: ``amount`` is not a positive integer.
            UnknownReferenceError: ``from_account`` does not belong to ``entity``.
        """
        payor_id = ref_id(entity)
        request = PaymentRequest(
            payor_entity_id=payor_id,
            description=description,
            amount=amount,
            from_account_id=ref_id(from_account),
            to_account_id=ref_id(to_account),
            charge_ids=tuple(ref_id(c) for c in _flatten(to_charges)),
            apply_order=ApplicationOrder.parse(apply_order),
            date=self._now(date),
        )

        with LogContext.bind(entity_id=payor_id):
            with self._unit("pay") as unit:
                unit.payments.check_new_payment(request.description, request.amount)
                source = unit.entities.get_account(request.from_account_id)
                if source.entity_id != payor_id:
                    raise UnknownReferenceError(
                        "Account", f"{request.from_account_id} of entity {payor_id}"
                    )
                unit.entities.get_account(request.to_account_id)

            if hook_before is not None:
                hook_before(request)

            with self._unit("pay") as unit:
                payment = unit.payments.record_payment(
                    request.description,
                    request.amount,
                    request.from_account_id,
                    request.to_account_id,
                    request.date,
                )
                applications: list[PaymentApplicationInfo] = []
                if request.charge_ids:
                    applications = unit.application.apply(
                        payment.id,
                        request.charge_ids,
                        request.apply_order,
                        request.date,
                        self._require_full(require_full),
                    )
                payment = unit.payment_reads.get(payment.id)

        if hook_after is not None:
            hook_after(payment, applications)
        return payment

    def apply_payment(
        self,
        payment: Any,
        to_charges: Iterable[Any],
        apply_order: ApplicationOrder | str = ApplicationOrder.FIFO,
        *,
        as_of: int | None = None,
        require_full: bool | None = None,
    ) -> list[PaymentApplicationInfo]:
        """Apply the unapplied remainder of an existing payment."""
        with self._unit("apply_payment") as unit:
            return unit.application.apply(
                payment,
                _flatten(to_charges),
                apply_order,
                self._now(as_of),
                self._require_full(require_full),
            )

    def payments(self, entity: Any = None) -> list[PaymentInfo]:
        with self._unit("payments") as unit:
            return unit.payment_reads.payments(entity)

    def payment(self, reference: Any) -> PaymentInfo:
        with self._unit("payment") as unit:
            return unit.payment_reads.get(reference)

    def applications(self, *, payment: Any = None, charge: Any = None) -> list[PaymentApplicationInfo]:
        with self._unit("applications") as unit:
            return unit.payment_reads.applications(payment=payment, charge=charge)

    def set_payment_active(self, payment: Any, active: bool) -> PaymentInfo:
        with self._unit("set_payment_active") as unit:
            return unit.payments.set_active(payment, active)

    # ------------------------------------------------------------------
    # Outstanding, statements, generation
    # ------------------------------------------------------------------

    def accrued_outstanding(self, charge: Any, as_of: int | None = None) -> int:
        with self._unit("accrued_outstanding") as unit:
            return unit.outstanding.accrued_outstanding(charge, self._now(as_of))

    def outstanding(self, *charges: Any, as_of: int | None = None, reporting: Any = None) -> int:
        """Accrued outstanding over the active charges, in one reporting denomination."""
        with self._unit("outstanding") as unit:
            return unit.outstanding.outstanding(_flatten(charges), self._now(as_of), reporting)

    def statement(self, *charges: Any, as_of: int | None = None, reporting: Any = None) -> Statement:
        with self._unit("statement") as unit:
            return unit.outstanding.statement(_flatten(charges), self._now(as_of), reporting)

    def generate(self, *charges: Any, as_of: int | None = None, reporting: Any = None) -> Any:
        """Hand the statement for ``charges`` to the configured template."""
        if self.template is None:
            raise ValueError("generate needs a template")
        statement = self.statement(*charges, as_of=as_of, reporting=reporting)
        render = getattr(self.template, "render", self.template)
        return render(statement)

    # ------------------------------------------------------------------
    # Write-off
    # ------------------------------------------------------------------

    def writeoff(self, *charges: Any, as_of: int | None = None) -> list[PaymentInfo]:
        """
        Zero the given charges with self-account payments.

        One write-off payment per (payee, charge denomination) group, drawn
        on the payee's account in that denomination (else its lowest-id
        account), all in one transaction.

        Raises:
            NoOutstandingChargesError: nothing left to write off.
            UnknownReferenceError: a payee has no account.
        """
        when = self._now(as_of)
        written: list[PaymentInfo] = []
        with self._unit("writeoff") as unit:
            infos = unit.charge_reads.get_many(_flatten(charges))
            balances = unit.outstanding.accrued_many(infos, when, include_later_applications=True)
            owed = [c for c in infos if c.active and balances[c.id] > 0]
            if not owed:
                raise NoOutstandingChargesError([c.id for c in infos])

            payees = {c.id: unit.relationships.get(c.relation_id).payee for c in owed}
            keyed = sorted(owed, key=lambda c: (payees[c.id], c.denomination_id, c.id))
            for (payee, denomination_id), group in groupby(
                keyed, key=lambda c: (payees[c.id], c.denomination_id)
            ):
                group = list(group)
                accounts = unit.entities.accounts(payee)
                if not accounts:
                    raise UnknownReferenceError("Account", f"any account of entity {payee}")
                account = next(
                    (a for a in accounts if a.denomination_id == denomination_id), accounts[0]
                )
                charge_ids = [c.id for c in group]
                payment = unit.payments.record_payment(
                    f"writeoff payee={payee} denomination={denomination_id} "
                    f"charges={','.join(str(i) for i in charge_ids)}",
                    sum(balances[i] for i in charge_ids),
                    account.id,
                    account.id,
                    when,
                )
                unit.application.apply(payment.id, charge_ids, ApplicationOrder.FIFO, when)
                written.append(unit.payment_reads.get(payment.id))

            logger.info(
                "charges_written_off",
                extra={
                    "charge_ids": [c.id for c in owed],
                    "payment_ids": [p.id for p in written],
                },
            )
        return written
