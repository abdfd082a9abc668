"""
Service layer for the Entity store.

Manages parties and their accounts.  PII fields (address, identification,
counterparty_info) are sealed through the encryption boundary before they
reach the ORM and unsealed only on an explicit decrypt call.  The passphrase
is a per-call argument and is never kept.

Deletion cascades to accounts and relationships at the database level, but
is refused while ledger history references the entity: payments through
its accounts, or applications on charges of its relationships.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError

from invoice_kernel.domain.dtos import AccountDetails, AccountInfo, EntityDetails, EntityInfo
from invoice_kernel.domain.references import compile_pattern, ref_id
from invoice_kernel.domain.values import Payload
from invoice_kernel.exceptions import EncryptionError, RecordReferencedError
from invoice_kernel.logging_config import get_logger
from invoice_kernel.models.charge import Charge
from invoice_kernel.models.entity import Account, Entity
from invoice_kernel.models.payment import Payment, PaymentApplication
from invoice_kernel.models.relation import Relation
from invoice_kernel.services.base import BaseService
from invoice_kernel.services.denomination_service import DenominationService
from invoice_kernel.utils.encryption import Encryptor

logger = get_logger("services.entity")


class EntityService(BaseService[Entity]):
    """
    Parties and their settlement accounts.

    All public methods return DTOs, never ORM rows.
    """

    def __init__(self, session, encryptor: Encryptor | None = None):
        super().__init__(session)
        self.encryptor = encryptor

    def _require_encryptor(self) -> Encryptor:
        if self.encryptor is None:
            raise EncryptionError("no encryption key is configured for PII fields")
        return self.encryptor

    def _seal(self, value: Any, kind: str, passphrase: str) -> str:
        return self._require_encryptor().seal(Payload.of(value, kind), passphrase)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def add_entity(
        self,
        name: str,
        address: Any,
        identification: Any = None,
        *,
        passphrase: str,
    ) -> EntityInfo:
        """
        Register a party.

        Raises:
            DuplicateDescriptionError: name already registered.
            EncryptionError: no key configured, or the key cannot be unlocked.
        """
        if not name:
            raise ValueError("Entity name is required")
        self._require_unique(Entity, "name", name)

        entity = Entity(
            name=name,
            address=self._seal(address, "address", passphrase),
            identification=(
                self._seal(identification, "identification", passphrase)
                if identification is not None
                else None
            ),
        )
        self.session.add(entity)
        self._flush_unique("Entity", "name", name)

        logger.info("entity_added", extra={"entity_id": entity.id, "entity_name": name})
        return EntityInfo.from_model(entity)

    def get(self, reference: Any) -> EntityInfo:
        return EntityInfo.from_model(self._load(Entity, reference))

    def find_by_name(self, name: str) -> EntityInfo | None:
        row = self.session.execute(select(Entity).where(Entity.name == name)).scalar_one_or_none()
        return EntityInfo.from_model(row) if row is not None else None

    def entities(self, pattern: Any = None) -> list[EntityInfo]:
        """All entities ordered by id, optionally filtered by a name regex."""
        regex = compile_pattern(pattern)
        rows = self.session.execute(select(Entity).order_by(Entity.id)).scalars()
        return [
            EntityInfo.from_model(row)
            for row in rows
            if regex is None or regex.search(row.name)
        ]

    def decrypt_entity(self, reference: Any, *, passphrase: str) -> EntityDetails:
        entity = self._load(Entity, reference)
        encryptor = self._require_encryptor()
        return EntityDetails(
            id=entity.id,
            name=entity.name,
            address=encryptor.unseal(entity.address, passphrase),
            identification=(
                encryptor.unseal(entity.identification, passphrase)
                if entity.identification is not None
                else None
            ),
        )

    def delete_entity(self, reference: Any) -> None:
        """
        Remove an entity with its accounts and relationships.

        Raises:
            RecordReferencedError: payments or payment applications depend on it.
        """
        entity = self._load(Entity, reference)
        entity_id = entity.id

        account_ids = select(Account.id).where(Account.entity_id == entity_id)
        payments = self.session.execute(
            select(func.count())
            .select_from(Payment)
            .where(
                or_(
                    Payment.from_account_id.in_(account_ids),
                    Payment.to_account_id.in_(account_ids),
                )
            )
        ).scalar()
        if payments:
            raise RecordReferencedError(
                "Entity", str(entity_id), f"{payments} payment(s) use its accounts"
            )

        relation_ids = select(Relation.id).where(
            or_(Relation.payee == entity_id, Relation.payor == entity_id)
        )
        applications = self.session.execute(
            select(func.count())
            .select_from(PaymentApplication)
            .join(Charge, PaymentApplication.charge_id == Charge.id)
            .where(Charge.relation_id.in_(relation_ids))
        ).scalar()
        if applications:
            raise RecordReferencedError(
                "Entity",
                str(entity_id),
                f"{applications} payment application(s) reference its charges",
            )

        self.session.expunge(entity)
        try:
            self.session.execute(delete(Entity).where(Entity.id == entity_id))
            self.session.flush()
        except IntegrityError as exc:
            raise RecordReferencedError("Entity", str(entity_id), str(exc.orig)) from exc

        logger.info("entity_deleted", extra={"entity_id": entity_id})

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def add_account(
        self,
        entity: Any,
        denomination: Any,
        counterparty_info: Any,
        *,
        passphrase: str,
    ) -> AccountInfo:
        owner = self._load(Entity, entity)
        denom = DenominationService(self.session).resolve(denomination)

        account = Account(
            entity_id=owner.id,
            denomination_id=denom.id,
            counterparty_info=self._seal(counterparty_info, "counterparty", passphrase),
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_added",
            extra={"entity_id": owner.id, "account_id": account.id, "denomination": denom.code},
        )
        return AccountInfo.from_model(account)

    def get_account(self, reference: Any) -> AccountInfo:
        return AccountInfo.from_model(self._load(Account, reference))

    def accounts(self, entity: Any) -> list[AccountInfo]:
        owner_id = ref_id(entity)
        self._load(Entity, owner_id)
        rows = self.session.execute(
            select(Account).where(Account.entity_id == owner_id).order_by(Account.id)
        ).scalars()
        return [AccountInfo.from_model(row) for row in rows]

    def decrypt_account(self, reference: Any, *, passphrase: str) -> AccountDetails:
        account = self._load(Account, reference)
        return AccountDetails(
            id=account.id,
            entity_id=account.entity_id,
            denomination_id=account.denomination_id,
            counterparty_info=self._require_encryptor().unseal(account.counterparty_info, passphrase),
        )
