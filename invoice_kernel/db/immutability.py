"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The ledger is append-only.  Nothing is hard-deleted; charges and payments are
deactivated, and the PaymentApplication trail is the audit record of every
settlement.  A charge whose amount or denomination could be edited after a
payment was applied to it would silently rewrite history.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_flush]  --> _check_deletions() -------------> ImmutabilityViolationError
         |
         v
    [before_update] --> _check_*_immutability() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Foreign keys (ON DELETE RESTRICT) back these checks up for anything that goes
around the ORM.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable                      | Mutable fields
--------------------|-------------------------------------|------------------
Denomination        | Once a Charge or Account uses it    | (none)
FeeSchedule         | Once a Charge uses it               | (none)
Charge              | ALWAYS (from creation)              | active, version
Payment             | ALWAYS (from creation)              | active
PaymentApplication  | ALWAYS (from creation)              | active
ConversionRate      | ALWAYS (append-only)                | (none)

Deletes: Payment, PaymentApplication and ConversionRate rows are never
deleted.  Charges are never deleted while an application references them.

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY INLINE IMPORTS?
   Avoids circular imports.  Models import from db, db imports from models.

2. WHY COLUMN ATTRIBUTES ONLY?
   Relationship attributes carry no data of their own; the FK column they
   write is checked instead.

3. WHY before_flush FOR DELETES?
   Mapper-level before_delete fires after the flush plan is fixed; before_flush
   sees session.deleted while the plan can still be abandoned.

===============================================================================
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session

from invoice_kernel.exceptions import ImmutabilityViolationError
from invoice_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _changed_columns(target, allowed: frozenset[str] = frozenset()) -> list[str]:
    """Column attributes with pending changes, excluding ``allowed``."""
    insp = inspect(target)
    changed = []
    for column_attr in insp.mapper.column_attrs:
        key = column_attr.key
        if key in allowed or key == "created_at":
            continue
        if insp.attrs[key].history.has_changes():
            changed.append(key)
    return changed


def _block(entity_type: str, entity_id, operation: str, reason: str, **extra) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _count(connection, stmt) -> int:
    return connection.execute(stmt).scalar() or 0


# =============================================================================
# Deletions
# =============================================================================


def _check_deletions(session, flush_context, instances):
    """Block deletion of history rows before the flush plan is finalized."""
    from invoice_kernel.models.charge import Charge
    from invoice_kernel.models.denomination import ConversionRate
    from invoice_kernel.models.payment import Payment, PaymentApplication

    for obj in list(session.deleted):
        if isinstance(obj, (Payment, PaymentApplication, ConversionRate)):
            _block(
                type(obj).__name__,
                obj.id,
                "DELETE",
                f"{type(obj).__name__} rows are append-only; deactivate instead",
            )
        if isinstance(obj, Charge):
            with session.no_autoflush:
                referenced = session.execute(
                    select(func.count())
                    .select_from(PaymentApplication)
                    .where(PaymentApplication.charge_id == obj.id)
                ).scalar()
            if referenced:
                _block(
                    "Charge",
                    obj.id,
                    "DELETE",
                    "charge has payment applications; deactivate instead",
                    reference_count=referenced,
                )


# =============================================================================
# Updates
# =============================================================================


def _check_denomination_immutability(mapper, connection, target):
    """Description, code and symbol are frozen once a Charge or Account uses the row."""
    from invoice_kernel.models.charge import Charge
    from invoice_kernel.models.entity import Account

    changed = _changed_columns(target)
    if not changed:
        return

    references = _count(
        connection,
        select(func.count()).select_from(Charge).where(Charge.denomination_id == target.id),
    ) + _count(
        connection,
        select(func.count()).select_from(Account).where(Account.denomination_id == target.id),
    )
    if references:
        _block(
            "Denomination",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a referenced denomination",
            field=changed[0],
            reference_count=references,
        )


def _check_fee_schedule_immutability(mapper, connection, target):
    """A schedule referenced by any Charge is frozen; rate changes need a new schedule."""
    from invoice_kernel.models.charge import Charge

    changed = _changed_columns(target)
    if not changed:
        return

    references = _count(
        connection,
        select(func.count()).select_from(Charge).where(Charge.fee_schedule_id == target.id),
    )
    if references:
        _block(
            "FeeSchedule",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a fee schedule used by {references} charge(s)",
            field=changed[0],
        )


def _check_charge_immutability(mapper, connection, target):
    """Only the lifecycle flag and concurrency version of a Charge may change."""
    from invoice_kernel.models.charge import CHARGE_MUTABLE_FIELDS

    changed = _changed_columns(target, CHARGE_MUTABLE_FIELDS)
    if changed:
        _block(
            "Charge",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed[0]}'; create a new charge instead",
            field=changed[0],
        )


def _check_payment_immutability(mapper, connection, target):
    changed = _changed_columns(target, frozenset({"active"}))
    if changed:
        _block(
            "Payment",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a recorded payment",
            field=changed[0],
        )


def _check_application_immutability(mapper, connection, target):
    changed = _changed_columns(target, frozenset({"active"}))
    if changed:
        _block(
            "PaymentApplication",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a payment application",
            field=changed[0],
        )


def _check_conversion_rate_immutability(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block(
            "ConversionRate",
            target.id,
            "UPDATE",
            "Conversion rates are append-only; record a new rate instead",
            field=changed[0],
        )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from invoice_kernel.models.charge import Charge
    from invoice_kernel.models.denomination import ConversionRate, Denomination
    from invoice_kernel.models.fee_schedule import FeeSchedule
    from invoice_kernel.models.payment import Payment, PaymentApplication

    return (
        (Session, "before_flush", _check_deletions),
        (Denomination, "before_update", _check_denomination_immutability),
        (FeeSchedule, "before_update", _check_fee_schedule_immutability),
        (Charge, "before_update", _check_charge_immutability),
        (Payment, "before_update", _check_payment_immutability),
        (PaymentApplication, "before_update", _check_application_immutability),
        (ConversionRate, "before_update", _check_conversion_rate_immutability),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.  Idempotent.

    Called by LedgerStore.create_tables(); call it directly when the schema
    is managed elsewhere.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
