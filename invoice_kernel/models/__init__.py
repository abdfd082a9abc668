"""ORM models for the invoice ledger."""

from invoice_kernel.models.charge import Charge
from invoice_kernel.models.denomination import ConversionRate, Denomination
from invoice_kernel.models.entity import Account, Entity
from invoice_kernel.models.fee_schedule import FeeSchedule
from invoice_kernel.models.payment import Payment, PaymentApplication
from invoice_kernel.models.relation import Relation

__all__ = [
    "Account",
    "Charge",
    "ConversionRate",
    "Denomination",
    "Entity",
    "FeeSchedule",
    "Payment",
    "PaymentApplication",
    "Relation",
]
