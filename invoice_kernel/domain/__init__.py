"""Pure domain layer: value objects, DTOs and the clock."""

from invoice_kernel.domain.clock import Clock, DeterministicClock, SystemClock
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
    StatementLine,
)
from invoice_kernel.domain.values import ApplicationOrder, LifecycleState, Payload

__all__ = [
    "AccountDetails",
    "AccountInfo",
    "ApplicationOrder",
    "ChargeInfo",
    "Clock",
    "ConversionRateInfo",
    "DenominationInfo",
    "DeterministicClock",
    "EntityDetails",
    "EntityInfo",
    "FeeScheduleInfo",
    "LifecycleState",
    "Payload",
    "PaymentApplicationInfo",
    "PaymentInfo",
    "RelationshipInfo",
    "Statement",
    "StatementLine",
    "SystemClock",
]
