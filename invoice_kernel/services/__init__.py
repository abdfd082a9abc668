"""Kernel services: flush-only writers over the caller's session."""

from invoice_kernel.services.base import BaseService
from invoice_kernel.services.charge_service import ChargeService
from invoice_kernel.services.conversion_service import ConversionService
from invoice_kernel.services.denomination_service import DenominationService
from invoice_kernel.services.entity_service import EntityService
from invoice_kernel.services.fee_schedule_service import FeeScheduleService
from invoice_kernel.services.payment_service import PaymentService
from invoice_kernel.services.relationship_service import RelationshipService

__all__ = [
    "BaseService",
    "ChargeService",
    "ConversionService",
    "DenominationService",
    "EntityService",
    "FeeScheduleService",
    "PaymentService",
    "RelationshipService",
]
