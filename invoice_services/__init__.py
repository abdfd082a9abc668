"""
Orchestration over engines and the kernel, plus the Ledger facade.

``Ledger`` is the public entry point; the services here are what it runs
inside each transaction.
"""

from invoice_services.application_service import PaymentApplicationService
from invoice_services.ledger import (
    EntityHandle,
    Ledger,
    PaymentRequest,
    RelationshipHandle,
)
from invoice_services.outstanding_service import OutstandingService

__all__ = [
    "EntityHandle",
    "Ledger",
    "OutstandingService",
    "PaymentApplicationService",
    "PaymentRequest",
    "RelationshipHandle",
]
