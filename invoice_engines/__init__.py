"""
Pure calculation engines for the invoice ledger.

No I/O, no sessions, no clock.  Services feed these engines DTO-shaped
inputs and persist what they return.
"""

from invoice_engines.accrual import (
    AppliedAmount,
    FeeAccrualEngine,
    FeeTerms,
    compounding_periods,
)
from invoice_engines.application import (
    ApplicationLine,
    ApplicationPlan,
    ApplicationTarget,
    PaymentApplicationEngine,
)
from invoice_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AppliedAmount",
    "ApplicationLine",
    "ApplicationPlan",
    "ApplicationTarget",
    "FeeAccrualEngine",
    "FeeTerms",
    "PaymentApplicationEngine",
    "compounding_periods",
    "compute_input_fingerprint",
    "traced_engine",
]
