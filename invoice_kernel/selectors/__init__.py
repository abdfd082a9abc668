"""Read-only query selectors."""

from invoice_kernel.selectors.base import BaseSelector
from invoice_kernel.selectors.charge_selector import ChargeSelector
from invoice_kernel.selectors.payment_selector import PaymentSelector

__all__ = ["BaseSelector", "ChargeSelector", "PaymentSelector"]
