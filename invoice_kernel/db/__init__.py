"""Database layer - storage session, base classes, types, and immutability."""

from invoice_kernel.db.base import Base, TrackedBase
from invoice_kernel.db.engine import MEMORY, LedgerStore, storage_url
from invoice_kernel.db.types import BASIS_SCALE, RATE_SCALE, Amount, round_minor

__all__ = [
    "LedgerStore",
    "MEMORY",
    "storage_url",
    "Base",
    "TrackedBase",
    "Amount",
    "BASIS_SCALE",
    "RATE_SCALE",
    "round_minor",
]
