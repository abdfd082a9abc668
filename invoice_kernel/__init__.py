"""
Invoice Kernel

A persistent, append-only invoicing ledger with:
- Idempotent submission guarded by unique descriptions
- Interest accrual on unpaid charges
- FIFO/LIFO payment application across entities
- Multi-denomination conversion
- Encrypted PII at rest
"""

__version__ = "0.1.0"
