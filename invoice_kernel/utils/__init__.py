"""Kernel utilities."""

from invoice_kernel.utils.encryption import DEFAULT_KEY_PATH, Encryptor, generate_keypair

__all__ = ["DEFAULT_KEY_PATH", "Encryptor", "generate_keypair"]
