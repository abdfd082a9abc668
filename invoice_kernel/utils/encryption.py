"""
Encryption boundary for PII blobs.

Responsibility:
    Encrypt and decrypt the opaque PII fields (entity address and
    identification, account counterparty_info) before they cross into the
    ledger tables.  The ledger only ever stores the resulting text.

Architecture position:
    Kernel > Utils.  Used by EntityService; knows nothing about the ORM.

Scheme:
    Hybrid RSA + AES.  A fresh 256-bit AES-GCM key seals the plaintext; the
    AES key is wrapped with RSA-OAEP (SHA-256) under the ledger keypair.
    Blob layout before URL-safe base64:

        version (1) | wrapped-key length (2, big endian) | wrapped key
        | nonce (12) | ciphertext + GCM tag

    The RSA private key lives in a passphrase-protected PKCS#8 PEM file.
    Every encrypt/decrypt call takes the passphrase and loads the key for
    that call only; the passphrase is never kept on the object.

Invariants enforced:
    - decrypt(encrypt(x, p), p) == x.
    - A wrong passphrase, a different key, or a truncated or tampered blob
      raises DecryptionError.  GCM authentication guarantees corrupted
      plaintext is never returned.

Failure modes:
    - EncryptionError at construction when the key file is missing.
    - EncryptionError when the key cannot be unlocked for encryption.
    - DecryptionError on any failure to recover the plaintext.
"""

import base64
import os
import struct
from pathlib import Path

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from invoice_kernel.domain.values import Payload
from invoice_kernel.exceptions import DecryptionError, EncryptionError
from invoice_kernel.logging_config import get_logger

logger = get_logger("utils.encryption")

DEFAULT_KEY_PATH = Path.home() / ".invoice" / "keys" / "invoice_key"

BLOB_VERSION = 1
NONCE_SIZE = 12
AES_KEY_BITS = 256

_HEADER = struct.Struct(">BH")

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def generate_keypair(
    passphrase: str,
    path: str | Path | None = None,
    bits: int = 2048,
) -> Path:
    """
    Provision the ledger keypair.  Idempotent: an existing file is kept.

    The private key is written as passphrase-protected PKCS#8 PEM with mode
    0600 in a 0700 directory.  Returns the key path.
    """
    key_path = Path(path) if path is not None else DEFAULT_KEY_PATH
    if key_path.is_file():
        return key_path
    if not passphrase:
        raise EncryptionError("a passphrase is required to protect the private key")

    key_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(_as_bytes(passphrase)),
    )

    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as handle:
        handle.write(pem)

    logger.info("keypair_generated", extra={"key_path": str(key_path), "bits": bits})
    return key_path


class Encryptor:
    """
    Stateless encrypt/decrypt against one keypair file.

    Contract:
        The key file is checked once, at construction.  Each call needs the
        passphrase; nothing secret survives the call.
    """

    def __init__(self, key_path: str | Path | None = None):
        self.key_path = Path(key_path) if key_path is not None else DEFAULT_KEY_PATH
        if not self.key_path.is_file():
            raise EncryptionError(
                f"no key file at {self.key_path}; run generate_keypair() first"
            )
        self._pem = self.key_path.read_bytes()

    def _private_key(self, passphrase: str | bytes, error: type) -> rsa.RSAPrivateKey:
        if not passphrase:
            raise error("a passphrase is required for PII fields")
        try:
            key = serialization.load_pem_private_key(self._pem, password=_as_bytes(passphrase))
        except (ValueError, TypeError, UnsupportedAlgorithm):
            raise error(f"cannot unlock key {self.key_path} with the given passphrase") from None
        if not isinstance(key, rsa.RSAPrivateKey):
            raise error(f"key {self.key_path} is not an RSA private key")
        return key

    def encrypt(self, plaintext: str | bytes, passphrase: str | bytes) -> str:
        """Seal plaintext; returns URL-safe base64 text."""
        key = self._private_key(passphrase, EncryptionError)
        data_key = AESGCM.generate_key(bit_length=AES_KEY_BITS)
        nonce = os.urandom(NONCE_SIZE)
        sealed = AESGCM(data_key).encrypt(nonce, _as_bytes(plaintext), None)
        wrapped = key.public_key().encrypt(data_key, _OAEP)
        blob = _HEADER.pack(BLOB_VERSION, len(wrapped)) + wrapped + nonce + sealed
        return base64.urlsafe_b64encode(blob).decode("ascii")

    def decrypt(self, ciphertext: str | bytes, passphrase: str | bytes) -> bytes:
        key = self._private_key(passphrase, DecryptionError)
        try:
            blob = base64.urlsafe_b64decode(_as_bytes(ciphertext))
            version, wrapped_len = _HEADER.unpack_from(blob)
            if version != BLOB_VERSION:
                raise DecryptionError(f"unsupported ciphertext version {version}")
            offset = _HEADER.size
            wrapped = blob[offset:offset + wrapped_len]
            offset += wrapped_len
            nonce = blob[offset:offset + NONCE_SIZE]
            sealed = blob[offset + NONCE_SIZE:]
            if len(wrapped) != wrapped_len or len(nonce) != NONCE_SIZE:
                raise DecryptionError("ciphertext is truncated")
            data_key = key.decrypt(wrapped, _OAEP)
            return AESGCM(data_key).decrypt(nonce, sealed, None)
        except (ValueError, InvalidTag, struct.error):
            raise DecryptionError("ciphertext is corrupt or was sealed under another key") from None

    def seal(self, payload: Payload, passphrase: str | bytes) -> str:
        return self.encrypt(payload.to_json(), passphrase)

    def unseal(self, blob: str | bytes, passphrase: str | bytes) -> Payload:
        text = self.decrypt(blob, passphrase)
        try:
            return Payload.from_json(text)
        except ValueError:
            raise DecryptionError("decrypted value is not a tagged payload") from None
