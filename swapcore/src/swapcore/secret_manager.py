"""
Deterministic HTLC secret derivation.

Every order's secret is derived from a single root "digest key" and the
order nonce, so secrets never need to be stored:

    msg         = sha256("Garden.fi" + str(nonce))
    signature   = ECDSA_RFC6979(digest_key, msg)   (64-byte compact r || s)
    secret      = sha256(signature)
    secret_hash = sha256(secret)
"""

from __future__ import annotations

import re
import secrets as _secrets
from dataclasses import dataclass

from loguru import logger

from swapcore.bitcoin import sha256
from swapcore.constants import SECRET_DERIVATION_PREFIX
from swapcore.crypto import ecdsa_sign_compact, is_valid_private_key, strip_0x
from swapcore.errors import ValidationError

_DIGEST_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class DigestKeyDerivedSecret:
    secret: bytes
    secret_hash: bytes

    @property
    def secret_hex(self) -> str:
        return self.secret.hex()

    @property
    def secret_hash_hex(self) -> str:
        return self.secret_hash.hex()


class DigestKey:
    """Root secp256k1 key from which per-order secrets are derived."""

    def __init__(self, key: bytes):
        if len(key) != 32 or not is_valid_private_key(int.from_bytes(key, "big")):
            raise ValidationError("Invalid private key")
        self._key = key

    @classmethod
    def from_hex(cls, value: str) -> DigestKey:
        value = strip_0x(value.strip())
        if not _DIGEST_KEY_RE.match(value):
            raise ValidationError("Invalid digest key format")
        return cls(bytes.fromhex(value))

    @classmethod
    def generate(cls) -> DigestKey:
        while True:
            candidate = _secrets.token_bytes(32)
            if is_valid_private_key(int.from_bytes(candidate, "big")):
                return cls(candidate)

    @property
    def key(self) -> bytes:
        return self._key

    def hex(self) -> str:
        return self._key.hex()

    def __repr__(self) -> str:
        return "DigestKey(<redacted>)"


class SecretManager:
    """Derives (secret, secret_hash) pairs for order nonces."""

    def __init__(self, digest_key: DigestKey):
        self.digest_key = digest_key

    @classmethod
    def from_hex(cls, digest_key: str) -> SecretManager:
        return cls(DigestKey.from_hex(digest_key))

    def sign_nonce(self, nonce: int | str) -> bytes:
        message_hash = sha256(f"{SECRET_DERIVATION_PREFIX}{nonce}".encode())
        return ecdsa_sign_compact(self.digest_key.key, message_hash)

    def generate_secret(self, nonce: int | str) -> DigestKeyDerivedSecret:
        """
        Derive the HTLC secret for an order nonce.

        Args:
            nonce: Order nonce as reported by the orderbook

        Returns:
            DigestKeyDerivedSecret with 32-byte secret and its sha256
        """
        secret = sha256(self.sign_nonce(nonce))
        derived = DigestKeyDerivedSecret(secret=secret, secret_hash=sha256(secret))
        logger.debug(f"Derived secret hash {derived.secret_hash_hex} for nonce {nonce}")
        return derived
