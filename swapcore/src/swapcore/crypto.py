"""
secp256k1 primitives for Taproot spends.

Uses coincurve (libsecp256k1 bindings) for all point arithmetic and
signatures.
"""

from __future__ import annotations

import coincurve

from swapcore.bitcoin import sha256, tagged_hash
from swapcore.constants import BIP341_NUMS_POINT, HTLC_INTERNAL_KEY_TAG, SECP256K1_N
from swapcore.errors import ValidationError


def strip_0x(value: str) -> str:
    return value[2:] if value.lower().startswith("0x") else value


def to_x_only(pubkey: bytes | str) -> bytes:
    """
    Reduce a public key to its 32-byte x-only form.

    Args:
        pubkey: 32-byte x-only or 33-byte compressed key (bytes or hex,
            optional 0x prefix)

    Returns:
        32-byte x-only key

    Raises:
        ValidationError: If the key has any other length
    """
    if isinstance(pubkey, str):
        try:
            pubkey = bytes.fromhex(strip_0x(pubkey))
        except ValueError as e:
            raise ValidationError(f"Invalid pubkey hex: {pubkey}") from e
    if len(pubkey) == 33:
        return pubkey[1:]
    if len(pubkey) == 32:
        return pubkey
    raise ValidationError(f"Invalid pubkey length: {len(pubkey)}")


def lift_x(x_only: bytes) -> coincurve.PublicKey:
    """Return the point with the given x coordinate and even y."""
    try:
        return coincurve.PublicKey(b"\x02" + x_only)
    except ValueError as e:
        raise ValidationError(f"Not a valid x-only public key: {x_only.hex()}") from e


def tweak_public_key(internal_key: bytes, merkle_root: bytes | None) -> tuple[bytes, int]:
    """
    Compute the Taproot output key Q = P + H_TapTweak(P || root)·G.

    Args:
        internal_key: 32-byte x-only internal key P
        merkle_root: Script tree root, or None for a key-path only output

    Returns:
        (32-byte x-only output key, parity of Q's y coordinate)

    Raises:
        ValueError: If the tweak is out of range or the result is infinity
    """
    tweak = tagged_hash("TapTweak", internal_key + (merkle_root or b""))
    if int.from_bytes(tweak, "big") >= SECP256K1_N:
        raise ValueError("Taproot tweak exceeds curve order")
    output_point = lift_x(internal_key).add(tweak)
    compressed = output_point.format(compressed=True)
    return compressed[1:], compressed[0] & 1


def tweak_private_key(private_key: bytes, merkle_root: bytes | None = None) -> bytes:
    """
    Tweak a private key for BIP341 key-path signing.

    The key is negated first when its public point has an odd y coordinate.
    """
    key = coincurve.PrivateKey(private_key)
    compressed = key.public_key.format(compressed=True)
    secret = key.to_int()
    if compressed[0] == 0x03:
        secret = SECP256K1_N - secret
    tweak = tagged_hash("TapTweak", compressed[1:] + (merkle_root or b""))
    tweaked = (secret + int.from_bytes(tweak, "big")) % SECP256K1_N
    if tweaked == 0:
        raise ValueError("Tweaked private key is zero")
    return tweaked.to_bytes(32, "big")


def htlc_internal_key() -> bytes:
    """
    NUMS internal key for HTLC outputs.

    x_only(H + sha256("GardenHTLC")·G), where H is the BIP341 point with no
    known discrete log. Key-path spending is therefore impossible.
    """
    point = coincurve.PublicKey(BIP341_NUMS_POINT).add(sha256(HTLC_INTERNAL_KEY_TAG))
    return point.format(compressed=True)[1:]


def schnorr_sign(private_key: bytes, msg: bytes) -> bytes:
    """BIP340 Schnorr signature over a 32-byte message."""
    return coincurve.PrivateKey(private_key).sign_schnorr(msg)


def schnorr_verify(x_only_pubkey: bytes, signature: bytes, msg: bytes) -> bool:
    try:
        return coincurve.PublicKeyXOnly(x_only_pubkey).verify(signature, msg)
    except ValueError:
        return False


def ecdsa_sign_compact(private_key: bytes, msg_hash: bytes) -> bytes:
    """
    Deterministic (RFC6979) ECDSA signature as 64-byte compact r || s.

    Args:
        private_key: 32-byte secret key
        msg_hash: 32-byte message digest (signed as-is, not re-hashed)

    Returns:
        64-byte low-S compact signature
    """
    recoverable = coincurve.PrivateKey(private_key).sign_recoverable(msg_hash, hasher=None)
    return recoverable[:64]


def x_only_public_key(private_key: bytes) -> bytes:
    return coincurve.PrivateKey(private_key).public_key.format(compressed=True)[1:]


def is_valid_private_key(value: int) -> bool:
    return 0 < value < SECP256K1_N
