"""
Taproot script tree for Bitcoin HTLCs.

The HTLC output commits to three tapscript leaves under a NUMS internal key:

    redeem:          OP_SHA256 <secret_hash> OP_EQUALVERIFY <redeemer> OP_CHECKSIG
    refund:          <timelock> OP_CHECKSEQUENCEVERIFY OP_DROP <initiator> OP_CHECKSIG
    instant refund:  <initiator> OP_CHECKSIG <redeemer> OP_CHECKSIGADD OP_2 OP_NUMEQUAL

arranged as ``[redeem, [refund, instant_refund]]`` so the common redeem path
carries the shortest control block.
"""

from __future__ import annotations

from enum import Enum
from functools import cached_property

from swapcore.bitcoin import (
    encode_varint,
    push_data,
    push_int,
    tagged_hash,
    taproot_address,
    taproot_scriptpubkey,
)
from swapcore.constants import TAPSCRIPT_LEAF_VERSION
from swapcore.crypto import htlc_internal_key, strip_0x, to_x_only, tweak_public_key
from swapcore.errors import ControlBlockGenerationError, ValidationError
from swapcore.models import NetworkType

OP_2 = 0x52
OP_DROP = 0x75
OP_EQUALVERIFY = 0x88
OP_NUMEQUAL = 0x9C
OP_SHA256 = 0xA8
OP_CHECKSIG = 0xAC
OP_CHECKSEQUENCEVERIFY = 0xB2
OP_CHECKSIGADD = 0xBA


class Leaf(str, Enum):
    REDEEM = "redeem"
    REFUND = "refund"
    INSTANT_REFUND = "instant_refund"


def redeem_leaf(secret_hash: bytes, redeemer_pubkey: bytes) -> bytes:
    return (
        bytes([OP_SHA256])
        + push_data(secret_hash)
        + bytes([OP_EQUALVERIFY])
        + push_data(redeemer_pubkey)
        + bytes([OP_CHECKSIG])
    )


def refund_leaf(timelock: int, initiator_pubkey: bytes) -> bytes:
    return (
        push_int(timelock)
        + bytes([OP_CHECKSEQUENCEVERIFY, OP_DROP])
        + push_data(initiator_pubkey)
        + bytes([OP_CHECKSIG])
    )


def instant_refund_leaf(initiator_pubkey: bytes, redeemer_pubkey: bytes) -> bytes:
    return (
        push_data(initiator_pubkey)
        + bytes([OP_CHECKSIG])
        + push_data(redeemer_pubkey)
        + bytes([OP_CHECKSIGADD, OP_2, OP_NUMEQUAL])
    )


def leaf_hash(script: bytes, leaf_version: int = TAPSCRIPT_LEAF_VERSION) -> bytes:
    """TaggedHash("TapLeaf", leaf_version || compact_size(len) || script)"""
    return tagged_hash("TapLeaf", bytes([leaf_version]) + encode_varint(len(script)) + script)


def branch_hash(left: bytes, right: bytes) -> bytes:
    """TaggedHash("TapBranch", min(a, b) || max(a, b))"""
    if right < left:
        left, right = right, left
    return tagged_hash("TapBranch", left + right)


def _parse_bytes(value: bytes | str, name: str, length: int) -> bytes:
    if isinstance(value, str):
        try:
            value = bytes.fromhex(strip_0x(value))
        except ValueError as e:
            raise ValidationError(f"Invalid {name} hex") from e
    if len(value) != length:
        raise ValidationError(f"Invalid {name} length: expected {length} bytes, got {len(value)}")
    return value


class HTLCScript:
    """
    Script tree, output key and control blocks of one HTLC.

    Args:
        secret_hash: 32-byte sha256 of the secret
        initiator_pubkey: Initiator key (x-only or compressed)
        redeemer_pubkey: Redeemer key (x-only or compressed)
        timelock: Relative timelock in blocks
    """

    def __init__(
        self,
        secret_hash: bytes | str,
        initiator_pubkey: bytes | str,
        redeemer_pubkey: bytes | str,
        timelock: int,
    ):
        self.secret_hash = _parse_bytes(secret_hash, "secret hash", 32)
        self.initiator_pubkey = to_x_only(initiator_pubkey)
        self.redeemer_pubkey = to_x_only(redeemer_pubkey)
        if timelock <= 0:
            raise ValidationError(f"Timelock must be positive, got {timelock}")
        self.timelock = timelock
        self.internal_key = htlc_internal_key()

    def script(self, leaf: Leaf) -> bytes:
        if leaf == Leaf.REDEEM:
            return redeem_leaf(self.secret_hash, self.redeemer_pubkey)
        if leaf == Leaf.REFUND:
            return refund_leaf(self.timelock, self.initiator_pubkey)
        if leaf == Leaf.INSTANT_REFUND:
            return instant_refund_leaf(self.initiator_pubkey, self.redeemer_pubkey)
        raise ValueError(f"Unknown leaf: {leaf}")

    def leaf_hash(self, leaf: Leaf) -> bytes:
        return leaf_hash(self.script(leaf))

    def script_tree(self) -> list:
        """Leaf scripts as ``[redeem, [refund, instant_refund]]``."""
        return [
            self.script(Leaf.REDEEM),
            [self.script(Leaf.REFUND), self.script(Leaf.INSTANT_REFUND)],
        ]

    @cached_property
    def merkle_root(self) -> bytes:
        refund_branch = branch_hash(
            self.leaf_hash(Leaf.REFUND), self.leaf_hash(Leaf.INSTANT_REFUND)
        )
        return branch_hash(self.leaf_hash(Leaf.REDEEM), refund_branch)

    def merkle_path(self, leaf: Leaf) -> list[bytes]:
        """Sibling hashes from ``leaf`` up to the root."""
        redeem = self.leaf_hash(Leaf.REDEEM)
        refund = self.leaf_hash(Leaf.REFUND)
        instant = self.leaf_hash(Leaf.INSTANT_REFUND)
        if leaf == Leaf.REDEEM:
            return [branch_hash(refund, instant)]
        if leaf == Leaf.REFUND:
            return [instant, redeem]
        if leaf == Leaf.INSTANT_REFUND:
            return [refund, redeem]
        raise ValueError(f"Unknown leaf: {leaf}")

    @cached_property
    def _output(self) -> tuple[bytes, int]:
        try:
            return tweak_public_key(self.internal_key, self.merkle_root)
        except ValueError as e:
            raise ControlBlockGenerationError(str(e)) from e

    @property
    def output_key(self) -> bytes:
        return self._output[0]

    @property
    def scriptpubkey(self) -> bytes:
        return taproot_scriptpubkey(self.output_key)

    def address(self, network: NetworkType | str = NetworkType.MAINNET) -> str:
        return taproot_address(self.output_key, network)

    def control_block(self, leaf: Leaf) -> bytes:
        """
        Control block proving ``leaf`` is committed in the output key.

        Returns:
            (leaf_version | parity) || internal_key || merkle_path

        Raises:
            ControlBlockGenerationError: If the output key cannot be derived
        """
        _, parity = self._output
        return (
            bytes([TAPSCRIPT_LEAF_VERSION | parity])
            + self.internal_key
            + b"".join(self.merkle_path(leaf))
        )
