"""
Tests for the HTLC Taproot script tree.
"""

from __future__ import annotations

import pytest
from swapcore.bitcoin import address_to_scriptpubkey, sha256
from swapcore.constants import TAPSCRIPT_LEAF_VERSION
from swapcore.crypto import htlc_internal_key, tweak_public_key
from swapcore.errors import ValidationError
from swapcore.models import NetworkType

from swapwallet.htlc.script import (
    HTLCScript,
    Leaf,
    branch_hash,
    instant_refund_leaf,
    leaf_hash,
    redeem_leaf,
    refund_leaf,
)

SECRET_HASH = sha256(bytes(32))
INITIATOR = bytes.fromhex("79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798")
REDEEMER = bytes.fromhex("c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5")
# BIP341 NUMS point plus sha256("GardenHTLC")·G, x-only
HTLC_INTERNAL_KEY = bytes.fromhex(
    "2160e11a135f94e536a5b222e5d09fd9db1be5f5f5e753920290c0410cf388f0"
)


@pytest.fixture
def script() -> HTLCScript:
    return HTLCScript(SECRET_HASH, INITIATOR, REDEEMER, 144)


def _root_from_control_block(control_block: bytes, leaf_script: bytes) -> tuple[bytes, int]:
    """Walk the merkle path the way a BIP341 verifier does."""
    k = leaf_hash(leaf_script, control_block[0] & 0xFE)
    path = control_block[33:]
    for i in range(0, len(path), 32):
        k = branch_hash(k, path[i : i + 32])
    return k, control_block[0] & 1


class TestLeafScripts:
    """Tests for the tapscript leaves."""

    def test_redeem_leaf_bytes(self) -> None:
        expected = (
            bytes([0xA8, 0x20]) + SECRET_HASH + bytes([0x88, 0x20]) + REDEEMER + bytes([0xAC])
        )
        assert redeem_leaf(SECRET_HASH, REDEEMER) == expected

    def test_refund_leaf_bytes(self) -> None:
        expected = bytes([0x02, 0x90, 0x00, 0xB2, 0x75, 0x20]) + INITIATOR + bytes([0xAC])
        assert refund_leaf(144, INITIATOR) == expected

    def test_refund_leaf_small_timelock(self) -> None:
        assert refund_leaf(10, INITIATOR)[:3] == bytes([0x5A, 0xB2, 0x75])

    def test_instant_refund_leaf_bytes(self) -> None:
        expected = (
            bytes([0x20])
            + INITIATOR
            + bytes([0xAC, 0x20])
            + REDEEMER
            + bytes([0xBA, 0x52, 0x9C])
        )
        assert instant_refund_leaf(INITIATOR, REDEEMER) == expected

    def test_leaf_hash_definition(self) -> None:
        leaf = redeem_leaf(SECRET_HASH, REDEEMER)
        tag = sha256(b"TapLeaf")
        assert leaf_hash(leaf) == sha256(tag + tag + bytes([0xC0, len(leaf)]) + leaf)

    def test_branch_hash_is_sorted(self) -> None:
        a, b = sha256(b"a"), sha256(b"b")
        assert branch_hash(a, b) == branch_hash(b, a)


class TestHTLCScript:
    """Tests for HTLCScript."""

    def test_accepts_compressed_and_hex_keys(self) -> None:
        script = HTLCScript(
            SECRET_HASH.hex(), "02" + INITIATOR.hex(), "0x" + REDEEMER.hex(), 144
        )
        assert script.initiator_pubkey == INITIATOR
        assert script.redeemer_pubkey == REDEEMER

    def test_script_tree_layout(self, script: HTLCScript) -> None:
        tree = script.script_tree()
        assert tree[0] == script.script(Leaf.REDEEM)
        assert tree[1] == [script.script(Leaf.REFUND), script.script(Leaf.INSTANT_REFUND)]

    def test_merkle_root(self, script: HTLCScript) -> None:
        refund_branch = branch_hash(
            script.leaf_hash(Leaf.REFUND), script.leaf_hash(Leaf.INSTANT_REFUND)
        )
        expected = branch_hash(script.leaf_hash(Leaf.REDEEM), refund_branch)
        assert script.merkle_root == expected

    def test_nums_internal_key(self, script: HTLCScript) -> None:
        assert script.internal_key == HTLC_INTERNAL_KEY
        assert htlc_internal_key() == HTLC_INTERNAL_KEY

    @pytest.mark.parametrize("leaf", list(Leaf))
    def test_control_block_commits_to_output_key(self, script: HTLCScript, leaf: Leaf) -> None:
        control_block = script.control_block(leaf)
        assert control_block[0] & 0xFE == TAPSCRIPT_LEAF_VERSION
        assert control_block[1:33] == script.internal_key

        root, parity = _root_from_control_block(control_block, script.script(leaf))
        assert root == script.merkle_root
        assert tweak_public_key(script.internal_key, root) == (script.output_key, parity)

    def test_control_block_lengths(self, script: HTLCScript) -> None:
        assert len(script.control_block(Leaf.REDEEM)) == 33 + 32
        assert len(script.control_block(Leaf.REFUND)) == 33 + 64
        assert len(script.control_block(Leaf.INSTANT_REFUND)) == 33 + 64

    def test_address(self, script: HTLCScript) -> None:
        mainnet = script.address()
        regtest = script.address(NetworkType.REGTEST)
        assert mainnet.startswith("bc1p")
        assert regtest.startswith("bcrt1p")
        assert address_to_scriptpubkey(mainnet) == script.scriptpubkey
        assert script.scriptpubkey == bytes([0x51, 0x20]) + script.output_key

    def test_parameters_change_address(self, script: HTLCScript) -> None:
        other = HTLCScript(SECRET_HASH, INITIATOR, REDEEMER, 145)
        assert other.address() != script.address()

    def test_invalid_secret_hash(self) -> None:
        with pytest.raises(ValidationError):
            HTLCScript(SECRET_HASH[:31], INITIATOR, REDEEMER, 144)
        with pytest.raises(ValidationError):
            HTLCScript("not hex", INITIATOR, REDEEMER, 144)

    def test_invalid_timelock(self) -> None:
        with pytest.raises(ValidationError):
            HTLCScript(SECRET_HASH, INITIATOR, REDEEMER, 0)

    def test_invalid_pubkey(self) -> None:
        with pytest.raises(ValidationError):
            HTLCScript(SECRET_HASH, INITIATOR[:20], REDEEMER, 144)
