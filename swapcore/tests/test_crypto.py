"""
Tests for secp256k1 helpers.
"""

from __future__ import annotations

import pytest

from swapcore.bitcoin import sha256, taproot_address
from swapcore.crypto import (
    htlc_internal_key,
    is_valid_private_key,
    lift_x,
    schnorr_sign,
    schnorr_verify,
    strip_0x,
    to_x_only,
    tweak_private_key,
    tweak_public_key,
    x_only_public_key,
)
from swapcore.errors import ValidationError

G_X = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
THREE_G_X = "f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9"

BIP86_INTERNAL_KEY = "cc8a4bc64d897bddc5fbc2f670f7a8ba0b386779106cf1223c6fc5d7cd6fc115"
BIP86_ADDRESS = "bc1p5cyxnuxmeuwuvkwfem96lqzszd02n6xdcjrs20cac6yqjjwudpxqkedrcr"


class TestKeys:
    """Tests for key conversions."""

    def test_strip_0x(self) -> None:
        assert strip_0x("0xabcd") == "abcd"
        assert strip_0x("0XABCD") == "ABCD"
        assert strip_0x("abcd") == "abcd"

    def test_x_only_public_key(self) -> None:
        assert x_only_public_key((1).to_bytes(32, "big")).hex() == G_X
        assert x_only_public_key((3).to_bytes(32, "big")).hex() == THREE_G_X

    def test_to_x_only_compressed(self) -> None:
        assert to_x_only("02" + G_X).hex() == G_X
        assert to_x_only("0x" + G_X).hex() == G_X
        assert to_x_only(bytes.fromhex(G_X)).hex() == G_X

    def test_to_x_only_rejects_bad_input(self) -> None:
        with pytest.raises(ValidationError):
            to_x_only("zz")
        with pytest.raises(ValidationError):
            to_x_only(bytes(20))

    def test_lift_x_even_y(self) -> None:
        point = lift_x(bytes.fromhex(G_X))
        assert point.format(compressed=True)[0] == 0x02

    def test_lift_x_invalid(self) -> None:
        # x above the field prime
        with pytest.raises(ValidationError):
            lift_x(b"\xff" * 32)

    def test_is_valid_private_key(self) -> None:
        assert is_valid_private_key(1)
        assert not is_valid_private_key(0)
        assert not is_valid_private_key(2**256 - 1)


class TestTaprootTweak:
    """Tests for BIP341 key tweaking."""

    def test_bip86_output_key(self) -> None:
        output_key, _ = tweak_public_key(bytes.fromhex(BIP86_INTERNAL_KEY), None)
        assert taproot_address(output_key) == BIP86_ADDRESS

    def test_tweaked_private_key_matches_output_key(self) -> None:
        private_key = (3).to_bytes(32, "big")
        merkle_root = sha256(b"tree")
        output_key, _ = tweak_public_key(x_only_public_key(private_key), merkle_root)
        tweaked = tweak_private_key(private_key, merkle_root)
        assert x_only_public_key(tweaked) == output_key

    def test_tweak_private_key_odd_y(self) -> None:
        """Keys with an odd-y public point are negated before tweaking."""
        for n in range(1, 10):
            private_key = n.to_bytes(32, "big")
            output_key, _ = tweak_public_key(x_only_public_key(private_key), None)
            assert x_only_public_key(tweak_private_key(private_key)) == output_key


class TestHtlcInternalKey:
    """Tests for the NUMS internal key."""

    def test_known_value(self) -> None:
        assert htlc_internal_key().hex() == (
            "2160e11a135f94e536a5b222e5d09fd9db1be5f5f5e753920290c0410cf388f0"
        )

    def test_on_curve(self) -> None:
        lift_x(htlc_internal_key())


class TestSchnorr:
    """Tests for BIP340 signatures."""

    def test_sign_verify(self) -> None:
        private_key = (7).to_bytes(32, "big")
        msg = sha256(b"message")
        sig = schnorr_sign(private_key, msg)
        assert len(sig) == 64
        assert schnorr_verify(x_only_public_key(private_key), sig, msg)

    def test_verify_rejects_wrong_key(self) -> None:
        msg = sha256(b"message")
        sig = schnorr_sign((7).to_bytes(32, "big"), msg)
        assert not schnorr_verify(x_only_public_key((8).to_bytes(32, "big")), sig, msg)

    def test_verify_rejects_tampered_message(self) -> None:
        private_key = (7).to_bytes(32, "big")
        sig = schnorr_sign(private_key, sha256(b"message"))
        assert not schnorr_verify(x_only_public_key(private_key), sig, sha256(b"other"))
