"""
Bitcoin primitives needed to build and inspect HTLC spends.

Covers hashing (including BIP340 tagged hashes), compact-size integers,
script pushes, address <-> scriptPubKey conversion for every standard output
type, a mutable transaction model with weight/vsize, and BIP341 signature
hashing for key-path and tapscript spends.

Segwit addresses go through the ``bip_utils`` segwit codec, which checksums
witness v0 with bech32 and v1 with bech32m. Legacy addresses use ``base58``.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field

import base58
from bip_utils.bech32 import Bech32ChecksumError, SegwitBech32Decoder, SegwitBech32Encoder

from swapcore.constants import (
    SATS_PER_BTC,
    SIGHASH_ALL,
    SIGHASH_ANYONECANPAY,
    SIGHASH_DEFAULT,
    SIGHASH_NONE,
    SIGHASH_SINGLE,
)
from swapcore.errors import ScriptTypeError
from swapcore.models import NetworkType

# Network prefixes for address encoding
HRP_MAP = {
    NetworkType.MAINNET: "bc",
    NetworkType.TESTNET: "tb",
    NetworkType.SIGNET: "tb",
    NetworkType.REGTEST: "bcrt",
}

# Base58 version bytes
P2PKH_VERSION = {
    NetworkType.MAINNET: 0x00,
    NetworkType.TESTNET: 0x6F,
    NetworkType.SIGNET: 0x6F,
    NetworkType.REGTEST: 0x6F,
}

P2SH_VERSION = {
    NetworkType.MAINNET: 0x05,
    NetworkType.TESTNET: 0xC4,
    NetworkType.SIGNET: 0xC4,
    NetworkType.REGTEST: 0xC4,
}

# OP_DUP OP_HASH160 <20> ... OP_EQUALVERIFY OP_CHECKSIG
P2PKH_PREFIX = bytes([0x76, 0xA9, 0x14])
P2PKH_SUFFIX = bytes([0x88, 0xAC])
# OP_HASH160 <20> ... OP_EQUAL
P2SH_PREFIX = bytes([0xA9, 0x14])
P2SH_SUFFIX = bytes([0x87])


# =============================================================================
# Amount Utilities
# =============================================================================


def format_amount(sats: int, include_unit: bool = True) -> str:
    """Human-readable amount for log lines, e.g. ``1,000,000 sats (0.01000000 BTC)``."""
    if not include_unit:
        return f"{sats:,}"
    return f"{sats:,} sats ({sats / SATS_PER_BTC:.8f} BTC)"


# =============================================================================
# Hash Functions
# =============================================================================


def sha256(data: bytes) -> bytes:
    """Single SHA256 hash."""
    return hashlib.sha256(data).digest()


def hash256(data: bytes) -> bytes:
    """Double SHA256, as used for txids."""
    return sha256(sha256(data))


def tagged_hash(tag: str, data: bytes) -> bytes:
    """
    BIP340 tagged hash: SHA256(SHA256(tag) || SHA256(tag) || data).

    Args:
        tag: Tag string (e.g. "TapLeaf", "TapBranch", "TapTweak", "TapSighash")
        data: Message to hash

    Returns:
        32-byte hash
    """
    tag_digest = sha256(tag.encode())
    return sha256(tag_digest + tag_digest + data)


# =============================================================================
# Varint Encoding/Decoding
# =============================================================================


# prefix byte -> (struct format, payload size)
_VARINT_WIDTHS = {0xFD: ("<H", 2), 0xFE: ("<I", 4), 0xFF: ("<Q", 8)}


def encode_varint(n: int) -> bytes:
    """Encode a non-negative integer as a compact size."""
    if n < 0xFD:
        return bytes([n])
    for prefix, (fmt, size) in _VARINT_WIDTHS.items():
        if n < 1 << (8 * size):
            return bytes([prefix]) + struct.pack(fmt, n)
    raise ValueError(f"Varint out of range: {n}")


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """
    Decode a compact size starting at ``offset``.

    Returns:
        (value, offset just past the encoded integer)
    """
    if offset >= len(data):
        raise ValueError("Truncated varint")
    prefix = data[offset]
    if prefix not in _VARINT_WIDTHS:
        return prefix, offset + 1
    fmt, size = _VARINT_WIDTHS[prefix]
    end = offset + 1 + size
    if end > len(data):
        raise ValueError("Truncated varint")
    return struct.unpack(fmt, data[offset + 1 : end])[0], end


# =============================================================================
# Script Encoding
# =============================================================================

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_1NEGATE = 0x4F
OP_1 = 0x51


def push_data(data: bytes) -> bytes:
    """Encode a minimal data push."""
    length = len(data)
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + struct.pack("<H", length) + data
    raise ValueError(f"Push data too large: {length} bytes")


def encode_script_num(n: int) -> bytes:
    """Encode an integer as a minimal little-endian CScriptNum."""
    if n == 0:
        return b""
    negative = n < 0
    value = abs(n)
    result = bytearray()
    while value:
        result.append(value & 0xFF)
        value >>= 8
    # Sign bit lives in the top byte; add a padding byte if it is already used
    if result[-1] & 0x80:
        result.append(0x80 if negative else 0x00)
    elif negative:
        result[-1] |= 0x80
    return bytes(result)


def push_int(n: int) -> bytes:
    """Push an integer using the smallest encoding (OP_0, OP_1..OP_16 or data push)."""
    if n == 0:
        return bytes([OP_0])
    if n == -1:
        return bytes([OP_1NEGATE])
    if 1 <= n <= 16:
        return bytes([OP_1 + n - 1])
    return push_data(encode_script_num(n))


# =============================================================================
# Address Encoding/Decoding
# =============================================================================


def get_hrp(network: str | NetworkType) -> str:
    """Bech32 human-readable part (``bc``, ``tb`` or ``bcrt``)."""
    return HRP_MAP[NetworkType(network)]


def taproot_address(output_key: bytes, network: str | NetworkType = "mainnet") -> str:
    """
    Encode a 32-byte x-only Taproot output key as a P2TR (bech32m) address.

    Args:
        output_key: 32-byte x-only tweaked output key
        network: Network type

    Returns:
        P2TR address
    """
    if len(output_key) != 32:
        raise ValueError(f"Invalid x-only key length: {len(output_key)}")
    return SegwitBech32Encoder.Encode(get_hrp(network), 1, output_key)


def taproot_scriptpubkey(output_key: bytes) -> bytes:
    """OP_1 <32-byte-output-key>"""
    return bytes([0x51, 0x20]) + output_key


def address_to_scriptpubkey(address: str) -> bytes:
    """
    Decode any standard address (P2PKH, P2SH, P2WPKH, P2WSH, P2TR) into the
    scriptPubKey it pays to.

    Raises:
        ScriptTypeError: If the checksum fails or the output type is not
            one of the above
    """
    lowered = address.lower()
    if lowered.startswith(("bc1", "tb1", "bcrt1")):
        if address != lowered and address != address.upper():
            raise ScriptTypeError(f"Mixed-case segwit address: {address}")
        witver, witprog = _decode_segwit(lowered)
        if (witver, len(witprog)) in ((0, 20), (0, 32), (1, 32)):
            return _segwit_scriptpubkey(witver, witprog)
        raise ScriptTypeError(
            f"Unsupported witness program: v{witver} with {len(witprog)} bytes"
        )

    try:
        decoded = base58.b58decode_check(address)
    except ValueError as e:
        raise ScriptTypeError(f"Invalid address: {address}") from e
    version, payload = decoded[0], decoded[1:]
    if len(payload) != 20:
        raise ScriptTypeError(f"Invalid base58 payload length: {len(payload)}")

    if version in set(P2PKH_VERSION.values()):
        return P2PKH_PREFIX + payload + P2PKH_SUFFIX
    if version in set(P2SH_VERSION.values()):
        return P2SH_PREFIX + payload + P2SH_SUFFIX
    raise ScriptTypeError(f"Unknown address version: {version}")


def _decode_segwit(address: str) -> tuple[int, bytes]:
    """
    (version, program) of a lowercase segwit address.

    v0 must carry a bech32 checksum and v1 a bech32m one, so an address is
    accepted only if it re-encodes to itself.
    """
    hrp = address.rsplit("1", 1)[0]
    try:
        witver, witprog = SegwitBech32Decoder.Decode(hrp, address)
    except (Bech32ChecksumError, ValueError) as e:
        raise ScriptTypeError(f"Invalid segwit address: {address}") from e
    if SegwitBech32Encoder.Encode(hrp, witver, witprog) != address:
        raise ScriptTypeError(f"Wrong checksum variant for v{witver}: {address}")
    return witver, bytes(witprog)


def _segwit_scriptpubkey(witver: int, witprog: bytes) -> bytes:
    """OP_n <program>"""
    return bytes([witver + 0x50 if witver else 0x00, len(witprog)]) + witprog


def _segwit_program(scriptpubkey: bytes) -> tuple[int, bytes] | None:
    """(version, program) of a v0 or v1 witness output, None otherwise."""
    if len(scriptpubkey) not in (22, 34) or scriptpubkey[1] != len(scriptpubkey) - 2:
        return None
    if scriptpubkey[0] == 0x00:
        return 0, scriptpubkey[2:]
    if scriptpubkey[0] == 0x51 and len(scriptpubkey) == 34:
        return 1, scriptpubkey[2:]
    return None


def scriptpubkey_to_address(scriptpubkey: bytes, network: str | NetworkType = "mainnet") -> str:
    """Inverse of :func:`address_to_scriptpubkey` for the given network."""
    network = NetworkType(network)

    segwit = _segwit_program(scriptpubkey)
    if segwit is not None:
        return SegwitBech32Encoder.Encode(get_hrp(network), *segwit)

    if (
        len(scriptpubkey) == 25
        and scriptpubkey.startswith(P2PKH_PREFIX)
        and scriptpubkey.endswith(P2PKH_SUFFIX)
    ):
        version, payload = P2PKH_VERSION[network], scriptpubkey[3:23]
    elif (
        len(scriptpubkey) == 23
        and scriptpubkey.startswith(P2SH_PREFIX)
        and scriptpubkey.endswith(P2SH_SUFFIX)
    ):
        version, payload = P2SH_VERSION[network], scriptpubkey[2:22]
    else:
        raise ScriptTypeError(f"Unsupported scriptPubKey: {scriptpubkey.hex()}")
    return base58.b58encode_check(bytes([version]) + payload).decode("ascii")


# =============================================================================
# Transaction Model
# =============================================================================


@dataclass
class TxInput:
    """Transaction input."""

    txid: str  # In RPC format (big-endian hex)
    vout: int
    sequence: int = 0xFFFFFFFF
    scriptsig: bytes = b""
    witness: list[bytes] = field(default_factory=list)

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass
class TxOutput:
    """Transaction output."""

    value: int
    scriptpubkey: bytes


@dataclass
class Transaction:
    """Mutable Bitcoin transaction used while building and signing spends."""

    version: int = 2
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    locktime: int = 0

    def add_input(self, txid: str, vout: int, sequence: int = 0xFFFFFFFF) -> TxInput:
        inp = TxInput(txid=txid, vout=vout, sequence=sequence)
        self.inputs.append(inp)
        return inp

    def add_output(self, value: int, scriptpubkey: bytes) -> TxOutput:
        out = TxOutput(value=value, scriptpubkey=scriptpubkey)
        self.outputs.append(out)
        return out

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    def serialize(self, include_witness: bool = True) -> bytes:
        """
        Serialize the transaction.

        Args:
            include_witness: Include the segwit marker, flag and witness data
                when any input carries a witness

        Returns:
            Serialized transaction bytes
        """
        with_witness = include_witness and self.has_witness

        result = struct.pack("<I", self.version)
        if with_witness:
            result += bytes([0x00, 0x01])  # SegWit marker and flag

        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += serialize_outpoint(inp.txid, inp.vout)
            result += encode_varint(len(inp.scriptsig)) + inp.scriptsig
            result += struct.pack("<I", inp.sequence)

        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += serialize_output(out)

        if with_witness:
            for inp in self.inputs:
                result += serialize_witness(inp.witness)

        result += struct.pack("<I", self.locktime)
        return result

    def to_hex(self) -> str:
        return self.serialize().hex()

    @property
    def txid(self) -> str:
        """Transaction ID (double SHA256 of non-witness data, RPC byte order)."""
        return hash256(self.serialize(include_witness=False))[::-1].hex()

    @property
    def weight(self) -> int:
        base_size = len(self.serialize(include_witness=False))
        total_size = len(self.serialize(include_witness=True))
        return base_size * 3 + total_size

    @property
    def vsize(self) -> int:
        """Virtual size in vbytes: ceil(weight / 4)."""
        return (self.weight + 3) // 4

    def clear_witnesses(self) -> None:
        for inp in self.inputs:
            inp.witness = []


# =============================================================================
# Transaction Serialization/Parsing
# =============================================================================


def serialize_outpoint(txid: str, vout: int) -> bytes:
    """36-byte outpoint; ``txid`` is given in display (reversed) byte order."""
    return bytes.fromhex(txid)[::-1] + struct.pack("<I", vout)


def serialize_output(out: TxOutput) -> bytes:
    return struct.pack("<Q", out.value) + encode_varint(len(out.scriptpubkey)) + out.scriptpubkey


def serialize_witness(items: list[bytes]) -> bytes:
    result = encode_varint(len(items))
    for item in items:
        result += encode_varint(len(item)) + item
    return result


class _Reader:
    """Forward-only cursor over serialized transaction bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def read(self, n: int) -> bytes:
        end = self.offset + n
        if end > len(self.data):
            raise ValueError(f"Truncated transaction at byte {self.offset}")
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def peek(self, n: int) -> bytes:
        return self.data[self.offset : self.offset + n]

    def u32(self) -> int:
        return int(struct.unpack("<I", self.read(4))[0])

    def u64(self) -> int:
        return int(struct.unpack("<Q", self.read(8))[0])

    def varint(self) -> int:
        value, self.offset = decode_varint(self.data, self.offset)
        return value

    def var_bytes(self) -> bytes:
        return self.read(self.varint())


def parse_transaction(tx_hex: str) -> Transaction:
    """
    Parse a serialized transaction, with or without segwit marker.

    Raises:
        ValueError: If the hex is malformed or the transaction is truncated
    """
    reader = _Reader(bytes.fromhex(tx_hex))
    tx = Transaction(version=reader.u32())

    segwit = reader.peek(2) == b"\x00\x01"
    if segwit:
        reader.read(2)

    for _ in range(reader.varint()):
        txid = reader.read(32)[::-1].hex()
        vout = reader.u32()
        scriptsig = reader.var_bytes()
        sequence = reader.u32()
        tx.inputs.append(TxInput(txid=txid, vout=vout, sequence=sequence, scriptsig=scriptsig))

    for _ in range(reader.varint()):
        value = reader.u64()
        tx.add_output(value, reader.var_bytes())

    if segwit:
        for inp in tx.inputs:
            inp.witness = [reader.var_bytes() for _ in range(reader.varint())]

    tx.locktime = reader.u32()
    return tx


def get_txid(tx_hex: str) -> str:
    return parse_transaction(tx_hex).txid


# =============================================================================
# Taproot Signature Hashing (BIP341)
# =============================================================================


def taproot_sighash(
    tx: Transaction,
    input_index: int,
    prevout_values: list[int],
    prevout_scripts: list[bytes],
    hash_type: int = SIGHASH_DEFAULT,
    leaf_hash: bytes | None = None,
) -> bytes:
    """
    Compute the BIP341 signature message hash for one input.

    Args:
        tx: Transaction being signed
        input_index: Index of the input being signed
        prevout_values: Values of all spent outputs, in input order
        prevout_scripts: scriptPubKeys of all spent outputs, in input order
        hash_type: Sighash type (DEFAULT, ALL, NONE, SINGLE, optionally
            combined with ANYONECANPAY)
        leaf_hash: Tapleaf hash for script-path spends, None for key-path

    Returns:
        32-byte TapSighash
    """
    if len(prevout_values) != len(tx.inputs) or len(prevout_scripts) != len(tx.inputs):
        raise ValueError("Prevout data must cover every input")

    output_type = (hash_type & 0x03) or SIGHASH_ALL
    anyone_can_pay = bool(hash_type & SIGHASH_ANYONECANPAY)

    msg = bytes([0x00, hash_type])  # epoch, hash_type
    msg += struct.pack("<I", tx.version)
    msg += struct.pack("<I", tx.locktime)

    if not anyone_can_pay:
        msg += sha256(b"".join(serialize_outpoint(i.txid, i.vout) for i in tx.inputs))
        msg += sha256(b"".join(struct.pack("<Q", v) for v in prevout_values))
        msg += sha256(b"".join(encode_varint(len(s)) + s for s in prevout_scripts))
        msg += sha256(b"".join(struct.pack("<I", i.sequence) for i in tx.inputs))

    if output_type not in (SIGHASH_NONE, SIGHASH_SINGLE):
        msg += sha256(b"".join(serialize_output(o) for o in tx.outputs))

    ext_flag = 1 if leaf_hash is not None else 0
    msg += bytes([ext_flag * 2])  # spend_type, no annex

    inp = tx.inputs[input_index]
    if anyone_can_pay:
        script = prevout_scripts[input_index]
        msg += serialize_outpoint(inp.txid, inp.vout)
        msg += struct.pack("<Q", prevout_values[input_index])
        msg += encode_varint(len(script)) + script
        msg += struct.pack("<I", inp.sequence)
    else:
        msg += struct.pack("<I", input_index)

    if output_type == SIGHASH_SINGLE:
        if input_index >= len(tx.outputs):
            raise ValueError(f"SIGHASH_SINGLE input {input_index} has no matching output")
        msg += sha256(serialize_output(tx.outputs[input_index]))

    if leaf_hash is not None:
        msg += leaf_hash
        msg += bytes([0x00])  # key_version
        msg += struct.pack("<i", -1)  # codesep_pos

    return tagged_hash("TapSighash", msg)
