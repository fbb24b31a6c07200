"""
Protocol constants shared by all swap components.
"""

from __future__ import annotations

SATS_PER_BTC = 100_000_000
DUST_THRESHOLD = 546

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# BIP341 suggested "H" point (compressed), basis for the HTLC internal key
BIP341_NUMS_POINT = bytes.fromhex(
    "0250929b74c1a04954b78b4b6035e97a5e078a5a0f28ec96d547bfee9ace803ac0"
)
HTLC_INTERNAL_KEY_TAG = b"GardenHTLC"

TAPSCRIPT_LEAF_VERSION = 0xC0

# Sighash types (BIP341)
SIGHASH_DEFAULT = 0x00
SIGHASH_ALL = 0x01
SIGHASH_NONE = 0x02
SIGHASH_SINGLE = 0x03
SIGHASH_ANYONECANPAY = 0x80
SIGHASH_SINGLE_ANYONECANPAY = SIGHASH_SINGLE | SIGHASH_ANYONECANPAY

# Secret derivation
SECRET_DERIVATION_PREFIX = "Garden.fi"

# Orchestration
DEFAULT_POLL_INTERVAL_MS = 5000
BTC_REDEEM_RBF_TIMEOUT_MS = 15 * 60 * 1000
PENDING_ORDERS_PAGE_SIZE = 500
INITIATED_DEADLINE_HOURS = 12
NOT_INITIATED_DEADLINE_HOURS = 1

# Fee estimation (sizes in vbytes)
FEE_INPUT_VSIZE = 70
FEE_OUTPUT_VSIZE = 31
FEE_TX_OVERHEAD_VSIZE = 10
FEE_BUFFER_PERCENT = 5
REGTEST_FEE_RATES = {
    "fastestFee": 8,
    "halfHourFee": 7,
    "hourFee": 6,
    "economyFee": 4,
    "minimumFee": 2,
}
