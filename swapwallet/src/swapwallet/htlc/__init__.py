"""
Bitcoin Taproot HTLC: script tree, transaction building and spends.
"""

from swapwallet.htlc.bitcoin_htlc import BitcoinHTLC, extract_secret
from swapwallet.htlc.builder import HTLCTxBuilder, RawTx, serialize_taproot_signature
from swapwallet.htlc.script import (
    HTLCScript,
    Leaf,
    branch_hash,
    instant_refund_leaf,
    leaf_hash,
    redeem_leaf,
    refund_leaf,
)

__all__ = [
    "BitcoinHTLC",
    "HTLCScript",
    "HTLCTxBuilder",
    "Leaf",
    "RawTx",
    "branch_hash",
    "extract_secret",
    "instant_refund_leaf",
    "leaf_hash",
    "redeem_leaf",
    "refund_leaf",
    "serialize_taproot_signature",
]
