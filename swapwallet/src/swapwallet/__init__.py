"""
Bitcoin wallet library for swap execution: chain-data providers, signers and
Taproot HTLCs.
"""

from swapwallet.backends.base import ChainDataProvider
from swapwallet.htlc.bitcoin_htlc import BitcoinHTLC
from swapwallet.signer import BitcoinWallet, KeySigner, KeyWallet, Signer

__all__ = ["BitcoinHTLC", "BitcoinWallet", "ChainDataProvider", "KeySigner", "KeyWallet", "Signer"]
