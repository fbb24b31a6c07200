"""
Bitcoin chain-data providers.
"""

from swapwallet.backends.base import ChainDataProvider
from swapwallet.backends.mempool import MempoolProvider

__all__ = ["ChainDataProvider", "MempoolProvider"]
