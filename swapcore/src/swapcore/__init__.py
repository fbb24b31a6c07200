"""
swapcore - Core library for swap execution components

Provides shared Bitcoin primitives, order models, status parsing and
secret derivation.
"""

__version__ = "0.1.0"

from swapcore.models import MatchedOrder, OrderAction, OrderStatus, SwapLeg, SwapStatus
from swapcore.secret_manager import DigestKey, SecretManager
from swapcore.status import parse_action, parse_order_status, parse_swap_status

__all__ = [
    "MatchedOrder",
    "SwapLeg",
    "SwapStatus",
    "OrderStatus",
    "OrderAction",
    "DigestKey",
    "SecretManager",
    "parse_swap_status",
    "parse_order_status",
    "parse_action",
    "__version__",
]
