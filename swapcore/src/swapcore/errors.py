"""
Exception hierarchy for swap execution.

Library code raises these; the executor catches them at the dispatch
boundary and reports them as ``error`` events.
"""

from __future__ import annotations

from typing import Literal

ALREADY_SETTLED_MARKERS = ("already redeemed", "already refunded")


class SwapError(Exception):
    """Base class for all swap errors."""


class ValidationError(SwapError):
    """Malformed secret, pubkey, hash or parameter."""


class NotFundedError(SwapError):
    def __init__(self, address: str):
        super().__init__(f"{address} is not funded")
        self.address = address


class InsufficientFundsError(SwapError):
    def __init__(self, have: int, need: int):
        super().__init__(f"Insufficient funds: have {have} sats, need {need} sats")
        self.have = have
        self.need = need


class TimelockNotExpiredError(SwapError):
    """Refund attempted before the HTLC timelock has elapsed."""

    def __init__(self, blocks_remaining: int):
        super().__init__(f"HTLC not expired, need more {blocks_remaining} blocks")
        self.blocks_remaining = blocks_remaining


class HTLCNotExpiredError(TimelockNotExpiredError):
    pass


class SecretMismatchError(SwapError):
    def __init__(self) -> None:
        super().__init__("Secret mismatch")


class CounterpartySignatureError(SwapError):
    """A counterparty signature for an input is missing or does not verify."""

    def __init__(self, utxo: str, kind: Literal["missing", "invalid"]):
        if kind == "missing":
            message = f"Counterparty signature not found for utxo {utxo}"
        else:
            message = f"Invalid counterparty signature for utxo {utxo}"
        super().__init__(message)
        self.utxo = utxo
        self.kind = kind


class CounterpartySigNotFoundError(CounterpartySignatureError):
    def __init__(self, utxo: str):
        super().__init__(utxo, "missing")


class InvalidCounterpartySigError(CounterpartySignatureError):
    def __init__(self, utxo: str):
        super().__init__(utxo, "invalid")


class ScriptTypeError(SwapError):
    """Unsupported address or script type."""


class ControlBlockGenerationError(SwapError):
    def __init__(self, reason: str = ""):
        message = "Control block generation failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NetworkError(SwapError):
    """Chain provider, orderbook or broadcast failure."""


class AlreadySettledError(SwapError):
    """The action was already performed remotely."""

    def __init__(self, message: str = "already settled", tx_hash: str | None = None):
        super().__init__(message)
        self.tx_hash = tx_hash


def is_already_settled(message: str) -> bool:
    """Check whether a remote error message reports an action as already done."""
    lowered = message.lower()
    return any(marker in lowered for marker in ALREADY_SETTLED_MARKERS)


__all__ = [
    "SwapError",
    "ValidationError",
    "NotFundedError",
    "InsufficientFundsError",
    "TimelockNotExpiredError",
    "HTLCNotExpiredError",
    "SecretMismatchError",
    "CounterpartySignatureError",
    "CounterpartySigNotFoundError",
    "InvalidCounterpartySigError",
    "ScriptTypeError",
    "ControlBlockGenerationError",
    "NetworkError",
    "AlreadySettledError",
    "is_already_settled",
]
