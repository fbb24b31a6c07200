"""
Core data models using Pydantic for validation and serialization.

Order and swap shapes mirror the orderbook API JSON; Bitcoin shapes mirror
the esplora (mempool.space) API JSON.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"


class ChainFamily(str, Enum):
    BITCOIN = "bitcoin"
    EVM = "evm"
    SOLANA = "solana"
    STARKNET = "starknet"
    SUI = "sui"


def chain_family(chain: str) -> ChainFamily:
    """
    Map an orderbook chain identifier to its chain family.

    Identifiers are prefix-tagged (``bitcoin_testnet``, ``solana_devnet``,
    ``starknet_sepolia``...). Anything that is not Bitcoin, Solana, Starknet
    or Sui is treated as an EVM chain.
    """
    name = chain.lower()
    if name.startswith("bitcoin"):
        return ChainFamily.BITCOIN
    if name.startswith("solana"):
        return ChainFamily.SOLANA
    if name.startswith("starknet"):
        return ChainFamily.STARKNET
    if name.startswith("sui"):
        return ChainFamily.SUI
    return ChainFamily.EVM


def is_bitcoin(chain: str) -> bool:
    return chain_family(chain) == ChainFamily.BITCOIN


def bitcoin_network_for_chain(chain: str) -> NetworkType:
    name = chain.lower()
    if name.endswith("regtest") or name.endswith("localnet"):
        return NetworkType.REGTEST
    if name.endswith("signet"):
        return NetworkType.SIGNET
    if name.endswith("testnet"):
        return NetworkType.TESTNET
    return NetworkType.MAINNET


class SwapStatus(str, Enum):
    IDLE = "Idle"
    INITIATE_DETECTED = "InitiateDetected"
    INITIATED = "Initiated"
    REDEEM_DETECTED = "RedeemDetected"
    REDEEMED = "Redeemed"
    REFUND_DETECTED = "RefundDetected"
    REFUNDED = "Refunded"
    EXPIRED = "Expired"

    @property
    def is_terminal(self) -> bool:
        return self in (SwapStatus.REDEEMED, SwapStatus.REFUNDED)


class OrderStatus(str, Enum):
    MATCHED = "Matched"
    INITIATE_DETECTED = "InitiateDetected"
    INITIATED = "Initiated"
    COUNTERPARTY_INITIATE_DETECTED = "CounterPartyInitiateDetected"
    COUNTERPARTY_INITIATED = "CounterPartyInitiated"
    REDEEM_DETECTED = "RedeemDetected"
    REDEEMED = "Redeemed"
    COUNTERPARTY_REDEEM_DETECTED = "CounterPartyRedeemDetected"
    COUNTERPARTY_REDEEMED = "CounterPartyRedeemed"
    REFUND_DETECTED = "RefundDetected"
    REFUNDED = "Refunded"
    COUNTERPARTY_REFUND_DETECTED = "CounterPartyRefundDetected"
    COUNTERPARTY_REFUNDED = "CounterPartyRefunded"
    EXPIRED = "Expired"
    COUNTERPARTY_SWAP_EXPIRED = "CounterPartySwapExpired"
    DEADLINE_EXCEEDED = "DeadLineExceeded"


class OrderAction(str, Enum):
    IDLE = "Idle"
    INITIATE = "Initiate"
    REDEEM = "Redeem"
    REFUND = "Refund"


def _parse_block_number(v: Any) -> int | None:
    if v is None or v == "":
        return None
    return int(v)


class SwapLeg(BaseModel):
    """One side of a matched order, as reported by the orderbook."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    swap_id: str = ""
    chain: str
    asset: str = ""
    initiator: str
    redeemer: str
    timelock: int = Field(..., ge=0)
    amount: int = Field(default=0, ge=0)
    filled_amount: int = Field(default=0, ge=0)
    secret_hash: str = ""
    secret: str = ""
    initiate_tx_hash: str = ""
    redeem_tx_hash: str = ""
    refund_tx_hash: str = ""
    initiate_block_number: int | None = None
    redeem_block_number: int | None = None
    refund_block_number: int | None = None
    required_confirmations: int = 0

    @field_validator("amount", "filled_amount", mode="before")
    @classmethod
    def parse_amount(cls, v: Any) -> int:
        if v is None or v == "":
            return 0
        try:
            return int(Decimal(str(v)))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {v}") from e

    @field_validator(
        "initiate_block_number", "redeem_block_number", "refund_block_number", mode="before"
    )
    @classmethod
    def parse_block_number(cls, v: Any) -> int | None:
        return _parse_block_number(v)

    @field_validator(
        "secret_hash", "secret", "initiate_tx_hash", "redeem_tx_hash", "refund_tx_hash",
        mode="before",
    )
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return "" if v is None else v

    @property
    def latest_initiate_tx_id(self) -> str:
        """
        Last txid of the initiate field.

        Bitcoin legs report initiations as ``txid:vout`` entries separated by
        commas when the HTLC was funded (or re-funded) more than once.
        """
        if not self.initiate_tx_hash:
            return ""
        return self.initiate_tx_hash.split(",")[-1].split(":")[0]


class AdditionalData(BaseModel):
    model_config = ConfigDict(extra="allow")

    deadline: int
    bitcoin_optional_recipient: str | None = None
    strategy_id: str | None = None

    @field_validator("deadline", mode="before")
    @classmethod
    def parse_deadline(cls, v: Any) -> int:
        if v is None or v == "":
            raise ValueError("deadline is required")
        return int(v)


class CreateOrder(BaseModel):
    model_config = ConfigDict(extra="ignore")

    create_id: str
    nonce: str = "0"
    secret_hash: str = ""
    source_chain: str = ""
    destination_chain: str = ""
    source_asset: str = ""
    destination_asset: str = ""
    source_amount: str = "0"
    destination_amount: str = "0"
    initiator_source_address: str = ""
    initiator_destination_address: str = ""
    timelock: int = 0
    created_at: str = ""
    additional_data: AdditionalData

    @field_validator("nonce", "source_amount", "destination_amount", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> str:
        return str(v)


def _normalize_hash(value: str) -> str:
    value = value.lower()
    return value[2:] if value.startswith("0x") else value


class MatchedOrder(BaseModel):
    """A created order that a solver has matched, with both swap legs."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    created_at: str = ""
    source_swap: SwapLeg
    destination_swap: SwapLeg
    create_order: CreateOrder

    @model_validator(mode="after")
    def check_secret_hash(self) -> MatchedOrder:
        hashes = {
            _normalize_hash(h)
            for h in (
                self.source_swap.secret_hash,
                self.destination_swap.secret_hash,
                self.create_order.secret_hash,
            )
            if h
        }
        if len(hashes) > 1:
            raise ValueError("secret_hash differs between swap legs")
        return self

    @property
    def order_id(self) -> str:
        return self.create_order.create_id

    @property
    def nonce(self) -> str:
        return self.create_order.nonce

    @property
    def deadline(self) -> int:
        return self.create_order.additional_data.deadline

    @property
    def secret_hash(self) -> str:
        return _normalize_hash(
            self.create_order.secret_hash
            or self.source_swap.secret_hash
            or self.destination_swap.secret_hash
        )

    @property
    def bitcoin_optional_recipient(self) -> str | None:
        return self.create_order.additional_data.bitcoin_optional_recipient


class OrderWithStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    order: MatchedOrder
    status: OrderStatus

    @property
    def order_id(self) -> str:
        return self.order.order_id


# =============================================================================
# Bitcoin chain data (esplora JSON shapes)
# =============================================================================


class Urgency(str, Enum):
    SLOW = "slow"
    MEDIUM = "medium"
    FAST = "fast"


class FeeRates(BaseModel):
    """Recommended fee rates in sat/vB."""

    model_config = ConfigDict(populate_by_name=True)

    fastest_fee: int = Field(alias="fastestFee")
    half_hour_fee: int = Field(alias="halfHourFee")
    hour_fee: int = Field(alias="hourFee")
    economy_fee: int = Field(alias="economyFee")
    minimum_fee: int = Field(alias="minimumFee")

    def for_urgency(self, urgency: Urgency) -> int:
        if urgency == Urgency.FAST:
            return self.fastest_fee
        if urgency == Urgency.SLOW:
            return self.economy_fee
        return self.hour_fee


class TxStatus(BaseModel):
    confirmed: bool = False
    block_height: int | None = None
    block_hash: str | None = None
    block_time: int | None = None


class BitcoinUTXO(BaseModel):
    txid: str
    vout: int = Field(..., ge=0)
    value: int = Field(..., ge=0)
    status: TxStatus = Field(default_factory=TxStatus)

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


class BitcoinTxOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    scriptpubkey: str
    scriptpubkey_address: str | None = None
    scriptpubkey_type: str | None = None
    value: int


class BitcoinTxInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    txid: str
    vout: int
    sequence: int = 0xFFFFFFFF
    witness: list[str] | None = None
    prevout: BitcoinTxOutput | None = None


class BitcoinTx(BaseModel):
    model_config = ConfigDict(extra="ignore")

    txid: str
    version: int = 2
    locktime: int = 0
    vin: list[BitcoinTxInput] = Field(default_factory=list)
    vout: list[BitcoinTxOutput] = Field(default_factory=list)
    status: TxStatus = Field(default_factory=TxStatus)


class CounterpartySig(BaseModel):
    """Counterparty signature for one HTLC input of an instant refund."""

    utxo: str  # funding txid, or "txid:vout"
    sig: str

    @field_validator("sig", mode="before")
    @classmethod
    def strip_prefix(cls, v: Any) -> Any:
        if isinstance(v, str) and v.startswith("0x"):
            return v[2:]
        return v
