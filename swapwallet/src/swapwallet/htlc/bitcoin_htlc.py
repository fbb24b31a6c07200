"""
Bitcoin Taproot HTLC operations.

Funds locked at the HTLC address can be spent three ways:

- redeem: the redeemer reveals the secret
- refund: the initiator reclaims after ``timelock`` blocks (CSV)
- instant refund: initiator and redeemer co-sign before the timelock

Every spend sweeps all UTXOs at the HTLC address (or the outputs of the
explicitly supplied funding transactions) into a single transaction.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

from loguru import logger
from swapcore.bitcoin import (
    Transaction,
    address_to_scriptpubkey,
    parse_transaction,
    sha256,
)
from swapcore.constants import SIGHASH_DEFAULT, SIGHASH_SINGLE_ANYONECANPAY
from swapcore.crypto import schnorr_verify, strip_0x
from swapcore.errors import (
    CounterpartySigNotFoundError,
    HTLCNotExpiredError,
    InvalidCounterpartySigError,
    SecretMismatchError,
    ValidationError,
)
from swapcore.models import BitcoinUTXO, CounterpartySig, NetworkType, SwapLeg, Urgency

from swapwallet.backends.base import ChainDataProvider
from swapwallet.htlc.builder import (
    HTLCTxBuilder,
    RawTx,
    WitnessBuilder,
    serialize_taproot_signature,
)
from swapwallet.htlc.script import OP_EQUALVERIFY, OP_SHA256, HTLCScript, Leaf
from swapwallet.signer import BitcoinWallet


def _to_bytes(value: bytes | str, name: str) -> bytes:
    if isinstance(value, bytes):
        return value
    try:
        return bytes.fromhex(strip_0x(value))
    except ValueError as e:
        raise ValidationError(f"Invalid {name} hex") from e


def extract_secret(tx_hex: str, secret_hash: bytes | str | None = None) -> bytes | None:
    """
    Recover the secret revealed by a redeem transaction.

    Scans each input's witness for the redeem-leaf shape
    ``[signature, secret, redeem_script, control_block]``.

    Args:
        tx_hex: Raw transaction hex
        secret_hash: Only accept a secret hashing to this value

    Returns:
        The 32-byte secret, or None if the transaction is not a redeem
    """
    expected = _to_bytes(secret_hash, "secret hash") if secret_hash is not None else None
    tx = parse_transaction(tx_hex)
    for inp in tx.inputs:
        if len(inp.witness) != 4:
            continue
        _, secret, script, _ = inp.witness
        if len(script) < 35 or script[0] != OP_SHA256 or script[1] != 0x20:
            continue
        if script[34] != OP_EQUALVERIFY:
            continue
        script_hash = script[2:34]
        if sha256(secret) != script_hash:
            continue
        if expected is not None and script_hash != expected:
            continue
        return secret
    return None


class BitcoinHTLC:
    """
    HTLC between an initiator and a redeemer on Bitcoin.

    Args:
        wallet: Wallet signing for this party and funding initiations
        script: HTLC script tree
        amount: Amount locked in sats
        network: Network of the HTLC address (defaults to the provider's)
        utxo_hashes: Explicit funding txids to spend instead of the address's
            UTXO set
    """

    def __init__(
        self,
        wallet: BitcoinWallet,
        script: HTLCScript,
        amount: int,
        network: NetworkType | str | None = None,
        utxo_hashes: list[str] | None = None,
    ):
        if amount <= 0:
            raise ValidationError(f"Amount must be positive, got {amount}")
        self.wallet = wallet
        self.script = script
        self.amount = amount
        self.network = NetworkType(network) if network is not None else wallet.provider.network
        self.builder = HTLCTxBuilder(script, wallet.provider, self.network, utxo_hashes)

    @classmethod
    def from_params(
        cls,
        wallet: BitcoinWallet,
        amount: int,
        secret_hash: bytes | str,
        initiator_pubkey: bytes | str,
        redeemer_pubkey: bytes | str,
        timelock: int,
        utxo_hashes: list[str] | None = None,
        network: NetworkType | str | None = None,
    ) -> BitcoinHTLC:
        script = HTLCScript(secret_hash, initiator_pubkey, redeemer_pubkey, timelock)
        return cls(wallet, script, amount, network, utxo_hashes)

    @classmethod
    def from_leg(
        cls,
        wallet: BitcoinWallet,
        leg: SwapLeg,
        utxo_hashes: list[str] | None = None,
        network: NetworkType | str | None = None,
    ) -> BitcoinHTLC:
        """Build the HTLC of a Bitcoin swap leg."""
        return cls.from_params(
            wallet,
            leg.amount,
            leg.secret_hash,
            leg.initiator,
            leg.redeemer,
            leg.timelock,
            utxo_hashes=utxo_hashes,
            network=network,
        )

    @property
    def provider(self) -> ChainDataProvider:
        return self.wallet.provider

    def address(self) -> str:
        return self.script.address(self.network)

    def id(self) -> str:
        return self.address()

    # =========================================================================
    # Initiate
    # =========================================================================

    async def initiate(self, fee: int | None = None) -> str:
        """
        Fund the HTLC from the wallet.

        Returns:
            txid of the funding transaction
        """
        if fee is None:
            fee = await self.provider.suggest_fee(self.wallet.address, self.amount, Urgency.MEDIUM)
        txid = await self.wallet.send(self.address(), self.amount, fee)
        logger.info(f"Initiated HTLC {self.address()}: {txid}")
        return txid

    # =========================================================================
    # Redeem
    # =========================================================================

    def _check_secret(self, secret: bytes | str) -> bytes:
        secret_bytes = _to_bytes(secret, "secret")
        if sha256(secret_bytes) != self.script.secret_hash:
            raise SecretMismatchError()
        return secret_bytes

    def _redeem_witness(self, secret: bytes) -> WitnessBuilder:
        script = self.script.script(Leaf.REDEEM)
        control_block = self.script.control_block(Leaf.REDEEM)

        def witness(index: int, signature: bytes, tx: Transaction) -> list[bytes]:
            return [signature, secret, script, control_block]

        return witness

    async def get_redeem_hex(self, secret: bytes | str, receiver: str | None = None) -> str:
        """
        Build and sign a redeem transaction without broadcasting it.

        Args:
            secret: Preimage of the secret hash
            receiver: Destination address (defaults to the wallet address)

        Returns:
            Signed transaction hex

        Raises:
            SecretMismatchError: If sha256(secret) differs from the secret hash
            NotFundedError: If the HTLC holds no funds
        """
        secret_bytes = self._check_secret(secret)
        tx, _ = await self.builder.build_signed(
            receiver or self.wallet.address,
            Leaf.REDEEM,
            self.wallet,
            self._redeem_witness(secret_bytes),
        )
        return tx.to_hex()

    async def redeem(self, secret: bytes | str, receiver: str | None = None) -> str:
        """Redeem the HTLC and broadcast. Returns the txid."""
        tx_hex = await self.get_redeem_hex(secret, receiver)
        txid = await self.provider.broadcast(tx_hex)
        logger.info(f"Redeemed HTLC {self.address()}: {txid}")
        return txid

    async def generate_redeem_sacp(
        self, secret: bytes | str, receiver: str, fee: int | None = None
    ) -> str:
        """
        Redeem transaction signed with SIGHASH_SINGLE|ANYONECANPAY.

        Each signature commits only to its own input and the output at the
        same index, so a relayer can merge it into a larger transaction.
        Every HTLC UTXO needs a matching output, so only single-UTXO HTLCs
        can be signed this way.
        """
        secret_bytes = self._check_secret(secret)
        if fee is None:
            fee = await self.provider.suggest_fee(self.address(), self.amount, Urgency.MEDIUM)
        raw = await self.builder.build_raw_tx(receiver, fee=fee)
        tx = await self.builder.sign(
            raw,
            Leaf.REDEEM,
            self.wallet,
            self._redeem_witness(secret_bytes),
            SIGHASH_SINGLE_ANYONECANPAY,
        )
        return tx.to_hex()

    # =========================================================================
    # Refund
    # =========================================================================

    async def can_refund(self, utxos: Sequence[BitcoinUTXO]) -> tuple[bool, int]:
        """
        Check whether every UTXO has passed the refund timelock.

        Returns:
            (can_refund, blocks_remaining). An unconfirmed UTXO needs
            ``timelock + 1`` more blocks; one confirmed at ``height`` needs
            ``height + timelock - tip + 1`` while ``height + timelock > tip``.
        """
        tip = await self.provider.get_latest_tip()
        timelock = self.script.timelock
        for utxo in utxos:
            if not utxo.status.confirmed or utxo.status.block_height is None:
                return False, timelock + 1
            if utxo.status.block_height + timelock > tip:
                return False, utxo.status.block_height + timelock - tip + 1
        return True, 0

    async def refund(self, receiver: str | None = None, fee: int | None = None) -> str:
        """
        Refund the HTLC to ``receiver`` after the timelock.

        Raises:
            HTLCNotExpiredError: If some UTXO is still inside its timelock
        """
        utxos = await self.builder.collect_utxos()
        ok, blocks_remaining = await self.can_refund(utxos)
        if not ok:
            raise HTLCNotExpiredError(blocks_remaining)

        script = self.script.script(Leaf.REFUND)
        control_block = self.script.control_block(Leaf.REFUND)

        def witness(index: int, signature: bytes, tx: Transaction) -> list[bytes]:
            return [signature, script, control_block]

        tx, _ = await self.builder.build_signed(
            receiver or self.wallet.address,
            Leaf.REFUND,
            self.wallet,
            witness,
            fee=fee,
            sequence=self.script.timelock,
        )
        txid = await self.provider.broadcast(tx.to_hex())
        logger.info(f"Refunded HTLC {self.address()}: {txid}")
        return txid

    # =========================================================================
    # Instant refund
    # =========================================================================

    async def _build_instant_refund_sacp(self, receiver: str, fee: int) -> Transaction:
        raw = await self.builder.build_raw_tx(receiver, fee=0)
        receiver_spk = address_to_scriptpubkey(receiver)

        # One output per input so each SACP signature covers its own output;
        # the largest UTXO pays the whole fee
        largest = max(range(len(raw.utxos)), key=lambda i: raw.utxos[i].value)
        values = [utxo.value for utxo in raw.utxos]
        values[largest] -= fee
        if values[largest] <= 0:
            raise ValidationError(f"Fee {fee} exceeds largest HTLC UTXO {raw.utxos[largest].value}")
        raw.tx.outputs = []
        for value in values:
            raw.tx.add_output(value, receiver_spk)

        script = self.script.script(Leaf.INSTANT_REFUND)
        control_block = self.script.control_block(Leaf.INSTANT_REFUND)

        def witness(index: int, signature: bytes, tx: Transaction) -> list[bytes]:
            return [signature, signature, script, control_block]

        return await self.builder.sign(
            raw, Leaf.INSTANT_REFUND, self.wallet, witness, SIGHASH_SINGLE_ANYONECANPAY
        )

    async def generate_instant_refund_sacp(
        self, receiver: str | None = None, fee: int | None = None
    ) -> str:
        """
        Build the initiator's half of an instant refund.

        Both signature slots hold the initiator's SACP signature; the
        redeemer replaces the first one with its own before broadcasting.

        Returns:
            Signed transaction hex
        """
        receiver = receiver or self.wallet.address
        if fee is None:
            temp = await self._build_instant_refund_sacp(receiver, 0)
            fee_rates = await self.provider.get_fee_rates()
            fee = math.ceil(fee_rates.hour_fee * temp.vsize)
        tx = await self._build_instant_refund_sacp(receiver, fee)
        return tx.to_hex()

    async def sign_instant_refund_hashes(self, hashes: Sequence[str]) -> list[str]:
        """
        Sign relay-supplied instant refund sighashes.

        Returns:
            SACP-serialized signatures (64-byte signature || 0x83) as hex
        """
        signatures = []
        for sighash in hashes:
            signature = await self.wallet.sign_schnorr(_to_bytes(sighash, "sighash"))
            signatures.append(
                serialize_taproot_signature(signature, SIGHASH_SINGLE_ANYONECANPAY).hex()
            )
        return signatures

    def _verify_counterparty_sig(self, raw: RawTx, index: int, signature: bytes) -> None:
        utxo = raw.tx.inputs[index].txid
        if len(signature) == 64:
            hash_type = SIGHASH_DEFAULT
        elif len(signature) == 65 and signature[64] != SIGHASH_DEFAULT:
            hash_type = signature[64]
        else:
            raise InvalidCounterpartySigError(utxo)

        try:
            sighash = self.builder.sighash(raw, index, Leaf.INSTANT_REFUND, hash_type)
        except ValueError as e:
            raise InvalidCounterpartySigError(utxo) from e
        if not schnorr_verify(self.script.redeemer_pubkey, signature[:64], sighash):
            raise InvalidCounterpartySigError(utxo)

    async def _sign_instant_refund(
        self, raw: RawTx, signatures: dict[str, bytes], verify: bool
    ) -> Transaction:
        script = self.script.script(Leaf.INSTANT_REFUND)
        control_block = self.script.control_block(Leaf.INSTANT_REFUND)

        for index, inp in enumerate(raw.tx.inputs):
            counterparty = signatures.get(inp.outpoint, signatures.get(inp.txid))
            if counterparty is None:
                raise CounterpartySigNotFoundError(inp.txid)
            if verify:
                self._verify_counterparty_sig(raw, index, counterparty)
            own = await self.wallet.sign_schnorr(
                self.builder.sighash(raw, index, Leaf.INSTANT_REFUND, SIGHASH_DEFAULT)
            )
            # The initiator's signature is checked first, so it sits on top
            inp.witness = [counterparty, own, script, control_block]
        return raw.tx

    async def instant_refund(
        self,
        counterparty_sigs: Sequence[CounterpartySig | dict[str, Any]],
        fee: int | None = None,
    ) -> str:
        """
        Refund before the timelock with the redeemer's co-signatures.

        Args:
            counterparty_sigs: Redeemer signatures keyed by funding txid
                (or ``txid:vout``)
            fee: Absolute fee in sats (sized from a signed dry run if None)

        Returns:
            txid of the broadcast refund

        Raises:
            ValidationError: If no signature is supplied
            CounterpartySigNotFoundError: If a spent UTXO has no signature
            InvalidCounterpartySigError: If a signature does not verify
                against the redeemer key
        """
        if not counterparty_sigs:
            raise ValidationError("At least one counterparty signature is required")

        signatures: dict[str, bytes] = {}
        for item in counterparty_sigs:
            sig = CounterpartySig.model_validate(item)
            signatures[sig.utxo] = _to_bytes(sig.sig, "counterparty signature")

        receiver = self.wallet.address
        if fee is None:
            temp = await self.builder.build_raw_tx(receiver, fee=0)
            temp_tx = await self._sign_instant_refund(temp, signatures, verify=False)
            raw = await self.builder.build_raw_tx(receiver, vsize=temp_tx.vsize)
        else:
            raw = await self.builder.build_raw_tx(receiver, fee=fee)

        tx = await self._sign_instant_refund(raw, signatures, verify=True)
        txid = await self.provider.broadcast(tx.to_hex())
        logger.info(f"Instant refunded HTLC {self.address()}: {txid}")
        return txid

    # =========================================================================
    # Helpers
    # =========================================================================

    def extract_secret(self, tx_hex: str) -> bytes | None:
        """Secret revealed by a redeem of this HTLC, if ``tx_hex`` is one."""
        return extract_secret(tx_hex, self.script.secret_hash)
