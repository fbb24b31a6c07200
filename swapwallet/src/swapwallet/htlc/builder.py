"""
Transaction assembly and script-path signing for HTLC spends.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger
from swapcore.bitcoin import Transaction, address_to_scriptpubkey, taproot_sighash
from swapcore.constants import SIGHASH_DEFAULT
from swapcore.errors import InsufficientFundsError, NotFundedError
from swapcore.models import BitcoinUTXO, NetworkType, TxStatus, Urgency

from swapwallet.backends.base import ChainDataProvider
from swapwallet.htlc.script import HTLCScript, Leaf
from swapwallet.signer import Signer

# (input index, serialized signature, transaction) -> witness stack
WitnessBuilder = Callable[[int, bytes, Transaction], list[bytes]]


def serialize_taproot_signature(signature: bytes, hash_type: int) -> bytes:
    """64-byte signature for SIGHASH_DEFAULT, otherwise signature || hash_type."""
    if hash_type == SIGHASH_DEFAULT:
        return signature
    return signature + bytes([hash_type])


@dataclass
class RawTx:
    """An unsigned spend of the HTLC output(s)."""

    tx: Transaction
    utxos: list[BitcoinUTXO]
    fee: int
    balance: int

    @property
    def values(self) -> list[int]:
        return [u.value for u in self.utxos]


class HTLCTxBuilder:
    """
    Builds and signs transactions spending every UTXO locked in an HTLC.

    Args:
        script: HTLC script tree
        provider: Chain-data provider
        network: Bitcoin network of the HTLC address
        utxo_hashes: Explicit funding txids; when given, only outputs of these
            transactions that pay the HTLC are spent instead of the address's
            current UTXO set
    """

    def __init__(
        self,
        script: HTLCScript,
        provider: ChainDataProvider,
        network: NetworkType,
        utxo_hashes: list[str] | None = None,
    ):
        self.script = script
        self.provider = provider
        self.network = network
        self.utxo_hashes = [h for h in (utxo_hashes or []) if h]

    @property
    def address(self) -> str:
        return self.script.address(self.network)

    async def collect_utxos(self) -> list[BitcoinUTXO]:
        if not self.utxo_hashes:
            return await self.provider.get_utxos(self.address)

        spk = self.script.scriptpubkey.hex()
        utxos: list[BitcoinUTXO] = []
        for txid in self.utxo_hashes:
            tx = await self.provider.get_transaction(txid)
            for index, vout in enumerate(tx.vout):
                if vout.scriptpubkey == spk or vout.scriptpubkey_address == self.address:
                    utxos.append(
                        BitcoinUTXO(
                            txid=tx.txid,
                            vout=index,
                            value=vout.value,
                            status=TxStatus(confirmed=False),
                        )
                    )
        return utxos

    async def build_raw_tx(
        self,
        receiver: str,
        fee: int | None = None,
        vsize: int | None = None,
        sequence: int = 0xFFFFFFFF,
    ) -> RawTx:
        """
        Build an unsigned transaction sweeping the HTLC to ``receiver``.

        Fee resolution: ``vsize`` given -> ceil(hour fee rate x vsize);
        else ``fee`` if given; else the provider's suggestion at medium urgency.

        Raises:
            NotFundedError: If the HTLC holds no funds
            InsufficientFundsError: If the fee consumes the whole balance
        """
        utxos = await self.collect_utxos()
        balance = sum(u.value for u in utxos)
        if balance == 0:
            raise NotFundedError(self.address)

        if vsize is not None:
            fee_rates = await self.provider.get_fee_rates()
            fee = math.ceil(fee_rates.hour_fee * vsize)
        elif fee is None:
            fee = await self.provider.suggest_fee(self.address, balance, Urgency.MEDIUM)

        if balance - fee <= 0:
            raise InsufficientFundsError(balance, fee)

        tx = Transaction(version=2)
        for utxo in utxos:
            tx.add_input(utxo.txid, utxo.vout, sequence)
        tx.add_output(balance - fee, address_to_scriptpubkey(receiver))

        return RawTx(tx=tx, utxos=utxos, fee=fee, balance=balance)

    def sighash(self, raw: RawTx, index: int, leaf: Leaf, hash_type: int) -> bytes:
        """Script-path sighash of input ``index``; every prevout pays the HTLC."""
        scripts = [self.script.scriptpubkey] * len(raw.utxos)
        return taproot_sighash(
            raw.tx,
            index,
            raw.values,
            scripts,
            hash_type,
            leaf_hash=self.script.leaf_hash(leaf),
        )

    async def sign(
        self,
        raw: RawTx,
        leaf: Leaf,
        signer: Signer,
        witness: WitnessBuilder,
        hash_type: int = SIGHASH_DEFAULT,
    ) -> Transaction:
        """Sign every input for ``leaf`` and attach the witness stacks."""
        for index, inp in enumerate(raw.tx.inputs):
            signature = await signer.sign_schnorr(self.sighash(raw, index, leaf, hash_type))
            inp.witness = witness(index, serialize_taproot_signature(signature, hash_type), raw.tx)
        return raw.tx

    async def build_signed(
        self,
        receiver: str,
        leaf: Leaf,
        signer: Signer,
        witness: WitnessBuilder,
        fee: int | None = None,
        sequence: int = 0xFFFFFFFF,
    ) -> tuple[Transaction, RawTx]:
        """
        Build and sign a spend, sizing the fee from a signed dry run.

        With an explicit ``fee`` a single pass is made. Otherwise a
        transaction with zero fee is fully signed to learn its exact virtual
        size, then rebuilt with fee = ceil(hour rate x vsize) and re-signed.
        """
        if fee is not None:
            raw = await self.build_raw_tx(receiver, fee=fee, sequence=sequence)
            return await self.sign(raw, leaf, signer, witness), raw

        temp = await self.build_raw_tx(receiver, fee=0, sequence=sequence)
        temp_tx = await self.sign(temp, leaf, signer, witness)
        vsize = temp_tx.vsize

        raw = await self.build_raw_tx(receiver, vsize=vsize, sequence=sequence)
        logger.debug(f"HTLC {leaf.value} spend: vsize={vsize}, fee={raw.fee} sats")
        return await self.sign(raw, leaf, signer, witness), raw
