"""
Signing capabilities for HTLC spends.

``Signer`` is the minimal capability BitcoinHTLC needs (an x-only public key
and BIP340 Schnorr signatures). ``BitcoinWallet`` adds funding: an address,
a chain-data provider and ``send``. ``KeyWallet`` implements both with a
single private key controlling a P2TR key-path address.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from loguru import logger
from swapcore.bitcoin import (
    Transaction,
    address_to_scriptpubkey,
    taproot_address,
    taproot_scriptpubkey,
    taproot_sighash,
)
from swapcore.constants import DUST_THRESHOLD, SIGHASH_DEFAULT
from swapcore.crypto import (
    schnorr_sign,
    strip_0x,
    tweak_private_key,
    tweak_public_key,
    x_only_public_key,
)
from swapcore.errors import InsufficientFundsError, ValidationError
from swapcore.models import NetworkType, Urgency

from swapwallet.backends.base import ChainDataProvider, select_utxos


@runtime_checkable
class Signer(Protocol):
    """Produces BIP340 signatures over 32-byte sighashes."""

    @property
    def x_only_pubkey(self) -> bytes: ...

    async def sign_schnorr(self, msg: bytes) -> bytes: ...


@runtime_checkable
class BitcoinWallet(Signer, Protocol):
    provider: ChainDataProvider

    @property
    def address(self) -> str: ...

    async def send(self, to: str, amount: int, fee: int | None = None) -> str: ...


class KeySigner:
    """Signer backed by a raw private key."""

    def __init__(self, private_key: bytes | str):
        if isinstance(private_key, str):
            private_key = bytes.fromhex(strip_0x(private_key))
        if len(private_key) != 32:
            raise ValidationError(f"Invalid private key length: {len(private_key)}")
        self._private_key = private_key
        self._x_only = x_only_public_key(private_key)

    @property
    def x_only_pubkey(self) -> bytes:
        return self._x_only

    async def sign_schnorr(self, msg: bytes) -> bytes:
        if len(msg) != 32:
            raise ValidationError(f"Sighash must be 32 bytes, got {len(msg)}")
        return schnorr_sign(self._private_key, msg)


class KeyWallet(KeySigner):
    """
    Single-key P2TR wallet.

    HTLC leaves commit to the untweaked x-only key, so ``sign_schnorr`` signs
    with the raw key. Funds held by the wallet itself sit on the key-path
    address and are spent with the BIP341-tweaked key.
    """

    def __init__(
        self,
        private_key: bytes | str,
        provider: ChainDataProvider,
        network: NetworkType | str | None = None,
    ):
        super().__init__(private_key)
        self.provider = provider
        self.network = NetworkType(network) if network is not None else provider.network
        self._output_key, _ = tweak_public_key(self._x_only, None)

    @property
    def address(self) -> str:
        return taproot_address(self._output_key, self.network)

    @property
    def scriptpubkey(self) -> bytes:
        return taproot_scriptpubkey(self._output_key)

    async def get_balance(self) -> int:
        return await self.provider.get_balance(self.address)

    async def send(self, to: str, amount: int, fee: int | None = None) -> str:
        """
        Send ``amount`` sats to ``to`` from the wallet's key-path address.

        Args:
            to: Destination address
            amount: Amount in sats
            fee: Absolute fee in sats (provider suggestion if None)

        Returns:
            txid of the broadcast transaction
        """
        if amount <= DUST_THRESHOLD:
            raise ValidationError(f"Amount {amount} is below dust threshold")
        if fee is None:
            fee = await self.provider.suggest_fee(self.address, amount, Urgency.MEDIUM)

        utxos = select_utxos(await self.provider.get_utxos(self.address), amount + fee)
        total = sum(u.value for u in utxos)
        change = total - amount - fee
        if change < 0:
            raise InsufficientFundsError(total, amount + fee)

        tx = Transaction(version=2)
        for utxo in utxos:
            tx.add_input(utxo.txid, utxo.vout)
        tx.add_output(amount, address_to_scriptpubkey(to))
        if change > DUST_THRESHOLD:
            tx.add_output(change, self.scriptpubkey)

        tweaked_key = tweak_private_key(self._private_key)
        values = [u.value for u in utxos]
        scripts = [self.scriptpubkey] * len(utxos)
        for i, inp in enumerate(tx.inputs):
            sighash = taproot_sighash(tx, i, values, scripts, SIGHASH_DEFAULT)
            inp.witness = [schnorr_sign(tweaked_key, sighash)]

        logger.info(f"Sending {amount} sats to {to} (fee {fee} sats)")
        return await self.provider.broadcast(tx.to_hex())
