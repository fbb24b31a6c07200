"""
swap-executor command line.

Every option falls back to SECTION__KEY environment variables, then to the
config file (~/.swap-executor/config.toml), then to built-in defaults.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger
from swapcore.cli_common import redact, setup_cli
from swapcore.errors import SwapError
from swapcore.models import NetworkType
from swapcore.paths import get_default_data_dir
from swapcore.secret_manager import SecretManager
from swapcore.settings import SwapSettings, ensure_config_file
from swapwallet.backends.mempool import MempoolProvider
from swapwallet.htlc.script import HTLCScript
from swapwallet.signer import KeyWallet

from swapexecutor.clients import HttpBlockNumberFetcher, OrderbookClient
from swapexecutor.config import ExecutorConfig, build_executor_config
from swapexecutor.events import (
    ErrorEvent,
    Event,
    EventBus,
    EventType,
    LogEvent,
    RbfEvent,
    SuccessEvent,
)
from swapexecutor.orchestrator import ExecutionOrchestrator

app = typer.Typer(add_completion=False)


def run_async(coro: Any) -> Any:
    return asyncio.run(coro)


def log_event(event: Event) -> None:
    """Event listener writing executor events to the log."""
    if isinstance(event, SuccessEvent):
        logger.success(
            f"[{event.order.order_id}] {event.action.value} settled in {event.tx_hash}"
        )
    elif isinstance(event, RbfEvent):
        logger.info(f"[{event.order.order_id}] redeem replaced by {event.tx_hash}")
    elif isinstance(event, ErrorEvent):
        logger.error(f"[{event.order.order_id}] {event.message}")
    elif isinstance(event, LogEvent):
        logger.info(f"[{event.order_id}] {event.message}")


def _load_config(
    settings: SwapSettings,
    network: NetworkType | None = None,
    orderbook_url: str | None = None,
    user_id: str | None = None,
    provider_urls: str | None = None,
    poll_interval_ms: int | None = None,
    digest_key: str | None = None,
    bitcoin_private_key: str | None = None,
) -> ExecutorConfig:
    try:
        return build_executor_config(
            settings=settings,
            network=network,
            orderbook_url=orderbook_url,
            user_id=user_id,
            provider_urls=provider_urls,
            poll_interval_ms=poll_interval_ms,
            digest_key=digest_key,
            bitcoin_private_key=bitcoin_private_key,
        )
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1)


def build_orchestrator(config: ExecutorConfig) -> ExecutionOrchestrator:
    """
    Wire clients, wallet and secret manager into an orchestrator.

    Args:
        config: Executor configuration

    Returns:
        ExecutionOrchestrator ready to start

    Raises:
        SwapError: If the digest key or the Bitcoin private key is invalid
        ValueError: If no chain-data provider URL is configured
    """
    orderbook = OrderbookClient(
        config.orderbook_url,
        relay_url=config.relay_url,
        api_key=config.api_key.get_secret_value() if config.api_key else None,
        timeout=config.request_timeout,
    )
    block_fetcher = HttpBlockNumberFetcher(
        config.info_url, config.block_number_network, timeout=config.request_timeout
    )

    secret_manager = None
    if config.digest_key is not None:
        secret_manager = SecretManager.from_hex(config.digest_key.get_secret_value())

    bitcoin_wallet = None
    if config.bitcoin_private_key is not None:
        provider = MempoolProvider(
            config.provider_urls, network=config.network, timeout=config.request_timeout
        )
        bitcoin_wallet = KeyWallet(
            config.bitcoin_private_key.get_secret_value(), provider, config.network
        )

    return ExecutionOrchestrator(
        orderbook,
        block_fetcher,
        config,
        secret_manager=secret_manager,
        bitcoin_wallet=bitcoin_wallet,
        events=EventBus(),
    )


async def close_orchestrator(orchestrator: ExecutionOrchestrator) -> None:
    await orchestrator.stop()
    await orchestrator.orderbook.close()
    block_fetcher = orchestrator.block_fetcher
    if isinstance(block_fetcher, HttpBlockNumberFetcher):
        await block_fetcher.close()
    if orchestrator.bitcoin_wallet is not None:
        await orchestrator.bitcoin_wallet.provider.close()


@app.command()
def run(
    network: Annotated[
        NetworkType | None,
        typer.Option(case_sensitive=False, help="Bitcoin network"),
    ] = None,
    orderbook_url: Annotated[
        str | None, typer.Option("--orderbook-url", help="Orderbook API base URL")
    ] = None,
    user_id: Annotated[
        str | None, typer.Option("--user-id", "-u", help="Orderbook user id (wallet address)")
    ] = None,
    provider_urls: Annotated[
        str | None,
        typer.Option("--provider-urls", help="Comma-separated esplora API URLs"),
    ] = None,
    poll_interval_ms: Annotated[
        int | None,
        typer.Option("--poll-interval", help="Pending order poll interval in milliseconds"),
    ] = None,
    digest_key: Annotated[
        str | None,
        typer.Option("--digest-key", help="Hex digest key used to derive order secrets"),
    ] = None,
    bitcoin_private_key: Annotated[
        str | None,
        typer.Option("--bitcoin-private-key", help="Hex private key of the Bitcoin wallet"),
    ] = None,
    data_dir: Annotated[
        Path | None,
        typer.Option(
            "--data-dir",
            "-d",
            envvar="SWAP_DATA_DIR",
            help="Data directory for swap executor files",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Log level"),
    ] = None,
) -> None:
    """
    Start the executor.

    Pending orders of the configured user are polled and every order's next
    action (initiate, redeem or refund) is executed until interrupted.
    """
    settings = setup_cli(log_level, data_dir=data_dir) if data_dir else setup_cli(log_level)
    ensure_config_file(settings.get_data_dir())

    config = _load_config(
        settings,
        network=network,
        orderbook_url=orderbook_url,
        user_id=user_id,
        provider_urls=provider_urls,
        poll_interval_ms=poll_interval_ms,
        digest_key=digest_key,
        bitcoin_private_key=bitcoin_private_key,
    )
    if not config.user_id:
        logger.error("No user id configured (use --user-id or orderbook.user_id)")
        raise typer.Exit(1)

    try:
        orchestrator = build_orchestrator(config)
    except (SwapError, ValueError) as e:
        logger.error(str(e))
        raise typer.Exit(1)

    logger.info(f"Using network: {config.network.value}")
    logger.info(f"Orderbook: {config.orderbook_url}")
    logger.info(f"User: {redact(config.user_id, settings)}")
    if orchestrator.bitcoin_wallet is None:
        logger.warning("No Bitcoin private key configured, Bitcoin HTLC spends are disabled")
    if orchestrator.secret_manager is None:
        logger.warning("No digest key configured, only observing orders")

    for event_type in EventType:
        if event_type != EventType.PENDING_ORDERS_CHANGED:
            orchestrator.events.subscribe(event_type, log_event)

    async def run_executor() -> None:
        try:
            orchestrator.start()
            while True:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            await close_orchestrator(orchestrator)

    try:
        run_async(run_executor())
    except KeyboardInterrupt:
        logger.info("Shutting down executor...")


@app.command()
def status(
    user_id: Annotated[
        str | None, typer.Option("--user-id", "-u", help="Orderbook user id (wallet address)")
    ] = None,
    orderbook_url: Annotated[
        str | None, typer.Option("--orderbook-url", help="Orderbook API base URL")
    ] = None,
    network: Annotated[
        NetworkType | None,
        typer.Option(case_sensitive=False, help="Bitcoin network"),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Log level"),
    ] = None,
) -> None:
    """Print the pending orders of a user with their current status."""
    settings = setup_cli(log_level)
    config = _load_config(settings, network=network, orderbook_url=orderbook_url, user_id=user_id)
    if not config.user_id:
        logger.error("No user id configured (use --user-id or orderbook.user_id)")
        raise typer.Exit(1)

    # Status only: no keys, nothing is executed
    config.digest_key = None
    config.bitcoin_private_key = None
    orchestrator = build_orchestrator(config)

    async def fetch_statuses() -> list[tuple[str, str]]:
        try:
            orders = await orchestrator.orderbook.get_pending_orders(config.user_id)
            with_status = await orchestrator.assign_status(orders)
            return [(item.order_id, item.status.value) for item in with_status]
        finally:
            await close_orchestrator(orchestrator)

    try:
        rows = run_async(fetch_statuses())
    except SwapError as e:
        logger.error(f"Failed to fetch pending orders: {e}")
        raise typer.Exit(1)

    if not rows:
        typer.echo("No pending orders")
        return
    for order_id, order_status in rows:
        typer.echo(f"{order_id}  {order_status}")


@app.command()
def secret(
    nonce: Annotated[str, typer.Argument(help="Order nonce")],
    digest_key: Annotated[
        str | None,
        typer.Option("--digest-key", help="Hex digest key (defaults to executor.digest_key)"),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Log level"),
    ] = None,
) -> None:
    """Derive the secret and secret hash of an order nonce."""
    settings = setup_cli(log_level)
    if digest_key is None and settings.executor.digest_key is not None:
        digest_key = settings.executor.digest_key.get_secret_value()
    if not digest_key:
        logger.error("No digest key configured (use --digest-key or executor.digest_key)")
        raise typer.Exit(1)

    try:
        derived = SecretManager.from_hex(digest_key).generate_secret(nonce)
    except SwapError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    typer.echo(f"secret:      {derived.secret_hex}")
    typer.echo(f"secret_hash: {derived.secret_hash_hex}")


@app.command()
def htlc_address(
    secret_hash: Annotated[str, typer.Option("--secret-hash", help="Hex sha256 of the secret")],
    initiator: Annotated[str, typer.Option("--initiator", help="Initiator public key (hex)")],
    redeemer: Annotated[str, typer.Option("--redeemer", help="Redeemer public key (hex)")],
    timelock: Annotated[int, typer.Option("--timelock", help="Refund timelock in blocks")],
    network: Annotated[
        NetworkType,
        typer.Option(case_sensitive=False, help="Bitcoin network"),
    ] = NetworkType.MAINNET,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Log level"),
    ] = None,
) -> None:
    """Print the Taproot address of an HTLC."""
    setup_cli(log_level)
    try:
        script = HTLCScript(secret_hash, initiator, redeemer, timelock)
    except SwapError as e:
        logger.error(str(e))
        raise typer.Exit(1)
    typer.echo(script.address(network))


@app.command()
def config_init(
    data_dir: Annotated[
        Path | None,
        typer.Option(
            "--data-dir",
            "-d",
            envvar="SWAP_DATA_DIR",
            help="Data directory for swap executor files",
        ),
    ] = None,
) -> None:
    """Write a config.toml listing every setting, commented out, with its default."""
    config_path = (data_dir or get_default_data_dir()) / "config.toml"
    if config_path.exists():
        typer.echo(f"Config file already exists at: {config_path}")
        return

    ensure_config_file(config_path.parent)
    typer.echo(f"Config file created at: {config_path}")
    typer.echo("Uncomment a setting to override its default.")
    typer.echo("CLI arguments and SECTION__KEY environment variables still take precedence.")


def main() -> None:  # pragma: no cover
    app()
