"""
Silent Payments wallet CLI - show the wallet address and scan an indexer for payments.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import typer
from loguru import logger
from pydantic import ValidationError

from spwallet.config import Settings, get_settings

app = typer.Typer(
    name="sp-wallet",
    help="Silent Payments (BIP-352) wallet",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def load_mnemonic(mnemonic: str | None, mnemonic_file: Path | None) -> str:
    if mnemonic_file:
        if not mnemonic_file.exists():
            logger.error(f"Mnemonic file not found: {mnemonic_file}")
            raise typer.Exit(1)
        mnemonic = mnemonic_file.read_text().strip()

    if not mnemonic:
        logger.error("Mnemonic required. Use --mnemonic, --mnemonic-file, or MNEMONIC env var")
        raise typer.Exit(1)

    return mnemonic


def load_state(state_file: Path | None) -> dict[str, Any] | None:
    if state_file is None or not state_file.exists():
        return None
    try:
        return json.loads(state_file.read_text())
    except json.JSONDecodeError as e:
        logger.error(f"Wallet state file {state_file} is not valid JSON: {e}")
        raise typer.Exit(1)


def save_state(state_file: Path, state: dict[str, Any]) -> None:
    state_file.parent.mkdir(parents=True, exist_ok=True)
    state_file.write_text(json.dumps(state, indent=2))
    logger.info(f"Wallet state saved to {state_file}")


def _settings(network: str | None, indexer_url: str | None, log_level: str | None) -> Settings:
    overrides: dict[str, Any] = {}
    if network:
        overrides["network"] = network
    if indexer_url:
        overrides["indexer_url"] = indexer_url
    if log_level:
        overrides["log_level"] = log_level
    try:
        return get_settings(**overrides)
    except ValidationError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(1)


@app.command()
def address(
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC", help="BIP39 mnemonic"),
    mnemonic_file: Path | None = typer.Option(
        None, "--mnemonic-file", "-f", help="Path to mnemonic file"
    ),
    network: str | None = typer.Option(None, "--network", "-n", help="Bitcoin network"),
    show_keys: bool = typer.Option(False, "--show-keys", help="Also print the public keys"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Print the wallet's Silent Payment address."""
    settings = _settings(network, None, log_level)
    setup_logging(settings.log_level)

    from spwallet.wallet.bip32 import InvalidSeedError
    from spwallet.wallet.service import SilentPaymentWalletService

    try:
        wallet = SilentPaymentWalletService(
            load_mnemonic(mnemonic, mnemonic_file), network=settings.network
        )
    except InvalidSeedError as e:
        logger.error(f"Invalid mnemonic: {e}")
        raise typer.Exit(1)

    typer.echo(wallet.get_silent_payment_address())
    if show_keys:
        typer.echo(f"Scan public key:  {wallet.get_scan_public_key().hex()}")
        typer.echo(f"Spend public key: {wallet.get_spend_public_key().hex()}")


@app.command()
def scan(
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC", help="BIP39 mnemonic"),
    mnemonic_file: Path | None = typer.Option(
        None, "--mnemonic-file", "-f", help="Path to mnemonic file"
    ),
    network: str | None = typer.Option(None, "--network", "-n", help="Bitcoin network"),
    indexer_url: str | None = typer.Option(
        None, "--indexer-url", "-u", help="Silent Payment indexer URL (env: SP_INDEXER_URL)"
    ),
    max_blocks: int | None = typer.Option(
        None, "--max-blocks", "-m", help="Blocks to scan backward from the start height"
    ),
    forward: bool = typer.Option(False, "--forward", help="Scan forward to fill a gap"),
    from_height: int | None = typer.Option(
        None,
        "--from-height",
        help="Start height (forward: defaults to last scanned block + 1; backward: tip)",
    ),
    to_height: int | None = typer.Option(
        None, "--to-height", help="End height of a forward scan (defaults to indexer tip)"
    ),
    state_file: Path | None = typer.Option(
        None, "--state-file", "-s", help="JSON file holding UTXOs and scan progress"
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Scan the indexer for Silent Payments to this wallet."""
    settings = _settings(network, indexer_url, log_level)
    setup_logging(settings.log_level)

    asyncio.run(
        _run_scan(
            load_mnemonic(mnemonic, mnemonic_file),
            settings,
            network,
            max_blocks,
            forward,
            from_height,
            to_height,
            state_file,
        )
    )


async def _run_scan(
    mnemonic: str,
    settings: Settings,
    network: str | None,
    max_blocks: int | None,
    forward: bool,
    from_height: int | None,
    to_height: int | None,
    state_file: Path | None,
) -> None:
    from spwallet.backends.base import IndexerError
    from spwallet.backends.indexer import SilentPaymentIndexer
    from spwallet.wallet.bip32 import InvalidSeedError
    from spwallet.wallet.service import SilentPaymentWalletService

    indexer = SilentPaymentIndexer(settings.indexer_url, timeout=settings.request_timeout)
    state = load_state(state_file)

    try:
        if state is not None:
            wallet = SilentPaymentWalletService.from_dict(
                mnemonic, state, indexer=indexer, scan_config=settings.scan_config()
            )
            if network and network != wallet.network:
                logger.warning(
                    f"Ignoring --network {network}: "
                    f"state file {state_file} is for {wallet.network}"
                )
        else:
            wallet = SilentPaymentWalletService(
                mnemonic,
                indexer=indexer,
                network=settings.network,
                scan_config=settings.scan_config(),
            )
    except (InvalidSeedError, ValueError) as e:
        await indexer.close()
        logger.error(f"Failed to load wallet: {e}")
        raise typer.Exit(1)

    try:
        if forward:
            start = from_height if from_height is not None else wallet.last_scanned_block + 1
            result = await wallet.scan_for_payments_forward(start, to_height)
        else:
            result = await wallet.scan_for_payments(max_blocks, from_height)
    except (IndexerError, ValueError) as e:
        logger.error(f"Scan failed: {e}")
        raise typer.Exit(1)
    finally:
        await wallet.close()

    if state_file is not None:
        save_state(state_file, wallet.to_dict())

    balance = wallet.get_balance()
    print(f"\nAddress:           {wallet.get_silent_payment_address()}")
    print(f"New UTXOs:         {result.new_utxos}")
    print(f"Balance:           {balance:,} sats ({balance / 1e8:.8f} BTC)")
    print(f"Last scanned block: {wallet.last_scanned_block}")
    if result.failed_heights:
        heights = ", ".join(str(h) for h in result.failed_heights)
        print(f"Failed blocks:     {heights} (rescan later with --forward --from-height)")


@app.command()
def utxos(
    state_file: Path = typer.Option(..., "--state-file", "-s", help="Wallet state JSON file"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """List the unspent Silent Payment UTXOs stored in a wallet state file."""
    settings = _settings(None, None, log_level)
    setup_logging(settings.log_level)

    from spwallet.wallet.repository import UTXORepository

    state = load_state(state_file)
    if state is None:
        logger.error(f"Wallet state file not found: {state_file}")
        raise typer.Exit(1)

    repository = UTXORepository()
    try:
        repository.load_from_serializable(state.get("utxos") or [])
    except ValueError as e:
        logger.error(f"Invalid UTXO records in {state_file}: {e}")
        raise typer.Exit(1)

    unspent = repository.get_all()
    if not unspent:
        print("\nNo unspent Silent Payment UTXOs.")
        return

    print(f"\n{len(unspent)} unspent UTXO(s):\n")
    for utxo in unspent:
        print(f"  {utxo.txid}:{utxo.vout}  {utxo.value:>15,} sats  (block {utxo.block_height})")
    balance = repository.get_balance()
    print(f"\nTotal: {balance:,} sats ({balance / 1e8:.8f} BTC)")


@app.command()
def health(
    indexer_url: str | None = typer.Option(
        None, "--indexer-url", "-u", help="Silent Payment indexer URL (env: SP_INDEXER_URL)"
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Check that the indexer is reachable and report its tip height."""
    settings = _settings(None, indexer_url, log_level)
    setup_logging(settings.log_level)

    if not asyncio.run(_check_health(settings)):
        raise typer.Exit(1)


async def _check_health(settings: Settings) -> bool:
    from spwallet.backends.base import IndexerError
    from spwallet.backends.indexer import SilentPaymentIndexer

    async with SilentPaymentIndexer(settings.indexer_url, settings.request_timeout) as indexer:
        if not await indexer.test_connection():
            print(f"Indexer at {settings.indexer_url} is unreachable")
            return False
        try:
            tip = await indexer.get_latest_block_height()
        except IndexerError as e:
            print(f"Indexer at {settings.indexer_url} is up but tip query failed: {e}")
            return False

    print(f"Indexer at {settings.indexer_url} is healthy, tip height {tip}")
    return True


def main() -> None:
    app()


if __name__ == "__main__":
    main()
