"""
Silent Payments wallet service.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from spwallet.backends.base import SilentPaymentIndexerBackend
from spwallet.config import ScanConfig
from spwallet.wallet.bip32 import mnemonic_to_seed
from spwallet.wallet.keys import SilentPaymentKeyDerivation
from spwallet.wallet.models import SilentPaymentUTXO
from spwallet.wallet.processor import TransactionProcessor
from spwallet.wallet.repository import UTXORepository
from spwallet.wallet.scanner import BlockCallback, BlockScan, ScanCoordinator, ScanResult


class IndexerNotConfiguredError(RuntimeError):
    """Raised when a scan is requested from a wallet without an indexer."""


@runtime_checkable
class SilentPaymentScanning(Protocol):
    """Capability of a wallet that can receive and detect Silent Payments."""

    @property
    def last_scanned_block(self) -> int: ...

    def get_silent_payment_address(self) -> str: ...

    async def scan_for_payments(
        self, max_blocks: int | None = None, from_height: int | None = None
    ) -> ScanResult: ...

    async def scan_for_payments_forward(
        self, start_height: int, end_height: int | None = None
    ) -> ScanResult: ...

    def get_utxos(self) -> list[SilentPaymentUTXO]: ...

    def get_balance(self) -> int: ...


class SilentPaymentWalletService:
    """
    Silent Payments wallet service.

    Owns key derivation, the transaction processor and the UTXO repository,
    and runs scans against the indexer it was given. The indexer is optional
    so that an offline wallet can still show its address and stored UTXOs.
    """

    def __init__(
        self,
        mnemonic: str,
        indexer: SilentPaymentIndexerBackend | None = None,
        network: str = "mainnet",
        scan_config: ScanConfig | None = None,
    ):
        self.network = network
        self.indexer = indexer
        self.scan_config = scan_config or ScanConfig()

        self.key_derivation = SilentPaymentKeyDerivation(mnemonic_to_seed(mnemonic), network)
        self.processor = TransactionProcessor(self.key_derivation)
        self.repository = UTXORepository()
        self._last_scanned_block = 0

        logger.info(f"Initialized Silent Payments wallet on {network}")

    @classmethod
    def from_dict(
        cls,
        mnemonic: str,
        data: dict[str, Any],
        indexer: SilentPaymentIndexerBackend | None = None,
        scan_config: ScanConfig | None = None,
    ) -> SilentPaymentWalletService:
        """Restore a wallet from the state produced by to_dict()."""
        wallet = cls(
            mnemonic,
            indexer=indexer,
            network=data.get("network", "mainnet"),
            scan_config=scan_config,
        )
        wallet.repository.load_from_serializable(data.get("utxos") or [])
        wallet.set_last_scanned_block(int(data.get("last_scanned_block", 0)))
        return wallet

    def to_dict(self) -> dict[str, Any]:
        """Persistable wallet state; tweaks are stored hex encoded."""
        return {
            "network": self.network,
            "last_scanned_block": self._last_scanned_block,
            "utxos": self.repository.get_serializable(),
        }

    def get_silent_payment_address(self) -> str:
        return self.key_derivation.get_silent_payment_address()

    def get_scan_private_key(self) -> bytes:
        return self.key_derivation.get_scan_private_key()

    def get_spend_private_key(self) -> bytes:
        return self.key_derivation.get_spend_private_key()

    def get_scan_public_key(self) -> bytes:
        return self.key_derivation.get_scan_public_key()

    def get_spend_public_key(self) -> bytes:
        return self.key_derivation.get_spend_public_key()

    @property
    def last_scanned_block(self) -> int:
        return self._last_scanned_block

    def set_last_scanned_block(self, height: int) -> None:
        if height < 0:
            raise ValueError(f"Block height must be non-negative, got {height}")
        self._last_scanned_block = height

    def _coordinator(self) -> ScanCoordinator:
        if self.indexer is None:
            raise IndexerNotConfiguredError(
                "Silent Payment indexer not configured for this wallet"
            )
        return ScanCoordinator(
            self.indexer,
            self.processor,
            self.repository,
            config=self.scan_config,
            scan_height=self._last_scanned_block,
        )

    def _record_progress(self, coordinator: ScanCoordinator) -> None:
        self._last_scanned_block = max(self._last_scanned_block, coordinator.scan_height)

    async def scan_for_payments(
        self,
        max_blocks: int | None = None,
        from_height: int | None = None,
        on_block: BlockCallback | None = None,
    ) -> ScanResult:
        """
        Scan backward from the indexer tip for Silent Payments.

        Called on refresh; the most recent blocks are visited first. Pass
        from_height to start below the tip.

        Returns:
            ScanResult; new_utxos is the number of UTXOs not seen before
        """
        coordinator = self._coordinator()
        blocks = self.scan_config.max_blocks if max_blocks is None else max_blocks
        logger.info(f"Scanning last {blocks} blocks for silent payments...")

        try:
            result = await coordinator.scan_backward(blocks, from_height, on_block=on_block)
        finally:
            self._record_progress(coordinator)

        logger.info(f"Scan complete. Found {result.new_utxos} new UTXOs.")
        return result

    async def scan_for_payments_forward(
        self,
        start_height: int,
        end_height: int | None = None,
        on_block: BlockCallback | None = None,
    ) -> ScanResult:
        """
        Scan forward from start_height up to end_height (default: indexer tip).

        Use this to backfill from a known height, e.g. last_scanned_block + 1.
        """
        coordinator = self._coordinator()

        try:
            result = await coordinator.scan_forward(start_height, end_height, on_block=on_block)
        finally:
            self._record_progress(coordinator)

        logger.info(f"Forward scan complete. Found {result.new_utxos} new UTXOs.")
        return result

    async def iter_payments(
        self, max_blocks: int | None = None, from_height: int | None = None
    ) -> AsyncIterator[BlockScan]:
        """Backward scan yielding one committed block at a time."""
        coordinator = self._coordinator()

        async with aclosing(coordinator.iter_backward(max_blocks, from_height)) as blocks:
            async for block in blocks:
                self._record_progress(coordinator)
                yield block

    def get_utxos(self) -> list[SilentPaymentUTXO]:
        return self.repository.get_all()

    def get_balance(self) -> int:
        return self.repository.get_balance()

    def clear_cache(self) -> None:
        """Forget derived keys, UTXOs and scan progress."""
        self.key_derivation.clear()
        self.repository.clear()
        self._last_scanned_block = 0

    async def close(self) -> None:
        """Close indexer connection"""
        if self.indexer is not None:
            await self.indexer.close()
