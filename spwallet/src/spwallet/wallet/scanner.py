"""
Block range scanning against a Silent Payment indexer.

The coordinator walks block heights one at a time, feeds each block's
transactions to the TransactionProcessor and commits matches into the
UTXORepository before asking the indexer for the next height. Scan progress
only moves after a block is fully committed, so a caller can resume from
scan_height after a crash or a partially failed scan.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from spwallet.backends.base import (
    IndexerError,
    IndexerRateLimitError,
    IndexerTransactionData,
    SilentPaymentIndexerBackend,
    TransactionResponse,
)
from spwallet.config import ScanConfig
from spwallet.wallet.models import IndexerOutput, IndexerTransaction, SilentPaymentUTXO
from spwallet.wallet.processor import TransactionProcessor
from spwallet.wallet.repository import UTXORepository


class ScanDirection(str, Enum):
    BACKWARD = "backward"
    FORWARD = "forward"


class ScanState(str, Enum):
    """Per-invocation scan states."""

    IDLE = "idle"
    RESOLVING_RANGE = "resolving_range"
    ITERATING = "iterating"
    DONE = "done"


@dataclass
class BlockScan:
    """Outcome of one committed block"""

    height: int
    transactions: list[IndexerTransactionData]
    matches: list[SilentPaymentUTXO]
    new_utxos: int


@dataclass
class ScanResult:
    """Summary of a whole scan, including the heights that could not be fetched"""

    direction: ScanDirection
    start_height: int
    end_height: int
    new_utxos: int = 0
    matches: list[SilentPaymentUTXO] = field(default_factory=list)
    transactions: list[IndexerTransactionData] = field(default_factory=list)
    scanned_heights: list[int] = field(default_factory=list)
    failed_heights: list[int] = field(default_factory=list)
    highest_height: int | None = None

    @property
    def complete(self) -> bool:
        return not self.failed_heights


BlockCallback = Callable[[BlockScan], Awaitable[None]]


def to_indexer_transaction(tx: IndexerTransactionData, height: int) -> IndexerTransaction:
    """Convert indexer wire data, falling back to the scanned height when absent."""
    return IndexerTransaction(
        block_height=tx.block_height if tx.block_height is not None else height,
        block_hash=tx.block_hash or "",
        txid=tx.id,
        scan_tweak=tx.scan_tweak or "",
        outputs=[
            IndexerOutput(
                vout=output.vout,
                pub_key=output.pub_key,
                value=output.value,
                is_spent=output.is_spent,
            )
            for output in tx.outputs
        ],
    )


class ScanCoordinator:
    """
    Drives Silent Payment detection over a range of block heights.

    Two directions are supported:
    - backward: from the indexer tip (or from_height) down max_blocks blocks,
      used for periodic refresh so recent payments show up first
    - forward: ascending from start_height to end_height (or tip), used to
      backfill a known gap

    Only one indexer request is in flight at a time.
    """

    def __init__(
        self,
        indexer: SilentPaymentIndexerBackend,
        processor: TransactionProcessor,
        repository: UTXORepository,
        config: ScanConfig | None = None,
        scan_height: int = 0,
    ):
        self.indexer = indexer
        self.processor = processor
        self.repository = repository
        self.config = config or ScanConfig()
        self.scan_height = scan_height
        self.state = ScanState.IDLE

    async def resolve_backward_range(
        self, max_blocks: int | None = None, from_height: int | None = None
    ) -> tuple[int, int]:
        """Concrete (start, end) heights of a backward scan, start >= end."""
        max_blocks = self.config.max_blocks if max_blocks is None else max_blocks
        if max_blocks < 1:
            raise ValueError(f"max_blocks must be positive, got {max_blocks}")
        if from_height is not None and from_height < 0:
            raise ValueError(f"from_height must be non-negative, got {from_height}")

        if from_height is None:
            start = await self.indexer.get_latest_block_height()
        else:
            start = from_height
        return start, max(0, start - max_blocks + 1)

    async def resolve_forward_range(
        self, start_height: int, end_height: int | None = None
    ) -> tuple[int, int]:
        """Concrete (start, end) heights of a forward scan, start <= end unless empty."""
        if start_height < 0:
            raise ValueError(f"start_height must be non-negative, got {start_height}")

        if end_height is None:
            end = await self.indexer.get_latest_block_height()
        else:
            end = end_height
        return start_height, end

    async def iter_backward(
        self, max_blocks: int | None = None, from_height: int | None = None
    ) -> AsyncIterator[BlockScan]:
        """
        Scan backward, yielding each block as soon as it is committed.

        Stop consuming to cancel: no further heights are requested once the
        caller leaves the loop.
        """
        self.state = ScanState.RESOLVING_RANGE
        start, end = await self.resolve_backward_range(max_blocks, from_height)
        result = ScanResult(ScanDirection.BACKWARD, start, end)

        async with aclosing(self._iter_heights(range(start, end - 1, -1), result)) as blocks:
            async for block in blocks:
                yield block

    async def iter_forward(
        self, start_height: int, end_height: int | None = None
    ) -> AsyncIterator[BlockScan]:
        """Scan forward, yielding each block as soon as it is committed."""
        self.state = ScanState.RESOLVING_RANGE
        start, end = await self.resolve_forward_range(start_height, end_height)
        result = ScanResult(ScanDirection.FORWARD, start, end)

        async with aclosing(self._iter_heights(range(start, end + 1), result)) as blocks:
            async for block in blocks:
                yield block

    async def scan_backward(
        self,
        max_blocks: int | None = None,
        from_height: int | None = None,
        on_block: BlockCallback | None = None,
    ) -> ScanResult:
        """
        Scan backward from the tip (or from_height) and return the full result.

        Args:
            max_blocks: Number of blocks to visit (default from config)
            from_height: Optional starting height (defaults to indexer tip)
            on_block: Optional coroutine called after each committed block

        Returns:
            ScanResult with matches, raw transactions and failed heights
        """
        self.state = ScanState.RESOLVING_RANGE
        start, end = await self.resolve_backward_range(max_blocks, from_height)
        result = ScanResult(ScanDirection.BACKWARD, start, end)

        await self._collect(range(start, end - 1, -1), result, on_block)
        return result

    async def scan_forward(
        self,
        start_height: int,
        end_height: int | None = None,
        on_block: BlockCallback | None = None,
    ) -> ScanResult:
        """
        Scan forward from start_height to end_height (or tip) and return the full result.
        """
        self.state = ScanState.RESOLVING_RANGE
        start, end = await self.resolve_forward_range(start_height, end_height)
        result = ScanResult(ScanDirection.FORWARD, start, end)

        await self._collect(range(start, end + 1), result, on_block)
        return result

    async def _collect(
        self, heights: range, result: ScanResult, on_block: BlockCallback | None
    ) -> None:
        async with aclosing(self._iter_heights(heights, result)) as blocks:
            async for block in blocks:
                result.matches.extend(block.matches)
                result.transactions.extend(block.transactions)
                if on_block is not None:
                    await on_block(block)

        logger.info(
            f"{result.direction.value.capitalize()} scan complete: "
            f"{len(result.scanned_heights)} blocks, {len(result.transactions)} transactions, "
            f"{result.new_utxos} new UTXOs"
            + (f", {len(result.failed_heights)} blocks failed" if result.failed_heights else "")
        )

    async def _iter_heights(self, heights: range, result: ScanResult) -> AsyncIterator[BlockScan]:
        logger.info(
            f"Scanning {result.direction.value} from block {result.start_height} "
            f"to {result.end_height}..."
        )
        self.state = ScanState.ITERATING

        try:
            previous_ok = False
            for height in heights:
                if previous_ok and self.config.request_delay > 0:
                    await asyncio.sleep(self.config.request_delay)

                response = await self._fetch_height(height)
                if response is None:
                    result.failed_heights.append(height)
                    previous_ok = False
                    continue

                previous_ok = True
                block = self._commit_block(height, response)

                result.scanned_heights.append(height)
                result.new_utxos += block.new_utxos
                if result.highest_height is None or height > result.highest_height:
                    result.highest_height = height

                yield block
        finally:
            self.state = ScanState.DONE

    async def _fetch_height(self, height: int) -> TransactionResponse | None:
        """
        Fetch one block's transactions.

        Rate limited requests are retried with backoff up to the configured
        budget; any other failure gives up on the height immediately.
        """
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(
                    self.indexer.get_transactions_by_height(height),
                    timeout=self.config.request_timeout,
                )
            except IndexerRateLimitError:
                attempt += 1
                if attempt > self.config.max_rate_limit_retries:
                    logger.warning(
                        f"Still rate limited at block {height} after "
                        f"{self.config.max_rate_limit_retries} retries, skipping..."
                    )
                    return None
                delay = self.config.backoff_for(attempt)
                logger.warning(
                    f"Rate limited at block {height}, retrying in {delay:.1f}s "
                    f"(attempt {attempt}/{self.config.max_rate_limit_retries})"
                )
                await asyncio.sleep(delay)
            except TimeoutError:
                logger.warning(
                    f"Timed out fetching block {height} after "
                    f"{self.config.request_timeout}s, skipping..."
                )
                return None
            except IndexerError as e:
                logger.warning(f"Failed to fetch block {height}, skipping: {e}")
                return None

    def _commit_block(self, height: int, response: TransactionResponse) -> BlockScan:
        """Process every scannable transaction of a block and store its matches."""
        matches: list[SilentPaymentUTXO] = []
        new_utxos = 0

        for tx in response.transactions:
            if not tx.is_scannable():
                continue

            for utxo in self.processor.process(to_indexer_transaction(tx, height)):
                matches.append(utxo)
                if self.repository.add(utxo):
                    new_utxos += 1

        if height > self.scan_height:
            self.scan_height = height

        if response.transactions:
            logger.debug(
                f"Block {height}: {len(response.transactions)} transaction(s), "
                f"{len(matches)} match(es)"
            )

        return BlockScan(
            height=height,
            transactions=response.transactions,
            matches=matches,
            new_utxos=new_utxos,
        )
