"""
Tests for ScanCoordinator block range scanning.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from spwallet.backends.base import IndexerError, IndexerRateLimitError
from spwallet.config import ScanConfig
from spwallet.wallet.processor import TransactionProcessor
from spwallet.wallet.repository import UTXORepository
from spwallet.wallet.scanner import ScanCoordinator, ScanDirection, ScanState

FAST = ScanConfig(request_delay=0, rate_limit_backoff=0, max_backoff=0, max_rate_limit_retries=3)


@pytest.fixture
def repository() -> UTXORepository:
    return UTXORepository()


@pytest.fixture
def coordinator_for(key_derivation, repository):
    def _make(indexer, config: ScanConfig = FAST, scan_height: int = 0) -> ScanCoordinator:
        return ScanCoordinator(
            indexer,
            TransactionProcessor(key_derivation),
            repository,
            config=config,
            scan_height=scan_height,
        )

    return _make


class TestRangeResolution:
    @pytest.mark.asyncio
    async def test_backward_from_tip(self, fake_indexer, coordinator_for):
        coordinator = coordinator_for(fake_indexer(tip=118))
        assert await coordinator.resolve_backward_range(19) == (118, 100)

    @pytest.mark.asyncio
    async def test_backward_clamped_at_genesis(self, fake_indexer, coordinator_for):
        coordinator = coordinator_for(fake_indexer(tip=5))
        assert await coordinator.resolve_backward_range(100) == (5, 0)

    @pytest.mark.asyncio
    async def test_backward_from_height(self, fake_indexer, coordinator_for):
        coordinator = coordinator_for(fake_indexer(tip=1_000))
        assert await coordinator.resolve_backward_range(10, from_height=50) == (50, 41)

    @pytest.mark.asyncio
    async def test_forward_defaults_to_tip(self, fake_indexer, coordinator_for):
        coordinator = coordinator_for(fake_indexer(tip=30))
        assert await coordinator.resolve_forward_range(25) == (25, 30)

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, fake_indexer, coordinator_for):
        coordinator = coordinator_for(fake_indexer(tip=30))
        with pytest.raises(ValueError):
            await coordinator.resolve_backward_range(0)
        with pytest.raises(ValueError):
            await coordinator.resolve_forward_range(-1)

    @pytest.mark.asyncio
    async def test_tip_failure_propagates(self, fake_indexer, coordinator_for):
        coordinator = coordinator_for(fake_indexer(tip=-1))
        with pytest.raises(IndexerError):
            await coordinator.scan_backward(10)


class TestBackwardScan:
    @pytest.mark.asyncio
    async def test_visits_heights_descending(self, fake_indexer, coordinator_for):
        indexer = fake_indexer(tip=118)
        coordinator = coordinator_for(indexer)

        result = await coordinator.scan_backward(19)

        assert indexer.requested == list(range(118, 99, -1))
        assert result.direction == ScanDirection.BACKWARD
        assert result.scanned_heights == indexer.requested
        assert result.highest_height == 118
        assert result.complete
        assert coordinator.scan_height == 118
        assert coordinator.state == ScanState.DONE

    @pytest.mark.asyncio
    async def test_finds_payments(self, fake_indexer, coordinator_for, make_payment, repository):
        indexer = fake_indexer(
            tip=110,
            blocks={
                108: [make_payment("aa" * 32, [5_000], block_height=108)],
                105: [make_payment("bb" * 32, [1_000, 2_000], extra_outputs=1)],
            },
        )
        result = await coordinator_for(indexer).scan_backward(10)

        assert result.new_utxos == 3
        assert len(result.matches) == 3
        assert len(result.transactions) == 2
        assert repository.get_balance() == 8_000
        # block height falls back to the scanned height
        assert {u.block_height for u in repository.get_all()} == {108, 105}

    @pytest.mark.asyncio
    async def test_rescan_absorbs_duplicates(
        self, fake_indexer, coordinator_for, make_payment, repository
    ):
        indexer = fake_indexer(tip=10, blocks={9: [make_payment("aa" * 32, [5_000])]})
        coordinator = coordinator_for(indexer)

        first = await coordinator.scan_backward(5)
        second = await coordinator.scan_backward(5)

        assert first.new_utxos == 1
        assert second.new_utxos == 0
        assert len(second.matches) == 1
        assert len(repository) == 1

    @pytest.mark.asyncio
    async def test_unscannable_transactions_skipped(
        self, fake_indexer, coordinator_for, make_payment, repository
    ):
        no_tweak = make_payment("aa" * 32, [5_000])
        no_tweak.scan_tweak = None
        no_outputs = make_payment("bb" * 32, [])

        indexer = fake_indexer(tip=3, blocks={3: [no_tweak, no_outputs]})
        result = await coordinator_for(indexer).scan_backward(1)

        assert result.new_utxos == 0
        assert len(result.transactions) == 2
        assert len(repository) == 0

    @pytest.mark.asyncio
    async def test_on_block_callback(self, fake_indexer, coordinator_for):
        seen: list[int] = []

        async def on_block(block):
            seen.append(block.height)

        await coordinator_for(fake_indexer(tip=3)).scan_backward(3, on_block=on_block)
        assert seen == [3, 2, 1]


class TestFailures:
    @pytest.mark.asyncio
    async def test_rate_limited_height_is_retried(self, fake_indexer, coordinator_for):
        indexer = fake_indexer(
            tip=118, failures={110: [IndexerRateLimitError("429"), IndexerRateLimitError("429")]}
        )
        result = await coordinator_for(indexer).scan_backward(19)

        assert indexer.requested.count(110) == 3
        assert all(indexer.requested.count(h) == 1 for h in range(100, 119) if h != 110)
        assert result.scanned_heights == list(range(118, 99, -1))
        assert result.complete

    @pytest.mark.asyncio
    async def test_rate_limit_backoff_doubles(self, fake_indexer, coordinator_for):
        config = ScanConfig(
            request_delay=0, rate_limit_backoff=2.0, max_backoff=5.0, max_rate_limit_retries=3
        )
        indexer = fake_indexer(
            tip=1, failures={1: [IndexerRateLimitError("429") for _ in range(3)]}
        )

        with patch("spwallet.wallet.scanner.asyncio.sleep", new=AsyncMock()) as sleep:
            await coordinator_for(indexer, config=config).scan_backward(1)

        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0, 5.0]

    @pytest.mark.asyncio
    async def test_rate_limit_budget_exhausted(self, fake_indexer, coordinator_for):
        indexer = fake_indexer(
            tip=5, failures={4: [IndexerRateLimitError("429") for _ in range(10)]}
        )
        coordinator = coordinator_for(indexer)
        result = await coordinator.scan_backward(3)

        assert indexer.requested.count(4) == FAST.max_rate_limit_retries + 1
        assert result.failed_heights == [4]
        assert result.scanned_heights == [5, 3]
        assert not result.complete

    @pytest.mark.asyncio
    async def test_transport_error_skips_height(self, fake_indexer, coordinator_for):
        indexer = fake_indexer(tip=5, failures={4: [IndexerError("HTTP 500")]})
        coordinator = coordinator_for(indexer, scan_height=2)
        result = await coordinator.scan_backward(3)

        assert indexer.requested == [5, 4, 3]
        assert result.failed_heights == [4]
        assert coordinator.scan_height == 5

    @pytest.mark.asyncio
    async def test_timeout_skips_height(self, fake_indexer, coordinator_for):
        class SlowIndexer(fake_indexer):
            async def get_transactions_by_height(self, height):
                if height == 2:
                    await asyncio.sleep(1)
                return await super().get_transactions_by_height(height)

        config = ScanConfig(request_delay=0, request_timeout=0.01)
        result = await coordinator_for(SlowIndexer(tip=3), config=config).scan_backward(3)

        assert result.failed_heights == [2]
        assert result.scanned_heights == [3, 1]

    @pytest.mark.asyncio
    async def test_delay_only_after_successful_fetch(self, fake_indexer, coordinator_for):
        config = ScanConfig(request_delay=0.5, rate_limit_backoff=0, max_rate_limit_retries=0)
        indexer = fake_indexer(tip=3, failures={2: [IndexerError("boom")]})

        with patch("spwallet.wallet.scanner.asyncio.sleep", new=AsyncMock()) as sleep:
            await coordinator_for(indexer, config=config).scan_backward(3)

        # before 2 (after 3 succeeded); none before 1 because 2 failed
        assert sleep.await_count == 1


class TestForwardScan:
    @pytest.mark.asyncio
    async def test_visits_heights_ascending(self, fake_indexer, coordinator_for):
        indexer = fake_indexer(tip=30)
        coordinator = coordinator_for(indexer, scan_height=24)
        result = await coordinator.scan_forward(25)

        assert indexer.requested == [25, 26, 27, 28, 29, 30]
        assert result.direction == ScanDirection.FORWARD
        assert coordinator.scan_height == 30

    @pytest.mark.asyncio
    async def test_explicit_end(self, fake_indexer, coordinator_for):
        indexer = fake_indexer(tip=30)
        await coordinator_for(indexer).scan_forward(10, 12)
        assert indexer.requested == [10, 11, 12]

    @pytest.mark.asyncio
    async def test_empty_range(self, fake_indexer, coordinator_for):
        indexer = fake_indexer(tip=30)
        result = await coordinator_for(indexer).scan_forward(31)

        assert indexer.requested == []
        assert result.highest_height is None


class TestStreaming:
    @pytest.mark.asyncio
    async def test_iter_backward_yields_each_block(self, fake_indexer, coordinator_for):
        coordinator = coordinator_for(fake_indexer(tip=10))
        heights = [block.height async for block in coordinator.iter_backward(4)]
        assert heights == [10, 9, 8, 7]

    @pytest.mark.asyncio
    async def test_break_stops_fetching(self, fake_indexer, coordinator_for):
        indexer = fake_indexer(tip=100)
        coordinator = coordinator_for(indexer)

        stream = coordinator.iter_backward(50)
        async for block in stream:
            if block.height == 98:
                break
        await stream.aclose()

        assert indexer.requested == [100, 99, 98]
        assert coordinator.scan_height == 100
        assert coordinator.state == ScanState.DONE

    @pytest.mark.asyncio
    async def test_break_from_forward_stream_finishes(self, fake_indexer, coordinator_for):
        indexer = fake_indexer(tip=100)
        coordinator = coordinator_for(indexer)

        stream = coordinator.iter_forward(10)
        async for _ in stream:
            break
        await stream.aclose()

        assert indexer.requested == [10]
        assert coordinator.state == ScanState.DONE

    @pytest.mark.asyncio
    async def test_failing_callback_finishes_scan(self, fake_indexer, coordinator_for):
        indexer = fake_indexer(tip=10)
        coordinator = coordinator_for(indexer)

        async def on_block(block):
            raise RuntimeError("consumer failed")

        with pytest.raises(RuntimeError):
            await coordinator.scan_backward(5, on_block=on_block)

        assert indexer.requested == [10]
        assert coordinator.state == ScanState.DONE

    @pytest.mark.asyncio
    async def test_scan_height_never_decreases(self, fake_indexer, coordinator_for):
        coordinator = coordinator_for(fake_indexer(tip=20), scan_height=50)
        async for _ in coordinator.iter_forward(15):
            assert coordinator.scan_height == 50

    @pytest.mark.asyncio
    async def test_iter_forward_commits_before_yield(
        self, fake_indexer, coordinator_for, make_payment, repository
    ):
        indexer = fake_indexer(tip=3, blocks={2: [make_payment("aa" * 32, [700])]})
        coordinator = coordinator_for(indexer)

        async for block in coordinator.iter_forward(1):
            if block.height == 2:
                assert block.new_utxos == 1
                assert repository.get_balance() == 700
                assert coordinator.scan_height == 2
