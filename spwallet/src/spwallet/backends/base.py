"""
Base Silent Payment indexer interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Self

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field


class IndexerError(Exception):
    """Indexer request failed (HTTP error, timeout, malformed response)."""


class IndexerRateLimitError(IndexerError):
    """Indexer answered 429 Too Many Requests."""


class HealthResponse(BaseModel):
    status: str
    message: str | None = None


class TweakData(BaseModel):
    tweak: str
    pubkey: str


class SilentBlock(BaseModel):
    block_height: int
    block_hash: str
    tweaks: list[TweakData] = Field(default_factory=list)


class IndexerOutputData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str | None = Field(default=None, alias="transactionId")
    vout: int = Field(ge=0)
    pub_key: str = Field(alias="pubKey")
    value: int = Field(ge=0)
    is_spent: bool = Field(default=False, alias="isSpent")


class IndexerTransactionData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    block_height: int | None = Field(default=None, alias="blockHeight", ge=0)
    block_hash: str | None = Field(default=None, alias="blockHash")
    scan_tweak: str | None = Field(default=None, alias="scanTweak")
    outputs: list[IndexerOutputData] = Field(default_factory=list)

    def is_scannable(self) -> bool:
        """Only transactions carrying a tweak and at least one output can pay us."""
        return bool(self.scan_tweak) and len(self.outputs) > 0


class TransactionResponse(BaseModel):
    transactions: list[IndexerTransactionData] = Field(default_factory=list)


class SilentPaymentIndexerBackend(ABC):
    """
    Abstract Silent Payment indexer interface.
    Implementations expose per-block tweak data computed by a remote indexer.
    """

    @abstractmethod
    async def get_health(self) -> HealthResponse:
        """Liveness/readiness probe"""

    @abstractmethod
    async def get_silent_block_by_height(self, height: int) -> SilentBlock:
        """Get block-level tweak summary by height"""

    @abstractmethod
    async def get_silent_block_by_hash(self, block_hash: str) -> SilentBlock:
        """Get block-level tweak summary by hash"""

    @abstractmethod
    async def get_transactions_by_height(self, height: int) -> TransactionResponse:
        """Get scannable transactions of the block at height"""

    @abstractmethod
    async def get_transactions_by_hash(self, block_hash: str) -> TransactionResponse:
        """Get scannable transactions of the block with hash"""

    @abstractmethod
    async def get_latest_block_height(self) -> int:
        """Get the indexer tip height"""

    async def test_connection(self) -> bool:
        """Return True if the indexer answers its health probe."""
        try:
            await self.get_health()
            return True
        except IndexerError as e:
            logger.warning(f"Indexer connection test failed: {e}")
            return False

    async def close(self) -> None:
        """Close backend connection"""
        pass

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
