"""
HTTP client for a Silent Payment indexer.

Endpoints (GET only):
- /health
- /silent-block/height/{height}
- /silent-block/hash/{hash}
- /transactions/height/{height}
- /transactions/hash/{hash}
- /silent-block/latest-height

Reference: https://github.com/Bitshala-Incubator/silent-pay-indexer
"""

from __future__ import annotations

from typing import Any, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from spwallet.backends.base import (
    HealthResponse,
    IndexerError,
    IndexerRateLimitError,
    SilentBlock,
    SilentPaymentIndexerBackend,
    TransactionResponse,
)
from spwallet.constants import DEFAULT_INDEXER_URL, DEFAULT_REQUEST_TIMEOUT

ModelT = TypeVar("ModelT", bound=BaseModel)


class SilentPaymentIndexer(SilentPaymentIndexerBackend):
    """
    Indexer backend talking to the indexer's REST API over httpx.

    Every failure surfaces as IndexerError; a 429 surfaces as the more specific
    IndexerRateLimitError so callers can back off and retry.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_INDEXER_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the indexer client.

        Args:
            base_url: Indexer base URL, trailing slash optional
            timeout: Seconds to wait for a response
            transport: Optional httpx transport (used by tests)
        """
        self._base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_base_url(self, url: str) -> None:
        self._base_url = url.rstrip("/")

    async def _api_call(self, endpoint: str, context: str) -> Any:
        """GET an endpoint and return its decoded JSON body."""
        url = f"{self._base_url}{endpoint}"

        try:
            response = await self.client.get(url)
        except httpx.TimeoutException as e:
            logger.error(f"{context}: timed out after {self.timeout}s")
            raise IndexerError(f"{context}: timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"{context}: {e}")
            raise IndexerError(f"{context}: {e}") from e

        if response.status_code == 429:
            logger.warning(f"{context}: rate limited by indexer")
            raise IndexerRateLimitError(f"{context}: HTTP 429")

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"{context}: HTTP {response.status_code}")
            raise IndexerError(f"{context}: HTTP {response.status_code}") from e

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{context}: malformed JSON response")
            raise IndexerError(f"{context}: malformed JSON response") from e

    async def _get_model(self, model: type[ModelT], endpoint: str, context: str) -> ModelT:
        data = await self._api_call(endpoint, context)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"{context}: unexpected response shape")
            raise IndexerError(f"{context}: unexpected response shape") from e

    async def get_health(self) -> HealthResponse:
        return await self._get_model(HealthResponse, "/health", "Error fetching indexer health")

    async def get_silent_block_by_height(self, height: int) -> SilentBlock:
        return await self._get_model(
            SilentBlock,
            f"/silent-block/height/{height}",
            f"Error fetching silent block by height {height}",
        )

    async def get_silent_block_by_hash(self, block_hash: str) -> SilentBlock:
        return await self._get_model(
            SilentBlock,
            f"/silent-block/hash/{block_hash}",
            f"Error fetching silent block by hash {block_hash}",
        )

    async def get_transactions_by_height(self, height: int) -> TransactionResponse:
        return await self._get_model(
            TransactionResponse,
            f"/transactions/height/{height}",
            f"Error fetching transactions by height {height}",
        )

    async def get_transactions_by_hash(self, block_hash: str) -> TransactionResponse:
        return await self._get_model(
            TransactionResponse,
            f"/transactions/hash/{block_hash}",
            f"Error fetching transactions by hash {block_hash}",
        )

    async def get_latest_block_height(self) -> int:
        context = "Error fetching latest block height"
        data = await self._api_call("/silent-block/latest-height", context)

        # bool is an int subclass but never a valid height
        if isinstance(data, bool) or not isinstance(data, int) or data < 0:
            raise IndexerError(f"{context}: expected a non-negative integer, got {data!r}")

        logger.debug(f"Indexer tip height: {data}")
        return data

    async def get_silent_blocks_range(
        self, start_height: int, end_height: int
    ) -> list[SilentBlock]:
        """Fetch silent blocks for start..end inclusive, skipping heights that fail."""
        blocks: list[SilentBlock] = []

        for height in range(start_height, end_height + 1):
            try:
                blocks.append(await self.get_silent_block_by_height(height))
            except IndexerError:
                logger.warning(f"Failed to fetch silent block at height {height}, skipping...")

        return blocks

    async def close(self) -> None:
        """Close the HTTP client connection."""
        await self.client.aclose()
