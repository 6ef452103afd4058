"""
Silent Payment indexer backends.

Available backends:
- SilentPaymentIndexer: REST client for a silent-pay-indexer instance
"""

from spwallet.backends.base import (
    HealthResponse,
    IndexerError,
    IndexerRateLimitError,
    IndexerTransactionData,
    SilentBlock,
    SilentPaymentIndexerBackend,
    TransactionResponse,
)
from spwallet.backends.indexer import SilentPaymentIndexer

__all__ = [
    "HealthResponse",
    "IndexerError",
    "IndexerRateLimitError",
    "IndexerTransactionData",
    "SilentBlock",
    "SilentPaymentIndexer",
    "SilentPaymentIndexerBackend",
    "TransactionResponse",
]
