"""
Silent Payments wallet functionality.
"""

from spwallet.wallet.keys import SilentPaymentKeyDerivation
from spwallet.wallet.models import IndexerOutput, IndexerTransaction, SilentPaymentUTXO
from spwallet.wallet.processor import TransactionProcessor
from spwallet.wallet.repository import UTXORepository
from spwallet.wallet.scanner import BlockScan, ScanCoordinator, ScanResult
from spwallet.wallet.service import SilentPaymentWalletService

__all__ = [
    "BlockScan",
    "IndexerOutput",
    "IndexerTransaction",
    "ScanCoordinator",
    "ScanResult",
    "SilentPaymentKeyDerivation",
    "SilentPaymentUTXO",
    "SilentPaymentWalletService",
    "TransactionProcessor",
    "UTXORepository",
]
