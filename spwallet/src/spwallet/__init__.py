"""
Silent Payments (BIP-352) wallet library with indexer-driven scanning.
"""

__version__ = "0.1.0"

from spwallet.backends.base import SilentPaymentIndexerBackend
from spwallet.wallet.service import SilentPaymentScanning, SilentPaymentWalletService

__all__ = ["SilentPaymentIndexerBackend", "SilentPaymentScanning", "SilentPaymentWalletService"]
