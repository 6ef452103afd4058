"""
Per-transaction Silent Payment output detection.
"""

from __future__ import annotations

from loguru import logger

from spwallet.constants import SCAN_TWEAK_LENGTH
from spwallet.wallet.bip352 import scan_outputs
from spwallet.wallet.keys import SilentPaymentKeyDerivation
from spwallet.wallet.models import IndexerTransaction, SilentPaymentUTXO


class TransactionProcessor:
    """
    Finds the outputs of an indexer transaction that pay to this wallet.

    The elliptic curve work is delegated to spwallet.wallet.bip352; this class
    owns validation and turns matches into SilentPaymentUTXO records. A bad
    transaction never raises, it just yields no matches.
    """

    def __init__(self, key_derivation: SilentPaymentKeyDerivation):
        self.key_derivation = key_derivation

    def process(self, tx: IndexerTransaction) -> list[SilentPaymentUTXO]:
        matched: list[SilentPaymentUTXO] = []

        try:
            scan_tweak = bytes.fromhex(tx.scan_tweak)
        except ValueError:
            logger.warning(f"Scan tweak for tx {tx.txid} is not valid hex")
            return matched

        if len(scan_tweak) != SCAN_TWEAK_LENGTH:
            logger.warning(f"Invalid scan tweak length for tx {tx.txid}: {len(scan_tweak)} bytes")
            return matched

        if not tx.outputs:
            return matched

        try:
            matches = scan_outputs(
                self.key_derivation.get_scan_private_key(),
                self.key_derivation.get_spend_public_key(),
                scan_tweak,
                [bytes.fromhex(output.pub_key) for output in tx.outputs],
            )
        except ValueError as e:
            logger.warning(f"Error processing transaction {tx.txid}: {e}")
            return matched

        if not matches:
            return matched

        for output in tx.outputs:
            tweak = matches.get(output.pub_key.lower())
            if tweak is None:
                continue

            logger.info(f"Found matching output: {tx.txid}:{output.vout} ({output.value} sats)")
            matched.append(
                SilentPaymentUTXO(
                    txid=tx.txid,
                    vout=output.vout,
                    value=output.value,
                    pub_key=output.pub_key,
                    block_height=tx.block_height,
                    block_hash=tx.block_hash,
                    tweak=tweak,
                    is_spent=output.is_spent,
                )
            )

        return matched
