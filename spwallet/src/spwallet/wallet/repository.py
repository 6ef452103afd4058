"""
In-memory store of Silent Payment UTXOs.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any

from loguru import logger

from spwallet.wallet.models import SilentPaymentUTXO, SilentPaymentUTXORecord


class UTXORepository:
    """
    Deduplicated store of matched outputs keyed by (txid, vout).

    Spent entries are kept for history but excluded from get_all() and the
    balance. Insertion order is preserved.
    """

    def __init__(self) -> None:
        self._utxos: dict[tuple[str, int], SilentPaymentUTXO] = {}
        self._lock = threading.Lock()

    def add(self, utxo: SilentPaymentUTXO) -> bool:
        """
        Add a UTXO unless one with the same outpoint is already stored.

        Returns:
            True if added, False if duplicate
        """
        with self._lock:
            if utxo.outpoint in self._utxos:
                logger.debug(f"UTXO {utxo.txid}:{utxo.vout} already known")
                return False
            self._utxos[utxo.outpoint] = utxo
            return True

    def get(self, txid: str, vout: int) -> SilentPaymentUTXO | None:
        with self._lock:
            return self._utxos.get((txid, vout))

    def get_all(self) -> list[SilentPaymentUTXO]:
        """Unspent UTXOs in insertion order."""
        with self._lock:
            return [u for u in self._utxos.values() if not u.is_spent]

    def get_spent(self) -> list[SilentPaymentUTXO]:
        with self._lock:
            return [u for u in self._utxos.values() if u.is_spent]

    def get_balance(self) -> int:
        return sum(u.value for u in self.get_all())

    def get_serializable(self) -> list[dict[str, Any]]:
        """All entries (spent included) as camelCase records with a hex tweak."""
        with self._lock:
            return [u.to_record().to_dict() for u in self._utxos.values()]

    def load_from_serializable(
        self, records: Iterable[dict[str, Any] | SilentPaymentUTXORecord] | None
    ) -> None:
        """Replace the repository contents with previously serialized records."""
        utxos: dict[tuple[str, int], SilentPaymentUTXO] = {}
        for record in records or []:
            if not isinstance(record, SilentPaymentUTXORecord):
                record = SilentPaymentUTXORecord.model_validate(record)
            utxo = record.to_utxo()
            utxos.setdefault(utxo.outpoint, utxo)

        with self._lock:
            self._utxos = utxos

        logger.debug(f"Loaded {len(utxos)} Silent Payment UTXOs")

    def clear(self) -> None:
        with self._lock:
            self._utxos = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._utxos)

    def __contains__(self, outpoint: object) -> bool:
        with self._lock:
            return outpoint in self._utxos
