"""
Pytest configuration and fixtures for Silent Payments wallet tests.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from coincurve import PrivateKey, PublicKey

from spwallet.backends.base import (
    HealthResponse,
    IndexerError,
    IndexerOutputData,
    IndexerTransactionData,
    SilentBlock,
    SilentPaymentIndexerBackend,
    TransactionResponse,
)
from spwallet.wallet.bip352 import compute_shared_secret_tweak
from spwallet.wallet.keys import SilentPaymentKeyDerivation


@pytest.fixture
def test_mnemonic() -> str:
    """Test mnemonic (BIP39 test vector)"""
    return (
        "abandon abandon abandon abandon abandon abandon "
        "abandon abandon abandon abandon abandon about"
    )


@pytest.fixture
def other_mnemonic() -> str:
    return "zoo zoo zoo zoo zoo zoo zoo zoo zoo zoo zoo glue"


@pytest.fixture
def key_derivation(test_mnemonic: str) -> SilentPaymentKeyDerivation:
    return SilentPaymentKeyDerivation.from_mnemonic(test_mnemonic)


def sender_outputs(
    scan_pubkey: bytes, spend_pubkey: bytes, count: int = 1
) -> tuple[str, list[str]]:
    """
    Build what a sender would create when paying `count` outputs to a recipient.

    The per-transaction tweak is taken as a fresh point A = a*G, so the
    sender side shared secret a*B_scan equals the receiver's b_scan*A.

    Returns:
        Tuple of (scan tweak hex, x-only output keys hex)
    """
    a = PrivateKey()
    tweak_point = a.public_key.format(compressed=True)
    ecdh = PublicKey(scan_pubkey).multiply(a.secret).format(compressed=True)

    outputs = []
    for k in range(count):
        t_k = compute_shared_secret_tweak(ecdh, k)
        outputs.append(PublicKey(spend_pubkey).add(t_k).format(compressed=True)[1:].hex())
    return tweak_point.hex(), outputs


def random_xonly() -> str:
    return PrivateKey().public_key.format(compressed=True)[1:].hex()


@pytest.fixture
def make_payment(
    key_derivation: SilentPaymentKeyDerivation,
) -> Callable[..., IndexerTransactionData]:
    """Factory for indexer transactions paying the test wallet."""

    def _make(
        txid: str,
        values: list[int],
        block_height: int | None = None,
        extra_outputs: int = 0,
    ) -> IndexerTransactionData:
        tweak, keys = sender_outputs(
            key_derivation.get_scan_public_key(),
            key_derivation.get_spend_public_key(),
            count=len(values),
        )
        outputs = [
            IndexerOutputData(vout=i, pub_key=key, value=value)
            for i, (key, value) in enumerate(zip(keys, values))
        ]
        outputs += [
            IndexerOutputData(vout=len(values) + i, pub_key=random_xonly(), value=1_000)
            for i in range(extra_outputs)
        ]
        return IndexerTransactionData(
            id=txid,
            block_height=block_height,
            block_hash="00" * 32 if block_height is not None else None,
            scan_tweak=tweak,
            outputs=outputs,
        )

    return _make


class FakeIndexer(SilentPaymentIndexerBackend):
    """
    In-memory indexer.

    `blocks` maps height to transactions; `failures` maps height to a list of
    exceptions raised (in order) before the height answers normally.
    """

    def __init__(
        self,
        tip: int,
        blocks: dict[int, list[IndexerTransactionData]] | None = None,
        failures: dict[int, list[Exception]] | None = None,
    ):
        self.tip = tip
        self.blocks = blocks or {}
        self.failures = failures or {}
        self.requested: list[int] = []
        self.closed = False

    async def get_health(self) -> HealthResponse:
        return HealthResponse(status="ok")

    async def get_silent_block_by_height(self, height: int) -> SilentBlock:
        return SilentBlock(block_height=height, block_hash=f"{height:064x}")

    async def get_silent_block_by_hash(self, block_hash: str) -> SilentBlock:
        return SilentBlock(block_height=int(block_hash, 16), block_hash=block_hash)

    async def get_transactions_by_height(self, height: int) -> TransactionResponse:
        self.requested.append(height)
        pending = self.failures.get(height)
        if pending:
            raise pending.pop(0)
        return TransactionResponse(transactions=self.blocks.get(height, []))

    async def get_transactions_by_hash(self, block_hash: str) -> TransactionResponse:
        return await self.get_transactions_by_height(int(block_hash, 16))

    async def get_latest_block_height(self) -> int:
        if self.tip < 0:
            raise IndexerError("tip unavailable")
        return self.tip

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_indexer() -> type[FakeIndexer]:
    return FakeIndexer


@pytest.fixture
def pay_to() -> Callable[..., tuple[str, list[str]]]:
    """Sender side output construction, see sender_outputs()."""
    return sender_outputs
