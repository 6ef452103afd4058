"""
Wallet data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, field_validator

from spwallet.constants import TWEAK_LENGTH


@dataclass
class IndexerOutput:
    """A candidate taproot output as reported by the indexer"""

    vout: int
    pub_key: str  # 32-byte x-only public key, hex
    value: int
    is_spent: bool = False


@dataclass
class IndexerTransaction:
    """One transaction's scanning material, ready for the processor"""

    block_height: int
    block_hash: str
    txid: str
    scan_tweak: str  # 33-byte compressed public key, hex
    outputs: list[IndexerOutput] = field(default_factory=list)


@dataclass
class SilentPaymentUTXO:
    """An output proven to belong to the wallet"""

    txid: str
    vout: int
    value: int
    pub_key: str
    block_height: int
    block_hash: str
    tweak: bytes  # t_k, needed to derive the spending key
    is_spent: bool = False

    @property
    def outpoint(self) -> tuple[str, int]:
        return (self.txid, self.vout)

    def to_record(self) -> SilentPaymentUTXORecord:
        return SilentPaymentUTXORecord(
            txid=self.txid,
            vout=self.vout,
            value=self.value,
            pub_key=self.pub_key,
            block_height=self.block_height,
            block_hash=self.block_hash,
            is_spent=self.is_spent,
            tweak_hex=self.tweak.hex(),
        )


class SilentPaymentUTXORecord(BaseModel):
    """
    Persisted form of a SilentPaymentUTXO.

    Serialized with camelCase keys:
    {txid, vout, value, pubKey, blockHeight, blockHash, isSpent, tweakHex}
    """

    model_config = ConfigDict(populate_by_name=True)

    txid: str
    vout: int = Field(ge=0)
    value: int = Field(ge=0)
    pub_key: str = Field(alias="pubKey")
    block_height: int = Field(alias="blockHeight", ge=0)
    block_hash: str = Field(default="", alias="blockHash")
    is_spent: bool = Field(default=False, alias="isSpent")
    tweak_hex: str = Field(alias="tweakHex")

    @field_validator("tweak_hex")
    @classmethod
    def validate_tweak_hex(cls, v: str) -> str:
        try:
            tweak = bytes.fromhex(v)
        except ValueError as e:
            raise ValueError("tweakHex must be hex encoded") from e
        if len(tweak) != TWEAK_LENGTH:
            raise ValueError(f"tweakHex must encode {TWEAK_LENGTH} bytes, got {len(tweak)}")
        return v.lower()

    def to_utxo(self) -> SilentPaymentUTXO:
        return SilentPaymentUTXO(
            txid=self.txid,
            vout=self.vout,
            value=self.value,
            pub_key=self.pub_key,
            block_height=self.block_height,
            block_hash=self.block_hash,
            tweak=bytes.fromhex(self.tweak_hex),
            is_spent=self.is_spent,
        )

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)
