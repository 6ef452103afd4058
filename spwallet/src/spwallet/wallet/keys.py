"""
Silent Payment scan/spend key derivation.

Keys are derived on first use and memoized. The derivation state is either
_Uninitialized or _Derived; accessors go through _derived() so there is a
single place where derivation happens.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from spwallet.constants import SCAN_KEY_PATH, SPEND_KEY_PATH
from spwallet.wallet.address import encode_silent_payment_address
from spwallet.wallet.bip32 import HDKey, InvalidSeedError, mnemonic_to_seed


@dataclass(frozen=True)
class KeyPair:
    private_key: bytes  # 32 bytes
    public_key: bytes  # 33-byte compressed


@dataclass(frozen=True)
class KeyMaterial:
    scan: KeyPair
    spend: KeyPair


@dataclass(frozen=True)
class _Uninitialized:
    pass


@dataclass
class _Derived:
    keys: KeyMaterial
    address: str | None = None


def derive_key_material(seed: bytes) -> KeyMaterial:
    """Derive scan and spend keypairs from a BIP32 seed."""
    try:
        root = HDKey.from_seed(seed)
        spend = root.derive(SPEND_KEY_PATH)
        scan = root.derive(SCAN_KEY_PATH)
    except InvalidSeedError:
        raise
    except ValueError as e:
        raise InvalidSeedError(f"Key derivation failed: {e}") from e

    return KeyMaterial(
        scan=KeyPair(scan.get_private_key_bytes(), scan.get_public_key_bytes()),
        spend=KeyPair(spend.get_private_key_bytes(), spend.get_public_key_bytes()),
    )


class SilentPaymentKeyDerivation:
    """
    Derives the wallet's scan and spend keys and its Silent Payment address.

    Paths:
    - spend: m/352'/0'/0'/0'/0
    - scan:  m/352'/0'/0'/1'/0
    """

    def __init__(self, seed: bytes, network: str = "mainnet"):
        self._seed = bytes(seed)
        self.network = network
        self._state: _Uninitialized | _Derived = _Uninitialized()

    @classmethod
    def from_mnemonic(cls, mnemonic: str, network: str = "mainnet") -> SilentPaymentKeyDerivation:
        return cls(mnemonic_to_seed(mnemonic), network=network)

    def _derived(self) -> _Derived:
        if isinstance(self._state, _Uninitialized):
            self._state = _Derived(keys=derive_key_material(self._seed))
            logger.debug("Derived Silent Payment scan and spend keys")
        return self._state

    @property
    def is_derived(self) -> bool:
        return isinstance(self._state, _Derived)

    @property
    def key_material(self) -> KeyMaterial:
        return self._derived().keys

    def get_scan_private_key(self) -> bytes:
        return self._derived().keys.scan.private_key

    def get_spend_private_key(self) -> bytes:
        return self._derived().keys.spend.private_key

    def get_scan_public_key(self) -> bytes:
        return self._derived().keys.scan.public_key

    def get_spend_public_key(self) -> bytes:
        return self._derived().keys.spend.public_key

    def get_silent_payment_address(self) -> str:
        state = self._derived()
        if state.address is None:
            state.address = encode_silent_payment_address(
                state.keys.scan.public_key, state.keys.spend.public_key, self.network
            )
        return state.address

    def clear(self) -> None:
        """Drop cached keys and address; the next accessor re-derives them."""
        self._state = _Uninitialized()
