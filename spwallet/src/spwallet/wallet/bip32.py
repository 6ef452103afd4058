"""
BIP32 HD key derivation for Silent Payment wallets.
Only private derivation is needed: the scan and spend keys are leaves of
the BIP-352 paths and both private keys are kept by the wallet.
"""

from __future__ import annotations

import hashlib
import hmac
import unicodedata

from coincurve import PrivateKey, PublicKey

from spwallet.constants import MAX_SEED_LENGTH, MIN_SEED_LENGTH

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

HARDENED_OFFSET = 0x80000000

VALID_MNEMONIC_WORD_COUNTS = (12, 15, 18, 21, 24)


class InvalidSeedError(ValueError):
    """Raised when a seed or mnemonic cannot produce wallet keys."""


class HDKey:
    """
    Hierarchical Deterministic Key for Bitcoin.
    Implements BIP32 private derivation.
    """

    def __init__(self, private_key: PrivateKey, chain_code: bytes, depth: int = 0):
        self._private_key = private_key
        self._public_key = private_key.public_key
        self.chain_code = chain_code
        self.depth = depth

    @property
    def private_key(self) -> PrivateKey:
        """Return the coincurve PrivateKey instance."""
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        """Return the coincurve PublicKey instance."""
        return self._public_key

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from seed"""
        if not MIN_SEED_LENGTH <= len(seed) <= MAX_SEED_LENGTH:
            raise InvalidSeedError(
                f"Seed must be {MIN_SEED_LENGTH}-{MAX_SEED_LENGTH} bytes, got {len(seed)}"
            )

        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_bytes = hmac_result[:32]
        chain_code = hmac_result[32:]

        key_int = int.from_bytes(key_bytes, "big")
        if key_int == 0 or key_int >= SECP256K1_N:
            raise InvalidSeedError("Seed produces an invalid master key")

        return cls(PrivateKey(key_bytes), chain_code, depth=0)

    def derive(self, path: str) -> HDKey:
        """
        Derive child key from path notation (e.g., "m/352'/0'/0'/1'/0")
        ' indicates hardened derivation
        """
        if not path.startswith("m"):
            raise ValueError("Path must start with 'm'")

        parts = path.split("/")[1:]
        key = self

        for part in parts:
            if not part:
                continue

            hardened = part.endswith("'") or part.endswith("h")
            index = int(part.rstrip("'h"))

            if hardened:
                index += HARDENED_OFFSET

            key = key._derive_child(index)

        return key

    def _derive_child(self, index: int) -> HDKey:
        """Derive a child key at the given index"""
        if index >= HARDENED_OFFSET:
            data = b"\x00" + self._private_key.secret + index.to_bytes(4, "big")
        else:
            data = self._public_key.format(compressed=True) + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        offset_int = int.from_bytes(hmac_result[:32], "big")
        child_chain = hmac_result[32:]

        if offset_int >= SECP256K1_N:
            raise ValueError(f"Invalid child key at index {index}")

        parent_key_int = int.from_bytes(self._private_key.secret, "big")
        child_key_int = (parent_key_int + offset_int) % SECP256K1_N

        if child_key_int == 0:
            raise ValueError("Invalid child key")

        child_private_key = PrivateKey(child_key_int.to_bytes(32, "big"))
        return HDKey(child_private_key, child_chain, depth=self.depth + 1)

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        return self._private_key.secret

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        return self._public_key.format(compressed=compressed)


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """
    Convert BIP39 mnemonic to seed.

    Silent Payment wallets never use a passphrase, the empty default keeps
    derivation identical across wallets restored from the same words.
    Checksum validation against the wordlist is not performed.
    """
    words = mnemonic.split()
    if len(words) not in VALID_MNEMONIC_WORD_COUNTS:
        raise InvalidSeedError(f"Mnemonic must have 12-24 words, got {len(words)}")

    normalized = unicodedata.normalize("NFKD", " ".join(words))
    salt = unicodedata.normalize("NFKD", "mnemonic" + passphrase)

    return hashlib.pbkdf2_hmac(
        "sha512", normalized.encode("utf-8"), salt.encode("utf-8"), 2048, dklen=64
    )
