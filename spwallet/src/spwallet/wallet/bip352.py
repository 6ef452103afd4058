"""
BIP-352 receiving primitives.

Thin orchestration over coincurve (libsecp256k1): all point arithmetic is
done by the library, this module only chains the calls the way BIP-352
prescribes for a receiver who already has the per-transaction tweak
(input_hash * A) from an indexer.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

from coincurve import PublicKey

from spwallet.constants import (
    SCAN_TWEAK_LENGTH,
    TAG_SHARED_SECRET,
    XONLY_PUBKEY_LENGTH,
)


def tagged_hash(tag: bytes, data: bytes) -> bytes:
    """BIP-340 tagged hash: SHA256(SHA256(tag) || SHA256(tag) || data)"""
    tag_hash = hashlib.sha256(tag).digest()
    return hashlib.sha256(tag_hash + tag_hash + data).digest()


def compute_ecdh_shared_secret(scan_privkey: bytes, tweak_point: bytes) -> bytes:
    """
    Compute the receiver side shared secret b_scan * (input_hash * A).

    Args:
        scan_privkey: 32-byte scan private key
        tweak_point: 33-byte compressed tweak published by the indexer

    Returns:
        33-byte compressed shared secret point
    """
    if len(tweak_point) != SCAN_TWEAK_LENGTH:
        raise ValueError(f"Tweak point must be {SCAN_TWEAK_LENGTH} bytes, got {len(tweak_point)}")

    return PublicKey(tweak_point).multiply(scan_privkey).format(compressed=True)


def compute_shared_secret_tweak(ecdh_shared_secret: bytes, k: int) -> bytes:
    """t_k = hash_BIP0352/SharedSecret(ser_P(ecdh_shared_secret) || ser_32(k))"""
    return tagged_hash(TAG_SHARED_SECRET, ecdh_shared_secret + k.to_bytes(4, "big"))


def derive_output_pubkey(spend_pubkey: bytes, tweak: bytes) -> bytes:
    """P_k = B_spend + t_k * G, returned as a 32-byte x-only key."""
    return PublicKey(spend_pubkey).add(tweak).format(compressed=True)[1:]


def scan_outputs(
    scan_privkey: bytes,
    spend_pubkey: bytes,
    tweak_point: bytes,
    output_pubkeys: Iterable[bytes],
) -> dict[str, bytes]:
    """
    Find the outputs of one transaction paying to (B_scan, B_spend).

    Derives P_0, P_1, ... until one of them is not among the outputs, which
    is when BIP-352 says a receiver can stop.

    Args:
        scan_privkey: 32-byte scan private key
        spend_pubkey: 33-byte spend public key
        tweak_point: 33-byte per-transaction tweak (input_hash * A)
        output_pubkeys: x-only (32-byte) taproot output keys of the transaction

    Returns:
        Mapping of matched x-only output key (hex) to its 32-byte tweak t_k
    """
    candidates: set[bytes] = set()
    for pubkey in output_pubkeys:
        if len(pubkey) != XONLY_PUBKEY_LENGTH:
            raise ValueError(f"Output key must be {XONLY_PUBKEY_LENGTH} bytes, got {len(pubkey)}")
        candidates.add(pubkey)

    matches: dict[str, bytes] = {}
    if not candidates:
        return matches

    ecdh_shared_secret = compute_ecdh_shared_secret(scan_privkey, tweak_point)

    k = 0
    while len(matches) < len(candidates):
        tweak = compute_shared_secret_tweak(ecdh_shared_secret, k)
        output_key = derive_output_pubkey(spend_pubkey, tweak)
        if output_key not in candidates:
            break
        matches[output_key.hex()] = tweak
        k += 1

    return matches
