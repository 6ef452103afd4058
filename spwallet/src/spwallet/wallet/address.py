"""
Silent Payment address encoding (BIP-352, bech32m).
"""

from __future__ import annotations

from spwallet.constants import HRP_MAINNET, HRP_TESTNET, SILENT_PAYMENT_VERSION

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32M_CONST = 0x2BC830A3

# BIP-352 lifts the 90 character bech32 limit
MAX_ADDRESS_LENGTH = 1023


def bech32_polymod(values: list[int]) -> int:
    """Bech32 checksum polymod"""
    gen = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    chk = 1
    for v in values:
        b = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ v
        for i in range(5):
            chk ^= gen[i] if ((b >> i) & 1) else 0
    return chk


def bech32_hrp_expand(hrp: str) -> list[int]:
    """Expand HRP for bech32"""
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def bech32m_create_checksum(hrp: str, data: list[int]) -> list[int]:
    """Create bech32m checksum"""
    values = bech32_hrp_expand(hrp) + data
    polymod = bech32_polymod(values + [0, 0, 0, 0, 0, 0]) ^ BECH32M_CONST
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def bech32m_verify_checksum(hrp: str, data: list[int]) -> bool:
    return bech32_polymod(bech32_hrp_expand(hrp) + data) == BECH32M_CONST


def bech32m_encode(hrp: str, data: list[int]) -> str:
    """Encode bech32m string"""
    combined = data + bech32m_create_checksum(hrp, data)
    return hrp + "1" + "".join([CHARSET[d] for d in combined])


def bech32m_decode(address: str) -> tuple[str, list[int]]:
    """
    Decode a bech32m string into (hrp, data) without the checksum.

    Raises:
        ValueError: On mixed case, bad characters, or checksum mismatch
    """
    if address.lower() != address and address.upper() != address:
        raise ValueError("Mixed case address")
    if len(address) > MAX_ADDRESS_LENGTH:
        raise ValueError("Address too long")

    address = address.lower()
    pos = address.rfind("1")
    if pos < 1 or pos + 7 > len(address):
        raise ValueError("Invalid separator position")

    hrp = address[:pos]
    try:
        data = [CHARSET.index(c) for c in address[pos + 1 :]]
    except ValueError as e:
        raise ValueError("Invalid bech32m character") from e

    if not bech32m_verify_checksum(hrp, data):
        raise ValueError("Invalid bech32m checksum")

    return hrp, data[:-6]


def convertbits(data: bytes | list[int], frombits: int, tobits: int, pad: bool = True) -> list[int]:
    """Convert between bit groups"""
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1

    for value in data:
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)

    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        raise ValueError("Invalid bits")

    return ret


def hrp_for_network(network: str) -> str:
    return HRP_MAINNET if network == "mainnet" else HRP_TESTNET


def encode_silent_payment_address(
    scan_pubkey: bytes, spend_pubkey: bytes, network: str = "mainnet"
) -> str:
    """
    Encode the scan and spend public keys as a Silent Payment address.

    Payload is ser_P(B_scan) || ser_P(B_spend), version 0, bech32m.
    """
    if len(scan_pubkey) != 33 or len(spend_pubkey) != 33:
        raise ValueError("Silent Payment keys must be 33-byte compressed public keys")

    data = convertbits(scan_pubkey + spend_pubkey, 8, 5)
    return bech32m_encode(hrp_for_network(network), [SILENT_PAYMENT_VERSION] + data)


def decode_silent_payment_address(address: str) -> tuple[str, bytes, bytes]:
    """
    Decode a Silent Payment address.

    Returns:
        Tuple of (hrp, scan public key, spend public key)
    """
    hrp, data = bech32m_decode(address)
    if hrp not in (HRP_MAINNET, HRP_TESTNET):
        raise ValueError(f"Not a Silent Payment address HRP: {hrp}")
    if not data or data[0] != SILENT_PAYMENT_VERSION:
        raise ValueError("Unsupported Silent Payment address version")

    payload = bytes(convertbits(data[1:], 5, 8, pad=False))
    if len(payload) != 66:
        raise ValueError(f"Invalid Silent Payment payload length: {len(payload)}")

    return hrp, payload[:33], payload[33:]
