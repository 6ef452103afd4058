"""
Silent Payments (BIP-352) constants.

Derivation paths follow BIP-352: m/352'/coin_type'/account'/branch'/index
- branch 0': spend key
- branch 1': scan key
The coin type is fixed at 0 for every network so that a seed always maps to
the same key material; only the address HRP changes between networks.
"""

from __future__ import annotations

SPEND_KEY_PATH = "m/352'/0'/0'/0'/0"
SCAN_KEY_PATH = "m/352'/0'/0'/1'/0"

# Silent Payment address version (bech32m data version symbol)
SILENT_PAYMENT_VERSION = 0

# Human readable parts for bech32m Silent Payment addresses
HRP_MAINNET = "sp"
HRP_TESTNET = "tsp"

# BIP-352 tagged hash tags
TAG_SHARED_SECRET = b"BIP0352/SharedSecret"

# Byte lengths
SCAN_TWEAK_LENGTH = 33  # compressed public key
XONLY_PUBKEY_LENGTH = 32
TWEAK_LENGTH = 32

# BIP32 seeds must be between 128 and 512 bits
MIN_SEED_LENGTH = 16
MAX_SEED_LENGTH = 64

# Scanning defaults
DEFAULT_MAX_BLOCKS = 100
DEFAULT_REQUEST_TIMEOUT = 30.0  # seconds
DEFAULT_REQUEST_DELAY = 0.25  # seconds between successful height fetches
DEFAULT_RATE_LIMIT_BACKOFF = 2.0  # seconds, first pause after a 429
DEFAULT_MAX_BACKOFF = 30.0
DEFAULT_MAX_RATE_LIMIT_RETRIES = 5

DEFAULT_INDEXER_URL = "http://127.0.0.1:3000"
