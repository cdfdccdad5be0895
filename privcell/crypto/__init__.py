"""
Cryptographic primitives for privcell.

This module provides:
- Hashing functions (SHA-256, Keccak-256, Poseidon)
- Owner key generation (secp256k1)
- ZK-friendly primitives (Poseidon hash for note commitments and nullifiers)

Design Notes:
-------------
Owner identities are secp256k1 keypairs; the identity itself is the
Ethereum-style address of the public key, and the 32-byte private key is the
secret that participates in note and initialization nullifiers.

Poseidon is used for everything a circuit would have to recompute:
- Note content hashes
- Slotted note hashes and unique note hashes (commitments)
- Note nullifiers
- Initialization nullifiers

SHA-256/Keccak are retained for:
- Address derivation (Ethereum compatibility)
- Symmetric key derivation for note broadcast
- Non-ZK content addressing (execution IDs)
"""

import hashlib
import secrets
from dataclasses import dataclass

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash.

    Used for: Merkle tree nodes, note encryption keys, execution IDs.
    """
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: owner address derivation.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An owner keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes  # 32 bytes
    public_key: bytes   # 64 bytes (uncompressed, no 0x04 prefix)

    @property
    def address(self) -> str:
        """
        Derive address from public key (Ethereum-style).

        Address = last 20 bytes of keccak256(public_key), hex-encoded with 0x prefix.
        """
        return "0x" + keccak256(self.public_key)[-20:].hex()

    @property
    def owner_id(self) -> int:
        """Address as an integer, the form used inside notes and hashes."""
        return int.from_bytes(keccak256(self.public_key)[-20:], byteorder="big")

    @property
    def private_key_hex(self) -> str:
        return self.private_key.hex()

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()


def generate_keypair() -> KeyPair:
    """
    Generate a new random keypair.

    Uses cryptographically secure random number generator.
    """
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    # Scalar multiplication on the curve gives an (x, y) tuple of integers
    public_key_point = secp256k1.privtopub(private_key)
    x_bytes = public_key_point[0].to_bytes(32, byteorder="big")
    y_bytes = public_key_point[1].to_bytes(32, byteorder="big")
    return x_bytes + y_bytes


def keypair_from_private_key(private_key: bytes) -> KeyPair:
    """Rebuild a KeyPair from a stored private key."""
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


# =============================================================================
# Utility Functions
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def field_to_hex(value: int) -> str:
    """Render a field element as a short 0x-prefixed hex string for logs."""
    return bytes_to_hex(value.to_bytes(32, byteorder="big"))[:12] + "..."


# =============================================================================
# Poseidon Hash (ZK-friendly)
# =============================================================================

# Note commitments and nullifiers are computed with Poseidon
from privcell.crypto.poseidon import (
    # Core hash functions
    poseidon_hash,
    poseidon1,
    poseidon2,
    poseidon_chain,
    # Field element conversion
    int_to_bytes32,
    encode_fields,
    decode_fields,
    FIELD_PRIME,
    # Note hash functions
    hash_note_content,
    hash_note,
    hash_unique_note,
    hash_note_nullifier,
    hash_initialization_nullifier,
    # Domain separators
    DOMAIN_NOTE_CONTENT,
    DOMAIN_NOTE_HASH,
    DOMAIN_UNIQUE_NOTE_HASH,
    DOMAIN_NOTE_NULLIFIER,
    DOMAIN_INITIALIZATION_NULLIFIER,
)
