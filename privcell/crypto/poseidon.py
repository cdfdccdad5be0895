"""
Poseidon Hash Function for privcell.

This module provides ZK-friendly hashing using the Poseidon hash function,
which is optimized for arithmetic circuits (low constraint count in SNARKs).
Every value a proof of a cell operation has to recompute (note commitments,
note nullifiers, initialization nullifiers) is a Poseidon hash.

References:
- Poseidon paper: https://eprint.iacr.org/2019/458
- circomlib implementation: https://github.com/iden3/circomlib

Parameters (BN254 / alt_bn128):
- Field: 21888242871839275222246405745257275088548364400416034343698204186575808495617
- t=3 (2 inputs + 1 capacity)
- rounds_f=8 (full rounds)
- rounds_p=57 (partial rounds)
- alpha=5 (S-box exponent)

Longer inputs are absorbed by chaining the 2-to-1 hash:
    h = P(domain, x0); h = P(h, x1); ...
"""

import hashlib
from typing import List, Tuple, Optional

# BN254 scalar field prime
FIELD_PRIME = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# Domain separators
DOMAIN_NOTE_CONTENT = 0x11
DOMAIN_NOTE_HASH = 0x12
DOMAIN_UNIQUE_NOTE_HASH = 0x13
DOMAIN_NOTE_NULLIFIER = 0x14
DOMAIN_INITIALIZATION_NULLIFIER = 0x15


# =============================================================================
# Round Constants (pre-computed for t=3, rounds_f=8, rounds_p=57)
# =============================================================================


def _generate_round_constants(t: int, rounds_f: int, rounds_p: int, seed: bytes = b"poseidon") -> List[int]:
    """
    Generate Poseidon round constants using a deterministic PRNG.

    SHAKE256 output is cut into 32-byte chunks and reduced modulo the field.
    """
    total_rounds = rounds_f + rounds_p
    digest = hashlib.shake_256(seed).digest(total_rounds * t * 32)

    constants = []
    for i in range(total_rounds * t):
        chunk = digest[i * 32:(i + 1) * 32]
        constants.append(int.from_bytes(chunk, byteorder="big") % FIELD_PRIME)

    return constants


def _generate_mds_matrix(t: int) -> List[List[int]]:
    """
    Generate MDS (Maximum Distance Separable) matrix for Poseidon.

    Uses a Cauchy matrix construction which is guaranteed to be MDS.
    """
    x = [(i + 1) % FIELD_PRIME for i in range(t)]
    y = [(t + i + 1) % FIELD_PRIME for i in range(t)]

    matrix = []
    for i in range(t):
        row = []
        for j in range(t):
            # M[i][j] = 1 / (x[i] + y[j]) mod p
            denom = (x[i] + y[j]) % FIELD_PRIME
            row.append(pow(denom, FIELD_PRIME - 2, FIELD_PRIME))
        matrix.append(row)

    return matrix


_ROUND_CONSTANTS_T3: Optional[List[int]] = None
_MDS_MATRIX_T3: Optional[List[List[int]]] = None


def _get_constants_t3() -> Tuple[List[int], List[List[int]]]:
    """Get or compute constants for t=3."""
    global _ROUND_CONSTANTS_T3, _MDS_MATRIX_T3

    if _ROUND_CONSTANTS_T3 is None:
        _ROUND_CONSTANTS_T3 = _generate_round_constants(t=3, rounds_f=8, rounds_p=57)
    if _MDS_MATRIX_T3 is None:
        _MDS_MATRIX_T3 = _generate_mds_matrix(t=3)

    return _ROUND_CONSTANTS_T3, _MDS_MATRIX_T3


# =============================================================================
# Poseidon Core Implementation
# =============================================================================

def _sbox(x: int) -> int:
    """Apply S-box: x^5 mod p."""
    return pow(x, 5, FIELD_PRIME)


def _mds_multiply(state: List[int], matrix: List[List[int]]) -> List[int]:
    t = len(state)
    result = []
    for i in range(t):
        acc = 0
        for j in range(t):
            acc = (acc + matrix[i][j] * state[j]) % FIELD_PRIME
        result.append(acc)
    return result


def _add_round_constants(state: List[int], constants: List[int], round_idx: int) -> List[int]:
    t = len(state)
    offset = round_idx * t
    return [(state[i] + constants[offset + i]) % FIELD_PRIME for i in range(t)]


def _full_round(state: List[int], constants: List[int], matrix: List[List[int]], round_idx: int) -> List[int]:
    """Execute a full round (S-box on all elements)."""
    state = _add_round_constants(state, constants, round_idx)
    state = [_sbox(x) for x in state]
    return _mds_multiply(state, matrix)


def _partial_round(state: List[int], constants: List[int], matrix: List[List[int]], round_idx: int) -> List[int]:
    """Execute a partial round (S-box on first element only)."""
    state = _add_round_constants(state, constants, round_idx)
    state[0] = _sbox(state[0])
    return _mds_multiply(state, matrix)


def poseidon_hash(inputs: List[int], domain_sep: int = 0) -> int:
    """
    Compute Poseidon hash of inputs.

    Args:
        inputs: List of field elements (integers < FIELD_PRIME)
        domain_sep: Optional domain separator placed in the capacity element

    Returns:
        Hash as a field element (integer)

    Raises:
        ValueError: If inputs are out of range or wrong count
    """
    if len(inputs) > 2:
        raise ValueError(f"This implementation supports max 2 inputs, got {len(inputs)}")

    for i, val in enumerate(inputs):
        if not (0 <= val < FIELD_PRIME):
            raise ValueError(f"Input {i} out of field range: {val}")

    padded = list(inputs) + [0] * (2 - len(inputs))

    # State layout: [capacity, input1, input2]
    state = [domain_sep % FIELD_PRIME, padded[0], padded[1]]

    constants, matrix = _get_constants_t3()

    rounds_f = 8
    rounds_p = 57
    half_f = rounds_f // 2

    round_idx = 0

    for _ in range(half_f):
        state = _full_round(state, constants, matrix, round_idx)
        round_idx += 1

    for _ in range(rounds_p):
        state = _partial_round(state, constants, matrix, round_idx)
        round_idx += 1

    for _ in range(half_f):
        state = _full_round(state, constants, matrix, round_idx)
        round_idx += 1

    return state[1]


# =============================================================================
# Convenience Functions
# =============================================================================

def poseidon2(a: int, b: int, domain_sep: int = 0) -> int:
    """Hash two field elements."""
    return poseidon_hash([a, b], domain_sep)


def poseidon1(a: int, domain_sep: int = 0) -> int:
    """Hash one field element."""
    return poseidon_hash([a], domain_sep)


def poseidon_chain(domain: int, *elements: int) -> int:
    """
    Hash a domain tag followed by any number of field elements.

    chain(d) = P(d)
    chain(d, x0, x1, ...) = P(...P(P(d, x0), x1)...)
    """
    if not elements:
        return poseidon1(domain)

    h = poseidon2(domain, elements[0])
    for element in elements[1:]:
        h = poseidon2(h, element)
    return h


def int_to_bytes32(val: int) -> bytes:
    """Convert field element to 32 bytes."""
    return val.to_bytes(32, byteorder="big")


def encode_fields(fields: List[int]) -> bytes:
    """Pack field elements as consecutive 32-byte big-endian words."""
    return b"".join(int_to_bytes32(f) for f in fields)


def decode_fields(data: bytes) -> List[int]:
    """Inverse of encode_fields."""
    if len(data) % 32 != 0:
        raise ValueError(f"Field data must be a multiple of 32 bytes, got {len(data)}")
    return [
        int.from_bytes(data[i:i + 32], byteorder="big")
        for i in range(0, len(data), 32)
    ]


# =============================================================================
# Note Hash Functions
# =============================================================================

def hash_note_content(fields: List[int]) -> int:
    """
    Hash the serialized content of a note.

    content_hash = Poseidon(domain_sep, f0, f1, ...)
    """
    return poseidon_chain(DOMAIN_NOTE_CONTENT, *fields)


def hash_note(storage_slot: int, content_hash: int) -> int:
    """
    Bind a note's content to the storage slot it lives in.

    note_hash = Poseidon(domain_sep, storage_slot, content_hash)
    """
    return poseidon_chain(DOMAIN_NOTE_HASH, storage_slot, content_hash)


def hash_unique_note(nonce: int, note_hash: int) -> int:
    """
    Compute the commitment actually inserted into the ledger.

    unique_note_hash = Poseidon(domain_sep, nonce, note_hash)

    The nonce is assigned by the ledger at commitment time, so two notes with
    identical content and slot still get distinct commitments.
    """
    return poseidon_chain(DOMAIN_UNIQUE_NOTE_HASH, nonce, note_hash)


def hash_note_nullifier(unique_note_hash: int, secret_low: int, secret_high: int) -> int:
    """
    Compute the nullifier that retires a note.

    nullifier = Poseidon(domain_sep, unique_note_hash, secret.low, secret.high)
    """
    return poseidon_chain(DOMAIN_NOTE_NULLIFIER, unique_note_hash, secret_low, secret_high)


def hash_initialization_nullifier(
    storage_slot: int,
    secret_low: Optional[int] = None,
    secret_high: Optional[int] = None,
) -> int:
    """
    Compute the nullifier marking a storage slot as initialized.

    With an owner secret:    Poseidon(domain_sep, slot, secret.low, secret.high)
    Without an owner secret: Poseidon(domain_sep, slot)
    """
    if secret_low is None or secret_high is None:
        return poseidon_chain(DOMAIN_INITIALIZATION_NULLIFIER, storage_slot)
    return poseidon_chain(DOMAIN_INITIALIZATION_NULLIFIER, storage_slot, secret_low, secret_high)
