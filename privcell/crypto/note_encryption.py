"""
Note broadcast encryption.

When a note is committed with ``broadcast=True`` its serialized content is
encrypted for the note's owner and attached to the execution as a log, so the
owner can later discover and decrypt it.

Scheme:
    key        = SHA256("privcell/note-key" || secret.high || secret.low)
    ciphertext = AES-256-GCM(key, nonce=12 random bytes, aad=storage_slot)
    payload    = nonce(12) || tag(16) || ciphertext

The storage slot is authenticated but not encrypted, so a log cannot be
replayed against a different slot.
"""

import secrets
from typing import List

from Crypto.Cipher import AES

from privcell.crypto import sha256
from privcell.crypto.poseidon import int_to_bytes32, encode_fields, decode_fields

KEY_DERIVATION_TAG = b"privcell/note-key"
GCM_NONCE_SIZE = 12
GCM_TAG_SIZE = 16


def derive_note_key(secret_low: int, secret_high: int) -> bytes:
    """Derive the 32-byte symmetric key for an owner's note logs."""
    return sha256(
        KEY_DERIVATION_TAG
        + secret_high.to_bytes(16, byteorder="big")
        + secret_low.to_bytes(16, byteorder="big")
    )


def encrypt_note(fields: List[int], storage_slot: int, key: bytes) -> bytes:
    """
    Encrypt serialized note content.

    Args:
        fields: Serialized note content
        storage_slot: Slot the note is committed to (authenticated)
        key: 32-byte key from derive_note_key

    Returns:
        nonce || tag || ciphertext
    """
    if len(key) != 32:
        raise ValueError("Note key must be 32 bytes")

    nonce = secrets.token_bytes(GCM_NONCE_SIZE)
    cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
    cipher.update(int_to_bytes32(storage_slot))
    ciphertext, tag = cipher.encrypt_and_digest(encode_fields(fields))
    return nonce + tag + ciphertext


def decrypt_note(payload: bytes, storage_slot: int, key: bytes) -> List[int]:
    """
    Decrypt a note log produced by encrypt_note.

    Raises:
        ValueError: If the payload is malformed, the key is wrong, or the
            log was produced for a different storage slot.
    """
    if len(payload) < GCM_NONCE_SIZE + GCM_TAG_SIZE:
        raise ValueError("Payload too short")

    nonce = payload[:GCM_NONCE_SIZE]
    tag = payload[GCM_NONCE_SIZE:GCM_NONCE_SIZE + GCM_TAG_SIZE]
    ciphertext = payload[GCM_NONCE_SIZE + GCM_TAG_SIZE:]

    cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
    cipher.update(int_to_bytes32(storage_slot))
    # Raises ValueError on authentication failure
    plaintext = cipher.decrypt_and_verify(ciphertext, tag)
    return decode_fields(plaintext)
