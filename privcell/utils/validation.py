"""
Input Validation - sanitization of values entering the cell and ledger.

Validators return ``(is_valid, error_message)`` and never raise; callers
decide which error type a failed check maps to.
"""

from typing import Tuple, Any, List, Optional

from privcell.crypto import FIELD_PRIME

# =============================================================================
# Constants
# =============================================================================

MAX_ADDRESS_SIZE = 20
MAX_HASH_SIZE = 32
MAX_NOTE_FIELDS = 64

# Storage slot 0 is reserved as "unset"
MIN_STORAGE_SLOT = 1


# =============================================================================
# Validation Functions
# =============================================================================


def validate_bytes(
    data: Any,
    name: str,
    expected_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate bytes input.

    Args:
        data: Data to validate
        name: Field name for error messages
        expected_length: Exact expected length
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (bytes, bytearray)):
        return False, f"{name} must be bytes, got {type(data).__name__}"

    if expected_length is not None and len(data) != expected_length:
        return False, f"{name} must be {expected_length} bytes, got {len(data)}"

    if max_length is not None and len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_integer(
    value: Any,
    name: str,
    min_val: int,
    max_val: int,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Booleans are rejected even though they are ints.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_field_element(value: Any, name: str = "field_element") -> Tuple[bool, str]:
    """Validate a field element (< FIELD_PRIME)."""
    return validate_integer(value, name, 0, FIELD_PRIME - 1)


def validate_storage_slot(slot: Any) -> Tuple[bool, str]:
    """Validate a storage slot: a non-zero field element."""
    return validate_integer(slot, "storage_slot", MIN_STORAGE_SLOT, FIELD_PRIME - 1)


def validate_owner(owner: Any) -> Tuple[bool, str]:
    """Validate an owner identity (a 20-byte address read as an integer)."""
    return validate_integer(owner, "owner", 0, 2 ** (8 * MAX_ADDRESS_SIZE) - 1)


def validate_note_fields(fields: Any) -> Tuple[bool, str]:
    """Validate serialized note content."""
    if not isinstance(fields, (list, tuple)):
        return False, f"note fields must be list/tuple, got {type(fields).__name__}"

    if len(fields) > MAX_NOTE_FIELDS:
        return False, f"note fields exceed max length {MAX_NOTE_FIELDS}, got {len(fields)}"

    for i, value in enumerate(fields):
        valid, err = validate_field_element(value, f"note field {i}")
        if not valid:
            return False, err

    return True, ""


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "validate_bytes",
    "validate_integer",
    "validate_field_element",
    "validate_storage_slot",
    "validate_owner",
    "validate_note_fields",
    "MAX_ADDRESS_SIZE",
    "MAX_HASH_SIZE",
    "MAX_NOTE_FIELDS",
    "MIN_STORAGE_SLOT",
]
