"""
Unit tests for input validation helpers.
"""

import pytest

from privcell.crypto import FIELD_PRIME
from privcell.utils.validation import (
    MAX_NOTE_FIELDS,
    validate_bytes,
    validate_field_element,
    validate_integer,
    validate_note_fields,
    validate_owner,
    validate_storage_slot,
)


class TestValidation:
    """Tests for the (is_valid, error) validators."""

    def test_bytes(self):
        assert validate_bytes(b"abc", "x")[0]
        assert not validate_bytes("abc", "x")[0]
        assert not validate_bytes(b"abc", "x", expected_length=4)[0]
        assert not validate_bytes(b"abc", "x", max_length=2)[0]

    def test_integer_rejects_bool(self):
        valid, err = validate_integer(True, "flag", 0, 1)
        assert not valid
        assert "bool" in err

    def test_field_element_bounds(self):
        assert validate_field_element(0)[0]
        assert validate_field_element(FIELD_PRIME - 1)[0]
        assert not validate_field_element(FIELD_PRIME)[0]

    @pytest.mark.parametrize("slot,expected", [(1, True), (0, False), (FIELD_PRIME - 1, True), ("1", False)])
    def test_storage_slot(self, slot, expected):
        assert validate_storage_slot(slot)[0] is expected

    def test_owner_is_160_bits(self):
        assert validate_owner(2 ** 160 - 1)[0]
        assert not validate_owner(2 ** 160)[0]

    def test_note_fields(self):
        assert validate_note_fields([1, 2, 3])[0]
        assert not validate_note_fields("123")[0]
        assert not validate_note_fields([0] * (MAX_NOTE_FIELDS + 1))[0]
        valid, err = validate_note_fields([1, FIELD_PRIME])
        assert not valid
        assert "note field 1" in err


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
