"""
Notes - the committed contents of a private storage slot.

Conceptual Background:
---------------------
A note is never stored in the clear. The ledger only ever sees its unique
note hash (the commitment), and later its nullifier once it is consumed.

    content_hash     = H(serialized content)
    note_hash        = H(storage_slot, content_hash)
    unique_note_hash = H(nonce, note_hash)          <- inserted into the ledger
    nullifier        = H(unique_note_hash, owner secret)

The nonce is assigned by the ledger at commitment time. Two notes with the
same content at the same slot therefore still have different commitments and
different nullifiers, which is what lets a read refresh a note without the
refreshed copy being linkable to (or replayable as) the original.

Note types:
----------
A concrete note type implements serialization and names its owner. The
class itself is the "note operations" capability handed to cells and
adapters: it knows how to decode stored content back into a note.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Type, TypeVar

from privcell.crypto import (
    field_to_hex,
    hash_note_content,
    hash_note,
    hash_unique_note,
    hash_note_nullifier,
)
from privcell.core.state.keys import KeyStore
from privcell.utils.validation import validate_note_fields, validate_owner

N = TypeVar("N", bound="Note")


@dataclass
class NoteHeader:
    """
    Ledger metadata attached to a note once it is committed or fetched.

    Attributes:
        storage_slot: Slot the note lives in
        nonce: Salt assigned by the ledger at commitment time
        note_hash: Unique note hash (the commitment)
        is_transient: Created by the still-open execution, not yet settled
    """
    storage_slot: int
    nonce: int
    note_hash: int
    is_transient: bool = False


class Note(ABC):
    """Base class for note types."""

    header: Optional[NoteHeader] = None

    @abstractmethod
    def serialize_content(self) -> List[int]:
        """Encode the note's content as field elements."""

    @classmethod
    @abstractmethod
    def deserialize_content(cls: Type[N], fields: List[int]) -> N:
        """Decode content produced by serialize_content."""

    @property
    @abstractmethod
    def owner(self) -> int:
        """Owner identity whose secret nullifies this note."""

    # =========================================================================
    # Hashing
    # =========================================================================

    def compute_content_hash(self) -> int:
        fields = self.serialize_content()
        valid, err = validate_note_fields(fields)
        if not valid:
            raise ValueError(err)
        return hash_note_content(fields)

    def compute_note_hash(self, storage_slot: int) -> int:
        return hash_note(storage_slot, self.compute_content_hash())

    def compute_unique_note_hash(self) -> int:
        """Commitment of a committed note; requires a header."""
        header = self._require_header()
        return hash_unique_note(header.nonce, self.compute_note_hash(header.storage_slot))

    def compute_nullifier(self, key_store: KeyStore) -> int:
        """
        Compute the nullifier that retires this note.

        Only possible with the owner's secret.
        """
        secret = key_store.secret_for(self.owner)
        return hash_note_nullifier(self.compute_unique_note_hash(), secret.low, secret.high)

    # =========================================================================
    # Helpers
    # =========================================================================

    def copy(self: N) -> N:
        """A value-equal note with no header, ready to be committed again."""
        return type(self).deserialize_content(self.serialize_content())

    def _require_header(self) -> NoteHeader:
        if self.header is None:
            raise ValueError(f"{type(self).__name__} has not been committed (no header)")
        return self.header

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.serialize_content() == other.serialize_content()

    def __hash__(self) -> int:
        return hash((type(self).__name__, tuple(self.serialize_content())))


# =============================================================================
# ValueNote
# =============================================================================


@dataclass(eq=False)
class ValueNote(Note):
    """
    A single integer value owned by one identity.

    Attributes:
        value: The stored value (a field element)
        owner_id: Owner identity (address as int)
        randomness: Blinding so equal values are not recognisable by hash
    """
    value: int
    owner_id: int
    randomness: int = 0
    header: Optional[NoteHeader] = field(default=None, repr=False)

    def __post_init__(self):
        valid, err = validate_note_fields([self.value, self.owner_id, self.randomness])
        if not valid:
            raise ValueError(err)
        valid, err = validate_owner(self.owner_id)
        if not valid:
            raise ValueError(err)

    @property
    def owner(self) -> int:
        return self.owner_id

    def serialize_content(self) -> List[int]:
        return [self.value, self.owner_id, self.randomness]

    @classmethod
    def deserialize_content(cls, fields: List[int]) -> "ValueNote":
        if len(fields) != 3:
            raise ValueError(f"ValueNote expects 3 fields, got {len(fields)}")
        return cls(value=fields[0], owner_id=fields[1], randomness=fields[2])

    def __repr__(self) -> str:
        return f"ValueNote(value={self.value}, owner={field_to_hex(self.owner_id)})"


def create_value_note(value: int, owner: int, randomness: Optional[int] = None) -> ValueNote:
    """
    Create a ValueNote with fresh blinding randomness.

    Args:
        value: Value to store
        owner: Owner identity
        randomness: Optional explicit blinding (random if not provided)
    """
    import secrets
    from privcell.crypto import FIELD_PRIME

    if randomness is None:
        randomness = secrets.randbelow(FIELD_PRIME)

    return ValueNote(value=value, owner_id=owner, randomness=randomness)
