"""
Note ledger adapter - the narrow interface cells need from the ledger.

A singleton cell never talks to the ledger directly. It needs exactly five
capabilities, captured by NoteLedgerAdapter:

- create:           commit a note (ledger assigns the salt); the note's
                    header is removed again if the execution never settles
- destroy:          publish a note's nullifier
- get_live_note:    the unique live note of a slot, as seen by an execution
- view_notes:       observation-only enumeration of live notes
- nullifier_exists: observation-only nullifier lookup

LedgerNoteAdapter implements the contract over an in-process NoteLedger and
a KeyStore (for the owner secrets that nullifiers and broadcasts need).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Type, TypeVar

from privcell.core.errors import AmbiguousState, NoLiveNote
from privcell.core.state.context import ExecutionContext
from privcell.core.state.keys import KeyStore
from privcell.core.state.ledger import NoteLedger
from privcell.core.state.note import Note, NoteHeader
from privcell.crypto import field_to_hex, hash_unique_note
from privcell.crypto.note_encryption import derive_note_key, encrypt_note
from privcell.utils.logger import get_logger

logger = get_logger("adapter")

N = TypeVar("N", bound=Note)


@dataclass
class NoteViewOptions:
    """
    Paging for observation-only reads.

    Attributes:
        limit: Maximum number of notes returned (None = all)
        offset: Number of live notes to skip, in commitment order
    """
    limit: Optional[int] = None
    offset: int = 0

    def __post_init__(self):
        if self.limit is not None and self.limit < 1:
            raise ValueError(f"limit must be >= 1, got {self.limit}")
        if self.offset < 0:
            raise ValueError(f"offset must be >= 0, got {self.offset}")


class NoteLedgerAdapter(ABC):
    """
    Contract between singleton cells and a note ledger.

    Attributes:
        key_store: Secret oracle for owner-scoped derivations
    """

    key_store: KeyStore

    @abstractmethod
    def create(
        self,
        context: ExecutionContext,
        storage_slot: int,
        note: Note,
        note_type: Type[Note],
        broadcast: bool = False,
    ) -> None:
        """Commit a note in the execution, assigning it a fresh salt."""

    @abstractmethod
    def destroy(self, context: ExecutionContext, note: Note, note_type: Type[Note]) -> int:
        """Publish the note's nullifier in the execution; returns the nullifier."""

    @abstractmethod
    def get_live_note(self, context: ExecutionContext, storage_slot: int, note_type: Type[N]) -> N:
        """
        The unique live note of a slot.

        Raises:
            NoLiveNote: If there is none
            AmbiguousState: If there is more than one
        """

    @abstractmethod
    def view_notes(
        self,
        storage_slot: int,
        note_type: Type[N],
        options: Optional[NoteViewOptions] = None,
    ) -> List[N]:
        """Observation-only enumeration of settled live notes."""

    @abstractmethod
    def nullifier_exists(self, nullifier: int) -> bool:
        """Observation-only check for a published nullifier."""


class LedgerNoteAdapter(NoteLedgerAdapter):
    """
    NoteLedgerAdapter over an in-process NoteLedger.

    Reads made through an execution see the settled live set overlaid with
    the execution's own pending effects: notes it created are visible,
    notes it nullified are not.
    """

    def __init__(self, ledger: NoteLedger, key_store: KeyStore):
        self.ledger = ledger
        self.key_store = key_store

    # =========================================================================
    # Mutation
    # =========================================================================

    def create(
        self,
        context: ExecutionContext,
        storage_slot: int,
        note: Note,
        note_type: Type[Note],
        broadcast: bool = False,
    ) -> None:
        self._check_type(note, note_type)
        if note.header is not None:
            raise ValueError("Note is already committed; commit a copy instead")

        content = note.serialize_content()
        nonce = self.ledger.assign_nonce()
        unique_hash = hash_unique_note(nonce, note.compute_note_hash(storage_slot))

        context.push_note(storage_slot, nonce, unique_hash, content, note)
        note.header = NoteHeader(storage_slot, nonce, unique_hash, is_transient=True)

        if broadcast:
            secret = self.key_store.secret_for(note.owner)
            payload = encrypt_note(content, storage_slot, derive_note_key(secret.low, secret.high))
            context.emit_encrypted_log(note.owner, storage_slot, payload)

        logger.debug(f"Created note {field_to_hex(unique_hash)} at slot {storage_slot}")

    def destroy(self, context: ExecutionContext, note: Note, note_type: Type[Note]) -> int:
        self._check_type(note, note_type)
        header = note._require_header()

        nullifier = note.compute_nullifier(self.key_store)
        context.push_nullifier(nullifier, header.note_hash)

        logger.debug(f"Destroyed note {field_to_hex(header.note_hash)} at slot {header.storage_slot}")
        return nullifier

    # =========================================================================
    # Reads
    # =========================================================================

    def get_live_note(self, context: ExecutionContext, storage_slot: int, note_type: Type[N]) -> N:
        candidates = [
            self._materialize(note_type, r.storage_slot, r.nonce, r.note_hash, r.content, False)
            for r in self.ledger.live_notes(storage_slot)
            if not context.is_nullified(r.note_hash)
        ]
        candidates.extend(
            self._materialize(note_type, p.storage_slot, p.nonce, p.note_hash, p.content, True)
            for p in context.pending_notes_at(storage_slot)
        )

        if not candidates:
            raise NoLiveNote(storage_slot)
        if len(candidates) > 1:
            raise AmbiguousState(storage_slot, len(candidates))
        return candidates[0]

    def view_notes(
        self,
        storage_slot: int,
        note_type: Type[N],
        options: Optional[NoteViewOptions] = None,
    ) -> List[N]:
        options = options or NoteViewOptions()
        records = self.ledger.live_notes(storage_slot)[options.offset:]
        if options.limit is not None:
            records = records[:options.limit]

        return [
            self._materialize(note_type, r.storage_slot, r.nonce, r.note_hash, r.content, False)
            for r in records
        ]

    def nullifier_exists(self, nullifier: int) -> bool:
        return self.ledger.nullifier_exists(nullifier)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _materialize(
        note_type: Type[N],
        storage_slot: int,
        nonce: int,
        note_hash: int,
        content: List[int],
        is_transient: bool,
    ) -> N:
        """Decode stored content and check it matches its commitment."""
        note = note_type.deserialize_content(list(content))
        expected = hash_unique_note(nonce, note.compute_note_hash(storage_slot))
        if expected != note_hash:
            raise ValueError(
                f"Stored content does not match commitment {field_to_hex(note_hash)} "
                f"(wrong note type for slot {storage_slot}?)"
            )
        note.header = NoteHeader(storage_slot, nonce, note_hash, is_transient)
        return note

    @staticmethod
    def _check_type(note: Note, note_type: Type[Note]) -> None:
        if not isinstance(note, note_type):
            raise TypeError(f"Expected {note_type.__name__}, got {type(note).__name__}")
