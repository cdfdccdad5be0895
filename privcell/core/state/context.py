"""
Execution context - the effects of one provable computation.

An ExecutionContext collects everything a single execution wants to publish:

1. Nullifiers, each optionally tagged with the commitment it retires
2. New note commitments (with the note content, for the owner's wallet)
3. Encrypted note logs (broadcasts)

Nothing reaches the ledger until the context is settled, and settlement is
all-or-nothing. A context that has been settled or discarded is sealed and
can no longer be used for mutation.

Ordering:
--------
Effects are recorded in call order. Settlement publishes every nullifier
before any new commitment, so a note can never be committed on the strength
of a note that was not retired.
"""

import secrets
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Set

from privcell.core.errors import DuplicateNullifier, ExecutionSealed
from privcell.crypto import field_to_hex
from privcell.utils.logger import get_logger

if TYPE_CHECKING:
    from privcell.core.state.ledger import NoteLedger
    from privcell.core.state.note import Note

logger = get_logger("context")


@dataclass
class PendingNullifier:
    nullifier: int
    nullified_commitment: int = 0  # 0 = not tied to a note (e.g. initialization)


@dataclass
class PendingNote:
    """A note commitment created by the execution, not yet on the ledger."""
    storage_slot: int
    nonce: int
    note_hash: int
    content: List[int]
    note: Optional["Note"] = field(default=None, repr=False, compare=False)


@dataclass
class EncryptedLog:
    owner: int
    storage_slot: int
    payload: bytes


@dataclass
class ExecutionContext:
    """
    Mutation-capable context for one execution.

    Attributes:
        ledger: Ledger the execution reads from and settles into
        execution_id: Random identifier (for logs and persistence)
        nullifiers: Pending nullifiers, in push order
        notes: Pending note commitments, in push order
        logs: Pending encrypted logs
    """
    ledger: "NoteLedger"
    execution_id: bytes = field(default_factory=lambda: secrets.token_bytes(16))
    nullifiers: List[PendingNullifier] = field(default_factory=list)
    notes: List[PendingNote] = field(default_factory=list)
    logs: List[EncryptedLog] = field(default_factory=list)
    sealed: bool = False

    def __post_init__(self):
        self._nullifier_values: Set[int] = set()
        self._nullified_commitments: Set[int] = set()

    # =========================================================================
    # Effects
    # =========================================================================

    def push_nullifier(self, nullifier: int, nullified_commitment: int = 0) -> None:
        """
        Record a nullifier as published by this execution.

        Raises:
            ExecutionSealed: If the context was already settled or discarded
            DuplicateNullifier: If the nullifier is already pending here or
                already published on the ledger
        """
        self._require_open()

        if nullifier in self._nullifier_values:
            raise DuplicateNullifier(nullifier, "already pushed in this execution")
        if self.ledger.nullifier_exists(nullifier):
            raise DuplicateNullifier(nullifier, "already on the ledger")

        self.nullifiers.append(PendingNullifier(nullifier, nullified_commitment))
        self._nullifier_values.add(nullifier)
        if nullified_commitment:
            self._nullified_commitments.add(nullified_commitment)

        logger.debug(f"[{self.short_id}] push nullifier {field_to_hex(nullifier)}")

    def push_note(
        self,
        storage_slot: int,
        nonce: int,
        note_hash: int,
        content: List[int],
        note: Optional["Note"] = None,
    ) -> None:
        """
        Record a new note commitment.

        Args:
            note: Caller's note object carrying the transient header, if any.
                Its header is released if the execution never settles.
        """
        self._require_open()
        self.notes.append(PendingNote(storage_slot, nonce, note_hash, list(content), note))
        logger.debug(f"[{self.short_id}] push note {field_to_hex(note_hash)} at slot {storage_slot}")

    def emit_encrypted_log(self, owner: int, storage_slot: int, payload: bytes) -> None:
        self._require_open()
        self.logs.append(EncryptedLog(owner, storage_slot, payload))

    # =========================================================================
    # Queries
    # =========================================================================

    def is_nullified(self, commitment: int) -> bool:
        """Whether this execution has already retired the given commitment."""
        return commitment in self._nullified_commitments

    def pending_notes_at(self, storage_slot: int) -> List[PendingNote]:
        """Notes created in this execution at a slot and not retired by it."""
        return [
            n for n in self.notes
            if n.storage_slot == storage_slot and not self.is_nullified(n.note_hash)
        ]

    @property
    def short_id(self) -> str:
        return self.execution_id.hex()[:8]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def seal(self) -> None:
        self.sealed = True

    def release_notes(self) -> None:
        """Strip transient headers from notes committed here, so they can be committed again."""
        for pending in self.notes:
            header = pending.note.header if pending.note is not None else None
            if header is not None and header.is_transient and header.note_hash == pending.note_hash:
                pending.note.header = None

    def mark_notes_settled(self) -> None:
        for pending in self.notes:
            header = pending.note.header if pending.note is not None else None
            if header is not None and header.note_hash == pending.note_hash:
                header.is_transient = False

    def _require_open(self) -> None:
        if self.sealed:
            raise ExecutionSealed(f"Execution {self.short_id} is sealed")

    def __repr__(self) -> str:
        return (
            f"ExecutionContext(id={self.short_id}, nullifiers={len(self.nullifiers)}, "
            f"notes={len(self.notes)}, sealed={self.sealed})"
        )
