"""
SingletonCell - one private value per storage slot.

Conceptual Background:
---------------------
A singleton cell behaves like a variable, but the ledger underneath it is
write-once: notes can be committed and nullified, never overwritten. The
cell derives variable semantics from that:

    Uninitialized --initialize--> Live --replace/get--> Live --> ...

- initialize: publish the slot's initialization nullifier, commit the note
- replace:    fetch the live note, nullify it, commit the new note
- get:        like replace, but the new note is a value-equal copy
- view:       read the live note without touching the ledger
- is_initialized: look up the initialization nullifier

Every read inside an execution (get) retires the note it read and commits a
fresh copy under a new salt. The read is therefore bound to a nullifier
unique to this point in the execution, and the old note cannot later be
presented as the current value.

Within a call the order is fixed: nullifier push, then note creation.

Variants:
--------
SingletonCell.new() picks the variant from the context it is given:
- MutableSingleton: bound to an open ExecutionContext, all operations
- ReadOnlySingleton: no context, only view and is_initialized; the mutating
  operations raise MissingContext

Cells are cheap handles built per call; all state lives in the ledger.
"""

from typing import Generic, Optional, Type, TypeVar

from privcell.core.errors import InvalidSlot, MissingContext, NoObservableNote
from privcell.core.state.adapter import NoteLedgerAdapter, NoteViewOptions
from privcell.core.state.context import ExecutionContext
from privcell.core.state.initialization import InitializationNullifierRule
from privcell.core.state.note import Note
from privcell.crypto import field_to_hex
from privcell.utils.logger import get_logger
from privcell.utils.validation import validate_storage_slot

logger = get_logger("cell")

N = TypeVar("N", bound=Note)


class SingletonCell(Generic[N]):
    """
    Handle on the single private value stored at a slot.

    Attributes:
        storage_slot: Non-zero slot identifier
        note_type: Note class used to decode the slot's notes
        adapter: Ledger adapter
        nullifier_rule: Initialization nullifier derivation
    """

    def __init__(
        self,
        storage_slot: int,
        note_type: Type[N],
        adapter: NoteLedgerAdapter,
        nullifier_rule: Optional[InitializationNullifierRule] = None,
    ):
        valid, _ = validate_storage_slot(storage_slot)
        if not valid:
            raise InvalidSlot(storage_slot)

        self.storage_slot = storage_slot
        self.note_type = note_type
        self.adapter = adapter
        self.nullifier_rule = nullifier_rule or InitializationNullifierRule(adapter.key_store)

    @staticmethod
    def new(
        context: Optional[ExecutionContext],
        storage_slot: int,
        note_type: Type[N],
        adapter: NoteLedgerAdapter,
        nullifier_rule: Optional[InitializationNullifierRule] = None,
    ) -> "SingletonCell[N]":
        """
        Build the cell variant matching the given context.

        Args:
            context: Open execution context, or None for observation only
            storage_slot: Non-zero slot
            note_type: Note class stored in the slot
            adapter: Ledger adapter
            nullifier_rule: Override for the initialization nullifier rule

        Raises:
            InvalidSlot: If storage_slot is zero or not a field element
        """
        if context is None:
            return ReadOnlySingleton(storage_slot, note_type, adapter, nullifier_rule)
        return MutableSingleton(context, storage_slot, note_type, adapter, nullifier_rule)

    @property
    def is_mutable(self) -> bool:
        return False

    # =========================================================================
    # Observation
    # =========================================================================

    def initialization_nullifier(self, owner: Optional[int] = None) -> int:
        return self.nullifier_rule.derive(self.storage_slot, owner)

    def is_initialized(self, owner: Optional[int] = None) -> bool:
        """Whether (slot, owner) has been initialized on the settled ledger."""
        return self.adapter.nullifier_exists(self.initialization_nullifier(owner))

    def view(self) -> N:
        """
        Read the live note without producing a nullifier.

        Not a substitute for get() where the read must be provable.

        Raises:
            NoObservableNote: If the slot holds no settled live note
        """
        notes = self.adapter.view_notes(self.storage_slot, self.note_type, NoteViewOptions(limit=1))
        if not notes:
            raise NoObservableNote(self.storage_slot)
        return notes[0]

    # =========================================================================
    # Mutation (only available on MutableSingleton)
    # =========================================================================

    def initialize(self, note: N, owner: Optional[int] = None, broadcast: bool = False) -> None:
        raise MissingContext(f"initialize on slot {self.storage_slot} requires an execution context")

    def replace(self, new_note: N, broadcast: bool = False) -> None:
        raise MissingContext(f"replace on slot {self.storage_slot} requires an execution context")

    def get(self, broadcast: bool = False) -> N:
        raise MissingContext(f"get on slot {self.storage_slot} requires an execution context")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(slot={self.storage_slot}, note_type={self.note_type.__name__})"


class ReadOnlySingleton(SingletonCell[N]):
    """Observation-only cell: view and is_initialized."""


class MutableSingleton(SingletonCell[N]):
    """Cell bound to an open execution context."""

    def __init__(
        self,
        context: ExecutionContext,
        storage_slot: int,
        note_type: Type[N],
        adapter: NoteLedgerAdapter,
        nullifier_rule: Optional[InitializationNullifierRule] = None,
    ):
        super().__init__(storage_slot, note_type, adapter, nullifier_rule)
        if context is None:
            raise MissingContext("MutableSingleton requires an execution context")
        self.context = context

    @property
    def is_mutable(self) -> bool:
        return not self.context.sealed

    def initialize(self, note: N, owner: Optional[int] = None, broadcast: bool = False) -> None:
        """
        Initialize the slot for an owner (or globally) with a first note.

        Raises:
            DuplicateNullifier: If (slot, owner) was already initialized
        """
        nullifier = self.initialization_nullifier(owner)
        self.context.push_nullifier(nullifier)
        self.adapter.create(self.context, self.storage_slot, note, self.note_type, broadcast)

        logger.info(
            f"Initialized slot {self.storage_slot} "
            f"(init nullifier {field_to_hex(nullifier)}, execution {self.context.short_id})"
        )

    def replace(self, new_note: N, broadcast: bool = False) -> None:
        """
        Retire the live note and commit new_note in its place.

        Raises:
            NoLiveNote: If the slot holds no live note
            AmbiguousState: If the slot holds several live notes
            DuplicateNullifier: If the live note was already retired
        """
        previous = self.adapter.get_live_note(self.context, self.storage_slot, self.note_type)
        self.adapter.destroy(self.context, previous, self.note_type)
        self.adapter.create(self.context, self.storage_slot, new_note, self.note_type, broadcast)

        logger.info(f"Replaced note at slot {self.storage_slot} (execution {self.context.short_id})")

    def get(self, broadcast: bool = False) -> N:
        """
        Provable read: retire the live note and commit a value-equal copy.

        Returns:
            The note that was read (value unchanged by the refresh)
        """
        note = self.adapter.get_live_note(self.context, self.storage_slot, self.note_type)
        self.adapter.destroy(self.context, note, self.note_type)
        self.adapter.create(self.context, self.storage_slot, note.copy(), self.note_type, broadcast)

        logger.debug(f"Refreshed note at slot {self.storage_slot} (execution {self.context.short_id})")
        return note
