"""
Errors raised by singleton cell operations.

Every error here is fatal to the enclosing execution: nothing in privcell
catches and recovers from them. When raised inside ``NoteLedger.execution()``
the execution is discarded and the ledger is left untouched.
"""

from typing import Optional


class CellError(RuntimeError):
    """Base class for all singleton cell failures."""


class InvalidSlot(CellError, ValueError):
    """Storage slot is the reserved zero value (or not a field element)."""

    def __init__(self, slot: object):
        self.slot = slot
        super().__init__(f"Invalid storage slot: {slot!r}")


class MissingContext(CellError):
    """A mutating operation was invoked without a mutation-capable context."""


class ExecutionSealed(MissingContext):
    """The execution context was already settled or discarded."""


class NoLiveNote(CellError):
    """No live note exists for the slot (uninitialized or already consumed)."""

    def __init__(self, slot: int):
        self.slot = slot
        super().__init__(f"No live note at storage slot {slot}")


class AmbiguousState(CellError):
    """More than one live note exists for a slot that must hold exactly one."""

    def __init__(self, slot: int, count: int):
        self.slot = slot
        self.count = count
        super().__init__(f"Expected one live note at storage slot {slot}, found {count}")


class DuplicateNullifier(CellError):
    """A nullifier was published twice."""

    def __init__(self, nullifier: int, reason: Optional[str] = None):
        self.nullifier = nullifier
        message = f"Nullifier already published: {nullifier:#x}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class NoObservableNote(CellError):
    """An observation-only read found no note at the slot."""

    def __init__(self, slot: int):
        self.slot = slot
        super().__init__(f"No note to view at storage slot {slot}")


class UnknownOwner(CellError, KeyError):
    """The key store holds no secret for an owner identity."""

    def __init__(self, owner: int):
        self.owner = owner
        super().__init__(f"No secret registered for owner {owner:#x}")

    def __str__(self) -> str:
        return self.args[0]
