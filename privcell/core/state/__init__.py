"""Private note state: notes, ledger, adapter, and singleton cells"""
from privcell.core.state.keys import OwnerSecret, KeyStore
from privcell.core.state.note import Note, NoteHeader, ValueNote, create_value_note
from privcell.core.state.context import ExecutionContext, PendingNote, PendingNullifier, EncryptedLog
from privcell.core.state.merkle import MerkleTree
from privcell.core.state.ledger import NoteLedger, NoteRecord, LedgerSnapshot
from privcell.core.state.adapter import NoteLedgerAdapter, LedgerNoteAdapter, NoteViewOptions
from privcell.core.state.initialization import InitializationNullifierRule
from privcell.core.state.singleton import SingletonCell, MutableSingleton, ReadOnlySingleton

__all__ = [
    "OwnerSecret",
    "KeyStore",
    "Note",
    "NoteHeader",
    "ValueNote",
    "create_value_note",
    "ExecutionContext",
    "PendingNote",
    "PendingNullifier",
    "EncryptedLog",
    "MerkleTree",
    "NoteLedger",
    "NoteRecord",
    "LedgerSnapshot",
    "NoteLedgerAdapter",
    "LedgerNoteAdapter",
    "NoteViewOptions",
    "InitializationNullifierRule",
    "SingletonCell",
    "MutableSingleton",
    "ReadOnlySingleton",
]
