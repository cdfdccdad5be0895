"""
Persistent Storage Module.

Provides SQLite-backed persistence for the note ledger:
- Commitment log and nullifier set
- Encrypted note logs
- Settlement snapshots
"""

from privcell.core.storage.sqlite_adapter import SQLiteAdapter
from privcell.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
