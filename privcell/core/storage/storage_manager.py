from pathlib import Path
from typing import Optional, List, Tuple

from privcell.core.storage.sqlite_adapter import (
    SQLiteAdapter,
    NoteRow,
    NullifierRow,
    LogRow,
    SnapshotRow,
)
from privcell.utils.logger import get_logger

logger = get_logger("storage.manager")

SCHEMA_VERSION = "1"


class StorageManager:
    """
    Manages persistent storage for a note ledger.

    Coordinates data persistence using the SQLite adapter:
    - Commitment log and nullifier set
    - Encrypted note logs
    - Settlement snapshots
    """

    def __init__(self, data_dir: Path, db_name: str = "ledger.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        if self.adapter.get_meta("schema_version") is None:
            self.adapter.set_meta("schema_version", SCHEMA_VERSION)

        logger.info(f"StorageManager initialized at {self.db_path}")

    @property
    def schema_version(self) -> Optional[str]:
        return self.adapter.get_meta("schema_version")

    def persist_settlement(
        self,
        execution_id: bytes,
        nullifiers: List[NullifierRow],
        notes: List[NoteRow],
        logs: List[LogRow],
        snapshot: SnapshotRow,
    ):
        """Persist everything one execution published, in a single transaction."""
        self.adapter.save_settlement(execution_id, nullifiers, notes, logs, snapshot)

    def is_nullifier_spent(self, nullifier: int) -> bool:
        return self.adapter.is_nullifier_spent(nullifier)

    def get_note_count(self) -> int:
        return self.adapter.get_notes_count()

    def load_ledger_state(
        self,
        note_count: int = 0,
        nullifier_count: int = 0,
        log_count: int = 0,
        height: int = 0,
    ) -> Tuple[List[NoteRow], List[NullifierRow], List[LogRow], List[SnapshotRow]]:
        """
        Load ledger state, skipping the rows a caller already holds.

        With the defaults this is the full state. A ledger sharing the
        database with other writers passes its own counts to fetch only
        what they settled since.

        Returns:
            (notes, nullifiers, logs, snapshots)
            notes: List[(leaf_index, storage_slot, nonce, note_hash, content)]
            nullifiers: List[(nullifier, nullified_commitment)]
            logs: List[(owner, storage_slot, payload)]
            snapshots: List[(height, state_root, nullifier_count, note_count)]
        """
        return (
            self.adapter.get_all_notes(from_index=note_count),
            self.adapter.get_all_nullifiers(offset=nullifier_count),
            self.adapter.get_all_logs(offset=log_count),
            self.adapter.get_all_snapshots(after_height=height),
        )

    def close(self):
        self.adapter.close()
