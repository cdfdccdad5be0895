import sqlite3
import threading
from pathlib import Path
from typing import Optional, List, Tuple

from privcell.crypto import int_to_bytes32, encode_fields, decode_fields
from privcell.utils.logger import get_logger

logger = get_logger("storage.sqlite")

NoteRow = Tuple[int, int, int, int, List[int]]
NullifierRow = Tuple[int, int]
LogRow = Tuple[int, int, bytes]
SnapshotRow = Tuple[int, bytes, int, int]


def _to_int(blob: bytes) -> int:
    return int.from_bytes(blob, byteorder="big")


class SQLiteAdapter:
    """
    SQLite backend for the note ledger.

    Field elements (slots, nonces, hashes, nullifiers) are wider than SQLite
    integers, so they are stored as 32-byte big-endian BLOBs.

    Tables:
    1. note_commitments - the append-only commitment log
    2. nullifiers       - published nullifiers with the commitment they retire
    3. encrypted_logs   - note broadcasts
    4. snapshots        - ledger summary after each settled execution
    5. ledger_meta      - free-form metadata
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        conn = self._get_conn()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS note_commitments (
                    leaf_index INTEGER PRIMARY KEY,
                    storage_slot BLOB NOT NULL,
                    nonce BLOB NOT NULL,
                    note_hash BLOB NOT NULL UNIQUE,
                    content BLOB NOT NULL,
                    execution_id BLOB NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_note_slot ON note_commitments(storage_slot);")

            # PRIMARY KEY enforces the ledger's one-publication rule at rest
            conn.execute("""
                CREATE TABLE IF NOT EXISTS nullifiers (
                    nullifier BLOB PRIMARY KEY,
                    nullified_commitment BLOB NOT NULL,
                    execution_id BLOB NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS encrypted_logs (
                    log_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner BLOB NOT NULL,
                    storage_slot BLOB NOT NULL,
                    payload BLOB NOT NULL,
                    execution_id BLOB NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS snapshots (
                    height INTEGER PRIMARY KEY,
                    state_root BLOB NOT NULL,
                    nullifier_count INTEGER NOT NULL,
                    note_count INTEGER NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS ledger_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

    # =========================================================================
    # Metadata
    # =========================================================================

    def set_meta(self, key: str, value: str):
        conn = self._get_conn()
        with conn:
            conn.execute("INSERT OR REPLACE INTO ledger_meta (key, value) VALUES (?, ?)", (key, value))

    def get_meta(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        row = conn.execute("SELECT value FROM ledger_meta WHERE key = ?", (key,)).fetchone()
        return row['value'] if row else None

    # =========================================================================
    # Ledger Operations
    # =========================================================================

    def save_settlement(
        self,
        execution_id: bytes,
        nullifiers: List[NullifierRow],
        notes: List[NoteRow],
        logs: List[LogRow],
        snapshot: SnapshotRow,
    ):
        """
        Atomically persist one settled execution.

        Raises:
            sqlite3.IntegrityError: If a nullifier, commitment, leaf index or
                snapshot height is already stored
        """
        conn = self._get_conn()
        with conn:
            conn.executemany(
                "INSERT INTO nullifiers (nullifier, nullified_commitment, execution_id) VALUES (?, ?, ?)",
                [(int_to_bytes32(n), int_to_bytes32(c), execution_id) for n, c in nullifiers]
            )
            conn.executemany(
                "INSERT INTO note_commitments "
                "(leaf_index, storage_slot, nonce, note_hash, content, execution_id) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (idx, int_to_bytes32(slot), int_to_bytes32(nonce), int_to_bytes32(note_hash),
                     encode_fields(content), execution_id)
                    for idx, slot, nonce, note_hash, content in notes
                ]
            )
            conn.executemany(
                "INSERT INTO encrypted_logs (owner, storage_slot, payload, execution_id) VALUES (?, ?, ?, ?)",
                [(int_to_bytes32(owner), int_to_bytes32(slot), payload, execution_id)
                 for owner, slot, payload in logs]
            )
            conn.execute(
                "INSERT INTO snapshots (height, state_root, nullifier_count, note_count) "
                "VALUES (?, ?, ?, ?)",
                snapshot
            )

    def get_all_notes(self, from_index: int = 0) -> List[NoteRow]:
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT leaf_index, storage_slot, nonce, note_hash, content "
            "FROM note_commitments WHERE leaf_index >= ? ORDER BY leaf_index ASC",
            (from_index,)
        )
        return [
            (row['leaf_index'], _to_int(row['storage_slot']), _to_int(row['nonce']),
             _to_int(row['note_hash']), decode_fields(row['content']))
            for row in cursor
        ]

    def get_all_nullifiers(self, offset: int = 0) -> List[NullifierRow]:
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT nullifier, nullified_commitment FROM nullifiers ORDER BY rowid ASC LIMIT -1 OFFSET ?",
            (offset,)
        )
        return [(_to_int(row['nullifier']), _to_int(row['nullified_commitment'])) for row in cursor]

    def is_nullifier_spent(self, nullifier: int) -> bool:
        conn = self._get_conn()
        cursor = conn.execute("SELECT 1 FROM nullifiers WHERE nullifier = ?", (int_to_bytes32(nullifier),))
        return cursor.fetchone() is not None

    def get_all_logs(self, offset: int = 0) -> List[LogRow]:
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT owner, storage_slot, payload FROM encrypted_logs ORDER BY log_id ASC LIMIT -1 OFFSET ?",
            (offset,)
        )
        return [(_to_int(row['owner']), _to_int(row['storage_slot']), row['payload']) for row in cursor]

    def get_all_snapshots(self, after_height: int = 0) -> List[SnapshotRow]:
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT height, state_root, nullifier_count, note_count FROM snapshots "
            "WHERE height > ? ORDER BY height ASC",
            (after_height,)
        )
        return [tuple(row) for row in cursor]

    def get_notes_count(self) -> int:
        conn = self._get_conn()
        return conn.execute("SELECT COUNT(*) as cnt FROM note_commitments").fetchone()['cnt']

    def close(self):
        if hasattr(self._conn_local, "conn"):
            self._conn_local.conn.close()
            del self._conn_local.conn
