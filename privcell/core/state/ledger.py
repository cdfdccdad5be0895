"""
NoteLedger - append-only commitment and nullifier ledger.

Conceptual Background:
---------------------
Private state is never stored as an addressable cell. The ledger only holds:

1. **Commitment log**: every note commitment ever settled, in order
   (also accumulated in a Merkle tree)
2. **Nullifier set**: every nullifier ever published, each optionally tagged
   with the commitment it retired
3. **Encrypted logs**: note broadcasts for owners

A note is *live* when its commitment is in the log and no published
nullifier is tagged with it. The live set is derived, never stored.

Settlement:
----------
Executions run optimistically against the ledger and are settled one at a
time, in arrival order:

1. Pull in settlements other ledgers wrote to the shared database
2. Re-check every pending nullifier (a competing execution may have
   published it since the push)
3. Publish all nullifiers
4. Append all new commitments
5. Append encrypted logs, take a snapshot
6. Persist the settlement in one database transaction

A conflict in step 2 rejects the whole execution; nothing is applied.
If step 6 fails, steps 3-5 are undone in memory.
The first execution to publish a nullifier wins, every later one is
rejected with DuplicateNullifier.
"""

import secrets
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Set

from privcell.core.errors import DuplicateNullifier, ExecutionSealed
from privcell.core.state.context import EncryptedLog, ExecutionContext
from privcell.core.state.merkle import MerkleTree
from privcell.core.storage.storage_manager import StorageManager
from privcell.crypto import FIELD_PRIME, bytes_to_hex, field_to_hex
from privcell.utils.logger import get_logger

logger = get_logger("ledger")

# Retries when another writer on the same database settles first
SETTLE_ATTEMPTS = 3


# =============================================================================
# Ledger Records
# =============================================================================


@dataclass
class NoteRecord:
    """
    A settled note commitment.

    Attributes:
        leaf_index: Position in the commitment log / Merkle tree
        storage_slot: Slot the note was committed to
        nonce: Salt assigned at commitment time
        note_hash: Unique note hash (the commitment)
        content: Serialized note content
    """
    leaf_index: int
    storage_slot: int
    nonce: int
    note_hash: int
    content: List[int]


@dataclass
class LedgerSnapshot:
    """Ledger summary after a settled execution."""
    height: int
    state_root: bytes
    nullifier_count: int
    note_count: int


@dataclass
class _AppliedSettlement:
    """What one settlement added in memory, kept until it is persisted."""
    records: List[NoteRecord]
    retired: List[int]
    log_count: int
    snapshot: LedgerSnapshot


class NoteLedger:
    """
    In-process reference ledger.

    Attributes:
        records: Commitment log in settlement order
        note_tree: Merkle tree over the commitment log
        nullifiers: nullifier -> nullified commitment (0 if untagged)
        logs: Encrypted note logs
        height: Number of settled executions
    """

    def __init__(self, storage_manager: Optional[StorageManager] = None):
        """
        Initialize the ledger.

        Args:
            storage_manager: Persistence manager. None = in-memory only.
        """
        self.records: List[NoteRecord] = []
        self.note_tree = MerkleTree()
        self._by_hash: Dict[int, NoteRecord] = {}

        self.nullifiers: Dict[int, int] = {}
        self._nullified_commitments: Set[int] = set()
        self._used_nonces: Set[int] = set()

        self.logs: List[EncryptedLog] = []
        self.height = 0
        self.snapshots: List[LedgerSnapshot] = []

        self._lock = threading.RLock()
        self.storage_manager = storage_manager

        if storage_manager:
            self._load_from_storage()

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def state_root(self) -> bytes:
        """Merkle root of the commitment log."""
        return self.note_tree.root()

    def nullifier_exists(self, nullifier: int) -> bool:
        return nullifier in self.nullifiers

    def is_live(self, note_hash: int) -> bool:
        return note_hash in self._by_hash and note_hash not in self._nullified_commitments

    def get_record(self, note_hash: int) -> Optional[NoteRecord]:
        return self._by_hash.get(note_hash)

    def live_notes(self, storage_slot: int) -> List[NoteRecord]:
        """Live notes at a slot, in commitment order."""
        return [
            r for r in self.records
            if r.storage_slot == storage_slot and r.note_hash not in self._nullified_commitments
        ]

    def logs_for(self, owner: int) -> List[EncryptedLog]:
        return [log for log in self.logs if log.owner == owner]

    def assign_nonce(self) -> int:
        """
        Draw a fresh, unpredictable commitment salt.

        Salts are non-zero field elements never handed out before by this ledger.
        """
        with self._lock:
            while True:
                nonce = secrets.randbelow(FIELD_PRIME - 1) + 1
                if nonce not in self._used_nonces:
                    self._used_nonces.add(nonce)
                    return nonce

    # =========================================================================
    # Executions
    # =========================================================================

    def open_execution(self) -> ExecutionContext:
        """Start a new execution against this ledger, as of its latest stored state."""
        self.refresh()
        ctx = ExecutionContext(ledger=self)
        logger.debug(f"Opened execution {ctx.short_id}")
        return ctx

    @contextmanager
    def execution(self) -> Iterator[ExecutionContext]:
        """
        Run an execution and settle it on success.

        Any exception raised inside the block (or by settlement) discards
        every effect of the execution.
        """
        ctx = self.open_execution()
        try:
            yield ctx
        except BaseException:
            self.discard(ctx)
            raise
        self.settle(ctx)

    def discard(self, ctx: ExecutionContext) -> None:
        """Drop an execution without applying any of its effects."""
        if not ctx.sealed:
            self._close_unsettled(ctx)
            logger.info(f"Discarded execution {ctx.short_id}")

    def settle(self, ctx: ExecutionContext) -> LedgerSnapshot:
        """
        Apply an execution's effects atomically.

        With storage attached, settlements other ledgers wrote to the same
        database are pulled in first, and the in-memory ledger is rolled back
        if the database write fails. A write that loses a race with another
        writer is retried against the refreshed state.

        Raises:
            ExecutionSealed: If the execution was already settled or discarded
            DuplicateNullifier: If any nullifier was published in the meantime
        """
        if ctx.ledger is not self:
            raise ValueError("Execution belongs to a different ledger")

        with self._lock:
            if ctx.sealed:
                raise ExecutionSealed(f"Execution {ctx.short_id} is sealed")

            for attempt in range(1, SETTLE_ATTEMPTS + 1):
                self.refresh()
                self._check_conflicts(ctx)

                applied = self._apply(ctx)
                try:
                    self._persist(ctx, applied)
                except sqlite3.IntegrityError:
                    self._rollback(ctx, applied)
                    if attempt == SETTLE_ATTEMPTS:
                        self._close_unsettled(ctx)
                        raise
                    logger.warning(f"Execution {ctx.short_id} raced another writer, retrying")
                    continue
                except Exception:
                    self._rollback(ctx, applied)
                    self._close_unsettled(ctx)
                    raise
                break

            ctx.seal()
            ctx.mark_notes_settled()

        logger.info(
            f"Settled execution {ctx.short_id} at height {self.height}: "
            f"{len(ctx.nullifiers)} nullifiers, {len(ctx.notes)} notes, "
            f"root={bytes_to_hex(self.state_root)[:10]}..."
        )
        return applied.snapshot

    def _close_unsettled(self, ctx: ExecutionContext) -> None:
        ctx.seal()
        ctx.release_notes()

    def _check_conflicts(self, ctx: ExecutionContext) -> None:
        for pending in ctx.nullifiers:
            if pending.nullifier in self.nullifiers:
                self._close_unsettled(ctx)
                logger.warning(
                    f"Rejected execution {ctx.short_id}: nullifier "
                    f"{field_to_hex(pending.nullifier)} already published"
                )
                raise DuplicateNullifier(pending.nullifier, "published by a concurrent execution")

    def _apply(self, ctx: ExecutionContext) -> _AppliedSettlement:
        retired = []
        for pending in ctx.nullifiers:
            self.nullifiers[pending.nullifier] = pending.nullified_commitment
            tag = pending.nullified_commitment
            if tag and tag not in self._nullified_commitments:
                self._nullified_commitments.add(tag)
                retired.append(tag)

        new_records = []
        for pending in ctx.notes:
            record = NoteRecord(
                leaf_index=len(self.records),
                storage_slot=pending.storage_slot,
                nonce=pending.nonce,
                note_hash=pending.note_hash,
                content=list(pending.content),
            )
            self.note_tree.insert_commitment(record.note_hash)
            self.records.append(record)
            self._by_hash[record.note_hash] = record
            self._used_nonces.add(record.nonce)
            new_records.append(record)

        log_count = len(self.logs)
        self.logs.extend(ctx.logs)
        self.height += 1

        snapshot = LedgerSnapshot(
            height=self.height,
            state_root=self.state_root,
            nullifier_count=len(self.nullifiers),
            note_count=len(self.records),
        )
        self.snapshots.append(snapshot)
        return _AppliedSettlement(new_records, retired, log_count, snapshot)

    def _persist(self, ctx: ExecutionContext, applied: _AppliedSettlement) -> None:
        if not self.storage_manager:
            return
        snapshot = applied.snapshot
        self.storage_manager.persist_settlement(
            ctx.execution_id,
            [(p.nullifier, p.nullified_commitment) for p in ctx.nullifiers],
            [(r.leaf_index, r.storage_slot, r.nonce, r.note_hash, r.content) for r in applied.records],
            [(log.owner, log.storage_slot, log.payload) for log in ctx.logs],
            (snapshot.height, snapshot.state_root, snapshot.nullifier_count, snapshot.note_count),
        )

    def _rollback(self, ctx: ExecutionContext, applied: _AppliedSettlement) -> None:
        """Undo _apply after the database refused the settlement."""
        for pending in ctx.nullifiers:
            del self.nullifiers[pending.nullifier]
        self._nullified_commitments.difference_update(applied.retired)

        for record in applied.records:
            del self._by_hash[record.note_hash]
        del self.records[len(self.records) - len(applied.records):]
        self.note_tree.truncate(len(self.records))

        del self.logs[applied.log_count:]
        self.snapshots.pop()
        self.height -= 1

    # =========================================================================
    # Persistence
    # =========================================================================

    def refresh(self) -> int:
        """
        Pull in settlements other ledgers wrote to the shared database.

        Returns:
            Number of note commitments loaded
        """
        if not self.storage_manager:
            return 0
        with self._lock:
            changes = self.storage_manager.load_ledger_state(
                note_count=len(self.records),
                nullifier_count=len(self.nullifiers),
                log_count=len(self.logs),
                height=self.height,
            )
            loaded = self._apply_stored(*changes)
        if loaded:
            logger.info(f"Refreshed ledger: {loaded} new notes, height={self.height}")
        return loaded

    def _load_from_storage(self) -> None:
        self._apply_stored(*self.storage_manager.load_ledger_state())
        logger.info(
            f"Loaded ledger: {len(self.records)} notes, {len(self.nullifiers)} nullifiers, "
            f"height={self.height}"
        )

    def _apply_stored(self, notes, nullifiers, logs, snapshots) -> int:
        for leaf_index, storage_slot, nonce, note_hash, content in notes:
            record = NoteRecord(leaf_index, storage_slot, nonce, note_hash, content)
            self.records.append(record)
            self._by_hash[note_hash] = record
            self._used_nonces.add(nonce)
            self.note_tree.insert_commitment(note_hash)

        for nullifier, nullified_commitment in nullifiers:
            self.nullifiers[nullifier] = nullified_commitment
            if nullified_commitment:
                self._nullified_commitments.add(nullified_commitment)

        for owner, storage_slot, payload in logs:
            self.logs.append(EncryptedLog(owner, storage_slot, payload))

        for row in snapshots:
            self.snapshots.append(LedgerSnapshot(*row))

        if self.snapshots:
            self.height = self.snapshots[-1].height
        return len(notes)

    # =========================================================================
    # Utility
    # =========================================================================

    def __repr__(self) -> str:
        return (
            f"NoteLedger(height={self.height}, notes={len(self.records)}, "
            f"nullifiers={len(self.nullifiers)})"
        )

    def stats(self) -> dict:
        return {
            "height": self.height,
            "note_count": len(self.records),
            "live_note_count": len(self.records) - len(self._nullified_commitments & set(self._by_hash)),
            "nullifier_count": len(self.nullifiers),
            "log_count": len(self.logs),
            "state_root": bytes_to_hex(self.state_root),
        }
