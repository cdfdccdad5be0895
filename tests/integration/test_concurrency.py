"""
Concurrency Tests - competing executions against one ledger.

Tests verify:
1. Two executions replacing the same note: first settle wins
2. Two executions initializing the same slot: first settle wins
3. Many threads racing on one note: exactly one settles
"""

import threading

import pytest

from privcell.core.errors import DuplicateNullifier
from privcell.core.state import (
    KeyStore,
    LedgerNoteAdapter,
    NoteLedger,
    SingletonCell,
    ValueNote,
    create_value_note,
)

SLOT = 3


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def key_store():
    return KeyStore()


@pytest.fixture
def owner(key_store):
    return key_store.create_owner()


@pytest.fixture
def ledger():
    return NoteLedger()


@pytest.fixture
def adapter(ledger, key_store):
    return LedgerNoteAdapter(ledger, key_store)


@pytest.fixture
def initialized(ledger, adapter, owner):
    with ledger.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter).initialize(create_value_note(1, owner))


# =============================================================================
# Tests
# =============================================================================


class TestCompetingExecutions:
    """Optimistic executions settled in arrival order."""

    def test_concurrent_replace(self, ledger, adapter, owner, initialized):
        first = ledger.open_execution()
        second = ledger.open_execution()
        SingletonCell.new(first, SLOT, ValueNote, adapter).replace(create_value_note(10, owner))
        SingletonCell.new(second, SLOT, ValueNote, adapter).replace(create_value_note(20, owner))

        ledger.settle(first)
        with pytest.raises(DuplicateNullifier):
            ledger.settle(second)

        assert len(ledger.live_notes(SLOT)) == 1
        assert SingletonCell.new(None, SLOT, ValueNote, adapter).view().value == 10

    def test_concurrent_get_and_replace(self, ledger, adapter, owner, initialized):
        reader = ledger.open_execution()
        writer = ledger.open_execution()
        SingletonCell.new(reader, SLOT, ValueNote, adapter).get()
        SingletonCell.new(writer, SLOT, ValueNote, adapter).replace(create_value_note(5, owner))

        ledger.settle(writer)
        with pytest.raises(DuplicateNullifier):
            ledger.settle(reader)

        assert SingletonCell.new(None, SLOT, ValueNote, adapter).view().value == 5

    def test_concurrent_initialize(self, ledger, adapter, owner):
        first = ledger.open_execution()
        second = ledger.open_execution()
        SingletonCell.new(first, SLOT, ValueNote, adapter).initialize(create_value_note(1, owner))
        SingletonCell.new(second, SLOT, ValueNote, adapter).initialize(create_value_note(2, owner))

        ledger.settle(first)
        with pytest.raises(DuplicateNullifier):
            ledger.settle(second)

        assert len(ledger.live_notes(SLOT)) == 1
        assert SingletonCell.new(None, SLOT, ValueNote, adapter).view().value == 1

    def test_loser_can_retry_with_same_note(self, ledger, adapter, owner, initialized):
        first = ledger.open_execution()
        second = ledger.open_execution()
        note = create_value_note(20, owner)
        SingletonCell.new(first, SLOT, ValueNote, adapter).replace(create_value_note(10, owner))
        SingletonCell.new(second, SLOT, ValueNote, adapter).replace(note)
        assert note.header.is_transient

        ledger.settle(first)
        with pytest.raises(DuplicateNullifier):
            ledger.settle(second)
        assert note.header is None

        with ledger.execution() as retry:
            SingletonCell.new(retry, SLOT, ValueNote, adapter).replace(note)
        assert not note.header.is_transient
        assert SingletonCell.new(None, SLOT, ValueNote, adapter).view().value == 20

    def test_threads_race_on_one_note(self, ledger, adapter, owner, initialized):
        workers = 8
        barrier = threading.Barrier(workers)
        outcomes = []
        lock = threading.Lock()

        def worker(value):
            ctx = ledger.open_execution()
            SingletonCell.new(ctx, SLOT, ValueNote, adapter).replace(create_value_note(value, owner))
            barrier.wait()
            try:
                ledger.settle(ctx)
                result = "settled"
            except DuplicateNullifier:
                result = "rejected"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker, args=(100 + i,)) for i in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("settled") == 1
        assert outcomes.count("rejected") == workers - 1
        assert len(ledger.live_notes(SLOT)) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
