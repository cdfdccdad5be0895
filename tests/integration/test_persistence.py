import sqlite3

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
from privcell.core.storage.storage_manager import StorageManager
from privcell.crypto.note_encryption import decrypt_note, derive_note_key

SLOT = 9


@pytest.fixture
def temp_data_dir(tmp_path):
    """Create a temporary directory for ledger data."""
    data_dir = tmp_path / "ledger_data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def key_store():
    return KeyStore()


def open_ledger(data_dir, key_store):
    storage = StorageManager(data_dir=data_dir)
    ledger = NoteLedger(storage_manager=storage)
    return storage, ledger, LedgerNoteAdapter(ledger, key_store)


def test_singleton_survives_restart(temp_data_dir, key_store):
    """A cell's value and initialization are read back after reopening."""
    owner = key_store.create_owner("alice")

    # 1. First session: initialize, read, replace
    storage_a, ledger_a, adapter_a = open_ledger(temp_data_dir, key_store)
    with ledger_a.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter_a).initialize(create_value_note(10, owner))
    with ledger_a.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter_a).get()
    with ledger_a.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter_a).replace(create_value_note(20, owner))

    root_a = ledger_a.state_root
    stats_a = ledger_a.stats()
    storage_a.close()
    del ledger_a, adapter_a

    # 2. Second session: same database
    storage_b, ledger_b, adapter_b = open_ledger(temp_data_dir, key_store)
    readonly = SingletonCell.new(None, SLOT, ValueNote, adapter_b)

    assert ledger_b.state_root == root_a
    assert ledger_b.stats() == stats_a
    assert ledger_b.height == 3
    assert readonly.is_initialized()
    assert readonly.view().value == 20
    assert len(ledger_b.live_notes(SLOT)) == 1

    # 3. Published nullifiers still bind
    with pytest.raises(DuplicateNullifier):
        with ledger_b.execution() as ctx:
            SingletonCell.new(ctx, SLOT, ValueNote, adapter_b).initialize(create_value_note(1, owner))

    # 4. The chain continues from the loaded state
    with ledger_b.execution() as ctx:
        note = SingletonCell.new(ctx, SLOT, ValueNote, adapter_b).get()
    assert note.value == 20
    assert ledger_b.height == 4
    storage_b.close()


def test_rejected_execution_not_persisted(temp_data_dir, key_store):
    """An execution losing a nullifier race leaves nothing in the database."""
    owner = key_store.create_owner()
    storage, ledger, adapter = open_ledger(temp_data_dir, key_store)

    with ledger.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter).initialize(create_value_note(1, owner))

    winner = ledger.open_execution()
    loser = ledger.open_execution()
    SingletonCell.new(winner, SLOT, ValueNote, adapter).replace(create_value_note(2, owner))
    SingletonCell.new(loser, SLOT, ValueNote, adapter).replace(create_value_note(3, owner))
    ledger.settle(winner)
    with pytest.raises(DuplicateNullifier):
        ledger.settle(loser)
    storage.close()

    storage_b, ledger_b, adapter_b = open_ledger(temp_data_dir, key_store)
    assert ledger_b.height == 2
    assert storage_b.get_note_count() == 2
    assert SingletonCell.new(None, SLOT, ValueNote, adapter_b).view().value == 2
    storage_b.close()


def test_encrypted_logs_persist(temp_data_dir, key_store):
    """Note broadcasts can be decrypted after a restart."""
    owner = key_store.create_owner()
    storage, ledger, adapter = open_ledger(temp_data_dir, key_store)
    with ledger.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter).initialize(
            create_value_note(77, owner), broadcast=True
        )
    storage.close()

    _, ledger_b, _ = open_ledger(temp_data_dir, key_store)
    logs = ledger_b.logs_for(owner)
    assert len(logs) == 1

    secret = key_store.secret_for(owner)
    fields = decrypt_note(logs[0].payload, SLOT, derive_note_key(secret.low, secret.high))
    assert ValueNote.deserialize_content(fields).value == 77


def test_ledgers_sharing_a_database(temp_data_dir, key_store):
    """A ledger that missed another writer's settlement is rejected cleanly."""
    owner = key_store.create_owner()
    storage_a, ledger_a, adapter_a = open_ledger(temp_data_dir, key_store)
    with ledger_a.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter_a).initialize(create_value_note(1, owner))

    storage_b, ledger_b, adapter_b = open_ledger(temp_data_dir, key_store)
    stale = ledger_b.open_execution()
    note = create_value_note(20, owner)
    SingletonCell.new(stale, SLOT, ValueNote, adapter_b).replace(note)

    with ledger_a.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter_a).replace(create_value_note(10, owner))

    with pytest.raises(DuplicateNullifier):
        ledger_b.settle(stale)

    # B caught up with A and kept nothing of its own
    assert ledger_b.height == ledger_a.height == 2
    assert ledger_b.state_root == ledger_a.state_root
    assert SingletonCell.new(None, SLOT, ValueNote, adapter_b).view().value == 10
    assert storage_b.get_note_count() == 2

    # The same note object goes through on a fresh execution
    with ledger_b.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter_b).replace(note)

    ledger_a.refresh()
    assert SingletonCell.new(None, SLOT, ValueNote, adapter_a).view().value == 20
    assert ledger_a.stats() == ledger_b.stats()
    storage_a.close()
    storage_b.close()


def test_failed_write_rolls_back_memory(temp_data_dir, key_store, monkeypatch):
    """The in-memory ledger never keeps a settlement the database refused."""
    owner = key_store.create_owner()
    storage, ledger, adapter = open_ledger(temp_data_dir, key_store)
    with ledger.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter).initialize(create_value_note(1, owner))
    before = ledger.stats()

    def broken(*args):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(storage, "persist_settlement", broken)
    note = create_value_note(2, owner)
    with pytest.raises(sqlite3.OperationalError):
        with ledger.execution() as ctx:
            SingletonCell.new(ctx, SLOT, ValueNote, adapter).replace(note)

    assert ledger.stats() == before
    assert len(ledger.snapshots) == 1
    assert note.header is None
    assert SingletonCell.new(None, SLOT, ValueNote, adapter).view().value == 1

    monkeypatch.undo()
    with ledger.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter).replace(note)
    assert SingletonCell.new(None, SLOT, ValueNote, adapter).view().value == 2
    assert storage.get_note_count() == 2
    storage.close()


def test_write_race_is_retried(temp_data_dir, key_store, monkeypatch):
    """An integrity clash that is not a nullifier conflict is retried."""
    owner = key_store.create_owner()
    storage, ledger, adapter = open_ledger(temp_data_dir, key_store)
    persist = storage.persist_settlement
    calls = []

    def flaky(*args):
        calls.append(args)
        if len(calls) == 1:
            raise sqlite3.IntegrityError("UNIQUE constraint failed: snapshots.height")
        return persist(*args)

    monkeypatch.setattr(storage, "persist_settlement", flaky)
    with ledger.execution() as ctx:
        SingletonCell.new(ctx, SLOT, ValueNote, adapter).initialize(create_value_note(1, owner))

    assert len(calls) == 2
    assert ledger.height == 1
    assert len(ledger.records) == 1
    assert storage.get_note_count() == 1
    storage.close()
