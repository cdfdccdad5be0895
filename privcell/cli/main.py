"""
privcell CLI - Command Line Interface for private singleton cells

Main entry point for all CLI commands. Every command runs against the
SQLite-backed ledger and the key directory under --data-dir.
"""

import json
from functools import wraps
from typing import Optional

import click

from privcell import __version__
from privcell.core.config import load_config
from privcell.core.errors import CellError
from privcell.utils.logger import setup_logging, get_logger

logger = get_logger("cli")


def _runtime(ctx):
    """Open (once per invocation) the ledger, key store and adapter."""
    from privcell.core.state import KeyStore, LedgerNoteAdapter, NoteLedger
    from privcell.core.storage import StorageManager

    if "adapter" not in ctx.obj:
        config = ctx.obj["config"]
        storage = StorageManager(config.data_dir, config.db_name)
        ledger = NoteLedger(storage_manager=storage)
        try:
            key_store = KeyStore.load_dir(config.keys_dir, config.password)
        except ValueError as e:
            raise click.ClickException(str(e))
        ctx.obj["ledger"] = ledger
        ctx.obj["key_store"] = key_store
        ctx.obj["adapter"] = LedgerNoteAdapter(ledger, key_store)

    return ctx.obj["ledger"], ctx.obj["key_store"], ctx.obj["adapter"]


def _owner(key_store, name: str) -> int:
    try:
        return key_store.owner_by_name(name)
    except KeyError:
        raise click.BadParameter(f"No key named '{name}' (create one with 'privcell keys create')")


def cell_errors(f):
    """Report cell failures as CLI errors instead of tracebacks."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except CellError as e:
            raise click.ClickException(f"{type(e).__name__}: {e}")
    return wrapper


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (default: ~/.privcell)")
@click.option("--env-file", default=None, help="dotenv file with PRIVCELL_* settings")
@click.option("--password", default=None, help="Password for encrypted key files (or PRIVCELL_KEY_PASSWORD)")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, debug, data_dir, env_file, password):
    """privcell - private single-value state cells"""
    config = load_config(
        env_file,
        data_dir=data_dir,
        log_level="DEBUG" if debug else None,
        key_password=password,
    )
    setup_logging(
        level=config.logging_level,
        log_dir=str(config.log_dir),
        log_to_file=config.log_to_file,
    )
    config.ensure_dirs()

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Key Commands
# =============================================================================

@cli.group()
def keys():
    """Owner key management commands"""
    pass


@keys.command("create")
@click.option("--name", default="default", help="Key name")
@click.pass_context
def keys_create(ctx, name):
    """Generate a new owner key"""
    from privcell.core.state import KeyStore
    from privcell.crypto import generate_keypair

    config = ctx.obj["config"]
    kp = generate_keypair()
    try:
        path = KeyStore.save_keypair(config.keys_dir, name, kp, config.password)
    except FileExistsError as e:
        raise click.ClickException(str(e))

    click.echo(f"✓ Key created: {name}")
    click.echo(f"  Owner: {kp.address}")
    click.echo(f"  Saved to: {path}")
    if config.password:
        click.echo("  ⚠️  Remember your password - it cannot be recovered!")
    else:
        click.echo("  ⚠️  The key file is not encrypted (pass --password to encrypt it)")


@keys.command("list")
@click.pass_context
def keys_list(ctx):
    """List owner keys"""
    keys_dir = ctx.obj["config"].keys_dir
    key_files = sorted(keys_dir.glob("*.json"))
    if not key_files:
        click.echo("No keys found.")
        return

    for key_file in key_files:
        data = json.loads(key_file.read_text())
        lock = " (encrypted)" if "encrypted_private_key" in data else ""
        click.echo(f"  {data.get('name', key_file.stem)}: {data['address']}{lock}")


# =============================================================================
# Cell Commands
# =============================================================================

@cli.group()
def cell():
    """Singleton cell commands"""
    pass


@cell.command("init")
@click.option("--slot", type=int, required=True, help="Storage slot (non-zero)")
@click.option("--value", type=int, required=True, help="Initial value")
@click.option("--owner", "owner_name", required=True, help="Key name of the note owner")
@click.option("--scoped/--global", default=False, help="Scope initialization to the owner")
@click.option("--broadcast", is_flag=True, help="Emit an encrypted note log for the owner")
@click.pass_context
@cell_errors
def cell_init(ctx, slot, value, owner_name, scoped, broadcast):
    """Initialize a slot with its first value"""
    from privcell.core.state import SingletonCell, ValueNote, create_value_note

    ledger, key_store, adapter = _runtime(ctx)
    owner = _owner(key_store, owner_name)

    with ledger.execution() as execution:
        singleton = SingletonCell.new(execution, slot, ValueNote, adapter)
        singleton.initialize(
            create_value_note(value, owner),
            owner=owner if scoped else None,
            broadcast=broadcast,
        )

    click.echo(f"✓ Slot {slot} initialized with value {value}")


@cell.command("replace")
@click.option("--slot", type=int, required=True, help="Storage slot")
@click.option("--value", type=int, required=True, help="New value")
@click.option("--owner", "owner_name", required=True, help="Key name of the new note's owner")
@click.option("--broadcast", is_flag=True, help="Emit an encrypted note log for the owner")
@click.pass_context
@cell_errors
def cell_replace(ctx, slot, value, owner_name, broadcast):
    """Replace the value held in a slot"""
    from privcell.core.state import SingletonCell, ValueNote, create_value_note

    ledger, key_store, adapter = _runtime(ctx)
    owner = _owner(key_store, owner_name)

    with ledger.execution() as execution:
        singleton = SingletonCell.new(execution, slot, ValueNote, adapter)
        singleton.replace(create_value_note(value, owner), broadcast=broadcast)

    click.echo(f"✓ Slot {slot} now holds value {value}")


@cell.command("get")
@click.option("--slot", type=int, required=True, help="Storage slot")
@click.pass_context
@cell_errors
def cell_get(ctx, slot):
    """Provable read: refresh the slot's note and print its value"""
    from privcell.core.state import SingletonCell, ValueNote

    ledger, _, adapter = _runtime(ctx)

    with ledger.execution() as execution:
        note = SingletonCell.new(execution, slot, ValueNote, adapter).get()

    click.echo(f"Slot {slot}: {note.value} (owner 0x{note.owner:040x})")


@cell.command("view")
@click.option("--slot", type=int, required=True, help="Storage slot")
@click.pass_context
@cell_errors
def cell_view(ctx, slot):
    """Observation-only read of a slot"""
    from privcell.core.state import SingletonCell, ValueNote

    _, _, adapter = _runtime(ctx)
    note = SingletonCell.new(None, slot, ValueNote, adapter).view()
    click.echo(f"Slot {slot}: {note.value} (owner 0x{note.owner:040x})")


@cell.command("status")
@click.option("--slot", type=int, required=True, help="Storage slot")
@click.option("--owner", "owner_name", default=None, help="Check owner-scoped initialization")
@click.pass_context
@cell_errors
def cell_status(ctx, slot, owner_name: Optional[str]):
    """Show whether a slot is initialized"""
    from privcell.core.state import SingletonCell, ValueNote

    _, key_store, adapter = _runtime(ctx)
    owner = _owner(key_store, owner_name) if owner_name else None

    singleton = SingletonCell.new(None, slot, ValueNote, adapter)
    state = "initialized" if singleton.is_initialized(owner) else "uninitialized"
    scope = f" for {owner_name}" if owner_name else ""
    click.echo(f"Slot {slot}{scope}: {state}")


@cell.command("logs")
@click.option("--owner", "owner_name", required=True, help="Key name whose logs to decrypt")
@click.pass_context
def cell_logs(ctx, owner_name):
    """Decrypt note broadcasts addressed to an owner"""
    from privcell.core.state import ValueNote
    from privcell.crypto.note_encryption import decrypt_note, derive_note_key

    ledger, key_store, _ = _runtime(ctx)
    owner = _owner(key_store, owner_name)
    secret = key_store.secret_for(owner)
    key = derive_note_key(secret.low, secret.high)

    logs = ledger.logs_for(owner)
    if not logs:
        click.echo("No logs found.")
        return

    for log in logs:
        note = ValueNote.deserialize_content(decrypt_note(log.payload, log.storage_slot, key))
        click.echo(f"  slot {log.storage_slot}: value {note.value}")


# =============================================================================
# Ledger Commands
# =============================================================================

@cli.group()
def ledger():
    """Ledger inspection commands"""
    pass


@ledger.command("stats")
@click.pass_context
def ledger_stats(ctx):
    """Show ledger statistics"""
    note_ledger, _, _ = _runtime(ctx)
    for key, value in note_ledger.stats().items():
        click.echo(f"  {key}: {value}")


# =============================================================================
# Demo Command
# =============================================================================

@cli.command("demo")
def demo():
    """Run an in-memory walkthrough of a singleton cell"""
    from privcell.core.state import (
        KeyStore,
        LedgerNoteAdapter,
        NoteLedger,
        SingletonCell,
        ValueNote,
        create_value_note,
    )
    from privcell.core.errors import DuplicateNullifier

    click.echo("=" * 60)
    click.echo("  PRIVCELL - SINGLETON CELL DEMO")
    click.echo("=" * 60)
    click.echo()

    key_store = KeyStore()
    alice = key_store.create_owner("alice")
    ledger = NoteLedger()
    adapter = LedgerNoteAdapter(ledger, key_store)
    slot = 1

    click.echo("📦 Initializing slot 1 with 100...")
    with ledger.execution() as execution:
        SingletonCell.new(execution, slot, ValueNote, adapter).initialize(create_value_note(100, alice))
    click.echo(f"  ✓ {ledger}")

    click.echo("🔍 Provable read (get)...")
    with ledger.execution() as execution:
        note = SingletonCell.new(execution, slot, ValueNote, adapter).get()
    click.echo(f"  ✓ value={note.value}, note refreshed: {ledger}")

    click.echo("✏️  Replacing with 250...")
    with ledger.execution() as execution:
        SingletonCell.new(execution, slot, ValueNote, adapter).replace(create_value_note(250, alice))
    click.echo(f"  ✓ view() = {SingletonCell.new(None, slot, ValueNote, adapter).view().value}")

    click.echo("🚫 Initializing again...")
    try:
        with ledger.execution() as execution:
            SingletonCell.new(execution, slot, ValueNote, adapter).initialize(create_value_note(1, alice))
    except DuplicateNullifier:
        click.echo("  ✓ rejected: initialization nullifier already published")

    click.echo()
    click.echo("📊 Final Statistics:")
    for key, value in ledger.stats().items():
        click.echo(f"  {key}: {value}")


if __name__ == "__main__":
    cli()
