"""
Unit tests for the privcell command line interface.
"""

import pytest
from click.testing import CliRunner

from privcell.cli.main import cli
from privcell.utils.logger import setup_logging


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    # Handlers created inside CliRunner point at its captured stdout
    setup_logging()


@pytest.fixture
def invoke(runner, tmp_path):
    """Invoke the CLI against a throwaway data directory."""
    def _invoke(*args):
        return runner.invoke(cli, ["--data-dir", str(tmp_path), *args])
    return _invoke


@pytest.fixture
def alice(invoke):
    result = invoke("keys", "create", "--name", "alice")
    assert result.exit_code == 0, result.output
    return "alice"


class TestKeys:
    """Tests for key commands."""

    def test_create_and_list(self, invoke, alice, tmp_path):
        assert (tmp_path / "keys" / "alice.json").exists()

        result = invoke("keys", "list")
        assert result.exit_code == 0
        assert "alice: 0x" in result.output

    def test_list_empty(self, invoke):
        result = invoke("keys", "list")
        assert "No keys found." in result.output

    def test_encrypted_key(self, invoke):
        result = invoke("--password", "pw", "keys", "create", "--name", "bob")
        assert result.exit_code == 0, result.output
        assert "(encrypted)" in invoke("keys", "list").output

        result = invoke("--password", "pw", "cell", "init", "--slot", "1", "--value", "3", "--owner", "bob")
        assert result.exit_code == 0, result.output

        # Locked without the password
        result = invoke("cell", "init", "--slot", "2", "--value", "3", "--owner", "bob")
        assert result.exit_code == 2

        result = invoke("--password", "nope", "cell", "status", "--slot", "1")
        assert result.exit_code == 1
        assert "Wrong password" in result.output

    def test_create_duplicate(self, invoke, alice):
        result = invoke("keys", "create", "--name", "alice")
        assert result.exit_code != 0
        assert "already exists" in result.output


class TestCellCommands:
    """Tests for cell commands."""

    def test_lifecycle(self, invoke, alice):
        result = invoke("cell", "init", "--slot", "1", "--value", "100", "--owner", alice)
        assert result.exit_code == 0, result.output
        assert "Slot 1 initialized with value 100" in result.output

        result = invoke("cell", "view", "--slot", "1")
        assert "Slot 1: 100" in result.output

        result = invoke("cell", "get", "--slot", "1")
        assert result.exit_code == 0, result.output
        assert "Slot 1: 100" in result.output

        result = invoke("cell", "replace", "--slot", "1", "--value", "7", "--owner", alice)
        assert result.exit_code == 0, result.output
        assert "Slot 1 now holds value 7" in result.output

        result = invoke("cell", "view", "--slot", "1")
        assert "Slot 1: 7" in result.output

    def test_double_init(self, invoke, alice):
        invoke("cell", "init", "--slot", "1", "--value", "1", "--owner", alice)
        result = invoke("cell", "init", "--slot", "1", "--value", "2", "--owner", alice)
        assert result.exit_code == 1
        assert "DuplicateNullifier" in result.output

    def test_scoped_init(self, invoke, alice):
        result = invoke("cell", "init", "--slot", "1", "--value", "1", "--owner", alice, "--scoped")
        assert result.exit_code == 0, result.output

        assert "Slot 1 for alice: initialized" in invoke("cell", "status", "--slot", "1", "--owner", alice).output
        assert "Slot 1: uninitialized" in invoke("cell", "status", "--slot", "1").output

    def test_status(self, invoke, alice):
        assert "Slot 3: uninitialized" in invoke("cell", "status", "--slot", "3").output
        invoke("cell", "init", "--slot", "3", "--value", "1", "--owner", alice)
        assert "Slot 3: initialized" in invoke("cell", "status", "--slot", "3").output

    def test_view_empty(self, invoke):
        result = invoke("cell", "view", "--slot", "5")
        assert result.exit_code == 1
        assert "NoObservableNote" in result.output

    def test_replace_uninitialized(self, invoke, alice):
        result = invoke("cell", "replace", "--slot", "5", "--value", "1", "--owner", alice)
        assert result.exit_code == 1
        assert "NoLiveNote" in result.output

    def test_zero_slot(self, invoke, alice):
        result = invoke("cell", "init", "--slot", "0", "--value", "1", "--owner", alice)
        assert result.exit_code == 1
        assert "InvalidSlot" in result.output

    def test_unknown_owner_name(self, invoke):
        result = invoke("cell", "init", "--slot", "1", "--value", "1", "--owner", "nobody")
        assert result.exit_code == 2
        assert "No key named 'nobody'" in result.output

    def test_broadcast_logs(self, invoke, alice):
        invoke("cell", "init", "--slot", "2", "--value", "55", "--owner", alice, "--broadcast")
        result = invoke("cell", "logs", "--owner", alice)
        assert result.exit_code == 0, result.output
        assert "slot 2: value 55" in result.output

    def test_no_logs(self, invoke, alice):
        assert "No logs found." in invoke("cell", "logs", "--owner", alice).output


class TestMisc:
    """Tests for ledger stats and the demo."""

    def test_ledger_stats(self, invoke, alice):
        invoke("cell", "init", "--slot", "1", "--value", "1", "--owner", alice)
        result = invoke("ledger", "stats")
        assert result.exit_code == 0
        assert "height: 1" in result.output
        assert "note_count: 1" in result.output

    def test_demo(self, invoke):
        result = invoke("demo")
        assert result.exit_code == 0, result.output
        assert "SINGLETON CELL DEMO" in result.output
        assert "rejected" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
