"""
Unit tests for configuration loading.
"""

import logging
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from privcell.core.config import ENV_PREFIX, CellConfig, load_config


@pytest.fixture
def clean_env(monkeypatch):
    """Hide PRIVCELL_* variables, and drop any a dotenv file adds."""
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name)
    yield
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            del os.environ[name]


class TestCellConfig:
    """Tests for CellConfig defaults and validation."""

    def test_defaults(self):
        config = CellConfig()
        assert config.data_dir == Path("~/.privcell").expanduser()
        assert config.db_name == "ledger.db"
        assert config.log_level == "INFO"
        assert not config.log_to_file

    def test_derived_paths(self, tmp_path):
        config = CellConfig(data_dir=tmp_path)
        assert config.db_path == tmp_path / "ledger.db"
        assert config.keys_dir == tmp_path / "keys"
        assert config.log_dir == tmp_path / "logs"

    def test_log_level_normalized(self):
        config = CellConfig(log_level="debug")
        assert config.log_level == "DEBUG"
        assert config.logging_level == logging.DEBUG

    def test_bad_log_level(self):
        with pytest.raises(ValidationError):
            CellConfig(log_level="chatty")

    def test_ensure_dirs(self, tmp_path):
        config = CellConfig(data_dir=tmp_path / "data")
        config.ensure_dirs()
        assert config.keys_dir.is_dir()


class TestLoadConfig:
    """Tests for load_config precedence."""

    def test_environment(self, clean_env, monkeypatch, tmp_path):
        monkeypatch.setenv("PRIVCELL_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("PRIVCELL_LOG_TO_FILE", "true")
        config = load_config()
        assert config.data_dir == tmp_path
        assert config.log_to_file

    def test_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("PRIVCELL_LOG_LEVEL=warning\nPRIVCELL_DB_NAME=other.db\n")
        config = load_config(str(env_file))
        assert config.log_level == "WARNING"
        assert config.db_name == "other.db"

    def test_environment_beats_env_file(self, clean_env, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("PRIVCELL_LOG_LEVEL=warning\n")
        monkeypatch.setenv("PRIVCELL_LOG_LEVEL", "error")
        assert load_config(str(env_file)).log_level == "ERROR"

    def test_overrides_beat_environment(self, clean_env, monkeypatch, tmp_path):
        monkeypatch.setenv("PRIVCELL_LOG_LEVEL", "error")
        config = load_config(log_level="DEBUG", data_dir=None)
        assert config.log_level == "DEBUG"

    def test_key_password(self, clean_env, monkeypatch):
        assert load_config().password is None

        monkeypatch.setenv("PRIVCELL_KEY_PASSWORD", "hunter2")
        config = load_config()
        assert config.password == "hunter2"
        assert "hunter2" not in repr(config)

    def test_invalid_environment_value(self, clean_env, monkeypatch):
        monkeypatch.setenv("PRIVCELL_LOG_TO_FILE", "sometimes")
        with pytest.raises(ValidationError):
            load_config()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
