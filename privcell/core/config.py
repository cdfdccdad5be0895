"""
Configuration for privcell.

Defines where the ledger database and owner keys live and how logging is set
up. Values come from defaults, an optional dotenv file, and PRIVCELL_*
environment variables, in increasing order of precedence.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator

ENV_PREFIX = "PRIVCELL_"


class CellConfig(BaseModel):
    """Runtime configuration parameters"""

    # Paths
    data_dir: Path = Field(default=Path("~/.privcell"), validate_default=True)
    db_name: str = "ledger.db"
    keys_dir_name: str = "keys"
    key_password: Optional[SecretStr] = None

    # Logging
    log_level: str = "INFO"
    log_to_file: bool = False

    @field_validator("data_dir")
    @classmethod
    def _expand_data_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name

    @property
    def keys_dir(self) -> Path:
        return self.data_dir / self.keys_dir_name

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def logging_level(self) -> int:
        return logging.getLevelName(self.log_level)

    @property
    def password(self) -> Optional[str]:
        """Plain key-file password, if one is configured"""
        return self.key_password.get_secret_value() if self.key_password else None

    def ensure_dirs(self) -> None:
        """Create the data and key directories"""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.keys_dir.mkdir(exist_ok=True, parents=True)


def load_config(env_file: Optional[str] = None, **overrides) -> CellConfig:
    """
    Load configuration from a dotenv file and the environment.

    Args:
        env_file: Optional path to a dotenv file. Variables already present in
            the environment are not overridden by the file.
        **overrides: Explicit values that win over everything else

    Returns:
        CellConfig instance

    Raises:
        pydantic.ValidationError: If a value is malformed
    """
    if env_file:
        load_dotenv(env_file, override=False)

    values = {}
    for field_name in CellConfig.model_fields:
        env_value = os.environ.get(ENV_PREFIX + field_name.upper())
        if env_value is not None:
            values[field_name] = env_value

    values.update({k: v for k, v in overrides.items() if v is not None})
    return CellConfig(**values)
