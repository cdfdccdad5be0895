"""
Owner secrets and the key store.

An owner identity is an address; the secret bound to it is the owner's
32-byte private key, split into two 128-bit halves so each half fits in a
field element:

    secret.high = int(private_key[:16])
    secret.low  = int(private_key[16:])

The KeyStore is the secret oracle consulted when deriving note nullifiers
and owner-scoped initialization nullifiers.
"""

import base64
import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional

from cryptography.fernet import Fernet, InvalidToken

from privcell.core.errors import UnknownOwner
from privcell.crypto import KeyPair, generate_keypair, keypair_from_private_key, hex_to_bytes
from privcell.utils.logger import get_logger

logger = get_logger("keys")

PBKDF2_ITERATIONS = 100_000


@dataclass(frozen=True)
class OwnerSecret:
    """The two 128-bit halves of an owner's secret key."""
    low: int
    high: int

    def __post_init__(self):
        for name, value in (("low", self.low), ("high", self.high)):
            if not (0 <= value < 2 ** 128):
                raise ValueError(f"secret.{name} must fit in 128 bits")

    @classmethod
    def from_private_key(cls, private_key: bytes) -> "OwnerSecret":
        if len(private_key) != 32:
            raise ValueError("Private key must be 32 bytes")
        return cls(
            low=int.from_bytes(private_key[16:], byteorder="big"),
            high=int.from_bytes(private_key[:16], byteorder="big"),
        )

    def __repr__(self) -> str:
        return "OwnerSecret(<redacted>)"


class KeyStore:
    """
    In-memory map of owner identity -> secret.

    Optionally backed by a directory of JSON key files (one per named owner),
    the layout the CLI uses.
    """

    def __init__(self):
        self._secrets: Dict[int, OwnerSecret] = {}
        self._names: Dict[str, int] = {}

    def add_keypair(self, keypair: KeyPair, name: Optional[str] = None) -> int:
        """Register a keypair and return its owner identity."""
        owner = keypair.owner_id
        self._secrets[owner] = OwnerSecret.from_private_key(keypair.private_key)
        if name is not None:
            self._names[name] = owner
        return owner

    def create_owner(self, name: Optional[str] = None) -> int:
        """Generate a fresh keypair, register it, and return the owner identity."""
        return self.add_keypair(generate_keypair(), name)

    def secret_for(self, owner: int) -> OwnerSecret:
        """
        Look up the secret bound to an owner.

        Raises:
            UnknownOwner: If no secret is registered for the owner
        """
        try:
            return self._secrets[owner]
        except KeyError:
            raise UnknownOwner(owner) from None

    def owner_by_name(self, name: str) -> int:
        try:
            return self._names[name]
        except KeyError:
            raise KeyError(f"Unknown owner name: {name}") from None

    def names(self) -> Dict[str, int]:
        return dict(self._names)

    def __contains__(self, owner: int) -> bool:
        return owner in self._secrets

    def __iter__(self) -> Iterator[int]:
        return iter(self._secrets)

    def __len__(self) -> int:
        return len(self._secrets)

    # =========================================================================
    # Key files
    # =========================================================================

    @staticmethod
    def _fernet(name: str, password: str) -> Fernet:
        # Key name doubles as the PBKDF2 salt
        key = base64.urlsafe_b64encode(
            hashlib.pbkdf2_hmac("sha256", password.encode(), name.encode(), PBKDF2_ITERATIONS)
        )
        return Fernet(key)

    @staticmethod
    def save_keypair(keys_dir: Path, name: str, keypair: KeyPair, password: Optional[str] = None) -> Path:
        """
        Write a keypair to ``<keys_dir>/<name>.json``.

        With a password the private key is stored Fernet-encrypted under a
        PBKDF2 key; without one it is stored in the clear.
        """
        path = keys_dir / f"{name}.json"
        if path.exists():
            raise FileExistsError(f"Key file already exists: {path}")

        data = {"name": name, "address": keypair.address}
        if password:
            token = KeyStore._fernet(name, password).encrypt(keypair.private_key)
            data["encrypted_private_key"] = token.decode("utf-8")
        else:
            data["private_key"] = keypair.private_key_hex
        data["public_key"] = keypair.public_key_hex

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2))
        return path

    @staticmethod
    def read_private_key(data: dict, password: Optional[str] = None) -> Optional[bytes]:
        """
        Recover the private key from a loaded key file.

        Returns:
            The private key, or None if the file is encrypted and no password
            was given

        Raises:
            ValueError: If the password does not decrypt the key
        """
        if "private_key" in data:
            return hex_to_bytes(data["private_key"])
        if "encrypted_private_key" not in data or not password:
            return None

        try:
            return KeyStore._fernet(data["name"], password).decrypt(data["encrypted_private_key"].encode())
        except InvalidToken:
            raise ValueError(f"Wrong password for key '{data['name']}'") from None

    @classmethod
    def load_dir(cls, keys_dir: Path, password: Optional[str] = None) -> "KeyStore":
        """
        Load every key file in a directory.

        Encrypted key files are skipped when no password is given.
        """
        store = cls()
        if not keys_dir.exists():
            return store

        for path in sorted(keys_dir.glob("*.json")):
            data = json.loads(path.read_text())
            data.setdefault("name", path.stem)
            private_key = cls.read_private_key(data, password)
            if private_key is None:
                logger.debug(f"Skipping locked key file {path.name}")
                continue
            store.add_keypair(keypair_from_private_key(private_key), data["name"])

        logger.debug(f"Loaded {len(store)} owner keys from {keys_dir}")
        return store
