"""
Initialization nullifiers.

Before a slot has ever held a note there is no note to nullify, so "has this
slot been initialized" cannot be answered by looking at notes without
scanning them. Instead, initializing a slot publishes a dedicated nullifier
derived from the slot alone (global initialization) or from the slot and an
owner's secret (per-owner initialization):

    global:   H_init(slot)
    per-owner H_init(slot, secret.low, secret.high)

The derivation is deterministic, so a second initialization of the same
(slot, owner) pair collides with the first on the ledger. The per-owner form
cannot be computed, and so cannot be probed, without the owner's secret.
"""

from typing import Optional

from privcell.core.state.keys import KeyStore
from privcell.crypto import hash_initialization_nullifier


class InitializationNullifierRule:
    """Derives the nullifier that marks a (slot, owner) pair initialized."""

    def __init__(self, key_store: KeyStore):
        self.key_store = key_store

    def derive(self, storage_slot: int, owner: Optional[int] = None) -> int:
        """
        Args:
            storage_slot: Slot being initialized
            owner: Optional owner identity scoping the initialization

        Raises:
            UnknownOwner: If an owner is given but has no registered secret
        """
        if owner is None:
            return hash_initialization_nullifier(storage_slot)

        secret = self.key_store.secret_for(owner)
        return hash_initialization_nullifier(storage_slot, secret.low, secret.high)

    __call__ = derive
