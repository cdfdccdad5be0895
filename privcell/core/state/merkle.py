"""
Append-only Merkle tree of note commitments.

Every note commitment ever settled is a leaf; leaves are never removed
(nullifiers track logical consumption). The root summarises the whole
commitment log, and inclusion proofs show a note was committed without
revealing which other notes exist.

Leaves are 32-byte big-endian encodings of unique note hashes; internal
nodes are SHA-256(left || right). The tree is padded with zero leaves to the
next power of two.
"""

from typing import List, Optional, Tuple

from privcell.crypto import sha256, int_to_bytes32
from privcell.utils.validation import MAX_HASH_SIZE, validate_bytes

Proof = List[Tuple[bytes, bool]]


class MerkleTree:
    """
    Append-only binary Merkle tree.

    Attributes:
        leaves: Leaf values in insertion order (32-byte hashes)
    """

    EMPTY_LEAF = bytes(32)

    def __init__(self):
        self.leaves: List[bytes] = []
        self._root_cache: Optional[bytes] = None

    @staticmethod
    def hash_pair(left: bytes, right: bytes) -> bytes:
        return sha256(left + right)

    def insert(self, leaf: bytes) -> int:
        """
        Append a leaf.

        Returns:
            Index of the inserted leaf
        """
        valid, err = validate_bytes(leaf, "leaf", expected_length=MAX_HASH_SIZE)
        if not valid:
            raise ValueError(err)

        self.leaves.append(leaf)
        self._root_cache = None
        return len(self.leaves) - 1

    def insert_commitment(self, commitment: int) -> int:
        return self.insert(int_to_bytes32(commitment))

    def truncate(self, size: int) -> None:
        """Drop every leaf from index ``size`` on. Only used to undo a failed settlement."""
        if not (0 <= size <= len(self.leaves)):
            raise IndexError(f"Cannot truncate {len(self.leaves)} leaves to {size}")
        del self.leaves[size:]
        self._root_cache = None

    def root(self) -> bytes:
        if not self.leaves:
            return self.EMPTY_LEAF
        if self._root_cache is None:
            self._root_cache = self._layers()[-1][0]
        return self._root_cache

    def _layers(self) -> List[List[bytes]]:
        """All layers, leaves first, root layer last."""
        n = len(self.leaves)
        width = 1 << (n - 1).bit_length() if n > 1 else 1
        layer = list(self.leaves) + [self.EMPTY_LEAF] * (width - n)

        layers = [layer]
        while len(layer) > 1:
            layer = [self.hash_pair(layer[i], layer[i + 1]) for i in range(0, len(layer), 2)]
            layers.append(layer)
        return layers

    def prove(self, leaf_index: int) -> Proof:
        """
        Generate an inclusion proof.

        Returns:
            List of (sibling_hash, is_right) tuples, leaf level first.
            is_right=True means the sibling is on the right.
        """
        if not (0 <= leaf_index < len(self.leaves)):
            raise IndexError(f"Leaf index {leaf_index} out of range")

        proof = []
        idx = leaf_index
        for layer in self._layers()[:-1]:
            if idx % 2 == 0:
                proof.append((layer[idx + 1], True))
            else:
                proof.append((layer[idx - 1], False))
            idx //= 2
        return proof

    @classmethod
    def verify(cls, leaf: bytes, proof: Proof, root: bytes) -> bool:
        current = leaf
        for sibling, is_right in proof:
            if is_right:
                current = cls.hash_pair(current, sibling)
            else:
                current = cls.hash_pair(sibling, current)
        return current == root

    def __len__(self) -> int:
        return len(self.leaves)

    def __contains__(self, leaf: bytes) -> bool:
        return leaf in self.leaves
