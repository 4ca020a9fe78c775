"""
Sorted-pair Merkle tree over sha256 leaves.

Leaves are sha256(key) in insertion order. Each parent is the sha256 of
its two children concatenated smaller-first, so proofs are plain sibling
lists with no direction flags. An unpaired node is promoted to the next
level unchanged.
"""

import hashlib
from collections.abc import Sequence


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def leaf_hash(key: str) -> bytes:
    return sha256(key.encode("utf-8"))


def _parent(left: bytes, right: bytes) -> bytes:
    return sha256(min(left, right) + max(left, right))


class MerkleTree:
    """Immutable tree built once from its leaves."""

    def __init__(self, leaves: Sequence[bytes]) -> None:
        if not leaves:
            raise ValueError("Merkle tree needs at least one leaf")
        self._layers: list[list[bytes]] = [list(leaves)]
        while len(self._layers[-1]) > 1:
            layer = self._layers[-1]
            next_layer = [_parent(layer[i], layer[i + 1]) for i in range(0, len(layer) - 1, 2)]
            if len(layer) % 2 == 1:
                next_layer.append(layer[-1])
            self._layers.append(next_layer)

    @classmethod
    def from_keys(cls, keys: Sequence[str]) -> "MerkleTree":
        return cls([leaf_hash(key) for key in keys])

    @property
    def root(self) -> bytes:
        return self._layers[-1][0]

    @property
    def leaves(self) -> list[bytes]:
        return list(self._layers[0])

    def proof(self, leaf: bytes) -> list[bytes]:
        """Sibling hashes from `leaf` up to the root; empty if absent."""
        try:
            index = self._layers[0].index(leaf)
        except ValueError:
            return []

        siblings: list[bytes] = []
        for layer in self._layers[:-1]:
            sibling = index ^ 1
            if sibling < len(layer):
                siblings.append(layer[sibling])
            index //= 2
        return siblings

    @staticmethod
    def verify(proof: Sequence[bytes], leaf: bytes, root: bytes) -> bool:
        node = leaf
        for sibling in proof:
            node = _parent(node, sibling)
        return node == root
