"""
Revocation Registry
===================

A set of revoked credential keys mirrored by a Merkle tree. The tree is
rebuilt from the full key list on every mutation; the key list itself is
kept in an injected store so independent registries (one per issuer, one
per test) never share state.

Version: 0.1.0
"""

import asyncio
import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Protocol

from shared.logging import get_logger

from services.revocation.merkle import MerkleTree, leaf_hash


logger = get_logger(__name__)


class RevokedKeyStore(Protocol):
    """Persistence for the ordered revoked-key list."""

    async def load(self) -> list[str]: ...

    async def save(self, keys: Sequence[str]) -> None: ...


class InMemoryRevokedKeyStore:
    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._keys = list(keys)

    async def load(self) -> list[str]:
        return list(self._keys)

    async def save(self, keys: Sequence[str]) -> None:
        self._keys = list(keys)


class FileRevokedKeyStore:
    """Revoked keys as a JSON array on disk."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read(self) -> list[str]:
        if not self.path.exists():
            return []
        return list(json.loads(self.path.read_text(encoding="utf-8")))

    def _write(self, keys: list[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(keys, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    async def load(self) -> list[str]:
        return await asyncio.to_thread(self._read)

    async def save(self, keys: Sequence[str]) -> None:
        await asyncio.to_thread(self._write, list(keys))


class RevocationMerkleRegistry:
    """
    Revoked-key set with Merkle membership proofs.

    Usage:
        registry = RevocationMerkleRegistry(FileRevokedKeyStore("revoked.json"))
        await registry.add(commitment)
        proof = await registry.prove_membership(commitment)
        assert await registry.is_revoked(commitment, proof)
    """

    def __init__(self, store: RevokedKeyStore | None = None) -> None:
        self._store = store or InMemoryRevokedKeyStore()
        self._keys: list[str] = []
        self._tree: MerkleTree | None = None
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def keys(self) -> list[str]:
        """Revoked keys as of the last load or change."""
        return list(self._keys)

    def _rebuild(self) -> None:
        self._tree = MerkleTree.from_keys(self._keys) if self._keys else None

    async def load(self) -> None:
        """Read the key list from the store and build the tree."""
        self._keys = await self._store.load()
        self._rebuild()
        self._loaded = True
        logger.debug("revocation_registry_loaded", keys=len(self._keys), root=self.root)

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    @property
    def root(self) -> str | None:
        """Hex Merkle root as of the last load or change, None while empty."""
        return self._tree.root.hex() if self._tree else None

    async def add(self, key: str) -> bool:
        """
        Revoke `key`.

        Returns:
            False if it was already revoked
        """
        async with self._lock:
            await self._ensure_loaded()
            if key in self._keys:
                logger.debug("key_already_revoked", key=key)
                return False
            self._keys.append(key)
            self._rebuild()
            await self._store.save(self._keys)

        logger.info("key_revoked", key=key, root=self.root)
        return True

    async def remove(self, key: str) -> bool:
        """
        Reinstate `key`.

        Returns:
            False if it was not revoked
        """
        async with self._lock:
            await self._ensure_loaded()
            if key not in self._keys:
                return False
            self._keys = [k for k in self._keys if k != key]
            self._rebuild()
            await self._store.save(self._keys)

        logger.info("key_reinstated", key=key, root=self.root)
        return True

    def _proof(self, key: str) -> list[str]:
        if self._tree is None:
            return []
        return [sibling.hex() for sibling in self._tree.proof(leaf_hash(key))]

    async def prove_membership(self, key: str) -> list[str]:
        """Hex sibling hashes proving `key` is in the current tree."""
        await self._ensure_loaded()
        return self._proof(key)

    async def is_revoked(self, key: str, proof: Sequence[str] | None = None) -> bool:
        """
        True only if `proof` (generated when omitted) verifies against the
        current root and `key` is in the set.
        """
        await self._ensure_loaded()
        if self._tree is None:
            return False
        if proof is None:
            proof = self._proof(key)
        valid = MerkleTree.verify(
            [bytes.fromhex(sibling) for sibling in proof],
            leaf_hash(key),
            self._tree.root,
        )
        return valid and key in self._keys
