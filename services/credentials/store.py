"""
Credential Stores
=================

Holder-side persistence for issued credentials. The store is pluggable;
the service only needs `save`, `query` and `get_did`.

Version: 0.1.0
"""

import asyncio
import json
import re
from pathlib import Path
from typing import Protocol

from shared.config import settings
from shared.logging import get_logger

from services.credentials.models import Credential


logger = get_logger(__name__)


def credential_id(entity_id: str, display_name: str | None, holder_did: str) -> str:
    """Storage key: entityId-displayName-holderDid."""
    return f"{entity_id}-{display_name or ''}-{holder_did}"


def _credential_id_for(credential: Credential, holder_did: str) -> str:
    subject = credential.credential_subject
    if not subject.entity_id:
        raise ValueError("Credential subject has no entity id")
    return credential_id(subject.entity_id, subject.display_name, holder_did)


class CredentialStore(Protocol):
    """Holder credential storage."""

    async def save(self, credential: Credential) -> str: ...

    async def query(self) -> list[Credential]: ...

    async def get_did(self) -> str: ...


class InMemoryCredentialStore:
    """Process-local store for one holder."""

    def __init__(self, holder_did: str) -> None:
        self._holder_did = holder_did
        self._credentials: dict[str, Credential] = {}

    async def save(self, credential: Credential) -> str:
        vc_id = _credential_id_for(credential, self._holder_did)
        self._credentials[vc_id] = credential.model_copy(deep=True)
        return vc_id

    async def query(self) -> list[Credential]:
        return [c.model_copy(deep=True) for c in self._credentials.values()]

    async def get_did(self) -> str:
        return self._holder_did


class FileCredentialStore:
    """
    JSON file per holder DID, keyed by credential id.

    The local-device analog of a wallet credential store.
    """

    def __init__(self, holder_did: str, directory: Path | str | None = None) -> None:
        self._holder_did = holder_did
        self._directory = Path(directory) if directory else settings.credential.store_dir
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", self._holder_did)
        return self._directory / f"{safe_name}.json"

    def _read(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        return json.loads(self.path.read_text(encoding="utf-8"))

    def _write(self, documents: dict[str, dict]) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(documents, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)

    async def save(self, credential: Credential) -> str:
        vc_id = _credential_id_for(credential, self._holder_did)
        async with self._lock:
            documents = await asyncio.to_thread(self._read)
            documents[vc_id] = credential.to_document()
            await asyncio.to_thread(self._write, documents)
        logger.debug("credential_saved", vc_id=vc_id, path=str(self.path))
        return vc_id

    async def query(self) -> list[Credential]:
        async with self._lock:
            documents = await asyncio.to_thread(self._read)
        return [Credential.model_validate(doc) for doc in documents.values()]

    async def get_did(self) -> str:
        return self._holder_did
