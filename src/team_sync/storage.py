"""Revisioned document store and local key-value store.

Two collaborators sit behind small protocols:

- ``DocumentStore``: documents keyed by id, each write producing a new
  opaque revision token. Writes use optimistic concurrency: a put must carry
  the revision it was based on, otherwise ``ConcurrencyConflict`` is raised.
  Reads of a missing id raise ``DocumentNotFound``.
- ``KeyValueStore``: per-user local state (read state, setting overrides).

Both come with an in-memory backend (tests, embedding) and a JSON-file backend
that serializes deterministically, writes atomically and serializes writers
with an OS file lock.
"""

import contextlib
import hashlib
import json
from abc import ABC, abstractmethod
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, unquote

from pydantic import BaseModel, Field, ValidationError

from team_sync.locking import LockTimeout, file_lock
from team_sync.utils.atomic_write import atomic_write_json, dumps_deterministic


class StorageError(Exception):
    """Raised when a store cannot be read or written."""

    pass


class DocumentNotFound(StorageError):  # noqa: N818
    """Raised when a document id (or the requested revision of it) does not exist."""

    pass


class ConcurrencyConflict(StorageError):  # noqa: N818
    """Raised when a write was based on a revision that is no longer current."""

    pass


class Document(BaseModel):
    """One revision of a stored document."""

    id: str = Field(..., min_length=1)
    rev: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    deleted: bool = False


def next_revision(previous: str | None, data: dict[str, Any]) -> str:
    """Build the revision token following ``previous`` for ``data``.

    Tokens look like ``<generation>-<digest>``. Callers must treat them as
    opaque and compare them only for equality.
    """
    generation = int(previous.split("-", 1)[0]) + 1 if previous else 1
    digest = hashlib.sha256(dumps_deterministic(data).encode("utf-8")).hexdigest()[:32]
    return f"{generation}-{digest}"


class DocumentStore(Protocol):
    def get(self, doc_id: str, rev: str | None = None) -> Document: ...

    def put(self, doc: Document) -> Document: ...

    def delete(self, doc_id: str, rev: str) -> Document: ...

    def list_by_prefix(self, prefix: str) -> list[Document]: ...

    def revisions(self, doc_id: str) -> list[str]: ...


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class BaseDocumentStore(ABC):
    """Revision bookkeeping shared by the document store backends.

    Backends only persist whole revision histories per document id; this class
    decides which revision is current and enforces revision matching.
    """

    @abstractmethod
    def _read_history(self, doc_id: str) -> list[Document]:
        """Return all revisions of ``doc_id``, oldest first (empty if unknown)."""

    @abstractmethod
    def _write_history(self, doc_id: str, history: list[Document]) -> None:
        """Persist the full revision history of ``doc_id``."""

    @abstractmethod
    def _all_ids(self) -> list[str]:
        """Return every document id known to the backend."""

    @contextlib.contextmanager
    def _locked(self, doc_id: str) -> Iterator[None]:
        yield

    def get(self, doc_id: str, rev: str | None = None) -> Document:
        """Fetch the current revision, or a specific one when ``rev`` is given.

        Raises:
            DocumentNotFound: If the document, or that revision, does not exist
                or the requested revision is a deletion
        """
        history = self._read_history(doc_id)
        if not history:
            raise DocumentNotFound(f"Document not found: {doc_id}")

        if rev is None:
            doc = history[-1]
        else:
            matches = [d for d in history if d.rev == rev]
            if not matches:
                raise DocumentNotFound(f"Revision {rev} of {doc_id} not found")
            doc = matches[0]

        if doc.deleted:
            raise DocumentNotFound(f"Document deleted: {doc_id}")
        return doc.model_copy(deep=True)

    def put(self, doc: Document) -> Document:
        """Store a new revision if ``doc.rev`` matches the current revision.

        New (or deleted) documents must be written with ``rev=None``.

        Returns:
            The stored document carrying its new revision

        Raises:
            ConcurrencyConflict: If ``doc.rev`` is not the current revision
        """
        with self._locked(doc.id):
            history = self._read_history(doc.id)
            head = history[-1] if history else None
            expected = head.rev if head is not None and not head.deleted else None
            if doc.rev != expected:
                raise ConcurrencyConflict(
                    f"Revision mismatch for {doc.id}: expected {expected}, got {doc.rev}"
                )

            stored = Document(
                id=doc.id,
                rev=next_revision(head.rev if head else None, doc.data),
                data=doc.data,
            )
            self._write_history(doc.id, history + [stored])
            return stored.model_copy(deep=True)

    def delete(self, doc_id: str, rev: str) -> Document:
        """Record a deletion revision (the history is kept).

        Raises:
            DocumentNotFound: If the document does not exist
            ConcurrencyConflict: If ``rev`` is not the current revision
        """
        with self._locked(doc_id):
            history = self._read_history(doc_id)
            if not history or history[-1].deleted:
                raise DocumentNotFound(f"Document not found: {doc_id}")
            head = history[-1]
            if head.rev != rev:
                raise ConcurrencyConflict(
                    f"Revision mismatch for {doc_id}: expected {head.rev}, got {rev}"
                )
            tombstone = Document(
                id=doc_id, rev=next_revision(head.rev, {}), deleted=True
            )
            self._write_history(doc_id, history + [tombstone])
            return tombstone

    def list_by_prefix(self, prefix: str) -> list[Document]:
        """Current revisions of all live documents whose id starts with ``prefix``."""
        docs = []
        for doc_id in sorted(self._all_ids()):
            if not doc_id.startswith(prefix):
                continue
            history = self._read_history(doc_id)
            if history and not history[-1].deleted:
                docs.append(history[-1].model_copy(deep=True))
        return docs

    def revisions(self, doc_id: str) -> list[str]:
        """All revision tokens of ``doc_id``, oldest first."""
        return [d.rev for d in self._read_history(doc_id) if d.rev is not None]


class MemoryDocumentStore(BaseDocumentStore):
    """Process-local document store."""

    def __init__(self) -> None:
        self._docs: dict[str, list[Document]] = {}

    def _read_history(self, doc_id: str) -> list[Document]:
        return list(self._docs.get(doc_id, []))

    def _write_history(self, doc_id: str, history: list[Document]) -> None:
        self._docs[doc_id] = [d.model_copy(deep=True) for d in history]

    def _all_ids(self) -> list[str]:
        return list(self._docs)


class FileDocumentStore(BaseDocumentStore):
    """Document store persisted as one JSON history file per document.

    Layout: ``<root>/docs/<percent-encoded id>.json``. The file holds the
    document id and its revisions, oldest first.
    """

    def __init__(self, root: Path, lock_timeout: float = 5.0) -> None:
        self.root = Path(root)
        self.lock_timeout = lock_timeout

    @property
    def docs_dir(self) -> Path:
        return self.root / "docs"

    def path_for(self, doc_id: str) -> Path:
        return self.docs_dir / f"{quote(doc_id, safe='')}.json"

    def doc_id_for(self, path: Path) -> str | None:
        """Map a history file back to its document id, or None if it is not one."""
        path = Path(path)
        if path.parent.resolve() != self.docs_dir.resolve():
            return None
        if path.suffix != ".json" or path.name.startswith(".tmp_"):
            return None
        return unquote(path.name[: -len(".json")])

    @contextlib.contextmanager
    def _locked(self, doc_id: str) -> Iterator[None]:
        try:
            with file_lock(self.path_for(doc_id), timeout=self.lock_timeout):
                yield
        except LockTimeout as e:
            raise StorageError(f"Store is busy, could not lock {doc_id}: {e}") from e

    def _read_history(self, doc_id: str) -> list[Document]:
        path = self.path_for(doc_id)
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
            return [Document.model_validate(r) for r in raw["revisions"]]
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValidationError) as e:
            raise StorageError(f"Failed to read document file {path}: {e}") from e

    def _write_history(self, doc_id: str, history: list[Document]) -> None:
        payload = {
            "id": doc_id,
            "revisions": [d.model_dump(mode="json") for d in history],
        }
        try:
            atomic_write_json(payload, self.path_for(doc_id))
        except (OSError, TypeError) as e:
            raise StorageError(f"Failed to write document {doc_id}: {e}") from e

    def _all_ids(self) -> list[str]:
        if not self.docs_dir.is_dir():
            return []
        ids = []
        for path in self.docs_dir.glob("*.json"):
            doc_id = self.doc_id_for(path)
            if doc_id is not None:
                ids.append(doc_id)
        return ids


class MemoryKeyValueStore:
    """Process-local key-value store."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonKeyValueStore:
    """Key-value store kept in a single JSON object file.

    Every write re-reads the file under an exclusive lock, so concurrent
    processes of the same user do not lose each other's keys.
    """

    def __init__(self, path: Path, lock_timeout: float = 5.0) -> None:
        self.path = Path(path)
        self.lock_timeout = lock_timeout

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Expected a JSON object in {self.path}")
        return data

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            with file_lock(self.path, timeout=self.lock_timeout):
                yield
        except LockTimeout as e:
            raise StorageError(f"Local state is busy: {e}") from e

    def _save(self, data: dict[str, Any]) -> None:
        try:
            atomic_write_json(data, self.path)
        except (OSError, TypeError) as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e

    def get(self, key: str) -> Any | None:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._locked():
            data = self._load()
            data[key] = value
            self._save(data)

    def delete(self, key: str) -> None:
        with self._locked():
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)
