"""Typed views over store documents.

The store holds two families of documents side by side:

- team records, whose id prefix says which model they are
  (``team:config``, ``team:annotation:<ulid>``, ``team:settings:<plugin>``, ...)
- ordinary file documents keyed by vault path, holding text content

This module is the only place that inspects id prefixes. Everything else asks
``record_kind``/``to_record`` for a typed record, or uses ``fetch_by_path`` and
``put_file`` for file content.
"""

from datetime import datetime
from enum import Enum
from typing import Union

from pydantic import BaseModel, ValidationError

from team_sync.events import ChangeEvent
from team_sync.models import (
    ANNOTATION_PREFIX,
    NOTIFICATION_CONFIG_ID,
    NOTIFICATION_PREFS_PREFIX,
    READSTATE_PREFIX,
    SETTINGS_PREFIX,
    TEAM_CONFIG_ID,
    TEAM_PREFIX,
    Annotation,
    NotificationConfig,
    ReadStateDocument,
    TeamConfig,
    TeamSettingsEntry,
    UserNotificationPrefs,
    utc_now,
    utc_timestamp,
)
from team_sync.storage import (
    ConcurrencyConflict,
    Document,
    DocumentNotFound,
    DocumentStore,
)
from team_sync.utils.logging import get_logger

TeamRecord = Union[
    TeamConfig,
    Annotation,
    TeamSettingsEntry,
    NotificationConfig,
    UserNotificationPrefs,
    ReadStateDocument,
]


class RecordKind(str, Enum):
    """Kinds of record sharing the document store."""

    TEAM_CONFIG = "team_config"
    ANNOTATION = "annotation"
    SETTINGS = "settings"
    NOTIFICATION_CONFIG = "notification_config"
    NOTIFICATION_PREFS = "notification_prefs"
    READ_STATE = "read_state"
    FILE = "file"


# (prefix, exact match, kind, model). Exact ids are listed before the prefixes
# that would otherwise swallow them.
_RECORD_TABLE: list[tuple[str, bool, RecordKind, type[BaseModel]]] = [
    (TEAM_CONFIG_ID, True, RecordKind.TEAM_CONFIG, TeamConfig),
    (NOTIFICATION_CONFIG_ID, True, RecordKind.NOTIFICATION_CONFIG, NotificationConfig),
    (NOTIFICATION_PREFS_PREFIX, False, RecordKind.NOTIFICATION_PREFS, UserNotificationPrefs),
    (ANNOTATION_PREFIX, False, RecordKind.ANNOTATION, Annotation),
    (SETTINGS_PREFIX, False, RecordKind.SETTINGS, TeamSettingsEntry),
    (READSTATE_PREFIX, False, RecordKind.READ_STATE, ReadStateDocument),
]


def is_team_doc(doc_id: str) -> bool:
    """True for team bookkeeping documents (never shown as file changes)."""
    return doc_id.startswith(TEAM_PREFIX) or doc_id.startswith(READSTATE_PREFIX)


def record_kind(doc_id: str) -> RecordKind | None:
    """Classify a document id.

    Returns:
        The record kind, ``RecordKind.FILE`` for ordinary documents, or None
        for an id under ``team:`` that matches no known record kind.
    """
    for prefix, exact, kind, _model in _RECORD_TABLE:
        if (exact and doc_id == prefix) or (not exact and doc_id.startswith(prefix)):
            return kind
    if is_team_doc(doc_id):
        return None
    return RecordKind.FILE


def model_for(kind: RecordKind) -> type[BaseModel] | None:
    for _prefix, _exact, table_kind, model in _RECORD_TABLE:
        if table_kind == kind:
            return model
    return None


def to_record(doc: Document) -> TeamRecord | None:
    """Parse a stored document into its typed record.

    Returns:
        The record with ``id``/``rev`` taken from the document, or None for
        file documents, unknown team ids, deletions and documents that fail
        validation (logged).
    """
    if doc.deleted:
        return None
    kind = record_kind(doc.id)
    model = model_for(kind) if kind is not None else None
    if model is None:
        return None
    try:
        return model.model_validate({**doc.data, "id": doc.id, "rev": doc.rev})  # type: ignore[return-value]
    except ValidationError as e:
        get_logger().warning(f"Ignoring malformed {kind.value} document {doc.id}: {e}")
        return None


def to_document(record: TeamRecord) -> Document:
    """Wrap a record for storage; its ``rev`` becomes the expected revision."""
    data = record.model_dump(mode="json", exclude={"id", "rev"})
    return Document(id=record.id, rev=record.rev, data=data)


def get_record(store: DocumentStore, doc_id: str, model: type[BaseModel]) -> TeamRecord | None:
    """Fetch one record, translating a missing document into None."""
    try:
        doc = store.get(doc_id)
    except DocumentNotFound:
        return None
    record = to_record(doc)
    return record if isinstance(record, model) else None


def list_records(store: DocumentStore, prefix: str, model: type[BaseModel]) -> list[TeamRecord]:
    """All live records of one kind, in id order."""
    records = []
    for doc in store.list_by_prefix(prefix):
        record = to_record(doc)
        if isinstance(record, model):
            records.append(record)
    return records


def save_record(store: DocumentStore, record: TeamRecord) -> bool:
    """Write a record, updating its ``rev`` on success.

    Returns:
        False if the write lost an optimistic-concurrency race
    """
    try:
        stored = store.put(to_document(record))
    except ConcurrencyConflict as e:
        get_logger().warning(f"Write conflict on {record.id}: {e}")
        return False
    record.rev = stored.rev
    return True


# ---------------------------------------------------------------------------
# File documents
# ---------------------------------------------------------------------------


def fetch_file(store: DocumentStore, path: str, rev: str | None = None) -> Document | None:
    """Fetch a file document (current or a given revision), None if absent."""
    try:
        return store.get(path, rev)
    except DocumentNotFound:
        return None


def fetch_by_path(store: DocumentStore, path: str, rev: str | None = None) -> str | None:
    """Text content of a file at its current (or given) revision, None if absent."""
    doc = fetch_file(store, path, rev)
    if doc is None:
        return None
    content = doc.data.get("content", "")
    return content if isinstance(content, str) else str(content)


def put_file(
    store: DocumentStore,
    path: str,
    content: str,
    modified_by: str,
    rev: str | None = None,
) -> str | None:
    """Write file content attributed to ``modified_by``.

    Args:
        store: Document store
        path: File path (document id); must not be a team record id
        content: New text content
        modified_by: Username recorded for the change feed
        rev: Revision the edit was based on (None for a new file)

    Returns:
        The new revision token, or None if the write conflicted

    Raises:
        ValueError: If ``path`` is reserved for team records
        StorageError: If the store itself fails
    """
    if is_team_doc(path):
        raise ValueError(f"Path is reserved for team records: {path}")
    doc = Document(
        id=path,
        rev=rev,
        data={
            "content": content,
            "modified_by": modified_by,
            "mtime": utc_timestamp(),
        },
    )
    try:
        return store.put(doc).rev
    except ConcurrencyConflict as e:
        get_logger().warning(f"Write conflict on {path}: {e}")
        return None


def change_event_for(doc: Document) -> ChangeEvent | None:
    """Describe a replicated file revision as a ChangeEvent.

    Returns:
        None for team records, deletions and documents without a revision
    """
    if doc.deleted or doc.rev is None or is_team_doc(doc.id):
        return None
    mtime = doc.data.get("mtime")
    try:
        timestamp = datetime.fromisoformat(str(mtime).replace("Z", "+00:00"))
    except ValueError:
        timestamp = utc_now()
    return ChangeEvent(
        file_path=doc.id,
        modified_by=str(doc.data.get("modified_by", "")),
        timestamp=timestamp,
        rev=doc.rev,
    )
