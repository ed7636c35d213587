"""Feed replicated edits from a ``FileDocumentStore`` directory into a sink.

Replication (or another process) writes document history files; watchdog
reports them and the handler forwards the head revision of every ordinary
file document as a ``ChangeEvent``.
"""

from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from team_sync.documents import RecordKind, change_event_for, record_kind
from team_sync.events import ReplicationEventSink
from team_sync.storage import DocumentNotFound, FileDocumentStore, StorageError
from team_sync.utils.logging import get_logger


class ReplicationWatcher(FileSystemEventHandler):
    """watchdog handler turning document file writes into change events."""

    def __init__(self, store: FileDocumentStore, sink: ReplicationEventSink) -> None:
        self.store = store
        self.sink = sink
        self._last_seen: dict[str, str] = {}

    @staticmethod
    def _as_str(path: str | bytes) -> str:
        # src_path can be str or bytes
        return path if isinstance(path, str) else path.decode("utf-8")

    def _process(self, path: str | bytes) -> None:
        doc_id = self.store.doc_id_for(Path(self._as_str(path)))
        if doc_id is None or record_kind(doc_id) != RecordKind.FILE:
            return
        try:
            doc = self.store.get(doc_id)
        except DocumentNotFound:
            return
        except StorageError as e:
            get_logger().warning(f"Skipping unreadable document {doc_id}: {e}")
            return
        event = change_event_for(doc)
        if event is None or self._last_seen.get(doc_id) == event.rev:
            return
        self._last_seen[doc_id] = event.rev

        get_logger().debug("Change detected", file=doc_id, rev=event.rev)
        self.sink.handle_change(event)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._process(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._process(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic writes land as a rename from a temp file
        if not event.is_directory:
            self._process(event.dest_path)


def start_watching(store: FileDocumentStore, sink: ReplicationEventSink) -> Observer:
    """Start a watchdog observer on the store's document directory.

    The caller owns the returned observer and must ``stop()`` and ``join()`` it.
    """
    store.docs_dir.mkdir(parents=True, exist_ok=True)
    observer = Observer()
    observer.schedule(ReplicationWatcher(store, sink), str(store.docs_dir), recursive=False)
    observer.start()
    return observer
