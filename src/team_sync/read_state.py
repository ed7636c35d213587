"""Durable per-file "last seen revision" ledger for the local user.

Stored in the local key-value store under the file path; never replicated to
teammates. A file is unread when no state exists for it or when its current
revision differs from the last-seen one. Revisions are opaque tokens and are
only compared for equality.
"""

from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from team_sync.models import FileReadState, utc_now
from team_sync.storage import KeyValueStore, StorageError
from team_sync.utils.logging import get_logger


class ReadStateManager:
    """Read/write access to the local read-state ledger."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self._clock = clock

    def is_unread(self, file_path: str, current_rev: str) -> bool:
        """True if ``current_rev`` of ``file_path`` has not been seen.

        A lookup failure counts as unread: showing a stale indicator is
        preferable to hiding a change.
        """
        try:
            state = self.get_read_state(file_path)
        except StorageError as e:
            get_logger().warning(f"Read state unavailable for {file_path}, assuming unread: {e}")
            return True
        if state is None:
            return True
        return state.last_seen_rev != current_rev

    def mark_as_read(self, file_path: str, rev: str) -> FileReadState:
        """Record ``rev`` as seen now, replacing any previous state.

        Raises:
            StorageError: If the local store cannot be written
        """
        state = FileReadState(last_seen_rev=rev, last_seen_at=self._clock())
        self.store.set(file_path, state.model_dump(mode="json"))
        return state

    def get_read_state(self, file_path: str) -> FileReadState | None:
        """Stored state for ``file_path``, or None if it was never seen.

        Raises:
            StorageError: If the store fails or holds a malformed entry
        """
        raw = self.store.get(file_path)
        if raw is None:
            return None
        try:
            return FileReadState.model_validate(raw)
        except ValidationError as e:
            raise StorageError(f"Malformed read state for {file_path}: {e}") from e

    def clear_read_state(self, file_path: str) -> None:
        self.store.delete(file_path)
