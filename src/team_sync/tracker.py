"""In-memory view of what teammates changed during this session.

- Unread files: paths changed by someone other than the current user and not
  opened since.
- Activity feed: the last 100 changes by anyone, newest first.

Both are advisory and rebuilt from the replication feed on every start; the
durable answer to "have I seen this revision" lives in ``read_state``.
"""

from collections import deque
from datetime import datetime

from team_sync.events import ChangeEvent
from team_sync.models import ActivityEntry

MAX_ACTIVITY_ENTRIES = 100


class ChangeTracker:
    """Turns replicated edits into an unread set and an activity feed.

    Arrival order is preserved as given by the feed; the tracker does not try
    to recover the causal order of edits across authors.
    """

    def __init__(self, current_user: str, max_entries: int = MAX_ACTIVITY_ENTRIES) -> None:
        self._current_user = current_user
        self._unread: set[str] = set()
        # appendleft keeps index 0 as the newest entry; maxlen evicts the oldest
        self._feed: deque[ActivityEntry] = deque(maxlen=max_entries)

    @property
    def current_user(self) -> str:
        return self._current_user

    def set_current_user(self, username: str) -> None:
        """Switch identity, e.g. after the user changed their settings."""
        self._current_user = username

    def track_change(self, file_path: str, modified_by: str, timestamp: datetime, rev: str) -> None:
        """Record a change.

        Every change is added to the activity feed. Only changes made by
        someone else mark the file unread.
        """
        self._feed.appendleft(
            ActivityEntry(file_path=file_path, modified_by=modified_by, timestamp=timestamp, rev=rev)
        )
        if modified_by != self._current_user:
            self._unread.add(file_path)

    def handle_change(self, event: ChangeEvent) -> None:
        self.track_change(event.file_path, event.modified_by, event.timestamp, event.rev)

    def mark_as_read(self, file_path: str) -> None:
        """Clear the unread flag. The activity feed is left untouched."""
        self._unread.discard(file_path)

    def is_unread(self, file_path: str) -> bool:
        return file_path in self._unread

    def get_unread_files(self) -> set[str]:
        return set(self._unread)

    def get_activity_feed(self) -> list[ActivityEntry]:
        """Activity entries, newest first."""
        return list(self._feed)

    def get_authors(self) -> set[str]:
        """Everyone who appears in the current activity feed."""
        return {entry.modified_by for entry in self._feed}
