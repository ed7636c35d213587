"""Events flowing from the replication feed into the core and out to the host.

The host (or ``watcher.ReplicationWatcher``) pushes each replicated edit into
a ``ReplicationEventSink``. The core never polls the feed itself. Outbound,
``EventHub`` lets views subscribe to file-changed, file-read and
activity-updated notifications.
"""

from collections import defaultdict
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple, Protocol

from team_sync.utils.logging import get_logger


class ChangeEvent(NamedTuple):
    """One replicated edit of a file."""

    file_path: str
    modified_by: str
    timestamp: datetime
    rev: str


class ReplicationEventSink(Protocol):
    def handle_change(self, event: ChangeEvent) -> None: ...


class EventKind(str, Enum):
    FILE_CHANGED = "team-file-changed"
    FILE_READ = "team-file-read"
    ACTIVITY_UPDATED = "team-activity-updated"


Handler = Callable[[Any], None]


class EventHub:
    """Synchronous publish/subscribe for host-facing events.

    Handlers of one kind run in subscription order and see events in emission
    order. Nothing is guaranteed across different kinds.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventKind, list[Handler]] = defaultdict(list)

    def subscribe(self, kind: EventKind, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``kind``.

        Returns:
            A callable that removes the subscription (safe to call twice)
        """
        self._handlers[kind].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[kind]:
                self._handlers[kind].remove(handler)

        return unsubscribe

    def emit(self, kind: EventKind, payload: Any = None) -> None:
        """Deliver ``payload`` to every handler of ``kind``.

        A handler that raises is logged and skipped; the remaining handlers
        still run.
        """
        for handler in list(self._handlers[kind]):
            try:
                handler(payload)
            except Exception as e:
                get_logger().exception(f"Handler for {kind.value} failed", e)

    def handler_count(self, kind: EventKind) -> int:
        return len(self._handlers[kind])
