"""``TeamSync``: the entry point a host application talks to.

Wires the change tracker, read state, annotation store and team config
together over one document store and one local key-value store, and
publishes host-facing events through an ``EventHub``.
"""

from team_sync.anchors import CONTEXT_CHARS, capture_anchor
from team_sync.annotations import AnnotationStore, EditorAnnotation
from team_sync.diff import DiffView, build_diff_view
from team_sync.documents import change_event_for, fetch_by_path, fetch_file, is_team_doc
from team_sync.events import ChangeEvent, EventHub, EventKind
from team_sync.models import (
    ActivityEntry,
    AnchorRange,
    Annotation,
    AnnotationInput,
    TeamConfig,
    TeamRole,
)
from team_sync.notifications import NotificationService, notifications_for_annotation
from team_sync.read_state import ReadStateManager
from team_sync.storage import Document, DocumentStore, KeyValueStore, StorageError
from team_sync.team_config import TeamConfigManager
from team_sync.tracker import ChangeTracker
from team_sync.utils.logging import get_logger


class TeamSync:
    """Team features for one user of one shared vault."""

    def __init__(
        self,
        document_store: DocumentStore,
        local_store: KeyValueStore,
        current_user: str,
        hub: EventHub | None = None,
        notifications: NotificationService | None = None,
        context_chars: int = CONTEXT_CHARS,
    ) -> None:
        """
        Args:
            document_store: Replicated store holding files and team records
            local_store: Per-user store for read state (never replicated)
            current_user: Store username of the local user
            hub: Event hub for host notifications; a private one if None
            notifications: Outbound delivery for mentions and replies; none if None
            context_chars: Context window captured around new annotations
        """
        self.store = document_store
        self.hub = hub or EventHub()
        self.notifications = notifications
        self.context_chars = context_chars
        self.tracker = ChangeTracker(current_user)
        self.read_state = ReadStateManager(local_store)
        self.annotations = AnnotationStore(document_store)
        self.team = TeamConfigManager(document_store)
        self._config: TeamConfig | None = None
        self.reload_config()

    # ------------------------------------------------------------------
    # Replication feed
    # ------------------------------------------------------------------

    def handle_change(self, event: ChangeEvent) -> None:
        """Consume one replicated edit. Team records are not file changes."""
        if is_team_doc(event.file_path):
            return
        self.tracker.handle_change(event)
        self.hub.emit(EventKind.FILE_CHANGED, event)
        self.hub.emit(EventKind.ACTIVITY_UPDATED, self.tracker.get_activity_feed())

    def handle_document(self, doc: Document) -> None:
        """Consume a replicated document revision as it arrives from the store."""
        event = change_event_for(doc)
        if event is not None:
            self.handle_change(event)

    # ------------------------------------------------------------------
    # Annotations and diffs
    # ------------------------------------------------------------------

    def refresh_annotations(self, file_path: str, text: str) -> list[EditorAnnotation]:
        return self.annotations.refresh(file_path, text)

    def create_annotation(
        self,
        file_path: str,
        text: str,
        selection: AnchorRange,
        content: str,
        mentions: list[str] | None = None,
        parent_id: str | None = None,
    ) -> Annotation:
        """Anchor a new annotation to ``selection`` of ``text`` as the current user.

        Mentioned users and, for replies, the parent's author are notified
        when a notification service is configured.

        Raises:
            StorageError: If the annotation cannot be stored. Notification
                failures are logged and never raised.
            ValueError: If the input is invalid
        """
        anchor = capture_anchor(text, selection, self.context_chars)
        annotation = self.annotations.create(
            AnnotationInput(
                file_path=file_path,
                range=selection,
                selected_text=anchor.selected_text,
                context_before=anchor.context_before,
                context_after=anchor.context_after,
                content=content,
                author=self.tracker.current_user,
                mentions=list(mentions or []),
                parent_id=parent_id,
            )
        )

        if self.notifications is not None:
            try:
                parent = self.annotations.get_by_id(parent_id) if parent_id else None
                for notification in notifications_for_annotation(annotation, parent):
                    self.notifications.dispatch(notification)
            except StorageError as e:
                get_logger().warning(f"Notifications for {annotation.id} not sent: {e}")
        return annotation

    def diff_view(self, old_text: str, new_text: str) -> DiffView:
        return build_diff_view(old_text, new_text)

    def diff_since_last_seen(self, file_path: str) -> DiffView | None:
        """Diff from the revision the user last saw to the current one.

        A file that was never seen, or whose seen revision is no longer
        available, is diffed against empty text.

        Returns:
            DiffView, or None if the file does not exist or cannot be read
        """
        try:
            current = fetch_file(self.store, file_path)
        except StorageError as e:
            get_logger().warning(f"Could not read {file_path}: {e}")
            return None
        if current is None:
            return None
        try:
            state = self.read_state.get_read_state(file_path)
        except StorageError as e:
            get_logger().warning(f"Read state unavailable for {file_path}: {e}")
            state = None

        old_text = ""
        if state is not None:
            try:
                old_text = fetch_by_path(self.store, file_path, state.last_seen_rev) or ""
            except StorageError as e:
                get_logger().warning(f"Seen revision of {file_path} unavailable: {e}")
        new_text = str(current.data.get("content", ""))
        return build_diff_view(old_text, new_text)

    # ------------------------------------------------------------------
    # Read state and activity
    # ------------------------------------------------------------------

    def mark_file_read(self, file_path: str) -> bool:
        """Record the file's current revision as seen.

        Returns:
            False if the file does not exist or read state could not be saved
        """
        self.tracker.mark_as_read(file_path)
        try:
            current = fetch_file(self.store, file_path)
            if current is None or current.rev is None:
                return False
            self.read_state.mark_as_read(file_path, current.rev)
        except StorageError as e:
            get_logger().warning(f"Could not mark {file_path} as read: {e}")
            return False
        self.hub.emit(EventKind.FILE_READ, file_path)
        return True

    def is_file_unread(self, file_path: str) -> bool:
        """Whether the current revision of an existing file is unseen.

        A file that cannot be read counts as unread.
        """
        try:
            current = fetch_file(self.store, file_path)
        except StorageError as e:
            get_logger().warning(f"Could not read {file_path}, assuming unread: {e}")
            return True
        if current is None or current.rev is None:
            return False
        return self.read_state.is_unread(file_path, current.rev)

    def activity_feed(self) -> list[ActivityEntry]:
        return self.tracker.get_activity_feed()

    def unread_files(self) -> set[str]:
        return self.tracker.get_unread_files()

    def authors(self) -> set[str]:
        return self.tracker.get_authors()

    # ------------------------------------------------------------------
    # Identity and team config
    # ------------------------------------------------------------------

    @property
    def current_user(self) -> str:
        return self.tracker.current_user

    def set_current_user(self, username: str) -> None:
        self.tracker.set_current_user(username)

    def reload_config(self) -> TeamConfig | None:
        """Re-read ``team:config`` (e.g. after it replicated in)."""
        self._config = self.team.get_config()
        return self._config

    @property
    def config(self) -> TeamConfig | None:
        return self._config

    @property
    def is_team_mode_enabled(self) -> bool:
        return self._config is not None

    @property
    def current_role(self) -> TeamRole | None:
        if self._config is None:
            return None
        return self._config.role_of(self.current_user)

    @property
    def is_admin(self) -> bool:
        return self.current_role == TeamRole.ADMIN
