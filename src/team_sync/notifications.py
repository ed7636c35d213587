"""Notification settings and dispatch.

The team-wide delivery config and each member's preferences are shared
documents. ``NotificationService.dispatch`` fans a notification out to every
target that opted in, skipping the actor and any target whose delivery fails.
"""

from team_sync.channels import SmtpChannel, WebhookChannel
from team_sync.documents import get_record, list_records, save_record
from team_sync.models import (
    NOTIFICATION_CONFIG_ID,
    NOTIFICATION_PREFS_PREFIX,
    Annotation,
    Notification,
    NotificationConfig,
    NotificationType,
    UserNotificationPrefs,
)
from team_sync.storage import DocumentNotFound, DocumentStore
from team_sync.utils.logging import get_logger

BODY_PREVIEW_CHARS = 200


class NotificationStore:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def _current_rev(self, doc_id: str) -> str | None:
        try:
            return self.store.get(doc_id).rev
        except DocumentNotFound:
            return None

    def get_config(self) -> NotificationConfig | None:
        return get_record(self.store, NOTIFICATION_CONFIG_ID, NotificationConfig)  # type: ignore[return-value]

    def save_config(self, config: NotificationConfig) -> bool:
        if config.rev is None:
            config.rev = self._current_rev(config.id)
        return save_record(self.store, config)

    def get_prefs(self, username: str) -> UserNotificationPrefs | None:
        return get_record(  # type: ignore[return-value]
            self.store, f"{NOTIFICATION_PREFS_PREFIX}{username}", UserNotificationPrefs
        )

    def save_prefs(self, prefs: UserNotificationPrefs) -> bool:
        if prefs.rev is None:
            prefs.rev = self._current_rev(prefs.id)
        return save_record(self.store, prefs)

    def get_all_prefs(self) -> list[UserNotificationPrefs]:
        return list_records(self.store, NOTIFICATION_PREFS_PREFIX, UserNotificationPrefs)  # type: ignore[return-value]


class NotificationService:
    def __init__(
        self,
        store: NotificationStore,
        webhook_channel: WebhookChannel,
        smtp_channel: SmtpChannel,
    ) -> None:
        self.store = store
        self.webhook_channel = webhook_channel
        self.smtp_channel = smtp_channel

    def dispatch(self, notification: Notification) -> int:
        """Deliver ``notification`` to its targets over their chosen channels.

        Targets are skipped when they are the actor, have no preferences or
        have not enabled this notification type. Webhook delivery goes to
        every enabled team webhook; email needs SMTP enabled and an address.
        Partial delivery is expected: failures are logged and skipped.

        Returns:
            Number of successful deliveries
        """
        config = self.store.get_config()
        if config is None:
            get_logger().debug("No notification config, nothing dispatched")
            return 0

        delivered = 0
        for target in notification.targets:
            if target == notification.actor:
                continue
            prefs = self.store.get_prefs(target)
            if prefs is None or notification.type not in prefs.enabled_events:
                continue

            if prefs.channels.webhook:
                for webhook in config.webhooks:
                    if webhook.enabled and self.webhook_channel.send(webhook, notification):
                        delivered += 1

            if prefs.channels.email and config.smtp.enabled and prefs.email:
                if self.smtp_channel.send(config.smtp, prefs.email, notification):
                    delivered += 1

        return delivered


def notifications_for_annotation(
    annotation: Annotation, parent: Annotation | None = None
) -> list[Notification]:
    """Notifications caused by a newly created annotation.

    Mentioned users get a mention notification. When the annotation is a
    reply, the parent's author gets a reply notification unless they were
    already mentioned.
    """
    preview = annotation.content[:BODY_PREVIEW_CHARS]
    metadata = {"annotation_id": annotation.id, "file_path": annotation.file_path}
    notifications = []

    if annotation.mentions:
        notifications.append(
            Notification(
                type=NotificationType.MENTION,
                title=f"{annotation.author} mentioned you in {annotation.file_path}",
                body=preview,
                actor=annotation.author,
                targets=list(annotation.mentions),
                metadata=metadata,
            )
        )

    if parent is not None and parent.author not in annotation.mentions:
        notifications.append(
            Notification(
                type=NotificationType.REPLY,
                title=f"{annotation.author} replied to your note in {annotation.file_path}",
                body=preview,
                actor=annotation.author,
                targets=[parent.author],
                metadata={**metadata, "parent_id": parent.id},
            )
        )
    return notifications
