"""Outbound notification transports: chat webhooks and SMTP email.

Both channels reduce every transport problem to a False return so that one
unreachable target never stops delivery to the others. Neither retries.
"""

import smtplib
from collections.abc import Callable
from datetime import datetime
from email.message import EmailMessage
from email.utils import formatdate
from typing import Any

import httpx

from team_sync.models import Notification, SmtpConfig, WebhookConfig, WebhookPlatform
from team_sync.utils.logging import get_logger

SENDER_NAME = "Team Sync"
EMBED_COLOR = 0x7C3AED
SUBJECT_PREFIX = "[Team Sync]"


class WebhookChannel:
    """POST notifications to Slack, Discord, Teams or a generic JSON endpoint."""

    def __init__(self, client: httpx.Client | None = None, timeout: float = 10.0) -> None:
        """
        Args:
            client: Shared HTTP client; a short-lived one is opened per send if None
            timeout: Request timeout in seconds for the per-send client
        """
        self._client = client
        self.timeout = timeout

    def format_payload(self, platform: WebhookPlatform, notification: Notification) -> dict[str, Any]:
        """Shape a notification for the target platform."""
        if platform == WebhookPlatform.SLACK:
            return {
                "text": f"*{notification.title}*\n{notification.body}",
                "username": SENDER_NAME,
            }
        if platform == WebhookPlatform.DISCORD:
            return {
                "embeds": [
                    {
                        "title": notification.title,
                        "description": notification.body,
                        "color": EMBED_COLOR,
                        "timestamp": notification.timestamp,
                        "footer": {"text": f"by {notification.actor}"},
                    }
                ]
            }
        if platform == WebhookPlatform.TEAMS:
            return {
                "@type": "MessageCard",
                "@context": "https://schema.org/extensions",
                "summary": notification.title,
                "themeColor": f"{EMBED_COLOR:06x}",
                "title": notification.title,
                "sections": [{"activityTitle": notification.actor, "text": notification.body}],
            }
        return notification.model_dump(mode="json")

    def send(self, config: WebhookConfig, notification: Notification) -> bool:
        """Deliver one notification.

        Returns:
            True on a 2xx response; False if the webhook is disabled, the
            request fails or the server answers with an error status
        """
        if not config.enabled:
            return False

        payload = self.format_payload(config.platform, notification)
        try:
            if self._client is not None:
                response = self._client.post(config.url, json=payload)
            else:
                with httpx.Client(timeout=self.timeout, follow_redirects=False) as client:
                    response = client.post(config.url, json=payload)
        except httpx.HTTPError as e:
            get_logger().warning(f"Webhook delivery to {config.url} failed: {e}")
            return False

        if not response.is_success:
            get_logger().warning(
                f"Webhook delivery to {config.url} failed with status {response.status_code}"
            )
        return response.is_success


SmtpConnect = Callable[[SmtpConfig, float], smtplib.SMTP]


def connect_smtp(config: SmtpConfig, timeout: float) -> smtplib.SMTP:
    """Open an SMTP connection, using implicit TLS when ``config.secure``."""
    if config.secure:
        return smtplib.SMTP_SSL(config.host, config.port, timeout=timeout)
    return smtplib.SMTP(config.host, config.port, timeout=timeout)


class SmtpChannel:
    """Send notifications as plain-text email."""

    def __init__(self, connect: SmtpConnect = connect_smtp, timeout: float = 15.0) -> None:
        self._connect = connect
        self.timeout = timeout

    def format_notification(self, notification: Notification) -> tuple[str, str]:
        """Return (subject, body) for a notification."""
        sent_at = datetime.fromisoformat(notification.timestamp.replace("Z", "+00:00"))
        body = "\n".join(
            [
                notification.body,
                "",
                f"-- {notification.actor}, {sent_at:%Y-%m-%d %H:%M} UTC",
            ]
        )
        return f"{SUBJECT_PREFIX} {notification.title}", body

    def build_message(self, from_address: str, to_address: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = from_address
        message["To"] = to_address
        message["Subject"] = subject
        message["Date"] = formatdate(usegmt=True)
        message.set_content(body, charset="utf-8")
        return message

    def send(self, config: SmtpConfig, to_address: str, notification: Notification) -> bool:
        """Email one notification to ``to_address``.

        Returns:
            True once the server accepted the message; False if SMTP is
            disabled or any connection, authentication or delivery step fails
        """
        if not config.enabled:
            return False

        subject, body = self.format_notification(notification)
        message = self.build_message(config.from_address, to_address, subject, body)
        try:
            with self._connect(config, self.timeout) as server:
                if config.username:
                    server.login(config.username, config.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            get_logger().warning(f"Email to {to_address} failed: {e}")
            return False
        return True
