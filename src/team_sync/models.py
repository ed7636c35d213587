"""Data models for anchored annotations, activity, read state and team records."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from ulid import new as new_ulid

TEAM_PREFIX = "team:"
TEAM_CONFIG_ID = "team:config"
ANNOTATION_PREFIX = "team:annotation:"
SETTINGS_PREFIX = "team:settings:"
NOTIFICATION_CONFIG_ID = "team:notifications:config"
NOTIFICATION_PREFS_PREFIX = "team:notifications:prefs:"
READSTATE_PREFIX = "readstate:"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """Current time as ISO 8601 UTC with a ``Z`` suffix."""
    return utc_now().isoformat().replace("+00:00", "Z")


def new_annotation_id() -> str:
    """Annotation ids are ULIDs, so lexical order follows creation order."""
    return f"{ANNOTATION_PREFIX}{new_ulid()}"


def _check_utc_timestamp(v: str) -> str:
    try:
        dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
        if dt.tzinfo is None or dt.tzinfo.utcoffset(None) != timezone.utc.utcoffset(None):
            raise ValueError("Timestamp must be in UTC timezone")
        return v
    except (ValueError, AttributeError) as e:
        raise ValueError(f"Invalid ISO 8601 UTC timestamp: {v}") from e


def _check_prefix(v: str, prefix: str) -> str:
    if not v.startswith(prefix) or len(v) == len(prefix):
        raise ValueError(f"id must start with '{prefix}' followed by a key, got {v!r}")
    return v


class TeamRole(str, Enum):
    """Role of a member within the team."""

    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class AnchorRange(BaseModel, frozen=True):
    """Span in a document: 0-based lines and columns, end exclusive."""

    start_line: int = Field(..., ge=0)
    start_char: int = Field(..., ge=0)
    end_line: int = Field(..., ge=0)
    end_char: int = Field(..., ge=0)

    @model_validator(mode="after")
    def validate_order(self) -> "AnchorRange":
        """Start must not come after end in document order."""
        if (self.start_line, self.start_char) > (self.end_line, self.end_char):
            raise ValueError(
                f"range start ({self.start_line}:{self.start_char}) is after "
                f"end ({self.end_line}:{self.end_char})"
            )
        return self

    def __str__(self) -> str:
        return f"{self.start_line}:{self.start_char}-{self.end_line}:{self.end_char}"


class AnchorContext(BaseModel, frozen=True):
    """Fingerprint of a selection used to relocate it after edits.

    ``context_before``/``context_after`` are the characters immediately around
    the selection at capture time, truncated at document boundaries.
    ``original_range`` is advisory only; relocation never consults it.
    """

    selected_text: str
    context_before: str = ""
    context_after: str = ""
    original_range: AnchorRange | None = None


class Annotation(BaseModel):
    """A comment anchored to a span of a file, optionally replying to another."""

    id: str = Field(default_factory=new_annotation_id)
    rev: str | None = None
    file_path: str = Field(..., min_length=1)
    range: AnchorRange
    selected_text: str = ""
    context_before: str = ""
    context_after: str = ""
    content: str = Field(..., max_length=10000)
    author: str = Field(..., min_length=1, max_length=200)
    mentions: list[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=utc_timestamp)
    resolved: bool = False
    parent_id: str | None = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _check_prefix(v, ANNOTATION_PREFIX)

    @field_validator("timestamp")
    @classmethod
    def validate_utc_timestamp(cls, v: str) -> str:
        return _check_utc_timestamp(v)

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None

    def anchor_context(self) -> AnchorContext:
        """Build the relocation fingerprint from the stored context fields."""
        return AnchorContext(
            selected_text=self.selected_text,
            context_before=self.context_before,
            context_after=self.context_after,
            original_range=self.range,
        )

    def resolve(self) -> None:
        """Mark resolved. There is no way back: resolution never reverts."""
        self.resolved = True


class AnnotationInput(BaseModel):
    """Caller-supplied fields for a new annotation.

    ``parent_id`` must be given explicitly (None for a top-level annotation).
    """

    file_path: str = Field(..., min_length=1)
    range: AnchorRange
    selected_text: str = ""
    context_before: str = ""
    context_after: str = ""
    content: str = Field(..., max_length=10000)
    author: str = Field(..., min_length=1, max_length=200)
    mentions: list[str] = Field(default_factory=list)
    parent_id: str | None = Field(...)


class ActivityEntry(BaseModel, frozen=True):
    """One observed edit in the activity feed."""

    file_path: str
    modified_by: str
    timestamp: datetime
    rev: str


class FileReadState(BaseModel):
    """Last revision of a file the local user has seen."""

    last_seen_rev: str
    last_seen_at: datetime


class ReadStateDocument(BaseModel):
    """Replicated form of a read-state entry (``readstate:<path>``)."""

    id: str
    rev: str | None = None
    last_seen_rev: str
    last_seen_at: datetime

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _check_prefix(v, READSTATE_PREFIX)

    @property
    def file_path(self) -> str:
        return self.id[len(READSTATE_PREFIX):]


class TeamMember(BaseModel):
    role: TeamRole
    last_sync: str | None = None


class TeamFeatures(BaseModel):
    annotations: bool = False
    settings_push: bool = False
    change_indicators: bool = True


class TeamConfig(BaseModel):
    """The single ``team:config`` document: team name, members and features."""

    id: Literal["team:config"] = TEAM_CONFIG_ID
    rev: str | None = None
    team_name: str = Field(..., min_length=1)
    members: dict[str, TeamMember] = Field(default_factory=dict)
    features: TeamFeatures = Field(default_factory=TeamFeatures)

    @classmethod
    def create_default(cls, team_name: str, admin_username: str) -> "TeamConfig":
        """New team with its creator as the only admin."""
        return cls(
            team_name=team_name,
            members={admin_username: TeamMember(role=TeamRole.ADMIN)},
        )

    def role_of(self, username: str) -> TeamRole | None:
        member = self.members.get(username)
        return member.role if member else None


class SettingMode(str, Enum):
    """How a pushed setting applies to members."""

    DEFAULT = "default"  # Applied unless the member customized it
    ENFORCED = "enforced"  # Always applied


class ManagedSetting(BaseModel):
    value: Any = None
    mode: SettingMode = SettingMode.DEFAULT


class TeamSettingsEntry(BaseModel):
    """Settings an admin pushes to the team for one plugin."""

    id: str
    rev: str | None = None
    managed_by: str = Field(..., min_length=1)
    updated_at: str = Field(default_factory=utc_timestamp)
    settings: dict[str, ManagedSetting] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _check_prefix(v, SETTINGS_PREFIX)

    @classmethod
    def for_plugin(
        cls, plugin_id: str, managed_by: str, settings: dict[str, ManagedSetting] | None = None
    ) -> "TeamSettingsEntry":
        return cls(
            id=f"{SETTINGS_PREFIX}{plugin_id}", managed_by=managed_by, settings=settings or {}
        )

    @property
    def plugin_id(self) -> str:
        return self.id[len(SETTINGS_PREFIX):]


class WebhookPlatform(str, Enum):
    """Target platforms with their own payload shape."""

    SLACK = "slack"
    DISCORD = "discord"
    TEAMS = "teams"
    GENERIC = "generic"


class WebhookConfig(BaseModel):
    url: str = Field(..., min_length=1)
    platform: WebhookPlatform = WebhookPlatform.GENERIC
    enabled: bool = True


class SmtpConfig(BaseModel):
    enabled: bool = False
    host: str = ""
    port: int = Field(default=587, gt=0, lt=65536)
    secure: bool = False  # Implicit TLS (SMTP_SSL) instead of plain SMTP
    username: str = ""
    password: str = ""
    from_address: str = ""


class NotificationConfig(BaseModel):
    """Team-wide delivery configuration (``team:notifications:config``)."""

    id: Literal["team:notifications:config"] = NOTIFICATION_CONFIG_ID
    rev: str | None = None
    webhooks: list[WebhookConfig] = Field(default_factory=list)
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)


class NotificationType(str, Enum):
    MENTION = "mention"
    REPLY = "reply"
    FILE_CHANGED = "file_changed"
    ANNOTATION_RESOLVED = "annotation_resolved"


class NotificationChannels(BaseModel):
    webhook: bool = False
    email: bool = False


class UserNotificationPrefs(BaseModel):
    """Per-member opt-in for notification events and channels."""

    id: str
    rev: str | None = None
    username: str = Field(..., min_length=1)
    email: str | None = None
    enabled_events: list[NotificationType] = Field(default_factory=list)
    channels: NotificationChannels = Field(default_factory=NotificationChannels)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _check_prefix(v, NOTIFICATION_PREFS_PREFIX)

    @classmethod
    def for_user(cls, username: str, **fields: Any) -> "UserNotificationPrefs":
        return cls(id=f"{NOTIFICATION_PREFS_PREFIX}{username}", username=username, **fields)


class Notification(BaseModel):
    """A notification handed to the outbound transports."""

    type: NotificationType
    title: str
    body: str
    actor: str
    targets: list[str] = Field(default_factory=list)
    timestamp: str = Field(default_factory=utc_timestamp)
    metadata: dict[str, Any] | None = None

    @field_validator("timestamp")
    @classmethod
    def validate_utc_timestamp(cls, v: str) -> str:
        return _check_utc_timestamp(v)
