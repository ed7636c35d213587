"""Team settings push.

Admins publish per-plugin settings as ``team:settings:<plugin>`` documents.
Each setting is either *enforced* (always applied) or a *default* (applied
until the member changes it locally). Which defaults a member has customized
is tracked in their local key-value store and never replicated.
"""

from typing import Any, NamedTuple

from team_sync.documents import get_record, list_records, save_record
from team_sync.models import SETTINGS_PREFIX, SettingMode, TeamSettingsEntry, utc_timestamp
from team_sync.storage import DocumentNotFound, DocumentStore, KeyValueStore


class ApplyResult(NamedTuple):
    applied: dict[str, Any]
    enforced: list[str]


class TeamSettingsStore:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def get_entry(self, plugin_id: str) -> TeamSettingsEntry | None:
        return get_record(self.store, f"{SETTINGS_PREFIX}{plugin_id}", TeamSettingsEntry)  # type: ignore[return-value]

    def get_all_entries(self) -> list[TeamSettingsEntry]:
        return list_records(self.store, SETTINGS_PREFIX, TeamSettingsEntry)  # type: ignore[return-value]

    def save_entry(self, entry: TeamSettingsEntry) -> bool:
        """Save an entry, basing the write on the stored revision when none is set."""
        if entry.rev is None:
            try:
                entry.rev = self.store.get(entry.id).rev
            except DocumentNotFound:
                pass
        entry.updated_at = utc_timestamp()
        return save_record(self.store, entry)

    def remove_setting(self, plugin_id: str, setting_key: str) -> bool:
        """Stop pushing one setting. False if the plugin has no entry."""
        entry = self.get_entry(plugin_id)
        if entry is None:
            return False
        entry.settings.pop(setting_key, None)
        return self.save_entry(entry)


class OverrideTracker:
    """Which default-mode settings this member has customized, per plugin."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    @staticmethod
    def _key(plugin_id: str) -> str:
        return f"overrides:{plugin_id}"

    def get_overrides(self, plugin_id: str) -> list[str]:
        record = self.store.get(self._key(plugin_id)) or {}
        return list(record.get("overridden", []))

    def is_overridden(self, plugin_id: str, setting_key: str) -> bool:
        return setting_key in self.get_overrides(plugin_id)

    def mark_overridden(self, plugin_id: str, setting_key: str) -> None:
        overridden = self.get_overrides(plugin_id)
        if setting_key not in overridden:
            overridden.append(setting_key)
            self.store.set(self._key(plugin_id), {"overridden": overridden})

    def clear_override(self, plugin_id: str, setting_key: str) -> None:
        overridden = self.get_overrides(plugin_id)
        if setting_key in overridden:
            overridden.remove(setting_key)
            self.store.set(self._key(plugin_id), {"overridden": overridden})

    def clear_all_overrides(self, plugin_id: str) -> None:
        self.store.set(self._key(plugin_id), {"overridden": []})


class SettingsApplier:
    """Merge pushed team settings into a plugin's local settings."""

    def __init__(self, overrides: OverrideTracker) -> None:
        self.overrides = overrides

    def apply(self, entry: TeamSettingsEntry, current: dict[str, Any]) -> ApplyResult:
        """Compute the settings to use.

        Enforced values always win. Defaults are applied unless the member
        customized that key.

        Returns:
            ApplyResult with the merged settings and the enforced keys
        """
        applied = dict(current)
        enforced = []
        for key, managed in entry.settings.items():
            if managed.mode == SettingMode.ENFORCED:
                applied[key] = managed.value
                enforced.append(key)
            elif not self.overrides.is_overridden(entry.plugin_id, key):
                applied[key] = managed.value
        return ApplyResult(applied=applied, enforced=enforced)

    def detect_customization(self, entry: TeamSettingsEntry, setting_key: str, new_value: Any) -> None:
        """Record whether a local change to a default-mode setting diverges from the team value.

        Changing the value back to the team default clears the override.
        """
        managed = entry.settings.get(setting_key)
        if managed is None or managed.mode != SettingMode.DEFAULT:
            return
        if new_value == managed.value:
            self.overrides.clear_override(entry.plugin_id, setting_key)
        else:
            self.overrides.mark_overridden(entry.plugin_id, setting_key)
