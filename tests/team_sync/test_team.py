"""Tests for team configuration and settings push."""

import pytest

from team_sync.models import SettingMode, ManagedSetting, TeamRole, TeamSettingsEntry
from team_sync.settings import OverrideTracker, SettingsApplier, TeamSettingsStore
from team_sync.storage import MemoryDocumentStore, MemoryKeyValueStore
from team_sync.team_config import TeamConfigManager


@pytest.fixture
def manager() -> TeamConfigManager:
    return TeamConfigManager(MemoryDocumentStore())


class TestTeamConfigManager:
    """Tests for TeamConfigManager."""

    def test_no_team_by_default(self, manager: TeamConfigManager) -> None:
        """A fresh store has no team."""
        assert manager.get_config() is None
        assert manager.get_members() == {}

    def test_initialize_team(self, manager: TeamConfigManager) -> None:
        """The creator becomes the only admin."""
        assert manager.initialize_team("Core", "alice")

        config = manager.get_config()
        assert config.team_name == "Core"
        assert config.role_of("alice") == TeamRole.ADMIN

    def test_initialize_twice_fails(self, manager: TeamConfigManager) -> None:
        """An existing team is never overwritten by initialize."""
        manager.initialize_team("Core", "alice")

        assert not manager.initialize_team("Other", "bob")
        assert manager.get_config().team_name == "Core"

    def test_member_lifecycle(self, manager: TeamConfigManager) -> None:
        """Members can be added, re-roled and removed."""
        manager.initialize_team("Core", "alice")

        assert manager.add_member("bob", TeamRole.VIEWER)
        assert manager.update_member_role("bob", TeamRole.EDITOR)
        assert manager.get_members()["bob"].role == TeamRole.EDITOR
        assert manager.remove_member("bob")
        assert "bob" not in manager.get_members()

    def test_member_changes_without_team(self, manager: TeamConfigManager) -> None:
        """Member operations fail when no team exists."""
        assert not manager.add_member("bob", TeamRole.EDITOR)
        assert not manager.remove_member("bob")

    def test_unknown_member(self, manager: TeamConfigManager) -> None:
        """Changing a non-member fails."""
        manager.initialize_team("Core", "alice")
        assert not manager.update_member_role("zed", TeamRole.ADMIN)
        assert not manager.remove_member("zed")

    def test_save_config_over_existing(self, manager: TeamConfigManager) -> None:
        """save_config bases the write on the current revision."""
        manager.initialize_team("Core", "alice")
        fresh = manager.get_config()
        fresh.team_name = "Renamed"
        fresh.rev = None

        assert manager.save_config(fresh)
        assert manager.get_config().team_name == "Renamed"


class TestTeamSettingsStore:
    """Tests for TeamSettingsStore."""

    def test_save_and_get(self) -> None:
        """Entries are stored per plugin."""
        settings = TeamSettingsStore(MemoryDocumentStore())
        entry = TeamSettingsEntry.for_plugin(
            "editor", "alice", {"tabSize": ManagedSetting(value=4, mode=SettingMode.ENFORCED)}
        )

        assert settings.save_entry(entry)
        loaded = settings.get_entry("editor")
        assert loaded.plugin_id == "editor"
        assert loaded.settings["tabSize"].value == 4

    def test_save_replaces_existing_without_rev(self) -> None:
        """A freshly built entry overwrites the stored one."""
        settings = TeamSettingsStore(MemoryDocumentStore())
        settings.save_entry(TeamSettingsEntry.for_plugin("editor", "alice"))

        replacement = TeamSettingsEntry.for_plugin(
            "editor", "alice", {"theme": ManagedSetting(value="dark")}
        )
        assert settings.save_entry(replacement)
        assert list(settings.get_entry("editor").settings) == ["theme"]

    def test_remove_setting(self) -> None:
        """One key can be withdrawn from an entry."""
        settings = TeamSettingsStore(MemoryDocumentStore())
        settings.save_entry(
            TeamSettingsEntry.for_plugin(
                "editor", "alice", {"a": ManagedSetting(value=1), "b": ManagedSetting(value=2)}
            )
        )

        assert settings.remove_setting("editor", "a")
        assert list(settings.get_entry("editor").settings) == ["b"]
        assert not settings.remove_setting("missing", "a")

    def test_get_all_entries(self) -> None:
        """All plugins' entries are listed."""
        settings = TeamSettingsStore(MemoryDocumentStore())
        settings.save_entry(TeamSettingsEntry.for_plugin("b-plugin", "alice"))
        settings.save_entry(TeamSettingsEntry.for_plugin("a-plugin", "alice"))

        assert [e.plugin_id for e in settings.get_all_entries()] == ["a-plugin", "b-plugin"]


class TestSettingsApplier:
    """Tests for SettingsApplier and OverrideTracker."""

    @pytest.fixture
    def entry(self) -> TeamSettingsEntry:
        return TeamSettingsEntry.for_plugin(
            "editor",
            "alice",
            {
                "tabSize": ManagedSetting(value=2, mode=SettingMode.ENFORCED),
                "theme": ManagedSetting(value="dark", mode=SettingMode.DEFAULT),
            },
        )

    def test_apply_defaults_and_enforced(self, entry: TeamSettingsEntry) -> None:
        """Both kinds apply when nothing is customized; other keys are kept."""
        applier = SettingsApplier(OverrideTracker(MemoryKeyValueStore()))
        result = applier.apply(entry, {"tabSize": 8, "theme": "light", "font": "mono"})

        assert result.applied == {"tabSize": 2, "theme": "dark", "font": "mono"}
        assert result.enforced == ["tabSize"]

    def test_customized_default_is_kept(self, entry: TeamSettingsEntry) -> None:
        """A default the member changed locally is not reapplied."""
        overrides = OverrideTracker(MemoryKeyValueStore())
        applier = SettingsApplier(overrides)
        applier.detect_customization(entry, "theme", "light")

        result = applier.apply(entry, {"theme": "light"})

        assert overrides.is_overridden("editor", "theme")
        assert result.applied["theme"] == "light"

    def test_enforced_ignores_customization(self, entry: TeamSettingsEntry) -> None:
        """Enforced settings are never tracked as overrides and always win."""
        overrides = OverrideTracker(MemoryKeyValueStore())
        applier = SettingsApplier(overrides)
        applier.detect_customization(entry, "tabSize", 8)

        assert not overrides.is_overridden("editor", "tabSize")
        assert applier.apply(entry, {"tabSize": 8}).applied["tabSize"] == 2

    def test_reverting_clears_override(self, entry: TeamSettingsEntry) -> None:
        """Setting the team value again clears the override."""
        overrides = OverrideTracker(MemoryKeyValueStore())
        applier = SettingsApplier(overrides)
        applier.detect_customization(entry, "theme", "light")
        applier.detect_customization(entry, "theme", "dark")

        assert overrides.get_overrides("editor") == []

    def test_clear_all_overrides(self) -> None:
        """All overrides of a plugin can be dropped at once."""
        overrides = OverrideTracker(MemoryKeyValueStore())
        overrides.mark_overridden("editor", "a")
        overrides.mark_overridden("editor", "b")
        overrides.mark_overridden("editor", "a")

        assert overrides.get_overrides("editor") == ["a", "b"]
        overrides.clear_all_overrides("editor")
        assert overrides.get_overrides("editor") == []
