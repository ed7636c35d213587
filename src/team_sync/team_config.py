"""The shared ``team:config`` document: team name, members and roles.

The document replicates like any other; team mode is on for a vault exactly
when it exists. Members are keyed by their store (CouchDB) username.
"""

from team_sync.documents import get_record, save_record
from team_sync.models import TEAM_CONFIG_ID, TeamConfig, TeamMember, TeamRole
from team_sync.storage import DocumentNotFound, DocumentStore
from team_sync.utils.logging import get_logger


class TeamConfigManager:
    """Read and modify the team configuration document."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def get_config(self) -> TeamConfig | None:
        """Current team config, or None when team mode is not set up."""
        return get_record(self.store, TEAM_CONFIG_ID, TeamConfig)  # type: ignore[return-value]

    def save_config(self, config: TeamConfig) -> bool:
        """Create or replace the team config.

        The write is based on whatever revision is current in the store, so
        a config built from scratch can overwrite an existing one.

        Returns:
            False if another writer got in between
        """
        try:
            config.rev = self.store.get(TEAM_CONFIG_ID).rev
        except DocumentNotFound:
            config.rev = None
        saved = save_record(self.store, config)
        if not saved:
            get_logger().error("Failed to save team config", suggestion="Reload and try again")
        return saved

    def initialize_team(self, team_name: str, admin_username: str) -> bool:
        """Create the team with ``admin_username`` as admin.

        Returns:
            False if a team is already configured (or the write failed)
        """
        if self.get_config() is not None:
            return False
        return self.save_config(TeamConfig.create_default(team_name, admin_username))

    def add_member(self, username: str, role: TeamRole) -> bool:
        """Add (or re-add) a member with ``role``."""
        config = self.get_config()
        if config is None:
            return False
        config.members[username] = TeamMember(role=role)
        return self.save_config(config)

    def update_member_role(self, username: str, role: TeamRole) -> bool:
        config = self.get_config()
        if config is None or username not in config.members:
            return False
        config.members[username].role = role
        return self.save_config(config)

    def remove_member(self, username: str) -> bool:
        config = self.get_config()
        if config is None or username not in config.members:
            return False
        del config.members[username]
        return self.save_config(config)

    def get_members(self) -> dict[str, TeamMember]:
        config = self.get_config()
        return dict(config.members) if config else {}
