"""Team member accounts in the CouchDB ``_users`` database.

Requires server-admin credentials. Every call reports failure as False (or an
empty list) instead of raising; the caller decides what to tell the user.
"""

from typing import Any
from urllib.parse import quote, urlsplit

import httpx

from team_sync.models import TeamRole
from team_sync.utils.logging import get_logger

_ROLE_MAP = {
    TeamRole.ADMIN: ["admin", "team_admin"],
    TeamRole.EDITOR: ["team_editor"],
    TeamRole.VIEWER: ["team_viewer"],
}


class CouchDBUserManager:
    """Create, update and remove team members' database accounts."""

    def __init__(
        self,
        couchdb_uri: str,
        admin_username: str,
        admin_password: str,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.couchdb_uri = couchdb_uri
        self._auth = httpx.BasicAuth(admin_username, admin_password)
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def users_db_url(self) -> str:
        """``_users`` lives at the server root regardless of the database path."""
        parts = urlsplit(self.couchdb_uri.rstrip("/"))
        return f"{parts.scheme}://{parts.netloc}/_users"

    @staticmethod
    def user_doc_id(username: str) -> str:
        return f"org.couchdb.user:{username}"

    @staticmethod
    def team_role_to_couchdb_roles(role: TeamRole) -> list[str]:
        return list(_ROLE_MAP[TeamRole(role)])

    @staticmethod
    def build_user_document(username: str, password: str, roles: list[str]) -> dict[str, Any]:
        return {
            "_id": CouchDBUserManager.user_doc_id(username),
            "name": username,
            "type": "user",
            "roles": roles,
            "password": password,
        }

    def _user_url(self, username: str) -> str:
        return f"{self.users_db_url}/{quote(self.user_doc_id(username), safe='')}"

    def _fetch_user(self, username: str) -> dict[str, Any] | None:
        response = self._client.get(self._user_url(username), auth=self._auth)
        if not response.is_success:
            return None
        return response.json()

    def _put_user(self, username: str, doc: dict[str, Any]) -> bool:
        response = self._client.put(self._user_url(username), json=doc, auth=self._auth)
        return response.is_success

    def create_user(self, username: str, password: str, role: TeamRole) -> bool:
        doc = self.build_user_document(username, password, self.team_role_to_couchdb_roles(role))
        try:
            return self._put_user(username, doc)
        except httpx.HTTPError as e:
            get_logger().warning(f"Could not create user {username}: {e}")
            return False

    def update_user_role(self, username: str, role: TeamRole) -> bool:
        try:
            doc = self._fetch_user(username)
            if doc is None:
                return False
            doc["roles"] = self.team_role_to_couchdb_roles(role)
            return self._put_user(username, doc)
        except (httpx.HTTPError, ValueError) as e:
            get_logger().warning(f"Could not update role of {username}: {e}")
            return False

    def reset_password(self, username: str, new_password: str) -> bool:
        try:
            doc = self._fetch_user(username)
            if doc is None:
                return False
            doc["password"] = new_password
            return self._put_user(username, doc)
        except (httpx.HTTPError, ValueError) as e:
            get_logger().warning(f"Could not reset password of {username}: {e}")
            return False

    def delete_user(self, username: str) -> bool:
        try:
            doc = self._fetch_user(username)
            if doc is None:
                return False
            response = self._client.delete(
                self._user_url(username), params={"rev": doc["_rev"]}, auth=self._auth
            )
            return response.is_success
        except (httpx.HTTPError, ValueError, KeyError) as e:
            get_logger().warning(f"Could not delete user {username}: {e}")
            return False

    def list_users(self) -> list[dict[str, Any]]:
        """All user documents (design documents and other rows filtered out)."""
        try:
            response = self._client.get(
                f"{self.users_db_url}/_all_docs",
                params={"include_docs": "true"},
                auth=self._auth,
            )
            if not response.is_success:
                return []
            rows = response.json().get("rows", [])
        except (httpx.HTTPError, ValueError) as e:
            get_logger().warning(f"Could not list users: {e}")
            return []
        docs = [row.get("doc") or {} for row in rows]
        return [doc for doc in docs if doc.get("type") == "user" and doc.get("name")]
