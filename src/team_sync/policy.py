"""Write permissions enforced by the shared store, written down as data.

The store applies this policy itself when a document is written; this module
does not enforce anything. It exists so the policy is documented in one
place and tests can compare it with what a store actually allows.

| store role   | may write                                          |
|--------------|----------------------------------------------------|
| _admin       | everything (server admin, bypasses validation)     |
| team_admin   | everything                                         |
| team_viewer  | only ``readstate:`` documents                      |
| team_editor  | everything except ``team:config`` and ``team:settings:*`` |
| (no role)    | everything (vaults used without team mode)         |

Roles are checked in table order; the first role the user holds decides.
"""

from collections.abc import Iterable
from typing import NamedTuple

from team_sync.models import READSTATE_PREFIX, SETTINGS_PREFIX, TEAM_CONFIG_ID


class RoleRule(NamedTuple):
    role: str
    allow_all: bool
    allowed_prefixes: tuple[str, ...] = ()
    denied: tuple[tuple[str, str], ...] = ()  # (id or prefix ending in ':', reason)


class PolicyDecision(NamedTuple):
    allowed: bool
    reason: str | None = None


POLICY: tuple[RoleRule, ...] = (
    RoleRule(role="_admin", allow_all=True),
    RoleRule(role="team_admin", allow_all=True),
    RoleRule(
        role="team_viewer",
        allow_all=False,
        allowed_prefixes=(READSTATE_PREFIX,),
    ),
    RoleRule(
        role="team_editor",
        allow_all=True,
        denied=(
            (TEAM_CONFIG_ID, "Only admins can modify team configuration"),
            (SETTINGS_PREFIX, "Only admins can modify team settings"),
        ),
    ),
)


def _matches(doc_id: str, pattern: str) -> bool:
    if pattern.endswith(":"):
        return doc_id.startswith(pattern)
    return doc_id == pattern


def check_write(roles: Iterable[str], doc_id: str) -> PolicyDecision:
    """Whether a user holding ``roles`` may write ``doc_id``."""
    held = set(roles)
    for rule in POLICY:
        if rule.role not in held:
            continue
        for pattern, reason in rule.denied:
            if _matches(doc_id, pattern):
                return PolicyDecision(False, reason)
        if rule.allow_all or any(doc_id.startswith(p) for p in rule.allowed_prefixes):
            return PolicyDecision(True)
        return PolicyDecision(False, "Viewers can only update read state documents")
    return PolicyDecision(True)
