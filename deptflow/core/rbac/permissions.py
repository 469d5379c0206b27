"""Permission vocabulary for deptflow's domain-scoped RBAC.

A policy fact grants a role, within a domain, an action on a resource:

    (role, domain, resource, action)

Domains are department codes; ``*`` is the wildcard domain matching every
department. Stage approval actions are namespaced as ``approve:<stage>``.

Examples:
  - (HD,  D15, requests, approve:DEPT_HEAD)
  - (CG,  *,   requests, bulk_approve)
  - (ADMIN, *, policies, manage)
"""

from enum import Enum
from typing import NamedTuple


WILDCARD_DOMAIN = "*"
APPROVE_PREFIX = "approve:"


class Resource(str, Enum):
    """Resources that can be protected by grants."""

    REQUESTS = "requests"     # Department requests and their approvals
    POLICIES = "policies"     # Grants and role memberships


class Action(str, Enum):
    """Non-stage actions that can be granted."""

    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"                  # Edit and submit drafts
    BULK_APPROVE = "bulk_approve"
    MANAGE = "manage"


class Permission(NamedTuple):
    """A resource/action pair, rendered as ``resource:action``."""
    resource: str
    action: str

    def __str__(self) -> str:
        return f"{self.resource}:{self.action}"


def approve_action(stage_code: str) -> str:
    """Action name that authorizes approving ``stage_code``."""
    return f"{APPROVE_PREFIX}{stage_code}"


def is_wildcard(domain: str) -> bool:
    return domain == WILDCARD_DOMAIN
