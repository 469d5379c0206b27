"""RBAC vocabulary for deptflow.

Defines resources, actions, stage action naming and default role grants.
"""

from .permissions import Action, Permission, Resource, WILDCARD_DOMAIN, approve_action
from .roles import DEFAULT_GRANTS, RoleCode, head_grants

__all__ = [
    "Action",
    "Permission",
    "Resource",
    "WILDCARD_DOMAIN",
    "approve_action",
    "DEFAULT_GRANTS",
    "RoleCode",
    "head_grants",
]
