"""Domain-scoped RBAC policy evaluation for deptflow."""

from .store import Grant, Membership, PolicyStore
from .engine import PolicyEngine
from .loader import PolicyDocument, load_policy_file

__all__ = [
    "Grant",
    "Membership",
    "PolicyStore",
    "PolicyEngine",
    "PolicyDocument",
    "load_policy_file",
]
