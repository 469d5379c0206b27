"""Permission checking utilities for deptflow's HTTP surface.

Provides FastAPI dependencies that enforce a grant before an endpoint runs.
"""

from typing import Union

from fastapi import Depends

from deptflow.api.deps import get_current_user_id, get_policy_engine
from deptflow.core.policy.engine import PolicyEngine
from .permissions import Action, Resource, WILDCARD_DOMAIN


class PolicyDependency:
    """
    FastAPI dependency for permission checking in a fixed domain.

    Usage:
        @router.post("/grants", dependencies=[Depends(PolicyDependency("policies", "manage"))])
        async def add_grant():
            ...
    """

    def __init__(
        self,
        resource: Union[str, Resource],
        action: Union[str, Action],
        domain: str = WILDCARD_DOMAIN,
    ):
        self.resource = resource.value if isinstance(resource, Resource) else resource
        self.action = action.value if isinstance(action, Action) else action
        self.domain = domain

    def __call__(
        self,
        user_id: str = Depends(get_current_user_id),
        policy: PolicyEngine = Depends(get_policy_engine),
    ) -> str:
        # ForbiddenError is mapped to 403 by the application's exception handlers
        policy.check(user_id, self.domain, self.resource, self.action)
        return user_id


def require_permission(
    resource: Union[str, Resource],
    action: Union[str, Action],
    domain: str = WILDCARD_DOMAIN,
) -> PolicyDependency:
    """
    Shorthand for a PolicyDependency.

    Usage:
        router = APIRouter(dependencies=[Depends(require_permission(Resource.POLICIES, Action.MANAGE))])
    """
    return PolicyDependency(resource, action, domain)
