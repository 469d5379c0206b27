"""Policy administration endpoints.

All endpoints require ``policies:manage`` in the wildcard domain.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from deptflow.api.deps import get_policy_store
from deptflow.core.policy.store import PolicyStore
from deptflow.core.rbac.checker import require_permission
from deptflow.core.rbac.permissions import Action, Resource

router = APIRouter(
    prefix="/policies",
    tags=["policies"],
    dependencies=[Depends(require_permission(Resource.POLICIES, Action.MANAGE))],
)


# Schemas
class GrantCreate(BaseModel):
    role: str = Field(..., min_length=1)
    domain: str = Field(..., min_length=1)
    resource: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)


class MembershipCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    domain: str = Field(..., min_length=1)


class FactCreatedResponse(BaseModel):
    created: bool


class RoleAssignment(BaseModel):
    role: str
    domain: str


class ReloadResponse(BaseModel):
    grants: int
    memberships: int


# Endpoints
@router.post("/grants", response_model=FactCreatedResponse)
def add_grant(
    grant: GrantCreate,
    store: PolicyStore = Depends(get_policy_store),
):
    """Grant a role an action on a resource within a domain. Idempotent."""
    try:
        created = store.grant(grant.role, grant.domain, grant.resource, grant.action)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return FactCreatedResponse(created=created)


@router.post("/memberships", response_model=FactCreatedResponse)
def add_membership(
    membership: MembershipCreate,
    store: PolicyStore = Depends(get_policy_store),
):
    """Assign a user a role within a domain. Idempotent."""
    try:
        created = store.assign_role(membership.user_id, membership.role, membership.domain)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return FactCreatedResponse(created=created)


@router.get("/users/{user_id}/roles", response_model=List[RoleAssignment])
def get_user_roles(
    user_id: str,
    store: PolicyStore = Depends(get_policy_store),
):
    return [
        RoleAssignment(role=role, domain=domain)
        for role, domain in sorted(store.roles_of(user_id))
    ]


@router.post("/reload", response_model=ReloadResponse)
def reload_policy(store: PolicyStore = Depends(get_policy_store)):
    """Reload grants and memberships from persistent storage."""
    store.load()
    return ReloadResponse(grants=len(store.grants), memberships=len(store.memberships))
