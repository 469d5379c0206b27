"""Default role definitions for deptflow.

Roles:
1. HD    - Department head; approves the DEPT_HEAD stage in its department
2. AF    - Finance review; creates requests anywhere, approves AF_REVIEW
3. CG    - Controlling; approves DEPT_HEAD/AMD_REVIEW/CG_REVIEW anywhere, bulk approves
4. AMD   - Fallback approver for departments without a head
5. EXEC  - Executive visibility across departments
6. ADMIN - Manages grants and role memberships
"""

from enum import Enum
from typing import List, Tuple

from deptflow.core.approval.states import StageCode
from .permissions import Action, Resource, WILDCARD_DOMAIN, approve_action


class RoleCode(str, Enum):
    HD = "HD"
    AF = "AF"
    EXEC = "EXEC"
    AMD = "AMD"
    CG = "CG"
    ADMIN = "ADMIN"


GrantTuple = Tuple[str, str, str, str]


def _build_grants(role: RoleCode, domain: str, *actions: str) -> List[GrantTuple]:
    """Build (role, domain, resource, action) tuples on the requests resource."""
    return [(role.value, domain, Resource.REQUESTS.value, action) for action in actions]


# AF: works across all departments and owns the AF_REVIEW stage
AF_GRANTS = _build_grants(
    RoleCode.AF, WILDCARD_DOMAIN,
    Action.VIEW.value,
    Action.CREATE.value,
    Action.EDIT.value,
    approve_action(StageCode.AF_REVIEW.value),
)

# CG: global controller, may stand in for heads and the fallback approver
CG_GRANTS = _build_grants(
    RoleCode.CG, WILDCARD_DOMAIN,
    Action.VIEW.value,
    Action.BULK_APPROVE.value,
    approve_action(StageCode.DEPT_HEAD.value),
    approve_action(StageCode.AMD_REVIEW.value),
    approve_action(StageCode.CG_REVIEW.value),
)

# AMD: fallback stage approver everywhere
AMD_GRANTS = _build_grants(
    RoleCode.AMD, WILDCARD_DOMAIN,
    approve_action(StageCode.AMD_REVIEW.value),
)

EXEC_GRANTS = _build_grants(
    RoleCode.EXEC, WILDCARD_DOMAIN,
    Action.VIEW.value,
)

ADMIN_GRANTS: List[GrantTuple] = [
    (RoleCode.ADMIN.value, WILDCARD_DOMAIN, Resource.POLICIES.value, Action.MANAGE.value),
]


def head_grants(department_code: str) -> List[GrantTuple]:
    """Grants a department head needs inside its own department."""
    return _build_grants(
        RoleCode.HD, department_code,
        Action.VIEW.value,
        Action.CREATE.value,
        Action.EDIT.value,
        approve_action(StageCode.DEPT_HEAD.value),
    )


DEFAULT_GRANTS: List[GrantTuple] = AF_GRANTS + CG_GRANTS + AMD_GRANTS + EXEC_GRANTS + ADMIN_GRANTS


def get_default_grants() -> List[GrantTuple]:
    """Get the wildcard-domain grants every installation starts with."""
    return list(DEFAULT_GRANTS)
