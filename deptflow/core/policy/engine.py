"""Workflow-level policy queries for deptflow.

Wraps the PolicyStore with the questions the approval workflow asks:
whether a department has anyone able to act on a stage, whether a user is
the only holder of a role, and which actions a user may take on a request.
"""

from typing import List, Set, Tuple

from deptflow.core.approval.states import RequestStatus
from deptflow.core.errors import ForbiddenError
from deptflow.core.logger import get_logger
from deptflow.core.rbac.permissions import (
    Action,
    Resource,
    Permission,
    WILDCARD_DOMAIN,
    approve_action,
)
from .store import PolicyStore


logger = get_logger("policy_engine")


class PolicyEngine:
    """
    Evaluates users against the policy store.

    Never fails for unknown users, roles or domains; they simply hold
    nothing and are granted nothing.
    """

    def __init__(self, store: PolicyStore):
        """
        Initialize the policy engine.

        Args:
            store: Policy facts to evaluate against
        """
        self.store = store

    def enforce(self, user: str, domain: str, resource: str, action: str) -> bool:
        return self.store.enforce(user, domain, resource, action)

    def check(self, user: str, domain: str, resource: str, action: str) -> None:
        """
        Require a permission.

        Raises:
            ForbiddenError: If ``user`` may not perform ``action`` in ``domain``
        """
        if not self.store.enforce(user, domain, resource, action):
            logger.warning(f"Denied {Permission(resource, action)} in {domain} for user {user}")
            raise ForbiddenError(
                f"User {user} may not {action} {resource} in domain {domain}",
                action=action,
                domain=domain,
                resource=resource,
                user=user,
            )

    def roles_of(self, user: str) -> Set[Tuple[str, str]]:
        return self.store.roles_of(user)

    def users_with_role(self, role: str, domain: str) -> Set[str]:
        return self.store.users_with_role(role, domain)

    def is_sole_holder(self, user: str, role: str, domain: str) -> bool:
        """True if ``user`` is the only holder of ``role`` in ``domain``."""
        return self.store.users_with_role(role, domain) == {user}

    def has_eligible_approver(self, role: str, domain: str, action: str) -> bool:
        """
        Check whether any holder of ``role`` in ``domain`` may perform ``action`` there.

        Used to decide fallback routing without hardcoding who sits in which
        department.
        """
        for user in sorted(self.store.users_with_role(role, domain)):
            if self.store.enforce(user, domain, Resource.REQUESTS.value, action):
                return True
        return False

    def can_approve_stage(self, user: str, domain: str, stage_code: str) -> bool:
        """Check the stage action in the department or through a wildcard grant."""
        action = approve_action(stage_code)
        return (
            self.store.enforce(user, domain, Resource.REQUESTS.value, action)
            or self.store.enforce(user, WILDCARD_DOMAIN, Resource.REQUESTS.value, action)
        )

    def permitted_actions(
        self,
        user: str,
        domain: str,
        *,
        status: str,
        stage_code: str,
        created_by: str,
        decided: bool = False,
    ) -> List[str]:
        """
        Actions ``user`` may take next on a request.

        - DRAFT with ``requests:edit`` -> submit
        - IN_REVIEW with ``requests:approve:<stage>`` -> approve, reject
          (never for the request's own creator, nor for a user who has
          already decided the current stage)
        """
        actions: List[str] = []
        if status == RequestStatus.DRAFT.value:
            if self.store.enforce(user, domain, Resource.REQUESTS.value, Action.EDIT.value):
                actions.append("submit")
        elif status == RequestStatus.IN_REVIEW.value and user != created_by and not decided:
            if self.can_approve_stage(user, domain, stage_code):
                actions.extend(["approve", "reject"])
        return actions
