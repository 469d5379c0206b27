"""Stage resolution for new requests and after a stage reaches quorum."""

from typing import Callable, Iterable, Optional

from deptflow.core.logger import get_logger
from deptflow.core.policy.engine import PolicyEngine
from deptflow.core.rbac.permissions import approve_action
from .states import (
    DepartmentClass,
    FALLBACK_STAGE,
    StageCode,
    parse_stage,
    route,
)


logger = get_logger("stage_resolver")


class StageResolver:
    """
    Decides which stage a request starts at and where it goes next.

    Pure decision logic: reads policy and approval rules, writes nothing.
    Departments are classified by code; codes listed as financial control
    departments are never reviewed by themselves.
    """

    def __init__(
        self,
        policy: PolicyEngine,
        rule_lookup: Callable[[int, str], Optional[object]],
        *,
        head_role: str = "HD",
        financial_control_departments: Iterable[str] = ("AF", "CG"),
    ):
        """
        Initialize the resolver.

        Args:
            policy: Policy engine used to find eligible heads
            rule_lookup: ``(department_id, stage_code) -> rule or None``; rules
                expose ``min_approvers`` and ``fallback_role``
            head_role: Role that approves the DEPT_HEAD stage
            financial_control_departments: Department codes routed as
                financial control departments
        """
        self.policy = policy
        self.rule_lookup = rule_lookup
        self.head_role = head_role
        self.financial_control_departments = frozenset(financial_control_departments)

    def department_class(self, department_code: str) -> DepartmentClass:
        if department_code in self.financial_control_departments:
            return DepartmentClass.FINANCIAL_CONTROL
        return DepartmentClass.STANDARD

    def next_stage(self, department_code: str, current_stage: str) -> Optional[StageCode]:
        """
        Stage following ``current_stage`` for this department.

        Returns:
            The next stage, or None when the request is fully approved

        Raises:
            ValueError: If ``current_stage`` is not a known stage
        """
        return route(self.department_class(department_code), parse_stage(current_stage))

    def initial_stage(
        self,
        department_id: int,
        department_code: str,
        requester: Optional[str] = None,
    ) -> StageCode:
        """
        Stage a new request in this department starts at.

        1. A requester who is the department's only head skips DEPT_HEAD.
        2. DEPT_HEAD when some head may approve it.
        3. The fallback stage when the DEPT_HEAD rule names a fallback role.
        4. Otherwise DEPT_HEAD, waiting for a head to be assigned.
        """
        head_stage = StageCode.DEPT_HEAD

        if requester is not None and self.policy.is_sole_holder(
            requester, self.head_role, department_code
        ):
            skipped = self.next_stage(department_code, head_stage.value)
            if skipped is None:
                # The head stage is the whole pipeline here; someone else must review
                skipped = FALLBACK_STAGE
            logger.info(
                f"Requester {requester} is the only {self.head_role} in "
                f"{department_code}; starting at {skipped.value}"
            )
            return skipped

        if self.policy.has_eligible_approver(
            self.head_role, department_code, approve_action(head_stage.value)
        ):
            return head_stage

        rule = self.rule_lookup(department_id, head_stage.value)
        if rule is not None and getattr(rule, "fallback_role", None):
            logger.info(
                f"No eligible {self.head_role} in {department_code}; "
                f"routing to {FALLBACK_STAGE.value} ({rule.fallback_role})"
            )
            return FALLBACK_STAGE

        logger.warning(
            f"No eligible {self.head_role} in {department_code} and no fallback role; "
            f"starting at {head_stage.value}"
        )
        return head_stage

    def remaining_stages(self, department_code: str, current_stage: str) -> list[StageCode]:
        """Stages after ``current_stage`` in this department's pipeline."""
        stages: list[StageCode] = []
        stage = self.next_stage(department_code, current_stage)
        while stage is not None and stage not in stages:
            stages.append(stage)
            stage = self.next_stage(department_code, stage.value)
        return stages
