"""Request statuses, stages and the stage routing table.

Lifecycle:

    ┌───────┐  submit   ┌───────────┐         ┌───────────┐
    │ DRAFT │──────────►│ SUBMITTED │────────►│ IN_REVIEW │◄──┐
    └───────┘           └───────────┘         └─────┬─────┘   │ quorum met,
                                                    │         │ next stage
                                   reject ┌─────────┼─────────┘
                                          │         │ quorum met, terminal
                                    ┌─────▼────┐ ┌──▼───────┐
                                    │ REJECTED │ │ APPROVED │
                                    └──────────┘ └──────────┘

Stage pipelines (while IN_REVIEW):

    standard department:           DEPT_HEAD → AF_REVIEW → CG_REVIEW → done
    financial control (AF, CG):    DEPT_HEAD → done
    no eligible head, fallback:    AMD_REVIEW → done
"""

from enum import Enum
from typing import Dict, NamedTuple, Optional, Set, Tuple


class RequestStatus(str, Enum):
    """Lifecycle status of a request."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class StageCode(str, Enum):
    """Named approval steps."""

    DEPT_HEAD = "DEPT_HEAD"
    AF_REVIEW = "AF_REVIEW"
    CG_REVIEW = "CG_REVIEW"
    AMD_REVIEW = "AMD_REVIEW"   # Fallback when a department has no eligible head


class Decision(str, Enum):
    """An approver's verdict on a stage."""

    APPROVE = "approve"
    REJECT = "reject"


class DepartmentClass(str, Enum):
    """How a department is routed through the review stages."""

    STANDARD = "standard"
    FINANCIAL_CONTROL = "financial_control"   # Never reviewed by itself


class StageRoute(NamedTuple):
    """Where a request goes once ``stage`` reaches quorum."""
    department_class: DepartmentClass
    stage: StageCode
    next_stage: Optional[StageCode]   # None means terminal (APPROVED)


STAGE_ROUTES: list[StageRoute] = [
    StageRoute(DepartmentClass.STANDARD, StageCode.DEPT_HEAD, StageCode.AF_REVIEW),
    StageRoute(DepartmentClass.STANDARD, StageCode.AF_REVIEW, StageCode.CG_REVIEW),
    StageRoute(DepartmentClass.STANDARD, StageCode.CG_REVIEW, None),
    StageRoute(DepartmentClass.STANDARD, StageCode.AMD_REVIEW, None),

    StageRoute(DepartmentClass.FINANCIAL_CONTROL, StageCode.DEPT_HEAD, None),
    StageRoute(DepartmentClass.FINANCIAL_CONTROL, StageCode.AF_REVIEW, None),
    StageRoute(DepartmentClass.FINANCIAL_CONTROL, StageCode.CG_REVIEW, None),
    StageRoute(DepartmentClass.FINANCIAL_CONTROL, StageCode.AMD_REVIEW, None),
]

ROUTING_TABLE: Dict[Tuple[DepartmentClass, StageCode], Optional[StageCode]] = {
    (route.department_class, route.stage): route.next_stage for route in STAGE_ROUTES
}

# Every (class, stage) pair must have an outcome, or requests could get stuck
_missing = [
    (cls, stage)
    for cls in DepartmentClass
    for stage in StageCode
    if (cls, stage) not in ROUTING_TABLE
]
if _missing:
    raise RuntimeError(f"Stage routing table is incomplete: {_missing}")


TERMINAL_STATUSES: Set[RequestStatus] = {
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
}

# Statuses in which approvers may act
REVIEWABLE_STATUSES: Set[RequestStatus] = {
    RequestStatus.IN_REVIEW,
}

FALLBACK_STAGE = StageCode.AMD_REVIEW


def route(department_class: DepartmentClass, stage: StageCode) -> Optional[StageCode]:
    """Look up the stage following ``stage`` for a department class."""
    return ROUTING_TABLE[(department_class, stage)]


def is_terminal(status: RequestStatus) -> bool:
    return status in TERMINAL_STATUSES


def parse_stage(value: str) -> StageCode:
    """Parse a stage code string, raising ValueError on unknown stages."""
    try:
        return StageCode(value)
    except ValueError:
        raise ValueError(f"Unknown stage code: {value!r}") from None
