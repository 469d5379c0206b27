"""Approval workflow module for deptflow.

Stage vocabulary and routing live in ``states``; the resolver, ledger and
coordinator are imported from their own modules.
"""

from .states import (
    Decision,
    DepartmentClass,
    RequestStatus,
    StageCode,
    STAGE_ROUTES,
    TERMINAL_STATUSES,
)

__all__ = [
    "Decision",
    "DepartmentClass",
    "RequestStatus",
    "StageCode",
    "STAGE_ROUTES",
    "TERMINAL_STATUSES",
]
