"""Database models for deptflow."""

from deptflow.db.models.department import Department
from deptflow.db.models.request import ApprovalRequest, ApprovalHistory
from deptflow.db.models.approval import Approval, ApprovalRule
from deptflow.db.models.policy import PolicyGrant, RoleMembership

__all__ = [
    "Department",
    "ApprovalRequest",
    "ApprovalHistory",
    "Approval",
    "ApprovalRule",
    "PolicyGrant",
    "RoleMembership",
]
