"""Approval records and approval rules."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from deptflow.db.base import Base


class Approval(Base):
    """
    One approver's decision on one stage of one request.

    Immutable once written; the unique constraint backs the
    at-most-one-decision-per-approver-per-stage rule.
    """
    __tablename__ = "approvals"
    __table_args__ = (
        UniqueConstraint("request_id", "stage_code", "approver_id", name="uq_approvals_request_stage_approver"),
    )

    id = Column(Integer, primary_key=True)
    request_id = Column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_id = Column(String(255), nullable=False)
    stage_code = Column(String(50), nullable=False)
    decision = Column(String(20), nullable=False)
    decided_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    request = relationship("ApprovalRequest", back_populates="approvals")

    def __repr__(self) -> str:
        return f"<Approval {self.request_id}/{self.stage_code} {self.approver_id}: {self.decision}>"


class ApprovalRule(Base):
    """Quorum and fallback configuration for a department's stage."""
    __tablename__ = "approval_rules"
    __table_args__ = (
        UniqueConstraint("department_id", "stage_code", name="uq_approval_rules_department_stage"),
    )

    id = Column(Integer, primary_key=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True)
    stage_code = Column(String(50), nullable=False)
    min_approvers = Column(Integer, nullable=False, default=1)
    fallback_role = Column(String(50), nullable=True)

    department = relationship("Department", back_populates="rules")

    def __repr__(self) -> str:
        return f"<ApprovalRule {self.department_id}/{self.stage_code} min={self.min_approvers}>"
