"""Request database models.

Stores department requests and their status/stage transition history.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Text
from sqlalchemy.orm import relationship

from deptflow.db.base import Base


class ApprovalRequest(Base):
    """
    A request travelling through its department's approval stages.

    ``status`` and ``stage_code`` are only changed by the workflow
    coordinator once the request exists.
    """
    __tablename__ = "requests"

    id = Column(Integer, primary_key=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    created_by = Column(String(255), nullable=False, index=True)

    # Workflow state
    status = Column(String(20), nullable=False, default="DRAFT", index=True)
    stage_code = Column(String(50), nullable=False)

    # Business fields, opaque to the workflow
    payload = Column(JSON, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    department = relationship("Department", back_populates="requests")
    approvals = relationship("Approval", back_populates="request", order_by="Approval.decided_at")
    history = relationship("ApprovalHistory", back_populates="request", order_by="ApprovalHistory.id")

    def __repr__(self) -> str:
        return f"<ApprovalRequest {self.id} [{self.status}/{self.stage_code}]>"


class ApprovalHistory(Base):
    """
    Records every status or stage change of a request.

    Complements the approval records with the transitions they caused.
    """
    __tablename__ = "request_history"

    id = Column(Integer, primary_key=True)
    request_id = Column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False, index=True)

    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    from_stage = Column(String(50), nullable=True)
    to_stage = Column(String(50), nullable=False)

    # Actor
    user_id = Column(String(255), nullable=False)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    request = relationship("ApprovalRequest", back_populates="history")

    def __repr__(self) -> str:
        return f"<ApprovalHistory {self.from_status}/{self.from_stage} -> {self.to_status}/{self.to_stage}>"
