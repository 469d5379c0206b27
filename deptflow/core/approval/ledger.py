"""Approval ledger: the system of record for individual decisions."""

from datetime import datetime
from typing import List

from sqlalchemy import and_, distinct, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from deptflow.core.errors import DuplicateApprovalError
from deptflow.core.logger import get_logger
from deptflow.db.models import Approval
from .states import Decision


logger = get_logger("approval_ledger")


class ApprovalLedger:
    """
    Records approve/reject decisions per (request, stage, approver).

    Records are immutable and never deleted. At most one exists per
    (request, stage, approver); the database constraint enforces this even
    when two writers race past the pre-check.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        request_id: int,
        stage_code: str,
        approver_id: str,
        decision: Decision,
    ) -> Approval:
        """
        Insert a decision.

        Raises:
            DuplicateApprovalError: If the approver already decided on this
                stage. When the database constraint catches it, the session
                transaction has been rolled back.
        """
        if self.exists(request_id, stage_code, approver_id):
            raise DuplicateApprovalError(request_id, stage_code, approver_id)

        approval = Approval(
            request_id=request_id,
            stage_code=stage_code,
            approver_id=approver_id,
            decision=Decision(decision).value,
            decided_at=datetime.utcnow(),
        )
        try:
            self.db.add(approval)
            self.db.flush()
        except IntegrityError:
            # A concurrent writer won; the unit of work cannot continue
            self.db.rollback()
            raise DuplicateApprovalError(request_id, stage_code, approver_id) from None

        logger.info(
            f"Recorded {approval.decision} by {approver_id} on request {request_id} "
            f"at {stage_code}"
        )
        return approval

    def exists(self, request_id: int, stage_code: str, approver_id: str) -> bool:
        return self.db.query(Approval.id).filter(
            and_(
                Approval.request_id == request_id,
                Approval.stage_code == stage_code,
                Approval.approver_id == approver_id,
            )
        ).first() is not None

    def count_distinct_approvers(
        self,
        request_id: int,
        stage_code: str,
        decision: Decision = Decision.APPROVE,
    ) -> int:
        """Number of distinct approvers who recorded ``decision`` at this stage."""
        count = self.db.query(func.count(distinct(Approval.approver_id))).filter(
            and_(
                Approval.request_id == request_id,
                Approval.stage_code == stage_code,
                Approval.decision == Decision(decision).value,
            )
        ).scalar()
        return int(count or 0)

    def for_request(self, request_id: int) -> List[Approval]:
        """All decisions on a request, oldest first."""
        return self.db.query(Approval).filter(
            Approval.request_id == request_id
        ).order_by(Approval.decided_at.asc(), Approval.id.asc()).all()
