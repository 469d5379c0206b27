"""Storage collaborators consulted by the workflow.

Thin query wrappers over the ORM models; they own no business rules.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from deptflow.core.approval.states import RequestStatus
from deptflow.core.errors import NotFoundError
from deptflow.db.models import ApprovalRequest, ApprovalRule, Department


class RequestRepository:
    """Request storage."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        department_id: int,
        created_by: str,
        stage_code: str,
        payload: Optional[Dict[str, Any]] = None,
        status: str = RequestStatus.DRAFT.value,
    ) -> ApprovalRequest:
        request = ApprovalRequest(
            department_id=department_id,
            created_by=created_by,
            status=status,
            stage_code=stage_code,
            payload=payload or {},
        )
        self.db.add(request)
        self.db.flush()
        return request

    def update(self, request_id: int, patch: Dict[str, Any]) -> ApprovalRequest:
        request = self.find_by_id(request_id)
        if request is None:
            raise NotFoundError(f"Request {request_id} not found", request_id=request_id)
        for key, value in patch.items():
            setattr(request, key, value)
        request.updated_at = datetime.utcnow()
        self.db.flush()
        return request

    def find_by_id(self, request_id: int, *, for_update: bool = False) -> Optional[ApprovalRequest]:
        query = self.db.query(ApprovalRequest).filter(ApprovalRequest.id == request_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def find_by_department(self, department_id: int) -> List[ApprovalRequest]:
        return self.db.query(ApprovalRequest).filter(
            ApprovalRequest.department_id == department_id
        ).order_by(ApprovalRequest.created_at.asc(), ApprovalRequest.id.asc()).all()

    def find_in_review(self) -> List[ApprovalRequest]:
        return self.db.query(ApprovalRequest).filter(
            ApprovalRequest.status == RequestStatus.IN_REVIEW.value
        ).order_by(ApprovalRequest.created_at.asc(), ApprovalRequest.id.asc()).all()


class DepartmentRepository:
    """Department lookup."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, department_id: int) -> Optional[Department]:
        return self.db.query(Department).filter(Department.id == department_id).first()

    def find_by_code(self, code: str) -> Optional[Department]:
        return self.db.query(Department).filter(Department.code == code).first()

    def code_by_id(self, department_id: int) -> str:
        """Policy domain of a department.

        Raises:
            NotFoundError: If the department does not exist
        """
        department = self.find_by_id(department_id)
        if department is None:
            raise NotFoundError(
                f"Department {department_id} not found", department_id=department_id
            )
        return department.code

    def all(self) -> List[Department]:
        return self.db.query(Department).order_by(Department.id.asc()).all()

    def create(self, code: str, name: str, *, department_id: Optional[int] = None) -> Department:
        department = Department(id=department_id, code=code, name=name)
        self.db.add(department)
        self.db.flush()
        return department


class ApprovalRuleRepository:
    """Approval rule lookup."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, department_id: int, stage_code: str) -> Optional[ApprovalRule]:
        return self.db.query(ApprovalRule).filter(
            and_(
                ApprovalRule.department_id == department_id,
                ApprovalRule.stage_code == stage_code,
            )
        ).first()

    def for_department(self, department_id: int) -> List[ApprovalRule]:
        return self.db.query(ApprovalRule).filter(
            ApprovalRule.department_id == department_id
        ).all()

    def set(
        self,
        department_id: int,
        stage_code: str,
        *,
        min_approvers: int = 1,
        fallback_role: Optional[str] = None,
    ) -> ApprovalRule:
        """Create or replace the rule for a department's stage."""
        if min_approvers < 1:
            raise ValueError(f"min_approvers must be at least 1, got {min_approvers}")
        rule = self.get(department_id, stage_code)
        if rule is None:
            rule = ApprovalRule(department_id=department_id, stage_code=stage_code)
            self.db.add(rule)
        rule.min_approvers = min_approvers
        rule.fallback_role = fallback_role
        self.db.flush()
        return rule
