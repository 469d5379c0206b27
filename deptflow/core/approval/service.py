"""Workflow coordinator for department requests.

Provides the high-level API callers use: creating and submitting requests,
recording approvals with quorum-gated stage advancement, and listing
requests annotated with the caller's permitted next actions.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Union

from sqlalchemy.orm import Session

from deptflow.core.config import Settings, get_settings
from deptflow.core.errors import (
    ConflictError,
    DuplicateApprovalError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    WorkflowError,
)
from deptflow.core.logger import get_logger
from deptflow.core.policy.engine import PolicyEngine
from deptflow.core.rbac.permissions import (
    Action,
    Resource,
    WILDCARD_DOMAIN,
    approve_action,
)
from deptflow.db.models import ApprovalHistory, ApprovalRequest
from deptflow.db.repositories import (
    ApprovalRuleRepository,
    DepartmentRepository,
    RequestRepository,
)
from .ledger import ApprovalLedger
from .locks import StageLockRegistry
from .resolver import StageResolver
from .states import REVIEWABLE_STATUSES, Decision, RequestStatus, is_terminal


logger = get_logger("workflow")

# Shared by every coordinator in the process
_default_locks = StageLockRegistry()


def request_to_dict(request: ApprovalRequest, permitted_actions: List[str], **extra: Any) -> Dict[str, Any]:
    """Convert an ApprovalRequest model to a dictionary annotated with actions."""
    data = {
        "id": request.id,
        "department_id": request.department_id,
        "created_by": request.created_by,
        "status": request.status,
        "stage_code": request.stage_code,
        "payload": request.payload,
        "created_at": request.created_at,
        "updated_at": request.updated_at,
        "permitted_actions": permitted_actions,
    }
    data.update(extra)
    return data


class WorkflowCoordinator:
    """
    Orchestrates requests through their approval stages.

    Handles:
    - Request creation with initial stage resolution
    - Submission into review
    - Approve/reject with self-approval and duplicate prevention
    - Quorum-gated stage advancement and finalization
    - Batch approval
    - Listings annotated with permitted actions

    Each mutating call is its own unit of work and commits before returning.
    """

    def __init__(
        self,
        db: Session,
        policy: PolicyEngine,
        *,
        locks: Optional[StageLockRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            db: Database session
            policy: Policy engine for authorization
            locks: Stage lock registry; defaults to the process-wide registry
            settings: Workflow settings; defaults to the environment
        """
        settings = settings or get_settings()
        self.db = db
        self.policy = policy
        self.locks = locks if locks is not None else _default_locks
        self.default_min_approvers = settings.default_min_approvers
        self.early_visibility = settings.early_visibility

        self.requests = RequestRepository(db)
        self.departments = DepartmentRepository(db)
        self.rules = ApprovalRuleRepository(db)
        self.ledger = ApprovalLedger(db)
        self.resolver = StageResolver(
            policy,
            self.rules.get,
            head_role=settings.head_role,
            financial_control_departments=settings.financial_control_departments_list,
        )

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    def create_request(
        self,
        acting_user: str,
        department_id: int,
        payload: Optional[Dict[str, Any]] = None,
    ) -> ApprovalRequest:
        """
        Create a draft request in a department.

        Raises:
            NotFoundError: If the department does not exist
            ForbiddenError: If the user may not create requests there
        """
        code = self.departments.code_by_id(department_id)
        self.policy.check(acting_user, code, Resource.REQUESTS.value, Action.CREATE.value)

        stage = self.resolver.initial_stage(department_id, code, requester=acting_user)
        with self._unit_of_work():
            request = self.requests.create(
                department_id=department_id,
                created_by=acting_user,
                stage_code=stage.value,
                payload=payload,
            )
            self._record_transition(request, None, None, acting_user, "created")

        logger.info(
            f"Request {request.id} created by {acting_user} in {code} at stage {stage.value}"
        )
        return request

    def submit_request(self, acting_user: str, request_id: int) -> ApprovalRequest:
        """
        Move a draft into review.

        Raises:
            NotFoundError: If the request does not exist
            ForbiddenError: If the user may not edit requests in the department,
                or the request is not a draft
        """
        request = self._get_or_404(request_id)
        code = self.departments.code_by_id(request.department_id)
        self.policy.check(acting_user, code, Resource.REQUESTS.value, Action.EDIT.value)

        if request.status != RequestStatus.DRAFT.value:
            raise ForbiddenError(
                f"Request {request_id} is {request.status}; only drafts can be submitted",
                action="submit",
                domain=code,
                status=request.status,
            )

        with self._unit_of_work():
            stage = request.stage_code
            self.requests.update(request.id, {"status": RequestStatus.SUBMITTED.value})
            self._record_transition(request, RequestStatus.DRAFT.value, stage, acting_user, "submitted")
            self.requests.update(request.id, {"status": RequestStatus.IN_REVIEW.value})
            self._record_transition(request, RequestStatus.SUBMITTED.value, stage, acting_user, "review started")

        logger.info(f"Request {request.id} submitted by {acting_user}; in review at {request.stage_code}")
        return request

    def get_request(self, acting_user: str, request_id: int) -> Dict[str, Any]:
        request = self._get_or_404(request_id)
        code = self.departments.code_by_id(request.department_id)
        self.policy.check(acting_user, code, Resource.REQUESTS.value, Action.VIEW.value)
        return request_to_dict(request, self._permitted_actions(acting_user, code, request))

    def describe(self, acting_user: str, request: ApprovalRequest, **extra: Any) -> Dict[str, Any]:
        """Serialize a request the caller already holds, with their permitted actions."""
        code = self.departments.code_by_id(request.department_id)
        return request_to_dict(request, self._permitted_actions(acting_user, code, request), **extra)

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def approve(
        self,
        request_id: int,
        acting_user: str,
        decision: Union[Decision, str],
    ) -> ApprovalRequest:
        """
        Record a decision on the request's current stage and apply its effect.

        Reject finalizes the request as REJECTED at its current stage. Approve
        advances the stage (or finalizes as APPROVED) once the stage's quorum
        of distinct approvers is reached.

        Record, count and advance run under the (request, stage) lock. The
        decision is recorded against the stage the caller observed; its effect
        is applied only if the request is still at that stage.

        Raises:
            NotFoundError: If the request or its department does not exist
            ForbiddenError: Self-approval, policy denial, or no stage to act on
            ValidationError: Duplicate approval or malformed decision
            ConflictError: The observed stage closed before the decision was recorded
        """
        decision = self._parse_decision(decision)
        request = self._get_or_404(request_id)
        code = self.departments.code_by_id(request.department_id)
        stage = request.stage_code

        self._check_can_decide(request, acting_user, code)

        with self.locks.hold(request.id, stage):
            with self._unit_of_work():
                request = self.requests.find_by_id(request_id, for_update=True)
                if is_terminal(RequestStatus(request.status)):
                    raise ForbiddenError(
                        f"Request {request_id} was {request.status} while waiting; "
                        f"no stage left to approve",
                        action=approve_action(stage),
                        domain=code,
                        status=request.status,
                    )

                if request.stage_code != stage:
                    logger.info(
                        f"Stage {stage} of request {request_id} closed while "
                        f"{acting_user} waited; now at {request.stage_code}"
                    )
                    raise ConflictError(
                        f"Stage {stage} of request {request_id} closed before the "
                        f"{decision.value} was recorded; request is now at {request.stage_code}",
                        request_id=request_id,
                        stage_code=stage,
                        current_stage=request.stage_code,
                    )

                try:
                    self.ledger.record(request.id, stage, acting_user, decision)
                except DuplicateApprovalError as e:
                    logger.warning(
                        f"Duplicate {decision.value} by {acting_user} on request "
                        f"{request_id} at {stage}"
                    )
                    raise ValidationError(
                        "Duplicate approval by same user",
                        request_id=request_id,
                        stage_code=stage,
                        approver_id=acting_user,
                    ) from e

                if decision is Decision.REJECT:
                    self._finalize(request, RequestStatus.REJECTED, acting_user, f"rejected at {stage}")
                else:
                    self._advance_if_quorum(request, code, acting_user)

        return request

    def bulk_approve(
        self,
        acting_user: str,
        request_ids: List[int],
        decision: Union[Decision, str] = Decision.APPROVE,
    ) -> Dict[str, Any]:
        """
        Apply ``approve`` to each request in order.

        Not transactional across the batch: a failure on one id leaves earlier
        successes in place and processing continues.

        Returns:
            Summary of results
        """
        self.policy.check(
            acting_user, WILDCARD_DOMAIN, Resource.REQUESTS.value, Action.BULK_APPROVE.value
        )
        decision = self._parse_decision(decision)

        results: Dict[str, Any] = {"succeeded": [], "failed": []}
        for request_id in request_ids:
            try:
                request = self.approve(request_id, acting_user, decision)
                results["succeeded"].append({
                    "id": request.id,
                    "status": request.status,
                    "stage_code": request.stage_code,
                    "permitted_actions": self.describe(acting_user, request)["permitted_actions"],
                })
            except WorkflowError as e:
                results["failed"].append({
                    "id": request_id,
                    "error": e.code,
                    "detail": e.message,
                })

        logger.info(
            f"Bulk {decision.value} by {acting_user}: {len(results['succeeded'])} succeeded, "
            f"{len(results['failed'])} failed"
        )
        return results

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_for_department(self, acting_user: str, department_id: int) -> List[Dict[str, Any]]:
        """
        List a department's requests with the caller's permitted actions.

        Raises:
            NotFoundError: If the department does not exist
            ForbiddenError: If the user may not view the department's requests
        """
        code = self.departments.code_by_id(department_id)
        self.policy.check(acting_user, code, Resource.REQUESTS.value, Action.VIEW.value)
        return [
            request_to_dict(r, self._permitted_actions(acting_user, code, r))
            for r in self.requests.find_by_department(department_id)
        ]

    def list_reviewable(self, acting_user: str) -> List[Dict[str, Any]]:
        """
        Requests in review that the caller can act on, or will act on later.

        Each entry carries ``review_scope``:
        - "department": approvable through a department-scoped grant
        - "global": approvable through a wildcard-domain grant
        - "upcoming": a later stage is approvable; view only, no actions
        """
        codes = {d.id: d.code for d in self.departments.all()}
        reviewable: List[Dict[str, Any]] = []

        for request in self.requests.find_in_review():
            code = codes.get(request.department_id)
            if code is None or request.created_by == acting_user:
                continue
            if self.ledger.exists(request.id, request.stage_code, acting_user):
                continue

            action = approve_action(request.stage_code)
            can_approve_dept = self.policy.enforce(acting_user, code, Resource.REQUESTS.value, action)
            can_approve_global = self.policy.enforce(
                acting_user, WILDCARD_DOMAIN, Resource.REQUESTS.value, action
            )

            if can_approve_dept or can_approve_global:
                scope = "global" if can_approve_global else "department"
                reviewable.append(request_to_dict(request, ["approve", "reject"], review_scope=scope))
            elif self.early_visibility and self._approves_later_stage(acting_user, code, request):
                reviewable.append(request_to_dict(request, [], review_scope="upcoming"))

        return reviewable

    def history(self, acting_user: str, request_id: int) -> Dict[str, Any]:
        """Approval records and status/stage transitions of a request."""
        request = self._get_or_404(request_id)
        code = self.departments.code_by_id(request.department_id)
        self.policy.check(acting_user, code, Resource.REQUESTS.value, Action.VIEW.value)

        transitions = self.db.query(ApprovalHistory).filter(
            ApprovalHistory.request_id == request.id
        ).order_by(ApprovalHistory.id.asc()).all()

        return {
            "request_id": request.id,
            "approvals": self.ledger.for_request(request.id),
            "transitions": transitions,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _get_or_404(self, request_id: int) -> ApprovalRequest:
        request = self.requests.find_by_id(request_id)
        if request is None:
            raise NotFoundError(f"Request {request_id} not found", request_id=request_id)
        return request

    @staticmethod
    def _parse_decision(decision: Union[Decision, str]) -> Decision:
        try:
            return Decision(decision)
        except ValueError:
            raise ValidationError(
                f"Invalid decision {decision!r}; expected one of "
                f"{', '.join(d.value for d in Decision)}",
                decision=decision,
            ) from None

    def _check_can_decide(self, request: ApprovalRequest, acting_user: str, code: str) -> None:
        if request.created_by == acting_user:
            logger.warning(f"Self-approval attempt by {acting_user} on request {request.id}")
            raise ForbiddenError(
                "Requesters cannot approve or reject their own requests",
                action=approve_action(request.stage_code),
                domain=code,
                reason="self_approval",
            )

        if RequestStatus(request.status) not in REVIEWABLE_STATUSES:
            raise ForbiddenError(
                f"Request {request.id} is {request.status}; no stage to approve",
                action=approve_action(request.stage_code),
                domain=code,
                status=request.status,
            )

        self.policy.check(
            acting_user, code, Resource.REQUESTS.value, approve_action(request.stage_code)
        )

    def _min_approvers(self, department_id: int, stage_code: str) -> int:
        rule = self.rules.get(department_id, stage_code)
        if rule is None:
            return self.default_min_approvers
        return rule.min_approvers

    def _advance_if_quorum(self, request: ApprovalRequest, code: str, acting_user: str) -> None:
        stage = request.stage_code
        required = self._min_approvers(request.department_id, stage)
        count = self.ledger.count_distinct_approvers(request.id, stage, Decision.APPROVE)

        if count < required:
            logger.info(
                f"Request {request.id} at {stage}: {count}/{required} approvals; waiting for more"
            )
            return

        next_stage = self.resolver.next_stage(code, stage)
        if next_stage is None:
            self._finalize(request, RequestStatus.APPROVED, acting_user, f"quorum {count}/{required} at {stage}")
            return

        self.requests.update(request.id, {"stage_code": next_stage.value})
        self._record_transition(
            request, request.status, stage, acting_user, f"quorum {count}/{required} at {stage}"
        )
        logger.info(f"Request {request.id} advanced from {stage} to {next_stage.value}")

    def _finalize(
        self,
        request: ApprovalRequest,
        status: RequestStatus,
        acting_user: str,
        reason: str,
    ) -> None:
        previous_status = request.status
        self.requests.update(request.id, {"status": status.value})
        self._record_transition(request, previous_status, request.stage_code, acting_user, reason)
        logger.info(f"Request {request.id} {status.value} at {request.stage_code} by {acting_user}")

    def _record_transition(
        self,
        request: ApprovalRequest,
        from_status: Optional[str],
        from_stage: Optional[str],
        acting_user: str,
        reason: str,
    ) -> None:
        self.db.add(ApprovalHistory(
            request_id=request.id,
            from_status=from_status,
            to_status=request.status,
            from_stage=from_stage,
            to_stage=request.stage_code,
            user_id=acting_user,
            reason=reason,
            created_at=datetime.utcnow(),
        ))
        self.db.flush()

    def _permitted_actions(self, acting_user: str, code: str, request: ApprovalRequest) -> List[str]:
        decided = (
            request.status == RequestStatus.IN_REVIEW.value
            and self.ledger.exists(request.id, request.stage_code, acting_user)
        )
        return self.policy.permitted_actions(
            acting_user,
            code,
            status=request.status,
            stage_code=request.stage_code,
            created_by=request.created_by,
            decided=decided,
        )

    def _approves_later_stage(self, acting_user: str, code: str, request: ApprovalRequest) -> bool:
        if not self.policy.enforce(acting_user, code, Resource.REQUESTS.value, Action.VIEW.value):
            return False
        return any(
            self.policy.can_approve_stage(acting_user, code, stage.value)
            for stage in self.resolver.remaining_stages(code, request.stage_code)
        )
