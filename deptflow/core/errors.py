"""Error taxonomy for the approval workflow.

Every error here is scoped to a single call and is correctable by the
caller; none is retried by the workflow itself.
"""

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base class for workflow errors."""

    code = "workflow_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message, "context": self.context}


class NotFoundError(WorkflowError):
    """Unknown request or department."""

    code = "not_found"


class ForbiddenError(WorkflowError):
    """The acting user may not perform the action.

    Raised for policy denials, self-approval, and requests that have no
    stage left to act on (terminal or not yet in review).
    """

    code = "forbidden"

    def __init__(
        self,
        message: str,
        *,
        action: Optional[str] = None,
        domain: Optional[str] = None,
        **context: Any,
    ):
        super().__init__(message, action=action, domain=domain, **context)
        self.action = action
        self.domain = domain


class ValidationError(WorkflowError):
    """Duplicate approval or malformed input."""

    code = "validation_error"


class ConflictError(WorkflowError):
    """The request kept changing underneath the caller."""

    code = "conflict"


class DuplicateApprovalError(WorkflowError):
    """An approver already decided on this (request, stage)."""

    code = "duplicate_approval"

    def __init__(self, request_id: int, stage_code: str, approver_id: str):
        super().__init__(
            f"Approver {approver_id} already decided on request {request_id} "
            f"at stage {stage_code}",
            request_id=request_id,
            stage_code=stage_code,
            approver_id=approver_id,
        )
        self.request_id = request_id
        self.stage_code = stage_code
        self.approver_id = approver_id
