"""Department request and approval API endpoints."""

from typing import Any, Dict, List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from deptflow.api.deps import get_coordinator, get_current_user_id
from deptflow.core.approval.service import WorkflowCoordinator

router = APIRouter(prefix="/requests", tags=["requests"])


# Schemas
class RequestResponse(BaseModel):
    id: int
    department_id: int
    created_by: str
    status: str
    stage_code: str
    payload: Dict[str, Any] = {}
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    permitted_actions: List[str] = []
    review_scope: Optional[str] = None

    class Config:
        from_attributes = True


class ApprovalRecordResponse(BaseModel):
    id: int
    stage_code: str
    approver_id: str
    decision: str
    decided_at: datetime

    class Config:
        from_attributes = True


class TransitionResponse(BaseModel):
    id: int
    from_status: Optional[str]
    to_status: str
    from_stage: Optional[str]
    to_stage: str
    user_id: str
    reason: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class HistoryResponse(BaseModel):
    request_id: int
    approvals: List[ApprovalRecordResponse]
    transitions: List[TransitionResponse]


class CreateRequest(BaseModel):
    department_id: int
    payload: Dict[str, Any] = Field(default_factory=dict)


class DecisionAction(BaseModel):
    # Validated by the coordinator so that unknown values are a 400, not a 422
    decision: str = "approve"


class BulkActionRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)
    action: str = "approve"


class BulkSuccess(BaseModel):
    id: int
    status: str
    stage_code: str
    permitted_actions: List[str] = []


class BulkFailure(BaseModel):
    id: int
    error: str
    detail: str


class BulkActionResponse(BaseModel):
    succeeded: List[BulkSuccess] = []
    failed: List[BulkFailure] = []


# Endpoints
# Handlers are sync so that stage-lock waits block a worker thread, not the event loop
@router.get("", response_model=List[RequestResponse])
def list_department_requests(
    department_id: int = Query(...),
    user_id: str = Depends(get_current_user_id),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """List a department's requests with the caller's permitted actions."""
    return [
        RequestResponse(**item)
        for item in coordinator.list_for_department(user_id, department_id)
    ]


@router.get("/reviewable", response_model=List[RequestResponse])
def list_reviewable_requests(
    user_id: str = Depends(get_current_user_id),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Requests in review the caller can act on now or at a later stage."""
    return [RequestResponse(**item) for item in coordinator.list_reviewable(user_id)]


@router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
def create_request(
    body: CreateRequest,
    user_id: str = Depends(get_current_user_id),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Create a draft request in a department."""
    request = coordinator.create_request(user_id, body.department_id, body.payload)
    return RequestResponse(**coordinator.get_request(user_id, request.id))


@router.get("/{request_id}", response_model=RequestResponse)
def get_request(
    request_id: int,
    user_id: str = Depends(get_current_user_id),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    return RequestResponse(**coordinator.get_request(user_id, request_id))


@router.get("/{request_id}/history", response_model=HistoryResponse)
def get_request_history(
    request_id: int,
    user_id: str = Depends(get_current_user_id),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Approval records and status/stage transitions of a request."""
    history = coordinator.history(user_id, request_id)
    return HistoryResponse(
        request_id=history["request_id"],
        approvals=[ApprovalRecordResponse.model_validate(a) for a in history["approvals"]],
        transitions=[TransitionResponse.model_validate(t) for t in history["transitions"]],
    )


@router.post("/{request_id}/submit", response_model=RequestResponse)
def submit_request(
    request_id: int,
    user_id: str = Depends(get_current_user_id),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Move a draft into review."""
    request = coordinator.submit_request(user_id, request_id)
    return RequestResponse(**coordinator.describe(user_id, request))


@router.post("/{request_id}/approve", response_model=RequestResponse)
def decide_request(
    request_id: int,
    action: DecisionAction,
    user_id: str = Depends(get_current_user_id),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Approve or reject the request's current stage."""
    request = coordinator.approve(request_id, user_id, action.decision)
    return RequestResponse(**coordinator.describe(user_id, request))


@router.post("/bulk", response_model=BulkActionResponse)
def bulk_decide(
    batch: BulkActionRequest,
    user_id: str = Depends(get_current_user_id),
    coordinator: WorkflowCoordinator = Depends(get_coordinator),
):
    """Apply one decision to many requests; failures do not stop the batch."""
    return BulkActionResponse(**coordinator.bulk_approve(user_id, batch.ids, batch.action))
