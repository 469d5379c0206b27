from functools import lru_cache
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from deptflow.core.approval.service import WorkflowCoordinator
from deptflow.core.config import get_settings
from deptflow.core.policy.adapter import SqlPolicyAdapter
from deptflow.core.policy.engine import PolicyEngine
from deptflow.core.policy.store import PolicyStore
from deptflow.db.session import SessionLocal


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_policy_store() -> PolicyStore:
    """Process-wide policy store backed by the database."""
    settings = get_settings()
    return PolicyStore(
        SqlPolicyAdapter(SessionLocal),
        cache_ttl_seconds=settings.policy_cache_ttl_seconds,
    )


def get_policy_engine(store: PolicyStore = Depends(get_policy_store)) -> PolicyEngine:
    return PolicyEngine(store)


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity from the X-User-Id header.

    Replace with token-based identity in production deployments.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()


def get_coordinator(
    db: Session = Depends(get_db),
    policy: PolicyEngine = Depends(get_policy_engine),
) -> WorkflowCoordinator:
    return WorkflowCoordinator(db, policy)
