"""Persisted policy facts: grants and role memberships."""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint

from deptflow.db.base import Base


class PolicyGrant(Base):
    __tablename__ = "policy_grants"
    __table_args__ = (
        UniqueConstraint("role", "domain", "resource", "action", name="uq_policy_grants"),
    )

    id = Column(Integer, primary_key=True)
    role = Column(String(50), nullable=False, index=True)
    domain = Column(String(50), nullable=False)  # Department code or "*"
    resource = Column(String(50), nullable=False)
    action = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<PolicyGrant {self.role} {self.domain} {self.resource} {self.action}>"


class RoleMembership(Base):
    __tablename__ = "role_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "role", "domain", name="uq_role_memberships"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    role = Column(String(50), nullable=False)
    domain = Column(String(50), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<RoleMembership {self.user_id} {self.role}@{self.domain}>"
