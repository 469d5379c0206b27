from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from deptflow.db.base import Base


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True)
    code = Column(String(50), nullable=False, unique=True, index=True)  # Policy domain, e.g. "D15"
    name = Column(String(255), nullable=False)

    # Relationships
    requests = relationship("ApprovalRequest", back_populates="department")
    rules = relationship("ApprovalRule", back_populates="department")

    def __repr__(self) -> str:
        return f"<Department {self.code}>"
