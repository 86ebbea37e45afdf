from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum, UniqueConstraint
from datetime import datetime
import enum

from app.core.database import Base

class ApprovalDecision(str, enum.Enum):
    """APPROVE / REJECT / ABSTAIN. PENDING is the abstain value: the approver has not come down either way."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

class StructureApproval(Base):
    __tablename__ = "structure_approvals"
    __table_args__ = (
        UniqueConstraint("change_request_id", "approver_employee_id", name="uq_structure_approval_approver"),
    )

    id = Column(Integer, primary_key=True)
    change_request_id = Column(Integer, ForeignKey("structure_change_requests.id"), index=True, nullable=False)
    approver_employee_id = Column(String(64), nullable=False)
    decision = Column(Enum(ApprovalDecision, native_enum=False, length=16), nullable=False)
    decided_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    comments = Column(Text, nullable=True)
