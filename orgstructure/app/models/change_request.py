from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum
from datetime import datetime
import enum

from app.core.database import Base

class RequestType(str, enum.Enum):
    """
    Kind of structure change being asked for.

    NEW_DEPARTMENT is what other systems often call CREATE_DEPARTMENT; moving a
    position between departments is an UPDATE_POSITION.
    """
    NEW_DEPARTMENT = "NEW_DEPARTMENT"
    UPDATE_DEPARTMENT = "UPDATE_DEPARTMENT"
    NEW_POSITION = "NEW_POSITION"
    UPDATE_POSITION = "UPDATE_POSITION"
    CLOSE_POSITION = "CLOSE_POSITION"

class RequestStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"
    IMPLEMENTED = "IMPLEMENTED"

class StructureChangeRequest(Base):
    __tablename__ = "structure_change_requests"

    id = Column(Integer, primary_key=True, index=True)
    request_number = Column(String(64), unique=True, index=True, nullable=False)
    requested_by_employee_id = Column(String(64), nullable=False)
    request_type = Column(Enum(RequestType, native_enum=False, length=32), nullable=False)
    target_department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    target_position_id = Column(Integer, ForeignKey("positions.id"), nullable=True)
    details = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)
    status = Column(Enum(RequestStatus, native_enum=False, length=32), default=RequestStatus.DRAFT, index=True, nullable=False)
    submitted_by_employee_id = Column(String(64), nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}
