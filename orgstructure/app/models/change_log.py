from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, Enum
from datetime import datetime
import enum

from app.core.database import Base

class ChangeLogAction(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DEACTIVATED = "DEACTIVATED"

class ChangeLogEntry(Base):
    __tablename__ = "structure_change_log"
    id = Column(Integer, primary_key=True)
    action = Column(Enum(ChangeLogAction, native_enum=False, length=16), index=True, nullable=False)
    entity_type = Column(String(64), index=True, nullable=False)   # Department | Position | StructureChangeRequest | StructureApproval
    entity_id = Column(Integer, index=True, nullable=False)
    performed_by_employee_id = Column(String(64), nullable=True)
    before_snapshot = Column(JSON, nullable=True)
    after_snapshot = Column(JSON, nullable=True)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
