from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey
from datetime import datetime
from app.core.database import Base

class Position(Base):
    __tablename__ = "positions"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, index=True, nullable=False)
    title = Column(String(255), index=True, nullable=False)
    description = Column(Text, nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), index=True, nullable=False)
    reports_to_position_id = Column(Integer, ForeignKey("positions.id"), index=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class PositionAssignment(Base):
    __tablename__ = "position_assignments"

    id = Column(Integer, primary_key=True)
    position_id = Column(Integer, ForeignKey("positions.id"), index=True, nullable=False)
    employee_id = Column(String(64), index=True, nullable=True)
    start_date = Column(DateTime, default=datetime.utcnow, nullable=True)
    end_date = Column(DateTime, nullable=True)                # NULL while the assignment is open
