from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.crud import position as crud

router = APIRouter(prefix="/api/positions", tags=["positions"])


class PositionCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=255)
    department_id: int
    description: Optional[str] = None
    reports_to_position_id: Optional[int] = None
    performed_by_employee_id: Optional[str] = None

class PositionUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    department_id: Optional[int] = None
    reports_to_position_id: Optional[int] = None
    is_active: Optional[bool] = None
    performed_by_employee_id: Optional[str] = None
    expected_version: Optional[int] = None

class PositionDeactivateIn(BaseModel):
    performed_by_employee_id: Optional[str] = None
    end_date: Optional[datetime] = None
    reason: Optional[str] = None

class PositionOut(BaseModel):
    id: int
    code: str
    title: str
    description: Optional[str]
    department_id: int
    reports_to_position_id: Optional[int]
    is_active: bool
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class AssignmentOut(BaseModel):
    id: int
    position_id: int
    employee_id: Optional[str]
    start_date: Optional[datetime]
    end_date: Optional[datetime]

    class Config:
        from_attributes = True


@router.get("", response_model=List[PositionOut])
def list_positions(
    department_id: Optional[int] = None,
    title: Optional[List[str]] = Query(default=None),
    db: Session = Depends(get_db),
):
    return [PositionOut.model_validate(p) for p in crud.list_positions(db, department_id, title)]

@router.get("/by-title/{title}", response_model=PositionOut)
def get_position_by_title(title: str, db: Session = Depends(get_db)):
    return PositionOut.model_validate(crud.get_position_by_title(db, title))

@router.get("/{position_id}", response_model=PositionOut)
def get_position(position_id: int, db: Session = Depends(get_db)):
    return PositionOut.model_validate(crud.get_position(db, position_id))

@router.get("/{position_id}/assignments", response_model=List[AssignmentOut])
def list_assignments(position_id: int, db: Session = Depends(get_db)):
    return [AssignmentOut.model_validate(a) for a in crud.list_assignments(db, position_id)]

@router.post("", response_model=PositionOut, status_code=201)
def create_position(body: PositionCreate, db: Session = Depends(get_db)):
    p = crud.create_position(
        db, body.code, body.title, body.department_id, body.description,
        body.reports_to_position_id, performed_by=body.performed_by_employee_id,
    )
    return PositionOut.model_validate(p)

@router.patch("/{position_id}", response_model=PositionOut)
def update_position(position_id: int, body: PositionUpdate, db: Session = Depends(get_db)):
    patch = body.model_dump(exclude_unset=True, exclude={"performed_by_employee_id", "expected_version"})
    p = crud.update_position(
        db, position_id, patch,
        performed_by=body.performed_by_employee_id, expected_version=body.expected_version,
    )
    return PositionOut.model_validate(p)

@router.patch("/{position_id}/deactivate", response_model=PositionOut)
def deactivate_position(position_id: int, body: Optional[PositionDeactivateIn] = None, db: Session = Depends(get_db)):
    body = body or PositionDeactivateIn()
    p = crud.deactivate_position(db, position_id, body.performed_by_employee_id, body.end_date, body.reason)
    return PositionOut.model_validate(p)

@router.patch("/{position_id}/reactivate", response_model=PositionOut)
def reactivate_position(position_id: int, body: Optional[PositionDeactivateIn] = None, db: Session = Depends(get_db)):
    body = body or PositionDeactivateIn()
    p = crud.reactivate_position(db, position_id, body.performed_by_employee_id, body.reason)
    return PositionOut.model_validate(p)
