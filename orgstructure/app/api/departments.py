from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.crud import department as crud

router = APIRouter(prefix="/api/departments", tags=["departments"])


class DepartmentCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    head_position_id: Optional[int] = None
    performed_by_employee_id: Optional[str] = None

class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    head_position_id: Optional[int] = None
    performed_by_employee_id: Optional[str] = None
    expected_version: Optional[int] = None

class DeactivateIn(BaseModel):
    performed_by_employee_id: Optional[str] = None
    reason: Optional[str] = None

class DepartmentOut(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str]
    head_position_id: Optional[int]
    is_active: bool
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=List[DepartmentOut])
def list_departments(active_only: bool = False, db: Session = Depends(get_db)):
    return [DepartmentOut.model_validate(d) for d in crud.list_departments(db, active_only=active_only)]

@router.get("/by-name/{name}", response_model=DepartmentOut)
def get_department_by_name(name: str, db: Session = Depends(get_db)):
    return DepartmentOut.model_validate(crud.get_department_by_name(db, name))

@router.get("/{department_id}", response_model=DepartmentOut)
def get_department(department_id: int, db: Session = Depends(get_db)):
    return DepartmentOut.model_validate(crud.get_department(db, department_id))

@router.post("", response_model=DepartmentOut, status_code=201)
def create_department(body: DepartmentCreate, db: Session = Depends(get_db)):
    d = crud.create_department(
        db, body.code, body.name, body.description, body.head_position_id,
        performed_by=body.performed_by_employee_id,
    )
    return DepartmentOut.model_validate(d)

@router.patch("/{department_id}", response_model=DepartmentOut)
def update_department(department_id: int, body: DepartmentUpdate, db: Session = Depends(get_db)):
    patch = body.model_dump(exclude_unset=True, exclude={"performed_by_employee_id", "expected_version"})
    d = crud.update_department(
        db, department_id, patch,
        performed_by=body.performed_by_employee_id, expected_version=body.expected_version,
    )
    return DepartmentOut.model_validate(d)

@router.patch("/{department_id}/deactivate", response_model=DepartmentOut)
def deactivate_department(department_id: int, body: Optional[DeactivateIn] = None, db: Session = Depends(get_db)):
    body = body or DeactivateIn()
    d = crud.deactivate_department(db, department_id, body.performed_by_employee_id, body.reason)
    return DepartmentOut.model_validate(d)

@router.patch("/{department_id}/reactivate", response_model=DepartmentOut)
def reactivate_department(department_id: int, body: Optional[DeactivateIn] = None, db: Session = Depends(get_db)):
    body = body or DeactivateIn()
    d = crud.reactivate_department(db, department_id, body.performed_by_employee_id, body.reason)
    return DepartmentOut.model_validate(d)
