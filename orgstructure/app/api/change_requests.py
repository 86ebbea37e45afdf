from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.crud import change_request as crud
from app.crud.approval import record_decision, list_decisions, tally_decisions
from app.models.change_request import RequestStatus, RequestType
from app.models.structure_approval import ApprovalDecision

router = APIRouter(prefix="/api/change-requests", tags=["change-requests"])


class ChangeRequestCreate(BaseModel):
    request_number: str = Field(min_length=1, max_length=64)
    requested_by_employee_id: str = Field(min_length=1)
    request_type: RequestType
    target_department_id: Optional[int] = None
    target_position_id: Optional[int] = None
    details: Optional[str] = None
    reason: Optional[str] = None

class SubmitIn(BaseModel):
    submitted_by_employee_id: str = Field(min_length=1)
    submitted_at: Optional[datetime] = None

class StatusIn(BaseModel):
    status: RequestStatus
    performed_by_employee_id: Optional[str] = None
    summary: Optional[str] = None
    expected_version: Optional[int] = None

class DecisionIn(BaseModel):
    approver_employee_id: str = Field(min_length=1)
    decision: ApprovalDecision
    decided_at: Optional[datetime] = None
    comments: Optional[str] = None

class ChangeRequestOut(BaseModel):
    id: int
    request_number: str
    requested_by_employee_id: str
    request_type: RequestType
    target_department_id: Optional[int]
    target_position_id: Optional[int]
    details: Optional[str]
    reason: Optional[str]
    status: RequestStatus
    submitted_by_employee_id: Optional[str]
    submitted_at: Optional[datetime]
    version: int
    created_at: datetime
    updated_at: datetime
    allowed_next: List[RequestStatus] = []

    class Config:
        from_attributes = True

class ApprovalOut(BaseModel):
    id: int
    change_request_id: int
    approver_employee_id: str
    decision: ApprovalDecision
    decided_at: datetime
    comments: Optional[str]

    class Config:
        from_attributes = True


def _out(req) -> ChangeRequestOut:
    out = ChangeRequestOut.model_validate(req)
    out.allowed_next = sorted(crud.allowed_transitions(req.status), key=lambda s: s.value)
    return out


@router.post("", response_model=ChangeRequestOut, status_code=201)
def create_change_request(body: ChangeRequestCreate, db: Session = Depends(get_db)):
    req = crud.create_change_request(
        db, body.request_number, body.requested_by_employee_id, body.request_type,
        body.target_department_id, body.target_position_id, body.details, body.reason,
    )
    return _out(req)

@router.get("", response_model=List[ChangeRequestOut])
def list_change_requests(status: Optional[RequestStatus] = None, db: Session = Depends(get_db)):
    return [_out(r) for r in crud.list_change_requests(db, status)]

@router.get("/{request_id}", response_model=ChangeRequestOut)
def get_change_request(request_id: int, db: Session = Depends(get_db)):
    return _out(crud.get_change_request(db, request_id))

@router.post("/{request_id}/submit", response_model=ChangeRequestOut)
def submit_change_request(request_id: int, body: SubmitIn, db: Session = Depends(get_db)):
    req = crud.submit_change_request(db, request_id, body.submitted_by_employee_id, body.submitted_at)
    return _out(req)

@router.patch("/{request_id}/status", response_model=ChangeRequestOut)
def update_request_status(request_id: int, body: StatusIn, db: Session = Depends(get_db)):
    req = crud.update_request_status(
        db, request_id, body.status, body.performed_by_employee_id, body.summary,
        expected_version=body.expected_version,
    )
    return _out(req)

@router.post("/{request_id}/approvals", response_model=ApprovalOut)
def record_approval_decision(request_id: int, body: DecisionIn, db: Session = Depends(get_db)):
    a = record_decision(db, request_id, body.approver_employee_id, body.decision, body.decided_at, body.comments)
    return ApprovalOut.model_validate(a)

@router.get("/{request_id}/approvals", response_model=List[ApprovalOut])
def list_approval_decisions(request_id: int, db: Session = Depends(get_db)):
    return [ApprovalOut.model_validate(a) for a in list_decisions(db, request_id)]

@router.get("/{request_id}/approvals/tally", response_model=Dict[str, int])
def approval_tally(request_id: int, db: Session = Depends(get_db)):
    return tally_decisions(db, request_id)
