# app/crud/change_request.py
from datetime import datetime
from types import MappingProxyType
from typing import FrozenSet, List, Mapping, Optional, Union

import structlog
from sqlalchemy.orm import Session

from app.core.database import atomic
from app.core.errors import NotFoundError, IllegalTransitionError, ValidationFailure, ConflictError
from app.models.department import Department
from app.models.position import Position
from app.models.change_request import StructureChangeRequest, RequestStatus, RequestType
from app.models.change_log import ChangeLogAction
from app.services.audit import record_change, mirror_change
from app.utils.snapshot import snapshot
from app.metrics import request_transitions_total, illegal_transitions_total

log = structlog.get_logger(__name__)

ENTITY = "StructureChangeRequest"

# current status -> statuses it may move to; anything absent is illegal
REQUEST_TRANSITIONS: Mapping[RequestStatus, FrozenSet[RequestStatus]] = MappingProxyType({
    RequestStatus.DRAFT: frozenset({RequestStatus.SUBMITTED, RequestStatus.CANCELED}),
    RequestStatus.SUBMITTED: frozenset({RequestStatus.UNDER_REVIEW, RequestStatus.CANCELED}),
    RequestStatus.UNDER_REVIEW: frozenset({
        RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELED,
    }),
    RequestStatus.APPROVED: frozenset({RequestStatus.IMPLEMENTED}),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.CANCELED: frozenset(),
    RequestStatus.IMPLEMENTED: frozenset(),
})

TERMINAL_STATUSES = frozenset(s for s, nxt in REQUEST_TRANSITIONS.items() if not nxt)


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationFailure(f"Invalid {label} '{value}'. Must be one of {[e.value for e in enum_cls]}.")


def allowed_transitions(status: Union[RequestStatus, str]) -> FrozenSet[RequestStatus]:
    return REQUEST_TRANSITIONS[_coerce(RequestStatus, status, "status")]


def ensure_transition(current: RequestStatus, target: RequestStatus) -> None:
    if target not in REQUEST_TRANSITIONS.get(current, frozenset()):
        illegal_transitions_total.inc()
        raise IllegalTransitionError(current, target)


def get_change_request(db: Session, request_id: int) -> StructureChangeRequest:
    req = db.get(StructureChangeRequest, request_id)
    if not req:
        raise NotFoundError("Structure change request", request_id)
    return req


def list_change_requests(db: Session, status: Optional[Union[RequestStatus, str]] = None) -> List[StructureChangeRequest]:
    q = db.query(StructureChangeRequest)
    if status:
        q = q.filter(StructureChangeRequest.status == _coerce(RequestStatus, status, "status"))
    return q.order_by(StructureChangeRequest.created_at.desc(), StructureChangeRequest.id.desc()).all()


def create_change_request(
    db: Session,
    request_number: str,
    requested_by_employee_id: str,
    request_type: Union[RequestType, str],
    target_department_id: Optional[int] = None,
    target_position_id: Optional[int] = None,
    details: Optional[str] = None,
    reason: Optional[str] = None,
) -> StructureChangeRequest:
    """Open a change request in DRAFT. Targets, when given, must exist."""
    rtype = _coerce(RequestType, request_type, "request type")
    if target_department_id is not None and db.get(Department, target_department_id) is None:
        raise NotFoundError("Department", target_department_id)
    if target_position_id is not None and db.get(Position, target_position_id) is None:
        raise NotFoundError("Position", target_position_id)
    with atomic(db):
        req = StructureChangeRequest(
            request_number=request_number,
            requested_by_employee_id=requested_by_employee_id,
            request_type=rtype,
            target_department_id=target_department_id,
            target_position_id=target_position_id,
            details=details,
            reason=reason,
            status=RequestStatus.DRAFT,
        )
        db.add(req)
        db.flush()
        entry = record_change(
            db, ChangeLogAction.CREATED, ENTITY, req.id, requested_by_employee_id,
            after=snapshot(req), summary=f"Change request {request_number} created",
        )
    mirror_change(entry)
    log.info("change_request_created", request_id=req.id, request_number=request_number, request_type=rtype.value)
    return req


def submit_change_request(
    db: Session,
    request_id: int,
    submitted_by_employee_id: str,
    submitted_at: Optional[datetime] = None,
) -> StructureChangeRequest:
    """DRAFT -> SUBMITTED, stamping the submitter and submission time."""
    req = get_change_request(db, request_id)
    if req.status != RequestStatus.DRAFT:
        illegal_transitions_total.inc()
        log.info("change_request_transition_rejected", request_id=req.id,
                 from_status=req.status.value, to_status=RequestStatus.SUBMITTED.value)
        raise IllegalTransitionError(
            req.status, RequestStatus.SUBMITTED,
            f"Only drafts can be submitted; request {req.request_number} is {req.status.value}",
        )

    with atomic(db):
        before = snapshot(req)
        req.status = RequestStatus.SUBMITTED
        req.submitted_by_employee_id = submitted_by_employee_id
        req.submitted_at = submitted_at or datetime.utcnow()
        db.flush()
        entry = record_change(
            db, ChangeLogAction.UPDATED, ENTITY, req.id, submitted_by_employee_id,
            before=before, after=snapshot(req),
            summary=f"Change request {req.request_number} submitted",
        )
    mirror_change(entry)
    request_transitions_total.labels(from_status=RequestStatus.DRAFT.value, to_status=RequestStatus.SUBMITTED.value).inc()
    log.info("change_request_transition", request_id=req.id, from_status="DRAFT", to_status="SUBMITTED",
             performed_by=submitted_by_employee_id)
    return req


def update_request_status(
    db: Session,
    request_id: int,
    new_status: Union[RequestStatus, str],
    performed_by: Optional[str] = None,
    summary: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> StructureChangeRequest:
    """
    Move a request along the transition table.

    Legality of the (current, new) pair is the only check; whether approvals
    back the move is for the caller to decide.
    """
    target = _coerce(RequestStatus, new_status, "status")
    req = get_change_request(db, request_id)
    if expected_version is not None and req.version != expected_version:
        raise ConflictError(f"Change request {req.id} is at version {req.version}, expected {expected_version}")

    current = req.status
    try:
        ensure_transition(current, target)
    except IllegalTransitionError:
        log.info("change_request_transition_rejected", request_id=req.id,
                 from_status=current.value, to_status=target.value)
        raise

    with atomic(db):
        before = snapshot(req)
        req.status = target
        db.flush()
        entry = record_change(
            db, ChangeLogAction.UPDATED, ENTITY, req.id, performed_by,
            before=before, after=snapshot(req),
            summary=summary or f"Change request {req.request_number} moved to {target.value}",
        )
    mirror_change(entry)
    request_transitions_total.labels(from_status=current.value, to_status=target.value).inc()
    log.info("change_request_transition", request_id=req.id, from_status=current.value,
             to_status=target.value, performed_by=performed_by)
    return req
