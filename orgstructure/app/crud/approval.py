# app/crud/approval.py
from typing import Dict, List, Optional, Union
from datetime import datetime

import structlog
from sqlalchemy.orm import Session

from app.core.database import atomic
from app.core.errors import ValidationFailure
from app.crud.change_request import get_change_request
from app.models.structure_approval import StructureApproval, ApprovalDecision
from app.models.change_log import ChangeLogAction
from app.services.audit import record_change, mirror_change
from app.utils.snapshot import snapshot
from app.metrics import approval_decisions_total

log = structlog.get_logger(__name__)

ENTITY = "StructureApproval"


def record_decision(
    db: Session,
    request_id: int,
    approver_employee_id: str,
    decision: Union[ApprovalDecision, str],
    decided_at: Optional[datetime] = None,
    comments: Optional[str] = None,
) -> StructureApproval:
    """
    Record an approver's decision on a change request.

    One row per (request, approver): a repeated decision overwrites the
    earlier one. The request's own status is never touched here.
    """
    try:
        d = ApprovalDecision(decision)
    except ValueError:
        raise ValidationFailure(
            f"Invalid decision '{decision}'. Must be one of {[x.value for x in ApprovalDecision]}."
        )
    if not approver_employee_id:
        raise ValidationFailure("approver_employee_id is required")

    req = get_change_request(db, request_id)

    with atomic(db):
        approval = (
            db.query(StructureApproval)
            .filter(
                StructureApproval.change_request_id == req.id,
                StructureApproval.approver_employee_id == approver_employee_id,
            )
            .first()
        )
        before = snapshot(approval) if approval else None
        if approval is None:
            approval = StructureApproval(change_request_id=req.id, approver_employee_id=approver_employee_id)
            db.add(approval)
        approval.decision = d
        approval.decided_at = decided_at or datetime.utcnow()
        approval.comments = comments
        db.flush()
        entry = record_change(
            db, ChangeLogAction.UPDATED, ENTITY, approval.id, approver_employee_id,
            before=before, after=snapshot(approval),
            summary=f"Approval decision recorded as {d.value}",
        )
    mirror_change(entry)
    approval_decisions_total.labels(decision=d.value).inc()
    log.info("approval_decision_recorded", request_id=req.id, approval_id=approval.id,
             approver=approver_employee_id, decision=d.value, overwritten=before is not None)
    return approval


def list_decisions(db: Session, request_id: int) -> List[StructureApproval]:
    get_change_request(db, request_id)
    return (
        db.query(StructureApproval)
        .filter(StructureApproval.change_request_id == request_id)
        .order_by(StructureApproval.id.asc())
        .all()
    )


def tally_decisions(db: Session, request_id: int) -> Dict[str, int]:
    """Count current decisions per value. Read-only; drives no transition."""
    counts = {d.value: 0 for d in ApprovalDecision}
    for a in list_decisions(db, request_id):
        counts[a.decision.value] += 1
    return counts
