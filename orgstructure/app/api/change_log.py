from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.change_log import ChangeLogAction
from app.services.audit import list_changes

router = APIRouter()


class ChangeLogOut(BaseModel):
    id: int
    action: ChangeLogAction
    entity_type: str
    entity_id: int
    performed_by_employee_id: Optional[str]
    before_snapshot: Optional[dict]
    after_snapshot: Optional[dict]
    summary: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/api/change-log", response_model=List[ChangeLogOut])
def get_change_log(
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    rows = list_changes(db, entity_type=entity_type, entity_id=entity_id, limit=limit, offset=offset)
    return [ChangeLogOut.model_validate(r) for r in rows]
