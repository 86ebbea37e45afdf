from __future__ import annotations

from typing import List, Optional, Set
from sqlalchemy.orm import Session

from app.models.position import Position


def get_reporting_chain(position_id: int, db: Session) -> List[int]:
    """
    Return position ids from the direct supervisor up to the top of the chain.
    The walk ends at the top or at the first id already seen, so it always terminates.
    """
    chain: List[int] = []
    visited: Set[int] = {position_id}
    current = db.get(Position, position_id)
    while current is not None and current.reports_to_position_id is not None:
        pid = current.reports_to_position_id
        chain.append(pid)
        if pid in visited:
            # existing data already loops; stop at the repeat
            break
        visited.add(pid)
        current = db.get(Position, pid)
    return chain


def would_create_cycle(position_id: Optional[int], reports_to_id: int, db: Session) -> bool:
    """
    True if making *position_id* report to *reports_to_id* closes a loop.
    A position that does not exist yet (None) cannot be part of a loop.
    """
    if position_id is None:
        return False
    if reports_to_id == position_id:
        return True
    return position_id in get_reporting_chain(reports_to_id, db)
