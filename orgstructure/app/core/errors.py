from __future__ import annotations
from typing import Optional


class OrgStructureError(ValueError):
    """Base class for failures reported back to the caller."""
    http_status = 400


class NotFoundError(OrgStructureError):
    http_status = 404

    def __init__(self, entity: str, entity_id=None, message: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        if message is None:
            message = f"{entity} {entity_id} not found" if entity_id is not None else f"{entity} not found"
        super().__init__(message)


class IllegalTransitionError(OrgStructureError):
    http_status = 400

    def __init__(self, current, target, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move request from {_name(current)} to {_name(target)}")


class ValidationFailure(OrgStructureError):
    http_status = 400


class ConflictError(OrgStructureError):
    http_status = 409


def _name(status) -> str:
    return getattr(status, "value", None) or str(status)
