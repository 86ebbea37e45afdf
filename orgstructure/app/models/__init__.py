from .department import Department
from .position import Position, PositionAssignment
from .change_request import StructureChangeRequest, RequestStatus, RequestType
from .structure_approval import StructureApproval, ApprovalDecision
from .change_log import ChangeLogEntry, ChangeLogAction
