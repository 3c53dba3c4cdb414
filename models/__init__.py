from .workflow import (
    Discovery,
    Unit,
    UnitStatus,
    WorkflowState,
    WorkflowStatus,
)
from .records import ActionRecord, ReviewRecord

__all__ = [
    "Discovery",
    "Unit",
    "UnitStatus",
    "WorkflowState",
    "WorkflowStatus",
    "ActionRecord",
    "ReviewRecord",
]
