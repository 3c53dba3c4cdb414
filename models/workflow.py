"""Pydantic models for workflow state, units and discovery results."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class WorkflowStatus(str, Enum):
    """Phases of the orchestrator state machine."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.ERROR)


class UnitStatus(str, Enum):
    """Per-unit progress inside the processing phase."""

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class Unit(BaseModel):
    """One item of work: a page to scrape or a target to act upon."""

    identifier: str = Field(..., description="URL or handle of the unit")
    ordinal: int = Field(..., ge=1, description="1-based position in the queue")
    status: UnitStatus = UnitStatus.IDLE
    error_message: Optional[str] = None


class WorkflowState(BaseModel):
    """Everything the orchestrator persists; the only shared mutable value."""

    status: WorkflowStatus = WorkflowStatus.IDLE
    workflow: Optional[str] = Field(default=None, description="Workflow variant that produced this state")
    seed: Optional[str] = Field(default=None, description="Start URL of the current run")
    current_unit_index: int = 0
    current_unit: Optional[str] = None
    expected_total_units: int = 0
    total_pages: Optional[int] = None
    completed_count: int = 0
    units: List[Unit] = Field(default_factory=list)
    records: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None

    def idle_units(self) -> List[Unit]:
        return [u for u in self.units if u.status == UnitStatus.IDLE]

    def recount(self) -> None:
        """Refresh ``completed_count`` from the unit statuses."""
        self.completed_count = sum(1 for u in self.units if u.status == UnitStatus.COMPLETED)


class Discovery(BaseModel):
    """Result of the discovery phase: the ordered unit identifiers."""

    identifiers: List[str] = Field(default_factory=list)
    expected_total_units: int = 0
    total_pages: Optional[int] = None
