"""Tagged message protocol exchanged between observer, orchestrator and page agents.

Every message carries a ``type`` literal; :func:`parse_message` decodes a raw
dict into the matching model through a pydantic discriminated union.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from models.workflow import WorkflowState


# ── Observer → orchestrator commands ──────────────────────────────────────────


class StartCommand(BaseModel):
    type: Literal["START"] = "START"
    seed: str


class StopCommand(BaseModel):
    type: Literal["STOP"] = "STOP"


class GetStateCommand(BaseModel):
    type: Literal["GET_STATE"] = "GET_STATE"


class ResetCommand(BaseModel):
    type: Literal["RESET"] = "RESET"


class ClearDataCommand(BaseModel):
    type: Literal["CLEAR_DATA"] = "CLEAR_DATA"


# ── Orchestrator → observer replies and pushes ────────────────────────────────


class Ack(BaseModel):
    type: Literal["ACK"] = "ACK"
    success: bool = True
    error: Optional[str] = None


class StateReply(BaseModel):
    type: Literal["STATE"] = "STATE"
    state: WorkflowState


class ProgressMessage(BaseModel):
    type: Literal["PROGRESS"] = "PROGRESS"
    state: WorkflowState


# ── Orchestrator → page agent requests ────────────────────────────────────────


class ExtractRequest(BaseModel):
    type: Literal["EXTRACT"] = "EXTRACT"


class DiscoverInfoRequest(BaseModel):
    type: Literal["DISCOVER_INFO"] = "DISCOVER_INFO"


class CollectMembersRequest(BaseModel):
    type: Literal["COLLECT_MEMBERS"] = "COLLECT_MEMBERS"


class PerformActionRequest(BaseModel):
    type: Literal["PERFORM_ACTION"] = "PERFORM_ACTION"


# ── Page agent → orchestrator replies ─────────────────────────────────────────


class RecordsExtracted(BaseModel):
    type: Literal["RECORDS_EXTRACTED"] = "RECORDS_EXTRACTED"
    records: List[Dict[str, Any]] = Field(default_factory=list)
    next_page_handle: Optional[str] = None


class PageInfoReply(BaseModel):
    type: Literal["PAGE_INFO"] = "PAGE_INFO"
    expected_total_units: int = 0
    units_per_page: int = 0
    total_pages: int = 0


class MembersCollected(BaseModel):
    type: Literal["MEMBERS_COLLECTED"] = "MEMBERS_COLLECTED"
    handles: List[str] = Field(default_factory=list)


class ActionResult(BaseModel):
    type: Literal["ACTION_RESULT"] = "ACTION_RESULT"
    success: bool


class ErrorReply(BaseModel):
    type: Literal["ERROR"] = "ERROR"
    error: str


Command = Annotated[
    Union[StartCommand, StopCommand, GetStateCommand, ResetCommand, ClearDataCommand],
    Field(discriminator="type"),
]

Message = Annotated[
    Union[
        StartCommand,
        StopCommand,
        GetStateCommand,
        ResetCommand,
        ClearDataCommand,
        Ack,
        StateReply,
        ProgressMessage,
        ExtractRequest,
        DiscoverInfoRequest,
        CollectMembersRequest,
        PerformActionRequest,
        RecordsExtracted,
        PageInfoReply,
        MembersCollected,
        ActionResult,
        ErrorReply,
    ],
    Field(discriminator="type"),
]

_command_adapter: TypeAdapter = TypeAdapter(Command)
_message_adapter: TypeAdapter = TypeAdapter(Message)


def parse_command(raw: Dict[str, Any]) -> BaseModel:
    """Decode an observer command; raises ``pydantic.ValidationError`` on bad input."""
    return _command_adapter.validate_python(raw)


def parse_message(raw: Dict[str, Any]) -> BaseModel:
    """Decode any protocol message by its ``type`` tag."""
    return _message_adapter.validate_python(raw)
