"""
Pydantic Schemas - Wire contract for actions, queue records and the HTTP bridge.

Malformed payloads raise pydantic.ValidationError here, at the ingestion
boundary, and nowhere deeper: the reducer only ever sees well-formed
Action objects.

Error Codes:
- SESSION_NOT_FOUND: Session does not exist or has ended
- LOBBY_FULL / SLOT_TAKEN / NOT_HOST / PLAYER_CONNECTED / PLAYER_NOT_FOUND:
  seat management failures
- ACTION_REJECTED: the reducer refused the action (state unchanged)
- ACTION_NOT_ALLOWED: the action is host-only or targets another slot
- SAVE_NOT_FOUND / INVALID_SAVE: persistence failures
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field, field_validator

from ..engine_core.action import Action, ActionType


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    LOBBY_NOT_FOUND = "LOBBY_NOT_FOUND"
    LOBBY_FULL = "LOBBY_FULL"
    SLOT_TAKEN = "SLOT_TAKEN"
    NOT_HOST = "NOT_HOST"
    PLAYER_CONNECTED = "PLAYER_CONNECTED"
    PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
    ACTION_REJECTED = "ACTION_REJECTED"
    ACTION_NOT_ALLOWED = "ACTION_NOT_ALLOWED"
    SAVE_NOT_FOUND = "SAVE_NOT_FOUND"
    INVALID_SAVE = "INVALID_SAVE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Actions on the wire
# =============================================================================

class ActionEnvelope(BaseModel):
    """An action as it travels: {type, payload}."""
    type: str = Field(..., description="Lower-case action type, e.g. draft_pick")
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def known_type(cls, value: str) -> str:
        try:
            ActionType(value)
        except ValueError:
            raise ValueError(f"unknown action type {value!r}")
        return value

    def to_action(self) -> Action:
        return Action.from_dict({"type": self.type, "payload": self.payload})


class QueuedActionRecord(BaseModel):
    """A participant's intent waiting in session/{id}/actions."""
    slot: int = Field(..., ge=0, le=3, description="Submitter's seat")
    player_id: str = Field(..., min_length=1)
    seq: int = Field(..., ge=0, description="Monotonic per submitter")
    action: ActionEnvelope
    timestamp: Optional[float] = None

    def to_action(self) -> Action:
        return self.action.to_action()


def parse_action(data: Any) -> Action:
    """Validate a raw {type, payload} dict into an Action."""
    return ActionEnvelope.model_validate(data).to_action()


# =============================================================================
# Shared Models
# =============================================================================

class LobbyPlayerInfo(BaseModel):
    """One lobby seat."""
    player_id: str
    name: str
    slot: int
    connected: bool = True
    ready: bool = False
    is_host: bool = False
    warbonds: list[str] = Field(default_factory=list)
    include_superstore: bool = False
    excluded_items: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class RunHistoryInfo(BaseModel):
    """Summary of a finished run."""
    run_id: str
    outcome: str = Field(description="victory or gameover")
    difficulty_reached: int
    duration_seconds: float
    player_count: int
    finished_at: float


# =============================================================================
# Requests
# =============================================================================

class CreateSessionRequest(BaseModel):
    """Open a lobby with the caller as host."""
    host_id: str = Field(..., min_length=1)
    host_name: str = Field("Helldiver", description="Display name for the host")
    lobby_name: str = Field("", description="Shown to joining players")
    random_seed: Optional[int] = Field(None, description="Seed for reproducible runs")


class JoinRequest(BaseModel):
    player_id: str = Field(..., min_length=1)
    name: str = Field("Helldiver")
    requested_slot: Optional[int] = Field(None, ge=0, le=3)


class PlayerRequest(BaseModel):
    """Identifies the caller for seat operations."""
    player_id: str = Field(..., min_length=1)


class ReadyRequest(PlayerRequest):
    ready: bool = True


class PlayerConfigRequest(PlayerRequest):
    name: Optional[str] = None
    warbonds: Optional[list[str]] = None
    include_superstore: Optional[bool] = None
    excluded_items: Optional[list[str]] = None


class KickRequest(BaseModel):
    host_id: str = Field(..., min_length=1)
    player_id: str = Field(..., min_length=1)


class StartRunRequest(BaseModel):
    host_id: str = Field(..., min_length=1)
    config: dict[str, Any] = Field(default_factory=dict, description="GameConfig overrides")
    difficulty: Optional[int] = Field(None, ge=1, le=10, description="Custom start only")


class SubmitActionRequest(BaseModel):
    """An intent from a seated participant."""
    player_id: str = Field(..., min_length=1)
    action: ActionEnvelope


# =============================================================================
# Responses
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")


class SessionResponse(BaseModel):
    """Lobby view of a session."""
    session_id: str
    host_id: str
    status: str
    phase: str
    players: list[LobbyPlayerInfo] = Field(default_factory=list)
    available_slots: list[int] = Field(default_factory=list)
    version: int = 0


class StateResponse(BaseModel):
    """The latest authoritative snapshot."""
    session_id: str
    version: int
    state: dict[str, Any]


class ActionResponse(BaseModel):
    """Result of folding an action on the host."""
    success: bool
    phase: str
    version: int
    changes: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None


class SaveResponse(BaseModel):
    run_id: str
    saved: bool = True


class HealthResponse(BaseModel):
    status: str = "healthy"
    store_ready: bool = True
    active_sessions: int = 0
