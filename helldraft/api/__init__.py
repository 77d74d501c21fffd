"""
API Module - Optional HTTP bridge onto the host process.

The bridge lets thin clients:
1. Create and join lobbies
2. Start runs and submit actions
3. Stream snapshots over WebSocket
4. Save, export and import runs

The host process stays the only writer of game state.
"""

from .schemas import (
    # Wire
    ActionEnvelope,
    QueuedActionRecord,
    parse_action,
    # Requests
    CreateSessionRequest,
    JoinRequest,
    PlayerRequest,
    ReadyRequest,
    PlayerConfigRequest,
    KickRequest,
    StartRunRequest,
    SubmitActionRequest,
    # Responses
    ActionResponse,
    ErrorCode,
    ErrorResponse,
    HealthResponse,
    SaveResponse,
    SessionResponse,
    StateResponse,
    # Shared
    LobbyPlayerInfo,
    RunHistoryInfo,
)
from .service import APIService
from .app import create_app

__all__ = [
    "ActionEnvelope",
    "QueuedActionRecord",
    "parse_action",
    "CreateSessionRequest",
    "JoinRequest",
    "PlayerRequest",
    "ReadyRequest",
    "PlayerConfigRequest",
    "KickRequest",
    "StartRunRequest",
    "SubmitActionRequest",
    "ActionResponse",
    "ErrorCode",
    "ErrorResponse",
    "HealthResponse",
    "SaveResponse",
    "SessionResponse",
    "StateResponse",
    "LobbyPlayerInfo",
    "RunHistoryInfo",
    "APIService",
    "create_app",
]
