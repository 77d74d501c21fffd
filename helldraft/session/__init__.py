"""
Session Module - Hosting, lobby seats and state synchronization.

A session is one lobby plus the run played from it:
- The host process owns the GameLoop (the only writer of GameState)
- Everyone talks through a shared key-value store
- Remote participants queue intents and render published snapshots
"""

from .store import InMemoryStore, KeyValueStore, RedisStore
from .game_loop import GameLoop, TurnResult
from .lobby import LobbyManager, LobbyPlayer, LobbyResult, LobbyStatus
from .sync import ClientSync, HostSync, SyncStatus
from .manager import Session, SessionManager, SessionState

__all__ = [
    "InMemoryStore",
    "KeyValueStore",
    "RedisStore",
    "GameLoop",
    "TurnResult",
    "LobbyManager",
    "LobbyPlayer",
    "LobbyResult",
    "LobbyStatus",
    "ClientSync",
    "HostSync",
    "SyncStatus",
    "Session",
    "SessionManager",
    "SessionState",
]
