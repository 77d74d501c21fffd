"""
Session Manager - Creates and tracks the host's sessions.

LIFECYCLE:
1. Host creates a session -> lobby opened, host seated in slot 0
2. Participants join, pick slots, configure warbonds, ready up
3. Host starts the run -> START_RUN with one seed per seat
4. During the run:
   - Remote intents arrive through the store's action queue
   - The host's GameLoop folds them and HostSync publishes snapshots
   - Late joiners are added with catch-up drafts
5. Run ends -> auto-saved with a run history entry
6. Session ended -> queue watcher stopped, lobby closed

Host identity is fixed at creation. A disconnected host stalls the
session; nothing migrates the role automatically.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import logging
import time
import uuid

from ..engine_core.action import Action
from ..engine_core.state import GamePhase
from ..persistence.save_manager import SaveManager
from .game_loop import GameLoop, TurnResult
from .lobby import LobbyManager, LobbyResult, LobbyStatus
from .store import KeyValueStore
from .sync import HostSync

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """State of a hosted session."""
    LOBBY = "lobby"  # Seats open, run not started
    ACTIVE = "active"  # Run in progress
    FINISHED = "finished"  # Run reached victory or game over
    ENDED = "ended"  # Torn down


@dataclass
class Session:
    """
    One hosted session.

    Contains:
    - The lobby (seats, liveness, host)
    - The GameLoop owning the run's state
    - The HostSync publishing it
    """
    session_id: str
    host_id: str
    lobby: LobbyManager
    loop: GameLoop
    host: HostSync
    created_at: float
    state: SessionState = SessionState.LOBBY
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_active(self) -> bool:
        return self.state in {SessionState.LOBBY, SessionState.ACTIVE}

    @property
    def game_state(self):
        return self.loop.state

    def game_slot(self, player_id: str) -> int | None:
        """The participant's index in the run (differs from lobby slot when seats have gaps)."""
        player = self.loop.state.find_player(player_id)
        return player.slot if player else None

    async def refresh_connected(self) -> None:
        """Tell the loop which run slots are connected, for draft order."""
        connected = set()
        for seat in await self.lobby.players():
            slot = self.game_slot(seat.player_id)
            if slot is not None and seat.connected:
                connected.add(slot)
        self.loop.connected = connected if self.loop.state.players else None

    async def join(self, player_id: str, name: str, requested_slot: int | None = None) -> LobbyResult:
        """Seat a participant; mid-run newcomers join the run as late players."""
        result = await self.lobby.join(player_id, name, requested_slot)
        if not result.success:
            return result
        state = self.loop.state
        if state.phase != GamePhase.LOBBY and state.find_player(player_id) is None:
            turn = await self.host.submit(Action.add_late_player(result.player.to_seed()))
            if not turn.success:
                logger.warning("Late join of %s failed: %s", player_id, turn.error)
        await self.refresh_connected()
        return result

    async def disconnect(self, player_id: str) -> LobbyResult:
        result = await self.lobby.mark_disconnected(player_id)
        await self.refresh_connected()
        return result

    async def start_run(self, config: dict[str, Any] | None = None, difficulty: int | None = None) -> TurnResult:
        """Start the run with every seated participant, in seat order."""
        seats = await self.lobby.players()
        seeds = [seat.to_seed() for seat in seats]
        result = await self.host.submit(Action.start_run(seeds, config, difficulty))
        if result.success:
            self.state = SessionState.ACTIVE
            await self.lobby.set_status(LobbyStatus.IN_GAME)
            await self.refresh_connected()
            logger.info("Session %s started a run with %d player(s)", self.session_id, len(seeds))
        return result

    async def submit(self, action: Action) -> TurnResult:
        """Host-local intent."""
        result = await self.host.submit(action)
        if result.success and result.state.phase.is_terminal and self.state == SessionState.ACTIVE:
            self.state = SessionState.FINISHED
            await self.lobby.set_status(LobbyStatus.COMPLETED)
        return result


class SessionManager:
    """
    Manages hosted sessions.

    Responsibilities:
    - Create sessions (lobby + loop + host sync) over the shared store
    - Track active sessions
    - Clean up ended sessions
    """

    def __init__(
        self,
        store: KeyValueStore,
        save_manager: SaveManager | None = None,
        max_players: int = 4,
    ):
        self.store = store
        self.save_manager = save_manager
        self.max_players = max_players
        self._sessions: dict[str, Session] = {}

    async def create_session(
        self,
        host_id: str,
        host_name: str = "Helldiver",
        lobby_name: str = "",
        seed: int | None = None,
    ) -> Session:
        """
        Create a new hosted session.

        Args:
            host_id: Participant id of the host (fixed for the session)
            host_name: Host display name
            lobby_name: Shown to joining participants
            seed: Optional RNG seed for a reproducible run

        Returns:
            New Session with the host seated and the queue watched
        """
        session_id = str(uuid.uuid4())
        lobby = LobbyManager(self.store, session_id, self.max_players)
        await lobby.create_lobby(host_id, host_name, lobby_name)

        loop = GameLoop(seed=seed, run_id=session_id)
        if self.save_manager is not None:
            loop.subscribe(self.save_manager.on_state)
        host = HostSync(self.store, session_id, loop)
        status = await host.start()
        if not status.ready:
            logger.warning("Session %s started without a store: %s", session_id, status.message)

        session = Session(
            session_id=session_id,
            host_id=host_id,
            lobby=lobby,
            loop=loop,
            host=host,
            created_at=time.time(),
        )
        self._sessions[session_id] = session
        logger.info("Session %s created by %s", session_id, host_id)
        return session

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def end_session(self, session_id: str, reason: str = "completed") -> None:
        """Stop syncing, close the lobby and forget the session."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        await session.host.stop()
        await session.lobby.close_lobby()
        session.state = SessionState.ENDED
        logger.info("Session %s ended (%s)", session_id, reason)

    def list_active_sessions(self) -> list[str]:
        return [sid for sid, session in self._sessions.items() if session.is_active()]

    async def cleanup_stale_sessions(self, max_age_seconds: int = 3600) -> list[str]:
        """End finished sessions older than max_age."""
        now = time.time()
        stale = [
            sid for sid, session in self._sessions.items()
            if now - session.created_at > max_age_seconds and not session.is_active()
        ]
        for session_id in stale:
            await self.end_session(session_id, reason="stale")
        return stale
