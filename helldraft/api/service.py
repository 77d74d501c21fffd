"""
API Service - Translates HTTP requests into session operations.

The service is the host process's front door:
- Lobby requests go to the session's LobbyManager
- Action requests are authorized (host-only whitelist, slot scope) and
  then folded by the session's HostSync, which publishes the snapshot
- Saves, exports and run history go to the SaveManager

Every method returns a response model or an ErrorResponse; nothing here
raises for a bad request.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging

from ..engine_core.action import Action, ActionType
from ..persistence.save_manager import SaveManager
from ..session.lobby import LobbyResult
from ..session.manager import Session, SessionManager
from ..session.store import InMemoryStore
from ..session.sync import is_host_only, scope_to_slot
from .schemas import (
    ActionResponse,
    CreateSessionRequest,
    ErrorCode,
    ErrorResponse,
    JoinRequest,
    KickRequest,
    LobbyPlayerInfo,
    PlayerConfigRequest,
    PlayerRequest,
    ReadyRequest,
    RunHistoryInfo,
    SaveResponse,
    SessionResponse,
    StartRunRequest,
    StateResponse,
    SubmitActionRequest,
)

logger = logging.getLogger(__name__)


def _default_session_manager() -> SessionManager:
    return SessionManager(InMemoryStore(), SaveManager())


@dataclass
class APIService:
    """
    Service layer for the HTTP bridge.

    Usage:
        service = APIService()
        session = await service.create_session(CreateSessionRequest(host_id="alice"))
        await service.join(session.session_id, JoinRequest(player_id="bob"))
    """
    session_manager: SessionManager = field(default_factory=_default_session_manager)

    @property
    def save_manager(self) -> SaveManager:
        if self.session_manager.save_manager is None:
            self.session_manager.save_manager = SaveManager()
        return self.session_manager.save_manager

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create_session(self, request: CreateSessionRequest) -> SessionResponse:
        session = await self.session_manager.create_session(
            host_id=request.host_id,
            host_name=request.host_name,
            lobby_name=request.lobby_name,
            seed=request.random_seed,
        )
        return await self._session_to_response(session)

    async def get_session(self, session_id: str) -> SessionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        return await self._session_to_response(session)

    async def end_session(self, session_id: str, player_id: str) -> bool | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        if player_id != session.host_id:
            return ErrorResponse(error="Only the host can end the session", error_code=ErrorCode.NOT_HOST)
        await self.session_manager.end_session(session_id, reason="host_ended")
        return True

    def list_sessions(self) -> list[str]:
        return self.session_manager.list_active_sessions()

    # =========================================================================
    # Lobby
    # =========================================================================

    async def join(self, session_id: str, request: JoinRequest) -> SessionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        result = await session.join(request.player_id, request.name, request.requested_slot)
        return await self._lobby_response(session, result)

    async def leave(self, session_id: str, request: PlayerRequest) -> SessionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        if request.player_id == session.host_id:
            # The host leaving takes the whole session down
            await self.session_manager.end_session(session_id, reason="host_left")
            return self._session_not_found(session_id)
        result = await session.lobby.leave(request.player_id)
        await session.refresh_connected()
        return await self._lobby_response(session, result)

    async def disconnect(self, session_id: str, request: PlayerRequest) -> SessionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        return await self._lobby_response(session, await session.disconnect(request.player_id))

    async def set_ready(self, session_id: str, request: ReadyRequest) -> SessionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        result = await session.lobby.set_ready(request.player_id, request.ready)
        return await self._lobby_response(session, result)

    async def update_player_config(
        self, session_id: str, request: PlayerConfigRequest
    ) -> SessionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        result = await session.lobby.update_player_config(
            request.player_id,
            name=request.name,
            warbonds=request.warbonds,
            include_superstore=request.include_superstore,
            excluded_items=request.excluded_items,
        )
        return await self._lobby_response(session, result)

    async def kick(self, session_id: str, request: KickRequest) -> SessionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        result = await session.lobby.kick(request.host_id, request.player_id)
        await session.refresh_connected()
        return await self._lobby_response(session, result)

    # =========================================================================
    # Run
    # =========================================================================

    async def start_run(self, session_id: str, request: StartRunRequest) -> ActionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        if request.host_id != session.host_id:
            return ErrorResponse(error="Only the host can start the run", error_code=ErrorCode.NOT_HOST)
        result = await session.start_run(request.config or None, request.difficulty)
        return self._action_response(session, result)

    async def submit_action(
        self, session_id: str, request: SubmitActionRequest
    ) -> ActionResponse | ErrorResponse:
        """
        Fold one participant's intent.

        The host may submit anything. Everyone else is limited to the
        client whitelist, and player-scoped actions are bound to their
        own run slot.
        """
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        action = request.action.to_action()

        if request.player_id != session.host_id:
            if is_host_only(action.action_type):
                return ErrorResponse(
                    error=f"{action.action_type.value} is host-only",
                    error_code=ErrorCode.ACTION_NOT_ALLOWED,
                )
            slot = session.game_slot(request.player_id)
            if slot is None:
                return ErrorResponse(
                    error=f"{request.player_id} is not in the run",
                    error_code=ErrorCode.PLAYER_NOT_FOUND,
                )
            action = scope_to_slot(action, slot)
            if action is None:
                return ErrorResponse(
                    error="Players may only act for their own slot",
                    error_code=ErrorCode.ACTION_NOT_ALLOWED,
                )

        if action.action_type == ActionType.START_RUN:
            return await self.start_run(session_id, StartRunRequest(host_id=request.player_id))
        result = await session.submit(action)
        return self._action_response(session, result)

    async def get_state(self, session_id: str) -> StateResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        return StateResponse(
            session_id=session_id,
            version=session.host.version,
            state=session.loop.state.to_dict(),
        )

    # =========================================================================
    # Persistence
    # =========================================================================

    async def save(self, session_id: str) -> SaveResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        run_id = self.save_manager.save(session.loop.state)
        return SaveResponse(run_id=run_id)

    async def load(self, session_id: str, run_id: str) -> ActionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        state = self.save_manager.load(run_id)
        if state is None:
            return ErrorResponse(error=f"No save for run {run_id}", error_code=ErrorCode.SAVE_NOT_FOUND)
        return await self._load_state(session, state)

    def export_save(self, session_id: str) -> str | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        return self.save_manager.export_save(session.loop.state)

    async def import_save(self, session_id: str, text: str) -> ActionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if not session:
            return self._session_not_found(session_id)
        try:
            state = self.save_manager.import_save(text)
        except ValueError as e:
            return ErrorResponse(error=str(e), error_code=ErrorCode.INVALID_SAVE)
        return await self._load_state(session, state)

    def run_history(self) -> list[RunHistoryInfo]:
        return [RunHistoryInfo(**entry.to_dict()) for entry in self.save_manager.history()]

    # =========================================================================
    # Helper methods
    # =========================================================================

    async def _load_state(self, session: Session, state) -> ActionResponse:
        result = await session.submit(Action.load_game_state(state.to_dict()))
        await session.refresh_connected()
        return self._action_response(session, result)

    async def _session_to_response(self, session: Session) -> SessionResponse:
        meta = await session.lobby.meta() or {}
        players = await session.lobby.players()
        return SessionResponse(
            session_id=session.session_id,
            host_id=session.host_id,
            status=meta.get("status", session.state.value),
            phase=session.loop.state.phase.value,
            players=[LobbyPlayerInfo.model_validate(p.to_dict()) for p in players],
            available_slots=await session.lobby.available_slots(),
            version=session.host.version,
        )

    async def _lobby_response(self, session: Session, result: LobbyResult) -> SessionResponse | ErrorResponse:
        if not result.success:
            return ErrorResponse(error=result.error or "Lobby operation failed",
                                 error_code=ErrorCode(result.error_code))
        return await self._session_to_response(session)

    def _action_response(self, session: Session, result) -> ActionResponse:
        if not result.success:
            logger.info("Session %s rejected an action: %s", session.session_id, result.error)
        return ActionResponse(
            success=result.success,
            phase=result.state.phase.value,
            version=session.host.version,
            changes=result.changes,
            error=result.error,
            error_code=ErrorCode.ACTION_REJECTED.value if not result.success else None,
        )

    def _session_not_found(self, session_id: str) -> ErrorResponse:
        return ErrorResponse(
            error=f"Session {session_id} not found",
            error_code=ErrorCode.SESSION_NOT_FOUND,
        )
