"""
FastAPI Application - HTTP/WebSocket bridge onto the host process.

Endpoints:
    POST   /api/v1/sessions                    Create a session (caller hosts)
    GET    /api/v1/sessions                    List active sessions
    GET    /api/v1/sessions/{id}               Lobby view
    DELETE /api/v1/sessions/{id}               End session (host only)
    POST   /api/v1/sessions/{id}/join          Take a seat (or resume one)
    POST   /api/v1/sessions/{id}/leave         Give up a seat
    POST   /api/v1/sessions/{id}/disconnect    Mark a seat disconnected
    POST   /api/v1/sessions/{id}/ready         Toggle ready
    POST   /api/v1/sessions/{id}/config        Warbonds, superstore, exclusions
    POST   /api/v1/sessions/{id}/kick          Vacate a disconnected seat
    POST   /api/v1/sessions/{id}/start         Start the run (host only)
    POST   /api/v1/sessions/{id}/actions       Submit an action
    GET    /api/v1/sessions/{id}/state         Latest snapshot
    POST   /api/v1/sessions/{id}/save          Save the run locally
    POST   /api/v1/sessions/{id}/load/{run}    Load a local save
    GET    /api/v1/sessions/{id}/export        Export the run as JSON
    POST   /api/v1/sessions/{id}/import        Import an exported run
    GET    /api/v1/history                     Finished runs, newest first
    WS     /api/v1/sessions/{id}/ws            Snapshot stream
    GET    /health                             Store reachability

Rejected actions are not HTTP errors: the response carries
success=false and the unchanged phase.

Run with: uvicorn helldraft.api.app:create_app --factory
"""

from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import json
import logging

from ..config import Settings, configure_logging, create_save_manager, create_store

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    "SESSION_NOT_FOUND": 404,
    "LOBBY_NOT_FOUND": 404,
    "PLAYER_NOT_FOUND": 404,
    "SAVE_NOT_FOUND": 404,
    "NOT_HOST": 403,
    "ACTION_NOT_ALLOWED": 403,
    "LOBBY_FULL": 409,
    "SLOT_TAKEN": 409,
    "PLAYER_CONNECTED": 409,
}


def create_app(service=None, settings: Optional[Settings] = None):
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (built from settings if not provided)
        settings: Optional Settings (read from the environment if not provided)

    Returns:
        FastAPI application instance
    """
    from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.responses import JSONResponse, Response

    from ..session.manager import SessionManager
    from .service import APIService
    from .schemas import (
        ActionResponse,
        CreateSessionRequest,
        ErrorResponse,
        HealthResponse,
        JoinRequest,
        KickRequest,
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

    settings = settings or Settings.from_env()
    if service is None:
        configure_logging(settings)
        manager = SessionManager(
            create_store(settings),
            create_save_manager(settings),
            max_players=settings.max_players,
        )
        service = APIService(session_manager=manager)
    api_service = service

    @asynccontextmanager
    async def lifespan(app):
        yield
        for session_id in list(api_service.session_manager.list_active_sessions()):
            await api_service.session_manager.end_session(session_id, reason="shutdown")
        await api_service.session_manager.store.close()

    app = FastAPI(
        title="Helldraft API",
        description="Host bridge for cooperative roguelite drafting runs.",
        version="0.1.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # WebSocket connections and their state subscriptions, per session
    ws_connections: dict[str, list[WebSocket]] = {}
    ws_unsubscribe: dict[str, object] = {}

    # =========================================================================
    # Helpers
    # =========================================================================

    def respond(result):
        """Pass models through; turn ErrorResponse into a JSON error with a status."""
        if isinstance(result, ErrorResponse):
            return JSONResponse(
                status_code=STATUS_BY_ERROR.get(result.error_code.value, 400),
                content=result.model_dump(mode="json"),
            )
        return result

    async def broadcast_to_session(session_id: str, message: dict):
        dead_connections = []
        for ws in ws_connections.get(session_id, []):
            try:
                await ws.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                dead_connections.append(ws)
        for ws in dead_connections:
            ws_connections[session_id].remove(ws)

    def state_message(session) -> dict:
        return {
            "type": "state_update",
            "version": session.host.version,
            "state": session.loop.state.to_dict(),
        }

    def watch_session(session):
        """Broadcast every applied action to the session's sockets."""
        if session.session_id in ws_unsubscribe:
            return

        def on_state(state):
            asyncio.get_running_loop().create_task(
                broadcast_to_session(session.session_id, state_message(session))
            )

        ws_unsubscribe[session.session_id] = session.host.subscribe(on_state)

    def unwatch_session(session_id: str):
        if ws_connections.get(session_id):
            return
        ws_connections.pop(session_id, None)
        unsubscribe = ws_unsubscribe.pop(session_id, None)
        if unsubscribe is not None:
            unsubscribe()

    # =========================================================================
    # Sessions
    # =========================================================================

    @app.post("/api/v1/sessions", response_model=SessionResponse, tags=["Sessions"])
    async def create_session(request: CreateSessionRequest):
        return await api_service.create_session(request)

    @app.get("/api/v1/sessions", response_model=list[str], tags=["Sessions"])
    async def list_sessions():
        return api_service.list_sessions()

    @app.get(
        "/api/v1/sessions/{session_id}",
        response_model=SessionResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
    )
    async def get_session(session_id: str):
        return respond(await api_service.get_session(session_id))

    @app.delete("/api/v1/sessions/{session_id}", responses={403: {"model": ErrorResponse}}, tags=["Sessions"])
    async def end_session(session_id: str, player_id: str):
        result = await api_service.end_session(session_id, player_id)
        if isinstance(result, ErrorResponse):
            return respond(result)
        unwatch_session(session_id)
        return {"session_id": session_id, "ended": True}

    # =========================================================================
    # Lobby
    # =========================================================================

    @app.post("/api/v1/sessions/{session_id}/join", response_model=SessionResponse, tags=["Lobby"])
    async def join(session_id: str, request: JoinRequest):
        return respond(await api_service.join(session_id, request))

    @app.post("/api/v1/sessions/{session_id}/leave", response_model=SessionResponse, tags=["Lobby"])
    async def leave(session_id: str, request: PlayerRequest):
        return respond(await api_service.leave(session_id, request))

    @app.post("/api/v1/sessions/{session_id}/disconnect", response_model=SessionResponse, tags=["Lobby"])
    async def disconnect(session_id: str, request: PlayerRequest):
        return respond(await api_service.disconnect(session_id, request))

    @app.post("/api/v1/sessions/{session_id}/ready", response_model=SessionResponse, tags=["Lobby"])
    async def set_ready(session_id: str, request: ReadyRequest):
        return respond(await api_service.set_ready(session_id, request))

    @app.post("/api/v1/sessions/{session_id}/config", response_model=SessionResponse, tags=["Lobby"])
    async def update_player_config(session_id: str, request: PlayerConfigRequest):
        return respond(await api_service.update_player_config(session_id, request))

    @app.post("/api/v1/sessions/{session_id}/kick", response_model=SessionResponse, tags=["Lobby"])
    async def kick(session_id: str, request: KickRequest):
        return respond(await api_service.kick(session_id, request))

    # =========================================================================
    # Run
    # =========================================================================

    @app.post("/api/v1/sessions/{session_id}/start", response_model=ActionResponse, tags=["Run"])
    async def start_run(session_id: str, request: StartRunRequest):
        return respond(await api_service.start_run(session_id, request))

    @app.post(
        "/api/v1/sessions/{session_id}/actions",
        response_model=ActionResponse,
        responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
        tags=["Run"],
    )
    async def submit_action(session_id: str, request: SubmitActionRequest):
        return respond(await api_service.submit_action(session_id, request))

    @app.get("/api/v1/sessions/{session_id}/state", response_model=StateResponse, tags=["Run"])
    async def get_state(session_id: str):
        return respond(await api_service.get_state(session_id))

    # =========================================================================
    # Persistence
    # =========================================================================

    @app.post("/api/v1/sessions/{session_id}/save", response_model=SaveResponse, tags=["Saves"])
    async def save(session_id: str):
        return respond(await api_service.save(session_id))

    @app.post("/api/v1/sessions/{session_id}/load/{run_id}", response_model=ActionResponse, tags=["Saves"])
    async def load(session_id: str, run_id: str):
        return respond(await api_service.load(session_id, run_id))

    @app.get("/api/v1/sessions/{session_id}/export", tags=["Saves"])
    async def export_save(session_id: str):
        result = api_service.export_save(session_id)
        if isinstance(result, ErrorResponse):
            return respond(result)
        return Response(content=result, media_type="application/json")

    @app.post("/api/v1/sessions/{session_id}/import", response_model=ActionResponse, tags=["Saves"])
    async def import_save(session_id: str, request: Request):
        text = (await request.body()).decode("utf-8", errors="replace")
        return respond(await api_service.import_save(session_id, text))

    @app.get("/api/v1/history", response_model=list[RunHistoryInfo], tags=["Saves"])
    async def run_history():
        return api_service.run_history()

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/api/v1/sessions/{session_id}/ws")
    async def websocket_endpoint(websocket: WebSocket, session_id: str):
        """
        Snapshot stream.

        Messages from server:
        - state_update: {version, state} after every applied action
        - pong: reply to ping
        - error: malformed client message

        Messages from client:
        - ping: Keep-alive
        """
        session = api_service.session_manager.get_session(session_id)
        if session is None:
            await websocket.close(code=4404)
            return
        await websocket.accept()
        ws_connections.setdefault(session_id, []).append(websocket)
        watch_session(session)

        try:
            await websocket.send_json(state_message(session))
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    await websocket.send_json({"type": "error", "payload": {"message": "Invalid JSON"}})
                    continue
                if isinstance(message, dict) and message.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})
        except WebSocketDisconnect:
            logger.debug("WebSocket left session %s", session_id)
        finally:
            if websocket in ws_connections.get(session_id, []):
                ws_connections[session_id].remove(websocket)
            unwatch_session(session_id)

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        return HealthResponse(
            status="healthy",
            store_ready=await api_service.session_manager.store.ping(),
            active_sessions=len(api_service.list_sessions()),
        )

    return app
