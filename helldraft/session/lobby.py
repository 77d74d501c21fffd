"""
Lobby Manager - Seats, connection liveness and the host role.

Seats live in the shared store under session/{id}/players/{slot}; lobby
metadata (host, name, status) under session/{id}/meta.

Rules:
- The host is seated in slot 0 at creation and never migrates
- Newcomers take the lowest free slot, or a requested free slot
- A disconnected seat stays occupied so its owner can resume it
- Only the host may kick, and only disconnected non-host seats
- The host leaving closes the lobby
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any
import logging
import time

from ..engine_core.balancing import MAX_PLAYERS
from .store import KeyValueStore, StoreCallback, Unsubscribe

logger = logging.getLogger(__name__)


def meta_key(session_id: str) -> str:
    return f"session/{session_id}/meta"


def players_prefix(session_id: str) -> str:
    return f"session/{session_id}/players"


def seat_key(session_id: str, slot: int) -> str:
    return f"{players_prefix(session_id)}/{slot}"


class LobbyStatus(Enum):
    WAITING = "waiting"
    IN_GAME = "in_game"
    COMPLETED = "completed"


@dataclass
class LobbyPlayer:
    """One occupied seat."""
    player_id: str
    name: str
    slot: int
    connected: bool = True
    ready: bool = False
    is_host: bool = False
    warbonds: tuple[str, ...] = ()
    include_superstore: bool = False
    excluded_items: tuple[str, ...] = ()

    def _copy_with(self, **kwargs) -> LobbyPlayer:
        return replace(self, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "name": self.name,
            "slot": self.slot,
            "connected": self.connected,
            "ready": self.ready,
            "is_host": self.is_host,
            "warbonds": list(self.warbonds),
            "include_superstore": self.include_superstore,
            "excluded_items": list(self.excluded_items),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LobbyPlayer:
        return cls(
            player_id=data["player_id"],
            name=data.get("name", ""),
            slot=int(data["slot"]),
            connected=bool(data.get("connected", True)),
            ready=bool(data.get("ready", False)),
            is_host=bool(data.get("is_host", False)),
            warbonds=tuple(data.get("warbonds") or ()),
            include_superstore=bool(data.get("include_superstore", False)),
            excluded_items=tuple(data.get("excluded_items") or ()),
        )

    def to_seed(self) -> dict[str, Any]:
        """Player seed for START_RUN / ADD_LATE_PLAYER."""
        return {
            "id": self.player_id,
            "name": self.name,
            "warbonds": list(self.warbonds),
            "include_superstore": self.include_superstore,
            "excluded_items": list(self.excluded_items),
        }


@dataclass
class LobbyResult:
    """Outcome of a lobby operation."""
    success: bool
    player: LobbyPlayer | None = None
    error: str | None = None
    error_code: str | None = None
    players: list[LobbyPlayer] = field(default_factory=list)

    @classmethod
    def failure(cls, error: str, error_code: str) -> LobbyResult:
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def ok(cls, player: LobbyPlayer | None = None, players=None) -> LobbyResult:
        return cls(success=True, player=player, players=list(players or []))


class LobbyManager:
    """
    Async seat management for one session over the shared store.

    Usage:
        lobby = LobbyManager(store, session_id)
        await lobby.create_lobby("host-id", "Alice")
        result = await lobby.join("guest-id", "Bob")
    """

    def __init__(self, store: KeyValueStore, session_id: str, max_players: int = MAX_PLAYERS):
        self.store = store
        self.session_id = session_id
        self.max_players = max_players

    # =========================================================================
    # Reads
    # =========================================================================

    async def meta(self) -> dict[str, Any] | None:
        return await self.store.get(meta_key(self.session_id))

    async def players(self) -> list[LobbyPlayer]:
        seats = await self.store.children(players_prefix(self.session_id))
        return sorted(
            (LobbyPlayer.from_dict(value) for _, value in seats if value),
            key=lambda p: p.slot,
        )

    async def get_player(self, player_id: str) -> LobbyPlayer | None:
        for player in await self.players():
            if player.player_id == player_id:
                return player
        return None

    async def host_id(self) -> str | None:
        meta = await self.meta()
        return meta.get("host_id") if meta else None

    async def available_slots(self) -> list[int]:
        taken = {p.slot for p in await self.players()}
        return [slot for slot in range(self.max_players) if slot not in taken]

    def subscribe(self, callback: StoreCallback) -> Unsubscribe:
        """Called with (seat key, seat dict or None) on every seat change."""
        return self.store.subscribe_children(players_prefix(self.session_id), callback)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_lobby(self, host_id: str, name: str, lobby_name: str = "") -> LobbyResult:
        """Create the lobby with the host seated in slot 0."""
        host = LobbyPlayer(player_id=host_id, name=name, slot=0, is_host=True)
        await self.store.set(meta_key(self.session_id), {
            "host_id": host_id,
            "name": lobby_name or f"{name}'s squad",
            "status": LobbyStatus.WAITING.value,
            "max_players": self.max_players,
            "created_at": time.time(),
        })
        await self._save(host)
        logger.info("Lobby %s created by %s", self.session_id, host_id)
        return LobbyResult.ok(host)

    async def close_lobby(self) -> LobbyResult:
        """Remove every seat and the lobby metadata."""
        for player in await self.players():
            await self.store.delete(seat_key(self.session_id, player.slot))
        await self.store.delete(meta_key(self.session_id))
        logger.info("Lobby %s closed", self.session_id)
        return LobbyResult.ok()

    async def set_status(self, status: LobbyStatus) -> LobbyResult:
        meta = await self.meta()
        if meta is None:
            return self._not_found()
        meta["status"] = LobbyStatus(status).value
        await self.store.set(meta_key(self.session_id), meta)
        return LobbyResult.ok()

    # =========================================================================
    # Seats
    # =========================================================================

    async def join(self, player_id: str, name: str, requested_slot: int | None = None) -> LobbyResult:
        """
        Seat a participant.

        A returning participant gets their old seat back, marked
        connected. Newcomers take the requested slot when it is free,
        otherwise the lowest free slot.
        """
        if await self.meta() is None:
            return self._not_found()

        existing = await self.get_player(player_id)
        if existing is not None:
            player = existing._copy_with(connected=True, name=name or existing.name)
            await self._save(player)
            logger.info("%s resumed slot %d in %s", player_id, player.slot, self.session_id)
            return LobbyResult.ok(player)

        free = await self.available_slots()
        if not free:
            return LobbyResult.failure("Lobby is full", "LOBBY_FULL")
        if requested_slot is not None:
            if requested_slot not in free:
                return LobbyResult.failure(f"Slot {requested_slot} is taken", "SLOT_TAKEN")
            slot = requested_slot
        else:
            slot = free[0]

        player = LobbyPlayer(player_id=player_id, name=name, slot=slot)
        await self._save(player)
        logger.info("%s joined %s in slot %d", player_id, self.session_id, slot)
        return LobbyResult.ok(player)

    async def leave(self, player_id: str) -> LobbyResult:
        player = await self.get_player(player_id)
        if player is None:
            return self._player_not_found(player_id)
        if player.is_host:
            return await self.close_lobby()
        await self.store.delete(seat_key(self.session_id, player.slot))
        logger.info("%s left %s", player_id, self.session_id)
        return LobbyResult.ok(player)

    async def mark_disconnected(self, player_id: str) -> LobbyResult:
        return await self._update(player_id, connected=False)

    async def mark_connected(self, player_id: str) -> LobbyResult:
        return await self._update(player_id, connected=True)

    async def set_ready(self, player_id: str, ready: bool) -> LobbyResult:
        return await self._update(player_id, ready=bool(ready))

    async def update_player_config(
        self,
        player_id: str,
        name: str | None = None,
        warbonds=None,
        include_superstore: bool | None = None,
        excluded_items=None,
    ) -> LobbyResult:
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if warbonds is not None:
            changes["warbonds"] = tuple(warbonds)
        if include_superstore is not None:
            changes["include_superstore"] = bool(include_superstore)
        if excluded_items is not None:
            changes["excluded_items"] = tuple(excluded_items)
        return await self._update(player_id, **changes)

    async def change_slot(self, player_id: str, new_slot: int) -> LobbyResult:
        player = await self.get_player(player_id)
        if player is None:
            return self._player_not_found(player_id)
        if player.is_host:
            return LobbyResult.failure("The host stays in slot 0", "NOT_HOST")
        if new_slot == player.slot:
            return LobbyResult.ok(player)
        if new_slot not in await self.available_slots():
            return LobbyResult.failure(f"Slot {new_slot} is taken", "SLOT_TAKEN")
        await self.store.delete(seat_key(self.session_id, player.slot))
        moved = player._copy_with(slot=new_slot)
        await self._save(moved)
        return LobbyResult.ok(moved)

    async def kick(self, host_id: str, player_id: str) -> LobbyResult:
        """Vacate a disconnected seat so someone else can claim it."""
        if await self.host_id() != host_id:
            return LobbyResult.failure("Only the host can kick", "NOT_HOST")
        player = await self.get_player(player_id)
        if player is None:
            return self._player_not_found(player_id)
        if player.is_host:
            return LobbyResult.failure("The host cannot be kicked", "NOT_HOST")
        if player.connected:
            return LobbyResult.failure(f"{player.name} is still connected", "PLAYER_CONNECTED")
        await self.store.delete(seat_key(self.session_id, player.slot))
        logger.info("%s kicked %s from slot %d", host_id, player_id, player.slot)
        return LobbyResult.ok(player)

    async def kick_disconnected(self, host_id: str) -> LobbyResult:
        if await self.host_id() != host_id:
            return LobbyResult.failure("Only the host can kick", "NOT_HOST")
        kicked = []
        for player in await self.players():
            if not player.connected and not player.is_host:
                await self.store.delete(seat_key(self.session_id, player.slot))
                kicked.append(player)
        return LobbyResult.ok(players=kicked)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _save(self, player: LobbyPlayer) -> None:
        await self.store.set(seat_key(self.session_id, player.slot), player.to_dict())

    async def _update(self, player_id: str, **changes) -> LobbyResult:
        player = await self.get_player(player_id)
        if player is None:
            return self._player_not_found(player_id)
        if changes:
            player = player._copy_with(**changes)
            await self._save(player)
        return LobbyResult.ok(player)

    def _not_found(self) -> LobbyResult:
        return LobbyResult.failure(f"Lobby {self.session_id} not found", "LOBBY_NOT_FOUND")

    def _player_not_found(self, player_id: str) -> LobbyResult:
        return LobbyResult.failure(f"{player_id} is not in the lobby", "PLAYER_NOT_FOUND")
