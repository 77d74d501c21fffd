"""
Synchronization Layer - Host-authoritative state over the shared store.

Protocol:
- The host owns the GameLoop. After every applied action it publishes
  the full snapshot to session/{id}/state with a monotonic _version
- Remote participants never mutate state. They push action records to
  session/{id}/actions and render whatever snapshot arrives next
- The host drains the queue FIFO: shape check, whitelist, submitter
  slot, stale sequence numbers, then fold and delete

Delivery is best effort. An action the host never drains is simply
lost; callers treat "no new snapshot" as the failure signal.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable
import asyncio
import logging
import time

from pydantic import ValidationError
from redis.exceptions import RedisError

from ..engine_core.action import (
    Action,
    ActionType,
    CLIENT_ALLOWED_ACTIONS,
    PLAYER_SCOPED_ACTIONS,
)
from ..engine_core.state import GameState
from .game_loop import GameLoop, TurnResult
from .store import KeyValueStore, Unsubscribe

logger = logging.getLogger(__name__)

# Store failures surface as a not-ready status rather than an exception
STORE_ERRORS = (RedisError, OSError)

INTERNAL_FIELDS = ("_version", "_synced_at")


def state_key(session_id: str) -> str:
    return f"session/{session_id}/state"


def actions_prefix(session_id: str) -> str:
    return f"session/{session_id}/actions"


@dataclass
class SyncStatus:
    """Connectivity signal passed upstream."""
    ready: bool
    message: str = ""
    version: int = 0


class HostSync:
    """
    The authority's side of the protocol.

    Usage:
        host = HostSync(store, session_id, loop)
        await host.start()
        await host.submit(Action.complete_mission())   # host's own intents
    """

    def __init__(
        self,
        store: KeyValueStore,
        session_id: str,
        loop: GameLoop,
        allowed_actions=CLIENT_ALLOWED_ACTIONS,
    ):
        self.store = store
        self.session_id = session_id
        self.loop = loop
        self.allowed_actions = frozenset(allowed_actions)
        self.version = 0
        self._last_seq: dict[int, int] = {}
        self._draining = False
        self._drain_again = False
        self._unsubscribe: Unsubscribe | None = None
        self._publish_lock = asyncio.Lock()
        self._status = SyncStatus(ready=False, message="Not started")

    @property
    def status(self) -> SyncStatus:
        return self._status

    async def start(self) -> SyncStatus:
        """Publish the current state and start watching the queue."""
        if not await self.store.ping():
            self._status = SyncStatus(ready=False, message="Shared store unreachable")
            return self._status
        # Continue after any snapshot a previous host process published
        existing = await self.store.get(state_key(self.session_id))
        if isinstance(existing, dict):
            self.version = max(self.version, int(existing.get("_version", 0)))
        self._unsubscribe = self.store.subscribe_children(
            actions_prefix(self.session_id), self._on_action
        )
        await self.publish()
        await self.drain()
        return self._status

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._status = SyncStatus(ready=False, message="Stopped", version=self.version)

    def subscribe(self, callback: Callable[[GameState], None]) -> Callable[[], None]:
        """Local renderers observe the authoritative state directly."""
        return self.loop.subscribe(callback)

    async def publish(self, state: GameState | None = None) -> SyncStatus:
        """
        Write the snapshot under the next _version.

        Publishes are serialized so overlapping submits and drains never
        stamp the same version; the snapshot is taken once the lock is held.
        """
        async with self._publish_lock:
            snapshot = (state or self.loop.state).to_dict()
            snapshot["_version"] = self.version + 1
            snapshot["_synced_at"] = time.time()
            try:
                await self.store.set(state_key(self.session_id), snapshot)
            except STORE_ERRORS as e:
                logger.warning("Publishing state for %s failed: %s", self.session_id, e)
                self._status = SyncStatus(ready=False, message=f"Publish failed: {e}", version=self.version)
                return self._status
            self.version += 1
            self._status = SyncStatus(ready=True, version=self.version)
            return self._status

    async def submit(self, action: Action) -> TurnResult:
        """Apply a host-local intent and publish the result."""
        result = self.loop.handle(action)
        if result.success:
            await self.publish()
        return result

    # =========================================================================
    # Queue draining
    # =========================================================================

    async def _on_action(self, key: str, value: Any) -> None:
        if value is not None:
            await self.drain()

    async def drain(self) -> int:
        """
        Fold every queued action in FIFO order.

        Re-entrant calls (a notification fired while draining) are folded
        into the running drain. Returns the number of actions applied.
        """
        if self._draining:
            self._drain_again = True
            return 0
        self._draining = True
        applied = 0
        try:
            while True:
                self._drain_again = False
                try:
                    records = await self.store.children(actions_prefix(self.session_id))
                except STORE_ERRORS as e:
                    logger.warning("Reading action queue failed: %s", e)
                    self._status = SyncStatus(ready=False, message=f"Queue unavailable: {e}", version=self.version)
                    return applied
                for key, record in records:
                    if await self._process(key, record):
                        applied += 1
                if not self._drain_again:
                    break
        finally:
            self._draining = False
        return applied

    async def _process(self, key: str, record: Any) -> bool:
        action = self._accept(key, record)
        result = self.loop.handle(action) if action is not None else None
        try:
            await self.store.delete(key)
        except STORE_ERRORS as e:
            logger.warning("Deleting %s failed: %s", key, e)
        if result is None or not result.success:
            return False
        await self.publish()
        return True

    def _accept(self, key: str, record: Any) -> Action | None:
        """Validated Action for a queue record, or None to discard it."""
        from ..api.schemas import QueuedActionRecord

        try:
            parsed = QueuedActionRecord.model_validate(record)
            action = parsed.to_action()
        except (ValidationError, ValueError) as e:
            logger.warning("Discarding malformed action %s: %s", key, e)
            return None

        if action.action_type not in self.allowed_actions:
            logger.warning("Discarding %s from slot %d: not allowed for clients",
                           action.action_type.value, parsed.slot)
            return None

        player = self.loop.state.get_player(parsed.slot)
        if player is not None and player.id != parsed.player_id:
            logger.warning("Discarding %s: slot %d belongs to %s, not %s",
                           key, parsed.slot, player.id, parsed.player_id)
            return None

        scoped = scope_to_slot(action, parsed.slot)
        if scoped is None:
            logger.warning("Discarding %s: slot %d acted for player %d",
                           action.action_type.value, parsed.slot, action.payload.player_index)
            return None
        action = scoped

        last = self._last_seq.get(parsed.slot)
        if last is not None and parsed.seq <= last:
            logger.info("Discarding stale action %s (seq %d <= %d)", key, parsed.seq, last)
            return None
        self._last_seq[parsed.slot] = parsed.seq
        return action


class ClientSync:
    """
    A remote participant's side of the protocol.

    `slot` is the participant's index in the run (`Session.game_slot`), not
    their lobby seat; the two differ when earlier seats are empty.

    Usage:
        client = ClientSync(store, session_id, slot=1, player_id="bob")
        client.subscribe(render)
        await client.send_action(Action.draft_pick(1, card_id))
    """

    def __init__(self, store: KeyValueStore, session_id: str, slot: int, player_id: str):
        self.store = store
        self.session_id = session_id
        self.slot = slot
        self.player_id = player_id
        # Time-based start keeps sequence numbers increasing across reconnects
        self._seq = int(time.time() * 1000)
        self._last_version = 0
        self._status = SyncStatus(ready=True)

    @property
    def status(self) -> SyncStatus:
        return self._status

    async def check(self) -> SyncStatus:
        if await self.store.ping():
            self._status = SyncStatus(ready=True, version=self._last_version)
        else:
            self._status = SyncStatus(ready=False, message="Shared store unreachable",
                                      version=self._last_version)
        return self._status

    def record_for(self, action: Action) -> dict[str, Any]:
        self._seq += 1
        return {
            "slot": self.slot,
            "player_id": self.player_id,
            "seq": self._seq,
            "action": action.to_dict(),
            "timestamp": time.time(),
        }

    async def send_action(self, action: Action) -> str | None:
        """Queue an intent for the host. Returns the record key, or None when offline."""
        if action.action_type in PLAYER_SCOPED_ACTIONS and action.payload.player_index is None:
            action = action.with_payload(player_index=self.slot)
        try:
            key = await self.store.push(actions_prefix(self.session_id), self.record_for(action))
        except STORE_ERRORS as e:
            logger.warning("Queueing %s failed: %s", action.action_type.value, e)
            self._status = SyncStatus(ready=False, message=f"Send failed: {e}", version=self._last_version)
            return None
        self._status = SyncStatus(ready=True, version=self._last_version)
        return key

    def subscribe(self, callback: Callable[[GameState], None]) -> Unsubscribe:
        """Deliver each newer snapshot as a GameState."""

        def on_snapshot(key: str, snapshot: Any) -> None:
            state = self._accept_snapshot(snapshot)
            if state is not None:
                callback(state)

        return self.store.subscribe(state_key(self.session_id), on_snapshot)

    async def latest(self) -> GameState | None:
        """Fetch the current snapshot, e.g. after a reconnect."""
        self._last_version = 0
        return self._accept_snapshot(await self.store.get(state_key(self.session_id)))

    def _accept_snapshot(self, snapshot: Any) -> GameState | None:
        if not isinstance(snapshot, dict):
            return None
        version = int(snapshot.get("_version", 0))
        if version <= self._last_version:
            return None
        self._last_version = version
        data = {k: v for k, v in snapshot.items() if k not in INTERNAL_FIELDS}
        self._status = SyncStatus(ready=True, version=version)
        return GameState.from_dict(data)


def is_host_only(action_type: ActionType) -> bool:
    return action_type not in CLIENT_ALLOWED_ACTIONS


def scope_to_slot(action: Action, slot: int) -> Action | None:
    """
    Bind a player-scoped action to the submitter's slot.

    A missing player_index is filled in; one naming another slot returns None.
    """
    if action.action_type not in PLAYER_SCOPED_ACTIONS:
        return action
    if action.payload.player_index is None:
        return action.with_payload(player_index=slot)
    if action.payload.player_index != slot:
        return None
    return action
