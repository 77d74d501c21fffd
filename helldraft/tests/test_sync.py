"""
Tests for host-authoritative synchronization over the shared store.
"""

import asyncio

import pytest

from ..engine_core.action import Action, ActionType
from ..engine_core.state import GamePhase
from ..session.game_loop import GameLoop
from ..session.manager import SessionManager
from ..session.store import InMemoryStore, KeyValueStore
from ..session.sync import (
    ClientSync,
    HostSync,
    actions_prefix,
    is_host_only,
    scope_to_slot,
    state_key,
)
from .conftest import seat


def run(coro):
    return asyncio.run(coro)


async def hosted(store):
    """A started two-player run with the host publishing."""
    host = HostSync(store, "s1", GameLoop(seed=5, run_id="sync-run"))
    await host.start()
    result = await host.submit(Action.start_run([seat("hana"), seat("bob")]))
    assert result.success, result.error
    return host


def record(slot, player_id, seq, action):
    return {"slot": slot, "player_id": player_id, "seq": seq, "action": action.to_dict()}


class TestHostPublishing:

    def test_start_publishes_versioned_snapshot(self, store):
        async def scenario():
            host = HostSync(store, "s1", GameLoop(seed=1, run_id="r"))
            status = await host.start()
            return status, await store.get(state_key("s1"))

        status, snapshot = run(scenario())
        assert status.ready
        assert snapshot["_version"] == 1
        assert snapshot["phase"] == GamePhase.LOBBY.value

    def test_each_applied_action_bumps_version(self, store):
        async def scenario():
            host = await hosted(store)
            await host.submit(Action.add_requisition(2))
            return host.version, await store.get(state_key("s1"))

        version, snapshot = run(scenario())
        assert version == 3
        assert snapshot["_version"] == 3
        assert snapshot["requisition"] == 2

    def test_rejected_action_publishes_nothing(self, store):
        async def scenario():
            host = await hosted(store)
            result = await host.submit(Action.close_event())
            return result, host.version

        result, version = run(scenario())
        assert not result.success
        assert version == 2

    def test_restarted_host_continues_versions(self, store):
        async def scenario():
            await hosted(store)
            successor = HostSync(store, "s1", GameLoop(seed=2, run_id="sync-run"))
            await successor.start()
            return successor.version

        assert run(scenario()) == 3

    def test_unreachable_store(self):
        class OfflineStore(KeyValueStore):
            async def get(self, key):
                return None

            async def set(self, key, value):
                raise OSError("offline")

            async def delete(self, key):
                return None

            async def push(self, prefix, value):
                raise OSError("offline")

            async def children(self, prefix):
                return []

            def subscribe(self, key, callback):
                return lambda: None

            def subscribe_children(self, prefix, callback):
                return lambda: None

            async def ping(self):
                return False

        async def scenario():
            host = HostSync(OfflineStore(), "s1", GameLoop(seed=1))
            client = ClientSync(OfflineStore(), "s1", slot=1, player_id="bob")
            return (
                await host.start(),
                await client.send_action(Action.skip_draft(1)),
                client.status,
            )

        host_status, key, client_status = run(scenario())
        assert not host_status.ready
        assert key is None
        assert not client_status.ready


class YieldingStore(InMemoryStore):
    """Suspends on every write, the way a networked store does."""

    async def set(self, key, value):
        await asyncio.sleep(0)
        await super().set(key, value)


class TestConcurrentPublishes:
    """Overlapping submits still publish strictly increasing versions."""

    def test_versions_never_repeat(self):
        store = YieldingStore()
        seen = []

        async def scenario():
            host = await hosted(store)
            client = ClientSync(store, "s1", slot=1, player_id="bob")
            client.subscribe(seen.append)
            await asyncio.gather(
                host.submit(Action.add_requisition(5)),
                host.submit(Action.add_requisition(7)),
            )
            return host, await store.get(state_key("s1"))

        host, snapshot = run(scenario())
        assert host.version == 4
        assert snapshot["_version"] == 4
        assert snapshot["requisition"] == 12
        assert [state.requisition for state in seen] == [5, 12]

    def test_latest_snapshot_wins_for_late_reader(self):
        store = YieldingStore()

        async def scenario():
            host = await hosted(store)
            await asyncio.gather(
                host.submit(Action.add_requisition(1)),
                host.submit(Action.add_requisition(2)),
                host.submit(Action.add_requisition(3)),
            )
            client = ClientSync(store, "s1", slot=1, player_id="bob")
            return host, await client.latest(), client.status

        host, state, status = run(scenario())
        assert state.requisition == host.loop.state.requisition == 6
        assert status.version == host.version == 5


class TestClientActions:
    """Intents pushed by remote participants and drained by the host."""

    def test_client_action_reaches_host_and_back(self, store):
        seen = []

        async def scenario():
            host = await hosted(store)
            client = ClientSync(store, "s1", slot=1, player_id="bob")
            client.subscribe(seen.append)
            await client.send_action(Action.set_player_extracted(1, False))
            return host

        host = run(scenario())
        assert host.loop.state.players[1].extracted is False
        assert len(seen) == 1
        assert seen[0].players[1].extracted is False
        assert client_queue_empty(store)

    def test_player_index_is_filled_in(self, store):
        async def scenario():
            host = await hosted(store)
            client = ClientSync(store, "s1", slot=1, player_id="bob")
            await client.send_action(Action.simple(ActionType.SET_PLAYER_EXTRACTED, enabled=False))
            return host

        assert run(scenario()).loop.state.players[1].extracted is False

    def test_stale_sequence_discarded(self, store):
        async def scenario():
            host = await hosted(store)
            await store.push(actions_prefix("s1"), record(1, "bob", 10, Action.set_player_extracted(1, False)))
            await store.push(actions_prefix("s1"), record(1, "bob", 5, Action.set_player_extracted(1, True)))
            return host

        host = run(scenario())
        assert host.loop.state.players[1].extracted is False
        assert host.version == 3

    @pytest.mark.parametrize("bad_record", [
        {"nonsense": True},
        {"slot": 9, "player_id": "bob", "seq": 1, "action": {"type": "skip_draft"}},
        {"slot": 1, "player_id": "bob", "seq": 1, "action": {"type": "teleport"}},
        record(1, "mallory", 1, Action.set_player_extracted(1, False)),
        record(1, "bob", 1, Action.set_player_extracted(0, False)),
        record(1, "bob", 1, Action.complete_mission()),
    ])
    def test_rejected_records_are_discarded(self, store, bad_record):
        async def scenario():
            host = await hosted(store)
            await store.push(actions_prefix("s1"), bad_record)
            return host

        host = run(scenario())
        assert host.version == 2
        assert host.loop.state.phase == GamePhase.DASHBOARD
        assert all(p.extracted for p in host.loop.state.players)
        assert client_queue_empty(store)

    def test_queue_drained_on_start(self, store):
        async def scenario():
            loop = GameLoop(seed=5, run_id="sync-run")
            loop.handle(Action.start_run([seat("hana"), seat("bob")]))
            await store.push(actions_prefix("s1"), record(1, "bob", 1, Action.set_player_extracted(1, False)))
            host = HostSync(store, "s1", loop)
            await host.start()
            return host

        assert run(scenario()).loop.state.players[1].extracted is False


class TestClientSnapshots:

    def test_older_snapshots_ignored(self, store):
        seen = []

        async def scenario():
            client = ClientSync(store, "s1", slot=1, player_id="bob")
            client.subscribe(seen.append)
            host = await hosted(store)
            snapshot = await store.get(state_key("s1"))
            snapshot["_version"] = 1
            await store.set(state_key("s1"), snapshot)
            return host

        run(scenario())
        assert [s.phase for s in seen] == [GamePhase.LOBBY, GamePhase.DASHBOARD]

    def test_latest_after_reconnect(self, store):
        async def scenario():
            await hosted(store)
            client = ClientSync(store, "s1", slot=1, player_id="bob")
            return await client.latest(), client.status

        state, status = run(scenario())
        assert state.phase == GamePhase.DASHBOARD
        assert status.version == 2

    def test_sequence_numbers_increase(self):
        client = ClientSync(None, "s1", slot=1, player_id="bob")
        first = client.record_for(Action.skip_draft(1))
        second = client.record_for(Action.skip_draft(1))
        assert second["seq"] > first["seq"]


class TestScoping:

    def test_fill_in_missing_index(self):
        scoped = scope_to_slot(Action.simple(ActionType.SKIP_DRAFT), 2)
        assert scoped.payload.player_index == 2

    def test_other_slot_rejected(self):
        assert scope_to_slot(Action.skip_draft(1), 2) is None

    def test_unscoped_actions_pass_through(self):
        action = Action.select_event_choice(0)
        assert scope_to_slot(action, 2) is action

    def test_host_only(self):
        assert is_host_only(ActionType.COMPLETE_MISSION)
        assert is_host_only(ActionType.APPLY_EVENT_UPDATES)
        assert not is_host_only(ActionType.DRAFT_PICK)


class TestSeatGaps:
    """Clients address their run slot, which differs from a gapped lobby seat."""

    def test_client_uses_run_slot(self, store):
        async def scenario():
            session = await SessionManager(store).create_session("hana", "Hana", seed=3)
            joined = await session.join("bob", "Bob", requested_slot=2)
            await session.start_run()
            slot = session.game_slot("bob")
            client = ClientSync(store, session.session_id, slot=slot, player_id="bob")
            await client.send_action(Action.simple(ActionType.SET_PLAYER_EXTRACTED, enabled=False))
            return joined.player.slot, slot, session.loop.state

        seat_index, slot, state = run(scenario())
        assert seat_index == 2
        assert slot == 1
        assert state.players[1].id == "bob"
        assert state.players[1].extracted is False

    def test_lobby_seat_is_refused(self, store):
        async def scenario():
            session = await SessionManager(store).create_session("hana", "Hana", seed=3)
            await session.join("bob", "Bob", requested_slot=2)
            await session.start_run()
            client = ClientSync(store, session.session_id, slot=2, player_id="bob")
            await client.send_action(Action.simple(ActionType.SET_PLAYER_EXTRACTED, enabled=False))
            return session.loop.state

        assert all(p.extracted for p in run(scenario()).players)


def client_queue_empty(store):
    return run(store.children(actions_prefix("s1"))) == []
