"""
Tests for the shared store and lobby seat management.
"""

import asyncio

from ..session.lobby import LobbyManager, LobbyPlayer, LobbyStatus, seat_key


def run(coro):
    return asyncio.run(coro)


class TestInMemoryStore:

    def test_set_get_delete(self, store):
        async def scenario():
            await store.set("session/a/meta", {"status": "waiting"})
            assert await store.get("session/a/meta") == {"status": "waiting"}
            await store.delete("session/a/meta")
            assert await store.get("session/a/meta") is None
        run(scenario())

    def test_values_are_copies(self, store):
        async def scenario():
            value = {"players": [1]}
            await store.set("k", value)
            value["players"].append(2)
            assert await store.get("k") == {"players": [1]}
        run(scenario())

    def test_push_orders_children(self, store):
        async def scenario():
            first = await store.push("session/a/actions", {"n": 1})
            second = await store.push("session/a/actions", {"n": 2})
            await store.set("session/a/actions/extra/deep", {"n": 3})
            assert first < second
            children = await store.children("session/a/actions")
            assert [value["n"] for _, value in children] == [1, 2]
        run(scenario())

    def test_subscriptions(self, store):
        seen = []

        async def scenario():
            unsubscribe = store.subscribe("session/a/state", lambda k, v: seen.append(v))
            store.subscribe_children("session/a/actions", lambda k, v: seen.append(("child", v)))
            await store.set("session/a/state", 1)
            await store.push("session/a/actions", 2)
            unsubscribe()
            await store.set("session/a/state", 3)

        run(scenario())
        assert seen == [1, ("child", 2)]

    def test_failing_subscriber_does_not_break_writes(self, store):
        def broken(key, value):
            raise RuntimeError("boom")

        async def scenario():
            store.subscribe("k", broken)
            await store.set("k", 1)
            return await store.get("k")

        assert run(scenario()) == 1


class TestLobbySeats:
    """Joining, leaving and resuming seats."""

    def test_host_sits_in_slot_zero(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            result = await lobby.create_lobby("host", "Hana", "Bug hunt")
            meta = await lobby.meta()
            return result, meta

        result, meta = run(scenario())
        assert result.player.slot == 0
        assert result.player.is_host
        assert meta["host_id"] == "host"
        assert meta["status"] == LobbyStatus.WAITING.value

    def test_join_takes_lowest_free_slot(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            await lobby.create_lobby("host", "Hana")
            await lobby.join("p2", "Two", requested_slot=2)
            joined = await lobby.join("p1", "One")
            return joined, await lobby.available_slots()

        joined, free = run(scenario())
        assert joined.player.slot == 1
        assert free == [3]

    def test_requested_slot_taken(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            await lobby.create_lobby("host", "Hana")
            return await lobby.join("p1", "One", requested_slot=0)

        result = run(scenario())
        assert not result.success
        assert result.error_code == "SLOT_TAKEN"

    def test_lobby_full(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1", max_players=2)
            await lobby.create_lobby("host", "Hana")
            await lobby.join("p1", "One")
            return await lobby.join("p2", "Two")

        result = run(scenario())
        assert result.error_code == "LOBBY_FULL"

    def test_join_missing_lobby(self, store):
        result = run(LobbyManager(store, "nope").join("p1", "One"))
        assert result.error_code == "LOBBY_NOT_FOUND"

    def test_rejoin_resumes_seat(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            await lobby.create_lobby("host", "Hana")
            await lobby.join("p1", "One")
            await lobby.mark_disconnected("p1")
            resumed = await lobby.join("p1", "")
            return resumed, await lobby.players()

        resumed, players = run(scenario())
        assert resumed.player.slot == 1
        assert resumed.player.connected
        assert resumed.player.name == "One"
        assert len(players) == 2

    def test_leave(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            await lobby.create_lobby("host", "Hana")
            await lobby.join("p1", "One")
            await lobby.leave("p1")
            return await lobby.players()

        players = run(scenario())
        assert [p.player_id for p in players] == ["host"]

    def test_host_leaving_closes_lobby(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            await lobby.create_lobby("host", "Hana")
            await lobby.join("p1", "One")
            await lobby.leave("host")
            return await lobby.meta(), await lobby.players()

        meta, players = run(scenario())
        assert meta is None
        assert players == []

    def test_change_slot(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            await lobby.create_lobby("host", "Hana")
            await lobby.join("p1", "One")
            moved = await lobby.change_slot("p1", 3)
            host_move = await lobby.change_slot("host", 2)
            old_seat = await store.get(seat_key("s1", 1))
            return moved, host_move, old_seat

        moved, host_move, old_seat = run(scenario())
        assert moved.player.slot == 3
        assert old_seat is None
        assert host_move.error_code == "NOT_HOST"

    def test_player_config(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            await lobby.create_lobby("host", "Hana")
            await lobby.update_player_config("host", warbonds=["helldivers_mobilize"], include_superstore=True)
            await lobby.set_ready("host", True)
            return await lobby.get_player("host")

        host = run(scenario())
        assert host.warbonds == ("helldivers_mobilize",)
        assert host.include_superstore
        assert host.ready

    def test_unknown_player(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            await lobby.create_lobby("host", "Hana")
            return await lobby.set_ready("ghost", True)

        assert run(scenario()).error_code == "PLAYER_NOT_FOUND"

    def test_status(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            await lobby.create_lobby("host", "Hana")
            await lobby.set_status(LobbyStatus.IN_GAME)
            return await lobby.meta()

        assert run(scenario())["status"] == "in_game"


class TestKick:
    """Only the host removes seats, and only disconnected ones."""

    def setup_lobby(self, store):
        async def scenario():
            lobby = LobbyManager(store, "s1")
            await lobby.create_lobby("host", "Hana")
            await lobby.join("p1", "One")
            await lobby.join("p2", "Two")
            return lobby
        return run(scenario())

    def test_connected_player_cannot_be_kicked(self, store):
        lobby = self.setup_lobby(store)
        result = run(lobby.kick("host", "p1"))
        assert result.error_code == "PLAYER_CONNECTED"

    def test_only_host_kicks(self, store):
        lobby = self.setup_lobby(store)
        run(lobby.mark_disconnected("p1"))
        result = run(lobby.kick("p2", "p1"))
        assert result.error_code == "NOT_HOST"

    def test_kick_frees_the_seat(self, store):
        lobby = self.setup_lobby(store)
        run(lobby.mark_disconnected("p1"))
        assert run(lobby.kick("host", "p1")).success
        assert 1 in run(lobby.available_slots())

    def test_kick_disconnected(self, store):
        lobby = self.setup_lobby(store)
        run(lobby.mark_disconnected("p1"))
        run(lobby.mark_disconnected("p2"))
        result = run(lobby.kick_disconnected("host"))
        assert {p.player_id for p in result.players} == {"p1", "p2"}
        assert [p.player_id for p in run(lobby.players())] == ["host"]


class TestLobbyPlayer:

    def test_seed(self):
        player = LobbyPlayer(player_id="p1", name="One", slot=1, warbonds=("cutting_edge",))
        assert player.to_seed() == {
            "id": "p1",
            "name": "One",
            "warbonds": ["cutting_edge"],
            "include_superstore": False,
            "excluded_items": [],
        }

    def test_dict_round_trip(self):
        player = LobbyPlayer(player_id="p1", name="One", slot=2, connected=False, ready=True)
        assert LobbyPlayer.from_dict(player.to_dict()) == player
