"""
Pytest fixtures for Helldraft tests.
"""

import random

import pytest

from ..engine_core.action import Action
from ..engine_core.reducer import apply_action
from ..engine_core.state import GameConfig, GamePhase, GameState, Loadout, Player, new_game_state
from ..session.store import InMemoryStore


def seat(player_id: str, name: str | None = None) -> dict:
    """Player seed as the lobby hands it to START_RUN."""
    return {"id": player_id, "name": name or player_id.title()}


def started(players, **config) -> GameState:
    """A run on the dashboard with the given seeds and config overrides."""
    result = apply_action(new_game_state("test-run"), Action.start_run(players, config))
    assert result.success, result.error
    return result.new_state


def with_stratagems(player: Player, *stratagems) -> Player:
    """Owned and equipped stratagems in slots 0.., rest empty."""
    slots = tuple(stratagems) + (None,) * (4 - len(stratagems))
    loadout = Loadout(
        primary=player.loadout.primary,
        secondary=player.loadout.secondary,
        grenade=player.loadout.grenade,
        armor=player.loadout.armor,
        booster=player.loadout.booster,
        stratagems=slots,
    )
    return player.with_items(*stratagems).with_loadout(loadout)


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source."""
    return random.Random(1234)


@pytest.fixture
def lobby_state() -> GameState:
    """Fresh state before a run starts."""
    return new_game_state("test-run")


@pytest.fixture
def solo_state() -> GameState:
    """One helldiver on the dashboard at difficulty 1."""
    return started([seat("ada")])


@pytest.fixture
def two_player_state() -> GameState:
    """Two helldivers on the dashboard at difficulty 1."""
    return started([seat("ada"), seat("bob")])


@pytest.fixture
def swap_ready_state(two_player_state) -> GameState:
    """Two helldivers at difficulty 2, each holding one distinct stratagem."""
    state = two_player_state
    ada = with_stratagems(state.players[0], "st_ops")
    bob = with_stratagems(state.players[1], "st_eat")
    return state.with_players((ada, bob))._copy_with(current_diff=2)


@pytest.fixture
def fresh_player() -> Player:
    """A helldiver holding only the starting kit."""
    return Player(id="ada", name="Ada", slot=0)


@pytest.fixture
def default_config() -> GameConfig:
    return GameConfig()


@pytest.fixture
def store() -> InMemoryStore:
    """Process-local shared store."""
    return InMemoryStore()


@pytest.fixture
def victory_ready_state(solo_state) -> GameState:
    """Solo run on the dashboard at the final difficulty."""
    assert solo_state.phase == GamePhase.DASHBOARD
    return solo_state._copy_with(current_diff=solo_state.config.max_difficulty)
