"""
Tests for local saves, export/import and run history.
"""

import json

import pytest

from ..engine_core.action import Action
from ..engine_core.state import GamePhase
from ..persistence.save_manager import SAVE_FORMAT_VERSION, SaveManager
from ..session.game_loop import GameLoop
from .conftest import seat


@pytest.fixture
def saves(tmp_path):
    return SaveManager(save_dir=tmp_path)


class TestSaveSlots:

    def test_save_and_load(self, saves, two_player_state):
        run_id = saves.save(two_player_state)
        loaded = saves.load(run_id)
        assert loaded.to_dict() == two_player_state.to_dict()
        assert saves.list_saves() == [run_id]

    def test_in_memory(self, solo_state):
        saves = SaveManager()
        saves.save(solo_state)
        assert saves.load(solo_state.run_id).players == solo_state.players
        assert saves.delete(solo_state.run_id)
        assert saves.load(solo_state.run_id) is None

    def test_missing_save(self, saves):
        assert saves.load("nope") is None
        assert not saves.delete("nope")

    def test_corrupt_file(self, saves, tmp_path, solo_state):
        saves.save(solo_state)
        (tmp_path / f"run-{solo_state.run_id}.json").write_text("{not json")
        assert saves.load(solo_state.run_id) is None

    def test_survives_restart(self, tmp_path, solo_state):
        SaveManager(save_dir=tmp_path).save(solo_state)
        assert SaveManager(save_dir=tmp_path).load(solo_state.run_id) is not None


class TestExportImport:

    def test_round_trip(self, saves, swap_ready_state):
        text = saves.export_save(swap_ready_state)
        assert json.loads(text)["format_version"] == SAVE_FORMAT_VERSION
        assert saves.import_save(text).to_dict() == swap_ready_state.to_dict()

    @pytest.mark.parametrize("text", [
        "{broken",
        "[1, 2]",
        json.dumps({"format_version": 99, "state": {}}),
        json.dumps({"format_version": SAVE_FORMAT_VERSION, "state": {"run_id": "x"}}),
        json.dumps({"format_version": SAVE_FORMAT_VERSION, "state": None}),
    ])
    def test_invalid_imports_raise(self, saves, text):
        with pytest.raises(ValueError):
            saves.import_save(text)

    def test_validate_rejects_out_of_order_players(self, saves, two_player_state):
        data = two_player_state.to_dict()
        data["players"] = list(reversed(data["players"]))
        assert not saves.validate_save(data)

    def test_validate_rejects_unknown_phase(self, saves, solo_state):
        data = solo_state.to_dict()
        data["phase"] = "limbo"
        assert not saves.validate_save(data)


class TestRunHistory:

    def test_terminal_state_saved_and_recorded_once(self, saves, solo_state):
        saves.on_state(solo_state)
        over = solo_state._copy_with(phase=GamePhase.GAMEOVER, current_diff=4)
        saves.on_state(over)
        saves.on_state(over)

        history = saves.history()
        assert len(history) == 1
        assert history[0].outcome == "gameover"
        assert history[0].difficulty_reached == 4
        assert saves.load(solo_state.run_id).phase == GamePhase.GAMEOVER

    def test_lobby_states_ignored(self, saves, lobby_state):
        saves.on_state(lobby_state)
        assert saves.history() == []
        assert saves.list_saves() == []

    def test_newest_first_and_capped(self, tmp_path, solo_state):
        saves = SaveManager(save_dir=tmp_path, history_limit=2)
        for run_id in ("a", "b", "c"):
            saves.record_run(solo_state._copy_with(run_id=run_id, phase=GamePhase.VICTORY))
        assert [e.run_id for e in saves.history()] == ["c", "b"]
        assert [e.run_id for e in SaveManager(save_dir=tmp_path).history()] == ["c", "b"]

    def test_unreadable_history_ignored(self, tmp_path):
        (tmp_path / "history.json").write_text("garbage")
        assert SaveManager(save_dir=tmp_path).history() == []

    def test_every_run_in_a_session_recorded(self, saves):
        loop = GameLoop(seed=4, run_id="first")
        loop.subscribe(saves.on_state)
        for _ in range(2):
            for action in (Action.start_run([seat("ada")]), Action.fail_mission(), Action.reset_game()):
                assert loop.handle(action).success

        history = saves.history()
        assert len(history) == 2
        assert history[1].run_id == "first"
        assert history[0].run_id != "first"
        assert set(saves.list_saves()) == {entry.run_id for entry in history}
