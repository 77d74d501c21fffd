"""
Tests for the stratagem swap/duplicate selection and its outcomes.
"""

import pytest

from ..engine_core.state import EventSelection, GameConfig, Player, SelectionStage
from ..events import selection as sel
from ..events.catalog import Outcome, OutcomeType
from ..events.processor import OutcomeContext, StateUpdate, process_outcome
from .conftest import with_stratagems


@pytest.fixture
def squad():
    ada = with_stratagems(Player(id="ada", name="Ada", slot=0), "st_ops", "st_gatling")
    bob = with_stratagems(Player(id="bob", name="Bob", slot=1), "st_gatling", "st_eat")
    return (ada, bob)


@pytest.fixture
def full_squad(squad):
    ada, _ = squad
    bob = with_stratagems(Player(id="bob", name="Bob", slot=1), "st_gatling", "st_eat", "st_laser", "st_e_500")
    return (ada, bob)


def chosen(players, slot_index, target, mode):
    """Source ada's stratagem at slot_index, aimed at the target helldiver."""
    selection = sel.select_source(EventSelection(), players, 0)
    selection = sel.select_stratagem(selection, players, 0, slot_index)
    return sel.select_target(selection, players, target, mode)


def context(players):
    return OutcomeContext(players=players, requisition=0, current_diff=3, config=GameConfig())


class TestSelectionSteps:

    def test_source(self, squad):
        selection = sel.select_source(EventSelection(), squad, 0)
        assert selection.stage == SelectionStage.SOURCE_CHOSEN
        assert selection.source_player == 0

    def test_source_needs_stratagems(self, squad):
        empty = Player(id="cy", name="Cy", slot=2)
        assert sel.select_source(EventSelection(), squad + (empty,), 2) is None

    def test_unknown_source(self, squad):
        assert sel.select_source(EventSelection(), squad, 5) is None

    def test_stratagem(self, squad):
        selection = sel.select_source(EventSelection(), squad, 0)
        selection = sel.select_stratagem(selection, squad, 0, 1)
        assert selection.stage == SelectionStage.STRATAGEM_CHOSEN
        assert selection.source_stratagem.stratagem_id == "st_gatling"

    def test_empty_slot_rejected(self, squad):
        selection = sel.select_source(EventSelection(), squad, 0)
        assert sel.select_stratagem(selection, squad, 0, 3) is None

    def test_stratagem_must_come_from_source(self, squad):
        selection = sel.select_source(EventSelection(), squad, 0)
        assert sel.select_stratagem(selection, squad, 1, 0) is None

    def test_steps_out_of_order(self, squad):
        assert sel.select_stratagem(EventSelection(), squad, 0, 0) is None
        assert sel.select_target(EventSelection(), squad, 1, "swap") is None
        assert sel.select_target_stratagem(EventSelection(), squad, 1, 0, "swap") is None

    def test_target_cannot_be_source(self, squad):
        selection = sel.select_source(EventSelection(), squad, 0)
        selection = sel.select_stratagem(selection, squad, 0, 0)
        assert sel.select_target(selection, squad, 0, "swap") is None

    def test_reset(self, squad):
        assert sel.reset() == EventSelection()
        assert not sel.is_ready(sel.reset())


class TestSwapSelection:

    def test_target_needs_a_stratagem_slot_pick(self, squad):
        selection = chosen(squad, 0, 1, "swap")
        assert selection.stage == SelectionStage.TARGET_CHOSEN

    def test_ready_after_target_stratagem(self, squad):
        selection = sel.select_target_stratagem(chosen(squad, 0, 1, "swap"), squad, 1, 1, "swap")
        assert sel.is_ready(selection)
        assert selection.target_stratagem.stratagem_id == "st_eat"

    def test_swap_that_would_duplicate_rejected(self, squad):
        # Ada already holds bob's st_gatling
        selection = chosen(squad, 0, 1, "swap")
        assert sel.select_target_stratagem(selection, squad, 1, 0, "swap") is None

    def test_target_without_stratagems_rejected(self, squad):
        empty = Player(id="cy", name="Cy", slot=2)
        players = squad + (empty,)
        assert chosen(players, 0, 2, "swap") is None

    def test_target_stratagem_from_wrong_player(self, squad):
        selection = chosen(squad, 0, 1, "swap")
        assert sel.select_target_stratagem(selection, squad, 0, 1, "swap") is None


class TestDuplicateSelection:

    def test_free_slot_is_ready_immediately(self, squad):
        selection = chosen(squad, 0, 1, "duplicate")
        assert sel.is_ready(selection)
        assert selection.target_stratagem is None

    def test_target_already_holds_stratagem(self, squad):
        assert chosen(squad, 1, 1, "duplicate") is None

    def test_full_target_picks_slot_to_overwrite(self, full_squad):
        selection = chosen(full_squad, 0, 1, "duplicate")
        assert selection.stage == SelectionStage.TARGET_CHOSEN
        selection = sel.select_target_stratagem(selection, full_squad, 1, 3, "duplicate")
        assert sel.is_ready(selection)


class TestSelectionOutcomes:

    def test_swap(self, squad):
        selection = sel.select_target_stratagem(chosen(squad, 0, 1, "swap"), squad, 1, 1, "swap")
        update = process_outcome(Outcome(OutcomeType.SWAP_STRATAGEM), context(squad), selection)
        ada, bob = update.players
        assert ada.loadout.stratagems[:2] == ("st_eat", "st_gatling")
        assert bob.loadout.stratagems[:2] == ("st_gatling", "st_ops")
        assert ada.owns("st_eat") and not ada.owns("st_ops")
        assert bob.owns("st_ops") and not bob.owns("st_eat")

    def test_swap_against_stale_selection(self, squad):
        selection = sel.select_target_stratagem(chosen(squad, 0, 1, "swap"), squad, 1, 1, "swap")
        ada, bob = squad
        moved = (ada, with_stratagems(Player(id="bob", name="Bob", slot=1), "st_gatling"))
        update = process_outcome(Outcome(OutcomeType.SWAP_STRATAGEM), context(moved), selection)
        assert update == StateUpdate()

    def test_duplicate_into_free_slot(self, squad):
        selection = chosen(squad, 0, 1, "duplicate")
        update = process_outcome(Outcome(OutcomeType.DUPLICATE_STRATAGEM), context(squad), selection)
        ada, bob = update.players
        assert bob.loadout.stratagems[:3] == ("st_gatling", "st_eat", "st_ops")
        assert ada.loadout.stratagems[0] == "st_ops"

    def test_duplicate_overwrites_chosen_slot(self, full_squad):
        selection = chosen(full_squad, 0, 1, "duplicate")
        selection = sel.select_target_stratagem(selection, full_squad, 1, 3, "duplicate")
        update = process_outcome(Outcome(OutcomeType.DUPLICATE_STRATAGEM), context(full_squad), selection)
        bob = update.players[1]
        assert bob.loadout.stratagems[3] == "st_ops"
        assert not bob.owns("st_e_500")

    def test_duplicate_needs_ready_selection(self, squad):
        selection = sel.select_source(EventSelection(), squad, 0)
        update = process_outcome(Outcome(OutcomeType.DUPLICATE_STRATAGEM), context(squad), selection)
        assert update.players is None
