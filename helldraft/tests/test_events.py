"""
Tests for the event catalog, the outcome processor and the event phase.
"""

import random

import pytest

from ..catalog.items import Faction
from ..engine_core.action import Action, ActionType
from ..engine_core.reducer import apply_action, transition
from ..engine_core.state import GamePhase, Loadout
from ..events.catalog import (
    EVENTS,
    EventType,
    Outcome,
    OutcomeType,
    available_events,
    get_event,
    needs_player_choice,
    select_random_event,
    stratagem_selection_mode,
)
from ..events.processor import (
    OutcomeContext,
    StateUpdate,
    can_afford_choice,
    format_outcome,
    format_outcomes,
    process_event,
    process_outcome,
)
from .conftest import with_stratagems


def in_event(state, event_id):
    result = apply_action(state, Action.trigger_event(event_id))
    assert result.success, result.error
    return result.new_state


def confirm(state, rng=None):
    """Process the open event the way the host does and fold the result."""
    event = get_event(state.event.event_id)
    update = process_event(
        event,
        OutcomeContext.from_state(state),
        state.event.selected_choice,
        state.event.selection,
        rng or random.Random(7),
    )
    return apply_action(state, Action.apply_event_updates(update.to_dict()))


# =============================================================================
# Catalog
# =============================================================================


class TestCatalog:
    """Lookups and eligibility filters."""

    def test_event_ids_are_unique(self):
        ids = [event.id for event in EVENTS]
        assert len(ids) == len(set(ids))

    def test_get_event(self):
        assert get_event("yearly_bonus").type == EventType.BENEFICIAL
        assert get_event("no_such_event") is None
        assert get_event(None) is None

    def test_multiplayer_events_need_a_squad(self):
        solo = {e.id for e in available_events(5, multiplayer=False)}
        squad = {e.id for e in available_events(5, multiplayer=True)}
        assert "teamwork_training" not in solo
        assert "teamwork_training" in squad

    def test_difficulty_window(self):
        assert "national_holiday" in {e.id for e in available_events(5, False)}
        assert "national_holiday" not in {e.id for e in available_events(7, False)}
        assert "loyalty_tribunal" not in {e.id for e in available_events(6, False)}

    def test_seen_events_are_skipped(self):
        assert "yearly_bonus" not in {e.id for e in available_events(3, False, seen=["yearly_bonus"])}

    def test_random_event_is_deterministic(self):
        first = select_random_event(5, True, (), random.Random(99))
        second = select_random_event(5, True, (), random.Random(99))
        assert first is second

    def test_no_event_when_everything_seen(self):
        seen = [event.id for event in EVENTS]
        assert select_random_event(5, True, seen, random.Random(1)) is None

    def test_needs_player_choice(self):
        assert needs_player_choice(get_event("teamwork_training"))
        assert needs_player_choice(get_event("fiscal_year_end"))
        assert not needs_player_choice(get_event("yearly_bonus"))
        assert not needs_player_choice(None)

    def test_stratagem_selection_mode(self):
        teamwork = get_event("teamwork_training")
        assert stratagem_selection_mode(teamwork, 0) == "duplicate"
        assert stratagem_selection_mode(teamwork, 1) == "swap"
        assert stratagem_selection_mode(teamwork, None) is None
        assert stratagem_selection_mode(get_event("black_market"), 0) is None


# =============================================================================
# Outcome processor
# =============================================================================


class TestRequisitionOutcomes:

    def test_solo_bonus(self, solo_state):
        update = process_event(get_event("yearly_bonus"), OutcomeContext.from_state(solo_state))
        assert update.requisition == 1.0

    def test_squad_bonus_is_scaled(self, two_player_state):
        update = process_event(get_event("yearly_bonus"), OutcomeContext.from_state(two_player_state))
        assert update.requisition == pytest.approx(0.8)

    def test_loss_floors_at_zero(self, solo_state):
        context = OutcomeContext.from_state(solo_state._copy_with(requisition=1))
        update = process_event(get_event("enemy_counterattack"), context, choice_index=0)
        assert update.requisition == 0

    def test_choice_cost_is_paid_before_outcomes(self, solo_state):
        context = OutcomeContext.from_state(solo_state._copy_with(requisition=3))
        update = process_event(get_event("black_market"), context, choice_index=0)
        assert update.requisition == 1
        player = update.players[0]
        assert player.owns("st_e_500")
        assert player.loadout.stratagem_index("st_e_500") is not None

    def test_can_afford_choice(self, solo_state):
        choice = get_event("black_market").choices[0]
        assert can_afford_choice(choice, 2)
        assert not can_afford_choice(choice, 1.5)
        assert can_afford_choice(get_event("black_market").choices[1], 0)

    def test_redraft_needs_something_to_liquidate(self, solo_state):
        choice = get_event("fiscal_year_end").choices[1]
        assert not can_afford_choice(choice, 0, solo_state.players, 0)
        owner = solo_state.players[0].with_items("p_liberator")
        assert can_afford_choice(choice, 0, (owner,), 0)


class TestProgressionOutcomes:

    def test_skip_difficulty(self, solo_state):
        context = OutcomeContext.from_state(solo_state._copy_with(current_diff=4))
        update = process_event(get_event("promotion_offer"), context, choice_index=0)
        assert update.current_diff == 5

    def test_skip_difficulty_is_capped(self, solo_state):
        context = OutcomeContext.from_state(solo_state._copy_with(current_diff=10))
        update = process_outcome(Outcome(OutcomeType.SKIP_DIFFICULTY, 1), context)
        assert update.current_diff == 10

    def test_replay_difficulty_floors_at_one(self, solo_state):
        update = process_outcome(
            Outcome(OutcomeType.REPLAY_DIFFICULTY, 1), OutcomeContext.from_state(solo_state)
        )
        assert update.current_diff == 1

    def test_change_faction_picks_another_front(self, solo_state):
        update = process_event(
            get_event("enemy_counterattack"), OutcomeContext.from_state(solo_state),
            choice_index=1, rng=random.Random(3),
        )
        assert update.pending_faction is not None
        assert update.pending_faction != Faction.TERMINIDS
        assert update.needs_subfaction_selection

    def test_game_over(self, solo_state):
        update = process_event(
            get_event("loyalty_tribunal"), OutcomeContext.from_state(solo_state), choice_index=1
        )
        assert update.game_over

    def test_extra_draft_for_chosen_helldiver(self, two_player_state):
        context = OutcomeContext.from_state(two_player_state)._copy_with(player_choice=1)
        update = process_event(get_event("fiscal_year_end"), context, choice_index=0)
        assert update.players[1].extra_draft_cards == 1
        assert update.players[0].extra_draft_cards == 0


class TestItemOutcomes:

    def test_booster_draft_targets_whole_squad(self, two_player_state):
        update = process_event(
            get_event("national_holiday"), OutcomeContext.from_state(two_player_state),
            choice_index=0, rng=random.Random(5),
        )
        assert update.booster_draft
        assert update.booster_targets == (0, 1)

    def test_protected_items_are_never_removed(self, solo_state):
        player = solo_state.players[0].with_items("p_liberator")
        player = player.with_loadout(Loadout(primary="p_liberator"))
        context = OutcomeContext.from_state(solo_state.with_player(player))
        for seed in range(20):
            update = process_outcome(
                Outcome(OutcomeType.REMOVE_ITEM, 1), context, rng=random.Random(seed)
            )
            survivor = update.players[0]
            assert survivor.owns("s_peacemaker")
            assert survivor.owns("a_b01")
            assert survivor.loadout.armor == "a_b01"

    def test_single_weapon_restriction_saves_stratagems(self, solo_state):
        player = with_stratagems(solo_state.players[0], "st_ops", "st_eat")
        context = OutcomeContext.from_state(solo_state.with_player(player))
        update = process_event(get_event("mysterious_deal"), context, choice_index=0)
        restricted = update.players[0]
        assert restricted.weapon_restricted
        assert restricted.saved_stratagems[:2] == ("st_ops", "st_eat")
        assert not any(restricted.loadout.stratagems)
        assert restricted.extra_draft_cards == 2

    def test_transformed_items_are_owned(self, solo_state):
        player = with_stratagems(solo_state.players[0], "st_ops", "st_eat")
        context = OutcomeContext.from_state(solo_state.with_player(player))
        update = process_event(get_event("armory_malfunction"), context, rng=random.Random(11))
        transformed = update.players[0]
        assert all(transformed.owns(item_id) for item_id in transformed.loadout.equipped_ids())

    def test_random_event_is_deterministic(self, two_player_state):
        context = OutcomeContext.from_state(two_player_state)
        event = get_event("supply_lottery")
        first = process_event(event, context, rng=random.Random(21))
        second = process_event(event, context, rng=random.Random(21))
        assert first.to_dict() == second.to_dict()


class TestStateUpdate:

    def test_merge(self):
        first = StateUpdate(requisition=1, notes=("a",), burned_cards=("x",))
        second = StateUpdate(requisition=2, notes=("b",), burned_cards=("x", "y"), game_over=True)
        merged = first.merge(second)
        assert merged.requisition == 2
        assert merged.notes == ("a", "b")
        assert merged.burned_cards == ("x", "y")
        assert merged.game_over

    def test_merge_keeps_unset_fields(self):
        merged = StateUpdate(current_diff=4).merge(StateUpdate(requisition=1))
        assert merged.current_diff == 4
        assert merged.requisition == 1

    def test_dict_round_trip(self, two_player_state):
        update = StateUpdate(
            players=two_player_state.players,
            requisition=2.5,
            pending_faction=Faction.AUTOMATONS,
            needs_subfaction_selection=True,
        )
        restored = StateUpdate.from_dict(update.to_dict())
        assert restored.players == two_player_state.players
        assert restored.requisition == 2.5
        assert restored.pending_faction == Faction.AUTOMATONS

    def test_empty_dict(self):
        assert StateUpdate.from_dict(None) == StateUpdate()


class TestFormatting:

    def test_format_outcome(self):
        assert format_outcome(Outcome(OutcomeType.ADD_REQUISITION, 1)) == "+1 Requisition"
        assert format_outcome(Outcome(OutcomeType.SKIP_DIFFICULTY, 2)) == "Skip 2 difficulty levels"
        assert format_outcome(Outcome(OutcomeType.TRIGGER_GAME_OVER)) == "Campaign ends immediately"

    def test_format_outcomes(self):
        assert format_outcomes(()) == "No effect"
        text = format_outcomes(get_event("promotion_offer").choices[0].outcomes)
        assert text == "Skip 1 difficulty level"


# =============================================================================
# Event phase in the reducer
# =============================================================================


class TestEventPhase:
    """Confirming events through APPLY_EVENT_UPDATES."""

    def test_trigger_enters_event_phase(self, solo_state):
        state = in_event(solo_state, "yearly_bonus")
        assert state.phase == GamePhase.EVENT
        assert "yearly_bonus" in state.seen_events

    def test_unknown_event_rejected(self, solo_state):
        assert transition(solo_state, Action.trigger_event("nope")) is solo_state

    def test_event_actions_need_event_phase(self, solo_state):
        result = apply_action(solo_state, Action.close_event())
        assert result.error_code == "INVALID_ACTION"

    def test_beneficial_event_resolves_then_closes(self, solo_state):
        state = in_event(solo_state, "yearly_bonus")
        result = confirm(state)
        assert result.success, result.error
        assert result.new_state.requisition == 1
        assert result.new_state.event.resolved
        assert result.new_state.phase == GamePhase.EVENT

        closed = apply_action(result.new_state, Action.close_event())
        assert closed.new_state.phase == GamePhase.DASHBOARD
        assert closed.new_state.event.event_id is None

    def test_resolved_event_cannot_be_applied_twice(self, solo_state):
        state = confirm(in_event(solo_state, "yearly_bonus")).new_state
        assert not confirm(state).success

    def test_choice_required(self, solo_state):
        state = in_event(solo_state, "black_market")
        result = confirm(state)
        assert not result.success
        assert "No choice" in result.error

    def test_invalid_choice_rejected(self, solo_state):
        state = in_event(solo_state, "black_market")
        assert transition(state, Action.select_event_choice(5)) is state

    def test_unaffordable_choice_rejected(self, solo_state):
        state = transition(in_event(solo_state, "black_market"), Action.select_event_choice(0))
        result = confirm(state)
        assert not result.success
        assert "afford" in result.error

    def test_player_choice_required_in_squad(self, swap_ready_state):
        state = in_event(swap_ready_state, "teamwork_training")
        state = transition(state, Action.select_event_choice(1))
        result = confirm(state)
        assert not result.success
        assert "helldiver" in result.error

    def test_incomplete_selection_rejected(self, swap_ready_state):
        state = in_event(swap_ready_state, "teamwork_training")
        state = transition(state, Action.select_event_choice(1))
        state = transition(
            state, Action.simple(ActionType.SET_EVENT_PLAYER_CHOICE, target_player_index=0)
        )
        result = confirm(state)
        assert not result.success
        assert "selection incomplete" in result.error

    def test_changing_choice_resets_selection(self, swap_ready_state):
        state = in_event(swap_ready_state, "teamwork_training")
        state = transition(state, Action.select_event_choice(1))
        state = transition(state, Action.select_source_player(0))
        assert state.event.selection.source_player == 0
        state = transition(state, Action.select_event_choice(0))
        assert state.event.selection.source_player is None

    def test_selection_needs_a_stratagem_outcome(self, solo_state):
        state = transition(in_event(solo_state, "black_market"), Action.select_event_choice(1))
        assert transition(state, Action.select_source_player(0)) is state

    def test_game_over_ends_run(self, solo_state):
        state = in_event(solo_state, "loyalty_tribunal")
        state = transition(state, Action.select_event_choice(1))
        result = confirm(state)
        assert result.new_state.phase == GamePhase.GAMEOVER

    def test_redraft_jumps_into_draft(self, solo_state):
        player = solo_state.players[0].with_items("p_liberator", "st_ops")
        player = player.with_loadout(Loadout(primary="p_liberator", stratagems=("st_ops", None, None, None)))
        state = in_event(solo_state.with_player(player)._copy_with(current_diff=3), "fiscal_year_end")
        state = transition(state, Action.select_event_choice(1))
        result = confirm(state)
        assert result.success, result.error

        new_state = result.new_state
        assert new_state.phase == GamePhase.DRAFT
        assert new_state.draft_state.is_redrafting
        assert new_state.draft_state.active_player_index == 0
        redrafted = new_state.players[0]
        assert redrafted.redraft_rounds == 2
        assert not redrafted.owns("p_liberator")
        # Five owned items at one per round
        assert new_state.requisition == 5

    def test_booster_draft_blocks_close(self, two_player_state):
        state = in_event(two_player_state, "national_holiday")
        state = transition(state, Action.select_event_choice(0))
        state = confirm(state, random.Random(5)).new_state
        assert state.event.booster_draft
        assert transition(state, Action.close_event()) is state

        booster = state.event.booster_draft[0]
        state = transition(state, Action.simple(ActionType.SELECT_EVENT_BOOSTER, item_id=booster))
        state = transition(state, Action.simple(ActionType.RESOLVE_BOOSTER_DRAFT))
        assert all(p.loadout.booster == booster for p in state.players)

        closed = transition(state, Action.close_event())
        assert closed.phase == GamePhase.DASHBOARD

    def test_faction_change(self, solo_state):
        state = in_event(solo_state, "enemy_counterattack")
        state = transition(state, Action.select_event_choice(1))
        state = confirm(state, random.Random(3)).new_state
        pending = state.event.pending_faction
        assert pending is not None
        assert transition(state, Action.close_event()) is state

        state = transition(state, Action.simple(ActionType.RESOLVE_FACTION_CHANGE))
        assert state.config.faction == pending
        assert transition(state, Action.close_event()).phase == GamePhase.DASHBOARD

    def test_update_for_wrong_squad_rejected(self, solo_state, two_player_state):
        state = in_event(solo_state, "yearly_bonus")
        bogus = StateUpdate(players=two_player_state.players)
        result = apply_action(state, Action.apply_event_updates(bogus.to_dict()))
        assert not result.success
