"""
Tests for draft progression: who drafts next, and when the round ends.
"""

import pytest

from ..engine_core.progression import advance_draft, complete_draft_round
from ..engine_core.state import DraftState, GamePhase, GameState


def drafting(state: GameState, active=0, order=(0, 1), **draft) -> GameState:
    return state._copy_with(
        phase=GamePhase.DRAFT,
        draft_state=DraftState(active_player_index=active, draft_order=order, **draft),
    )


def with_player(state: GameState, index: int, **changes) -> GameState:
    return state.with_player(state.players[index]._copy_with(**changes))


class TestRegularRounds:

    def test_passes_to_next_drafter(self, two_player_state):
        state = advance_draft(drafting(two_player_state))
        assert state.phase == GamePhase.DRAFT
        assert state.draft_state.active_player_index == 1
        assert state.draft_state.round_cards == ()

    def test_last_drafter_closes_round(self, two_player_state):
        state = advance_draft(drafting(two_player_state, active=1))
        assert state.phase == GamePhase.DASHBOARD
        assert len(state.draft_history) == 1

    def test_disconnected_drafter_skipped(self, two_player_state):
        state = advance_draft(drafting(two_player_state), connected={0})
        assert state.phase == GamePhase.DASHBOARD

    def test_round_closes_into_event(self, two_player_state):
        state = advance_draft(drafting(two_player_state, active=1), event_id="yearly_bonus")
        assert state.phase == GamePhase.EVENT
        assert state.event.event_id == "yearly_bonus"


class TestRedraft:
    """A redraft keeps the same helldiver drafting for several rounds."""

    def test_multi_round_redraft(self, two_player_state):
        state = with_player(drafting(two_player_state, is_redrafting=True), 0, redraft_rounds=2)

        state = advance_draft(state)
        assert state.phase == GamePhase.DRAFT
        assert state.draft_state.active_player_index == 0
        assert state.draft_state.is_redrafting
        assert state.players[0].redraft_rounds == 1

        state = advance_draft(state)
        assert state.phase == GamePhase.DASHBOARD
        assert state.players[0].redraft_rounds == 0
        assert state.draft_history == ()

    def test_redraft_takes_precedence_over_next_drafter(self, two_player_state):
        state = with_player(drafting(two_player_state), 0, redraft_rounds=1)
        assert advance_draft(state).phase == GamePhase.DASHBOARD


class TestExtraDraftRounds:

    def test_extra_rounds_before_passing_on(self, two_player_state):
        state = with_player(drafting(two_player_state), 0, extra_draft_cards=2)

        for expected_round in (1, 2):
            state = advance_draft(state)
            assert state.draft_state.active_player_index == 0
            assert state.draft_state.extra_draft_round == expected_round

        state = advance_draft(state)
        assert state.draft_state.active_player_index == 1
        assert state.players[0].extra_draft_cards == 0


class TestCatchUpDrafts:
    """Late joiners draft once per difficulty they missed."""

    @pytest.fixture
    def owing(self, two_player_state):
        return with_player(two_player_state._copy_with(current_diff=3), 1, catch_up_drafts_remaining=2)

    def test_round_hands_over_to_catch_up(self, owing):
        state = complete_draft_round(drafting(owing, active=1))
        assert state.phase == GamePhase.DRAFT
        assert state.draft_state.is_retrospective
        assert state.draft_state.active_player_index == 1
        assert len(state.draft_history) == 1

    def test_catch_up_runs_its_count_then_ends(self, owing):
        state = complete_draft_round(drafting(owing, active=1))

        state = advance_draft(state)
        assert state.draft_state.is_retrospective
        assert state.players[1].retrospective_drafts_completed == 1

        state = advance_draft(state)
        assert state.phase == GamePhase.DASHBOARD
        assert state.players[1].catch_up_drafts_remaining == 0
        assert len(state.draft_history) == 1

    def test_next_late_joiner_follows(self, owing):
        state = with_player(owing, 0, catch_up_drafts_remaining=1)
        state = complete_draft_round(drafting(state, active=1))
        assert state.draft_state.active_player_index == 0

        state = advance_draft(state)
        assert state.draft_state.is_retrospective
        assert state.draft_state.active_player_index == 1
