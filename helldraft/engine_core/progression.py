"""
Run progression - Pure helpers that move a run between phases.

Shared by several reducer handlers:
- starting a draft round and stepping through drafters
- retrospective catch-up drafts, redraft rounds and extra draft rounds
- the sacrifice queue after a failed extraction
- entering an event
"""

from __future__ import annotations
from dataclasses import dataclass
import random

from ..events.catalog import get_event
from .balancing import draft_hand_size, retrospective_star_rating
from .loadout import restore_saved_stratagems
from .state import (
    DraftRecord,
    DraftState,
    EventState,
    GamePhase,
    GameState,
    SacrificeState,
    Samples,
)


@dataclass(frozen=True)
class DraftContext:
    """Who is drafting right now and at what difficulty."""
    player_index: int
    difficulty: int
    star_rating: int

    @property
    def hand_size(self) -> int:
        return draft_hand_size(self.star_rating)


def draft_context(state: GameState) -> DraftContext:
    """
    Parameters for the next hand.

    Retrospective drafts replay past difficulties one by one, so the
    difficulty is the number of catch-up drafts done so far plus one.
    """
    draft = state.draft_state
    if draft.is_retrospective and draft.retrospective_player_index is not None:
        player = state.get_player(draft.retrospective_player_index)
        difficulty = (player.retrospective_drafts_completed if player else 0) + 1
        return DraftContext(
            draft.retrospective_player_index,
            difficulty,
            retrospective_star_rating(difficulty),
        )
    return DraftContext(draft.active_player_index, state.current_diff, state.config.star_rating)


def shuffle_draft_order(rng: random.Random, slots) -> list[int]:
    """Random drafting order over the given slots."""
    order = list(slots)
    rng.shuffle(order)
    return order


def begin_draft(state: GameState, draft_order) -> GameState:
    """
    Open a draft round.

    Single-weapon restrictions end here: saved stratagems come back
    before anyone drafts. An empty order skips straight to the dashboard.
    """
    players = tuple(restore_saved_stratagems(p) for p in state.players)
    order = tuple(i for i in draft_order if 0 <= i < len(players))
    if not order:
        return state._copy_with(
            players=players,
            phase=GamePhase.DASHBOARD,
            draft_state=DraftState(),
        )
    return state._copy_with(
        players=players,
        phase=GamePhase.DRAFT,
        draft_state=DraftState(active_player_index=order[0], draft_order=order),
    )


def begin_event(state: GameState, event_id: str) -> GameState:
    """Enter the event phase: samples reset, event marked as seen."""
    seen = state.seen_events
    if event_id not in seen:
        seen = seen + (event_id,)
    return state._copy_with(
        phase=GamePhase.EVENT,
        samples=Samples(),
        seen_events=seen,
        event=EventState(event_id=event_id),
    )


def event_or_dashboard(state: GameState, event_id: str | None) -> GameState:
    if state.events_enabled and get_event(event_id) is not None:
        return begin_event(state, event_id)
    return to_dashboard(state)


def to_dashboard(state: GameState) -> GameState:
    return state._copy_with(phase=GamePhase.DASHBOARD, draft_state=DraftState())


def next_catch_up_player(state: GameState) -> int | None:
    for player in state.players:
        if player.catch_up_drafts_remaining > 0:
            return player.slot
    return None


def begin_retrospective(state: GameState, player_index: int) -> GameState:
    """Start catch-up drafts for a player who joined after difficulty 1."""
    player = state.players[player_index]._copy_with(retrospective_drafts_completed=0)
    return state.with_player(player)._copy_with(
        phase=GamePhase.DRAFT,
        draft_state=DraftState(
            active_player_index=player_index,
            is_retrospective=True,
            retrospective_player_index=player_index,
            draft_order=(player_index,),
        ),
    )


def complete_draft_round(state: GameState, event_id: str | None = None) -> GameState:
    """
    Close a regular draft round.

    Records the round, then hands over to a pending catch-up draft, the
    pre-rolled event, or the dashboard.
    """
    record = DraftRecord(state.current_diff, state.config.star_rating)
    state = state._copy_with(draft_history=state.draft_history + (record,))
    catch_up = next_catch_up_player(state)
    if catch_up is not None:
        return begin_retrospective(state, catch_up)
    return event_or_dashboard(state, event_id)


def advance_draft(state: GameState, event_id: str | None = None, connected=None) -> GameState:
    """
    Move the draft on after the active drafter finished a pick.

    In order of precedence: continue a retrospective catch-up, continue a
    redraft, grant extra draft rounds, pass to the next connected drafter,
    and finally close the round.
    """
    draft = state.draft_state
    player = state.get_player(draft.active_player_index)
    if player is None:
        return to_dashboard(state)

    if draft.is_retrospective:
        completed = player.retrospective_drafts_completed + 1
        if completed < player.catch_up_drafts_remaining:
            state = state.with_player(player._copy_with(retrospective_drafts_completed=completed))
            return state._copy_with(draft_state=draft._copy_with(round_cards=(), pending_stratagem=None))
        state = state.with_player(
            player._copy_with(catch_up_drafts_remaining=0, retrospective_drafts_completed=0)
        )
        catch_up = next_catch_up_player(state)
        if catch_up is not None:
            return begin_retrospective(state, catch_up)
        return to_dashboard(state)

    if player.redraft_rounds > 1:
        state = state.with_player(player._copy_with(redraft_rounds=player.redraft_rounds - 1))
        return state._copy_with(
            draft_state=draft._copy_with(round_cards=(), pending_stratagem=None, is_redrafting=True)
        )
    if player.redraft_rounds:
        state = state.with_player(player._copy_with(redraft_rounds=0))
        return to_dashboard(state)

    if player.extra_draft_cards > draft.extra_draft_round:
        return state._copy_with(
            draft_state=draft._copy_with(
                round_cards=(),
                pending_stratagem=None,
                extra_draft_round=draft.extra_draft_round + 1,
            )
        )
    if player.extra_draft_cards:
        state = state.with_player(player._copy_with(extra_draft_cards=0))

    next_index = _next_drafter(draft, connected, len(state.players))
    if next_index is not None:
        return state._copy_with(
            draft_state=DraftState(active_player_index=next_index, draft_order=draft.draft_order)
        )
    return complete_draft_round(state, event_id)


def _next_drafter(draft: DraftState, connected, num_players: int) -> int | None:
    order = list(draft.draft_order)
    if draft.active_player_index in order:
        remaining = order[order.index(draft.active_player_index) + 1:]
    else:
        remaining = []
    for index in remaining:
        if not 0 <= index < num_players:
            continue
        if connected is not None and index not in connected:
            continue
        return index
    return None


def sacrifice_queue(state: GameState) -> tuple[int, ...]:
    """
    Players who owe a sacrifice after a mission.

    Brutality mode punishes every helldiver left behind; otherwise the
    squad only pays when nobody extracted, and then everyone pays.
    """
    if state.config.brutality_mode:
        return tuple(p.slot for p in state.players if not p.extracted)
    if state.players and not any(p.extracted for p in state.players):
        return tuple(p.slot for p in state.players)
    return ()


def begin_sacrifice(state: GameState, queue, return_to_draft: bool, draft_order=()) -> GameState:
    queue = tuple(queue)
    return state._copy_with(
        phase=GamePhase.SACRIFICE,
        sacrifice_state=SacrificeState(
            active_player_index=queue[0],
            sacrifices_required=queue,
            return_to_draft=return_to_draft,
            draft_order=tuple(draft_order or ()),
        ),
    )


def finish_sacrifices(state: GameState) -> GameState:
    """Everyone is marked extracted again; the run resumes."""
    sacrifice = state.sacrifice_state
    players = tuple(p._copy_with(extracted=True) for p in state.players)
    state = state._copy_with(players=players, sacrifice_state=SacrificeState())
    if sacrifice.return_to_draft:
        return begin_draft(state, sacrifice.draft_order)
    return to_dashboard(state)


def reset_extraction(state: GameState) -> GameState:
    return state.with_players(p._copy_with(extracted=True) for p in state.players)
