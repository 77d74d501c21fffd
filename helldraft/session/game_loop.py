"""
Game Loop - The long-lived owner of one run's GameState.

The loop:
1. Receives an Action (local host intent or drained from the queue)
2. Pre-rolls every random choice into the payload (hands, draft order,
   event rolls, event outcome resolution)
3. Folds it through the pure reducer
4. Runs follow-up system actions (advance the draft, deal the next hand)
5. Notifies subscribers with the new snapshot

Only the host runs a GameLoop. Everything it applies is recorded in
history with its pre-rolled payload, so replaying history from the
starting state reproduces the run exactly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable
import logging
import random
import uuid

from ..engine_core.action import Action, ActionType
from ..engine_core.balancing import event_chance
from ..engine_core.draft import generate_draft_hand, replacement_card
from ..engine_core.progression import draft_context, shuffle_draft_order
from ..engine_core.reducer import apply_action
from ..engine_core.state import GamePhase, GameState, new_game_state
from ..events.catalog import get_event, select_random_event
from ..events.processor import OutcomeContext, process_event

logger = logging.getLogger(__name__)

StateCallback = Callable[[GameState], None]

# Actions after which the active drafter is done with their pick
DRAFT_STEP_ACTIONS = frozenset({
    ActionType.DRAFT_PICK,
    ActionType.SKIP_DRAFT,
    ActionType.STRATAGEM_REPLACEMENT,
})

# Actions whose outcome may open an event
EVENT_ROLL_ACTIONS = frozenset({
    ActionType.COMPLETE_MISSION,
    ActionType.ADVANCE_DRAFT,
    ActionType.FINISH_DRAFT,
})


@dataclass
class TurnResult:
    """
    Result of handling one intent.

    applied lists the prepared actions actually folded, the intent first
    and then any follow-ups.
    """
    success: bool
    state: GameState
    error: str | None = None
    error_code: str | None = None
    changes: list[str] = field(default_factory=list)
    applied: list[Action] = field(default_factory=list)


class GameLoop:
    """
    Single state owner for a session.

    Usage:
        loop = GameLoop(seed=42)
        loop.subscribe(render)
        result = loop.handle(Action.start_run([{"id": "p1", "name": "Ada"}]))
        result = loop.handle(Action.complete_mission())
    """

    def __init__(
        self,
        state: GameState | None = None,
        rng: random.Random | None = None,
        seed: int | None = None,
        run_id: str | None = None,
    ):
        self.state = state or new_game_state(run_id or str(uuid.uuid4()))
        self.initial_state = self.state
        self.rng = rng or random.Random(seed)
        self.history: list[Action] = []
        # Slots currently connected; None means everyone
        self.connected: set[int] | None = None
        self._subscribers: list[StateCallback] = []

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self.state)
            except Exception:
                logger.exception("State subscriber failed")

    # =========================================================================
    # Handling
    # =========================================================================

    def handle(self, action: Action) -> TurnResult:
        """Apply an intent and its follow-ups, then notify subscribers."""
        prepared = self.prepare(action)
        result = apply_action(self.state, prepared)
        if not result.success:
            logger.info(
                "Rejected %s: %s (%s)",
                action.action_type.value, result.error, result.error_code,
            )
            return TurnResult(
                success=False,
                state=self.state,
                error=result.error,
                error_code=result.error_code,
            )

        self._commit(prepared, result.new_state)
        applied = [prepared]
        changes = list(result.state_changes)

        for follow_up in self._follow_ups(prepared):
            follow_result = apply_action(self.state, follow_up)
            if not follow_result.success:
                logger.warning(
                    "Follow-up %s failed: %s", follow_up.action_type.value, follow_result.error
                )
                continue
            self._commit(follow_up, follow_result.new_state)
            applied.append(follow_up)
            changes.extend(follow_result.state_changes)

        self._notify()
        return TurnResult(success=True, state=self.state, changes=changes, applied=applied)

    def _commit(self, action: Action, new_state: GameState) -> None:
        if new_state.phase != self.state.phase:
            logger.info("Phase %s -> %s", self.state.phase.value, new_state.phase.value)
        self.state = new_state
        self.history.append(action)

    def _follow_ups(self, action: Action):
        """System actions that keep the draft moving without a round trip."""
        if (
            action.action_type in DRAFT_STEP_ACTIONS
            and self.state.phase == GamePhase.DRAFT
            and not self.state.draft_state.pending_stratagem
            and not self.state.draft_state.round_cards
        ):
            yield self.prepare(Action.simple(ActionType.ADVANCE_DRAFT))

        draft = self.state.draft_state
        if (
            self.state.phase == GamePhase.DRAFT
            and not draft.round_cards
            and not draft.pending_stratagem
            and action.action_type != ActionType.DEAL_DRAFT_HAND
        ):
            yield self.prepare(Action.simple(ActionType.DEAL_DRAFT_HAND))

    # =========================================================================
    # Pre-rolling randomness
    # =========================================================================

    def prepare(self, action: Action) -> Action:
        """
        Fill in every random choice the reducer needs.

        Fields the caller already set are kept, so replaying a prepared
        action never rolls again.
        """
        action_type = action.action_type
        payload = action.payload
        state = self.state

        if action_type in (ActionType.DEAL_DRAFT_HAND, ActionType.REROLL_DRAFT) and payload.cards is None:
            action = action.with_payload(cards=self._deal())
        elif action_type == ActionType.REMOVE_CARD and payload.cards is None:
            action = action.with_payload(cards=self._replacement(payload.player_index))

        if action_type in (ActionType.START_DRAFT, ActionType.COMPLETE_MISSION) and payload.draft_order is None:
            action = action.with_payload(draft_order=self._draft_order())

        if action_type in EVENT_ROLL_ACTIONS and payload.event_id is None:
            action = action.with_payload(event_id=self._roll_event(action))
        elif action_type == ActionType.TRIGGER_EVENT and payload.event_id is None:
            event = select_random_event(
                state.current_diff, state.num_players > 1, state.seen_events, self.rng
            )
            action = action.with_payload(event_id=event.id if event else None)

        if action_type == ActionType.ADVANCE_DRAFT and "connected" not in payload.params:
            if self.connected is not None:
                params = dict(payload.params, connected=sorted(self.connected))
                action = action.with_payload(params=params)

        if action_type == ActionType.RESET_GAME and not payload.params.get("run_id"):
            action = action.with_payload(params=dict(payload.params, run_id=str(uuid.uuid4())))

        if action_type == ActionType.APPLY_EVENT_UPDATES and "update" not in payload.params:
            update = self._resolve_event()
            if update is not None:
                action = action.with_payload(params=dict(payload.params, update=update))

        return action

    def _deal(self):
        state = self.state
        ctx = draft_context(state)
        player = state.get_player(ctx.player_index)
        if player is None:
            return []
        return generate_draft_hand(
            player,
            ctx.difficulty,
            state.config,
            burned_cards=state.burned_cards,
            all_players=state.players,
            rng=self.rng,
            hand_size=ctx.hand_size,
        )

    def _replacement(self, player_index: int | None):
        state = self.state
        player = state.get_player(player_index)
        if player is None:
            return []
        ctx = draft_context(state)
        card = replacement_card(
            player,
            ctx.difficulty,
            state.config,
            state.draft_state.round_cards,
            burned_cards=state.burned_cards,
            all_players=state.players,
            rng=self.rng,
        )
        return [card] if card else []

    def _draft_order(self) -> list[int]:
        slots = [p.slot for p in self.state.players]
        if self.connected is not None:
            slots = [slot for slot in slots if slot in self.connected]
        return shuffle_draft_order(self.rng, slots)

    def _roll_event(self, action: Action) -> str | None:
        """Roll for an event using the samples gathered so far."""
        state = self.state
        if not state.events_enabled:
            return None
        samples = state.samples
        if action.action_type == ActionType.COMPLETE_MISSION:
            reported = action.payload.params.get("samples") or {}
            samples = samples.add(
                int(reported.get("common", 0)),
                int(reported.get("rare", 0)),
                int(reported.get("super_rare", 0)),
            )
        chance = event_chance(samples.common, samples.rare, samples.super_rare)
        if self.rng.random() >= chance:
            return None
        event = select_random_event(
            state.current_diff, state.num_players > 1, state.seen_events, self.rng
        )
        return event.id if event else None

    def _resolve_event(self) -> dict | None:
        state = self.state
        event = get_event(state.event.event_id)
        if event is None or state.phase != GamePhase.EVENT or state.event.resolved:
            return None
        update = process_event(
            event,
            OutcomeContext.from_state(state),
            state.event.selected_choice,
            state.event.selection,
            self.rng,
        )
        return update.to_dict()

    # =========================================================================
    # Replay
    # =========================================================================

    @staticmethod
    def replay(state: GameState, actions) -> GameState:
        """Fold prepared actions without rolling anything."""
        for action in actions:
            result = apply_action(state, action)
            if result.success:
                state = result.new_state
        return state
