"""
Action System - Actions, payloads, and results.

Actions represent:
1. Player intents (draft pick, sacrifice, event selections, equip)
2. Host/system transitions (start run, mission results, deal hands)
3. Persistence operations (load a save, reset)

All state changes flow through actions. Every random choice (draft
order, dealt cards, rolled events) is made before an action is built and
travels in its payload, so folding an action is replay-safe.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .state import DraftCard


class ActionType(Enum):
    """Closed catalog of actions understood by the reducer."""
    # Run lifecycle
    START_RUN = "start_run"
    ADD_LATE_PLAYER = "add_late_player"
    SET_PHASE = "set_phase"
    RESET_GAME = "reset_game"
    LOAD_GAME_STATE = "load_game_state"

    # Configuration
    UPDATE_GAME_CONFIG = "update_game_config"
    SET_DIFFICULTY = "set_difficulty"
    SET_SUBFACTION = "set_subfaction"
    SET_EVENTS_ENABLED = "set_events_enabled"

    # Economy
    SET_REQUISITION = "set_requisition"
    ADD_REQUISITION = "add_requisition"
    SPEND_REQUISITION = "spend_requisition"
    ADD_SAMPLES = "add_samples"
    RESET_SAMPLES = "reset_samples"

    # Player
    SET_PLAYER_EXTRACTED = "set_player_extracted"
    UPDATE_PLAYER_CONFIG = "update_player_config"
    LOCK_SLOT = "lock_slot"
    UNLOCK_SLOT = "unlock_slot"
    ADD_ITEM_TO_PLAYER = "add_item_to_player"
    EQUIP_ITEM = "equip_item"

    # Draft
    START_DRAFT = "start_draft"
    DEAL_DRAFT_HAND = "deal_draft_hand"
    REROLL_DRAFT = "reroll_draft"
    DRAFT_PICK = "draft_pick"
    STRATAGEM_REPLACEMENT = "stratagem_replacement"
    SKIP_DRAFT = "skip_draft"
    REMOVE_CARD = "remove_card"
    ADVANCE_DRAFT = "advance_draft"
    FINISH_DRAFT = "finish_draft"
    ADD_BURNED_CARDS = "add_burned_cards"

    # Missions
    COMPLETE_MISSION = "complete_mission"
    FAIL_MISSION = "fail_mission"
    SACRIFICE_ITEM = "sacrifice_item"

    # Events
    TRIGGER_EVENT = "trigger_event"
    SET_EVENT_PLAYER_CHOICE = "set_event_player_choice"
    SELECT_EVENT_CHOICE = "select_event_choice"
    SELECT_EVENT_SOURCE_PLAYER = "select_event_source_player"
    SELECT_EVENT_STRATAGEM = "select_event_stratagem"
    SELECT_EVENT_TARGET_PLAYER = "select_event_target_player"
    SELECT_EVENT_TARGET_STRATAGEM = "select_event_target_stratagem"
    SELECT_EVENT_BOOSTER = "select_event_booster"
    SELECT_SPECIAL_DRAFT_ITEM = "select_special_draft_item"
    SELECT_SUBFACTION = "select_subfaction"
    RESET_EVENT_SELECTIONS = "reset_event_selections"
    APPLY_EVENT_UPDATES = "apply_event_updates"
    RESOLVE_BOOSTER_DRAFT = "resolve_booster_draft"
    RESOLVE_SPECIAL_DRAFT = "resolve_special_draft"
    RESOLVE_FACTION_CHANGE = "resolve_faction_change"
    CLOSE_EVENT = "close_event"


# Actions a non-host participant may submit through the action queue
CLIENT_ALLOWED_ACTIONS = frozenset({
    ActionType.DRAFT_PICK,
    ActionType.REROLL_DRAFT,
    ActionType.SKIP_DRAFT,
    ActionType.REMOVE_CARD,
    ActionType.STRATAGEM_REPLACEMENT,
    ActionType.SACRIFICE_ITEM,
    ActionType.EQUIP_ITEM,
    ActionType.SET_PLAYER_EXTRACTED,
    ActionType.UPDATE_PLAYER_CONFIG,
    ActionType.LOCK_SLOT,
    ActionType.UNLOCK_SLOT,
    ActionType.SET_EVENT_PLAYER_CHOICE,
    ActionType.SELECT_EVENT_CHOICE,
    ActionType.SELECT_EVENT_SOURCE_PLAYER,
    ActionType.SELECT_EVENT_STRATAGEM,
    ActionType.SELECT_EVENT_TARGET_PLAYER,
    ActionType.SELECT_EVENT_TARGET_STRATAGEM,
    ActionType.SELECT_EVENT_BOOSTER,
    ActionType.SELECT_SPECIAL_DRAFT_ITEM,
    ActionType.SELECT_SUBFACTION,
    ActionType.RESET_EVENT_SELECTIONS,
})

# Actions whose player_index must be the submitter's own slot
PLAYER_SCOPED_ACTIONS = frozenset({
    ActionType.DRAFT_PICK,
    ActionType.REROLL_DRAFT,
    ActionType.SKIP_DRAFT,
    ActionType.REMOVE_CARD,
    ActionType.STRATAGEM_REPLACEMENT,
    ActionType.SACRIFICE_ITEM,
    ActionType.EQUIP_ITEM,
    ActionType.SET_PLAYER_EXTRACTED,
    ActionType.UPDATE_PLAYER_CONFIG,
    ActionType.LOCK_SLOT,
    ActionType.UNLOCK_SLOT,
    ActionType.SELECT_SPECIAL_DRAFT_ITEM,
})


@dataclass
class ActionPayload:
    """
    Payload for an action - contains the action parameters.

    Different action types use different fields.
    This is a generic container; validation happens in the reducer.
    """
    # Who and what
    player_index: int | None = None
    target_player_index: int | None = None
    item_id: str | None = None
    item_ids: list[str] | None = None
    card_id: str | None = None
    item_type: str | None = None
    slot_index: int | None = None

    # Numbers and toggles
    amount: float | None = None
    difficulty: int | None = None
    enabled: bool | None = None
    choice_index: int | None = None
    subfaction: str | None = None
    phase: str | None = None

    # Pre-rolled randomness
    cards: list[DraftCard] | None = None
    draft_order: list[int] | None = None
    event_id: str | None = None

    # Generic params
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for name in _SIMPLE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                data[name] = list(value) if isinstance(value, (list, tuple)) else value
        if self.cards is not None:
            data["cards"] = [card.to_dict() for card in self.cards]
        if self.params:
            data["params"] = self.params
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ActionPayload:
        data = data or {}
        kwargs = {name: data.get(name) for name in _SIMPLE_FIELDS}
        cards = data.get("cards")
        return cls(
            cards=[DraftCard.from_dict(c) for c in cards] if cards is not None else None,
            params=dict(data.get("params") or {}),
            **kwargs,
        )


_SIMPLE_FIELDS = (
    "player_index",
    "target_player_index",
    "item_id",
    "item_ids",
    "card_id",
    "item_type",
    "slot_index",
    "amount",
    "difficulty",
    "enabled",
    "choice_index",
    "subfaction",
    "phase",
    "draft_order",
    "event_id",
)


@dataclass
class Action:
    """
    A complete action to be applied to the game state.

    Actions are:
    - Serializable as {type, payload}
    - Validated before application
    - Applied atomically by the reducer
    """
    action_type: ActionType
    payload: ActionPayload = field(default_factory=ActionPayload)
    timestamp: float | None = None
    action_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Wire format."""
        return {"type": self.action_type.value, "payload": self.payload.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Action:
        return cls(
            action_type=ActionType(data["type"]),
            payload=ActionPayload.from_dict(data.get("payload")),
        )

    def with_payload(self, **kwargs) -> Action:
        """Return a copy with payload fields filled in."""
        fields = {name: getattr(self.payload, name) for name in _SIMPLE_FIELDS}
        fields["cards"] = self.payload.cards
        fields["params"] = dict(self.payload.params)
        fields.update(kwargs)
        return Action(
            action_type=self.action_type,
            payload=ActionPayload(**fields),
            timestamp=self.timestamp,
            action_id=self.action_id,
        )

    @classmethod
    def simple(cls, action_type: ActionType, **kwargs) -> Action:
        """Build an action from payload keyword arguments."""
        return cls(action_type=action_type, payload=ActionPayload(**kwargs))

    @classmethod
    def start_run(
        cls,
        players: list[dict[str, Any]],
        config: dict[str, Any] | None = None,
        difficulty: int | None = None,
    ) -> Action:
        """Factory for starting a run from lobby seats."""
        return cls(
            action_type=ActionType.START_RUN,
            payload=ActionPayload(
                difficulty=difficulty,
                params={"players": players, "config": config or {}},
            ),
        )

    @classmethod
    def add_late_player(cls, player: dict[str, Any]) -> Action:
        return cls(
            action_type=ActionType.ADD_LATE_PLAYER,
            payload=ActionPayload(params={"player": player}),
        )

    @classmethod
    def update_game_config(cls, **changes) -> Action:
        return cls(
            action_type=ActionType.UPDATE_GAME_CONFIG,
            payload=ActionPayload(params=changes),
        )

    @classmethod
    def spend_requisition(cls, amount: float) -> Action:
        return cls.simple(ActionType.SPEND_REQUISITION, amount=amount)

    @classmethod
    def add_requisition(cls, amount: float) -> Action:
        return cls.simple(ActionType.ADD_REQUISITION, amount=amount)

    @classmethod
    def set_player_extracted(cls, player_index: int, extracted: bool) -> Action:
        return cls.simple(
            ActionType.SET_PLAYER_EXTRACTED, player_index=player_index, enabled=extracted
        )

    @classmethod
    def lock_slot(cls, player_index: int, item_type: str) -> Action:
        return cls.simple(ActionType.LOCK_SLOT, player_index=player_index, item_type=item_type)

    @classmethod
    def unlock_slot(cls, player_index: int, item_type: str) -> Action:
        return cls.simple(ActionType.UNLOCK_SLOT, player_index=player_index, item_type=item_type)

    @classmethod
    def equip_item(cls, player_index: int, item_id: str, slot_index: int | None = None) -> Action:
        return cls.simple(
            ActionType.EQUIP_ITEM, player_index=player_index, item_id=item_id, slot_index=slot_index
        )

    @classmethod
    def start_draft(cls, draft_order: list[int]) -> Action:
        return cls.simple(ActionType.START_DRAFT, draft_order=list(draft_order))

    @classmethod
    def deal_draft_hand(cls, cards: list[DraftCard]) -> Action:
        return cls.simple(ActionType.DEAL_DRAFT_HAND, cards=list(cards))

    @classmethod
    def draft_pick(cls, player_index: int, card_id: str) -> Action:
        """Factory for a draft pick by the active drafter."""
        return cls.simple(ActionType.DRAFT_PICK, player_index=player_index, card_id=card_id)

    @classmethod
    def stratagem_replacement(cls, player_index: int, slot_index: int) -> Action:
        return cls.simple(
            ActionType.STRATAGEM_REPLACEMENT, player_index=player_index, slot_index=slot_index
        )

    @classmethod
    def reroll_draft(cls, player_index: int, cards: list[DraftCard] | None = None) -> Action:
        return cls.simple(ActionType.REROLL_DRAFT, player_index=player_index, cards=cards)

    @classmethod
    def skip_draft(cls, player_index: int) -> Action:
        return cls.simple(ActionType.SKIP_DRAFT, player_index=player_index)

    @classmethod
    def remove_card(cls, player_index: int, card_id: str) -> Action:
        return cls.simple(ActionType.REMOVE_CARD, player_index=player_index, card_id=card_id)

    @classmethod
    def complete_mission(
        cls,
        common: int = 0,
        rare: int = 0,
        super_rare: int = 0,
        draft_order: list[int] | None = None,
        event_id: str | None = None,
    ) -> Action:
        """Factory for a successful mission report."""
        return cls(
            action_type=ActionType.COMPLETE_MISSION,
            payload=ActionPayload(
                draft_order=draft_order,
                event_id=event_id,
                params={"samples": {"common": common, "rare": rare, "super_rare": super_rare}},
            ),
        )

    @classmethod
    def fail_mission(cls) -> Action:
        return cls.simple(ActionType.FAIL_MISSION)

    @classmethod
    def sacrifice_item(cls, player_index: int, item_id: str) -> Action:
        return cls.simple(ActionType.SACRIFICE_ITEM, player_index=player_index, item_id=item_id)

    @classmethod
    def trigger_event(cls, event_id: str) -> Action:
        return cls.simple(ActionType.TRIGGER_EVENT, event_id=event_id)

    @classmethod
    def select_event_choice(cls, choice_index: int) -> Action:
        return cls.simple(ActionType.SELECT_EVENT_CHOICE, choice_index=choice_index)

    @classmethod
    def select_source_player(cls, player_index: int) -> Action:
        return cls.simple(ActionType.SELECT_EVENT_SOURCE_PLAYER, target_player_index=player_index)

    @classmethod
    def select_stratagem(cls, player_index: int, slot_index: int) -> Action:
        return cls.simple(
            ActionType.SELECT_EVENT_STRATAGEM, target_player_index=player_index, slot_index=slot_index
        )

    @classmethod
    def select_target_player(cls, player_index: int) -> Action:
        return cls.simple(ActionType.SELECT_EVENT_TARGET_PLAYER, target_player_index=player_index)

    @classmethod
    def select_target_stratagem(cls, player_index: int, slot_index: int) -> Action:
        return cls.simple(
            ActionType.SELECT_EVENT_TARGET_STRATAGEM,
            target_player_index=player_index,
            slot_index=slot_index,
        )

    @classmethod
    def reset_event_selections(cls) -> Action:
        return cls.simple(ActionType.RESET_EVENT_SELECTIONS)

    @classmethod
    def apply_event_updates(cls, update: dict[str, Any]) -> Action:
        return cls(
            action_type=ActionType.APPLY_EVENT_UPDATES,
            payload=ActionPayload(params={"update": update}),
        )

    @classmethod
    def close_event(cls) -> Action:
        return cls.simple(ActionType.CLOSE_EVENT)

    @classmethod
    def load_game_state(cls, state: dict[str, Any]) -> Action:
        return cls(
            action_type=ActionType.LOAD_GAME_STATE,
            payload=ActionPayload(params={"state": state}),
        )

    @classmethod
    def reset_game(cls, run_id: str | None = None) -> Action:
        return cls(
            action_type=ActionType.RESET_GAME,
            payload=ActionPayload(params={"run_id": run_id} if run_id else {}),
        )


@dataclass
class ActionResult:
    """
    Result of applying an action.

    Contains:
    - Whether action succeeded
    - New state (if succeeded)
    - Errors (if failed)
    - Human-readable changes (for logs and UI notes)
    """
    success: bool
    new_state: Any | None = None  # GameState
    error: str | None = None
    error_code: str | None = None

    state_changes: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, error: str, error_code: str | None = "PRECONDITION_FAILED") -> ActionResult:
        """Create a failure result."""
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def success_with_state(
        cls,
        state: Any,
        changes: list[str] | None = None,
    ) -> ActionResult:
        """Create a success result with new state."""
        return cls(success=True, new_state=state, state_changes=changes or [])
