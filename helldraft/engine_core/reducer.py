"""
Reducer - Applies actions to game state.

The reducer is the single point of state mutation.
All state changes must go through apply_action() or transition().

Design principles:
- Pure function: (state, action) -> new_state
- Validates before applying
- Returns ActionResult with success/failure
- Total: an invalid action leaves the state untouched, it never raises
- No randomness: dealt hands, draft orders and rolled events arrive in
  the payload
"""

from __future__ import annotations
from dataclasses import dataclass

from ..catalog.items import ItemType, get_item, player_can_access
from ..events import processor as event_processor
from ..events import selection as event_selection
from ..events.catalog import (
    EventType,
    get_event,
    needs_player_choice,
    stratagem_selection_mode,
)
from .action import Action, ActionResult, ActionType, PLAYER_SCOPED_ACTIONS
from .balancing import (
    BASE_REQUISITION_REWARD,
    MAX_LOCKED_SLOTS,
    MAX_PLAYERS,
    REROLL_COST,
    clamp_difficulty,
    clamp_star_rating,
    default_subfaction,
    missions_for_difficulty,
    requisition_multiplier,
    slot_lock_cost,
    subfaction_belongs_to,
)
from .loadout import (
    equip,
    grant_and_equip,
    is_protected,
    remove_item,
    restore_saved_stratagems,
    sacrificable_items,
    starting_inventory,
)
from .progression import (
    advance_draft,
    begin_draft,
    begin_event,
    begin_sacrifice,
    complete_draft_round,
    event_or_dashboard,
    finish_sacrifices,
    reset_extraction,
    sacrifice_queue,
    to_dashboard,
)
from .state import (
    DraftState,
    EventState,
    GameConfig,
    GamePhase,
    GameState,
    Loadout,
    Player,
    SacrificeState,
    Samples,
    STRATAGEM_SLOTS,
    new_game_state,
)

# Actions still accepted once a run has ended
TERMINAL_ACTIONS = frozenset({ActionType.RESET_GAME, ActionType.LOAD_GAME_STATE})

# Actions accepted before a run starts
LOBBY_ACTIONS = frozenset({
    ActionType.START_RUN,
    ActionType.UPDATE_GAME_CONFIG,
    ActionType.SET_EVENTS_ENABLED,
    ActionType.RESET_GAME,
    ActionType.LOAD_GAME_STATE,
    ActionType.FAIL_MISSION,
})

DRAFT_ACTIONS = frozenset({
    ActionType.DEAL_DRAFT_HAND,
    ActionType.REROLL_DRAFT,
    ActionType.DRAFT_PICK,
    ActionType.STRATAGEM_REPLACEMENT,
    ActionType.SKIP_DRAFT,
    ActionType.REMOVE_CARD,
    ActionType.ADVANCE_DRAFT,
    ActionType.FINISH_DRAFT,
})

EVENT_ACTIONS = frozenset({
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
    ActionType.APPLY_EVENT_UPDATES,
    ActionType.RESOLVE_BOOSTER_DRAFT,
    ActionType.RESOLVE_SPECIAL_DRAFT,
    ActionType.RESOLVE_FACTION_CHANGE,
    ActionType.CLOSE_EVENT,
})


def _player_from_seed(seed: dict, slot: int, custom_start: bool) -> Player:
    loadout = Loadout.starting()
    inventory = starting_inventory(loadout)
    if custom_start and seed.get("loadout"):
        loadout = Loadout.from_dict(seed["loadout"])
        inventory = tuple(dict.fromkeys(
            (*inventory, *loadout.equipped_ids(), *(seed.get("inventory") or ()))
        ))
    return Player(
        id=str(seed.get("id") or f"player-{slot + 1}"),
        name=seed.get("name") or f"Helldiver {slot + 1}",
        slot=slot,
        loadout=loadout,
        inventory=inventory,
        warbonds=tuple(seed.get("warbonds") or ()),
        include_superstore=bool(seed.get("include_superstore", False)),
        excluded_items=tuple(seed.get("excluded_items") or ()),
    )


@dataclass
class Reducer:
    """
    Reducer applies actions to game state.

    Stateless - all state is in GameState.
    """
    max_players: int = MAX_PLAYERS

    def apply(self, state: GameState, action: Action) -> ActionResult:
        """
        Apply an action to the game state.

        Returns ActionResult with new state or error.
        """
        if state.phase.is_terminal and action.action_type not in TERMINAL_ACTIONS:
            return ActionResult.failure(
                f"Run is over ({state.phase.value}) - only reset or load allowed",
                error_code="TERMINAL_PHASE",
            )

        validation_error = self._validate_action(state, action)
        if validation_error:
            return ActionResult.failure(validation_error, error_code="INVALID_ACTION")

        handler = self._get_handler(action.action_type)
        if not handler:
            return ActionResult.failure(
                f"No handler for action type: {action.action_type}",
                error_code="NO_HANDLER",
            )

        try:
            return handler(state, action)
        except Exception as e:
            return ActionResult.failure(str(e), error_code="HANDLER_ERROR")

    def _validate_action(self, state: GameState, action: Action) -> str | None:
        """
        Validate that an action is legal in the current phase.

        Returns error message if invalid, None if valid.
        """
        action_type = action.action_type

        if state.phase == GamePhase.LOBBY and action_type not in LOBBY_ACTIONS:
            return "Run not started - only setup actions allowed"
        if action_type == ActionType.START_RUN and state.phase != GamePhase.LOBBY:
            return "Run already started"

        if action_type in DRAFT_ACTIONS and state.phase != GamePhase.DRAFT:
            return f"{action_type.value} is only valid during the draft"
        if action_type in EVENT_ACTIONS and state.phase != GamePhase.EVENT:
            return f"{action_type.value} is only valid during an event"
        if action_type == ActionType.SACRIFICE_ITEM and state.phase != GamePhase.SACRIFICE:
            return "No sacrifice is pending"

        if action_type in PLAYER_SCOPED_ACTIONS:
            if state.get_player(action.payload.player_index) is None:
                return f"Unknown player index {action.payload.player_index}"

        return None

    def _get_handler(self, action_type: ActionType):
        """Get the handler function for an action type."""
        handlers = {
            ActionType.START_RUN: self._handle_start_run,
            ActionType.ADD_LATE_PLAYER: self._handle_add_late_player,
            ActionType.SET_PHASE: self._handle_set_phase,
            ActionType.RESET_GAME: self._handle_reset_game,
            ActionType.LOAD_GAME_STATE: self._handle_load_game_state,
            ActionType.UPDATE_GAME_CONFIG: self._handle_update_game_config,
            ActionType.SET_DIFFICULTY: self._handle_set_difficulty,
            ActionType.SET_SUBFACTION: self._handle_set_subfaction,
            ActionType.SET_EVENTS_ENABLED: self._handle_set_events_enabled,
            ActionType.SET_REQUISITION: self._handle_set_requisition,
            ActionType.ADD_REQUISITION: self._handle_add_requisition,
            ActionType.SPEND_REQUISITION: self._handle_spend_requisition,
            ActionType.ADD_SAMPLES: self._handle_add_samples,
            ActionType.RESET_SAMPLES: self._handle_reset_samples,
            ActionType.SET_PLAYER_EXTRACTED: self._handle_set_player_extracted,
            ActionType.UPDATE_PLAYER_CONFIG: self._handle_update_player_config,
            ActionType.LOCK_SLOT: self._handle_lock_slot,
            ActionType.UNLOCK_SLOT: self._handle_unlock_slot,
            ActionType.ADD_ITEM_TO_PLAYER: self._handle_add_item_to_player,
            ActionType.EQUIP_ITEM: self._handle_equip_item,
            ActionType.START_DRAFT: self._handle_start_draft,
            ActionType.DEAL_DRAFT_HAND: self._handle_deal_draft_hand,
            ActionType.REROLL_DRAFT: self._handle_reroll_draft,
            ActionType.DRAFT_PICK: self._handle_draft_pick,
            ActionType.STRATAGEM_REPLACEMENT: self._handle_stratagem_replacement,
            ActionType.SKIP_DRAFT: self._handle_skip_draft,
            ActionType.REMOVE_CARD: self._handle_remove_card,
            ActionType.ADVANCE_DRAFT: self._handle_advance_draft,
            ActionType.FINISH_DRAFT: self._handle_finish_draft,
            ActionType.ADD_BURNED_CARDS: self._handle_add_burned_cards,
            ActionType.COMPLETE_MISSION: self._handle_complete_mission,
            ActionType.FAIL_MISSION: self._handle_fail_mission,
            ActionType.SACRIFICE_ITEM: self._handle_sacrifice_item,
            ActionType.TRIGGER_EVENT: self._handle_trigger_event,
            ActionType.SET_EVENT_PLAYER_CHOICE: self._handle_set_event_player_choice,
            ActionType.SELECT_EVENT_CHOICE: self._handle_select_event_choice,
            ActionType.SELECT_EVENT_SOURCE_PLAYER: self._handle_select_event_selection,
            ActionType.SELECT_EVENT_STRATAGEM: self._handle_select_event_selection,
            ActionType.SELECT_EVENT_TARGET_PLAYER: self._handle_select_event_selection,
            ActionType.SELECT_EVENT_TARGET_STRATAGEM: self._handle_select_event_selection,
            ActionType.SELECT_EVENT_BOOSTER: self._handle_select_event_booster,
            ActionType.SELECT_SPECIAL_DRAFT_ITEM: self._handle_select_special_draft_item,
            ActionType.SELECT_SUBFACTION: self._handle_select_subfaction,
            ActionType.RESET_EVENT_SELECTIONS: self._handle_reset_event_selections,
            ActionType.APPLY_EVENT_UPDATES: self._handle_apply_event_updates,
            ActionType.RESOLVE_BOOSTER_DRAFT: self._handle_resolve_booster_draft,
            ActionType.RESOLVE_SPECIAL_DRAFT: self._handle_resolve_special_draft,
            ActionType.RESOLVE_FACTION_CHANGE: self._handle_resolve_faction_change,
            ActionType.CLOSE_EVENT: self._handle_close_event,
        }
        return handlers.get(action_type)

    # =========================================================================
    # Run lifecycle
    # =========================================================================

    def _handle_start_run(self, state: GameState, action: Action) -> ActionResult:
        """Seat the lobby's players and open the dashboard."""
        seeds = action.payload.params.get("players") or []
        if not 1 <= len(seeds) <= self.max_players:
            return ActionResult.failure(f"A run needs 1 to {self.max_players} players")

        merged = state.config.to_dict()
        merged.update(action.payload.params.get("config") or {})
        config = GameConfig.from_dict(merged)
        if not subfaction_belongs_to(config.subfaction, config.faction):
            config = config._copy_with(subfaction=default_subfaction(config.faction))
        config = config._copy_with(
            player_count=len(seeds),
            star_rating=clamp_star_rating(config.star_rating),
            max_difficulty=clamp_difficulty(config.max_difficulty),
        )

        players = tuple(
            _player_from_seed(seed, slot, config.custom_start)
            for slot, seed in enumerate(seeds)
        )
        difficulty = 1
        if config.custom_start and action.payload.difficulty is not None:
            difficulty = clamp_difficulty(action.payload.difficulty, config.max_difficulty)

        new_state = state._copy_with(
            phase=GamePhase.DASHBOARD,
            config=config,
            players=players,
            current_diff=difficulty,
            current_mission=1,
            requisition=0.0,
            samples=Samples(),
            draft_state=DraftState(),
            event=EventState(),
            burned_cards=(),
            seen_events=(),
            draft_history=(),
        )
        return ActionResult.success_with_state(
            new_state, changes=[f"Run started with {len(players)} helldiver(s)"]
        )

    def _handle_add_late_player(self, state: GameState, action: Action) -> ActionResult:
        """Seat a player mid-run; they catch up on the difficulties they missed."""
        if state.num_players >= self.max_players:
            return ActionResult.failure("Squad is full", error_code="LOBBY_FULL")
        seed = action.payload.params.get("player") or {}
        if seed.get("id") and state.find_player(str(seed["id"])):
            return ActionResult.failure(f"Player {seed['id']} is already in the run")

        slot = state.num_players
        player = _player_from_seed(seed, slot, False)._copy_with(
            catch_up_drafts_remaining=max(0, state.current_diff - 1),
        )
        config = state.config._copy_with(player_count=state.num_players + 1)
        new_state = state._copy_with(players=state.players + (player,), config=config)
        return ActionResult.success_with_state(
            new_state, changes=[f"{player.name} joined in slot {slot}"]
        )

    def _handle_set_phase(self, state: GameState, action: Action) -> ActionResult:
        try:
            phase = GamePhase(action.payload.phase)
        except ValueError:
            return ActionResult.failure(f"Unknown phase {action.payload.phase}")
        if phase.is_terminal or phase == GamePhase.LOBBY:
            return ActionResult.failure(f"Cannot jump to {phase.value}")
        return ActionResult.success_with_state(state._copy_with(phase=phase))

    def _handle_reset_game(self, state: GameState, action: Action) -> ActionResult:
        run_id = action.payload.params.get("run_id") or state.run_id
        return ActionResult.success_with_state(new_game_state(run_id), changes=["Game reset"])

    def _handle_load_game_state(self, state: GameState, action: Action) -> ActionResult:
        data = action.payload.params.get("state")
        if not isinstance(data, dict):
            return ActionResult.failure("No saved state in payload")
        try:
            loaded = GameState.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            return ActionResult.failure(f"Invalid saved state: {e}")
        if any(p.slot != i for i, p in enumerate(loaded.players)):
            return ActionResult.failure("Saved players are not in slot order")
        active = {
            GamePhase.DRAFT: loaded.draft_state.active_player_index,
            GamePhase.SACRIFICE: loaded.sacrifice_state.active_player_index,
        }.get(loaded.phase)
        if active is not None and loaded.get_player(active) is None:
            return ActionResult.failure(
                f"Saved active player {active} is not in the run", error_code="INVALID_ACTION"
            )
        return ActionResult.success_with_state(loaded, changes=["Saved game loaded"])

    # =========================================================================
    # Configuration and economy
    # =========================================================================

    def _handle_update_game_config(self, state: GameState, action: Action) -> ActionResult:
        changes = dict(action.payload.params)
        if state.players:
            changes.pop("player_count", None)
        merged = state.config.to_dict()
        if "faction" in changes and "subfaction" not in changes:
            changes["subfaction"] = None
        merged.update(changes)
        try:
            config = GameConfig.from_dict(merged)
        except (TypeError, ValueError) as e:
            return ActionResult.failure(f"Invalid config: {e}")

        if config.subfaction is None:
            config = config._copy_with(subfaction=default_subfaction(config.faction))
        elif not subfaction_belongs_to(config.subfaction, config.faction):
            return ActionResult.failure(
                f"Subfaction {config.subfaction} does not belong to {config.faction.value}"
            )

        config = config._copy_with(
            star_rating=clamp_star_rating(config.star_rating),
            max_difficulty=clamp_difficulty(config.max_difficulty),
        )
        return ActionResult.success_with_state(
            state._copy_with(config=config), changes=["Game config updated"]
        )

    def _handle_set_difficulty(self, state: GameState, action: Action) -> ActionResult:
        if action.payload.difficulty is None:
            return ActionResult.failure("Difficulty required")
        difficulty = clamp_difficulty(action.payload.difficulty, state.config.max_difficulty)
        return ActionResult.success_with_state(state._copy_with(current_diff=difficulty))

    def _handle_set_subfaction(self, state: GameState, action: Action) -> ActionResult:
        subfaction = action.payload.subfaction
        if not subfaction or not subfaction_belongs_to(subfaction, state.config.faction):
            return ActionResult.failure(f"Unknown subfaction {subfaction}")
        config = state.config._copy_with(subfaction=subfaction)
        return ActionResult.success_with_state(state._copy_with(config=config))

    def _handle_set_events_enabled(self, state: GameState, action: Action) -> ActionResult:
        enabled = bool(action.payload.enabled)
        return ActionResult.success_with_state(state._copy_with(events_enabled=enabled))

    def _handle_set_requisition(self, state: GameState, action: Action) -> ActionResult:
        amount = action.payload.amount
        if amount is None or amount < 0:
            return ActionResult.failure("Requisition cannot be negative")
        return ActionResult.success_with_state(state._copy_with(requisition=float(amount)))

    def _handle_add_requisition(self, state: GameState, action: Action) -> ActionResult:
        amount = action.payload.amount
        if amount is None or amount < 0:
            return ActionResult.failure("Amount must be non-negative")
        return ActionResult.success_with_state(
            state._copy_with(requisition=state.requisition + amount),
            changes=[f"+{amount:g} Requisition"],
        )

    def _handle_spend_requisition(self, state: GameState, action: Action) -> ActionResult:
        amount = action.payload.amount
        if amount is None or amount < 0:
            return ActionResult.failure("Amount must be non-negative")
        if amount > state.requisition:
            return ActionResult.failure(
                f"Not enough requisition ({state.requisition:g} < {amount:g})"
            )
        return ActionResult.success_with_state(
            state._copy_with(requisition=state.requisition - amount),
            changes=[f"-{amount:g} Requisition"],
        )

    def _handle_add_samples(self, state: GameState, action: Action) -> ActionResult:
        params = action.payload.params
        counts = [int(params.get(k, 0)) for k in ("common", "rare", "super_rare")]
        if any(c < 0 for c in counts):
            return ActionResult.failure("Sample counts must be non-negative")
        return ActionResult.success_with_state(
            state._copy_with(samples=state.samples.add(*counts))
        )

    def _handle_reset_samples(self, state: GameState, action: Action) -> ActionResult:
        return ActionResult.success_with_state(state._copy_with(samples=Samples()))

    # =========================================================================
    # Players
    # =========================================================================

    def _handle_set_player_extracted(self, state: GameState, action: Action) -> ActionResult:
        player = state.get_player(action.payload.player_index)
        player = player._copy_with(extracted=bool(action.payload.enabled))
        return ActionResult.success_with_state(state.with_player(player))

    def _handle_update_player_config(self, state: GameState, action: Action) -> ActionResult:
        player = state.get_player(action.payload.player_index)
        params = action.payload.params
        changes = {}
        if "name" in params:
            changes["name"] = str(params["name"])
        if "warbonds" in params:
            changes["warbonds"] = tuple(params["warbonds"] or ())
        if "include_superstore" in params:
            changes["include_superstore"] = bool(params["include_superstore"])
        if "excluded_items" in params:
            changes["excluded_items"] = tuple(params["excluded_items"] or ())
        if not changes:
            return ActionResult.failure("Nothing to update")
        return ActionResult.success_with_state(state.with_player(player._copy_with(**changes)))

    def _parse_item_type(self, value: str | None) -> ItemType | None:
        try:
            return ItemType(value)
        except ValueError:
            return None

    def _handle_lock_slot(self, state: GameState, action: Action) -> ActionResult:
        """Keep an item type out of this player's future drafts, for a price."""
        player = state.get_player(action.payload.player_index)
        item_type = self._parse_item_type(action.payload.item_type)
        if item_type is None:
            return ActionResult.failure(f"Unknown slot type {action.payload.item_type}")
        if item_type in player.locked_slots:
            return ActionResult.failure(f"{item_type.value} is already locked")
        if len(player.locked_slots) >= MAX_LOCKED_SLOTS:
            return ActionResult.failure(f"At most {MAX_LOCKED_SLOTS} slots can be locked")
        cost = slot_lock_cost(state.config.player_count)
        if state.requisition < cost:
            return ActionResult.failure(f"Locking a slot costs {cost} requisition")

        player = player._copy_with(locked_slots=player.locked_slots + (item_type,))
        new_state = state.with_player(player)._copy_with(requisition=state.requisition - cost)
        return ActionResult.success_with_state(
            new_state, changes=[f"{player.name} locked {item_type.value}"]
        )

    def _handle_unlock_slot(self, state: GameState, action: Action) -> ActionResult:
        player = state.get_player(action.payload.player_index)
        item_type = self._parse_item_type(action.payload.item_type)
        if item_type is None or item_type not in player.locked_slots:
            return ActionResult.failure(f"{action.payload.item_type} is not locked")
        player = player._copy_with(
            locked_slots=tuple(t for t in player.locked_slots if t != item_type)
        )
        return ActionResult.success_with_state(state.with_player(player))

    def _handle_add_item_to_player(self, state: GameState, action: Action) -> ActionResult:
        player = state.get_player(action.payload.player_index)
        if player is None:
            return ActionResult.failure(f"Unknown player index {action.payload.player_index}")
        if get_item(action.payload.item_id) is None:
            return ActionResult.failure(f"Unknown item {action.payload.item_id}")
        return ActionResult.success_with_state(
            state.with_player(player.with_items(action.payload.item_id))
        )

    def _handle_equip_item(self, state: GameState, action: Action) -> ActionResult:
        player = state.get_player(action.payload.player_index)
        item = get_item(action.payload.item_id)
        if item is None or not player.owns(item.id):
            return ActionResult.failure(f"{action.payload.item_id} is not owned")
        if item.item_type == ItemType.STRATAGEM:
            if player.weapon_restricted:
                return ActionResult.failure(f"{player.name} is restricted to a single weapon")
            if action.payload.slot_index is None:
                return ActionResult.failure("Equipping a stratagem needs a slot index")
        equipped = equip(player, item.id, action.payload.slot_index)
        if equipped is None:
            return ActionResult.failure(f"Cannot equip {item.name}")
        return ActionResult.success_with_state(state.with_player(equipped))

    # =========================================================================
    # Draft
    # =========================================================================

    def _active_drafter(self, state: GameState, action: Action) -> tuple[Player | None, str | None]:
        draft = state.draft_state
        if action.payload.player_index != draft.active_player_index:
            return None, f"It is not player {action.payload.player_index}'s draft"
        return state.get_player(draft.active_player_index), None

    def _burn(self, state: GameState, item_ids) -> GameState:
        if not state.config.burn_cards:
            return state
        burned = tuple(dict.fromkeys((*state.burned_cards, *item_ids)))
        return state._copy_with(burned_cards=burned)

    def _hand_ids(self, cards) -> list[str]:
        return [item_id for card in cards for item_id in card.item_ids]

    def _validate_hand(self, cards) -> str | None:
        ids = [card.id for card in cards]
        if len(ids) != len(set(ids)):
            return "Hand contains duplicate cards"
        for item_id in self._hand_ids(cards):
            if get_item(item_id) is None:
                return f"Unknown item {item_id} in hand"
        return None

    def _handle_start_draft(self, state: GameState, action: Action) -> ActionResult:
        if state.phase != GamePhase.DASHBOARD:
            return ActionResult.failure("A draft can only start from the dashboard")
        order = action.payload.draft_order or []
        new_state = begin_draft(state, order)
        return ActionResult.success_with_state(new_state, changes=["Draft started"])

    def _handle_deal_draft_hand(self, state: GameState, action: Action) -> ActionResult:
        cards = action.payload.cards
        if cards is None:
            return ActionResult.failure("No cards to deal")
        if state.draft_state.pending_stratagem:
            return ActionResult.failure("A stratagem replacement is pending")
        error = self._validate_hand(cards)
        if error:
            return ActionResult.failure(error)

        new_state = state._copy_with(
            draft_state=state.draft_state._copy_with(round_cards=tuple(cards))
        )
        new_state = self._burn(new_state, self._hand_ids(cards))
        return ActionResult.success_with_state(new_state)

    def _handle_reroll_draft(self, state: GameState, action: Action) -> ActionResult:
        player, error = self._active_drafter(state, action)
        if error:
            return ActionResult.failure(error)
        if state.draft_state.is_retrospective:
            return ActionResult.failure("Catch-up drafts cannot be rerolled")
        if state.requisition < REROLL_COST:
            return ActionResult.failure(f"Rerolling costs {REROLL_COST} requisition")
        cards = action.payload.cards
        if cards is None:
            return ActionResult.failure("No replacement hand")
        error = self._validate_hand(cards)
        if error:
            return ActionResult.failure(error)

        new_state = state._copy_with(
            requisition=state.requisition - REROLL_COST,
            draft_state=state.draft_state._copy_with(round_cards=tuple(cards)),
        )
        new_state = self._burn(new_state, self._hand_ids(cards))
        return ActionResult.success_with_state(
            new_state, changes=[f"{player.name} rerolled their hand"]
        )

    def _handle_draft_pick(self, state: GameState, action: Action) -> ActionResult:
        """
        Take a card from the hand.

        Armor combos grant every piece and equip the first. A stratagem
        picked with all four slots full waits in pending_stratagem until
        STRATAGEM_REPLACEMENT names the slot it replaces.
        """
        player, error = self._active_drafter(state, action)
        if error:
            return ActionResult.failure(error)
        draft = state.draft_state
        if draft.pending_stratagem:
            return ActionResult.failure("A stratagem replacement is pending")
        card = draft.find_card(action.payload.card_id or "")
        if card is None:
            return ActionResult.failure(f"Card {action.payload.card_id} is not in the hand")

        pending = None
        if card.is_armor_combo:
            player = player.with_items(*card.item_ids)
            player = equip(player, card.item_ids[0]) or player
        elif card.item_type == ItemType.STRATAGEM and player.loadout.stratagems_full:
            pending = card.item_ids[0]
        else:
            player = grant_and_equip(player, card.item_ids[0])

        new_state = state.with_player(player)._copy_with(
            draft_state=draft._copy_with(round_cards=(), pending_stratagem=pending)
        )
        new_state = self._burn(new_state, self._hand_ids(draft.round_cards))
        return ActionResult.success_with_state(
            new_state, changes=[f"{player.name} drafted {card.name}"]
        )

    def _handle_stratagem_replacement(self, state: GameState, action: Action) -> ActionResult:
        player, error = self._active_drafter(state, action)
        if error:
            return ActionResult.failure(error)
        pending = state.draft_state.pending_stratagem
        if not pending:
            return ActionResult.failure("No stratagem is waiting for a slot")
        slot = action.payload.slot_index
        if slot is None or not 0 <= slot < STRATAGEM_SLOTS:
            return ActionResult.failure(f"Invalid stratagem slot {slot}")

        replaced = player.loadout.stratagems[slot]
        player = player.with_items(pending)
        player = player.with_loadout(player.loadout.with_stratagem(slot, pending))
        new_state = state.with_player(player)._copy_with(
            draft_state=state.draft_state._copy_with(pending_stratagem=None)
        )
        return ActionResult.success_with_state(
            new_state, changes=[f"{player.name} replaced {replaced} with {pending}"]
        )

    def _handle_skip_draft(self, state: GameState, action: Action) -> ActionResult:
        player, error = self._active_drafter(state, action)
        if error:
            return ActionResult.failure(error)
        if state.draft_state.pending_stratagem:
            return ActionResult.failure("A stratagem replacement is pending")
        draft = state.draft_state
        new_state = state._copy_with(draft_state=draft._copy_with(round_cards=()))
        new_state = self._burn(new_state, self._hand_ids(draft.round_cards))
        return ActionResult.success_with_state(
            new_state, changes=[f"{player.name} skipped their draft"]
        )

    def _handle_remove_card(self, state: GameState, action: Action) -> ActionResult:
        """
        Drop a card the player doesn't own in the real game.

        Its items join the player's excluded items so they are never
        offered again; the pre-rolled replacement takes its place.
        """
        player, error = self._active_drafter(state, action)
        if error:
            return ActionResult.failure(error)
        draft = state.draft_state
        card = draft.find_card(action.payload.card_id or "")
        if card is None:
            return ActionResult.failure(f"Card {action.payload.card_id} is not in the hand")

        replacements = [c for c in (action.payload.cards or []) if draft.find_card(c.id) is None]
        hand = []
        for existing in draft.round_cards:
            if existing.id == card.id:
                hand.extend(replacements[:1])
            else:
                hand.append(existing)

        excluded = tuple(dict.fromkeys((*player.excluded_items, *card.item_ids)))
        player = player._copy_with(excluded_items=excluded)
        new_state = state.with_player(player)._copy_with(
            draft_state=draft._copy_with(round_cards=tuple(hand))
        )
        new_state = self._burn(new_state, self._hand_ids(replacements[:1]))
        return ActionResult.success_with_state(
            new_state, changes=[f"{player.name} removed {card.name} from their pool"]
        )

    def _handle_advance_draft(self, state: GameState, action: Action) -> ActionResult:
        if state.draft_state.pending_stratagem:
            return ActionResult.failure("A stratagem replacement is pending")
        connected = action.payload.params.get("connected")
        new_state = advance_draft(
            state,
            event_id=action.payload.event_id,
            connected=set(connected) if connected is not None else None,
        )
        return ActionResult.success_with_state(new_state)

    def _handle_finish_draft(self, state: GameState, action: Action) -> ActionResult:
        if state.draft_state.is_retrospective:
            players = tuple(
                p._copy_with(catch_up_drafts_remaining=0, retrospective_drafts_completed=0)
                if p.slot == state.draft_state.retrospective_player_index else p
                for p in state.players
            )
            return ActionResult.success_with_state(to_dashboard(state.with_players(players)))
        new_state = complete_draft_round(state, action.payload.event_id)
        return ActionResult.success_with_state(new_state, changes=["Draft finished"])

    def _handle_add_burned_cards(self, state: GameState, action: Action) -> ActionResult:
        item_ids = action.payload.item_ids or []
        burned = tuple(dict.fromkeys((*state.burned_cards, *item_ids)))
        return ActionResult.success_with_state(state._copy_with(burned_cards=burned))

    # =========================================================================
    # Missions
    # =========================================================================

    def _handle_complete_mission(self, state: GameState, action: Action) -> ActionResult:
        """
        Report a successful mission.

        Endurance operations need several missions per difficulty; only
        the last one pays out and advances. Helldivers who failed to
        extract then owe sacrifices before the next draft.
        """
        if state.phase != GamePhase.DASHBOARD:
            return ActionResult.failure("Missions are reported from the dashboard")
        samples = action.payload.params.get("samples") or {}
        counts = [int(samples.get(k, 0)) for k in ("common", "rare", "super_rare")]
        if any(c < 0 for c in counts):
            return ActionResult.failure("Sample counts must be non-negative")

        new_state = state._copy_with(
            samples=state.samples.add(*counts),
            players=tuple(restore_saved_stratagems(p) for p in state.players),
        )
        queue = sacrifice_queue(new_state)
        config = state.config

        if config.endurance_mode and state.current_mission < missions_for_difficulty(state.current_diff):
            new_state = new_state._copy_with(current_mission=state.current_mission + 1)
            if queue:
                new_state = begin_sacrifice(new_state, queue, return_to_draft=False)
            else:
                new_state = event_or_dashboard(reset_extraction(new_state), action.payload.event_id)
            return ActionResult.success_with_state(
                new_state, changes=[f"Mission {state.current_mission} of the operation complete"]
            )

        reward = BASE_REQUISITION_REWARD * requisition_multiplier(config.player_count, config.subfaction)
        new_state = new_state._copy_with(
            requisition=new_state.requisition + reward,
            current_mission=1,
        )
        ceiling = config.max_difficulty
        if state.current_diff >= ceiling and not config.endless_mode:
            return ActionResult.success_with_state(
                new_state._copy_with(phase=GamePhase.VICTORY), changes=["Victory"]
            )

        new_state = new_state._copy_with(current_diff=min(ceiling, state.current_diff + 1))
        order = action.payload.draft_order or []
        if queue:
            new_state = begin_sacrifice(new_state, queue, return_to_draft=True, draft_order=order)
        else:
            new_state = begin_draft(reset_extraction(new_state), order)
        return ActionResult.success_with_state(
            new_state, changes=[f"Mission complete, +{reward:g} Requisition"]
        )

    def _handle_fail_mission(self, state: GameState, action: Action) -> ActionResult:
        return ActionResult.success_with_state(
            state._copy_with(phase=GamePhase.GAMEOVER), changes=["Mission failed"]
        )

    def _handle_sacrifice_item(self, state: GameState, action: Action) -> ActionResult:
        """
        Give up one item after a failed extraction.

        The baseline secondary and armor can never be sacrificed. A
        helldiver with nothing else to lose passes with item_id None.
        """
        sacrifice = state.sacrifice_state
        if action.payload.player_index != sacrifice.active_player_index:
            return ActionResult.failure(f"It is not player {action.payload.player_index}'s sacrifice")
        player = state.get_player(sacrifice.active_player_index)
        item_id = action.payload.item_id

        if item_id is None:
            if sacrificable_items(player):
                return ActionResult.failure("An item must be sacrificed")
        elif is_protected(item_id):
            return ActionResult.failure(f"{item_id} cannot be sacrificed")
        elif not player.owns(item_id):
            return ActionResult.failure(f"{item_id} is not owned")
        else:
            player = remove_item(player, item_id)

        new_state = state.with_player(player)
        remaining = tuple(i for i in sacrifice.sacrifices_required if i != player.slot)
        if remaining:
            new_state = new_state._copy_with(
                sacrifice_state=SacrificeState(
                    active_player_index=remaining[0],
                    sacrifices_required=remaining,
                    return_to_draft=sacrifice.return_to_draft,
                    draft_order=sacrifice.draft_order,
                )
            )
        else:
            new_state = finish_sacrifices(new_state)
        return ActionResult.success_with_state(
            new_state, changes=[f"{player.name} sacrificed {item_id or 'nothing'}"]
        )

    # =========================================================================
    # Events
    # =========================================================================

    def _handle_trigger_event(self, state: GameState, action: Action) -> ActionResult:
        event = get_event(action.payload.event_id)
        if event is None:
            return ActionResult.failure(f"Unknown event {action.payload.event_id}")
        return ActionResult.success_with_state(
            begin_event(state, event.id), changes=[f"Event: {event.name}"]
        )

    def _open_event(self, state: GameState):
        if state.event.resolved:
            return None, "Event already resolved"
        event = get_event(state.event.event_id)
        if event is None:
            return None, "No active event"
        return event, None

    def _handle_set_event_player_choice(self, state: GameState, action: Action) -> ActionResult:
        event, error = self._open_event(state)
        if error:
            return ActionResult.failure(error)
        index = action.payload.target_player_index
        if state.get_player(index) is None:
            return ActionResult.failure(f"Unknown player index {index}")
        new_event = state.event._copy_with(player_choice=index, selection=event_selection.reset())
        return ActionResult.success_with_state(state._copy_with(event=new_event))

    def _handle_select_event_choice(self, state: GameState, action: Action) -> ActionResult:
        event, error = self._open_event(state)
        if error:
            return ActionResult.failure(error)
        if event.type != EventType.CHOICE or event.get_choice(action.payload.choice_index) is None:
            return ActionResult.failure(f"Invalid choice {action.payload.choice_index}")
        new_event = state.event._copy_with(
            selected_choice=action.payload.choice_index,
            selection=event_selection.reset(),
        )
        return ActionResult.success_with_state(state._copy_with(event=new_event))

    def _handle_select_event_selection(self, state: GameState, action: Action) -> ActionResult:
        """Advance the stratagem swap/duplicate selection by one step."""
        event, error = self._open_event(state)
        if error:
            return ActionResult.failure(error)
        mode = stratagem_selection_mode(event, state.event.selected_choice)
        if mode is None:
            return ActionResult.failure("This outcome needs no stratagem selection")

        current = state.event.selection
        players = state.players
        index = action.payload.target_player_index
        slot = action.payload.slot_index
        action_type = action.action_type
        if action_type == ActionType.SELECT_EVENT_SOURCE_PLAYER:
            selection = event_selection.select_source(current, players, index)
        elif action_type == ActionType.SELECT_EVENT_STRATAGEM:
            selection = event_selection.select_stratagem(current, players, index, slot)
        elif action_type == ActionType.SELECT_EVENT_TARGET_PLAYER:
            selection = event_selection.select_target(current, players, index, mode)
        else:
            selection = event_selection.select_target_stratagem(current, players, index, slot, mode)

        if selection is None:
            return ActionResult.failure(
                f"{action_type.value} is not valid at stage {current.stage.value}"
            )
        new_event = state.event._copy_with(selection=selection)
        return ActionResult.success_with_state(state._copy_with(event=new_event))

    def _handle_reset_event_selections(self, state: GameState, action: Action) -> ActionResult:
        new_event = state.event._copy_with(selection=event_selection.reset())
        return ActionResult.success_with_state(state._copy_with(event=new_event))

    def _handle_select_event_booster(self, state: GameState, action: Action) -> ActionResult:
        if action.payload.item_id not in state.event.booster_draft:
            return ActionResult.failure(f"{action.payload.item_id} is not on offer")
        new_event = state.event._copy_with(booster_selection=action.payload.item_id)
        return ActionResult.success_with_state(state._copy_with(event=new_event))

    def _handle_select_special_draft_item(self, state: GameState, action: Action) -> ActionResult:
        player = state.get_player(action.payload.player_index)
        item = get_item(action.payload.item_id)
        if item is None or item.id not in state.event.special_draft:
            return ActionResult.failure(f"{action.payload.item_id} is not on offer")
        if not player_can_access(item, player.warbonds, player.include_superstore):
            return ActionResult.failure(f"{player.name} has no access to {item.name}")
        selections = list(state.event.special_draft_selections)
        selections += [None] * (state.num_players - len(selections))
        selections[player.slot] = item.id
        new_event = state.event._copy_with(special_draft_selections=tuple(selections))
        return ActionResult.success_with_state(state._copy_with(event=new_event))

    def _handle_select_subfaction(self, state: GameState, action: Action) -> ActionResult:
        pending = state.event.pending_faction
        if not state.event.pending_subfaction_selection or pending is None:
            return ActionResult.failure("No faction change is pending")
        if not subfaction_belongs_to(action.payload.subfaction or "", pending):
            return ActionResult.failure(f"Unknown subfaction {action.payload.subfaction}")
        new_event = state.event._copy_with(selected_subfaction=action.payload.subfaction)
        return ActionResult.success_with_state(state._copy_with(event=new_event))

    def _confirm_error(self, state: GameState, event) -> str | None:
        """Why the current event can't be confirmed yet, if anything."""
        if event.type == EventType.CHOICE:
            choice = event.get_choice(state.event.selected_choice)
            if choice is None:
                return "No choice selected"
            if not event_processor.can_afford_choice(
                choice, state.requisition, state.players, state.event.player_choice
            ):
                return "Cannot afford this choice"
        if needs_player_choice(event) and state.event.player_choice is None and state.num_players > 1:
            return "Choose a helldiver first"
        mode = stratagem_selection_mode(event, state.event.selected_choice)
        if mode is not None and not event_selection.is_ready(state.event.selection):
            return "Stratagem selection incomplete"
        return None

    def _handle_apply_event_updates(self, state: GameState, action: Action) -> ActionResult:
        """
        Fold a processed StateUpdate into the run.

        A redraft jumps straight into that helldiver's draft; a game over
        ends the run. Everything else leaves the resolved event on screen
        until its sub-drafts are done and it is closed.
        """
        event, error = self._open_event(state)
        if error:
            return ActionResult.failure(error)
        error = self._confirm_error(state, event)
        if error:
            return ActionResult.failure(error)

        update = event_processor.StateUpdate.from_dict(action.payload.params.get("update"))
        new_state = state
        if update.players is not None:
            if len(update.players) != state.num_players or any(
                p.slot != i for i, p in enumerate(update.players)
            ):
                return ActionResult.failure("Update does not match the squad")
            new_state = new_state.with_players(update.players)
        requisition = new_state.requisition if update.requisition is None else update.requisition
        new_state = new_state._copy_with(
            requisition=max(0.0, requisition + update.bonus_requisition)
        )
        if update.current_diff is not None:
            new_state = new_state._copy_with(
                current_diff=clamp_difficulty(update.current_diff, state.config.max_difficulty)
            )
        if update.burned_cards:
            new_state = new_state._copy_with(
                burned_cards=tuple(dict.fromkeys((*new_state.burned_cards, *update.burned_cards)))
            )

        if update.game_over:
            return ActionResult.success_with_state(
                new_state._copy_with(phase=GamePhase.GAMEOVER), changes=list(update.notes)
            )

        if update.redraft_player is not None and new_state.get_player(update.redraft_player):
            index = update.redraft_player
            new_state = new_state._copy_with(
                phase=GamePhase.DRAFT,
                event=EventState(),
                draft_state=DraftState(
                    active_player_index=index,
                    is_redrafting=True,
                    draft_order=(index,),
                ),
            )
            return ActionResult.success_with_state(new_state, changes=list(update.notes))

        new_event = state.event._copy_with(
            resolved=True,
            notes=update.notes,
            booster_draft=update.booster_draft,
            booster_targets=update.booster_targets,
            special_draft=update.special_draft,
            special_draft_type=update.special_draft_type if update.special_draft else None,
            special_draft_selections=(None,) * state.num_players if update.special_draft else (),
            pending_faction=update.pending_faction,
            pending_subfaction_selection=update.needs_subfaction_selection,
        )
        return ActionResult.success_with_state(
            new_state._copy_with(event=new_event), changes=list(update.notes)
        )

    def _handle_resolve_booster_draft(self, state: GameState, action: Action) -> ActionResult:
        booster = state.event.booster_selection
        if not state.event.booster_draft:
            return ActionResult.failure("No booster draft in progress")
        if booster is None:
            return ActionResult.failure("No booster selected")

        new_state = state
        for index in state.event.booster_targets:
            player = new_state.get_player(index)
            if player is None:
                continue
            player = player.with_items(booster)
            new_state = new_state.with_player(equip(player, booster) or player)
        new_event = state.event._copy_with(
            booster_draft=(), booster_targets=(), booster_selection=None
        )
        return ActionResult.success_with_state(
            new_state._copy_with(event=new_event), changes=[f"Booster {booster} issued"]
        )

    def _handle_resolve_special_draft(self, state: GameState, action: Action) -> ActionResult:
        if not state.event.special_draft:
            return ActionResult.failure("No special draft in progress")
        selections = state.event.special_draft_selections
        if len(selections) < state.num_players or any(s is None for s in selections):
            return ActionResult.failure("Every helldiver must pick an item")

        new_state = state
        for player, item_id in zip(state.players, selections):
            new_state = new_state.with_player(grant_and_equip(player, item_id))
        new_state = self._burn(new_state, selections)
        new_event = state.event._copy_with(
            special_draft=(), special_draft_type=None, special_draft_selections=()
        )
        return ActionResult.success_with_state(new_state._copy_with(event=new_event))

    def _handle_resolve_faction_change(self, state: GameState, action: Action) -> ActionResult:
        faction = state.event.pending_faction
        if faction is None:
            return ActionResult.failure("No faction change is pending")
        subfaction = state.event.selected_subfaction or default_subfaction(faction)
        config = state.config._copy_with(faction=faction, subfaction=subfaction)
        new_event = state.event._copy_with(
            pending_faction=None,
            pending_subfaction_selection=False,
            selected_subfaction=None,
        )
        return ActionResult.success_with_state(
            state._copy_with(config=config, event=new_event),
            changes=[f"Redeployed against {faction.value} ({subfaction})"],
        )

    def _handle_close_event(self, state: GameState, action: Action) -> ActionResult:
        if state.event.awaiting_sub_draft:
            return ActionResult.failure("Finish the event's pending draft first")
        return ActionResult.success_with_state(
            state._copy_with(phase=GamePhase.DASHBOARD, event=EventState())
        )


_DEFAULT_REDUCER = Reducer()


def apply_action(state: GameState, action: Action) -> ActionResult:
    """
    Convenience function to apply an action.

    Uses a shared stateless Reducer.
    """
    return _DEFAULT_REDUCER.apply(state, action)


def transition(state: GameState, action: Action) -> GameState:
    """New state on success, the very same state object otherwise."""
    result = apply_action(state, action)
    if result.success and result.new_state is not None:
        return result.new_state
    return state
