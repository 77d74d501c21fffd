"""
Event Outcome Processor - Turns event outcomes into explicit state updates.

The processor:
- Reads an OutcomeContext (players, economy, difficulty, config)
- Applies outcomes one at a time against that context
- Returns a StateUpdate describing replacement values and follow-ups

Design principles:
- Never mutates: players are rebuilt through copy helpers
- All randomness comes from the injected random.Random
- Every follow-up (booster draft, special draft, subfaction pick, redraft)
  is an explicit StateUpdate field, folded in by APPLY_EVENT_UPDATES
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any
import math
import random

from ..catalog.items import (
    ArmorClass,
    CATALOG,
    Faction,
    ItemType,
    STARTER_ARMOR,
    STARTER_GRENADE,
    STARTER_SECONDARY,
    get_item,
    item_name,
    player_can_access,
)
from ..engine_core.balancing import MAX_DIFFICULTY, MIN_DIFFICULTY, requisition_multiplier
from ..engine_core.draft import available_boosters, generate_booster_draft
from ..engine_core.loadout import (
    ensure_valid_loadout,
    equip,
    grant_and_equip,
    is_protected,
    liquidatable_items,
)
from ..engine_core.state import (
    EventSelection,
    GameConfig,
    GameState,
    Loadout,
    Player,
    SelectionStage,
    STRATAGEM_SLOTS,
    StratagemSelection,
)
from .catalog import (
    EventChoice,
    EventType,
    GameEvent,
    Outcome,
    OutcomeTarget,
    OutcomeType,
)

SPECIAL_DRAFT_TYPES = {"throwable": ItemType.GRENADE, "secondary": ItemType.SECONDARY}

CEREMONIAL_PRIMARY = "p_constitution"
CEREMONIAL_LEAD = ("s_senator", "a_re1861")
CEREMONIAL_GUARD = ("s_saber", "a_re2310")
CEREMONIAL_STRATAGEM = "st_flag"


@dataclass(frozen=True)
class OutcomeContext:
    """Everything an outcome may read."""
    players: tuple[Player, ...]
    requisition: float
    current_diff: int
    config: GameConfig
    burned_cards: tuple[str, ...] = ()
    player_choice: int | None = None

    @classmethod
    def from_state(cls, state: GameState) -> OutcomeContext:
        player_choice = state.event.player_choice
        if player_choice is None and state.num_players == 1:
            player_choice = 0
        return cls(
            players=state.players,
            requisition=state.requisition,
            current_diff=state.current_diff,
            config=state.config,
            burned_cards=state.burned_cards,
            player_choice=player_choice,
        )

    def _copy_with(self, **kwargs) -> OutcomeContext:
        return replace(self, **kwargs)

    @property
    def burn_mode(self) -> bool:
        return self.config.burn_cards


@dataclass
class StateUpdate:
    """
    Explicit result of processing outcomes.

    None means "unchanged" for the replacement fields. Tuple fields
    accumulate across outcomes.
    """
    players: tuple[Player, ...] | None = None
    requisition: float | None = None
    current_diff: int | None = None
    burned_cards: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()

    booster_draft: tuple[str, ...] = ()
    booster_targets: tuple[int, ...] = ()
    special_draft: tuple[str, ...] = ()
    special_draft_type: str | None = None
    pending_faction: Faction | None = None
    needs_subfaction_selection: bool = False

    redraft_player: int | None = None
    redraft_rounds: int = 0
    bonus_requisition: float = 0
    liquidated_items: tuple[str, ...] = ()

    game_over: bool = False

    def merge(self, other: StateUpdate) -> StateUpdate:
        """Later values win; burned cards and notes accumulate."""
        merged = replace(
            self,
            burned_cards=_union(self.burned_cards, other.burned_cards),
            notes=self.notes + other.notes,
            game_over=self.game_over or other.game_over,
        )
        for name in ("players", "requisition", "current_diff", "special_draft_type",
                     "pending_faction", "redraft_player"):
            value = getattr(other, name)
            if value is not None:
                merged = replace(merged, **{name: value})
        if other.booster_draft:
            merged = replace(merged, booster_draft=other.booster_draft,
                             booster_targets=other.booster_targets)
        if other.special_draft:
            merged = replace(merged, special_draft=other.special_draft)
        if other.needs_subfaction_selection:
            merged = replace(merged, needs_subfaction_selection=True)
        if other.redraft_player is not None:
            merged = replace(
                merged,
                redraft_rounds=other.redraft_rounds,
                bonus_requisition=other.bonus_requisition,
                liquidated_items=other.liquidated_items,
            )
        return merged

    def to_dict(self) -> dict[str, Any]:
        return {
            "players": [p.to_dict() for p in self.players] if self.players is not None else None,
            "requisition": self.requisition,
            "current_diff": self.current_diff,
            "burned_cards": list(self.burned_cards),
            "notes": list(self.notes),
            "booster_draft": list(self.booster_draft),
            "booster_targets": list(self.booster_targets),
            "special_draft": list(self.special_draft),
            "special_draft_type": self.special_draft_type,
            "pending_faction": self.pending_faction.value if self.pending_faction else None,
            "needs_subfaction_selection": self.needs_subfaction_selection,
            "redraft_player": self.redraft_player,
            "redraft_rounds": self.redraft_rounds,
            "bonus_requisition": self.bonus_requisition,
            "liquidated_items": list(self.liquidated_items),
            "game_over": self.game_over,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> StateUpdate:
        data = data or {}
        players = data.get("players")
        faction = data.get("pending_faction")
        requisition = data.get("requisition")
        current_diff = data.get("current_diff")
        return cls(
            players=tuple(Player.from_dict(p) for p in players) if players is not None else None,
            requisition=float(requisition) if requisition is not None else None,
            current_diff=int(current_diff) if current_diff is not None else None,
            burned_cards=tuple(data.get("burned_cards") or ()),
            notes=tuple(data.get("notes") or ()),
            booster_draft=tuple(data.get("booster_draft") or ()),
            booster_targets=tuple(data.get("booster_targets") or ()),
            special_draft=tuple(data.get("special_draft") or ()),
            special_draft_type=data.get("special_draft_type"),
            pending_faction=Faction(faction) if faction else None,
            needs_subfaction_selection=bool(data.get("needs_subfaction_selection", False)),
            redraft_player=data.get("redraft_player"),
            redraft_rounds=int(data.get("redraft_rounds", 0)),
            bonus_requisition=float(data.get("bonus_requisition", 0)),
            liquidated_items=tuple(data.get("liquidated_items") or ()),
            game_over=bool(data.get("game_over", False)),
        )


def _union(first, second) -> tuple[str, ...]:
    return tuple(dict.fromkeys((*first, *second)))


def _replace_player(players, player: Player) -> tuple[Player, ...]:
    return tuple(player if i == player.slot else p for i, p in enumerate(players))


def _player(context: OutcomeContext, index: int | None) -> Player | None:
    if index is None or not 0 <= index < len(context.players):
        return None
    return context.players[index]


def _random_item(rng, candidates) -> str | None:
    candidates = list(candidates)
    if not candidates:
        return None
    return rng.choice(candidates).id


def _unburned(context: OutcomeContext, items):
    if not context.burn_mode:
        return list(items)
    burned = set(context.burned_cards)
    return [item for item in items if item.id not in burned]


def _burn(context: OutcomeContext, *item_ids: str) -> tuple[str, ...]:
    return tuple(i for i in item_ids if i) if context.burn_mode else ()


def _target_indices(context: OutcomeContext, outcome: Outcome) -> list[int]:
    """Players an outcome applies to: the chosen helldiver or the squad."""
    if outcome.target_player == OutcomeTarget.ALL:
        return list(range(len(context.players)))
    if context.player_choice is not None and _player(context, context.player_choice):
        return [context.player_choice]
    return []


# =========================================================================
# Single outcomes
# =========================================================================


def process_outcome(
    outcome: Outcome,
    context: OutcomeContext,
    selection: EventSelection | None = None,
    rng: random.Random | None = None,
) -> StateUpdate:
    """
    Process one outcome against the context.

    Unknown or inapplicable outcomes produce an empty update.
    """
    rng = rng or random.Random()
    selection = selection or EventSelection()
    handler = _HANDLERS.get(outcome.type)
    if handler is None:
        return StateUpdate()
    return handler(outcome, context, selection, rng)


def _add_requisition(outcome, context, selection, rng):
    multiplier = requisition_multiplier(len(context.players), context.config.subfaction)
    amount = float(outcome.value or 0) * multiplier
    return StateUpdate(
        requisition=context.requisition + amount,
        notes=(f"+{amount:g} Requisition",),
    )


def _lose_requisition(outcome, context, selection, rng):
    amount = float(outcome.value or 0)
    return StateUpdate(
        requisition=max(0.0, context.requisition - amount),
        notes=(f"-{amount:g} Requisition",),
    )


def _change_faction(outcome, context, selection, rng):
    others = [f for f in Faction if f != context.config.faction]
    faction = rng.choice(others)
    return StateUpdate(
        pending_faction=faction,
        needs_subfaction_selection=True,
        notes=(f"Redeployed to the {faction.value.title()} front",),
    )


def _extra_draft(outcome, context, selection, rng):
    index = context.player_choice
    if outcome.target_player == OutcomeTarget.CHOOSE and selection.target_player is not None:
        index = selection.target_player
    player = _player(context, index)
    if player is None:
        return StateUpdate()
    count = int(outcome.value or 1)
    player = player._copy_with(extra_draft_cards=player.extra_draft_cards + count)
    return StateUpdate(
        players=_replace_player(context.players, player),
        notes=(f"{player.name} will draft {count} extra card{'s' if count > 1 else ''}",),
    )


def _skip_difficulty(outcome, context, selection, rng):
    ceiling = min(MAX_DIFFICULTY, context.config.max_difficulty)
    diff = min(ceiling, context.current_diff + int(outcome.value or 1))
    return StateUpdate(current_diff=diff, notes=(f"Advanced to difficulty {diff}",))


def _replay_difficulty(outcome, context, selection, rng):
    diff = max(MIN_DIFFICULTY, context.current_diff - int(outcome.value or 1))
    return StateUpdate(current_diff=diff, notes=(f"Back to difficulty {diff}",))


def _sacrifice_item(outcome, context, selection, rng):
    """Clear the helldiver's last equipped stratagem."""
    player = _player(context, context.player_choice)
    if player is None:
        return StateUpdate()
    for index in reversed(range(STRATAGEM_SLOTS)):
        stratagem = player.loadout.stratagems[index]
        if stratagem:
            player = player.without_items(stratagem).with_loadout(
                player.loadout.with_stratagem(index, None)
            )
            return StateUpdate(
                players=_replace_player(context.players, player),
                notes=(f"{player.name} lost {item_name(stratagem)}",),
            )
    return StateUpdate()


def _gain_booster(outcome, context, selection, rng):
    if outcome.target_player == OutcomeTarget.RANDOM:
        without = [p for p in context.players if not p.loadout.booster]
        player = rng.choice(without or list(context.players)) if context.players else None
        boosters = available_boosters(context.players, context.burned_cards, context.burn_mode)
        if player is None or not boosters:
            return StateUpdate()
        booster = rng.choice(boosters)
        player = player.with_items(booster)
        player = equip(player, booster) or player
        return StateUpdate(
            players=_replace_player(context.players, player),
            burned_cards=_burn(context, booster),
            notes=(f"{player.name} received {item_name(booster)}",),
        )

    draft = generate_booster_draft(
        context.players, context.burned_cards, context.burn_mode, rng
    )
    if not draft:
        return StateUpdate()
    if outcome.target_player == OutcomeTarget.CHOOSE and context.player_choice is not None:
        targets = (context.player_choice,)
    else:
        targets = tuple(range(len(context.players)))
    return StateUpdate(
        booster_draft=tuple(draft),
        booster_targets=targets,
        burned_cards=_burn(context, *draft),
    )


def _gain_of_type(item_type: ItemType, starter: str):
    def handler(outcome, context, selection, rng):
        player = _player(context, context.player_choice)
        if player is None:
            return StateUpdate()
        candidates = [
            item for item in _unburned(context, CATALOG)
            if item.item_type == item_type and item.id != starter
        ]
        item_id = _random_item(rng, candidates)
        if item_id is None:
            return StateUpdate()
        player = grant_and_equip(player, item_id)
        return StateUpdate(
            players=_replace_player(context.players, player),
            burned_cards=_burn(context, item_id),
            notes=(f"{player.name} received {item_name(item_id)}",),
        )
    return handler


def _random_outcome(outcome, context, selection, rng):
    options = list(outcome.possible_outcomes)
    if not options:
        return StateUpdate()
    weights = [max(0, o.weight) for o in options]

    if context.player_choice is None:
        # Each helldiver rolls separately
        update = StateUpdate()
        for index in range(len(context.players)):
            picked = rng.choices(options, weights=weights, k=1)[0]
            current = _apply(update, context)._copy_with(player_choice=index)
            update = update.merge(process_outcome(picked, current, selection, rng))
        return update

    picked = rng.choices(options, weights=weights, k=1)[0]
    return process_outcome(picked, context, selection, rng)


def _remove_item(outcome, context, selection, rng):
    player = _player(context, context.player_choice)
    if player is None:
        return StateUpdate()
    loadout = player.loadout
    candidates = [
        (item_type, item_id)
        for item_type, item_id in (
            (ItemType.PRIMARY, loadout.primary),
            (ItemType.SECONDARY, loadout.secondary),
            (ItemType.GRENADE, loadout.grenade),
        )
        if item_id and not is_protected(item_id)
    ]
    candidates += [
        (ItemType.STRATAGEM, s) for s in loadout.stratagems if s
    ]
    if not candidates:
        return StateUpdate()

    item_type, item_id = rng.choice(candidates)
    if item_type == ItemType.STRATAGEM:
        loadout = loadout.with_stratagem(loadout.stratagem_index(item_id), None)
    else:
        loadout = loadout.with_slot(item_type, None)
    player = ensure_valid_loadout(player.without_items(item_id).with_loadout(loadout))
    return StateUpdate(
        players=_replace_player(context.players, player),
        notes=(f"{player.name} lost {item_name(item_id)}",),
    )


def _gain_specific_item(outcome, context, selection, rng):
    item = get_item(outcome.value)
    if item is None:
        return StateUpdate()
    players = context.players
    names = []
    for index in _target_indices(context, outcome):
        player = grant_and_equip(players[index], item.id)
        players = _replace_player(players, player)
        names.append(player.name)
    if not names:
        return StateUpdate()
    return StateUpdate(
        players=players,
        notes=(f"{', '.join(names)} received {item.name}",),
    )


def _duplicate_stratagem(outcome, context, selection, rng):
    source = selection.source_stratagem
    target = _player(context, selection.target_player)
    if source is None or target is None or selection.stage != SelectionStage.READY_TO_CONFIRM:
        return StateUpdate()
    if target.loadout.stratagem_index(source.stratagem_id) is not None:
        return StateUpdate()

    if selection.target_stratagem is not None:
        slot = selection.target_stratagem.slot_index
        replaced = target.loadout.stratagems[slot]
        target = target.without_items(replaced) if replaced else target
    else:
        slot = target.loadout.first_empty_stratagem()
    if slot is None:
        return StateUpdate()

    target = target.with_items(source.stratagem_id)
    target = target.with_loadout(target.loadout.with_stratagem(slot, source.stratagem_id))
    return StateUpdate(
        players=_replace_player(context.players, target),
        notes=(f"{target.name} received a copy of {item_name(source.stratagem_id)}",),
    )


def _swap_stratagem(outcome, context, selection, rng):
    source_sel = selection.source_stratagem
    source = _player(context, selection.source_player)
    target = _player(context, selection.target_player)
    if source is None or target is None or source_sel is None:
        return StateUpdate()

    target_sel = selection.target_stratagem
    if target_sel is None:
        # Partial selection: take the target's first stratagem
        for index, stratagem in enumerate(target.loadout.stratagems):
            if stratagem:
                target_sel = StratagemSelection(target.slot, index, stratagem)
                break
    if target_sel is None:
        return StateUpdate()

    # Slots may have changed since the selection was made
    if source.loadout.stratagems[source_sel.slot_index] != source_sel.stratagem_id:
        return StateUpdate()
    if target.loadout.stratagems[target_sel.slot_index] != target_sel.stratagem_id:
        return StateUpdate()

    given, received = source_sel.stratagem_id, target_sel.stratagem_id
    source = source.without_items(given).with_items(received)
    source = source.with_loadout(source.loadout.with_stratagem(source_sel.slot_index, received))
    target = target.without_items(received).with_items(given)
    target = target.with_loadout(target.loadout.with_stratagem(target_sel.slot_index, given))
    players = _replace_player(_replace_player(context.players, source), target)
    return StateUpdate(
        players=players,
        notes=(f"{source.name} and {target.name} swapped {item_name(given)} for {item_name(received)}",),
    )


def _restrict_to_single_weapon(outcome, context, selection, rng):
    index = selection.target_player
    if index is None and outcome.target_player == OutcomeTarget.CHOOSE:
        index = context.player_choice
    player = _player(context, index)
    if player is None:
        return StateUpdate()

    loadout = player.loadout
    stripped = Loadout(
        primary=loadout.primary,
        secondary=None if loadout.primary else loadout.secondary,
        grenade=loadout.grenade,
        armor=loadout.armor,
        booster=loadout.booster,
    )
    player = player._copy_with(
        loadout=stripped,
        weapon_restricted=True,
        saved_stratagems=tuple(loadout.stratagems),
    )
    return StateUpdate(
        players=_replace_player(context.players, player),
        notes=(f"{player.name} deploys with a single weapon next mission",),
    )


def _redraft(outcome, context, selection, rng):
    """
    Liquidate a helldiver's gear and draft it back.

    Every `value` liquidated items buy one redraft round; the whole
    inventory pays out requisition at the same rate.
    """
    player = _player(context, context.player_choice)
    if player is None:
        return StateUpdate()
    liquidated = tuple(liquidatable_items(player))
    if not liquidated:
        return StateUpdate()

    per_round = int(outcome.value or 1)
    rounds = math.ceil(len(liquidated) / per_round)
    bonus = math.ceil(len(player.inventory) / per_round)

    booster = player.loadout.booster
    reset = Loadout(booster=booster)
    inventory = (STARTER_SECONDARY, STARTER_GRENADE, STARTER_ARMOR)
    player = player._copy_with(
        loadout=reset,
        inventory=inventory + ((booster,) if booster else ()),
        redraft_rounds=rounds,
        weapon_restricted=False,
        saved_stratagems=None,
    )
    return StateUpdate(
        players=_replace_player(context.players, player),
        redraft_player=player.slot,
        redraft_rounds=rounds,
        bonus_requisition=bonus,
        liquidated_items=liquidated,
        notes=(f"{player.name} liquidated {len(liquidated)} items for {rounds} redraft rounds",),
    )


def _transform_loadout(outcome, context, selection, rng):
    player = _player(context, context.player_choice)
    if player is None:
        return StateUpdate()

    loadout = player.loadout
    slots: list[tuple[ItemType, int | None]] = [
        (item_type, None)
        for item_type in (ItemType.PRIMARY, ItemType.SECONDARY, ItemType.GRENADE,
                          ItemType.ARMOR, ItemType.BOOSTER)
        if loadout.slot_value(item_type)
    ]
    slots += [(ItemType.STRATAGEM, i) for i, s in enumerate(loadout.stratagems) if s]
    rng.shuffle(slots)
    count = len(slots) if outcome.value == -1 else min(len(slots), int(outcome.value or 1))

    burned: list[str] = []
    notes = []
    for item_type, index in slots[:count]:
        old = loadout.stratagems[index] if index is not None else loadout.slot_value(item_type)
        taken = set(loadout.equipped_ids())
        candidates = [
            item for item in _unburned(context, CATALOG)
            if item.item_type == item_type and item.id not in taken and item.id not in burned
        ]
        new = _random_item(rng, candidates)
        if new is None:
            continue
        if index is not None:
            loadout = loadout.with_stratagem(index, new)
        else:
            loadout = loadout.with_slot(item_type, new)
        player = player.without_items(old).with_items(new)
        burned.append(new)
        notes.append(f"{item_name(old)} became {item_name(new)}")

    player = player.with_loadout(loadout)
    return StateUpdate(
        players=_replace_player(context.players, player),
        burned_cards=_burn(context, *burned),
        notes=tuple(notes),
    )


def _armor_and_special_draft(armor_class: ArmorClass, draft_type: str):
    def handler(outcome, context, selection, rng):
        if not context.players:
            return StateUpdate()
        players = context.players
        burned = []
        for player in context.players:
            candidates = [
                item for item in _unburned(context, CATALOG)
                if item.item_type == ItemType.ARMOR
                and item.armor_class == armor_class
                and player_can_access(item, player.warbonds, player.include_superstore)
            ]
            armor = _random_item(rng, candidates)
            if armor is None:
                continue
            player = player.with_items(armor)
            players = _replace_player(players, player.with_loadout(
                player.loadout.with_slot(ItemType.ARMOR, armor)
            ))
            burned.append(armor)

        return StateUpdate(
            players=players,
            burned_cards=_burn(context, *burned),
            special_draft=special_draft_offer(context, draft_type),
            special_draft_type=draft_type,
            notes=(f"Every helldiver received {armor_class.value} armor",),
        )
    return handler


def special_draft_offer(context: OutcomeContext, draft_type: str) -> tuple[str, ...]:
    """Items offered by a throwable/secondary special draft."""
    item_type = SPECIAL_DRAFT_TYPES[draft_type]
    starter = STARTER_GRENADE if item_type == ItemType.GRENADE else STARTER_SECONDARY
    return tuple(
        item.id for item in _unburned(context, CATALOG)
        if item.item_type == item_type and item.id != starter
    )


def _duplicate_loadout_to_all(outcome, context, selection, rng):
    source = _player(context, context.player_choice)
    if source is None:
        return StateUpdate()
    players = []
    for player in context.players:
        if player.slot == source.slot:
            players.append(player)
            continue
        copied = replace(source.loadout, booster=player.loadout.booster)
        players.append(player.with_items(*copied.equipped_ids()).with_loadout(copied))
    return StateUpdate(
        players=tuple(players),
        notes=(f"The squad now fights with {source.name}'s loadout",),
    )


_CEREMONIAL_ITEMS = (
    CEREMONIAL_PRIMARY, CEREMONIAL_STRATAGEM, *CEREMONIAL_LEAD, *CEREMONIAL_GUARD,
)


def _can_use(player: Player, item_id: str) -> bool:
    item = get_item(item_id)
    return item is not None and player_can_access(item, player.warbonds, player.include_superstore)


def _set_ceremonial_loadout(outcome, context, selection, rng):
    players = []
    for player in context.players:
        loadout = Loadout(
            primary=player.loadout.primary,
            secondary=player.loadout.secondary,
            grenade=player.loadout.grenade,
            armor=player.loadout.armor,
            booster=player.loadout.booster,
        )
        granted = []
        usable = {i for i in _CEREMONIAL_ITEMS if _can_use(player, i)}

        if CEREMONIAL_PRIMARY in usable:
            loadout = loadout.with_slot(ItemType.PRIMARY, CEREMONIAL_PRIMARY)
            granted.append(CEREMONIAL_PRIMARY)
        secondary, armor = CEREMONIAL_LEAD if player.slot == 0 else CEREMONIAL_GUARD
        if secondary in usable:
            loadout = loadout.with_slot(ItemType.SECONDARY, secondary)
            granted.append(secondary)
        if armor in usable:
            loadout = loadout.with_slot(ItemType.ARMOR, armor)
            granted.append(armor)
        if player.slot == 0 and CEREMONIAL_STRATAGEM in usable:
            loadout = loadout.with_stratagem(0, CEREMONIAL_STRATAGEM)
            granted.append(CEREMONIAL_STRATAGEM)
        players.append(player.with_items(*granted).with_loadout(loadout))

    return StateUpdate(players=tuple(players), notes=("The squad dons parade dress",))


def _trigger_game_over(outcome, context, selection, rng):
    return StateUpdate(game_over=True, notes=("The Ministry has ended your campaign",))


_HANDLERS = {
    OutcomeType.ADD_REQUISITION: _add_requisition,
    OutcomeType.SPEND_REQUISITION: _lose_requisition,
    OutcomeType.LOSE_REQUISITION: _lose_requisition,
    OutcomeType.CHANGE_FACTION: _change_faction,
    OutcomeType.EXTRA_DRAFT: _extra_draft,
    OutcomeType.SKIP_DIFFICULTY: _skip_difficulty,
    OutcomeType.REPLAY_DIFFICULTY: _replay_difficulty,
    OutcomeType.SACRIFICE_ITEM: _sacrifice_item,
    OutcomeType.GAIN_BOOSTER: _gain_booster,
    OutcomeType.GAIN_SECONDARY: _gain_of_type(ItemType.SECONDARY, STARTER_SECONDARY),
    OutcomeType.GAIN_THROWABLE: _gain_of_type(ItemType.GRENADE, STARTER_GRENADE),
    OutcomeType.RANDOM_OUTCOME: _random_outcome,
    OutcomeType.REMOVE_ITEM: _remove_item,
    OutcomeType.GAIN_SPECIFIC_ITEM: _gain_specific_item,
    OutcomeType.DUPLICATE_STRATAGEM: _duplicate_stratagem,
    OutcomeType.SWAP_STRATAGEM: _swap_stratagem,
    OutcomeType.RESTRICT_TO_SINGLE_WEAPON: _restrict_to_single_weapon,
    OutcomeType.REDRAFT: _redraft,
    OutcomeType.TRANSFORM_LOADOUT: _transform_loadout,
    OutcomeType.LIGHT_ARMOR_AND_THROWABLE_DRAFT: _armor_and_special_draft(
        ArmorClass.LIGHT, "throwable"
    ),
    OutcomeType.HEAVY_ARMOR_AND_SECONDARY_DRAFT: _armor_and_special_draft(
        ArmorClass.HEAVY, "secondary"
    ),
    OutcomeType.DUPLICATE_LOADOUT_TO_ALL: _duplicate_loadout_to_all,
    OutcomeType.SET_CEREMONIAL_LOADOUT: _set_ceremonial_loadout,
    OutcomeType.TRIGGER_GAME_OVER: _trigger_game_over,
}


# =========================================================================
# Whole events
# =========================================================================


def _apply(update: StateUpdate, context: OutcomeContext) -> OutcomeContext:
    """Context as seen by the next outcome."""
    changes: dict[str, Any] = {}
    if update.players is not None:
        changes["players"] = update.players
    if update.requisition is not None:
        changes["requisition"] = update.requisition
    if update.current_diff is not None:
        changes["current_diff"] = update.current_diff
    if update.burned_cards:
        changes["burned_cards"] = _union(context.burned_cards, update.burned_cards)
    return context._copy_with(**changes) if changes else context


def process_all_outcomes(
    outcomes,
    context: OutcomeContext,
    selection: EventSelection | None = None,
    rng: random.Random | None = None,
    choice: EventChoice | None = None,
) -> StateUpdate:
    """
    Apply outcomes in order, each seeing the previous ones' effects.

    A choice's requisition cost is paid before any outcome runs.
    """
    rng = rng or random.Random()
    update = StateUpdate()
    if choice is not None and choice.requires_requisition:
        update = StateUpdate(requisition=max(0.0, context.requisition - choice.requires_requisition))

    for outcome in outcomes:
        result = process_outcome(outcome, _apply(update, context), selection, rng)
        update = update.merge(result)
    return update


def process_event(
    event: GameEvent,
    context: OutcomeContext,
    choice_index: int | None = None,
    selection: EventSelection | None = None,
    rng: random.Random | None = None,
) -> StateUpdate:
    """
    Resolve a whole event.

    CHOICE events apply the chosen choice, RANDOM events one weighted
    outcome, and the rest every outcome.
    """
    rng = rng or random.Random()
    if event.type == EventType.CHOICE:
        choice = event.get_choice(choice_index)
        if choice is None:
            return StateUpdate()
        return process_all_outcomes(choice.outcomes, context, selection, rng, choice)
    if event.type == EventType.RANDOM:
        if not event.outcomes:
            return StateUpdate()
        weights = [max(0, o.weight) for o in event.outcomes]
        picked = rng.choices(list(event.outcomes), weights=weights, k=1)[0]
        return process_all_outcomes((picked,), context, selection, rng)
    return process_all_outcomes(event.outcomes, context, selection, rng)


def can_afford_choice(
    choice: EventChoice,
    requisition: float,
    players=(),
    player_choice: int | None = None,
) -> bool:
    """Requisition check; a redraft also needs something to liquidate."""
    if choice.requires_requisition and requisition < choice.requires_requisition:
        return False
    if any(o.type == OutcomeType.REDRAFT for o in choice.outcomes):
        if player_choice is not None and 0 <= player_choice < len(players):
            if not liquidatable_items(players[player_choice]):
                return False
    return True


def format_outcome(outcome: Outcome) -> str:
    value = outcome.value
    plural = "s" if isinstance(value, int) and value > 1 else ""
    kind = outcome.type
    if kind == OutcomeType.ADD_REQUISITION:
        return f"+{value} Requisition"
    if kind in (OutcomeType.SPEND_REQUISITION, OutcomeType.LOSE_REQUISITION):
        return f"-{value} Requisition"
    if kind == OutcomeType.CHANGE_FACTION:
        return "Switch to different theater"
    if kind == OutcomeType.EXTRA_DRAFT:
        return f"Draft {value} extra card{plural}"
    if kind == OutcomeType.SKIP_DIFFICULTY:
        return f"Skip {value} difficulty level{plural}"
    if kind == OutcomeType.REPLAY_DIFFICULTY:
        return "Replay current difficulty"
    if kind == OutcomeType.SACRIFICE_ITEM:
        return f"Remove a {value}"
    if kind == OutcomeType.GAIN_BOOSTER:
        return "Gain random Booster (All Helldivers)" if outcome.target_player == OutcomeTarget.ALL \
            else "Gain random Booster"
    if kind == OutcomeType.GAIN_SECONDARY:
        return "Gain random Secondary"
    if kind == OutcomeType.GAIN_THROWABLE:
        return "Gain random Throwable"
    if kind == OutcomeType.RANDOM_OUTCOME:
        if outcome.possible_outcomes:
            return " OR ".join(format_outcome(o) for o in outcome.possible_outcomes)
        return "Random outcome"
    if kind == OutcomeType.REMOVE_ITEM:
        return "Remove an item"
    if kind == OutcomeType.GAIN_SPECIFIC_ITEM:
        return f"Gain {item_name(value)}"
    if kind == OutcomeType.DUPLICATE_STRATAGEM:
        return "Copy stratagem to another Helldiver"
    if kind == OutcomeType.SWAP_STRATAGEM:
        return "Swap stratagem with another Helldiver"
    if kind == OutcomeType.RESTRICT_TO_SINGLE_WEAPON:
        return "Use only 1 weapon next mission (no stratagems)"
    if kind == OutcomeType.REDRAFT:
        return f"Redraft: discard all items, one draft per {value or 1} discarded"
    if kind == OutcomeType.TRANSFORM_LOADOUT:
        if value == -1:
            return "Transform entire loadout randomly"
        return f"Transform {value} random item{plural}"
    if kind == OutcomeType.LIGHT_ARMOR_AND_THROWABLE_DRAFT:
        return "All Helldivers: Random Light Armor + Choose Throwable"
    if kind == OutcomeType.HEAVY_ARMOR_AND_SECONDARY_DRAFT:
        return "All Helldivers: Random Heavy Armor + Choose Secondary"
    if kind == OutcomeType.DUPLICATE_LOADOUT_TO_ALL:
        return "Duplicate chosen Helldiver's loadout to all"
    if kind == OutcomeType.SET_CEREMONIAL_LOADOUT:
        return "Equip full ceremonial parade loadout"
    if kind == OutcomeType.TRIGGER_GAME_OVER:
        return "Campaign ends immediately"
    return ""


def format_outcomes(outcomes) -> str:
    texts = [text for text in (format_outcome(o) for o in outcomes) if text]
    return ", ".join(texts) if texts else "No effect"
