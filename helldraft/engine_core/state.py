"""
Game State - Immutable snapshot of one run.

Design principles:
- Immutable-friendly: all mutations return new state
- Serializable: to_dict()/from_dict() give a JSON-compatible snapshot
- Copy-on-write: updates copy and partially overwrite, never mutate
- Index = slot: players[i].slot == i for every live player
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ..catalog.items import (
    Faction,
    ItemType,
    Rarity,
    STARTER_ARMOR,
    STARTER_GRENADE,
    STARTER_SECONDARY,
)
from .balancing import MAX_DIFFICULTY

STRATAGEM_SLOTS = 4


class GamePhase(Enum):
    """High-level run phases."""
    LOBBY = "lobby"
    DASHBOARD = "dashboard"
    DRAFT = "draft"
    SACRIFICE = "sacrifice"
    EVENT = "event"
    VICTORY = "victory"
    GAMEOVER = "gameover"

    @property
    def is_terminal(self) -> bool:
        return self in (GamePhase.VICTORY, GamePhase.GAMEOVER)


class SelectionStage(Enum):
    """Progress of a multi-step stratagem selection during an event."""
    NONE = "none"
    SOURCE_CHOSEN = "source_chosen"
    STRATAGEM_CHOSEN = "stratagem_chosen"
    TARGET_CHOSEN = "target_chosen"
    TARGET_STRATAGEM_CHOSEN = "target_stratagem_chosen"
    READY_TO_CONFIRM = "ready_to_confirm"


def _tuple(values) -> tuple:
    return tuple(values) if values else ()


@dataclass
class GameConfig:
    """Run configuration chosen before the first mission."""
    faction: Faction = Faction.TERMINIDS
    subfaction: str = "bugs_vanilla"
    player_count: int = 1
    star_rating: int = 3
    global_uniqueness: bool = False
    burn_cards: bool = False
    custom_start: bool = False
    endless_mode: bool = False
    endurance_mode: bool = False
    brutality_mode: bool = False
    max_difficulty: int = MAX_DIFFICULTY

    def _copy_with(self, **kwargs) -> GameConfig:
        return replace(self, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "faction": self.faction.value,
            "subfaction": self.subfaction,
            "player_count": self.player_count,
            "star_rating": self.star_rating,
            "global_uniqueness": self.global_uniqueness,
            "burn_cards": self.burn_cards,
            "custom_start": self.custom_start,
            "endless_mode": self.endless_mode,
            "endurance_mode": self.endurance_mode,
            "brutality_mode": self.brutality_mode,
            "max_difficulty": self.max_difficulty,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameConfig:
        defaults = cls()
        return cls(
            faction=Faction(data.get("faction", defaults.faction.value)),
            subfaction=data.get("subfaction", defaults.subfaction),
            player_count=int(data.get("player_count", defaults.player_count)),
            star_rating=int(data.get("star_rating", defaults.star_rating)),
            global_uniqueness=bool(data.get("global_uniqueness", False)),
            burn_cards=bool(data.get("burn_cards", False)),
            custom_start=bool(data.get("custom_start", False)),
            endless_mode=bool(data.get("endless_mode", False)),
            endurance_mode=bool(data.get("endurance_mode", False)),
            brutality_mode=bool(data.get("brutality_mode", False)),
            max_difficulty=int(data.get("max_difficulty", MAX_DIFFICULTY)),
        )


@dataclass
class Samples:
    common: int = 0
    rare: int = 0
    super_rare: int = 0

    def add(self, common: int = 0, rare: int = 0, super_rare: int = 0) -> Samples:
        return Samples(
            common=max(0, self.common + common),
            rare=max(0, self.rare + rare),
            super_rare=max(0, self.super_rare + super_rare),
        )

    def to_dict(self) -> dict[str, int]:
        return {"common": self.common, "rare": self.rare, "super_rare": self.super_rare}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Samples:
        data = data or {}
        return cls(
            common=int(data.get("common", 0)),
            rare=int(data.get("rare", 0)),
            super_rare=int(data.get("super_rare", 0)),
        )


@dataclass
class Loadout:
    """
    Equipped items.

    Each slot holds an item id or None. There are always exactly four
    stratagem slots.
    """
    primary: str | None = None
    secondary: str | None = STARTER_SECONDARY
    grenade: str | None = STARTER_GRENADE
    armor: str | None = STARTER_ARMOR
    booster: str | None = None
    stratagems: tuple[str | None, ...] = (None,) * STRATAGEM_SLOTS

    @classmethod
    def starting(cls) -> Loadout:
        return cls()

    @property
    def stratagems_full(self) -> bool:
        return all(s is not None for s in self.stratagems)

    def first_empty_stratagem(self) -> int | None:
        for index, stratagem in enumerate(self.stratagems):
            if stratagem is None:
                return index
        return None

    def stratagem_index(self, item_id: str) -> int | None:
        for index, stratagem in enumerate(self.stratagems):
            if stratagem == item_id:
                return index
        return None

    def equipped_ids(self) -> list[str]:
        slots = [self.primary, self.secondary, self.grenade, self.armor, self.booster]
        return [item_id for item_id in [*slots, *self.stratagems] if item_id]

    def is_equipped(self, item_id: str) -> bool:
        return item_id in self.equipped_ids()

    def with_stratagem(self, index: int, item_id: str | None) -> Loadout:
        stratagems = list(self.stratagems)
        stratagems[index] = item_id
        return replace(self, stratagems=tuple(stratagems))

    def with_slot(self, item_type: ItemType, item_id: str | None) -> Loadout:
        """Return a loadout with a non-stratagem slot replaced."""
        if item_type == ItemType.STRATAGEM:
            raise ValueError("Stratagems need an explicit slot index")
        return replace(self, **{_SLOT_FIELDS[item_type]: item_id})

    def slot_value(self, item_type: ItemType) -> str | None:
        return getattr(self, _SLOT_FIELDS[item_type])

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary": self.primary,
            "secondary": self.secondary,
            "grenade": self.grenade,
            "armor": self.armor,
            "booster": self.booster,
            "stratagems": list(self.stratagems),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Loadout:
        data = data or {}
        stratagems = list(data.get("stratagems") or [])[:STRATAGEM_SLOTS]
        stratagems += [None] * (STRATAGEM_SLOTS - len(stratagems))
        return cls(
            primary=data.get("primary"),
            secondary=data.get("secondary"),
            grenade=data.get("grenade"),
            armor=data.get("armor"),
            booster=data.get("booster"),
            stratagems=tuple(stratagems),
        )


_SLOT_FIELDS = {
    ItemType.PRIMARY: "primary",
    ItemType.SECONDARY: "secondary",
    ItemType.GRENADE: "grenade",
    ItemType.ARMOR: "armor",
    ItemType.BOOSTER: "booster",
}


@dataclass
class Player:
    """
    State for a single helldiver.

    inventory is an ordered set of owned item ids; the loadout only ever
    references owned items.
    """
    id: str
    name: str
    slot: int
    loadout: Loadout = field(default_factory=Loadout.starting)
    inventory: tuple[str, ...] = (STARTER_SECONDARY, STARTER_GRENADE, STARTER_ARMOR)
    locked_slots: tuple[ItemType, ...] = ()
    warbonds: tuple[str, ...] = ()
    include_superstore: bool = False
    excluded_items: tuple[str, ...] = ()
    extracted: bool = True
    weapon_restricted: bool = False
    saved_stratagems: tuple[str | None, ...] | None = None
    extra_draft_cards: int = 0
    redraft_rounds: int = 0
    catch_up_drafts_remaining: int = 0
    retrospective_drafts_completed: int = 0

    def _copy_with(self, **kwargs) -> Player:
        return replace(self, **kwargs)

    def owns(self, item_id: str) -> bool:
        return item_id in self.inventory

    def with_items(self, *item_ids: str) -> Player:
        """Return player with items added to inventory (duplicates ignored)."""
        inventory = list(self.inventory)
        for item_id in item_ids:
            if item_id and item_id not in inventory:
                inventory.append(item_id)
        return self._copy_with(inventory=tuple(inventory))

    def without_items(self, *item_ids: str) -> Player:
        removed = set(item_ids)
        return self._copy_with(inventory=tuple(i for i in self.inventory if i not in removed))

    def with_loadout(self, loadout: Loadout) -> Player:
        return self._copy_with(loadout=loadout)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slot": self.slot,
            "loadout": self.loadout.to_dict(),
            "inventory": list(self.inventory),
            "locked_slots": [t.value for t in self.locked_slots],
            "warbonds": list(self.warbonds),
            "include_superstore": self.include_superstore,
            "excluded_items": list(self.excluded_items),
            "extracted": self.extracted,
            "weapon_restricted": self.weapon_restricted,
            "saved_stratagems": (
                list(self.saved_stratagems) if self.saved_stratagems is not None else None
            ),
            "extra_draft_cards": self.extra_draft_cards,
            "redraft_rounds": self.redraft_rounds,
            "catch_up_drafts_remaining": self.catch_up_drafts_remaining,
            "retrospective_drafts_completed": self.retrospective_drafts_completed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Player:
        saved = data.get("saved_stratagems")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            slot=int(data.get("slot", 0)),
            loadout=Loadout.from_dict(data.get("loadout")),
            inventory=_tuple(data.get("inventory")),
            locked_slots=tuple(ItemType(t) for t in data.get("locked_slots") or ()),
            warbonds=_tuple(data.get("warbonds")),
            include_superstore=bool(data.get("include_superstore", False)),
            excluded_items=_tuple(data.get("excluded_items")),
            extracted=bool(data.get("extracted", True)),
            weapon_restricted=bool(data.get("weapon_restricted", False)),
            saved_stratagems=tuple(saved) if saved is not None else None,
            extra_draft_cards=int(data.get("extra_draft_cards", 0)),
            redraft_rounds=int(data.get("redraft_rounds", 0)),
            catch_up_drafts_remaining=int(data.get("catch_up_drafts_remaining", 0)),
            retrospective_drafts_completed=int(data.get("retrospective_drafts_completed", 0)),
        )


@dataclass
class DraftCard:
    """
    One entry of a draft hand.

    Regular items carry a single id. Armor is offered as a passive/class
    combo and carries every matching piece.
    """
    id: str
    item_type: ItemType
    item_ids: tuple[str, ...]
    rarity: Rarity
    name: str

    @property
    def is_armor_combo(self) -> bool:
        return self.item_type == ItemType.ARMOR

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "item_type": self.item_type.value,
            "item_ids": list(self.item_ids),
            "rarity": self.rarity.value,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DraftCard:
        return cls(
            id=data["id"],
            item_type=ItemType(data["item_type"]),
            item_ids=tuple(data.get("item_ids") or (data["id"],)),
            rarity=Rarity(data.get("rarity", Rarity.COMMON.value)),
            name=data.get("name", data["id"]),
        )


@dataclass
class DraftState:
    active_player_index: int = 0
    round_cards: tuple[DraftCard, ...] = ()
    pending_stratagem: str | None = None
    extra_draft_round: int = 0
    is_redrafting: bool = False
    is_retrospective: bool = False
    retrospective_player_index: int | None = None
    draft_order: tuple[int, ...] = ()

    def _copy_with(self, **kwargs) -> DraftState:
        return replace(self, **kwargs)

    def find_card(self, card_id: str) -> DraftCard | None:
        for card in self.round_cards:
            if card.id == card_id:
                return card
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_player_index": self.active_player_index,
            "round_cards": [card.to_dict() for card in self.round_cards],
            "pending_stratagem": self.pending_stratagem,
            "extra_draft_round": self.extra_draft_round,
            "is_redrafting": self.is_redrafting,
            "is_retrospective": self.is_retrospective,
            "retrospective_player_index": self.retrospective_player_index,
            "draft_order": list(self.draft_order),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DraftState:
        data = data or {}
        return cls(
            active_player_index=int(data.get("active_player_index", 0)),
            round_cards=tuple(DraftCard.from_dict(c) for c in data.get("round_cards") or ()),
            pending_stratagem=data.get("pending_stratagem"),
            extra_draft_round=int(data.get("extra_draft_round", 0)),
            is_redrafting=bool(data.get("is_redrafting", False)),
            is_retrospective=bool(data.get("is_retrospective", False)),
            retrospective_player_index=data.get("retrospective_player_index"),
            draft_order=_tuple(data.get("draft_order")),
        )


@dataclass
class SacrificeState:
    """Queue of players owing a sacrifice after a failed extraction."""
    active_player_index: int = 0
    sacrifices_required: tuple[int, ...] = ()
    return_to_draft: bool = True  # False mid-operation in endurance mode
    draft_order: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_player_index": self.active_player_index,
            "sacrifices_required": list(self.sacrifices_required),
            "return_to_draft": self.return_to_draft,
            "draft_order": list(self.draft_order),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SacrificeState:
        data = data or {}
        return cls(
            active_player_index=int(data.get("active_player_index", 0)),
            sacrifices_required=_tuple(data.get("sacrifices_required")),
            return_to_draft=bool(data.get("return_to_draft", True)),
            draft_order=_tuple(data.get("draft_order")),
        )


@dataclass
class StratagemSelection:
    player_index: int
    slot_index: int
    stratagem_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_index": self.player_index,
            "slot_index": self.slot_index,
            "stratagem_id": self.stratagem_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> StratagemSelection | None:
        if not data:
            return None
        return cls(
            player_index=int(data["player_index"]),
            slot_index=int(data["slot_index"]),
            stratagem_id=data["stratagem_id"],
        )


@dataclass
class EventSelection:
    """Selections made so far for a stratagem swap/duplicate outcome."""
    stage: SelectionStage = SelectionStage.NONE
    source_player: int | None = None
    source_stratagem: StratagemSelection | None = None
    target_player: int | None = None
    target_stratagem: StratagemSelection | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "source_player": self.source_player,
            "source_stratagem": self.source_stratagem.to_dict() if self.source_stratagem else None,
            "target_player": self.target_player,
            "target_stratagem": self.target_stratagem.to_dict() if self.target_stratagem else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EventSelection:
        data = data or {}
        return cls(
            stage=SelectionStage(data.get("stage", SelectionStage.NONE.value)),
            source_player=data.get("source_player"),
            source_stratagem=StratagemSelection.from_dict(data.get("source_stratagem")),
            target_player=data.get("target_player"),
            target_stratagem=StratagemSelection.from_dict(data.get("target_stratagem")),
        )


@dataclass
class EventState:
    """
    Transient fields of the event currently on screen.

    Everything an outcome needs across steps lives here instead of in
    ambient variables, so it survives serialization to remote replicas.
    """
    event_id: str | None = None
    player_choice: int | None = None
    selected_choice: int | None = None
    selection: EventSelection = field(default_factory=EventSelection)
    resolved: bool = False
    notes: tuple[str, ...] = ()
    booster_draft: tuple[str, ...] = ()
    booster_targets: tuple[int, ...] = ()
    booster_selection: str | None = None
    special_draft: tuple[str, ...] = ()
    special_draft_type: str | None = None
    special_draft_selections: tuple[str | None, ...] = ()
    pending_faction: Faction | None = None
    pending_subfaction_selection: bool = False
    selected_subfaction: str | None = None

    def _copy_with(self, **kwargs) -> EventState:
        return replace(self, **kwargs)

    @property
    def awaiting_sub_draft(self) -> bool:
        return bool(self.booster_draft or self.special_draft or self.pending_subfaction_selection)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "player_choice": self.player_choice,
            "selected_choice": self.selected_choice,
            "selection": self.selection.to_dict(),
            "resolved": self.resolved,
            "notes": list(self.notes),
            "booster_draft": list(self.booster_draft),
            "booster_targets": list(self.booster_targets),
            "booster_selection": self.booster_selection,
            "special_draft": list(self.special_draft),
            "special_draft_type": self.special_draft_type,
            "special_draft_selections": list(self.special_draft_selections),
            "pending_faction": self.pending_faction.value if self.pending_faction else None,
            "pending_subfaction_selection": self.pending_subfaction_selection,
            "selected_subfaction": self.selected_subfaction,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EventState:
        data = data or {}
        faction = data.get("pending_faction")
        return cls(
            event_id=data.get("event_id"),
            player_choice=data.get("player_choice"),
            selected_choice=data.get("selected_choice"),
            selection=EventSelection.from_dict(data.get("selection")),
            resolved=bool(data.get("resolved", False)),
            notes=_tuple(data.get("notes")),
            booster_draft=_tuple(data.get("booster_draft")),
            booster_targets=_tuple(data.get("booster_targets")),
            booster_selection=data.get("booster_selection"),
            special_draft=_tuple(data.get("special_draft")),
            special_draft_type=data.get("special_draft_type"),
            special_draft_selections=_tuple(data.get("special_draft_selections")),
            pending_faction=Faction(faction) if faction else None,
            pending_subfaction_selection=bool(data.get("pending_subfaction_selection", False)),
            selected_subfaction=data.get("selected_subfaction"),
        )


@dataclass
class DraftRecord:
    difficulty: int
    star_rating: int

    def to_dict(self) -> dict[str, int]:
        return {"difficulty": self.difficulty, "star_rating": self.star_rating}


@dataclass
class GameState:
    """
    Complete run state at a point in time.

    This is the canonical snapshot the host publishes.
    All state changes go through the reducer.
    """
    run_id: str
    phase: GamePhase = GamePhase.LOBBY
    config: GameConfig = field(default_factory=GameConfig)

    current_diff: int = 1
    current_mission: int = 1
    requisition: float = 0.0
    samples: Samples = field(default_factory=Samples)

    players: tuple[Player, ...] = ()

    draft_state: DraftState = field(default_factory=DraftState)
    sacrifice_state: SacrificeState = field(default_factory=SacrificeState)
    event: EventState = field(default_factory=EventState)

    burned_cards: tuple[str, ...] = ()
    seen_events: tuple[str, ...] = ()
    draft_history: tuple[DraftRecord, ...] = ()
    events_enabled: bool = True

    @property
    def num_players(self) -> int:
        return len(self.players)

    def get_player(self, index: int | None) -> Player | None:
        """Get player by slot index."""
        if index is None or not 0 <= index < len(self.players):
            return None
        return self.players[index]

    def find_player(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def with_player(self, player: Player) -> GameState:
        """Return new state with the player at player.slot replaced."""
        new_players = tuple(
            player if i == player.slot else p
            for i, p in enumerate(self.players)
        )
        return self._copy_with(players=new_players)

    def with_players(self, players) -> GameState:
        return self._copy_with(players=tuple(players))

    def _copy_with(self, **kwargs) -> GameState:
        """Create a copy with some fields replaced."""
        return GameState(
            run_id=kwargs.get("run_id", self.run_id),
            phase=kwargs.get("phase", self.phase),
            config=kwargs.get("config", self.config),
            current_diff=kwargs.get("current_diff", self.current_diff),
            current_mission=kwargs.get("current_mission", self.current_mission),
            requisition=kwargs.get("requisition", self.requisition),
            samples=kwargs.get("samples", self.samples),
            players=kwargs.get("players", self.players),
            draft_state=kwargs.get("draft_state", self.draft_state),
            sacrifice_state=kwargs.get("sacrifice_state", self.sacrifice_state),
            event=kwargs.get("event", self.event),
            burned_cards=kwargs.get("burned_cards", self.burned_cards),
            seen_events=kwargs.get("seen_events", self.seen_events),
            draft_history=kwargs.get("draft_history", self.draft_history),
            events_enabled=kwargs.get("events_enabled", self.events_enabled),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible snapshot."""
        return {
            "run_id": self.run_id,
            "phase": self.phase.value,
            "config": self.config.to_dict(),
            "current_diff": self.current_diff,
            "current_mission": self.current_mission,
            "requisition": self.requisition,
            "samples": self.samples.to_dict(),
            "players": [p.to_dict() for p in self.players],
            "draft_state": self.draft_state.to_dict(),
            "sacrifice_state": self.sacrifice_state.to_dict(),
            "event": self.event.to_dict(),
            "burned_cards": list(self.burned_cards),
            "seen_events": list(self.seen_events),
            "draft_history": [r.to_dict() for r in self.draft_history],
            "events_enabled": self.events_enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameState:
        return cls(
            run_id=str(data["run_id"]),
            phase=GamePhase(data.get("phase", GamePhase.LOBBY.value)),
            config=GameConfig.from_dict(data.get("config") or {}),
            current_diff=int(data.get("current_diff", 1)),
            current_mission=int(data.get("current_mission", 1)),
            requisition=max(0.0, float(data.get("requisition", 0.0))),
            samples=Samples.from_dict(data.get("samples")),
            players=tuple(Player.from_dict(p) for p in data.get("players") or ()),
            draft_state=DraftState.from_dict(data.get("draft_state")),
            sacrifice_state=SacrificeState.from_dict(data.get("sacrifice_state")),
            event=EventState.from_dict(data.get("event")),
            burned_cards=_tuple(data.get("burned_cards")),
            seen_events=_tuple(data.get("seen_events")),
            draft_history=tuple(
                DraftRecord(int(r["difficulty"]), int(r["star_rating"]))
                for r in data.get("draft_history") or ()
            ),
            events_enabled=bool(data.get("events_enabled", True)),
        )


def new_game_state(run_id: str) -> GameState:
    """Fresh lobby state for a new run."""
    return GameState(run_id=run_id)
