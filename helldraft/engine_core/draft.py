"""
Draft Hand Generator - Weighted, seeded card dealing.

The generator:
1. Builds the pool of items a player may still draft
2. Weights each entry by rarity, faction synergy and loadout needs
3. Samples a hand without replacement from an injected random.Random

It never touches game state. The caller decides what to do with the hand
(deal it through DEAL_DRAFT_HAND, burn it, show it).
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable
import random

from ..catalog.items import (
    CATALOG,
    Faction,
    Item,
    ItemType,
    Rarity,
    Tag,
    any_item_has_tag,
    armor_combo_key,
    armor_combos,
    item_has_tag,
    owns_armor_combo,
    player_can_access,
)
from .balancing import (
    ANTI_TANK_PRESSURE_DIFFICULTY,
    draft_hand_size,
    rare_weight_multiplier,
    rarity_weights,
)
from .state import DraftCard, GameConfig, Player

# Each earlier card of the same type scales an entry's weight by this factor
DIVERSITY_PENALTY = 0.1

FACTION_SYNERGY = {
    Faction.TERMINIDS: (Tag.FIRE, 30),
    Faction.AUTOMATONS: (Tag.PRECISION, 20),
    Faction.ILLUMINATE: (Tag.STUN, 20),
}

ANTI_TANK_BONUS = 500
SECONDARY_PENALTY = 40

BOOSTER_DRAFT_SIZE = 2


@dataclass
class PoolEntry:
    """A weighted draft candidate: one item, or one armor combo."""
    card: DraftCard
    weight: float


def _base_weight(item: Item, config: GameConfig, weights: dict[Rarity, int]) -> float:
    weight = weights[item.rarity]
    synergy = FACTION_SYNERGY.get(config.faction)
    if synergy and item.has_tag(synergy[0]):
        weight += synergy[1]
    return weight


def _item_card(item: Item) -> DraftCard:
    return DraftCard(
        id=item.id,
        item_type=item.item_type,
        item_ids=(item.id,),
        rarity=item.rarity,
        name=item.name,
    )


def _combo_card(key: str, pieces: list[Item]) -> DraftCard:
    first = pieces[0]
    return DraftCard(
        id=key,
        item_type=ItemType.ARMOR,
        item_ids=tuple(piece.id for piece in pieces),
        rarity=first.rarity,
        name=f"{first.passive.replace('_', ' ').title()} ({first.armor_class.value})",
    )


def _candidates(
    player: Player,
    config: GameConfig,
    burned_cards,
    all_players,
    locked_slots,
) -> list[Item]:
    burned = set(burned_cards) if config.burn_cards else set()
    locked = set(locked_slots)
    excluded = set(player.excluded_items)
    taken: set[str] = set()
    if config.global_uniqueness:
        for other in all_players:
            taken.update(other.inventory)

    return [
        item for item in CATALOG
        if item.item_type != ItemType.BOOSTER
        and not player.owns(item.id)
        and player_can_access(item, player.warbonds, player.include_superstore)
        and item.id not in excluded
        and item.id not in burned
        and item.item_type not in locked
        and item.id not in taken
    ]


def weighted_pool(
    player: Player,
    difficulty: int,
    config: GameConfig,
    burned_cards=(),
    all_players=(),
    locked_slots=None,
) -> list[PoolEntry]:
    """
    All draftable entries for a player with their weights.

    Armor is grouped into passive/class combos; combos the player already
    owns a piece of are left out. Zero-weight entries are dropped.
    """
    if locked_slots is None:
        locked_slots = player.locked_slots
    candidates = _candidates(player, config, burned_cards, all_players, locked_slots)
    weights = rarity_weights(rare_weight_multiplier(config.player_count, config.subfaction))

    needs_anti_tank = (
        difficulty >= ANTI_TANK_PRESSURE_DIFFICULTY
        and not any_item_has_tag(player.inventory, Tag.ANTI_TANK)
    )
    has_backpack = any(item_has_tag(s, Tag.BACKPACK) for s in player.loadout.stratagems if s)

    pool: list[PoolEntry] = []
    for item in candidates:
        if item.item_type == ItemType.ARMOR:
            continue
        weight = _base_weight(item, config, weights)
        if needs_anti_tank and item.has_tag(Tag.ANTI_TANK):
            weight += ANTI_TANK_BONUS
        if player.loadout.secondary and item.item_type == ItemType.SECONDARY:
            weight = max(1, weight - SECONDARY_PENALTY)
        if has_backpack and item.has_tag(Tag.BACKPACK):
            weight = 0
        pool.append(PoolEntry(_item_card(item), weight))

    armor = [item for item in candidates if item.item_type == ItemType.ARMOR]
    for key, pieces in armor_combos(armor).items():
        if owns_armor_combo(player.inventory, key):
            continue
        pool.append(PoolEntry(_combo_card(key, pieces), _base_weight(pieces[0], config, weights)))

    return [entry for entry in pool if entry.weight > 0]


def generate_draft_hand(
    player: Player,
    difficulty: int,
    config: GameConfig,
    burned_cards=(),
    all_players=(),
    rng: random.Random | None = None,
    hand_size: int | None = None,
    locked_slots=None,
    on_burn: Callable[[str], None] | None = None,
) -> list[DraftCard]:
    """
    Deal a hand for one player.

    Samples without replacement. With three or more cards, every card
    already drawn of a type scales that type's weight by 0.1 (floored at 1)
    so hands stay varied. In burn mode each dealt item id is passed to
    on_burn.
    """
    rng = rng or random.Random()
    pool = weighted_pool(player, difficulty, config, burned_cards, all_players, locked_slots)
    size = hand_size if hand_size is not None else draft_hand_size(config.star_rating)

    hand: list[DraftCard] = []
    type_count: dict[ItemType, int] = {}
    while pool and len(hand) < size:
        weights = []
        for entry in pool:
            count = type_count.get(entry.card.item_type, 0)
            weight = entry.weight
            if size >= 3 and count > 0:
                weight = max(1, weight * DIVERSITY_PENALTY ** count)
            weights.append(weight)

        index = _weighted_index(rng, weights)
        card = pool.pop(index).card
        hand.append(card)
        type_count[card.item_type] = type_count.get(card.item_type, 0) + 1

        if config.burn_cards and on_burn is not None:
            for item_id in card.item_ids:
                on_burn(item_id)

    return hand


def replacement_card(
    player: Player,
    difficulty: int,
    config: GameConfig,
    hand,
    burned_cards=(),
    all_players=(),
    rng: random.Random | None = None,
) -> DraftCard | None:
    """A single card not already in the hand, for REMOVE_CARD."""
    in_hand = {card.id for card in hand}
    excluded_player = player._copy_with(
        excluded_items=tuple(player.excluded_items) + tuple(
            item_id for card in hand for item_id in card.item_ids
        )
    )
    for card in generate_draft_hand(
        excluded_player, difficulty, config, burned_cards, all_players, rng, hand_size=1,
    ):
        if card.id not in in_hand:
            return card
    return None


def generate_booster_draft(
    players,
    burned_cards=(),
    burn_mode: bool = False,
    rng: random.Random | None = None,
    size: int = BOOSTER_DRAFT_SIZE,
) -> list[str]:
    """Distinct boosters nobody has equipped (and not burned in burn mode)."""
    rng = rng or random.Random()
    available = available_boosters(players, burned_cards, burn_mode)
    return rng.sample(available, min(size, len(available)))


def available_boosters(players, burned_cards=(), burn_mode: bool = False) -> list[str]:
    equipped = {p.loadout.booster for p in players if p.loadout.booster}
    burned = set(burned_cards) if burn_mode else set()
    return [
        item.id for item in CATALOG
        if item.item_type == ItemType.BOOSTER
        and item.id not in equipped
        and item.id not in burned
    ]


def sample_rarity(rng: random.Random, weights: dict[Rarity, float] | None = None) -> Rarity:
    """Draw one rarity tier using the draft weights."""
    weights = weights or rarity_weights()
    tiers = list(weights)
    return tiers[_weighted_index(rng, [weights[t] for t in tiers])]


def _weighted_index(rng: random.Random, weights: list[float]) -> int:
    total = sum(weights)
    roll = rng.random() * total
    for index, weight in enumerate(weights):
        roll -= weight
        if roll < 0:
            return index
    return len(weights) - 1


def card_for_item(item: Item) -> DraftCard:
    """Build a hand card for a single catalog item (armor becomes its combo)."""
    if item.item_type == ItemType.ARMOR:
        return _combo_card(armor_combo_key(item), [item])
    return _item_card(item)
