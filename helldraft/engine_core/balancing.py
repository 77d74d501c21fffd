"""
Balancing - Difficulty, economy and rarity tables.

Balancing adjusts a run based on:
- Player count (more players see more items, so rewards shrink)
- Enemy subfaction (harder variants pay more and roll rarer items)

All functions here are pure lookups over static tables.
"""

from __future__ import annotations
from dataclasses import dataclass
import math

from ..catalog.items import Faction, Rarity


@dataclass(frozen=True)
class SubfactionConfig:
    """Tuning for one enemy subfaction."""
    id: str
    faction: Faction
    name: str
    req_multiplier: float = 1.0
    rare_weight_multiplier: float = 1.0


SUBFACTIONS: dict[str, SubfactionConfig] = {
    cfg.id: cfg for cfg in (
        SubfactionConfig("bugs_vanilla", Faction.TERMINIDS, "Standard"),
        SubfactionConfig("bugs_spore_burst", Faction.TERMINIDS, "Spore Burst Strain", 1.1, 1.1),
        SubfactionConfig("bugs_predator", Faction.TERMINIDS, "Predator Strain", 1.2, 1.2),
        SubfactionConfig("bugs_rupture", Faction.TERMINIDS, "Rupture Strain", 1.3, 1.3),
        SubfactionConfig("bots_vanilla", Faction.AUTOMATONS, "Standard"),
        SubfactionConfig("bots_jet_brigade", Faction.AUTOMATONS, "Jet Brigade", 1.2, 1.2),
        SubfactionConfig("bots_incineration_core", Faction.AUTOMATONS, "Incineration Core", 1.3, 1.3),
        SubfactionConfig("squids_vanilla", Faction.ILLUMINATE, "Standard"),
    )
}

DEFAULT_SUBFACTION = {
    Faction.TERMINIDS: "bugs_vanilla",
    Faction.AUTOMATONS: "bots_vanilla",
    Faction.ILLUMINATE: "squids_vanilla",
}

# More players = easier game = less requisition per player
PLAYER_COUNT_REQ_SCALING = {1: 1.0, 2: 0.8, 3: 0.6, 4: 0.5}

RARE_WEIGHT_SCALING_BASE = 0.7

SLOT_LOCK_COST = {1: 3, 2: 3, 3: 2, 4: 2}
MAX_LOCKED_SLOTS = 3

REROLL_COST = 1
MAX_PLAYERS = 4

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 10
MIN_STAR_RATING = 1
MAX_STAR_RATING = 5

BASE_REQUISITION_REWARD = 1

DIFFICULTY_NAMES = {
    1: "Trivial",
    2: "Easy",
    3: "Medium",
    4: "Challenging",
    5: "Hard",
    6: "Extreme",
    7: "Suicide Mission",
    8: "Impossible",
    9: "Helldive",
    10: "Super Helldive",
}

# Missions per operation in endurance mode
ENDURANCE_MISSION_COUNT = {1: 1, 2: 1, 3: 2, 4: 2, 5: 3, 6: 3, 7: 3, 8: 3, 9: 3, 10: 3}

# Difficulty from which the draft pushes anti-tank items to players without one
ANTI_TANK_PRESSURE_DIFFICULTY = 3

BASE_RARITY_WEIGHTS = {
    Rarity.COMMON: 60,
    Rarity.UNCOMMON: 35,
    Rarity.RARE: 10,
    Rarity.LEGENDARY: 10,
}
# Bonus on top of the base that scales with the rare multiplier
RARITY_SCALED_BONUS = {Rarity.RARE: 5, Rarity.LEGENDARY: 2}

# Event trigger chance per sample collected
SAMPLE_EVENT_CHANCE = {"common": 0.01, "rare": 0.02, "super_rare": 0.03}


def requisition_multiplier(player_count: int, subfaction: str | None) -> float:
    player_mult = PLAYER_COUNT_REQ_SCALING.get(player_count, 1.0)
    sub = SUBFACTIONS.get(subfaction or "")
    return player_mult * (sub.req_multiplier if sub else 1.0)


def rare_weight_multiplier(player_count: int, subfaction: str | None) -> float:
    """Rare/legendary weight scaling: 0.7^(players-1) times the subfaction factor."""
    player_mult = RARE_WEIGHT_SCALING_BASE ** (max(1, player_count) - 1)
    sub = SUBFACTIONS.get(subfaction or "")
    return player_mult * (sub.rare_weight_multiplier if sub else 1.0)


def rarity_weights(multiplier: float = 1.0) -> dict[Rarity, int]:
    """Base rarity weights for a given rare multiplier.

    With a multiplier of 1 this is {60, 35, 15, 12}.
    """
    weights = dict(BASE_RARITY_WEIGHTS)
    for rarity, bonus in RARITY_SCALED_BONUS.items():
        weights[rarity] += round(bonus * multiplier)
    return weights


def slot_lock_cost(player_count: int) -> int:
    return SLOT_LOCK_COST.get(player_count, 3)


def missions_for_difficulty(difficulty: int) -> int:
    return ENDURANCE_MISSION_COUNT.get(difficulty, 1)


def draft_hand_size(star_rating: int) -> int:
    """Cards per hand: 1-2 stars -> 2, 3-4 stars -> 3, 5 stars -> 4."""
    stars = clamp_star_rating(star_rating)
    if stars <= 2:
        return 2
    if stars <= 4:
        return 3
    return 4


def clamp_star_rating(star_rating: int) -> int:
    return max(MIN_STAR_RATING, min(MAX_STAR_RATING, int(star_rating)))


def clamp_difficulty(difficulty: int, ceiling: int = MAX_DIFFICULTY) -> int:
    return max(MIN_DIFFICULTY, min(ceiling, int(difficulty)))


def retrospective_star_rating(difficulty: int) -> int:
    """Star rating used for a catch-up draft of a past difficulty."""
    return min(math.ceil(difficulty / 2), MAX_STAR_RATING)


def subfactions_for(faction: Faction) -> list[str]:
    return [sub.id for sub in SUBFACTIONS.values() if sub.faction == faction]


def default_subfaction(faction: Faction) -> str:
    return DEFAULT_SUBFACTION.get(faction, "bugs_vanilla")


def subfaction_belongs_to(subfaction: str, faction: Faction) -> bool:
    sub = SUBFACTIONS.get(subfaction)
    return bool(sub and sub.faction == faction)


def event_chance(common: int, rare: int, super_rare: int) -> float:
    """Probability that an event fires after a mission, capped at 1."""
    chance = (
        common * SAMPLE_EVENT_CHANCE["common"]
        + rare * SAMPLE_EVENT_CHANCE["rare"]
        + super_rare * SAMPLE_EVENT_CHANCE["super_rare"]
    )
    return min(1.0, chance)
