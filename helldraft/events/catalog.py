"""
Event Catalog - Declarative random events.

Events fire between missions. Each event either offers choices (each
choice a list of outcomes) or carries its outcomes directly:
- CHOICE: players pick one choice
- RANDOM: one outcome is picked by weight
- BENEFICIAL / DETRIMENTAL: every outcome applies

Outcomes are plain data; helldraft.events.processor gives them meaning.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any
import random


class EventType(Enum):
    CHOICE = "choice"
    RANDOM = "random"
    BENEFICIAL = "beneficial"
    DETRIMENTAL = "detrimental"


class OutcomeType(Enum):
    """Every effect an event outcome can have."""
    ADD_REQUISITION = "add_requisition"
    SPEND_REQUISITION = "spend_requisition"
    LOSE_REQUISITION = "lose_requisition"
    CHANGE_FACTION = "change_faction"
    EXTRA_DRAFT = "extra_draft"
    SKIP_DIFFICULTY = "skip_difficulty"
    REPLAY_DIFFICULTY = "replay_difficulty"
    SACRIFICE_ITEM = "sacrifice_item"
    GAIN_BOOSTER = "gain_booster"
    GAIN_SECONDARY = "gain_secondary"
    GAIN_THROWABLE = "gain_throwable"
    RANDOM_OUTCOME = "random_outcome"
    REMOVE_ITEM = "remove_item"
    GAIN_SPECIFIC_ITEM = "gain_specific_item"
    DUPLICATE_STRATAGEM = "duplicate_stratagem_to_another_helldiver"
    SWAP_STRATAGEM = "swap_stratagem_with_player"
    RESTRICT_TO_SINGLE_WEAPON = "restrict_to_single_weapon"
    REDRAFT = "redraft"
    TRANSFORM_LOADOUT = "transform_loadout"
    LIGHT_ARMOR_AND_THROWABLE_DRAFT = "gain_random_light_armor_and_draft_throwable"
    HEAVY_ARMOR_AND_SECONDARY_DRAFT = "gain_random_heavy_armor_and_draft_secondary"
    DUPLICATE_LOADOUT_TO_ALL = "duplicate_loadout_to_all"
    SET_CEREMONIAL_LOADOUT = "set_ceremonial_loadout"
    TRIGGER_GAME_OVER = "trigger_game_over"


class OutcomeTarget(Enum):
    """Who an outcome applies to."""
    CURRENT = "current"
    ALL = "all"
    CHOOSE = "choose"
    RANDOM = "random"


@dataclass(frozen=True)
class Outcome:
    type: OutcomeType
    value: Any = None
    target_player: OutcomeTarget | None = None
    weight: int = 1
    possible_outcomes: tuple[Outcome, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "weight": self.weight}
        if self.value is not None:
            data["value"] = self.value
        if self.target_player is not None:
            data["target_player"] = self.target_player.value
        if self.possible_outcomes:
            data["possible_outcomes"] = [o.to_dict() for o in self.possible_outcomes]
        return data


@dataclass(frozen=True)
class EventChoice:
    text: str
    outcomes: tuple[Outcome, ...] = ()
    requires_requisition: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "requires_requisition": self.requires_requisition,
        }


@dataclass(frozen=True)
class GameEvent:
    """
    A catalog event.

    target_player is "single" when the event is about one helldiver
    (chosen before confirming) or "all" when it affects the squad.
    """
    id: str
    name: str
    description: str
    type: EventType
    min_difficulty: int = 1
    max_difficulty: int = 10
    weight: int = 10
    target_player: str = "all"
    requires_multiplayer: bool = False
    choices: tuple[EventChoice, ...] = ()
    outcomes: tuple[Outcome, ...] = ()

    def get_choice(self, index: int | None) -> EventChoice | None:
        if index is None or not 0 <= index < len(self.choices):
            return None
        return self.choices[index]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "min_difficulty": self.min_difficulty,
            "max_difficulty": self.max_difficulty,
            "weight": self.weight,
            "target_player": self.target_player,
            "requires_multiplayer": self.requires_multiplayer,
            "choices": [c.to_dict() for c in self.choices],
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


def _o(outcome_type, value=None, target=None, weight=1, possible=()):
    return Outcome(outcome_type, value, target, weight, tuple(possible))


O = OutcomeType
CHOOSE, ALL, RANDOM_TARGET = OutcomeTarget.CHOOSE, OutcomeTarget.ALL, OutcomeTarget.RANDOM


EVENTS: tuple[GameEvent, ...] = (
    GameEvent(
        id="yearly_bonus",
        name="Annual Requisition Payment",
        description=(
            "Super Earth's fiscal year has ended and your yearly bonus requisition "
            "has been processed. Most Helldivers don't survive long enough to see this day."
        ),
        type=EventType.BENEFICIAL,
        weight=8,
        outcomes=(_o(O.ADD_REQUISITION, 1),),
    ),
    GameEvent(
        id="enemy_counterattack",
        name="Enemy Counteroffensive",
        description=(
            "Intelligence reports a massive counterattack in response to your recent "
            "victories. Command demands you hold your position, but retreat is an option."
        ),
        type=EventType.CHOICE,
        min_difficulty=4,
        weight=10,
        choices=(
            EventChoice("Hold the Line", (_o(O.LOSE_REQUISITION, 3),)),
            EventChoice("Tactical Retreat", (_o(O.CHANGE_FACTION),)),
        ),
    ),
    GameEvent(
        id="teamwork_training",
        name="Coordinated Tactics Training",
        description=(
            "Your squad has been selected for an experimental coordination program. "
            "Learn to share stratagem deployment with a squadmate, or practice "
            "equipment swapping protocols."
        ),
        type=EventType.CHOICE,
        min_difficulty=2,
        weight=12,
        requires_multiplayer=True,
        target_player="single",
        choices=(
            EventChoice(
                "Duplicate Stratagem Training",
                (_o(O.DUPLICATE_STRATAGEM, target=CHOOSE),),
                requires_requisition=1,
            ),
            EventChoice("Equipment Swap Protocol", (_o(O.SWAP_STRATAGEM, target=CHOOSE),)),
        ),
    ),
    GameEvent(
        id="national_holiday",
        name="Democracy Day Celebration",
        description=(
            "Today marks the founding of Managed Democracy! Special benefits are "
            "being distributed to active combat personnel."
        ),
        type=EventType.CHOICE,
        min_difficulty=4,
        max_difficulty=6,
        weight=50,
        choices=(
            EventChoice("Request Tactical Booster", (_o(O.GAIN_BOOSTER, target=ALL),)),
            EventChoice("Request Hazard Pay", (_o(O.ADD_REQUISITION, 2),)),
        ),
    ),
    GameEvent(
        id="mysterious_deal",
        name="A Shadowy Proposition",
        description=(
            "A cloaked figure approaches you in the armory: \"Prove your skill with a "
            "single weapon in your next engagement, and I'll ensure you receive... "
            "priority access to equipment.\""
        ),
        type=EventType.CHOICE,
        min_difficulty=3,
        weight=8,
        target_player="single",
        choices=(
            EventChoice(
                "Accept the Deal",
                (_o(O.RESTRICT_TO_SINGLE_WEAPON, target=CHOOSE), _o(O.EXTRA_DRAFT, 2)),
            ),
            EventChoice("Decline Politely"),
        ),
    ),
    GameEvent(
        id="promotion_offer",
        name="Career Advancement Opportunity",
        description=(
            "The Democracy Officer summons you. \"Your performance has been... noted. "
            "We can fast-track your progression. Refuse, and we'll need to reassess "
            "your equipment clearance.\""
        ),
        type=EventType.CHOICE,
        min_difficulty=2,
        max_difficulty=9,
        weight=10,
        target_player="single",
        choices=(
            EventChoice("Accept Promotion", (_o(O.SKIP_DIFFICULTY, 1),)),
            EventChoice("Decline (Demotion)", (_o(O.REMOVE_ITEM, 1, CHOOSE),)),
        ),
    ),
    GameEvent(
        id="combat_review",
        name="Performance Review",
        description=(
            "The Democracy Officer shows you footage from your last mission. "
            "\"Suboptimal. I'm offering you a chance to repeat this tier and "
            "demonstrate improvement.\""
        ),
        type=EventType.CHOICE,
        min_difficulty=2,
        weight=9,
        choices=(
            EventChoice(
                "Accept Remedial Training",
                (_o(O.REPLAY_DIFFICULTY, 1),),
                requires_requisition=1,
            ),
            EventChoice("Receive Corporal Punishment"),
        ),
    ),
    GameEvent(
        id="fiscal_year_end",
        name="Budget Allocation Decision",
        description=(
            "\"End of fiscal year means use it or lose it. We can fund extra "
            "equipment for you, or liquidate your current assets and reinvest in "
            "fresh gear. Your call, Helldiver.\""
        ),
        type=EventType.CHOICE,
        min_difficulty=3,
        weight=8,
        target_player="single",
        choices=(
            EventChoice("Requisition Extra Gear", (_o(O.EXTRA_DRAFT, 1, CHOOSE),)),
            EventChoice("Reinvest Assets", (_o(O.REDRAFT, 1, CHOOSE),)),
        ),
    ),
    GameEvent(
        id="supply_lottery",
        name="Ministry Supply Lottery",
        description=(
            "Every Helldiver's serial number has been entered into the Ministry of "
            "Logistics lottery. Results are final."
        ),
        type=EventType.RANDOM,
        min_difficulty=2,
        weight=8,
        outcomes=(
            _o(O.RANDOM_OUTCOME, possible=(
                _o(O.GAIN_SECONDARY, weight=2),
                _o(O.GAIN_THROWABLE, weight=2),
            ), weight=3),
            _o(O.LOSE_REQUISITION, 1, weight=1),
        ),
    ),
    GameEvent(
        id="field_promotion",
        name="Field Requisition Voucher",
        description="A clerical error has left one voucher for an experimental booster unclaimed.",
        type=EventType.BENEFICIAL,
        min_difficulty=3,
        weight=6,
        outcomes=(_o(O.GAIN_BOOSTER, target=RANDOM_TARGET),),
    ),
    GameEvent(
        id="armory_malfunction",
        name="Armory Malfunction",
        description=(
            "A fault in the hellpod loading system has scrambled part of a "
            "Helldiver's equipment manifest."
        ),
        type=EventType.DETRIMENTAL,
        min_difficulty=3,
        weight=6,
        target_player="single",
        outcomes=(_o(O.TRANSFORM_LOADOUT, 2, CHOOSE),),
    ),
    GameEvent(
        id="requisitioned_equipment",
        name="Equipment Reallocation",
        description="Command needs a stratagem clearance for a higher-priority squad.",
        type=EventType.DETRIMENTAL,
        min_difficulty=5,
        weight=5,
        target_player="single",
        outcomes=(_o(O.SACRIFICE_ITEM, "stratagem", CHOOSE),),
    ),
    GameEvent(
        id="specialist_deployment",
        name="Specialist Deployment",
        description=(
            "Command is testing new armor doctrine. Volunteer for fast recon or "
            "for frontline assault."
        ),
        type=EventType.CHOICE,
        min_difficulty=3,
        weight=7,
        choices=(
            EventChoice("Recon Doctrine", (_o(O.LIGHT_ARMOR_AND_THROWABLE_DRAFT),)),
            EventChoice("Assault Doctrine", (_o(O.HEAVY_ARMOR_AND_SECONDARY_DRAFT),)),
        ),
    ),
    GameEvent(
        id="propaganda_shoot",
        name="Propaganda Broadcast",
        description=(
            "The Ministry of Truth is filming a recruitment broadcast and wants the "
            "squad to look the part."
        ),
        type=EventType.CHOICE,
        min_difficulty=4,
        weight=5,
        requires_multiplayer=True,
        target_player="single",
        choices=(
            EventChoice("Match the Poster Helldiver", (_o(O.DUPLICATE_LOADOUT_TO_ALL, target=CHOOSE),)),
            EventChoice("Parade Uniforms", (_o(O.SET_CEREMONIAL_LOADOUT, target=ALL),)),
        ),
    ),
    GameEvent(
        id="black_market",
        name="Black Market Contact",
        description="A smuggler offers a crate of decommissioned ordnance, no questions asked.",
        type=EventType.CHOICE,
        min_difficulty=5,
        weight=4,
        target_player="single",
        choices=(
            EventChoice(
                "Buy the Crate",
                (_o(O.GAIN_SPECIFIC_ITEM, "st_e_500", CHOOSE),),
                requires_requisition=2,
            ),
            EventChoice("Report the Smuggler", (_o(O.ADD_REQUISITION, 1),)),
        ),
    ),
    GameEvent(
        id="loyalty_tribunal",
        name="Loyalty Tribunal",
        description=(
            "The squad has been summoned before a loyalty tribunal. Cooperation is "
            "expensive. Defiance is final."
        ),
        type=EventType.CHOICE,
        min_difficulty=7,
        weight=2,
        choices=(
            EventChoice("Pay the Fines", (_o(O.SPEND_REQUISITION, 2),)),
            EventChoice("Defy the Tribunal", (_o(O.TRIGGER_GAME_OVER),)),
        ),
    ),
)

_BY_ID = {event.id: event for event in EVENTS}


def get_event(event_id: str | None) -> GameEvent | None:
    if event_id is None:
        return None
    return _BY_ID.get(event_id)


def available_events(difficulty: int, multiplayer: bool, seen=()) -> list[GameEvent]:
    """Events eligible at this difficulty that haven't fired this run."""
    seen = set(seen)
    return [
        event for event in EVENTS
        if event.min_difficulty <= difficulty <= event.max_difficulty
        and (multiplayer or not event.requires_multiplayer)
        and event.id not in seen
    ]


def select_random_event(
    difficulty: int,
    multiplayer: bool,
    seen,
    rng: random.Random,
) -> GameEvent | None:
    """Pick an eligible event weighted by event weight."""
    candidates = available_events(difficulty, multiplayer, seen)
    if not candidates:
        return None
    return rng.choices(candidates, weights=[e.weight for e in candidates], k=1)[0]


def event_outcomes(event: GameEvent, choice_index: int | None) -> tuple[Outcome, ...]:
    """Outcomes that confirming this event would apply (before random picks)."""
    if event.type == EventType.CHOICE:
        choice = event.get_choice(choice_index)
        return choice.outcomes if choice else ()
    return event.outcomes


def _walk(outcomes):
    for outcome in outcomes:
        yield outcome
        yield from _walk(outcome.possible_outcomes)


def needs_player_choice(event: GameEvent | None) -> bool:
    """True when a single-target event needs a helldiver picked first."""
    if event is None or event.target_player != "single":
        return False
    outcome_sets = [c.outcomes for c in event.choices] or [event.outcomes]
    return any(
        outcome.target_player == OutcomeTarget.CHOOSE
        for outcomes in outcome_sets
        for outcome in _walk(outcomes)
    )


def stratagem_selection_mode(event: GameEvent | None, choice_index: int | None) -> str | None:
    """'swap' or 'duplicate' when the chosen outcomes need stratagem selection."""
    if event is None:
        return None
    for outcome in _walk(event_outcomes(event, choice_index)):
        if outcome.type == OutcomeType.SWAP_STRATAGEM:
            return "swap"
        if outcome.type == OutcomeType.DUPLICATE_STRATAGEM:
            return "duplicate"
    return None
