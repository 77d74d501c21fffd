"""
Engine Core - Deterministic run state and the reducer that drives it.

The engine:
1. Holds the GameState of a run
2. Folds Actions through the pure reducer
3. Deals weighted draft hands from an injected RNG
4. Moves the run between dashboard, draft, sacrifice and event phases
"""

from .state import (
    DraftCard,
    DraftState,
    EventState,
    GameConfig,
    GamePhase,
    GameState,
    Loadout,
    Player,
    new_game_state,
)
from .action import Action, ActionType, ActionPayload, ActionResult
from .draft import generate_draft_hand, generate_booster_draft
from .reducer import Reducer, apply_action, transition

__all__ = [
    "DraftCard",
    "DraftState",
    "EventState",
    "GameConfig",
    "GamePhase",
    "GameState",
    "Loadout",
    "Player",
    "new_game_state",
    "Action",
    "ActionType",
    "ActionPayload",
    "ActionResult",
    "generate_draft_hand",
    "generate_booster_draft",
    "Reducer",
    "apply_action",
    "transition",
]
