"""
Events Module - Random events between missions.

- catalog: declarative event definitions and weighted selection
- processor: outcome semantics, producing explicit StateUpdate values
- selection: the multi-step stratagem selection for swap/duplicate
"""

from .catalog import (
    EVENTS,
    EventChoice,
    EventType,
    GameEvent,
    Outcome,
    OutcomeTarget,
    OutcomeType,
    available_events,
    get_event,
    select_random_event,
)

__all__ = [
    "EVENTS",
    "EventChoice",
    "EventType",
    "GameEvent",
    "Outcome",
    "OutcomeTarget",
    "OutcomeType",
    "available_events",
    "get_event",
    "select_random_event",
]
