"""
Stratagem selection - the multi-step pick for swap/duplicate outcomes.

Stages advance NONE -> SOURCE_CHOSEN -> STRATAGEM_CHOSEN -> TARGET_CHOSEN
-> TARGET_STRATAGEM_CHOSEN -> READY_TO_CONFIRM. Every transition returns a
new EventSelection, or None when the step is not valid from the current
stage; callers treat None as a no-op.

mode is "swap" or "duplicate". A duplicate only needs a target stratagem
when the target helldiver has no free slot.
"""

from __future__ import annotations

from ..engine_core.state import EventSelection, Player, SelectionStage, StratagemSelection


def _player(players, index):
    if index is None or not 0 <= index < len(players):
        return None
    return players[index]


def _stratagem_at(player: Player, slot_index: int | None) -> str | None:
    if slot_index is None or not 0 <= slot_index < len(player.loadout.stratagems):
        return None
    return player.loadout.stratagems[slot_index]


def select_source(selection: EventSelection, players, player_index: int) -> EventSelection | None:
    if selection.stage != SelectionStage.NONE:
        return None
    player = _player(players, player_index)
    if player is None or not any(player.loadout.stratagems):
        return None
    return EventSelection(stage=SelectionStage.SOURCE_CHOSEN, source_player=player_index)


def select_stratagem(
    selection: EventSelection, players, player_index: int, slot_index: int
) -> EventSelection | None:
    if selection.stage != SelectionStage.SOURCE_CHOSEN or player_index != selection.source_player:
        return None
    player = _player(players, player_index)
    stratagem = _stratagem_at(player, slot_index) if player else None
    if stratagem is None:
        return None
    return EventSelection(
        stage=SelectionStage.STRATAGEM_CHOSEN,
        source_player=selection.source_player,
        source_stratagem=StratagemSelection(player_index, slot_index, stratagem),
    )


def select_target(
    selection: EventSelection, players, player_index: int, mode: str
) -> EventSelection | None:
    if selection.stage != SelectionStage.STRATAGEM_CHOSEN or player_index == selection.source_player:
        return None
    target = _player(players, player_index)
    if target is None:
        return None
    stratagem = selection.source_stratagem.stratagem_id
    if mode == "duplicate" and target.loadout.stratagem_index(stratagem) is not None:
        return None
    if mode == "swap" and not any(target.loadout.stratagems):
        return None

    chosen = EventSelection(
        stage=SelectionStage.TARGET_CHOSEN,
        source_player=selection.source_player,
        source_stratagem=selection.source_stratagem,
        target_player=player_index,
    )
    if mode == "duplicate" and not target.loadout.stratagems_full:
        return _ready(chosen)
    return chosen


def select_target_stratagem(
    selection: EventSelection, players, player_index: int, slot_index: int, mode: str
) -> EventSelection | None:
    if selection.stage != SelectionStage.TARGET_CHOSEN or player_index != selection.target_player:
        return None
    target = _player(players, player_index)
    source = _player(players, selection.source_player)
    if target is None or source is None:
        return None
    stratagem = _stratagem_at(target, slot_index)
    if stratagem is None:
        return None

    if mode == "swap":
        # Neither side may end up holding the same stratagem twice
        offered = selection.source_stratagem.stratagem_id
        if stratagem != offered and (
            source.loadout.stratagem_index(stratagem) is not None
            or target.loadout.stratagem_index(offered) is not None
        ):
            return None

    return _ready(EventSelection(
        stage=SelectionStage.TARGET_STRATAGEM_CHOSEN,
        source_player=selection.source_player,
        source_stratagem=selection.source_stratagem,
        target_player=selection.target_player,
        target_stratagem=StratagemSelection(player_index, slot_index, stratagem),
    ))


def _ready(selection: EventSelection) -> EventSelection:
    return EventSelection(
        stage=SelectionStage.READY_TO_CONFIRM,
        source_player=selection.source_player,
        source_stratagem=selection.source_stratagem,
        target_player=selection.target_player,
        target_stratagem=selection.target_stratagem,
    )


def reset() -> EventSelection:
    return EventSelection()


def is_ready(selection: EventSelection) -> bool:
    return selection.stage == SelectionStage.READY_TO_CONFIRM
