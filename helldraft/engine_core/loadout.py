"""
Loadout helpers - pure functions over Player/Loadout values.

Used by the reducer for drafting and sacrifices and by the event
processor for outcomes that rewrite loadouts.
"""

from __future__ import annotations

from ..catalog.items import (
    ItemType,
    PROTECTED_ITEMS,
    STARTER_ARMOR,
    STARTER_GRENADE,
    STARTER_SECONDARY,
    get_item,
)
from .state import Loadout, Player, STRATAGEM_SLOTS

# Baseline items put back into a slot when its item is lost
BASELINE_REPLACEMENTS = {
    ItemType.SECONDARY: STARTER_SECONDARY,
    ItemType.GRENADE: STARTER_GRENADE,
    ItemType.ARMOR: STARTER_ARMOR,
}


def is_protected(item_id: str | None) -> bool:
    """Baseline items that can never be sacrificed."""
    return item_id in PROTECTED_ITEMS


def sacrificable_items(player: Player) -> list[str]:
    return [item_id for item_id in player.inventory if not is_protected(item_id)]


def equip(player: Player, item_id: str, slot_index: int | None = None) -> Player | None:
    """
    Equip an owned item in the slot matching its type.

    Stratagems go to slot_index, or the first empty slot when omitted.
    Returns None when the item can't be equipped.
    """
    item = get_item(item_id)
    if item is None or not player.owns(item_id):
        return None

    loadout = player.loadout
    if item.item_type == ItemType.STRATAGEM:
        existing = loadout.stratagem_index(item_id)
        if slot_index is None:
            if existing is not None:
                return player
            slot_index = loadout.first_empty_stratagem()
        if slot_index is None or not 0 <= slot_index < STRATAGEM_SLOTS:
            return None
        if existing is not None and existing != slot_index:
            # Move rather than duplicate
            loadout = loadout.with_stratagem(existing, loadout.stratagems[slot_index])
        return player.with_loadout(loadout.with_stratagem(slot_index, item_id))

    return player.with_loadout(loadout.with_slot(item.item_type, item_id))


def grant_and_equip(player: Player, item_id: str) -> Player:
    """Add an item to inventory and auto-equip it when there's room."""
    player = player.with_items(item_id)
    item = get_item(item_id)
    if item is None:
        return player
    if item.item_type == ItemType.STRATAGEM and player.loadout.stratagems_full:
        return player
    return equip(player, item_id) or player


def remove_item(player: Player, item_id: str) -> Player:
    """
    Remove an item from inventory and loadout.

    Lost secondaries, grenades and armor fall back to the baseline item,
    which is granted back if the player no longer owns it.
    """
    player = player.without_items(item_id)
    loadout = player.loadout
    restored = []

    for item_type in (ItemType.PRIMARY, ItemType.SECONDARY, ItemType.GRENADE,
                      ItemType.ARMOR, ItemType.BOOSTER):
        if loadout.slot_value(item_type) == item_id:
            replacement = BASELINE_REPLACEMENTS.get(item_type)
            loadout = loadout.with_slot(item_type, replacement)
            if replacement:
                restored.append(replacement)

    stratagems = tuple(None if s == item_id else s for s in loadout.stratagems)
    loadout = Loadout(
        primary=loadout.primary,
        secondary=loadout.secondary,
        grenade=loadout.grenade,
        armor=loadout.armor,
        booster=loadout.booster,
        stratagems=stratagems,
    )
    return player.with_loadout(loadout).with_items(*restored)


def ensure_valid_loadout(player: Player) -> Player:
    """
    Patch up a loadout after outcomes removed items.

    Armor defaults to the baseline piece; a helldiver with neither
    primary nor secondary gets the baseline secondary.
    """
    loadout = player.loadout
    added = []
    if not loadout.armor:
        loadout = loadout.with_slot(ItemType.ARMOR, STARTER_ARMOR)
        added.append(STARTER_ARMOR)
    if not loadout.primary and not loadout.secondary:
        loadout = loadout.with_slot(ItemType.SECONDARY, STARTER_SECONDARY)
        added.append(STARTER_SECONDARY)
    if loadout is player.loadout:
        return player
    return player.with_loadout(loadout).with_items(*added)


def restore_saved_stratagems(player: Player) -> Player:
    """Lift a single-weapon restriction once its mission is over."""
    if not player.weapon_restricted or player.saved_stratagems is None:
        return player
    loadout = Loadout(
        primary=player.loadout.primary,
        secondary=player.loadout.secondary,
        grenade=player.loadout.grenade,
        armor=player.loadout.armor,
        booster=player.loadout.booster,
        stratagems=tuple(player.saved_stratagems),
    )
    return player._copy_with(loadout=loadout, weapon_restricted=False, saved_stratagems=None)


def starting_inventory(loadout: Loadout) -> tuple[str, ...]:
    return tuple(dict.fromkeys(loadout.equipped_ids()))


def liquidatable_items(player: Player) -> list[str]:
    """Items a redraft would trade away (everything but the baseline kit and booster)."""
    baseline = {STARTER_SECONDARY, STARTER_GRENADE, STARTER_ARMOR}
    return [
        item_id for item_id in player.inventory
        if item_id not in baseline and not _is_booster(item_id)
    ]


def _is_booster(item_id: str) -> bool:
    item = get_item(item_id)
    return bool(item and item.item_type == ItemType.BOOSTER)
