"""
Catalog Module - Static equipment reference data.
"""

from .items import (
    CATALOG,
    Faction,
    Item,
    ItemType,
    Rarity,
    Tag,
    get_item,
    item_name,
    items_of_type,
)

__all__ = [
    "CATALOG",
    "Faction",
    "Item",
    "ItemType",
    "Rarity",
    "Tag",
    "get_item",
    "item_name",
    "items_of_type",
]
