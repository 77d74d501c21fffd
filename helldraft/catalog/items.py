"""
Item Catalog - Read-only equipment reference data.

Items are immutable catalog entries. Game state only ever stores item ids;
everything else (type, rarity, tags, warbond) is looked up here.

The catalog ships the base warbond plus the handful of premium and
superstore items that events refer to by id.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum


class ItemType(Enum):
    """Equipment slot families."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    GRENADE = "grenade"
    STRATAGEM = "stratagem"
    BOOSTER = "booster"
    ARMOR = "armor"


class Rarity(Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    LEGENDARY = "legendary"


class Tag(Enum):
    """Item tags used by draft weighting and event filters."""
    FIRE = "fire"
    ANTI_TANK = "anti_tank"
    STUN = "stun"
    SMOKE = "smoke"
    BACKPACK = "backpack"
    SUPPORT_WEAPON = "support_weapon"
    PRECISION = "precision"
    EXPLOSIVE = "explosive"
    DEFENSIVE = "defensive"


class Faction(Enum):
    TERMINIDS = "terminids"
    AUTOMATONS = "automatons"
    ILLUMINATE = "illuminate"


class ArmorClass(Enum):
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


# Baseline equipment every helldiver starts with
STARTER_SECONDARY = "s_peacemaker"
STARTER_GRENADE = "g_he"
STARTER_ARMOR = "a_b01"

# Items that can never be sacrificed
PROTECTED_ITEMS = frozenset({STARTER_SECONDARY, STARTER_ARMOR})

BASE_WARBOND = "helldivers_mobilize"
DEFAULT_WARBONDS = (BASE_WARBOND,)


@dataclass(frozen=True)
class Item:
    """
    A catalog entry.

    Armor pieces carry a passive and an armor class; pieces sharing both
    are drafted together as one armor combo.
    """
    id: str
    name: str
    item_type: ItemType
    rarity: Rarity
    tags: tuple[Tag, ...] = ()
    warbond: str | None = BASE_WARBOND
    superstore: bool = False
    passive: str | None = None
    armor_class: ArmorClass | None = None

    def has_tag(self, tag: Tag) -> bool:
        return tag in self.tags


def _item(item_id, name, item_type, rarity, *tags, warbond=BASE_WARBOND, superstore=False):
    return Item(
        id=item_id,
        name=name,
        item_type=item_type,
        rarity=rarity,
        tags=tuple(tags),
        warbond=None if superstore else warbond,
        superstore=superstore,
    )


def _armor(item_id, name, rarity, passive, armor_class, *tags, warbond=BASE_WARBOND):
    return Item(
        id=item_id,
        name=name,
        item_type=ItemType.ARMOR,
        rarity=rarity,
        tags=tuple(tags),
        warbond=warbond,
        passive=passive,
        armor_class=armor_class,
    )


P, S, G, ST, B = (
    ItemType.PRIMARY,
    ItemType.SECONDARY,
    ItemType.GRENADE,
    ItemType.STRATAGEM,
    ItemType.BOOSTER,
)
C, U, R, L = Rarity.COMMON, Rarity.UNCOMMON, Rarity.RARE, Rarity.LEGENDARY
LIGHT, MEDIUM, HEAVY = ArmorClass.LIGHT, ArmorClass.MEDIUM, ArmorClass.HEAVY


CATALOG: tuple[Item, ...] = (
    # Primaries
    _item("p_liberator", "AR-23 Liberator", P, C),
    _item("p_punisher", "SG-8 Punisher", P, C, Tag.STUN),
    _item("p_breaker", "SG-225 Breaker", P, U),
    _item("p_breaker_sp", "SG-225SP Breaker Spray&Pray", P, C),
    _item("p_scythe", "LAS-5 Scythe", P, C),
    _item("p_diligence", "R-63 Diligence", P, C, Tag.PRECISION),
    _item("p_cs", "R-63CS Counter Sniper", P, U, Tag.PRECISION),
    _item("p_defender", "SMG-37 Defender", P, C),
    _item("p_lib_pen", "AR-23P Liberator Penetrator", P, U, Tag.PRECISION),
    _item("p_slugger", "SG-8S Slugger", P, R, Tag.PRECISION),
    _item("p_scorcher", "PLAS-1 Scorcher", P, R, Tag.EXPLOSIVE),
    _item("p_constitution", "R-2124 Constitution", P, C, Tag.PRECISION),
    _item("p_lib_con", "AR-23C Liberator Concussive", P, U, Tag.STUN, warbond="steeled_veterans"),
    _item("p_breaker_inc", "SG-225IE Breaker Incendiary", P, R, Tag.FIRE, warbond="steeled_veterans"),
    _item("p_dominator", "JAR-5 Dominator", P, R, Tag.PRECISION, warbond="steeled_veterans"),
    _item("p_sickle", "LAS-16 Sickle", P, R, warbond="cutting_edge"),
    _item("p_blitzer", "ARC-12 Blitzer", P, R, Tag.STUN, warbond="cutting_edge"),
    _item("p_double_freedom", "DBS-2 Double Freedom", P, U, superstore=True),
    _item("p_exploding_eagle", "StA-X3 W.A.S.P. Launcher", P, L, Tag.EXPLOSIVE, Tag.ANTI_TANK,
          warbond="servants_of_freedom"),

    # Secondaries
    _item("s_peacemaker", "P-2 Peacemaker", S, C),
    _item("s_redeemer", "P-19 Redeemer", S, C),
    _item("s_senator", "P-4 Senator", S, U, Tag.PRECISION, warbond="steeled_veterans"),
    _item("s_dagger", "LAS-7 Dagger", S, C, warbond="cutting_edge"),
    _item("s_saber", "CQC-2 Saber", S, U, warbond="masters_of_ceremony"),
    _item("s_stun_baton", "CQC-30 Stun Baton", S, C, Tag.STUN, superstore=True),
    _item("s_warrant", "P-92 Warrant", S, U, superstore=True),

    # Throwables
    _item("g_he", "G-12 High Explosive", G, C, Tag.EXPLOSIVE),
    _item("g_frag", "G-6 Frag", G, C, Tag.EXPLOSIVE),
    _item("g_impact", "G-16 Impact", G, U, Tag.EXPLOSIVE),
    _item("g_smoke", "G-3 Smoke", G, U, Tag.SMOKE),
    _item("g_inc", "G-10 Incendiary", G, C, Tag.FIRE, warbond="steeled_veterans"),
    _item("g_stun", "G-23 Stun", G, R, Tag.STUN, warbond="cutting_edge"),

    # Armor
    _armor("a_sc34", "SC-34 Infiltrator", C, "scout", LIGHT),
    _armor("a_sc30", "SC-30 Trailblazer Scout", C, "scout", LIGHT),
    _armor("a_fs05", "FS-05 Marksman", C, "fortified", HEAVY, Tag.DEFENSIVE),
    _armor("a_fs23", "FS-23 Battle Master", U, "fortified", HEAVY, Tag.DEFENSIVE),
    _armor("a_ce35", "CE-35 Trench Engineer", C, "engineering_kit", MEDIUM),
    _armor("a_cm09", "CM-09 Bonesnapper", C, "med_kit", MEDIUM),
    _armor("a_cm14", "CM-14 Physician", U, "med_kit", MEDIUM),
    _armor("a_sa04", "SA-04 Combat Technician", U, "scout", MEDIUM),
    _armor("a_dp11", "DP-11 Champion of the People", U, "democracy_protects", MEDIUM),
    _armor("a_b01", "B-01 Tactical", C, "extra_padding", MEDIUM),
    _armor("a_tr40", "TR-40 Gold Eagle", C, "extra_padding", MEDIUM),
    _armor("a_sa25", "SA-25 Steel Trooper", U, "servo_assisted", MEDIUM, warbond="steeled_veterans"),
    _armor("a_sa32", "SA-32 Dynamo", R, "servo_assisted", HEAVY, warbond="steeled_veterans"),
    _armor("a_ex00", "EX-00 Prototype X", R, "electrical_conduit", LIGHT, warbond="cutting_edge"),
    _armor("a_re1861", "RE-1861 Parade Commander", U, "reinforced_epaulettes", LIGHT,
           warbond="masters_of_ceremony"),
    _armor("a_re2310", "RE-2310 Honorary Guard", U, "reinforced_epaulettes", MEDIUM,
           warbond="masters_of_ceremony"),

    # Boosters
    _item("b_space", "Hellpod Space Optimization", B, R),
    _item("b_stamina", "Stamina Enhancement", B, R),
    _item("b_muscle", "Muscle Enhancement", B, U),
    _item("b_reinforce", "Reinforcement Budget", B, C),
    _item("b_vitality", "Vitality Enhancement", B, U),
    _item("b_uav", "UAV Recon", B, C),
    _item("b_flex_reinforce", "Flexible Reinforcement Budget", B, U, warbond="steeled_veterans"),

    # Stratagems
    _item("st_ops", "Orbital Precision Strike", ST, C, Tag.ANTI_TANK, Tag.PRECISION),
    _item("st_gatling", "Orbital Gatling Barrage", ST, C),
    _item("st_airburst", "Orbital Airburst Strike", ST, C),
    _item("st_120", "Orbital 120mm HE Barrage", ST, U, Tag.EXPLOSIVE),
    _item("st_380", "Orbital 380mm HE Barrage", ST, R, Tag.EXPLOSIVE, Tag.ANTI_TANK),
    _item("st_laser", "Orbital Laser", ST, R, Tag.ANTI_TANK, Tag.FIRE),
    _item("st_railcannon", "Orbital Railcannon Strike", ST, R, Tag.ANTI_TANK, Tag.PRECISION),
    _item("st_ems_o", "Orbital EMS Strike", ST, U, Tag.STUN),
    _item("st_smoke_o", "Orbital Smoke Strike", ST, C, Tag.SMOKE),
    _item("st_e_strafe", "Eagle Strafing Run", ST, C),
    _item("st_e_airstrike", "Eagle Airstrike", ST, U, Tag.EXPLOSIVE, Tag.ANTI_TANK),
    _item("st_e_cluster", "Eagle Cluster Bomb", ST, U),
    _item("st_e_napalm", "Eagle Napalm Airstrike", ST, U, Tag.FIRE),
    _item("st_e_500", "Eagle 500kg Bomb", ST, R, Tag.ANTI_TANK, Tag.EXPLOSIVE),
    _item("st_mg43", "Machine Gun MG-43", ST, C, Tag.SUPPORT_WEAPON),
    _item("st_amr", "Anti-Materiel Rifle", ST, U, Tag.SUPPORT_WEAPON, Tag.PRECISION),
    _item("st_stalwart", "Stalwart", ST, C, Tag.SUPPORT_WEAPON),
    _item("st_eat", "EAT-17 Expendable Anti-Tank", ST, U, Tag.SUPPORT_WEAPON, Tag.ANTI_TANK),
    _item("st_rr", "Recoilless Rifle", ST, U, Tag.SUPPORT_WEAPON, Tag.ANTI_TANK, Tag.BACKPACK),
    _item("st_flame", "Flamethrower", ST, U, Tag.SUPPORT_WEAPON, Tag.FIRE),
    _item("st_ac", "Autocannon AC-8", ST, U, Tag.SUPPORT_WEAPON, Tag.EXPLOSIVE, Tag.BACKPACK),
    _item("st_railgun", "Railgun", ST, R, Tag.SUPPORT_WEAPON, Tag.ANTI_TANK, Tag.PRECISION),
    _item("st_spear", "Spear", ST, R, Tag.SUPPORT_WEAPON, Tag.ANTI_TANK, Tag.BACKPACK),
    _item("st_arc", "Arc Thrower", ST, R, Tag.SUPPORT_WEAPON),
    _item("st_quasar", "Quasar Cannon", ST, R, Tag.SUPPORT_WEAPON, Tag.ANTI_TANK),
    _item("st_bp_jump", "Jump Pack", ST, U, Tag.BACKPACK),
    _item("st_bp_supply", "Supply Pack", ST, U, Tag.BACKPACK),
    _item("st_bp_dog", "Guard Dog", ST, C, Tag.BACKPACK),
    _item("st_bp_shield", "Shield Generator Pack", ST, R, Tag.BACKPACK, Tag.DEFENSIVE),
    _item("st_s_mg", "Machine Gun Sentry", ST, C, Tag.DEFENSIVE),
    _item("st_s_gat", "Gatling Sentry", ST, C, Tag.DEFENSIVE),
    _item("st_s_mortar", "Mortar Sentry", ST, U, Tag.DEFENSIVE, Tag.EXPLOSIVE),
    _item("st_s_rocket", "Rocket Sentry", ST, U, Tag.DEFENSIVE, Tag.ANTI_TANK),
    _item("st_s_tesla", "Tesla Tower", ST, R, Tag.DEFENSIVE),
    _item("st_s_mines", "Anti-Personnel Mines", ST, C, Tag.DEFENSIVE),
    _item("st_flag", "CQC-1 One True Flag", ST, U, Tag.SUPPORT_WEAPON, warbond="masters_of_ceremony"),
    _item("st_hellbomb", "Portable Hellbomb", ST, L, Tag.BACKPACK, Tag.EXPLOSIVE, Tag.ANTI_TANK,
          warbond="servants_of_freedom"),
)

_BY_ID: dict[str, Item] = {item.id: item for item in CATALOG}


def get_item(item_id: str | None) -> Item | None:
    """Look up an item by id."""
    if item_id is None:
        return None
    return _BY_ID.get(item_id)


def item_name(item_id: str | None) -> str:
    item = get_item(item_id)
    return item.name if item else "Unknown Item"


def items_of_type(item_type: ItemType) -> list[Item]:
    return [item for item in CATALOG if item.item_type == item_type]


def item_has_tag(item_id: str | None, tag: Tag) -> bool:
    item = get_item(item_id)
    return bool(item and item.has_tag(tag))


def any_item_has_tag(item_ids, tag: Tag) -> bool:
    return any(item_has_tag(item_id, tag) for item_id in item_ids)


def player_can_access(item: Item, warbonds, include_superstore: bool) -> bool:
    """
    Check warbond/superstore access.

    An empty warbond list means no filtering at all.
    """
    if not warbonds:
        return True
    if item.warbond and item.warbond in warbonds:
        return True
    if item.superstore and include_superstore:
        return True
    return not item.warbond and not item.superstore


def armor_combo_key(item: Item) -> str:
    """Key identifying an armor passive/class combo."""
    armor_class = item.armor_class.value if item.armor_class else "none"
    return f"armor:{item.passive}:{armor_class}"


def armor_combos(armor_items) -> dict[str, list[Item]]:
    """Group armor pieces by passive and class, preserving catalog order."""
    combos: dict[str, list[Item]] = {}
    for item in armor_items:
        combos.setdefault(armor_combo_key(item), []).append(item)
    return combos


def owns_armor_combo(inventory, combo_key: str) -> bool:
    for item_id in inventory:
        item = get_item(item_id)
        if item and item.item_type == ItemType.ARMOR and armor_combo_key(item) == combo_key:
            return True
    return False
