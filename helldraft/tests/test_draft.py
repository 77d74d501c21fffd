"""
Tests for the draft hand generator.

Tests:
- Hand sizes by star rating, no duplicates
- Seeded determinism
- Rarity weights converge over many draws
- Pool filtering (owned, burned, locked, excluded, warbonds, uniqueness)
- Weight adjustments
"""

import random
from collections import Counter

import pytest

from ..catalog.items import CATALOG, ItemType, Rarity, get_item
from ..engine_core.balancing import draft_hand_size, rarity_weights
from ..engine_core.draft import (
    available_boosters,
    generate_booster_draft,
    generate_draft_hand,
    replacement_card,
    sample_rarity,
    weighted_pool,
)
from ..engine_core.state import GameConfig, Loadout, Player
from .conftest import with_stratagems


def pool_ids(pool):
    return {item_id for entry in pool for item_id in entry.card.item_ids}


def weight_of(pool, card_id):
    for entry in pool:
        if entry.card.id == card_id:
            return entry.weight
    return None


class TestHandSize:
    """Hands follow the star rating."""

    @pytest.mark.parametrize("stars,expected", [(1, 2), (2, 2), (3, 3), (4, 3), (5, 4)])
    def test_size_by_star_rating(self, fresh_player, stars, expected):
        config = GameConfig(star_rating=stars)
        assert draft_hand_size(stars) == expected
        for seed in range(20):
            hand = generate_draft_hand(fresh_player, 1, config, rng=random.Random(seed))
            assert len(hand) == expected

    @pytest.mark.parametrize("stars", [1, 3, 5])
    def test_no_duplicates(self, fresh_player, stars):
        """Cards and the items on them are unique within a hand."""
        config = GameConfig(star_rating=stars)
        for seed in range(50):
            hand = generate_draft_hand(fresh_player, 4, config, rng=random.Random(seed))
            card_ids = [card.id for card in hand]
            item_ids = [item_id for card in hand for item_id in card.item_ids]
            assert len(card_ids) == len(set(card_ids))
            assert len(item_ids) == len(set(item_ids))

    def test_never_offers_owned_items(self, fresh_player, default_config):
        for seed in range(30):
            hand = generate_draft_hand(fresh_player, 1, default_config, rng=random.Random(seed))
            for card in hand:
                assert not any(fresh_player.owns(item_id) for item_id in card.item_ids)

    def test_explicit_hand_size(self, fresh_player, default_config, rng):
        assert len(generate_draft_hand(fresh_player, 1, default_config, rng=rng, hand_size=1)) == 1

    def test_small_pool_gives_short_hand(self, default_config, rng):
        """A pool smaller than the hand yields every remaining entry."""
        player = Player(id="ada", name="Ada", slot=0, excluded_items=tuple(
            item.id for item in CATALOG if item.id != "p_liberator"
        ))
        hand = generate_draft_hand(player, 1, default_config, rng=rng)
        assert [card.id for card in hand] == ["p_liberator"]


class TestDeterminism:
    """Same seed, same hand."""

    def test_same_seed_same_hand(self, fresh_player):
        config = GameConfig(star_rating=5)
        first = generate_draft_hand(fresh_player, 3, config, rng=random.Random(42))
        second = generate_draft_hand(fresh_player, 3, config, rng=random.Random(42))
        assert [c.id for c in first] == [c.id for c in second]

    def test_sequence_of_hands_repeats(self, fresh_player, default_config):
        def deal_many(seed):
            rng = random.Random(seed)
            return [
                [c.id for c in generate_draft_hand(fresh_player, d, default_config, rng=rng)]
                for d in range(1, 8)
            ]

        assert deal_many(7) == deal_many(7)


class TestRarityWeights:
    """Rarity sampling converges on the configured weights."""

    def test_base_weights(self):
        assert rarity_weights() == {
            Rarity.COMMON: 60,
            Rarity.UNCOMMON: 35,
            Rarity.RARE: 15,
            Rarity.LEGENDARY: 12,
        }

    def test_convergence_over_ten_thousand_draws(self):
        weights = rarity_weights()
        total = sum(weights.values())
        rng = random.Random(2024)
        draws = 10_000
        counts = Counter(sample_rarity(rng, weights) for _ in range(draws))
        for rarity, weight in weights.items():
            assert counts[rarity] / draws == pytest.approx(weight / total, abs=0.02)

    def test_rare_weights_shrink_with_squad_size(self, fresh_player):
        solo = weighted_pool(fresh_player, 1, GameConfig(player_count=1))
        squad = weighted_pool(fresh_player, 1, GameConfig(player_count=4))
        assert weight_of(squad, "st_laser") < weight_of(solo, "st_laser")
        assert weight_of(squad, "st_gatling") == weight_of(solo, "st_gatling")


class TestPoolFiltering:
    """What a player may be offered."""

    def test_burned_only_in_burn_mode(self, fresh_player):
        burned = ("p_liberator",)
        assert "p_liberator" in pool_ids(weighted_pool(fresh_player, 1, GameConfig(), burned))
        pool = weighted_pool(fresh_player, 1, GameConfig(burn_cards=True), burned)
        assert "p_liberator" not in pool_ids(pool)

    def test_locked_slots(self, fresh_player, default_config):
        player = fresh_player._copy_with(locked_slots=(ItemType.STRATAGEM,))
        pool = weighted_pool(player, 1, default_config)
        assert all(entry.card.item_type != ItemType.STRATAGEM for entry in pool)

    def test_excluded_items(self, fresh_player, default_config):
        player = fresh_player._copy_with(excluded_items=("st_ops",))
        assert "st_ops" not in pool_ids(weighted_pool(player, 1, default_config))

    def test_warbond_access(self, fresh_player, default_config):
        player = fresh_player._copy_with(warbonds=("helldivers_mobilize",))
        ids = pool_ids(weighted_pool(player, 1, default_config))
        assert "p_liberator" in ids
        assert "p_dominator" not in ids
        assert "p_double_freedom" not in ids

        with_store = player._copy_with(include_superstore=True)
        assert "p_double_freedom" in pool_ids(weighted_pool(with_store, 1, default_config))

    def test_no_warbonds_means_everything(self, fresh_player, default_config):
        ids = pool_ids(weighted_pool(fresh_player, 1, default_config))
        assert {"p_dominator", "p_double_freedom", "st_hellbomb"} <= ids

    def test_global_uniqueness(self, fresh_player):
        other = Player(id="bob", name="Bob", slot=1).with_items("st_ops")
        config = GameConfig(global_uniqueness=True)
        assert "st_ops" not in pool_ids(weighted_pool(fresh_player, 1, config, all_players=(fresh_player, other)))

    def test_boosters_never_drafted(self, fresh_player, default_config):
        pool = weighted_pool(fresh_player, 1, default_config)
        assert all(entry.card.item_type != ItemType.BOOSTER for entry in pool)

    def test_owned_armor_combo_skipped(self, fresh_player, default_config):
        """a_b01 shares its combo with a_tr40, so that combo is never offered."""
        pool = weighted_pool(fresh_player, 1, default_config)
        assert "a_tr40" not in pool_ids(pool)
        assert "armor:scout:light" in {entry.card.id for entry in pool}


class TestWeights:
    """Per-entry weight adjustments."""

    def test_anti_tank_pressure(self, fresh_player, default_config):
        easy = weight_of(weighted_pool(fresh_player, 1, default_config), "st_eat")
        hard = weight_of(weighted_pool(fresh_player, 3, default_config), "st_eat")
        assert hard == easy + 500

    def test_no_pressure_once_covered(self, fresh_player, default_config):
        player = with_stratagems(fresh_player, "st_ops")
        assert weight_of(weighted_pool(player, 5, default_config), "st_eat") == 35

    def test_second_secondary_penalized(self, fresh_player, default_config):
        assert weight_of(weighted_pool(fresh_player, 1, default_config), "s_redeemer") == 20

    def test_one_backpack_only(self, fresh_player, default_config):
        player = with_stratagems(fresh_player, "st_bp_jump")
        pool = weighted_pool(player, 1, default_config)
        assert weight_of(pool, "st_bp_supply") is None
        assert weight_of(pool, "st_rr") is None

    def test_faction_synergy(self, fresh_player):
        bugs = weighted_pool(fresh_player, 1, GameConfig())
        assert weight_of(bugs, "st_e_napalm") == 35 + 30


class TestReplacementsAndBoosters:

    def test_replacement_not_in_hand(self, fresh_player, default_config):
        for seed in range(20):
            rng = random.Random(seed)
            hand = generate_draft_hand(fresh_player, 1, default_config, rng=rng)
            card = replacement_card(fresh_player, 1, default_config, hand, rng=rng)
            assert card is not None
            assert card.id not in {c.id for c in hand}

    def test_booster_draft_skips_equipped(self, fresh_player, rng):
        equipped = fresh_player.with_items("b_space").with_loadout(
            Loadout(booster="b_space")
        )
        boosters = generate_booster_draft([equipped], rng=rng)
        assert len(boosters) == 2
        assert len(set(boosters)) == 2
        assert "b_space" not in boosters
        assert all(get_item(b).item_type == ItemType.BOOSTER for b in boosters)

    def test_burned_boosters(self, fresh_player):
        burned = ("b_space", "b_stamina")
        assert "b_space" in available_boosters([fresh_player], burned)
        assert "b_space" not in available_boosters([fresh_player], burned, burn_mode=True)

    def test_burn_callback(self, fresh_player, rng):
        burned = []
        config = GameConfig(burn_cards=True)
        hand = generate_draft_hand(fresh_player, 1, config, rng=rng, on_burn=burned.append)
        assert burned == [item_id for card in hand for item_id in card.item_ids]
