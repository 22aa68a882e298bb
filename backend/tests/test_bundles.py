import time

import pytest

from core.bundles import (
    apply_deltas,
    describe_bundles,
    dump_inventory,
    fill_largest_first,
    load_inventory,
    normalize_bundle_sizes,
    take_largest_first,
    total_units,
    validate_bundle_size,
)


def test_total_units_sums_size_times_count():
    assert total_units({50: 3, 20: 5, 1: 100}) == 350
    assert total_units({}) == 0
    assert total_units(None) == 0


def test_take_largest_first_prefers_big_bundles():
    assert take_largest_first({50: 3, 20: 5, 1: 100}, 120) == {50: 2, 20: 1}


def test_take_largest_first_caps_at_available_and_falls_through():
    # only one fifty on hand, the rest comes from twenties
    assert take_largest_first({50: 1, 20: 5}, 110) == {50: 1, 20: 3}


def test_take_largest_first_returns_none_when_not_exact():
    assert take_largest_first({50: 1}, 30) is None
    assert take_largest_first({20: 1, 1: 5}, 26) is None


def test_take_largest_first_ignores_zero_count_bundles():
    assert take_largest_first({50: 0, 1: 10}, 7) == {1: 7}


def test_take_largest_first_backs_off_large_bundle_when_greedy_strands_units():
    # greedy would take the fifty and strand 10; three twenties fit exactly
    assert take_largest_first({50: 1, 20: 3}, 60) == {20: 3}
    assert take_largest_first({50: 2, 20: 3}, 160) == {50: 2, 20: 3}
    assert take_largest_first({50: 2, 20: 3}, 110) == {50: 1, 20: 3}


@pytest.mark.parametrize(
    "inventory, quantity",
    [
        ({50: 3, 20: 5, 1: 100}, 120),
        ({100: 1, 25: 4, 1: 10}, 210),
        ({50: 1, 20: 5, 1: 3}, 113),
    ],
)
def test_take_largest_first_matches_plain_greedy_when_greedy_succeeds(inventory, quantity):
    expected = {}
    remaining = quantity
    for size in sorted(inventory, reverse=True):
        take = min(remaining // size, inventory[size])
        if take:
            expected[size] = take
            remaining -= take * size
    assert remaining == 0

    assert take_largest_first(inventory, quantity) == expected


def test_fill_largest_first_is_uncapped():
    added, remainder = fill_largest_first([1, 20, 50], 175)

    assert added == {50: 3, 20: 1, 1: 5}
    assert remainder == 0


def test_fill_largest_first_leaves_remainder_without_unit_bundle():
    added, remainder = fill_largest_first([20, 50], 75)

    assert added == {50: 1, 20: 1}
    assert remainder == 5


def test_apply_deltas_does_not_mutate_input():
    inventory = {50: 2, 20: 1}

    result = apply_deltas(inventory, {50: -1, 1: 4})

    assert result == {50: 1, 20: 1, 1: 4}
    assert inventory == {50: 2, 20: 1}


def test_apply_deltas_rejects_negative_counts():
    with pytest.raises(ValueError):
        apply_deltas({20: 1}, {20: -2})


def test_inventory_keys_round_trip_through_json_strings():
    stored = dump_inventory({50: 3, 1: 100, 20: 0})

    assert stored == {"1": 100, "20": 0, "50": 3}
    assert load_inventory(stored) == {50: 3, 1: 100, 20: 0}
    assert load_inventory(None) is None
    assert dump_inventory(None) is None


def test_load_inventory_handles_large_bundle_sizes():
    assert load_inventory({"1000000": 2}) == {1_000_000: 2}


def test_normalize_bundle_sizes_dedupes_and_sorts():
    assert normalize_bundle_sizes([20, 1, 50, 20]) == [50, 20, 1]


@pytest.mark.parametrize("bad", [0, -5, 2.5, "20", True])
def test_validate_bundle_size_rejects_non_positive_ints(bad):
    with pytest.raises(ValueError):
        validate_bundle_size(bad)


def test_normalize_bundle_sizes_requires_one_size():
    with pytest.raises(ValueError):
        normalize_bundle_sizes([])


def test_describe_bundles_is_json_largest_first():
    assert describe_bundles({20: 1, 50: 2}) == '{"50":2,"20":1}'


@pytest.mark.parametrize(
    "inventory, quantity",
    [
        ({50: 2000, 20: 5000, 10: 10000}, 100005),
        ({4: 15000, 2: 15000}, 60001),
        # gcd and capacity both allow it; odd fifty counts never leave a twenty-multiple
        ({50: 2000, 20: 5000}, 199990),
    ],
)
def test_take_largest_first_rejects_large_unfillable_orders_quickly(inventory, quantity):
    started = time.perf_counter()

    assert take_largest_first(inventory, quantity) is None
    assert time.perf_counter() - started < 1.0


def test_take_largest_first_fills_large_orders_quickly():
    started = time.perf_counter()

    used = take_largest_first({50: 2000, 20: 5000, 7: 3000, 3: 3000}, 215_001)

    assert time.perf_counter() - started < 1.0
    assert sum(size * count for size, count in used.items()) == 215_001
    assert used[50] == 2000
    assert used[20] == 5000


def test_take_largest_first_rejects_more_than_on_hand():
    assert take_largest_first({50: 1, 20: 1}, 71) is None
    assert take_largest_first({}, 5) is None
