"""Bundle (denomination) arithmetic for tract inventory.

An inventory map holds bundle size -> number of bundles on hand, e.g.
``{50: 3, 20: 5, 1: 100}`` is 3 packs of fifty, 5 packs of twenty and 100
loose tracts. Everything here is pure; persistence lives in the stock store.
"""

import json
import math
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

DEFAULT_BUNDLE_SIZES = (1, 20, 50)

# Bundle that absorbs restored units no larger bundle can hold.
LOOSE_UNIT_BUNDLE = 1


def _require_int(value: Any, name: str) -> int:
    # bool is an int subclass; True must not count as one tract
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


def validate_bundle_size(size: Any) -> int:
    size = _require_int(size, "bundle size")
    if size < 1:
        raise ValueError(f"bundle size must be >= 1, got {size}")
    return size


def normalize_bundle_sizes(sizes: Iterable[Any]) -> list[int]:
    """Validate, de-duplicate and sort bundle sizes (largest first)."""
    out = {validate_bundle_size(s) for s in sizes}
    if not out:
        raise ValueError("at least one bundle size is required")
    return sorted(out, reverse=True)


def total_units(inventory: Optional[Mapping[int, int]]) -> int:
    """Individual units held: sum of bundle size x count."""
    if not inventory:
        return 0
    return sum(int(size) * int(count) for size, count in inventory.items())


def sizes_largest_first(inventory: Mapping[int, int]) -> list[int]:
    return sorted(inventory.keys(), reverse=True)


def _reach_with(reach: int, size: int, count: int, mask: int) -> int:
    # binary-split the count so any 0..count copies of size are covered
    piece = 1
    while count > 0:
        take = min(piece, count)
        reach = (reach | (reach << (take * size))) & mask
        count -= take
        piece <<= 1
    return reach


def take_largest_first(inventory: Mapping[int, int], quantity: int) -> Optional[Dict[int, int]]:
    """Pick bundles that add up to exactly ``quantity``, largest first.

    Each size takes as many bundles as fit and are on hand before moving to
    the next smaller size. When that greedy pass would strand a remainder,
    fewer of the larger bundles are taken, so a combination is found whenever
    one exists; when greedy succeeds its answer is the one returned.

    Sums reachable from each suffix of the sizes are kept as int bitsets, so
    every choice is checked in one lookup and nothing is backtracked.

    Returns bundle size -> bundles taken, or None if no exact combination
    exists.
    """
    sizes = [s for s in sizes_largest_first(inventory) if (inventory.get(s) or 0) > 0]
    if quantity == 0:
        return {}
    if not sizes or quantity > total_units({s: inventory[s] for s in sizes}):
        return None
    if quantity % math.gcd(*sizes):
        return None

    mask = (1 << (quantity + 1)) - 1
    # reachable[i]: sums that sizes[i:] can make, bit n set when n is reachable
    reachable = [0] * len(sizes) + [1]
    for i in range(len(sizes) - 1, -1, -1):
        reachable[i] = _reach_with(reachable[i + 1], sizes[i], inventory[sizes[i]], mask)
    if not (reachable[0] >> quantity) & 1:
        return None

    used: Dict[int, int] = {}
    remaining = quantity
    for i, size in enumerate(sizes):
        rest = reachable[i + 1]
        take = min(remaining // size, inventory[size])
        while not (rest >> (remaining - take * size)) & 1:
            take -= 1
        if take:
            used[size] = take
            remaining -= take * size
    return used


def fill_largest_first(sizes: Iterable[int], quantity: int) -> Tuple[Dict[int, int], int]:
    """Split a quantity into bundles, largest first, with no upper cap."""
    remaining = quantity
    added: Dict[int, int] = {}
    for size in sorted(sizes, reverse=True):
        if remaining == 0:
            break
        count = remaining // size
        if count > 0:
            added[size] = count
            remaining -= count * size
    return added, remaining


def apply_deltas(inventory: Mapping[int, int], deltas: Mapping[int, int]) -> Dict[int, int]:
    """New map with signed per-size deltas applied. Input is not mutated."""
    out = dict(inventory)
    for size, delta in deltas.items():
        out[size] = (out.get(size) or 0) + delta
        if out[size] < 0:
            raise ValueError(f"bundle {size} would go negative ({out[size]})")
    return out


def load_inventory(raw: Optional[Mapping[Any, Any]]) -> Optional[Dict[int, int]]:
    """Parse a stored JSON map (string keys) into ``{int: int}``."""
    if raw is None:
        return None
    return {int(size): int(count or 0) for size, count in raw.items()}


def dump_inventory(inventory: Optional[Mapping[int, int]]) -> Optional[Dict[str, int]]:
    """Serialize ``{int: int}`` to a JSON-safe map with string keys."""
    if inventory is None:
        return None
    return {str(size): int(count) for size, count in sorted(inventory.items())}


def describe_bundles(bundles: Mapping[int, int]) -> str:
    """Compact JSON summary, e.g. ``{"50":2,"20":1}``."""
    ordered = {str(size): bundles[size] for size in sorted(bundles, reverse=True)}
    return json.dumps(ordered, separators=(",", ":"))
