"""Unit tests for the Fisher-Yates shuffle used by the draw engine."""

from __future__ import annotations

import random
from collections import Counter
from itertools import permutations

from communiclaw.campaigns.draw import shuffle_entries


def test_shuffle_is_a_permutation() -> None:
    items = list(range(20))
    shuffled = shuffle_entries(items, random.Random(7))
    assert sorted(shuffled) == items
    assert items == list(range(20))  # input untouched


def test_shuffle_handles_tiny_inputs() -> None:
    assert shuffle_entries([]) == []
    assert shuffle_entries(["only"]) == ["only"]


def test_all_permutations_equally_likely() -> None:
    """Each of the 6 orderings of 3 items shows up about 1/6 of the time."""
    rng = random.Random(1234)
    runs = 60_000
    counts = Counter(tuple(shuffle_entries("abc", rng)) for _ in range(runs))
    assert set(counts) == set(permutations("abc"))
    expected = runs / 6
    for count in counts.values():
        assert abs(count - expected) < expected * 0.05


def test_first_k_selection_frequency_is_uniform() -> None:
    """Taking the first 3 of 10 selects every entry with probability 0.3."""
    rng = random.Random(42)
    runs = 20_000
    picked: Counter[int] = Counter()
    for _ in range(runs):
        picked.update(shuffle_entries(range(10), rng)[:3])
    for entry in range(10):
        assert abs(picked[entry] / runs - 0.3) < 0.02


def test_default_rng_is_system_random() -> None:
    shuffled = shuffle_entries(range(50))
    assert sorted(shuffled) == list(range(50))
