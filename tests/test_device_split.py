from __future__ import annotations

import random

import pytest

from interrupt_timeline.device import (
    BiasedRandomSplit,
    ClampedRandomSplit,
    make_splitter,
)


@pytest.mark.parametrize("total", [0, 1, 2, 5, 16, 110, 250])
def test_both_strategies_preserve_the_total(total: int) -> None:
    for seed in range(20):
        for splitter in (BiasedRandomSplit(random.Random(seed)), ClampedRandomSplit(random.Random(seed))):
            assert sum(splitter.split(total)) == total


def test_biased_split_can_go_negative_on_tiny_budgets() -> None:
    # With nothing to draw from, the first phase is exactly the -2 bias.
    t1, t2, t3 = BiasedRandomSplit(random.Random(0)).split(0)
    assert t1 == -2
    assert t2 in (-1, 0)
    assert t1 + t2 + t3 == 0


def test_clamped_split_never_goes_negative() -> None:
    splitter = ClampedRandomSplit(random.Random(3))
    for total in range(0, 40):
        assert all(phase >= 0 for phase in splitter.split(total))


def test_same_seed_same_split() -> None:
    a = make_splitter("biased", seed=11)
    b = make_splitter("biased", seed=11)
    assert [a.split(110) for _ in range(5)] == [b.split(110) for _ in range(5)]


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        make_splitter("uniform")
