"""Credit pricing is a step function of character count, exact at every boundary."""

import pytest

from humanizer.features.credits.estimator import estimate_credits, estimate_credits_for_count


@pytest.mark.parametrize(
    "char_count, expected",
    [
        (0, 1),
        (1, 1),
        (500, 1),
        (501, 2),
        (1000, 2),
        (1001, 4),
        (2000, 4),
        (2001, 10),
        (5000, 10),
        (5001, 20),
        (250_000, 20),
    ],
)
def test_price_steps_are_boundary_exact(char_count, expected):
    assert estimate_credits_for_count(char_count) == expected


def test_estimate_counts_characters_not_words():
    assert estimate_credits("a" * 600) == 2
    assert estimate_credits("word " * 100) == 1  # 500 chars


def test_estimate_is_monotonic():
    previous = 0
    for n in range(0, 6000, 7):
        current = estimate_credits_for_count(n)
        assert current >= previous
        previous = current
