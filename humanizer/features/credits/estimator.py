"""
Credit cost estimation.

Pure step function over the input's character count. Same text, same price.
"""

from typing import Tuple

# (max characters inclusive, credits); anything longer costs OVERSIZE_CREDITS
PRICE_STEPS: Tuple[Tuple[int, int], ...] = (
    (500, 1),
    (1000, 2),
    (2000, 4),
    (5000, 10),
)
OVERSIZE_CREDITS = 20


def estimate_credits_for_count(char_count: int) -> int:
    for ceiling, credits in PRICE_STEPS:
        if char_count <= ceiling:
            return credits
    return OVERSIZE_CREDITS


def estimate_credits(text: str) -> int:
    """Credits required to transform `text`."""
    return estimate_credits_for_count(len(text))
