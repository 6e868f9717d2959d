"""
Balance Accumulator

Folds slice deltas into a (pizzas, slices) pair. Six slices make a pizza and
the remainder is always kept in [0, 6).
"""

from typing import Final, NamedTuple

SLICES_PER_PIZZA: Final[int] = 6


class SliceBalance(NamedTuple):
    """A normalized pizza debt."""

    pizzas: int
    slices: int

    @property
    def combined(self) -> int:
        return combined_slices(self.pizzas, self.slices)


def combined_slices(pizzas: int, slices: int) -> int:
    """Express a balance as a single slice count."""
    return pizzas * SLICES_PER_PIZZA + slices


def split_slices(combined: int) -> SliceBalance:
    """Split a non-negative slice count into whole pizzas and a remainder."""
    if combined < 0:
        raise ValueError(f"Cannot split a negative slice count: {combined}")
    pizzas, slices = divmod(combined, SLICES_PER_PIZZA)
    return SliceBalance(pizzas, slices)


def add_slices(pizzas: int, slices: int, add: int) -> SliceBalance:
    """
    Add a non-negative award to a balance, carrying full pizzas.

    Example:
        add_slices(0, 5, 3) -> SliceBalance(pizzas=1, slices=2)
    """
    if add < 0:
        raise ValueError(f"add_slices only accepts non-negative awards, got {add}")
    carried, remainder = divmod(slices + add, SLICES_PER_PIZZA)
    return SliceBalance(pizzas + carried, remainder)


def adjust_slices(pizzas: int, slices: int, delta: int) -> SliceBalance:
    """
    Apply a signed delta to a balance.

    The debt never goes negative: a delta larger than the whole balance
    leaves exactly zero.
    """
    combined = combined_slices(pizzas, slices) + delta
    return split_slices(max(0, combined))
