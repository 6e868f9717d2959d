"""Pure slice arithmetic: the lateness formula and the balance accumulator."""

from pizza_ledger.engine.balance import (
    SLICES_PER_PIZZA,
    SliceBalance,
    add_slices,
    adjust_slices,
    combined_slices,
    split_slices,
)
from pizza_ledger.engine.formula import (
    CURVE_SHIFT_FLOOR,
    DEFAULT_CURVE_SHIFT,
    GRACE_MINUTES,
    is_valid_curve_shift,
    legacy_slices_for_minutes,
    preview_curve,
    slices_for_minutes,
)

__all__ = [
    # Balance
    "SLICES_PER_PIZZA",
    "SliceBalance",
    "add_slices",
    "adjust_slices",
    "combined_slices",
    "split_slices",
    # Formula
    "CURVE_SHIFT_FLOOR",
    "DEFAULT_CURVE_SHIFT",
    "GRACE_MINUTES",
    "is_valid_curve_shift",
    "legacy_slices_for_minutes",
    "preview_curve",
    "slices_for_minutes",
]
