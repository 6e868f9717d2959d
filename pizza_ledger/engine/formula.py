"""
Slice Formula

Maps "minutes late" to a whole number of pizza slices.

The curve is a normalized logarithm:

    scale  = 1 / ln(2 + curve_shift)
    raw    = scale * ln(minutes + curve_shift)
    slices = ceil(raw)

Normalizing by ln(2 + shift) pins the curve so that two minutes late costs
exactly one slice for every shift. Small lateness grows quickly per minute,
large lateness grows sub-linearly.

DESIGN DECISION: The formula is pure and deterministic. It has no access to
groups, storage or clocks, so it can be called from anywhere (including
settings previews) with the same result.
"""

import math
from typing import Final, Iterable

DEFAULT_CURVE_SHIFT: Final[float] = 0.3

# ln(2 + shift) is only defined above this bound
CURVE_SHIFT_FLOOR: Final[float] = -2.0

# Arriving within the first minute is free
GRACE_MINUTES: Final[float] = 1.0

PREVIEW_MINUTES: Final[tuple[int, ...]] = (0, 1, 2, 3, 5, 10, 15, 20, 30, 45, 60)


def is_valid_curve_shift(curve_shift: float) -> bool:
    """True if the shift lies inside the formula's domain."""
    return math.isfinite(curve_shift) and curve_shift > CURVE_SHIFT_FLOOR


def slices_for_minutes(
    minutes_late: float,
    curve_shift: float = DEFAULT_CURVE_SHIFT,
) -> int:
    """
    Number of slices owed for arriving `minutes_late` minutes late.

    Negative input counts as on time. The result is never negative and is
    non-decreasing in `minutes_late` for a fixed shift.

    Raises:
        ValueError: If curve_shift is outside the formula's domain.
            Group settings are validated before they reach this point, so
            hitting this means a caller skipped validation.
    """
    if not is_valid_curve_shift(curve_shift):
        raise ValueError(f"curve_shift must be > {CURVE_SHIFT_FLOOR}, got {curve_shift}")

    minutes = max(0.0, float(minutes_late))
    if minutes <= GRACE_MINUTES:
        return 0

    base = math.log(2 + curve_shift)
    if base <= 0:
        # Shifts in (-2, -1] flatten the curve to nothing
        return 0

    argument = minutes + curve_shift
    if argument <= 0:
        return 0

    raw = math.log(argument) / base
    return max(0, math.ceil(raw))


def legacy_slices_for_minutes(minutes_late: float, log_k: float) -> int:
    """
    Step-function award used before the normalized curve existed.

    Kept so that meetings recorded under the old rules can be re-derived
    when inspecting historical data. New meetings never use it.
    """
    m = max(0, math.floor(minutes_late))
    if m < 2:
        return 0
    if m < 4:
        return 1
    if m < 6:
        return 2
    return 4 + math.ceil(log_k * math.log(m - 6 + 1))


def preview_curve(
    curve_shift: float,
    minutes: Iterable[int] = PREVIEW_MINUTES,
) -> list[tuple[int, int]]:
    """(minutes, slices) pairs for showing a shift before applying it."""
    return [(m, slices_for_minutes(m, curve_shift)) for m in minutes]
