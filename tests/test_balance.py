"""
Tests for the balance accumulator.
"""

import pytest
from hypothesis import given, strategies as st

from pizza_ledger.engine import (
    SLICES_PER_PIZZA,
    SliceBalance,
    add_slices,
    adjust_slices,
    combined_slices,
    split_slices,
)

pizzas = st.integers(min_value=0, max_value=10_000)
slices = st.integers(min_value=0, max_value=SLICES_PER_PIZZA - 1)


class TestAddSlices:
    """Tests for carrying awards into whole pizzas."""

    def test_carry_into_pizza(self):
        """Test that five slices plus three is one pizza and two slices."""
        assert add_slices(0, 5, 3) == SliceBalance(pizzas=1, slices=2)

    def test_add_zero(self):
        """Test that adding nothing changes nothing."""
        assert add_slices(2, 4, 0) == (2, 4)

    def test_multiple_pizzas(self):
        """Test an award spanning several pizzas."""
        assert add_slices(1, 1, 17) == (4, 0)

    def test_rejects_negative_award(self):
        """Test that awards can't be negative."""
        with pytest.raises(ValueError):
            add_slices(1, 0, -1)

    @given(p=pizzas, s=slices, a=st.integers(min_value=0, max_value=100_000))
    def test_conserves_and_normalizes(self, p, s, a):
        """Test that the combined count is conserved and slices stay below six."""
        result = add_slices(p, s, a)
        assert 0 <= result.slices < SLICES_PER_PIZZA
        assert result.pizzas * SLICES_PER_PIZZA + result.slices == p * SLICES_PER_PIZZA + s + a


class TestAdjustSlices:
    """Tests for signed corrections."""

    def test_clamps_at_zero(self):
        """Test that a negative delta on an empty balance stays at zero."""
        assert adjust_slices(0, 0, -3) == (0, 0)

    def test_borrows_from_pizzas(self):
        """Test that removing slices breaks a pizza."""
        assert adjust_slices(1, 0, -1) == (0, 5)

    def test_positive_delta(self):
        """Test a positive correction."""
        assert adjust_slices(0, 4, 5) == (1, 3)

    @given(p=pizzas, s=slices, delta=st.integers(min_value=-100_000, max_value=100_000))
    def test_matches_clamped_sum(self, p, s, delta):
        """Test that the result is exactly max(0, combined + delta)."""
        result = adjust_slices(p, s, delta)
        assert 0 <= result.slices < SLICES_PER_PIZZA
        assert result.combined == max(0, p * SLICES_PER_PIZZA + s + delta)


class TestSplitSlices:
    """Tests for the combined-count helpers."""

    def test_round_trip(self):
        """Test splitting and recombining a count."""
        balance = split_slices(20)
        assert balance == (3, 2)
        assert combined_slices(*balance) == 20

    def test_rejects_negative(self):
        """Test that negative counts can't be split."""
        with pytest.raises(ValueError):
            split_slices(-1)
