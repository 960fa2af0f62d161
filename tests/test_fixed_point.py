"""Tests for fixed-point helpers."""

from __future__ import annotations

import pytest

from perpdex_indexer.utils.errors import EntryPriceUndefinedError
from perpdex_indexer.utils.fixed_point import (
    Q96,
    abs_val,
    bad_debt,
    entry_price,
    mul_div,
    neg,
    share_to_balance,
    to_natural,
)


def test_mul_div_truncates() -> None:
    """Test that mul_div drops the fractional part."""
    assert mul_div(10, 3, 4) == 7
    assert mul_div(1, 1, 3) == 0


def test_mul_div_truncates_toward_zero_for_negatives() -> None:
    """Test that negative results round toward zero, not toward -inf."""
    assert mul_div(-10, 3, 4) == -7
    assert mul_div(10, 3, -4) == -7
    assert mul_div(-10, -3, 4) == 7


def test_mul_div_wide_products() -> None:
    """Test products beyond 256 bits stay exact."""
    assert mul_div(2**255, 2**255, 2**255) == 2**255
    assert mul_div(Q96 * 3, Q96 * 5, Q96) == Q96 * 15


def test_mul_div_division_by_zero_raises() -> None:
    """Test that a zero denominator is an error, never a silent zero."""
    with pytest.raises(ZeroDivisionError):
        mul_div(1, 2, 0)

    with pytest.raises(ArithmeticError):
        mul_div(0, 0, 0)


def test_sign_helpers() -> None:
    """Test neg and abs_val."""
    assert neg(5) == -5
    assert neg(-5) == 5
    assert abs_val(-7) == 7
    assert abs_val(7) == 7


def test_to_natural() -> None:
    """Test Q96 to natural units conversion."""
    assert to_natural(3 * Q96) == 3
    assert to_natural(Q96 // 2) == 0


def test_share_to_balance_scales_by_growth_factor() -> None:
    """Test base balance derived from share count."""
    assert share_to_balance(100, Q96) == 100
    assert share_to_balance(100, Q96 // 2) == 50
    assert share_to_balance(-100, Q96 // 2) == -50


def test_entry_price_is_quote_over_base() -> None:
    """Test entry price keeps the sign of quote / base in natural units."""
    # long 10 base for 2000 quote
    assert entry_price(-2000, 10) == -200
    # short 10 base for 2000 quote
    assert entry_price(2000, -10) == -200
    assert entry_price(2000, 10) == 200


def test_entry_price_truncates_toward_zero() -> None:
    """Test fractional prices drop toward zero for either sign."""
    assert entry_price(-2001, 10) == -200
    assert entry_price(2001, 10) == 200


def test_entry_price_undefined_for_flat_position() -> None:
    """Test that a zero base balance raises instead of dividing by zero."""
    with pytest.raises(EntryPriceUndefinedError):
        entry_price(-2000, 0)

    with pytest.raises(ArithmeticError):
        entry_price(0, 0)


def test_bad_debt() -> None:
    """Test bad debt is the negative part of collateral."""
    assert bad_debt(-5) == 5
    assert bad_debt(0) == 0
    assert bad_debt(5) == 0
