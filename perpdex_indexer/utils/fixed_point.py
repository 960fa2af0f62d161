"""Exact integer fixed-point helpers.

All amounts are plain Python ints, so products never overflow. Division
truncates toward zero, matching Solidity signed integer division.
"""

from __future__ import annotations

from beartype import beartype

from perpdex_indexer.utils.errors import EntryPriceUndefinedError

Q96: int = 2**96


@beartype
def mul_div(a: int, b: int, c: int) -> int:
    """
    Compute ``a * b / c`` exactly, truncating toward zero.

    Raises:
        ZeroDivisionError: If ``c`` is zero
    """
    if c == 0:
        raise ZeroDivisionError(f"mul_div({a}, {b}, 0): division by zero")
    numerator = a * b
    quotient = abs(numerator) // abs(c)
    if (numerator < 0) != (c < 0):
        return -quotient
    return quotient


@beartype
def neg(x: int) -> int:
    """Sign flip."""
    return -x


@beartype
def abs_val(x: int) -> int:
    """Absolute value of *x*."""
    return x if x >= 0 else -x


@beartype
def to_natural(x96: int) -> int:
    """Convert a Q96 value back to natural units."""
    return mul_div(x96, 1, Q96)


@beartype
def share_to_balance(share: int, base_balance_per_share_x96: int) -> int:
    """Base balance held by ``share`` at the given growth factor."""
    return mul_div(share, base_balance_per_share_x96, Q96)


@beartype
def entry_price(quote_balance: int, base_balance: int) -> int:
    """
    Average entry price: ``quote_balance / base_balance``, truncated toward zero.

    Natural units with the sign kept, so a long (negative quote balance)
    has a negative entry price.

    Raises:
        EntryPriceUndefinedError: If the position is flat
    """
    if base_balance == 0:
        raise EntryPriceUndefinedError("entry price is undefined for a zero base balance")
    return mul_div(quote_balance, 1, base_balance)


@beartype
def bad_debt(collateral_balance: int) -> int:
    """Losses beyond posted collateral: ``max(0, -collateral)``."""
    return -collateral_balance if collateral_balance < 0 else 0
