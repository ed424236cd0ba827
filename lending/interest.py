"""
interest.py - Interest Model

Pure functions for simple time-based interest on reference-asset debt.

Key Formula:
    interest = principal * yearly_percent * elapsed_seconds // (SECONDS_PER_YEAR * 100)

Everything is multiplied first and divided exactly once. Dividing earlier
would drop precision and make interest depend on how a time span was split
into settlements.
"""

from __future__ import annotations

from .core import SECONDS_PER_YEAR, AccountPosition, _require_int


def accrue(principal: int, yearly_percent: int, elapsed_seconds: int) -> int:
    """
    Interest accrued on principal over elapsed_seconds.

    PURE FUNCTION - integer arithmetic only, truncated at the final division.

    Args:
        principal: Outstanding debt in reference-asset units
        yearly_percent: Annual rate in whole percent (10 means 10%)
        elapsed_seconds: Time since the last settlement

    Returns:
        Interest amount (0 for zero principal, rate or elapsed time)

    Example:
        >>> accrue(40, 10, 604800)
        0
        >>> accrue(40 * 10**18, 10, 604800)
        76712328767123287
    """
    _require_int("principal", principal)
    _require_int("yearly_percent", yearly_percent)
    _require_int("elapsed_seconds", elapsed_seconds)
    return principal * yearly_percent * elapsed_seconds // (SECONDS_PER_YEAR * 100)


def calculate_pending_interest(position: AccountPosition, yearly_percent: int, now: int) -> int:
    """
    Interest that settling the position at `now` would capitalize.

    Dormant positions (no debt) accrue nothing regardless of elapsed time.
    """
    if position.debt_principal == 0:
        return 0
    if now < position.last_accrual_time:
        raise ValueError(
            f"Cannot accrue backwards: {now} < {position.last_accrual_time}"
        )
    return accrue(position.debt_principal, yearly_percent, now - position.last_accrual_time)


def calculate_total_debt(position: AccountPosition, yearly_percent: int, now: int) -> int:
    """Stored principal plus interest pending since the last settlement."""
    return position.debt_principal + calculate_pending_interest(position, yearly_percent, now)
