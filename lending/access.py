"""
access.py - Authorization and clock collaborators

AdministratorSet implements the Authorizer role check. ManualClock and
SystemClock implement Clock; the engine never reads wall time directly.
"""

from __future__ import annotations
import time
from typing import FrozenSet, Iterable, Set

from .core import AccountId, _require_int


class AdministratorSet:
    """
    Set of identities allowed to run administrative operations.

    Example:
        admins = AdministratorSet(["owner"])
        admins.is_administrator("owner")   # True
        admins.grant("ops")
    """

    def __init__(self, administrators: Iterable[AccountId] = ()):
        self._administrators: Set[AccountId] = set(administrators)

    def is_administrator(self, identity: AccountId) -> bool:
        return identity in self._administrators

    def grant(self, identity: AccountId) -> None:
        self._administrators.add(identity)

    def revoke(self, identity: AccountId) -> None:
        self._administrators.discard(identity)

    @property
    def administrators(self) -> FrozenSet[AccountId]:
        return frozenset(self._administrators)


class ManualClock:
    """
    Clock driven explicitly by the caller.

    Time can only move forward, never backward.
    """

    def __init__(self, start: int = 0):
        _require_int("start", start)
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        """Move the clock forward by seconds. Returns the new time."""
        _require_int("seconds", seconds)
        self._now += seconds
        return self._now

    def set(self, new_time: int) -> None:
        """
        Move the clock to new_time.

        Raises:
            ValueError: If new_time is before the current time
        """
        _require_int("new_time", new_time)
        if new_time < self._now:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._now}")
        self._now = new_time


class SystemClock:
    """Wall-clock seconds, never reported below a previously returned value."""

    def __init__(self):
        self._last = 0

    def now(self) -> int:
        self._last = max(self._last, int(time.time()))
        return self._last
