"""
debt_ledger.py - Per-account debt records

The DebtLedger exclusively owns AccountPosition mutation. It settles interest,
adds and removes debt, and exposes the stored figures. Credit limits are not
checked here; LendingEngine enforces them before calling increase_debt().

Positions are immutable AccountPosition snapshots. Every mutation replaces
the account's snapshot, which makes snapshot/restore trivial for rollback.
"""

from __future__ import annotations
import logging
from typing import Dict, List, Optional

from .core import AccountId, AccountPosition, Underflow, _require_int
from .interest import calculate_pending_interest

logger = logging.getLogger(__name__)


class DebtLedger:
    """
    Debt principal and last-accrual timestamp per account.

    Accounts never seen before read as a zeroed position. A position that is
    fully repaid or liquidated is reset to zero debt and zero accrual time,
    but the entry itself persists.
    """

    def __init__(self):
        self._positions: Dict[AccountId, AccountPosition] = {}

    def position(self, account: AccountId) -> AccountPosition:
        return self._positions.get(account, AccountPosition())

    def outstanding_debt(self, account: AccountId) -> int:
        """
        Stored debt principal.

        Does not accrue. Call settle_interest() first for a live figure.
        """
        return self.position(account).debt_principal

    def settle_interest(self, account: AccountId, yearly_percent: int, now: int) -> int:
        """
        Capitalize interest accrued since the last settlement.

        Sets last_accrual_time to now and returns the interest added (zero for
        dormant positions or zero elapsed time). Calling twice at the same
        `now` yields zero the second time.

        Raises:
            ValueError: If now is earlier than the last accrual time
        """
        _require_int("now", now)
        position = self.position(account)
        interest = calculate_pending_interest(position, yearly_percent, now)
        self._positions[account] = AccountPosition(
            debt_principal=position.debt_principal + interest,
            last_accrual_time=now,
        )
        if interest:
            logger.debug("Capitalized %d interest for %s", interest, account)
        return interest

    def increase_debt(self, account: AccountId, amount: int) -> int:
        """Add amount to the account's debt. Returns the new principal."""
        _require_int("amount", amount)
        position = self.position(account)
        new_principal = position.debt_principal + amount
        self._positions[account] = AccountPosition(new_principal, position.last_accrual_time)
        return new_principal

    def decrease_debt(self, account: AccountId, amount: int) -> int:
        """
        Subtract amount from the account's debt. Returns the new principal.

        A position reduced to zero goes dormant (last_accrual_time = 0).

        Raises:
            Underflow: amount exceeds the stored principal
        """
        _require_int("amount", amount)
        position = self.position(account)
        if amount > position.debt_principal:
            raise Underflow(
                f"{account}: cannot repay {amount}, debt is {position.debt_principal}"
            )
        new_principal = position.debt_principal - amount
        if new_principal == 0:
            self._positions[account] = AccountPosition(0, 0)
        else:
            self._positions[account] = AccountPosition(new_principal, position.last_accrual_time)
        return new_principal

    def reset(self, account: AccountId) -> None:
        """Zero the account's debt and accrual time (liquidation)."""
        self._positions[account] = AccountPosition(0, 0)

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def snapshot(self, account: AccountId) -> Optional[AccountPosition]:
        return self._positions.get(account)

    def restore(self, account: AccountId, position: Optional[AccountPosition]) -> None:
        if position is None:
            self._positions.pop(account, None)
        else:
            self._positions[account] = position

    def list_accounts(self) -> List[AccountId]:
        return sorted(self._positions)
