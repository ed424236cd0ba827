"""
vault.py - Collateral Vault

Per-account, per-asset deposited balances, and the valuation of those
balances against the registry's collaterability ratios.

Key Formula:
    total_value = sum(balance * ratio_of(asset) for each positive holding)

The CollateralVault exclusively owns holding mutation. Balances never go
negative: a withdrawal that would underflow is rejected, never clamped.
"""

from __future__ import annotations
from collections import defaultdict
import logging
from typing import Dict, List, Mapping, Optional, Tuple

from .core import (
    AccountId, AssetId, Holdings,
    AssetRetired, InsufficientBalance, ZeroAmount, _require_int,
)
from .registry import CollateralRegistry

logger = logging.getLogger(__name__)


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_collateral_value(holdings: Mapping[AssetId, int], ratios: Mapping[AssetId, int]) -> int:
    """
    Collateral value of a set of holdings in reference-asset units.

    PURE FUNCTION - assets missing from ratios contribute zero.

    Example:
        >>> calculate_collateral_value({"CORE": 20}, {"CORE": 5})
        100
    """
    return sum(
        balance * ratios.get(asset, 0)
        for asset, balance in sorted(holdings.items())
        if balance > 0
    )


# ============================================================================
# VAULT
# ============================================================================

class CollateralVault:
    """
    Deposited collateral balances.

    Maintains an inverted index asset -> {account -> balance} so the total
    custodied amount per asset can be read without scanning every account.
    """

    def __init__(self, registry: CollateralRegistry):
        self._registry = registry
        self._holdings: Dict[AccountId, Dict[AssetId, int]] = {}
        self._by_asset: Dict[AssetId, Dict[AccountId, int]] = defaultdict(dict)
        self._last_deposit_time: Dict[AccountId, int] = {}

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def deposit(self, account: AccountId, asset_id: AssetId, amount: int, now: int) -> int:
        """
        Credit amount of asset to the account. Returns the new balance.

        Raises:
            AssetRetired: asset is retired or unknown
            ZeroAmount: amount is zero
        """
        _require_int("amount", amount)
        if self._registry.is_retired(asset_id):
            raise AssetRetired(f"Asset {asset_id} is retired")
        if amount == 0:
            raise ZeroAmount("Supply collateral")
        new_balance = self.balance_of(account, asset_id) + amount
        self._set_balance(account, asset_id, new_balance)
        self._last_deposit_time[account] = now
        return new_balance

    def withdraw(self, account: AccountId, asset_id: AssetId, amount: int) -> int:
        """
        Debit amount of asset from the account. Returns the new balance.

        Raises:
            InsufficientBalance: amount exceeds the balance
        """
        _require_int("amount", amount)
        balance = self.balance_of(account, asset_id)
        if amount > balance:
            raise InsufficientBalance(
                f"{account} {asset_id}: cannot withdraw {amount}, balance is {balance}"
            )
        self._set_balance(account, asset_id, balance - amount)
        return balance - amount

    def withdraw_all(self, account: AccountId) -> Holdings:
        """Zero every positive holding of the account and return what was held."""
        taken = self.holdings(account)
        for asset_id, amount in taken.items():
            self.withdraw(account, asset_id, amount)
        return taken

    def _set_balance(self, account: AccountId, asset_id: AssetId, balance: int) -> None:
        account_holdings = self._holdings.setdefault(account, {})
        if balance > 0:
            account_holdings[asset_id] = balance
            self._by_asset[asset_id][account] = balance
        else:
            account_holdings.pop(asset_id, None)
            self._by_asset[asset_id].pop(account, None)

    # ========================================================================
    # QUERIES
    # ========================================================================

    def balance_of(self, account: AccountId, asset_id: AssetId) -> int:
        return self._holdings.get(account, {}).get(asset_id, 0)

    def holdings(self, account: AccountId) -> Holdings:
        """Positive balances of the account, sorted by asset id."""
        return dict(sorted(self._holdings.get(account, {}).items()))

    def total_value(self, account: AccountId) -> int:
        """
        Borrowing capacity and solvency measure of the account.

        Retired assets still contribute at their stored ratio.
        """
        held = self._holdings.get(account, {})
        ratios = {asset_id: self._registry.ratio_of(asset_id) for asset_id in held}
        return calculate_collateral_value(held, ratios)

    def total_deposited(self, asset_id: AssetId) -> int:
        """Sum of all accounts' balances of asset_id."""
        return sum(self._by_asset.get(asset_id, {}).values())

    def last_deposit_time(self, account: AccountId) -> Optional[int]:
        return self._last_deposit_time.get(account)

    def list_assets(self) -> List[AssetId]:
        return sorted(a for a, positions in self._by_asset.items() if positions)

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def snapshot(self, account: AccountId) -> Tuple[Holdings, Optional[int]]:
        return self.holdings(account), self._last_deposit_time.get(account)

    def restore(self, account: AccountId, snapshot: Tuple[Holdings, Optional[int]]) -> None:
        held, deposit_time = snapshot
        for asset_id in list(self._holdings.get(account, {})):
            self._set_balance(account, asset_id, 0)
        for asset_id, balance in held.items():
            self._set_balance(account, asset_id, balance)
        if not held:
            self._holdings.pop(account, None)
        if deposit_time is None:
            self._last_deposit_time.pop(account, None)
        else:
            self._last_deposit_time[account] = deposit_time
