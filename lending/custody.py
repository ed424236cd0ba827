"""
custody.py - In-memory custody collaborator

A reference CustodyCollaborator that keeps wallet balances in memory. The
lending ledger uses it in tests, simulations and demos; production drivers
supply their own implementation of transfer_in/transfer_out.

Balances here are real holdings (what each wallet owns outside the ledger,
plus what the ledger itself has in custody). A transfer that would overdraw
its source is refused with False, never partially applied.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
import logging
from typing import Dict, List

from .core import AccountId, AssetId, _require_int

logger = logging.getLogger(__name__)

# Wallet id under which the ledger's own custody is held.
LEDGER_CUSTODY = "lending"


@dataclass(frozen=True, slots=True)
class Transfer:
    """
    A single executed movement of value.

    Attributes:
        amount: Units moved (positive)
        asset: Asset moved
        source: Wallet debited
        dest: Wallet credited
    """
    amount: int
    asset: AssetId
    source: AccountId
    dest: AccountId

    def __post_init__(self):
        _require_int("amount", self.amount, minimum=1)
        if not self.asset or not self.asset.strip():
            raise ValueError("Transfer asset cannot be empty")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Transfer({self.amount} {self.asset}: {self.source}→{self.dest})"


class InMemoryCustody:
    """
    Wallet balances plus the ledger's custody account.

    Example:
        custody = InMemoryCustody()
        custody.fund("alice", "CORE", 100)
        custody.transfer_in("alice", "CORE", 20)   # alice -> ledger custody
        custody.transfer_out("alice", "CORE", 20)  # ledger custody -> alice
    """

    def __init__(self, custody_id: AccountId = LEDGER_CUSTODY):
        self.custody_id = custody_id
        self._balances: Dict[AccountId, Dict[AssetId, int]] = defaultdict(lambda: defaultdict(int))
        self.transfers: List[Transfer] = []

    def fund(self, wallet: AccountId, asset: AssetId, amount: int) -> None:
        """Issue amount of asset into a wallet (test and simulation setup)."""
        _require_int("amount", amount)
        self._balances[wallet][asset] += amount

    def balance_of(self, wallet: AccountId, asset: AssetId) -> int:
        return self._balances.get(wallet, {}).get(asset, 0)

    def custodied(self, asset: AssetId) -> int:
        """Units of asset currently held in the ledger's custody."""
        return self.balance_of(self.custody_id, asset)

    def custodied_balances(self) -> Dict[AssetId, int]:
        return {a: q for a, q in sorted(self._balances.get(self.custody_id, {}).items()) if q}

    def transfer_in(self, source: AccountId, asset: AssetId, amount: int) -> bool:
        return self._move(source, self.custody_id, asset, amount)

    def transfer_out(self, dest: AccountId, asset: AssetId, amount: int) -> bool:
        return self._move(self.custody_id, dest, asset, amount)

    def _move(self, source: AccountId, dest: AccountId, asset: AssetId, amount: int) -> bool:
        if amount <= 0 or source == dest:
            return False
        if self.balance_of(source, asset) < amount:
            logger.debug("Refused transfer of %d %s from %s: insufficient balance", amount, asset, source)
            return False
        self._balances[source][asset] -= amount
        self._balances[dest][asset] += amount
        self.transfers.append(Transfer(amount, asset, source, dest))
        return True
