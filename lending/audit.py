"""
audit.py - Append-only audit log

Every administrative change and every account-level mutation appends one or
more AuditRecords. The log is the only history the ledger produces. Current
state is always read from the live tables, never replayed from here.

Each record carries a content-addressed record_id computed from its fields,
so identical operation sequences produce identical ids on every run.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Mapping, Optional, Tuple

from .core import AccountId, AssetId, content_hash


class EventKind(Enum):
    """Kinds of audit record."""
    ASSET_ADDED = "asset_added"
    RATIO_CHANGED = "ratio_changed"
    BENEFICIARY_CHANGED = "beneficiary_changed"
    LOAN_TERMS_CHANGED = "loan_terms_changed"
    COLLATERAL_ADDED = "collateral_added"
    LOAN_TAKEN = "loan_taken"
    INTEREST_PAID = "interest_paid"
    REPAYMENT = "repayment"
    LIQUIDATION = "liquidation"
    COLLATERAL_LIQUIDATED = "collateral_liquidated"
    COLLATERAL_RECLAIMED = "collateral_reclaimed"
    SUSPENSE_BOOKED = "suspense_booked"


@dataclass(frozen=True, slots=True)
class AuditRecord:
    """
    One immutable audit log entry.

    Attributes:
        kind: What happened
        timestamp: Clock time of the operation
        initiator: Identity that invoked the operation
        account: Affected account (None for registry-wide changes)
        asset: Affected asset (None when not asset-specific)
        amount: Primary amount of the event (units of `asset`, or of the
                reference asset for debt events)
        before: Values before the change, by name
        after: Values after the change, by name
        sequence: Position in the log
        record_id: Content hash of every field except record_id
    """
    kind: EventKind
    timestamp: int
    initiator: AccountId
    account: Optional[AccountId] = None
    asset: Optional[AssetId] = None
    amount: int = 0
    before: Mapping[str, Any] = field(default_factory=dict)
    after: Mapping[str, Any] = field(default_factory=dict)
    sequence: int = 0
    record_id: str = ""

    def __post_init__(self):
        if not self.record_id:
            object.__setattr__(self, 'record_id', content_hash(
                self.kind, self.timestamp, self.initiator, self.account,
                self.asset, self.amount, self.before, self.after, self.sequence,
            ))

    def __repr__(self) -> str:
        parts = [f"#{self.sequence} {self.kind.value} t={self.timestamp} by={self.initiator}"]
        if self.account:
            parts.append(f"account={self.account}")
        if self.asset:
            parts.append(f"asset={self.asset}")
        if self.amount:
            parts.append(f"amount={self.amount}")
        for key in sorted(set(self.before) | set(self.after)):
            parts.append(f"{key}: {self.before.get(key)!r} → {self.after.get(key)!r}")
        return f"AuditRecord({', '.join(parts)})"


class AuditLog:
    """
    Append-only sequence of AuditRecords.

    Sequence numbers are assigned on append and are monotonic. Records are
    never removed. A rejected operation leaves no records, except
    SUSPENSE_BOOKED for a transfer that could not be reversed.
    """

    def __init__(self):
        self._records: List[AuditRecord] = []

    def append(
        self,
        kind: EventKind,
        timestamp: int,
        initiator: AccountId,
        account: Optional[AccountId] = None,
        asset: Optional[AssetId] = None,
        amount: int = 0,
        before: Optional[Mapping[str, Any]] = None,
        after: Optional[Mapping[str, Any]] = None,
    ) -> AuditRecord:
        record = AuditRecord(
            kind=kind,
            timestamp=timestamp,
            initiator=initiator,
            account=account,
            asset=asset,
            amount=amount,
            before=dict(before or {}),
            after=dict(after or {}),
            sequence=len(self._records),
        )
        self._records.append(record)
        return record

    def filter(
        self,
        kind: Optional[EventKind] = None,
        account: Optional[AccountId] = None,
        asset: Optional[AssetId] = None,
    ) -> List[AuditRecord]:
        """Records matching every given criterion, in log order."""
        return [
            r for r in self._records
            if (kind is None or r.kind == kind)
            and (account is None or r.account == account)
            and (asset is None or r.asset == asset)
        ]

    def since(self, sequence: int) -> Tuple[AuditRecord, ...]:
        return tuple(self._records[sequence:])

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[AuditRecord]:
        return iter(list(self._records))

    def __getitem__(self, index: int) -> AuditRecord:
        return self._records[index]
