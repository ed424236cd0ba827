"""
Core types and pure helpers for the collateralized lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LendingView for read-only access, and the external collaborators
   (CustodyCollaborator, Authorizer, Clock)
2. Immutable data structures: CollateralAsset, LoanTerms, AccountPosition
3. Exceptions: LendingError and the operation-level error taxonomy
4. Type aliases: Holdings, AccountId, AssetId
5. Canonical serialization used for content-addressed audit record ids

All amounts are integers. The ledger never uses floating point, so every
figure it reports is exactly reproducible.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
import hashlib
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# 365 days. Interest is simple per-second accrual against this year length.
SECONDS_PER_YEAR = 365 * 24 * 3600

# The one decimal precision every asset must use. Assets declaring any other
# precision are rejected at registration instead of being normalized.
REFERENCE_PRECISION = 18

# Null identity. Passing it as a beneficiary selects the burn sentinel.
NULL_ADDRESS = "0x0000000000000000000000000000000000000000"

# Burn sentinel. Collateral sent here is permanently out of circulation and is
# never queried or credited back.
BURN_ADDRESS = "0x000000000000000000000000000000000000dEaD"

# Default ratio for the reference asset when it is used to repay in kind.
REFERENCE_ASSET_RATIO = 1


# ============================================================================
# TYPE ALIASES
# ============================================================================

AccountId = str
AssetId = str

# Mapping from asset id to units held by one account.
Holdings = Dict[AssetId, int]


# ============================================================================
# ENUMS
# ============================================================================

class AccountStatus(Enum):
    """
    Solvency state of an account.

    CLEAN: no debt.
    ACTIVE: positive debt, not past the default threshold.
    DELINQUENT: debt exceeds collateral value scaled by the default threshold;
                anyone may liquidate the account.
    """
    CLEAN = "clean"
    ACTIVE = "active"
    DELINQUENT = "delinquent"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending ledger errors."""
    pass


class NotAuthorized(LendingError):
    """Raised when a non-administrator invokes an administrative operation."""
    pass


class AlreadyRegistered(LendingError):
    """Raised when adding an asset that is already in the registry."""
    pass


class UnknownAsset(LendingError):
    """Raised when mutating an asset that was never registered."""
    pass


class InvalidRatio(LendingError):
    """Raised when registering an asset with a zero collaterability ratio."""
    pass


class UnsupportedPrecision(LendingError):
    """Raised when an asset's decimal precision differs from REFERENCE_PRECISION."""
    pass


class ProtectedAsset(LendingError):
    """Raised when redirecting liquidations of an asset that must stay burned."""
    pass


class AssetRetired(LendingError):
    """Raised when depositing or repaying with a retired (or unknown) asset."""
    pass


class WrongAssetForDeposit(LendingError):
    """Raised when the reference asset is offered as collateral."""
    pass


class ZeroAmount(LendingError):
    """Raised when an operation is requested for an amount of zero."""
    pass


class OverDebted(LendingError):
    """Raised when an account has no remaining credit to borrow against."""
    pass


class NoDebt(LendingError):
    """Raised when repaying on an account that owes nothing."""
    pass


class InsufficientAmount(LendingError):
    """Raised when a repayment does not cover the interest just settled."""
    pass


class Underflow(LendingError):
    """Raised when debt would be reduced below zero."""
    pass


class InsufficientBalance(LendingError):
    """Raised when withdrawing more collateral than the account holds."""
    pass


class StillInDebt(LendingError):
    """Raised when reclaiming collateral while debt is outstanding."""
    pass


class NothingToClaim(LendingError):
    """Raised when reclaiming collateral from an account that holds none."""
    pass


class NotDelinquent(LendingError):
    """Raised when liquidating an account that is not past the default threshold."""
    pass


class TransferFailed(LendingError):
    """Raised when the custody collaborator reports a failed transfer."""
    pass


class InvalidLoanTerms(LendingError):
    """Raised when loan terms would allow instant liquidation or negative interest."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LendingView(Protocol):
    """
    Read-only interface to lending state.

    Valuation and reporting functions accept a LendingView to declare that
    they never mutate the ledger. LendingEngine implements this protocol.
    """

    @property
    def current_time(self) -> int:
        """Return the current timestamp from the engine's clock."""
        ...

    def outstanding_debt(self, account: AccountId) -> int:
        """Return stored debt principal (without pending interest)."""
        ...

    def total_value(self, account: AccountId) -> int:
        """Return the account's collateral value in reference-asset units."""
        ...

    def holdings(self, account: AccountId) -> Holdings:
        """Return a copy of the account's positive collateral balances."""
        ...


class CustodyCollaborator(Protocol):
    """
    Executes value movement in and out of the ledger's custody.

    Both methods must return a definite True/False before the logical step
    completes. The ledger never assumes anything about how transfers happen.
    """

    def transfer_in(self, source: AccountId, asset: AssetId, amount: int) -> bool:
        ...

    def transfer_out(self, dest: AccountId, asset: AssetId, amount: int) -> bool:
        ...


class Authorizer(Protocol):
    """Role check gating administrative operations."""

    def is_administrator(self, identity: AccountId) -> bool:
        ...


class Clock(Protocol):
    """Monotonic source of integer timestamps (seconds)."""

    def now(self) -> int:
        ...


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

def _require_int(name: str, value: Any, minimum: Optional[int] = 0) -> None:
    # bool is an int subclass; reject it explicitly.
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be int, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")


@dataclass(frozen=True, slots=True)
class CollateralAsset:
    """
    Registry entry for one accepted collateral asset.

    Attributes:
        asset_id: Asset identity.
        ratio: Reference-asset credit units granted per asset unit.
        retired: Retired assets accept no new deposits or repayments in kind.
                 Existing balances remain bookkept.
        beneficiary: Destination of this asset's collateral on liquidation.
    """
    asset_id: AssetId
    ratio: int
    retired: bool = False
    beneficiary: AccountId = BURN_ADDRESS

    def __post_init__(self):
        if not self.asset_id or not self.asset_id.strip():
            raise ValueError("asset_id cannot be empty")
        _require_int("ratio", self.ratio)
        if self.ratio == 0 and not self.retired:
            raise ValueError(f"asset {self.asset_id} with zero ratio must be retired")


@dataclass(frozen=True, slots=True)
class LoanTerms:
    """
    Process-wide loan terms.

    yearly_interest_percent: simple annual interest, in whole percent.
    default_threshold_percent: an account is delinquent once its debt exceeds
        collateral value times this percentage / 100. Must be > 100, otherwise
        every borrowing position would be instantly liquidatable.
    """
    yearly_interest_percent: int
    default_threshold_percent: int

    def __post_init__(self):
        _require_int("yearly_interest_percent", self.yearly_interest_percent, minimum=None)
        _require_int("default_threshold_percent", self.default_threshold_percent, minimum=None)
        if self.yearly_interest_percent < 0:
            raise InvalidLoanTerms(
                f"yearly_interest_percent cannot be negative, got {self.yearly_interest_percent}"
            )
        if self.default_threshold_percent <= 100:
            raise InvalidLoanTerms(
                f"default_threshold_percent must exceed 100 "
                f"(instant liquidation would be possible), got {self.default_threshold_percent}"
            )


@dataclass(frozen=True, slots=True)
class AccountPosition:
    """
    Per-account debt record.

    debt_principal includes interest capitalized by earlier settlements.
    last_accrual_time is zero while the position is dormant (no debt).
    """
    debt_principal: int = 0
    last_accrual_time: int = 0

    def __post_init__(self):
        _require_int("debt_principal", self.debt_principal)
        _require_int("last_accrual_time", self.last_accrual_time)

    @property
    def is_clean(self) -> bool:
        return self.debt_principal == 0


# ============================================================================
# CANONICAL SERIALIZATION
# ============================================================================

def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Dict ordering does not affect the output, so semantically identical
    records always hash to the same id.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, Enum):
        return f"E:{value.value}"
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    return f"R:{repr(value)}"


def content_hash(*parts: Any) -> str:
    """Deterministic 16-hex-digit hash of the canonical form of parts."""
    content = "|".join(_canonicalize(p) for p in parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]
