"""
lending - Collateralized Lending Ledger

Accounts deposit approved collateral assets, borrow a reference asset against
the credit value of that collateral, accrue simple interest on their debt,
repay in kind, reclaim collateral once debt-free, and are liquidated by anyone
once their debt crosses a configurable default threshold.

Usage:
    from lending import (
        LendingEngine, CollateralRegistry, LoanTerms,
        InMemoryCustody, AdministratorSet, ManualClock,
    )

    custody = InMemoryCustody()
    custody.fund("alice", "CORE", 100)
    custody.fund("alice", "DAI", 8)
    custody.fund(custody.custody_id, "DAI", 1_000_000)

    clock = ManualClock(start=1_600_000_000)
    engine = LendingEngine(
        registry=CollateralRegistry(protected_assets=["CORE"]),
        terms=LoanTerms(yearly_interest_percent=20, default_threshold_percent=110),
        custody=custody,
        authorizer=AdministratorSet(["owner"]),
        clock=clock,
        reference_asset="DAI",
        treasury="treasury",
    )
    engine.add_asset("owner", "DAI", "treasury", 1)
    engine.add_asset("owner", "CORE", "treasury", 5)

    engine.add_collateral("alice", "CORE", 20)     # value 100
    engine.borrow("alice", 40)                     # debt 40
    clock.advance(365 * 24 * 3600)
    engine.repay_loan("alice", "DAI", 48)          # 8 interest + 40 principal
    engine.reclaim_all_collateral("alice")
"""

# Core types
from .core import (
    AccountId,
    AssetId,
    Holdings,
    AccountStatus,
    CollateralAsset,
    LoanTerms,
    AccountPosition,
    LendingView,
    CustodyCollaborator,
    Authorizer,
    Clock,
    content_hash,
    SECONDS_PER_YEAR,
    REFERENCE_PRECISION,
    REFERENCE_ASSET_RATIO,
    NULL_ADDRESS,
    BURN_ADDRESS,
    # Errors
    LendingError,
    NotAuthorized,
    AlreadyRegistered,
    UnknownAsset,
    InvalidRatio,
    UnsupportedPrecision,
    ProtectedAsset,
    AssetRetired,
    WrongAssetForDeposit,
    ZeroAmount,
    OverDebted,
    NoDebt,
    InsufficientAmount,
    Underflow,
    InsufficientBalance,
    StillInDebt,
    NothingToClaim,
    NotDelinquent,
    TransferFailed,
    InvalidLoanTerms,
)

# Interest model
from .interest import accrue, calculate_pending_interest, calculate_total_debt

# Tables
from .registry import CollateralRegistry
from .debt_ledger import DebtLedger
from .vault import CollateralVault, calculate_collateral_value

# Audit
from .audit import AuditLog, AuditRecord, EventKind

# Collaborators
from .custody import InMemoryCustody, Transfer, LEDGER_CUSTODY
from .access import AdministratorSet, ManualClock, SystemClock

# Engine
from .engine import (
    LendingEngine,
    DepositResult,
    BorrowResult,
    CollateralAndBorrowResult,
    RepayResult,
    LiquidationResult,
    ReclaimResult,
    DebtorSummary,
)

# Configuration
from .config import AssetConfig, LendingConfig, load_config, build_engine
from .logging_setup import configure_logging


__all__ = [
    # Core
    'AccountId', 'AssetId', 'Holdings',
    'AccountStatus', 'CollateralAsset', 'LoanTerms', 'AccountPosition',
    'LendingView', 'CustodyCollaborator', 'Authorizer', 'Clock',
    'content_hash',
    'SECONDS_PER_YEAR', 'REFERENCE_PRECISION', 'REFERENCE_ASSET_RATIO',
    'NULL_ADDRESS', 'BURN_ADDRESS',
    # Errors
    'LendingError', 'NotAuthorized', 'AlreadyRegistered', 'UnknownAsset',
    'InvalidRatio', 'UnsupportedPrecision', 'ProtectedAsset', 'AssetRetired',
    'WrongAssetForDeposit', 'ZeroAmount', 'OverDebted', 'NoDebt',
    'InsufficientAmount', 'Underflow', 'InsufficientBalance', 'StillInDebt',
    'NothingToClaim', 'NotDelinquent', 'TransferFailed', 'InvalidLoanTerms',
    # Interest
    'accrue', 'calculate_pending_interest', 'calculate_total_debt',
    # Tables
    'CollateralRegistry', 'DebtLedger', 'CollateralVault', 'calculate_collateral_value',
    # Audit
    'AuditLog', 'AuditRecord', 'EventKind',
    # Collaborators
    'InMemoryCustody', 'Transfer', 'LEDGER_CUSTODY',
    'AdministratorSet', 'ManualClock', 'SystemClock',
    # Engine
    'LendingEngine', 'DepositResult', 'BorrowResult', 'CollateralAndBorrowResult',
    'RepayResult', 'LiquidationResult', 'ReclaimResult', 'DebtorSummary',
    # Configuration
    'AssetConfig', 'LendingConfig', 'load_config', 'build_engine',
    'configure_logging',
]
