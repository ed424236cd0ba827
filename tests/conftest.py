"""
conftest.py - Shared pytest fixtures for lending tests

Provides common fixtures used across unit and conformance tests:
- A manual clock and a funded fake custody
- A configured engine (DAI reference, CORE and WETH collateral)
- State capture and custody reconciliation helpers
"""

import pytest
from typing import Any, Dict, Iterable

from lending import (
    LendingEngine, CollateralRegistry, LoanTerms,
    AdministratorSet, ManualClock,
    SECONDS_PER_YEAR,
)

from tests.fake_custody import FakeCustody


T0 = 1_600_000_000
DAY = 24 * 3600
WEEK = 7 * DAY
YEAR = SECONDS_PER_YEAR

ADMIN = "owner"
TREASURY = "treasury"
WETH_BENEFICIARY = "weth_pool"
USERS = ("alice", "bob", "carol")
LIQUIDITY = 10 ** 12


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_custody(wallet_funding: int = 1_000) -> FakeCustody:
    """Custody holding lending liquidity, with every user funded in every asset."""
    custody = FakeCustody()
    custody.fund(custody.custody_id, "DAI", LIQUIDITY)
    for user in USERS:
        for asset in ("CORE", "WETH", "DAI"):
            custody.fund(user, asset, wallet_funding)
    return custody


def make_engine(
    custody: FakeCustody,
    clock: ManualClock,
    yearly_interest_percent: int = 10,
    default_threshold_percent: int = 120,
    verbose: bool = False,
) -> LendingEngine:
    """Engine with DAI as reference, CORE at ratio 5 and WETH at ratio 2."""
    engine = LendingEngine(
        registry=CollateralRegistry(protected_assets=["CORE"]),
        terms=LoanTerms(yearly_interest_percent, default_threshold_percent),
        custody=custody,
        authorizer=AdministratorSet([ADMIN]),
        clock=clock,
        reference_asset="DAI",
        treasury=TREASURY,
        verbose=verbose,
    )
    engine.add_asset(ADMIN, "DAI", TREASURY, 1)
    engine.add_asset(ADMIN, "CORE", None, 5)
    engine.add_asset(ADMIN, "WETH", WETH_BENEFICIARY, 2)
    return engine


def capture_state(engine: LendingEngine, custody: FakeCustody, accounts: Iterable[str] = USERS) -> Dict[str, Any]:
    """Everything an operation may touch, for before/after comparison."""
    return {
        'positions': {a: engine.debt_ledger.position(a) for a in accounts},
        'holdings': {a: engine.holdings(a) for a in accounts},
        'reserves': {asset: engine.reserves(asset) for asset in ("CORE", "WETH", "DAI")},
        'suspense': {asset: engine.suspense(asset) for asset in ("CORE", "WETH", "DAI")},
        'audit_len': len(engine.audit_log),
        'wallets': {
            (w, asset): custody.balance_of(w, asset)
            for w in (*accounts, TREASURY, WETH_BENEFICIARY, custody.custody_id)
            for asset in ("CORE", "WETH", "DAI")
        },
    }


def apply_operation(engine: LendingEngine, op: str, user: str, asset: str, amount: int, other: str):
    """Dispatch one randomly generated operation to the engine."""
    if op == "deposit":
        return engine.add_collateral(user, asset, amount)
    if op == "borrow":
        return engine.borrow(user, amount)
    if op == "deposit_and_borrow":
        return engine.add_collateral_and_borrow(user, asset, amount, amount)
    if op == "repay":
        return engine.repay_loan(user, asset, amount)
    if op == "liquidate":
        return engine.liquidate_delinquent(other, user)
    if op == "reclaim":
        return engine.reclaim_all_collateral(user)
    if op == "reprice":
        return engine.set_ratio(ADMIN, asset, amount % 7)
    raise ValueError(f"unknown operation {op!r}")


OPERATIONS = ("deposit", "borrow", "deposit_and_borrow", "repay", "liquidate", "reclaim", "reprice")


def verify_custody_matches_books(engine: LendingEngine, custody: FakeCustody) -> Dict[str, int]:
    """Differences between custodied collateral and holdings plus reserves (empty when balanced)."""
    return engine.reconcile(custody.custodied_balances())


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return ManualClock(start=T0)


@pytest.fixture
def custody():
    return make_custody()


@pytest.fixture
def engine(custody, clock):
    return make_engine(custody, clock)


@pytest.fixture
def borrowed(engine):
    """alice: 20 CORE deposited (value 100), 40 DAI borrowed."""
    engine.add_collateral("alice", "CORE", 20)
    engine.borrow("alice", 40)
    return engine
