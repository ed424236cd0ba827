#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Lending Ledger Step by Step

A walk through one account's life in the lending ledger. Each step builds
on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Setup        - Registry, custody, first deposit
  4-6:  Borrowing    - Credit capacity, capping, interest over time
  7-8:  Repayment    - Repaying in kind, reclaiming collateral
  9-10: Liquidation  - Repricing, delinquency, beneficiaries
  11:   Atomicity    - A refused transfer leaves nothing behind

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
    python demo.py --quick --log-level DEBUG
"""

from dataclasses import dataclass
import sys

from lending import (
    LendingEngine, CollateralRegistry, LoanTerms,
    InMemoryCustody, AdministratorSet, ManualClock,
    AccountStatus, LendingError, BURN_ADDRESS, SECONDS_PER_YEAR,
    configure_logging,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: int = 1_600_000_000
    yearly_interest_percent: int = 10
    default_threshold_percent: int = 120

    core_ratio: int = 5
    weth_ratio: int = 2

    alice_core: int = 100
    alice_dai: int = 50
    liquidity: int = 1_000_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_account(engine: LendingEngine, account: str):
    summary = engine.debtor_summary(account)
    print(f"  holdings:         {dict(summary.holdings)}")
    print(f"  collateral value: {summary.collateral_value}")
    print(f"  debt principal:   {summary.debt_principal}")
    print(f"  pending interest: {summary.pending_interest}")
    print(f"  status:           {summary.status.value}")


# ============================================================================
# PHASE 1: SETUP
# ============================================================================

def step_01_setup():
    """Build the engine and its collaborators."""
    step_header(1, "The Engine and Its Collaborators",
        "See what the ledger owns and what it delegates.")

    print("""
    The ledger owns three tables:
      - CollateralRegistry: accepted assets, their ratio and beneficiary
      - DebtLedger:         debt principal and last accrual time per account
      - CollateralVault:    deposited balances per account and asset

    Value itself moves through a custody collaborator, authorization is a
    role check, and time comes from an injected clock.
    """)

    custody = InMemoryCustody()
    custody.fund(custody.custody_id, "DAI", CONFIG.liquidity)
    custody.fund("alice", "CORE", CONFIG.alice_core)
    custody.fund("alice", "DAI", CONFIG.alice_dai)
    custody.fund("alice", "WETH", 100)

    clock = ManualClock(start=CONFIG.start_time)
    engine = LendingEngine(
        registry=CollateralRegistry(protected_assets=["CORE"]),
        terms=LoanTerms(CONFIG.yearly_interest_percent, CONFIG.default_threshold_percent),
        custody=custody,
        authorizer=AdministratorSet(["owner"]),
        clock=clock,
        reference_asset="DAI",
        treasury="treasury",
        verbose=True,
    )
    print(f"Loan terms: {engine.terms}")
    return engine, custody, clock


def step_02_register_assets(engine: LendingEngine):
    """Register the reference asset and two collateral assets."""
    step_header(2, "Registering Assets",
        "Ratios convert asset units into borrowable reference units.")

    engine.add_asset("owner", "DAI", "treasury", 1)
    engine.add_asset("owner", "CORE", None, CONFIG.core_ratio)
    engine.add_asset("owner", "WETH", "weth_pool", CONFIG.weth_ratio)

    for asset_id in engine.registry.list_assets():
        asset = engine.registry.get(asset_id)
        print(f"  {asset_id:5} ratio={asset.ratio:<3} beneficiary={asset.beneficiary}")

    section_header("Only administrators may do this")
    try:
        engine.add_asset("alice", "LINK", None, 3)
    except LendingError as e:
        print(f"  Rejected: {type(e).__name__}: {e}")


def step_03_first_deposit(engine: LendingEngine, custody: InMemoryCustody):
    """Deposit collateral."""
    step_header(3, "First Deposit",
        "Collateral moves into custody and is booked in the vault.")

    result = engine.add_collateral("alice", "CORE", 20)
    print(f"  deposited 20 CORE, collateral value now {result.collateral_value}")
    print(f"  alice wallet CORE: {custody.balance_of('alice', 'CORE')}")
    print(f"  custodied CORE:    {custody.custodied('CORE')}")

    section_header("The reference asset cannot be collateral")
    try:
        engine.add_collateral("alice", "DAI", 10)
    except LendingError as e:
        print(f"  Rejected: {type(e).__name__}")


# ============================================================================
# PHASE 2: BORROWING
# ============================================================================

def step_04_borrow(engine: LendingEngine):
    step_header(4, "Borrowing", "Debt grows by what is disbursed.")
    result = engine.borrow("alice", 40)
    print(f"  disbursed {result.disbursed}, debt {result.debt_after}, available {result.available_after}")
    show_account(engine, "alice")


def step_05_capping(engine: LendingEngine):
    step_header(5, "Requests Beyond Capacity Are Capped",
        "Asking for too much gives you the maximum, not an error.")
    result = engine.borrow("alice", 1_000)
    print(f"  requested {result.requested}, disbursed {result.disbursed}, capped={result.capped}")
    try:
        engine.borrow("alice", 1)
    except LendingError as e:
        print(f"  Next borrow rejected: {type(e).__name__}")


def step_06_interest(engine: LendingEngine, clock: ManualClock):
    step_header(6, "Interest Over Time",
        "Simple interest accrues from the last settlement, and is capitalized by the next operation.")
    clock.advance(SECONDS_PER_YEAR)
    print(f"  one year later, pending interest: {engine.accrued_interest('alice')}")
    print(f"  total debt:                       {engine.total_debt('alice')}")
    print(f"  status:                           {engine.account_status('alice').value}")


# ============================================================================
# PHASE 3: REPAYMENT
# ============================================================================

def step_07_repay(engine: LendingEngine, custody: InMemoryCustody):
    step_header(7, "Repaying",
        "Repayments cover interest first; the interest goes to the treasury.")
    total = engine.total_debt("alice")
    result = engine.repay_loan("alice", "DAI", total)
    print(f"  repaid {result.amount} DAI: interest {result.interest_paid}, principal {result.principal_paid}")
    print(f"  treasury DAI: {custody.balance_of('treasury', 'DAI')}")
    show_account(engine, "alice")


def step_08_reclaim(engine: LendingEngine, custody: InMemoryCustody):
    step_header(8, "Reclaiming Collateral", "A debt-free account takes everything back.")
    result = engine.reclaim_all_collateral("alice")
    print(f"  returned: {dict(result.returned)}")
    print(f"  alice wallet CORE: {custody.balance_of('alice', 'CORE')}")


# ============================================================================
# PHASE 4: LIQUIDATION
# ============================================================================

def step_09_delinquency(engine: LendingEngine):
    step_header(9, "Repricing Makes an Account Delinquent",
        f"Delinquent once debt exceeds {CONFIG.default_threshold_percent}% of collateral value.")
    engine.add_collateral("alice", "CORE", 10)
    engine.add_collateral("alice", "WETH", 10)
    engine.borrow("alice", 70)
    show_account(engine, "alice")
    engine.set_ratio("owner", "WETH", 0)
    print("\n  WETH retired (ratio 0):")
    show_account(engine, "alice")


def step_10_liquidation(engine: LendingEngine, custody: InMemoryCustody):
    step_header(10, "Liquidation", "Anyone may liquidate; collateral goes to each asset's beneficiary.")
    assert engine.account_status("alice") == AccountStatus.DELINQUENT
    result = engine.liquidate_delinquent("bob", "alice")
    print(f"  debt cleared: {result.debt_cleared}")
    for asset_id, quantity in result.seized.items():
        print(f"  {quantity} {asset_id} -> {result.beneficiaries[asset_id]}")
    print(f"  burned CORE: {custody.balance_of(BURN_ADDRESS, 'CORE')}")
    print(f"  weth_pool WETH: {custody.balance_of('weth_pool', 'WETH')}")
    show_account(engine, "alice")


# ============================================================================
# PHASE 5: ATOMICITY
# ============================================================================

class RefusingCustody(InMemoryCustody):
    """Custody that refuses every DAI payout."""

    def transfer_out(self, dest, asset, amount):
        if asset == "DAI":
            return False
        return super().transfer_out(dest, asset, amount)


def step_11_atomicity():
    step_header(11, "All or Nothing",
        "A refused payout leaves the deposit and the books untouched.")
    custody = RefusingCustody()
    custody.fund("alice", "CORE", 20)
    engine = LendingEngine(
        registry=CollateralRegistry(),
        terms=LoanTerms(10, 120),
        custody=custody,
        authorizer=AdministratorSet(["owner"]),
        clock=ManualClock(),
        reference_asset="DAI",
        treasury="treasury",
    )
    engine.add_asset("owner", "CORE", None, 5)
    try:
        engine.add_collateral_and_borrow("alice", "CORE", 20, 40)
    except LendingError as e:
        print(f"  Rejected: {type(e).__name__}: {e}")
    print(f"  holdings after: {engine.holdings('alice')}")
    print(f"  debt after:     {engine.outstanding_debt('alice')}")
    print(f"  audit records for alice: {len(engine.audit_log.filter(account='alice'))}")


def main():
    """Run the complete tutorial."""
    level = sys.argv[sys.argv.index("--log-level") + 1] if "--log-level" in sys.argv else "INFO"
    configure_logging(level)

    print("=" * 70)
    print("       LENDING LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    engine, custody, clock = step_01_setup()
    wait_for_enter()
    step_02_register_assets(engine)
    wait_for_enter()
    step_03_first_deposit(engine, custody)
    wait_for_enter()

    step_04_borrow(engine)
    wait_for_enter()
    step_05_capping(engine)
    wait_for_enter()
    step_06_interest(engine, clock)
    wait_for_enter()

    step_07_repay(engine, custody)
    wait_for_enter()
    step_08_reclaim(engine, custody)
    wait_for_enter()

    step_09_delinquency(engine)
    wait_for_enter()
    step_10_liquidation(engine, custody)
    wait_for_enter()

    step_11_atomicity()

    section_header("Audit log")
    for record in engine.audit_log:
        print(f"  {record!r}")
    print(f"\n  Custody reconciliation: {engine.reconcile(custody.custodied_balances()) or 'balanced'}")


if __name__ == "__main__":
    main()
