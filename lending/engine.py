"""
engine.py - Lending Engine

LendingEngine orchestrates the CollateralRegistry, DebtLedger and
CollateralVault into the public operations:

    add_collateral, add_collateral_and_borrow, borrow, repay_loan,
    liquidate_delinquent, reclaim_all_collateral

and the administrative ones:

    add_asset, set_ratio, set_beneficiary, change_loan_terms

Every account operation follows the same sequence:
    1. settle accrued interest on the DebtLedger
    2. read current collateral value from the CollateralVault
    3. apply the requested change
    4. execute custody transfers, payouts before pulls
    5. commit audit records and return a result describing what happened

Operations are all-or-nothing. The engine snapshots the account's tables
before step 1; any failure (including TransferFailed from custody) restores
the snapshot, compensates transfers already executed in the step, and
re-raises. Audit records and reserve changes are staged and only committed
once the whole step has succeeded. A transfer custody refuses to reverse
is booked to suspense (see suspense()) so reconcile() still balances.

Thread Safety:
    Operations on one account are serialized by a per-account lock.
    Operations on distinct accounts run independently. Administrative
    changes take a separate admin lock.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, replace
import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .audit import AuditLog, AuditRecord, EventKind
from .core import (
    AccountId, AssetId, Holdings,
    AccountStatus, CollateralAsset, LoanTerms,
    Authorizer, Clock, CustodyCollaborator,
    REFERENCE_PRECISION,
    AssetRetired, InsufficientAmount, NoDebt, NotAuthorized, NotDelinquent,
    NothingToClaim, OverDebted, StillInDebt, TransferFailed,
    WrongAssetForDeposit, ZeroAmount, _require_int,
)
from .debt_ledger import DebtLedger
from .interest import calculate_pending_interest, calculate_total_debt
from .registry import CollateralRegistry
from .vault import CollateralVault

logger = logging.getLogger(__name__)


# ============================================================================
# RESULTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class DepositResult:
    """Outcome of add_collateral()."""
    account: AccountId
    asset: AssetId
    amount: int
    balance_after: int
    interest_capitalized: int
    collateral_value: int
    records: Tuple[AuditRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class BorrowResult:
    """
    Outcome of borrow().

    disbursed is min(requested, available credit). capped is True when the
    request exceeded capacity and was reduced instead of rejected.
    """
    account: AccountId
    requested: int
    disbursed: int
    capped: bool
    interest_capitalized: int
    debt_after: int
    available_after: int
    records: Tuple[AuditRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class CollateralAndBorrowResult:
    """Outcome of add_collateral_and_borrow()."""
    deposit: DepositResult
    borrow: BorrowResult
    records: Tuple[AuditRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class RepayResult:
    """
    Outcome of repay_loan().

    equivalent = amount * ratio, in reference-asset units. It is applied to
    interest_paid first, then principal_paid. unapplied is the part of
    equivalent beyond total debt, which is retained and not refunded.
    interest_to_treasury is the interest converted back to asset units.
    """
    account: AccountId
    asset: AssetId
    amount: int
    equivalent: int
    interest_paid: int
    principal_paid: int
    unapplied: int
    interest_to_treasury: int
    debt_after: int
    records: Tuple[AuditRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """Outcome of liquidate_delinquent()."""
    account: AccountId
    liquidator: AccountId
    debt_cleared: int
    collateral_value: int
    seized: Mapping[AssetId, int]
    beneficiaries: Mapping[AssetId, AccountId]
    records: Tuple[AuditRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class ReclaimResult:
    """Outcome of reclaim_all_collateral()."""
    account: AccountId
    returned: Mapping[AssetId, int]
    records: Tuple[AuditRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class DebtorSummary:
    """Read-only snapshot of one account."""
    account: AccountId
    debt_principal: int
    last_accrual_time: int
    pending_interest: int
    collateral_value: int
    holdings: Mapping[AssetId, int]
    status: AccountStatus


# ============================================================================
# STEP (staged effects of one logical operation)
# ============================================================================

class _Step:
    """
    Effects of one in-flight operation.

    Custody transfers are queued by the operation body and executed once it
    returns, payouts before pulls. A payout the recipient refuses therefore
    fails before anything has been taken from the account. Executed
    transfers are remembered for compensation. Audit records and reserve
    deltas are staged until commit.
    """

    def __init__(self, custody: CustodyCollaborator, now: int, initiator: AccountId):
        self.custody = custody
        self.now = now
        self.initiator = initiator
        self.pending: List[Tuple[str, AccountId, AssetId, int]] = []
        self.executed: List[Tuple[str, AccountId, AssetId, int]] = []
        self.records: List[Dict[str, Any]] = []
        self.reserve_deltas: Dict[AssetId, int] = defaultdict(int)

    def transfer_in(self, source: AccountId, asset: AssetId, amount: int) -> None:
        if amount:
            self.pending.append(("in", source, asset, amount))

    def transfer_out(self, dest: AccountId, asset: AssetId, amount: int) -> None:
        if amount:
            self.pending.append(("out", dest, asset, amount))

    def record(self, kind: EventKind, **fields: Any) -> None:
        self.records.append({'kind': kind, **fields})

    def execute(self) -> None:
        """Run queued transfers, payouts first. Raises TransferFailed on the first refusal."""
        queued = [t for t in self.pending if t[0] == "out"] + [t for t in self.pending if t[0] == "in"]
        self.pending.clear()
        for direction, party, asset, amount in queued:
            if direction == "in":
                ok = self.custody.transfer_in(party, asset, amount)
            else:
                ok = self.custody.transfer_out(party, asset, amount)
            if not ok:
                preposition = "from" if direction == "in" else "to"
                raise TransferFailed(f"transfer {direction} of {amount} {asset} {preposition} {party} failed")
            self.executed.append((direction, party, asset, amount))

    def compensate(self) -> List[Tuple[str, AccountId, AssetId, int]]:
        """
        Reverse executed transfers, newest first.

        Returns:
            Transfers whose reversal custody also refused, in execution order.
        """
        unreversed = []
        for direction, party, asset, amount in reversed(self.executed):
            if direction == "in":
                ok = self.custody.transfer_out(party, asset, amount)
            else:
                ok = self.custody.transfer_in(party, asset, amount)
            if not ok:
                logger.error(
                    "Compensation failed: could not reverse %s transfer of %d %s (%s)",
                    direction, amount, asset, party,
                )
                unreversed.append((direction, party, asset, amount))
        self.executed.clear()
        self.pending.clear()
        unreversed.reverse()
        return unreversed


# ============================================================================
# ENGINE
# ============================================================================

class LendingEngine:
    """
    Collateralized lending ledger.

    Implements the LendingView protocol.

    Args:
        registry: Collateral registry (shared, read-mostly)
        terms: Initial loan terms
        custody: Executes transfers in/out of the ledger's custody
        authorizer: Decides who may run administrative operations
        clock: Source of timestamps
        reference_asset: Asset that is borrowed and in which debt is denominated
        treasury: Destination of interest paid in kind
        verbose: Log applied operations at INFO instead of DEBUG, and
                 rejected operations at WARNING

    Example:
        engine = LendingEngine(registry, LoanTerms(10, 120), custody,
                               AdministratorSet(["owner"]), ManualClock(),
                               reference_asset="DAI", treasury="treasury")
        engine.add_collateral("alice", "CORE", 20)
        engine.borrow("alice", 40)
    """

    def __init__(
        self,
        registry: CollateralRegistry,
        terms: LoanTerms,
        custody: CustodyCollaborator,
        authorizer: Authorizer,
        clock: Clock,
        reference_asset: AssetId,
        treasury: AccountId,
        debt_ledger: Optional[DebtLedger] = None,
        vault: Optional[CollateralVault] = None,
        audit_log: Optional[AuditLog] = None,
        verbose: bool = False,
    ):
        self.registry = registry
        self._terms = terms
        self._custody = custody
        self._authorizer = authorizer
        self._clock = clock
        self.reference_asset = reference_asset
        self.treasury = treasury
        self.debt_ledger = debt_ledger if debt_ledger is not None else DebtLedger()
        self.vault = vault if vault is not None else CollateralVault(registry)
        self.audit_log = audit_log if audit_log is not None else AuditLog()
        self.verbose = verbose
        # Repaid units that stay in custody without belonging to any account
        self._reserves: Dict[AssetId, int] = defaultdict(int)
        # Units of failed operations whose transfers could not be reversed, per asset and party
        self._suspense: Dict[AssetId, Dict[AccountId, int]] = defaultdict(lambda: defaultdict(int))

        self._account_locks: Dict[AccountId, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._admin_lock = threading.RLock()
        self._commit_lock = threading.Lock()

    # ========================================================================
    # LendingView PROTOCOL / QUERIES
    # ========================================================================

    @property
    def current_time(self) -> int:
        return self._clock.now()

    @property
    def terms(self) -> LoanTerms:
        return self._terms

    def outstanding_debt(self, account: AccountId) -> int:
        """Stored debt principal. Does not accrue."""
        return self.debt_ledger.outstanding_debt(account)

    def total_value(self, account: AccountId) -> int:
        """Collateral value of the account in reference-asset units."""
        return self.vault.total_value(account)

    def holdings(self, account: AccountId) -> Holdings:
        return self.vault.holdings(account)

    def user_collateral_value(self, account: AccountId) -> int:
        """Alias of total_value()."""
        return self.vault.total_value(account)

    def accrued_interest(self, account: AccountId) -> int:
        """Interest pending since the last settlement, without settling it."""
        position = self.debt_ledger.position(account)
        return calculate_pending_interest(position, self._terms.yearly_interest_percent, self.current_time)

    def total_debt(self, account: AccountId) -> int:
        """Stored principal plus pending interest."""
        position = self.debt_ledger.position(account)
        return calculate_total_debt(position, self._terms.yearly_interest_percent, self.current_time)

    def account_status(self, account: AccountId) -> AccountStatus:
        """Solvency state, computed with pending interest included."""
        return self._status(self.total_debt(account), self.total_value(account))

    def debtor_summary(self, account: AccountId) -> DebtorSummary:
        position = self.debt_ledger.position(account)
        pending = self.accrued_interest(account)
        value = self.total_value(account)
        return DebtorSummary(
            account=account,
            debt_principal=position.debt_principal,
            last_accrual_time=position.last_accrual_time,
            pending_interest=pending,
            collateral_value=value,
            holdings=self.holdings(account),
            status=self._status(position.debt_principal + pending, value),
        )

    def reserves(self, asset: AssetId) -> int:
        """Repaid units of asset retained in custody."""
        return self._reserves.get(asset, 0)

    def suspense(self, asset: AssetId) -> Dict[AccountId, int]:
        """
        Units of asset left by transfers that could not be reversed.

        Positive entries are held in custody on the party's behalf; negative
        entries were paid to the party and are owed back.
        """
        with self._commit_lock:
            return {p: q for p, q in sorted(self._suspense.get(asset, {}).items()) if q}

    def reconcile(self, custodied: Mapping[AssetId, int]) -> Dict[AssetId, int]:
        """
        Compare custodied totals against the ledger's books.

        For every collateral asset, custodied amount must equal the sum of
        account holdings, retained reserves and suspense. The reference
        asset is excluded; its custody balance is lending liquidity.

        Returns:
            Mapping of asset -> (custodied - booked) for assets that differ.
        """
        with self._commit_lock:
            assets = set(custodied) | set(self.vault.list_assets()) | set(self._reserves) | set(self._suspense)
            differences = {}
            for asset in sorted(assets - {self.reference_asset}):
                booked = (self.vault.total_deposited(asset) + self._reserves.get(asset, 0)
                          + sum(self._suspense.get(asset, {}).values()))
                diff = custodied.get(asset, 0) - booked
                if diff:
                    differences[asset] = diff
        return differences

    def _status(self, debt: int, value: int) -> AccountStatus:
        if debt == 0:
            return AccountStatus.CLEAN
        if debt * 100 > value * self._terms.default_threshold_percent:
            return AccountStatus.DELINQUENT
        return AccountStatus.ACTIVE

    # ========================================================================
    # ACCOUNT OPERATIONS
    # ========================================================================

    def add_collateral(self, account: AccountId, asset_id: AssetId, amount: int) -> DepositResult:
        """
        Deposit amount of asset_id as collateral.

        Raises:
            WrongAssetForDeposit: asset_id is the reference asset
            AssetRetired: asset is retired or unknown
            ZeroAmount: amount is zero
            TransferFailed: custody refused the transfer in
        """
        return self._run("add_collateral", account, account,
                         lambda step: self._add_collateral(step, account, asset_id, amount))

    def borrow(self, account: AccountId, amount: int) -> BorrowResult:
        """
        Borrow up to amount of the reference asset.

        Requests beyond available credit are capped to the maximum, not
        rejected.

        Raises:
            ZeroAmount: amount is zero
            OverDebted: no credit available
            TransferFailed: custody refused the transfer out
        """
        return self._run("borrow", account, account,
                         lambda step: self._borrow(step, account, amount))

    def add_collateral_and_borrow(
        self,
        account: AccountId,
        asset_id: AssetId,
        amount: int,
        borrow_amount: int,
    ) -> CollateralAndBorrowResult:
        """Deposit then borrow as one step. Both succeed or neither does."""
        def body(step: _Step) -> CollateralAndBorrowResult:
            deposit = self._add_collateral(step, account, asset_id, amount)
            loan = self._borrow(step, account, borrow_amount)
            return CollateralAndBorrowResult(deposit=deposit, borrow=loan)
        return self._run("add_collateral_and_borrow", account, account, body)

    def repay_loan(self, account: AccountId, asset_id: AssetId, amount: int) -> RepayResult:
        """
        Repay debt in kind with amount of asset_id.

        Collateral assets are taken from the account's vault holding. The
        reference asset is pulled from the account through custody.

        Raises:
            NoDebt: account owes nothing
            ZeroAmount: amount is zero
            AssetRetired: asset is retired or unknown
            InsufficientAmount: amount * ratio is below the interest just settled
            InsufficientBalance: vault holding smaller than amount
            TransferFailed: custody refused a transfer
        """
        return self._run("repay_loan", account, account,
                         lambda step: self._repay(step, account, asset_id, amount))

    def liquidate_delinquent(self, liquidator: AccountId, account: AccountId) -> LiquidationResult:
        """
        Liquidate a delinquent account. Anyone may call this, including the
        account itself.

        Every holding goes to its asset's liquidation beneficiary, and the
        account's debt is cleared.

        Raises:
            NotDelinquent: account is not past the default threshold
            TransferFailed: custody refused a transfer
        """
        return self._run("liquidate_delinquent", account, liquidator,
                         lambda step: self._liquidate(step, liquidator, account))

    def reclaim_all_collateral(self, account: AccountId) -> ReclaimResult:
        """
        Return every holding to a debt-free account.

        Raises:
            StillInDebt: debt is outstanding after settling interest
            NothingToClaim: account holds no collateral
            TransferFailed: custody refused a transfer
        """
        return self._run("reclaim_all_collateral", account, account,
                         lambda step: self._reclaim(step, account))

    # ------------------------------------------------------------------------
    # Operation bodies (run inside _run with the account lock held)
    # ------------------------------------------------------------------------

    def _add_collateral(self, step: _Step, account: AccountId, asset_id: AssetId, amount: int) -> DepositResult:
        _require_int("amount", amount)
        if asset_id == self.reference_asset:
            raise WrongAssetForDeposit(f"{asset_id} is only for repayment")
        if self.registry.is_retired(asset_id):
            raise AssetRetired(f"Asset {asset_id} is retired")
        if amount == 0:
            raise ZeroAmount("Supply collateral")

        debt_before = self.debt_ledger.outstanding_debt(account)
        interest = self.debt_ledger.settle_interest(account, self._terms.yearly_interest_percent, step.now)
        balance_before = self.vault.balance_of(account, asset_id)
        balance_after = self.vault.deposit(account, asset_id, amount, step.now)
        step.transfer_in(account, asset_id, amount)

        step.record(
            EventKind.COLLATERAL_ADDED, account=account, asset=asset_id, amount=amount,
            before={'balance': balance_before, 'debt': debt_before},
            after={'balance': balance_after, 'debt': self.debt_ledger.outstanding_debt(account)},
        )
        return DepositResult(
            account=account,
            asset=asset_id,
            amount=amount,
            balance_after=balance_after,
            interest_capitalized=interest,
            collateral_value=self.vault.total_value(account),
        )

    def _borrow(self, step: _Step, account: AccountId, amount: int) -> BorrowResult:
        _require_int("amount", amount)
        if amount == 0:
            raise ZeroAmount("Borrow something")

        debt_before = self.debt_ledger.outstanding_debt(account)
        interest = self.debt_ledger.settle_interest(account, self._terms.yearly_interest_percent, step.now)
        value = self.vault.total_value(account)
        debt = self.debt_ledger.outstanding_debt(account)
        available = value - debt
        if available <= 0:
            raise OverDebted(f"{account}: debt {debt} >= collateral value {value}")

        disbursed = min(amount, available)
        debt_after = self.debt_ledger.increase_debt(account, disbursed)
        step.transfer_out(account, self.reference_asset, disbursed)

        step.record(
            EventKind.LOAN_TAKEN, account=account, asset=self.reference_asset,
            amount=disbursed + interest,
            before={'debt': debt_before},
            after={'debt': debt_after, 'requested': amount, 'disbursed': disbursed},
        )
        if interest:
            step.record(EventKind.INTEREST_PAID, account=account, asset=self.reference_asset, amount=interest)
        return BorrowResult(
            account=account,
            requested=amount,
            disbursed=disbursed,
            capped=disbursed < amount,
            interest_capitalized=interest,
            debt_after=debt_after,
            available_after=value - debt_after,
        )

    def _repay(self, step: _Step, account: AccountId, asset_id: AssetId, amount: int) -> RepayResult:
        _require_int("amount", amount)
        if self.debt_ledger.outstanding_debt(account) == 0:
            raise NoDebt(f"{account} has no debt")
        if amount == 0:
            raise ZeroAmount("Not enough collateral offered")
        if self.registry.is_retired(asset_id):
            raise AssetRetired(f"Asset {asset_id} is retired")

        debt_before = self.debt_ledger.outstanding_debt(account)
        interest = self.debt_ledger.settle_interest(account, self._terms.yearly_interest_percent, step.now)
        ratio = self.registry.ratio_of(asset_id)
        equivalent = amount * ratio
        if equivalent < interest:
            raise InsufficientAmount(
                f"{account}: repayment worth {equivalent} does not cover interest {interest}"
            )

        debt = self.debt_ledger.outstanding_debt(account)
        applied = min(equivalent, debt)
        debt_after = self.debt_ledger.decrease_debt(account, applied)

        if asset_id == self.reference_asset:
            step.transfer_in(account, asset_id, amount)
        else:
            self.vault.withdraw(account, asset_id, amount)
        interest_in_asset = interest // ratio
        step.transfer_out(self.treasury, asset_id, interest_in_asset)
        step.reserve_deltas[asset_id] += amount - interest_in_asset

        step.record(
            EventKind.REPAYMENT, account=account, asset=asset_id, amount=amount,
            before={'debt': debt_before},
            after={'debt': debt_after, 'applied': applied, 'unapplied': equivalent - applied},
        )
        if interest:
            step.record(EventKind.INTEREST_PAID, account=account, asset=asset_id, amount=interest,
                        after={'treasury_units': interest_in_asset})
        return RepayResult(
            account=account,
            asset=asset_id,
            amount=amount,
            equivalent=equivalent,
            interest_paid=interest,
            principal_paid=applied - interest,
            unapplied=equivalent - applied,
            interest_to_treasury=interest_in_asset,
            debt_after=debt_after,
        )

    def _liquidate(self, step: _Step, liquidator: AccountId, account: AccountId) -> LiquidationResult:
        self.debt_ledger.settle_interest(account, self._terms.yearly_interest_percent, step.now)
        debt = self.debt_ledger.outstanding_debt(account)
        value = self.vault.total_value(account)
        if self._status(debt, value) != AccountStatus.DELINQUENT:
            raise NotDelinquent(
                f"{account}: debt {debt} within {self._terms.default_threshold_percent}% of collateral value {value}"
            )

        seized = self.vault.withdraw_all(account)
        beneficiaries = {}
        for asset_id, quantity in seized.items():
            beneficiary = self.registry.beneficiary_of(asset_id)
            beneficiaries[asset_id] = beneficiary
            step.transfer_out(beneficiary, asset_id, quantity)
            step.record(
                EventKind.COLLATERAL_LIQUIDATED, account=account, asset=asset_id, amount=quantity,
                before={'balance': quantity}, after={'balance': 0, 'beneficiary': beneficiary},
            )
        self.debt_ledger.reset(account)

        step.record(
            EventKind.LIQUIDATION, account=account, amount=value,
            before={'debt': debt}, after={'debt': 0},
        )
        return LiquidationResult(
            account=account,
            liquidator=liquidator,
            debt_cleared=debt,
            collateral_value=value,
            seized=seized,
            beneficiaries=beneficiaries,
        )

    def _reclaim(self, step: _Step, account: AccountId) -> ReclaimResult:
        self.debt_ledger.settle_interest(account, self._terms.yearly_interest_percent, step.now)
        debt = self.debt_ledger.outstanding_debt(account)
        if debt > 0:
            raise StillInDebt(f"{account} still owes {debt}")
        if not self.vault.holdings(account):
            raise NothingToClaim(f"{account} holds no collateral")

        returned = self.vault.withdraw_all(account)
        for asset_id, quantity in returned.items():
            step.transfer_out(account, asset_id, quantity)
            step.record(
                EventKind.COLLATERAL_RECLAIMED, account=account, asset=asset_id, amount=quantity,
                before={'balance': quantity}, after={'balance': 0},
            )
        return ReclaimResult(account=account, returned=returned)

    # ========================================================================
    # ADMINISTRATIVE OPERATIONS
    # ========================================================================

    def add_asset(
        self,
        caller: AccountId,
        asset_id: AssetId,
        beneficiary: Optional[AccountId],
        ratio: int,
        precision: int = REFERENCE_PRECISION,
    ) -> CollateralAsset:
        """Register a collateral asset. See CollateralRegistry.add_asset()."""
        with self._admin_lock:
            self._require_admin(caller, "add_asset")
            asset = self.registry.add_asset(asset_id, beneficiary, ratio, precision)
            self._record_admin(
                EventKind.ASSET_ADDED, caller, asset=asset_id, amount=ratio,
                after={'ratio': asset.ratio, 'beneficiary': asset.beneficiary},
            )
            return asset

    def set_ratio(self, caller: AccountId, asset_id: AssetId, new_ratio: int) -> CollateralAsset:
        """Change an asset's ratio; zero retires it."""
        with self._admin_lock:
            self._require_admin(caller, "set_ratio")
            old, new = self.registry.set_ratio(asset_id, new_ratio)
            self._record_admin(
                EventKind.RATIO_CHANGED, caller, asset=asset_id, amount=new_ratio,
                before={'ratio': old.ratio, 'retired': old.retired},
                after={'ratio': new.ratio, 'retired': new.retired},
            )
            return new

    def set_beneficiary(self, caller: AccountId, asset_id: AssetId, new_beneficiary: Optional[AccountId]) -> CollateralAsset:
        """Redirect an asset's liquidations; null selects the burn sentinel."""
        with self._admin_lock:
            self._require_admin(caller, "set_beneficiary")
            old, new = self.registry.set_beneficiary(asset_id, new_beneficiary)
            self._record_admin(
                EventKind.BENEFICIARY_CHANGED, caller, asset=asset_id,
                before={'beneficiary': old.beneficiary},
                after={'beneficiary': new.beneficiary},
            )
            return new

    def change_loan_terms(
        self,
        caller: AccountId,
        yearly_interest_percent: int,
        default_threshold_percent: int,
    ) -> LoanTerms:
        """
        Replace the loan terms.

        The new rate applies to every account from its last settlement on.

        Raises:
            NotAuthorized: caller is not an administrator
            InvalidLoanTerms: threshold <= 100 or negative rate
        """
        with self._admin_lock:
            self._require_admin(caller, "change_loan_terms")
            new_terms = LoanTerms(yearly_interest_percent, default_threshold_percent)
            old_terms = self._terms
            self._terms = new_terms
            self._record_admin(
                EventKind.LOAN_TERMS_CHANGED, caller,
                before={'yearly_interest_percent': old_terms.yearly_interest_percent,
                        'default_threshold_percent': old_terms.default_threshold_percent},
                after={'yearly_interest_percent': new_terms.yearly_interest_percent,
                       'default_threshold_percent': new_terms.default_threshold_percent},
            )
            return new_terms

    def _require_admin(self, caller: AccountId, operation: str) -> None:
        if not self._authorizer.is_administrator(caller):
            if self.verbose:
                logger.warning("REJECTED %s: %s is not an administrator", operation, caller)
            raise NotAuthorized(f"{caller} is not an administrator")

    def _record_admin(self, kind: EventKind, caller: AccountId, **fields: Any) -> AuditRecord:
        with self._commit_lock:
            record = self.audit_log.append(kind, self.current_time, caller, **fields)
        self._log(logging.INFO, "APPLIED %r", record)
        return record

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _account_lock(self, account: AccountId) -> threading.RLock:
        with self._locks_guard:
            lock = self._account_locks.get(account)
            if lock is None:
                lock = self._account_locks[account] = threading.RLock()
            return lock

    def _run(self, operation: str, account: AccountId, initiator: AccountId, body: Callable[[_Step], Any]):
        """
        Execute body atomically for account.

        On any exception: compensate transfers, restore the account's
        tables, and re-raise. Nothing staged is committed. A transfer whose
        reversal custody also refuses is booked to suspense so custody and
        the books still reconcile.
        """
        with self._account_lock(account):
            step = _Step(self._custody, self._clock.now(), initiator)
            position = self.debt_ledger.snapshot(account)
            holdings = self.vault.snapshot(account)
            try:
                result = body(step)
                step.execute()
            except Exception as e:
                unreversed = step.compensate()
                self.debt_ledger.restore(account, position)
                self.vault.restore(account, holdings)
                if unreversed:
                    self._book_suspense(operation, step, unreversed)
                if self.verbose:
                    logger.warning("REJECTED %s(%s): %s: %s", operation, account, type(e).__name__, e)
                raise
            records = self._commit(step)
        self._log(logging.INFO, "APPLIED %s(%s) with %d record(s)", operation, account, len(records))
        return replace(result, records=records)

    def _commit(self, step: _Step) -> Tuple[AuditRecord, ...]:
        with self._commit_lock:
            for asset_id, delta in step.reserve_deltas.items():
                self._reserves[asset_id] += delta
            return tuple(
                self.audit_log.append(
                    timestamp=step.now,
                    initiator=step.initiator,
                    **fields,
                )
                for fields in step.records
            )

    def _book_suspense(
        self,
        operation: str,
        step: _Step,
        unreversed: List[Tuple[str, AccountId, AssetId, int]],
    ) -> None:
        # Positive: custody holds units for party. Negative: party holds units owed to custody.
        with self._commit_lock:
            for direction, party, asset_id, amount in unreversed:
                delta = amount if direction == "in" else -amount
                self._suspense[asset_id][party] += delta
                self.audit_log.append(
                    EventKind.SUSPENSE_BOOKED, step.now, step.initiator,
                    account=party, asset=asset_id, amount=amount,
                    after={'direction': direction, 'operation': operation,
                           'suspense': self._suspense[asset_id][party]},
                )

    def _log(self, level: int, msg: str, *args: Any) -> None:
        logger.log(level if self.verbose else logging.DEBUG, msg, *args)
