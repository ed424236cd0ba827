"""
test_debt_ledger.py - Unit tests for DebtLedger

Tests:
- Interest settlement and capitalization
- Debt increase/decrease, underflow, dormancy on full repayment
- Reset and snapshot/restore
"""

import pytest

from lending import DebtLedger, AccountPosition, Underflow, SECONDS_PER_YEAR


@pytest.fixture
def ledger():
    dl = DebtLedger()
    dl.settle_interest("alice", 10, 1000)
    dl.increase_debt("alice", 1000)
    return dl


class TestSettlement:

    def test_unknown_account_reads_zero(self):
        assert DebtLedger().position("nobody") == AccountPosition()

    def test_capitalizes_interest(self, ledger):
        interest = ledger.settle_interest("alice", 10, 1000 + SECONDS_PER_YEAR)
        assert interest == 100
        assert ledger.position("alice") == AccountPosition(1100, 1000 + SECONDS_PER_YEAR)

    def test_second_settlement_same_time_is_zero(self, ledger):
        ledger.settle_interest("alice", 10, 5000)
        assert ledger.settle_interest("alice", 10, 5000) == 0

    def test_dormant_settlement_stamps_time(self):
        dl = DebtLedger()
        assert dl.settle_interest("bob", 10, 777) == 0
        assert dl.position("bob").last_accrual_time == 777

    def test_backwards_time_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.settle_interest("alice", 10, 999)


class TestDebtChanges:

    def test_increase_keeps_accrual_time(self, ledger):
        assert ledger.increase_debt("alice", 50) == 1050
        assert ledger.position("alice").last_accrual_time == 1000

    def test_partial_decrease(self, ledger):
        assert ledger.decrease_debt("alice", 400) == 600
        assert ledger.position("alice").last_accrual_time == 1000

    def test_full_decrease_goes_dormant(self, ledger):
        assert ledger.decrease_debt("alice", 1000) == 0
        assert ledger.position("alice") == AccountPosition(0, 0)

    def test_underflow_rejected(self, ledger):
        with pytest.raises(Underflow):
            ledger.decrease_debt("alice", 1001)
        assert ledger.outstanding_debt("alice") == 1000

    def test_reset(self, ledger):
        ledger.reset("alice")
        assert ledger.position("alice") == AccountPosition(0, 0)


class TestSnapshots:

    def test_restore_previous_position(self, ledger):
        snap = ledger.snapshot("alice")
        ledger.increase_debt("alice", 5)
        ledger.restore("alice", snap)
        assert ledger.outstanding_debt("alice") == 1000

    def test_restore_unseen_account_removes_entry(self, ledger):
        snap = ledger.snapshot("bob")
        assert snap is None
        ledger.increase_debt("bob", 5)
        ledger.restore("bob", snap)
        assert ledger.list_accounts() == ["alice"]
