"""
test_core_types.py - Unit tests for core value types

Tests:
- CollateralAsset validation
- LoanTerms validation (threshold must exceed 100)
- AccountPosition validation and dormancy
- Content hashing stability
- Error hierarchy
"""

import pytest

from lending import (
    CollateralAsset, LoanTerms, AccountPosition,
    content_hash, BURN_ADDRESS,
    LendingError, InvalidLoanTerms, ZeroAmount, TransferFailed,
    LendingView, LendingEngine,
)


# ============================================================================
# COLLATERAL ASSET
# ============================================================================

class TestCollateralAsset:

    def test_defaults(self):
        asset = CollateralAsset("CORE", 5)
        assert asset.retired is False
        assert asset.beneficiary == BURN_ADDRESS

    def test_empty_id_rejected(self):
        with pytest.raises(ValueError):
            CollateralAsset("  ", 5)

    def test_zero_ratio_requires_retired(self):
        with pytest.raises(ValueError):
            CollateralAsset("CORE", 0)
        assert CollateralAsset("CORE", 0, retired=True).ratio == 0

    def test_negative_ratio_rejected(self):
        with pytest.raises(ValueError):
            CollateralAsset("CORE", -1)

    def test_frozen(self):
        asset = CollateralAsset("CORE", 5)
        with pytest.raises(AttributeError):
            asset.ratio = 6


# ============================================================================
# LOAN TERMS
# ============================================================================

class TestLoanTerms:

    def test_valid_terms(self):
        terms = LoanTerms(20, 110)
        assert terms.yearly_interest_percent == 20
        assert terms.default_threshold_percent == 110

    @pytest.mark.parametrize("threshold", [0, 50, 100])
    def test_threshold_at_or_below_100_rejected(self, threshold):
        """A threshold of 100 or less would make fresh loans liquidatable."""
        with pytest.raises(InvalidLoanTerms):
            LoanTerms(10, threshold)

    def test_zero_interest_allowed(self):
        assert LoanTerms(0, 101).yearly_interest_percent == 0

    def test_negative_interest_rejected(self):
        with pytest.raises(InvalidLoanTerms):
            LoanTerms(-1, 120)

    def test_negative_threshold_rejected(self):
        with pytest.raises(InvalidLoanTerms):
            LoanTerms(10, -5)

    def test_float_rejected(self):
        with pytest.raises(ValueError):
            LoanTerms(10.5, 120)


# ============================================================================
# ACCOUNT POSITION
# ============================================================================

class TestAccountPosition:

    def test_default_is_clean(self):
        position = AccountPosition()
        assert position.is_clean
        assert position.last_accrual_time == 0

    def test_with_debt_not_clean(self):
        assert not AccountPosition(10, 5).is_clean

    def test_negative_debt_rejected(self):
        with pytest.raises(ValueError):
            AccountPosition(-1, 0)

    def test_bool_rejected_as_int(self):
        with pytest.raises(ValueError):
            AccountPosition(True, 0)


# ============================================================================
# CONTENT HASH
# ============================================================================

class TestContentHash:

    def test_sixteen_hex_digits(self):
        h = content_hash("a", 1)
        assert len(h) == 16
        int(h, 16)

    def test_dict_order_independent(self):
        assert content_hash({'a': 1, 'b': 2}) == content_hash({'b': 2, 'a': 1})

    def test_type_sensitive(self):
        assert content_hash(1) != content_hash("1")
        assert content_hash(True) != content_hash(1)

    def test_none_distinct_from_empty_string(self):
        assert content_hash(None) != content_hash("")


# ============================================================================
# ERRORS AND PROTOCOLS
# ============================================================================

class TestErrorsAndProtocols:

    def test_errors_share_base(self):
        assert issubclass(ZeroAmount, LendingError)
        assert issubclass(TransferFailed, LendingError)
        assert issubclass(InvalidLoanTerms, LendingError)

    def test_engine_satisfies_lending_view(self, engine):
        assert isinstance(engine, LendingView)
        assert isinstance(engine, LendingEngine)
