"""
Custody Reconciliation Conformance Tests

INVARIANTS:

    Books match custody:  ∀ collateral asset a:
                              custodied(a) = Σ holdings(·, a) + reserves(a)
    Conservation:         ∀ asset a: Σ wallets(a) + custodied(a) is constant
                          (the ledger moves value, it never creates or destroys it)
    Round trip:           deposit then reclaim returns exactly what was deposited
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from lending import LendingError, ManualClock, BURN_ADDRESS

from tests.conftest import (
    T0, DAY, USERS, OPERATIONS, TREASURY, WETH_BENEFICIARY,
    apply_operation, make_custody, make_engine, verify_custody_matches_books,
)

ASSETS = ("CORE", "WETH", "DAI")


def total_supply(custody, asset):
    wallets = (*USERS, TREASURY, WETH_BENEFICIARY, BURN_ADDRESS, custody.custody_id)
    return sum(custody.balance_of(w, asset) for w in wallets)


class TestCustodyProperties:

    @given(st.lists(
        st.tuples(
            st.sampled_from(OPERATIONS),
            st.sampled_from(USERS),
            st.sampled_from(ASSETS),
            st.integers(min_value=0, max_value=300),
            st.integers(min_value=0, max_value=90 * DAY),
        ),
        min_size=1, max_size=30,
    ))
    @settings(max_examples=75, deadline=None)
    def test_books_match_custody_and_value_is_conserved(self, steps):
        custody = make_custody()
        clock = ManualClock(start=T0)
        engine = make_engine(custody, clock)
        supply = {asset: total_supply(custody, asset) for asset in ASSETS}

        for op, user, asset, amount, dt in steps:
            clock.advance(dt)
            other = USERS[(USERS.index(user) + 1) % len(USERS)]
            try:
                apply_operation(engine, op, user, asset, amount, other)
            except LendingError:
                pass
            assert verify_custody_matches_books(engine, custody) == {}
            for asset_id in ASSETS:
                assert total_supply(custody, asset_id) == supply[asset_id]

    @given(
        st.integers(min_value=1, max_value=1000),
        st.integers(min_value=1, max_value=1000),
        st.integers(min_value=0, max_value=5 * 365 * DAY),
    )
    @settings(max_examples=50, deadline=None)
    def test_deposit_reclaim_round_trip(self, core, weth, elapsed):
        custody = make_custody()
        clock = ManualClock(start=T0)
        engine = make_engine(custody, clock)

        engine.add_collateral("alice", "CORE", core)
        engine.add_collateral("alice", "WETH", weth)
        clock.advance(elapsed)
        result = engine.reclaim_all_collateral("alice")

        assert result.returned == {"CORE": core, "WETH": weth}
        assert custody.balance_of("alice", "CORE") == 1000
        assert custody.balance_of("alice", "WETH") == 1000
        assert custody.custodied_balances().get("CORE", 0) == 0
