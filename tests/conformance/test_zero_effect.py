"""
Zero-Effect Conformance Tests

INVARIANT: Depositing and immediately redeeming the same amount, with no
outstanding debt, restores every ledger and external balance exactly.

    deposit(a, X, A); redeem(a, X, A)  ⟹  balances before = balances after

Only the event log grows (by one deposit and one redemption).
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from stable_engine import PRECISION, EventKind

from tests.fakes import ACCOUNTS, new_single_asset_engine, observable_state


class TestZeroEffectProperties:

    @given(
        st.sampled_from(ACCOUNTS),
        st.integers(min_value=1, max_value=100 * PRECISION),
    )
    @settings(max_examples=100, deadline=None)
    def test_deposit_then_redeem_restores_balances(self, account, amount):
        """
        PROPERTY: deposit followed by redeem of the same amount is a no-op on balances.
        """
        engine, weth, _, dsc = new_single_asset_engine()
        balances, log, external, supply = observable_state(engine, weth, dsc)

        engine.deposit_collateral(account, "WETH", amount)
        engine.redeem_collateral(account, "WETH", amount)

        after_balances, after_log, after_external, after_supply = observable_state(engine, weth, dsc)
        assert after_balances == balances
        assert after_external == external
        assert after_supply == supply
        assert [e.kind for e in after_log[len(log):]] == [EventKind.DEPOSITED, EventKind.REDEEMED]

    @given(
        st.integers(min_value=1, max_value=50 * PRECISION),
        st.integers(min_value=1, max_value=50 * PRECISION),
    )
    @settings(max_examples=100, deadline=None)
    def test_other_positions_untouched(self, existing, amount):
        """
        PROPERTY: The round trip does not disturb another account's position.
        """
        engine, weth, _, dsc = new_single_asset_engine()
        engine.deposit_collateral_and_mint("bob", "WETH", existing, 1)
        bob_before = (engine.collateral_balance("bob", "WETH"), engine.debt_of("bob"), engine.health_factor("bob"))

        engine.deposit_collateral("alice", "WETH", amount)
        engine.redeem_collateral("alice", "WETH", amount)

        assert (engine.collateral_balance("bob", "WETH"), engine.debt_of("bob"), engine.health_factor("bob")) == bob_before
