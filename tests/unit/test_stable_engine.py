"""
test_stable_engine.py - Unit tests for the StableEngine facade

Tests:
- Construction and registry validation
- Read surface and constant getters
- Logical clock and oracle staleness
- Serialization: re-entry from collaborators is refused
- Event log, subscribers and replay
- Verbose console output
"""

import threading
import pytest
from datetime import timedelta

from stable_engine import (
    StableEngine, SimpleToken, StableToken, StaticPriceFeed, EngineView, AccountSnapshot,
    PRECISION, ADDITIONAL_FEED_PRECISION, LIQUIDATION_THRESHOLD, LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION, MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
    EventKind, ValidationError, ReentrantCall, StaleOracleData, SolvencyViolation,
)

from tests.fakes import (
    T0, AMOUNT_COLLATERAL, AMOUNT_TO_MINT, STARTING_BALANCE,
    CallbackToken, build_engine, fund, set_price,
)


class TestConstruction:

    def test_mismatched_lengths(self, weth, wbtc, eth_feed):
        with pytest.raises(ValidationError, match="price feeds"):
            StableEngine("bad", [weth, wbtc], [eth_feed], StableToken(), verbose=False)

    def test_duplicate_collateral(self, weth, eth_feed, btc_feed):
        with pytest.raises(ValidationError):
            StableEngine("bad", [weth, weth], [eth_feed, btc_feed], StableToken(), verbose=False)

    def test_empty_registry(self):
        with pytest.raises(ValidationError):
            StableEngine("bad", [], [], StableToken(), verbose=False)

    def test_custody_derived_from_name(self, engine):
        assert engine.custody == "engine:test"

    def test_default_time(self, weth, eth_feed):
        engine = StableEngine("t", [weth], [eth_feed], StableToken(), verbose=False)
        assert engine.current_time.year == 1970

    def test_satisfies_view_protocol(self, engine):
        assert isinstance(engine, EngineView)


class TestReads:

    def test_registry_accessors(self, engine, weth, eth_feed, dsc):
        assert engine.collateral_token("WETH") is weth
        assert engine.price_feed("WETH") is eth_feed
        assert engine.debt_token is dsc
        with pytest.raises(ValidationError):
            engine.price_feed("DOGE")

    def test_constants(self, engine):
        assert engine.precision == PRECISION
        assert engine.additional_feed_precision == ADDITIONAL_FEED_PRECISION
        assert engine.liquidation_threshold == LIQUIDATION_THRESHOLD == 50
        assert engine.liquidation_bonus == LIQUIDATION_BONUS == 10
        assert engine.liquidation_precision == LIQUIDATION_PRECISION == 100
        assert engine.min_health_factor == MIN_HEALTH_FACTOR

    def test_prices(self, engine):
        assert engine.collateral_price("WETH") == 2000 * 10 ** 8
        assert engine.usd_value("WETH", 15 * PRECISION) == 30_000 * PRECISION
        assert engine.asset_amount_from_usd("WETH", 100 * PRECISION) == 5 * 10 ** 16

    def test_unregistered_price(self, engine):
        with pytest.raises(ValidationError):
            engine.usd_value("DOGE", PRECISION)

    def test_health_factor_without_debt(self, engine, deposited):
        assert engine.health_factor(deposited) == MAX_HEALTH_FACTOR
        assert engine.health_factor("nobody") == MAX_HEALTH_FACTOR

    def test_calculate_health_factor_is_pure(self, engine):
        assert StableEngine.calculate_health_factor(100 * PRECISION, 200 * PRECISION) == PRECISION
        assert engine.calculate_health_factor(0, 0) == MAX_HEALTH_FACTOR

    def test_account_snapshot(self, engine, minted):
        snap = engine.account_snapshot(minted)
        assert snap == AccountSnapshot(
            account=minted,
            debt_minted=AMOUNT_TO_MINT,
            collateral_value=20_000 * PRECISION,
            health_factor=100 * PRECISION,
            balances={"WETH": AMOUNT_COLLATERAL, "WBTC": 0},
        )
        assert snap.is_healthy

    def test_max_mintable(self, engine, minted):
        assert engine.max_mintable(minted) == 9_900 * PRECISION

    def test_totals(self, engine, minted):
        assert engine.accounts() == [minted]
        assert engine.total_debt() == AMOUNT_TO_MINT
        assert engine.total_collateral("WETH") == AMOUNT_COLLATERAL
        assert engine.total_collateral("WBTC") == 0
        assert engine.total_collateral_value() == 20_000 * PRECISION

    def test_repr(self, engine, minted):
        assert repr(engine) == "StableEngine(test, assets=['WETH', 'WBTC'], accounts=1, debt=100000000000000000000)"


class TestTimeAndStaleness:

    def test_advance_time(self, engine):
        engine.advance_time(T0 + timedelta(minutes=5))
        assert engine.current_time == T0 + timedelta(minutes=5)

    def test_time_cannot_go_backwards(self, engine):
        with pytest.raises(ValueError):
            engine.advance_time(T0 - timedelta(seconds=1))

    def test_stale_price_blocks_mint(self, engine, deposited):
        engine.advance_time(T0 + timedelta(hours=4))
        with pytest.raises(StaleOracleData):
            engine.mint(deposited, PRECISION)
        assert engine.debt_of(deposited) == 0

    def test_stale_price_blocks_valuation(self, engine, deposited):
        engine.advance_time(T0 + timedelta(hours=4))
        with pytest.raises(StaleOracleData):
            engine.account_collateral_value(deposited)

    def test_stale_unheld_feed_still_blocks(self, engine, eth_feed, minted):
        # WETH is refreshed, WBTC (held by nobody) is not
        set_price(engine, eth_feed, "2000", step=timedelta(hours=4))
        with pytest.raises(StaleOracleData):
            engine.health_factor(minted)

    def test_deposit_and_debt_free_redeem_need_no_price(self, engine, user):
        engine.advance_time(T0 + timedelta(hours=4))
        engine.deposit_collateral(user, "WETH", AMOUNT_COLLATERAL)
        engine.redeem_collateral(user, "WETH", AMOUNT_COLLATERAL)
        assert engine.collateral_balance(user, "WETH") == 0

    def test_custom_max_price_age(self, weth, eth_feed):
        engine, _ = build_engine([weth], [eth_feed], max_price_age=timedelta(minutes=1))
        engine.advance_time(T0 + timedelta(minutes=2))
        with pytest.raises(StaleOracleData):
            engine.usd_value("WETH", PRECISION)


class TestSerialization:

    @pytest.fixture
    def hooked(self, eth_feed):
        token = CallbackToken("WETH")
        engine, _ = build_engine([token], [eth_feed])
        fund(token, "user", 2 * AMOUNT_COLLATERAL, engine.custody)
        return engine, token

    def test_reentrant_deposit_refused(self, hooked):
        engine, token = hooked
        token.on_transfer_from = lambda: engine.deposit_collateral("user", "WETH", AMOUNT_COLLATERAL)

        with pytest.raises(ReentrantCall):
            engine.deposit_collateral("user", "WETH", AMOUNT_COLLATERAL)

        assert isinstance(token.hook_error, ReentrantCall)
        assert engine.collateral_balance("user", "WETH") == 0
        assert token.balance_of("user") == 2 * AMOUNT_COLLATERAL
        assert engine.event_log == []

    def test_reentrant_mint_refused(self, hooked):
        engine, token = hooked
        token.on_transfer_from = lambda: engine.mint("user", PRECISION)

        with pytest.raises(ReentrantCall):
            engine.deposit_collateral("user", "WETH", AMOUNT_COLLATERAL)
        assert engine.debt_of("user") == 0

    def test_engine_usable_after_refused_reentry(self, hooked):
        engine, token = hooked
        token.on_transfer_from = lambda: engine.deposit_collateral("user", "WETH", AMOUNT_COLLATERAL)
        with pytest.raises(ReentrantCall):
            engine.deposit_collateral("user", "WETH", AMOUNT_COLLATERAL)

        engine.deposit_collateral("user", "WETH", AMOUNT_COLLATERAL)
        assert engine.collateral_balance("user", "WETH") == AMOUNT_COLLATERAL

    def test_reads_during_operation_see_committed_state(self, hooked):
        engine, token = hooked
        seen = []
        token.on_transfer_from = lambda: seen.append(engine.collateral_balance("user", "WETH"))

        engine.deposit_collateral("user", "WETH", AMOUNT_COLLATERAL)

        assert seen == [0]
        assert engine.collateral_balance("user", "WETH") == AMOUNT_COLLATERAL

    def test_concurrent_deposits_are_serialized(self, engine, weth):
        accounts = [f"acct_{i}" for i in range(8)]
        for account in accounts:
            fund(weth, account, 50, engine.custody)

        def deposit_all(account):
            for _ in range(50):
                engine.deposit_collateral(account, "WETH", 1)

        threads = [threading.Thread(target=deposit_all, args=(a,)) for a in accounts]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert engine.total_collateral("WETH") == 400
        assert weth.balance_of(engine.custody) == 400
        assert [e.sequence for e in engine.event_log] == list(range(400))
        assert engine.verify_event_log()


class TestEventLog:

    def test_sequences_are_contiguous(self, engine, wbtc, minted):
        fund(wbtc, minted, PRECISION, engine.custody)
        engine.deposit_collateral(minted, "WBTC", PRECISION)
        engine.redeem_collateral(minted, "WETH", PRECISION)
        assert [e.sequence for e in engine.event_log] == [0, 1, 2]

    def test_replay_matches_live_state(self, engine, weth, minted):
        fund(weth, "bob", STARTING_BALANCE, engine.custody)
        engine.deposit_collateral("bob", "WETH", STARTING_BALANCE)
        engine.redeem_collateral(minted, "WETH", PRECISION)

        rebuilt = StableEngine.replay_collateral(engine.event_log)
        assert rebuilt == {
            minted: {"WETH": AMOUNT_COLLATERAL - PRECISION},
            "bob": {"WETH": STARTING_BALANCE},
        }
        assert engine.verify_event_log()

    def test_tampered_log_detected(self, engine, minted):
        engine.event_log.pop()
        assert not engine.verify_event_log()

    def test_subscribers_see_committed_events(self, engine, deposited):
        received = []

        def listener(event):
            received.append((event, engine.collateral_balance(event.actor, event.asset)))

        engine.subscribe(listener)
        engine.redeem_collateral(deposited, "WETH", PRECISION)

        assert len(received) == 1
        event, balance_seen = received[0]
        assert event is engine.event_log[-1]
        assert balance_seen == AMOUNT_COLLATERAL - PRECISION

    def test_subscribers_not_called_on_rejection(self, engine, minted):
        received = []
        engine.subscribe(received.append)
        with pytest.raises(SolvencyViolation):
            engine.redeem_collateral(minted, "WETH", AMOUNT_COLLATERAL)
        assert received == []

    def test_failing_subscriber_does_not_undo_operation(self, engine, weth, deposited):
        def listener(event):
            raise RuntimeError("listener down")

        engine.subscribe(listener)
        with pytest.raises(RuntimeError, match="listener down"):
            engine.redeem_collateral(deposited, "WETH", PRECISION)

        assert engine.collateral_balance(deposited, "WETH") == AMOUNT_COLLATERAL - PRECISION
        assert weth.balance_of(deposited) == STARTING_BALANCE - AMOUNT_COLLATERAL + PRECISION
        assert engine.event_log[-1].kind == EventKind.REDEEMED
        assert engine.verify_event_log()


class TestVerboseOutput:

    def test_registration_and_results_printed(self, capsys):
        weth = SimpleToken("WETH")
        feed = StaticPriceFeed.from_price("2000", updated_at=T0)
        engine = StableEngine("loud", [weth], [feed], StableToken(), initial_time=T0)
        fund(weth, "alice", AMOUNT_COLLATERAL, engine.custody)

        engine.deposit_collateral("alice", "WETH", AMOUNT_COLLATERAL)
        with pytest.raises(SolvencyViolation):
            engine.mint("alice", 20_000 * PRECISION)

        out = capsys.readouterr().out
        assert "Registered collateral: WETH" in out
        assert "CollateralDeposited" in out
        assert "APPLIED" in out
        assert "REJECTED: SolvencyViolation" in out

    def test_quiet_engine_prints_nothing(self, capsys, engine, minted):
        assert capsys.readouterr().out == ""
