#!/usr/bin/env python3
"""
demo.py - Walkthrough: deposit, mint, price crash, liquidation

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL SEE:
  1-2: Setup         - Registry, custody, first deposit and mint
  3-4: Price moves   - Health factor at $18 and at $1.80
  5:   Liquidation   - A third party covers the debt and takes the bonus
  6:   Audit         - Rebuilding balances from the event log alone

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from stable_engine import (
    StableEngine, SimpleToken, StableToken, StaticPriceFeed,
    LiquidationNotEligible, PRECISION, from_fixed,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the walkthrough. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    initial_price: str = "2000"
    warning_price: str = "18"
    crash_price: str = "1.8"
    alice_collateral: int = 10 * PRECISION
    alice_debt: int = 10 * PRECISION
    liquidator_collateral: int = 20 * PRECISION


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


def show_account(engine: StableEngine, account: str):
    snap = engine.account_snapshot(account)
    print(f"  {account:<12} debt={from_fixed(snap.debt_minted)}  "
          f"collateral=${from_fixed(snap.collateral_value)}  "
          f"health_factor={from_fixed(snap.health_factor) if snap.debt_minted else 'inf'}")


def main():
    t0 = CONFIG.start_time
    weth = SimpleToken("WETH", "Wrapped Ether")
    feed = StaticPriceFeed.from_price(CONFIG.initial_price, updated_at=t0)
    dsc = StableToken()

    step_header(1, "The Engine", "Register one collateral asset and hand the engine mint/burn authority.")
    engine = StableEngine("demo", [weth], [feed], dsc, initial_time=t0, verbose=True)
    dsc.transfer_ownership(engine.custody)
    print(f"Custody account: {engine.custody}")
    print(f"Collateral:      {engine.collateral_assets()}")
    wait_for_enter()

    step_header(2, "Deposit and Mint", "Alice locks 10 WETH at $2000 and mints 10 DSC.")
    weth.set_balance("alice", CONFIG.alice_collateral)
    weth.approve("alice", engine.custody, CONFIG.alice_collateral)
    engine.deposit_collateral_and_mint("alice", "WETH", CONFIG.alice_collateral, CONFIG.alice_debt)
    show_account(engine, "alice")

    weth.set_balance("liquidator", CONFIG.liquidator_collateral)
    weth.approve("liquidator", engine.custody, CONFIG.liquidator_collateral)
    engine.deposit_collateral_and_mint("liquidator", "WETH", CONFIG.liquidator_collateral, CONFIG.alice_debt)
    show_account(engine, "liquidator")
    wait_for_enter()

    step_header(3, "Price Falls to $18", "Alice is still safe: half of $180 covers 9x her debt.")
    t1 = t0 + timedelta(hours=1)
    engine.advance_time(t1)
    feed.update_price(CONFIG.warning_price, t1)
    show_account(engine, "alice")
    wait_for_enter()

    step_header(4, "Price Falls to $1.80", "Alice drops below a health factor of 1.0.")
    t2 = t1 + timedelta(hours=1)
    engine.advance_time(t2)
    feed.update_price(CONFIG.crash_price, t2)
    show_account(engine, "alice")
    show_account(engine, "liquidator")
    wait_for_enter()

    step_header(5, "Liquidation", "The liquidator burns 10 DSC and receives WETH plus a 10% bonus.")
    quote = engine.liquidation_quote("WETH", CONFIG.alice_debt)
    print(f"Quote: base={from_fixed(quote.seized_base)} bonus={from_fixed(quote.bonus)} "
          f"total={from_fixed(quote.total_seized)} WETH")
    dsc.approve("liquidator", engine.custody, CONFIG.alice_debt)
    engine.liquidate("WETH", "alice", CONFIG.alice_debt, "liquidator")
    show_account(engine, "alice")
    print(f"Liquidator wallet WETH: {from_fixed(weth.balance_of('liquidator'))}")

    try:
        engine.liquidate("WETH", "alice", CONFIG.alice_debt, "liquidator")
    except LiquidationNotEligible as e:
        print(f"Second liquidation refused: {e}")
    wait_for_enter()

    step_header(6, "Audit", "Replay the event log and compare with live balances.")
    for event in engine.event_log:
        print(f"  {event!r}")
    print(f"\nEvent log reproduces live state: {engine.verify_event_log()}")


if __name__ == "__main__":
    main()
