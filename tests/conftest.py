"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, conformance and functional tests:
- Collateral tokens, price feeds and the debt token
- An engine with WETH and WBTC collateral
- Accounts at various stages (funded, deposited, minted)
"""

import pytest

from stable_engine import SimpleToken, StableToken, StaticPriceFeed

from tests.fakes import (
    T0, ETH_PRICE, BTC_PRICE,
    STARTING_BALANCE, AMOUNT_COLLATERAL, AMOUNT_TO_MINT,
    build_engine, fund,
)


# =============================================================================
# COLLABORATOR FIXTURES
# =============================================================================

@pytest.fixture
def weth():
    return SimpleToken("WETH", "Wrapped Ether")


@pytest.fixture
def wbtc():
    return SimpleToken("WBTC", "Wrapped Bitcoin")


@pytest.fixture
def eth_feed():
    return StaticPriceFeed.from_price(ETH_PRICE, updated_at=T0)


@pytest.fixture
def btc_feed():
    return StaticPriceFeed.from_price(BTC_PRICE, updated_at=T0)


@pytest.fixture
def dsc():
    return StableToken()


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine(weth, wbtc, eth_feed, btc_feed, dsc):
    """Engine with WETH and WBTC collateral and no positions."""
    eng, _ = build_engine([weth, wbtc], [eth_feed, btc_feed], dsc)
    return eng


@pytest.fixture
def user(engine, weth):
    """Account 'user' holding STARTING_BALANCE WETH, approved for the engine."""
    fund(weth, "user", STARTING_BALANCE, engine.custody)
    return "user"


@pytest.fixture
def deposited(engine, user):
    """'user' with AMOUNT_COLLATERAL WETH deposited and no debt."""
    engine.deposit_collateral(user, "WETH", AMOUNT_COLLATERAL)
    return user


@pytest.fixture
def minted(engine, user):
    """'user' with AMOUNT_COLLATERAL WETH deposited and AMOUNT_TO_MINT DSC minted."""
    engine.deposit_collateral_and_mint(user, "WETH", AMOUNT_COLLATERAL, AMOUNT_TO_MINT)
    return user
