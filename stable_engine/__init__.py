"""
stable_engine - Overcollateralized Synthetic-Dollar Engine

Accounting, solvency checks and liquidation for a pegged debt token minted
against approved collateral.

Usage:
    from stable_engine import (
        StableEngine, SimpleToken, StableToken, StaticPriceFeed, PRECISION,
    )

    weth = SimpleToken("WETH", "Wrapped Ether")
    dsc = StableToken()
    engine = StableEngine(
        "main", [weth], [StaticPriceFeed.from_price("2000", t0)], dsc,
        initial_time=t0,
    )
    dsc.transfer_ownership(engine.custody)

    weth.set_balance("alice", 10 * PRECISION)
    weth.approve("alice", engine.custody, 10 * PRECISION)
    engine.deposit_collateral_and_mint("alice", "WETH", 10 * PRECISION, 10 * PRECISION)

    engine.health_factor("alice")   # 1000 * PRECISION
"""

# Core types
from .core import (
    EngineView,
    CollateralToken,
    DebtTokenController,
    Asset,
    CollateralEvent,
    AccountSnapshot,
    EventKind,
    EngineError,
    ValidationError,
    InsufficientFunds,
    ExternalTransferFailure,
    SolvencyViolation,
    StaleOracleData,
    LiquidationNotEligible,
    LiquidationIneffective,
    ReentrantCall,
    Amount,
    UsdValue,
    RawPrice,
    Price,
    Percent,
    HealthFactor,
    DECIMALS,
    PRECISION,
    FEED_DECIMALS,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    DEFAULT_MAX_PRICE_AGE,
)

# Fixed-point helpers
from .fixed_point import mul_div, to_fixed, from_fixed, require_amount

# State
from .state import EngineState, OperationContext

# Oracle
from .oracle import RoundData, PriceFeed, OracleAdapter, StaticPriceFeed

# Health factor and liquidation arithmetic
from .health import (
    LiquidationQuote,
    adjusted_collateral_value,
    calculate_health_factor,
    calculate_liquidation_quote,
    calculate_max_mintable,
    is_healthy,
)

# Components
from .collateral import CollateralLedger
from .minting import MintBurnController
from .liquidation import LiquidationEngine, LiquidationResult

# Engine
from .engine import StableEngine

# In-memory collaborators
from .tokens import SimpleToken, StableToken

__all__ = [
    # Core
    'EngineView', 'CollateralToken', 'DebtTokenController',
    'Asset', 'CollateralEvent', 'AccountSnapshot', 'EventKind',
    'EngineError', 'ValidationError', 'InsufficientFunds', 'ExternalTransferFailure',
    'SolvencyViolation', 'StaleOracleData', 'LiquidationNotEligible',
    'LiquidationIneffective', 'ReentrantCall',
    'Amount', 'UsdValue', 'RawPrice', 'Price', 'Percent', 'HealthFactor',
    'DECIMALS', 'PRECISION', 'FEED_DECIMALS', 'ADDITIONAL_FEED_PRECISION',
    'LIQUIDATION_PRECISION', 'LIQUIDATION_THRESHOLD', 'LIQUIDATION_BONUS',
    'MIN_HEALTH_FACTOR', 'MAX_HEALTH_FACTOR', 'DEFAULT_MAX_PRICE_AGE',
    # Fixed point
    'mul_div', 'to_fixed', 'from_fixed', 'require_amount',
    # State
    'EngineState', 'OperationContext',
    # Oracle
    'RoundData', 'PriceFeed', 'OracleAdapter', 'StaticPriceFeed',
    # Health
    'LiquidationQuote', 'adjusted_collateral_value', 'calculate_health_factor',
    'calculate_liquidation_quote', 'calculate_max_mintable', 'is_healthy',
    # Components
    'CollateralLedger', 'MintBurnController', 'LiquidationEngine', 'LiquidationResult',
    # Engine
    'StableEngine',
    # Collaborators
    'SimpleToken', 'StableToken',
]

__version__ = '1.0.0'
