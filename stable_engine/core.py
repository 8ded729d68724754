"""
Core types and constants for the overcollateralized stable engine.

This module provides the foundational data structures and protocols:
1. Scale constants and fixed-point quantity kinds
2. Protocols: EngineView for read-only access, collaborator interfaces
3. Immutable data structures: Asset, CollateralEvent, AccountSnapshot
4. Exceptions: EngineError and the domain-specific error taxonomy

Nothing in this module mutates engine state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import (
    Dict, Mapping, NewType, Protocol, Tuple, TYPE_CHECKING,
    runtime_checkable,
)

if TYPE_CHECKING:
    from .oracle import PriceFeed


# ============================================================================
# FIXED-POINT QUANTITY KINDS
# ============================================================================
#
# All engine quantities are ints with an implied scale:
#
#   Amount, UsdValue, Price, HealthFactor   18 decimals (PRECISION)
#   RawPrice                                FEED_DECIMALS decimals
#   Percent                                 LIQUIDATION_PRECISION = 100
#

Amount = NewType("Amount", int)
UsdValue = NewType("UsdValue", int)
RawPrice = NewType("RawPrice", int)
Price = NewType("Price", int)
Percent = NewType("Percent", int)
HealthFactor = NewType("HealthFactor", int)

DECIMALS = 18
PRECISION = 10 ** DECIMALS

FEED_DECIMALS = 8
ADDITIONAL_FEED_PRECISION = 10 ** (DECIMALS - FEED_DECIMALS)

LIQUIDATION_PRECISION = 100

# Largest uint256, reported as the health factor of a debt-free account.
MAX_HEALTH_FACTOR = 2 ** 256 - 1


# ============================================================================
# PROTOCOL CONSTANTS
# ============================================================================

# Only half of the raw collateral value counts toward borrowing capacity,
# i.e. 200% overcollateralization at a health factor of exactly 1.0.
LIQUIDATION_THRESHOLD = 50

# Extra collateral awarded to a liquidator, as a percent of the seized base.
LIQUIDATION_BONUS = 10

MIN_HEALTH_FACTOR = 1 * PRECISION

# Oldest feed update the oracle adapter will accept.
DEFAULT_MAX_PRICE_AGE = timedelta(hours=3)


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset id to deposited amount for a single account.
BalanceMap = Dict[str, int]

# Mapping from account id to its balances.
CollateralBook = Dict[str, BalanceMap]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine errors."""
    pass


class ValidationError(EngineError):
    """Raised for zero/negative amounts, unregistered assets and malformed configuration."""
    pass


class InsufficientFunds(EngineError):
    """Raised when a withdrawal or burn exceeds the tracked balance."""
    pass


class ExternalTransferFailure(EngineError):
    """Raised when a collaborator transfer, mint or burn signals failure."""
    pass


class SolvencyViolation(EngineError):
    """Raised when an account's health factor would end below the minimum."""

    def __init__(self, account: str, health_factor: int):
        self.account = account
        self.health_factor = health_factor
        super().__init__(
            f"Health factor of {account} would be {health_factor}, "
            f"below minimum {MIN_HEALTH_FACTOR}"
        )


class StaleOracleData(EngineError):
    """Raised when a price feed is too old, round-inconsistent or reports a non-positive answer."""
    pass


class LiquidationNotEligible(EngineError):
    """Raised when the liquidation target is not below the minimum health factor."""
    pass


class LiquidationIneffective(EngineError):
    """Raised when a liquidation would not improve the target's health factor."""
    pass


class ReentrantCall(EngineError):
    """Raised when a collaborator calls back into an engine whose operation is in flight."""
    pass


# ============================================================================
# COLLABORATOR PROTOCOLS
# ============================================================================
#
# There is no implicit msg.sender, so the calling identity (the engine's
# custody account) is always passed explicitly.
#

@runtime_checkable
class CollateralToken(Protocol):
    """Transfer interface of a registered collateral asset."""

    symbol: str

    def transfer(self, sender: str, dest: str, amount: int) -> bool:
        """Move amount from sender to dest. Returns False on failure."""
        ...

    def transfer_from(self, spender: str, source: str, dest: str, amount: int) -> bool:
        """Move amount from source to dest using spender's allowance. Returns False on failure."""
        ...


@runtime_checkable
class DebtTokenController(Protocol):
    """
    Mint/burn capability over the pegged debt token, granted to the engine.

    The engine's custody id must be the token's minting authority.
    """

    def mint(self, to: str, amount: int) -> bool:
        ...

    def transfer(self, sender: str, dest: str, amount: int) -> bool:
        ...

    def transfer_from(self, spender: str, source: str, dest: str, amount: int) -> bool:
        ...

    def burn(self, holder: str, amount: int) -> None:
        """Destroy tokens already pulled into holder's custody."""
        ...


@runtime_checkable
class EngineView(Protocol):
    """
    Read-only interface to engine state.

    Pure functions that only need to look at positions accept an EngineView.
    StableEngine implements it against its last committed snapshot.
    """

    @property
    def current_time(self) -> datetime:
        ...

    def collateral_assets(self) -> Tuple[str, ...]:
        ...

    def collateral_balance(self, account: str, asset: str) -> int:
        ...

    def debt_of(self, account: str) -> int:
        ...

    def usd_value(self, asset: str, amount: int) -> int:
        ...


# ============================================================================
# ENUMS
# ============================================================================

class EventKind(Enum):
    """Kinds of collateral movement recorded in the event log."""
    DEPOSITED = "deposited"
    REDEEMED = "redeemed"


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Asset:
    """
    A registered collateral type.

    Attributes:
        asset_id: Registry key, taken from the token's symbol.
        price_feed: Source of the asset's USD price.
        token: Collaborator that moves the asset in and out of custody.
    """
    asset_id: str
    price_feed: 'PriceFeed'
    token: CollateralToken

    def __post_init__(self):
        if not self.asset_id or not self.asset_id.strip():
            raise ValidationError("Asset id cannot be empty")

    def __repr__(self) -> str:
        return f"Asset({self.asset_id})"


@dataclass(frozen=True, slots=True)
class CollateralEvent:
    """
    Immutable record of one collateral movement.

    For a deposit, actor and counterparty are both the depositing account.
    For a redemption, actor is the account whose balance decreased and
    counterparty is the receiver (the liquidator for a seizure).

    The event log alone is enough to rebuild every collateral balance.
    """
    sequence: int
    kind: EventKind
    actor: str
    counterparty: str
    asset: str
    amount: int
    timestamp: datetime

    def __repr__(self) -> str:
        if self.kind is EventKind.DEPOSITED:
            return f"CollateralDeposited(#{self.sequence} {self.actor} +{self.amount} {self.asset})"
        return (
            f"CollateralRedeemed(#{self.sequence} {self.actor}→{self.counterparty} "
            f"{self.amount} {self.asset})"
        )


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Point-in-time view of one account's position."""
    account: str
    debt_minted: int
    collateral_value: int
    health_factor: int
    balances: Mapping[str, int] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        return self.debt_minted == 0 or self.health_factor >= MIN_HEALTH_FACTOR
