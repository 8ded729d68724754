"""
health.py - Health factor and liquidation arithmetic

PURE FUNCTIONS - all inputs explicit, no engine state, no oracle reads.
The collateral ledger and liquidation engine load balances and prices,
then call into this module.

Key Formulas:
    adjusted_collateral = collateral_value * LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION
    health_factor       = adjusted_collateral * PRECISION / debt_minted
    seized_base         = asset_amount_from_usd(debt_to_cover)
    bonus               = seized_base * LIQUIDATION_BONUS / LIQUIDATION_PRECISION
    total_seized        = seized_base + bonus

Every product is formed before its division; divisions truncate.
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import (
    LIQUIDATION_BONUS, LIQUIDATION_PRECISION, LIQUIDATION_THRESHOLD,
    MAX_HEALTH_FACTOR, MIN_HEALTH_FACTOR, PRECISION,
    ValidationError,
)
from .fixed_point import mul_div


@dataclass(frozen=True, slots=True)
class LiquidationQuote:
    """
    Collateral owed to a liquidator for covering part of a debt.

    All amounts are in units of the seized asset except debt_to_cover,
    which is in debt units (USD, 18 decimals).
    """
    debt_to_cover: int
    seized_base: int
    bonus: int
    total_seized: int


def adjusted_collateral_value(collateral_value_usd: int) -> int:
    """Share of collateral value that counts toward borrowing capacity."""
    return mul_div(collateral_value_usd, LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION)


def calculate_health_factor(debt_minted: int, collateral_value_usd: int) -> int:
    """
    Compute the health factor of a position.

    Args:
        debt_minted: Outstanding debt (18 decimals)
        collateral_value_usd: Total USD value of the collateral (18 decimals)

    Returns:
        Health factor with 18 decimals; MAX_HEALTH_FACTOR when there is no debt.

    Example:
        >>> calculate_health_factor(10 * PRECISION, 20_000 * PRECISION) // PRECISION
        1000
    """
    if debt_minted < 0 or collateral_value_usd < 0:
        raise ValidationError("Debt and collateral value cannot be negative")
    if debt_minted == 0:
        return MAX_HEALTH_FACTOR
    return mul_div(adjusted_collateral_value(collateral_value_usd), PRECISION, debt_minted)


def is_healthy(debt_minted: int, health_factor: int) -> bool:
    """A position is healthy when it has no debt or its health factor is at least 1.0."""
    return debt_minted == 0 or health_factor >= MIN_HEALTH_FACTOR


def calculate_max_mintable(collateral_value_usd: int, debt_minted: int) -> int:
    """
    Additional debt that can be minted while keeping the health factor >= 1.0.

    Returns 0 for positions already at or below the limit.
    """
    capacity = adjusted_collateral_value(collateral_value_usd)
    return max(capacity - debt_minted, 0)


def calculate_liquidation_quote(debt_to_cover: int, seized_base: int) -> LiquidationQuote:
    """
    Add the liquidation bonus to the collateral equivalent of the covered debt.

    Args:
        debt_to_cover: Debt the liquidator burns on the target's behalf
        seized_base: Collateral units worth exactly debt_to_cover

    Returns:
        LiquidationQuote with the bonus and total collateral to seize
    """
    bonus = mul_div(seized_base, LIQUIDATION_BONUS, LIQUIDATION_PRECISION)
    return LiquidationQuote(
        debt_to_cover=debt_to_cover,
        seized_base=seized_base,
        bonus=bonus,
        total_seized=seized_base + bonus,
    )
