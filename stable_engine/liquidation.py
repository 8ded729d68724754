"""
liquidation.py - Seizing collateral from unhealthy positions

A liquidator burns part or all of an unhealthy account's debt with its
own debt tokens and receives the equivalent collateral plus a bonus, taken
from one collateral asset the liquidator names.

Known limitation: the bonus is only payable while the target still holds
enough of the named asset. If the system as a whole drops to 100%
collateralization or below there is nothing left to pay liquidators with,
and there is no auction or other fallback.
"""

from __future__ import annotations
from dataclasses import dataclass

from .collateral import CollateralLedger
from .core import (
    MIN_HEALTH_FACTOR,
    LiquidationIneffective, LiquidationNotEligible, ValidationError,
)
from .fixed_point import require_amount
from .health import LiquidationQuote, calculate_liquidation_quote
from .minting import MintBurnController
from .oracle import OracleAdapter
from .state import OperationContext


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """Outcome of a successful liquidation."""
    asset: str
    target: str
    liquidator: str
    quote: LiquidationQuote
    starting_health_factor: int
    ending_health_factor: int


class LiquidationEngine:
    """Composes the collateral ledger, oracle and mint/burn controller."""

    def __init__(self, ledger: CollateralLedger, oracle: OracleAdapter, controller: MintBurnController):
        self.ledger = ledger
        self.oracle = oracle
        self.controller = controller

    def quote(self, asset: str, debt_to_cover: int) -> LiquidationQuote:
        """Collateral a liquidator would receive for covering debt_to_cover at current prices."""
        require_amount(debt_to_cover, "debt_to_cover")
        self.ledger.require_registered(asset)
        seized_base = self.oracle.asset_amount_from_usd(asset, debt_to_cover)
        return calculate_liquidation_quote(debt_to_cover, seized_base)

    def liquidate(
        self,
        ctx: OperationContext,
        asset: str,
        target: str,
        debt_to_cover: int,
        liquidator: str,
    ) -> LiquidationResult:
        """
        Burn debt_to_cover of target's debt and pay liquidator in asset.

        Steps, in order:
            1. target must be below the minimum health factor
            2. debt_to_cover must be positive
            3-5. quote the seized collateral plus bonus
            6. move the collateral from target to liquidator
            7. burn the debt with tokens pulled from liquidator
            8. target's health factor must have strictly improved
            9. liquidator must itself remain healthy

        Raises:
            LiquidationNotEligible: target is not below the minimum.
            ValidationError: non-positive debt_to_cover, debt_to_cover too small
                to seize any collateral, or unregistered asset.
            InsufficientFunds: target holds too little of asset, or owes less
                than debt_to_cover.
            ExternalTransferFailure: a token transfer or burn failed.
            LiquidationIneffective: target's health factor did not improve.
            SolvencyViolation: liquidator ends up below the minimum.
        """
        starting_hf = self.controller.health_factor(ctx.state, target)
        if starting_hf >= MIN_HEALTH_FACTOR:
            raise LiquidationNotEligible(
                f"{target} has health factor {starting_hf}, not below {MIN_HEALTH_FACTOR}"
            )

        quote = self.quote(asset, debt_to_cover)
        if quote.total_seized == 0:
            raise ValidationError(
                f"debt_to_cover {debt_to_cover} is worth less than one unit of {asset}"
            )

        self.ledger.withdraw(ctx, asset, quote.total_seized, source=target, dest=liquidator)
        self.controller.burn(ctx, debt_to_cover, target=target, payer=liquidator)

        ending_hf = self.controller.health_factor(ctx.state, target)
        if ending_hf <= starting_hf:
            raise LiquidationIneffective(
                f"{target} health factor went from {starting_hf} to {ending_hf}"
            )

        self.controller.require_healthy(ctx.state, liquidator)

        return LiquidationResult(
            asset=asset,
            target=target,
            liquidator=liquidator,
            quote=quote,
            starting_health_factor=starting_hf,
            ending_health_factor=ending_hf,
        )
