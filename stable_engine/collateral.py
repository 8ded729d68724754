"""
collateral.py - Collateral registry and per-account collateral ledger

CollateralLedger owns the ordered registry of supported assets and the
rules for moving collateral in and out of custody. It never holds state of
its own: writes go to the OperationContext of the operation in flight,
reads take an EngineState explicitly.

deposit() and withdraw() change the staged balance and record the event
immediately; the token transfer is queued on the context and made when the
operation settles. A failed transfer is reported as ExternalTransferFailure
and the engine discards the staged effects.
"""

from __future__ import annotations
from typing import Dict, Sequence, Tuple

from .core import (
    Asset, EventKind,
    InsufficientFunds, ValidationError,
)
from .fixed_point import require_amount
from .oracle import OracleAdapter
from .state import EngineState, OperationContext


class CollateralLedger:
    """
    Per-account, per-asset collateral balances over a fixed asset registry.

    The registry is set once at construction; its order is the order in
    which collateral value is summed and assets are reported.
    """

    def __init__(self, assets: Sequence[Asset], oracle: OracleAdapter):
        registry: Dict[str, Asset] = {}
        for asset in assets:
            if asset.asset_id in registry:
                raise ValidationError(f"Duplicate collateral asset {asset.asset_id}")
            registry[asset.asset_id] = asset
        if not registry:
            raise ValidationError("At least one collateral asset is required")
        self._registry = registry
        self._order: Tuple[str, ...] = tuple(registry)
        self.oracle = oracle

    # ========================================================================
    # REGISTRY
    # ========================================================================

    @property
    def asset_ids(self) -> Tuple[str, ...]:
        return self._order

    def require_registered(self, asset_id: str) -> Asset:
        """Return the registered Asset, or raise ValidationError."""
        asset = self._registry.get(asset_id)
        if asset is None:
            raise ValidationError(f"Collateral asset {asset_id!r} is not registered")
        return asset

    # ========================================================================
    # MUTATIONS (staged)
    # ========================================================================

    def deposit(self, ctx: OperationContext, account: str, asset_id: str, amount: int) -> None:
        """
        Credit amount of asset to account and pull it into custody.

        Raises:
            ValidationError: For a non-positive amount or unregistered asset.
            ExternalTransferFailure: At settlement, if the asset refuses the transfer.
        """
        require_amount(amount)
        asset = self.require_registered(asset_id)

        ctx.state.apply_collateral_delta(account, asset_id, amount)
        ctx.record(EventKind.DEPOSITED, account, account, asset_id, amount)

        token, custody = asset.token, ctx.custody
        ctx.pull(
            f"Transfer of {amount} {asset_id} from {account} into custody",
            lambda: token.transfer_from(custody, account, custody, amount),
            refund=lambda: token.transfer(custody, account, amount),
        )

    def withdraw(self, ctx: OperationContext, asset_id: str, amount: int, source: str, dest: str) -> None:
        """
        Debit amount of asset from source and release it from custody to dest.

        Callers are responsible for the solvency consequences of the debit.

        Raises:
            ValidationError: For a non-positive amount or unregistered asset.
            InsufficientFunds: If source holds less than amount.
            ExternalTransferFailure: At settlement, if the asset refuses the transfer.
        """
        require_amount(amount)
        asset = self.require_registered(asset_id)

        held = ctx.state.balance_of(source, asset_id)
        if amount > held:
            raise InsufficientFunds(
                f"{source} holds {held} {asset_id}, cannot withdraw {amount}"
            )
        ctx.state.apply_collateral_delta(source, asset_id, -amount)
        ctx.record(EventKind.REDEEMED, source, dest, asset_id, amount)

        token, custody = asset.token, ctx.custody
        ctx.push(
            f"Transfer of {amount} {asset_id} from custody to {dest}",
            lambda: token.transfer(custody, dest, amount),
        )

    # ========================================================================
    # READS
    # ========================================================================

    def balance_of(self, state: EngineState, account: str, asset_id: str) -> int:
        self.require_registered(asset_id)
        return state.balance_of(account, asset_id)

    def collateral_value(self, state: EngineState, account: str) -> int:
        """
        USD value (18 decimals) of all collateral held by account.

        Every registered feed is read, held or not, so a stale feed fails
        the valuation even for accounts with a zero balance in that asset.
        """
        total = 0
        for asset_id in self._order:
            total += self.oracle.usd_value(asset_id, state.balance_of(account, asset_id))
        return total
