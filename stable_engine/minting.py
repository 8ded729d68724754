"""
minting.py - Debt issuance and retirement

MintBurnController changes an account's minted debt together with the
matching call into the debt token. The debt change is staged immediately and
the token call is queued until the operation settles; the engine discards
the staged change if anything fails.
"""

from __future__ import annotations

from .collateral import CollateralLedger
from .core import (
    DebtTokenController, ExternalTransferFailure,
    InsufficientFunds, SolvencyViolation,
)
from .fixed_point import require_amount
from .health import calculate_health_factor, is_healthy
from .state import EngineState, OperationContext


class MintBurnController:
    """Mints and burns the debt token against per-account debt records."""

    def __init__(self, debt_token: DebtTokenController, ledger: CollateralLedger):
        self.debt_token = debt_token
        self.ledger = ledger

    def health_factor(self, state: EngineState, account: str) -> int:
        return calculate_health_factor(
            state.debt_of(account),
            self.ledger.collateral_value(state, account),
        )

    def require_healthy(self, state: EngineState, account: str) -> None:
        """
        Raises:
            SolvencyViolation: If account has debt and a health factor below 1.0.
        """
        debt = state.debt_of(account)
        if debt == 0:
            return
        hf = self.health_factor(state, account)
        if not is_healthy(debt, hf):
            raise SolvencyViolation(account, hf)

    def mint(self, ctx: OperationContext, account: str, amount: int) -> None:
        """
        Increase account's debt by amount and mint the tokens to it.

        The solvency check runs against the staged debt before the token is
        touched.

        Raises:
            ValidationError: For a non-positive amount.
            SolvencyViolation: If the new debt would leave account unhealthy.
            ExternalTransferFailure: At settlement, if the token refuses to mint.
        """
        require_amount(amount)
        ctx.state.apply_debt_delta(account, amount)
        self.require_healthy(ctx.state, account)

        debt_token = self.debt_token
        ctx.push(f"Minting {amount} to {account}", lambda: debt_token.mint(account, amount))

    def burn(self, ctx: OperationContext, amount: int, target: str, payer: str) -> None:
        """
        Retire amount of target's debt with tokens supplied by payer.

        The tokens are pulled from payer into custody and destroyed there.

        Raises:
            ValidationError: For a non-positive amount.
            InsufficientFunds: If target owes less than amount.
            ExternalTransferFailure: At settlement, if payer's tokens cannot be pulled
                or the token refuses to burn them.
        """
        require_amount(amount)
        owed = ctx.state.debt_of(target)
        if amount > owed:
            raise InsufficientFunds(f"{target} owes {owed}, cannot burn {amount}")
        ctx.state.apply_debt_delta(target, -amount)

        debt_token, custody = self.debt_token, ctx.custody

        def destroy() -> bool:
            try:
                debt_token.burn(custody, amount)
            except (PermissionError, ValueError) as e:
                raise ExternalTransferFailure(f"Burning {amount} debt tokens failed: {e}") from e
            return True

        ctx.pull(
            f"Transfer of {amount} debt tokens from {payer} into custody",
            lambda: debt_token.transfer_from(custody, payer, custody, amount),
            refund=lambda: debt_token.transfer(custody, payer, amount),
        )
        ctx.push(
            f"Burning {amount} debt tokens",
            destroy,
            undo=lambda: debt_token.mint(custody, amount),
        )
