"""
engine.py - The overcollateralized stable engine

StableEngine is the caller-facing entry point. It owns the committed
EngineState and the collateral event log, and runs every mutating
operation as one serialized, all-or-nothing transaction.

Key responsibilities:
    - Validates the collateral registry at construction
    - Serializes operations and refuses re-entry from collaborator callbacks
    - Stages every operation on a private copy of state, committing only on success
    - Implements the EngineView protocol against the last committed snapshot
    - Records every collateral movement for independent reconstruction
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import threading

from .collateral import CollateralLedger
from .core import (
    # Types
    Asset, AccountSnapshot, CollateralEvent, CollateralToken, DebtTokenController,
    EventKind,
    # Constants
    ADDITIONAL_FEED_PRECISION, DEFAULT_MAX_PRICE_AGE, LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION, LIQUIDATION_THRESHOLD, MIN_HEALTH_FACTOR, PRECISION,
    # Exceptions
    EngineError, ReentrantCall, ValidationError,
)
from .health import (
    LiquidationQuote, calculate_health_factor, calculate_max_mintable,
)
from .liquidation import LiquidationEngine, LiquidationResult
from .minting import MintBurnController
from .oracle import OracleAdapter, PriceFeed
from .state import EngineState, OperationContext


EventListener = Callable[[CollateralEvent], None]


class StableEngine:
    """
    Collateral ledger, solvency checks and liquidation for a pegged debt token.

    Implements the EngineView protocol, so the engine can be handed to
    functions that only read positions.

    Transaction discipline:
        Mutating operations take a per-instance lock. A collaborator that
        calls back into the same engine from inside an operation gets
        ReentrantCall. Each operation runs on a copy of the committed state
        and queues its token calls; the calls are made only after every
        check has passed, and the copy and its events replace the committed
        ones only if the calls succeed too. Reads never take the lock and
        always see the last committed state.

    Example:
        weth = SimpleToken("WETH")
        dsc = StableToken()
        engine = StableEngine("main", [weth], [StaticPriceFeed.from_price("2000", t0)], dsc,
                              initial_time=t0)
        dsc.transfer_ownership(engine.custody)

        weth.approve("alice", engine.custody, 10 * PRECISION)
        engine.deposit_collateral_and_mint("alice", "WETH", 10 * PRECISION, 100 * PRECISION)
    """

    def __init__(
        self,
        name: str,
        collateral_tokens: Sequence[CollateralToken],
        price_feeds: Sequence[PriceFeed],
        debt_token: DebtTokenController,
        initial_time: Optional[datetime] = None,
        max_price_age: timedelta = DEFAULT_MAX_PRICE_AGE,
        verbose: bool = True,
    ):
        """
        Create an engine over a fixed collateral registry.

        Args:
            name: Engine identifier; the custody account is derived from it
            collateral_tokens: Collateral assets, in registry order
            price_feeds: USD price feed for each collateral asset, same order
            debt_token: Mint/burn capability over the pegged token
            initial_time: Starting logical time (default: 1970-01-01)
            max_price_age: Oldest price update the oracle accepts
            verbose: Print registrations and operation results (default: True)

        Raises:
            ValidationError: If the two lists differ in length, an asset is
                registered twice, or the registry is empty.
        """
        if len(collateral_tokens) != len(price_feeds):
            raise ValidationError(
                f"Got {len(collateral_tokens)} collateral tokens but {len(price_feeds)} price feeds"
            )

        self.name = name
        self.custody = f"engine:{name}"
        self.verbose = verbose
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)

        assets = [
            Asset(asset_id=token.symbol, price_feed=feed, token=token)
            for token, feed in zip(collateral_tokens, price_feeds)
        ]
        self._oracle = OracleAdapter(
            {asset.asset_id: asset.price_feed for asset in assets},
            clock=lambda: self._current_time,
            max_price_age=max_price_age,
        )
        self._ledger = CollateralLedger(assets, self._oracle)
        self._debt_token = debt_token
        self._controller = MintBurnController(debt_token, self._ledger)
        self._liquidations = LiquidationEngine(self._ledger, self._oracle, self._controller)

        self._state = EngineState()
        self.event_log: List[CollateralEvent] = []
        self._listeners: List[EventListener] = []

        self._lock = threading.Lock()
        self._owner_thread: Optional[int] = None

        if self.verbose:
            for asset in assets:
                print(f"📝 Registered collateral: {asset.asset_id} (feed decimals={asset.price_feed.decimals})")

    # ========================================================================
    # TIME
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time, used for oracle staleness checks."""
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the logical clock forward.

        Raises:
            ValueError: If new_time is before the current time.
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot go backwards in time: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # TRANSACTION DISCIPLINE
    # ========================================================================

    @contextmanager
    def _operation(self, label: str) -> Iterator[OperationContext]:
        """
        Run one top-level operation against a staged copy of state.

        On normal exit the queued collaborator calls are made, then the
        staged state and events are committed together.
        On any exception they are dropped and the exception propagates.
        Listeners are notified after the commit; see subscribe().
        """
        me = threading.get_ident()
        if self._owner_thread == me:
            raise ReentrantCall(f"{label} called while another {self.name} operation is in flight")

        with self._lock:
            self._owner_thread = me
            try:
                ctx = OperationContext(
                    state=self._state.copy(),
                    custody=self.custody,
                    timestamp=self._current_time,
                    first_sequence=len(self.event_log),
                )
                try:
                    yield ctx
                    ctx.settle()
                except EngineError as e:
                    if self.verbose:
                        self._print_result(label, ctx.events, f"REJECTED: {type(e).__name__}: {e}", "✗")
                    raise

                self._state = ctx.state
                self.event_log.extend(ctx.events)
            finally:
                self._owner_thread = None

        if self.verbose:
            self._print_result(label, ctx.events, "APPLIED", "✓")
        for event in ctx.events:
            for listener in list(self._listeners):
                listener(event)

    def _print_result(self, label: str, events: Sequence[CollateralEvent], result: str, icon: str) -> None:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            f"┌{bar}┐",
            f"│{pad(' ' + label + ' @ ' + str(self._current_time))}│",
        ]
        if events:
            lines.append(f"├{bar}┤")
            for event in events:
                lines.append(f"│{pad('   ' + repr(event))}│")
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def subscribe(self, listener: EventListener) -> None:
        """
        Call listener with every collateral event after it is committed.

        Listeners run once the operation has been applied. An exception
        raised by a listener propagates to the caller of the operation, but
        the operation stays applied and later listeners for that operation
        are skipped.
        """
        self._listeners.append(listener)

    # ========================================================================
    # MUTATING OPERATIONS
    # ========================================================================

    def deposit_collateral(self, account: str, asset: str, amount: int) -> None:
        """
        Deposit collateral into custody.

        account must have approved the engine's custody account to pull amount.
        """
        with self._operation(f"deposit_collateral({account}, {asset}, {amount})") as ctx:
            self._ledger.deposit(ctx, account, asset, amount)

    def mint(self, account: str, amount: int) -> None:
        """Mint amount of the debt token to account against its collateral."""
        with self._operation(f"mint({account}, {amount})") as ctx:
            self._controller.mint(ctx, account, amount)

    def deposit_collateral_and_mint(
        self,
        account: str,
        asset: str,
        amount_collateral: int,
        amount_to_mint: int,
    ) -> None:
        """Deposit collateral and mint against it in one transaction."""
        label = f"deposit_collateral_and_mint({account}, {asset}, {amount_collateral}, {amount_to_mint})"
        with self._operation(label) as ctx:
            self._ledger.deposit(ctx, account, asset, amount_collateral)
            self._controller.mint(ctx, account, amount_to_mint)

    def burn(self, account: str, amount: int) -> None:
        """
        Burn amount of account's own debt tokens, reducing its debt.

        account must have approved the engine's custody account to pull amount.
        """
        with self._operation(f"burn({account}, {amount})") as ctx:
            self._controller.burn(ctx, amount, target=account, payer=account)
            self._controller.require_healthy(ctx.state, account)

    def redeem_collateral(self, account: str, asset: str, amount: int) -> None:
        """Withdraw collateral back to account, provided it stays healthy."""
        with self._operation(f"redeem_collateral({account}, {asset}, {amount})") as ctx:
            self._ledger.withdraw(ctx, asset, amount, source=account, dest=account)
            self._controller.require_healthy(ctx.state, account)

    def burn_and_redeem(
        self,
        account: str,
        asset: str,
        amount_collateral: int,
        amount_to_burn: int,
    ) -> None:
        """Burn debt and withdraw collateral in one transaction."""
        label = f"burn_and_redeem({account}, {asset}, {amount_collateral}, {amount_to_burn})"
        with self._operation(label) as ctx:
            self._controller.burn(ctx, amount_to_burn, target=account, payer=account)
            self._ledger.withdraw(ctx, asset, amount_collateral, source=account, dest=account)
            self._controller.require_healthy(ctx.state, account)

    def liquidate(
        self,
        asset: str,
        target: str,
        debt_to_cover: int,
        liquidator: str,
    ) -> LiquidationResult:
        """
        Cover debt_to_cover of an unhealthy target's debt for a bonus in asset.

        The liquidator must hold debt_to_cover debt tokens and have approved
        the engine's custody account to pull them. Collateral is taken from
        the named asset only.
        """
        label = f"liquidate({asset}, {target}, {debt_to_cover}, by={liquidator})"
        with self._operation(label) as ctx:
            result = self._liquidations.liquidate(ctx, asset, target, debt_to_cover, liquidator)
        return result

    # ========================================================================
    # READ SURFACE (EngineView)
    # ========================================================================

    def collateral_assets(self) -> Tuple[str, ...]:
        """Registered collateral asset ids, in registry order."""
        return self._ledger.asset_ids

    def price_feed(self, asset: str) -> PriceFeed:
        return self._ledger.require_registered(asset).price_feed

    def collateral_token(self, asset: str) -> CollateralToken:
        return self._ledger.require_registered(asset).token

    @property
    def debt_token(self) -> DebtTokenController:
        return self._debt_token

    def usd_value(self, asset: str, amount: int) -> int:
        """USD value (18 decimals) of amount units of asset at the current price."""
        self._ledger.require_registered(asset)
        return self._oracle.usd_value(asset, amount)

    def asset_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        """Units of asset worth usd_amount at the current price."""
        self._ledger.require_registered(asset)
        return self._oracle.asset_amount_from_usd(asset, usd_amount)

    def collateral_price(self, asset: str) -> int:
        """Latest validated raw price of asset, with the feed's decimals."""
        self._ledger.require_registered(asset)
        price, _, _ = self._oracle.get_price(asset)
        return price

    def collateral_balance(self, account: str, asset: str) -> int:
        return self._ledger.balance_of(self._state, account, asset)

    def debt_of(self, account: str) -> int:
        return self._state.debt_of(account)

    def account_collateral_value(self, account: str) -> int:
        return self._ledger.collateral_value(self._state, account)

    def account_information(self, account: str) -> Tuple[int, int]:
        """Return (debt_minted, collateral_value_usd) for account."""
        state = self._state
        return state.debt_of(account), self._ledger.collateral_value(state, account)

    def account_snapshot(self, account: str) -> AccountSnapshot:
        state = self._state
        debt = state.debt_of(account)
        value = self._ledger.collateral_value(state, account)
        return AccountSnapshot(
            account=account,
            debt_minted=debt,
            collateral_value=value,
            health_factor=calculate_health_factor(debt, value),
            balances={a: state.balance_of(account, a) for a in self._ledger.asset_ids},
        )

    def health_factor(self, account: str) -> int:
        return self._controller.health_factor(self._state, account)

    @staticmethod
    def calculate_health_factor(debt_minted: int, collateral_value_usd: int) -> int:
        return calculate_health_factor(debt_minted, collateral_value_usd)

    def max_mintable(self, account: str) -> int:
        """Additional debt account could mint right now without becoming unhealthy."""
        debt, value = self.account_information(account)
        return calculate_max_mintable(value, debt)

    def liquidation_quote(self, asset: str, debt_to_cover: int) -> LiquidationQuote:
        """Collateral a liquidator would receive for covering debt_to_cover in asset."""
        return self._liquidations.quote(asset, debt_to_cover)

    def accounts(self) -> List[str]:
        return sorted(self._state.accounts())

    def total_debt(self) -> int:
        return self._state.total_debt()

    def total_collateral(self, asset: str) -> int:
        self._ledger.require_registered(asset)
        return self._state.total_collateral(asset)

    def total_collateral_value(self) -> int:
        """USD value of all collateral in custody."""
        state = self._state
        total = 0
        for asset in self._ledger.asset_ids:
            total += self._oracle.usd_value(asset, state.total_collateral(asset))
        return total

    # ========================================================================
    # CONSTANTS
    # ========================================================================

    @property
    def precision(self) -> int:
        return PRECISION

    @property
    def additional_feed_precision(self) -> int:
        return ADDITIONAL_FEED_PRECISION

    @property
    def liquidation_threshold(self) -> int:
        return LIQUIDATION_THRESHOLD

    @property
    def liquidation_bonus(self) -> int:
        return LIQUIDATION_BONUS

    @property
    def liquidation_precision(self) -> int:
        return LIQUIDATION_PRECISION

    @property
    def min_health_factor(self) -> int:
        return MIN_HEALTH_FACTOR

    # ========================================================================
    # EVENT LOG
    # ========================================================================

    @staticmethod
    def replay_collateral(events: Iterable[CollateralEvent]) -> Dict[str, Dict[str, int]]:
        """
        Rebuild every account's collateral balances from events alone.

        Events are applied in sequence order. Accounts whose every balance
        is zero are still reported.
        """
        balances: Dict[str, Dict[str, int]] = {}
        for event in sorted(events, key=lambda e: e.sequence):
            account = balances.setdefault(event.actor, {})
            if event.kind is EventKind.DEPOSITED:
                account[event.asset] = account.get(event.asset, 0) + event.amount
            else:
                account[event.asset] = account.get(event.asset, 0) - event.amount
        return balances

    def verify_event_log(self) -> bool:
        """Check that replaying the event log reproduces the live collateral balances."""
        rebuilt = self.replay_collateral(self.event_log)
        state = self._state
        for account in state.accounts() | set(rebuilt):
            for asset in self._ledger.asset_ids:
                if rebuilt.get(account, {}).get(asset, 0) != state.balance_of(account, asset):
                    if self.verbose:
                        print(f"Event log mismatch for {account} {asset}: "
                              f"replayed {rebuilt.get(account, {}).get(asset, 0)}, "
                              f"live {state.balance_of(account, asset)}")
                    return False
        return True

    def __repr__(self) -> str:
        return (
            f"StableEngine({self.name}, assets={list(self._ledger.asset_ids)}, "
            f"accounts={len(self._state.accounts())}, debt={self._state.total_debt()})"
        )
