"""
state.py - Owned store of per-account collateral and debt

EngineState is the explicit ledger every operation reads and writes. The
engine never mutates its committed EngineState in place: each operation
works on a copy() and the copy replaces the committed store only when the
whole operation succeeds.
"""

from __future__ import annotations
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from .core import BalanceMap, CollateralEvent, EventKind, ExternalTransferFailure, InsufficientFunds


class EngineState:
    """
    Per-account collateral balances and minted debt.

    Accounts appear implicitly on first deposit or mint and are never
    removed; balances may sit at zero indefinitely. No balance or debt is
    ever allowed to go negative.
    """

    def __init__(self):
        self.collateral: Dict[str, Dict[str, int]] = defaultdict(dict)
        self.debt: Dict[str, int] = {}

    def copy(self) -> EngineState:
        """Return an independent copy of this store."""
        cloned = EngineState()
        for account, balances in self.collateral.items():
            cloned.collateral[account] = dict(balances)
        cloned.debt = dict(self.debt)
        return cloned

    # ========================================================================
    # READS
    # ========================================================================

    def balance_of(self, account: str, asset: str) -> int:
        return self.collateral.get(account, {}).get(asset, 0)

    def balances_of(self, account: str) -> BalanceMap:
        return dict(self.collateral.get(account, {}))

    def debt_of(self, account: str) -> int:
        return self.debt.get(account, 0)

    def accounts(self) -> Set[str]:
        """All accounts that have ever held collateral or debt."""
        return set(self.collateral.keys()) | set(self.debt.keys())

    def total_debt(self) -> int:
        return sum(self.debt.values())

    def total_collateral(self, asset: str) -> int:
        return sum(balances.get(asset, 0) for balances in self.collateral.values())

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.accounts()))

    # ========================================================================
    # WRITES
    # ========================================================================

    def apply_collateral_delta(self, account: str, asset: str, delta: int) -> int:
        """
        Add delta to a collateral balance and return the new balance.

        Raises:
            InsufficientFunds: If the balance would become negative.
        """
        current = self.balance_of(account, asset)
        proposed = current + delta
        if proposed < 0:
            raise InsufficientFunds(
                f"{account} holds {current} {asset}, cannot remove {-delta}"
            )
        self.collateral[account][asset] = proposed
        return proposed

    def apply_debt_delta(self, account: str, delta: int) -> int:
        """
        Add delta to an account's minted debt and return the new debt.

        Raises:
            InsufficientFunds: If the debt would become negative.
        """
        current = self.debt_of(account)
        proposed = current + delta
        if proposed < 0:
            raise InsufficientFunds(
                f"{account} owes {current}, cannot burn {-delta}"
            )
        self.debt[account] = proposed
        return proposed

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EngineState):
            return NotImplemented
        accounts = self.accounts() | other.accounts()
        for account in accounts:
            if self.debt_of(account) != other.debt_of(account):
                return False
            assets = set(self.collateral.get(account, {})) | set(other.collateral.get(account, {}))
            for asset in assets:
                if self.balance_of(account, asset) != other.balance_of(account, asset):
                    return False
        return True

    __hash__ = None

    def __repr__(self) -> str:
        return f"EngineState({len(self.accounts())} accounts, debt={self.total_debt()})"


Interaction = Callable[[], bool]


class OperationContext:
    """
    Staging area for one top-level engine operation.

    Holds a private copy of the engine state, the events the operation has
    produced so far, and the collaborator calls it still has to make. The
    engine settles the calls once every check has passed, then commits state
    and events together. On any failure all three are dropped.

    Collaborator calls come in three phases:
        pulls            - transfers into custody, each with a refund
        undoable pushes  - burns in custody, each with an undo
        final pushes     - transfers out of custody and mints
    If any call fails, the calls already made are undone and the pulls
    refunded, so a rejected operation leaves every token balance where it
    was.
    """

    def __init__(self, state: EngineState, custody: str, timestamp: datetime, first_sequence: int):
        self.state = state
        self.custody = custody
        self.timestamp = timestamp
        self.events: List[CollateralEvent] = []
        self._next_sequence = first_sequence
        self._pulls: List[Tuple[str, Interaction, Interaction]] = []
        self._pushes: List[Tuple[str, Interaction, Optional[Interaction]]] = []

    def record(self, kind: EventKind, actor: str, counterparty: str, asset: str, amount: int) -> CollateralEvent:
        event = CollateralEvent(
            sequence=self._next_sequence,
            kind=kind,
            actor=actor,
            counterparty=counterparty,
            asset=asset,
            amount=amount,
            timestamp=self.timestamp,
        )
        self._next_sequence += 1
        self.events.append(event)
        return event

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    # ========================================================================
    # COLLABORATOR CALLS
    # ========================================================================

    def pull(self, description: str, call: Interaction, refund: Interaction) -> None:
        """Queue a transfer into custody; refund undoes it."""
        self._pulls.append((description, call, refund))

    def push(self, description: str, call: Interaction, undo: Optional[Interaction] = None) -> None:
        """
        Queue a transfer out of custody, a mint or a burn.

        Pass undo when the call can be compensated (a burn in custody is
        undone by minting back into custody). Undoable pushes run before
        the others.
        """
        self._pushes.append((description, call, undo))

    @property
    def pending(self) -> List[str]:
        """Descriptions of queued calls, in the order settle() makes them."""
        return [d for d, _, _ in self._pulls] + [d for d, _, _ in self._ordered_pushes()]

    def _ordered_pushes(self) -> List[Tuple[str, Interaction, Optional[Interaction]]]:
        undoable = [p for p in self._pushes if p[2] is not None]
        final = [p for p in self._pushes if p[2] is None]
        return undoable + final

    def settle(self) -> None:
        """
        Make every queued collaborator call.

        Order: pulls, then undoable pushes, then pushes that cannot be
        undone. When any call fails or raises, the calls already made are
        compensated in reverse order: undoable pushes are undone and pulls
        refunded. A push without an undo that already went through stays
        in place, so an operation is fully protected only while it queues
        at most one of those.

        Raises:
            ExternalTransferFailure: If a call reports failure. Exceptions
                raised by a collaborator propagate unchanged once the
                compensation has run.
        """
        pulls, self._pulls = self._pulls, []
        pushes = self._ordered_pushes()
        self._pushes = []

        done: List[Tuple[str, Interaction]] = []
        calls = pulls + pushes
        for description, call, compensate in calls:
            try:
                ok = call()
            except Exception:
                self._refund(done)
                raise
            if not ok:
                unrefunded = self._refund(done)
                message = f"{description} failed"
                if unrefunded:
                    message += f"; refund failed for: {', '.join(unrefunded)}"
                raise ExternalTransferFailure(message)
            if compensate is not None:
                done.append((description, compensate))

    @staticmethod
    def _refund(done: List[Tuple[str, Interaction]]) -> List[str]:
        failed = []
        for description, refund in reversed(done):
            if not refund():
                failed.append(description)
        return failed
