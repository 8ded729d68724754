"""
tokens.py - In-memory token collaborators

Reference implementations of the collateral-asset and debt-token
interfaces, for simulations, demos and tests. They keep balances and
allowances in plain dicts and report failed transfers by returning False,
the way the engine expects real collaborators to.

Example:
    weth = SimpleToken("WETH", "Wrapped Ether")
    weth.set_balance("alice", 10 * PRECISION)
    weth.approve("alice", engine.custody, 10 * PRECISION)
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Optional


class SimpleToken:
    """Fungible token with balances, allowances and transfers."""

    def __init__(self, symbol: str, name: Optional[str] = None):
        self.symbol = symbol
        self.name = name or symbol
        self.balances: Dict[str, int] = defaultdict(int)
        self.allowances: Dict[str, Dict[str, int]] = defaultdict(dict)

    def balance_of(self, holder: str) -> int:
        return self.balances.get(holder, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(owner, {}).get(spender, 0)

    def total_supply(self) -> int:
        return sum(self.balances.values())

    def set_balance(self, holder: str, amount: int) -> None:
        """Set a balance directly (funding for tests and simulations)."""
        if amount < 0:
            raise ValueError(f"Balance cannot be negative, got {amount}")
        self.balances[holder] = amount

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative, got {amount}")
        self.allowances[owner][spender] = amount
        return True

    def transfer(self, sender: str, dest: str, amount: int) -> bool:
        if amount < 0 or self.balance_of(sender) < amount:
            return False
        self.balances[sender] -= amount
        self.balances[dest] += amount
        return True

    def transfer_from(self, spender: str, source: str, dest: str, amount: int) -> bool:
        """Move amount from source to dest, spending spender's allowance unless spender is source."""
        if spender != source and self.allowance(source, spender) < amount:
            return False
        if not self.transfer(source, dest, amount):
            return False
        if spender != source:
            self.allowances[source][spender] -= amount
        return True

    def __repr__(self):
        return f"{type(self).__name__}({self.symbol}, supply={self.total_supply()})"


class StableToken(SimpleToken):
    """
    The pegged debt token.

    Minting is reserved to whoever holds this object; once an owner is set,
    only the owner (the engine's custody account) may burn, and it burns
    tokens it already holds.
    """

    def __init__(self, symbol: str = "DSC", name: str = "Decentralized Stable Coin", owner: Optional[str] = None):
        super().__init__(symbol, name)
        self.owner = owner

    def transfer_ownership(self, new_owner: str) -> None:
        self.owner = new_owner

    def mint(self, to: str, amount: int) -> bool:
        if amount <= 0:
            return False
        self.balances[to] += amount
        return True

    def burn(self, holder: str, amount: int) -> None:
        if self.owner is not None and holder != self.owner:
            raise PermissionError(f"{holder} is not allowed to burn {self.symbol}")
        if amount <= 0:
            raise ValueError(f"Burn amount must be positive, got {amount}")
        if self.balance_of(holder) < amount:
            raise ValueError(f"{holder} holds {self.balance_of(holder)} {self.symbol}, cannot burn {amount}")
        self.balances[holder] -= amount
