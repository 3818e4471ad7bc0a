"""
tokens.py - In-memory token collaborators

Token is a transferable-balance ledger with allowances, used for collateral
assets. DebtToken adds an owner gate on mint/burn; the engine that owns it is
the only account allowed to create or destroy supply.

Transfers report failure by returning False (insufficient balance or
allowance, or the fail_transfers switch), mirroring the boolean contract of
the capability protocols in core.py. Hooks registered in on_transfer run
before balances move and may raise; the exception propagates to the caller.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from .core import DEFAULT_TOKEN_DECIMALS, Unauthorized, NeedsMoreThanZero, InsufficientBalance

# (token, source, dest, amount)
TransferHook = Callable[["Token", str, str, int], None]


class Token:
    """
    Fungible balance ledger.

    Example:
        weth = Token("WETH", "Wrapped Ether")
        weth.mint("alice", 10 * 10**18)
        weth.approve("alice", "engine", 10 * 10**18)
        weth.transfer_from("engine", "alice", "engine", 10 * 10**18)
    """

    def __init__(self, symbol: str, name: str, decimals: int = DEFAULT_TOKEN_DECIMALS):
        self.symbol = symbol
        self.name = name
        self.decimals = decimals
        self.balances: Dict[str, int] = defaultdict(int)
        self.allowances: Dict[str, Dict[str, int]] = defaultdict(dict)
        self.total_supply: int = 0
        self.fail_transfers: bool = False
        self.on_transfer: List[TransferHook] = []

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(owner, {}).get(spender, 0)

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        self.allowances[owner][spender] = amount
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        return self._move(sender, recipient, amount)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        allowed = self.allowance(owner, spender)
        if spender != owner and allowed < amount:
            return False
        if not self._move(owner, recipient, amount):
            return False
        if spender != owner:
            self.allowances[owner][spender] = allowed - amount
        return True

    def mint(self, to: str, amount: int) -> bool:
        """Create supply (test funding; unrestricted on plain tokens)."""
        if amount <= 0:
            return False
        self.balances[to] += amount
        self.total_supply += amount
        return True

    def _move(self, source: str, dest: str, amount: int) -> bool:
        if amount < 0 or self.fail_transfers:
            return False
        for hook in self.on_transfer:
            hook(self, source, dest, amount)
        if self.balance_of(source) < amount:
            return False
        self.balances[source] -= amount
        self.balances[dest] += amount
        return True

    def __repr__(self):
        return f"Token({self.symbol}, supply={self.total_supply}, decimals={self.decimals})"


class DebtToken(Token):
    """
    Pegged debt token. Minting and burning are restricted to the owner.

    burn() destroys tokens held by the caller itself.
    """

    def __init__(
        self,
        symbol: str = "DSC",
        name: str = "Decentralized Stable Coin",
        owner: Optional[str] = None,
    ):
        super().__init__(symbol, name, DEFAULT_TOKEN_DECIMALS)
        self.owner = owner

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise Unauthorized(f"{caller} is not the owner of {self.symbol}")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        if self.owner is not None:
            self._only_owner(caller)
        self.owner = new_owner

    def mint(self, caller: str, to: str, amount: int) -> bool:
        self._only_owner(caller)
        if amount <= 0:
            raise NeedsMoreThanZero(f"Cannot mint {amount} {self.symbol}")
        return super().mint(to, amount)

    def burn(self, caller: str, amount: int) -> None:
        self._only_owner(caller)
        if amount <= 0:
            raise NeedsMoreThanZero(f"Cannot burn {amount} {self.symbol}")
        balance = self.balance_of(caller)
        if amount > balance:
            raise InsufficientBalance(f"Burn amount {amount} exceeds balance {balance}")
        self.balances[caller] -= amount
        self.total_supply -= amount
