"""
ledgers.py - Collateral and debt stores

CollateralLedger and DebtLedger are plain owned stores: balances keyed by
account (and asset). They validate their own arithmetic (positive amounts,
no underflow) but know nothing about tokens, prices or health. The Engine
is the only writer; everyone else reads.

Both stores support snapshot()/restore() so that the Engine can undo every
write of a failed operation in one step.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Mapping, Tuple

from .core import (
    Asset, BalanceMap, CollateralBalances,
    AssetNotAllowed, InsufficientCollateral, InsufficientDebt,
    require_positive, usd_value, token_amount_from_usd,
)
from .pricing_source import PriceOracleAdapter


class CollateralLedger:
    """
    Per-account, per-asset deposited collateral.

    The registered asset set is fixed at construction.
    """

    def __init__(self, assets: Mapping[str, Asset]):
        self._assets: Dict[str, Asset] = dict(assets)
        self._balances: CollateralBalances = defaultdict(dict)
        # Inverted index: asset -> sum over accounts
        self._totals: Dict[str, int] = {symbol: 0 for symbol in self._assets}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @property
    def asset_symbols(self) -> List[str]:
        """Registered asset symbols in registration order."""
        return list(self._assets)

    def is_registered(self, asset: str) -> bool:
        return asset in self._assets

    def get_asset(self, asset: str) -> Asset:
        if asset not in self._assets:
            raise AssetNotAllowed(f"Asset {asset} is not an approved collateral")
        return self._assets[asset]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def balance_of(self, account: str, asset: str) -> int:
        """Deposited amount; 0 for unknown accounts."""
        return self._balances.get(account, {}).get(asset, 0)

    def balances_of(self, account: str) -> BalanceMap:
        return dict(self._balances.get(account, {}))

    def total(self, asset: str) -> int:
        """Sum of all accounts' deposits of an asset."""
        return self._totals.get(asset, 0)

    def accounts(self) -> List[str]:
        return sorted(a for a, bals in self._balances.items() if any(bals.values()))

    # ------------------------------------------------------------------
    # Writes (Engine only)
    # ------------------------------------------------------------------

    def deposit(self, account: str, asset: str, amount: int) -> int:
        """Credit collateral; returns the new balance."""
        require_positive(amount)
        self.get_asset(asset)
        new_balance = self.balance_of(account, asset) + amount
        self._balances[account][asset] = new_balance
        self._totals[asset] += amount
        return new_balance

    def withdraw(self, account: str, asset: str, amount: int) -> int:
        """
        Debit collateral; returns the new balance.

        Raises:
            InsufficientCollateral: If account holds less than amount.
        """
        require_positive(amount)
        self.get_asset(asset)
        current = self.balance_of(account, asset)
        if amount > current:
            raise InsufficientCollateral(
                f"{account} holds {current} {asset}, cannot withdraw {amount}"
            )
        new_balance = current - amount
        self._balances[account][asset] = new_balance
        self._totals[asset] -= amount
        return new_balance

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    def usd_value(self, asset: str, amount: int, oracle: PriceOracleAdapter) -> int:
        """Quote-currency value (1e18 scale) of an amount of one asset."""
        registered = self.get_asset(asset)
        if amount == 0:
            return 0
        price = oracle.get_fresh_price(asset)
        return usd_value(amount, price, registered.feed_precision, registered.token_scale)

    def token_amount_from_usd(self, asset: str, usd_amount: int, oracle: PriceOracleAdapter) -> int:
        """Amount of an asset worth usd_amount (1e18 scale) at the current price."""
        registered = self.get_asset(asset)
        price = oracle.get_fresh_price(asset)
        return token_amount_from_usd(usd_amount, price, registered.feed_precision, registered.token_scale)

    def value_in_quote_currency(self, account: str, oracle: PriceOracleAdapter) -> int:
        """
        Total quote-currency value of an account's collateral.

        Assets the account does not hold contribute zero without a price
        lookup, so a stale feed only matters for assets actually held.
        """
        total = 0
        for asset in self._assets:
            total += self.usd_value(asset, self.balance_of(account, asset), oracle)
        return total

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> Tuple[CollateralBalances, Dict[str, int]]:
        return {a: dict(b) for a, b in self._balances.items()}, dict(self._totals)

    def restore(self, snapshot: Tuple[CollateralBalances, Dict[str, int]]) -> None:
        balances, totals = snapshot
        self._balances = defaultdict(dict, {a: dict(b) for a, b in balances.items()})
        self._totals = dict(totals)

    def __repr__(self):
        return f"CollateralLedger({len(self._assets)} assets, {len(self.accounts())} accounts)"


class DebtLedger:
    """Per-account minted debt."""

    def __init__(self):
        self._balances: Dict[str, int] = {}
        self._total: int = 0

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    @property
    def total(self) -> int:
        """Sum of all accounts' debt."""
        return self._total

    def accounts(self) -> List[str]:
        return sorted(a for a, debt in self._balances.items() if debt)

    def mint(self, account: str, amount: int) -> int:
        """Increase debt; returns the new balance."""
        require_positive(amount)
        new_balance = self.balance_of(account) + amount
        self._balances[account] = new_balance
        self._total += amount
        return new_balance

    def burn(self, account: str, amount: int) -> int:
        """
        Decrease debt; returns the new balance.

        Raises:
            InsufficientDebt: If amount exceeds the account's debt.
        """
        require_positive(amount)
        current = self.balance_of(account)
        if amount > current:
            raise InsufficientDebt(f"{account} owes {current}, cannot burn {amount}")
        new_balance = current - amount
        self._balances[account] = new_balance
        self._total -= amount
        return new_balance

    def snapshot(self) -> Tuple[Dict[str, int], int]:
        return dict(self._balances), self._total

    def restore(self, snapshot: Tuple[Dict[str, int], int]) -> None:
        balances, total = snapshot
        self._balances = dict(balances)
        self._total = total

    def __repr__(self):
        return f"DebtLedger({len(self.accounts())} accounts, total={self._total})"
