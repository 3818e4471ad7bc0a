"""
health.py - Health factor computation

Key Formula:
    adjusted_collateral = collateral_value * liquidation_threshold / liquidation_precision
    health_factor       = adjusted_collateral * PRECISION / total_debt

With the default 50/100 threshold an account sits exactly at 1.0 when its
collateral is worth twice its debt. An account without debt has the
saturating maximum health factor.
"""

from __future__ import annotations
from typing import Tuple

from .core import (
    PRECISION, LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
    HealthFactorBroken,
)
from .ledgers import CollateralLedger, DebtLedger
from .pricing_source import PriceOracleAdapter


def calculate_health_factor(
    total_debt: int,
    collateral_value: int,
    liquidation_threshold: int = LIQUIDATION_THRESHOLD,
    liquidation_precision: int = LIQUIDATION_PRECISION,
) -> int:
    """
    Health factor from explicit inputs.

    PURE FUNCTION - no ledger access, never raises for non-negative inputs.

    Args:
        total_debt: Debt in quote currency (1e18 scale)
        collateral_value: Collateral value in quote currency (1e18 scale)

    Returns:
        Ratio scaled by 1e18; MAX_HEALTH_FACTOR when total_debt is zero.

    Example:
        # $20,000 of collateral backing $100 of debt
        calculate_health_factor(100 * 10**18, 20_000 * 10**18)  # 100 * 10**18
    """
    if total_debt == 0:
        return MAX_HEALTH_FACTOR
    adjusted = collateral_value * liquidation_threshold // liquidation_precision
    return adjusted * PRECISION // total_debt


class HealthFactorEngine:
    """Read-only evaluator of account solvency over both ledgers."""

    def __init__(
        self,
        collateral: CollateralLedger,
        debt: DebtLedger,
        oracle: PriceOracleAdapter,
        liquidation_threshold: int = LIQUIDATION_THRESHOLD,
        liquidation_precision: int = LIQUIDATION_PRECISION,
        min_health_factor: int = MIN_HEALTH_FACTOR,
    ):
        self._collateral = collateral
        self._debt = debt
        self._oracle = oracle
        self.liquidation_threshold = liquidation_threshold
        self.liquidation_precision = liquidation_precision
        self.min_health_factor = min_health_factor

    def account_information(self, account: str) -> Tuple[int, int]:
        """(total_debt, collateral_value) of an account."""
        total_debt = self._debt.balance_of(account)
        collateral_value = self._collateral.value_in_quote_currency(account, self._oracle)
        return total_debt, collateral_value

    def health_factor(self, account: str) -> int:
        # Collateral is priced before the zero-debt case, so a stale feed
        # blocks every account holding that asset.
        total_debt, collateral_value = self.account_information(account)
        return self.calculate(total_debt, collateral_value)

    def calculate(self, total_debt: int, collateral_value: int) -> int:
        return calculate_health_factor(
            total_debt, collateral_value,
            self.liquidation_threshold, self.liquidation_precision,
        )

    def is_healthy(self, account: str) -> bool:
        return self.health_factor(account) >= self.min_health_factor

    def assert_healthy(self, account: str) -> int:
        """
        Raise HealthFactorBroken if the account is below the minimum.

        Returns:
            The account's health factor.
        """
        ratio = self.health_factor(account)
        if ratio < self.min_health_factor:
            raise HealthFactorBroken(account, ratio, self.min_health_factor)
        return ratio
