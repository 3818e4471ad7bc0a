"""
Core types and pure functions for the collateral/debt engine.

This module provides the foundational data structures and protocols for the engine:
1. Protocols: capability surfaces of the external collaborators
   (collateral tokens, the debt token, price feeds)
2. Immutable data structures: Asset, PriceQuote, engine events
3. Exceptions: EngineError and domain-specific error types
4. Type aliases: BalanceMap, CollateralBalances
5. Fixed-point helpers: scale factors and normalization formulas

All functions in this module are pure. No function can mutate engine state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================
#
# All amounts are unsigned fixed-point integers.
#   - quote-currency values and the debt token use PRECISION (1e18)
#   - feed prices use 10**feed_decimals (commonly 1e8)
#   - collateral token amounts use 10**token_decimals (commonly 1e18)
#

PRECISION = 10**18

# Scale factor lifting an 8-decimal feed price to PRECISION.
ADDITIONAL_FEED_PRECISION = 10**10

DEFAULT_FEED_DECIMALS = 8
DEFAULT_TOKEN_DECIMALS = 18

# 50 / 100: collateral must be worth at least twice the debt.
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# 10 / 100: liquidators receive a 10% collateral bonus.
LIQUIDATION_BONUS = 10

MIN_HEALTH_FACTOR = PRECISION

# Health factor of an account without debt (saturating uint256 maximum).
MAX_HEALTH_FACTOR = 2**256 - 1

STALENESS_TIMEOUT = timedelta(hours=3)


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset symbol to amount held by one account.
BalanceMap = Dict[str, int]

# Mapping from account to its per-asset collateral balances.
CollateralBalances = Dict[str, BalanceMap]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine-related errors."""
    pass


class ValidationError(EngineError):
    """Raised when an input is rejected before any state change."""
    pass


class NeedsMoreThanZero(ValidationError):
    """Raised when an amount is zero or negative."""
    pass


class AssetNotAllowed(ValidationError):
    """Raised when an asset is not in the registered collateral set."""
    pass


class ConfigurationError(ValidationError):
    """Raised when engine construction or risk parameters are inconsistent."""
    pass


class StaleOracleData(EngineError):
    """Raised when a price quote is older than the staleness timeout or otherwise unusable."""
    pass


class InsufficientBalance(EngineError):
    """Raised when a ledger decrement would underflow."""
    pass


class InsufficientCollateral(InsufficientBalance):
    """Raised when an account does not hold enough of a collateral asset."""
    pass


class InsufficientDebt(InsufficientBalance):
    """Raised when burning more debt than an account owes."""
    pass


class TransferFailed(EngineError):
    """Raised when an external token movement reports failure."""
    pass


class MintFailed(TransferFailed):
    """Raised when the debt token refuses to mint."""
    pass


class HealthFactorBroken(EngineError):
    """Raised when an operation would leave an account under-collateralized."""

    def __init__(self, account: str, health_factor: int, minimum: int = MIN_HEALTH_FACTOR):
        self.account = account
        self.health_factor = health_factor
        super().__init__(
            f"Health factor of {account} would be {format_ratio(health_factor)} "
            f"(minimum {format_ratio(minimum)})"
        )


class HealthFactorNotBroken(EngineError):
    """Raised when liquidating an account that is still solvent."""
    pass


class HealthFactorNotImproved(EngineError):
    """Raised when a liquidation would not strictly improve the target's health factor."""
    pass


class ReentrantCall(EngineError):
    """Raised when a state-changing operation is entered while another is executing."""
    pass


class Unauthorized(EngineError):
    """Raised when a caller lacks the owner right on a gated capability."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PriceQuote:
    """
    A single price observation from a feed.

    Attributes:
        price: Unsigned price scaled by the feed's decimals.
        updated_at: When the feed last updated this price.
    """
    price: int
    updated_at: datetime


@runtime_checkable
class PriceFeed(Protocol):
    """Raw price feed for one asset. No freshness guarantees."""

    decimals: int

    def latest_quote(self) -> PriceQuote:
        """Return the most recent quote."""
        ...


@runtime_checkable
class CollateralTokenCapability(Protocol):
    """
    Transferable-balance capability of a collateral asset.

    The caller identity is explicit: `spender` for allowance-based pulls,
    `sender` for direct transfers.
    """

    symbol: str
    decimals: int

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        ...

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        ...


@runtime_checkable
class DebtTokenCapability(Protocol):
    """
    Mintable/burnable debt token. Only its owner may mint and burn.
    """

    symbol: str

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        ...

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        ...

    def mint(self, caller: str, to: str, amount: int) -> bool:
        ...

    def burn(self, caller: str, amount: int) -> None:
        ...


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Asset:
    """
    An approved collateral type.

    Attributes:
        symbol: Unique identifier of the asset (e.g., "WETH").
        token: Collateral token capability holding the asset.
        price_feed: Raw price feed for the asset.
        token_decimals: Decimal places of token amounts.
        feed_decimals: Decimal places of feed prices.

    The scale factors used by valuation are derived once and exposed as
    named properties: token_scale (10**token_decimals) and feed_precision
    (10**(18 - feed_decimals)).
    """
    symbol: str
    token: CollateralTokenCapability
    price_feed: PriceFeed
    token_decimals: int = DEFAULT_TOKEN_DECIMALS
    feed_decimals: int = DEFAULT_FEED_DECIMALS

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ConfigurationError("Asset symbol cannot be empty")
        if self.token_decimals < 0:
            raise ConfigurationError(f"Asset {self.symbol}: token_decimals must be >= 0")
        if not 0 <= self.feed_decimals <= 18:
            raise ConfigurationError(
                f"Asset {self.symbol}: feed_decimals must be within [0, 18], got {self.feed_decimals}"
            )

    @property
    def token_scale(self) -> int:
        return 10**self.token_decimals

    @property
    def feed_precision(self) -> int:
        return 10**(18 - self.feed_decimals)

    def __repr__(self) -> str:
        return f"Asset({self.symbol}, token_decimals={self.token_decimals}, feed_decimals={self.feed_decimals})"


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    """Collateral moved into the engine and credited to `user`."""
    user: str
    asset: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    """Collateral debited from `redeemed_from` and paid to `redeemed_to`."""
    redeemed_from: str
    redeemed_to: str
    asset: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class DebtMinted:
    """Debt tokens created for `user`."""
    user: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class DebtBurned:
    """Debt of `on_behalf_of` repaid with tokens from `payer`."""
    on_behalf_of: str
    payer: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Liquidated:
    """A liquidation of `user` by `liquidator`."""
    liquidator: str
    user: str
    asset: str
    debt_covered: int
    collateral_seized: int
    starting_health_factor: int
    ending_health_factor: int
    timestamp: datetime


# ============================================================================
# FIXED-POINT HELPERS
# ============================================================================

def require_positive(amount: int, what: str = "amount") -> None:
    """Raise NeedsMoreThanZero unless amount is a positive int."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise NeedsMoreThanZero(f"{what} must be an int, got {type(amount).__name__}")
    if amount <= 0:
        raise NeedsMoreThanZero(f"{what} must be more than zero, got {amount}")


def usd_value(amount: int, price: int, feed_precision: int, token_scale: int) -> int:
    """
    Value of `amount` token units in quote currency (PRECISION scale).

        value = amount * price * feed_precision // token_scale
    """
    return (price * feed_precision) * amount // token_scale


def token_amount_from_usd(usd_amount: int, price: int, feed_precision: int, token_scale: int) -> int:
    """
    Inverse of usd_value: token units worth `usd_amount` (PRECISION scale).

        amount = usd_amount * token_scale // (price * feed_precision)
    """
    return usd_amount * token_scale // (price * feed_precision)


def format_ratio(value: int, precision: int = PRECISION) -> str:
    """Human-readable rendering of a fixed-point ratio."""
    if value >= MAX_HEALTH_FACTOR:
        return "inf"
    whole, frac = divmod(value, precision)
    return f"{whole}.{frac * 10_000 // precision:04d}"
