"""
stableledger - Over-collateralized Stablecoin Accounting Engine

Collateral/debt ledgers, health-factor computation, liquidation and
price-feed staleness protection for a pegged debt token.

Usage:
    from stableledger import Engine, Token, DebtToken, StaticPriceFeed, Clock

    clock = Clock(datetime(2025, 1, 1))
    weth = Token("WETH", "Wrapped Ether")
    dsc = DebtToken()
    engine = Engine([weth], [StaticPriceFeed(2000 * 10**8, clock.current_time)], dsc, clock=clock)
    dsc.transfer_ownership(None, engine.address)

    # Fund and approve, then lock collateral and mint $100 of debt
    weth.mint("alice", 10 * 10**18)
    weth.approve("alice", engine.address, 10 * 10**18)
    engine.deposit_collateral_and_mint_debt("alice", "WETH", 10 * 10**18, 100 * 10**18)

    engine.get_health_factor("alice")  # 100 * 10**18
"""

# Core types
from .core import (
    Asset,
    PriceQuote,
    PriceFeed,
    CollateralTokenCapability,
    DebtTokenCapability,
    CollateralDeposited,
    CollateralRedeemed,
    DebtMinted,
    DebtBurned,
    Liquidated,
    EngineError,
    ValidationError,
    NeedsMoreThanZero,
    AssetNotAllowed,
    ConfigurationError,
    StaleOracleData,
    InsufficientBalance,
    InsufficientCollateral,
    InsufficientDebt,
    TransferFailed,
    MintFailed,
    HealthFactorBroken,
    HealthFactorNotBroken,
    HealthFactorNotImproved,
    ReentrantCall,
    Unauthorized,
    PRECISION,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    STALENESS_TIMEOUT,
    usd_value,
    token_amount_from_usd,
    format_ratio,
)

# Time
from .clock import Clock

# Pricing
from .pricing_source import (
    PriceOracleAdapter,
    StaticPriceFeed,
    TimeSeriesPriceFeed,
)

# Ledgers
from .ledgers import CollateralLedger, DebtLedger

# Health
from .health import HealthFactorEngine, calculate_health_factor

# Engine
from .engine import Engine, NonReentrantLock

# Tokens
from .tokens import Token, DebtToken

# Configuration
from .config import EngineConfig, config_from_mapping, load_config
from .logging_setup import configure_logging

__all__ = [
    # Core
    'Asset', 'PriceQuote', 'PriceFeed', 'CollateralTokenCapability', 'DebtTokenCapability',
    'CollateralDeposited', 'CollateralRedeemed', 'DebtMinted', 'DebtBurned', 'Liquidated',
    'EngineError', 'ValidationError', 'NeedsMoreThanZero', 'AssetNotAllowed',
    'ConfigurationError', 'StaleOracleData', 'InsufficientBalance',
    'InsufficientCollateral', 'InsufficientDebt', 'TransferFailed', 'MintFailed',
    'HealthFactorBroken', 'HealthFactorNotBroken', 'HealthFactorNotImproved',
    'ReentrantCall', 'Unauthorized',
    'PRECISION', 'ADDITIONAL_FEED_PRECISION', 'LIQUIDATION_THRESHOLD',
    'LIQUIDATION_PRECISION', 'LIQUIDATION_BONUS', 'MIN_HEALTH_FACTOR',
    'MAX_HEALTH_FACTOR', 'STALENESS_TIMEOUT',
    'usd_value', 'token_amount_from_usd', 'format_ratio',
    # Time
    'Clock',
    # Pricing
    'PriceOracleAdapter', 'StaticPriceFeed', 'TimeSeriesPriceFeed',
    # Ledgers
    'CollateralLedger', 'DebtLedger',
    # Health
    'HealthFactorEngine', 'calculate_health_factor',
    # Engine
    'Engine', 'NonReentrantLock',
    # Tokens
    'Token', 'DebtToken',
    # Configuration
    'EngineConfig', 'config_from_mapping', 'load_config', 'configure_logging',
]

__version__ = '1.0.0'
