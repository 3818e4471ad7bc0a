"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, conformance and functional tests:
- Clock, collateral tokens, price feeds and the debt token
- An engine owning the debt token, with WETH and WBTC as collateral
- Funded / deposited / minted user accounts
- A liquidator holding debt tokens
"""

import pytest
from datetime import datetime

from stableledger import (
    Engine, Token, DebtToken, StaticPriceFeed, Clock,
)


T0 = datetime(2025, 1, 1)

ETH_USD_PRICE = 2000 * 10**8
BTC_USD_PRICE = 1000 * 10**8

COLLATERAL_AMOUNT = 10 * 10**18
AMOUNT_TO_MINT = 100 * 10**18
COLLATERAL_TO_COVER = 20 * 10**18


# =============================================================================
# COLLABORATORS
# =============================================================================

@pytest.fixture
def clock():
    return Clock(T0)


@pytest.fixture
def weth():
    return Token("WETH", "Wrapped Ether")


@pytest.fixture
def wbtc():
    return Token("WBTC", "Wrapped Bitcoin")


@pytest.fixture
def eth_usd(clock):
    return StaticPriceFeed(ETH_USD_PRICE, clock.current_time)


@pytest.fixture
def btc_usd(clock):
    return StaticPriceFeed(BTC_USD_PRICE, clock.current_time)


@pytest.fixture
def dsc():
    return DebtToken()


# =============================================================================
# ENGINE
# =============================================================================

@pytest.fixture
def engine(weth, wbtc, eth_usd, btc_usd, dsc, clock):
    """Engine over WETH and WBTC that owns the debt token."""
    engine = Engine([weth, wbtc], [eth_usd, btc_usd], dsc, clock=clock)
    dsc.transfer_ownership(None, engine.address)
    return engine


@pytest.fixture
def fund(engine, weth):
    """Mint collateral to a user and approve the engine to pull it."""
    def _fund(user, amount=COLLATERAL_AMOUNT, token=None):
        token = token or weth
        token.mint(user, amount)
        token.approve(user, engine.address, token.allowance(user, engine.address) + amount)
        return user
    return _fund


@pytest.fixture
def user(fund):
    """alice, holding 10 WETH approved for the engine."""
    return fund("alice")


@pytest.fixture
def deposited(engine, user):
    """alice with 10 WETH deposited and no debt."""
    engine.deposit_collateral(user, "WETH", COLLATERAL_AMOUNT)
    return user


@pytest.fixture
def minted(engine, user):
    """alice with 10 WETH deposited and $100 of debt minted."""
    engine.deposit_collateral_and_mint_debt(user, "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
    return user


@pytest.fixture
def liquidator(engine, fund, dsc):
    """bob, with 20 WETH deposited, $100 minted and the debt tokens approved for the engine."""
    bob = fund("bob", COLLATERAL_TO_COVER)
    engine.deposit_collateral_and_mint_debt(bob, "WETH", COLLATERAL_TO_COVER, AMOUNT_TO_MINT)
    dsc.approve(bob, engine.address, AMOUNT_TO_MINT)
    return bob


@pytest.fixture
def set_price(clock):
    """Publish a fresh quote on a feed at the current clock time."""
    def _set_price(feed, usd):
        feed.update_answer(int(usd * 10**8), clock.current_time)
    return _set_price
