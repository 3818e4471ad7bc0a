"""
engine_harness.py - Test helper for property-based engine tests

Hypothesis tests cannot share function-scoped pytest fixtures, so they build
a fresh engine per example with make_world() and compare whole-system
snapshots with observe().
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Tuple

from stableledger import Engine, Token, DebtToken, StaticPriceFeed, Clock


T0 = datetime(2025, 1, 1)
ETH = 10**18
ACCOUNTS = ["alice", "bob", "carol"]
ASSETS = ["WETH", "WBTC"]


@dataclass
class World:
    engine: Engine
    clock: Clock
    dsc: DebtToken
    tokens: Dict[str, Token]
    feeds: Dict[str, StaticPriceFeed]

    def set_price(self, asset: str, usd: int) -> None:
        self.feeds[asset].update_answer(usd * 10**8, self.clock.current_time)


def make_world(funding: int = 1_000 * ETH, prices: Tuple[int, int] = (2000, 1000)) -> World:
    """Engine over WETH/WBTC; every account holds and has approved `funding` of each."""
    clock = Clock(T0)
    tokens = {
        "WETH": Token("WETH", "Wrapped Ether"),
        "WBTC": Token("WBTC", "Wrapped Bitcoin"),
    }
    feeds = {
        "WETH": StaticPriceFeed(prices[0] * 10**8, T0),
        "WBTC": StaticPriceFeed(prices[1] * 10**8, T0),
    }
    dsc = DebtToken()
    engine = Engine([tokens[a] for a in ASSETS], [feeds[a] for a in ASSETS], dsc, clock=clock)
    dsc.transfer_ownership(None, engine.address)

    for account in ACCOUNTS:
        for token in tokens.values():
            token.mint(account, funding)
            token.approve(account, engine.address, 10**40)
        dsc.approve(account, engine.address, 10**40)

    return World(engine, clock, dsc, tokens, feeds)


def observe(world: World) -> Tuple:
    """Every externally visible balance of the system."""
    engine = world.engine
    ledger: List[Tuple] = []
    for account in ACCOUNTS:
        ledger.append((
            account,
            tuple(engine.get_collateral_balance_of_user(account, a) for a in ASSETS),
            engine.get_debt_balance(account),
            tuple(world.tokens[a].balance_of(account) for a in ASSETS),
            world.dsc.balance_of(account),
        ))
    return (
        tuple(ledger),
        tuple(world.tokens[a].balance_of(engine.address) for a in ASSETS),
        world.dsc.balance_of(engine.address),
        world.dsc.total_supply,
        engine.get_total_debt(),
        len(engine.event_log),
    )
