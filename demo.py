#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Collateral, Debt and Liquidation Step by Step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1: Setup        - Collateral tokens, price feeds, the debt token, the engine
  2: Borrowing    - Deposit collateral and mint debt against it
  3: Limits       - Why a mint that breaks the health factor is rejected
  4: Liquidation  - A price drop, and a liquidator buying out the debt
  5: Staleness    - What happens when a price feed stops updating
  6: Books        - Ledger totals versus actual token holdings

Run:
    python demo.py                          # Interactive mode
    python demo.py --quick                  # Run all steps without pausing
    python demo.py --config config.yaml     # Custom risk parameters
"""

import argparse
from dataclasses import dataclass
from datetime import datetime, timedelta

from stableledger import (
    Engine, Token, DebtToken, StaticPriceFeed, Clock,
    HealthFactorBroken, StaleOracleData,
    format_ratio, load_config, configure_logging,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

ETH = 10**18


@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    eth_price: int = 2000
    crashed_eth_price: int = 18

    alice_collateral: int = 10
    alice_debt: int = 100
    bob_collateral: int = 20
    bob_debt: int = 100


CONFIG = DemoConfig()
QUICK_MODE = False


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def usd(amount: int) -> str:
    return f"${amount / ETH:,.2f}"


def show_account(engine: Engine, account: str):
    debt, value = engine.get_account_information(account)
    hf = engine.get_health_factor(account)
    print(f"    {account:<6} collateral {usd(value):>12}   debt {usd(debt):>10}   health {format_ratio(hf)}")


# ============================================================================
# STEPS
# ============================================================================

def step_01_setup(args):
    step_header(1, "Setup",
        "Wire collateral tokens, price feeds and the debt token into an engine.")

    clock = Clock(CONFIG.start_time)
    weth = Token("WETH", "Wrapped Ether")
    eth_usd = StaticPriceFeed(CONFIG.eth_price * 10**8, clock.current_time)
    dsc = DebtToken()

    engine = Engine([weth], [eth_usd], dsc, clock=clock, config=load_config(args.config), verbose=True)
    dsc.transfer_ownership(None, engine.address)

    print(f">>> {engine!r}")
    print(f"    liquidation threshold {engine.get_liquidation_threshold()}/{engine.get_liquidation_precision()}, "
          f"bonus {engine.get_liquidation_bonus()}/{engine.get_liquidation_precision()}")
    print("    The engine owns the debt token: only it can mint and burn.")

    for account, amount in (("alice", CONFIG.alice_collateral), ("bob", CONFIG.bob_collateral)):
        weth.mint(account, amount * ETH)
        weth.approve(account, engine.address, amount * ETH)
    wait_for_enter()
    return engine, clock, weth, eth_usd, dsc


def step_02_borrow(engine: Engine):
    step_header(2, "Borrowing",
        "Lock collateral and mint debt tokens against it in one atomic operation.")

    engine.deposit_collateral_and_mint_debt("alice", "WETH", CONFIG.alice_collateral * ETH, CONFIG.alice_debt * ETH)
    engine.deposit_collateral_and_mint_debt("bob", "WETH", CONFIG.bob_collateral * ETH, CONFIG.bob_debt * ETH)
    show_account(engine, "alice")
    show_account(engine, "bob")
    wait_for_enter()


def step_03_limits(engine: Engine):
    step_header(3, "Limits",
        "Half of the collateral value counts; debt above that is refused.")

    _, value = engine.get_account_information("alice")
    headroom = value // 2 - engine.get_debt_balance("alice")
    print(f"    alice can still mint {usd(headroom)}; trying one dollar more")
    try:
        engine.mint_debt("alice", headroom + ETH)
    except HealthFactorBroken as e:
        print(f"    ✗ {e}")
    show_account(engine, "alice")
    wait_for_enter()


def step_04_liquidation(engine: Engine, eth_usd: StaticPriceFeed, clock: Clock, dsc: DebtToken):
    step_header(4, "Liquidation",
        "A price crash leaves alice under-collateralized; bob repays her debt for a bonus.")

    eth_usd.update_answer(CONFIG.crashed_eth_price * 10**8, clock.current_time)
    print(f"    ETH falls to ${CONFIG.crashed_eth_price}")
    show_account(engine, "alice")

    debt = engine.get_debt_balance("alice")
    dsc.approve("bob", engine.address, debt)
    seized = engine.liquidate("bob", "WETH", "alice", debt)
    print(f"    bob paid {usd(debt)} and received {seized / ETH:.6f} WETH")
    show_account(engine, "alice")
    show_account(engine, "bob")
    wait_for_enter()


def step_05_staleness(engine: Engine, clock: Clock):
    step_header(5, "Staleness",
        "Quotes older than the timeout are refused, even for read-only queries.")

    clock.advance(engine.oracle.staleness_timeout + timedelta(minutes=1))
    print(f"    clock moved to {clock.current_time}")
    try:
        engine.get_health_factor("bob")
    except StaleOracleData as e:
        print(f"    ✗ {e}")
    print(f"    Balances are still readable: bob holds "
          f"{engine.get_collateral_balance_of_user('bob', 'WETH') / ETH:.2f} WETH of collateral")
    wait_for_enter()


def step_06_books(engine: Engine, dsc: DebtToken):
    step_header(6, "Books",
        "Every token the engine holds is owed to someone, and every debt token is backed by a debt.")

    report = engine.verify_collateral_backing()
    print(f"    collateral backing valid: {report['valid']}  holdings: {report['holdings']}")
    print(f"    debt token supply {usd(dsc.total_supply)} == total debt {usd(engine.get_total_debt())}")
    print(f"    {len(engine.event_log)} events recorded")


def main():
    global QUICK_MODE
    parser = argparse.ArgumentParser(description="Collateral and liquidation walkthrough")
    parser.add_argument("--quick", action="store_true", help="Run all steps without pausing")
    parser.add_argument("--config", default=None, help="Path to a YAML file with an 'engine:' section")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    args = parser.parse_args()

    QUICK_MODE = args.quick
    configure_logging(args.log_level)

    engine, clock, weth, eth_usd, dsc = step_01_setup(args)
    step_02_borrow(engine)
    step_03_limits(engine)
    step_04_liquidation(engine, eth_usd, clock, dsc)
    step_05_staleness(engine, clock)
    step_06_books(engine, dsc)


if __name__ == "__main__":
    main()
