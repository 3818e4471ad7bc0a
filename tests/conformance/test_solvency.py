"""
Solvency Conformance Tests

INVARIANTS, after every operation (successful or rejected):

    ∀ asset a:   token(a).balance_of(engine) = Σ_u collateral(u, a) = total_collateral(a)
    debt_token.total_supply = Σ_u debt(u) = total_debt
    ∀ asset a:   Σ_holders token(a).balance_of(holder) = constant

and after every successful operation:

    mint / redeem          ⟹ the acting account is healthy
    liquidate(l, _, u, _)  ⟹ hf(u) improved and l is healthy

These tests use property-based testing over arbitrary operation sequences,
including price moves between operations.
"""

from hypothesis import given, settings, note
from hypothesis import strategies as st

from stableledger import EngineError, MAX_HEALTH_FACTOR

from tests.engine_harness import make_world, observe, ACCOUNTS, ASSETS, ETH


# =============================================================================
# STRATEGIES FOR PROPERTY-BASED TESTING
# =============================================================================

@st.composite
def collateral_amount(draw):
    """0.1 to 20 tokens."""
    return draw(st.integers(min_value=1, max_value=200)) * ETH // 10


@st.composite
def debt_amount(draw):
    """$10 to $20,000."""
    return draw(st.integers(min_value=1, max_value=2_000)) * 10 * ETH


@st.composite
def step(draw):
    kind = draw(st.sampled_from([
        "deposit", "mint", "deposit_and_mint", "redeem", "burn",
        "redeem_for_debt", "liquidate", "price",
    ]))
    account = draw(st.sampled_from(ACCOUNTS))
    asset = draw(st.sampled_from(ASSETS))
    if kind == "price":
        return (kind, account, asset, draw(st.integers(min_value=10, max_value=3_000)), 0)
    if kind == "liquidate":
        target = draw(st.sampled_from([a for a in ACCOUNTS if a != account]))
        return (kind, account, asset, target, draw(debt_amount()))
    return (kind, account, asset, draw(collateral_amount()), draw(debt_amount()))


# =============================================================================
# HELPERS
# =============================================================================

def apply(world, s):
    kind, account, asset, a, b = s
    engine = world.engine
    if kind == "deposit":
        engine.deposit_collateral(account, asset, a)
    elif kind == "mint":
        engine.mint_debt(account, b)
    elif kind == "deposit_and_mint":
        engine.deposit_collateral_and_mint_debt(account, asset, a, b)
    elif kind == "redeem":
        engine.redeem_collateral(account, asset, a)
    elif kind == "burn":
        engine.burn_debt(account, b)
    elif kind == "redeem_for_debt":
        engine.redeem_collateral_for_debt(account, asset, a, b)
    elif kind == "liquidate":
        engine.liquidate(account, asset, a, b)
    elif kind == "price":
        world.set_price(asset, a)


def check_books(world, supplies):
    engine = world.engine
    for asset in ASSETS:
        per_account = sum(engine.get_collateral_balance_of_user(u, asset) for u in ACCOUNTS)
        held = world.tokens[asset].balance_of(engine.address)
        assert held == per_account == engine.get_total_collateral(asset)

        holders = sum(world.tokens[asset].balance_of(u) for u in ACCOUNTS) + held
        assert holders == supplies[asset]

    debts = sum(engine.get_debt_balance(u) for u in ACCOUNTS)
    assert world.dsc.total_supply == debts == engine.get_total_debt()
    assert world.dsc.balance_of(engine.address) == 0
    assert engine.verify_collateral_backing()['valid']


# =============================================================================
# PROPERTIES
# =============================================================================

class TestSolvencyProperties:

    @given(st.lists(step(), min_size=1, max_size=25))
    @settings(max_examples=150, deadline=None)
    def test_books_balance_after_every_operation(self, steps):
        """
        PROPERTY: Ledgers always match token holdings and supply.
        """
        world = make_world()
        supplies = {a: world.tokens[a].total_supply for a in ASSETS}

        for s in steps:
            note(f"step {s}")
            try:
                apply(world, s)
            except EngineError as e:
                note(f"  rejected: {type(e).__name__}")
            check_books(world, supplies)

    @given(st.lists(step(), min_size=1, max_size=25))
    @settings(max_examples=150, deadline=None)
    def test_successful_operations_leave_accounts_healthy(self, steps):
        """
        PROPERTY: An operation that weakens an account only succeeds if it stays healthy.
        """
        world = make_world()
        engine = world.engine

        for s in steps:
            kind, account, asset, a, b = s
            starting = None
            if kind == "liquidate":
                starting = engine.get_health_factor(a)
            try:
                apply(world, s)
            except EngineError:
                continue

            if kind in ("mint", "deposit_and_mint", "redeem", "redeem_for_debt"):
                assert engine.health.is_healthy(account)
            elif kind == "liquidate":
                assert starting < engine.get_min_health_factor()
                assert engine.get_health_factor(a) > starting
                assert engine.health.is_healthy(account)

    @given(st.lists(step(), min_size=1, max_size=15))
    @settings(max_examples=50, deadline=None)
    def test_full_repayment_always_possible(self, steps):
        """
        PROPERTY: Any account holding its own debt tokens can repay everything,
        which restores the maximum health factor.
        """
        world = make_world()
        engine = world.engine
        for s in steps:
            try:
                apply(world, s)
            except EngineError:
                pass

        for account in ACCOUNTS:
            owed = engine.get_debt_balance(account)
            if owed and world.dsc.balance_of(account) >= owed:
                engine.burn_debt(account, owed)
                assert engine.get_health_factor(account) == MAX_HEALTH_FACTOR


class TestRoundTrip:

    @given(
        st.sampled_from(ASSETS),
        collateral_amount(),
        st.sampled_from(ACCOUNTS),
    )
    @settings(max_examples=50, deadline=None)
    def test_deposit_then_redeem_restores_balances(self, asset, amount, account):
        """
        PROPERTY: Depositing and redeeming the same amount changes nothing but the event log.
        """
        world = make_world()
        before = observe(world)

        world.engine.deposit_collateral(account, asset, amount)
        world.engine.redeem_collateral(account, asset, amount)

        after = observe(world)
        assert after[:-1] == before[:-1]
        assert after[-1] == before[-1] + 2
