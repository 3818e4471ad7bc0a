"""
engine.py - Collateral/debt accounting and liquidation engine

The Engine is the only component that mutates the collateral and debt
ledgers. Every public state-changing operation:

    1. runs under one engine-wide non-reentrant lock
    2. validates its inputs
    3. writes the ledgers
    4. checks the health factor of every account it weakened
    5. settles with the external token capabilities
    6. commits its events

Any exception in steps 2-5 rolls the whole operation back: ledger writes are
restored from a snapshot and completed token transfers are compensated in
reverse order. Nothing of a failed operation is observable afterwards.

Health checks depend only on ledger state and oracle prices, so running them
before settlement gives the same verdict as running them after. Within
settlement, a collateral payout or a mint comes last because neither can
be undone; a burn is undone by re-minting to the engine.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import wraps
import logging
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .clock import Clock
from .config import EngineConfig
from .core import (
    Asset, PriceFeed, CollateralTokenCapability, DebtTokenCapability,
    CollateralDeposited, CollateralRedeemed, DebtMinted, DebtBurned, Liquidated,
    PRECISION, ADDITIONAL_FEED_PRECISION,
    ConfigurationError, TransferFailed, MintFailed,
    HealthFactorNotBroken, HealthFactorNotImproved, ReentrantCall,
    require_positive, format_ratio,
)
from .health import HealthFactorEngine, calculate_health_factor
from .ledgers import CollateralLedger, DebtLedger
from .pricing_source import PriceOracleAdapter

logger = logging.getLogger(__name__)

Event = Any


# ============================================================================
# EXCLUSIVE EXECUTION
# ============================================================================

class NonReentrantLock:
    """
    Engine-wide exclusive-execution lock.

    A second entry from the thread already holding the lock (a capability
    calling back into the engine) raises ReentrantCall. Other threads wait.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._owner: Optional[int] = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def __enter__(self) -> NonReentrantLock:
        if self._owner == threading.get_ident():
            raise ReentrantCall("Engine operation already in progress")
        self._lock.acquire()
        self._owner = threading.get_ident()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._owner = None
        self._lock.release()


def non_reentrant(func):
    """Run an Engine method under the engine's NonReentrantLock."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return func(self, *args, **kwargs)

    return wrapper


# ============================================================================
# UNIT OF WORK
# ============================================================================

@dataclass
class Operation:
    """
    Bookkeeping for one in-flight operation.

    Attributes:
        name: Public operation name (for logs)
        events: Events to publish on commit
        compensations: Undo actions for completed external transfers
    """
    name: str
    collateral_snapshot: Any
    debt_snapshot: Any
    events: List[Event] = field(default_factory=list)
    compensations: List[Tuple[str, Callable[[], Any]]] = field(default_factory=list)

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def on_rollback(self, description: str, action: Callable[[], Any]) -> None:
        self.compensations.append((description, action))


class Engine:
    """
    Over-collateralized stablecoin engine.

    Users deposit approved collateral and mint the debt token against it.
    Every account must keep health_factor >= min_health_factor after any
    operation that could weaken it; accounts below the minimum can be
    liquidated by anyone holding enough debt tokens.

    Example:
        clock = Clock(datetime(2025, 1, 1))
        weth = Token("WETH", "Wrapped Ether")
        feed = StaticPriceFeed(2000 * 10**8, clock.current_time)
        dsc = DebtToken()
        engine = Engine([weth], [feed], dsc, clock=clock)
        dsc.transfer_ownership(None, engine.address)

        weth.mint("alice", 10 * 10**18)
        weth.approve("alice", engine.address, 10 * 10**18)
        engine.deposit_collateral_and_mint_debt("alice", "WETH", 10 * 10**18, 100 * 10**18)
        engine.get_health_factor("alice")  # 100 * 10**18
    """

    def __init__(
        self,
        token_addresses: Sequence[CollateralTokenCapability],
        price_feeds: Sequence[PriceFeed],
        debt_token: DebtTokenCapability,
        address: str = "engine",
        clock: Optional[Clock] = None,
        config: Optional[EngineConfig] = None,
        verbose: bool = False,
    ):
        """
        Create an engine over an immutable collateral registry.

        Args:
            token_addresses: Collateral token capabilities, one per asset
            price_feeds: Raw price feeds, parallel to token_addresses
            debt_token: Debt token capability; the engine must own it
            address: Account identity the engine uses towards capabilities
            clock: Logical clock for staleness checks and event timestamps
            config: Risk parameters (defaults to EngineConfig())
            verbose: Print every committed operation

        Raises:
            ConfigurationError: If the sequences differ in length or repeat an asset
        """
        if len(token_addresses) != len(price_feeds):
            raise ConfigurationError(
                f"Token addresses and price feeds must be the same length "
                f"({len(token_addresses)} != {len(price_feeds)})"
            )

        assets: Dict[str, Asset] = {}
        for token, feed in zip(token_addresses, price_feeds):
            if token.symbol in assets:
                raise ConfigurationError(f"Collateral asset {token.symbol} registered twice")
            assets[token.symbol] = Asset(
                symbol=token.symbol,
                token=token,
                price_feed=feed,
                token_decimals=token.decimals,
                feed_decimals=feed.decimals,
            )

        self.address = address
        self.config = config or EngineConfig()
        self.clock = clock or Clock()
        self.verbose = verbose
        self._debt_token = debt_token
        self._assets = assets

        self.oracle = PriceOracleAdapter.for_assets(assets, self.clock, self.config.staleness_timeout)
        self._collateral = CollateralLedger(assets)
        self._debt = DebtLedger()
        self.health = HealthFactorEngine(
            self._collateral,
            self._debt,
            self.oracle,
            liquidation_threshold=self.config.liquidation_threshold,
            liquidation_precision=self.config.liquidation_precision,
            min_health_factor=self.config.min_health_factor,
        )

        self._lock = NonReentrantLock()
        self.event_log: List[Event] = []
        self._listeners: List[Callable[[Event], None]] = []

        logger.info("Engine %s created with collateral %s", address, list(assets))

    # ========================================================================
    # STATE-CHANGING OPERATIONS
    # ========================================================================

    @non_reentrant
    def deposit_collateral(self, user: str, asset: str, amount: int) -> None:
        """Deposit collateral. Depositing only improves health; no post-check."""
        with self._atomic("deposit_collateral") as op:
            self._credit_collateral(op, user, asset, amount)
            self._pull_collateral(op, user, asset, amount)

    @non_reentrant
    def mint_debt(self, user: str, amount: int) -> None:
        """
        Mint debt tokens against the user's collateral.

        Raises:
            HealthFactorBroken: If the new debt breaks the user's health factor
            MintFailed: If the debt token refuses to mint
        """
        with self._atomic("mint_debt") as op:
            self._record_mint(op, user, amount)
            self.health.assert_healthy(user)
            self._mint_tokens(op, user, amount)

    @non_reentrant
    def redeem_collateral(self, user: str, asset: str, amount: int) -> None:
        """
        Withdraw collateral back to the user.

        Raises:
            InsufficientCollateral: If the user has not deposited that much
            HealthFactorBroken: If the withdrawal breaks the user's health factor
        """
        with self._atomic("redeem_collateral") as op:
            self._debit_collateral(op, user, user, asset, amount)
            self.health.assert_healthy(user)
            self._pay_collateral(op, user, asset, amount)

    @non_reentrant
    def burn_debt(self, user: str, amount: int) -> None:
        """Repay the user's own debt with their debt tokens."""
        with self._atomic("burn_debt") as op:
            self._record_burn(op, user, user, amount)
            # Burning cannot weaken an account; checked anyway.
            self.health.assert_healthy(user)
            self._pull_debt_tokens(op, user, amount)
            self._burn_debt_tokens(op, amount)

    @non_reentrant
    def deposit_collateral_and_mint_debt(
        self, user: str, asset: str, collateral_amount: int, debt_amount: int
    ) -> None:
        """Deposit then mint, as one operation."""
        require_positive(collateral_amount, "collateral_amount")
        require_positive(debt_amount, "debt_amount")
        with self._atomic("deposit_collateral_and_mint_debt") as op:
            self._credit_collateral(op, user, asset, collateral_amount)
            self._record_mint(op, user, debt_amount)
            self.health.assert_healthy(user)
            self._pull_collateral(op, user, asset, collateral_amount)
            self._mint_tokens(op, user, debt_amount)

    @non_reentrant
    def redeem_collateral_for_debt(
        self, user: str, asset: str, collateral_amount: int, debt_amount: int
    ) -> None:
        """Burn then redeem, as one operation."""
        require_positive(collateral_amount, "collateral_amount")
        require_positive(debt_amount, "debt_amount")
        with self._atomic("redeem_collateral_for_debt") as op:
            self._record_burn(op, user, user, debt_amount)
            self._debit_collateral(op, user, user, asset, collateral_amount)
            self.health.assert_healthy(user)
            self._pull_debt_tokens(op, user, debt_amount)
            self._burn_debt_tokens(op, debt_amount)
            self._pay_collateral(op, user, asset, collateral_amount)

    @non_reentrant
    def liquidate(self, liquidator: str, collateral_asset: str, user: str, debt_to_cover: int) -> int:
        """
        Repay part of an under-collateralized account's debt for its collateral.

        The liquidator pays debt_to_cover in debt tokens and receives the
        equivalent amount of collateral_asset plus the liquidation bonus.
        Only collateral_asset is seized; if the user holds too little of it
        the liquidation fails.

        Returns:
            Total collateral seized (base + bonus), in token units.

        Raises:
            HealthFactorNotBroken: If the user is not below the minimum
            InsufficientCollateral: If the user cannot cover base + bonus
            HealthFactorNotImproved: If the user's health factor would not rise
            HealthFactorBroken: If the liquidator ends under-collateralized
        """
        require_positive(debt_to_cover, "debt_to_cover")
        self._collateral.get_asset(collateral_asset)
        with self._atomic("liquidate") as op:
            starting = self.health.health_factor(user)
            if starting >= self.config.min_health_factor:
                raise HealthFactorNotBroken(
                    f"{user} health factor {format_ratio(starting)} is not below "
                    f"{format_ratio(self.config.min_health_factor)}"
                )

            seized_base = self._collateral.token_amount_from_usd(collateral_asset, debt_to_cover, self.oracle)
            bonus = seized_base * self.config.liquidation_bonus // self.config.liquidation_precision
            total_seized = seized_base + bonus

            self._debit_collateral(op, user, liquidator, collateral_asset, total_seized)
            self._record_burn(op, user, liquidator, debt_to_cover)

            ending = self.health.health_factor(user)
            if ending <= starting:
                raise HealthFactorNotImproved(
                    f"{user} health factor would go from {format_ratio(starting)} "
                    f"to {format_ratio(ending)}"
                )
            self.health.assert_healthy(liquidator)

            self._pull_debt_tokens(op, liquidator, debt_to_cover)
            self._burn_debt_tokens(op, debt_to_cover)
            self._pay_collateral(op, liquidator, collateral_asset, total_seized)

            op.emit(Liquidated(
                liquidator=liquidator,
                user=user,
                asset=collateral_asset,
                debt_covered=debt_to_cover,
                collateral_seized=total_seized,
                starting_health_factor=starting,
                ending_health_factor=ending,
                timestamp=self.clock.current_time,
            ))
        return total_seized

    # ========================================================================
    # LEDGER STEPS
    # ========================================================================

    def _credit_collateral(self, op: Operation, user: str, asset: str, amount: int) -> None:
        self._collateral.deposit(user, asset, amount)
        op.emit(CollateralDeposited(user, asset, amount, self.clock.current_time))

    def _debit_collateral(self, op: Operation, source: str, dest: str, asset: str, amount: int) -> None:
        self._collateral.withdraw(source, asset, amount)
        op.emit(CollateralRedeemed(source, dest, asset, amount, self.clock.current_time))

    def _record_mint(self, op: Operation, user: str, amount: int) -> None:
        self._debt.mint(user, amount)
        op.emit(DebtMinted(user, amount, self.clock.current_time))

    def _record_burn(self, op: Operation, on_behalf_of: str, payer: str, amount: int) -> None:
        self._debt.burn(on_behalf_of, amount)
        op.emit(DebtBurned(on_behalf_of, payer, amount, self.clock.current_time))

    # ========================================================================
    # SETTLEMENT STEPS
    # ========================================================================

    def _pull_collateral(self, op: Operation, user: str, asset: str, amount: int) -> None:
        token = self._assets[asset].token
        if not token.transfer_from(self.address, user, self.address, amount):
            raise TransferFailed(f"Could not pull {amount} {asset} from {user}")
        op.on_rollback(
            f"return {amount} {asset} to {user}",
            lambda: token.transfer(self.address, user, amount),
        )

    def _pay_collateral(self, op: Operation, recipient: str, asset: str, amount: int) -> None:
        # Collateral paid out cannot be pulled back, so a payout is always the last step.
        token = self._assets[asset].token
        if not token.transfer(self.address, recipient, amount):
            raise TransferFailed(f"Could not pay {amount} {asset} to {recipient}")

    def _pull_debt_tokens(self, op: Operation, payer: str, amount: int) -> None:
        token = self._debt_token
        if not token.transfer_from(self.address, payer, self.address, amount):
            raise TransferFailed(f"Could not pull {amount} {token.symbol} from {payer}")
        op.on_rollback(
            f"return {amount} {token.symbol} to {payer}",
            lambda: token.transfer(self.address, payer, amount),
        )

    def _burn_debt_tokens(self, op: Operation, amount: int) -> None:
        token = self._debt_token
        token.burn(self.address, amount)
        # Re-minted to the engine so the pull compensation can refund the payer
        op.on_rollback(
            f"re-mint {amount} burned {token.symbol}",
            lambda: token.mint(self.address, self.address, amount),
        )

    def _mint_tokens(self, op: Operation, user: str, amount: int) -> None:
        if not self._debt_token.mint(self.address, user, amount):
            raise MintFailed(f"Debt token refused to mint {amount} for {user}")

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    @contextmanager
    def _atomic(self, name: str) -> Iterator[Operation]:
        op = Operation(
            name=name,
            collateral_snapshot=self._collateral.snapshot(),
            debt_snapshot=self._debt.snapshot(),
        )
        try:
            yield op
        except Exception as e:
            self._rollback(op)
            logger.warning("%s rejected: %s: %s", name, type(e).__name__, e)
            if self.verbose:
                print(f"✗ REJECTED {name}: {type(e).__name__}: {e}")
            raise
        self._commit(op)

    def _rollback(self, op: Operation) -> None:
        self._collateral.restore(op.collateral_snapshot)
        self._debt.restore(op.debt_snapshot)
        for description, action in reversed(op.compensations):
            try:
                ok = action()
            except Exception:
                logger.exception("Compensation failed during %s rollback: %s", op.name, description)
                continue
            if ok is False:
                logger.error("Compensation refused during %s rollback: %s", op.name, description)

    def _commit(self, op: Operation) -> None:
        self.event_log.extend(op.events)
        logger.info("%s applied (%d events)", op.name, len(op.events))
        if self.verbose:
            self._print_operation(op)
        for event in op.events:
            for listener in self._listeners:
                # Already committed; listener failures are only logged
                try:
                    listener(event)
                except Exception:
                    logger.exception("Listener %r failed on %s", listener, type(event).__name__)

    def subscribe(self, listener: Callable[[Event], None]) -> None:
        """
        Call listener with every event of every committed operation.

        Listener exceptions are logged and do not reach the caller.
        """
        self._listeners.append(listener)

    def _print_operation(self, op: Operation) -> None:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            f"┌{bar}┐",
            f"│{pad(' Operation: ' + op.name)}│",
            f"│{pad('   time : ' + str(self.clock.current_time))}│",
            f"├{bar}┤",
        ]
        for i, event in enumerate(op.events):
            lines.append(f"│{pad(f'   [{i}] {event!r}')}│")
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' ✓ APPLIED')}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    # ========================================================================
    # READ-ONLY QUERIES
    # ========================================================================

    def get_account_information(self, user: str) -> Tuple[int, int]:
        """(total_debt, collateral_value_in_usd) of an account."""
        return self.health.account_information(user)

    def get_account_collateral_value(self, user: str) -> int:
        return self._collateral.value_in_quote_currency(user, self.oracle)

    def get_collateral_balance_of_user(self, user: str, asset: str) -> int:
        return self._collateral.balance_of(user, asset)

    def get_debt_balance(self, user: str) -> int:
        return self._debt.balance_of(user)

    def get_usd_value(self, asset: str, amount: int) -> int:
        return self._collateral.usd_value(asset, amount, self.oracle)

    def get_token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        return self._collateral.token_amount_from_usd(asset, usd_amount, self.oracle)

    def get_health_factor(self, user: str) -> int:
        return self.health.health_factor(user)

    def calculate_health_factor(self, total_debt: int, collateral_value: int) -> int:
        return calculate_health_factor(
            total_debt, collateral_value,
            self.config.liquidation_threshold, self.config.liquidation_precision,
        )

    def get_collateral_tokens(self) -> List[str]:
        return self._collateral.asset_symbols

    def get_collateral_token_price_feed(self, asset: str) -> PriceFeed:
        return self._collateral.get_asset(asset).price_feed

    def get_debt_token(self) -> DebtTokenCapability:
        return self._debt_token

    def get_total_debt(self) -> int:
        return self._debt.total

    def get_total_collateral(self, asset: str) -> int:
        return self._collateral.total(asset)

    def get_accounts(self) -> List[str]:
        """Accounts holding collateral or debt."""
        return sorted(set(self._collateral.accounts()) | set(self._debt.accounts()))

    def get_precision(self) -> int:
        return PRECISION

    def get_additional_feed_precision(self) -> int:
        return ADDITIONAL_FEED_PRECISION

    def get_liquidation_threshold(self) -> int:
        return self.config.liquidation_threshold

    def get_liquidation_bonus(self) -> int:
        return self.config.liquidation_bonus

    def get_liquidation_precision(self) -> int:
        return self.config.liquidation_precision

    def get_min_health_factor(self) -> int:
        return self.config.min_health_factor

    def verify_collateral_backing(self) -> Dict[str, Any]:
        """
        Check that ledger totals match the engine's actual token holdings.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every asset matches
            - 'holdings': Dict[str, int] - engine balance per asset
            - 'discrepancies': List[Dict] - asset, ledger, held, difference
        """
        holdings = {}
        discrepancies = []
        for symbol, asset in self._assets.items():
            held = asset.token.balance_of(self.address)
            recorded = self._collateral.total(symbol)
            holdings[symbol] = held
            if held != recorded:
                discrepancies.append({
                    'asset': symbol,
                    'ledger': recorded,
                    'held': held,
                    'difference': held - recorded,
                })
        return {
            'valid': len(discrepancies) == 0,
            'holdings': holdings,
            'discrepancies': discrepancies,
        }

    def __repr__(self):
        return (
            f"Engine({self.address}, assets={list(self._assets)}, "
            f"accounts={len(self.get_accounts())}, total_debt={self._debt.total})"
        )
