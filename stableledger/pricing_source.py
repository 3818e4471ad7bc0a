"""
pricing_source.py - Price feeds and the staleness-checking oracle adapter

Classes:
- StaticPriceFeed: a single settable quote (price + update time)
- TimeSeriesPriceFeed: historical quotes, answering with the latest observation
  at or before the clock's current time
- PriceOracleAdapter: wraps the raw feed of every registered asset and rejects
  stale quotes

Feed prices are unsigned integers scaled by the feed's decimals (commonly 8).
The adapter never caches: every call re-reads the feed.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime, timedelta
import logging
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .core import (
    Asset, PriceFeed, PriceQuote,
    DEFAULT_FEED_DECIMALS, STALENESS_TIMEOUT,
    AssetNotAllowed, StaleOracleData,
)

logger = logging.getLogger(__name__)


class StaticPriceFeed:
    """
    Price feed holding one quote that changes only when updated.

    Example:
        feed = StaticPriceFeed(2000 * 10**8, updated_at=datetime(2025, 1, 1))
        feed.update_answer(1800 * 10**8, datetime(2025, 1, 2))
    """

    def __init__(self, price: int, updated_at: datetime, decimals: int = DEFAULT_FEED_DECIMALS):
        self.decimals = decimals
        self._quote = PriceQuote(price, updated_at)
        self.round_id = 1

    def latest_quote(self) -> PriceQuote:
        return self._quote

    def update_answer(self, price: int, updated_at: datetime) -> None:
        """Publish a new quote."""
        self._quote = PriceQuote(price, updated_at)
        self.round_id += 1

    def __repr__(self):
        return f"StaticPriceFeed(price={self._quote.price}, updated_at={self._quote.updated_at}, decimals={self.decimals})"


class TimeSeriesPriceFeed:
    """
    Price feed replaying a recorded price path against a clock.

    latest_quote() returns the most recent observation at or before
    clock(); its updated_at is the observation time, so a path that stops
    updating goes stale as the clock advances.

    Examples:
        feed = TimeSeriesPriceFeed(clock, [(t0, 2000 * 10**8), (t1, 1900 * 10**8)])
        feed.add_price(t2, 1850 * 10**8)
    """

    def __init__(
        self,
        clock: Callable[[], datetime],
        path: Optional[List[Tuple[datetime, int]]] = None,
        decimals: int = DEFAULT_FEED_DECIMALS,
    ):
        self.decimals = decimals
        self._clock = clock
        self.history: List[Tuple[datetime, int]] = sorted(path or [], key=lambda x: x[0])

    def add_price(self, timestamp: datetime, price: int) -> None:
        """Record an observation, keeping the history in chronological order."""
        self.history.append((timestamp, price))
        self.history.sort(key=lambda x: x[0])

    def latest_quote(self) -> PriceQuote:
        """
        Observation at or before the current time.

        Raises:
            StaleOracleData: If no observation exists yet.
        """
        now = self._clock()
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, now)
        if idx == 0:
            raise StaleOracleData(f"No price observation at or before {now}")
        updated_at, price = self.history[idx - 1]
        return PriceQuote(price, updated_at)

    def __repr__(self):
        return f"TimeSeriesPriceFeed({len(self.history)} observations, decimals={self.decimals})"


class PriceOracleAdapter:
    """
    Staleness-checking wrapper around the raw feed of every registered asset.

    A quote is usable only when 0 < price and
    now - updated_at <= staleness_timeout. Anything else raises
    StaleOracleData; there is no retry and no fallback price.
    """

    def __init__(
        self,
        feeds: Mapping[str, PriceFeed],
        clock: Callable[[], datetime],
        staleness_timeout: timedelta = STALENESS_TIMEOUT,
    ):
        self._feeds: Dict[str, PriceFeed] = dict(feeds)
        self._clock = clock
        self.staleness_timeout = staleness_timeout

    @classmethod
    def for_assets(
        cls,
        assets: Mapping[str, Asset],
        clock: Callable[[], datetime],
        staleness_timeout: timedelta = STALENESS_TIMEOUT,
    ) -> PriceOracleAdapter:
        return cls({symbol: asset.price_feed for symbol, asset in assets.items()}, clock, staleness_timeout)

    def feed(self, asset: str) -> PriceFeed:
        if asset not in self._feeds:
            raise AssetNotAllowed(f"No price feed registered for {asset}")
        return self._feeds[asset]

    def latest_quote(self, asset: str) -> PriceQuote:
        """Fetch and validate the current quote for an asset."""
        quote = self.feed(asset).latest_quote()
        now = self._clock()
        if quote.updated_at > now:
            logger.warning("Quote for %s is dated in the future: %s > %s", asset, quote.updated_at, now)
            raise StaleOracleData(f"{asset} quote dated in the future ({quote.updated_at} > {now})")
        age = now - quote.updated_at
        if age > self.staleness_timeout:
            logger.warning("Stale quote for %s: age %s exceeds %s", asset, age, self.staleness_timeout)
            raise StaleOracleData(
                f"{asset} quote is stale: updated {quote.updated_at}, age {age} > {self.staleness_timeout}"
            )
        if quote.price <= 0:
            logger.warning("Non-positive quote for %s: %s", asset, quote.price)
            raise StaleOracleData(f"{asset} quote has non-positive price {quote.price}")
        return quote

    def get_fresh_price(self, asset: str) -> int:
        """Price of an asset, scaled by its feed's decimals."""
        return self.latest_quote(asset).price

    def __repr__(self):
        return f"PriceOracleAdapter({len(self._feeds)} feeds, timeout={self.staleness_timeout})"
