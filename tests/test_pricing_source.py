"""
test_pricing_source.py - Unit tests for pricing_source.py

Tests:
- StaticPriceFeed: fixed quote, updates
- TimeSeriesPriceFeed: replaying a price path against a clock
- PriceOracleAdapter: staleness, future-dated and non-positive quotes
"""

import logging

import pytest
from datetime import datetime, timedelta

from stableledger import (
    Clock, StaticPriceFeed, TimeSeriesPriceFeed, PriceOracleAdapter,
    PriceQuote, StaleOracleData, AssetNotAllowed, STALENESS_TIMEOUT,
)


T0 = datetime(2025, 1, 1)


class TestStaticPriceFeed:

    def test_latest_quote(self):
        feed = StaticPriceFeed(2000 * 10**8, T0)
        assert feed.latest_quote() == PriceQuote(2000 * 10**8, T0)
        assert feed.decimals == 8

    def test_custom_decimals(self):
        feed = StaticPriceFeed(10**18, T0, decimals=18)
        assert feed.decimals == 18

    def test_update_answer(self):
        feed = StaticPriceFeed(2000 * 10**8, T0)
        t1 = T0 + timedelta(minutes=5)
        feed.update_answer(1800 * 10**8, t1)
        assert feed.latest_quote() == PriceQuote(1800 * 10**8, t1)
        assert feed.round_id == 2

    def test_repr(self):
        assert 'StaticPriceFeed' in repr(StaticPriceFeed(1, T0))


class TestTimeSeriesPriceFeed:

    def test_latest_observation_at_or_before_now(self):
        clock = Clock(T0)
        t1 = T0 + timedelta(hours=1)
        feed = TimeSeriesPriceFeed(clock, [(T0, 2000 * 10**8), (t1, 1900 * 10**8)])

        assert feed.latest_quote() == PriceQuote(2000 * 10**8, T0)

        clock.advance_time(t1)
        assert feed.latest_quote() == PriceQuote(1900 * 10**8, t1)

        clock.advance(timedelta(minutes=30))
        assert feed.latest_quote().updated_at == t1

    def test_add_price_keeps_order(self):
        clock = Clock(T0 + timedelta(days=1))
        feed = TimeSeriesPriceFeed(clock)
        feed.add_price(T0 + timedelta(hours=2), 3)
        feed.add_price(T0, 1)
        feed.add_price(T0 + timedelta(hours=1), 2)
        assert [p for _, p in feed.history] == [1, 2, 3]
        assert feed.latest_quote().price == 3

    def test_no_observation_yet(self):
        clock = Clock(T0)
        feed = TimeSeriesPriceFeed(clock, [(T0 + timedelta(hours=1), 2000 * 10**8)])
        with pytest.raises(StaleOracleData):
            feed.latest_quote()

    def test_repr(self):
        assert 'TimeSeriesPriceFeed' in repr(TimeSeriesPriceFeed(Clock(T0)))


class TestPriceOracleAdapter:

    @pytest.fixture
    def clock(self):
        return Clock(T0)

    @pytest.fixture
    def feed(self):
        return StaticPriceFeed(2000 * 10**8, T0)

    @pytest.fixture
    def oracle(self, feed, clock):
        return PriceOracleAdapter({"WETH": feed}, clock)

    def test_default_timeout(self, oracle):
        assert oracle.staleness_timeout == STALENESS_TIMEOUT == timedelta(hours=3)

    def test_fresh_price(self, oracle):
        assert oracle.get_fresh_price("WETH") == 2000 * 10**8

    def test_exactly_at_timeout_is_fresh(self, oracle, clock):
        clock.advance(STALENESS_TIMEOUT)
        assert oracle.get_fresh_price("WETH") == 2000 * 10**8

    def test_past_timeout_is_stale(self, oracle, clock):
        clock.advance(STALENESS_TIMEOUT + timedelta(seconds=1))
        with pytest.raises(StaleOracleData):
            oracle.get_fresh_price("WETH")

    def test_stale_logs_warning(self, oracle, clock, caplog):
        clock.advance(timedelta(hours=4))
        with caplog.at_level(logging.WARNING, logger="stableledger.pricing_source"):
            with pytest.raises(StaleOracleData):
                oracle.latest_quote("WETH")
        assert "Stale quote for WETH" in caplog.text

    def test_refresh_clears_staleness(self, oracle, feed, clock):
        clock.advance(timedelta(hours=4))
        feed.update_answer(1900 * 10**8, clock.current_time)
        assert oracle.get_fresh_price("WETH") == 1900 * 10**8

    def test_future_dated_quote_rejected(self, oracle, feed):
        feed.update_answer(2000 * 10**8, T0 + timedelta(minutes=1))
        with pytest.raises(StaleOracleData):
            oracle.get_fresh_price("WETH")

    @pytest.mark.parametrize("price", [0, -1])
    def test_non_positive_price_rejected(self, oracle, feed, price):
        feed.update_answer(price, T0)
        with pytest.raises(StaleOracleData):
            oracle.get_fresh_price("WETH")

    def test_unknown_asset(self, oracle):
        with pytest.raises(AssetNotAllowed):
            oracle.get_fresh_price("DOGE")

    def test_custom_timeout(self, feed, clock):
        oracle = PriceOracleAdapter({"WETH": feed}, clock, staleness_timeout=timedelta(minutes=10))
        clock.advance(timedelta(minutes=11))
        with pytest.raises(StaleOracleData):
            oracle.get_fresh_price("WETH")

    def test_never_caches(self, oracle, feed):
        assert oracle.get_fresh_price("WETH") == 2000 * 10**8
        feed.update_answer(1500 * 10**8, T0)
        assert oracle.get_fresh_price("WETH") == 1500 * 10**8

    def test_time_series_goes_stale(self, clock):
        feed = TimeSeriesPriceFeed(clock, [(T0, 2000 * 10**8)])
        oracle = PriceOracleAdapter({"WETH": feed}, clock)
        clock.advance(timedelta(hours=3, minutes=1))
        with pytest.raises(StaleOracleData):
            oracle.get_fresh_price("WETH")
