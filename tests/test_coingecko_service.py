import asyncio
import os
import time
import unittest

os.environ.pop("UPSTASH_REDIS_URL", None)

import httpx

from services.cache.cache_backend import cache_clear_local, cache_set_many
from services.coingecko.coingecko_service import CoinGeckoService, PriceQuote
from services.coingecko.errors import (
    InvalidHistoryData,
    InvalidMarketData,
    InvalidPriceData,
    MalformedResponse,
    RateLimited,
    UpstreamHttpError,
)

BASE = "https://api.coingecko.test/api/v3"


async def _no_sleep(_seconds: float):
    return None


BITCOIN_DETAIL = {
    "id": "bitcoin",
    "symbol": "btc",
    "name": "Bitcoin",
    "description": {"en": "Peer-to-peer cash."},
    "last_updated": "2026-10-17T08:00:00.000Z",
    "links": {
        "homepage": ["http://www.bitcoin.org", "", ""],
        "subreddit_url": "https://www.reddit.com/r/Bitcoin/",
        "twitter_screen_name": "bitcoin",
    },
    "market_data": {
        "current_price": {"usd": 67000.5},
        "price_change_percentage_24h": -2.5,
        "price_change_percentage_7d": 4.25,
        "total_volume": {"usd": 30_000_000_000},
        "market_cap": {"usd": 1_300_000_000_000},
    },
}


class _Upstream:
    """Routes requests by path; records every call."""

    def __init__(self, prices=None, detail=None, chart=None, fail_ids=(), limited_ids=()):
        self.prices = prices or {}
        self.detail = detail
        self.chart = chart
        self.fail_ids = set(fail_ids)
        self.limited_ids = set(limited_ids)
        self.calls = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((path, dict(request.url.params)))

        if path.endswith("/simple/price"):
            aid = request.url.params["ids"]
            if aid in self.fail_ids:
                return httpx.Response(500)
            if aid in self.limited_ids:
                return httpx.Response(429)
            if aid not in self.prices:
                return httpx.Response(200, json={})
            return httpx.Response(200, json={aid: {"usd": self.prices[aid]}})

        if path.endswith("/market_chart"):
            return httpx.Response(200, json=self.chart)

        if "/coins/" in path:
            return httpx.Response(200, json=self.detail)

        return httpx.Response(404)


def _run(upstream: _Upstream, fn):
    async def _inner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
            svc = CoinGeckoService(base_url=BASE, api_key="", client=client, sleep=_no_sleep, max_attempts=2)
            return await fn(svc)

    return asyncio.run(_inner())


class SpotPriceTests(unittest.TestCase):
    def setUp(self):
        cache_clear_local()

    def test_returns_usd_price(self):
        up = _Upstream(prices={"bitcoin": 6000})
        price = _run(up, lambda s: s.get_spot_price("bitcoin"))
        self.assertEqual(price, 6000.0)
        self.assertEqual(up.calls[0][1], {"ids": "bitcoin", "vs_currencies": "usd"})

    def test_missing_asset_key_is_invalid_price_data(self):
        up = _Upstream(prices={})
        with self.assertRaises(InvalidPriceData):
            _run(up, lambda s: s.get_spot_price("bitcoin"))

    def test_non_numeric_price_is_invalid(self):
        for bad in ("6000", True, None):
            with self.subTest(bad=bad):
                up = _Upstream(prices={"bitcoin": bad})
                with self.assertRaises(InvalidPriceData):
                    _run(up, lambda s: s.get_spot_price("bitcoin"))

    def test_malformed_response_is_not_retried(self):
        up = _Upstream(prices={})
        with self.assertRaises(MalformedResponse):
            _run(up, lambda s: s.get_spot_price("bitcoin"))
        self.assertEqual(len(up.calls), 1)

    def test_transport_error_passes_through_unchanged(self):
        up = _Upstream(fail_ids={"bitcoin"})
        with self.assertRaises(UpstreamHttpError) as ctx:
            _run(up, lambda s: s.get_spot_price("bitcoin"))
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.attempts, 2)


class BatchPriceTests(unittest.TestCase):
    def setUp(self):
        cache_clear_local()

    def test_partial_failure_is_isolated(self):
        up = _Upstream(prices={"alpha": 10}, fail_ids={"beta"})
        res = _run(up, lambda s: s.get_spot_prices(["alpha", "beta"]))
        self.assertEqual(res.prices, {"alpha": 10.0, "beta": None})
        self.assertEqual(res.failed, ["beta"])
        self.assertEqual(len(res.warnings), 1)
        self.assertIn("beta", res.warnings[0])

    def test_failed_ids_keep_their_error(self):
        up = _Upstream(prices={"alpha": 10}, limited_ids={"beta"})
        res = _run(up, lambda s: s.get_spot_prices_cached(["alpha", "beta"]))
        self.assertEqual(res.failed, ["beta"])
        self.assertIsInstance(res.errors["beta"], RateLimited)
        self.assertNotIn("alpha", res.errors)

    def test_malformed_cache_entry_is_a_miss(self):
        for bad in ({"assetId": "bitcoin"}, {"assetId": "bitcoin", "price": "x", "fetchedAt": 1.0}, "oops"):
            with self.subTest(bad=bad):
                cache_clear_local()
                cache_set_many({"COINGECKO:PRICE:bitcoin": bad})
                up = _Upstream(prices={"bitcoin": 42})
                res = _run(up, lambda s: s.get_spot_prices_cached(["bitcoin"]))
                self.assertEqual(res.prices, {"bitcoin": 42.0})
                self.assertEqual(len(up.calls), 1)

    def test_duplicate_ids_fetched_once(self):
        up = _Upstream(prices={"bitcoin": 1, "ethereum": 2})
        res = _run(up, lambda s: s.get_spot_prices(["bitcoin", "ethereum", "bitcoin", "Bitcoin "]))
        self.assertEqual(list(res.prices), ["bitcoin", "ethereum"])
        self.assertEqual(len(up.calls), 2)

    def test_empty_input(self):
        up = _Upstream()
        res = _run(up, lambda s: s.get_spot_prices([]))
        self.assertEqual(res.prices, {})
        self.assertEqual(up.calls, [])

    def test_cached_lookup_skips_upstream_on_second_call(self):
        up = _Upstream(prices={"bitcoin": 100, "ethereum": 5})

        async def twice(svc):
            first = await svc.get_spot_prices_cached(["bitcoin", "ethereum"])
            second = await svc.get_spot_prices_cached(["ethereum", "bitcoin"])
            return first, second

        first, second = _run(up, twice)
        self.assertEqual(first.prices, {"bitcoin": 100.0, "ethereum": 5.0})
        self.assertEqual(second.prices, {"ethereum": 5.0, "bitcoin": 100.0})
        self.assertEqual(len(up.calls), 2)

    def test_failed_prices_are_not_cached(self):
        up = _Upstream(prices={}, fail_ids={"beta"})

        async def twice(svc):
            await svc.get_spot_prices_cached(["beta"])
            return await svc.get_spot_prices_cached(["beta"])

        res = _run(up, twice)
        self.assertEqual(res.prices, {"beta": None})
        # 2 attempts per lookup, two lookups
        self.assertEqual(len(up.calls), 4)


class _SlowUpstream:
    """Async handler that holds every request for `delay` seconds and tracks overlap."""

    def __init__(self, delay):
        self.delay = delay
        self.in_flight = 0
        self.peak = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        aid = request.url.params["ids"]
        return httpx.Response(200, json={aid: {"usd": 1.0}})


def _run_slow(upstream: _SlowUpstream, fn, max_concurrency=8):
    async def _inner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
            svc = CoinGeckoService(
                base_url=BASE, api_key="", client=client, sleep=_no_sleep, max_concurrency=max_concurrency
            )
            return await fn(svc)

    return asyncio.run(_inner())


class BatchConcurrencyTests(unittest.TestCase):
    def test_fetches_overlap(self):
        up = _SlowUpstream(delay=0.3)
        ids = ["a1", "a2", "a3", "a4"]
        started = time.monotonic()
        res = _run_slow(up, lambda s: s.get_spot_prices(ids))
        elapsed = time.monotonic() - started

        self.assertEqual(res.failed, [])
        self.assertEqual(up.peak, 4)
        # sequential would take 1.2s
        self.assertLess(elapsed, 0.9)

    def test_semaphore_caps_in_flight_requests(self):
        up = _SlowUpstream(delay=0.05)
        ids = [f"a{i}" for i in range(6)]
        res = _run_slow(up, lambda s: s.get_spot_prices(ids), max_concurrency=2)
        self.assertEqual(len(res.prices), 6)
        self.assertEqual(up.peak, 2)


class PrefetchTests(unittest.TestCase):
    def setUp(self):
        cache_clear_local()

    def test_warms_cache_for_catalog(self):
        up = _Upstream(prices={"bitcoin": 1.0, "ethereum": 2.0})

        async def warm_then_read(svc):
            warmed = await svc.prefetch_prices(["bitcoin", "ethereum"])
            again = await svc.get_spot_prices_cached(["bitcoin"])
            return warmed, again

        warmed, again = _run(up, warm_then_read)
        self.assertEqual(warmed.failed, [])
        self.assertEqual(again.prices, {"bitcoin": 1.0})
        self.assertEqual(len(up.calls), 2)

    def test_defaults_to_symbol_catalog(self):
        up = _Upstream(prices={"bitcoin": 1.0})
        res = _run(up, lambda s: s.prefetch_prices())
        self.assertIn("solana", res.prices)
        self.assertEqual(res.prices["bitcoin"], 1.0)
        self.assertIsNone(res.prices["solana"])


class PriceQuoteTests(unittest.TestCase):
    def test_stale_after_refresh_interval(self):
        q = PriceQuote("bitcoin", 1.0, fetched_at=1000.0)
        self.assertFalse(q.is_stale(now=1029.0, refresh_interval=30))
        self.assertTrue(q.is_stale(now=1030.0, refresh_interval=30))

    def test_round_trips_through_cache_payload(self):
        q = PriceQuote("bitcoin", 6000.0, fetched_at=1.5)
        self.assertEqual(PriceQuote.from_dict(q.to_dict()), q)


class MarketDetailTests(unittest.TestCase):
    def test_maps_snapshot_fields(self):
        up = _Upstream(detail=BITCOIN_DETAIL)
        snap = _run(up, lambda s: s.get_market_detail("bitcoin"))
        self.assertEqual(snap.name, "Bitcoin")
        self.assertEqual(snap.symbol, "BTC")
        self.assertEqual(snap.current_price, 67000.5)
        self.assertEqual(snap.price_change_percentage_24h, -2.5)
        self.assertEqual(snap.price_change_percentage_7d, 4.25)
        self.assertEqual(snap.total_volume, 30_000_000_000)
        self.assertEqual(snap.market_cap, 1_300_000_000_000)
        self.assertEqual(snap.homepage, ["http://www.bitcoin.org"])
        self.assertEqual(snap.last_updated, "2026-10-17T08:00:00.000Z")
        self.assertEqual(up.calls[0][1]["market_data"], "true")

    def test_missing_market_data_is_invalid(self):
        up = _Upstream(detail={"id": "bitcoin", "name": "Bitcoin"})
        with self.assertRaises(InvalidMarketData):
            _run(up, lambda s: s.get_market_detail("bitcoin"))


class PriceHistoryTests(unittest.TestCase):
    def test_preserves_order_and_is_one_shot(self):
        up = _Upstream(chart={"prices": [[1000, 1.5], [2000, 1.25], [3000, 2.0]]})

        async def fetch(svc):
            it = await svc.get_price_history("bitcoin", days=7)
            return list(it), list(it)

        first, again = _run(up, fetch)
        self.assertEqual([(p.timestamp, p.price) for p in first], [(1000, 1.5), (2000, 1.25), (3000, 2.0)])
        self.assertEqual(again, [])
        self.assertEqual(up.calls[0][1], {"vs_currency": "usd", "days": "7"})

    def test_absent_series_is_invalid(self):
        up = _Upstream(chart={"market_caps": []})
        with self.assertRaises(InvalidHistoryData):
            _run(up, lambda s: s.get_price_history("bitcoin"))

    def test_malformed_point_is_invalid(self):
        for bad in ([[1000]], [[1000, "x"]], ["oops"]):
            with self.subTest(bad=bad):
                up = _Upstream(chart={"prices": bad})
                with self.assertRaises(InvalidHistoryData):
                    _run(up, lambda s: s.get_price_history("bitcoin"))


if __name__ == "__main__":
    unittest.main()
