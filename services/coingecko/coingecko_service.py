# services/coingecko/coingecko_service.py
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

import httpx

from config.coingecko_config import (
    COINGECKO_API_KEY,
    COINGECKO_BASE_URL,
    COINGECKO_MAX_ATTEMPTS,
    COINGECKO_MAX_CONCURRENCY,
    COINGECKO_TIMEOUT_SEC,
    CRYPTO_IDS,
    PRICE_REFRESH_INTERVAL_SEC,
    QUOTE_CURRENCY,
)
from schemas.market import MarketSnapshot, PricePoint
from services.cache.cache_backend import cache_get_many, cache_set_many
from services.coingecko.errors import (
    InvalidHistoryData,
    InvalidMarketData,
    InvalidPriceData,
    MarketDataError,
)
from services.coingecko.fetcher import Sleep, fetch_with_retry
from utils.common_helpers import canonical_asset_id, finite_number

logger = logging.getLogger(__name__)


def _ck_price(asset_id: str) -> str:
    return f"COINGECKO:PRICE:{canonical_asset_id(asset_id)}"


def _distinct_ids(asset_ids: Iterable[str]) -> List[str]:
    ids: List[str] = []
    for a in asset_ids:
        aid = canonical_asset_id(a)
        if aid and aid not in ids:
            ids.append(aid)
    return ids


@dataclass(frozen=True)
class PriceQuote:
    asset_id: str
    price: float
    fetched_at: float

    def is_stale(self, now: Optional[float] = None, refresh_interval: float = PRICE_REFRESH_INTERVAL_SEC) -> bool:
        now = time.time() if now is None else now
        return (now - self.fetched_at) >= refresh_interval

    def to_dict(self) -> Dict[str, Any]:
        return {"assetId": self.asset_id, "price": self.price, "fetchedAt": self.fetched_at}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PriceQuote":
        return cls(asset_id=d["assetId"], price=float(d["price"]), fetched_at=float(d["fetchedAt"]))

    @classmethod
    def from_cached(cls, hit: Any) -> Optional["PriceQuote"]:
        """Parse a cache payload; anything malformed counts as a miss."""
        if not isinstance(hit, dict):
            return None
        try:
            quote = cls.from_dict(hit)
        except (KeyError, TypeError, ValueError):
            logger.warning("coingecko.cache.malformed_quote payload=%r", hit)
            return None
        return quote if finite_number(quote.price) is not None else None


@dataclass
class PriceResolution:
    """Outcome of a batch lookup. Failed ids map to None, add a warning and keep their error."""

    prices: Dict[str, Optional[float]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: Dict[str, Exception] = field(default_factory=dict)

    @property
    def failed(self) -> List[str]:
        return [k for k, v in self.prices.items() if v is None]


class CoinGeckoService:
    """
    Framework-agnostic async accessors for CoinGecko spot price, coin detail and history.

    Retry policy lives in fetch_with_retry; this layer only validates payloads
    and lets transport errors through unchanged.
    """

    def __init__(
        self,
        base_url: str = COINGECKO_BASE_URL,
        api_key: Optional[str] = None,
        timeout: float = COINGECKO_TIMEOUT_SEC,
        max_attempts: int = COINGECKO_MAX_ATTEMPTS,
        max_concurrency: int = COINGECKO_MAX_CONCURRENCY,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = COINGECKO_API_KEY if api_key is None else api_key
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))
        self.max_concurrency = max(1, int(max_concurrency))
        self._shared_client = client
        self._sleep = sleep

    @asynccontextmanager
    async def _client(self, client: Optional[httpx.AsyncClient] = None):
        c = client or self._shared_client
        if c is not None:
            yield c
            return
        async with httpx.AsyncClient(timeout=self.timeout) as c:
            yield c

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        return headers

    async def _get_json(
        self,
        path: str,
        params: Dict[str, Any],
        client: Optional[httpx.AsyncClient] = None,
    ) -> Any:
        async with self._client(client) as c:
            result = await fetch_with_retry(
                c,
                f"{self.base_url}/{path}",
                params=params,
                headers=self._headers(),
                max_attempts=self.max_attempts,
                sleep=self._sleep,
            )
        try:
            return result.json()
        except ValueError:
            return None

    # -----------------------
    # Spot price
    # -----------------------

    async def get_spot_price(self, asset_id: str, client: Optional[httpx.AsyncClient] = None) -> float:
        """Current USD price for one canonical asset id (e.g. "bitcoin", never "BTC")."""
        aid = canonical_asset_id(asset_id)
        if not aid:
            raise ValueError("Missing asset id")

        logger.debug("coingecko.price.fetch asset_id=%s", aid)
        try:
            data = await self._get_json(
                "simple/price",
                {"ids": aid, "vs_currencies": QUOTE_CURRENCY},
                client,
            )
        except MarketDataError as e:
            logger.error("coingecko.price.failed asset_id=%s error=%s", aid, e)
            raise

        entry = data.get(aid) if isinstance(data, dict) else None
        price = finite_number(entry.get(QUOTE_CURRENCY)) if isinstance(entry, dict) else None
        if price is None:
            logger.error("coingecko.price.invalid asset_id=%s", aid)
            raise InvalidPriceData(f"Invalid price data received for {aid}")
        return price

    async def get_spot_prices(
        self,
        asset_ids: Iterable[str],
        client: Optional[httpx.AsyncClient] = None,
        *,
        max_concurrency: Optional[int] = None,
    ) -> PriceResolution:
        """
        Resolve many ids concurrently. One failure never aborts the others:
        the failed id maps to None and a warning is recorded.
        """
        ids = _distinct_ids(asset_ids)

        out = PriceResolution()
        if not ids:
            return out

        sem = asyncio.Semaphore(max(1, int(max_concurrency or self.max_concurrency)))

        async def fetch_one(c: httpx.AsyncClient, aid: str) -> float:
            async with sem:
                return await self.get_spot_price(aid, client=c)

        async with self._client(client) as c:
            results = await asyncio.gather(*(fetch_one(c, aid) for aid in ids), return_exceptions=True)

        for aid, res in zip(ids, results):
            if isinstance(res, Exception):
                out.prices[aid] = None
                out.errors[aid] = res
                out.warnings.append(f"Could not fetch price for {aid}: {res}")
                continue
            out.prices[aid] = res

        if out.warnings:
            logger.warning("coingecko.prices.partial failed=%s total=%s", len(out.warnings), len(ids))
        return out

    async def get_spot_prices_cached(
        self,
        asset_ids: Iterable[str],
        client: Optional[httpx.AsyncClient] = None,
        *,
        ttl_seconds: int = PRICE_REFRESH_INTERVAL_SEC,
    ) -> PriceResolution:
        """Read-through variant of get_spot_prices. Only successful quotes are cached."""
        ids = _distinct_ids(asset_ids)

        out = PriceResolution()
        if not ids:
            return out

        # redis client is sync
        cached = await asyncio.to_thread(cache_get_many, [_ck_price(aid) for aid in ids])
        now = time.time()
        misses: List[str] = []

        for aid in ids:
            quote = PriceQuote.from_cached(cached.get(_ck_price(aid)))
            if quote is not None and not quote.is_stale(now, ttl_seconds):
                out.prices[aid] = quote.price
            else:
                misses.append(aid)

        if not misses:
            return out

        fresh = await self.get_spot_prices(misses, client=client)
        out.warnings.extend(fresh.warnings)
        out.errors.update(fresh.errors)

        write_back: Dict[str, Any] = {}
        for aid in misses:
            price = fresh.prices.get(aid)
            out.prices[aid] = price
            if price is not None:
                write_back[_ck_price(aid)] = PriceQuote(aid, price, now).to_dict()

        if write_back:
            await asyncio.to_thread(cache_set_many, write_back, ttl_seconds)

        # keep caller's order
        out.prices = {aid: out.prices.get(aid) for aid in ids}
        return out

    async def prefetch_prices(self, asset_ids: Optional[Iterable[str]] = None) -> PriceResolution:
        """Warm the price cache, by default for the whole symbol catalog."""
        ids = list(asset_ids) if asset_ids is not None else list(CRYPTO_IDS.values())
        res = await self.get_spot_prices_cached(ids)
        logger.info("coingecko.prefetch.done loaded=%s failed=%s", len(ids) - len(res.failed), len(res.failed))
        return res

    # -----------------------
    # Coin detail
    # -----------------------

    async def get_market_detail(self, asset_id: str, client: Optional[httpx.AsyncClient] = None) -> MarketSnapshot:
        aid = canonical_asset_id(asset_id)
        if not aid:
            raise ValueError("Missing asset id")

        try:
            data = await self._get_json(
                f"coins/{aid}",
                {
                    "localization": "false",
                    "tickers": "false",
                    "market_data": "true",
                    "community_data": "false",
                    "developer_data": "false",
                    "sparkline": "false",
                },
                client,
            )
        except MarketDataError as e:
            logger.error("coingecko.detail.failed asset_id=%s error=%s", aid, e)
            raise

        if not isinstance(data, dict) or not isinstance(data.get("market_data"), dict):
            logger.error("coingecko.detail.invalid asset_id=%s", aid)
            raise InvalidMarketData(f"Invalid market data received for {aid}")

        return MarketSnapshot.from_coingecko(aid, data)

    # -----------------------
    # History
    # -----------------------

    async def get_price_history(
        self,
        asset_id: str,
        days: int = 30,
        client: Optional[httpx.AsyncClient] = None,
    ) -> Iterator[PricePoint]:
        """
        (timestamp, price) points in source order. Returns a one-shot iterator;
        call again to re-fetch.
        """
        aid = canonical_asset_id(asset_id)
        if not aid:
            raise ValueError("Missing asset id")
        if int(days) < 1:
            raise ValueError("days must be >= 1")

        try:
            data = await self._get_json(
                f"coins/{aid}/market_chart",
                {"vs_currency": QUOTE_CURRENCY, "days": int(days)},
                client,
            )
        except MarketDataError as e:
            logger.error("coingecko.history.failed asset_id=%s days=%s error=%s", aid, days, e)
            raise

        prices = data.get("prices") if isinstance(data, dict) else None
        if not isinstance(prices, list):
            logger.error("coingecko.history.invalid asset_id=%s", aid)
            raise InvalidHistoryData(f"Invalid price history data received for {aid}")

        points: List[PricePoint] = []
        for row in prices:
            if not isinstance(row, (list, tuple)) or len(row) < 2:
                raise InvalidHistoryData(f"Malformed price history point for {aid}")
            ts, px = finite_number(row[0]), finite_number(row[1])
            if ts is None or px is None:
                raise InvalidHistoryData(f"Malformed price history point for {aid}")
            points.append(PricePoint(timestamp=int(ts), price=px))

        return iter(points)


_service: Optional[CoinGeckoService] = None


def get_coingecko_service() -> CoinGeckoService:
    """FastAPI dependency; one service instance per process."""
    global _service
    if _service is None:
        _service = CoinGeckoService()
    return _service
