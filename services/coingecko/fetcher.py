# services/coingecko/fetcher.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from services.coingecko.errors import NetworkFailure, RateLimited, UpstreamHttpError

logger = logging.getLogger(__name__)

BASE_DELAY_MS = 1000
MAX_DELAY_MS = 30000

Sleep = Callable[[float], Awaitable[Any]]


def backoff_delay_ms(attempt_index: int) -> int:
    """Wait after the attempt at 0-based `attempt_index` fails: min(1000 * 2^i, 30000)."""
    return min(BASE_DELAY_MS * (2 ** max(0, attempt_index)), MAX_DELAY_MS)


@dataclass
class FetchResult:
    response: httpx.Response
    attempts: int
    delays_ms: List[int] = field(default_factory=list)

    def json(self) -> Any:
        return self.response.json()


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    max_attempts: int = 3,
    sleep: Sleep = asyncio.sleep,
) -> FetchResult:
    """
    GET `url` with exponential backoff.

    - 2xx: returned immediately.
    - 429: wait and loop; on the final attempt raise RateLimited.
    - other non-2xx: wait and retry; on the final attempt raise UpstreamHttpError.
    - transport error: wait and retry; on the final attempt raise NetworkFailure.

    Every exit raises a concrete error, so there is no "max attempts reached" fallback.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    delays: List[int] = []

    for i in range(max_attempts):
        attempt = i + 1
        is_last = attempt == max_attempts

        try:
            response = await client.get(url, params=params, headers=headers)
        except httpx.TransportError as e:
            logger.warning(
                "coingecko.fetch.network_error attempt=%s/%s url=%s error=%s",
                attempt, max_attempts, url, type(e).__name__,
            )
            if is_last:
                raise NetworkFailure(
                    f"Network request failed: {e}", attempts=attempt, delays_ms=delays
                ) from e
            await _backoff(i, delays, sleep)
            continue

        status = response.status_code

        if status == 429:
            if is_last:
                logger.error("coingecko.fetch.rate_limited_final attempts=%s url=%s", attempt, url)
                raise RateLimited(
                    "Rate limited by market data provider", attempts=attempt, delays_ms=delays
                )
            logger.info(
                "coingecko.fetch.rate_limited attempt=%s wait_ms=%s",
                attempt, backoff_delay_ms(i),
            )
            await _backoff(i, delays, sleep)
            continue

        if not response.is_success:
            logger.warning(
                "coingecko.fetch.http_error attempt=%s/%s status=%s url=%s",
                attempt, max_attempts, status, url,
            )
            if is_last:
                raise UpstreamHttpError(
                    status, response.reason_phrase, attempts=attempt, delays_ms=delays
                )
            await _backoff(i, delays, sleep)
            continue

        if attempt > 1:
            logger.info("coingecko.fetch.recovered attempts=%s url=%s", attempt, url)
        return FetchResult(response=response, attempts=attempt, delays_ms=delays)

    # range(max_attempts) always returns or raises on the last iteration
    raise AssertionError("unreachable")


async def _backoff(attempt_index: int, delays: List[int], sleep: Sleep) -> None:
    wait_ms = backoff_delay_ms(attempt_index)
    delays.append(wait_ms)
    await sleep(wait_ms / 1000.0)
