# services/coingecko/errors.py
from __future__ import annotations

from typing import List, Optional


class MarketDataError(Exception):
    """Domain-level error for the market data layer."""


class _TransportError(MarketDataError):
    """Availability failures. Carry how many attempts were made before giving up."""

    def __init__(self, message: str, *, attempts: int = 0, delays_ms: Optional[List[int]] = None):
        super().__init__(message)
        self.attempts = attempts
        self.delays_ms = list(delays_ms or [])


class NetworkFailure(_TransportError):
    """No response at all (connect error, timeout, reset)."""


class RateLimited(_TransportError):
    """Upstream answered 429 on the final attempt."""

    status_code = 429


class UpstreamHttpError(_TransportError):
    """Upstream answered with a non-2xx status other than 429."""

    def __init__(
        self,
        status_code: int,
        reason: str,
        *,
        attempts: int = 0,
        delays_ms: Optional[List[int]] = None,
    ):
        super().__init__(
            f"HTTP error! status: {status_code} - {reason}",
            attempts=attempts,
            delays_ms=delays_ms,
        )
        self.status_code = status_code
        self.reason = reason


class MalformedResponse(MarketDataError):
    """Response arrived but a required field is missing or not numeric. Never retried."""


class InvalidPriceData(MalformedResponse):
    pass


class InvalidMarketData(MalformedResponse):
    pass


class InvalidHistoryData(MalformedResponse):
    pass
