# schemas/market.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from utils.common_helpers import finite_number as _finite


class MarketSnapshot(BaseModel):
    """Per-asset market detail bundle read from one coin-detail response."""

    asset_id: str
    name: str
    symbol: Optional[str] = None

    current_price: Optional[float] = None
    price_change_percentage_24h: Optional[float] = None
    price_change_percentage_7d: Optional[float] = None
    total_volume: Optional[float] = None
    market_cap: Optional[float] = None

    last_updated: Optional[str] = None
    homepage: List[str] = Field(default_factory=list)
    subreddit_url: Optional[str] = None
    twitter_screen_name: Optional[str] = None
    telegram_channel_identifier: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_coingecko(cls, asset_id: str, data: Dict[str, Any]) -> "MarketSnapshot":
        """
        Map a /coins/{id} payload. Caller has already checked `market_data` is a dict.
        Non-numeric market fields become None instead of raising.
        """
        md: Dict[str, Any] = data.get("market_data") or {}
        links = data.get("links") if isinstance(data.get("links"), dict) else {}
        current = md.get("current_price")
        description = data.get("description")

        homepage = [
            u for u in (links.get("homepage") or [])
            if isinstance(u, str) and u.strip()
        ]

        return cls(
            asset_id=str(data.get("id") or asset_id),
            name=str(data.get("name") or asset_id),
            symbol=(str(data["symbol"]).upper() if data.get("symbol") else None),
            current_price=_finite(current.get("usd")) if isinstance(current, dict) else None,
            price_change_percentage_24h=_finite(md.get("price_change_percentage_24h")),
            price_change_percentage_7d=_finite(md.get("price_change_percentage_7d")),
            total_volume=_finite(_usd(md.get("total_volume"))),
            market_cap=_finite(_usd(md.get("market_cap"))),
            last_updated=data.get("last_updated") or md.get("last_updated"),
            homepage=homepage,
            subreddit_url=links.get("subreddit_url") or None,
            twitter_screen_name=links.get("twitter_screen_name") or None,
            telegram_channel_identifier=links.get("telegram_channel_identifier") or None,
            description=(description.get("en") or None) if isinstance(description, dict) else None,
        )


def _usd(v: Any) -> Any:
    # /coins/{id} nests volume and cap per currency; accept a bare number too
    if isinstance(v, dict):
        return v.get("usd")
    return v


class PricePoint(BaseModel):
    timestamp: int  # epoch millis, as sent upstream
    price: float


class RiskFactor(BaseModel):
    factor: str
    impact: Literal["positive", "negative", "neutral"]
    description: str
    delta: int


class RiskAssessment(BaseModel):
    asset_id: str
    score: int = Field(..., ge=0, le=100)
    factors: List[RiskFactor] = Field(default_factory=list)


class DigestItem(BaseModel):
    title: str
    url: str
    published_at: Optional[str] = None
    source: str = "Market Data"
    description: Optional[str] = None


class HistorySummary(BaseModel):
    asset_id: str
    days: int
    points: int
    first_price: Optional[float] = None
    last_price: Optional[float] = None
    period_return_pct: Optional[float] = None
    max_drawdown_pct: Optional[float] = None
    daily_volatility_pct: Optional[float] = None
