# services/news/market_digest.py
"""
Synthetic market digest: news-like items derived from a MarketSnapshot.

Nothing here is fetched from a news feed. Each item restates one market-data
field, so the output is deterministic for a given snapshot.
"""
from __future__ import annotations

from typing import List, Optional

from schemas.market import DigestItem, MarketSnapshot
from utils.common_helpers import finite_number

DIGEST_SOURCE = "Market Data"


def _price_suffix(price: Optional[float]) -> str:
    return f" to ${price:.2f}" if price is not None else ""


def generate_market_digest(snapshot: MarketSnapshot) -> List[DigestItem]:
    """
    Up to four items, in order: 24h move, 7d move, 24h volume, market cap.
    A field that is not a finite number is skipped.

    Raises ValueError when the snapshot has no homepage link to attach.
    """
    if not snapshot.homepage:
        raise ValueError(f"No homepage link for {snapshot.asset_id}")

    name = snapshot.name
    url = snapshot.homepage[0]
    published_at = snapshot.last_updated
    items: List[DigestItem] = []

    def add(title: str, description: str) -> None:
        items.append(
            DigestItem(
                title=title,
                url=url,
                published_at=published_at,
                source=DIGEST_SOURCE,
                description=description,
            )
        )

    change_24h = finite_number(snapshot.price_change_percentage_24h)
    if change_24h is not None:
        up = change_24h >= 0
        add(
            f"{name} {'gains' if up else 'drops'} {abs(change_24h):.2f}% in 24h",
            f"The price of {name} has {'increased' if up else 'decreased'}"
            f"{_price_suffix(finite_number(snapshot.current_price))}",
        )

    change_7d = finite_number(snapshot.price_change_percentage_7d)
    if change_7d is not None:
        up = change_7d >= 0
        add(
            f"{name} {'rises' if up else 'falls'} {abs(change_7d):.2f}% this week",
            f"Weekly performance shows a {'positive' if up else 'negative'} trend in {name} price",
        )

    volume = finite_number(snapshot.total_volume)
    if volume is not None:
        add(
            f"{name} records ${volume / 1e6:.2f}M in daily trading",
            "24-hour trading volume reaches significant levels as market activity continues",
        )

    market_cap = finite_number(snapshot.market_cap)
    if market_cap is not None:
        add(
            f"{name} market cap at ${market_cap / 1e9:.2f}B",
            f"Current market valuation reflects {name}'s position in the crypto market",
        )

    return items
