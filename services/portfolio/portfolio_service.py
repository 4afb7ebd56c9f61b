from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List

from sqlalchemy.orm import Session

from services.coingecko.coingecko_service import CoinGeckoService
from services.portfolio.portfolio_item_service import get_all_items
from services.portfolio.portfolio_metrics import (
    Position,
    aggregate_portfolio,
    distinct_asset_ids,
)

logger = logging.getLogger(__name__)


async def value_positions(
    positions: Iterable[Position],
    market: CoinGeckoService,
    *,
    use_cache: bool = True,
) -> Dict[str, Any]:
    """
    Resolve each distinct asset once, concurrently, then aggregate.
    A failed price counts as 0 and is reported under "warnings"; it never fails the call.
    """
    positions = list(positions)
    asset_ids = distinct_asset_ids(positions)

    if use_cache:
        resolution = await market.get_spot_prices_cached(asset_ids)
    else:
        resolution = await market.get_spot_prices(asset_ids)

    totals = aggregate_portfolio(positions, resolution.prices)

    logger.info(
        "portfolio.valuation.done positions=%s assets=%s failed=%s",
        len(positions), len(asset_ids), len(resolution.failed),
    )

    return {
        **totals.to_dict(),
        "warnings": list(resolution.warnings),
        "as_of": int(time.time()),
        "currency": "USD",
    }


async def get_portfolio_valuation(
    user_id: int,
    db: Session,
    market: CoinGeckoService,
) -> Dict[str, Any]:
    rows = get_all_items(user_id, db)
    positions: List[Position] = [Position.from_row(r) for r in rows]
    return await value_positions(positions, market)
