# routers/crypto_routes.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

import schemas.general as general
from config.coingecko_config import CRYPTO_IDS
from middleware.rate_limit import limiter
from schemas.market import HistorySummary, MarketSnapshot, PricePoint, RiskAssessment
from services.coingecko.coingecko_service import CoinGeckoService, get_coingecko_service
from services.coingecko.errors import MalformedResponse, MarketDataError, RateLimited
from services.helpers.history_metrics import summarize_history
from services.investment_calculator import calculate_trade
from services.news.market_digest import generate_market_digest
from services.risk.risk_score import calculate_risk_score
from utils.common_helpers import canonical_asset_id

logger = logging.getLogger(__name__)

router = APIRouter()

MARKET_RATE_LIMIT = "30/minute"


def _http_error(asset_id: str, e: Exception) -> HTTPException:
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, RateLimited):
        return HTTPException(status_code=503, detail="Market data provider is rate limiting, try again shortly")
    if isinstance(e, MalformedResponse):
        return HTTPException(status_code=502, detail=f"Invalid market data for {asset_id}: {e}")
    return HTTPException(status_code=502, detail=f"Failed to fetch market data for {asset_id}: {e}")


@router.get("/catalog")
def catalog():
    return [{"symbol": s, "assetId": a} for s, a in CRYPTO_IDS.items()]


@router.get("/{asset_id}/price")
@limiter.limit(MARKET_RATE_LIMIT)
async def spot_price(
    request: Request,
    asset_id: str,
    market: CoinGeckoService = Depends(get_coingecko_service),
):
    aid = canonical_asset_id(asset_id)
    if not aid:
        raise _http_error(asset_id, ValueError("Missing asset id"))

    res = await market.get_spot_prices_cached([aid])
    price = res.prices.get(aid)
    if price is None:
        err = res.errors.get(aid)
        if err is not None:
            raise _http_error(aid, err)
        raise HTTPException(status_code=502, detail=(res.warnings or ["Price unavailable"])[0])
    return {"assetId": aid, "price": price, "currency": "USD"}


@router.get("/{asset_id}/detail", response_model=MarketSnapshot)
@limiter.limit(MARKET_RATE_LIMIT)
async def market_detail(
    request: Request,
    asset_id: str,
    market: CoinGeckoService = Depends(get_coingecko_service),
):
    try:
        return await market.get_market_detail(asset_id)
    except (MarketDataError, ValueError) as e:
        raise _http_error(asset_id, e)


@router.get("/{asset_id}/history", response_model=list[PricePoint])
@limiter.limit(MARKET_RATE_LIMIT)
async def price_history(
    request: Request,
    asset_id: str,
    days: int = Query(30, ge=1, le=365),
    market: CoinGeckoService = Depends(get_coingecko_service),
):
    try:
        return list(await market.get_price_history(asset_id, days))
    except (MarketDataError, ValueError) as e:
        raise _http_error(asset_id, e)


@router.get("/{asset_id}/history/summary", response_model=HistorySummary)
@limiter.limit(MARKET_RATE_LIMIT)
async def price_history_summary(
    request: Request,
    asset_id: str,
    days: int = Query(30, ge=1, le=365),
    market: CoinGeckoService = Depends(get_coingecko_service),
):
    try:
        points = await market.get_price_history(asset_id, days)
    except (MarketDataError, ValueError) as e:
        raise _http_error(asset_id, e)
    return summarize_history(asset_id.strip().lower(), days, points)


@router.get("/{asset_id}/risk", response_model=RiskAssessment)
@limiter.limit(MARKET_RATE_LIMIT)
async def risk(
    request: Request,
    asset_id: str,
    market: CoinGeckoService = Depends(get_coingecko_service),
):
    try:
        snapshot = await market.get_market_detail(asset_id)
    except (MarketDataError, ValueError) as e:
        raise _http_error(asset_id, e)
    return calculate_risk_score(snapshot)


@router.get("/{asset_id}/news")
@limiter.limit(MARKET_RATE_LIMIT)
async def news(
    request: Request,
    asset_id: str,
    include_risk: bool = Query(False),
    market: CoinGeckoService = Depends(get_coingecko_service),
):
    """Synthetic digest; with include_risk, the risk score is read from the same snapshot."""
    try:
        snapshot = await market.get_market_detail(asset_id)
    except (MarketDataError, ValueError) as e:
        raise _http_error(asset_id, e)

    out = {"assetId": snapshot.asset_id, "items": [], "warnings": []}
    if snapshot.homepage:
        out["items"] = [i.model_dump() for i in generate_market_digest(snapshot)]
    else:
        logger.warning("crypto.news.no_homepage asset_id=%s", snapshot.asset_id)
        out["warnings"].append(f"No homepage link for {snapshot.asset_id}; digest skipped")

    if include_risk:
        out["risk"] = calculate_risk_score(snapshot).model_dump()
    return out


@router.post("/calculator")
def calculator(body: general.CalculatorInput):
    try:
        return calculate_trade(
            body.investment,
            body.buy_price,
            body.sell_price,
            body.investment_fee,
            body.exit_fee,
        ).to_dict()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/prefetch")
async def prefetch(market: CoinGeckoService = Depends(get_coingecko_service)):
    """
    Warm the price cache for the symbol catalog.
    Safe to call manually or from a cron job.
    """
    res = await market.prefetch_prices()
    return {
        "status": "ok",
        "loaded": len(res.prices) - len(res.failed),
        "failed": res.failed,
    }
