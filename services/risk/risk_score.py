# services/risk/risk_score.py
from __future__ import annotations

from typing import List, Literal, Optional

from schemas.market import MarketSnapshot, RiskAssessment, RiskFactor

Impact = Literal["positive", "negative", "neutral"]

BASE_SCORE = 70
LARGE_DAILY_MOVE_PCT = 10.0
LARGE_CAP_USD = 1_000_000_000
LIQUID_VOLUME_RATIO = 0.1


def _n(x: Optional[float]) -> float:
    return float(x) if x is not None else 0.0


def _clamp(score: int, lo: int = 0, hi: int = 100) -> int:
    return max(lo, min(hi, score))


def _daily_move(change: float) -> RiskFactor:
    return RiskFactor(
        factor="24h Price Change",
        impact="positive" if change > 0 else "negative",
        description=f"{abs(change):.2f}% {'increase' if change > 0 else 'decrease'} in the last 24 hours",
        delta=-10 if abs(change) > LARGE_DAILY_MOVE_PCT else 0,
    )


def _weekly_trend(change: float) -> RiskFactor:
    return RiskFactor(
        factor="Weekly Trend",
        impact="positive" if change > 0 else "negative",
        description=f"{abs(change):.2f}% {'gain' if change > 0 else 'loss'} over the past week",
        delta=5 if change > 0 else -5,
    )


def _market_cap(cap: float) -> RiskFactor:
    large = cap > LARGE_CAP_USD
    return RiskFactor(
        factor="Market Cap",
        impact="positive" if large else "neutral",
        description=f"Market cap of ${cap / 1e9:.2f}B",
        delta=10 if large else 0,
    )


def _trading_volume(volume: float, cap: float) -> RiskFactor:
    liquid = volume > cap * LIQUID_VOLUME_RATIO
    return RiskFactor(
        factor="Trading Volume",
        impact="positive" if liquid else "neutral",
        description=f"Daily trading volume of ${volume / 1e6:.2f}M",
        delta=5 if liquid else 0,
    )


def calculate_risk_score(snapshot: MarketSnapshot) -> RiskAssessment:
    """
    Heuristic score in [0, 100] from four independent factors, starting at 70.
    Missing market fields read as 0. Higher means a steadier asset.
    """
    cap = _n(snapshot.market_cap)
    factors: List[RiskFactor] = [
        _daily_move(_n(snapshot.price_change_percentage_24h)),
        _weekly_trend(_n(snapshot.price_change_percentage_7d)),
        _market_cap(cap),
        _trading_volume(_n(snapshot.total_volume), cap),
    ]

    score = _clamp(BASE_SCORE + sum(f.delta for f in factors))
    return RiskAssessment(asset_id=snapshot.asset_id, score=score, factors=factors)
