from __future__ import annotations

from typing import Iterable, Optional

import numpy as np
import pandas as pd

from schemas.market import HistorySummary, PricePoint


def history_to_series(points: Iterable[PricePoint]) -> pd.Series:
    """Price series indexed by UTC timestamp, in source order."""
    rows = [(p.timestamp, p.price) for p in points]
    if not rows:
        return pd.Series(dtype=float)
    ts, px = zip(*rows)
    return pd.Series(list(px), index=pd.to_datetime(list(ts), unit="ms", utc=True), dtype=float)


def period_return_pct(close: pd.Series) -> Optional[float]:
    """Percent change from first to last point."""
    close = close.dropna()
    if close.size < 2:
        return None
    start = float(close.iloc[0])
    if start == 0:
        return None
    return (float(close.iloc[-1]) / start - 1.0) * 100.0


def max_drawdown_pct(close: pd.Series) -> Optional[float]:
    """Max drawdown (%) over the window; 0 or negative."""
    close = close.dropna()
    if close.size < 2:
        return None
    dd = (close / close.cummax() - 1.0) * 100.0
    return float(dd.min())


def daily_volatility_pct(close: pd.Series) -> Optional[float]:
    """Stdev of daily returns in %, after resampling intraday points to daily closes."""
    close = close.dropna()
    if close.empty:
        return None
    daily = close.resample("1D").last().dropna()
    rets = daily.pct_change().replace([np.inf, -np.inf], np.nan).dropna()
    if rets.size < 2:
        return None
    return float(rets.std() * 100.0)


def summarize_history(asset_id: str, days: int, points: Iterable[PricePoint]) -> HistorySummary:
    close = history_to_series(points)
    return HistorySummary(
        asset_id=asset_id,
        days=days,
        points=int(close.size),
        first_price=float(close.iloc[0]) if close.size else None,
        last_price=float(close.iloc[-1]) if close.size else None,
        period_return_pct=period_return_pct(close),
        max_drawdown_pct=max_drawdown_pct(close),
        daily_volatility_pct=daily_volatility_pct(close),
    )
