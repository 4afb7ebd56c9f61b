from decimal import Decimal
import math
from typing import Any, Optional


def to_float(x: Any) -> float:
    if x is None:
        return 0.0
    if isinstance(x, Decimal):
        return float(x)
    try:
        return float(x)
    except (TypeError, ValueError):
        return 0.0


def finite_number(x: Any) -> Optional[float]:
    """float(x) for real ints/floats that are finite; None otherwise (bools rejected)."""
    if isinstance(x, bool) or not isinstance(x, (int, float, Decimal)):
        return None
    f = float(x)
    return f if math.isfinite(f) else None


def canonical_asset_id(asset_id: Optional[str]) -> str:
    """
    Canonical key used across the app for price lookups: CoinGecko ids are lowercase
    ("bitcoin"). Display symbols ("BTC") must never be used as keys.
    """
    return (asset_id or "").strip().lower()
