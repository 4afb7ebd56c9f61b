from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from utils.common_helpers import canonical_asset_id, to_float


# ----------------------------- Types -----------------------------

@dataclass(frozen=True)
class Position:
    asset_id: str               # canonical market-data key, e.g. "bitcoin"
    symbol: str                 # display only, e.g. "BTC"
    quantity: float
    cost_basis: float           # total amount invested in quote currency, not a unit price
    id: Optional[int] = None
    purchase_date: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Any) -> "Position":
        return cls(
            asset_id=canonical_asset_id(row.crypto_id),
            symbol=(row.symbol or "").upper(),
            quantity=to_float(row.amount),
            cost_basis=to_float(row.initial_investment),
            id=row.id,
            purchase_date=row.purchase_date,
        )


@dataclass(frozen=True)
class PositionMetrics:
    position: Position
    spot_price: Optional[float]
    purchase_price: float
    current_value: float
    profit: float
    profit_percentage: float

    @property
    def price_status(self) -> str:
        return "live" if self.spot_price is not None else "unavailable"

    def to_dict(self) -> Dict[str, Any]:
        p = self.position
        return {
            "id": p.id,
            "assetId": p.asset_id,
            "symbol": p.symbol,
            "quantity": p.quantity,
            "costBasis": p.cost_basis,
            "purchaseDate": p.purchase_date.isoformat() if p.purchase_date else None,
            "spotPrice": self.spot_price,
            "priceStatus": self.price_status,
            "purchasePrice": self.purchase_price,
            "currentValue": self.current_value,
            "profit": self.profit,
            "profitPercentage": self.profit_percentage,
        }


@dataclass(frozen=True)
class PortfolioTotals:
    total_value: float
    total_investment: float
    total_profit: float
    profit_percentage: float
    items: List[PositionMetrics] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalValue": self.total_value,
            "totalInvestment": self.total_investment,
            "totalProfit": self.total_profit,
            "profitPercentage": self.profit_percentage,
            "items": [m.to_dict() for m in self.items],
        }


# -------------------------- Metric Utils -------------------------

def profit_percentage(profit: float, invested: float) -> float:
    """Percent P/L; 0 when nothing was invested (no division by zero)."""
    return (profit / invested) * 100.0 if invested > 0 else 0.0


def distinct_asset_ids(positions: Iterable[Position]) -> List[str]:
    """Unique canonical ids in first-seen order. Never keyed by display symbol."""
    seen: List[str] = []
    for p in positions:
        aid = canonical_asset_id(p.asset_id)
        if aid and aid not in seen:
            seen.append(aid)
    return seen


def compute_position_metrics(position: Position, spot_price: Optional[float]) -> PositionMetrics:
    """
    purchase_price = cost_basis / quantity
    current_value  = spot_price * quantity   (absent price counts as 0)
    profit         = current_value - cost_basis
    """
    if position.quantity <= 0:
        raise ValueError(f"Position {position.asset_id} has non-positive quantity")
    if position.cost_basis < 0:
        raise ValueError(f"Position {position.asset_id} has negative cost basis")

    price = spot_price if spot_price is not None else 0.0
    current_value = price * position.quantity
    profit = current_value - position.cost_basis

    return PositionMetrics(
        position=position,
        spot_price=spot_price,
        purchase_price=position.cost_basis / position.quantity,
        current_value=current_value,
        profit=profit,
        profit_percentage=profit_percentage(profit, position.cost_basis),
    )


def aggregate_portfolio(
    positions: Iterable[Position],
    prices: Mapping[str, Optional[float]],
) -> PortfolioTotals:
    """Portfolio totals over already-fetched prices. No I/O; missing prices count as 0."""
    items = [
        compute_position_metrics(p, prices.get(canonical_asset_id(p.asset_id)))
        for p in positions
    ]

    total_value = sum(m.current_value for m in items)
    total_investment = sum(m.position.cost_basis for m in items)
    total_profit = total_value - total_investment

    return PortfolioTotals(
        total_value=total_value,
        total_investment=total_investment,
        total_profit=total_profit,
        profit_percentage=profit_percentage(total_profit, total_investment),
        items=items,
    )
