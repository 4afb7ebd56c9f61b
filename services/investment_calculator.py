# services/investment_calculator.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class TradeOutcome:
    total_investment: float
    gross_profit: float
    take_home: float
    percentage_change: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calculate_trade(
    investment: float,
    buy_price: float,
    sell_price: float,
    investment_fee: float = 0.0,
    exit_fee: float = 0.0,
) -> TradeOutcome:
    """
    What-if for buying `investment` worth at `buy_price` and selling at `sell_price`.
    Fees are flat amounts in the quote currency.
    """
    if buy_price <= 0:
        raise ValueError("buy_price must be > 0")
    if investment < 0 or sell_price < 0 or investment_fee < 0 or exit_fee < 0:
        raise ValueError("amounts must be non-negative")

    units = investment / buy_price
    gross_profit = (sell_price - buy_price) * units

    return TradeOutcome(
        total_investment=investment + investment_fee,
        gross_profit=gross_profit,
        take_home=gross_profit - exit_fee,
        percentage_change=(sell_price - buy_price) / buy_price * 100.0,
    )
