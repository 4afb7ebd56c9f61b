from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class Token(BaseModel):
    access_token: str
    token_type: str


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=64)
    password: str = Field(..., min_length=8, max_length=128)


class PortfolioItemCreate(BaseModel):
    crypto_id: str = Field(..., min_length=1)
    symbol: str = Field(..., min_length=1)
    # purchase price is derived as initial_investment / amount, so amount must be > 0
    amount: float = Field(..., gt=0)
    initial_investment: float = Field(..., ge=0)
    purchase_date: Optional[datetime] = None

    @field_validator("crypto_id")
    @classmethod
    def _canonical_id(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("Cryptocurrency is required")
        return v

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Symbol is required")
        return v


class CalculatorInput(BaseModel):
    investment: float = Field(..., ge=0)
    buy_price: float = Field(..., gt=0)
    sell_price: float = Field(..., ge=0)
    investment_fee: float = Field(0.0, ge=0)
    exit_fee: float = Field(0.0, ge=0)


class PortfolioValuationOut(BaseModel):
    totalValue: float
    totalInvestment: float
    totalProfit: float
    profitPercentage: float
    items: List[dict] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    as_of: int
    currency: str = "USD"
