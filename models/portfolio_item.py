from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict
from sqlalchemy import ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PortfolioItem(Base):
    __tablename__ = "portfolio_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)

    # canonical market-data id ("bitcoin"); symbol ("BTC") is display only
    crypto_id: Mapped[str] = mapped_column()
    symbol: Mapped[str] = mapped_column()

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 18))
    # total cost basis, not a unit price
    initial_investment: Mapped[Decimal] = mapped_column(Numeric(38, 8))
    purchase_date: Mapped[datetime] = mapped_column(default=_utcnow)

    owner = relationship("User", back_populates="portfolio_items")


class PortfolioItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    crypto_id: str
    symbol: str
    amount: float
    initial_investment: float
    purchase_date: datetime

    # derived, never stored
    purchase_price: float | None = None


def to_dto(item: PortfolioItem) -> PortfolioItemOut:
    dto = PortfolioItemOut.model_validate(item)
    if dto.amount > 0:
        dto.purchase_price = dto.initial_investment / dto.amount
    return dto
