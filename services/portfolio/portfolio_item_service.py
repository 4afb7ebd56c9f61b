from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.portfolio_item import PortfolioItem
from utils.common_helpers import canonical_asset_id

logger = logging.getLogger(__name__)


def get_all_items(user_id: int, db: Session) -> List[PortfolioItem]:
    return list(
        db.execute(
            select(PortfolioItem)
            .where(PortfolioItem.user_id == user_id)
            .order_by(PortfolioItem.id)
        ).scalars().all()
    )


def create_item(
    db: Session,
    user_id: int,
    crypto_id: str,
    symbol: str,
    amount: float,
    initial_investment: float,
    purchase_date: Optional[datetime] = None,
) -> PortfolioItem:
    aid = canonical_asset_id(crypto_id)
    if not aid:
        raise ValueError("Cryptocurrency is required")
    if not (symbol or "").strip():
        raise ValueError("Symbol is required")
    if amount is None or amount <= 0:
        raise ValueError("Amount must be positive")
    if initial_investment is None or initial_investment < 0:
        raise ValueError("Initial investment must not be negative")

    item = PortfolioItem(
        user_id=user_id,
        crypto_id=aid,
        symbol=symbol.strip().upper(),
        amount=Decimal(str(amount)),
        initial_investment=Decimal(str(initial_investment)),
        purchase_date=purchase_date or datetime.now(timezone.utc),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info("portfolio.item.created item_id=%s asset_id=%s", item.id, aid)
    return item


def delete_item(db: Session, user_id: int, item_id: int) -> bool:
    """Delete one of the user's items. False when it doesn't exist or isn't theirs."""
    item = db.execute(
        select(PortfolioItem).where(
            PortfolioItem.id == item_id,
            PortfolioItem.user_id == user_id,
        )
    ).scalar_one_or_none()
    if item is None:
        return False

    db.delete(item)
    db.commit()
    logger.info("portfolio.item.deleted item_id=%s", item_id)
    return True
