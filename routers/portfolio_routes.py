# routers/portfolio_routes.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import schemas.general as general
from database import get_db
from models.portfolio_item import PortfolioItemOut, to_dto
from models.user import User
from services.auth import get_current_user
from services.coingecko.coingecko_service import CoinGeckoService, get_coingecko_service
from services.portfolio.portfolio_item_service import create_item, delete_item, get_all_items
from services.portfolio.portfolio_service import get_portfolio_valuation

router = APIRouter()


@router.get("", response_model=list[PortfolioItemOut])
def list_items(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [to_dto(i) for i in get_all_items(user.id, db)]


@router.post("", response_model=PortfolioItemOut)
def add_item(
    body: general.PortfolioItemCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        item = create_item(
            db,
            user.id,
            body.crypto_id,
            body.symbol,
            body.amount,
            body.initial_investment,
            body.purchase_date,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return to_dto(item)


@router.delete("/{item_id}")
def remove_item(
    item_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not delete_item(db, user.id, item_id):
        raise HTTPException(status_code=404, detail="Portfolio item not found")
    return {"success": True}


@router.get("/valuation", response_model=general.PortfolioValuationOut)
async def portfolio_valuation(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    market: CoinGeckoService = Depends(get_coingecko_service),
):
    # per-asset price failures come back as warnings, not errors
    return await get_portfolio_valuation(user.id, db, market)
