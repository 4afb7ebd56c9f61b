from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy.orm import Session

import schemas.general as general
from database import get_db
from models.user import User
from services.auth import authenticate_user, create_access_token, create_user, get_current_user

router = APIRouter()


class MeOut(BaseModel):
    id: int
    username: str
    created_at: datetime


@router.post("/register", response_model=MeOut, status_code=status.HTTP_201_CREATED)
def register(body: general.UserCreate, db: Session = Depends(get_db)):
    try:
        user = create_user(db, body.username, body.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return MeOut(id=user.id, username=user.username, created_at=user.created_at)


@router.post("/token", response_model=general.Token)
def login(form: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    user = authenticate_user(db, form.username, form.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = create_access_token({"sub": str(user.id)})
    return general.Token(access_token=token, token_type="bearer")


@router.get("/me", response_model=MeOut)
def me(current_user: User = Depends(get_current_user)):
    return MeOut(
        id=current_user.id,
        username=current_user.username,
        created_at=current_user.created_at,
    )
