# models/user.py
from datetime import datetime, timezone

from sqlalchemy.orm import Mapped, mapped_column, relationship
from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    username: Mapped[str] = mapped_column(unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)

    portfolio_items = relationship(
        "PortfolioItem", back_populates="owner", cascade="all, delete-orphan"
    )
