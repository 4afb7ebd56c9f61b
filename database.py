# database.py
import os
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

Base = declarative_base()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./portfolio.db")

# ─── Connection-pool tuning ────────────────────────────────────────
# Only applies to server databases (Postgres). SQLite gets its own settings.
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))           # steady-state connections
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))     # burst above pool_size
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))     # seconds to wait for a conn
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "1800"))   # recycle every 30 min


def _build_engine(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # in-memory DB must be a single shared connection or tables vanish
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        logger.info("DB configured: sqlite")
        return create_engine(url, **kwargs)

    logger.info(
        "DB pool configured: size=%d, max_overflow=%d, recycle=%ds, pre_ping=True",
        POOL_SIZE, MAX_OVERFLOW, POOL_RECYCLE,
    )
    return create_engine(
        url,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        pool_pre_ping=True,  # test connection liveness before checkout
    )


engine = _build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
