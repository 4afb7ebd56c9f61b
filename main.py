# main.py
import os
if os.getenv("DEBUGPY", "0") == "1":
    import debugpy
    debugpy.listen(("0.0.0.0", 5678))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config.logging_config import configure_logging
from middleware.rate_limit import limiter
from middleware.request_logging import RequestLoggingMiddleware
from routers.auth_routes import router as auth_router
from routers.crypto_routes import router as crypto_router
from routers.portfolio_routes import router as portfolio_router

configure_logging()

app = FastAPI(title="Crypto Portfolio Tracker")

origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Include routers
app.include_router(auth_router, prefix="/api/auth")
app.include_router(portfolio_router, prefix="/api/portfolio")
app.include_router(crypto_router, prefix="/api/crypto")

# db startup
from database import Base, engine
import models  # this triggers models/__init__.py which imports all tables

Base.metadata.create_all(bind=engine)
