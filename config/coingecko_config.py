import os

from dotenv import load_dotenv

load_dotenv()

COINGECKO_BASE_URL = os.getenv("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3").rstrip("/")
# Demo/pro key is optional; public endpoints work without it (with tighter 429s)
COINGECKO_API_KEY = os.getenv("COINGECKO_API_KEY", "")
COINGECKO_TIMEOUT_SEC = float(os.getenv("COINGECKO_TIMEOUT_SEC", "10"))
COINGECKO_MAX_ATTEMPTS = int(os.getenv("COINGECKO_MAX_ATTEMPTS", "3"))
COINGECKO_MAX_CONCURRENCY = int(os.getenv("COINGECKO_MAX_CONCURRENCY", "8"))

QUOTE_CURRENCY = "usd"

# Quotes older than this are re-fetched; display never blocks on it
PRICE_REFRESH_INTERVAL_SEC = int(os.getenv("PRICE_REFRESH_INTERVAL_SEC", "30"))

# Display symbol -> canonical CoinGecko id
CRYPTO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binancecoin",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "ADA": "cardano",
    "SOL": "solana",
}
