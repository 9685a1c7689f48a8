# runtime configuration, read once from the environment (and a local .env file)
import os

from dotenv import load_dotenv

load_dotenv()

# the hosted store is a SQLite file; "url" keeps the name the deployment uses
STORE_URL = os.getenv("MARKET_STORE_URL", "data/market.sqlite")
API_KEY = os.getenv("MARKET_API_KEY", "market-public-anon-key")

CART_PATH = os.getenv("MARKET_CART_PATH", "data/cart.json")
SESSION_PATH = os.getenv("MARKET_SESSION_PATH", "data/session.json")
SESSION_TTL_SECONDS = int(os.getenv("MARKET_SESSION_TTL", 7 * 24 * 3600))
RESET_TTL_SECONDS = int(os.getenv("MARKET_RESET_TTL", 3600))

LOG_FILE = os.getenv("MARKET_LOG_FILE", "")
DEBUG = bool(os.getenv("DEBUG"))
