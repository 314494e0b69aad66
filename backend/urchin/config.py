# backend/urchin/config.py
import os
from dotenv import load_dotenv

load_dotenv()

PRODUCTION = "Production"
STAGING = "Staging"
DEVELOPMENT = "Development"

# 서버 이름 -> base URL
SERVERS = {
    PRODUCTION: "https://api.tidepool.io",
    STAGING: "https://staging-api.tidepool.io",
    DEVELOPMENT: "https://devel-api.tidepool.io",
}

DEFAULT_SERVER = os.getenv("URCHIN_SERVER", PRODUCTION)

DATABASE_URL = os.getenv("URCHIN_DATABASE_URL", "sqlite+aiosqlite:///urchin.db")

MAX_CONCURRENT_REQUESTS = int(os.getenv("URCHIN_MAX_CONCURRENT_REQUESTS", "4"))
REQUEST_TIMEOUT_S = float(os.getenv("URCHIN_REQUEST_TIMEOUT_S", "30"))

# Header carrying the session token, both directions
SESSION_TOKEN_HEADER = "x-tidepool-session-token"
