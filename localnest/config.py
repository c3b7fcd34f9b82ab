import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./localnest.db")
DB_ECHO = os.getenv("DB_ECHO", "0") == "1"

# JWT
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM") or "HS256"
ACCESS_TTL_SECONDS = int(os.getenv("ACCESS_TTL_SECONDS", "604800"))            # 7d
ADMIN_ACCESS_TTL_SECONDS = int(os.getenv("ADMIN_ACCESS_TTL_SECONDS", "28800"))  # 8h
REFRESH_TTL_SECONDS = int(os.getenv("REFRESH_TTL_SECONDS", "604800"))          # 7d

# optional in dev; rate limiting and token revocation are off without it
REDIS_URL = os.getenv("REDIS_URL")
RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "120"))

# optional in dev, required if you want events
RABBIT_URL = os.getenv("RABBIT_URL")

CORS_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()
]

ENVIRONMENT = os.getenv("ENVIRONMENT", "production")
SERVICE_NAME = "localnest-api"
