import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
JWT_ALGO = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "30"))

AUTH_COOKIE = "auth-token"
AUTH_COOKIE_MAX_AGE = JWT_EXPIRES_DAYS * 24 * 60 * 60

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Optional bootstrap admin, created at startup when no admin exists
ADMIN_EMAIL = (os.getenv("ADMIN_EMAIL") or "").strip().lower()
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD") or ""
ADMIN_NAME = os.getenv("ADMIN_NAME", "Admin")

BUSINESS_NAME = os.getenv("BUSINESS_NAME", "My Store")
CURRENCY = os.getenv("CURRENCY", "PKR")

LOW_STOCK_THRESHOLD = 5
LOW_STOCK_LIMIT = 10
RELATED_PRODUCTS_LIMIT = 4

PORT = int(os.getenv("PORT", "8000"))
