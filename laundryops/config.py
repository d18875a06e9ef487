import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./laundryops.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

# Comma separated list of frontend origins
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

# WhatsApp Cloud API
WHATSAPP_API_BASE_URL = os.getenv("WHATSAPP_API_BASE_URL", "https://graph.facebook.com/v17.0")
WHATSAPP_WEBHOOK_VERIFY_TOKEN = os.getenv("WHATSAPP_WEBHOOK_VERIFY_TOKEN")
WHATSAPP_REQUEST_TIMEOUT = float(os.getenv("WHATSAPP_REQUEST_TIMEOUT", "10"))

# Billing defaults
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "TRY")
DEFAULT_VAT_RATE = float(os.getenv("DEFAULT_VAT_RATE", "18"))
INVOICE_DUE_DAYS = int(os.getenv("INVOICE_DUE_DAYS", "15"))

# Phone numbers without a country code are assumed to be Turkish
DEFAULT_PHONE_COUNTRY_CODE = os.getenv("DEFAULT_PHONE_COUNTRY_CODE", "90")

# Depot used when an address cannot be located (Istanbul city centre)
DEPOT_LATITUDE = float(os.getenv("DEPOT_LATITUDE", "41.0082"))
DEPOT_LONGITUDE = float(os.getenv("DEPOT_LONGITUDE", "28.9784"))

# Rate limiting can be switched off for local development and tests
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# Redis backed response cache for statistics endpoints
CACHE_ENABLED = os.getenv("CACHE_ENABLED", "true").lower() == "true"
STATS_CACHE_TTL = int(os.getenv("STATS_CACHE_TTL", "60"))

# Meta app secret used to sign webhook deliveries (X-Hub-Signature-256)
WHATSAPP_APP_SECRET = os.getenv("WHATSAPP_APP_SECRET")

# Orders a FREE plan business may create per day; PRO has no limit
FREE_DAILY_ORDER_LIMIT = int(os.getenv("FREE_DAILY_ORDER_LIMIT", "50"))
