import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
DEBUG_SQL = _get_bool(os.getenv("DEBUG_SQL"), default=False)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./coachbook.db")

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:5173"])
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "usd")
CHECKOUT_SUCCESS_URL = os.getenv(
    "CHECKOUT_SUCCESS_URL",
    f"{FRONTEND_URL}/my-bookings?success=true&session_id={{CHECKOUT_SESSION_ID}}",
)
CHECKOUT_CANCEL_URL = os.getenv("CHECKOUT_CANCEL_URL", f"{FRONTEND_URL}/book?canceled=true")

DEFAULT_SERVICE_DURATION_MINUTES = int(os.getenv("DEFAULT_SERVICE_DURATION_MINUTES", "60"))
CANCELLATION_NOTICE_HOURS = int(os.getenv("CANCELLATION_NOTICE_HOURS", "24"))
NON_MEMBER_TIERS = {"", "starter"}

# Stripe product id -> membership tier sold by that subscription.
PRODUCT_TO_TIER = {
    "prod_TpAynmYe2OSTKN": "community",
    "prod_Tp4siVSGD0PG7k": "starter",
    "prod_Tp4sKzTi2pyda4": "pro",
    "prod_Tp4sXGo0L4c2bn": "elite",
    "prod_Tp4s6jRZcg949u": "hybrid-core",
    "prod_Tp4t69jx1LlFu7": "hybrid-pro",
}
# Hybrid credits granted per billing period; tiers not listed get none.
TIER_HYBRID_CREDITS = {
    "hybrid-core": 1,
    "hybrid-pro": 2,
}
HYBRID_CREDIT_RESET_MIN_DAYS = int(os.getenv("HYBRID_CREDIT_RESET_MIN_DAYS", "25"))

# Stripe product id -> (sessions, validity in days) for session packages.
PACKAGE_CATALOG = {
    "prod_Tp2pZybeOOoEhq": (3, 90),
    "prod_Tp2pE7QdK9VryM": (6, 180),
    "prod_Tp2pUYu4EmGjeu": (12, 365),
}


def validate_runtime_config() -> None:
    if APP_ENV.lower() != "production":
        return
    if JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not STRIPE_SECRET_KEY or not STRIPE_WEBHOOK_SECRET:
        raise RuntimeError("STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET must be set in production.")
