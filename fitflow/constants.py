"""Centralized application constants — single source of truth for hardcoded values."""

# --- Session ---
COOKIE_NAME = "fitflow_session"
STAFF_ROLE = "staff"

# --- Subscriptions ---
SUBSCRIPTION_STATUSES = ("active", "paused", "cancelled", "expired")
SUBSCRIPTION_FREQUENCIES = ("monthly", "seasonal")
SEASONAL_CYCLE_GAP = 3  # cycles between seasonal deliveries
CANCELLATION_REASON_MAX_LENGTH = 1000

# --- Delivery cycles ---
DEFAULT_DELIVERY_DAY = 5
MAX_DELIVERY_DAY = 28
SITE_CONFIG_SUBSCRIPTION_DELIVERY_DAY = "SUBSCRIPTION_DELIVERY_DAY"

# --- Orders ---
ORDER_NUMBER_PREFIX = "FF"

# --- Pricing ---
SITE_CONFIG_EUR_TO_BGN_RATE = "EUR_TO_BGN_RATE"
CATALOG_CACHE_KEY_BOX_PRICES = "box_prices"
CATALOG_CACHE_KEY_BGN_RATE = "eur_to_bgn_rate"

# --- Rate limiting (requests per window) ---
CUSTOMER_ACTION_LIMIT = 20
STAFF_ACTION_LIMIT = 30
RATE_LIMIT_WINDOW = 60  # seconds

# --- Worker ---
ARQ_MAX_JOBS = 4
ARQ_JOB_TIMEOUT = 900  # seconds (15 min)
GENERATE_ORDERS_HOUR = 6  # UTC
EXPIRE_PREORDERS_HOUR = 3  # UTC

# --- Premium box personalization ---
PREMIUM_BOX_TYPES = {"monthly-premium", "one-time-premium"}
OTHER_OPTION = "other"
