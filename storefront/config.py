"""
config.py — Runtime Configuration for the Storefront Service

All settings are read from environment variables once at import time, with
defaults suitable for local development against the mock payment gateway.

Groups:
    • Database connection
    • Payment provider (KoraPay) credentials and callback URLs
    • Telegram notification settings
    • Order expiry and background job intervals
    • Delivery fee table
"""

import os

# API server
API_PORT = int(os.environ.get("API_PORT", "4000"))

# Database
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./storefront.db")
# Seconds a writer waits for the SQLite lock. Must outlast a checkout, which
# holds the lock across the payment provider call (PAYMENT_*_TIMEOUT_SECONDS).
DB_BUSY_TIMEOUT_SECONDS = float(os.environ.get("DB_BUSY_TIMEOUT_SECONDS", "30"))

# Payment provider (KoraPay)
KORAPAY_BASE_URL = os.environ.get("KORAPAY_BASE_URL", "https://api.korapay.com")
KORAPAY_SECRET_KEY = os.environ.get("KORAPAY_SECRET_KEY", "")
KORAPAY_WEBHOOK_SECRET = os.environ.get("KORAPAY_WEBHOOK_SECRET", KORAPAY_SECRET_KEY)
KORAPAY_REDIRECT_URL = os.environ.get("KORAPAY_REDIRECT_URL", "")
KORAPAY_WEBHOOK_URL = os.environ.get("KORAPAY_WEBHOOK_URL", "")
PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "NGN")
PAYMENT_CONNECT_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_CONNECT_TIMEOUT_SECONDS", "5"))
PAYMENT_READ_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_READ_TIMEOUT_SECONDS", "10"))
PAYMENT_NARRATION = os.environ.get("PAYMENT_NARRATION", "Oohlalaa Fragrance Order")
CUSTOMER_EMAIL_DOMAIN = os.environ.get("CUSTOMER_EMAIL_DOMAIN", "oohlalaa.shop")
CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "₦")

# Telegram notifications
TELEGRAM_API_URL = os.environ.get("TELEGRAM_API_URL", "https://api.telegram.org")
BOT_TOKEN = os.environ.get("BOT_TOKEN", "")
ADMIN_TELEGRAM_IDS = [
    admin_id.strip()
    for admin_id in os.environ.get("ADMIN_TELEGRAM_IDS", "").split(",")
    if admin_id.strip()
]

# Orders and background jobs
ORDER_TTL_MINUTES = int(os.environ.get("ORDER_TTL_MINUTES", "30"))
EXPIRY_SWEEP_INTERVAL_SECONDS = int(os.environ.get("EXPIRY_SWEEP_INTERVAL_SECONDS", "300"))
ABANDONED_CART_INTERVAL_SECONDS = int(os.environ.get("ABANDONED_CART_INTERVAL_SECONDS", str(6 * 60 * 60)))
ABANDONED_CART_AFTER_HOURS = int(os.environ.get("ABANDONED_CART_AFTER_HOURS", "24"))
CONVERSATION_TTL_SECONDS = int(os.environ.get("CONVERSATION_TTL_SECONDS", "1800"))

# Logging
LOG_FILE = os.environ.get("LOG_FILE", "storefront.log")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Delivery fee table (zone label, fee). Order matters: first substring match wins.
DEFAULT_ZONE = "Default"
FREE_DELIVERY_KEYWORD = os.environ.get("FREE_DELIVERY_KEYWORD", "Covenant University")
DELIVERY_RATES = [
    (DEFAULT_ZONE, 4000),
    ("Lagos Mainland", 4000),
    ("Lagos Island", 6000),
]
