import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./gatesim.db")
SQLALCHEMY_DATABASE_URI = DATABASE_URL

# JWT Settings
SECRET_KEY: str = os.getenv("SECRET_KEY", "a_very_secret_key_that_should_be_in_env_file_and_much_stronger")
ALGORITHM: str = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 30))

HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", 15))

# MobiMatter catalog feed
MOBIMATTER_API_URL: str = os.getenv("MOBIMATTER_API_URL", "https://api.mobimatter.com/mobimatter/api/v2")
MOBIMATTER_API_KEY: str = os.getenv("MOBIMATTER_API_KEY", "")
MOBIMATTER_MERCHANT_ID: str = os.getenv("MOBIMATTER_MERCHANT_ID", "")
CATALOG_CACHE_SECONDS: int = int(os.getenv("CATALOG_CACHE_SECONDS", 3600))

# QPay payment gateway
QPAY_API_URL: str = os.getenv("QPAY_API_URL", "https://merchant.qpay.mn/v2")
QPAY_USERNAME: str = os.getenv("QPAY_USERNAME", "")
QPAY_PASSWORD: str = os.getenv("QPAY_PASSWORD", "")
QPAY_INVOICE_CODE: str = os.getenv("QPAY_INVOICE_CODE", "")
QPAY_CALLBACK_URL: str = os.getenv("QPAY_CALLBACK_URL", "")
QPAY_WEBHOOK_SECRET: str = os.getenv("QPAY_WEBHOOK_SECRET", "")

# Pricing defaults, used when the settings row is missing or unreadable
DEFAULT_USD_TO_MNT: float = float(os.getenv("DEFAULT_USD_TO_MNT", 3450))
DEFAULT_MARGIN_PERCENT: float = float(os.getenv("DEFAULT_MARGIN_PERCENT", 25))

# Checkout polling
PAYMENT_POLL_INTERVAL_SECONDS: float = float(os.getenv("PAYMENT_POLL_INTERVAL_SECONDS", 3))
PAYMENT_POLL_TIMEOUT_SECONDS: float = float(os.getenv("PAYMENT_POLL_TIMEOUT_SECONDS", 600))
PAYMENT_SUCCESS_DELAY_SECONDS: float = float(os.getenv("PAYMENT_SUCCESS_DELAY_SECONDS", 2))

if not MOBIMATTER_API_KEY or not MOBIMATTER_MERCHANT_ID:
    # Avoid logging the credentials themselves.
    logger.warning("MobiMatter API credentials are not configured. The catalog will serve sample packages.")

if not QPAY_USERNAME or not QPAY_PASSWORD:
    logger.warning("QPay credentials are not configured. Invoice creation will fail.")
