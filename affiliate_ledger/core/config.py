import os
import logging
from decimal import Decimal

import stripe
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./affiliate_ledger.db")
SQLALCHEMY_DATABASE_URI = DATABASE_URL

# Token settings. Identity tokens come from the upstream identity provider;
# attribution tokens are minted by the click tracker. Both use the same key.
SECRET_KEY: str = os.getenv("SECRET_KEY", "a_very_secret_key_that_should_be_in_env_file_and_much_stronger")
ALGORITHM: str = "HS256"
ATTRIBUTION_COOKIE_NAME: str = os.getenv("ATTRIBUTION_COOKIE_NAME", "aff_ref")

# Affiliate program defaults for new applications
DEFAULT_COMMISSION_RATE: Decimal = Decimal(os.getenv("DEFAULT_COMMISSION_RATE", "20"))
DEFAULT_COOKIE_DURATION_DAYS: int = int(os.getenv("DEFAULT_COOKIE_DURATION_DAYS", 30))

# Commission approval
COMMISSION_HOLD_DAYS: int = int(os.getenv("COMMISSION_HOLD_DAYS", 14))
AUTO_APPROVE_COMMISSIONS: bool = _env_flag("AUTO_APPROVE_COMMISSIONS", "false")

# Payouts
MINIMUM_PAYOUT_AMOUNT: Decimal = Decimal(os.getenv("MINIMUM_PAYOUT_AMOUNT", "0"))
PAYOUT_CURRENCY: str = os.getenv("PAYOUT_CURRENCY", "USD")

# Background jobs
PAYOUT_SCHEDULER_ENABLED: bool = _env_flag("PAYOUT_SCHEDULER_ENABLED", "true")
PAYOUT_BATCH_CRON: str = os.getenv("PAYOUT_BATCH_CRON", "0 9 1 * *")  # 1st of month, 09:00 UTC
COMMISSION_APPROVAL_CRON: str = os.getenv("COMMISSION_APPROVAL_CRON", "0 1 * * *")  # daily, 01:00 UTC

# Stripe API Keys
STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY", "sk_test_YOUR_STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET: str = os.getenv("STRIPE_WEBHOOK_SECRET", "whsec_YOUR_STRIPE_WEBHOOK_SECRET")

# Initialize Stripe API key
if STRIPE_SECRET_KEY and "YOUR_STRIPE_SECRET_KEY" not in STRIPE_SECRET_KEY:
    stripe.api_key = STRIPE_SECRET_KEY
else:
    # Avoid logging the key itself.
    logger.warning("Stripe secret key is not configured or is using a placeholder value.")
