# Import all models so that Base.metadata has every table before create_all
# and so string-based relationships resolve.
from affiliate_ledger.db.base_class import Base  # noqa: F401
from affiliate_ledger.models.affiliate import Affiliate  # noqa: F401
from affiliate_ledger.models.click import ReferralClick  # noqa: F401
from affiliate_ledger.models.commission import CommissionSale  # noqa: F401
from affiliate_ledger.models.payout import Payout, PayoutSale  # noqa: F401
