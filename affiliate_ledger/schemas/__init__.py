from .token import TokenData, AttributionClaims
from .commission import (
    ConversionCreate,
    AttributionResult,
    AttributionResponse,
    CommissionReverse,
    CommissionSale as CommissionSaleSchema, # Alias to avoid clash with the CommissionSale model
)
from .affiliate import (
    AffiliateApply,
    AffiliateApprove,
    AffiliateReject,
    AffiliateSettingsUpdate,
    Affiliate as AffiliateSchema,
    AffiliateStats,
)
from .click import (
    ClickCreate,
    ClickTrackResponse,
    ReferralClick as ReferralClickSchema,
)
from .payout import (
    PayoutComplete,
    PayoutFail,
    Payout as PayoutSchema,
)
