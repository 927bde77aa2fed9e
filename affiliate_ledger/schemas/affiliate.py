from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from affiliate_ledger.core.states import AffiliateStatus, CommissionType, PayoutMethod
from affiliate_ledger.schemas.commission import CommissionSale

class AffiliateApply(BaseModel):
    """
    Schema for an affiliate application. The applicant is the authenticated user;
    affiliate_user_id is never taken from the request body.
    """
    store_id: str = Field(..., min_length=1, max_length=255)
    creator_id: str = Field(..., min_length=1, max_length=255)
    affiliate_code: Optional[str] = Field(default=None, min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_-]+$")
    application_note: Optional[str] = None

class AffiliateApprove(BaseModel):
    # Store owner's choice; the application's default rate is kept when omitted
    commission_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)

class AffiliateReject(BaseModel):
    reason: str = Field(..., min_length=1)

class AffiliateSettingsUpdate(BaseModel):
    commission_rate: Optional[Decimal] = Field(default=None, ge=0)
    commission_type: Optional[CommissionType] = None
    fixed_commission_amount: Optional[Decimal] = Field(default=None, ge=0)
    cookie_duration: Optional[int] = Field(default=None, gt=0, le=365)
    payout_method: Optional[PayoutMethod] = None
    payout_email: Optional[EmailStr] = None
    stripe_connect_id: Optional[str] = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def check_percentage_rate(self):
        # The affiliate's stored type is re-checked in update_affiliate_settings
        if self.commission_rate is not None and self.commission_rate > 100:
            if self.commission_type != CommissionType.FIXED_PER_SALE:
                raise ValueError("commission_rate must be within [0, 100] for percentage commissions")
        return self

class Affiliate(BaseModel):
    """Full schema for returning affiliate data to the client."""
    id: int
    affiliate_user_id: str
    store_id: str
    creator_id: str
    affiliate_code: str
    commission_rate: Decimal
    commission_type: CommissionType
    fixed_commission_amount: Optional[Decimal] = None
    cookie_duration: int
    status: AffiliateStatus

    total_clicks: int
    total_sales: int
    total_revenue: Decimal
    total_commission_earned: Decimal
    total_commission_paid: Decimal

    payout_method: Optional[PayoutMethod] = None
    payout_email: Optional[str] = None

    application_note: Optional[str] = None
    rejection_reason: Optional[str] = None
    applied_at: datetime
    approved_at: Optional[datetime] = None
    suspended_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class AffiliateStats(BaseModel):
    affiliate_id: int
    status: AffiliateStatus
    total_clicks: int
    converted_clicks: int
    conversion_rate: Decimal # Percentage, two decimals
    total_sales: int
    total_revenue: Decimal
    pending_commission: Decimal
    approved_commission: Decimal
    paid_commission: Decimal
    total_earnings: Decimal
    total_commission_paid: Decimal
    available_for_payout: Decimal
    recent_sales: List[CommissionSale] = []

class AffiliateCreateInternal(BaseModel):
    """Schema for creating an affiliate row; built by the lifecycle manager, not the client."""
    affiliate_user_id: str
    store_id: str
    creator_id: str
    affiliate_code: str = Field(..., max_length=64)
    commission_rate: Decimal = Field(..., ge=0, le=100)
    commission_type: CommissionType = CommissionType.PERCENTAGE
    fixed_commission_amount: Optional[Decimal] = Field(default=None, ge=0)
    cookie_duration: int = Field(..., gt=0)
    status: AffiliateStatus = AffiliateStatus.PENDING
    application_note: Optional[str] = None
    applied_at: datetime
