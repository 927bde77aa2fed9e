from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from affiliate_ledger.core.states import PayoutStatus, PayoutMethod

class PayoutComplete(BaseModel):
    external_ref: Optional[str] = Field(default=None, max_length=255)

class PayoutFail(BaseModel):
    reason: str = Field(..., min_length=1)

class Payout(BaseModel):
    """Full schema for returning payout data to the client."""
    id: int
    affiliate_id: int
    store_id: str
    amount: Decimal
    currency: str
    sales_count: int
    payout_method: PayoutMethod
    status: PayoutStatus
    external_ref: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PayoutCreateInternal(BaseModel):
    affiliate_id: int
    store_id: str
    amount: Decimal
    currency: str = Field(default="USD", max_length=3)
    sales_count: int
    payout_method: PayoutMethod = PayoutMethod.MANUAL
    status: PayoutStatus = PayoutStatus.PENDING
    created_at: datetime
