from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from affiliate_ledger.core.states import CommissionStatus, CommissionType, ItemType

class ConversionCreate(BaseModel):
    """
    Sent by the order system when an order completes, authenticated as the
    store. Attribution tokens are optional here; the tracking endpoint also
    reads the visitor's cookie.
    """
    order_id: str = Field(..., min_length=1, max_length=255)
    order_amount: Decimal = Field(..., ge=0)
    store_id: str = Field(..., min_length=1, max_length=255)
    customer_id: Optional[str] = Field(default=None, max_length=255)
    item_type: ItemType = ItemType.PRODUCT
    item_id: Optional[str] = Field(default=None, max_length=255)
    attribution_tokens: List[str] = []

class AttributionResult(BaseModel):
    affiliate_id: int
    sale_id: int
    order_id: str
    commission_amount: Decimal
    duplicate: bool = False # True when the order had already been attributed

class AttributionResponse(BaseModel):
    attributed: bool
    affiliate_id: Optional[int] = None
    sale_id: Optional[int] = None
    commission_amount: Optional[Decimal] = None

class CommissionReverse(BaseModel):
    reason: str = Field(..., min_length=1)

class CommissionSale(BaseModel):
    """Full schema for returning commission sale data to the client."""
    id: int
    affiliate_id: int
    store_id: str
    click_id: Optional[int] = None
    order_id: str
    customer_id: Optional[str] = None
    item_type: ItemType
    item_id: Optional[str] = None
    order_amount: Decimal
    commission_rate: Decimal
    commission_type: CommissionType
    commission_amount: Decimal
    commission_status: CommissionStatus
    payout_id: Optional[int] = None
    sale_date: datetime
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    reversed_at: Optional[datetime] = None
    reversal_reason: Optional[str] = None

    class Config:
        from_attributes = True

class CommissionSaleCreate(BaseModel):
    """Schema for creating a commission sale. Used internally by the conversion attributor."""
    affiliate_id: int
    store_id: str
    click_id: Optional[int] = None
    order_id: str
    customer_id: Optional[str] = None
    item_type: ItemType = ItemType.PRODUCT
    item_id: Optional[str] = None
    order_amount: Decimal
    commission_rate: Decimal
    commission_type: CommissionType
    commission_amount: Decimal
    commission_status: CommissionStatus = CommissionStatus.PENDING
    sale_date: datetime
