from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class ClickCreate(BaseModel):
    affiliate_code: str = Field(..., min_length=1, max_length=64)
    store_id: str = Field(..., min_length=1, max_length=255)
    visitor_id: Optional[str] = Field(default=None, max_length=255)
    landing_page: str = Field(..., min_length=1, max_length=2048)
    referrer_url: Optional[str] = Field(default=None, max_length=2048)

class ClickTrackResponse(BaseModel):
    tracked: bool
    click_id: Optional[int] = None
    attribution_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    cookie_duration: Optional[int] = None

class ReferralClick(BaseModel):
    id: int
    affiliate_id: int
    store_id: str
    affiliate_code: str
    visitor_id: Optional[str] = None
    landing_page: str
    referrer_url: Optional[str] = None
    clicked_at: datetime
    converted: bool
    order_id: Optional[str] = None

    class Config:
        from_attributes = True

class ClickCreateInternal(ClickCreate):
    affiliate_id: int
    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = None
    clicked_at: datetime
