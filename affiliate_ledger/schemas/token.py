from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

class TokenData(BaseModel):
    """Caller identity vouched for by the identity provider."""
    user_id: str
    stores: List[str] = [] # Store ids the caller owns

class AttributionClaims(BaseModel):
    """Decoded payload of a visitor attribution token."""
    click_id: int
    affiliate_id: int
    affiliate_code: str
    store_id: str
    clicked_at: datetime
    expires_at: datetime
    visitor_id: Optional[str] = None
