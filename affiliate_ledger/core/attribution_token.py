"""
Visitor attribution tokens.

The tracker hands the visitor a signed token describing the click; at checkout
the attributor only trusts what the signature covers. Expiry is carried as a
claim and checked by the attributor against its own clock, so the token stays
decodable after the window closes and the rejection can be logged as "expired".
"""
from datetime import datetime

from jose import JWTError, jwt
from pydantic import ValidationError

from affiliate_ledger.core.config import SECRET_KEY, ALGORITHM
from affiliate_ledger.core.errors import InvalidAttributionToken
from affiliate_ledger.models.click import ReferralClick
from affiliate_ledger.schemas.token import AttributionClaims

TOKEN_TYPE = "affiliate_attribution"

def create_attribution_token(click: ReferralClick, expires_at: datetime) -> str:
    payload = {
        "typ": TOKEN_TYPE,
        "click_id": click.id,
        "affiliate_id": click.affiliate_id,
        "affiliate_code": click.affiliate_code,
        "store_id": click.store_id,
        "visitor_id": click.visitor_id,
        "clicked_at": click.clicked_at.isoformat(),
        "expires_at": expires_at.isoformat(),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)

def decode_attribution_token(token: str) -> AttributionClaims:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        raise InvalidAttributionToken(f"Attribution token rejected: {e}") from e

    if payload.get("typ") != TOKEN_TYPE:
        raise InvalidAttributionToken("Token is not an attribution token")
    try:
        return AttributionClaims(**payload)
    except ValidationError as e:
        raise InvalidAttributionToken(f"Malformed attribution token: {e}") from e
