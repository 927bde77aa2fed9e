from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session
import logging

from affiliate_ledger.core.click_tracker import record_click
from affiliate_ledger.core.config import ATTRIBUTION_COOKIE_NAME
from affiliate_ledger.core.conversion_attributor import attribute_sale
from affiliate_ledger.core.dependencies import get_current_identity, require_store_owner
from affiliate_ledger.db.session import get_db
from affiliate_ledger.schemas.click import ClickCreate, ClickTrackResponse
from affiliate_ledger.schemas.commission import ConversionCreate, AttributionResponse
from affiliate_ledger.schemas.token import TokenData

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/click", response_model=ClickTrackResponse)
def track_click(
    click_in: ClickCreate,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """
    Record a visitor arriving through an affiliate link. Unknown codes and
    inactive affiliates are answered with tracked=false; visitors never see an error.
    """
    tracked = record_click(
        db,
        affiliate_code=click_in.affiliate_code,
        store_id=click_in.store_id,
        landing_page=click_in.landing_page,
        visitor_id=click_in.visitor_id,
        referrer_url=click_in.referrer_url,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    if tracked is None:
        return ClickTrackResponse(tracked=False)

    response.set_cookie(
        key=ATTRIBUTION_COOKIE_NAME,
        value=tracked.attribution_token,
        max_age=tracked.cookie_duration * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
    )
    return ClickTrackResponse(
        tracked=True,
        click_id=tracked.click.id,
        attribution_token=tracked.attribution_token,
        expires_at=tracked.expires_at,
        cookie_duration=tracked.cookie_duration,
    )

@router.post("/conversion", response_model=AttributionResponse)
async def track_conversion(
    conversion_in: ConversionCreate,
    request: Request,
    db: Session = Depends(get_db),
    identity: TokenData = Depends(get_current_identity),
):
    """
    Called by the order system when an order completes. Only a caller acting for
    the order's store may report it. Tokens in the body and the visitor's
    attribution cookie are all considered; the last click wins.
    """
    require_store_owner(identity, conversion_in.store_id)
    tokens = list(conversion_in.attribution_tokens)
    cookie_token = request.cookies.get(ATTRIBUTION_COOKIE_NAME)
    if cookie_token and cookie_token not in tokens:
        tokens.append(cookie_token)

    result = await attribute_sale(
        db,
        order_id=conversion_in.order_id,
        attribution_tokens=tokens,
        order_amount=conversion_in.order_amount,
        store_id=conversion_in.store_id,
        customer_id=conversion_in.customer_id,
        item_type=conversion_in.item_type,
        item_id=conversion_in.item_id,
    )
    if result is None:
        return AttributionResponse(attributed=False)
    return AttributionResponse(
        attributed=True,
        affiliate_id=result.affiliate_id,
        sale_id=result.sale_id,
        commission_amount=result.commission_amount,
    )
