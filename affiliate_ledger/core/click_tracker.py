import logging
from datetime import datetime, timedelta
from typing import NamedTuple, Optional
from sqlalchemy.orm import Session

from affiliate_ledger.core.attribution_token import create_attribution_token
from affiliate_ledger.core.clock import normalize_now
from affiliate_ledger.core.errors import UnknownAffiliateCode, InactiveAffiliate
from affiliate_ledger.core.states import AffiliateStatus
from affiliate_ledger.crud import crud_affiliate, crud_click
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.models.click import ReferralClick
from affiliate_ledger.schemas.click import ClickCreateInternal

logger = logging.getLogger(__name__)

class TrackedClick(NamedTuple):
    click: ReferralClick
    attribution_token: str
    expires_at: datetime
    cookie_duration: int

def resolve_trackable_affiliate(db: Session, affiliate_code: str, store_id: str) -> Affiliate:
    """
    Look up the affiliate behind a code, re-reading its status on every call so a
    suspension takes effect on the very next click.
    """
    affiliate = crud_affiliate.get_affiliate_by_code(db, store_id=store_id, affiliate_code=affiliate_code)
    if affiliate is None:
        raise UnknownAffiliateCode(affiliate_code, store_id)
    if affiliate.status != AffiliateStatus.ACTIVE:
        raise InactiveAffiliate(affiliate.id, affiliate.status)
    return affiliate

def record_click(
    db: Session,
    *,
    affiliate_code: str,
    store_id: str,
    landing_page: str,
    visitor_id: Optional[str] = None,
    referrer_url: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[TrackedClick]:
    """
    Record a referral click and hand back the visitor's attribution token.
    Unknown codes and non-active affiliates are a silent no-op (None).
    """
    now = normalize_now(now)
    try:
        affiliate = resolve_trackable_affiliate(db, affiliate_code, store_id)
    except (UnknownAffiliateCode, InactiveAffiliate) as e:
        logger.info(f"Click not tracked: {e}")
        return None

    click_in = ClickCreateInternal(
        affiliate_code=affiliate.affiliate_code,
        store_id=store_id,
        visitor_id=visitor_id,
        landing_page=landing_page,
        referrer_url=referrer_url,
        affiliate_id=affiliate.id,
        ip_address=ip_address,
        user_agent=user_agent,
        clicked_at=now,
    )
    click = crud_click.create_click(db, obj_in=click_in, commit=False)
    crud_affiliate.increment_counters(db, affiliate_id=affiliate.id, total_clicks=1)
    db.commit()
    db.refresh(click)

    cookie_duration = affiliate.cookie_duration
    expires_at = now + timedelta(days=cookie_duration)
    token = create_attribution_token(click, expires_at)
    logger.info(f"Recorded click ID: {click.id} for affiliate ID: {affiliate.id}, store: {store_id}, expires at {expires_at.isoformat()}")
    return TrackedClick(click=click, attribution_token=token, expires_at=expires_at, cookie_duration=cookie_duration)
