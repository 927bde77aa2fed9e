import pytest
from sqlalchemy.orm import Session
from datetime import timedelta

from affiliate_ledger.core.attribution_token import decode_attribution_token
from affiliate_ledger.core.click_tracker import record_click, resolve_trackable_affiliate
from affiliate_ledger.core.errors import InactiveAffiliate, UnknownAffiliateCode
from affiliate_ledger.core.states import AffiliateStatus
from affiliate_ledger.crud import crud_affiliate, crud_click
from affiliate_ledger.models.affiliate import Affiliate as AffiliateModel
from tests.conftest import T0, STORE_ID, TestingSessionLocal, create_affiliate

pytestmark = pytest.mark.core

def _record(db: Session, code: str, store_id: str = STORE_ID, now=T0):
    return record_click(
        db,
        affiliate_code=code,
        store_id=store_id,
        landing_page="https://shop.example.com/",
        visitor_id="visitor_1",
        referrer_url="https://blog.example.com/post",
        ip_address="203.0.113.5",
        user_agent="pytest",
        now=now,
    )

def test_record_click_persists_click_and_counts(db_session: Session, active_affiliate: AffiliateModel):
    tracked = _record(db_session, "ABC123")

    assert tracked is not None
    assert tracked.click.affiliate_id == active_affiliate.id
    assert tracked.click.clicked_at == T0
    assert tracked.click.converted is False
    assert tracked.click.referrer_url == "https://blog.example.com/post"
    assert tracked.cookie_duration == 30
    assert tracked.expires_at == T0 + timedelta(days=30)

    db_session.refresh(active_affiliate)
    assert active_affiliate.total_clicks == 1

def test_token_describes_the_click(db_session: Session, active_affiliate: AffiliateModel):
    tracked = _record(db_session, "ABC123")
    claims = decode_attribution_token(tracked.attribution_token)

    assert claims.click_id == tracked.click.id
    assert claims.affiliate_id == active_affiliate.id
    assert claims.affiliate_code == "ABC123"
    assert claims.store_id == STORE_ID
    assert claims.expires_at == T0 + timedelta(days=30)

def test_code_lookup_is_case_insensitive(db_session: Session, active_affiliate: AffiliateModel):
    tracked = _record(db_session, "abc123")
    assert tracked is not None
    assert tracked.click.affiliate_code == "ABC123"

def test_unknown_code_is_silent_noop(db_session: Session, active_affiliate: AffiliateModel):
    assert _record(db_session, "NOPE99") is None
    assert crud_click.count_clicks(db_session, affiliate_id=active_affiliate.id) == 0

def test_code_is_scoped_to_store(db_session: Session, active_affiliate: AffiliateModel):
    assert _record(db_session, "ABC123", store_id="other_store") is None

@pytest.mark.parametrize("status", [AffiliateStatus.PENDING, AffiliateStatus.SUSPENDED, AffiliateStatus.REJECTED])
def test_non_active_affiliate_not_tracked(db_session: Session, status: AffiliateStatus):
    affiliate = create_affiliate(db_session, affiliate_code="IDLE01", status=status)

    assert _record(db_session, "IDLE01") is None
    db_session.refresh(affiliate)
    assert affiliate.total_clicks == 0

def test_resolve_raises_specific_errors(db_session: Session):
    create_affiliate(db_session, affiliate_code="SUSP01", status=AffiliateStatus.SUSPENDED)

    with pytest.raises(UnknownAffiliateCode):
        resolve_trackable_affiliate(db_session, "MISSING", STORE_ID)
    with pytest.raises(InactiveAffiliate) as exc_info:
        resolve_trackable_affiliate(db_session, "SUSP01", STORE_ID)
    assert exc_info.value.status == "suspended"

def test_suspension_applies_to_next_click(db_session: Session, active_affiliate: AffiliateModel):
    assert _record(db_session, "ABC123") is not None

    # Suspend through a different session, as the store owner's request would
    other = TestingSessionLocal()
    try:
        crud_affiliate.set_status_if(
            other,
            affiliate_id=active_affiliate.id,
            expected=AffiliateStatus.ACTIVE,
            values={AffiliateModel.status: AffiliateStatus.SUSPENDED},
        )
        other.commit()
    finally:
        other.close()

    assert _record(db_session, "ABC123", now=T0 + timedelta(seconds=1)) is None
    # The click recorded before the suspension stays
    assert crud_click.count_clicks(db_session, affiliate_id=active_affiliate.id) == 1

def test_click_counter_increments_are_not_lost(db_session: Session, active_affiliate: AffiliateModel):
    # Two sessions holding the same stale counter value both record clicks
    first, second = TestingSessionLocal(), TestingSessionLocal()
    try:
        assert first.get(AffiliateModel, active_affiliate.id).total_clicks == 0
        assert second.get(AffiliateModel, active_affiliate.id).total_clicks == 0
        assert _record(first, "ABC123") is not None
        assert _record(second, "ABC123", now=T0 + timedelta(seconds=1)) is not None
    finally:
        first.close()
        second.close()

    db_session.refresh(active_affiliate)
    assert active_affiliate.total_clicks == 2
