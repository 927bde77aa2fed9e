import pytest
from sqlalchemy.orm import Session
from datetime import timedelta
from decimal import Decimal

from affiliate_ledger.core.click_tracker import record_click
from affiliate_ledger.core.commission_ledger import approve_commission
from affiliate_ledger.core.conversion_attributor import attribute_sale
from affiliate_ledger.core.payout_batcher import run_payout_batch
from affiliate_ledger.core.states import CommissionStatus, PayoutStatus
from affiliate_ledger.crud import crud_commission
from affiliate_ledger.models.affiliate import Affiliate as AffiliateModel
from affiliate_ledger.models.commission import CommissionSale as CommissionSaleModel
from tests.conftest import T0, STORE_ID

pytestmark = pytest.mark.core

def day(n: int):
    return T0 + timedelta(days=n)

def _visit(db: Session):
    tracked = record_click(
        db,
        affiliate_code="ABC123",
        store_id=STORE_ID,
        landing_page="https://shop.example.com/item",
        visitor_id="visitor_e2e",
        now=day(0),
    )
    assert tracked is not None
    return tracked.attribution_token

@pytest.mark.asyncio
async def test_click_purchase_approve_payout(db_session: Session, active_affiliate: AffiliateModel):
    token = _visit(db_session)

    result = await attribute_sale(db_session, order_id="order_e2e", attribution_tokens=token,
                                  order_amount=Decimal("100"), now=day(5))
    sale = crud_commission.get_sale(db_session, result.sale_id)
    assert sale.commission_amount == Decimal("20.00")
    assert sale.commission_status == CommissionStatus.PENDING

    sale = approve_commission(db_session, sale.id, now=day(6))
    assert sale.commission_status == CommissionStatus.APPROVED

    payouts = run_payout_batch(db_session, STORE_ID, now=day(30))
    assert len(payouts) == 1
    assert payouts[0].amount == Decimal("20.00")
    assert payouts[0].status == PayoutStatus.PENDING

    sale = crud_commission.get_sale(db_session, sale.id)
    assert sale.commission_status == CommissionStatus.PAID
    assert sale.payout_id == payouts[0].id

    db_session.refresh(active_affiliate)
    assert active_affiliate.total_commission_paid == Decimal("20.00")
    assert active_affiliate.total_commission_paid <= active_affiliate.total_commission_earned

@pytest.mark.asyncio
async def test_purchase_after_window_not_attributed(db_session: Session, active_affiliate: AffiliateModel):
    token = _visit(db_session)

    result = await attribute_sale(db_session, order_id="order_late", attribution_tokens=token,
                                  order_amount=Decimal("100"), now=day(31))

    assert result is None
    assert db_session.query(CommissionSaleModel).count() == 0
    db_session.refresh(active_affiliate)
    assert active_affiliate.total_sales == 0
