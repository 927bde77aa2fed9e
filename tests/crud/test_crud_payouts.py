import pytest
from sqlalchemy.orm import Session
from decimal import Decimal

from affiliate_ledger.core.states import CommissionStatus, CommissionType, PayoutMethod, PayoutStatus
from affiliate_ledger.crud import crud_commission, crud_payout
from affiliate_ledger.models.affiliate import Affiliate as AffiliateModel
from affiliate_ledger.models.payout import Payout as PayoutModel
from affiliate_ledger.schemas.commission import CommissionSaleCreate
from affiliate_ledger.schemas.payout import PayoutCreateInternal
from tests.conftest import T0, STORE_ID

pytestmark = pytest.mark.crud

def _payout(db: Session, affiliate: AffiliateModel, amount: str = "20.00") -> PayoutModel:
    return crud_payout.create_payout(db, obj_in=PayoutCreateInternal(
        affiliate_id=affiliate.id,
        store_id=affiliate.store_id,
        amount=Decimal(amount),
        sales_count=2,
        created_at=T0,
    ))

def test_create_payout_defaults(db_session: Session, active_affiliate: AffiliateModel):
    payout = _payout(db_session, active_affiliate)

    assert payout.id is not None
    assert payout.status == PayoutStatus.PENDING
    assert payout.payout_method == PayoutMethod.MANUAL
    assert payout.currency == "USD"
    assert payout.amount == Decimal("20.00")

def test_lookup_by_external_ref(db_session: Session, active_affiliate: AffiliateModel):
    payout = _payout(db_session, active_affiliate)
    crud_payout.set_status_if(
        db_session, payout_id=payout.id, expected=[PayoutStatus.PENDING],
        values={PayoutModel.status: PayoutStatus.PROCESSING, PayoutModel.external_ref: "tr_123"},
    )
    db_session.commit()

    found = crud_payout.get_payout_by_external_ref(db_session, external_ref="tr_123")
    assert found.id == payout.id
    assert found.status == PayoutStatus.PROCESSING
    assert crud_payout.get_payout_by_external_ref(db_session, external_ref="tr_missing") is None

def test_status_cas_rejects_unexpected_status(db_session: Session, active_affiliate: AffiliateModel):
    payout = _payout(db_session, active_affiliate)

    assert crud_payout.set_status_if(
        db_session, payout_id=payout.id, expected=[PayoutStatus.PROCESSING],
        values={PayoutModel.status: PayoutStatus.COMPLETED},
    ) is False
    assert crud_payout.get_payout(db_session, payout.id).status == PayoutStatus.PENDING

def test_payouts_listed_per_affiliate_and_store(db_session: Session, active_affiliate: AffiliateModel):
    first = _payout(db_session, active_affiliate, "10.00")
    second = _payout(db_session, active_affiliate, "15.00")

    by_affiliate = crud_payout.get_payouts_by_affiliate(db_session, affiliate_id=active_affiliate.id)
    assert [p.id for p in by_affiliate] == [second.id, first.id]
    assert len(crud_payout.get_payouts_by_store(db_session, store_id=STORE_ID)) == 2
    assert crud_payout.get_payouts_by_store(db_session, store_id="store_2") == []

def test_included_sales_outlive_release(db_session: Session, active_affiliate: AffiliateModel):
    sales = [
        crud_commission.create_sale(db_session, obj_in=CommissionSaleCreate(
            affiliate_id=active_affiliate.id, store_id=STORE_ID, order_id=order_id,
            order_amount=Decimal("50"), commission_rate=Decimal("20"),
            commission_type=CommissionType.PERCENTAGE, commission_amount=Decimal("10.00"),
            commission_status=CommissionStatus.APPROVED, sale_date=T0,
        ))
        for order_id in ("order_1", "order_2")
    ]
    payout = _payout(db_session, active_affiliate)
    crud_commission.mark_sales_paid(
        db_session, sale_ids=[s.id for s in sales], payout_id=payout.id, paid_at=T0, status=CommissionStatus.PAID)
    crud_payout.add_payout_sales(db_session, payout_id=payout.id, sales=sales)
    db_session.commit()

    crud_commission.release_sales_from_payout(db_session, payout_id=payout.id, status=CommissionStatus.APPROVED)
    db_session.commit()

    assert crud_commission.get_sales_by_payout(db_session, payout_id=payout.id) == []
    included = crud_payout.get_included_sales(db_session, payout_id=payout.id)
    assert [s.id for s in included] == [s.id for s in sales]
    assert [link.sale_id for link in crud_payout.get_payout(db_session, payout.id).sale_links] == [s.id for s in sales]
