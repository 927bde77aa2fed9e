import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from sqlalchemy.orm import Session

from affiliate_ledger.core.clock import normalize_now
from affiliate_ledger.core.config import COMMISSION_HOLD_DAYS
from affiliate_ledger.core.errors import AffiliateNotFound, CommissionSaleNotFound, InvalidStateTransition
from affiliate_ledger.core.states import CommissionStatus, transition_commission
from affiliate_ledger.crud import crud_affiliate, crud_click, crud_commission
from affiliate_ledger.models.commission import CommissionSale
from affiliate_ledger.schemas.affiliate import AffiliateStats
from affiliate_ledger.schemas.commission import CommissionSale as CommissionSaleSchema

logger = logging.getLogger(__name__)

RECENT_SALES_LIMIT = 10

def _get_sale_or_raise(db: Session, sale_id: int) -> CommissionSale:
    sale = crud_commission.get_sale(db, sale_id)
    if sale is None:
        raise CommissionSaleNotFound(f"Commission sale {sale_id} not found")
    return sale

def approve_commission(db: Session, sale_id: int, now: Optional[datetime] = None) -> CommissionSale:
    """
    Move a sale from pending to approved. Used both by the store owner's manual
    approval and by the hold-period job, so there is one path into 'approved'.
    """
    now = normalize_now(now)
    sale = _get_sale_or_raise(db, sale_id)
    target = transition_commission(sale.commission_status, CommissionStatus.APPROVED)

    updated = crud_commission.set_status_if(
        db,
        sale_id=sale.id,
        expected=[CommissionStatus.PENDING],
        values={CommissionSale.commission_status: target, CommissionSale.approved_at: now},
    )
    if not updated:
        # Someone else moved the sale between the read and the write
        db.rollback()
        db.refresh(sale)
        raise InvalidStateTransition("commission sale", sale.commission_status, target)
    db.commit()
    db.refresh(sale)
    logger.info(f"Approved commission sale ID: {sale.id} (order {sale.order_id}), amount {sale.commission_amount}")
    return sale

def approve_matured_commissions(
    db: Session, now: Optional[datetime] = None, hold_days: int = COMMISSION_HOLD_DAYS
) -> List[CommissionSale]:
    """
    Approve every pending sale whose hold period has elapsed. Sales that change
    state concurrently are skipped rather than failing the whole run.
    """
    now = normalize_now(now)
    cutoff = now - timedelta(days=hold_days)
    approved = []
    for sale in crud_commission.get_pending_sales_before(db, cutoff=cutoff):
        try:
            approved.append(approve_commission(db, sale.id, now=now))
        except InvalidStateTransition as e:
            logger.warning(f"Skipping automatic approval of sale ID: {sale.id}: {e}")
    logger.info(f"Automatic approval: {len(approved)} sale(s) approved with hold cutoff {cutoff.isoformat()}")
    return approved

def reverse_commission(db: Session, sale_id: int, reason: str, now: Optional[datetime] = None) -> CommissionSale:
    """
    Reverse a pending or approved sale (refund, chargeback). The record is kept;
    the affiliate's sales, revenue and earned counters are reduced by the sale.
    Paid sales cannot be reversed.
    """
    now = normalize_now(now)
    sale = _get_sale_or_raise(db, sale_id)
    current = CommissionStatus(sale.commission_status)
    target = transition_commission(current, CommissionStatus.REVERSED)

    updated = crud_commission.set_status_if(
        db,
        sale_id=sale.id,
        expected=[CommissionStatus.PENDING, CommissionStatus.APPROVED],
        values={
            CommissionSale.commission_status: target,
            CommissionSale.reversed_at: now,
            CommissionSale.reversal_reason: reason,
        },
    )
    if not updated:
        db.rollback()
        db.refresh(sale)
        raise InvalidStateTransition("commission sale", sale.commission_status, target)

    crud_affiliate.increment_counters(
        db,
        affiliate_id=sale.affiliate_id,
        total_sales=-1,
        total_revenue=-Decimal(sale.order_amount),
        total_commission_earned=-Decimal(sale.commission_amount),
    )
    db.commit()
    db.refresh(sale)
    logger.info(f"Reversed commission sale ID: {sale.id} (was {current.value}): {reason}")
    return sale

def get_affiliate_stats(db: Session, affiliate_id: int) -> AffiliateStats:
    affiliate = crud_affiliate.get_affiliate(db, affiliate_id)
    if affiliate is None:
        raise AffiliateNotFound(f"Affiliate {affiliate_id} not found")

    total_clicks = crud_click.count_clicks(db, affiliate_id=affiliate.id)
    converted_clicks = crud_click.count_clicks(db, affiliate_id=affiliate.id, converted=True)
    if total_clicks:
        conversion_rate = (Decimal(converted_clicks) * 100 / Decimal(total_clicks)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
    else:
        conversion_rate = Decimal("0.00")

    totals = crud_commission.get_commission_totals_by_status(db, affiliate_id=affiliate.id)
    recent = crud_commission.get_sales_by_affiliate(db, affiliate_id=affiliate.id, limit=RECENT_SALES_LIMIT)

    return AffiliateStats(
        affiliate_id=affiliate.id,
        status=affiliate.status,
        total_clicks=total_clicks,
        converted_clicks=converted_clicks,
        conversion_rate=conversion_rate,
        total_sales=affiliate.total_sales,
        total_revenue=affiliate.total_revenue,
        pending_commission=totals[CommissionStatus.PENDING],
        approved_commission=totals[CommissionStatus.APPROVED],
        paid_commission=totals[CommissionStatus.PAID],
        total_earnings=affiliate.total_commission_earned,
        total_commission_paid=affiliate.total_commission_paid,
        available_for_payout=totals[CommissionStatus.APPROVED],
        recent_sales=[CommissionSaleSchema.model_validate(s) for s in recent],
    )
