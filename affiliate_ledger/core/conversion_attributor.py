import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Union
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from affiliate_ledger.core.attribution_token import decode_attribution_token
from affiliate_ledger.core.clock import normalize_now
from affiliate_ledger.core.errors import DuplicateAttribution, InactiveAffiliate, InvalidAttributionToken
from affiliate_ledger.core.states import AffiliateStatus, CommissionStatus, CommissionType, ItemType
from affiliate_ledger.crud import crud_affiliate, crud_click, crud_commission
from affiliate_ledger.models.click import ReferralClick
from affiliate_ledger.models.commission import CommissionSale
from affiliate_ledger.schemas.commission import AttributionResult, CommissionSaleCreate

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

def compute_commission(
    order_amount: Decimal,
    commission_type: CommissionType,
    commission_rate: Decimal,
    fixed_commission_amount: Optional[Decimal] = None,
) -> Decimal:
    if CommissionType(commission_type) == CommissionType.PERCENTAGE:
        amount = Decimal(order_amount) * Decimal(commission_rate) / Decimal(100)
    else:
        amount = Decimal(fixed_commission_amount or 0)
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)

def _result_from_sale(sale: CommissionSale, duplicate: bool = False) -> AttributionResult:
    return AttributionResult(
        affiliate_id=sale.affiliate_id,
        sale_id=sale.id,
        order_id=sale.order_id,
        commission_amount=sale.commission_amount,
        duplicate=duplicate,
    )

def _duplicate(existing: CommissionSale) -> AttributionResult:
    logger.info(f"{DuplicateAttribution(existing.order_id)}; keeping commission sale ID: {existing.id}")
    return _result_from_sale(existing, duplicate=True)

def select_last_click(
    db: Session, tokens: Sequence[str], now: datetime, store_id: Optional[str] = None
) -> Optional[ReferralClick]:
    """
    Validate every token the visitor carries and return the most recent click
    among the valid ones (last click wins; ties broken by the later click id).
    """
    candidates = []
    for token in tokens:
        try:
            claims = decode_attribution_token(token)
        except InvalidAttributionToken as e:
            logger.warning(f"Ignoring attribution token: {e}")
            continue
        if now > claims.expires_at:
            logger.info(f"Attribution token for click ID: {claims.click_id} expired at {claims.expires_at.isoformat()}")
            continue
        if store_id is not None and claims.store_id != store_id:
            logger.info(f"Attribution token for click ID: {claims.click_id} belongs to store {claims.store_id}, not {store_id}")
            continue
        click = crud_click.get_click(db, claims.click_id)
        if click is None or click.affiliate_id != claims.affiliate_id:
            logger.warning(f"Attribution token references unknown click ID: {claims.click_id}")
            continue
        candidates.append(click)

    if not candidates:
        return None
    return max(candidates, key=lambda c: (c.clicked_at, c.id))

async def attribute_sale(
    db: Session,
    *,
    order_id: str,
    attribution_tokens: Union[str, Sequence[str], None],
    order_amount: Decimal,
    now: Optional[datetime] = None,
    store_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    item_type: ItemType = ItemType.PRODUCT,
    item_id: Optional[str] = None,
) -> Optional[AttributionResult]:
    """
    Attribute a completed order to the affiliate of the visitor's last valid click.

    Returns None when nothing qualifies. Idempotent per order_id: a repeated call
    returns the existing attribution (duplicate=True) and leaves counters alone.
    """
    now = normalize_now(now)
    order_amount = Decimal(order_amount)
    logger.info(f"Starting attribution for order ID: {order_id}")

    existing = crud_commission.get_sale_by_order_id(db, order_id=order_id)
    if existing:
        return _duplicate(existing)

    if isinstance(attribution_tokens, str):
        tokens = [attribution_tokens]
    else:
        tokens = [t for t in (attribution_tokens or []) if t]
    if not tokens:
        logger.info(f"Order ID: {order_id} carries no attribution token. Not attributed.")
        return None

    click = select_last_click(db, tokens, now, store_id=store_id)
    if click is None:
        logger.info(f"Order ID: {order_id} has no valid, unexpired attribution. Not attributed.")
        return None

    affiliate = crud_affiliate.get_affiliate(db, click.affiliate_id)
    if affiliate is None or affiliate.status != AffiliateStatus.ACTIVE:
        status = affiliate.status if affiliate else "missing"
        logger.info(f"Order ID: {order_id} not attributed: {InactiveAffiliate(click.affiliate_id, status)}")
        return None

    # Terms are snapshotted onto the sale; later rate changes do not touch it
    commission_amount = compute_commission(
        order_amount, affiliate.commission_type, affiliate.commission_rate, affiliate.fixed_commission_amount
    )
    sale_in = CommissionSaleCreate(
        affiliate_id=affiliate.id,
        store_id=affiliate.store_id,
        click_id=click.id,
        order_id=order_id,
        customer_id=customer_id,
        item_type=item_type,
        item_id=item_id,
        order_amount=order_amount,
        commission_rate=affiliate.commission_rate,
        commission_type=affiliate.commission_type,
        commission_amount=commission_amount,
        commission_status=CommissionStatus.PENDING,
        sale_date=now,
    )

    try:
        sale = crud_commission.create_sale(db, obj_in=sale_in, commit=False)
        crud_click.mark_click_converted(db, click_id=click.id, order_id=order_id)
        crud_affiliate.increment_counters(
            db,
            affiliate_id=affiliate.id,
            total_sales=1,
            total_revenue=order_amount,
            total_commission_earned=commission_amount,
        )
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent attribution of the same order
        db.rollback()
        existing = crud_commission.get_sale_by_order_id(db, order_id=order_id)
        if existing is None:
            raise
        return _duplicate(existing)

    db.refresh(sale)
    logger.info(
        f"Attributed order ID: {order_id} to affiliate ID: {sale.affiliate_id} via click ID: {click.id}, "
        f"commission: {sale.commission_amount}"
    )
    return _result_from_sale(sale)
