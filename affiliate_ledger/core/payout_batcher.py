"""
Payout batches: gather approved commission sales into one payout per affiliate,
send them through a payment rail and settle or revert them.

A sale can only be taken by a batch while it is approved and not held by a
payout; the take is a compare-and-set, so two overlapping batches cannot pay
the same sale twice.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session

from affiliate_ledger.core.clock import normalize_now
from affiliate_ledger.core.config import MINIMUM_PAYOUT_AMOUNT, PAYOUT_CURRENCY
from affiliate_ledger.core.errors import InvalidStateTransition, PayoutNotFound, PayoutSubmissionFailed
from affiliate_ledger.core.payout_rail import PayoutRail, get_payout_rail
from affiliate_ledger.core.states import (
    CommissionStatus,
    PayoutMethod,
    PayoutStatus,
    transition_commission,
    transition_payout,
)
from affiliate_ledger.crud import crud_affiliate, crud_commission, crud_payout
from affiliate_ledger.models.payout import Payout
from affiliate_ledger.schemas.payout import PayoutCreateInternal

logger = logging.getLogger(__name__)

def _get_payout_or_raise(db: Session, payout_id: int) -> Payout:
    payout = crud_payout.get_payout(db, payout_id)
    if payout is None:
        raise PayoutNotFound(f"Payout {payout_id} not found")
    return payout

def _move_payout(db: Session, payout: Payout, target: PayoutStatus, values: dict) -> PayoutStatus:
    """Validate and apply a status change without committing."""
    current = PayoutStatus(payout.status)
    target = transition_payout(current, target)
    values = {**values, Payout.status: target}
    if not crud_payout.set_status_if(db, payout_id=payout.id, expected=[current], values=values):
        db.rollback()
        db.refresh(payout)
        raise InvalidStateTransition("payout", payout.status, target)
    return current

def run_payout_batch(
    db: Session,
    store_id: str,
    now: Optional[datetime] = None,
    *,
    minimum_amount: Optional[Decimal] = None,
    submit: bool = False,
    rail: Optional[PayoutRail] = None,
) -> List[Payout]:
    """
    Create one pending payout per affiliate of the store holding approved,
    unpaid sales whose total reaches minimum_amount. Each payout, its sales and
    the affiliate's paid counter are committed together.

    With submit=True every new payout is sent through `rail`, or the rail
    matching the payout method when no rail is given.
    """
    now = normalize_now(now)
    minimum_amount = MINIMUM_PAYOUT_AMOUNT if minimum_amount is None else Decimal(minimum_amount)
    paid_status = transition_commission(CommissionStatus.APPROVED, CommissionStatus.PAID)
    created = []

    for affiliate_id in crud_commission.get_affiliate_ids_with_payable_sales(db, store_id=store_id):
        sales = crud_commission.get_payable_sales(db, affiliate_id=affiliate_id)
        if not sales:
            continue
        total = sum((Decimal(s.commission_amount) for s in sales), Decimal("0.00"))
        if total < minimum_amount:
            logger.info(f"Affiliate ID: {affiliate_id} below payout minimum ({total} < {minimum_amount}), carrying over")
            continue

        affiliate = crud_affiliate.get_affiliate(db, affiliate_id)
        payout = crud_payout.create_payout(
            db,
            obj_in=PayoutCreateInternal(
                affiliate_id=affiliate_id,
                store_id=store_id,
                amount=total,
                currency=PAYOUT_CURRENCY,
                sales_count=len(sales),
                payout_method=affiliate.payout_method or PayoutMethod.MANUAL,
                status=PayoutStatus.PENDING,
                created_at=now,
            ),
            commit=False,
        )
        taken = crud_commission.mark_sales_paid(
            db, sale_ids=[s.id for s in sales], payout_id=payout.id, paid_at=now, status=paid_status
        )
        if taken != len(sales):
            # A sale was reversed or taken by another batch since it was read
            db.rollback()
            logger.warning(f"Payout for affiliate ID: {affiliate_id} abandoned: {taken} of {len(sales)} sales still payable")
            continue

        crud_payout.add_payout_sales(db, payout_id=payout.id, sales=sales)
        crud_affiliate.increment_counters(db, affiliate_id=affiliate_id, total_commission_paid=total)
        db.commit()
        db.refresh(payout)
        logger.info(f"Created payout ID: {payout.id} for affiliate ID: {affiliate_id}: {payout.amount} {payout.currency} over {payout.sales_count} sale(s)")
        created.append(payout)

    logger.info(f"Payout batch for store {store_id}: {len(created)} payout(s) created")

    if submit:
        created = [submit_payout(db, payout.id, rail=rail, now=now) for payout in created]
    return created

def submit_payout(
    db: Session, payout_id: int, rail: Optional[PayoutRail] = None, now: Optional[datetime] = None
) -> Payout:
    """
    Mark the payout processing, then hand it to the rail. The rail call happens
    after the commit so no transaction is held open across the network call.
    A rail failure fails the payout and returns its sales to the approved pool.
    """
    now = normalize_now(now)
    payout = _get_payout_or_raise(db, payout_id)
    _move_payout(db, payout, PayoutStatus.PROCESSING, {})
    db.commit()
    db.refresh(payout)

    rail = rail or get_payout_rail(payout.payout_method)
    try:
        external_ref = rail.submit(payout, payout.affiliate)
    except PayoutSubmissionFailed as e:
        logger.warning(f"{e}")
        return fail_payout(db, payout.id, e.reason, now=now)
    except Exception as e:
        logger.error(f"Unexpected error submitting payout ID: {payout.id} via {rail.name}: {e}", exc_info=True)
        return fail_payout(db, payout.id, str(e), now=now)

    payout.external_ref = external_ref
    db.commit()
    db.refresh(payout)
    logger.info(f"Submitted payout ID: {payout.id} via {rail.name}, reference {external_ref}")

    if rail.settles_immediately:
        return complete_payout(db, payout.id, now=now)
    return payout

def complete_payout(
    db: Session, payout_id: int, external_ref: Optional[str] = None, now: Optional[datetime] = None
) -> Payout:
    now = normalize_now(now)
    payout = _get_payout_or_raise(db, payout_id)
    values = {Payout.completed_at: now}
    if external_ref:
        values[Payout.external_ref] = external_ref
    _move_payout(db, payout, PayoutStatus.COMPLETED, values)
    db.commit()
    db.refresh(payout)
    logger.info(f"Payout ID: {payout.id} completed ({payout.amount} {payout.currency})")
    return payout

def fail_payout(db: Session, payout_id: int, reason: str, now: Optional[datetime] = None) -> Payout:
    """
    Fail a pending or processing payout. Its sales go back to approved with the
    payout link cleared, and the affiliate's paid counter is reduced by the
    payout amount, so the next batch picks the sales up again. The payout keeps
    the list of sales it was created for.
    """
    now = normalize_now(now)
    payout = _get_payout_or_raise(db, payout_id)
    _move_payout(db, payout, PayoutStatus.FAILED, {Payout.failed_at: now, Payout.failure_reason: reason})

    released_status = transition_commission(CommissionStatus.PAID, CommissionStatus.APPROVED, payout_failed=True)
    released = crud_commission.release_sales_from_payout(db, payout_id=payout.id, status=released_status)
    crud_affiliate.increment_counters(
        db, affiliate_id=payout.affiliate_id, total_commission_paid=-Decimal(payout.amount)
    )
    db.commit()
    db.refresh(payout)
    logger.info(f"Payout ID: {payout.id} failed: {reason}. Released {released} sale(s) back to approved")
    return payout

def handle_payout_result(
    db: Session,
    external_ref: str,
    status: PayoutStatus,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Payout:
    """
    Apply a settlement result reported by the payment rail. Repeated delivery of
    the same result is a no-op.
    """
    payout = crud_payout.get_payout_by_external_ref(db, external_ref=external_ref)
    if payout is None:
        raise PayoutNotFound(f"No payout with reference {external_ref}")

    status = PayoutStatus(status)
    if payout.status == status:
        logger.info(f"Payout ID: {payout.id} already {status.value}, ignoring repeated result")
        return payout
    if status == PayoutStatus.COMPLETED:
        return complete_payout(db, payout.id, now=now)
    if status == PayoutStatus.FAILED:
        return fail_payout(db, payout.id, reason or "rejected by payment rail", now=now)
    raise ValueError(f"Unsupported payout result: {status.value}")

def run_payout_batches_for_all_stores(
    db: Session, now: Optional[datetime] = None, *, submit: bool = True
) -> List[Payout]:
    """
    Scheduled entry point. A failing store is logged and skipped so the other
    stores still get paid.
    """
    now = normalize_now(now)
    payouts = []
    for store_id in crud_commission.get_store_ids_with_payable_sales(db):
        try:
            payouts.extend(run_payout_batch(db, store_id, now, submit=submit))
        except Exception as e:
            db.rollback()
            logger.error(f"Payout batch for store {store_id} failed: {e}", exc_info=True)
    return payouts
