import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from decimal import Decimal
import logging

from affiliate_ledger import schemas
from affiliate_ledger.core import payout_batcher
from affiliate_ledger.core.config import STRIPE_WEBHOOK_SECRET
from affiliate_ledger.core.dependencies import get_current_identity, require_store_owner
from affiliate_ledger.core.errors import InvalidStateTransition, PayoutNotFound
from affiliate_ledger.core.states import PayoutStatus
from affiliate_ledger.crud import crud_payout
from affiliate_ledger.db.session import get_db
from affiliate_ledger.models.payout import Payout as PayoutModel

logger = logging.getLogger(__name__)
router = APIRouter()

# Stripe transfer events and the payout result each one reports
STRIPE_TRANSFER_EVENTS = {
    "transfer.paid": PayoutStatus.COMPLETED,
    "transfer.failed": PayoutStatus.FAILED,
    "transfer.reversed": PayoutStatus.FAILED,
}

def _get_payout_or_404(db: Session, payout_id: int) -> PayoutModel:
    payout = crud_payout.get_payout(db, payout_id)
    if not payout:
        raise HTTPException(status_code=404, detail="Payout not found")
    return payout

@router.post("/stores/{store_id}/run", response_model=List[schemas.PayoutSchema])
def run_store_payout_batch(
    store_id: str,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
    minimum_amount: Optional[Decimal] = Query(None, ge=0),
    submit: bool = Query(True),
):
    """
    Batch the store's approved commissions into payouts now instead of waiting
    for the schedule. Running it again without new approvals creates nothing.
    """
    require_store_owner(identity, store_id)
    logger.info(f"User {identity.user_id} running payout batch for store {store_id}")
    return payout_batcher.run_payout_batch(db, store_id, minimum_amount=minimum_amount, submit=submit)

@router.get("/stores/{store_id}", response_model=List[schemas.PayoutSchema])
def read_store_payouts(
    store_id: str,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
):
    require_store_owner(identity, store_id)
    return crud_payout.get_payouts_by_store(db, store_id=store_id, skip=skip, limit=limit)

@router.get("/{payout_id}", response_model=schemas.PayoutSchema)
def read_payout(
    payout_id: int,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
):
    payout = _get_payout_or_404(db, payout_id)
    if payout.affiliate.affiliate_user_id != identity.user_id and payout.store_id not in identity.stores:
        raise HTTPException(status_code=403, detail="Not authorized to view this payout")
    return payout

@router.get("/{payout_id}/sales", response_model=List[schemas.CommissionSaleSchema])
def read_payout_sales(
    payout_id: int,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
):
    """
    Sales the payout was created for. A failed payout still lists them even
    though they are back in the approved pool.
    """
    payout = _get_payout_or_404(db, payout_id)
    if payout.affiliate.affiliate_user_id != identity.user_id and payout.store_id not in identity.stores:
        raise HTTPException(status_code=403, detail="Not authorized to view this payout")
    return crud_payout.get_included_sales(db, payout_id=payout.id)

@router.post("/{payout_id}/complete", response_model=schemas.PayoutSchema)
def complete_payout(
    payout_id: int,
    complete_in: Optional[schemas.PayoutComplete] = None,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
):
    """
    Store owner confirms a manually sent payout.
    """
    payout = _get_payout_or_404(db, payout_id)
    require_store_owner(identity, payout.store_id)
    external_ref = complete_in.external_ref if complete_in else None
    return payout_batcher.complete_payout(db, payout.id, external_ref=external_ref)

@router.post("/{payout_id}/fail", response_model=schemas.PayoutSchema)
def fail_payout(
    payout_id: int,
    fail_in: schemas.PayoutFail,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
):
    """
    Store owner reports that a payout did not go through; its sales return to
    the approved pool for the next batch.
    """
    payout = _get_payout_or_404(db, payout_id)
    require_store_owner(identity, payout.store_id)
    return payout_batcher.fail_payout(db, payout.id, reason=fail_in.reason)

@router.post("/webhook/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
):
    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(payload, stripe_signature, STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.warning(f"Invalid Stripe webhook payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Stripe webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event["type"]
    result = STRIPE_TRANSFER_EVENTS.get(event_type)
    if result is None:
        logger.info(f"Unhandled Stripe webhook event type: {event_type}")
        return {"status": "ignored", "event_type": event_type}

    transfer = event["data"]["object"]
    try:
        payout = payout_batcher.handle_payout_result(
            db, transfer["id"], result, reason=f"Stripe {event_type}"
        )
    except PayoutNotFound:
        logger.warning(f"No payout found for transfer {transfer['id']}")
        return {"status": "ignored", "reason": "payout_not_found"}
    except InvalidStateTransition as e:
        logger.warning(f"Stripe {event_type} for transfer {transfer['id']} not applied: {e}")
        return {"status": "ignored", "reason": str(e)}

    return {"status": "processed", "payout_id": payout.id, "payout_status": payout.status.value}
