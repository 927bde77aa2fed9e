from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from affiliate_ledger import schemas
from affiliate_ledger.core import affiliate_lifecycle, commission_ledger
from affiliate_ledger.core.dependencies import (
    get_current_identity,
    get_owned_affiliate,
    get_viewable_affiliate,
    require_store_owner,
)
from affiliate_ledger.core.states import AffiliateStatus, CommissionStatus
from affiliate_ledger.crud import crud_affiliate, crud_click, crud_commission, crud_payout
from affiliate_ledger.db.session import get_db
from affiliate_ledger.models.affiliate import Affiliate as AffiliateModel

router = APIRouter()

# Settings an affiliate may change on their own account; the rest belong to the store owner
AFFILIATE_EDITABLE_SETTINGS = {"payout_method", "payout_email", "stripe_connect_id"}

@router.post("/apply", response_model=schemas.AffiliateSchema, status_code=201)
def apply_to_store(
    application_in: schemas.AffiliateApply,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
):
    """
    Apply to become an affiliate of a store. The application starts pending.
    """
    return affiliate_lifecycle.apply_for_affiliate(
        db,
        affiliate_user_id=identity.user_id,
        store_id=application_in.store_id,
        creator_id=application_in.creator_id,
        affiliate_code=application_in.affiliate_code,
        application_note=application_in.application_note,
    )

@router.get("/me", response_model=List[schemas.AffiliateSchema])
def read_my_affiliations(
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
):
    """
    Every store the caller is (or applied to be) an affiliate of.
    """
    return crud_affiliate.get_affiliates_by_user(db, affiliate_user_id=identity.user_id)

@router.get("/store/{store_id}", response_model=List[schemas.AffiliateSchema])
def read_store_affiliates(
    store_id: str,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
    status: Optional[AffiliateStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
):
    require_store_owner(identity, store_id)
    return crud_affiliate.get_affiliates_by_store(db, store_id=store_id, status=status, skip=skip, limit=limit)

@router.get("/{affiliate_id}/stats", response_model=schemas.AffiliateStats)
def read_affiliate_stats(
    affiliate: AffiliateModel = Depends(get_viewable_affiliate),
    db: Session = Depends(get_db),
):
    return commission_ledger.get_affiliate_stats(db, affiliate.id)

@router.get("/{affiliate_id}/sales", response_model=List[schemas.CommissionSaleSchema])
def read_affiliate_sales(
    affiliate: AffiliateModel = Depends(get_viewable_affiliate),
    db: Session = Depends(get_db),
    status: Optional[CommissionStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
):
    return crud_commission.get_sales_by_affiliate(db, affiliate_id=affiliate.id, status=status, skip=skip, limit=limit)

@router.get("/{affiliate_id}/payouts", response_model=List[schemas.PayoutSchema])
def read_affiliate_payouts(
    affiliate: AffiliateModel = Depends(get_viewable_affiliate),
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
):
    return crud_payout.get_payouts_by_affiliate(db, affiliate_id=affiliate.id, skip=skip, limit=limit)

@router.get("/{affiliate_id}/clicks", response_model=List[schemas.ReferralClickSchema])
def read_affiliate_clicks(
    affiliate: AffiliateModel = Depends(get_viewable_affiliate),
    db: Session = Depends(get_db),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
):
    return crud_click.get_clicks_by_affiliate(
        db, affiliate_id=affiliate.id, start=start, end=end, skip=skip, limit=limit
    )

@router.post("/{affiliate_id}/approve", response_model=schemas.AffiliateSchema)
def approve_application(
    approve_in: Optional[schemas.AffiliateApprove] = None,
    affiliate: AffiliateModel = Depends(get_owned_affiliate),
    db: Session = Depends(get_db),
):
    commission_rate = approve_in.commission_rate if approve_in else None
    return affiliate_lifecycle.approve_affiliate(db, affiliate.id, commission_rate=commission_rate)

@router.post("/{affiliate_id}/reject", response_model=schemas.AffiliateSchema)
def reject_application(
    reject_in: schemas.AffiliateReject,
    affiliate: AffiliateModel = Depends(get_owned_affiliate),
    db: Session = Depends(get_db),
):
    return affiliate_lifecycle.reject_affiliate(db, affiliate.id, reason=reject_in.reason)

@router.post("/{affiliate_id}/suspend", response_model=schemas.AffiliateSchema)
def suspend(
    affiliate: AffiliateModel = Depends(get_owned_affiliate),
    db: Session = Depends(get_db),
):
    return affiliate_lifecycle.suspend_affiliate(db, affiliate.id)

@router.post("/{affiliate_id}/reactivate", response_model=schemas.AffiliateSchema)
def reactivate(
    affiliate: AffiliateModel = Depends(get_owned_affiliate),
    db: Session = Depends(get_db),
):
    return affiliate_lifecycle.reactivate_affiliate(db, affiliate.id)

@router.patch("/{affiliate_id}/settings", response_model=schemas.AffiliateSchema)
def update_settings(
    settings_in: schemas.AffiliateSettingsUpdate,
    affiliate: AffiliateModel = Depends(get_viewable_affiliate),
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
):
    """
    The store owner may change any setting. The affiliate may only change
    their own payout details.
    """
    if affiliate.store_id not in identity.stores:
        changed = set(settings_in.model_dump(exclude_unset=True))
        if not changed <= AFFILIATE_EDITABLE_SETTINGS:
            raise HTTPException(
                status_code=403,
                detail="Only the store owner can change commission terms or the attribution window",
            )
    return affiliate_lifecycle.update_affiliate_settings(db, affiliate.id, settings_in)
