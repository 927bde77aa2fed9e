from sqlalchemy.orm import Session
from typing import Optional, List

from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.schemas.affiliate import AffiliateCreateInternal, AffiliateSettingsUpdate
from affiliate_ledger.core.states import AffiliateStatus

COUNTER_FIELDS = (
    "total_clicks",
    "total_sales",
    "total_revenue",
    "total_commission_earned",
    "total_commission_paid",
)

REQUIRED_SETTINGS = ("commission_rate", "commission_type", "cookie_duration")

def get_affiliate(db: Session, affiliate_id: int) -> Optional[Affiliate]:
    """
    Always reloads the row, so a status change committed by another session is
    seen even if this session already holds the affiliate.
    """
    return db.query(Affiliate).populate_existing().filter(Affiliate.id == affiliate_id).first()

def get_affiliate_by_code(db: Session, *, store_id: str, affiliate_code: str) -> Optional[Affiliate]:
    """
    Codes are stored upper-cased, so lookups are case-insensitive for visitors.
    Reloads the row like get_affiliate.
    """
    return (
        db.query(Affiliate)
        .populate_existing()
        .filter(Affiliate.store_id == store_id, Affiliate.affiliate_code == affiliate_code.upper())
        .first()
    )

def affiliate_code_exists(db: Session, *, store_id: str, affiliate_code: str) -> bool:
    return get_affiliate_by_code(db, store_id=store_id, affiliate_code=affiliate_code) is not None

def get_affiliate_for_user_in_store(db: Session, *, affiliate_user_id: str, store_id: str) -> Optional[Affiliate]:
    return (
        db.query(Affiliate)
        .filter(Affiliate.affiliate_user_id == affiliate_user_id, Affiliate.store_id == store_id)
        .first()
    )

def get_affiliates_by_user(db: Session, *, affiliate_user_id: str) -> List[Affiliate]:
    return (
        db.query(Affiliate)
        .filter(Affiliate.affiliate_user_id == affiliate_user_id)
        .order_by(Affiliate.created_at.desc())
        .all()
    )

def get_affiliates_by_store(
    db: Session, *, store_id: str, status: Optional[AffiliateStatus] = None, skip: int = 0, limit: int = 100
) -> List[Affiliate]:
    """
    Get affiliates of a store, best performers (by revenue driven) first.
    """
    query = db.query(Affiliate).filter(Affiliate.store_id == store_id)
    if status:
        query = query.filter(Affiliate.status == status)
    return query.order_by(Affiliate.total_revenue.desc(), Affiliate.id).offset(skip).limit(limit).all()

def create_affiliate(db: Session, *, obj_in: AffiliateCreateInternal) -> Affiliate:
    db_obj = Affiliate(
        **obj_in.model_dump(),
        total_clicks=0,
        total_sales=0,
        total_revenue=0,
        total_commission_earned=0,
        total_commission_paid=0,
    )
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def update_affiliate(db: Session, *, db_obj: Affiliate, obj_in: AffiliateSettingsUpdate) -> Affiliate:
    update_data = obj_in.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is None and field in REQUIRED_SETTINGS:
            continue
        setattr(db_obj, field, value)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def increment_counters(db: Session, *, affiliate_id: int, **deltas) -> int:
    """
    Apply deltas to the affiliate's aggregate counters as a single
    UPDATE ... SET col = col + :delta statement. Negative deltas decrement.

    Does not commit; the caller owns the transaction. Returns the row count.
    """
    unknown = set(deltas) - set(COUNTER_FIELDS)
    if unknown:
        raise ValueError(f"Unknown affiliate counters: {sorted(unknown)}")

    values = {
        getattr(Affiliate, field): getattr(Affiliate, field) + delta
        for field, delta in deltas.items()
        if delta
    }
    if not values:
        return 0
    return (
        db.query(Affiliate)
        .filter(Affiliate.id == affiliate_id)
        .update(values, synchronize_session=False)
    )

def set_status_if(db: Session, *, affiliate_id: int, expected: AffiliateStatus, values: dict) -> bool:
    """
    Compare-and-set: apply values only while the affiliate is still in the
    expected status. Does not commit. Returns True if the row was updated.
    """
    updated = (
        db.query(Affiliate)
        .filter(Affiliate.id == affiliate_id, Affiliate.status == expected)
        .update(values, synchronize_session=False)
    )
    return updated == 1
