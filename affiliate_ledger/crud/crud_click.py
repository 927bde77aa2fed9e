from sqlalchemy.orm import Session
from typing import Optional, List
from datetime import datetime

from affiliate_ledger.models.click import ReferralClick
from affiliate_ledger.schemas.click import ClickCreateInternal

def create_click(db: Session, *, obj_in: ClickCreateInternal, commit: bool = True) -> ReferralClick:
    """
    Create a referral click. With commit=False the row is only flushed so the
    caller can update counters in the same transaction.
    """
    data = obj_in.model_dump()
    data["affiliate_code"] = data["affiliate_code"].upper()
    db_obj = ReferralClick(**data, converted=False)
    db.add(db_obj)
    if commit:
        db.commit()
        db.refresh(db_obj)
    else:
        db.flush()
    return db_obj

def get_click(db: Session, click_id: int) -> Optional[ReferralClick]:
    return db.query(ReferralClick).filter(ReferralClick.id == click_id).first()

def get_clicks_by_affiliate(
    db: Session,
    *,
    affiliate_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[ReferralClick]:
    """
    Get clicks for an affiliate, newest first, optionally within [start, end].
    """
    query = db.query(ReferralClick).filter(ReferralClick.affiliate_id == affiliate_id)
    if start:
        query = query.filter(ReferralClick.clicked_at >= start)
    if end:
        query = query.filter(ReferralClick.clicked_at <= end)
    return query.order_by(ReferralClick.clicked_at.desc(), ReferralClick.id.desc()).offset(skip).limit(limit).all()

def count_clicks(db: Session, *, affiliate_id: int, converted: Optional[bool] = None) -> int:
    query = db.query(ReferralClick).filter(ReferralClick.affiliate_id == affiliate_id)
    if converted is not None:
        query = query.filter(ReferralClick.converted == converted)
    return query.count()

def mark_click_converted(db: Session, *, click_id: int, order_id: str) -> bool:
    """
    Flag a click as converted. Only unconverted clicks are touched, so a click
    keeps the first order it converted. Does not commit.
    Returns True if this call converted the click.
    """
    updated = (
        db.query(ReferralClick)
        .filter(ReferralClick.id == click_id, ReferralClick.converted == False)  # noqa: E712
        .update({ReferralClick.converted: True, ReferralClick.order_id: order_id}, synchronize_session=False)
    )
    return updated == 1
