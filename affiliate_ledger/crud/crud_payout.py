from sqlalchemy.orm import Session, joinedload
from typing import Optional, List

from affiliate_ledger.models.commission import CommissionSale
from affiliate_ledger.models.payout import Payout, PayoutSale
from affiliate_ledger.schemas.payout import PayoutCreateInternal
from affiliate_ledger.core.states import PayoutStatus

def create_payout(db: Session, *, obj_in: PayoutCreateInternal, commit: bool = True) -> Payout:
    db_obj = Payout(**obj_in.model_dump())
    db.add(db_obj)
    if commit:
        db.commit()
        db.refresh(db_obj)
    else:
        db.flush() # Assigns the id so sales can reference the payout
    return db_obj

def get_payout(db: Session, payout_id: int) -> Optional[Payout]:
    return (
        db.query(Payout)
        .populate_existing()
        .options(joinedload(Payout.affiliate))
        .filter(Payout.id == payout_id)
        .first()
    )

def get_payout_by_external_ref(db: Session, *, external_ref: str) -> Optional[Payout]:
    return db.query(Payout).filter(Payout.external_ref == external_ref).first()

def get_payouts_by_affiliate(db: Session, *, affiliate_id: int, skip: int = 0, limit: int = 100) -> List[Payout]:
    return (
        db.query(Payout)
        .filter(Payout.affiliate_id == affiliate_id)
        .order_by(Payout.created_at.desc(), Payout.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

def get_payouts_by_store(db: Session, *, store_id: str, skip: int = 0, limit: int = 100) -> List[Payout]:
    return (
        db.query(Payout)
        .filter(Payout.store_id == store_id)
        .order_by(Payout.created_at.desc(), Payout.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

def set_status_if(db: Session, *, payout_id: int, expected: List[PayoutStatus], values: dict) -> bool:
    """
    Compare-and-set update on the payout status. Does not commit.
    Returns True if the row was updated.
    """
    updated = (
        db.query(Payout)
        .filter(Payout.id == payout_id, Payout.status.in_(expected))
        .update(values, synchronize_session=False)
    )
    return updated == 1

def add_payout_sales(db: Session, *, payout_id: int, sales: List[CommissionSale]) -> None:
    """
    Record which sales a payout was created for. Does not commit; written in
    the same transaction that marks the sales paid.
    """
    db.add_all([
        PayoutSale(payout_id=payout_id, sale_id=sale.id, commission_amount=sale.commission_amount)
        for sale in sales
    ])

def get_included_sales(db: Session, *, payout_id: int) -> List[CommissionSale]:
    """
    Sales the payout was created for, whatever its status. Unlike the sales'
    current payout_id, this survives a failed payout.
    """
    return (
        db.query(CommissionSale)
        .join(PayoutSale, PayoutSale.sale_id == CommissionSale.id)
        .filter(PayoutSale.payout_id == payout_id)
        .order_by(CommissionSale.id)
        .all()
    )
