from sqlalchemy.orm import Session, joinedload
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal

from affiliate_ledger.models.commission import CommissionSale
from affiliate_ledger.schemas.commission import CommissionSaleCreate
from affiliate_ledger.core.states import CommissionStatus

def create_sale(db: Session, *, obj_in: CommissionSaleCreate, commit: bool = True) -> CommissionSale:
    """
    Create a new commission sale record. With commit=False the row is added
    to the session only; the unique order_id is enforced when the caller commits.
    """
    db_obj = CommissionSale(**obj_in.model_dump())
    db.add(db_obj)
    if commit:
        db.commit()
        db.refresh(db_obj)
    return db_obj

def get_sale(db: Session, sale_id: int) -> Optional[CommissionSale]:
    """
    Get a single commission sale by ID with its affiliate eagerly loaded.
    The row is reloaded even if the session already holds it.
    """
    return (
        db.query(CommissionSale)
        .populate_existing()
        .options(joinedload(CommissionSale.affiliate))
        .filter(CommissionSale.id == sale_id)
        .first()
    )

def get_sale_by_order_id(db: Session, *, order_id: str) -> Optional[CommissionSale]:
    return db.query(CommissionSale).filter(CommissionSale.order_id == order_id).first()

def get_sales_by_affiliate(
    db: Session, *, affiliate_id: int, status: Optional[CommissionStatus] = None, skip: int = 0, limit: int = 100
) -> List[CommissionSale]:
    """
    Get commission sales for an affiliate, newest first, optionally filtered by status.
    """
    query = db.query(CommissionSale).filter(CommissionSale.affiliate_id == affiliate_id)
    if status:
        query = query.filter(CommissionSale.commission_status == status)
    return query.order_by(CommissionSale.sale_date.desc(), CommissionSale.id.desc()).offset(skip).limit(limit).all()

def get_sales_by_payout(db: Session, *, payout_id: int) -> List[CommissionSale]:
    return db.query(CommissionSale).filter(CommissionSale.payout_id == payout_id).order_by(CommissionSale.id).all()

def get_pending_sales_before(db: Session, *, cutoff: datetime) -> List[CommissionSale]:
    """
    Pending sales whose sale date is at or before the cutoff, oldest first.
    """
    return (
        db.query(CommissionSale)
        .filter(
            CommissionSale.commission_status == CommissionStatus.PENDING,
            CommissionSale.sale_date <= cutoff,
        )
        .order_by(CommissionSale.sale_date.asc(), CommissionSale.id.asc())
        .all()
    )

def get_payable_sales(db: Session, *, affiliate_id: int) -> List[CommissionSale]:
    """
    Approved sales not held by any payout. Orders by sale date ascending to pay older ones first.
    """
    return (
        db.query(CommissionSale)
        .filter(
            CommissionSale.affiliate_id == affiliate_id,
            CommissionSale.commission_status == CommissionStatus.APPROVED,
            CommissionSale.payout_id.is_(None),
        )
        .order_by(CommissionSale.sale_date.asc(), CommissionSale.id.asc())
        .all()
    )

def get_affiliate_ids_with_payable_sales(db: Session, *, store_id: str) -> List[int]:
    query = (
        db.query(CommissionSale.affiliate_id)
        .filter(
            CommissionSale.store_id == store_id,
            CommissionSale.commission_status == CommissionStatus.APPROVED,
            CommissionSale.payout_id.is_(None),
        )
        .distinct()
        .order_by(CommissionSale.affiliate_id)
    )
    return [row[0] for row in query.all()]

def get_store_ids_with_payable_sales(db: Session) -> List[str]:
    query = (
        db.query(CommissionSale.store_id)
        .filter(
            CommissionSale.commission_status == CommissionStatus.APPROVED,
            CommissionSale.payout_id.is_(None),
        )
        .distinct()
        .order_by(CommissionSale.store_id)
    )
    return [row[0] for row in query.all()]

def set_status_if(
    db: Session,
    *,
    sale_id: int,
    expected: List[CommissionStatus],
    values: dict,
) -> bool:
    """
    Compare-and-set update: apply values only while the sale is still in one of
    the expected statuses. Does not commit. Returns True if the row was updated.
    """
    updated = (
        db.query(CommissionSale)
        .filter(CommissionSale.id == sale_id, CommissionSale.commission_status.in_(expected))
        .update(values, synchronize_session=False)
    )
    return updated == 1

def mark_sales_paid(
    db: Session, *, sale_ids: List[int], payout_id: int, paid_at: datetime, status: CommissionStatus
) -> int:
    """
    Attach approved, unheld sales to a payout and move them to `status`, the
    target the caller got from transition_commission. Does not commit.
    Returns the number of rows updated; fewer than len(sale_ids) means another
    writer changed some of them.
    """
    return (
        db.query(CommissionSale)
        .filter(
            CommissionSale.id.in_(sale_ids),
            CommissionSale.commission_status == CommissionStatus.APPROVED,
            CommissionSale.payout_id.is_(None),
        )
        .update(
            {
                CommissionSale.commission_status: status,
                CommissionSale.payout_id: payout_id,
                CommissionSale.paid_at: paid_at,
            },
            synchronize_session=False,
        )
    )

def release_sales_from_payout(db: Session, *, payout_id: int, status: CommissionStatus) -> int:
    """
    Detach a failed payout's sales and move them to `status`. The payout keeps
    its own record of them in affiliate_payout_sale. Does not commit.
    """
    return (
        db.query(CommissionSale)
        .filter(
            CommissionSale.payout_id == payout_id,
            CommissionSale.commission_status == CommissionStatus.PAID,
        )
        .update(
            {
                CommissionSale.commission_status: status,
                CommissionSale.payout_id: None,
                CommissionSale.paid_at: None,
            },
            synchronize_session=False,
        )
    )

def get_commission_totals_by_status(db: Session, *, affiliate_id: int) -> Dict[CommissionStatus, Decimal]:
    """
    Sum of commission_amount per status for an affiliate. Summed in Python so
    the result keeps Decimal precision on every backend.
    """
    totals = {status: Decimal("0.00") for status in CommissionStatus}
    rows = (
        db.query(CommissionSale.commission_status, CommissionSale.commission_amount)
        .filter(CommissionSale.affiliate_id == affiliate_id)
        .all()
    )
    for status, amount in rows:
        totals[CommissionStatus(status)] += Decimal(amount)
    return totals
