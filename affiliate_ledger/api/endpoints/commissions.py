from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from affiliate_ledger import schemas
from affiliate_ledger.core import commission_ledger
from affiliate_ledger.core.dependencies import get_current_identity, require_store_owner
from affiliate_ledger.crud import crud_commission
from affiliate_ledger.db.session import get_db
from affiliate_ledger.models.commission import CommissionSale as CommissionSaleModel

router = APIRouter()

def _get_sale_or_404(db: Session, sale_id: int) -> CommissionSaleModel:
    sale = crud_commission.get_sale(db, sale_id)
    if not sale:
        raise HTTPException(status_code=404, detail="Commission sale not found")
    return sale

@router.get("/{sale_id}", response_model=schemas.CommissionSaleSchema)
def read_commission_sale(
    sale_id: int,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
):
    """
    A commission sale is visible to the affiliate who earned it and to the store owner.
    """
    sale = _get_sale_or_404(db, sale_id)
    if sale.affiliate.affiliate_user_id != identity.user_id and sale.store_id not in identity.stores:
        raise HTTPException(status_code=403, detail="Not authorized to view this commission sale")
    return sale

@router.post("/{sale_id}/approve", response_model=schemas.CommissionSaleSchema)
def approve_commission_sale(
    sale_id: int,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
):
    sale = _get_sale_or_404(db, sale_id)
    require_store_owner(identity, sale.store_id)
    return commission_ledger.approve_commission(db, sale.id)

@router.post("/{sale_id}/reverse", response_model=schemas.CommissionSaleSchema)
def reverse_commission_sale(
    sale_id: int,
    reverse_in: schemas.CommissionReverse,
    db: Session = Depends(get_db),
    identity: schemas.TokenData = Depends(get_current_identity),
):
    """
    Reverse a pending or approved sale after a refund or chargeback. Paid sales
    cannot be reversed (409).
    """
    sale = _get_sale_or_404(db, sale_id)
    require_store_owner(identity, sale.store_id)
    return commission_ledger.reverse_commission(db, sale.id, reason=reverse_in.reason)
