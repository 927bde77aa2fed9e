from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from typing import Optional

from affiliate_ledger.db.session import get_db
from affiliate_ledger.core.config import SECRET_KEY, ALGORITHM
from affiliate_ledger.crud import crud_affiliate
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.schemas.token import TokenData

# Tokens are issued by the upstream identity provider; there is no login endpoint here
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/token", auto_error=False)

async def get_current_identity_optional(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[TokenData]:
    if token is None: # No token: anonymous visitor
        return None

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: Optional[str] = payload.get("sub")
        if user_id is None:
            raise credentials_exception
        stores = payload.get("stores") or []
        return TokenData(user_id=user_id, stores=[str(s) for s in stores])
    except JWTError: # Expired, bad signature, malformed
        raise credentials_exception

async def get_current_identity(
    identity: Optional[TokenData] = Depends(get_current_identity_optional),
) -> TokenData:
    if not identity:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity

def require_store_owner(identity: TokenData, store_id: str) -> None:
    if store_id not in identity.stores:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the store owner can perform this action",
        )

def get_affiliate_or_404(db: Session, affiliate_id: int) -> Affiliate:
    affiliate = crud_affiliate.get_affiliate(db, affiliate_id)
    if affiliate is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Affiliate not found")
    return affiliate

async def get_owned_affiliate(
    affiliate_id: int,
    identity: TokenData = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> Affiliate:
    """Affiliate whose store the caller owns."""
    affiliate = get_affiliate_or_404(db, affiliate_id)
    require_store_owner(identity, affiliate.store_id)
    return affiliate

async def get_viewable_affiliate(
    affiliate_id: int,
    identity: TokenData = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> Affiliate:
    """Affiliate readable by the caller: the affiliate user themself or the store owner."""
    affiliate = get_affiliate_or_404(db, affiliate_id)
    if affiliate.affiliate_user_id != identity.user_id and affiliate.store_id not in identity.stores:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to view this affiliate",
        )
    return affiliate
