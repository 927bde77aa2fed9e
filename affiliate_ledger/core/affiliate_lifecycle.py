"""
Affiliate applications, codes and the store owner's lifecycle actions.

Every status change goes through transition_affiliate and is written with a
compare-and-set on the current status, so two owners acting at once cannot
both succeed.
"""
import logging
import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from affiliate_ledger.core.clock import normalize_now
from affiliate_ledger.core.config import DEFAULT_COMMISSION_RATE, DEFAULT_COOKIE_DURATION_DAYS
from affiliate_ledger.core.errors import AffiliateAlreadyExists, AffiliateNotFound, InvalidCommissionTerms, InvalidStateTransition
from affiliate_ledger.core.states import AffiliateStatus, CommissionType, transition_affiliate
from affiliate_ledger.crud import crud_affiliate
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.schemas.affiliate import AffiliateCreateInternal, AffiliateSettingsUpdate

logger = logging.getLogger(__name__)

CODE_PREFIX_LENGTH = 8
CODE_SUFFIX_LENGTH = 3
CODE_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase # base 36

def _random_suffix() -> str:
    return "".join(secrets.choice(CODE_SUFFIX_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))

def generate_affiliate_code(db: Session, *, store_id: str, affiliate_user_id: str, requested_code: Optional[str] = None) -> str:
    """
    Requested code upper-cased, or the first characters of the user id. While the
    code is taken in the store a random base-36 suffix is appended.
    """
    base = (requested_code or affiliate_user_id[:CODE_PREFIX_LENGTH]).upper()
    code = base
    while crud_affiliate.affiliate_code_exists(db, store_id=store_id, affiliate_code=code):
        code = f"{base}{_random_suffix()}"
    return code

def _get_affiliate_or_raise(db: Session, affiliate_id: int) -> Affiliate:
    affiliate = crud_affiliate.get_affiliate(db, affiliate_id)
    if affiliate is None:
        raise AffiliateNotFound(f"Affiliate {affiliate_id} not found")
    return affiliate

def _check_commission_terms(commission_type: CommissionType, commission_rate: Decimal) -> None:
    if commission_rate < 0:
        raise InvalidCommissionTerms("commission_rate must not be negative")
    if CommissionType(commission_type) == CommissionType.PERCENTAGE and commission_rate > 100:
        raise InvalidCommissionTerms("commission_rate must be within [0, 100] for percentage commissions")

def _change_status(
    db: Session, affiliate: Affiliate, expected: AffiliateStatus, target: AffiliateStatus, values: dict
) -> Affiliate:
    current = AffiliateStatus(affiliate.status)
    if current != expected:
        raise InvalidStateTransition("affiliate", current, target)
    target = transition_affiliate(current, target)

    values = {**values, Affiliate.status: target}
    if not crud_affiliate.set_status_if(db, affiliate_id=affiliate.id, expected=expected, values=values):
        db.rollback()
        db.refresh(affiliate)
        raise InvalidStateTransition("affiliate", affiliate.status, target)
    db.commit()
    db.refresh(affiliate)
    logger.info(f"Affiliate ID: {affiliate.id} ({affiliate.affiliate_code}) moved from {current.value} to {target.value}")
    return affiliate

def apply_for_affiliate(
    db: Session,
    *,
    affiliate_user_id: str,
    store_id: str,
    creator_id: str,
    affiliate_code: Optional[str] = None,
    application_note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Affiliate:
    now = normalize_now(now)
    if crud_affiliate.get_affiliate_for_user_in_store(db, affiliate_user_id=affiliate_user_id, store_id=store_id):
        raise AffiliateAlreadyExists(f"User {affiliate_user_id} has already applied to store {store_id}")

    code = generate_affiliate_code(
        db, store_id=store_id, affiliate_user_id=affiliate_user_id, requested_code=affiliate_code
    )
    obj_in = AffiliateCreateInternal(
        affiliate_user_id=affiliate_user_id,
        store_id=store_id,
        creator_id=creator_id,
        affiliate_code=code,
        commission_rate=DEFAULT_COMMISSION_RATE,
        commission_type=CommissionType.PERCENTAGE,
        cookie_duration=DEFAULT_COOKIE_DURATION_DAYS,
        status=AffiliateStatus.PENDING,
        application_note=application_note,
        applied_at=now,
    )
    try:
        affiliate = crud_affiliate.create_affiliate(db, obj_in=obj_in)
    except IntegrityError:
        # Concurrent application by the same user, or the code was claimed meanwhile
        db.rollback()
        raise AffiliateAlreadyExists(f"Could not register affiliate code {code} for user {affiliate_user_id} in store {store_id}")

    logger.info(f"New affiliate application ID: {affiliate.id} for store {store_id} with code {affiliate.affiliate_code}")
    return affiliate

def approve_affiliate(
    db: Session, affiliate_id: int, commission_rate: Optional[Decimal] = None, now: Optional[datetime] = None
) -> Affiliate:
    now = normalize_now(now)
    affiliate = _get_affiliate_or_raise(db, affiliate_id)
    values = {Affiliate.approved_at: now}
    if commission_rate is not None:
        commission_rate = Decimal(commission_rate)
        _check_commission_terms(affiliate.commission_type, commission_rate)
        values[Affiliate.commission_rate] = commission_rate
    return _change_status(db, affiliate, AffiliateStatus.PENDING, AffiliateStatus.ACTIVE, values)

def reject_affiliate(db: Session, affiliate_id: int, reason: str) -> Affiliate:
    affiliate = _get_affiliate_or_raise(db, affiliate_id)
    return _change_status(
        db, affiliate, AffiliateStatus.PENDING, AffiliateStatus.REJECTED, {Affiliate.rejection_reason: reason}
    )

def suspend_affiliate(db: Session, affiliate_id: int, now: Optional[datetime] = None) -> Affiliate:
    now = normalize_now(now)
    affiliate = _get_affiliate_or_raise(db, affiliate_id)
    return _change_status(db, affiliate, AffiliateStatus.ACTIVE, AffiliateStatus.SUSPENDED, {Affiliate.suspended_at: now})

def reactivate_affiliate(db: Session, affiliate_id: int) -> Affiliate:
    affiliate = _get_affiliate_or_raise(db, affiliate_id)
    return _change_status(db, affiliate, AffiliateStatus.SUSPENDED, AffiliateStatus.ACTIVE, {Affiliate.suspended_at: None})

def update_affiliate_settings(db: Session, affiliate_id: int, obj_in: AffiliateSettingsUpdate) -> Affiliate:
    """
    Change commission terms, attribution window or payout details. Sales already
    recorded keep the terms they were created with.
    """
    affiliate = _get_affiliate_or_raise(db, affiliate_id)
    changes = obj_in.model_dump(exclude_unset=True)

    commission_type = changes.get("commission_type") or affiliate.commission_type
    commission_rate = changes.get("commission_rate")
    if commission_rate is None:
        commission_rate = affiliate.commission_rate
    _check_commission_terms(commission_type, Decimal(commission_rate))

    fixed_amount = changes.get("fixed_commission_amount", affiliate.fixed_commission_amount)
    if CommissionType(commission_type) == CommissionType.FIXED_PER_SALE and fixed_amount is None:
        raise InvalidCommissionTerms("fixed_commission_amount is required for fixed_per_sale commissions")

    affiliate = crud_affiliate.update_affiliate(db, db_obj=affiliate, obj_in=obj_in)
    logger.info(f"Updated settings for affiliate ID: {affiliate.id}: {sorted(changes)}")
    return affiliate
