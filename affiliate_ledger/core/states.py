"""
Status enums and the single transition function for each stateful entity.

Call sites never compare or assign status strings directly; they ask the
transition function for the next state, which raises InvalidStateTransition
for any edge not listed below.
"""
import enum

from affiliate_ledger.core.errors import InvalidStateTransition


class AffiliateStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REJECTED = "rejected"


class CommissionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    REVERSED = "reversed"


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CommissionType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED_PER_SALE = "fixed_per_sale"


class PayoutMethod(str, enum.Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    MANUAL = "manual"


class ItemType(str, enum.Enum):
    COURSE = "course"
    PRODUCT = "product"
    SUBSCRIPTION = "subscription"


AFFILIATE_TRANSITIONS = {
    AffiliateStatus.PENDING: {AffiliateStatus.ACTIVE, AffiliateStatus.REJECTED},
    AffiliateStatus.ACTIVE: {AffiliateStatus.SUSPENDED},
    AffiliateStatus.SUSPENDED: {AffiliateStatus.ACTIVE},
    AffiliateStatus.REJECTED: set(),
}

COMMISSION_TRANSITIONS = {
    CommissionStatus.PENDING: {CommissionStatus.APPROVED, CommissionStatus.REVERSED},
    CommissionStatus.APPROVED: {CommissionStatus.PAID, CommissionStatus.REVERSED},
    CommissionStatus.PAID: set(),
    CommissionStatus.REVERSED: set(),
}

PAYOUT_TRANSITIONS = {
    PayoutStatus.PENDING: {PayoutStatus.PROCESSING, PayoutStatus.FAILED},
    PayoutStatus.PROCESSING: {PayoutStatus.COMPLETED, PayoutStatus.FAILED},
    PayoutStatus.COMPLETED: set(),
    PayoutStatus.FAILED: set(),
}


def transition_affiliate(current: AffiliateStatus, target: AffiliateStatus) -> AffiliateStatus:
    current, target = AffiliateStatus(current), AffiliateStatus(target)
    if target not in AFFILIATE_TRANSITIONS[current]:
        raise InvalidStateTransition("affiliate", current, target)
    return target


def transition_commission(
    current: CommissionStatus, target: CommissionStatus, *, payout_failed: bool = False
) -> CommissionStatus:
    """
    paid -> approved is only reachable when the payout holding the sale failed;
    the sale then goes back into the pool for the next batch.
    """
    current, target = CommissionStatus(current), CommissionStatus(target)
    if payout_failed and current == CommissionStatus.PAID and target == CommissionStatus.APPROVED:
        return target
    if target not in COMMISSION_TRANSITIONS[current]:
        raise InvalidStateTransition("commission sale", current, target)
    return target


def transition_payout(current: PayoutStatus, target: PayoutStatus) -> PayoutStatus:
    current, target = PayoutStatus(current), PayoutStatus(target)
    if target not in PAYOUT_TRANSITIONS[current]:
        raise InvalidStateTransition("payout", current, target)
    return target
