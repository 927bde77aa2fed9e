import pytest

from affiliate_ledger.core.errors import InvalidStateTransition
from affiliate_ledger.core.states import (
    AffiliateStatus,
    CommissionStatus,
    PayoutStatus,
    transition_affiliate,
    transition_commission,
    transition_payout,
)

pytestmark = pytest.mark.core

@pytest.mark.parametrize("current,target", [
    (AffiliateStatus.PENDING, AffiliateStatus.ACTIVE),
    (AffiliateStatus.PENDING, AffiliateStatus.REJECTED),
    (AffiliateStatus.ACTIVE, AffiliateStatus.SUSPENDED),
    (AffiliateStatus.SUSPENDED, AffiliateStatus.ACTIVE),
])
def test_affiliate_allowed_transitions(current, target):
    assert transition_affiliate(current, target) == target

@pytest.mark.parametrize("current,target", [
    (AffiliateStatus.REJECTED, AffiliateStatus.ACTIVE),
    (AffiliateStatus.REJECTED, AffiliateStatus.PENDING),
    (AffiliateStatus.ACTIVE, AffiliateStatus.PENDING),
    (AffiliateStatus.ACTIVE, AffiliateStatus.REJECTED),
    (AffiliateStatus.SUSPENDED, AffiliateStatus.REJECTED),
])
def test_affiliate_forbidden_transitions(current, target):
    with pytest.raises(InvalidStateTransition):
        transition_affiliate(current, target)

def test_affiliate_transition_accepts_raw_values():
    assert transition_affiliate("pending", "active") == AffiliateStatus.ACTIVE

def test_commission_transitions_are_limited_to_listed_edges():
    allowed = {
        (CommissionStatus.PENDING, CommissionStatus.APPROVED),
        (CommissionStatus.APPROVED, CommissionStatus.PAID),
        (CommissionStatus.PENDING, CommissionStatus.REVERSED),
        (CommissionStatus.APPROVED, CommissionStatus.REVERSED),
    }
    for current in CommissionStatus:
        for target in CommissionStatus:
            if (current, target) in allowed:
                assert transition_commission(current, target) == target
            else:
                with pytest.raises(InvalidStateTransition):
                    transition_commission(current, target)

def test_paid_to_approved_only_on_payout_failure():
    with pytest.raises(InvalidStateTransition):
        transition_commission(CommissionStatus.PAID, CommissionStatus.APPROVED)
    assert transition_commission(
        CommissionStatus.PAID, CommissionStatus.APPROVED, payout_failed=True
    ) == CommissionStatus.APPROVED

def test_payout_failure_flag_does_not_open_other_edges():
    with pytest.raises(InvalidStateTransition):
        transition_commission(CommissionStatus.REVERSED, CommissionStatus.APPROVED, payout_failed=True)

@pytest.mark.parametrize("current,target", [
    (PayoutStatus.PENDING, PayoutStatus.PROCESSING),
    (PayoutStatus.PENDING, PayoutStatus.FAILED),
    (PayoutStatus.PROCESSING, PayoutStatus.COMPLETED),
    (PayoutStatus.PROCESSING, PayoutStatus.FAILED),
])
def test_payout_allowed_transitions(current, target):
    assert transition_payout(current, target) == target

@pytest.mark.parametrize("current,target", [
    (PayoutStatus.PENDING, PayoutStatus.COMPLETED),
    (PayoutStatus.COMPLETED, PayoutStatus.FAILED),
    (PayoutStatus.FAILED, PayoutStatus.PROCESSING),
])
def test_payout_forbidden_transitions(current, target):
    with pytest.raises(InvalidStateTransition) as exc_info:
        transition_payout(current, target)
    assert exc_info.value.current == current.value
    assert exc_info.value.target == target.value
