import pytest
from decimal import Decimal
from unittest.mock import MagicMock, patch

import stripe

from affiliate_ledger.core.errors import PayoutSubmissionFailed
from affiliate_ledger.core.payout_rail import (
    ManualPayoutRail,
    StripeConnectRail,
    get_payout_rail,
    to_cents,
)
from affiliate_ledger.core.states import PayoutMethod
from affiliate_ledger.models.affiliate import Affiliate as AffiliateModel
from affiliate_ledger.models.payout import Payout as PayoutModel

pytestmark = pytest.mark.core

def _payout() -> PayoutModel:
    return PayoutModel(id=5, affiliate_id=3, store_id="store_1", amount=Decimal("12.35"), currency="USD", sales_count=2)

def _affiliate(connect_id="acct_123") -> AffiliateModel:
    return AffiliateModel(id=3, store_id="store_1", stripe_connect_id=connect_id, payout_email="a@example.com")

def test_to_cents():
    assert to_cents(Decimal("12.35")) == 1235
    assert to_cents(Decimal("0.005")) == 1
    assert to_cents(Decimal("20")) == 2000

def test_rail_selection():
    assert isinstance(get_payout_rail(PayoutMethod.STRIPE), StripeConnectRail)
    assert isinstance(get_payout_rail(PayoutMethod.PAYPAL), ManualPayoutRail)
    assert isinstance(get_payout_rail(PayoutMethod.MANUAL), ManualPayoutRail)
    assert isinstance(get_payout_rail(None), ManualPayoutRail)

def test_manual_rail_reference():
    assert ManualPayoutRail().submit(_payout(), _affiliate()) == "manual_5"

@patch("affiliate_ledger.core.payout_rail.stripe.Transfer.create")
def test_stripe_transfer_to_connect_account(mock_create):
    mock_create.return_value = MagicMock(id="tr_abc")

    reference = StripeConnectRail().submit(_payout(), _affiliate())

    assert reference == "tr_abc"
    kwargs = mock_create.call_args.kwargs
    assert kwargs["amount"] == 1235
    assert kwargs["currency"] == "usd"
    assert kwargs["destination"] == "acct_123"
    assert kwargs["idempotency_key"] == "affiliate_payout_5"
    assert kwargs["metadata"]["payout_id"] == "5"

@patch("affiliate_ledger.core.payout_rail.stripe.Transfer.create")
def test_stripe_error_becomes_submission_failure(mock_create):
    mock_create.side_effect = stripe.StripeError("insufficient platform balance")

    with pytest.raises(PayoutSubmissionFailed) as exc_info:
        StripeConnectRail().submit(_payout(), _affiliate())

    assert exc_info.value.payout_id == 5
    assert "insufficient platform balance" in exc_info.value.reason

@patch("affiliate_ledger.core.payout_rail.stripe.Transfer.create")
def test_stripe_rail_needs_connect_account(mock_create):
    with pytest.raises(PayoutSubmissionFailed):
        StripeConnectRail().submit(_payout(), _affiliate(connect_id=None))
    mock_create.assert_not_called()
