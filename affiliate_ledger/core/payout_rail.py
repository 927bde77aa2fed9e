"""
Payment rails a payout can be sent through.

A rail only moves money and returns the external reference; payout and sale
bookkeeping stays in the payout batcher.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import stripe

from affiliate_ledger.core.errors import PayoutSubmissionFailed
from affiliate_ledger.core.states import PayoutMethod
from affiliate_ledger.models.affiliate import Affiliate
from affiliate_ledger.models.payout import Payout

logger = logging.getLogger(__name__)

class PayoutRail:
    name = "base"
    # True when a successful submit means the money has moved
    settles_immediately = False

    def submit(self, payout: Payout, affiliate: Affiliate) -> str:
        """Send the payout and return the rail's reference for it, or raise PayoutSubmissionFailed."""
        raise NotImplementedError

class ManualPayoutRail(PayoutRail):
    """
    The store owner pays outside the platform (bank transfer, PayPal) and then
    marks the payout completed.
    """
    name = "manual"

    def submit(self, payout: Payout, affiliate: Affiliate) -> str:
        reference = f"manual_{payout.id}"
        logger.info(f"Payout ID: {payout.id} queued for manual payment to affiliate ID: {affiliate.id} ({affiliate.payout_email or 'no email on file'})")
        return reference

def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

class StripeConnectRail(PayoutRail):
    """Transfers the payout to the affiliate's Stripe Connect account."""
    name = "stripe"
    settles_immediately = True

    def submit(self, payout: Payout, affiliate: Affiliate) -> str:
        if not affiliate.stripe_connect_id:
            raise PayoutSubmissionFailed(payout.id, "affiliate has no Stripe Connect account")

        try:
            transfer = stripe.Transfer.create(
                amount=to_cents(payout.amount),
                currency=payout.currency.lower(),
                destination=affiliate.stripe_connect_id,
                metadata={
                    "payout_id": str(payout.id),
                    "affiliate_id": str(affiliate.id),
                    "store_id": payout.store_id,
                },
                description=f"Affiliate commission payout {payout.id}",
                idempotency_key=f"affiliate_payout_{payout.id}",
            )
        except stripe.StripeError as e:
            raise PayoutSubmissionFailed(payout.id, e.user_message or str(e)) from e

        logger.info(f"Created Stripe transfer {transfer.id} for payout ID: {payout.id}, amount {payout.amount} {payout.currency}")
        return transfer.id

def get_payout_rail(method: Optional[PayoutMethod]) -> PayoutRail:
    # PayPal payouts are settled by the store owner like manual ones
    if method is not None and PayoutMethod(method) == PayoutMethod.STRIPE:
        return StripeConnectRail()
    return ManualPayoutRail()
