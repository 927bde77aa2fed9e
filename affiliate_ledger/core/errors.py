class AffiliateError(Exception):
    """Base class for affiliate program errors."""


class UnknownAffiliateCode(AffiliateError):
    def __init__(self, affiliate_code: str, store_id: str):
        self.affiliate_code = affiliate_code
        self.store_id = store_id
        super().__init__(f"Unknown affiliate code '{affiliate_code}' for store {store_id}")


class InactiveAffiliate(AffiliateError):
    def __init__(self, affiliate_id: int, status: str):
        self.affiliate_id = affiliate_id
        self.status = getattr(status, "value", status)
        super().__init__(f"Affiliate {affiliate_id} is not active (status: {self.status})")


class DuplicateAttribution(AffiliateError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has already been attributed")


class InvalidStateTransition(AffiliateError):
    def __init__(self, entity: str, current, target):
        self.entity = entity
        self.current = getattr(current, "value", current)
        self.target = getattr(target, "value", target)
        super().__init__(f"Cannot move {entity} from '{self.current}' to '{self.target}'")


class PayoutSubmissionFailed(AffiliateError):
    def __init__(self, payout_id: int, reason: str):
        self.payout_id = payout_id
        self.reason = reason
        super().__init__(f"Payout {payout_id} submission failed: {reason}")


class InvalidAttributionToken(AffiliateError):
    pass


class AffiliateAlreadyExists(AffiliateError):
    pass


class AffiliateNotFound(AffiliateError):
    pass


class CommissionSaleNotFound(AffiliateError):
    pass


class PayoutNotFound(AffiliateError):
    pass


class InvalidCommissionTerms(AffiliateError):
    pass
