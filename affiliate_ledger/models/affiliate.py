from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, UniqueConstraint, CheckConstraint, func
from sqlalchemy.orm import relationship
from affiliate_ledger.db.base_class import Base, enum_type
from affiliate_ledger.core.states import AffiliateStatus, CommissionType, PayoutMethod

class Affiliate(Base):
    __tablename__ = "affiliate"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    affiliate_user_id = Column(String(255), nullable=False, index=True) # Opaque id from the identity provider
    store_id = Column(String(255), nullable=False, index=True)
    creator_id = Column(String(255), nullable=False, index=True) # Store owner
    affiliate_code = Column(String(64), nullable=False, index=True)

    commission_rate = Column(Numeric(5, 2), nullable=False) # Percentage, e.g. 20 for 20%
    commission_type = Column(enum_type(CommissionType), nullable=False, default=CommissionType.PERCENTAGE)
    fixed_commission_amount = Column(Numeric(10, 2), nullable=True) # Used when commission_type is fixed_per_sale
    cookie_duration = Column(Integer, nullable=False) # Attribution window in days

    status = Column(enum_type(AffiliateStatus), nullable=False, default=AffiliateStatus.PENDING, index=True)

    # Counters are only ever changed with SQL-side increments (see crud_affiliate.increment_counters)
    total_clicks = Column(Integer, nullable=False, default=0)
    total_sales = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Numeric(12, 2), nullable=False, default=0)
    total_commission_earned = Column(Numeric(12, 2), nullable=False, default=0)
    total_commission_paid = Column(Numeric(12, 2), nullable=False, default=0)

    payout_method = Column(enum_type(PayoutMethod), nullable=True)
    payout_email = Column(String(255), nullable=True)
    stripe_connect_id = Column(String(255), nullable=True)

    application_note = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    applied_at = Column(DateTime, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    suspended_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    clicks = relationship("ReferralClick", back_populates="affiliate")
    sales = relationship("CommissionSale", back_populates="affiliate")
    payouts = relationship("Payout", back_populates="affiliate")

    __table_args__ = (
        UniqueConstraint("store_id", "affiliate_code", name="uq_affiliate_store_code"),
        UniqueConstraint("store_id", "affiliate_user_id", name="uq_affiliate_store_user"),
        CheckConstraint("commission_rate >= 0", name="ck_affiliate_rate_non_negative"),
        CheckConstraint(
            "commission_type != 'percentage' OR commission_rate <= 100",
            name="ck_affiliate_percentage_rate_max",
        ),
        CheckConstraint("cookie_duration > 0", name="ck_affiliate_cookie_duration_positive"),
    )

    def __repr__(self):
        return f"<Affiliate(id={self.id}, store_id='{self.store_id}', code='{self.affiliate_code}', status='{self.status}')>"
