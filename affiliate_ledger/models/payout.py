from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, ForeignKey, func
from sqlalchemy.orm import relationship
from affiliate_ledger.db.base_class import Base, enum_type
from affiliate_ledger.core.states import PayoutStatus, PayoutMethod

class Payout(Base):
    __tablename__ = "affiliate_payout"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    affiliate_id = Column(Integer, ForeignKey("affiliate.id"), nullable=False, index=True)
    store_id = Column(String(255), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False) # Sum of the included sales' commission_amount
    currency = Column(String(3), nullable=False, default="USD")
    sales_count = Column(Integer, nullable=False)
    payout_method = Column(enum_type(PayoutMethod), nullable=False, default=PayoutMethod.MANUAL)

    status = Column(enum_type(PayoutStatus), nullable=False, default=PayoutStatus.PENDING, index=True)
    external_ref = Column(String(255), nullable=True, unique=True, index=True) # Transfer id from the payment rail
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    affiliate = relationship("Affiliate", back_populates="payouts")
    # Only sales currently held by this payout; a failed payout releases its sales
    sales = relationship("CommissionSale", back_populates="payout")
    # Every sale the payout was created for, kept after a failure
    sale_links = relationship("PayoutSale", back_populates="payout", order_by="PayoutSale.sale_id")

    def __repr__(self):
        return f"<Payout(id={self.id}, affiliate_id={self.affiliate_id}, amount={self.amount}, status='{self.status}')>"

class PayoutSale(Base):
    __tablename__ = "affiliate_payout_sale"

    payout_id = Column(Integer, ForeignKey("affiliate_payout.id"), primary_key=True)
    sale_id = Column(Integer, ForeignKey("affiliate_sale.id"), primary_key=True, index=True)
    commission_amount = Column(Numeric(10, 2), nullable=False) # Amount the payout took for this sale

    payout = relationship("Payout", back_populates="sale_links")
    sale = relationship("CommissionSale")

    def __repr__(self):
        return f"<PayoutSale(payout_id={self.payout_id}, sale_id={self.sale_id}, amount={self.commission_amount})>"
