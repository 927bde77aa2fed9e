from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, ForeignKey, func
from sqlalchemy.orm import relationship
from affiliate_ledger.db.base_class import Base, enum_type
from affiliate_ledger.core.states import CommissionStatus, CommissionType, ItemType

class CommissionSale(Base):
    __tablename__ = "affiliate_sale"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    affiliate_id = Column(Integer, ForeignKey("affiliate.id"), nullable=False, index=True)
    store_id = Column(String(255), nullable=False, index=True)
    click_id = Column(Integer, ForeignKey("affiliate_click.id"), nullable=True)

    # One commission sale per order; the unique index is what makes attribution idempotent
    order_id = Column(String(255), nullable=False, unique=True, index=True)
    customer_id = Column(String(255), nullable=True, index=True)
    item_type = Column(enum_type(ItemType), nullable=False, default=ItemType.PRODUCT)
    item_id = Column(String(255), nullable=True)

    order_amount = Column(Numeric(10, 2), nullable=False)
    # Snapshot of the affiliate's terms at sale time; never recomputed
    commission_rate = Column(Numeric(5, 2), nullable=False)
    commission_type = Column(enum_type(CommissionType), nullable=False)
    commission_amount = Column(Numeric(10, 2), nullable=False)

    commission_status = Column(enum_type(CommissionStatus), nullable=False, default=CommissionStatus.PENDING, index=True)
    payout_id = Column(Integer, ForeignKey("affiliate_payout.id"), nullable=True, index=True)

    sale_date = Column(DateTime, nullable=False, index=True)
    approved_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    reversed_at = Column(DateTime, nullable=True)
    reversal_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    affiliate = relationship("Affiliate", back_populates="sales")
    click = relationship("ReferralClick")
    payout = relationship("Payout", back_populates="sales")

    def __repr__(self):
        return f"<CommissionSale(id={self.id}, order_id='{self.order_id}', amount={self.commission_amount}, status='{self.commission_status}')>"
