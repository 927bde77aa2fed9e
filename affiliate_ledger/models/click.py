from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from affiliate_ledger.db.base_class import Base

class ReferralClick(Base):
    __tablename__ = "affiliate_click"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    affiliate_id = Column(Integer, ForeignKey("affiliate.id"), nullable=False, index=True)
    store_id = Column(String(255), nullable=False, index=True)
    affiliate_code = Column(String(64), nullable=False, index=True)

    visitor_id = Column(String(255), nullable=True, index=True) # Anonymous visitor/session id
    landing_page = Column(String(2048), nullable=False)
    referrer_url = Column(String(2048), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)

    clicked_at = Column(DateTime, nullable=False, index=True)
    converted = Column(Boolean, nullable=False, default=False, index=True)
    order_id = Column(String(255), nullable=True) # Set once, when the click converts

    affiliate = relationship("Affiliate", back_populates="clicks")

    def __repr__(self):
        return f"<ReferralClick(id={self.id}, affiliate_id={self.affiliate_id}, converted={self.converted})>"
