"""
Payment Transaction database model.

Gateway-side record of a funding, carrying the gateway fee.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.funding_enums import FundingStatus, PaymentProvider


class PaymentTransaction(Base):
    """
    Payment Transaction model.

    One-to-one with Funding. The gateway client is external; this row only
    stores what it reported (status, identifier, fee).
    """
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    funding_id = Column(Integer, ForeignKey('fundings.id'), nullable=False, unique=True, index=True)
    provider = Column(Enum(PaymentProvider), nullable=False)
    external_id = Column(String(255), nullable=False)
    status = Column(Enum(FundingStatus), nullable=False)

    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="KRW")
    gateway_fee = Column(Integer, nullable=False, default=0)
    raw_payload = Column(JSON, nullable=True)

    funding = relationship("Funding", back_populates="transaction")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PaymentTransaction(id={self.id}, funding_id={self.funding_id}, fee={self.gateway_fee})>"
