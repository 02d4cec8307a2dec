"""
Funding database model.

One contribution against a campaign; the authoritative funding ledger.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.funding_enums import FundingStatus


class Funding(Base):
    """
    Funding (ledger entry) model.

    Immutable once SUCCEEDED, except for the refund transition.
    Only SUCCEEDED rows count toward settlement totals.
    """
    __tablename__ = "fundings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    campaign_id = Column(Integer, ForeignKey('campaigns.id'), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)  # Contributor

    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="KRW")
    payment_intent_id = Column(String(255), nullable=True, unique=True)
    payment_status = Column(Enum(FundingStatus), default=FundingStatus.PENDING, nullable=False, index=True)

    transaction = relationship("PaymentTransaction", back_populates="funding", uselist=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_fundings_amount_positive'),
    )

    def __repr__(self):
        return f"<Funding(id={self.id}, campaign_id={self.campaign_id}, amount={self.amount}, status='{self.payment_status.value}')>"
