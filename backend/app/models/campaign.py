"""
Campaign database model.

A fundraising effort with a target amount and a cached running total.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.campaign_enums import CampaignStatus


class Campaign(Base):
    """
    Campaign model.

    `current_amount` is derived data: it must always reconcile to the sum of
    SUCCEEDED fundings and is corrected by the reconciliation service.
    Amounts are integers in the smallest currency unit.
    """
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    title = Column(String(200), nullable=False)
    owner_id = Column(Integer, nullable=False, index=True)

    # Financials
    target_amount = Column(Integer, nullable=False)
    current_amount = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="KRW")

    status = Column(Enum(CampaignStatus), default=CampaignStatus.DRAFT, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Campaign(id={self.id}, target={self.target_amount}, current={self.current_amount})>"
