"""
Partner Match database model.

Contract between a campaign and a partner, optionally carrying a settlement share.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.campaign_enums import PartnerMatchStatus
from backend.app.models.settlement_enums import ShareUnit


class PartnerMatch(Base):
    """
    Partner Match model.

    `settlement_share` is interpreted according to `share_unit`; only
    ACCEPTED and COMPLETED matches are entitled to a payout.
    """
    __tablename__ = "partner_matches"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    campaign_id = Column(Integer, ForeignKey('campaigns.id'), nullable=False, index=True)
    partner_id = Column(Integer, nullable=False, index=True)
    status = Column(Enum(PartnerMatchStatus), default=PartnerMatchStatus.REQUESTED, nullable=False)

    settlement_share = Column(Float, nullable=True)
    share_unit = Column(Enum(ShareUnit), default=ShareUnit.FRACTION, nullable=False)

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PartnerMatch(campaign_id={self.campaign_id}, partner_id={self.partner_id}, share={self.settlement_share})>"
