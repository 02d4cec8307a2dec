"""
Campaign Collaborator database model.
"""

from sqlalchemy import Column, Integer, Float, String, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.settlement_enums import ShareUnit


class CampaignCollaborator(Base):
    """
    Campaign Collaborator model.

    Collaborator shares are entered as percentage points by default (15 == 15%).
    """
    __tablename__ = "campaign_collaborators"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    campaign_id = Column(Integer, ForeignKey('campaigns.id'), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    role = Column(String(100), nullable=True)

    share = Column(Float, nullable=True)
    share_unit = Column(Enum(ShareUnit), default=ShareUnit.PERCENTAGE_POINTS, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('campaign_id', 'user_id', name='uq_campaign_collaborators_campaign_user'),
    )

    def __repr__(self):
        return f"<CampaignCollaborator(campaign_id={self.campaign_id}, user_id={self.user_id}, share={self.share})>"
