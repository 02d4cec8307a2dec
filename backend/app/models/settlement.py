"""
Settlement database model.

Immutable snapshot of how a campaign's proceeds were divided.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, JSON, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.settlement_enums import SettlementPayoutStatus

_OPEN_SETTLEMENT_PREDICATE = text("payout_status IN ('PENDING', 'IN_PROGRESS')")


class Settlement(Base):
    """
    Settlement model.

    Follows a strict workflow: PENDING -> IN_PROGRESS -> PAID.
    Only the settlement service creates rows (always PENDING); admin actions
    drive the later transitions. The partial unique index allows one open
    (PENDING or IN_PROGRESS) settlement per campaign.
    """
    __tablename__ = "settlements"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    campaign_id = Column(Integer, ForeignKey('campaigns.id'), nullable=False, index=True)

    # Financials (smallest currency unit)
    total_raised = Column(Integer, nullable=False)
    platform_fee = Column(Integer, nullable=False)
    gateway_fees = Column(Integer, nullable=False, default=0)
    net_amount = Column(Integer, nullable=False, default=0)
    creator_share = Column(Integer, nullable=False)
    partner_share = Column(Integer, nullable=False, default=0)
    collaborator_share = Column(Integer, nullable=False, default=0)

    payout_status = Column(
        Enum(SettlementPayoutStatus), default=SettlementPayoutStatus.PENDING, nullable=False, index=True
    )

    # Audit payload (full breakdown, replayable without recomputation)
    distribution_breakdown = Column(JSON, nullable=False)
    notes = Column(JSON, nullable=True)

    payouts = relationship(
        "SettlementPayout", back_populates="settlement", order_by="SettlementPayout.id"
    )

    # Approval / payment flow
    approved_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index(
            'ux_settlements_open_per_campaign', 'campaign_id', unique=True,
            postgresql_where=_OPEN_SETTLEMENT_PREDICATE,
            sqlite_where=_OPEN_SETTLEMENT_PREDICATE,
        ),
    )

    def __repr__(self):
        return f"<Settlement(id={self.id}, campaign_id={self.campaign_id}, status='{self.payout_status.value}', net={self.net_amount})>"
