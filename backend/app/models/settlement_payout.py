"""
Settlement Payout database model.

One line item per stakeholder within a settlement.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.settlement_enums import SettlementPayoutStatus, StakeholderType


class SettlementPayout(Base):
    """
    Settlement Payout model.

    PLATFORM rows have no stakeholder_id. `percentage` is a fraction:
    of total_raised for the platform row, of net_amount for every other row.
    """
    __tablename__ = "settlement_payouts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    settlement_id = Column(Integer, ForeignKey('settlements.id'), nullable=False, index=True)
    stakeholder_type = Column(Enum(StakeholderType), nullable=False)
    stakeholder_id = Column(Integer, nullable=True, index=True)

    amount = Column(Integer, nullable=False)
    percentage = Column(Float, nullable=True)
    status = Column(Enum(SettlementPayoutStatus), default=SettlementPayoutStatus.PENDING, nullable=False)

    settlement = relationship("Settlement", back_populates="payouts")

    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<SettlementPayout(settlement_id={self.settlement_id}, type='{self.stakeholder_type.value}', amount={self.amount})>"
