"""
Settlement Schemas.

`SettlementBreakdown` doubles as the audit payload stored on each settlement.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List, Any
from backend.app.models.settlement_enums import (
    AllocationRole, SettlementPayoutStatus, StakeholderType
)


class StakeholderShare(BaseModel):
    """A normalized proportional entitlement (fraction of net proceeds)."""
    stakeholder_id: int
    share: float


class StakeholderAllocation(BaseModel):
    """Amount allocated to one stakeholder."""
    stakeholder_type: StakeholderType
    stakeholder_id: Optional[int] = None
    role: AllocationRole
    amount: int
    percentage: float


class SettlementBreakdown(BaseModel):
    """Exact, fully-accounted split of a campaign's raised total."""
    total_raised: int
    platform_fee_rate: float
    platform_fee: int
    gateway_fees: int
    net_amount: int
    creator_share: int
    creator_role: AllocationRole = AllocationRole.RESIDUAL
    fee_role: AllocationRole = AllocationRole.FEE
    partner_share_total: int
    collaborator_share_total: int
    partners: List[StakeholderAllocation] = Field(default_factory=list)
    collaborators: List[StakeholderAllocation] = Field(default_factory=list)

    @property
    def allocated_total(self) -> int:
        """Sum of every pool; equals total_raised unless fees exceeded it."""
        return (
            self.platform_fee
            + self.gateway_fees
            + self.partner_share_total
            + self.collaborator_share_total
            + self.creator_share
        )


class SettlementTriggerRequest(BaseModel):
    """Optional overrides for an administrative settlement trigger."""
    platform_fee_rate: Optional[float] = Field(None, ge=0, le=1)
    gateway_fee_override: Optional[int] = Field(None, ge=0)
    notes: Optional[Any] = None


class SettlementPayoutResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stakeholder_type: StakeholderType
    stakeholder_id: Optional[int]
    amount: int
    percentage: Optional[float]
    status: SettlementPayoutStatus
    paid_at: Optional[datetime]


class SettlementResponse(BaseModel):
    """Schema for displaying settlements."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    campaign_id: int
    total_raised: int
    platform_fee: int
    gateway_fees: int
    net_amount: int
    creator_share: int
    partner_share: int
    collaborator_share: int
    payout_status: SettlementPayoutStatus
    notes: Optional[Any] = None
    created_at: datetime
    approved_at: Optional[datetime]
    paid_at: Optional[datetime]


class SettlementDetailResponse(SettlementResponse):
    distribution_breakdown: dict
    payouts: List[SettlementPayoutResponse]


class SettlementTriggerResponse(BaseModel):
    """Outcome of a trigger; `settlement` is None while the target is not reached."""
    eligible: bool
    settlement: Optional[SettlementResponse] = None


class AdminSettlementActionResponse(BaseModel):
    """Response for settlement actions."""
    settlement_id: int
    status: SettlementPayoutStatus
    updated_at: datetime


class ConsistencyReport(BaseModel):
    """Result of comparing the funding ledger with cached aggregates."""
    campaign_id: int
    is_valid: bool
    issues: List[str] = Field(default_factory=list)
    ledger_total: int
    cached_total: int
    latest_settlement_total: Optional[int] = None


class ReconcileResponse(BaseModel):
    corrected: bool
    report: ConsistencyReport
