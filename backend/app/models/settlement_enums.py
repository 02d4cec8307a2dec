"""
Settlement enumerations.
"""

import enum


class SettlementPayoutStatus(str, enum.Enum):
    """Settlement payout status enumeration."""
    PENDING = "PENDING"  # Created, waiting for admin approval
    IN_PROGRESS = "IN_PROGRESS"  # Approved, payouts being executed
    PAID = "PAID"  # Payouts complete


# A campaign may hold at most one settlement in these states
OPEN_SETTLEMENT_STATUSES = (SettlementPayoutStatus.PENDING, SettlementPayoutStatus.IN_PROGRESS)


class StakeholderType(str, enum.Enum):
    """Role receiving a settlement payout."""
    PLATFORM = "PLATFORM"
    CREATOR = "CREATOR"
    PARTNER = "PARTNER"
    COLLABORATOR = "COLLABORATOR"
    OTHER = "OTHER"


class ShareUnit(str, enum.Enum):
    """Scale in which a stakeholder share is configured."""
    FRACTION = "FRACTION"  # 0.25 == 25%
    PERCENTAGE_POINTS = "PERCENTAGE_POINTS"  # 25 == 25%


class AllocationRole(str, enum.Enum):
    """How an amount in a breakdown was derived."""
    FEE = "FEE"
    PROPORTIONAL = "PROPORTIONAL"
    RESIDUAL = "RESIDUAL"
