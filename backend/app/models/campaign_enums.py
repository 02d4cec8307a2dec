"""
Campaign and partner-match enumerations.
"""

import enum


class CampaignStatus(str, enum.Enum):
    """Campaign lifecycle status (independent of settlement status)."""
    DRAFT = "DRAFT"
    REVIEWING = "REVIEWING"
    LIVE = "LIVE"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"


class PartnerMatchStatus(str, enum.Enum):
    """Partner match status enumeration."""
    REQUESTED = "REQUESTED"
    ACCEPTED = "ACCEPTED"  # Contracted, share applies
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"  # Work delivered, share still applies


# Matches whose settlement share is honoured
ENTITLED_PARTNER_STATUSES = (PartnerMatchStatus.ACCEPTED, PartnerMatchStatus.COMPLETED)
