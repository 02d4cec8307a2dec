"""
Funding ledger enumerations.
"""

import enum


class FundingStatus(str, enum.Enum):
    """Payment status of a funding (ledger entry)."""
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"  # Only status counted toward totals
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class PaymentProvider(str, enum.Enum):
    """Payment gateway that processed the transaction."""
    STRIPE = "STRIPE"
    TOSS = "TOSS"
    PAYPAL = "PAYPAL"
    MANUAL = "MANUAL"
