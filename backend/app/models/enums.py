"""
User roles enumeration.

Defines the role claims recognised by the settlement backend.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Operator allowed to trigger settlement and reconciliation
        CREATOR: Campaign owner, receives the residual share
        PARTNER: Contracted partner with a settlement share
        PARTICIPANT: Backer (default role)
    """
    ADMIN = "ADMIN"
    CREATOR = "CREATOR"
    PARTNER = "PARTNER"
    PARTICIPANT = "PARTICIPANT"
