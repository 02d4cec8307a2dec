"""
Allocation Calculator (Domain Logic).

Splits a campaign's raised total between the platform, the payment gateway,
partners, collaborators and the creator. Pure and synchronous: no I/O, no state.

Amounts are integers in the smallest currency unit. Partner and collaborator
pools are allocated together with the largest-remainder method so no unit is
lost or invented; the creator receives whatever is left of the net amount.
"""

import math
from numbers import Real
from typing import Iterable, List, Sequence, Tuple

from backend.app.core.exceptions import InvalidInputError, ShareOverflowError
from backend.app.models.settlement_enums import AllocationRole, StakeholderType
from backend.app.schemas.settlement import (
    SettlementBreakdown, StakeholderAllocation, StakeholderShare
)

# Float slack when summing configured fractions (0.7 + 0.2 + 0.1 != 1.0)
SHARE_SUM_TOLERANCE = 1e-9


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def _validate_total(total_raised) -> int:
    if isinstance(total_raised, bool) or not isinstance(total_raised, Real):
        raise InvalidInputError("total_raised must be a number", {"total_raised": repr(total_raised)})
    if not math.isfinite(total_raised) or total_raised <= 0 or int(total_raised) != total_raised:
        raise InvalidInputError(
            "total_raised must be a finite positive integer", {"total_raised": total_raised}
        )
    return int(total_raised)


def _validate_rate(platform_fee_rate) -> float:
    if isinstance(platform_fee_rate, bool) or not isinstance(platform_fee_rate, Real):
        raise InvalidInputError("platform_fee_rate must be a number")
    if not 0 <= platform_fee_rate <= 1:
        raise InvalidInputError(
            "platform_fee_rate must be between 0 and 1", {"platform_fee_rate": platform_fee_rate}
        )
    return float(platform_fee_rate)


def _validate_gateway_fees(gateway_fees) -> float:
    if isinstance(gateway_fees, bool) or not isinstance(gateway_fees, Real):
        raise InvalidInputError("gateway_fees must be a number")
    if not math.isfinite(gateway_fees) or gateway_fees < 0:
        raise InvalidInputError("gateway_fees must be non-negative", {"gateway_fees": gateway_fees})
    return float(gateway_fees)


def sanitize_shares(shares: Iterable[StakeholderShare]) -> List[StakeholderShare]:
    """Drop entries whose fraction is not strictly positive (NaN included)."""
    return [share for share in shares if share.share > 0]


def allocate_shares(
    net_amount: int,
    entries: Sequence[Tuple[StakeholderType, StakeholderShare]],
) -> List[StakeholderAllocation]:
    """
    Allocate `net_amount * share` to each entry using the largest-remainder method.

    All proportional entries (partners and collaborators) share one target,
    `round(net_amount * sum(shares))` capped at `net_amount`, so the pools
    together can never exceed the net amount. Every entry first gets the floor
    of its raw amount; the units still owed go one each to the largest
    fractional remainders. `sorted` is stable, so ties keep input order.
    """
    if not entries:
        return []

    raw_amounts = [net_amount * share.share for _, share in entries]
    base_amounts = [math.floor(raw) for raw in raw_amounts]
    remainders = [raw - base for raw, base in zip(raw_amounts, base_amounts)]

    target = min(net_amount, round_half_up(net_amount * math.fsum(s.share for _, s in entries)))
    owed = max(0, min(len(entries), target - sum(base_amounts)))

    by_remainder = sorted(range(len(entries)), key=lambda i: remainders[i], reverse=True)
    for index in by_remainder[:owed]:
        base_amounts[index] += 1

    return [
        StakeholderAllocation(
            stakeholder_type=stakeholder_type,
            stakeholder_id=share.stakeholder_id,
            role=AllocationRole.PROPORTIONAL,
            amount=amount,
            percentage=share.share,
        )
        for (stakeholder_type, share), amount in zip(entries, base_amounts)
    ]


def compute_breakdown(
    total_raised: int,
    platform_fee_rate: float,
    gateway_fees: float = 0,
    partner_shares: Iterable[StakeholderShare] = (),
    collaborator_shares: Iterable[StakeholderShare] = (),
) -> SettlementBreakdown:
    """
    Compute an exact settlement breakdown.

    Args:
        total_raised: Sum of succeeded fundings, positive integer
        platform_fee_rate: Platform fee as a fraction in [0, 1]
        gateway_fees: Total gateway fees, >= 0
        partner_shares: Normalized partner fractions of the net amount
        collaborator_shares: Normalized collaborator fractions of the net amount

    Returns:
        SettlementBreakdown whose pools sum to total_raised (unless the fees
        alone exceed it, in which case the net amount is clamped to 0)

    Raises:
        InvalidInputError: If an input is out of range
        ShareOverflowError: If partner and collaborator shares together exceed 1
    """
    total_raised = _validate_total(total_raised)
    platform_fee_rate = _validate_rate(platform_fee_rate)
    gateway_fees = round_half_up(_validate_gateway_fees(gateway_fees))

    partners = sanitize_shares(partner_shares)
    collaborators = sanitize_shares(collaborator_shares)

    combined_share = math.fsum(s.share for s in partners) + math.fsum(s.share for s in collaborators)
    if combined_share > 1 + SHARE_SUM_TOLERANCE:
        raise ShareOverflowError(combined_share)

    platform_fee = round_half_up(total_raised * platform_fee_rate)
    net_amount = max(0, total_raised - platform_fee - gateway_fees)

    allocations = allocate_shares(
        net_amount,
        [(StakeholderType.PARTNER, s) for s in partners]
        + [(StakeholderType.COLLABORATOR, s) for s in collaborators],
    )
    partner_allocations = [a for a in allocations if a.stakeholder_type == StakeholderType.PARTNER]
    collaborator_allocations = [
        a for a in allocations if a.stakeholder_type == StakeholderType.COLLABORATOR
    ]

    partner_total = sum(a.amount for a in partner_allocations)
    collaborator_total = sum(a.amount for a in collaborator_allocations)

    # Creator is the residual role, never a proportional pool
    creator_share = max(0, net_amount - partner_total - collaborator_total)

    return SettlementBreakdown(
        total_raised=total_raised,
        platform_fee_rate=platform_fee_rate,
        platform_fee=platform_fee,
        gateway_fees=gateway_fees,
        net_amount=net_amount,
        creator_share=creator_share,
        partner_share_total=partner_total,
        collaborator_share_total=collaborator_total,
        partners=partner_allocations,
        collaborators=collaborator_allocations,
    )
