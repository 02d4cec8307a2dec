"""
Settlement Service (Domain Logic).

Creates the PENDING settlement for a campaign that reached its target and
drives the later administrative transitions. Must be transactional and idempotent.

State machine (per campaign):
    (no settlement) --target reached--> PENDING --approved--> IN_PROGRESS --payouts complete--> PAID
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    CampaignNotFoundError,
    InvalidSettlementTransitionError,
    NoSuccessfulFundingsError,
    SettlementNotFoundError,
)
from backend.app.core.reliability import store_errors
from backend.app.domain.settlement.allocation import compute_breakdown
from backend.app.domain.settlement.reconciliation import ReconciliationService
from backend.app.domain.settlement.shares import normalize_share
from backend.app.models.campaign import Campaign
from backend.app.models.campaign_collaborator import CampaignCollaborator
from backend.app.models.campaign_enums import ENTITLED_PARTNER_STATUSES
from backend.app.models.funding import Funding
from backend.app.models.funding_enums import FundingStatus
from backend.app.models.partner_match import PartnerMatch
from backend.app.models.payment_transaction import PaymentTransaction  # noqa: F401 (mapper registration)
from backend.app.models.settlement import Settlement
from backend.app.models.settlement_enums import (
    OPEN_SETTLEMENT_STATUSES, SettlementPayoutStatus, StakeholderType
)
from backend.app.models.settlement_payout import SettlementPayout
from backend.app.schemas.settlement import SettlementBreakdown, StakeholderShare
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("crowdfund.settlement")


async def find_open_settlement(db: AsyncSession, campaign_id: int) -> Optional[Settlement]:
    """Return the campaign's PENDING or IN_PROGRESS settlement, if any."""
    result = await db.execute(
        select(Settlement).where(
            Settlement.campaign_id == campaign_id,
            Settlement.payout_status.in_(OPEN_SETTLEMENT_STATUSES)
        )
    )
    return result.scalars().first()


async def load_stakeholder_shares(
    db: AsyncSession, campaign_id: int
) -> tuple[List[StakeholderShare], List[StakeholderShare]]:
    """
    Load partner and collaborator shares as normalized fractions.

    Only ACCEPTED or COMPLETED partner matches are entitled. Zero shares are
    kept here and dropped by the calculator.
    """
    partner_rows = await db.execute(
        select(PartnerMatch).where(
            PartnerMatch.campaign_id == campaign_id,
            PartnerMatch.status.in_(ENTITLED_PARTNER_STATUSES),
            PartnerMatch.settlement_share.is_not(None)
        ).order_by(PartnerMatch.id)
    )
    partners = [
        StakeholderShare(
            stakeholder_id=match.partner_id,
            share=normalize_share(match.settlement_share, match.share_unit)
        )
        for match in partner_rows.scalars().all()
    ]

    collaborator_rows = await db.execute(
        select(CampaignCollaborator).where(
            CampaignCollaborator.campaign_id == campaign_id,
            CampaignCollaborator.share.is_not(None)
        ).order_by(CampaignCollaborator.id)
    )
    collaborators = [
        StakeholderShare(
            stakeholder_id=collab.user_id,
            share=normalize_share(collab.share, collab.share_unit)
        )
        for collab in collaborator_rows.scalars().all()
    ]

    return partners, collaborators


def build_payouts(breakdown: SettlementBreakdown, owner_id: int) -> List[SettlementPayout]:
    """
    Payout rows for a breakdown.

    PLATFORM and CREATOR are fixed roles and always present; partners and
    collaborators only when their allocation is positive.
    """
    total = breakdown.total_raised
    net = breakdown.net_amount

    payouts = [
        SettlementPayout(
            stakeholder_type=StakeholderType.PLATFORM,
            stakeholder_id=None,
            amount=breakdown.platform_fee,
            percentage=breakdown.platform_fee / total if total > 0 else 0.0,
            status=SettlementPayoutStatus.PENDING
        ),
        SettlementPayout(
            stakeholder_type=StakeholderType.CREATOR,
            stakeholder_id=owner_id,
            amount=breakdown.creator_share,
            percentage=breakdown.creator_share / net if net > 0 else 0.0,
            status=SettlementPayoutStatus.PENDING
        ),
    ]

    for allocation in [*breakdown.partners, *breakdown.collaborators]:
        if allocation.amount <= 0:
            continue
        payouts.append(
            SettlementPayout(
                stakeholder_type=allocation.stakeholder_type,
                stakeholder_id=allocation.stakeholder_id,
                amount=allocation.amount,
                percentage=allocation.percentage,
                status=SettlementPayoutStatus.PENDING
            )
        )

    return payouts


class SettlementService:

    @staticmethod
    async def create_settlement_if_target_reached(
        db: AsyncSession,
        campaign_id: int,
        platform_fee_rate: Optional[float] = None,
        gateway_fee_override: Optional[int] = None,
        notes: Any = None,
        reconcile: Optional[bool] = None,
    ) -> Optional[Settlement]:
        """
        Create the campaign's PENDING settlement once its target is reached.

        Safe to call speculatively and repeatedly: an existing PENDING or
        IN_PROGRESS settlement is returned unchanged. Everything (running-total
        correction, idempotency check, inserts) commits in one transaction or not
        at all. If a concurrent trigger commits first, the open-settlement unique
        index rejects this insert and the winner's settlement is returned.

        Args:
            db: Database session (this call commits or rolls back)
            campaign_id: Campaign to settle
            platform_fee_rate: Fraction in [0, 1], defaults to settings.platform_fee_rate
            gateway_fee_override: Use instead of the sum of transaction fees
            notes: Free-form JSON stored on the settlement
            reconcile: Correct the cached running total first
                (defaults to settings.reconcile_before_settlement)

        Returns:
            The new or existing open Settlement, or None if the target is not reached

        Raises:
            CampaignNotFoundError, NoSuccessfulFundingsError, InvalidInputError,
            ShareOverflowError, StoreUnavailableError
        """
        if platform_fee_rate is None:
            platform_fee_rate = settings.platform_fee_rate
        if reconcile is None:
            reconcile = settings.reconcile_before_settlement

        try:
            with store_errors("create_settlement"):
                settlement = await SettlementService._create_in_transaction(
                    db, campaign_id, platform_fee_rate, gateway_fee_override, notes, reconcile
                )
                await db.commit()
                if settlement is not None:
                    await db.refresh(settlement)
        except IntegrityError:
            await db.rollback()
            with store_errors("create_settlement"):
                existing = await find_open_settlement(db, campaign_id)
            if existing is None:
                raise
            logger.info(
                "Concurrent trigger already created settlement",
                extra={"campaign_id": campaign_id, "settlement_id": existing.id}
            )
            return existing
        except Exception:
            await db.rollback()
            raise

        return settlement

    @staticmethod
    async def _create_in_transaction(
        db: AsyncSession,
        campaign_id: int,
        platform_fee_rate: float,
        gateway_fee_override: Optional[int],
        notes: Any,
        reconcile: bool,
    ) -> Optional[Settlement]:
        # 1. Campaign
        campaign = await db.get(Campaign, campaign_id, populate_existing=True)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)

        # 2. Stale cache must not decide eligibility
        if reconcile:
            await ReconciliationService.sync_running_total(db, campaign_id)

        if campaign.current_amount < campaign.target_amount:
            logger.debug(
                "Campaign below target, no settlement",
                extra={"campaign_id": campaign_id, "current": campaign.current_amount,
                       "target": campaign.target_amount}
            )
            return None

        # 3. Idempotency (same transaction as the insert)
        existing = await find_open_settlement(db, campaign_id)
        if existing is not None:
            return existing

        # 4. Ledger
        result = await db.execute(
            select(Funding)
            .options(selectinload(Funding.transaction))
            .where(
                Funding.campaign_id == campaign_id,
                Funding.payment_status == FundingStatus.SUCCEEDED
            )
        )
        fundings = result.scalars().all()
        total_raised = sum(funding.amount for funding in fundings)
        if total_raised <= 0:
            raise NoSuccessfulFundingsError(campaign_id)

        # 5. Gateway fees
        if gateway_fee_override is not None:
            gateway_fees = gateway_fee_override
        else:
            gateway_fees = sum(
                (funding.transaction.gateway_fee or 0) if funding.transaction else 0
                for funding in fundings
            )

        # 6. Shares
        partner_shares, collaborator_shares = await load_stakeholder_shares(db, campaign_id)

        # 7. Allocation (errors propagate unchanged)
        breakdown = compute_breakdown(
            total_raised=total_raised,
            platform_fee_rate=platform_fee_rate,
            gateway_fees=gateway_fees,
            partner_shares=partner_shares,
            collaborator_shares=collaborator_shares,
        )

        # 8. Persist
        settlement = Settlement(
            campaign_id=campaign_id,
            total_raised=breakdown.total_raised,
            platform_fee=breakdown.platform_fee,
            gateway_fees=breakdown.gateway_fees,
            net_amount=breakdown.net_amount,
            creator_share=breakdown.creator_share,
            partner_share=breakdown.partner_share_total,
            collaborator_share=breakdown.collaborator_share_total,
            payout_status=SettlementPayoutStatus.PENDING,
            distribution_breakdown=breakdown.model_dump(mode="json"),
            notes=notes
        )
        db.add(settlement)
        await db.flush()  # Raises IntegrityError if another open settlement exists

        payouts = build_payouts(breakdown, campaign.owner_id)
        for payout in payouts:
            payout.settlement_id = settlement.id
        db.add_all(payouts)

        await log_event(
            db=db,
            action=AuditAction.SETTLEMENT_CREATED,
            entity_type="settlement",
            entity_id=settlement.id,
            metadata={
                "campaign_id": campaign_id,
                "total_raised": breakdown.total_raised,
                "net_amount": breakdown.net_amount,
                "payout_count": len(payouts)
            }
        )

        logger.info(
            "Settlement created",
            extra={"campaign_id": campaign_id, "settlement_id": settlement.id,
                   "total_raised": breakdown.total_raised, "net_amount": breakdown.net_amount}
        )
        return settlement

    @staticmethod
    async def get_settlement_with_payouts(db: AsyncSession, settlement_id: int) -> Settlement:
        result = await db.execute(
            select(Settlement)
            .options(selectinload(Settlement.payouts))
            .where(Settlement.id == settlement_id)
            .execution_options(populate_existing=True)
        )
        settlement = result.scalar_one_or_none()
        if settlement is None:
            raise SettlementNotFoundError(settlement_id)
        return settlement

    @staticmethod
    async def get_settlements_pending_payout(db: AsyncSession, limit: int = 5) -> List[Settlement]:
        """Open settlements (PENDING or IN_PROGRESS), most recently updated first."""
        result = await db.execute(
            select(Settlement)
            .where(Settlement.payout_status.in_(OPEN_SETTLEMENT_STATUSES))
            .order_by(Settlement.updated_at.desc(), Settlement.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def approve_settlement(
        db: AsyncSession, settlement_id: int, actor_id: Optional[int] = None,
        actor_username: Optional[str] = None
    ) -> Settlement:
        """PENDING -> IN_PROGRESS."""
        return await SettlementService._transition(
            db, settlement_id,
            expected=SettlementPayoutStatus.PENDING,
            target=SettlementPayoutStatus.IN_PROGRESS,
            action=AuditAction.SETTLEMENT_APPROVED,
            actor_id=actor_id, actor_username=actor_username
        )

    @staticmethod
    async def mark_settlement_paid(
        db: AsyncSession, settlement_id: int, actor_id: Optional[int] = None,
        actor_username: Optional[str] = None
    ) -> Settlement:
        """IN_PROGRESS -> PAID. Records completion only; no money is moved here."""
        return await SettlementService._transition(
            db, settlement_id,
            expected=SettlementPayoutStatus.IN_PROGRESS,
            target=SettlementPayoutStatus.PAID,
            action=AuditAction.SETTLEMENT_PAID,
            actor_id=actor_id, actor_username=actor_username
        )

    @staticmethod
    async def _transition(
        db: AsyncSession,
        settlement_id: int,
        expected: SettlementPayoutStatus,
        target: SettlementPayoutStatus,
        action: str,
        actor_id: Optional[int],
        actor_username: Optional[str],
    ) -> Settlement:
        try:
            with store_errors("settlement_transition"):
                settlement = await SettlementService.get_settlement_with_payouts(db, settlement_id)

                if settlement.payout_status != expected:
                    raise InvalidSettlementTransitionError(
                        settlement_id, settlement.payout_status.value, expected.value
                    )

                now = datetime.now(timezone.utc)
                settlement.payout_status = target
                if target == SettlementPayoutStatus.IN_PROGRESS:
                    settlement.approved_at = now
                    for payout in settlement.payouts:
                        payout.status = SettlementPayoutStatus.IN_PROGRESS
                elif target == SettlementPayoutStatus.PAID:
                    settlement.paid_at = now
                    for payout in settlement.payouts:
                        payout.status = SettlementPayoutStatus.PAID
                        payout.paid_at = now

                await log_event(
                    db=db,
                    action=action,
                    entity_type="settlement",
                    entity_id=settlement.id,
                    actor_id=actor_id,
                    actor_username=actor_username,
                    metadata={"from": expected.value, "to": target.value}
                )
                await db.commit()
        except Exception:
            await db.rollback()
            raise

        return await SettlementService.get_settlement_with_payouts(db, settlement_id)
