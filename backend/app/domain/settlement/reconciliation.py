"""
Reconciliation Service (Domain Logic).

Compares the funding ledger (sum of SUCCEEDED fundings) with the campaign's
cached running total and with its most recent settlement.

Divergence is logged and corrected, never raised: the check is self-healing,
not a gate. Only a missing campaign or an unreachable store is an error.
"""

import logging
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import CampaignNotFoundError
from backend.app.core.reliability import store_errors
from backend.app.models.campaign import Campaign
from backend.app.models.funding import Funding
from backend.app.models.funding_enums import FundingStatus
from backend.app.models.settlement import Settlement
from backend.app.schemas.settlement import ConsistencyReport
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("crowdfund.reconciliation")


async def get_ledger_total(db: AsyncSession, campaign_id: int) -> int:
    """Sum of SUCCEEDED funding amounts for a campaign (0 when none)."""
    result = await db.execute(
        select(func.coalesce(func.sum(Funding.amount), 0)).where(
            Funding.campaign_id == campaign_id,
            Funding.payment_status == FundingStatus.SUCCEEDED
        )
    )
    return int(result.scalar_one())


async def get_latest_settlement(db: AsyncSession, campaign_id: int) -> Optional[Settlement]:
    result = await db.execute(
        select(Settlement)
        .where(Settlement.campaign_id == campaign_id)
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _load_campaign(db: AsyncSession, campaign_id: int) -> Campaign:
    campaign = await db.get(Campaign, campaign_id, populate_existing=True)
    if campaign is None:
        raise CampaignNotFoundError(campaign_id)
    return campaign


class ReconciliationService:

    @staticmethod
    async def check_consistency(db: AsyncSession, campaign_id: int) -> ConsistencyReport:
        """
        Report divergence between the ledger and cached aggregates.

        Never mutates state.

        Raises:
            CampaignNotFoundError: If the campaign does not exist
            StoreUnavailableError: If the database cannot be reached
        """
        with store_errors("check_consistency"):
            campaign = await _load_campaign(db, campaign_id)
            ledger_total = await get_ledger_total(db, campaign_id)
            latest = await get_latest_settlement(db, campaign_id)

        issues = []

        if campaign.current_amount != ledger_total:
            issues.append(
                f"Campaign running total ({campaign.current_amount}) does not match "
                f"ledger total ({ledger_total})"
            )

        latest_total = latest.total_raised if latest is not None else None
        if latest is not None and latest.total_raised != ledger_total:
            issues.append(
                f"Latest settlement {latest.id} total ({latest.total_raised}) does not match "
                f"ledger total ({ledger_total})"
            )

        if issues:
            logger.warning(
                "Campaign ledger inconsistency",
                extra={"campaign_id": campaign_id, "issues": issues}
            )

        return ConsistencyReport(
            campaign_id=campaign_id,
            is_valid=not issues,
            issues=issues,
            ledger_total=ledger_total,
            cached_total=campaign.current_amount,
            latest_settlement_total=latest_total,
        )

    @staticmethod
    async def sync_running_total(db: AsyncSession, campaign_id: int) -> bool:
        """
        Set the campaign's cached running total to the ledger total.

        Flushes within the caller's transaction; the caller commits or rolls back.

        Returns:
            True if a correction was made
        """
        with store_errors("sync_running_total"):
            campaign = await _load_campaign(db, campaign_id)
            ledger_total = await get_ledger_total(db, campaign_id)

            if campaign.current_amount == ledger_total:
                return False

            previous = campaign.current_amount
            campaign.current_amount = ledger_total

            await log_event(
                db=db,
                action=AuditAction.RUNNING_TOTAL_CORRECTED,
                entity_type="campaign",
                entity_id=campaign_id,
                metadata={"previous": previous, "corrected": ledger_total}
            )

        logger.warning(
            "Corrected stale campaign running total",
            extra={"campaign_id": campaign_id, "previous": previous, "ledger_total": ledger_total}
        )
        return True

    @staticmethod
    async def reconcile_campaign(db: AsyncSession, campaign_id: int) -> tuple[bool, ConsistencyReport]:
        """
        Administrative reconciliation pass: correct the running total and commit.

        Returns:
            (corrected, report after correction)
        """
        try:
            corrected = await ReconciliationService.sync_running_total(db, campaign_id)
            with store_errors("reconcile_campaign"):
                await db.commit()
        except Exception:
            await db.rollback()
            raise

        report = await ReconciliationService.check_consistency(db, campaign_id)
        return corrected, report
