"""
Funding ingestion hook.

Called by the payment flow once the gateway reports success. Records the
funding in the ledger, bumps the campaign's cached running total and
speculatively triggers settlement creation.
"""

import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.core.exceptions import InvalidInputError, ResourceNotFoundError
from backend.app.core.reliability import store_errors
from backend.app.domain.settlement.settlement_service import SettlementService
from backend.app.models.campaign import Campaign
from backend.app.models.funding import Funding
from backend.app.models.funding_enums import FundingStatus, PaymentProvider
from backend.app.models.payment_transaction import PaymentTransaction
from backend.app.models.settlement import Settlement
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("crowdfund.funding")

# A gateway may confirm a payment that was first reported as failed
_PROMOTABLE_STATUSES = (FundingStatus.PENDING, FundingStatus.FAILED)


async def _attach_gateway_fee(db: AsyncSession, funding: Funding, gateway_fee: int) -> None:
    """Store the reported fee, creating a MANUAL transaction when none is linked."""
    if funding.transaction is None:
        funding.transaction = PaymentTransaction(
            provider=PaymentProvider.MANUAL,
            external_id=f"manual_{funding.id}",
            status=FundingStatus.SUCCEEDED,
            amount=funding.amount,
            currency=funding.currency,
            gateway_fee=gateway_fee,
        )
        logger.info(
            "Created manual payment transaction for gateway fee",
            extra={"funding_id": funding.id, "gateway_fee": gateway_fee}
        )
    else:
        funding.transaction.gateway_fee = gateway_fee
        funding.transaction.status = FundingStatus.SUCCEEDED
    await db.flush()


async def _promote(db: AsyncSession, funding: Funding) -> bool:
    """
    Flip the funding to SUCCEEDED and count it once.

    The status guard lives in the UPDATE itself, so of two concurrent
    confirmations only the one that changes the row bumps the running total.
    """
    result = await db.execute(
        update(Funding)
        .where(Funding.id == funding.id, Funding.payment_status.in_(_PROMOTABLE_STATUSES))
        .values(payment_status=FundingStatus.SUCCEEDED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info("Funding already promoted by another confirmation", extra={"funding_id": funding.id})
        return False
    await db.refresh(funding, ["payment_status"])

    await db.execute(
        update(Campaign)
        .where(Campaign.id == funding.campaign_id)
        .values(current_amount=Campaign.current_amount + funding.amount)
        .execution_options(synchronize_session=False)
    )
    await log_event(
        db=db,
        action=AuditAction.FUNDING_SUCCEEDED,
        entity_type="funding",
        entity_id=funding.id,
        metadata={"campaign_id": funding.campaign_id, "amount": funding.amount}
    )
    return True


async def record_funding_success(
    db: AsyncSession,
    funding_id: int,
    gateway_fee: Optional[int] = None
) -> Optional[Settlement]:
    """
    Mark a funding SUCCEEDED and trigger settlement for its campaign.

    Idempotent: a funding that already SUCCEEDED is not counted twice, also
    when two confirmations for it race.

    Args:
        db: Database session
        funding_id: Funding confirmed by the gateway
        gateway_fee: Fee reported by the gateway, stored on the linked
            transaction (a MANUAL transaction is created if there is none)

    Returns:
        The campaign's open settlement if the target is reached, else None

    Raises:
        ResourceNotFoundError: If the funding does not exist
        InvalidInputError: If the funding was refunded or cancelled, or the fee is negative
    """
    if gateway_fee is not None and gateway_fee < 0:
        raise InvalidInputError("gateway_fee must be non-negative", {"gateway_fee": gateway_fee})

    try:
        with store_errors("record_funding_success"):
            funding = await db.get(
                Funding, funding_id,
                options=[selectinload(Funding.transaction)],
                populate_existing=True
            )
            if funding is None:
                raise ResourceNotFoundError("Funding", funding_id)

            if funding.payment_status in _PROMOTABLE_STATUSES:
                await _promote(db, funding)
            elif funding.payment_status != FundingStatus.SUCCEEDED:
                raise InvalidInputError(
                    f"Funding {funding_id} is {funding.payment_status.value} and cannot succeed",
                    {"funding_id": funding_id, "status": funding.payment_status.value}
                )

            if gateway_fee is not None:
                await _attach_gateway_fee(db, funding, gateway_fee)

            campaign_id = funding.campaign_id
            await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Funding recorded", extra={"funding_id": funding_id, "campaign_id": campaign_id})

    return await SettlementService.create_settlement_if_target_reached(db, campaign_id)
