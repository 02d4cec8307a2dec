"""
Admin Settlement API Endpoints.

Administrative triggers for settlement creation and reconciliation, and the
approval workflow for created settlements.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import require_admin
from backend.app.db.session import get_db
from backend.app.domain.settlement.reconciliation import ReconciliationService
from backend.app.domain.settlement.settlement_service import SettlementService
from backend.app.schemas.settlement import (
    AdminSettlementActionResponse,
    ConsistencyReport,
    ReconcileResponse,
    SettlementDetailResponse,
    SettlementResponse,
    SettlementTriggerRequest,
    SettlementTriggerResponse,
)

router = APIRouter(prefix="/admin", tags=["Admin - Settlements"])


@router.post("/campaigns/{campaign_id}/settlements", response_model=SettlementTriggerResponse)
async def trigger_settlement(
    campaign_id: int = Path(..., description="Campaign ID"),
    payload: Optional[SettlementTriggerRequest] = Body(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Create the campaign's settlement if its target is reached.

    Idempotent: returns the open settlement when one already exists.
    """
    payload = payload or SettlementTriggerRequest()
    settlement = await SettlementService.create_settlement_if_target_reached(
        db,
        campaign_id,
        platform_fee_rate=payload.platform_fee_rate,
        gateway_fee_override=payload.gateway_fee_override,
        notes=payload.notes,
    )

    if settlement is None:
        return SettlementTriggerResponse(eligible=False)

    return SettlementTriggerResponse(
        eligible=True,
        settlement=SettlementResponse.model_validate(settlement)
    )


@router.get("/campaigns/{campaign_id}/consistency", response_model=ConsistencyReport)
async def check_campaign_consistency(
    campaign_id: int = Path(..., description="Campaign ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Compare the funding ledger with cached totals. Read-only."""
    return await ReconciliationService.check_consistency(db, campaign_id)


@router.post("/campaigns/{campaign_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_campaign(
    campaign_id: int = Path(..., description="Campaign ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Correct the cached running total from the ledger."""
    corrected, report = await ReconciliationService.reconcile_campaign(db, campaign_id)
    return ReconcileResponse(corrected=corrected, report=report)


@router.get("/settlements/pending", response_model=List[SettlementResponse])
async def list_pending_settlements(
    limit: int = Query(5, ge=1, le=100),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Settlements awaiting payout (PENDING or IN_PROGRESS)."""
    return await SettlementService.get_settlements_pending_payout(db, limit=limit)


@router.get("/settlements/{settlement_id}", response_model=SettlementDetailResponse)
async def get_settlement(
    settlement_id: int = Path(..., description="Settlement ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await SettlementService.get_settlement_with_payouts(db, settlement_id)


@router.post("/settlements/{settlement_id}/approve", response_model=AdminSettlementActionResponse)
async def approve_settlement(
    settlement_id: int = Path(..., description="Settlement ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Approve a PENDING settlement (moves it to IN_PROGRESS).
    """
    settlement = await SettlementService.approve_settlement(
        db, settlement_id,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub")
    )
    return AdminSettlementActionResponse(
        settlement_id=settlement.id,
        status=settlement.payout_status,
        updated_at=settlement.updated_at
    )


@router.post("/settlements/{settlement_id}/mark-paid", response_model=AdminSettlementActionResponse)
async def mark_settlement_paid(
    settlement_id: int = Path(..., description="Settlement ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Mark an IN_PROGRESS settlement as PAID.
    """
    settlement = await SettlementService.mark_settlement_paid(
        db, settlement_id,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub")
    )
    return AdminSettlementActionResponse(
        settlement_id=settlement.id,
        status=settlement.payout_status,
        updated_at=settlement.updated_at
    )
