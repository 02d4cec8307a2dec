"""
Settlement orchestration tests.

Validates eligibility, idempotency, persistence of payouts and atomic
rollback when the allocation fails.
"""

import pytest
from sqlalchemy.exc import OperationalError

from backend.app.core.exceptions import (
    CampaignNotFoundError,
    InvalidInputError,
    InvalidSettlementTransitionError,
    NoSuccessfulFundingsError,
    SettlementNotFoundError,
    ShareOverflowError,
    StoreUnavailableError,
)
from backend.app.domain.settlement.settlement_service import SettlementService
from backend.app.models.campaign import Campaign
from backend.app.models.campaign_enums import PartnerMatchStatus
from backend.app.models.settlement_enums import SettlementPayoutStatus, ShareUnit, StakeholderType
from backend.app.services.audit import AuditAction, get_audit_trail


def payouts_by_type(settlement):
    grouped = {}
    for payout in settlement.payouts:
        grouped.setdefault(payout.stakeholder_type, []).append(payout)
    return grouped


@pytest.mark.asyncio
async def test_below_target_returns_none(db_session, make_campaign, count_settlements):
    campaign = await make_campaign(target_amount=1000, funded=[999])

    result = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)

    assert result is None
    assert await count_settlements(campaign.id) == 0


@pytest.mark.asyncio
async def test_creates_pending_settlement_with_payouts(db_session, make_campaign):
    campaign = await make_campaign(
        target_amount=1_000_000,
        funded=[600_000, 400_000],
        gateway_fee_per_funding=10_000,
        partners=[(501, 0.2), (502, 0.1)],
        collaborators=[(601, 15)],
    )

    settlement = await SettlementService.create_settlement_if_target_reached(
        db_session, campaign.id, platform_fee_rate=0.05
    )

    assert settlement.payout_status == SettlementPayoutStatus.PENDING
    assert settlement.total_raised == 1_000_000
    assert settlement.platform_fee == 50_000
    assert settlement.gateway_fees == 20_000
    assert settlement.net_amount == 930_000
    assert settlement.partner_share == 279_000
    assert settlement.collaborator_share == 139_500
    assert settlement.creator_share == 511_500
    assert settlement.created_at is not None
    assert settlement.distribution_breakdown["creator_role"] == "RESIDUAL"

    detail = await SettlementService.get_settlement_with_payouts(db_session, settlement.id)
    grouped = payouts_by_type(detail)

    platform = grouped[StakeholderType.PLATFORM][0]
    assert platform.stakeholder_id is None
    assert platform.amount == 50_000
    assert platform.percentage == pytest.approx(0.05)

    creator = grouped[StakeholderType.CREATOR][0]
    assert creator.stakeholder_id == 7
    assert creator.amount == 511_500
    assert creator.percentage == pytest.approx(511_500 / 930_000)

    assert [(p.stakeholder_id, p.amount) for p in grouped[StakeholderType.PARTNER]] == [
        (501, 186_000), (502, 93_000)
    ]
    collaborator = grouped[StakeholderType.COLLABORATOR][0]
    assert (collaborator.stakeholder_id, collaborator.amount) == (601, 139_500)
    assert collaborator.percentage == pytest.approx(0.15)

    # Every non-platform payout adds up to the net amount
    assert sum(p.amount for p in detail.payouts if p.stakeholder_type != StakeholderType.PLATFORM) == 930_000
    assert all(p.status == SettlementPayoutStatus.PENDING for p in detail.payouts)

    trail = await get_audit_trail(db_session, entity_type="settlement", entity_id=settlement.id)
    assert [entry.action for entry in trail] == [AuditAction.SETTLEMENT_CREATED]


@pytest.mark.asyncio
async def test_repeat_trigger_returns_same_settlement(db_session, make_campaign, count_settlements):
    campaign = await make_campaign(target_amount=1000, funded=[1000])

    first = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)
    second = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)

    assert first.id == second.id
    assert await count_settlements(campaign.id) == 1


@pytest.mark.asyncio
async def test_in_progress_settlement_is_returned_unchanged(db_session, make_campaign, count_settlements):
    campaign = await make_campaign(target_amount=1000, funded=[1000])
    created = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)
    await SettlementService.approve_settlement(db_session, created.id, actor_id=1)

    again = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)

    assert again.id == created.id
    assert again.payout_status == SettlementPayoutStatus.IN_PROGRESS
    assert await count_settlements(campaign.id) == 1


@pytest.mark.asyncio
async def test_paid_settlement_allows_new_cycle(db_session, make_campaign, count_settlements):
    campaign = await make_campaign(target_amount=1000, funded=[1000])
    first = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)
    await SettlementService.approve_settlement(db_session, first.id)
    await SettlementService.mark_settlement_paid(db_session, first.id)

    second = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)

    assert second.id != first.id
    assert second.payout_status == SettlementPayoutStatus.PENDING
    assert await count_settlements(campaign.id) == 2


@pytest.mark.asyncio
async def test_unknown_campaign_raises(db_session):
    with pytest.raises(CampaignNotFoundError):
        await SettlementService.create_settlement_if_target_reached(db_session, 9999)


@pytest.mark.asyncio
async def test_target_reached_without_fundings_raises(db_session, make_campaign, count_settlements):
    campaign = await make_campaign(target_amount=1000, funded=(), current_amount=1000)
    campaign_id = campaign.id

    with pytest.raises(NoSuccessfulFundingsError) as exc_info:
        await SettlementService.create_settlement_if_target_reached(
            db_session, campaign_id, reconcile=False
        )

    assert exc_info.value.details["alert"] == "DATA_QUALITY"
    assert await count_settlements(campaign_id) == 0


@pytest.mark.asyncio
async def test_reconcile_first_drops_phantom_total(db_session, session_factory, make_campaign):
    campaign = await make_campaign(target_amount=1000, funded=(), current_amount=1000)

    result = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)

    assert result is None
    async with session_factory() as session:
        refreshed = await session.get(Campaign, campaign.id)
        assert refreshed.current_amount == 0


@pytest.mark.asyncio
async def test_share_overflow_rolls_back_everything(
    db_session, session_factory, make_campaign, count_settlements
):
    campaign = await make_campaign(
        target_amount=1000,
        funded=[1000],
        current_amount=500,
        partners=[(1, 0.8)],
        collaborators=[(2, 30)],
    )
    campaign_id = campaign.id

    with pytest.raises(ShareOverflowError):
        await SettlementService.create_settlement_if_target_reached(db_session, campaign_id)

    assert await count_settlements(campaign_id) == 0
    async with session_factory() as session:
        refreshed = await session.get(Campaign, campaign_id)
        # The running-total correction was part of the failed transaction
        assert refreshed.current_amount == 500
        trail = await get_audit_trail(session, action=AuditAction.RUNNING_TOTAL_CORRECTED)
        assert trail == []


@pytest.mark.asyncio
async def test_out_of_range_share_is_rejected(db_session, make_campaign, count_settlements):
    campaign = await make_campaign(
        target_amount=1000, funded=[1000], partners=[(1, 1.5, ShareUnit.FRACTION)]
    )
    campaign_id = campaign.id

    with pytest.raises(InvalidInputError):
        await SettlementService.create_settlement_if_target_reached(db_session, campaign_id)

    assert await count_settlements(campaign_id) == 0


@pytest.mark.asyncio
async def test_stale_low_running_total_is_corrected_and_settled(db_session, make_campaign):
    campaign = await make_campaign(target_amount=1000, funded=[600, 400], current_amount=600)

    settlement = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)

    assert settlement is not None
    assert settlement.total_raised == 1000
    trail = await get_audit_trail(db_session, action=AuditAction.RUNNING_TOTAL_CORRECTED)
    assert len(trail) == 1
    assert trail[0].meta_data == {"previous": 600, "corrected": 1000}


@pytest.mark.asyncio
async def test_stale_high_running_total_is_corrected_without_settlement(
    db_session, session_factory, make_campaign, count_settlements
):
    campaign = await make_campaign(target_amount=1000, funded=[400], current_amount=1000)

    result = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)

    assert result is None
    assert await count_settlements(campaign.id) == 0
    async with session_factory() as session:
        refreshed = await session.get(Campaign, campaign.id)
        assert refreshed.current_amount == 400


@pytest.mark.asyncio
async def test_only_entitled_partners_are_paid(db_session, make_campaign):
    campaign = await make_campaign(
        target_amount=1000,
        funded=[1000],
        partners=[
            (1, 0.1),
            (2, 0.2, ShareUnit.FRACTION, PartnerMatchStatus.DECLINED),
            (3, 0.1, ShareUnit.FRACTION, PartnerMatchStatus.COMPLETED),
        ],
    )

    settlement = await SettlementService.create_settlement_if_target_reached(
        db_session, campaign.id, platform_fee_rate=0
    )
    detail = await SettlementService.get_settlement_with_payouts(db_session, settlement.id)

    partner_ids = [p.stakeholder_id for p in payouts_by_type(detail)[StakeholderType.PARTNER]]
    assert partner_ids == [1, 3]
    assert detail.partner_share == 200


@pytest.mark.asyncio
async def test_gateway_fee_override(db_session, make_campaign):
    campaign = await make_campaign(target_amount=1000, funded=[1000], gateway_fee_per_funding=30)

    settlement = await SettlementService.create_settlement_if_target_reached(
        db_session, campaign.id, platform_fee_rate=0.1, gateway_fee_override=0, notes={"batch": 3}
    )

    assert settlement.gateway_fees == 0
    assert settlement.net_amount == 900
    assert settlement.notes == {"batch": 3}


@pytest.mark.asyncio
async def test_platform_row_present_at_zero_rate(db_session, make_campaign):
    campaign = await make_campaign(target_amount=1000, funded=[1000])

    settlement = await SettlementService.create_settlement_if_target_reached(
        db_session, campaign.id, platform_fee_rate=0
    )
    detail = await SettlementService.get_settlement_with_payouts(db_session, settlement.id)
    grouped = payouts_by_type(detail)

    assert grouped[StakeholderType.PLATFORM][0].amount == 0
    assert grouped[StakeholderType.CREATOR][0].amount == 1000
    assert len(detail.payouts) == 2


@pytest.mark.asyncio
async def test_approve_then_mark_paid(db_session, make_campaign):
    campaign = await make_campaign(target_amount=1000, funded=[1000])
    created = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)

    approved = await SettlementService.approve_settlement(
        db_session, created.id, actor_id=1, actor_username="admin"
    )
    assert approved.payout_status == SettlementPayoutStatus.IN_PROGRESS
    assert approved.approved_at is not None
    assert all(p.status == SettlementPayoutStatus.IN_PROGRESS for p in approved.payouts)

    paid = await SettlementService.mark_settlement_paid(db_session, created.id, actor_id=1)
    assert paid.payout_status == SettlementPayoutStatus.PAID
    assert paid.paid_at is not None
    assert all(p.status == SettlementPayoutStatus.PAID and p.paid_at for p in paid.payouts)

    trail = await get_audit_trail(db_session, entity_type="settlement", entity_id=created.id)
    assert {entry.action for entry in trail} == {
        AuditAction.SETTLEMENT_CREATED,
        AuditAction.SETTLEMENT_APPROVED,
        AuditAction.SETTLEMENT_PAID,
    }


@pytest.mark.asyncio
async def test_mark_paid_requires_approval(db_session, make_campaign):
    campaign = await make_campaign(target_amount=1000, funded=[1000])
    created = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)
    settlement_id = created.id

    with pytest.raises(InvalidSettlementTransitionError):
        await SettlementService.mark_settlement_paid(db_session, settlement_id)

    detail = await SettlementService.get_settlement_with_payouts(db_session, settlement_id)
    assert detail.payout_status == SettlementPayoutStatus.PENDING


@pytest.mark.asyncio
async def test_unknown_settlement_raises(db_session):
    with pytest.raises(SettlementNotFoundError):
        await SettlementService.approve_settlement(db_session, 4242)


@pytest.mark.asyncio
async def test_pending_payout_listing(db_session, make_campaign):
    open_ids = []
    for _ in range(3):
        campaign = await make_campaign(target_amount=1000, funded=[1000])
        settlement = await SettlementService.create_settlement_if_target_reached(db_session, campaign.id)
        open_ids.append(settlement.id)

    paid_campaign = await make_campaign(target_amount=1000, funded=[1000])
    paid = await SettlementService.create_settlement_if_target_reached(db_session, paid_campaign.id)
    await SettlementService.approve_settlement(db_session, paid.id)
    await SettlementService.mark_settlement_paid(db_session, paid.id)

    pending = await SettlementService.get_settlements_pending_payout(db_session)
    assert sorted(s.id for s in pending) == sorted(open_ids)

    limited = await SettlementService.get_settlements_pending_payout(db_session, limit=2)
    assert len(limited) == 2


@pytest.mark.asyncio
async def test_connection_loss_after_commit_maps_to_unavailable(
    db_session, make_campaign, count_settlements, mocker
):
    campaign = await make_campaign(target_amount=1000, funded=[1000])
    campaign_id = campaign.id
    mocker.patch.object(
        db_session, "refresh",
        side_effect=OperationalError("SELECT", {}, Exception("connection reset"))
    )

    with pytest.raises(StoreUnavailableError) as exc_info:
        await SettlementService.create_settlement_if_target_reached(db_session, campaign_id)
    assert exc_info.value.details["operation"] == "create_settlement"

    # Outcome unknown to the caller; rerunning the trigger is safe
    mocker.stopall()
    retried = await SettlementService.create_settlement_if_target_reached(db_session, campaign_id)
    assert retried is not None
    assert await count_settlements(campaign_id) == 1
