import pytest
from sqlalchemy.orm import selectinload

from backend.app.core.exceptions import InvalidInputError, ResourceNotFoundError
from backend.app.models.campaign import Campaign
from backend.app.models.funding import Funding
from backend.app.models.funding_enums import FundingStatus, PaymentProvider
from backend.app.models.settlement_enums import SettlementPayoutStatus
from backend.app.services.audit import AuditAction, get_audit_trail
from backend.app.services.funding_ingestion import record_funding_success


async def current_amount(session_factory, campaign_id):
    async with session_factory() as session:
        campaign = await session.get(Campaign, campaign_id)
        return campaign.current_amount


@pytest.mark.asyncio
async def test_success_below_target_updates_running_total(db_session, session_factory, make_campaign, add_funding):
    campaign = await make_campaign(target_amount=1000, funded=[300])
    funding = await add_funding(campaign.id, 200, status=FundingStatus.PENDING)

    result = await record_funding_success(db_session, funding.id)

    assert result is None
    assert await current_amount(session_factory, campaign.id) == 500

    trail = await get_audit_trail(db_session, entity_type="funding", entity_id=funding.id)
    assert [entry.action for entry in trail] == [AuditAction.FUNDING_SUCCEEDED]


@pytest.mark.asyncio
async def test_success_reaching_target_creates_settlement(db_session, make_campaign, add_funding):
    campaign = await make_campaign(target_amount=1000, funded=[600])
    funding = await add_funding(campaign.id, 400, status=FundingStatus.PENDING, gateway_fee=0)

    settlement = await record_funding_success(db_session, funding.id, gateway_fee=12)

    assert settlement is not None
    assert settlement.payout_status == SettlementPayoutStatus.PENDING
    assert settlement.total_raised == 1000
    assert settlement.gateway_fees == 12


@pytest.mark.asyncio
async def test_repeat_success_is_not_counted_twice(db_session, session_factory, make_campaign, add_funding):
    campaign = await make_campaign(target_amount=1000, funded=[100])
    funding = await add_funding(campaign.id, 250, status=FundingStatus.PENDING)

    await record_funding_success(db_session, funding.id)
    await record_funding_success(db_session, funding.id)

    assert await current_amount(session_factory, campaign.id) == 350


@pytest.mark.asyncio
async def test_failed_funding_can_be_promoted(db_session, session_factory, make_campaign, add_funding):
    campaign = await make_campaign(target_amount=1000)
    funding = await add_funding(campaign.id, 150, status=FundingStatus.FAILED)

    await record_funding_success(db_session, funding.id)

    async with session_factory() as session:
        refreshed = await session.get(Funding, funding.id)
        assert refreshed.payment_status == FundingStatus.SUCCEEDED
    assert await current_amount(session_factory, campaign.id) == 150


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [FundingStatus.REFUNDED, FundingStatus.CANCELLED])
async def test_refunded_or_cancelled_funding_is_rejected(
    db_session, session_factory, make_campaign, add_funding, status
):
    campaign = await make_campaign(target_amount=1000, funded=[100])
    funding = await add_funding(campaign.id, 50, status=status)
    campaign_id = campaign.id

    with pytest.raises(InvalidInputError):
        await record_funding_success(db_session, funding.id)

    assert await current_amount(session_factory, campaign_id) == 100


@pytest.mark.asyncio
async def test_unknown_funding_raises(db_session):
    with pytest.raises(ResourceNotFoundError):
        await record_funding_success(db_session, 123456)


@pytest.mark.asyncio
async def test_gateway_fee_without_transaction_creates_manual_one(
    db_session, session_factory, make_campaign, add_funding
):
    campaign = await make_campaign(target_amount=1000, funded=[600])
    funding = await add_funding(campaign.id, 400, status=FundingStatus.PENDING)

    settlement = await record_funding_success(db_session, funding.id, gateway_fee=30)

    assert settlement.gateway_fees == 30
    assert settlement.net_amount == 1000 - 50 - 30

    async with session_factory() as session:
        stored = await session.get(Funding, funding.id, options=[selectinload(Funding.transaction)])
        assert stored.transaction.provider == PaymentProvider.MANUAL
        assert stored.transaction.gateway_fee == 30
        assert stored.transaction.amount == 400


@pytest.mark.asyncio
async def test_negative_gateway_fee_is_rejected(db_session, make_campaign, add_funding):
    campaign = await make_campaign(target_amount=1000)
    funding = await add_funding(campaign.id, 100, status=FundingStatus.PENDING)

    with pytest.raises(InvalidInputError):
        await record_funding_success(db_session, funding.id, gateway_fee=-5)


@pytest.mark.asyncio
async def test_racing_confirmations_count_funding_once(
    session_factory, make_campaign, add_funding, mocker
):
    campaign = await make_campaign(target_amount=10_000, funded=[1000])
    funding = await add_funding(campaign.id, 500, status=FundingStatus.PENDING)

    async with session_factory() as late_session:
        # The late confirmation read the funding while it was still PENDING
        stale = await late_session.get(
            Funding, funding.id, options=[selectinload(Funding.transaction)]
        )
        assert stale.payment_status == FundingStatus.PENDING

        async with session_factory() as first_session:
            await record_funding_success(first_session, funding.id)

        real_get = late_session.get

        async def stale_funding_get(model, ident, **kwargs):
            if model is Funding:
                return stale
            return await real_get(model, ident, **kwargs)

        mocker.patch.object(late_session, "get", new=stale_funding_get)
        await record_funding_success(late_session, funding.id)

    assert await current_amount(session_factory, campaign.id) == 1500
    async with session_factory() as session:
        trail = await get_audit_trail(session, action=AuditAction.FUNDING_SUCCEEDED)
        assert len(trail) == 1
