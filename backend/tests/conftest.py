"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, select, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.jwt import create_access_token
from backend.app.models.campaign import Campaign
from backend.app.models.campaign_enums import CampaignStatus, PartnerMatchStatus
from backend.app.models.campaign_collaborator import CampaignCollaborator
from backend.app.models.funding import Funding
from backend.app.models.funding_enums import FundingStatus, PaymentProvider
from backend.app.models.partner_match import PartnerMatch
from backend.app.models.payment_transaction import PaymentTransaction
from backend.app.models.settlement import Settlement
from backend.app.models.settlement_enums import ShareUnit

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """Async client for testing, bound to the per-test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = create_access_token(data={"sub": "admin", "user_id": 1, "role": "ADMIN"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def creator_headers():
    token = create_access_token(data={"sub": "creator", "user_id": 2, "role": "CREATOR"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def add_funding(db_session):
    """Add one ledger entry (optionally with a gateway transaction) and commit."""
    async def _add(campaign_id, amount, status=FundingStatus.SUCCEEDED, gateway_fee=None, user_id=100):
        funding = Funding(
            campaign_id=campaign_id,
            user_id=user_id,
            amount=amount,
            payment_status=status,
        )
        db_session.add(funding)
        await db_session.flush()

        if gateway_fee is not None:
            db_session.add(PaymentTransaction(
                funding_id=funding.id,
                provider=PaymentProvider.TOSS,
                external_id=f"pay_{funding.id}",
                status=status,
                amount=amount,
                gateway_fee=gateway_fee,
            ))

        await db_session.commit()
        return funding

    return _add


@pytest.fixture
def make_campaign(db_session, add_funding):
    """
    Create a campaign with succeeded fundings and stakeholder shares.

    partners: (partner_id, share[, unit[, status]])
    collaborators: (user_id, share[, unit])
    current_amount defaults to the funded total (a consistent cache).
    """
    async def _make(
        target_amount=1_000_000,
        funded=(),
        current_amount=None,
        owner_id=7,
        gateway_fee_per_funding=None,
        partners=(),
        collaborators=(),
    ):
        campaign = Campaign(
            title="Test Campaign",
            owner_id=owner_id,
            target_amount=target_amount,
            current_amount=sum(funded) if current_amount is None else current_amount,
            status=CampaignStatus.LIVE,
        )
        db_session.add(campaign)
        await db_session.flush()

        for partner in partners:
            partner_id, share = partner[0], partner[1]
            unit = partner[2] if len(partner) > 2 else ShareUnit.FRACTION
            status = partner[3] if len(partner) > 3 else PartnerMatchStatus.ACCEPTED
            db_session.add(PartnerMatch(
                campaign_id=campaign.id,
                partner_id=partner_id,
                status=status,
                settlement_share=share,
                share_unit=unit,
            ))

        for collaborator in collaborators:
            user_id, share = collaborator[0], collaborator[1]
            unit = collaborator[2] if len(collaborator) > 2 else ShareUnit.PERCENTAGE_POINTS
            db_session.add(CampaignCollaborator(
                campaign_id=campaign.id,
                user_id=user_id,
                share=share,
                share_unit=unit,
            ))

        await db_session.commit()

        for index, amount in enumerate(funded):
            await add_funding(
                campaign.id, amount, gateway_fee=gateway_fee_per_funding, user_id=100 + index
            )

        return campaign

    return _make


@pytest.fixture
def count_settlements(session_factory):
    """Count persisted settlements from a fresh session."""
    async def _count(campaign_id=None):
        async with session_factory() as session:
            query = select(func.count(Settlement.id))
            if campaign_id is not None:
                query = query.where(Settlement.campaign_id == campaign_id)
            result = await session.execute(query)
            return result.scalar_one()

    return _count
