"""
Database seeding script for a demo campaign.

Creates one campaign that has reached its target, with succeeded fundings,
gateway transactions, two partners and one collaborator, and prints an ADMIN
token for the settlement endpoints.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from backend.app.core.jwt import create_access_token
from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.models.campaign import Campaign
from backend.app.models.campaign_collaborator import CampaignCollaborator
from backend.app.models.campaign_enums import CampaignStatus, PartnerMatchStatus
from backend.app.models.funding import Funding
from backend.app.models.funding_enums import FundingStatus, PaymentProvider
from backend.app.models.partner_match import PartnerMatch
from backend.app.models.payment_transaction import PaymentTransaction
from backend.app.models.settlement import Settlement  # noqa: F401 (table registration)
from backend.app.models.settlement_payout import SettlementPayout  # noqa: F401
from backend.app.models.audit_log import AuditLog  # noqa: F401
from backend.app.models.enums import UserRole
from backend.app.models.settlement_enums import ShareUnit

DEMO_TITLE = "Demo: community documentary"


async def seed_demo_campaign():
    """
    Seed a settle-ready campaign.

    Creates:
    - 1 campaign (target 1,000,000, owner 7)
    - 4 succeeded fundings with 5,000 gateway fee each
    - 2 partners (20% and 10%) and 1 collaborator (15 percentage points)
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting demo campaign seeding...")

        result = await db.execute(select(Campaign).where(Campaign.title == DEMO_TITLE))
        existing = result.scalar_one_or_none()

        if existing:
            print(f"ℹ️  Demo campaign already exists (id={existing.id}), skipping seeding")
            return existing.id

        campaign = Campaign(
            title=DEMO_TITLE,
            owner_id=7,
            target_amount=1_000_000,
            current_amount=1_000_000,
            status=CampaignStatus.SUCCESSFUL,
        )
        db.add(campaign)
        await db.flush()
        print(f"✅ Created campaign {campaign.id}")

        for index, amount in enumerate([400_000, 300_000, 200_000, 100_000]):
            funding = Funding(
                campaign_id=campaign.id,
                user_id=1000 + index,
                amount=amount,
                payment_intent_id=f"demo_pi_{campaign.id}_{index}",
                payment_status=FundingStatus.SUCCEEDED,
            )
            db.add(funding)
            await db.flush()
            db.add(PaymentTransaction(
                funding_id=funding.id,
                provider=PaymentProvider.TOSS,
                external_id=f"demo_tx_{campaign.id}_{index}",
                status=FundingStatus.SUCCEEDED,
                amount=amount,
                gateway_fee=5_000,
            ))
        print("✅ Created 4 succeeded fundings")

        db.add_all([
            PartnerMatch(
                campaign_id=campaign.id, partner_id=501, status=PartnerMatchStatus.ACCEPTED,
                settlement_share=0.2, share_unit=ShareUnit.FRACTION
            ),
            PartnerMatch(
                campaign_id=campaign.id, partner_id=502, status=PartnerMatchStatus.ACCEPTED,
                settlement_share=0.1, share_unit=ShareUnit.FRACTION
            ),
            CampaignCollaborator(
                campaign_id=campaign.id, user_id=601, share=15,
                share_unit=ShareUnit.PERCENTAGE_POINTS
            ),
        ])
        print("✅ Created 2 partners and 1 collaborator")

        await db.commit()
        print("\n🎉 Demo campaign seeding completed successfully!")
        return campaign.id


if __name__ == "__main__":
    campaign_id = asyncio.run(seed_demo_campaign())
    token = create_access_token(data={"sub": "admin", "user_id": 1, "role": UserRole.ADMIN.value})
    print(f"\nTrigger settlement:\n  POST /v1/admin/campaigns/{campaign_id}/settlements")
    print(f"  Authorization: Bearer {token}")
