import asyncio
import os
import sys

# Add parent dir to path to find the api modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.future import select

from database import async_session_maker, engine
from models.organization_credit import OrganizationCredit
from models.organization_member import OrganizationMember
from models.user import User
from services.credit_history import get_credit_history, reconcile_organization


def _limit_label(value):
    return "unlimited (uses org limit)" if value is None else value


async def check_credits(email: str):
    async with async_session_maker() as db:
        user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
        if user is None:
            print(f"❌ User not found: {email}")
            return

        print("=== USER INFO ===")
        print(f"User ID: {user.id}")
        print(f"Email: {user.email}")
        print(f"Name: {user.first_name or ''} {user.last_name or ''}".rstrip())

        memberships = (
            await db.execute(select(OrganizationMember).where(OrganizationMember.user_id == user.id))
        ).scalars().all()
        if not memberships:
            print("\nNo organization membership found")
            return

        for membership in memberships:
            print("\n=== MEMBER CREDITS ===")
            print(f"Org ID: {membership.org_id}")
            print(f"Role: {membership.role}")
            print(f"Member Enrichment Used: {membership.enrichment_used}")
            print(f"Member Enrichment Limit: {_limit_label(membership.enrichment_limit)}")
            print(f"Member ICP Used: {membership.icp_used}")
            print(f"Member ICP Limit: {_limit_label(membership.icp_limit)}")
            print(f"Is Blocked: {membership.is_blocked}")

            credit = (
                await db.execute(select(OrganizationCredit).where(OrganizationCredit.org_id == membership.org_id))
            ).scalar_one_or_none()
            if credit is None:
                print("\nNo organization credit record yet (created on first use)")
                continue

            print("\n=== ORG CREDITS ===")
            print(f"Plan: {credit.plan_id}")
            print(f"Enrichment: {credit.enrichment_used} / {credit.enrichment_limit}")
            print(f"ICP: {credit.icp_used} / {credit.icp_limit}")
            print(f"Billing Cycle: {credit.billing_cycle_start} -> {credit.billing_cycle_end}")

            print("\n=== RECENT HISTORY ===")
            for entry in await get_credit_history(membership.org_id, db, limit=10):
                print(
                    f"{entry['created_at']}  {entry['credit_type']:<10} {entry['credits_used']:>5}  "
                    f"{entry['transaction_type']}  ({entry['user']['email'] or entry['user']['id']})"
                )

            report = await reconcile_organization(membership.org_id, db)
            status = "✅ consistent" if report["consistent"] else "⚠️ drift detected"
            print(f"\n=== RECONCILIATION: {status} ===")
            for credit_type in ("enrichment", "icp"):
                bucket = report[credit_type]
                print(
                    f"{credit_type}: counter={bucket['counter']} history={bucket['history']} drift={bucket['drift']}"
                )

    await engine.dispose()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/check_credits.py <user-email>")
        sys.exit(1)
    asyncio.run(check_credits(sys.argv[1]))
