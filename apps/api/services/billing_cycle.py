"""
Billing cycle management for organization credit counters.

Rollover is lazy: the first access after ``billing_cycle_end`` resets org
usage and cascades the reset to every member. There is no scheduler.
"""

from __future__ import annotations

import calendar
from datetime import datetime
import logging
from typing import Optional
import uuid

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.organization import Organization
from models.organization_credit import OrganizationCredit
from models.organization_member import OrganizationMember
from services.plans import DEFAULT_PLAN_ID, resolve_plan
from services.sql_helpers import as_utc, dialect_insert, utcnow

logger = logging.getLogger(__name__)


def add_one_month(value: datetime) -> datetime:
    """Same day next calendar month, clamped to that month's last day."""
    year = value.year + (value.month // 12)
    month = value.month % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


async def get_organization_credit(org_id: str, db: AsyncSession) -> Optional[OrganizationCredit]:
    result = await db.execute(
        select(OrganizationCredit)
        .where(OrganizationCredit.org_id == org_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def ensure_organization(org_id: str, db: AsyncSession) -> None:
    """Insert a placeholder organization row if the identity sync has not."""
    await db.execute(
        dialect_insert(db, Organization)
        .values(id=org_id, name=org_id)
        .on_conflict_do_nothing(index_elements=["id"])
    )


async def _create_credit_row_if_missing(org_id: str, db: AsyncSession, now: datetime) -> bool:
    plan = resolve_plan(DEFAULT_PLAN_ID)
    result = await db.execute(
        dialect_insert(db, OrganizationCredit)
        .values(
            id=str(uuid.uuid4()),
            org_id=org_id,
            plan_id=plan.id,
            enrichment_limit=plan.enrichment_limit,
            icp_limit=plan.icp_limit,
            enrichment_used=0,
            icp_used=0,
            billing_cycle_start=now,
            billing_cycle_end=add_one_month(now),
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["org_id"])
    )
    return result.rowcount == 1


async def _roll_over_cycle(org_id: str, db: AsyncSession, now: datetime) -> bool:
    # Guarded on the lapsed window so concurrent rollovers reset only once.
    result = await db.execute(
        update(OrganizationCredit)
        .where(
            OrganizationCredit.org_id == org_id,
            OrganizationCredit.billing_cycle_end < now,
        )
        .values(
            enrichment_used=0,
            icp_used=0,
            billing_cycle_start=now,
            billing_cycle_end=add_one_month(now),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    members = await db.execute(
        update(OrganizationMember)
        .where(OrganizationMember.org_id == org_id)
        .values(enrichment_used=0, icp_used=0, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    logger.info(
        "Billing cycle rolled over for org %s (%s member counters reset)",
        org_id,
        members.rowcount,
    )
    return True


async def ensure_current_cycle(
    org_id: str,
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> OrganizationCredit:
    """Return the org credit row, creating it or rolling its window as needed.

    Persistence errors propagate: a failed rollover is never reported as a
    current cycle.
    """
    current = as_utc(now) or utcnow()

    credit = await get_organization_credit(org_id, db)
    if credit is None:
        await ensure_organization(org_id, db)
        if await _create_credit_row_if_missing(org_id, db, current):
            logger.info("Created credit record for org %s on the %s plan", org_id, DEFAULT_PLAN_ID)
        await db.commit()
        credit = await get_organization_credit(org_id, db)

    if as_utc(credit.billing_cycle_end) < current:
        await _roll_over_cycle(org_id, db, current)
        await db.commit()
        credit = await get_organization_credit(org_id, db)

    return credit
