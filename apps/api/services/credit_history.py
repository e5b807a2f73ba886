"""Read-side views over the credit audit trail and counters."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.credit_history import CreditHistory
from models.organization_credit import OrganizationCredit
from models.search import Search
from models.user import User
from services.billing_cycle import get_organization_credit
from services.credits import CREDIT_TYPES, validate_credit_type
from services.sql_helpers import as_utc


def _clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return max(int(settings.CREDIT_HISTORY_DEFAULT_LIMIT), 1)
    return min(max(int(limit), 1), max(int(settings.CREDIT_HISTORY_MAX_LIMIT), 1))


def _iso(value: Any) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


async def get_credit_history(
    org_id: str,
    db: AsyncSession,
    credit_type: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Newest-first history for an org, joined with acting user and search."""
    query = (
        select(CreditHistory, User, Search.name)
        .outerjoin(User, User.id == CreditHistory.user_id)
        .outerjoin(Search, Search.id == CreditHistory.search_id)
        .where(CreditHistory.org_id == org_id)
    )
    if credit_type:
        query = query.where(CreditHistory.credit_type == validate_credit_type(credit_type))
    query = query.order_by(CreditHistory.created_at.desc(), CreditHistory.id.desc()).limit(_clamp_limit(limit))

    result = await db.execute(query)
    history = []
    for entry, user, search_name in result.all():
        history.append(
            {
                "id": entry.id,
                "credit_type": entry.credit_type,
                "transaction_type": entry.transaction_type,
                "credits_used": entry.credits_used,
                "balance_after": entry.balance_after,
                "description": entry.description,
                "company_id": entry.company_id,
                "metadata": entry.metadata_json,
                "created_at": _iso(entry.created_at),
                "user": {
                    "id": entry.user_id,
                    "first_name": user.first_name if user else None,
                    "last_name": user.last_name if user else None,
                    "email": user.email if user else None,
                    "image_url": user.image_url if user else None,
                },
                "search": {"id": entry.search_id, "name": search_name} if entry.search_id else None,
            }
        )
    return history


async def get_platform_credit_stats(db: AsyncSession) -> Dict[str, Any]:
    """Cross-organization totals for platform admins."""
    totals = (
        await db.execute(
            select(
                func.count(OrganizationCredit.id),
                func.coalesce(func.sum(OrganizationCredit.enrichment_used), 0),
                func.coalesce(func.sum(OrganizationCredit.enrichment_limit), 0),
                func.coalesce(func.sum(OrganizationCredit.icp_used), 0),
                func.coalesce(func.sum(OrganizationCredit.icp_limit), 0),
            )
        )
    ).one()
    org_count, enrichment_used, enrichment_limit, icp_used, icp_limit = (int(value or 0) for value in totals)

    plan_rows = await db.execute(
        select(OrganizationCredit.plan_id, func.count(OrganizationCredit.id)).group_by(OrganizationCredit.plan_id)
    )
    history_rows = await db.execute(
        select(
            CreditHistory.credit_type,
            func.count(CreditHistory.id),
            func.coalesce(func.sum(CreditHistory.credits_used), 0),
        ).group_by(CreditHistory.credit_type)
    )
    history = {credit_type: {"transactions": 0, "credits_used": 0} for credit_type in CREDIT_TYPES}
    for credit_type, count, credits_used in history_rows.all():
        history[credit_type] = {"transactions": int(count), "credits_used": int(credits_used or 0)}

    return {
        "organizations": org_count,
        "enrichment": {
            "used": enrichment_used,
            "limit": enrichment_limit,
            "remaining": max(enrichment_limit - enrichment_used, 0),
        },
        "icp": {
            "used": icp_used,
            "limit": icp_limit,
            "remaining": max(icp_limit - icp_used, 0),
        },
        "plans": {str(plan_id): int(count) for plan_id, count in plan_rows.all()},
        "history": history,
    }


async def reconcile_organization(org_id: str, db: AsyncSession) -> Dict[str, Any]:
    """Compare counters with the audit trail summed since the cycle start."""
    credit = await get_organization_credit(org_id, db)
    if credit is None:
        return {
            "org_id": org_id,
            "enrichment": {"counter": 0, "history": 0, "drift": 0},
            "icp": {"counter": 0, "history": 0, "drift": 0},
            "cycle_start": None,
            "consistent": True,
        }

    cycle_start = as_utc(credit.billing_cycle_start)
    rows = await db.execute(
        select(CreditHistory.credit_type, func.coalesce(func.sum(CreditHistory.credits_used), 0))
        .where(CreditHistory.org_id == org_id, CreditHistory.created_at >= cycle_start)
        .group_by(CreditHistory.credit_type)
    )
    sums = {credit_type: int(total or 0) for credit_type, total in rows.all()}

    report: Dict[str, Any] = {"org_id": org_id, "cycle_start": _iso(cycle_start)}
    consistent = True
    for credit_type in CREDIT_TYPES:
        counter = int(getattr(credit, f"{credit_type}_used") or 0)
        history_total = sums.get(credit_type, 0)
        drift = counter - history_total
        consistent = consistent and drift == 0
        report[credit_type] = {"counter": counter, "history": history_total, "drift": drift}
    report["consistent"] = consistent
    return report
