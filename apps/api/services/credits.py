"""Organization credit ledger: balance checks, consumption, and plan changes."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Dict, Optional, Tuple
import uuid

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.credit_history import CreditHistory
from models.organization_credit import OrganizationCredit
from models.organization_member import OrganizationMember
from models.search import Search
from services.billing_cycle import ensure_current_cycle
from services.ledger_errors import (
    InvalidAmount,
    InvalidCreditType,
    InvalidPlan,
    InvalidReference,
    MemberBlocked,
    MemberLimitExceeded,
    MemberNotFound,
    OrganizationLimitExceeded,
    PersistenceFailure,
)
from services.plans import is_known_plan, resolve_plan, serialize_plan
from services.sql_helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

CREDIT_TYPES = ("enrichment", "icp")


def validate_credit_type(credit_type: Any) -> str:
    if not isinstance(credit_type, str) or credit_type not in CREDIT_TYPES:
        raise InvalidCreditType(credit_type)
    return credit_type


def validate_amount(amount: Any) -> int:
    if isinstance(amount, bool):
        raise InvalidAmount(amount)
    if isinstance(amount, float) and amount.is_integer():
        amount = int(amount)
    if not isinstance(amount, int) or amount < 1:
        raise InvalidAmount(amount)
    return amount


def remaining_for(row: Any, credit_type: str) -> int:
    limit = getattr(row, f"{credit_type}_limit")
    used = getattr(row, f"{credit_type}_used") or 0
    return max(int(limit) - int(used), 0)


def check_member_credits(
    member: OrganizationMember,
    credit_type: str,
    amount: int,
) -> Tuple[bool, Optional[str], Optional[int]]:
    """Member-scope check: ``(allowed, reason, remaining)``.

    ``remaining`` is ``None`` when the member has no personal cap.
    """
    if member.is_blocked:
        return False, "blocked by admin", None

    limit = getattr(member, f"{credit_type}_limit")
    if limit is None:
        return True, None, None

    remaining = remaining_for(member, credit_type)
    if remaining < amount:
        return False, "member limit exceeded", remaining
    return True, None, remaining


def _enforce_member_scope(member: OrganizationMember, credit_type: str, amount: int) -> None:
    allowed, reason, remaining = check_member_credits(member, credit_type, amount)
    if allowed:
        return
    if member.is_blocked:
        raise MemberBlocked(member.user_id)
    raise MemberLimitExceeded(remaining=remaining or 0, required=amount, credit_type=credit_type)


async def load_member(org_id: str, user_id: str, db: AsyncSession) -> Optional[OrganizationMember]:
    result = await db.execute(
        select(OrganizationMember)
        .where(OrganizationMember.org_id == org_id, OrganizationMember.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _debit_organization(
    org_id: str,
    credit_type: str,
    amount: int,
    now: datetime,
    db: AsyncSession,
) -> Optional[Tuple[int, int]]:
    used_col = getattr(OrganizationCredit, f"{credit_type}_used")
    limit_col = getattr(OrganizationCredit, f"{credit_type}_limit")
    result = await db.execute(
        update(OrganizationCredit)
        .where(OrganizationCredit.org_id == org_id, used_col + amount <= limit_col)
        .values({used_col: used_col + amount, OrganizationCredit.updated_at: now})
        .returning(used_col, limit_col)
        .execution_options(synchronize_session=False)
    )
    row = result.first()
    if row is None:
        return None
    return int(row[0]), int(row[1])


async def _debit_member(
    org_id: str,
    user_id: str,
    credit_type: str,
    amount: int,
    now: datetime,
    db: AsyncSession,
) -> bool:
    used_col = getattr(OrganizationMember, f"{credit_type}_used")
    limit_col = getattr(OrganizationMember, f"{credit_type}_limit")
    result = await db.execute(
        update(OrganizationMember)
        .where(
            OrganizationMember.org_id == org_id,
            OrganizationMember.user_id == user_id,
            OrganizationMember.is_blocked.is_(False),
            or_(limit_col.is_(None), used_col + amount <= limit_col),
        )
        .values({used_col: used_col + amount, OrganizationMember.updated_at: now})
        .returning(OrganizationMember.id)
        .execution_options(synchronize_session=False)
    )
    return result.first() is not None


async def _search_belongs_to_org(org_id: str, search_id: str, db: AsyncSession) -> bool:
    result = await db.execute(select(Search.id).where(Search.id == search_id, Search.org_id == org_id))
    return result.first() is not None


async def _precheck(
    org_id: str,
    user_id: str,
    credit_type: str,
    amount: int,
    db: AsyncSession,
    now: Optional[datetime],
    search_id: Optional[str] = None,
) -> None:
    """Read-only checks: membership, then member scope and org scope on the current window.

    The window is rolled over first so caps are judged against this cycle's
    usage. A rollover is not a debit and may commit even if a check then fails.
    """
    if await load_member(org_id, user_id, db) is None:
        raise MemberNotFound(org_id, user_id)
    if search_id is not None and not await _search_belongs_to_org(org_id, search_id, db):
        raise InvalidReference("search_id", search_id)

    credit = await ensure_current_cycle(org_id, db, now=now)
    member = await load_member(org_id, user_id, db)
    if member is None:
        raise MemberNotFound(org_id, user_id)
    _enforce_member_scope(member, credit_type, amount)

    org_remaining = remaining_for(credit, credit_type)
    if org_remaining < amount:
        raise OrganizationLimitExceeded(remaining=org_remaining, required=amount, credit_type=credit_type)


async def consume_credits(
    org_id: str,
    user_id: str,
    db: AsyncSession,
    *,
    credit_type: Any,
    amount: Any,
    description: Optional[str] = None,
    transaction_type: Optional[str] = None,
    search_id: Optional[str] = None,
    company_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Debit ``amount`` credits at member and organization scope and record it.

    The org debit, member debit and history insert commit together. Each
    debit is a conditional UPDATE, so a request that lost a race against a
    concurrent consumer matches no row, rolls back, and is re-checked against
    fresh counters.
    """
    credit_type = validate_credit_type(credit_type)
    amount = validate_amount(amount)

    for attempt in range(1, max(int(settings.CONSUME_MAX_ATTEMPTS), 1) + 1):
        await _precheck(org_id, user_id, credit_type, amount, db, now, search_id)

        current = as_utc(now) or utcnow()
        try:
            org_debit = await _debit_organization(org_id, credit_type, amount, current, db)
            member_debited = org_debit is not None and await _debit_member(
                org_id, user_id, credit_type, amount, current, db
            )
            if org_debit is None or not member_debited:
                await db.rollback()
                logger.info(
                    "Conditional debit lost a race for org %s user %s (attempt %s)",
                    org_id,
                    user_id,
                    attempt,
                )
                continue

            new_used, limit = org_debit
            balance_after = limit - new_used
            entry = CreditHistory(
                id=str(uuid.uuid4()),
                org_id=org_id,
                user_id=user_id,
                credit_type=credit_type,
                transaction_type=transaction_type or f"{credit_type}_usage",
                credits_used=amount,
                balance_after=balance_after,
                description=description,
                search_id=search_id,
                company_id=company_id,
                metadata_json=metadata,
                created_at=current,
            )
            db.add(entry)
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            if search_id is None:
                logger.exception("Credit consumption failed for org %s user %s", org_id, user_id)
                raise PersistenceFailure(cause=exc) from exc
            # The search was removed between the pre-check and the insert.
            logger.warning("Credit history rejected search %s for org %s: %s", search_id, org_id, exc.orig)
            raise InvalidReference("search_id", search_id) from exc
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("Credit consumption failed for org %s user %s", org_id, user_id)
            raise PersistenceFailure(cause=exc) from exc

        logger.info(
            "Consumed %s %s credits for org %s user %s (remaining %s)",
            amount,
            credit_type,
            org_id,
            user_id,
            balance_after,
        )
        return {
            "type": credit_type,
            "consumed": amount,
            "remaining": balance_after,
            "used": new_used,
            "limit": limit,
            "history_id": entry.id,
        }

    # Every attempt lost a race. A rejection now reflects real exhaustion;
    # otherwise the row is still contended and the caller may retry.
    await _precheck(org_id, user_id, credit_type, amount, db, now, search_id)
    logger.warning("Credit consumption for org %s user %s still contended after retries", org_id, user_id)
    raise PersistenceFailure("Credit balance is busy. Retry the request.")


def _credit_bucket(credit: OrganizationCredit, credit_type: str) -> Dict[str, int]:
    return {
        "used": int(getattr(credit, f"{credit_type}_used") or 0),
        "limit": int(getattr(credit, f"{credit_type}_limit") or 0),
        "remaining": remaining_for(credit, credit_type),
    }


async def get_credit_summary(org_id: str, db: AsyncSession) -> Dict[str, Any]:
    credit = await ensure_current_cycle(org_id, db)
    plan = resolve_plan(credit.plan_id)
    start = as_utc(credit.billing_cycle_start)
    end = as_utc(credit.billing_cycle_end)
    return {
        "enrichment": _credit_bucket(credit, "enrichment"),
        "icp": _credit_bucket(credit, "icp"),
        "plan": {
            "id": credit.plan_id,
            "name": plan.name,
            "price": plan.price,
        },
        "billing_cycle": {
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
        },
    }


async def update_plan(org_id: str, plan_id: Any, db: AsyncSession) -> Dict[str, Any]:
    """Switch the org to a catalog plan. Usage counters are left untouched."""
    if not isinstance(plan_id, str) or not is_known_plan(plan_id):
        raise InvalidPlan(plan_id)
    plan = resolve_plan(plan_id)

    await ensure_current_cycle(org_id, db)
    await db.execute(
        update(OrganizationCredit)
        .where(OrganizationCredit.org_id == org_id)
        .values(
            plan_id=plan.id,
            enrichment_limit=plan.enrichment_limit,
            icp_limit=plan.icp_limit,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info("Org %s moved to plan %s", org_id, plan.id)

    return {
        "plan": serialize_plan(plan),
        "limits": {
            "enrichment": plan.enrichment_limit,
            "icp": plan.icp_limit,
        },
    }
