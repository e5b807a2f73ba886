"""Organization member credit caps, admin controls, and identity sync."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.organization import Organization
from models.organization_member import MEMBER_ROLES, OrganizationMember
from models.user import User
from services.billing_cycle import ensure_organization
from services.credits import CREDIT_TYPES, load_member, remaining_for
from services.ledger_errors import Forbidden, MemberNotFound, ValidationError
from services.sql_helpers import dialect_insert, utcnow

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()

ADMIN_ROLES = ("owner", "admin")


def normalize_member_role(role: Optional[str]) -> str:
    """Map identity-provider roles (``org:admin``) onto member roles."""
    value = str(role or "").strip().lower()
    if value in MEMBER_ROLES:
        return value
    if value == "org:admin":
        return "admin"
    if value == "org:member":
        return "member"
    return "owner"


def is_admin_role(role: Optional[str]) -> bool:
    value = str(role or "").strip().lower()
    return value in ADMIN_ROLES or value in ("org:admin", "org:owner")


def _member_bucket(member: OrganizationMember, credit_type: str) -> Dict[str, Optional[int]]:
    limit = getattr(member, f"{credit_type}_limit")
    return {
        "limit": limit,
        "used": int(getattr(member, f"{credit_type}_used") or 0),
        "remaining": remaining_for(member, credit_type) if limit is not None else None,
    }


def _serialize_member(
    member: OrganizationMember,
    user: Optional[User],
    *,
    actor_user_id: Optional[str],
    actor_is_admin: bool,
) -> Dict[str, Any]:
    return {
        "id": member.id,
        "user_id": member.user_id,
        "role": member.role,
        "joined_at": member.joined_at.isoformat() if member.joined_at else None,
        "user": {
            "email": user.email if user else None,
            "first_name": user.first_name if user else None,
            "last_name": user.last_name if user else None,
            "image_url": user.image_url if user else None,
        },
        "credits": {credit_type: _member_bucket(member, credit_type) for credit_type in CREDIT_TYPES},
        "is_blocked": bool(member.is_blocked),
        "is_current_user": member.user_id == actor_user_id,
        "can_manage": bool(actor_is_admin) and member.role != "owner" and member.user_id != actor_user_id,
    }


async def get_member_snapshot(
    org_id: str,
    user_id: str,
    db: AsyncSession,
    *,
    actor_user_id: Optional[str] = None,
    actor_is_admin: bool = False,
) -> Dict[str, Any]:
    result = await db.execute(
        select(OrganizationMember, User)
        .outerjoin(User, User.id == OrganizationMember.user_id)
        .where(OrganizationMember.org_id == org_id, OrganizationMember.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    row = result.first()
    if row is None:
        raise MemberNotFound(org_id, user_id)
    member, user = row
    return _serialize_member(member, user, actor_user_id=actor_user_id, actor_is_admin=actor_is_admin)


async def list_member_snapshots(
    org_id: str,
    db: AsyncSession,
    *,
    actor_user_id: Optional[str] = None,
    actor_is_admin: bool = False,
) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(OrganizationMember, User)
        .outerjoin(User, User.id == OrganizationMember.user_id)
        .where(OrganizationMember.org_id == org_id)
        .order_by(OrganizationMember.joined_at.asc(), OrganizationMember.user_id.asc())
        .execution_options(populate_existing=True)
    )
    return [
        _serialize_member(member, user, actor_user_id=actor_user_id, actor_is_admin=actor_is_admin)
        for member, user in result.all()
    ]


def _validate_limit(name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer or null", field=name)
    return value


async def set_member_limits(
    org_id: str,
    target_user_id: str,
    db: AsyncSession,
    *,
    actor_user_id: str,
    actor_is_admin: bool,
    enrichment_limit: Any = UNSET,
    icp_limit: Any = UNSET,
    is_blocked: Optional[bool] = None,
) -> Dict[str, Any]:
    """Edit a member's personal caps or blocked flag.

    Omitted limits are left alone; an explicit ``None`` removes the cap.
    """
    if not actor_is_admin:
        raise Forbidden("Admin access required")
    if target_user_id == actor_user_id:
        raise Forbidden("Cannot modify your own limits")

    member = await load_member(org_id, target_user_id, db)
    if member is None:
        raise MemberNotFound(org_id, target_user_id)
    if member.role == "owner":
        raise Forbidden("Cannot modify owner's limits")

    values: Dict[str, Any] = {"updated_at": utcnow()}
    if enrichment_limit is not UNSET:
        values["enrichment_limit"] = _validate_limit("enrichment_limit", enrichment_limit)
    if icp_limit is not UNSET:
        values["icp_limit"] = _validate_limit("icp_limit", icp_limit)
    if is_blocked is not None:
        if not isinstance(is_blocked, bool):
            raise ValidationError("is_blocked must be a boolean", field="is_blocked")
        values["is_blocked"] = is_blocked

    await db.execute(
        update(OrganizationMember)
        .where(OrganizationMember.org_id == org_id, OrganizationMember.user_id == target_user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info(
        "Member limits updated for %s in org %s by %s: %s",
        target_user_id,
        org_id,
        actor_user_id,
        {key: value for key, value in values.items() if key != "updated_at"},
    )
    return await get_member_snapshot(
        org_id,
        target_user_id,
        db,
        actor_user_id=actor_user_id,
        actor_is_admin=actor_is_admin,
    )


async def sync_membership(
    org_id: str,
    user_id: str,
    db: AsyncSession,
    *,
    role: Optional[str] = None,
    email: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    image_url: Optional[str] = None,
    org_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Upsert user, organization and membership from identity-provider data.

    Re-syncing updates the role and profile fields but never touches member
    limits or usage counters.
    """
    member_role = normalize_member_role(role)

    await db.execute(
        dialect_insert(db, User)
        .values(id=user_id, email=email or f"{user_id}@local.invalid")
        .on_conflict_do_nothing(index_elements=["id"])
    )
    profile = {
        key: value
        for key, value in {
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
            "image_url": image_url,
        }.items()
        if value is not None
    }
    if profile:
        await db.execute(
            update(User).where(User.id == user_id).values(**profile).execution_options(synchronize_session=False)
        )

    await ensure_organization(org_id, db)
    if org_name:
        await db.execute(
            update(Organization)
            .where(Organization.id == org_id)
            .values(name=org_name)
            .execution_options(synchronize_session=False)
        )

    await db.execute(
        dialect_insert(db, OrganizationMember)
        .values(
            org_id=org_id,
            user_id=user_id,
            role=member_role,
            enrichment_used=0,
            icp_used=0,
            is_blocked=False,
        )
        .on_conflict_do_nothing(index_elements=["org_id", "user_id"])
    )
    await db.execute(
        update(OrganizationMember)
        .where(OrganizationMember.org_id == org_id, OrganizationMember.user_id == user_id)
        .values(role=member_role, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info("Synced member %s into org %s as %s", user_id, org_id, member_role)

    return await get_member_snapshot(
        org_id,
        user_id,
        db,
        actor_user_id=user_id,
        actor_is_admin=member_role in ADMIN_ROLES,
    )


async def remove_membership(org_id: str, user_id: str, db: AsyncSession) -> bool:
    result = await db.execute(
        delete(OrganizationMember)
        .where(OrganizationMember.org_id == org_id, OrganizationMember.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    removed = result.rowcount > 0
    if removed:
        logger.info("Removed member %s from org %s", user_id, org_id)
    return removed
