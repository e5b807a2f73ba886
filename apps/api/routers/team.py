"""Team members router: per-member credit caps and identity sync."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context, require_admin_context, require_org_context
from services.members import (
    UNSET,
    get_member_snapshot,
    list_member_snapshots,
    set_member_limits,
    sync_membership,
)

router = APIRouter()


class UpdateMemberLimitsRequest(BaseModel):
    enrichment_limit: Any = Field(default=None, validation_alias=AliasChoices("enrichment_limit", "enrichmentLimit"))
    icp_limit: Any = Field(default=None, validation_alias=AliasChoices("icp_limit", "icpLimit"))
    is_blocked: Any = Field(default=None, validation_alias=AliasChoices("is_blocked", "isBlocked"))


class SyncMembershipRequest(BaseModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
    org_name: Optional[str] = None


@router.get("/members")
async def list_members(
    auth: AuthContext = Depends(require_org_context),
    db: AsyncSession = Depends(get_db),
):
    members = await list_member_snapshots(
        auth.org_id,
        db,
        actor_user_id=auth.user_id,
        actor_is_admin=auth.is_admin,
    )
    return {"members": members, "current_user_is_admin": auth.is_admin}


@router.get("/members/{user_id}")
async def get_member(
    user_id: str,
    auth: AuthContext = Depends(require_org_context),
    db: AsyncSession = Depends(get_db),
):
    return await get_member_snapshot(
        auth.org_id,
        user_id,
        db,
        actor_user_id=auth.user_id,
        actor_is_admin=auth.is_admin,
    )


@router.patch("/members/{user_id}")
async def update_member(
    user_id: str,
    request: UpdateMemberLimitsRequest,
    auth: AuthContext = Depends(require_admin_context),
    db: AsyncSession = Depends(get_db),
):
    # Only fields present in the body are applied; explicit null clears a cap.
    supplied: Dict[str, Any] = request.model_dump(exclude_unset=True)
    member = await set_member_limits(
        auth.org_id,
        user_id,
        db,
        actor_user_id=auth.user_id,
        actor_is_admin=auth.is_admin,
        enrichment_limit=supplied.get("enrichment_limit", UNSET),
        icp_limit=supplied.get("icp_limit", UNSET),
        is_blocked=supplied.get("is_blocked"),
    )
    return {"success": True, "member": member}


@router.post("/sync")
async def sync_current_member(
    request: SyncMembershipRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    if not auth.org_id:
        raise HTTPException(status_code=401, detail="Unauthorized - Organization required")
    member = await sync_membership(
        auth.org_id,
        auth.user_id,
        db,
        # A session without a provider role joins as a plain member.
        role=auth.role or "member",
        email=request.email or auth.email,
        first_name=request.first_name,
        last_name=request.last_name,
        image_url=request.image_url,
        org_name=request.org_name,
    )
    return {"success": True, "member": member}
