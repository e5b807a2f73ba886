"""Organization credits router."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, require_admin_context, require_org_context
from routers.rate_limit import rate_limit
from services.credit_history import get_credit_history, reconcile_organization
from services.credits import consume_credits, get_credit_summary, update_plan
from services.ledger_errors import LedgerError
from services.plans import list_plans, serialize_plan

router = APIRouter()
logger = logging.getLogger(__name__)


class ConsumeCreditsRequest(BaseModel):
    # Loosely typed so validation failures surface as ledger errors (400).
    type: Any = None
    amount: Any = None
    description: Optional[str] = None
    transaction_type: Optional[str] = None
    search_id: Optional[str] = None
    company_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class UpdatePlanRequest(BaseModel):
    plan_id: Any = Field(default=None, validation_alias=AliasChoices("plan_id", "planId"))


@router.get("")
async def credits_summary(
    auth: AuthContext = Depends(require_org_context),
    db: AsyncSession = Depends(get_db),
):
    return await get_credit_summary(auth.org_id, db)


@router.get("/plans")
async def credit_plans(_auth: AuthContext = Depends(require_org_context)):
    return {"plans": [serialize_plan(plan) for plan in list_plans()]}


@router.patch("")
async def change_plan(
    request: UpdatePlanRequest,
    auth: AuthContext = Depends(require_admin_context),
    db: AsyncSession = Depends(get_db),
):
    result = await update_plan(auth.org_id, request.plan_id, db)
    return {"success": True, **result}


@router.post("/consume")
async def consume(
    request: ConsumeCreditsRequest,
    _rate_limit: None = Depends(
        rate_limit("credits_consume", limit=settings.CONSUME_RATE_LIMIT_PER_HOUR, window_seconds=3600)
    ),
    auth: AuthContext = Depends(require_org_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await consume_credits(
            auth.org_id,
            auth.user_id,
            db,
            credit_type=request.type,
            amount=request.amount,
            description=request.description,
            transaction_type=request.transaction_type,
            search_id=request.search_id,
            company_id=request.company_id,
            metadata=request.metadata,
        )
    except LedgerError as exc:
        logger.info("Credit consumption rejected for org %s user %s: %s", auth.org_id, auth.user_id, exc.detail)
        raise
    return {"success": True, **result}


@router.get("/history")
async def credit_history(
    type: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    auth: AuthContext = Depends(require_org_context),
    db: AsyncSession = Depends(get_db),
):
    history = await get_credit_history(auth.org_id, db, credit_type=type, limit=limit)
    return {"history": history}


@router.get("/reconcile")
async def reconcile(
    auth: AuthContext = Depends(require_admin_context),
    db: AsyncSession = Depends(get_db),
):
    return await reconcile_organization(auth.org_id, db)
