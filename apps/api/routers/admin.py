"""Platform admin views across all organizations."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, require_platform_admin
from services.credit_history import get_platform_credit_stats

router = APIRouter()


@router.get("/credits/stats")
async def platform_credit_stats(
    _auth: AuthContext = Depends(require_platform_admin),
    db: AsyncSession = Depends(get_db),
):
    return await get_platform_credit_stats(db)
