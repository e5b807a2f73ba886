from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base
from main import app
from models.organization_member import OrganizationMember
from routers import rate_limit
from services.members import sync_membership


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """File-backed SQLite so independent sessions contend like real clients."""
    db_path = tmp_path / "ledger.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


async def _add_member(
    session: AsyncSession,
    org_id: str,
    user_id: str,
    *,
    role: str = "member",
    enrichment_limit: Optional[int] = None,
    icp_limit: Optional[int] = None,
    enrichment_used: int = 0,
    icp_used: int = 0,
    is_blocked: bool = False,
) -> None:
    await sync_membership(org_id, user_id, session, role=role, email=f"{user_id}@example.com", first_name=user_id)
    await session.execute(
        update(OrganizationMember)
        .where(OrganizationMember.org_id == org_id, OrganizationMember.user_id == user_id)
        .values(
            enrichment_limit=enrichment_limit,
            icp_limit=icp_limit,
            enrichment_used=enrichment_used,
            icp_used=icp_used,
            is_blocked=is_blocked,
        )
    )
    await session.commit()


@pytest.fixture
def add_member():
    """Create a synced member with explicit caps and usage."""
    return _add_member
