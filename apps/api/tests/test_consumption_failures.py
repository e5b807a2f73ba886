from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import event, func
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select

from config import settings
from database import Base
from models.credit_history import CreditHistory
from models.search import Search
from services import credits as credits_service
from services.billing_cycle import ensure_current_cycle, get_organization_credit
from services.credits import consume_credits, load_member
from services.ledger_errors import InvalidReference, MemberLimitExceeded, PersistenceFailure
from services.sql_helpers import as_utc


T0 = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)


async def _history_count(db, org_id):
    return (
        await db.execute(select(func.count(CreditHistory.id)).where(CreditHistory.org_id == org_id))
    ).scalar_one()


async def _assert_untouched(db, org_id, user_id, history_rows=0):
    credit = await get_organization_credit(org_id, db)
    member = await load_member(org_id, user_id, db)
    assert (credit.enrichment_used, credit.icp_used) == (0, 0)
    assert (member.enrichment_used, member.icp_used) == (0, 0)
    assert await _history_count(db, org_id) == history_rows


@pytest_asyncio.fixture
async def fk_db(tmp_path):
    """SQLite with foreign keys enforced, as Postgres does."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger_fk.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session
    await engine.dispose()


@pytest.mark.asyncio
async def test_member_cap_is_judged_against_the_current_cycle(db, add_member):
    await add_member(db, "org_1", "user_1", enrichment_limit=10)
    await consume_credits("org_1", "user_1", db, credit_type="enrichment", amount=10, now=T0)
    with pytest.raises(MemberLimitExceeded):
        await consume_credits("org_1", "user_1", db, credit_type="enrichment", amount=1, now=T0)

    next_cycle = datetime(2026, 3, 5, tzinfo=timezone.utc)
    result = await consume_credits("org_1", "user_1", db, credit_type="enrichment", amount=1, now=next_cycle)

    assert result["used"] == 1
    credit = await get_organization_credit("org_1", db)
    assert as_utc(credit.billing_cycle_start) == next_cycle
    member = await load_member("org_1", "user_1", db)
    assert member.enrichment_used == 1


@pytest.mark.asyncio
async def test_capped_member_rejection_still_rolls_lapsed_cycle(db, add_member):
    await add_member(db, "org_1", "user_1", icp_limit=0)
    await add_member(db, "org_1", "user_2")
    await consume_credits("org_1", "user_2", db, credit_type="icp", amount=30, now=T0)

    with pytest.raises(MemberLimitExceeded):
        await consume_credits("org_1", "user_1", db, credit_type="icp", amount=1, now=datetime(2026, 3, 5, tzinfo=timezone.utc))

    credit = await get_organization_credit("org_1", db)
    assert credit.icp_used == 0
    assert as_utc(credit.billing_cycle_end) == datetime(2026, 4, 5, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_search_from_another_org_is_a_caller_error(db, add_member):
    await add_member(db, "org_1", "user_1")
    await add_member(db, "org_2", "user_2")
    db.add(Search(id="search_other", org_id="org_2", user_id="user_2", name="Not yours"))
    await db.commit()
    await ensure_current_cycle("org_1", db)

    for search_id in ("search_other", "no_such_search"):
        with pytest.raises(InvalidReference) as exc_info:
            await consume_credits("org_1", "user_1", db, credit_type="icp", amount=1, search_id=search_id)
        assert exc_info.value.status_code == 400
        assert exc_info.value.retryable is False
        assert exc_info.value.detail["field"] == "search_id"

    await _assert_untouched(db, "org_1", "user_1")


@pytest.mark.asyncio
async def test_search_removed_before_insert_is_not_retryable(fk_db, add_member, monkeypatch):
    await add_member(fk_db, "org_1", "user_1")
    await ensure_current_cycle("org_1", fk_db)

    async def search_seen_at_check_time(org_id, search_id, db):
        return True

    monkeypatch.setattr(credits_service, "_search_belongs_to_org", search_seen_at_check_time)

    with pytest.raises(InvalidReference) as exc_info:
        await consume_credits("org_1", "user_1", fk_db, credit_type="enrichment", amount=5, search_id="deleted")

    assert exc_info.value.status_code == 400
    await _assert_untouched(fk_db, "org_1", "user_1")


@pytest.mark.asyncio
async def test_history_insert_failure_rolls_back_both_debits(db, add_member, monkeypatch):
    await add_member(db, "org_1", "user_1", enrichment_limit=50)
    await ensure_current_cycle("org_1", db)
    db.add(
        CreditHistory(
            id="taken-id",
            org_id="org_1",
            user_id="user_1",
            credit_type="enrichment",
            transaction_type="seed",
            credits_used=0,
        )
    )
    await db.commit()
    monkeypatch.setattr(credits_service, "uuid", SimpleNamespace(uuid4=lambda: "taken-id"))

    with pytest.raises(PersistenceFailure) as exc_info:
        await consume_credits("org_1", "user_1", db, credit_type="enrichment", amount=7)

    assert exc_info.value.status_code == 503
    assert exc_info.value.detail["retryable"] is True
    await _assert_untouched(db, "org_1", "user_1", history_rows=1)


@pytest.mark.asyncio
async def test_member_debit_failure_rolls_back_org_debit(db, add_member, monkeypatch):
    await add_member(db, "org_1", "user_1")
    await ensure_current_cycle("org_1", db)

    async def failing_member_debit(*args, **kwargs):
        raise OperationalError("UPDATE organization_members", {}, Exception("disk I/O error"))

    monkeypatch.setattr(credits_service, "_debit_member", failing_member_debit)

    with pytest.raises(PersistenceFailure):
        await consume_credits("org_1", "user_1", db, credit_type="icp", amount=3)

    await _assert_untouched(db, "org_1", "user_1")


@pytest.mark.asyncio
async def test_persistent_contention_is_reported_as_retryable(db, add_member, monkeypatch):
    await add_member(db, "org_1", "user_1")
    await ensure_current_cycle("org_1", db)
    attempts = []

    async def always_lose_race(*args, **kwargs):
        attempts.append(1)
        return None

    monkeypatch.setattr(credits_service, "_debit_organization", always_lose_race)

    with pytest.raises(PersistenceFailure) as exc_info:
        await consume_credits("org_1", "user_1", db, credit_type="icp", amount=1)

    assert exc_info.value.detail["retryable"] is True
    assert len(attempts) == settings.CONSUME_MAX_ATTEMPTS
    await _assert_untouched(db, "org_1", "user_1")
