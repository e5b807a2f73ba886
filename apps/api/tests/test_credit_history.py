from datetime import timedelta

import pytest
from sqlalchemy import update

from models.organization_credit import OrganizationCredit
from models.search import Search
from services.credit_history import get_credit_history, get_platform_credit_stats, reconcile_organization
from services.credits import consume_credits, update_plan
from services.ledger_errors import InvalidCreditType
from services.sql_helpers import utcnow


@pytest.mark.asyncio
async def test_history_is_newest_first_with_user_and_search(db, add_member):
    await add_member(db, "org_1", "user_1")
    db.add(Search(id="search_1", org_id="org_1", user_id="user_1", name="Fintech CTOs"))
    await db.commit()

    start = utcnow()
    await consume_credits("org_1", "user_1", db, credit_type="icp", amount=10, search_id="search_1", now=start)
    await consume_credits(
        "org_1", "user_1", db, credit_type="enrichment", amount=2, now=start + timedelta(seconds=5)
    )
    await consume_credits("org_1", "user_1", db, credit_type="icp", amount=4, now=start + timedelta(seconds=10))

    history = await get_credit_history("org_1", db)

    assert [entry["credits_used"] for entry in history] == [4, 2, 10]
    assert history[0]["balance_after"] == 986
    assert history[0]["search"] is None
    assert history[2]["search"] == {"id": "search_1", "name": "Fintech CTOs"}
    assert history[1]["user"]["id"] == "user_1"
    assert history[1]["user"]["email"] == "user_1@example.com"
    assert history[1]["user"]["first_name"] == "user_1"


@pytest.mark.asyncio
async def test_history_filters_by_type_and_limits_rows(db, add_member):
    await add_member(db, "org_1", "user_1")
    await add_member(db, "org_2", "user_2")
    for _ in range(3):
        await consume_credits("org_1", "user_1", db, credit_type="enrichment", amount=1)
    await consume_credits("org_1", "user_1", db, credit_type="icp", amount=7)
    await consume_credits("org_2", "user_2", db, credit_type="icp", amount=9)

    icp_only = await get_credit_history("org_1", db, credit_type="icp")
    assert [entry["credits_used"] for entry in icp_only] == [7]

    limited = await get_credit_history("org_1", db, limit=2)
    assert len(limited) == 2

    assert len(await get_credit_history("org_1", db, limit=0)) == 1
    assert len(await get_credit_history("org_1", db)) == 4

    with pytest.raises(InvalidCreditType):
        await get_credit_history("org_1", db, credit_type="tokens")


@pytest.mark.asyncio
async def test_history_for_unknown_org_is_empty(db):
    assert await get_credit_history("org_missing", db) == []


@pytest.mark.asyncio
async def test_reconcile_matches_counters_with_history(db, add_member):
    await add_member(db, "org_1", "user_1")
    await add_member(db, "org_1", "user_2")
    await consume_credits("org_1", "user_1", db, credit_type="enrichment", amount=11)
    await consume_credits("org_1", "user_2", db, credit_type="enrichment", amount=4)
    await consume_credits("org_1", "user_2", db, credit_type="icp", amount=100)

    report = await reconcile_organization("org_1", db)
    assert report["consistent"] is True
    assert report["enrichment"] == {"counter": 15, "history": 15, "drift": 0}
    assert report["icp"] == {"counter": 100, "history": 100, "drift": 0}

    await db.execute(
        update(OrganizationCredit).where(OrganizationCredit.org_id == "org_1").values(icp_used=140)
    )
    await db.commit()

    report = await reconcile_organization("org_1", db)
    assert report["consistent"] is False
    assert report["icp"]["drift"] == 40


@pytest.mark.asyncio
async def test_reconcile_without_credit_record(db):
    report = await reconcile_organization("org_new", db)
    assert report["consistent"] is True
    assert report["cycle_start"] is None


@pytest.mark.asyncio
async def test_platform_stats_aggregate_all_organizations(db, add_member):
    await add_member(db, "org_1", "user_1")
    await add_member(db, "org_2", "user_2")
    await update_plan("org_2", "advanced", db)
    await consume_credits("org_1", "user_1", db, credit_type="enrichment", amount=20)
    await consume_credits("org_2", "user_2", db, credit_type="enrichment", amount=30)
    await consume_credits("org_2", "user_2", db, credit_type="icp", amount=500)

    stats = await get_platform_credit_stats(db)

    assert stats["organizations"] == 2
    assert stats["enrichment"] == {"used": 50, "limit": 850, "remaining": 800}
    assert stats["icp"] == {"used": 500, "limit": 11000, "remaining": 10500}
    assert stats["plans"] == {"free": 1, "advanced": 1}
    assert stats["history"]["enrichment"] == {"transactions": 2, "credits_used": 50}
    assert stats["history"]["icp"] == {"transactions": 1, "credits_used": 500}
