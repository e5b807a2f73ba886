"""Static plan catalog for organization credit limits."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional


DEFAULT_PLAN_ID = "free"


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    enrichment_limit: int
    icp_limit: int
    price_cents: int

    @property
    def price(self) -> int:
        """Whole-dollar display price."""
        return self.price_cents // 100

    def limit_for(self, credit_type: str) -> int:
        return self.enrichment_limit if credit_type == "enrichment" else self.icp_limit


PLANS: Dict[str, Plan] = {
    plan.id: plan
    for plan in (
        Plan(id="free", name="Free", enrichment_limit=200, icp_limit=1000, price_cents=0),
        Plan(id="basic", name="Basic", enrichment_limit=200, icp_limit=1000, price_cents=8900),
        Plan(id="advanced", name="Advanced", enrichment_limit=650, icp_limit=10000, price_cents=24900),
        Plan(id="premier", name="Premier", enrichment_limit=1000, icp_limit=100000, price_cents=59900),
        Plan(id="super", name="Super", enrichment_limit=2500, icp_limit=200000, price_cents=100000),
    )
}


def resolve_plan(plan_id: Optional[str]) -> Plan:
    """Return the plan for ``plan_id``, falling back to the free plan."""
    key = str(plan_id or "").strip().lower()
    return PLANS.get(key) or PLANS[DEFAULT_PLAN_ID]


def is_known_plan(plan_id: Optional[str]) -> bool:
    return str(plan_id or "").strip().lower() in PLANS


def list_plans() -> List[Plan]:
    return list(PLANS.values())


def serialize_plan(plan: Plan) -> Dict[str, object]:
    return {
        "id": plan.id,
        "name": plan.name,
        "enrichment_limit": plan.enrichment_limit,
        "icp_limit": plan.icp_limit,
        "price": plan.price,
        "price_cents": plan.price_cents,
    }
