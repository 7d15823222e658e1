"""
Plan Catalog - the purchasable credit plans.

Payments snapshot a plan's credit grant when they are created, so replacing
a catalog entry never changes what an existing payment will grant.
"""

from visionai.exceptions import InvalidPlanError
from visionai.models.domain import UNLIMITED_CREDITS, Plan

DEFAULT_PLANS: tuple[Plan, ...] = (
    Plan(
        id="free",
        name="Starter",
        price_minor=0,
        credits=20,
        description="20 credits, HD quality images",
    ),
    Plan(
        id="pro",
        name="Professional",
        price_minor=2999,
        credits=1000,
        description="1000 credits with 2K quality images",
    ),
    Plan(
        id="enterprise",
        name="Enterprise",
        price_minor=9999,
        credits=UNLIMITED_CREDITS,
        description="Unlimited credits with 4K quality images",
    ),
)


class PlanCatalog:
    """In-process plan catalog keyed by plan id."""

    def __init__(self, plans: tuple[Plan, ...] = DEFAULT_PLANS) -> None:
        self._plans: dict[str, Plan] = {plan.id: plan for plan in plans}

    def get(self, plan_id: str) -> Plan:
        """
        Look up a plan.

        Raises:
            InvalidPlanError: Unknown plan id
        """
        plan = self._plans.get(plan_id)
        if plan is None:
            raise InvalidPlanError(plan_id)
        return plan

    def get_purchasable(self, plan_id: str) -> Plan:
        """
        Look up a plan that can be bought.

        Raises:
            InvalidPlanError: Unknown plan id, or a free plan
        """
        plan = self.get(plan_id)
        if not plan.purchasable:
            raise InvalidPlanError(plan_id)
        return plan

    def replace(self, plan: Plan) -> None:
        """Replace the entry for plan's tier."""
        self._plans[plan.id] = plan

    def all(self) -> list[Plan]:
        """All plans, free tier first, then by price."""
        return sorted(self._plans.values(), key=lambda p: (p.purchasable, p.price_minor))


# Global catalog instance
plan_catalog = PlanCatalog()
