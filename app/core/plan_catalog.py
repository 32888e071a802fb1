"""
Read-only access to the plan catalog.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, PlanUnavailableError
from app.models.subscription_plan import SubscriptionPlan


class PlanCatalog:
    """
    Lookups over subscription plans and their bundled features.
    """

    @staticmethod
    async def get_plan(db: AsyncSession, plan_id: int) -> SubscriptionPlan:
        """
        Retrieve a plan (active or not) by ID, with its features loaded.

        Raises:
            NotFoundError: If the plan does not exist
        """
        result = await db.execute(
            select(SubscriptionPlan).where(SubscriptionPlan.id == plan_id)
        )
        plan = result.scalar_one_or_none()

        if not plan:
            raise NotFoundError("Plan", plan_id)

        return plan

    @staticmethod
    async def get_purchasable_plan(db: AsyncSession, plan_id: int) -> SubscriptionPlan:
        """
        Retrieve a plan that a new checkout may start on.

        Raises:
            NotFoundError: If the plan does not exist
            PlanUnavailableError: If the plan has been deactivated
        """
        plan = await PlanCatalog.get_plan(db, plan_id)

        if not plan.is_active:
            raise PlanUnavailableError(plan_id)

        return plan

    @staticmethod
    async def list_active_plans(db: AsyncSession) -> list[SubscriptionPlan]:
        """
        All active plans, ordered by display_order for consistent UI presentation.
        """
        result = await db.execute(
            select(SubscriptionPlan)
            .where(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.display_order, SubscriptionPlan.id)
        )
        return list(result.scalars().all())
