"""
Service layer for subscription lifecycle management.

This module activates subscriptions from completed checkouts, retiring
whatever the user had before, and handles user-initiated cancellation.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.entitlement_service import EntitlementResolver
from app.core.exceptions import NotFoundError
from app.core.plan_catalog import PlanCatalog
from app.models.lifecycle import CURRENT_SUBSCRIPTION_STATUSES, SubscriptionStatus
from app.models.user import User
from app.models.user_subscription import UserSubscription
from app.models.types import utcnow

logger = logging.getLogger(__name__)

REPLACED_REASON = "Replaced by new subscription"


class SubscriptionService:
    """
    Service class for subscription-related operations.

    `activate()` only stages its writes on the session; the caller owns the
    transaction and commits it together with its own changes.
    """

    @staticmethod
    async def activate(
        db: AsyncSession,
        user_id: int,
        plan_id: int,
        promo_code_id: Optional[int] = None,
        discount_amount: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UserSubscription:
        """
        Activate a plan for a user as one unit of work.

        1. Locks the user row so concurrent activations for the same user
           queue up behind each other
        2. Cancels every active/trial subscription the user has
        3. Creates the new subscription: 'trial' with trial_ends_at when the
           plan has trial days, otherwise 'active'

        Does not commit.

        Args:
            db (AsyncSession): Database session (transaction owned by caller)
            user_id (int): ID of the user subscribing
            plan_id (int): Plan to activate (may have been deactivated since checkout began)
            promo_code_id (int, optional): Promo code used at checkout, for audit
            discount_amount (Decimal, optional): Discount granted at checkout, for audit
            payment_method (str, optional): Gateway payment method reference
            now (datetime, optional): Activation time, defaults to current UTC time

        Returns:
            UserSubscription: The new, flushed subscription

        Raises:
            NotFoundError: If the user or plan does not exist
        """
        now = now or utcnow()

        result = await db.execute(
            select(User).where(User.id == user_id).with_for_update()
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("User", user_id)

        plan = await PlanCatalog.get_plan(db, plan_id)

        result = await db.execute(
            select(UserSubscription)
            .where(UserSubscription.user_id == user_id)
            .where(UserSubscription.status.in_([s.value for s in CURRENT_SUBSCRIPTION_STATUSES]))
        )
        for previous in result.scalars().all():
            previous.transition_to(SubscriptionStatus.CANCELED)
            previous.canceled_at = now
            previous.cancel_reason = REPLACED_REASON
            previous.auto_renew = False
            logger.info(
                "[SUBSCRIPTION] Retired subscription %s for user %s",
                previous.id, user_id
            )

        # Retirements must hit the database before the insert, or the
        # one-current-subscription index rejects the new row
        await db.flush()

        if plan.trial_days > 0:
            trial_ends_at = now + timedelta(days=plan.trial_days)
            status = SubscriptionStatus.TRIAL
        else:
            trial_ends_at = None
            status = SubscriptionStatus.ACTIVE

        subscription = UserSubscription(
            user_id=user_id,
            plan_id=plan.id,
            status=status.value,
            start_date=now,
            trial_ends_at=trial_ends_at,
            auto_renew=True,
            payment_method=payment_method,
            promo_code_id=promo_code_id,
            discount_amount=discount_amount,
            created_at=now,
        )
        subscription.plan = plan
        db.add(subscription)
        await db.flush()

        logger.info(
            "[SUBSCRIPTION] Activated subscription %s for user %s - Plan: %s (%s)",
            subscription.id, user_id, plan.slug, status.value
        )

        return subscription

    @staticmethod
    async def get_subscription_history(
        db: AsyncSession,
        user_id: int
    ) -> list[UserSubscription]:
        """
        Get all subscriptions for a user (current and historical), newest first.
        """
        result = await db.execute(
            select(UserSubscription)
            .where(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def cancel_current_subscription(
        db: AsyncSession,
        user_id: int,
        reason: Optional[str] = None
    ) -> UserSubscription:
        """
        Cancel the user's current active/trial subscription immediately.

        Raises:
            NotFoundError: If the user has no current subscription
        """
        subscription = await EntitlementResolver(db).get_active_subscription(user_id)

        if not subscription:
            raise NotFoundError("Active subscription")

        now = utcnow()
        subscription.transition_to(SubscriptionStatus.CANCELED)
        subscription.canceled_at = now
        subscription.cancel_reason = reason
        subscription.auto_renew = False

        await db.commit()

        logger.info(
            "[SUBSCRIPTION] Canceled subscription %s for user %s",
            subscription.id, user_id
        )

        return subscription
