"""
Entitlement resolution: what a user may do, derived from their current
subscription.

Also used by content-access checks elsewhere, through
`resolve_feature()` only.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.lifecycle import CURRENT_SUBSCRIPTION_STATUSES
from app.models.user_subscription import UserSubscription
from app.models.types import utcnow


@dataclass(frozen=True)
class FeatureAccess:
    feature_slug: str
    has_access: bool
    value: Optional[str] = None


@dataclass(frozen=True)
class Entitlement:
    slug: str
    name: str
    feature_type: str
    value: Optional[str] = None


_UNSET = object()


class EntitlementResolver:
    """
    Read-only view over a user's current subscription.

    One resolver per logical request: the active subscription is looked up
    once per user and reused, so repeated checks inside a request agree
    with each other.
    """

    def __init__(self, db: AsyncSession, now: Optional[datetime] = None):
        self.db = db
        self.now = now or utcnow()
        self._active: Dict[int, object] = {}

    async def get_active_subscription(self, user_id: int) -> UserSubscription | None:
        """
        The user's active/trial subscription whose end date is unset or
        still in the future, or None.
        """
        cached = self._active.get(user_id, _UNSET)
        if cached is not _UNSET:
            return cached

        result = await self.db.execute(
            select(UserSubscription)
            .where(UserSubscription.user_id == user_id)
            .where(UserSubscription.status.in_([s.value for s in CURRENT_SUBSCRIPTION_STATUSES]))
            .where(or_(
                UserSubscription.end_date.is_(None),
                UserSubscription.end_date > self.now,
            ))
            .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
            .limit(1)
        )
        subscription = result.unique().scalar_one_or_none()

        self._active[user_id] = subscription
        return subscription

    async def resolve_feature(self, user_id: int, feature_slug: str) -> FeatureAccess:
        """
        Does the user have `feature_slug`, and with which plan value?

        No current subscription, or a plan without the feature, both mean
        no access.
        """
        subscription = await self.get_active_subscription(user_id)
        if subscription is None:
            return FeatureAccess(feature_slug=feature_slug, has_access=False)

        for plan_feature in subscription.plan.features:
            if plan_feature.feature.slug == feature_slug:
                return FeatureAccess(
                    feature_slug=feature_slug,
                    has_access=True,
                    value=plan_feature.value,
                )

        return FeatureAccess(feature_slug=feature_slug, has_access=False)

    async def list_features(self, user_id: int) -> List[Entitlement]:
        """Every feature on the user's current plan, in plan order."""
        subscription = await self.get_active_subscription(user_id)
        if subscription is None:
            return []

        return [
            Entitlement(
                slug=plan_feature.feature.slug,
                name=plan_feature.feature.name,
                feature_type=plan_feature.feature.feature_type,
                value=plan_feature.value,
            )
            for plan_feature in subscription.plan.features
        ]
