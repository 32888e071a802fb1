"""
API endpoints for subscription management.

This module provides REST API endpoints for users to:
- View their current subscription
- View subscription history
- View the features their current plan grants
- Check a single feature
- Cancel their current subscription
"""
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_user, get_entitlement_resolver
from app.core.entitlement_service import EntitlementResolver
from app.core.subscription_service import SubscriptionService
from app.models.user import User
from app.schemas.user_subscription import (
    CancelSubscriptionRequest,
    FeatureAccessResponse,
    FeatureEntitlement,
    UserSubscriptionWithPlan,
)

router = APIRouter()


@router.get("/me", response_model=Optional[UserSubscriptionWithPlan])
async def get_my_subscription(
    user: User = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver)
):
    """
    Get the authenticated user's current active or trial subscription.

    Returns null when the user has none.
    """
    return await resolver.get_active_subscription(user.id)


@router.get("/me/history", response_model=List[UserSubscriptionWithPlan])
async def get_my_subscription_history(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get the authenticated user's subscription history.

    Returns all subscriptions (active, trial, canceled, expired) for the
    user, newest first.
    """
    return await SubscriptionService.get_subscription_history(db, user.id)


@router.get("/me/features", response_model=List[FeatureEntitlement])
async def get_my_features(
    user: User = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver)
):
    """
    Get every feature granted by the user's current plan, with its
    plan-specific value. Empty when the user has no current subscription.
    """
    features = await resolver.list_features(user.id)
    return [
        FeatureEntitlement(
            slug=feature.slug,
            name=feature.name,
            feature_type=feature.feature_type,
            value=feature.value,
        )
        for feature in features
    ]


@router.get("/me/features/{feature_slug}", response_model=FeatureAccessResponse)
async def check_my_feature(
    feature_slug: str,
    user: User = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver)
):
    """
    Check whether the user's current plan grants a feature, and its value.
    """
    access = await resolver.resolve_feature(user.id, feature_slug)
    return FeatureAccessResponse(
        feature_slug=access.feature_slug,
        has_access=access.has_access,
        value=access.value,
    )


@router.post("/me/cancel", response_model=UserSubscriptionWithPlan)
async def cancel_my_subscription(
    payload: Optional[CancelSubscriptionRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel the authenticated user's current subscription immediately.

    Raises:
        404: If the user has no active or trial subscription
    """
    reason = payload.reason if payload else None
    return await SubscriptionService.cancel_current_subscription(db, user.id, reason)
