from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from app.models.lifecycle import SubscriptionStatus
from app.schemas.subscription_plan import SubscriptionPlanPublic


class UserSubscriptionResponse(BaseModel):
    """Schema for user subscription response"""
    id: int
    user_id: int
    plan_id: int
    status: SubscriptionStatus
    start_date: datetime
    end_date: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    auto_renew: bool
    canceled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    promo_code_id: Optional[int] = None
    discount_amount: Optional[Decimal] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserSubscriptionWithPlan(UserSubscriptionResponse):
    """Schema including plan details"""
    plan: SubscriptionPlanPublic

    class Config:
        from_attributes = True


class CancelSubscriptionRequest(BaseModel):
    """Schema for canceling the current subscription"""
    reason: Optional[str] = Field(None, max_length=500)


class FeatureEntitlement(BaseModel):
    """A feature the user currently has, with its plan-specific value"""
    slug: str
    name: str
    feature_type: str
    value: Optional[str] = None


class FeatureAccessResponse(BaseModel):
    """Whether the user has a feature, and at what value"""
    feature_slug: str
    has_access: bool
    value: Optional[str] = None
