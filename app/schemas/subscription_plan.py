from pydantic import BaseModel
from typing import Optional, List
from decimal import Decimal

from app.models.lifecycle import BillingInterval, FeatureType


class FeatureResponse(BaseModel):
    """Schema for a feature definition"""
    id: int
    slug: str
    name: str
    description: Optional[str] = None
    feature_type: FeatureType

    class Config:
        from_attributes = True


class PlanFeatureResponse(BaseModel):
    """Feature as bundled in a plan, with its plan-specific value"""
    feature: FeatureResponse
    value: Optional[str] = None

    class Config:
        from_attributes = True


class SubscriptionPlanPublic(BaseModel):
    """Public schema for displaying plans to users"""
    id: int
    slug: str
    name: str
    description: Optional[str] = None
    price: Decimal
    currency: str
    billing_interval: BillingInterval
    trial_days: int
    is_active: bool
    display_order: int
    features: List[PlanFeatureResponse] = []

    class Config:
        from_attributes = True
