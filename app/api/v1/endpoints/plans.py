"""
API endpoints for the plan catalog.

Public: plans are shown to users before they sign up.
"""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.plan_catalog import PlanCatalog
from app.schemas.subscription_plan import SubscriptionPlanPublic

router = APIRouter()


@router.get("", response_model=List[SubscriptionPlanPublic])
async def list_plans(db: AsyncSession = Depends(get_db)):
    """
    Get all active subscription plans with their bundled features,
    in display order.
    """
    return await PlanCatalog.list_active_plans(db)


@router.get("/{plan_id}", response_model=SubscriptionPlanPublic)
async def get_plan(plan_id: int, db: AsyncSession = Depends(get_db)):
    """
    Get a single plan by ID (active or not).

    Raises:
        404: If the plan does not exist
    """
    return await PlanCatalog.get_plan(db, plan_id)
