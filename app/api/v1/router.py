# app/api/v1/router.py
from fastapi import APIRouter

from app.api.v1.endpoints import plans, checkout, subscriptions, promo_codes

api_v1_router = APIRouter()
api_v1_router.include_router(plans.router, prefix="/plans", tags=["plans"])
api_v1_router.include_router(checkout.router, prefix="/checkout", tags=["checkout"])
api_v1_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_v1_router.include_router(promo_codes.router, prefix="/admin/promo-codes", tags=["admin"])
