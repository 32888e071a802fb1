"""
Admin endpoints for managing promo codes.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import require_admin
from app.core.promo_engine import PromoCodeService
from app.models.user import User
from app.schemas.promo_code import PromoCodeCreate, PromoCodeResponse

router = APIRouter()


@router.post("", response_model=PromoCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_promo_code(
    payload: PromoCodeCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a promo code. The code is stored upper-cased.

    Requires:
        - Admin role

    Raises:
        400: If the plan allow-list names an unknown or inactive plan
        409: If the code already exists
        422: If the rule itself is inconsistent (e.g. percentage above 100)
    """
    return await PromoCodeService.create_promo_code(db, payload)
