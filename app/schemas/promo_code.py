"""
Pydantic schemas for promo codes and promo code decisions.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.models.lifecycle import DiscountType


class PromoCodeCreate(BaseModel):
    """Schema for creating a promo code (admin only)"""
    code: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    description: Optional[str] = Field(None, max_length=500)
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    max_discount: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    min_purchase: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    is_active: bool = True
    plan_ids: List[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_rule_consistency(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            raise ValueError("valid_until must not be earlier than valid_from")
        return self


class PromoCodeResponse(BaseModel):
    """Schema for promo code response (admin view)"""
    id: int
    code: str
    description: Optional[str]
    discount_type: DiscountType
    discount_value: Decimal
    max_discount: Optional[Decimal]
    min_purchase: Optional[Decimal]
    currency: str
    valid_from: datetime
    valid_until: Optional[datetime]
    max_uses: Optional[int]
    used_count: int
    is_active: bool
    plan_ids: List[int]

    class Config:
        from_attributes = True


class ValidatePromoCodeRequest(BaseModel):
    """Preview a promo code against a plan without touching any session"""
    code: str = Field(..., min_length=1, max_length=50)
    plan_id: int


class PromoDecisionResponse(BaseModel):
    """Outcome of evaluating a promo code"""
    code: str
    valid: bool
    discount_amount: Decimal
    final_price: Decimal
    reason: Optional[str] = None
    message: Optional[str] = None
    promo_code_id: Optional[int] = None
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_decision(cls, decision) -> "PromoDecisionResponse":
        return cls(
            code=decision.code,
            valid=decision.valid,
            discount_amount=decision.discount_amount,
            final_price=decision.final_price,
            reason=decision.reason.value if decision.reason else None,
            message=decision.message,
            promo_code_id=decision.promo_code_id,
            description=decision.description,
            discount_type=decision.discount_type,
            discount_value=decision.discount_value,
        )
