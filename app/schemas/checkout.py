"""
Pydantic schemas for the checkout flow.

Request bodies are validated once here, at the API boundary; services
receive already-typed values.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from app.models.lifecycle import CheckoutStatus, DiscountType
from app.schemas.promo_code import PromoDecisionResponse
from app.schemas.subscription_plan import SubscriptionPlanPublic
from app.schemas.user_subscription import UserSubscriptionWithPlan


class BillingDetails(BaseModel):
    """Billing contact captured when the checkout is completed"""
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    address: Optional[str] = Field(None, min_length=5, max_length=500)
    city: Optional[str] = Field(None, min_length=2, max_length=255)
    country: Optional[str] = Field(None, min_length=2, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)


class CreateCheckoutSessionRequest(BaseModel):
    """Start (or resume) a checkout for a plan"""
    plan_id: int
    promo_code: Optional[str] = Field(None, max_length=50)


class ApplyPromoCodeRequest(BaseModel):
    """Attach a promo code to a pending session"""
    code: str = Field(..., min_length=1, max_length=50)


class CompleteCheckoutRequest(BaseModel):
    """Pay for and activate a pending session"""
    billing: BillingDetails
    payment_method_id: Optional[str] = Field(
        None,
        max_length=255,
        description="Gateway payment method reference; required when the final price is above zero"
    )


class AppliedPromoCode(BaseModel):
    """Promo code currently attached to a session"""
    id: int
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal

    class Config:
        from_attributes = True


class BillingContactResponse(BaseModel):
    """Billing contact stored on a session (may be partially prefilled)"""
    name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None


class CheckoutSessionResponse(BaseModel):
    """Schema for checkout session response"""
    id: str
    status: CheckoutStatus
    plan: SubscriptionPlanPublic
    promo_code: Optional[AppliedPromoCode] = None
    original_price: Decimal
    discount_amount: Decimal
    final_price: Decimal
    currency: str
    billing: Optional[BillingContactResponse] = None
    created_at: datetime
    expires_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_session(cls, session) -> "CheckoutSessionResponse":
        billing = None
        if session.billing_name or session.billing_email:
            billing = BillingContactResponse(
                name=session.billing_name,
                email=session.billing_email,
                address=session.billing_address,
                city=session.billing_city,
                country=session.billing_country,
                postal_code=session.billing_postal_code,
            )

        return cls(
            id=session.id,
            status=session.status,
            plan=SubscriptionPlanPublic.model_validate(session.plan),
            promo_code=(
                AppliedPromoCode.model_validate(session.promo_code)
                if session.promo_code_id is not None and session.promo_code is not None
                else None
            ),
            original_price=session.original_price,
            discount_amount=session.discount_amount,
            final_price=session.final_price,
            currency=session.currency,
            billing=billing,
            created_at=session.created_at,
            expires_at=session.expires_at,
            completed_at=session.completed_at,
        )


class RemovePromoCodeResponse(BaseModel):
    success: bool = True


class CompleteCheckoutResponse(BaseModel):
    """Result of a successful checkout"""
    success: bool = True
    session_id: str
    payment_id: Optional[str] = None
    subscription: UserSubscriptionWithPlan


class ApplyPromoCodeResponse(BaseModel):
    """Accepted promo code and the session repriced with it"""
    decision: PromoDecisionResponse
    session: CheckoutSessionResponse
