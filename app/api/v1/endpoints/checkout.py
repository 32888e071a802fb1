"""
API endpoints for the checkout flow.

A client starts (or resumes) a session for a plan, optionally adjusts the
promo code on it, then completes it with billing details and a payment
method. Service errors are rendered by the application-wide BillingError
handler.
"""
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.checkout_service import CheckoutService
from app.core.database import get_db
from app.core.dependencies import get_current_user, get_payment_gateway
from app.core.payment_gateway import PaymentGateway
from app.core.rate_limit import (
    CHECKOUT_COMPLETE_LIMIT,
    CHECKOUT_SESSION_LIMIT,
    PROMO_CODE_LIMIT,
    limiter,
)
from app.models.user import User
from app.schemas.checkout import (
    ApplyPromoCodeRequest,
    ApplyPromoCodeResponse,
    CheckoutSessionResponse,
    CompleteCheckoutRequest,
    CompleteCheckoutResponse,
    CreateCheckoutSessionRequest,
    RemovePromoCodeResponse,
)
from app.schemas.promo_code import PromoDecisionResponse, ValidatePromoCodeRequest
from app.schemas.user_subscription import UserSubscriptionWithPlan

router = APIRouter()


@router.post("/sessions", response_model=CheckoutSessionResponse)
@limiter.limit(CHECKOUT_SESSION_LIMIT)
async def create_checkout_session(
    request: Request,
    response: Response,
    payload: CreateCheckoutSessionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Start a checkout for a plan, or resume the open one.

    Calling this again for the same plan while a session is pending returns
    that same session. An invalid promo code is ignored here (the session
    is created at full price); use the apply endpoint to get the reason.

    Raises:
        404: If the plan does not exist
        400: If the plan is no longer available
    """
    session = await CheckoutService.get_or_create_session(
        db, user, payload.plan_id, payload.promo_code
    )
    return CheckoutSessionResponse.from_session(session)


@router.get("/sessions/{session_id}", response_model=CheckoutSessionResponse)
async def get_checkout_session(
    session_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get an open checkout session.

    Raises:
        403: If the session belongs to another user
        404: If the session does not exist
        409: If the session was already completed
        410: If the session has expired
    """
    session = await CheckoutService.get_session(db, user, session_id)
    return CheckoutSessionResponse.from_session(session)


@router.post("/promo-codes/validate", response_model=PromoDecisionResponse)
@limiter.limit(PROMO_CODE_LIMIT)
async def validate_promo_code(
    request: Request,
    response: Response,
    payload: ValidatePromoCodeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Preview what a promo code would do for a plan, without touching any
    session. Invalid codes come back with valid=false and a reason.
    """
    decision = await CheckoutService.validate_promo_code(db, payload.code, payload.plan_id)
    return PromoDecisionResponse.from_decision(decision)


@router.post("/sessions/{session_id}/promo-code", response_model=ApplyPromoCodeResponse)
@limiter.limit(PROMO_CODE_LIMIT)
async def apply_promo_code(
    request: Request,
    response: Response,
    session_id: str,
    payload: ApplyPromoCodeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Apply a promo code to an open session.

    Raises:
        400: If the code is rejected (error.details.reason says why)
        403, 404, 409, 410: As for GET /sessions/{session_id}
    """
    session, decision = await CheckoutService.apply_promo_code(
        db, user, session_id, payload.code
    )
    return ApplyPromoCodeResponse(
        decision=PromoDecisionResponse.from_decision(decision),
        session=CheckoutSessionResponse.from_session(session),
    )


@router.delete("/sessions/{session_id}/promo-code", response_model=RemovePromoCodeResponse)
async def remove_promo_code(
    session_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Remove the promo code from an open session, restoring the original price.
    """
    await CheckoutService.remove_promo_code(db, user, session_id)
    return RemovePromoCodeResponse(success=True)


@router.post("/sessions/{session_id}/complete", response_model=CompleteCheckoutResponse)
@limiter.limit(CHECKOUT_COMPLETE_LIMIT)
async def complete_checkout(
    request: Request,
    response: Response,
    session_id: str,
    payload: CompleteCheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)
):
    """
    Pay for an open session and activate its plan.

    A payment method is required unless the final price is zero. Any
    previous active or trial subscription is canceled in the same step.

    Raises:
        400: If a payment method is required but missing
        402: If the payment was declined or timed out (the session stays open)
        403, 404, 409, 410: As for GET /sessions/{session_id}
    """
    completion = await CheckoutService.complete_checkout(
        db,
        user,
        session_id,
        payload.billing,
        gateway,
        payload.payment_method_id,
    )
    return CompleteCheckoutResponse(
        success=True,
        session_id=completion.session.id,
        payment_id=completion.payment_id,
        subscription=UserSubscriptionWithPlan.model_validate(completion.subscription),
    )
