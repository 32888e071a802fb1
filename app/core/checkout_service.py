"""
Service layer for checkout sessions.

A checkout session freezes a plan's price for a limited time while the
user applies promo codes and pays. Sessions only ever move
pending -> completed or pending -> expired; expiry is detected lazily
whenever a session is read past its TTL.

Completion is split in two phases so that no database transaction is held
open across the payment call:

1. Validate the session and charge the gateway (bounded by a timeout,
   idempotent per session)
2. In one transaction: claim the session (pending -> completed, guarded in
   SQL), activate the subscription and count the promo code usage
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PaymentFailedError,
    PaymentMethodRequiredError,
    PromoCodeExhaustedError,
    PromoCodeRejectedError,
    SessionExpiredError,
)
from app.core.payment_gateway import PaymentGateway, PaymentGatewayError
from app.core.plan_catalog import PlanCatalog
from app.core.promo_engine import PromoCodeService, PromoDecision, ZERO
from app.core.subscription_service import SubscriptionService
from app.models.checkout_session import CheckoutSession
from app.models.lifecycle import CheckoutStatus
from app.models.promo_code import PromoCode
from app.models.user import User
from app.models.user_subscription import UserSubscription
from app.models.types import utcnow
from app.schemas.checkout import BillingDetails

logger = logging.getLogger(__name__)


@dataclass
class CheckoutCompletion:
    session: CheckoutSession
    subscription: UserSubscription
    payment_id: Optional[str] = None


def idempotency_key_for(session_id: str) -> str:
    """Gateway idempotency key; one charge per checkout session."""
    return f"checkout-session-{session_id}"


class CheckoutService:
    """
    Checkout session operations. Every method takes the calling user
    explicitly and checks ownership against it.
    """

    @staticmethod
    async def _find_pending(
        db: AsyncSession,
        user_id: int,
        plan_id: int
    ) -> CheckoutSession | None:
        result = await db.execute(
            select(CheckoutSession)
            .where(CheckoutSession.user_id == user_id)
            .where(CheckoutSession.plan_id == plan_id)
            .where(CheckoutSession.status == CheckoutStatus.PENDING.value)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _load_owned(
        db: AsyncSession,
        session_id: str,
        user: User
    ) -> CheckoutSession:
        result = await db.execute(
            select(CheckoutSession).where(CheckoutSession.id == session_id)
        )
        checkout = result.scalar_one_or_none()

        if not checkout:
            raise NotFoundError("Checkout session", session_id)

        if checkout.user_id != user.id:
            logger.warning(
                "[CHECKOUT] User %s tried to access session %s owned by user %s",
                user.id, session_id, checkout.user_id
            )
            raise ForbiddenError("You do not have access to this checkout session")

        return checkout

    @staticmethod
    async def _ensure_open(db: AsyncSession, checkout: CheckoutSession) -> None:
        """
        Raise unless the session is pending and within its TTL.

        A pending session found past its TTL is flipped to expired (and
        committed) before the error is raised.
        """
        if checkout.checkout_status == CheckoutStatus.COMPLETED:
            raise ConflictError(
                "Checkout session has already been completed",
                details={"session_id": checkout.id},
                error_code="ALREADY_COMPLETED",
            )

        if checkout.checkout_status == CheckoutStatus.EXPIRED:
            raise SessionExpiredError(checkout.id)

        if checkout.is_expired(utcnow()):
            checkout.transition_to(CheckoutStatus.EXPIRED)
            await db.commit()
            logger.info("[CHECKOUT] Session %s expired", checkout.id)
            raise SessionExpiredError(checkout.id)

    @staticmethod
    async def get_or_create_session(
        db: AsyncSession,
        user: User,
        plan_id: int,
        promo_code: Optional[str] = None
    ) -> CheckoutSession:
        """
        Return the user's open session for this plan, or start a new one.

        An existing pending, unexpired session is returned unchanged (the
        promo code argument is ignored for it). A new session snapshots the
        plan price, gets the promo code applied if it is valid (an invalid
        code is ignored and the full price stands) and expires after
        CHECKOUT_SESSION_TTL_MINUTES.

        Raises:
            NotFoundError: If the plan does not exist
            PlanUnavailableError: If the plan is inactive
        """
        now = utcnow()
        user_id = user.id

        # Stale pending rows would otherwise block the new session on the
        # one-pending-session index
        await db.execute(
            update(CheckoutSession)
            .where(CheckoutSession.user_id == user_id)
            .where(CheckoutSession.plan_id == plan_id)
            .where(CheckoutSession.status == CheckoutStatus.PENDING.value)
            .where(CheckoutSession.expires_at <= now)
            .values(status=CheckoutStatus.EXPIRED.value)
            .execution_options(synchronize_session="fetch")
        )

        existing = await CheckoutService._find_pending(db, user.id, plan_id)
        if existing:
            await db.commit()
            logger.info(
                "[CHECKOUT] Reusing session %s for user %s, plan %s",
                existing.id, user.id, plan_id
            )
            return existing

        plan = await PlanCatalog.get_purchasable_plan(db, plan_id)
        price = Decimal(plan.price)

        checkout = CheckoutSession(
            user_id=user.id,
            plan_id=plan.id,
            original_price=price,
            discount_amount=ZERO,
            final_price=price,
            currency=plan.currency,
            status=CheckoutStatus.PENDING.value,
            created_at=now,
            expires_at=now + timedelta(minutes=config.CHECKOUT_SESSION_TTL_MINUTES),
            billing_name=user.full_name,
            billing_email=user.email,
        )
        checkout.plan = plan

        if promo_code:
            decision = await PromoCodeService.evaluate(db, promo_code, plan.id, price, now)
            if decision.valid:
                await CheckoutService._attach_promo(db, checkout, decision)
            else:
                logger.info(
                    "[CHECKOUT] Ignoring promo code %s on new session: %s",
                    decision.code, decision.reason.value
                )

        db.add(checkout)

        try:
            await db.commit()
        except IntegrityError:
            # A concurrent request created the pending session first
            await db.rollback()
            existing = await CheckoutService._find_pending(db, user_id, plan_id)
            if existing is None:
                raise
            logger.info(
                "[CHECKOUT] Lost creation race, reusing session %s for user %s",
                existing.id, user_id
            )
            return existing

        logger.info(
            "[CHECKOUT] Created session %s for user %s - Plan: %s, Final price: %s %s",
            checkout.id, user.id, plan.slug, checkout.final_price, checkout.currency
        )

        return checkout

    @staticmethod
    async def get_session(db: AsyncSession, user: User, session_id: str) -> CheckoutSession:
        """
        Fetch an open checkout session.

        Raises:
            NotFoundError, ForbiddenError
            ConflictError: If the session has already been completed
            SessionExpiredError: If the session is past its TTL
        """
        checkout = await CheckoutService._load_owned(db, session_id, user)
        await CheckoutService._ensure_open(db, checkout)
        return checkout

    @staticmethod
    async def validate_promo_code(
        db: AsyncSession,
        code: str,
        plan_id: int
    ) -> PromoDecision:
        """
        Preview a promo code against a plan's current price. Nothing is written.

        The plan only has to exist; whether it can still be bought is checked
        when a session is opened.
        """
        plan = await PlanCatalog.get_plan(db, plan_id)
        return await PromoCodeService.evaluate(db, code, plan.id, plan.price)

    @staticmethod
    async def _attach_promo(
        db: AsyncSession,
        checkout: CheckoutSession,
        decision: PromoDecision
    ) -> None:
        checkout.apply_discount(decision.promo_code_id, decision.discount_amount)
        checkout.promo_code = await db.get(PromoCode, decision.promo_code_id)

    @staticmethod
    async def apply_promo_code(
        db: AsyncSession,
        user: User,
        session_id: str,
        code: str
    ) -> tuple[CheckoutSession, PromoDecision]:
        """
        Apply a promo code to an open session, replacing any code already on it.

        The discount is computed against the session's frozen original
        price, not the plan's current price.

        Raises:
            PromoCodeRejectedError: If the code fails any rule; the session is left untouched
        """
        checkout = await CheckoutService._load_owned(db, session_id, user)
        await CheckoutService._ensure_open(db, checkout)

        decision = await PromoCodeService.evaluate(
            db, code, checkout.plan_id, checkout.original_price
        )

        if not decision.valid:
            logger.warning(
                "[CHECKOUT] Rejected promo code %s on session %s: %s",
                decision.code, checkout.id, decision.reason.value
            )
            raise PromoCodeRejectedError(decision.reason.value, decision.message, decision.code)

        await CheckoutService._attach_promo(db, checkout, decision)
        await db.commit()

        logger.info(
            "[CHECKOUT] Applied promo code %s to session %s: -%s, Final price: %s",
            decision.code, checkout.id, checkout.discount_amount, checkout.final_price
        )

        return checkout, decision

    @staticmethod
    async def remove_promo_code(
        db: AsyncSession,
        user: User,
        session_id: str
    ) -> CheckoutSession:
        """Drop the promo code from an open session and restore the original price."""
        checkout = await CheckoutService._load_owned(db, session_id, user)
        await CheckoutService._ensure_open(db, checkout)

        checkout.clear_discount()
        checkout.promo_code = None
        await db.commit()

        logger.info("[CHECKOUT] Removed promo code from session %s", checkout.id)

        return checkout

    @staticmethod
    async def complete_checkout(
        db: AsyncSession,
        user: User,
        session_id: str,
        billing: BillingDetails,
        gateway: PaymentGateway,
        payment_method_id: Optional[str] = None
    ) -> CheckoutCompletion:
        """
        Pay for an open session and activate its plan.

        A free session (final price 0) skips the gateway entirely. A gateway
        decline or timeout leaves the session pending so the user can retry
        until it expires.

        The session is claimed only if its price and promo code are still
        the ones that were charged; a promo applied or removed while the
        payment was in flight makes the completion a conflict.

        Raises:
            NotFoundError, ForbiddenError
            ConflictError: If the session is (or concurrently became) completed,
                changed during payment, or its promo code ran out of uses
            SessionExpiredError: If the session is past its TTL
            PaymentMethodRequiredError: If the price is above zero and no payment method was given
            PaymentFailedError: If the gateway declined or timed out
        """
        checkout = await CheckoutService._load_owned(db, session_id, user)
        await CheckoutService._ensure_open(db, checkout)

        final_price = Decimal(checkout.final_price)
        promo_code_id = checkout.promo_code_id
        discount_amount = checkout.discount_amount if promo_code_id else None

        if final_price > 0 and not payment_method_id:
            raise PaymentMethodRequiredError()

        if promo_code_id is not None and not await PromoCodeService.has_remaining_uses(db, promo_code_id):
            raise PromoCodeExhaustedError(promo_code_id)

        # Do not hold the read transaction open across the gateway call
        await db.commit()

        payment_id = None
        if final_price > 0:
            payment_id = await CheckoutService._charge(
                checkout, user, gateway, payment_method_id
            )

        now = utcnow()
        try:
            claimed = await db.execute(
                update(CheckoutSession)
                .where(CheckoutSession.id == session_id)
                .where(CheckoutSession.status == CheckoutStatus.PENDING.value)
                .where(CheckoutSession.final_price == final_price)
                .where(
                    CheckoutSession.promo_code_id.is_(None)
                    if promo_code_id is None
                    else CheckoutSession.promo_code_id == promo_code_id
                )
                .values(status=CheckoutStatus.COMPLETED.value, completed_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                current_status = await db.scalar(
                    select(CheckoutSession.status).where(CheckoutSession.id == session_id)
                )
                if current_status == CheckoutStatus.COMPLETED.value:
                    logger.warning(
                        "[CHECKOUT] Session %s was completed concurrently (payment %s)",
                        session_id, payment_id
                    )
                    raise ConflictError(
                        "Checkout session has already been completed",
                        details={"session_id": session_id},
                        error_code="ALREADY_COMPLETED",
                    )
                logger.warning(
                    "[CHECKOUT] Session %s changed while payment %s was processing",
                    session_id, payment_id
                )
                raise ConflictError(
                    "Checkout session changed while the payment was processing",
                    details={"session_id": session_id},
                    error_code="SESSION_CHANGED",
                )

            checkout.transition_to(CheckoutStatus.COMPLETED)
            checkout.completed_at = now
            checkout.billing_name = billing.name
            checkout.billing_email = billing.email
            checkout.billing_address = billing.address
            checkout.billing_city = billing.city
            checkout.billing_country = billing.country
            checkout.billing_postal_code = billing.postal_code

            subscription = await SubscriptionService.activate(
                db,
                user_id=user.id,
                plan_id=checkout.plan_id,
                promo_code_id=promo_code_id,
                discount_amount=discount_amount,
                payment_method=payment_method_id,
                now=now,
            )

            if promo_code_id is not None:
                await PromoCodeService.increment_usage(db, promo_code_id)

            await db.commit()
        except ConflictError:
            await db.rollback()
            if payment_id:
                logger.error(
                    "[CHECKOUT] Payment %s captured for session %s but the session was not completed",
                    payment_id, session_id
                )
            raise
        except IntegrityError:
            await db.rollback()
            logger.error(
                "[CHECKOUT] Activation conflict for session %s after payment %s",
                session_id, payment_id
            )
            raise ConflictError(
                "Another subscription change for this user is in progress",
                details={"session_id": session_id},
            )
        except SQLAlchemyError:
            await db.rollback()
            if payment_id:
                logger.error(
                    "[CHECKOUT] Payment %s captured for session %s but activation was not saved; "
                    "retrying the session replays the same charge",
                    payment_id, session_id
                )
            raise

        if checkout.promo_code_id is not None:
            # The bulk increment bypassed the identity map
            await db.refresh(checkout.promo_code, ["used_count"])

        logger.info(
            "[CHECKOUT] Completed session %s for user %s - Subscription: %s, Payment: %s",
            checkout.id, user.id, subscription.id, payment_id or "none"
        )

        return CheckoutCompletion(
            session=checkout,
            subscription=subscription,
            payment_id=payment_id,
        )

    @staticmethod
    async def _charge(
        checkout: CheckoutSession,
        user: User,
        gateway: PaymentGateway,
        payment_method_id: str
    ) -> str:
        plan = checkout.plan
        try:
            result = await asyncio.wait_for(
                gateway.charge(
                    amount=Decimal(checkout.final_price),
                    currency=checkout.currency,
                    payment_method_id=payment_method_id,
                    description=f"{plan.name} subscription ({plan.billing_interval})",
                    metadata={
                        "session_id": checkout.id,
                        "user_id": str(user.id),
                        "plan_id": str(plan.id),
                        "promo_code_id": str(checkout.promo_code_id or ""),
                    },
                    idempotency_key=idempotency_key_for(checkout.id),
                ),
                timeout=config.PAYMENT_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[PAYMENT] Charge for session %s timed out after %ss",
                checkout.id, config.PAYMENT_TIMEOUT_SECONDS
            )
            raise PaymentFailedError(
                "The payment provider did not respond in time. Please try again.",
                details={"session_id": checkout.id},
            )
        except PaymentGatewayError as e:
            logger.warning(
                "[PAYMENT] Charge for session %s declined: %s",
                checkout.id, e.code or e.message
            )
            details = {"session_id": checkout.id}
            if e.code:
                details["gateway_code"] = e.code
            raise PaymentFailedError(e.message, details=details)

        logger.info(
            "[PAYMENT] Charged %s %s for session %s (payment %s)",
            result.amount, result.currency, checkout.id, result.payment_id
        )

        return result.payment_id
