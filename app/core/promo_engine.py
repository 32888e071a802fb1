"""
Promo code rule engine.

`evaluate_promo_code()` is a pure function over an already-loaded promo
code, the target plan and the price being discounted. It walks the
eligibility checks in a fixed order, stopping at the first failure, and
otherwise returns the discount and the resulting final price. All
arithmetic is done in Decimal.

`PromoCodeService` wraps it with the database lookups and writes.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BillingValidationError, ConflictError, PromoCodeExhaustedError
from app.models.lifecycle import DiscountType
from app.models.promo_code import PromoCode
from app.models.subscription_plan import SubscriptionPlan
from app.models.types import utcnow
from app.schemas.promo_code import PromoCodeCreate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


class PromoRejection(str, Enum):
    """Why a promo code was rejected, in evaluation order."""
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    EXHAUSTED = "EXHAUSTED"
    PLAN_NOT_ELIGIBLE = "PLAN_NOT_ELIGIBLE"
    BELOW_MINIMUM = "BELOW_MINIMUM"


REJECTION_MESSAGES = {
    PromoRejection.NOT_FOUND: "Promo code not found",
    PromoRejection.INACTIVE: "Promo code is not active",
    PromoRejection.NOT_YET_VALID: "Promo code is not valid yet",
    PromoRejection.EXPIRED: "Promo code has expired",
    PromoRejection.EXHAUSTED: "Promo code usage limit has been reached",
    PromoRejection.PLAN_NOT_ELIGIBLE: "Promo code does not apply to this plan",
    PromoRejection.BELOW_MINIMUM: "Purchase amount is below the promo code minimum",
}


@dataclass(frozen=True)
class PromoDecision:
    """
    Outcome of evaluating a promo code against a plan and price.

    For a rejected code, discount_amount is zero and final_price is the
    undiscounted price.
    """
    code: str
    valid: bool
    discount_amount: Decimal
    final_price: Decimal
    reason: Optional[PromoRejection] = None
    message: Optional[str] = None
    promo_code_id: Optional[int] = None
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None


def normalize_code(code: str) -> str:
    """Promo codes are case-insensitive and stored upper-cased."""
    return code.strip().upper()


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Go through str so 29.99 stays 29.99
        return Decimal(str(value))
    return Decimal(value)


def compute_discount(
    discount_type: DiscountType,
    discount_value: Decimal,
    price: Decimal,
    max_discount: Optional[Decimal] = None,
) -> Decimal:
    """
    Discount for `price`: percentage or fixed, then the optional cap,
    then clamped so it never exceeds the price, then rounded to cents.
    """
    if discount_type == DiscountType.PERCENTAGE:
        discount = price * discount_value / HUNDRED
    else:
        discount = discount_value

    if max_discount is not None and discount > max_discount:
        discount = max_discount

    if discount > price:
        discount = price

    if discount < ZERO:
        discount = ZERO

    return discount.quantize(CENT, rounding=ROUND_HALF_UP)


def _reject(
    code: str,
    price: Decimal,
    reason: PromoRejection,
    promo: Optional[PromoCode] = None,
    message: Optional[str] = None,
) -> PromoDecision:
    return PromoDecision(
        code=promo.code if promo else code,
        valid=False,
        discount_amount=ZERO,
        final_price=price,
        reason=reason,
        message=message or REJECTION_MESSAGES[reason],
        promo_code_id=promo.id if promo else None,
        description=promo.description if promo else None,
        discount_type=DiscountType(promo.discount_type) if promo else None,
        discount_value=to_decimal(promo.discount_value) if promo else None,
    )


def evaluate_promo_code(
    promo: Optional[PromoCode],
    code: str,
    plan_id: int,
    price,
    now: datetime,
) -> PromoDecision:
    """
    Decide whether `promo` applies to `plan_id` at `price`, and for how much.

    `promo` is the row found for `code` (or None). No side effects.
    """
    price = to_decimal(price)

    if promo is None:
        return _reject(normalize_code(code), price, PromoRejection.NOT_FOUND)

    if not promo.is_active:
        return _reject(code, price, PromoRejection.INACTIVE, promo)

    if now < promo.valid_from:
        return _reject(code, price, PromoRejection.NOT_YET_VALID, promo)

    if promo.valid_until is not None and now > promo.valid_until:
        return _reject(code, price, PromoRejection.EXPIRED, promo)

    if promo.max_uses is not None and promo.used_count >= promo.max_uses:
        return _reject(code, price, PromoRejection.EXHAUSTED, promo)

    allowed_plans = promo.plan_ids
    if allowed_plans and plan_id not in allowed_plans:
        return _reject(code, price, PromoRejection.PLAN_NOT_ELIGIBLE, promo)

    if promo.min_purchase is not None and price < to_decimal(promo.min_purchase):
        return _reject(
            code,
            price,
            PromoRejection.BELOW_MINIMUM,
            promo,
            message=f"Minimum purchase amount is {to_decimal(promo.min_purchase)} {promo.currency}",
        )

    discount_type = DiscountType(promo.discount_type)
    discount_value = to_decimal(promo.discount_value)
    max_discount = to_decimal(promo.max_discount) if promo.max_discount is not None else None

    discount_amount = compute_discount(discount_type, discount_value, price, max_discount)

    return PromoDecision(
        code=promo.code,
        valid=True,
        discount_amount=discount_amount,
        final_price=price - discount_amount,
        promo_code_id=promo.id,
        description=promo.description,
        discount_type=discount_type,
        discount_value=discount_value,
    )


class PromoCodeService:
    """
    Database-facing promo code operations.
    """

    @staticmethod
    async def get_by_code(db: AsyncSession, code: str) -> PromoCode | None:
        """Case-insensitive lookup."""
        result = await db.execute(
            select(PromoCode).where(func.upper(PromoCode.code) == normalize_code(code))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def evaluate(
        db: AsyncSession,
        code: str,
        plan_id: int,
        price,
        now: Optional[datetime] = None,
    ) -> PromoDecision:
        """
        Look up `code` and run the rule engine. Read-only.
        """
        promo = await PromoCodeService.get_by_code(db, code)
        decision = evaluate_promo_code(promo, code, plan_id, price, now or utcnow())

        if decision.valid:
            logger.info(
                "[PROMO] Code %s valid for plan %s: -%s",
                decision.code, plan_id, decision.discount_amount
            )
        else:
            logger.info(
                "[PROMO] Code %s rejected for plan %s: %s",
                decision.code, plan_id, decision.reason.value
            )

        return decision

    @staticmethod
    async def has_remaining_uses(db: AsyncSession, promo_code_id: int) -> bool:
        """Read the current usage straight from the database."""
        row = (
            await db.execute(
                select(PromoCode.used_count, PromoCode.max_uses)
                .where(PromoCode.id == promo_code_id)
            )
        ).one_or_none()

        if row is None:
            return False
        used_count, max_uses = row
        return max_uses is None or used_count < max_uses

    @staticmethod
    async def increment_usage(db: AsyncSession, promo_code_id: int) -> None:
        """
        Count one more completed checkout for the code.

        Atomic in the database and guarded by `max_uses`; does not commit.

        Raises:
            PromoCodeExhaustedError: If the code has no uses left
        """
        result = await db.execute(
            update(PromoCode)
            .where(PromoCode.id == promo_code_id)
            .where(or_(PromoCode.max_uses.is_(None), PromoCode.used_count < PromoCode.max_uses))
            .values(used_count=PromoCode.used_count + 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            logger.warning("[PROMO] Code %s has no uses left", promo_code_id)
            raise PromoCodeExhaustedError(promo_code_id)

    @staticmethod
    async def create_promo_code(db: AsyncSession, data: PromoCodeCreate) -> PromoCode:
        """
        Create a promo code after checking it against the current catalog.

        Every plan in the allow-list must exist and be active at creation
        time; a code that could never apply is a configuration mistake.

        Raises:
            BillingValidationError: If the allow-list names an unknown or inactive plan
            ConflictError: If the code already exists
        """
        code = normalize_code(data.code)

        plans: list[SubscriptionPlan] = []
        if data.plan_ids:
            requested = set(data.plan_ids)
            result = await db.execute(
                select(SubscriptionPlan).where(SubscriptionPlan.id.in_(sorted(requested)))
            )
            plans = list(result.scalars().all())

            missing = requested - {plan.id for plan in plans}
            if missing:
                raise BillingValidationError(
                    "Promo code allow-list references unknown plans",
                    details={"plan_ids": sorted(missing)},
                )

            inactive = sorted(plan.id for plan in plans if not plan.is_active)
            if inactive:
                raise BillingValidationError(
                    "Promo code allow-list references inactive plans",
                    details={"plan_ids": inactive},
                )

        if await PromoCodeService.get_by_code(db, code):
            raise ConflictError(
                f"Promo code '{code}' already exists",
                details={"code": code},
            )

        promo = PromoCode(
            code=code,
            description=data.description,
            discount_type=data.discount_type.value,
            discount_value=data.discount_value,
            max_discount=data.max_discount,
            min_purchase=data.min_purchase,
            currency=data.currency,
            valid_from=data.valid_from or utcnow(),
            valid_until=data.valid_until,
            max_uses=data.max_uses,
            used_count=0,
            is_active=data.is_active,
            plans=plans,
        )
        db.add(promo)

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(
                f"Promo code '{code}' already exists",
                details={"code": code},
            )

        await db.refresh(promo)

        logger.info("[PROMO] Created promo code %s (ID: %s)", promo.code, promo.id)

        return promo
