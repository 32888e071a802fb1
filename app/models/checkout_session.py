import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Numeric, ForeignKey, Index, CheckConstraint, text
)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.core.exceptions import InvalidTransitionError
from app.models.lifecycle import CheckoutStatus
from app.models.types import UTCDateTime, utcnow


def _new_session_id() -> str:
    return str(uuid.uuid4())


class CheckoutSession(Base):
    """
    Time-boxed, price-frozen record of a user's intent to buy a plan.

    Pricing invariant: 0 <= discount_amount <= original_price and
    final_price == original_price - discount_amount. Prices only change
    through `apply_discount()` / `clear_discount()`, statuses only through
    `transition_to()`.
    """
    __tablename__ = "checkout_sessions"
    __table_args__ = (
        # One pending session per (user, plan); duplicates from racing
        # creates fail here instead of silently coexisting.
        Index(
            "uq_checkout_sessions_pending_user_plan",
            "user_id",
            "plan_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        CheckConstraint(
            "discount_amount >= 0 AND discount_amount <= original_price",
            name="ck_checkout_sessions_discount_range"
        ),
    )

    # Primary key (opaque, not enumerable)
    id = Column(String(36), primary_key=True, default=_new_session_id)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    plan_id = Column(
        Integer,
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    promo_code_id = Column(
        Integer,
        ForeignKey("promo_codes.id", ondelete="SET NULL"),
        nullable=True
    )

    # Price snapshot taken at creation
    original_price = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    final_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    # 'pending', 'completed' or 'expired'
    status = Column(String(20), nullable=False, default=CheckoutStatus.PENDING.value, index=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False)
    completed_at = Column(UTCDateTime, nullable=True)

    # Billing contact (prefilled from the user, overwritten on completion)
    billing_name = Column(String(255), nullable=True)
    billing_email = Column(String(255), nullable=True)
    billing_address = Column(String(500), nullable=True)
    billing_city = Column(String(255), nullable=True)
    billing_country = Column(String(100), nullable=True)
    billing_postal_code = Column(String(20), nullable=True)

    # Relationships
    user = relationship("User", back_populates="checkout_sessions")
    plan = relationship("SubscriptionPlan", lazy="joined")
    promo_code = relationship("PromoCode", lazy="joined")

    @property
    def checkout_status(self) -> CheckoutStatus:
        return CheckoutStatus(self.status)

    def is_expired(self, now: datetime) -> bool:
        """Past its TTL, whether or not the status has caught up yet."""
        return self.expires_at <= now

    def transition_to(self, target: CheckoutStatus) -> None:
        current = self.checkout_status
        if not current.can_transition_to(target):
            raise InvalidTransitionError("CheckoutSession", current.value, target.value)
        self.status = target.value

    def apply_discount(self, promo_code_id: int, discount_amount: Decimal) -> None:
        """Attach a promo code and recompute the final price."""
        original = Decimal(self.original_price)
        if discount_amount < 0 or discount_amount > original:
            raise ValueError(
                f"discount {discount_amount} outside [0, {original}] for session {self.id}"
            )
        self.promo_code_id = promo_code_id
        self.discount_amount = discount_amount
        self.final_price = original - discount_amount

    def clear_discount(self) -> None:
        self.promo_code_id = None
        self.discount_amount = Decimal("0.00")
        self.final_price = Decimal(self.original_price)

    def __repr__(self):
        return f"<CheckoutSession(id='{self.id}', user_id={self.user_id}, plan_id={self.plan_id}, status='{self.status}')>"
