from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, ForeignKey, Boolean, Numeric, Index, text
)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.core.exceptions import InvalidTransitionError
from app.models.lifecycle import SubscriptionStatus
from app.models.types import UTCDateTime, utcnow


class UserSubscription(Base):
    """
    User subscription model.

    One row per activation. At most one row per user may be 'active' or
    'trial' at any time; the partial unique index backs that up at the
    database level.
    """
    __tablename__ = "user_subscriptions"
    __table_args__ = (
        Index(
            "uq_user_subscriptions_current_user",
            "user_id",
            unique=True,
            postgresql_where=text("status IN ('active', 'trial')"),
            sqlite_where=text("status IN ('active', 'trial')"),
        ),
    )

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # Foreign key: relationship to User
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Foreign key: relationship to SubscriptionPlan
    plan_id = Column(
        Integer,
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Subscription status: 'trial', 'active', 'canceled', 'expired'
    status = Column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True)

    # Subscription dates
    start_date = Column(UTCDateTime, nullable=False, default=utcnow)
    end_date = Column(UTCDateTime, nullable=True, index=True)
    trial_ends_at = Column(UTCDateTime, nullable=True)

    # Auto-renewal flag
    auto_renew = Column(Boolean, nullable=False, default=True)

    # Cancellation information
    canceled_at = Column(UTCDateTime, nullable=True)
    cancel_reason = Column(String(500), nullable=True)

    # Payment method used at checkout (gateway reference)
    payment_method = Column(String(255), nullable=True)

    # Audit: promo code and discount that applied at purchase time
    promo_code_id = Column(
        Integer,
        ForeignKey("promo_codes.id", ondelete="SET NULL"),
        nullable=True
    )
    discount_amount = Column(Numeric(10, 2), nullable=True)

    # Timestamps
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    user = relationship(
        "User",
        back_populates="subscriptions",
        lazy="select"
    )
    plan = relationship(
        "SubscriptionPlan",
        back_populates="user_subscriptions",
        lazy="joined"
    )

    @property
    def subscription_status(self) -> SubscriptionStatus:
        return SubscriptionStatus(self.status)

    def is_current(self, now: datetime) -> bool:
        """Active or trial, and not past an explicit end date."""
        if not self.subscription_status.is_current:
            return False
        return self.end_date is None or self.end_date > now

    def transition_to(self, target: SubscriptionStatus) -> None:
        current = self.subscription_status
        if not current.can_transition_to(target):
            raise InvalidTransitionError("UserSubscription", current.value, target.value)
        self.status = target.value

    def __repr__(self):
        return f"<UserSubscription(id={self.id}, user_id={self.user_id}, plan_id={self.plan_id}, status='{self.status}')>"
