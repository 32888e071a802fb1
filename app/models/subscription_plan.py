from sqlalchemy import Column, Integer, String, Numeric, Boolean, Text
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.lifecycle import BillingInterval
from app.models.types import UTCDateTime, utcnow


class SubscriptionPlan(Base):
    """
    Subscription plan configuration model.

    The catalog of purchasable plans. Read-only to checkout: a session
    snapshots price and currency at creation, so later edits never change
    an in-flight checkout.
    """
    __tablename__ = "subscription_plans"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # URL-safe identifier: 'free', 'pro'
    slug = Column(String(100), unique=True, nullable=False, index=True)

    # Human-readable display name
    name = Column(String(100), nullable=False)

    # Plan description for UI display
    description = Column(Text, nullable=True)

    # Pricing (decimal, scoped to currency)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")

    # 'month', 'year' or 'lifetime'
    billing_interval = Column(String(20), nullable=False, default=BillingInterval.MONTH.value)

    # Trial length in days (0 = no trial)
    trial_days = Column(Integer, nullable=False, default=0)

    # Plan status
    is_active = Column(Boolean, nullable=False, default=True)

    # Sort order for UI display
    display_order = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships: bundled features, in display order
    features = relationship(
        "PlanFeature",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="PlanFeature.display_order",
        lazy="selectin"
    )

    user_subscriptions = relationship(
        "UserSubscription",
        back_populates="plan",
        lazy="select"
    )

    def __repr__(self):
        return f"<SubscriptionPlan(id={self.id}, slug='{self.slug}')>"
