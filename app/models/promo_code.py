from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, ForeignKey, Table
)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.lifecycle import DiscountType
from app.models.types import UTCDateTime, utcnow


# Plan allow-list for promo codes (no rows = valid for every plan)
promo_code_plans = Table(
    "promo_code_plans",
    Base.metadata,
    Column(
        "promo_code_id",
        Integer,
        ForeignKey("promo_codes.id", ondelete="CASCADE"),
        primary_key=True
    ),
    Column(
        "plan_id",
        Integer,
        ForeignKey("subscription_plans.id", ondelete="CASCADE"),
        primary_key=True
    ),
)


class PromoCode(Base):
    """
    Discount rule applied at checkout.

    Codes are stored upper-cased and looked up case-insensitively.
    `used_count` is bumped once per completed checkout that used the code.
    """
    __tablename__ = "promo_codes"

    id = Column(Integer, primary_key=True, index=True)

    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)

    # 'percentage' or 'fixed'
    discount_type = Column(String(20), nullable=False, default=DiscountType.PERCENTAGE.value)
    discount_value = Column(Numeric(10, 2), nullable=False)

    # Optional limits (NULL = no limit)
    max_discount = Column(Numeric(10, 2), nullable=True)
    min_purchase = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")

    # Validity window
    valid_from = Column(UTCDateTime, nullable=False, default=utcnow)
    valid_until = Column(UTCDateTime, nullable=True)

    # Usage tracking
    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    plans = relationship(
        "SubscriptionPlan",
        secondary=promo_code_plans,
        lazy="selectin"
    )

    @property
    def plan_ids(self) -> list[int]:
        return [plan.id for plan in self.plans]

    def __repr__(self):
        return f"<PromoCode(id={self.id}, code='{self.code}', type='{self.discount_type}')>"
