from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.lifecycle import FeatureType


class Feature(Base):
    """
    A named capability that plans can bundle (e.g. 'api-access', 'storage-limit').
    """
    __tablename__ = "features"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)

    # 'boolean', 'numeric' or 'text'
    feature_type = Column(String(20), nullable=False, default=FeatureType.BOOLEAN.value)

    plan_features = relationship(
        "PlanFeature",
        back_populates="feature",
        lazy="select"
    )

    def __repr__(self):
        return f"<Feature(id={self.id}, slug='{self.slug}')>"


class PlanFeature(Base):
    """
    Feature attached to a plan, optionally with a plan-specific value
    (e.g. storage-limit=50000, discount=20).
    """
    __tablename__ = "plan_features"
    __table_args__ = (
        UniqueConstraint("plan_id", "feature_id", name="uq_plan_features_plan_feature"),
    )

    id = Column(Integer, primary_key=True, index=True)

    plan_id = Column(
        Integer,
        ForeignKey("subscription_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    feature_id = Column(
        Integer,
        ForeignKey("features.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    value = Column(String(255), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)

    plan = relationship("SubscriptionPlan", back_populates="features")
    feature = relationship("Feature", back_populates="plan_features", lazy="joined")

    def __repr__(self):
        return f"<PlanFeature(plan_id={self.plan_id}, feature_id={self.feature_id}, value={self.value!r})>"
