"""
Seed the plan catalog.

Creates (or updates in place) the default features, the Free and Pro plans
and a sample promo code. Safe to run repeatedly.

Usage:
    python scripts/seed_catalog.py
"""
import asyncio
import os
import sys
from datetime import timedelta
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from app.core.database import Base, async_session_maker, engine
from app.models.checkout_session import CheckoutSession  # noqa: F401
from app.models.feature import Feature, PlanFeature
from app.models.lifecycle import BillingInterval, DiscountType, FeatureType
from app.models.promo_code import PromoCode
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User  # noqa: F401
from app.models.user_subscription import UserSubscription  # noqa: F401
from app.models.types import utcnow


FEATURES = [
    {"slug": "api-access", "name": "API access", "feature_type": FeatureType.BOOLEAN},
    {"slug": "max-projects", "name": "Projects", "feature_type": FeatureType.NUMERIC},
    {"slug": "storage-limit", "name": "Storage (MB)", "feature_type": FeatureType.NUMERIC},
    {"slug": "priority-support", "name": "Priority support", "feature_type": FeatureType.BOOLEAN},
    {"slug": "partner-discount", "name": "Partner discount (%)", "feature_type": FeatureType.NUMERIC},
]

PLANS = [
    {
        "slug": "free",
        "name": "Free",
        "description": "Get started with the basics",
        "price": Decimal("0.00"),
        "billing_interval": BillingInterval.MONTH,
        "trial_days": 0,
        "display_order": 1,
        "features": [("max-projects", "3"), ("storage-limit", "500")],
    },
    {
        "slug": "pro",
        "name": "Pro",
        "description": "Everything in Free, plus API access and priority support",
        "price": Decimal("29.99"),
        "billing_interval": BillingInterval.MONTH,
        "trial_days": 14,
        "display_order": 2,
        "features": [
            ("api-access", None),
            ("max-projects", "50"),
            ("storage-limit", "50000"),
            ("priority-support", None),
            ("partner-discount", "20"),
        ],
    },
]

SAMPLE_PROMO = {
    "code": "WELCOME20",
    "description": "20% off your first Pro purchase",
    "discount_type": DiscountType.PERCENTAGE,
    "discount_value": Decimal("20"),
    "max_discount": Decimal("10.00"),
    "max_uses": 1000,
    "plan_slugs": ["pro"],
}


async def upsert_features(session) -> dict[str, Feature]:
    features = {}
    for entry in FEATURES:
        result = await session.execute(select(Feature).where(Feature.slug == entry["slug"]))
        feature = result.scalar_one_or_none()

        if feature is None:
            feature = Feature(slug=entry["slug"])
            session.add(feature)
            print(f"  [+] Feature '{entry['slug']}' created")

        feature.name = entry["name"]
        feature.feature_type = entry["feature_type"].value
        features[entry["slug"]] = feature

    return features


async def upsert_plans(session, features: dict[str, Feature]) -> dict[str, SubscriptionPlan]:
    plans = {}
    for entry in PLANS:
        result = await session.execute(
            select(SubscriptionPlan).where(SubscriptionPlan.slug == entry["slug"])
        )
        plan = result.scalar_one_or_none()

        if plan is None:
            plan = SubscriptionPlan(slug=entry["slug"], currency="USD")
            session.add(plan)
            print(f"  [+] Plan '{entry['slug']}' created")
        else:
            print(f"  [*] Plan '{entry['slug']}' updated")

        plan.name = entry["name"]
        plan.description = entry["description"]
        plan.price = entry["price"]
        plan.billing_interval = entry["billing_interval"].value
        plan.trial_days = entry["trial_days"]
        plan.display_order = entry["display_order"]
        plan.is_active = True

        # Replace the bundled features wholesale; the old rows have to be
        # deleted before the new ones are inserted (unique plan/feature pair)
        plan.features.clear()
        await session.flush()
        plan.features.extend(
            PlanFeature(feature=features[slug], value=value, display_order=position)
            for position, (slug, value) in enumerate(entry["features"], start=1)
        )

        plans[entry["slug"]] = plan

    return plans


async def upsert_sample_promo(session, plans: dict[str, SubscriptionPlan]) -> PromoCode:
    result = await session.execute(select(PromoCode).where(PromoCode.code == SAMPLE_PROMO["code"]))
    promo = result.scalar_one_or_none()

    if promo is None:
        promo = PromoCode(code=SAMPLE_PROMO["code"], used_count=0, valid_from=utcnow())
        session.add(promo)
        print(f"  [+] Promo code '{SAMPLE_PROMO['code']}' created")

    promo.description = SAMPLE_PROMO["description"]
    promo.discount_type = SAMPLE_PROMO["discount_type"].value
    promo.discount_value = SAMPLE_PROMO["discount_value"]
    promo.max_discount = SAMPLE_PROMO["max_discount"]
    promo.max_uses = SAMPLE_PROMO["max_uses"]
    promo.valid_until = utcnow() + timedelta(days=365)
    promo.is_active = True
    promo.plans = [plans[slug] for slug in SAMPLE_PROMO["plan_slugs"]]

    return promo


async def seed_catalog():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        features = await upsert_features(session)
        plans = await upsert_plans(session, features)
        await upsert_sample_promo(session, plans)
        await session.commit()

    await engine.dispose()
    print("\n[SUCCESS] Catalog seeded")


if __name__ == "__main__":
    print("\n" + "=" * 60)
    print("SEEDING PLAN CATALOG")
    print("=" * 60)
    asyncio.run(seed_catalog())
