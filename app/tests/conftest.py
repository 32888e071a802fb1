"""
Shared fixtures for the checkout API test suite.

Every test gets a fresh in-memory SQLite database with the full schema, a
small plan catalog and a few users. API tests drive the ASGI app through
httpx with the database, current-user and payment-gateway dependencies
overridden.
"""
import asyncio
import os
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PAYMENT_GATEWAY"] = "mock"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.database import Base, get_db
from app.core.dependencies import get_current_user, get_payment_gateway
from app.core.payment_gateway import PaymentGateway, PaymentGatewayError, PaymentResult
from app.models.feature import Feature, PlanFeature
from app.models.lifecycle import DiscountType, FeatureType
from app.models.promo_code import PromoCode
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User
from app.models.types import utcnow


class RecordingGateway(PaymentGateway):
    """
    Payment gateway double that records every charge.

    Set `decline_with` to make the next charges fail, or `delay_seconds`
    to make them slow.
    """

    name = "recording"

    def __init__(self):
        self.calls: List[Dict] = []
        self.decline_with: Optional[str] = None
        self.delay_seconds: float = 0.0

    async def charge(self, amount, currency, payment_method_id, description, metadata, idempotency_key):
        self.calls.append({
            "amount": amount,
            "currency": currency,
            "payment_method_id": payment_method_id,
            "description": description,
            "metadata": metadata,
            "idempotency_key": idempotency_key,
        })

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        if self.decline_with:
            raise PaymentGatewayError(self.decline_with, code="card_declined")

        return PaymentResult(
            payment_id=f"pi_test_{len(self.calls)}",
            status="succeeded",
            amount=amount,
            currency=currency,
            metadata=dict(metadata),
        )


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine):
    session_maker = async_sessionmaker(bind=engine, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def user(db_session):
    user = User(
        supabase_user_id="sb-user-1",
        email="jane@example.com",
        full_name="Jane Doe",
        role="user",
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def other_user(db_session):
    user = User(
        supabase_user_id="sb-user-2",
        email="john@example.com",
        full_name="John Roe",
        role="user",
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(db_session):
    user = User(
        supabase_user_id="sb-admin",
        email="admin@example.com",
        full_name="Ada Admin",
        role="admin",
    )
    db_session.add(user)
    await db_session.commit()
    return user


class Catalog:
    """Plans and features created by the `catalog` fixture."""

    def __init__(self, **items):
        self.__dict__.update(items)


@pytest_asyncio.fixture
async def catalog(db_session):
    """
    Plans:
    - free: 0.00, no trial
    - pro: 29.99, 14-day trial
    - premium: 1000.00, no trial
    - basic: 100.00, no trial
    - legacy: 49.00, inactive
    """
    api_access = Feature(slug="api-access", name="API access", feature_type=FeatureType.BOOLEAN.value)
    max_projects = Feature(slug="max-projects", name="Projects", feature_type=FeatureType.NUMERIC.value)
    support = Feature(slug="priority-support", name="Priority support", feature_type=FeatureType.BOOLEAN.value)
    db_session.add_all([api_access, max_projects, support])

    free = SubscriptionPlan(
        slug="free", name="Free", price=Decimal("0.00"), currency="USD",
        billing_interval="month", trial_days=0, display_order=0,
        features=[PlanFeature(feature=max_projects, value="3", display_order=1)],
    )
    pro = SubscriptionPlan(
        slug="pro", name="Pro", price=Decimal("29.99"), currency="USD",
        billing_interval="month", trial_days=14, display_order=1,
        features=[
            PlanFeature(feature=api_access, display_order=1),
            PlanFeature(feature=max_projects, value="50", display_order=2),
        ],
    )
    premium = SubscriptionPlan(
        slug="premium", name="Premium", price=Decimal("1000.00"), currency="USD",
        billing_interval="year", trial_days=0, display_order=2,
        features=[
            PlanFeature(feature=api_access, display_order=1),
            PlanFeature(feature=max_projects, value="unlimited", display_order=2),
            PlanFeature(feature=support, display_order=3),
        ],
    )
    basic = SubscriptionPlan(
        slug="basic", name="Basic", price=Decimal("100.00"), currency="USD",
        billing_interval="year", trial_days=0, display_order=3,
        features=[PlanFeature(feature=max_projects, value="10", display_order=1)],
    )
    legacy = SubscriptionPlan(
        slug="legacy", name="Legacy", price=Decimal("49.00"), currency="USD",
        billing_interval="month", trial_days=0, display_order=4, is_active=False,
    )
    db_session.add_all([free, pro, premium, basic, legacy])
    await db_session.commit()

    return Catalog(free=free, pro=pro, premium=premium, basic=basic, legacy=legacy)


@pytest.fixture
def make_promo(db_session):
    """Factory for promo codes; any column can be overridden."""

    async def _make_promo(code: str, plans=None, **overrides) -> PromoCode:
        values = {
            "code": code,
            "discount_type": DiscountType.PERCENTAGE.value,
            "discount_value": Decimal("20"),
            "currency": "USD",
            "valid_from": utcnow() - timedelta(days=1),
            "used_count": 0,
            "is_active": True,
        }
        values.update(overrides)
        promo = PromoCode(**values, plans=list(plans or []))
        db_session.add(promo)
        await db_session.commit()
        return promo

    return _make_promo


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def login():
    """Switch the authenticated user for subsequent API calls."""

    def _login(user: User) -> None:
        app.dependency_overrides[get_current_user] = lambda: user

    return _login


@pytest_asyncio.fixture
async def client(db_session, user, gateway, login):
    """
    httpx client against the app, authenticated as `user`.

    Requests share the test's database session, so tests can inspect rows
    right after a call.
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    login(user)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
