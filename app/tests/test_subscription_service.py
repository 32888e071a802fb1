"""
Test suite for SubscriptionService: activation, history and cancellation.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.exceptions import InvalidTransitionError, NotFoundError
from app.core.subscription_service import REPLACED_REASON, SubscriptionService
from app.models.lifecycle import SubscriptionStatus
from app.models.user_subscription import UserSubscription
from app.models.types import utcnow


async def current_subscriptions(db_session, user_id: int):
    result = await db_session.execute(
        select(UserSubscription)
        .where(UserSubscription.user_id == user_id)
        .where(UserSubscription.status.in_(["active", "trial"]))
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_plan_with_trial_starts_in_trial(db_session, user, catalog):
    subscription = await SubscriptionService.activate(db_session, user.id, catalog.pro.id)
    await db_session.commit()
    await db_session.refresh(subscription)

    assert subscription.status == SubscriptionStatus.TRIAL.value
    assert subscription.trial_ends_at == subscription.start_date + timedelta(days=14)
    assert subscription.end_date is None
    assert subscription.auto_renew is True


@pytest.mark.asyncio
async def test_plan_without_trial_starts_active(db_session, user, catalog):
    subscription = await SubscriptionService.activate(
        db_session,
        user.id,
        catalog.premium.id,
        promo_code_id=None,
        discount_amount=None,
        payment_method="pm_card_visa",
    )
    await db_session.commit()

    assert subscription.status == SubscriptionStatus.ACTIVE.value
    assert subscription.trial_ends_at is None
    assert subscription.payment_method == "pm_card_visa"
    assert subscription.plan.slug == "premium"


@pytest.mark.asyncio
async def test_activation_retires_current_subscription(db_session, user, catalog):
    first = await SubscriptionService.activate(db_session, user.id, catalog.pro.id)
    await db_session.commit()

    second = await SubscriptionService.activate(db_session, user.id, catalog.premium.id)
    await db_session.commit()

    assert [s.id for s in await current_subscriptions(db_session, user.id)] == [second.id]

    await db_session.refresh(first)
    assert first.status == SubscriptionStatus.CANCELED.value
    assert first.cancel_reason == REPLACED_REASON
    assert first.canceled_at is not None
    assert first.auto_renew is False


@pytest.mark.asyncio
async def test_activation_does_not_touch_other_users(db_session, user, other_user, catalog):
    theirs = await SubscriptionService.activate(db_session, other_user.id, catalog.pro.id)
    await SubscriptionService.activate(db_session, user.id, catalog.premium.id)
    await db_session.commit()

    await db_session.refresh(theirs)
    assert theirs.status == SubscriptionStatus.TRIAL.value


@pytest.mark.asyncio
async def test_activation_is_left_to_the_caller_to_commit(db_session, user, catalog):
    existing = await SubscriptionService.activate(db_session, user.id, catalog.pro.id)
    await db_session.commit()

    await SubscriptionService.activate(db_session, user.id, catalog.premium.id)
    await db_session.rollback()

    current = await current_subscriptions(db_session, user.id)
    assert [s.id for s in current] == [existing.id]


@pytest.mark.asyncio
async def test_activation_records_promo_audit_fields(db_session, user, catalog, make_promo):
    promo = await make_promo("AUDIT")

    subscription = await SubscriptionService.activate(
        db_session,
        user.id,
        catalog.premium.id,
        promo_code_id=promo.id,
        discount_amount=Decimal("200.00"),
    )
    await db_session.commit()

    assert subscription.promo_code_id == promo.id
    assert subscription.discount_amount == Decimal("200.00")


@pytest.mark.asyncio
async def test_activation_for_unknown_user_or_plan_fails(db_session, user, catalog):
    with pytest.raises(NotFoundError):
        await SubscriptionService.activate(db_session, 9999, catalog.pro.id)

    with pytest.raises(NotFoundError):
        await SubscriptionService.activate(db_session, user.id, 9999)


@pytest.mark.asyncio
async def test_history_is_newest_first(db_session, user, catalog):
    start = utcnow()
    for offset, plan in enumerate([catalog.basic, catalog.pro, catalog.premium]):
        await SubscriptionService.activate(
            db_session, user.id, plan.id, now=start + timedelta(minutes=offset)
        )
        await db_session.commit()

    history = await SubscriptionService.get_subscription_history(db_session, user.id)

    assert [s.plan_id for s in history] == [catalog.premium.id, catalog.pro.id, catalog.basic.id]
    assert [s.status for s in history] == ["active", "canceled", "canceled"]


@pytest.mark.asyncio
async def test_cancel_current_subscription(db_session, user, catalog):
    await SubscriptionService.activate(db_session, user.id, catalog.pro.id)
    await db_session.commit()

    canceled = await SubscriptionService.cancel_current_subscription(
        db_session, user.id, reason="Too expensive"
    )

    assert canceled.status == SubscriptionStatus.CANCELED.value
    assert canceled.cancel_reason == "Too expensive"
    assert canceled.canceled_at is not None
    assert canceled.auto_renew is False
    assert await current_subscriptions(db_session, user.id) == []

    with pytest.raises(NotFoundError):
        await SubscriptionService.cancel_current_subscription(db_session, user.id)


@pytest.mark.asyncio
async def test_canceled_subscription_cannot_be_reactivated(db_session, user, catalog):
    subscription = await SubscriptionService.activate(db_session, user.id, catalog.premium.id)
    await db_session.commit()
    await SubscriptionService.cancel_current_subscription(db_session, user.id)

    with pytest.raises(InvalidTransitionError):
        subscription.transition_to(SubscriptionStatus.ACTIVE)
