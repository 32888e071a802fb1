"""
Test suite for the checkout endpoints.

Tests the HTTP surface: status codes, the error body shape and the response
structure of each checkout operation.
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.dependencies import get_current_user
from app.main import app
from app.models.checkout_session import CheckoutSession
from app.models.lifecycle import DiscountType
from app.models.types import utcnow

BILLING = {"name": "Jane Doe", "email": "jane@example.com", "country": "PT"}


async def start_session(client, plan_id, promo_code=None):
    payload = {"plan_id": plan_id}
    if promo_code:
        payload["promo_code"] = promo_code
    response = await client.post("/api/v1/checkout/sessions", json=payload)
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_session_returns_priced_session(client, catalog):
    """
    Validates:
    - Session is created pending at the plan price
    - Plan details are embedded
    - Billing contact is prefilled from the user
    - Repeating the call returns the same session
    """
    data = await start_session(client, catalog.pro.id)

    assert data["status"] == "pending"
    assert Decimal(data["original_price"]) == Decimal("29.99")
    assert Decimal(data["final_price"]) == Decimal("29.99")
    assert data["plan"]["slug"] == "pro"
    assert data["promo_code"] is None
    assert data["billing"]["name"] == "Jane Doe"
    assert data["billing"]["email"] == "jane@example.com"

    again = await start_session(client, catalog.pro.id)
    assert again["id"] == data["id"]


@pytest.mark.asyncio
async def test_create_session_with_promo_code(client, catalog, make_promo):
    await make_promo("BIG20", max_discount=Decimal("150"))

    data = await start_session(client, catalog.premium.id, promo_code="big20")

    assert Decimal(data["discount_amount"]) == Decimal("150")
    assert Decimal(data["final_price"]) == Decimal("850")
    assert data["promo_code"]["code"] == "BIG20"


@pytest.mark.asyncio
async def test_create_session_for_unavailable_plan(client, catalog):
    inactive = await client.post("/api/v1/checkout/sessions", json={"plan_id": catalog.legacy.id})
    missing = await client.post("/api/v1/checkout/sessions", json={"plan_id": 9999})

    assert inactive.status_code == 400
    assert inactive.json()["error"]["code"] == "PLAN_UNAVAILABLE"
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_checkout_requires_authentication(client, catalog):
    app.dependency_overrides.pop(get_current_user, None)

    response = await client.post("/api/v1/checkout/sessions", json={"plan_id": catalog.pro.id})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_get_session_of_another_user_is_forbidden(client, catalog, other_user, login):
    data = await start_session(client, catalog.pro.id)

    login(other_user)
    response = await client.get(f"/api/v1/checkout/sessions/{data['id']}")

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_expired_session_returns_gone(client, db_session, catalog):
    data = await start_session(client, catalog.pro.id)
    session = await db_session.get(CheckoutSession, data["id"])
    session.expires_at = utcnow() - timedelta(minutes=1)
    await db_session.commit()

    response = await client.get(f"/api/v1/checkout/sessions/{data['id']}")
    apply = await client.post(
        f"/api/v1/checkout/sessions/{data['id']}/promo-code", json={"code": "ANY"}
    )

    assert response.status_code == 410
    assert response.json()["error"]["code"] == "EXPIRED"
    assert apply.status_code == 410


@pytest.mark.asyncio
async def test_validate_promo_code_previews_without_session(client, catalog, make_promo):
    await make_promo("PROONLY", plans=[catalog.pro])

    eligible = await client.post(
        "/api/v1/checkout/promo-codes/validate", json={"code": "proonly", "plan_id": catalog.pro.id}
    )
    ineligible = await client.post(
        "/api/v1/checkout/promo-codes/validate", json={"code": "PROONLY", "plan_id": catalog.premium.id}
    )
    unknown = await client.post(
        "/api/v1/checkout/promo-codes/validate", json={"code": "NOPE", "plan_id": catalog.pro.id}
    )

    assert eligible.status_code == 200
    assert eligible.json()["valid"] is True
    assert Decimal(eligible.json()["discount_amount"]) == Decimal("6.00")
    assert ineligible.json()["valid"] is False
    assert ineligible.json()["reason"] == "PLAN_NOT_ELIGIBLE"
    assert unknown.json()["reason"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_apply_and_remove_promo_code(client, catalog, make_promo):
    await make_promo("BIG20", max_discount=Decimal("150"))
    data = await start_session(client, catalog.premium.id)

    applied = await client.post(
        f"/api/v1/checkout/sessions/{data['id']}/promo-code", json={"code": "BIG20"}
    )
    assert applied.status_code == 200
    body = applied.json()
    assert body["decision"]["valid"] is True
    assert Decimal(body["decision"]["discount_amount"]) == Decimal("150")
    assert Decimal(body["session"]["final_price"]) == Decimal("850")
    assert body["session"]["promo_code"]["code"] == "BIG20"

    removed = await client.delete(f"/api/v1/checkout/sessions/{data['id']}/promo-code")
    assert removed.status_code == 200
    assert removed.json() == {"success": True}

    session = (await client.get(f"/api/v1/checkout/sessions/{data['id']}")).json()
    assert Decimal(session["final_price"]) == Decimal("1000")
    assert Decimal(session["discount_amount"]) == Decimal("0")
    assert session["promo_code"] is None


@pytest.mark.asyncio
async def test_apply_rejected_promo_code_reports_reason(client, catalog, make_promo):
    await make_promo("OLD", valid_until=utcnow() - timedelta(days=1))
    data = await start_session(client, catalog.premium.id)

    response = await client.post(
        f"/api/v1/checkout/sessions/{data['id']}/promo-code", json={"code": "OLD"}
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "PROMO_CODE_REJECTED"
    assert error["details"]["reason"] == "EXPIRED"

    session = (await client.get(f"/api/v1/checkout/sessions/{data['id']}")).json()
    assert Decimal(session["final_price"]) == Decimal("1000")


@pytest.mark.asyncio
async def test_complete_paid_checkout(client, catalog, gateway):
    data = await start_session(client, catalog.premium.id)

    response = await client.post(
        f"/api/v1/checkout/sessions/{data['id']}/complete",
        json={"billing": BILLING, "payment_method_id": "pm_card_visa"},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["session_id"] == data["id"]
    assert body["payment_id"] == "pi_test_1"
    assert body["subscription"]["status"] == "active"
    assert body["subscription"]["plan"]["slug"] == "premium"
    assert len(gateway.calls) == 1


@pytest.mark.asyncio
async def test_complete_free_checkout_without_payment_method(client, catalog, gateway, make_promo):
    await make_promo("FIVEHUNDRED", discount_type=DiscountType.FIXED.value, discount_value=Decimal("500"))
    data = await start_session(client, catalog.basic.id, promo_code="FIVEHUNDRED")
    assert Decimal(data["final_price"]) == Decimal("0")

    response = await client.post(
        f"/api/v1/checkout/sessions/{data['id']}/complete", json={"billing": BILLING}
    )

    assert response.status_code == 200, response.text
    assert response.json()["payment_id"] is None
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_complete_validates_billing_details(client, catalog, gateway):
    data = await start_session(client, catalog.premium.id)

    response = await client.post(
        f"/api/v1/checkout/sessions/{data['id']}/complete",
        json={"billing": {"name": "J", "email": "not-an-email"}, "payment_method_id": "pm_card_visa"},
    )

    assert response.status_code == 422
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_complete_paid_checkout_without_payment_method(client, catalog, gateway):
    data = await start_session(client, catalog.premium.id)

    response = await client.post(
        f"/api/v1/checkout/sessions/{data['id']}/complete", json={"billing": BILLING}
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_METHOD_REQUIRED"
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_declined_payment_returns_402_and_keeps_session_open(client, catalog, gateway):
    gateway.decline_with = "Your card was declined."
    data = await start_session(client, catalog.premium.id)

    response = await client.post(
        f"/api/v1/checkout/sessions/{data['id']}/complete",
        json={"billing": BILLING, "payment_method_id": "pm_card_error"},
    )

    assert response.status_code == 402
    assert response.json()["error"]["code"] == "PAYMENT_FAILED"
    assert response.json()["error"]["message"] == "Your card was declined."

    session = await client.get(f"/api/v1/checkout/sessions/{data['id']}")
    assert session.status_code == 200
    assert session.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_completed_session_is_a_conflict(client, catalog, gateway):
    data = await start_session(client, catalog.premium.id)
    url = f"/api/v1/checkout/sessions/{data['id']}"
    await client.post(f"{url}/complete", json={"billing": BILLING, "payment_method_id": "pm_card_visa"})

    again = await client.post(f"{url}/complete", json={"billing": BILLING, "payment_method_id": "pm_card_visa"})
    read = await client.get(url)

    assert again.status_code == 409
    assert read.status_code == 409
    assert len(gateway.calls) == 1


@pytest.mark.asyncio
async def test_responses_carry_request_id(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_validate_promo_code_against_inactive_plan(client, catalog, make_promo):
    await make_promo("ANYPLAN")

    preview = await client.post(
        "/api/v1/checkout/promo-codes/validate", json={"code": "ANYPLAN", "plan_id": catalog.legacy.id}
    )
    missing = await client.post(
        "/api/v1/checkout/promo-codes/validate", json={"code": "ANYPLAN", "plan_id": 9999}
    )

    assert preview.status_code == 200
    assert preview.json()["valid"] is True
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_exhausted_promo_code_at_completion_is_a_conflict(client, db_session, catalog, gateway, make_promo):
    promo = await make_promo("ONEUSE", max_uses=1)
    data = await start_session(client, catalog.premium.id, promo_code="ONEUSE")

    promo.used_count = 1
    await db_session.commit()

    response = await client.post(
        f"/api/v1/checkout/sessions/{data['id']}/complete",
        json={"billing": BILLING, "payment_method_id": "pm_card_visa"},
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "PROMO_CODE_EXHAUSTED"
    assert gateway.calls == []
