"""
Test suite for the admin promo code endpoint.
"""
import pytest


@pytest.mark.asyncio
async def test_admin_creates_promo_code(client, catalog, admin_user, login):
    login(admin_user)

    response = await client.post(
        "/api/v1/admin/promo-codes",
        json={
            "code": "launch-50",
            "description": "Launch week",
            "discount_type": "percentage",
            "discount_value": "50",
            "max_discount": "100",
            "max_uses": 500,
            "plan_ids": [catalog.pro.id],
        },
    )

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["code"] == "LAUNCH-50"
    assert data["used_count"] == 0
    assert data["plan_ids"] == [catalog.pro.id]
    assert data["is_active"] is True

    # Usable right away, case-insensitively
    preview = await client.post(
        "/api/v1/checkout/promo-codes/validate", json={"code": "Launch-50", "plan_id": catalog.pro.id}
    )
    assert preview.json()["valid"] is True


@pytest.mark.asyncio
async def test_non_admin_cannot_create_promo_code(client, catalog):
    response = await client.post(
        "/api/v1/admin/promo-codes",
        json={"code": "SNEAKY", "discount_value": "90"},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_allow_list_with_inactive_plan_is_rejected(client, catalog, admin_user, login):
    login(admin_user)

    response = await client.post(
        "/api/v1/admin/promo-codes",
        json={"code": "LEGACY10", "discount_value": "10", "plan_ids": [catalog.legacy.id]},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert response.json()["error"]["details"]["plan_ids"] == [catalog.legacy.id]


@pytest.mark.asyncio
async def test_inconsistent_rule_is_rejected(client, catalog, admin_user, login):
    login(admin_user)

    response = await client.post(
        "/api/v1/admin/promo-codes",
        json={"code": "TOOMUCH", "discount_type": "percentage", "discount_value": "120"},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_duplicate_code_is_a_conflict(client, catalog, admin_user, login, make_promo):
    await make_promo("TAKEN")
    login(admin_user)

    response = await client.post(
        "/api/v1/admin/promo-codes",
        json={"code": "taken", "discount_value": "10"},
    )

    assert response.status_code == 409
