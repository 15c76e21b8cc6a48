from __future__ import annotations

from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import pytest
from conftest import FRONTEND_URL, MERCHANT_ADDRESS
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_checkout_without_credentials_returns_demo_intent(
    async_client: AsyncClient,
) -> None:
    response = await async_client.post(
        "/api/checkout", json={"amount": "59", "currency": "usd"}
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["rail"] == "hosted_charge"
    assert payload["status"] == "created"
    assert payload["is_demo"] is True
    assert payload["demo_reason"] == "not_configured"
    assert payload["intent_id"].startswith("demo_charge_")
    assert payload["currency"] == "USD"
    assert Decimal(payload["amount"]) == Decimal("59")
    assert payload["destination_address"] == MERCHANT_ADDRESS

    parts = urlsplit(payload["payment_url"])
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == f"{FRONTEND_URL}/success"
    query = parse_qs(parts.query)
    assert query["demo"] == ["true"]
    assert payload["intent_id"].endswith(query["session"][0])


@pytest.mark.asyncio
async def test_demo_ids_are_unique(async_client: AsyncClient) -> None:
    ids = set()
    for _ in range(5):
        response = await async_client.post("/api/checkout", json={"plan_code": "premium"})
        ids.add(response.json()["intent_id"])

    assert len(ids) == 5


@pytest.mark.asyncio
async def test_plan_code_supplies_pricing(async_client: AsyncClient) -> None:
    response = await async_client.post("/api/checkout", json={"plan_code": "Premium"})

    assert response.status_code == 201
    payload = response.json()
    assert Decimal(payload["amount"]) == Decimal("59")
    assert payload["currency"] == "USD"
    assert payload["name"] == "Premium Membership"


@pytest.mark.asyncio
async def test_unknown_plan_is_not_found(async_client: AsyncClient) -> None:
    response = await async_client.post("/api/checkout", json={"plan_code": "platinum"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_amount_is_required_without_plan(async_client: AsyncClient) -> None:
    response = await async_client.post("/api/checkout", json={"currency": "USD"})

    assert response.status_code == 400
    assert "amount" in response.json()["detail"]


@pytest.mark.asyncio
async def test_non_positive_amount_fails_validation(async_client: AsyncClient) -> None:
    response = await async_client.post(
        "/api/checkout", json={"amount": "0", "currency": "USD"}
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_onramp_checkout_falls_back_to_marked_demo(
    async_client: AsyncClient,
) -> None:
    response = await async_client.post(
        "/api/onramp",
        json={"plan_code": "premium", "payment_method": "apple_pay"},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["rail"] == "onramp"
    assert payload["payment_method"] == "apple_pay"
    assert payload["intent_id"].startswith("onramp_demo_")
    assert parse_qs(urlsplit(payload["payment_url"]).query)["onramp"] == ["true"]

    order = await async_client.get(f"/api/onramp/{payload['intent_id']}")
    assert order.json() == {
        "success": True,
        "order": {"id": payload["intent_id"], "status": "created", "demo": True},
    }


@pytest.mark.asyncio
async def test_onramp_route_rejects_non_onramp_methods(
    async_client: AsyncClient,
) -> None:
    response = await async_client.post(
        "/api/onramp", json={"plan_code": "premium", "payment_method": "crypto"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_onramp_quote_without_credentials_reports_failure(
    async_client: AsyncClient,
) -> None:
    response = await async_client.post("/api/onramp/quote", json={"amount": "59"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is False
    assert payload["error"]["kind"] == "unauthorized"


@pytest.mark.asyncio
async def test_transfer_checkout_without_credentials_is_demo(
    async_client: AsyncClient,
) -> None:
    response = await async_client.post(
        "/api/checkout", json={"plan_code": "premium", "payment_method": "wallet"}
    )

    assert response.json()["rail"] == "chain_transfer"
    assert response.json()["intent_id"].startswith("transfer_demo_")


@pytest.mark.asyncio
async def test_demo_intent_can_be_simulated(async_client: AsyncClient) -> None:
    created = await async_client.post("/api/checkout", json={"plan_code": "premium"})
    intent_id = created.json()["intent_id"]

    pending = await async_client.post(
        f"/api/payments/{intent_id}/simulate", json={"kind": "pending"}
    )
    confirmed = await async_client.post(
        f"/api/payments/{intent_id}/simulate", json={"kind": "confirmed"}
    )
    backwards = await async_client.post(
        f"/api/payments/{intent_id}/simulate", json={"kind": "pending"}
    )

    assert pending.json()["outcome"] == "applied"
    assert confirmed.json()["payment"]["status"] == "confirmed"
    assert backwards.json()["outcome"] == "unchanged"

    status = await async_client.get(f"/api/payments/{intent_id}")
    assert status.json()["status"] == "confirmed"
    assert status.json()["updated_at"] is not None


@pytest.mark.asyncio
async def test_simulating_unknown_intent_is_not_found(async_client: AsyncClient) -> None:
    response = await async_client.post(
        "/api/payments/demo_charge_0/simulate", json={"kind": "confirmed"}
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_unknown_payment_is_not_found(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/payments/chg_missing")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_health_reports_rail_configuration(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["service"] == "railpay"
    assert payload["environment"] == "test"
    assert payload["rails"] == {
        "hosted_charge": False,
        "onramp": False,
        "chain_transfer": False,
    }
    assert "X-Request-ID" in response.headers
